"""
OAuth2 bearer token checks by token introspection (RFC 7662).

When an introspection endpoint is configured, every /api request must carry
``Authorization: Bearer <token>``. The token is posted to the endpoint as
the form field ``token``, with HTTP basic client authentication when a
client ID is configured, and the request is allowed only if the answer
says ``"active": true``. Results are not cached.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from snmpdash.context import ClientInfo
from snmpdash.errors import UnauthenticatedError
from snmpdash.logging import get_logger

if TYPE_CHECKING:
    from snmpdash.config import AuthConfig

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str:
    """
    Return the token of an ``Authorization: Bearer`` header value.

    Raises:
        UnauthenticatedError: If the header is missing or not a bearer token.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise UnauthenticatedError("Missing bearer token")
    token = authorization[len(BEARER_PREFIX) :].strip()
    if not token:
        raise UnauthenticatedError("Missing bearer token")
    return token


class TokenIntrospector:
    """
    Validates bearer tokens against an introspection endpoint.

    Example:
        >>> introspector = TokenIntrospector("https://idp.example.com/oauth2/introspect")
        >>> claims = await introspector.introspect("abc123")
    """

    def __init__(
        self,
        introspect_url: str,
        client_id: str = "",
        client_secret: str = "",
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the introspector.

        Args:
            introspect_url: RFC 7662 endpoint.
            client_id: Client ID for HTTP basic auth, empty for none.
            client_secret: Client secret for HTTP basic auth.
            timeout_seconds: Request timeout.
            transport: Optional httpx transport, used by tests.
        """
        self._introspect_url = introspect_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout_seconds
        self._transport = transport

    @classmethod
    def from_config(cls, config: AuthConfig) -> TokenIntrospector:
        return cls(
            introspect_url=config.introspect_url,
            client_id=config.client_id,
            client_secret=config.client_secret,
            timeout_seconds=config.timeout_seconds,
        )

    @property
    def introspect_url(self) -> str:
        return self._introspect_url

    async def introspect(self, token: str) -> dict[str, Any]:
        """
        Introspect a token.

        Returns:
            The introspection response of an active token.

        Raises:
            UnauthenticatedError: If the token is inactive, the endpoint is
                unreachable or the response cannot be parsed.
        """
        auth = (self._client_id, self._client_secret) if self._client_id else None

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._introspect_url,
                    data={"token": token},
                    auth=auth,
                )
                result = response.json()
        except httpx.HTTPError as e:
            logger.warning(
                "Token introspection request failed",
                extra={"url": self._introspect_url, "error": str(e)},
            )
            raise UnauthenticatedError("Token introspection failed") from e
        except ValueError as e:
            logger.warning(
                "Invalid token introspection response",
                extra={"url": self._introspect_url, "error": str(e)},
            )
            raise UnauthenticatedError("Token introspection failed") from e

        if not isinstance(result, dict) or result.get("active") is not True:
            raise UnauthenticatedError("Token is not active")
        return result

    async def authenticate(
        self, authorization: str | None, address: str | None = None
    ) -> ClientInfo:
        """
        Check an Authorization header value.

        Returns:
            ClientInfo built from the introspection response.

        Raises:
            UnauthenticatedError: If the request must be rejected.
        """
        token = extract_bearer_token(authorization)
        claims = await self.introspect(token)
        subject = claims.get("sub") or claims.get("username")
        client_id = claims.get("client_id")
        return ClientInfo(
            address=address,
            subject=str(subject) if subject is not None else None,
            client_id=str(client_id) if client_id is not None else None,
        )

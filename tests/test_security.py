"""
Tests for bearer token introspection.

The introspection endpoint is replaced by an httpx.MockTransport.
"""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from snmpdash.config import AuthConfig
from snmpdash.errors import UnauthenticatedError
from snmpdash.security import TokenIntrospector, extract_bearer_token

INTROSPECT_URL = "https://idp.example.com/oauth2/introspect"


def _introspector(handler, client_id: str = "") -> TokenIntrospector:  # type: ignore[no-untyped-def]
    return TokenIntrospector(
        INTROSPECT_URL,
        client_id=client_id,
        client_secret="s3cret" if client_id else "",
        transport=httpx.MockTransport(handler),
    )


class TestExtractBearerToken:
    """Tests for extract_bearer_token()."""

    def test_valid_header(self) -> None:
        """Test extracting the token."""
        assert extract_bearer_token("Bearer abc123") == "abc123"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer ", "bearer abc"])
    def test_invalid_header(self, header: str | None) -> None:
        """Test that missing or non-bearer headers are rejected."""
        with pytest.raises(UnauthenticatedError):
            extract_bearer_token(header)


class TestTokenIntrospector:
    """Tests for TokenIntrospector."""

    @pytest.mark.asyncio
    async def test_active_token(self) -> None:
        """Test that an active token is accepted and posted as a form."""
        seen: dict[str, object] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["form"] = parse_qs(request.content.decode())
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"active": True, "sub": "alice"})

        client = await _introspector(handler).authenticate("Bearer tok", "10.0.0.9")

        assert seen["form"] == {"token": ["tok"]}
        assert seen["auth"] is None
        assert client.subject == "alice"
        assert client.address == "10.0.0.9"

    @pytest.mark.asyncio
    async def test_basic_client_auth(self) -> None:
        """Test that client credentials are sent as HTTP basic auth."""
        seen: dict[str, str | None] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"active": True, "client_id": "dash"})

        client = await _introspector(handler, client_id="dash").authenticate("Bearer tok")

        assert seen["auth"] is not None
        assert seen["auth"].startswith("Basic ")
        assert client.client_id == "dash"

    @pytest.mark.asyncio
    async def test_inactive_token(self) -> None:
        """Test that inactive tokens are rejected."""
        introspector = _introspector(lambda _r: httpx.Response(200, json={"active": False}))

        with pytest.raises(UnauthenticatedError):
            await introspector.introspect("tok")

    @pytest.mark.asyncio
    async def test_invalid_response(self) -> None:
        """Test that a non-JSON answer is rejected."""
        introspector = _introspector(lambda _r: httpx.Response(200, text="<html>"))

        with pytest.raises(UnauthenticatedError):
            await introspector.introspect("tok")

    @pytest.mark.asyncio
    async def test_endpoint_unreachable(self) -> None:
        """Test that transport failures are rejected."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UnauthenticatedError):
            await _introspector(handler).introspect("tok")

    def test_from_config(self) -> None:
        """Test building from AuthConfig."""
        config = AuthConfig(introspect_url=INTROSPECT_URL, client_id="c", client_secret="s")

        assert TokenIntrospector.from_config(config).introspect_url == INTROSPECT_URL

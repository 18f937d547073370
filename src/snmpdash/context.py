"""
Request context for JSON-RPC method handlers.

RequestContext carries the metadata of a single remote call: the method
name, the request ID, the client address and, when token introspection is
enabled, the authenticated subject.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from snmpdash.protocol import JSONRPCRequest


@dataclass
class ClientInfo:
    """
    Identity of the remote caller.

    Attributes:
        address: Client IP address, if known.
        subject: Token subject from introspection (``sub`` or ``username``).
        client_id: OAuth2 client the token was issued to.
    """

    address: str | None = None
    subject: str | None = None
    client_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.subject is not None or self.client_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "subject": self.subject,
            "client_id": self.client_id,
        }


@dataclass
class RequestContext:
    """
    Context of a single JSON-RPC call, passed to every method handler.

    Attributes:
        method: Full method name (e.g., "sources.rename").
        client: ClientInfo for the caller.
        request_id: Request identifier from the JSON-RPC request.
        timestamp: When the request was received (UTC).
    """

    method: str
    client: ClientInfo
    request_id: str | int | None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def namespace(self) -> str:
        """The namespace part, e.g. "sources" from "sources.rename"."""
        return self.method.split(".", 1)[0]

    def to_dict(self) -> dict[str, Any]:
        """Dictionary form for logging."""
        return {
            "method": self.method,
            "client": self.client.to_dict(),
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_request(
        cls,
        request: JSONRPCRequest,
        client: ClientInfo | None = None,
    ) -> RequestContext:
        """
        Create a RequestContext from a parsed JSON-RPC request.

        Example:
            >>> from snmpdash.protocol import parse_request
            >>> req = parse_request('{"jsonrpc":"2.0","id":1,"method":"sources.list"}')
            >>> RequestContext.from_request(req).namespace
            'sources'
        """
        return cls(
            method=request.method,
            client=client or ClientInfo(),
            request_id=request.id,
            timestamp=datetime.now(UTC),
        )

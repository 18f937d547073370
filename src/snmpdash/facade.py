"""
Maintenance facade over the sample store.

Two interchangeable implementations of the same operations:

- LocalSourceAdmin works on a SampleStore in the same process.
- RemoteSourceAdmin calls a running service over JSON-RPC 2.0 at
  ``POST /api/rpc``.

Both raise the same ServiceError subclasses with the same error codes,
messages and details for the same conditions. The remote side additionally
raises TransportError when the service cannot be reached or answers
something that is not a JSON-RPC response.
"""

from __future__ import annotations

import itertools
from typing import Any, Protocol

import httpx

from snmpdash.errors import (
    ServiceError,
    TransportError,
    UnauthenticatedError,
    error_from_dict,
)
from snmpdash.logging import get_logger
from snmpdash.metrics.storage import MalformedRecordError, Sample, SampleStore

logger = get_logger(__name__)

DEFAULT_SERVER_ADDR = "http://localhost:8080"
RPC_PATH = "/api/rpc"


class SourceAdmin(Protocol):
    """Operations shared by the local and remote facades."""

    def read_all(self) -> dict[str, list[Sample]]: ...

    def list_sources(self) -> list[str]: ...

    def rename(self, src: str, dst: str) -> None: ...

    def merge(self, src: str, dst: str) -> None: ...

    def delete(self, name: str) -> None: ...

    def close(self) -> None: ...


class LocalSourceAdmin:
    """
    In-process facade; every call is one store transaction.

    Example:
        >>> admin = LocalSourceAdmin(SampleStore.open("samples.db"))
        >>> admin.rename("10.0.0.1_-1-3-6-1-2-1-1-3-0", "core-router")
    """

    def __init__(self, store: SampleStore) -> None:
        self._store = store

    @property
    def store(self) -> SampleStore:
        return self._store

    def close(self) -> None:
        self._store.db.close()

    def insert(self, source: str, sample: Sample) -> None:
        self._store.insert(source, sample)

    def read_all(self) -> dict[str, list[Sample]]:
        return self._store.read_all()

    def list_sources(self) -> list[str]:
        return self._store.list_sources()

    def rename(self, src: str, dst: str) -> None:
        self._store.rename(src, dst)

    def merge(self, src: str, dst: str) -> None:
        self._store.merge(src, dst)

    def delete(self, name: str) -> None:
        self._store.delete(name)


class RemoteSourceAdmin:
    """
    Facade calling a running snmpdash service.

    Args:
        base_url: Service address, e.g. "http://localhost:8080".
        token: Optional bearer token sent with every call.
        client: Optional preconfigured httpx.Client (its base_url is used
            instead of base_url).
        timeout: Request timeout in seconds for the default client.

    Example:
        >>> with RemoteSourceAdmin("http://localhost:8080") as admin:
        ...     admin.merge("old-router", "core-router")
    """

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_ADDR,
        token: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._token = token
        self._ids = itertools.count(1)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> RemoteSourceAdmin:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- transport ----------------------------------------------------------

    def _call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """
        Perform one JSON-RPC call and return its result.

        Raises:
            ServiceError: The error reported by the service.
            TransportError: If no JSON-RPC response could be obtained.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or {},
        }
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}

        try:
            response = self._client.post(RPC_PATH, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(
                "Remote call failed",
                extra={"method": method, "error": str(e)},
            )
            raise TransportError(
                f"Request to {self._client.base_url} failed: {e}",
                details={"method": method},
            ) from e

        if response.status_code == 401:
            raise self._unauthenticated(response)
        if response.status_code != 200:
            raise TransportError(
                f"Unexpected HTTP status {response.status_code}",
                details={"method": method, "status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(
                "Invalid JSON-RPC response",
                details={"method": method},
            ) from e
        if not isinstance(body, dict) or ("result" not in body and "error" not in body):
            raise TransportError(
                "Invalid JSON-RPC response",
                details={"method": method},
            )

        error = body.get("error")
        if error is not None:
            raise self._error_from_response(method, error)
        return body["result"]

    @staticmethod
    def _unauthenticated(response: httpx.Response) -> ServiceError:
        try:
            detail = response.json().get("detail")
        except (ValueError, AttributeError):
            detail = None
        if isinstance(detail, dict) and "error_code" in detail:
            return error_from_dict(detail)
        return UnauthenticatedError("Missing bearer token")

    @staticmethod
    def _error_from_response(method: str, error: Any) -> ServiceError:
        if not isinstance(error, dict):
            return TransportError("Invalid JSON-RPC error object", details={"method": method})
        data = error.get("data")
        if isinstance(data, dict) and "error_code" in data:
            return error_from_dict(data)
        return ServiceError(
            error_code="internal",
            message=str(error.get("message", "")),
            details={"code": error.get("code")},
        )

    # -- operations ---------------------------------------------------------

    def read_all(self) -> dict[str, list[Sample]]:
        result = self._call("samples.read_all")
        if not isinstance(result, dict):
            raise TransportError("Invalid samples.read_all result")
        try:
            return {
                source: [Sample.from_dict(item) for item in items]
                for source, items in result.items()
            }
        except (MalformedRecordError, TypeError) as e:
            raise TransportError(f"Invalid samples.read_all result: {e}") from e

    def list_sources(self) -> list[str]:
        result = self._call("sources.list")
        if not isinstance(result, list):
            raise TransportError("Invalid sources.list result")
        return [str(name) for name in result]

    def rename(self, src: str, dst: str) -> None:
        self._call("sources.rename", {"from": src, "to": dst})

    def merge(self, src: str, dst: str) -> None:
        self._call("sources.merge", {"from": src, "to": dst})

    def delete(self, name: str) -> None:
        self._call("sources.delete", {"name": name})

"""
JSON-RPC 2.0 envelope for the maintenance methods posted to ``/api/rpc``.

A ServiceError travels in the ``data`` member of the error object as its
``to_dict()`` form, so RemoteSourceAdmin can raise the very same exception
the store raised on the server.

Codes used:
- -32700 parse error, -32600 invalid request, -32601 unknown method
- -32602 invalid params (also for ServiceError "invalid_argument")
- -32603 failure outside any handler
- -32002 ... -32099 one code per ServiceError.error_code, -32000 otherwise
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from snmpdash.errors import ServiceError

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

ERROR_CODE_MAP: dict[str, int] = {
    "invalid_argument": INVALID_PARAMS,
    "unauthenticated": -32002,
    "not_found": -32003,
    "already_exists": -32004,
    "unavailable": -32006,
    "store_error": -32010,
    "internal": -32099,
}

DEFAULT_SERVER_ERROR = -32000

RequestId = str | int | None


class JSONRPCError(Exception):
    """
    Error member of a JSON-RPC response, raisable while parsing.

    Attributes:
        code: JSON-RPC error code.
        message: Short description.
        data: ServiceError.to_dict() form, or None.
    """

    def __init__(self, code: int, message: str, data: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            body["data"] = self.data
        return body


@dataclass
class JSONRPCRequest:
    """A validated request; ``id`` is None for notifications."""

    jsonrpc: str
    id: RequestId
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def is_notification(self) -> bool:
        return self.id is None


@dataclass
class JSONRPCResponse:
    """Exactly one of result and error is serialized."""

    jsonrpc: str
    id: RequestId
    result: Any | None = None
    error: JSONRPCError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"jsonrpc": self.jsonrpc, "id": self.id, "error": self.error.to_dict()}
        return {"jsonrpc": self.jsonrpc, "id": self.id, "result": self.result}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


def _invalid_request(reason: str) -> JSONRPCError:
    return JSONRPCError(INVALID_REQUEST, f"Invalid Request: {reason}")


def parse_request(request_json: str | bytes) -> JSONRPCRequest:
    """
    Decode and validate one request body.

    Only named parameters are accepted; a missing or null ``params`` is
    treated as an empty object.

    Raises:
        JSONRPCError: PARSE_ERROR for undecodable bodies, INVALID_REQUEST
            for a bad envelope, INVALID_PARAMS for non-object params.

    Example:
        >>> parse_request('{"jsonrpc":"2.0","id":1,"method":"sources.list"}').method
        'sources.list'
    """
    try:
        data = json.loads(request_json)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise JSONRPCError(PARSE_ERROR, f"Parse error: {e}") from e

    if not isinstance(data, dict):
        raise _invalid_request("body must be a JSON object")
    if data.get("jsonrpc") != "2.0":
        raise _invalid_request(f"unsupported jsonrpc version {data.get('jsonrpc')!r}")

    method = data.get("method")
    if not isinstance(method, str) or not method:
        raise _invalid_request("'method' must be a non-empty string")

    params = data.get("params")
    if params is None:
        params = {}
    elif not isinstance(params, dict):
        raise JSONRPCError(INVALID_PARAMS, "Invalid params: expected an object")

    return JSONRPCRequest(jsonrpc="2.0", id=data.get("id"), method=method, params=params)


def format_success_response(request_id: RequestId, result: Any) -> JSONRPCResponse:
    """
    Example:
        >>> format_success_response(1, ["router1"]).to_json()
        '{"jsonrpc":"2.0","id":1,"result":["router1"]}'
    """
    return JSONRPCResponse(jsonrpc="2.0", id=request_id, result=result)


def format_error_response(request_id: RequestId, error: JSONRPCError) -> JSONRPCResponse:
    return JSONRPCResponse(jsonrpc="2.0", id=request_id, error=error)


def service_error_to_jsonrpc_error(error: ServiceError) -> JSONRPCError:
    """Wrap a ServiceError, keeping its full dict form as ``data``."""
    code = ERROR_CODE_MAP.get(error.error_code, DEFAULT_SERVER_ERROR)
    return JSONRPCError(code, error.message, data=error.to_dict())


def create_method_not_found_error(method: str) -> JSONRPCError:
    error = ServiceError(
        error_code="invalid_argument",
        message=f"Method '{method}' is not registered",
        details={"method": method},
    )
    return JSONRPCError(METHOD_NOT_FOUND, f"Method not found: {method}", data=error.to_dict())


def create_internal_error(message: str, details: dict[str, Any] | None = None) -> JSONRPCError:
    error = ServiceError(error_code="internal", message=message, details=details)
    return JSONRPCError(INTERNAL_ERROR, message, data=error.to_dict())

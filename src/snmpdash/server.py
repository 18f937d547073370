"""
JSON-RPC request processing for snmpdash.

process_request() runs the full lifecycle of one JSON-RPC call: parse,
build a RequestContext, dispatch through the MethodRegistry and format the
success or error response. The HTTP layer in snmpdash.app hands it request
bodies and returns its output unchanged.
"""

from __future__ import annotations

from snmpdash.context import ClientInfo, RequestContext
from snmpdash.errors import ServiceError
from snmpdash.logging import get_logger
from snmpdash.protocol import (
    JSONRPCError,
    create_internal_error,
    create_method_not_found_error,
    format_error_response,
    format_success_response,
    parse_request,
    service_error_to_jsonrpc_error,
)
from snmpdash.routing import MethodNotFoundError, MethodRegistry

logger = get_logger(__name__)


async def process_request(
    request_json: str | bytes,
    registry: MethodRegistry,
    client: ClientInfo | None = None,
) -> str | None:
    """
    Process a single JSON-RPC request and return the response.

    Args:
        request_json: Raw JSON body of the request.
        registry: MethodRegistry with registered handlers.
        client: Optional ClientInfo for the caller.

    Returns:
        JSON string containing the response, or None for notifications.
    """
    request_id: str | int | None = None

    try:
        request = parse_request(request_json)
        request_id = request.id
        ctx = RequestContext.from_request(request, client=client)

        if request.is_notification:
            try:
                await registry.invoke(request.method, ctx, request.params)
            except (ServiceError, MethodNotFoundError) as e:
                logger.warning(
                    "Error processing notification",
                    extra={"method": request.method, "error": str(e)},
                )
            return None

        result = await registry.invoke(request.method, ctx, request.params)
        return format_success_response(request_id, result).to_json()

    except JSONRPCError as e:
        return format_error_response(request_id, e).to_json()

    except MethodNotFoundError as e:
        return format_error_response(
            request_id, create_method_not_found_error(e.method)
        ).to_json()

    except ServiceError as e:
        logger.info(
            "Request failed",
            extra={
                "request_id": request_id,
                "error_code": e.error_code,
                "error": e.message,
            },
        )
        return format_error_response(
            request_id, service_error_to_jsonrpc_error(e)
        ).to_json()

    except Exception as e:
        logger.exception(
            "Unexpected error processing request",
            extra={"request_id": request_id, "error": str(e)},
        )
        jsonrpc_error = create_internal_error(
            message=f"Internal server error: {type(e).__name__}",
            details={"exception": str(e)},
        )
        return format_error_response(request_id, jsonrpc_error).to_json()

"""
Method routing for the JSON-RPC endpoint.

MethodRegistry maps method names ("namespace.operation") to async handlers
and invokes them, wrapping unexpected exceptions in InternalError. Each
application builds its own registry; there is no global instance.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from snmpdash.errors import InternalError, ServiceError
from snmpdash.logging import get_logger

if TYPE_CHECKING:
    from snmpdash.context import RequestContext

logger = get_logger(__name__)

MethodHandler = Callable[["RequestContext", dict[str, Any]], Awaitable[Any]]


class MethodNotFoundError(LookupError):
    """Raised by MethodRegistry.invoke() for an unregistered method."""

    def __init__(self, method: str) -> None:
        super().__init__(f"Method '{method}' is not registered")
        self.method = method


class MethodRegistry:
    """
    Registry of JSON-RPC method handlers.

    Example:
        >>> registry = MethodRegistry()
        >>> registry.register("sources.list", handle_list)
        >>> result = await registry.invoke("sources.list", ctx, {})
    """

    def __init__(self) -> None:
        self._handlers: dict[str, MethodHandler] = {}

    def register(self, name: str, handler: MethodHandler) -> None:
        """
        Register a handler under name.

        Raises:
            ValueError: If a handler is already registered for the name.
        """
        if name in self._handlers:
            raise ValueError(f"Method '{name}' is already registered")
        self._handlers[name] = handler

    def method(self, name: str) -> Callable[[MethodHandler], MethodHandler]:
        """
        Decorator form of register().

        Example:
            >>> @registry.method("sources.list")
            ... async def handle_list(ctx, params):
            ...     return []
        """

        def decorator(handler: MethodHandler) -> MethodHandler:
            self.register(name, handler)
            return handler

        return decorator

    def get_handler(self, name: str) -> MethodHandler | None:
        return self._handlers.get(name)

    def list_methods(self, namespace: str | None = None) -> list[str]:
        """List registered method names, optionally filtered by namespace."""
        if namespace is None:
            return sorted(self._handlers)
        return sorted(
            name for name in self._handlers if name.startswith(f"{namespace}.")
        )

    async def invoke(
        self,
        name: str,
        ctx: RequestContext,
        params: dict[str, Any],
    ) -> Any:
        """
        Invoke the handler registered under name.

        Raises:
            MethodNotFoundError: If no handler is registered.
            ServiceError: As raised by the handler, or InternalError wrapping
                any other exception.
        """
        handler = self.get_handler(name)
        if handler is None:
            raise MethodNotFoundError(name)

        try:
            return await handler(ctx, params)
        except ServiceError:
            raise
        except Exception as e:
            logger.exception(
                "Unexpected error in method handler",
                extra={"method": name, "error": str(e)},
            )
            raise InternalError(
                message=f"Internal error in method '{name}': {e!s}",
                details={"method": name, "exception_type": type(e).__name__},
            ) from e

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

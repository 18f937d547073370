"""
JSON-RPC method handlers for the sample store.

Methods:
- samples.read_all: every sample grouped by source
- sources.list: names of all sources
- sources.rename: {"from": str, "to": str}
- sources.merge: {"from": str, "to": str}
- sources.delete: {"name": str}

Store calls are synchronous and run on a worker thread so they do not block
the event loop. Insert is only available in-process.
"""

from __future__ import annotations

import asyncio
from typing import Any

from snmpdash.context import RequestContext
from snmpdash.errors import InvalidArgumentError
from snmpdash.logging import get_logger
from snmpdash.metrics.storage import SampleStore
from snmpdash.routing import MethodRegistry

logger = get_logger(__name__)


def _require_name(params: dict[str, Any], key: str) -> str:
    """
    Fetch a required string parameter. Emptiness is checked by the store.

    Raises:
        InvalidArgumentError: If the parameter is missing or not a string.
    """
    value = params.get(key)
    if not isinstance(value, str):
        raise InvalidArgumentError(
            f"Parameter '{key}' must be a string",
            details={"parameter": key, "value": value},
        )
    return value


def _reject_unknown(params: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(params) - allowed)
    if unknown:
        raise InvalidArgumentError(
            f"Unknown parameters: {', '.join(unknown)}",
            details={"unknown": unknown},
        )


def register_store_handlers(registry: MethodRegistry, store: SampleStore) -> None:
    """
    Register the samples.* and sources.* methods for store on registry.

    Args:
        registry: Registry to add the methods to.
        store: The store the methods operate on.
    """

    @registry.method("samples.read_all")
    async def handle_read_all(
        ctx: RequestContext, params: dict[str, Any]
    ) -> dict[str, list[dict[str, Any]]]:
        _reject_unknown(params, set())
        data = await asyncio.to_thread(store.read_all)
        return {
            source: [sample.to_dict() for sample in samples]
            for source, samples in data.items()
        }

    @registry.method("sources.list")
    async def handle_list(ctx: RequestContext, params: dict[str, Any]) -> list[str]:
        _reject_unknown(params, set())
        return await asyncio.to_thread(store.list_sources)

    @registry.method("sources.rename")
    async def handle_rename(
        ctx: RequestContext, params: dict[str, Any]
    ) -> dict[str, Any]:
        _reject_unknown(params, {"from", "to"})
        src = _require_name(params, "from")
        dst = _require_name(params, "to")
        await asyncio.to_thread(store.rename, src, dst)
        logger.info(
            "Rename requested",
            extra={"from": src, "to": dst, "request": ctx.to_dict()},
        )
        return {"ok": True, "from": src, "to": dst}

    @registry.method("sources.merge")
    async def handle_merge(
        ctx: RequestContext, params: dict[str, Any]
    ) -> dict[str, Any]:
        _reject_unknown(params, {"from", "to"})
        src = _require_name(params, "from")
        dst = _require_name(params, "to")
        await asyncio.to_thread(store.merge, src, dst)
        logger.info(
            "Merge requested",
            extra={"from": src, "to": dst, "request": ctx.to_dict()},
        )
        return {"ok": True, "from": src, "to": dst}

    @registry.method("sources.delete")
    async def handle_delete(
        ctx: RequestContext, params: dict[str, Any]
    ) -> dict[str, Any]:
        _reject_unknown(params, {"name"})
        name = _require_name(params, "name")
        await asyncio.to_thread(store.delete, name)
        logger.info(
            "Delete requested",
            extra={"source": name, "request": ctx.to_dict()},
        )
        return {"ok": True, "name": name}

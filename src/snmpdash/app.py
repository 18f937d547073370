"""
snmpdash - FastAPI application and service entry point.

Routes:
- GET  /api/data    every sample grouped by source
- POST /api/rpc     JSON-RPC 2.0 maintenance methods
- GET  /api/status  poller state and record count
- /                 dashboard assets from server.static_dir, if configured

All /api routes require a bearer token when token introspection is
configured. The poller is started and stopped with the application.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.staticfiles import StaticFiles

from snmpdash import __version__
from snmpdash.config import AppConfig, load_config
from snmpdash.context import ClientInfo
from snmpdash.errors import ServiceError, UnauthenticatedError
from snmpdash.handlers import register_store_handlers
from snmpdash.logging import get_logger, setup_logging
from snmpdash.metrics.poller import Poller
from snmpdash.metrics.storage import SampleStore
from snmpdash.routing import MethodRegistry
from snmpdash.security import TokenIntrospector
from snmpdash.server import process_request

logger = get_logger(__name__)


def create_app(
    config: AppConfig,
    store: SampleStore,
    poller: Poller | None = None,
    introspector: TokenIntrospector | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration.
        store: The sample store served by the API.
        poller: Optional poller started and stopped with the app.
        introspector: Token introspector; built from config.auth when
            omitted and introspection is configured.

    Returns:
        The configured application.
    """
    if introspector is None and config.auth.enabled:
        introspector = TokenIntrospector.from_config(config.auth)

    registry = MethodRegistry()
    register_store_handlers(registry, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "Starting snmpdash",
            extra={
                "listen": config.server.listen,
                "db_path": config.storage.path,
                "auth": introspector is not None,
            },
        )
        if poller is not None:
            await poller.start()
        try:
            yield
        finally:
            if poller is not None:
                await poller.stop()
            logger.info("snmpdash stopped")

    app = FastAPI(
        title="snmpdash",
        description="SNMP sample poller and dashboard API",
        version=__version__,
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.registry = registry
    app.state.poller = poller

    async def authenticate(request: Request) -> ClientInfo:
        address = request.client.host if request.client else None
        if introspector is None:
            return ClientInfo(address=address)
        try:
            return await introspector.authenticate(
                request.headers.get("Authorization"), address
            )
        except UnauthenticatedError as e:
            logger.info(
                "Rejected unauthenticated request",
                extra={"path": request.url.path, "address": address, "error": e.message},
            )
            raise HTTPException(
                status_code=401,
                detail=e.to_dict(),
                headers={"WWW-Authenticate": "Bearer"},
            ) from e

    router = APIRouter(prefix="/api", dependencies=[Depends(authenticate)])

    @router.get("/data")
    async def get_data() -> dict[str, list[dict[str, Any]]]:
        try:
            data = await asyncio.to_thread(store.read_all)
        except ServiceError as e:
            raise HTTPException(status_code=500, detail=e.to_dict()) from e
        return {
            source: [sample.to_dict() for sample in samples]
            for source, samples in data.items()
        }

    @router.post("/rpc")
    async def rpc(
        request: Request, client: ClientInfo = Depends(authenticate)
    ) -> Response:
        body = await request.body()
        response = await process_request(body, registry, client)
        if response is None:
            return Response(status_code=204)
        return Response(content=response, media_type="application/json")

    @router.get("/status")
    async def get_status() -> dict[str, Any]:
        try:
            records = await asyncio.to_thread(store.count)
        except ServiceError as e:
            raise HTTPException(status_code=500, detail=e.to_dict()) from e
        return {
            "version": __version__,
            "records": records,
            "poller": poller.get_status().to_dict() if poller is not None else None,
        }

    app.include_router(router)

    if config.server.static_dir:
        app.mount(
            "/",
            StaticFiles(directory=config.server.static_dir, html=True),
            name="static",
        )

    return app


def main(argv: list[str] | None = None) -> int:
    """Run the snmpdash service until interrupted."""
    config = load_config(cli_args=argv)
    setup_logging(config.logging)

    store = SampleStore.open(config.storage.path)
    poller = Poller(store, config.poller) if config.poller.enabled else None
    app = create_app(config, store, poller)

    try:
        uvicorn.run(
            app,
            host=config.server.host,
            port=config.server.port,
            log_level=config.server.log_level,
        )
    finally:
        store.db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""Entry point for the FastAPI-powered Stremio addon."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import __version__ as ADDON_VERSION
from .config import settings
from .models import DEFAULT_TYPE
from .services.catalog_cache import CatalogCache
from .services.catalog_service import CatalogService
from .services.tvgarden import TVGardenClient
from .utils import ID_PREFIX

logging.basicConfig(level=logging.DEBUG if settings.dev_logging else logging.INFO)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(20.0, connect=10.0),
            follow_redirects=True,
        )
    )
    cache = CatalogCache(settings, TVGardenClient(settings, http_client))
    catalog_service = CatalogService(settings, cache)

    fastapi_app.state.catalog_service = catalog_service
    await catalog_service.start()

    logger.info("Addon server v%s running on port %s", ADDON_VERSION, settings.server_port)
    logger.info(
        "Install the addon from: %s/manifest.json (refresh mode: %s)",
        settings.public_base_url,
        settings.refresh_mode,
    )

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await catalog_service.stop()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Play TVGarden live-streams in Stremio",
        version=ADDON_VERSION,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_middleware(fastapi_app)
    register_routes(fastapi_app)
    return fastapi_app


def register_middleware(fastapi_app: FastAPI) -> None:
    @fastapi_app.middleware("http")
    async def answer_preflight(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        return await call_next(request)

    @fastapi_app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error for %s: %s",
            request.url.path,
            exc,
            exc_info=settings.dev_logging,
        )
        return JSONResponse(
            {"error": "Internal server error", "message": str(exc)},
            status_code=500,
            headers=CORS_HEADERS,
        )


def get_catalog_service(app: FastAPI) -> CatalogService:
    service = getattr(app.state, "catalog_service", None)
    if not isinstance(service, CatalogService):
        raise RuntimeError("Catalog service not initialised")
    return service


def _log_handler_error(handler: str, exc: Exception) -> None:
    logger.warning(
        "Error in %s handler: %s", handler, exc, exc_info=settings.dev_logging
    )


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, Any]:
        payload: dict[str, Any] = {"status": "ok", "version": ADDON_VERSION}
        service = getattr(fastapi_app.state, "catalog_service", None)
        if isinstance(service, CatalogService):
            payload["catalog"] = service.status()
        return payload

    @fastapi_app.get("/manifest.json")
    async def manifest() -> dict[str, Any]:
        try:
            service = get_catalog_service(fastapi_app)
            catalogs = await service.manifest_catalogs()
        except Exception as exc:
            _log_handler_error("Manifest", exc)
            return {}
        return {
            "id": settings.addon_id,
            "version": ADDON_VERSION,
            "name": settings.addon_name,
            "description": "Play TVGarden live-streams.",
            "resources": ["catalog", "meta"],
            "types": [DEFAULT_TYPE],
            "idPrefixes": [ID_PREFIX],
            "catalogs": catalogs,
        }

    async def _catalog_endpoint(
        content_type: str, catalog_id: str, extra: str | None = None
    ) -> dict[str, Any]:
        try:
            service = get_catalog_service(fastapi_app)
            return await service.get_catalog_payload(content_type, catalog_id, extra)
        except Exception as exc:
            _log_handler_error("Catalog", exc)
            return {"metas": []}

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}.json")
    async def catalog(content_type: str, catalog_id: str) -> dict[str, Any]:
        return await _catalog_endpoint(content_type, catalog_id)

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}/{extra}.json")
    async def catalog_with_extra(
        content_type: str, catalog_id: str, extra: str
    ) -> dict[str, Any]:
        return await _catalog_endpoint(content_type, catalog_id, extra)

    @fastapi_app.get("/meta/{content_type}/{item_id}.json")
    async def meta(content_type: str, item_id: str) -> dict[str, Any]:
        try:
            service = get_catalog_service(fastapi_app)
            return await service.get_meta_payload(content_type, item_id)
        except Exception as exc:
            _log_handler_error("Meta", exc)
            return {"meta": {}}


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )

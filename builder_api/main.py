# builder_api/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from builder_api.app.core.logging import setup_logging
from builder_api.app.core.config import settings

from builder_api.app.api.routes_builds import (
    CORS_HEADERS,
    CREATE_BUILD_PATH,
    method_not_allowed,
    router as builds_router,
)
from builder_api.app.api.routes_health import router as health_router
from builder_api.app.api.routes_metrics import router as metrics_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    # Initialize logging early so all imports use correct handlers/levels
    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title=settings.service_name or "App Builder API",
        version=settings.version or "0.1.0",
        docs_url="/docs",
        redoc_url=None,
        openapi_url="/openapi.json",
    )

    # --- Global JSON error handler: unexpected failures surface their raw message ---
    @app.exception_handler(Exception)
    async def _unhandled_exc_to_json(request: Request, exc: Exception):
        logger.error(
            "unhandled exception on %s %s",
            request.method,
            request.url.path,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return JSONResponse(status_code=500, content={"error": str(exc)}, headers=CORS_HEADERS)

    # Methods outside the create-build route list still get its JSON 405
    @app.exception_handler(StarletteHTTPException)
    async def _http_exc(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405 and request.url.path == CREATE_BUILD_PATH:
            return method_not_allowed()
        return await http_exception_handler(request, exc)

    app.add_middleware(GZipMiddleware, minimum_size=1024)

    # Routes
    app.include_router(builds_router)  # POST/OPTIONS /create-build
    app.include_router(health_router)
    app.include_router(metrics_router)

    # Icons written by the local storage backend are served from here
    if settings.icon_storage_backend.strip().lower() == "local":
        settings.icon_storage_root.mkdir(parents=True, exist_ok=True)
        app.mount(
            "/icons",
            StaticFiles(directory=str(settings.icon_storage_root)),
            name="icons",
        )

    # Friendly root
    @app.get("/")
    def root():
        return {
            "service": settings.service_name,
            "version": settings.version,
            "environment": settings.environment,
            "docs": "/docs",
            "openapi": "/openapi.json",
            "tips": {
                "create_build": "POST /create-build (multipart/form-data)",
                "health": "/api/health",
                "metrics": "/api/metrics",
            },
        }

    return app


app = create_app()

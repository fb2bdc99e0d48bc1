"""
FastAPI application entry point for the CMS backend.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cms_backend.auth_routes import router as auth_router
from cms_backend.cms_routes import router as cms_router
from cms_backend.config import Settings, get_settings
from cms_backend.dependencies import (
    BackendSelector,
    build_identity_provider,
    build_image_store,
)
from cms_backend.errors import BackendUnavailableError, CMSError
from cms_backend.routes import router

logger = logging.getLogger(__name__)

_UNSET: Any = object()


@asynccontextmanager
async def lifespan(app: FastAPI):
    selector: BackendSelector = app.state.backend_selector
    if selector.durable_configured:
        if not selector.database.check_connection():
            raise BackendUnavailableError("Database is configured but unreachable")
        selector.database.create_schema()
    else:
        logger.info("Database: using in-memory storage (DATABASE_URL not configured)")
    yield


async def handle_cms_error(request: Request, exc: CMSError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(
    settings: Optional[Settings] = None,
    *,
    backend_selector: Optional[BackendSelector] = None,
    identity_provider: Any = _UNSET,
    image_store: Any = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO)
    )

    app = FastAPI(title="CMS Backend (FastAPI)", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.backend_selector = (
        backend_selector
        if backend_selector is not None
        else BackendSelector.from_settings(settings)
    )
    app.state.identity_provider = (
        build_identity_provider(settings)
        if identity_provider is _UNSET
        else identity_provider
    )
    app.state.image_store = (
        image_store if image_store is not None else build_image_store(settings)
    )
    logger.info("CMS storage backend: %s", app.state.backend_selector.backend_name)

    app.add_exception_handler(CMSError, handle_cms_error)
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(auth_router, prefix=settings.api_prefix)
    app.include_router(cms_router, prefix=settings.api_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))

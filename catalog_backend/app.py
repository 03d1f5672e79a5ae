"""
FastAPI application entry point for the catalog backend.
"""

from __future__ import annotations

import logging
import mimetypes
import time
from contextlib import asynccontextmanager
from email.utils import formatdate
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from catalog_backend.config import Settings, get_settings
from catalog_backend.context import AppContext, build_context
from catalog_backend.errors import CatalogError, InvalidBlobKey
from catalog_backend.lifecycle import SweepScheduler
from catalog_backend.routes import health_router, router
from catalog_backend.storage import IMMUTABLE_CACHE_CONTROL, BlobStore, LocalBlobStore

logger = logging.getLogger(__name__)

ONE_YEAR_SECONDS = 31536000


def _cache_headers() -> dict[str, str]:
    return {
        "Cache-Control": IMMUTABLE_CACHE_CONTROL,
        "Expires": formatdate(time.time() + ONE_YEAR_SECONDS, usegmt=True),
    }


class CachedStaticFiles(StaticFiles):
    """Static files with long-lived cache headers; blob keys never change."""

    def file_response(self, *args, **kwargs):
        response = super().file_response(*args, **kwargs)
        response.headers.update(_cache_headers())
        return response


def blob_endpoint(store: BlobStore):
    """GET handler serving blobs from a store that has no local directory."""

    def serve_blob(key: str) -> Response:
        try:
            data = store.read(key)
        except (FileNotFoundError, InvalidBlobKey):
            raise HTTPException(status_code=404, detail="Not Found") from None
        media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        return Response(content=data, media_type=media_type, headers=_cache_headers())

    return serve_blob
async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    context: AppContext = app.state.context
    settings = context.settings
    logger.info("Uploads stored at %s", context.blob_store.location)

    scheduler: Optional[SweepScheduler] = None
    if settings.run_sweeps:
        scheduler = SweepScheduler(
            context.reconciliation,
            delay_seconds=settings.sweep_delay_seconds,
            interval_seconds=settings.sweep_interval_seconds,
        )
        scheduler.start()
    app.state.sweep_scheduler = scheduler

    yield

    logger.info("Shutting down catalog backend")
    if scheduler is not None:
        await scheduler.shutdown()
    context.close()


def create_app(
    settings: Optional[Settings] = None, context: Optional[AppContext] = None
) -> FastAPI:
    settings = settings or get_settings()
    context = context or build_context(settings)

    app = FastAPI(title="Catalog Backend", version="0.1.0", lifespan=lifespan)
    app.state.context = context
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(CatalogError, catalog_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(health_router)

    uploads_path = "/" + settings.uploads_url_prefix.strip("/")
    if isinstance(context.blob_store, LocalBlobStore):
        app.mount(
            uploads_path,
            CachedStaticFiles(directory=context.blob_store.root, check_dir=False),
            name="uploads",
        )
    else:
        app.add_api_route(
            uploads_path + "/{key}",
            blob_endpoint(context.blob_store),
            methods=["GET"],
            name="uploads",
            include_in_schema=False,
        )
    return app

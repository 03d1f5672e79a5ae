"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Request

from catalog_backend.context import AppContext
from catalog_backend.service import CatalogService


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_catalog_service(request: Request) -> CatalogService:
    return get_context(request).catalog


def get_base_url(request: Request) -> str:
    """
    Public origin used to build absolute image URLs. A configured
    PUBLIC_BASE_URL wins over whatever host the request came in on.
    """
    configured = get_context(request).settings.public_base_url
    if configured:
        return configured.rstrip("/")
    return str(request.base_url).rstrip("/")

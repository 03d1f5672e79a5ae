"""
HTTP routes for the catalog API.

Endpoints are plain ``def`` functions so FastAPI runs the blocking store
and database calls in its threadpool.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from catalog_backend.context import AppContext
from catalog_backend.dependencies import (
    get_base_url,
    get_catalog_service,
    get_context,
)
from catalog_backend.errors import PayloadTooLarge, UnsupportedMediaType
from catalog_backend.ingestion import ImageInput, new_blob_key
from catalog_backend.schemas import (
    DeleteResponse,
    HealthResponse,
    ImageStatusResponse,
    ProductCreateRequest,
    ProductResponse,
    ProductUpdateRequest,
    StoreStatusResponse,
    UploadsHealth,
)
from catalog_backend.service import CatalogService
from catalog_backend.storage import BlobStore

logger = logging.getLogger(__name__)

router = APIRouter()
health_router = APIRouter()

_SAFE_SUFFIX = re.compile(r"^\.[a-z0-9]{1,10}$")


def _upload_suffix(upload: UploadFile) -> str:
    suffix = Path(upload.filename or "").suffix.lower()
    if _SAFE_SUFFIX.match(suffix):
        return suffix
    subtype = (upload.content_type or "").split("/", 1)[-1].split("+")[0].lower()
    return f".{subtype}" if re.fullmatch(r"[a-z0-9]{1,10}", subtype) else ""


def _place_upload(
    upload: UploadFile, store: BlobStore, max_bytes: int, field: str = "image"
) -> str:
    """
    Upload filter: accept image content types up to ``max_bytes`` and place
    the file in the store under a fresh key for the ingestion pipeline.
    """
    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise UnsupportedMediaType(content_type)
    data = upload.file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise PayloadTooLarge(max_bytes)
    key = new_blob_key(_upload_suffix(upload), label=field)
    store.write(key, data)
    logger.info("Multipart upload %s stored as %s", upload.filename, key)
    return key


def _form_image_input(
    image: Optional[UploadFile], image_url: Optional[str], context: AppContext
) -> ImageInput:
    if image is not None and image.filename:
        key = _place_upload(
            image, context.blob_store, context.settings.max_upload_bytes
        )
        return ImageInput(upload_key=key)
    return ImageInput(inline_data=image_url)


def _form_number(name: str, value: Optional[str]) -> Optional[float]:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"{name} must be a number") from None


def _form_fields(
    title: Optional[str],
    description: Optional[str],
    rating: Optional[str],
    price: Optional[str],
    discount: Optional[str],
) -> dict:
    """Blank numeric form fields count as absent, like blank JSON fields."""
    return {
        "title": title,
        "description": description,
        "rating": _form_number("rating", rating),
        "price": _form_number("price", price),
        "discount": _form_number("discount", discount),
    }


@contextmanager
def _discard_upload_on_error(image_input: ImageInput, context: AppContext):
    """Remove a placed upload when the catalog mutation that owns it fails."""
    try:
        yield
    except Exception:
        if image_input.upload_key:
            try:
                context.blob_store.delete(image_input.upload_key)
            except Exception:
                logger.exception(
                    "Error deleting rejected upload %s", image_input.upload_key
                )
        raise


@router.get("/products", response_model=list[ProductResponse])
def list_products(
    catalog: CatalogService = Depends(get_catalog_service),
    base_url: str = Depends(get_base_url),
):
    views = catalog.list_with_image_status(base_url)
    return [ProductResponse.from_view(view) for view in views]


@router.get("/products/image-status", response_model=list[ImageStatusResponse])
def product_image_status(
    catalog: CatalogService = Depends(get_catalog_service),
    base_url: str = Depends(get_base_url),
):
    entries = catalog.image_status_report(base_url)
    return [ImageStatusResponse.from_entry(entry) for entry in entries]


@router.get("/products/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: str,
    catalog: CatalogService = Depends(get_catalog_service),
    base_url: str = Depends(get_base_url),
):
    view = catalog.get_by_id_with_image_status(product_id, base_url)
    return ProductResponse.from_view(view)


@router.post("/products", response_model=ProductResponse, status_code=201)
def create_product(
    payload: ProductCreateRequest,
    catalog: CatalogService = Depends(get_catalog_service),
    base_url: str = Depends(get_base_url),
):
    view = catalog.create(
        payload.catalog_fields(), ImageInput(inline_data=payload.imageUrl), base_url
    )
    return ProductResponse.from_view(view)


@router.post("/products/upload", response_model=ProductResponse, status_code=201)
def create_product_with_upload(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    rating: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    discount: Optional[str] = Form(None),
    imageUrl: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    context: AppContext = Depends(get_context),
    base_url: str = Depends(get_base_url),
):
    fields = _form_fields(title, description, rating, price, discount)
    image_input = _form_image_input(image, imageUrl, context)
    with _discard_upload_on_error(image_input, context):
        view = context.catalog.create(fields, image_input, base_url)
    return ProductResponse.from_view(view)


@router.put("/products/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: str,
    payload: ProductUpdateRequest,
    catalog: CatalogService = Depends(get_catalog_service),
    base_url: str = Depends(get_base_url),
):
    view = catalog.update(
        product_id,
        payload.catalog_fields(),
        ImageInput(inline_data=payload.imageUrl),
        base_url,
    )
    return ProductResponse.from_view(view)


@router.put("/products/{product_id}/upload", response_model=ProductResponse)
def update_product_with_upload(
    product_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    rating: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    discount: Optional[str] = Form(None),
    imageUrl: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    context: AppContext = Depends(get_context),
    base_url: str = Depends(get_base_url),
):
    # Fail on unknown ids before an upload lands in the store.
    context.catalog.get_by_id_with_image_status(product_id, base_url)
    fields = _form_fields(title, description, rating, price, discount)
    image_input = _form_image_input(image, imageUrl, context)
    with _discard_upload_on_error(image_input, context):
        view = context.catalog.update(product_id, fields, image_input, base_url)
    return ProductResponse.from_view(view)


@router.delete("/products/{product_id}", response_model=DeleteResponse)
def delete_product(
    product_id: str, catalog: CatalogService = Depends(get_catalog_service)
):
    catalog.delete(product_id)
    return DeleteResponse(message="Product removed successfully")


@router.get("/images/status", response_model=StoreStatusResponse)
def images_status(catalog: CatalogService = Depends(get_catalog_service)):
    return StoreStatusResponse.from_status(catalog.store_status())


@health_router.get("/health", response_model=HealthResponse)
def health(context: AppContext = Depends(get_context)):
    status = context.catalog.store_status()
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uploads=UploadsHealth(
            exists=status.exists,
            fileCount=status.file_count,
            totalSize=status.total_size,
            path=status.location,
        ),
        database="connected" if context.db.ping() else "disconnected",
    )

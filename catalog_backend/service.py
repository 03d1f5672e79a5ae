"""
Catalog API surface: product CRUD with image ingestion, validation and
public URL enrichment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from catalog_backend.db import CatalogDbClient, ProductRecord
from catalog_backend.errors import MissingRequiredFields, ProductNotFound
from catalog_backend.ingestion import ImageInput, IngestionPipeline
from catalog_backend.references import DEFAULT_PREFIX, to_public_url, to_store_key
from catalog_backend.storage import BlobInfo, BlobStore
from catalog_backend.validation import ImageValidator

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "rating", "price", "discount")
EDITABLE_FIELDS = ("title", "description", "rating", "price", "discount")


@dataclass
class ProductView:
    record: ProductRecord
    image_exists: bool
    full_image_url: Optional[str]


@dataclass
class ImageStatusEntry:
    id: str
    title: str
    image_url: str
    exists: bool
    full_url: Optional[str]


@dataclass
class StoreStatus:
    location: str
    exists: bool
    file_count: int
    total_size: int
    files: list[BlobInfo]


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class CatalogService:
    def __init__(
        self,
        db: CatalogDbClient,
        store: BlobStore,
        validator: ImageValidator,
        ingestion: IngestionPipeline,
        prefix: str = DEFAULT_PREFIX,
    ):
        self.db = db
        self.store = store
        self.validator = validator
        self.ingestion = ingestion
        self.prefix = prefix

    def _view(self, record: ProductRecord, base_url: str) -> ProductView:
        return ProductView(
            record=record,
            image_exists=self.validator.annotate(record.image_url),
            full_image_url=to_public_url(record.image_url, base_url, self.prefix),
        )

    def _get_or_raise(self, product_id: str) -> ProductRecord:
        record = self.db.get_product(product_id)
        if not record:
            raise ProductNotFound(product_id)
        return record

    def _discard_blob(self, reference: Optional[str], reason: str) -> None:
        """Best-effort blob removal; failures are logged, never raised."""
        key = to_store_key(reference, self.prefix)
        if key is None:
            return
        try:
            self.store.delete(key)
            logger.info("Deleted image %s (%s)", key, reason)
        except Exception:
            logger.exception("Error deleting image file %s (%s)", key, reason)

    def _is_current_image(
        self, value: Optional[str], current: ProductRecord, base_url: str
    ) -> bool:
        if _is_blank(value) or not current.image_url:
            return False
        value = value.strip()
        return value in (
            current.image_url,
            to_public_url(current.image_url, base_url, self.prefix),
        )

    def list_with_image_status(self, base_url: str) -> list[ProductView]:
        return [self._view(record, base_url) for record in self.db.list_products()]

    def get_by_id_with_image_status(
        self, product_id: str, base_url: str
    ) -> ProductView:
        return self._view(self._get_or_raise(product_id), base_url)

    def create(
        self, fields: dict, image_input: ImageInput, base_url: str
    ) -> ProductView:
        missing = [name for name in REQUIRED_FIELDS if _is_blank(fields.get(name))]
        if missing:
            logger.error("Missing required fields: %s", missing)
            raise MissingRequiredFields(missing)

        image_url = self.ingestion.require(image_input)
        payload = {name: fields.get(name) for name in EDITABLE_FIELDS}
        payload["image_url"] = image_url
        try:
            record = self.db.create_product(payload)
        except Exception:
            self._discard_blob(image_url, "product save failed")
            raise
        logger.info("Product %s saved with image %s", record.id, record.image_url)
        return ProductView(
            record=record,
            image_exists=True,
            full_image_url=to_public_url(record.image_url, base_url, self.prefix),
        )

    def update(
        self,
        product_id: str,
        fields: dict,
        image_input: ImageInput,
        base_url: str,
    ) -> ProductView:
        current = self._get_or_raise(product_id)
        old_reference = current.image_url

        changes = {
            name: fields[name]
            for name in EDITABLE_FIELDS
            if not _is_blank(fields.get(name))
        }
        if image_input.upload_key is None and self._is_current_image(
            image_input.inline_data, current, base_url
        ):
            # A client echoing back the stored reference keeps the image.
            image_input = ImageInput()
        new_reference = self.ingestion.ingest(image_input)
        if new_reference:
            changes["image_url"] = new_reference

        try:
            record = self.db.update_product(product_id, changes)
        except Exception:
            if new_reference:
                self._discard_blob(new_reference, "product update failed")
            raise
        if record is None:
            if new_reference:
                self._discard_blob(new_reference, "product vanished during update")
            raise ProductNotFound(product_id)

        if new_reference and old_reference:
            old_key = to_store_key(old_reference, self.prefix)
            if old_key and old_key != to_store_key(new_reference, self.prefix):
                self._discard_blob(old_reference, "replaced")
        return self._view(record, base_url)

    def delete(self, product_id: str) -> None:
        record = self._get_or_raise(product_id)
        self._discard_blob(record.image_url, "product deleted")
        self.db.delete_product(product_id)
        logger.info("Product %s removed", product_id)

    def image_status_report(self, base_url: str) -> list[ImageStatusEntry]:
        return [
            ImageStatusEntry(
                id=record.id,
                title=record.title,
                image_url=record.image_url,
                exists=self.validator.annotate(record.image_url),
                full_url=to_public_url(record.image_url, base_url, self.prefix),
            )
            for record in self.db.list_products()
        ]

    def store_status(self) -> StoreStatus:
        """Read-only introspection of the blob store."""
        exists = self.store.available()
        files: list[BlobInfo] = []
        if exists:
            for key in self.store.list():
                try:
                    files.append(self.store.info(key))
                except FileNotFoundError:
                    # Deleted between list and stat.
                    continue
        return StoreStatus(
            location=self.store.location,
            exists=exists,
            file_count=len(files),
            total_size=sum(f.size for f in files),
            files=files,
        )

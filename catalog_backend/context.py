"""
Process-wide wiring of stores and services.

One ``AppContext`` is built per application and handed to whatever needs
it; nothing here is module-global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from catalog_backend.config import Settings
from catalog_backend.db import CatalogDbClient, InMemoryDbClient, PostgresDbClient
from catalog_backend.ingestion import IngestionPipeline
from catalog_backend.reconciliation import ReconciliationService
from catalog_backend.service import CatalogService
from catalog_backend.storage import BlobStore, InMemoryBlobStore, LocalBlobStore, S3BlobStore
from catalog_backend.validation import ImageValidator

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    db: CatalogDbClient
    blob_store: BlobStore
    validator: ImageValidator
    ingestion: IngestionPipeline
    catalog: CatalogService
    reconciliation: ReconciliationService

    def close(self) -> None:
        engine = getattr(self.db, "engine", None)
        if engine is not None:
            engine.dispose()


def build_db_client(settings: Settings) -> CatalogDbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.warning("No DATABASE_URL configured; using in-memory catalog")
        return InMemoryDbClient()
    return PostgresDbClient(settings.database_url)


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.use_in_memory_backends:
        return InMemoryBlobStore()
    if settings.blob_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET is required when BLOB_BACKEND=s3")
        return S3BlobStore(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            endpoint=settings.s3_endpoint,
            region=settings.s3_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
        )
    return LocalBlobStore(settings.uploads_dir)


def build_context(
    settings: Settings,
    *,
    db: Optional[CatalogDbClient] = None,
    blob_store: Optional[BlobStore] = None,
) -> AppContext:
    db = db if db is not None else build_db_client(settings)
    blob_store = blob_store if blob_store is not None else build_blob_store(settings)
    prefix = settings.uploads_url_prefix
    validator = ImageValidator(blob_store, prefix)
    ingestion = IngestionPipeline(blob_store, validator, prefix)
    return AppContext(
        settings=settings,
        db=db,
        blob_store=blob_store,
        validator=validator,
        ingestion=ingestion,
        catalog=CatalogService(db, blob_store, validator, ingestion, prefix),
        reconciliation=ReconciliationService(
            blob_store, db, settings.backups_dir, prefix
        ),
    )

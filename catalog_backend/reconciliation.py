"""
Reconciliation sweeps over the blob store.

* Orphan cleanup deletes blobs that no catalog record references, along
  with temp files left by writes that died before completing.
* Backup copies every blob into a dated snapshot partition, skipping files
  the partition already holds, so re-running on the same day is a no-op.

Neither sweep locks against concurrent ingestion. A blob written after the
reference query can be swept if its record is not yet visible; run cleanup
in quiet periods.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from catalog_backend.db import CatalogDbClient
from catalog_backend.errors import (
    BackupFailure,
    OrphanCleanupFailure,
    PersistenceFailure,
    SweepFailure,
)
from catalog_backend.references import DEFAULT_PREFIX, to_store_key
from catalog_backend.storage import BlobStore, LocalBlobStore

logger = logging.getLogger(__name__)

STALE_TEMP_SECONDS = 3600


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CleanupReport:
    scanned: int = 0
    deleted: int = 0
    failed: int = 0
    temp_removed: int = 0


@dataclass
class BackupReport:
    partition: Optional[str] = None
    copied: int = 0
    skipped: int = 0


class ReconciliationService:
    def __init__(
        self,
        store: BlobStore,
        db: CatalogDbClient,
        backups_dir: str | Path,
        prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.db = db
        self.backups_dir = Path(backups_dir)
        self.prefix = prefix
        self.clock = clock

    def live_keys(self) -> set[str]:
        keys = set()
        for reference in self.db.list_image_references():
            key = to_store_key(reference, self.prefix)
            if key is not None:
                keys.add(key)
        return keys

    def cleanup_orphans(self) -> CleanupReport:
        try:
            stored = self.store.list()
            # An unreadable catalog must never look like an empty one.
            live = self.live_keys()
        except Exception as exc:
            raise OrphanCleanupFailure(f"Could not compute orphan set: {exc}") from exc

        report = CleanupReport(scanned=len(stored))
        try:
            report.temp_removed = self.store.purge_stale_temp_files(STALE_TEMP_SECONDS)
        except OSError:
            logger.exception("Failed to remove stale temp files")
        if report.temp_removed:
            logger.info("Removed %d abandoned temp files", report.temp_removed)

        for key in stored:
            if key in live:
                continue
            try:
                self.store.delete(key)
            except Exception:
                logger.exception("Failed to delete orphaned image %s", key)
                report.failed += 1
                continue
            logger.info("Cleaned up orphaned image %s", key)
            report.deleted += 1

        if report.deleted:
            logger.info("Cleaned up %d orphaned images", report.deleted)
        return report

    def partition_for(self, day: date) -> Path:
        return self.backups_dir / day.isoformat()

    def backup(self, today: Optional[date] = None) -> BackupReport:
        day = today or self.clock().date()
        partition_path = self.partition_for(day)
        try:
            if not self.store.available():
                return BackupReport()
            try:
                partition = LocalBlobStore(partition_path)
            except PersistenceFailure as exc:
                raise BackupFailure(str(exc)) from exc

            report = BackupReport(partition=str(partition_path))
            for key in self.store.list():
                if partition.exists(key):
                    report.skipped += 1
                    continue
                try:
                    data = self.store.read(key)
                except FileNotFoundError:
                    # Removed since listing; nothing to snapshot.
                    continue
                partition.write(key, data)
                report.copied += 1
        except BackupFailure:
            raise
        except Exception as exc:
            raise BackupFailure(f"Backup to {partition_path} failed: {exc}") from exc

        if report.copied:
            logger.info("Backed up %d images to %s", report.copied, partition_path)
        return report

    def run_cleanup_safely(self) -> Optional[CleanupReport]:
        try:
            return self.cleanup_orphans()
        except SweepFailure:
            logger.exception("Orphan cleanup failed")
            return None

    def run_backup_safely(self) -> Optional[BackupReport]:
        try:
            return self.backup()
        except SweepFailure:
            logger.exception("Image backup failed")
            return None

    def run_startup_sweeps(self) -> None:
        self.run_cleanup_safely()
        self.run_backup_safely()
        logger.info("Image cleanup and backup completed")

"""
Run the image reconciliation sweeps (orphan cleanup and backup) outside the
API process, once or on a fixed interval.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from catalog_backend.config import get_settings
from catalog_backend.context import build_context
from catalog_backend.db import InMemoryDbClient

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Catalog image sweeps")
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Delete images no product references",
    )
    parser.add_argument(
        "--backup",
        action="store_true",
        help="Copy images into today's backup partition",
    )
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=0,
        help="Repeat every N seconds (0 runs once)",
    )
    args = parser.parse_args()
    run_cleanup = args.cleanup or not args.backup
    run_backup = args.backup or not args.cleanup

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    context = build_context(get_settings())
    reconciliation = context.reconciliation
    if run_cleanup and isinstance(context.db, InMemoryDbClient):
        # An empty in-memory catalog would mark every stored image as orphaned.
        logger.error("Refusing orphan cleanup without DATABASE_URL")
        run_cleanup = False
        if not run_backup:
            return 1

    try:
        while True:
            if run_cleanup:
                report = reconciliation.run_cleanup_safely()
                if report is not None:
                    logger.info(
                        "Cleanup scanned %d, deleted %d, failed %d, temp files removed %d",
                        report.scanned,
                        report.deleted,
                        report.failed,
                        report.temp_removed,
                    )
            if run_backup:
                backup = reconciliation.run_backup_safely()
                if backup is not None:
                    logger.info(
                        "Backup to %s copied %d, skipped %d",
                        backup.partition,
                        backup.copied,
                        backup.skipped,
                    )

            if not args.interval_seconds:
                return 0
            logger.info("Sleeping for %ds", args.interval_seconds)
            time.sleep(args.interval_seconds)
    except KeyboardInterrupt:
        return 0
    finally:
        context.close()


if __name__ == "__main__":
    raise SystemExit(main())

"""
Existence checks for image references.
"""

from __future__ import annotations

import logging
from typing import Optional

from catalog_backend.references import DEFAULT_PREFIX, is_absolute_url, to_store_key
from catalog_backend.storage import BlobStore

logger = logging.getLogger(__name__)


class ImageValidator:
    def __init__(self, store: BlobStore, prefix: str = DEFAULT_PREFIX):
        self.store = store
        self.prefix = prefix

    def image_exists(self, reference: Optional[str]) -> bool:
        """
        Externally hosted (absolute) references are assumed to exist;
        store-relative ones are checked against the blob store.
        """
        if not reference:
            return False
        if is_absolute_url(reference):
            return True
        key = to_store_key(reference, self.prefix)
        if key is None:
            return False
        return self.store.exists(key)

    def annotate(self, reference: Optional[str]) -> bool:
        """Like ``image_exists`` but never raises; used on read paths."""
        try:
            return self.image_exists(reference)
        except Exception:
            logger.exception("Could not check image %s", reference)
            return False

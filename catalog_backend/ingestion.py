"""
Ingestion pipeline: turns an uploaded file or an inline base64 data URI
into a blob in the store and the reference a catalog record should hold.

A reference is only handed back once its blob has been confirmed present.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from catalog_backend.errors import InvalidImageFormat, MissingImage, PersistenceFailure
from catalog_backend.references import DEFAULT_PREFIX, to_reference
from catalog_backend.storage import BlobStore
from catalog_backend.validation import ImageValidator

logger = logging.getLogger(__name__)

DATA_URI_PATTERN = re.compile(r"^data:image/([a-zA-Z]+);base64,(.+)$")


@dataclass
class ImageInput:
    """
    What a request supplied for its image. ``upload_key`` names a blob the
    HTTP layer already placed in the store; ``inline_data`` is a data URI.
    """

    upload_key: Optional[str] = None
    inline_data: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.upload_key and not self.inline_data


def new_blob_key(extension: str, label: str = "base64") -> str:
    """Allocate a fresh key from the wall clock (ms) and a random suffix."""
    timestamp = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:8]
    extension = extension.lstrip(".")
    name = f"{label}-{timestamp}-{suffix}"
    return f"{name}.{extension}" if extension else name


def parse_data_uri(value: str) -> tuple[str, bytes]:
    """Return ``(extension, payload)`` for a ``data:image/<ext>;base64,`` URI."""
    match = DATA_URI_PATTERN.match(value or "")
    if not match:
        raise InvalidImageFormat("Invalid base64 image format")
    extension, encoded = match.groups()
    try:
        payload = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImageFormat("Image payload is not valid base64") from exc
    return extension, payload


class IngestionPipeline:
    def __init__(
        self,
        store: BlobStore,
        validator: ImageValidator,
        prefix: str = DEFAULT_PREFIX,
    ):
        self.store = store
        self.validator = validator
        self.prefix = prefix

    def ingest(self, image_input: ImageInput) -> Optional[str]:
        """
        Persist whatever the request supplied and return its reference, or
        None when no image was supplied at all.
        """
        if image_input.upload_key:
            return self._accept_upload(image_input.upload_key)
        if image_input.inline_data:
            return self._store_inline(image_input.inline_data)
        return None

    def require(self, image_input: ImageInput) -> str:
        reference = self.ingest(image_input)
        if not reference:
            logger.error("No image produced from upload or inline data")
            raise MissingImage()
        return reference

    def _accept_upload(self, key: str) -> str:
        reference = to_reference(key, self.prefix)
        if not self.validator.image_exists(reference):
            logger.error("Uploaded file was not found in the store: %s", key)
            raise PersistenceFailure("Failed to save uploaded image", key=key)
        logger.info(
            "Upload accepted as %s (%d bytes)", reference, self.store.size_of(key)
        )
        return reference

    def _store_inline(self, data_uri: str) -> str:
        extension, payload = parse_data_uri(data_uri)
        key = new_blob_key(extension)
        self.store.write(key, payload)
        reference = to_reference(key, self.prefix)
        if not self.validator.image_exists(reference):
            logger.error("Inline image was not found after writing: %s", key)
            raise PersistenceFailure("Failed to save base64 image", key=key)
        logger.info("Inline image saved as %s (%d bytes)", reference, len(payload))
        return reference

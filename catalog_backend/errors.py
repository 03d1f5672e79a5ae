"""
Error taxonomy for the catalog backend.

Request-level errors derive from ``CatalogError`` and carry the HTTP status
the API handler should answer with. Sweep-level errors derive from
``SweepFailure``; they are logged by the reconciliation layer and never
reach a caller.
"""

from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    """Base exception for errors returned to API callers."""

    def __init__(
        self,
        message: str,
        code: str = "CATALOG_ERROR",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result: dict[str, Any] = {
            "detail": self.message,
            "code": self.code,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Ingestion
# =============================================================================


class InvalidImageFormat(CatalogError):
    """Raised when an inline image payload is not a base64 image data URI."""

    def __init__(self, reason: str = "Invalid image format"):
        super().__init__(
            message=reason,
            code="INVALID_IMAGE_FORMAT",
            status_code=400,
        )


class MissingImage(CatalogError):
    """Raised when a create request produced no image."""

    def __init__(self):
        super().__init__(
            message="Image is required",
            code="MISSING_IMAGE",
            status_code=400,
        )


class PersistenceFailure(CatalogError):
    """Raised when a blob cannot be confirmed in the store after writing."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(
            message=message,
            code="PERSISTENCE_FAILURE",
            status_code=500,
            details={"key": key} if key else None,
        )


class UnsupportedMediaType(CatalogError):
    """Raised by the upload filter for non-image content."""

    def __init__(self, content_type: str | None):
        super().__init__(
            message=f"Only image uploads are accepted, got {content_type or 'unknown'}",
            code="UNSUPPORTED_MEDIA_TYPE",
            status_code=415,
            details={"content_type": content_type},
        )


class PayloadTooLarge(CatalogError):
    """Raised by the upload filter when a file exceeds the size limit."""

    def __init__(self, limit: int):
        super().__init__(
            message=f"Image file is too large. Please use an image smaller than {limit // (1024 * 1024)}MB.",
            code="PAYLOAD_TOO_LARGE",
            status_code=413,
            details={"limit_bytes": limit},
        )


# =============================================================================
# Catalog
# =============================================================================


class ProductNotFound(CatalogError):
    def __init__(self, product_id: str):
        super().__init__(
            message="Product not found",
            code="PRODUCT_NOT_FOUND",
            status_code=404,
            details={"product_id": product_id},
        )


class MissingRequiredFields(CatalogError):
    def __init__(self, missing: list[str]):
        super().__init__(
            message="Please provide all required fields",
            code="MISSING_REQUIRED_FIELDS",
            status_code=400,
            details={"missing": missing},
        )


# =============================================================================
# Storage / sweeps
# =============================================================================


class InvalidBlobKey(ValueError):
    """Raised for keys that are empty or would escape the store root."""


class SweepFailure(Exception):
    """Base class for reconciliation sweep errors."""


class OrphanCleanupFailure(SweepFailure):
    pass


class BackupFailure(SweepFailure):
    pass

"""
Translation between stored image references, blob keys and public URLs.

A reference is either store-relative (``/uploads/<key>``) or an absolute
URL that is hosted elsewhere and passed through untouched.
"""

from __future__ import annotations

from typing import Optional

DEFAULT_PREFIX = "/uploads/"


def is_absolute_url(reference: Optional[str]) -> bool:
    if not reference:
        return False
    lowered = reference.lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def _marker(prefix: str) -> str:
    return prefix.strip("/") + "/"


def to_store_key(reference: Optional[str], prefix: str = DEFAULT_PREFIX) -> Optional[str]:
    """
    Return the blob key a reference points at, or None when the reference
    is empty, absolute, or not under the store prefix.
    """
    if not reference or is_absolute_url(reference):
        return None
    marker = _marker(prefix)
    relative = reference.lstrip("/")
    if not relative.startswith(marker):
        return None
    key = relative[len(marker):]
    if not key or "/" in key or "\\" in key:
        return None
    return key


def to_reference(key: str, prefix: str = DEFAULT_PREFIX) -> str:
    return f"/{_marker(prefix)}{key}"


def to_public_url(
    reference: Optional[str], base_url: str, prefix: str = DEFAULT_PREFIX
) -> Optional[str]:
    """
    Absolute references are returned unchanged; store-relative ones are
    joined onto ``base_url`` (scheme and host). Anything else is echoed.
    """
    if not reference:
        return None
    if is_absolute_url(reference):
        return reference
    if to_store_key(reference, prefix) is not None:
        path = reference if reference.startswith("/") else f"/{reference}"
        return f"{base_url.rstrip('/')}{path}"
    return reference

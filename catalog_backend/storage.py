"""
Blob storage for product images: a local directory, an S3-compatible bucket,
and an in-memory implementation for tests.

Keys are flat file names. Every store exposes the same synchronous contract;
a completed ``write`` is visible to ``exists`` from any other component.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from catalog_backend.errors import InvalidBlobKey, PersistenceFailure

logger = logging.getLogger(__name__)

_TEMP_PREFIX = ".tmp-"
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000"
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass
class BlobInfo:
    name: str
    size: int
    modified: Optional[float] = None


class BlobStore(Protocol):
    """Defines the operations the catalog needs from image storage."""

    location: str

    def exists(self, key: str) -> bool:
        ...

    def write(self, key: str, data: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def list(self) -> list[str]:
        ...

    def size_of(self, key: str) -> int:
        ...

    def read(self, key: str) -> bytes:
        ...

    def info(self, key: str) -> BlobInfo:
        ...

    def available(self) -> bool:
        ...

    def purge_stale_temp_files(self, max_age_seconds: float) -> int:
        ...


def validate_key(key: str) -> str:
    """Reject keys that are empty or name anything but a single flat file."""
    if not key or key in (".", ".."):
        raise InvalidBlobKey(f"Invalid blob key: {key!r}")
    if "/" in key or "\\" in key or "\x00" in key:
        raise InvalidBlobKey(f"Blob keys must be flat file names: {key!r}")
    return key


class LocalBlobStore:
    """
    Directory-backed store. Writes go through a temp file and ``os.replace``
    so readers only ever observe complete files.
    """

    def __init__(self, root: str | Path):
        self._root = Path(root)
        self._ensure_root()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def location(self) -> str:
        return str(self._root.resolve())

    def _ensure_root(self) -> None:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceFailure(
                f"Failed to create storage directory {self._root}: {exc}"
            ) from exc

    def _path(self, key: str) -> Path:
        validate_key(key)
        root = self._root.resolve()
        candidate = (self._root / key).resolve()
        try:
            candidate.relative_to(root)
        except ValueError:
            raise InvalidBlobKey(f"Blob key escapes store root: {key!r}") from None
        return candidate

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        # The directory can vanish under us (e.g. a wiped deployment volume).
        self._ensure_root()
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=_TEMP_PREFIX)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def list(self) -> list[str]:
        if not self._root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self._root.iterdir()
            if entry.is_file() and not entry.name.startswith(_TEMP_PREFIX)
        )

    def size_of(self, key: str) -> int:
        return self._path(key).stat().st_size

    def read(self, key: str) -> bytes:
        return self._path(key).read_bytes()

    def info(self, key: str) -> BlobInfo:
        stat = self._path(key).stat()
        return BlobInfo(name=key, size=stat.st_size, modified=stat.st_mtime)

    def available(self) -> bool:
        return self._root.is_dir()

    def purge_stale_temp_files(self, max_age_seconds: float) -> int:
        """Remove temp files abandoned by writes that never reached os.replace."""
        if not self._root.is_dir():
            return 0
        cutoff = time.time() - max_age_seconds
        removed = 0
        for entry in self._root.glob(_TEMP_PREFIX + "*"):
            try:
                if entry.is_file() and entry.stat().st_mtime < cutoff:
                    entry.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        return removed


@dataclass
class InMemoryBlobStore:
    """Test double for blob storage."""

    location: str = "memory://uploads"
    blobs: dict = field(default_factory=dict)
    modified: dict = field(default_factory=dict)

    def exists(self, key: str) -> bool:
        return validate_key(key) in self.blobs

    def write(self, key: str, data: bytes) -> None:
        self.blobs[validate_key(key)] = bytes(data)
        self.modified[key] = time.time()

    def delete(self, key: str) -> None:
        self.blobs.pop(validate_key(key), None)
        self.modified.pop(key, None)

    def list(self) -> list[str]:
        return sorted(self.blobs)

    def size_of(self, key: str) -> int:
        return len(self.read(key))

    def read(self, key: str) -> bytes:
        stored = self.blobs.get(validate_key(key))
        if stored is None:
            raise FileNotFoundError(key)
        return stored

    def info(self, key: str) -> BlobInfo:
        return BlobInfo(
            name=key, size=self.size_of(key), modified=self.modified.get(key)
        )

    def available(self) -> bool:
        return True

    def purge_stale_temp_files(self, max_age_seconds: float) -> int:
        return 0


@dataclass
class S3BlobStore:
    """
    S3-compatible bucket store. Blobs live under ``prefix`` in ``bucket``;
    anything deeper than one level below the prefix is not a blob.
    """

    bucket: str
    prefix: str = "uploads/"
    endpoint: Optional[str] = None
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    client: Any = None

    def __post_init__(self):
        if self.prefix and not self.prefix.endswith("/"):
            self.prefix += "/"
        if self.client is None:
            self.client = boto3.client(
                "s3",
                endpoint_url=self.endpoint or None,
                region_name=self.region or None,
                aws_access_key_id=self.access_key_id or None,
                aws_secret_access_key=self.secret_access_key or None,
                config=Config(signature_version="s3v4"),
            )

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.prefix}"

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}{validate_key(key)}"

    def _head(self, key: str) -> Optional[dict]:
        try:
            return self.client.head_object(
                Bucket=self.bucket, Key=self._object_key(key)
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return None
            raise

    def exists(self, key: str) -> bool:
        return self._head(key) is not None

    def write(self, key: str, data: bytes) -> None:
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        self.client.put_object(
            Bucket=self.bucket,
            Key=self._object_key(key),
            Body=data,
            ContentType=content_type,
            CacheControl=IMMUTABLE_CACHE_CONTROL,
        )

    def delete(self, key: str) -> None:
        # DeleteObject succeeds for absent keys.
        self.client.delete_object(Bucket=self.bucket, Key=self._object_key(key))

    def list(self) -> list[str]:
        keys: list[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
            for obj in page.get("Contents", []):
                name = obj["Key"][len(self.prefix):]
                if name and "/" not in name:
                    keys.append(name)
        return sorted(keys)

    def size_of(self, key: str) -> int:
        return self.info(key).size

    def read(self, key: str) -> bytes:
        try:
            response = self.client.get_object(
                Bucket=self.bucket, Key=self._object_key(key)
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise FileNotFoundError(key) from exc
            raise
        return response["Body"].read()

    def info(self, key: str) -> BlobInfo:
        head = self._head(key)
        if head is None:
            raise FileNotFoundError(key)
        modified = head.get("LastModified")
        return BlobInfo(
            name=key,
            size=int(head.get("ContentLength", 0)),
            modified=modified.timestamp() if modified is not None else None,
        )

    def available(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError:
            logger.warning("Bucket %s is not reachable", self.bucket)
            return False
        return True

    def purge_stale_temp_files(self, max_age_seconds: float) -> int:
        # put_object is atomic; there are no partial writes to collect.
        return 0

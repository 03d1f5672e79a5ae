"""
Configuration and settings for the catalog backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Blob store
    blob_backend: Literal["local", "s3"] = Field(default="local")
    uploads_dir: str = Field(default="uploads")
    uploads_url_prefix: str = Field(default="/uploads/")
    backups_dir: str = Field(default="backups/images")

    # S3-compatible bucket (used when blob_backend == "s3")
    s3_bucket: Optional[str] = Field(default=None)
    s3_prefix: str = Field(default="uploads/")
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Public URLs are derived from the request unless this is set.
    public_base_url: Optional[str] = Field(default=None)

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173"
    )

    # Upload filter applied before the ingestion pipeline sees a file.
    max_upload_bytes: int = Field(default=50 * 1024 * 1024)

    # Reconciliation sweeps
    run_sweeps: bool = Field(default=True)
    sweep_delay_seconds: float = Field(default=5.0, ge=0)
    sweep_interval_seconds: Optional[float] = Field(default=None, gt=0)

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()

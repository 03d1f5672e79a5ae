"""
Pydantic schemas for the catalog API.

Wire names follow the existing frontend contract (camelCase image fields).
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from catalog_backend.service import ImageStatusEntry, ProductView, StoreStatus


class ProductCreateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    rating: Optional[float] = None
    price: Optional[float] = None
    discount: Optional[float] = None
    imageUrl: Optional[str] = Field(
        default=None, description="Inline image as a data:image/<ext>;base64 URI"
    )

    def catalog_fields(self) -> dict:
        return self.model_dump(exclude={"imageUrl"})


class ProductUpdateRequest(ProductCreateRequest):
    pass


class ProductResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    rating: float
    price: float
    discount: float
    imageUrl: str
    imageExists: bool
    fullImageUrl: Optional[str] = None
    createdAt: float
    updatedAt: float

    @classmethod
    def from_view(cls, view: ProductView) -> "ProductResponse":
        record = view.record
        return cls(
            id=record.id,
            title=record.title,
            description=record.description,
            rating=record.rating,
            price=record.price,
            discount=record.discount,
            imageUrl=record.image_url,
            imageExists=view.image_exists,
            fullImageUrl=view.full_image_url,
            createdAt=record.created_at,
            updatedAt=record.updated_at,
        )


class DeleteResponse(BaseModel):
    message: str


class ImageStatusResponse(BaseModel):
    id: str
    title: str
    imageUrl: str
    exists: bool
    fullUrl: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: ImageStatusEntry) -> "ImageStatusResponse":
        return cls(
            id=entry.id,
            title=entry.title,
            imageUrl=entry.image_url,
            exists=entry.exists,
            fullUrl=entry.full_url,
        )


class StoredFile(BaseModel):
    name: str
    size: int
    modified: Optional[float] = None


class StoreStatusResponse(BaseModel):
    uploadsDir: str
    exists: bool
    fileCount: int
    totalSize: int
    files: list[StoredFile]

    @classmethod
    def from_status(cls, status: StoreStatus) -> "StoreStatusResponse":
        return cls(
            uploadsDir=status.location,
            exists=status.exists,
            fileCount=status.file_count,
            totalSize=status.total_size,
            files=[
                StoredFile(name=f.name, size=f.size, modified=f.modified)
                for f in status.files
            ],
        )


class UploadsHealth(BaseModel):
    exists: bool
    fileCount: int
    totalSize: int
    path: str


class HealthResponse(BaseModel):
    status: Literal["OK"]
    timestamp: str
    uploads: UploadsHealth
    database: Literal["connected", "disconnected"]

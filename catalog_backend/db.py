"""
Catalog record store: SQLAlchemy-backed client and an in-memory test
implementation.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Protocol

from sqlalchemy import Column, Float, String, Text, create_engine, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

PRODUCT_FIELDS = ("title", "description", "rating", "price", "discount", "image_url")


@dataclass
class ProductRecord:
    id: str
    title: str
    description: Optional[str]
    rating: float
    price: float
    discount: float
    image_url: str
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "rating": self.rating,
            "price": self.price,
            "discount": self.discount,
            "image_url": self.image_url,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class CatalogDbClient(Protocol):
    """Interface for catalog persistence."""

    def create_product(self, fields: dict) -> ProductRecord:
        ...

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        ...

    def list_products(self) -> list[ProductRecord]:
        ...

    def update_product(
        self, product_id: str, changes: dict
    ) -> Optional[ProductRecord]:
        ...

    def delete_product(self, product_id: str) -> bool:
        ...

    def list_image_references(self) -> list[str]:
        ...

    def ping(self) -> bool:
        ...


def _clean(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if k in PRODUCT_FIELDS}


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.products: Dict[str, ProductRecord] = {}

    def create_product(self, fields: dict) -> ProductRecord:
        record = ProductRecord(id=uuid.uuid4().hex, **_clean(fields))
        self.products[record.id] = record
        return replace(record)

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        record = self.products.get(product_id)
        return replace(record) if record else None

    def list_products(self) -> list[ProductRecord]:
        return [
            replace(record)
            for record in sorted(
                self.products.values(), key=lambda r: r.created_at, reverse=True
            )
        ]

    def update_product(
        self, product_id: str, changes: dict
    ) -> Optional[ProductRecord]:
        record = self.products.get(product_id)
        if not record:
            return None
        updated = replace(record, **_clean(changes), updated_at=time.time())
        self.products[product_id] = updated
        return replace(updated)

    def delete_product(self, product_id: str) -> bool:
        return self.products.pop(product_id, None) is not None

    def list_image_references(self) -> list[str]:
        return [r.image_url for r in self.products.values() if r.image_url]

    def ping(self) -> bool:
        return True

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.products.clear()


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        engine_kwargs = {"future": True, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_record(self, row: "ProductRow") -> ProductRecord:
        return ProductRecord(
            id=row.id,
            title=row.title,
            description=row.description,
            rating=row.rating,
            price=row.price,
            discount=row.discount,
            image_url=row.image_url,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def create_product(self, fields: dict) -> ProductRecord:
        now = time.time()
        with self.Session() as session:
            row = ProductRow(
                id=uuid.uuid4().hex,
                created_at=now,
                updated_at=now,
                **_clean(fields),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_record(row)

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        with self.Session() as session:
            row = session.get(ProductRow, product_id)
            return self._to_record(row) if row else None

    def list_products(self) -> list[ProductRecord]:
        with self.Session() as session:
            stmt = select(ProductRow).order_by(ProductRow.created_at.desc())
            return [self._to_record(row) for row in session.execute(stmt).scalars()]

    def update_product(
        self, product_id: str, changes: dict
    ) -> Optional[ProductRecord]:
        with self.Session() as session:
            row = session.get(ProductRow, product_id)
            if not row:
                return None
            for key, value in _clean(changes).items():
                setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_record(row)

    def delete_product(self, product_id: str) -> bool:
        with self.Session() as session:
            row = session.get(ProductRow, product_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_image_references(self) -> list[str]:
        with self.Session() as session:
            stmt = select(ProductRow.image_url).where(ProductRow.image_url != "")
            return [url for url in session.execute(stmt).scalars() if url]

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True


Base = declarative_base()


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    rating = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    discount = Column(Float, nullable=False)
    image_url = Column(String, nullable=False, index=True)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)

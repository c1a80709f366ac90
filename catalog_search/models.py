"""Typed records shared by the store, cache, search and ingestion layers."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

REQUIRED_TEXT_FIELDS = ("title", "brand", "category", "product_type", "sku")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SortMode(str, Enum):
    RELEVANCE = "relevance"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    RATING = "rating"
    NEWEST = "newest"


class Product(BaseModel):
    """Catalog record as persisted in the product store."""

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str
    brand: str
    category: str
    product_type: str
    description: str = ""
    price: float = Field(0.0, ge=0)
    currency: str = "USD"
    stock: int = Field(0, ge=0)
    sku: str
    rating: float = Field(0.0, ge=0, le=5)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator(*REQUIRED_TEXT_FIELDS, mode="before")
    @classmethod
    def _require_text(cls, value: object) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("description", "currency", mode="before")
    @classmethod
    def _strip_optional(cls, value: object) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are UTC so every created_at stays comparable.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


@dataclass(frozen=True)
class RelevanceScore:
    product: Product
    score: int
    matched_field: str


class SearchResult(BaseModel):
    products: list[Product]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def paginate(cls, products: list[Product], total: int, page: int, limit: int) -> "SearchResult":
        total_pages = math.ceil(total / limit) if total else 0
        return cls(products=products, total=total, page=page, limit=limit, total_pages=total_pages)


class BulkInsertResult(BaseModel):
    inserted_count: int


class IngestionReport(BaseModel):
    success: bool
    inserted: int = 0
    duplicates: int = 0
    errors: int = 0
    duration: float = 0.0


class ClearResult(BaseModel):
    success: bool
    deleted_count: int


class IndexStats(BaseModel):
    index: str
    total_products: int
    size_in_bytes: int | None = None


class SuggestionsPayload(BaseModel):
    suggestions: list[str]
    count: int


class ProductsPayload(BaseModel):
    products: list[Product]
    count: int


class SearchResponse(BaseModel):
    success: bool = True
    data: SearchResult
    took_ms: float


class SuggestResponse(BaseModel):
    success: bool = True
    data: SuggestionsPayload
    took_ms: float


class ProductsResponse(BaseModel):
    success: bool = True
    data: ProductsPayload


class BrowseResponse(BaseModel):
    success: bool = True
    data: SearchResult

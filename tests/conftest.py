"""Shared fixtures: in-memory store and cache wired into the services."""
from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from catalog_search.cache import InMemoryCache, SearchCache
from catalog_search.config import Settings
from catalog_search.importer import IngestionCoordinator
from catalog_search.models import Product
from catalog_search.search_service import SearchService
from catalog_search.store import InMemoryProductStore

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)
_ids = itertools.count(1)


def make_product(**overrides) -> Product:
    """Build a valid product; unspecified fields get unique filler values."""
    pid = overrides.pop("id", next(_ids) + 10_000)
    fields = {
        "id": pid,
        "title": f"Item {pid}",
        "brand": "Acme",
        "category": "Misc",
        "product_type": "Thing",
        "sku": f"SKU-{pid}",
        "price": 10.0,
        "stock": 5,
        "rating": 3.0,
        "created_at": BASE_TIME + timedelta(days=pid % 365),
    }
    fields.update(overrides)
    return Product(**fields)


class CountingStore(InMemoryProductStore):
    """In-memory store that records how often the search path hits it."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.calls = 0

    async def find_containing(self, field, text):
        self.calls += 1
        return await super().find_containing(field, text)

    async def distinct_prefix(self, field, prefix, limit):
        self.calls += 1
        return await super().distinct_prefix(field, prefix, limit)


@pytest.fixture
def test_settings() -> Settings:
    return replace(Settings(), batch_size=3, cache_ttl_seconds=3600, cache_timeout_seconds=1.0)


@pytest.fixture
def store() -> CountingStore:
    return CountingStore()


@pytest.fixture
def cache_backend() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def cache(cache_backend, test_settings) -> SearchCache:
    return SearchCache(cache_backend, test_settings)


@pytest.fixture
def service(store, cache) -> SearchService:
    return SearchService(store, cache)


@pytest.fixture
def ingestion(store, cache, test_settings) -> IngestionCoordinator:
    return IngestionCoordinator(store, cache, test_settings)

"""Product store adapters.

The search engine and the ingestion coordinator only depend on the
:class:`ProductStore` protocol. Elasticsearch is the production backend; the
in-memory store follows the same matching rules and backs tests and local
experiments without a cluster.

Blocking client calls are wrapped via ``asyncio.to_thread`` and bounded by the
configured store timeout. Transport failures surface as
:class:`StoreUnavailableError`.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from elasticsearch import ApiError, Elasticsearch, TransportError, helpers
from pydantic import ValidationError

from .errors import BatchWriteError, StoreUnavailableError
from .models import IndexStats, Product

logger = logging.getLogger(__name__)

ASC = "asc"
DESC = "desc"
SortSpec = Sequence[Tuple[str, str]]

# Exact-value (keyword) field backing each searchable product attribute.
KEYWORD_FIELDS = {
    "title": "title.raw",
    "brand": "brand.raw",
    "category": "category.raw",
    "product_type": "product_type.raw",
    "sku": "sku",
}
DUPLICATE_STATUS = 409

T = TypeVar("T")


@dataclass
class BatchOutcome:
    inserted: int = 0
    duplicates: int = 0
    errors: int = 0


class ProductStore(Protocol):
    async def find_containing(self, field: str, text: str) -> List[Product]: ...

    async def find_equal(
        self, field: str, value: str, *, sort: SortSpec, skip: int = 0, limit: int = 20
    ) -> List[Product]: ...

    async def find_min(self, field: str, minimum: float, *, sort: SortSpec, limit: int) -> List[Product]: ...

    async def distinct_prefix(self, field: str, prefix: str, limit: int) -> List[str]: ...

    async def count(self, field: Optional[str] = None, value: Optional[str] = None) -> int: ...

    async def insert_many(self, products: Sequence[Product]) -> BatchOutcome: ...

    async def delete_all(self) -> int: ...

    async def stats(self) -> IndexStats: ...


def escape_wildcard(text: str) -> str:
    """Escape wildcard metacharacters so user text is matched literally."""
    return "".join("\\" + ch if ch in "\\*?" else ch for ch in text)


def _keyword_field(field: str) -> str:
    try:
        return KEYWORD_FIELDS[field]
    except KeyError:
        raise ValueError(f"Unsupported product field: {field!r}") from None


def _to_products(hits: Iterable[dict]) -> List[Product]:
    products: List[Product] = []
    for hit in hits:
        try:
            products.append(Product.model_validate(hit.get("_source", {})))
        except ValidationError as exc:
            logger.warning("Skipping malformed document _id=%s: %s", hit.get("_id"), exc)
    return products


class ElasticsearchProductStore:
    def __init__(self, client: Elasticsearch, index: str, timeout: float = 10.0) -> None:
        self.client = client
        self.index = index
        self.timeout = timeout

    async def _call(self, action: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError(f"{action} timed out after {self.timeout}s") from exc
        except (ApiError, TransportError) as exc:
            raise StoreUnavailableError(f"{action} failed: {exc}") from exc

    async def find_containing(self, field: str, text: str) -> List[Product]:
        query = {
            "wildcard": {
                _keyword_field(field): {
                    "value": f"*{escape_wildcard(text)}*",
                    "case_insensitive": True,
                }
            }
        }

        def run() -> List[dict]:
            return list(helpers.scan(self.client, index=self.index, query={"query": query}))

        hits = await self._call("find_containing", run)
        logger.debug("find_containing field=%s text=%r hits=%s", field, text, len(hits))
        return _to_products(hits)

    def _sort_clause(self, sort: SortSpec) -> List[dict]:
        return [{field: {"order": direction}} for field, direction in sort]

    async def find_equal(
        self, field: str, value: str, *, sort: SortSpec, skip: int = 0, limit: int = 20
    ) -> List[Product]:
        response = await self._call(
            "find_equal",
            self.client.search,
            index=self.index,
            query={"term": {_keyword_field(field): value}},
            sort=self._sort_clause(sort),
            from_=skip,
            size=limit,
        )
        return _to_products(response.get("hits", {}).get("hits", []))

    async def find_min(self, field: str, minimum: float, *, sort: SortSpec, limit: int) -> List[Product]:
        response = await self._call(
            "find_min",
            self.client.search,
            index=self.index,
            query={"range": {field: {"gte": minimum}}},
            sort=self._sort_clause(sort),
            size=limit,
        )
        return _to_products(response.get("hits", {}).get("hits", []))

    async def distinct_prefix(self, field: str, prefix: str, limit: int) -> List[str]:
        keyword = _keyword_field(field)
        response = await self._call(
            "distinct_prefix",
            self.client.search,
            index=self.index,
            query={"prefix": {keyword: {"value": prefix, "case_insensitive": True}}},
            aggs={"values": {"terms": {"field": keyword, "size": limit, "order": {"_key": "asc"}}}},
            size=0,
        )
        buckets = response.get("aggregations", {}).get("values", {}).get("buckets", [])
        return [str(bucket["key"]) for bucket in buckets]

    async def count(self, field: Optional[str] = None, value: Optional[str] = None) -> int:
        query: Dict[str, Any] = {"match_all": {}}
        if field is not None:
            query = {"term": {_keyword_field(field): value}}
        response = await self._call("count", self.client.count, index=self.index, query=query)
        return int(response.get("count", 0))

    async def _existing_ids(self, ids: List[int]) -> set[int]:
        response = await self._call(
            "existing_ids",
            self.client.search,
            index=self.index,
            query={"terms": {"id": ids}},
            source=["id"],
            size=len(ids),
        )
        return {hit["_source"]["id"] for hit in response.get("hits", {}).get("hits", [])}

    async def insert_many(self, products: Sequence[Product]) -> BatchOutcome:
        """Unordered insert keyed by sku; existing ids count as duplicates."""
        outcome = BatchOutcome()
        if not products:
            return outcome

        existing = await self._existing_ids([product.id for product in products])
        seen = set(existing)
        actions = []
        for product in products:
            if product.id in seen:
                outcome.duplicates += 1
                continue
            seen.add(product.id)
            actions.append(
                {
                    "_op_type": "create",
                    "_index": self.index,
                    "_id": product.sku,
                    "_source": product.model_dump(mode="json"),
                }
            )
        if not actions:
            return outcome

        def run() -> Tuple[int, List[dict]]:
            return helpers.bulk(self.client, actions, raise_on_error=False, refresh="wait_for")

        created, failures = await self._call("insert_many", run)
        failed_other = [item for item in failures if item.get("create", {}).get("status") != DUPLICATE_STATUS]
        if failed_other:
            reason = failed_other[0].get("create", {}).get("error")
            raise BatchWriteError(f"{len(failed_other)} documents rejected: {reason}", batch_size=len(products))
        outcome.inserted = created
        outcome.duplicates += len(failures)
        return outcome

    async def delete_all(self) -> int:
        response = await self._call(
            "delete_all",
            self.client.delete_by_query,
            index=self.index,
            query={"match_all": {}},
            refresh=True,
            conflicts="proceed",
        )
        return int(response.get("deleted", 0))

    async def stats(self) -> IndexStats:
        total = await self.count()
        response = await self._call("stats", self.client.indices.stats, index=self.index)
        size = response.get("_all", {}).get("primaries", {}).get("store", {}).get("size_in_bytes")
        return IndexStats(index=self.index, total_products=total, size_in_bytes=size)


def _apply_sort(products: List[Product], sort: SortSpec) -> List[Product]:
    ordered = list(products)
    # Stable sorts applied from the least significant key up.
    for field, direction in reversed(list(sort)):
        ordered.sort(key=lambda product: getattr(product, field), reverse=direction == DESC)
    return ordered


class InMemoryProductStore:
    """Dict-backed store with the same matching and uniqueness rules."""

    def __init__(self, products: Iterable[Product] = (), index: str = "memory") -> None:
        self.index = index
        self._by_id: Dict[int, Product] = {}
        self._skus: set[str] = set()
        self._lock = threading.Lock()
        for product in products:
            self._add(product)

    def _add(self, product: Product) -> bool:
        if product.id in self._by_id or product.sku in self._skus:
            return False
        self._by_id[product.id] = product
        self._skus.add(product.sku)
        return True

    def _snapshot(self) -> List[Product]:
        with self._lock:
            return list(self._by_id.values())

    async def find_containing(self, field: str, text: str) -> List[Product]:
        _keyword_field(field)
        needle = text.casefold()
        return [product for product in self._snapshot() if needle in getattr(product, field).casefold()]

    async def find_equal(
        self, field: str, value: str, *, sort: SortSpec, skip: int = 0, limit: int = 20
    ) -> List[Product]:
        _keyword_field(field)
        matches = [product for product in self._snapshot() if getattr(product, field) == value]
        return _apply_sort(matches, sort)[skip : skip + limit]

    async def find_min(self, field: str, minimum: float, *, sort: SortSpec, limit: int) -> List[Product]:
        matches = [product for product in self._snapshot() if getattr(product, field) >= minimum]
        return _apply_sort(matches, sort)[:limit]

    async def distinct_prefix(self, field: str, prefix: str, limit: int) -> List[str]:
        _keyword_field(field)
        needle = prefix.casefold()
        values = {getattr(product, field) for product in self._snapshot()}
        return sorted(value for value in values if value.casefold().startswith(needle))[:limit]

    async def count(self, field: Optional[str] = None, value: Optional[str] = None) -> int:
        products = self._snapshot()
        if field is None:
            return len(products)
        _keyword_field(field)
        return sum(1 for product in products if getattr(product, field) == value)

    async def insert_many(self, products: Sequence[Product]) -> BatchOutcome:
        outcome = BatchOutcome()
        with self._lock:
            for product in products:
                if self._add(product):
                    outcome.inserted += 1
                else:
                    outcome.duplicates += 1
        return outcome

    async def delete_all(self) -> int:
        with self._lock:
            deleted = len(self._by_id)
            self._by_id.clear()
            self._skus.clear()
        return deleted

    async def stats(self) -> IndexStats:
        return IndexStats(index=self.index, total_products=await self.count())

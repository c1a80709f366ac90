"""Relevance-ranked product search on top of the product store and cache."""
from __future__ import annotations

import logging
from time import perf_counter
from typing import Dict, List

from .cache import SearchCache, normalize_text, search_key, suggestion_key
from .models import Product, RelevanceScore, SearchResult, SortMode
from .store import ASC, DESC, ProductStore

logger = logging.getLogger(__name__)

# Highest weight first; the order doubles as the matched_field tie-break.
FIELD_WEIGHTS = (
    ("title", 5),
    ("category", 4),
    ("brand", 3),
    ("sku", 2),
    ("product_type", 1),
)
SUGGESTION_CAPS = (("title", 5), ("category", 3), ("brand", 2))
BROWSE_SORT = (("rating", DESC), ("price", ASC))
TOP_RATED_THRESHOLD = 4.5


def rank_matches(matches_by_field: Dict[str, List[Product]]) -> List[RelevanceScore]:
    """Score each product by its best field, once per product id.

    Products are ordered by score, then by rating. Ties beyond that keep the
    store's iteration order.
    """
    seen: set[int] = set()
    ranked: List[RelevanceScore] = []
    for field, weight in FIELD_WEIGHTS:
        for product in matches_by_field.get(field, []):
            if product.id in seen:
                continue
            seen.add(product.id)
            ranked.append(RelevanceScore(product=product, score=weight, matched_field=field))
    ranked.sort(key=lambda item: (item.score, item.product.rating), reverse=True)
    return ranked


def apply_sort(ranked: List[RelevanceScore], sort: SortMode) -> List[RelevanceScore]:
    if sort == SortMode.PRICE_ASC:
        return sorted(ranked, key=lambda item: item.product.price)
    if sort == SortMode.PRICE_DESC:
        return sorted(ranked, key=lambda item: item.product.price, reverse=True)
    if sort == SortMode.RATING:
        return sorted(ranked, key=lambda item: item.product.rating, reverse=True)
    if sort == SortMode.NEWEST:
        return sorted(ranked, key=lambda item: item.product.created_at, reverse=True)
    return ranked


class SearchService:
    def __init__(self, store: ProductStore, cache: SearchCache) -> None:
        self.store = store
        self.cache = cache

    async def rank(self, query: str) -> List[RelevanceScore]:
        matches: Dict[str, List[Product]] = {}
        for field, _ in FIELD_WEIGHTS:
            matches[field] = await self.store.find_containing(field, query)
        return rank_matches(matches)

    async def search(
        self,
        query: str,
        page: int = 1,
        limit: int = 20,
        sort: SortMode = SortMode.RELEVANCE,
    ) -> SearchResult:
        sort = SortMode(sort)
        normalized_query = normalize_text(query)
        cache_key = search_key(normalized_query, page, limit, sort)
        t0 = perf_counter()
        cached = await self.cache.get_search(cache_key)
        if cached is not None:
            logger.info(
                "timing: total=%.2fms cache_hit=1 q=%r page=%s limit=%s sort=%s",
                (perf_counter() - t0) * 1000,
                normalized_query,
                page,
                limit,
                sort.value,
            )
            return cached

        t1 = perf_counter()
        ranked = await self.rank(normalized_query)
        t2 = perf_counter()
        ordered = apply_sort(ranked, sort)
        skip = (page - 1) * limit
        window = ordered[skip : skip + limit]
        result = SearchResult.paginate([item.product for item in window], len(ranked), page, limit)
        await self.cache.set_search(cache_key, result)
        t3 = perf_counter()

        logger.info(
            "timing: total=%.2fms cache=%.2fms store=%.2fms post=%.2fms cache_hit=0 q=%r total_hits=%s sort=%s",
            (t3 - t0) * 1000,
            (t1 - t0) * 1000,
            (t2 - t1) * 1000,
            (t3 - t2) * 1000,
            normalized_query,
            result.total,
            sort.value,
        )
        return result

    async def suggest(self, prefix: str, limit: int = 10) -> List[str]:
        normalized_prefix = normalize_text(prefix)
        cache_key = suggestion_key(normalized_prefix, limit)
        cached = await self.cache.get_suggestions(cache_key)
        if cached is not None:
            return cached

        candidates: List[str] = []
        for field, cap in SUGGESTION_CAPS:
            values = await self.store.distinct_prefix(field, normalized_prefix, cap)
            candidates.extend(values[:cap])

        suggestions: List[str] = []
        for value in dict.fromkeys(candidates):
            if value and value.casefold().startswith(normalized_prefix):
                suggestions.append(value)
        suggestions = suggestions[:limit]

        await self.cache.set_suggestions(cache_key, suggestions)
        logger.debug("suggest prefix=%r suggestions=%s", normalized_prefix, len(suggestions))
        return suggestions

    async def _browse(self, field: str, value: str, page: int, limit: int) -> SearchResult:
        products = await self.store.find_equal(field, value, sort=BROWSE_SORT, skip=(page - 1) * limit, limit=limit)
        total = await self.store.count(field, value)
        return SearchResult.paginate(products, total, page, limit)

    async def get_products_by_category(self, category: str, page: int = 1, limit: int = 20) -> SearchResult:
        return await self._browse("category", category, page, limit)

    async def get_products_by_brand(self, brand: str, page: int = 1, limit: int = 20) -> SearchResult:
        return await self._browse("brand", brand, page, limit)

    async def get_top_rated_products(self, limit: int = 20) -> List[Product]:
        return await self.store.find_min("rating", TOP_RATED_THRESHOLD, sort=BROWSE_SORT, limit=limit)

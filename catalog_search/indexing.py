"""Index creation and maintenance helpers."""
from __future__ import annotations

import asyncio
import logging

from elasticsearch import BadRequestError, Elasticsearch, NotFoundError

logger = logging.getLogger(__name__)


# Lucene rejects keyword terms over 32766 bytes; 8191 chars of 4-byte UTF-8 fits.
RAW_IGNORE_ABOVE = 8191


def _text_with_raw() -> dict:
    return {"type": "text", "fields": {"raw": {"type": "keyword", "ignore_above": RAW_IGNORE_ABOVE}}}


PRODUCT_MAPPING = {
    "settings": {"number_of_shards": 1, "number_of_replicas": 0},
    "mappings": {
        "dynamic": "strict",
        "properties": {
            "id": {"type": "long"},
            "title": _text_with_raw(),
            "brand": _text_with_raw(),
            "category": _text_with_raw(),
            "product_type": _text_with_raw(),
            "description": {"type": "text"},
            "price": {"type": "double"},
            "currency": {"type": "keyword"},
            "stock": {"type": "integer"},
            "sku": {"type": "keyword"},
            "rating": {"type": "float"},
            "created_at": {"type": "date"},
        },
    },
}


async def ensure_index(es: Elasticsearch, index: str) -> None:
    """Create the products index with keyword sub-fields if it is missing."""

    exists = await asyncio.to_thread(es.indices.exists, index=index)
    if exists:
        return
    logger.info("Creating index %s", index)
    try:
        await asyncio.to_thread(
            es.indices.create,
            index=index,
            settings=PRODUCT_MAPPING["settings"],
            mappings=PRODUCT_MAPPING["mappings"],
        )
    except BadRequestError as exc:
        if getattr(exc, "error", "") == "resource_already_exists_exception":
            logger.info("Index %s already exists", index)
            return
        logger.exception("Failed to create index: %s", exc)
        raise


async def index_is_empty(es: Elasticsearch, index: str) -> bool:
    try:
        stats = await asyncio.to_thread(es.count, index=index)
        return stats.get("count", 0) == 0
    except NotFoundError:
        return True

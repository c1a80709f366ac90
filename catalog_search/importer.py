"""Batch ingestion of validated products into the product store."""
from __future__ import annotations

import logging
import math
from pathlib import Path
from time import perf_counter
from typing import Iterator, List, Sequence

from .cache import SearchCache
from .config import Settings
from .csv_loader import read_products
from .errors import BatchWriteError, EmptyIngestionInputError, StoreUnavailableError
from .models import BulkInsertResult, ClearResult, IndexStats, IngestionReport, Product
from .store import ProductStore

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 100


def _batches(products: Sequence[Product], size: int) -> Iterator[List[Product]]:
    for start in range(0, len(products), size):
        yield list(products[start : start + size])


class IngestionCoordinator:
    """Writes products in fixed-size unordered batches, then drops stale cache entries."""

    def __init__(self, store: ProductStore, cache: SearchCache, config: Settings) -> None:
        self.store = store
        self.cache = cache
        self.batch_size = config.batch_size

    async def bulk_insert(self, products: Sequence[Product]) -> BulkInsertResult:
        """Insert everything or raise on the first batch that fails outright.

        Duplicates are skipped and left out of ``inserted_count``. The cache is
        invalidated even when a batch aborts the run.
        """
        if not products:
            raise EmptyIngestionInputError("No valid products to insert")

        total_batches = math.ceil(len(products) / self.batch_size)
        logger.info("Starting bulk insert: %s products in %s batches", len(products), total_batches)
        inserted = 0
        try:
            for number, batch in enumerate(_batches(products, self.batch_size), start=1):
                outcome = await self.store.insert_many(batch)
                inserted += outcome.inserted
                if outcome.duplicates:
                    logger.info("Batch %s: %s duplicates skipped", number, outcome.duplicates)
                if number % PROGRESS_EVERY == 0 or number == total_batches:
                    logger.info("Progress: %s/%s batches (%s products inserted)", number, total_batches, inserted)
        except (BatchWriteError, StoreUnavailableError):
            logger.exception("Bulk insert aborted after %s inserted products", inserted)
            raise
        finally:
            await self.cache.invalidate_all()

        logger.info("Bulk insert completed: %s products inserted", inserted)
        return BulkInsertResult(inserted_count=inserted)

    async def load_from_source(self, products: Sequence[Product]) -> IngestionReport:
        """Load a full run; failed batches are counted, never raised."""
        started = perf_counter()
        if not products:
            logger.error("Load aborted: no valid products in source")
            return IngestionReport(success=False, duration=perf_counter() - started)

        existing = await self.store.count()
        if existing:
            logger.info("Found %s existing products, duplicates will be skipped", existing)

        inserted = duplicates = errors = 0
        for number, batch in enumerate(_batches(products, self.batch_size), start=1):
            try:
                outcome = await self.store.insert_many(batch)
            except (BatchWriteError, StoreUnavailableError) as exc:
                errors += len(batch)
                logger.error("Batch %s failed, %s records dropped: %s", number, len(batch), exc)
                continue
            inserted += outcome.inserted
            duplicates += outcome.duplicates
            logger.info(
                "Batch %s: inserted %s/%s products (%s duplicates)",
                number,
                outcome.inserted,
                len(batch),
                outcome.duplicates,
            )

        await self.cache.invalidate_all()
        duration = perf_counter() - started
        logger.info(
            "Load completed in %.2fs: inserted=%s duplicates=%s errors=%s",
            duration,
            inserted,
            duplicates,
            errors,
        )
        return IngestionReport(success=True, inserted=inserted, duplicates=duplicates, errors=errors, duration=duration)

    async def load_from_file(self, path: str | Path) -> IngestionReport:
        logger.info("Reading products from %s", path)
        return await self.load_from_source(read_products(path))

    async def clear_all(self) -> ClearResult:
        try:
            deleted = await self.store.delete_all()
        except StoreUnavailableError:
            logger.exception("Failed to clear products")
            return ClearResult(success=False, deleted_count=0)
        await self.cache.invalidate_all()
        logger.info("Cleared %s products", deleted)
        return ClearResult(success=True, deleted_count=deleted)

    async def stats(self) -> IndexStats:
        return await self.store.stats()

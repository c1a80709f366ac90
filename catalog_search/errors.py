"""Exceptions surfaced by the catalog search core."""
from __future__ import annotations


class CatalogError(Exception):
    """Base class for errors reported to callers of the core."""


class InvalidRequestError(CatalogError):
    """Malformed caller input (blank query, page/limit out of range)."""


class StoreUnavailableError(CatalogError):
    """A product store round-trip failed or timed out."""


class BatchWriteError(CatalogError):
    """A bulk insert batch failed for a reason other than duplicate keys."""

    def __init__(self, message: str, batch_size: int) -> None:
        super().__init__(message)
        self.batch_size = batch_size


class EmptyIngestionInputError(CatalogError):
    """An ingestion run was started without any valid records."""

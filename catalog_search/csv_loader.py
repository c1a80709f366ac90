"""CSV/TSV reader that turns catalog exports into validated products."""
from __future__ import annotations

import csv
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from .models import Product

logger = logging.getLogger(__name__)

# Accepted header spellings per product field, first match wins.
HEADER_ALIASES: Dict[str, tuple[str, ...]] = {
    "id": ("id", "ID", "Id"),
    "title": ("title", "Title"),
    "category": ("category", "Category"),
    "brand": ("brand", "Brand"),
    "product_type": ("product_type", "ProductType", "Product Type"),
    "sku": ("sku", "SKU", "Sku"),
    "price": ("price", "Price"),
    "currency": ("currency", "Currency"),
    "stock": ("stock", "Stock"),
    "rating": ("rating", "Rating"),
    "description": ("description", "Description"),
    "created_at": ("created_at", "CreatedAt", "Created At"),
}
_NON_NUMERIC_RE = re.compile(r"[^0-9.]")


def _pick(row: Dict[str, Optional[str]], field: str) -> str:
    for header in HEADER_ALIASES[field]:
        value = row.get(header)
        if value:
            return value.strip()
    return ""


def parse_number(value: str) -> Optional[float]:
    """Strip currency symbols and separators, ``None`` when nothing is left."""
    cleaned = _NON_NUMERIC_RE.sub("", value or "")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _detect_delimiter(path: Path, sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=",\t;").delimiter
    except csv.Error:
        return "\t" if path.suffix.lower() == ".tsv" else ","


def row_to_record(row: Dict[str, Optional[str]], fallback_id: int, loaded_at: datetime) -> dict:
    record: dict = {
        field: _pick(row, field)
        for field in ("title", "category", "brand", "product_type", "sku", "description", "currency")
    }
    raw_id = _pick(row, "id")
    record["id"] = int(raw_id) if raw_id.isdigit() else fallback_id
    for field in ("price", "rating"):
        number = parse_number(_pick(row, field))
        if number is not None:
            record[field] = number
    stock = parse_number(_pick(row, "stock"))
    if stock is not None:
        record["stock"] = int(stock)
    record["created_at"] = _pick(row, "created_at") or loaded_at
    if not record["currency"]:
        record.pop("currency")
    return record


def iter_rows(path: Path) -> Iterable[Dict[str, Optional[str]]]:
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        sample = fh.read(4096)
        fh.seek(0)
        reader = csv.DictReader(fh, delimiter=_detect_delimiter(path, sample))
        yield from reader


def read_products(path: str | Path) -> List[Product]:
    """Read every valid row of ``path``; invalid rows are logged and skipped."""
    file_path = Path(path)
    loaded_at = datetime.now(timezone.utc)
    products: List[Product] = []
    row_count = 0
    for row_count, row in enumerate(iter_rows(file_path), start=1):
        try:
            products.append(Product.model_validate(row_to_record(row, row_count, loaded_at)))
        except ValidationError as exc:
            logger.warning("Invalid product at row %s (sku=%r): %s", row_count, _pick(row, "sku"), exc.errors()[0]["msg"])
    logger.info("CSV parsing completed for %s. Total rows: %s, valid products: %s", file_path, row_count, len(products))
    return products

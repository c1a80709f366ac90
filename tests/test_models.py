"""Validation rules of the catalog records."""
import pytest
from pydantic import ValidationError

from conftest import make_product

from catalog_search.models import Product, SearchResult


@pytest.mark.parametrize("field", ["title", "brand", "category", "product_type", "sku"])
def test_required_text_fields_must_be_present(field):
    with pytest.raises(ValidationError):
        make_product(**{field: "   "})


@pytest.mark.parametrize("overrides", [{"price": -1}, {"stock": -2}, {"rating": 5.1}, {"rating": -0.1}])
def test_numeric_ranges_are_enforced(overrides):
    with pytest.raises(ValidationError):
        make_product(**overrides)


def test_text_fields_are_stripped_and_extra_keys_ignored():
    product = Product.model_validate(
        {"id": 1, "title": " Lamp ", "brand": "Acme", "category": "Lighting", "product_type": "Lamp", "sku": "L1", "_id": "x"}
    )

    assert product.title == "Lamp"
    assert product.created_at.tzinfo is not None


@pytest.mark.parametrize("total,limit,pages", [(0, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2), (5, 1, 5)])
def test_total_pages(total, limit, pages):
    assert SearchResult.paginate([], total, 1, limit).total_pages == pages

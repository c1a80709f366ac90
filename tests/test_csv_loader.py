"""CSV/TSV reading and row sanitization."""
from catalog_search.csv_loader import parse_number, read_products


def test_parse_number_strips_symbols():
    assert parse_number("$1,299.50") == 1299.5
    assert parse_number("4.5") == 4.5
    assert parse_number("n/a") is None
    assert parse_number("") is None


def test_reads_tsv_with_header_aliases(tmp_path):
    path = tmp_path / "catalog.tsv"
    path.write_text(
        "ID\tTitle\tBrand\tCategory\tProduct Type\tSKU\tPrice\tStock\tRating\n"
        "7\t  Polo Shirt \tAcme\tApparel\tShirt\tPS-1\t25\t3\t4.7\n"
        "8\tPot\tPogba Inc\tPottery\tPot\tPT-1\t12.5\t0\t3\n",
        encoding="utf-8",
    )

    products = read_products(path)

    assert [product.id for product in products] == [7, 8]
    first = products[0]
    assert first.title == "Polo Shirt"
    assert first.product_type == "Shirt"
    assert (first.price, first.stock, first.rating) == (25.0, 3, 4.7)


def test_invalid_rows_are_skipped_and_ids_follow_rows(tmp_path):
    path = tmp_path / "products.csv"
    path.write_text(
        "title,brand,category,product_type,sku,rating\n"
        "Lamp,Acme,Lighting,Desk lamp,L-1,4\n"
        "No sku,Acme,Lighting,Desk lamp,,4\n"
        "Too good,Acme,Lighting,Desk lamp,L-3,9\n"
        "Bulb,Acme,Lighting,Bulb,L-4,\n",
        encoding="utf-8",
    )

    products = read_products(path)

    assert [(product.id, product.sku) for product in products] == [(1, "L-1"), (4, "L-4")]
    assert products[1].rating == 0.0


def test_rows_with_and_without_dates_share_a_timezone(tmp_path):
    path = tmp_path / "dated.csv"
    path.write_text(
        "title,brand,category,product_type,sku,created_at\n"
        "Polo Shirt,Acme,Apparel,Shirt,PS-1,2024-01-01T00:00:00\n"
        "Polo Cap,Acme,Apparel,Cap,PC-1,\n",
        encoding="utf-8",
    )

    first, second = read_products(path)

    assert first.created_at.tzinfo is not None
    assert second.created_at > first.created_at

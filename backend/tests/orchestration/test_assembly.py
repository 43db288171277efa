
from datetime import datetime

from app.orchestration.markdown_report.assembly import build_markdown_rows, variant_sku

from conftest import make_variant


def test_variant_sku_falls_back_to_inventory_item():
    assert variant_sku(make_variant("v1", "  ", inventory_sku="INV-1")) == "INV-1"
    assert variant_sku(make_variant("v1", "SKU-1", inventory_sku="INV-1")) == "SKU-1"
    assert variant_sku({}) == ""


def test_rows_filter_by_threshold_and_sort_by_qty_then_sku():
    variants = [
        make_variant("v1", "B"),
        make_variant("v2", "A"),
        make_variant("v3", "C"),
        make_variant("v4", "D"),
    ]
    sales = {
        "v1": {"qtySold": 2, "firstSoldDate": None, "lastSoldDate": None},
        "v2": {"qtySold": 2, "firstSoldDate": None, "lastSoldDate": None},
        "v3": {"qtySold": 3, "firstSoldDate": None, "lastSoldDate": None},
    }

    rows = build_markdown_rows(variants, sales, {}, period_qty_sold_lte=2)

    # v4 没有销量视为 0
    assert [r["sku"] for r in rows] == ["D", "A", "B"]


def test_row_columns_and_formats():
    variant = make_variant("v1", "SKU-1", title="Red / L", qty=4, cost="2.50",
                           product_title="Hoodie", vendor="Acme", product_type="Tops")
    sales = {"v1": {"qtySold": 1, "firstSoldDate": "2025-02-03T10:00:00Z", "lastSoldDate": "2025-02-09T23:59:00Z"}}
    receipts = {"SKU-1": {"first": datetime(2024, 12, 1), "last": datetime(2025, 1, 15)}}

    [row] = build_markdown_rows([variant], sales, receipts, period_qty_sold_lte=1)

    assert row == {
        "productTitle": "Hoodie",
        "variantTitle": "Red / L",
        "sku": "SKU-1",
        "vendor": "Acme",
        "productType": "Tops",
        "cost": 2.5,
        "qtyOH": 4,
        "extCost": 10.0,
        "firstRecDate": "12/01/2024",
        "lastRecDate": "01/15/2025",
        "firstSoldDate": "02/03/2025",
        "lastSoldDate": "02/09/2025",
    }


def test_missing_cost_or_quantity_leaves_ext_cost_empty():
    no_cost = make_variant("v1", "A", cost=None)
    no_qty = make_variant("v2", "B", qty=None)

    rows = build_markdown_rows([no_cost, no_qty], {}, {}, period_qty_sold_lte=0)

    assert rows[0]["cost"] is None and rows[0]["extCost"] is None
    assert rows[1]["qtyOH"] is None and rows[1]["extCost"] is None
    assert rows[0]["firstRecDate"] == "" and rows[0]["firstSoldDate"] == ""

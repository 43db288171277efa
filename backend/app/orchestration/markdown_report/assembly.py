
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.utils.clock import format_mmddyyyy


def variant_sku(variant: Dict[str, Any]) -> str:
    """变体 SKU 为空时回退到 inventoryItem.sku。"""
    sku = str((variant or {}).get("sku") or "").strip()
    if sku:
        return sku
    return str(((variant or {}).get("inventoryItem") or {}).get("sku") or "").strip()


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_qty(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


"""
组装 Markdown report 行：
  - 在售变体 × 销量 map × 到货日期缓存
  - 只保留 qtySold <= 阈值的变体；按 qtySold、SKU 排序；输出不含 qtySold
  receipts: {sku: {"first": datetime|None, "last": datetime|None}}
"""
def build_markdown_rows(
    variants: Iterable[Dict[str, Any]],
    sales_by_variant: Mapping[str, Dict[str, Any]],
    receipts: Mapping[str, Dict[str, Any]],
    period_qty_sold_lte: int,
) -> List[Dict[str, Any]]:

    rows: List[Dict[str, Any]] = []
    for v in variants or []:
        sales = (sales_by_variant or {}).get(v.get("id")) or {}
        qty_sold = int(sales.get("qtySold") or 0)
        if qty_sold > period_qty_sold_lte:
            continue

        cost = _to_float((((v.get("inventoryItem") or {}).get("unitCost")) or {}).get("amount"))
        qty_oh = _to_qty(v.get("inventoryQuantity"))
        ext_cost = cost * qty_oh if cost is not None and qty_oh is not None else None

        sku = variant_sku(v)
        rec = (receipts or {}).get(sku) if sku else None
        product = v.get("product") or {}

        rows.append({
            "qtySold": qty_sold,
            "productTitle": product.get("title") or "",
            "variantTitle": v.get("title") or "",
            "sku": sku,
            "vendor": product.get("vendor") or "",
            "productType": product.get("productType") or "",
            "cost": cost,
            "qtyOH": qty_oh,
            "extCost": ext_cost,
            "firstRecDate": format_mmddyyyy((rec or {}).get("first")),
            "lastRecDate": format_mmddyyyy((rec or {}).get("last")),
            "firstSoldDate": format_mmddyyyy(sales.get("firstSoldDate")),
            "lastSoldDate": format_mmddyyyy(sales.get("lastSoldDate")),
        })

    rows.sort(key=lambda r: (r["qtySold"], r["sku"]))
    for r in rows:
        r.pop("qtySold", None)
    return rows

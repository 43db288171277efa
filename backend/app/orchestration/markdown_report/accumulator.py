
"""
订单 → 变体销量累计（纯函数）。

注意：merge_sales 对同一页重复合并不是幂等的（数量会翻倍），
调用方必须保证每页只合并一次：cursor 与合并结果在同一条 UPDATE 里落库。
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, Optional


def _empty_sales() -> Dict[str, Any]:
    return {"qtySold": 0, "firstSoldDate": None, "lastSoldDate": None}


def _min_ts(current: Optional[str], candidate: Optional[str]) -> Optional[str]:
    # ISO-8601 Z 字符串可直接按字典序比较
    if not candidate:
        return current
    if not current or candidate < current:
        return candidate
    return current


def _max_ts(current: Optional[str], candidate: Optional[str]) -> Optional[str]:
    if not candidate:
        return current
    if not current or candidate > current:
        return candidate
    return current


def _quantity(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def merge_sales(existing: Optional[Dict[str, Dict[str, Any]]], orders: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """返回新的 map；只新增 key，不删除 key，入参不被修改。"""
    merged: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (existing or {}).items()}

    for order in orders or []:
        if not isinstance(order, dict):
            continue
        created_at = order.get("createdAt")
        for edge in ((order.get("lineItems") or {}).get("edges") or []):
            node = (edge or {}).get("node") or {}
            variant_id = (node.get("variant") or {}).get("id")
            if not variant_id:
                continue

            agg = merged.get(variant_id)
            if agg is None:
                agg = merged[variant_id] = _empty_sales()

            agg["qtySold"] = int(agg.get("qtySold") or 0) + _quantity(node.get("quantity"))
            agg["firstSoldDate"] = _min_ts(agg.get("firstSoldDate"), created_at)
            agg["lastSoldDate"] = _max_ts(agg.get("lastSoldDate"), created_at)

    return merged


def count_line_items(orders: Iterable[Dict[str, Any]]) -> int:
    """本页带 variant id 的 line item 数（用于进度展示）。"""
    total = 0
    for order in orders or []:
        for edge in (((order or {}).get("lineItems") or {}).get("edges") or []):
            variant = ((edge or {}).get("node") or {}).get("variant") or {}
            if variant.get("id"):
                total += 1
    return total


"""
Restocking report：时间窗口内订单的 line item 按 产品/变体/SKU 分组，
附带各仓位 available 库存。单次请求内同步完成（页数和订单数都有上限）。
"""

from __future__ import annotations
import logging, time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from app.core.config import settings
from app.integrations.shopify.shopify_client import ShopifyClient
from app.orchestration.errors import InputValidationError
from app.utils.clock import now_utc, parse_timestamp, to_iso_z

logger = logging.getLogger(__name__)

NA = "N/A"


def parse_date_range(start_raw: Any, end_raw: Any) -> tuple[datetime, datetime]:
    """解析起止时间；结束时间补到该分钟的最后一刻（含边界）。"""
    start = parse_timestamp(start_raw)
    end = parse_timestamp(end_raw)
    if start is None or end is None:
        raise InputValidationError("Invalid date range. Start and end dates are required.")
    end = end.replace(second=59, microsecond=999999)
    if end < start:
        raise InputValidationError("Invalid date range. End date must be after start date.")
    return start, end


def _wait_for_cost(cost: Dict[str, Any], sleep: Callable[[float], None]) -> None:
    # 剩余额度不够下一次请求时，按 restoreRate 等待
    throttle = (cost or {}).get("throttleStatus") or {}
    remaining = throttle.get("currentlyAvailable")
    requested = (cost or {}).get("requestedQueryCost")
    restore_rate = throttle.get("restoreRate")
    if remaining is None or requested is None or not restore_rate:
        return
    if remaining < requested:
        logger.info("restocking.throttled remaining=%s requested=%s wait_s=%s", remaining, requested, restore_rate)
        sleep(float(restore_rate))


def _location_levels(variant: Dict[str, Any]) -> Dict[str, Any]:
    levels: Dict[str, Any] = {}
    edges = ((((variant or {}).get("inventoryItem") or {}).get("inventoryLevels") or {}).get("edges")) or []
    for edge in edges:
        node = (edge or {}).get("node") or {}
        loc = ((node.get("location") or {}).get("name")) or "Unknown"
        available = next((q for q in (node.get("quantities") or []) if (q or {}).get("name") == "available"), None)
        levels[loc] = available.get("quantity") if available else "-"
    return levels


def group_line_items(orders: List[Dict[str, Any]]) -> tuple[List[Dict[str, Any]], List[str]]:
    """按 productTitle||variantTitle||sku 分组累加 netItemsSold；返回 (按 SKU 排序的行, 仓位名)。"""
    grouped: Dict[str, Dict[str, Any]] = {}
    location_names: List[str] = []

    for order in orders:
        for edge in (((order or {}).get("lineItems") or {}).get("edges") or []):
            n = (edge or {}).get("node") or {}
            p = n.get("product") or {}
            v = n.get("variant") or {}

            levels = _location_levels(v)
            for loc in levels:
                if loc not in location_names:
                    location_names.append(loc)

            product_title = p.get("title") or NA
            variant_title = v.get("title") or NA
            sku = v.get("sku") or NA
            key = f"{product_title}||{variant_title}||{sku}"

            row = grouped.get(key)
            if row is None:
                row = grouped[key] = {
                    "productTitle": product_title,
                    "productVariantTitle": variant_title,
                    "sku": sku,
                    "vendor": p.get("vendor") or NA,
                    "productType": p.get("productType") or NA,
                    "netItemsSold": 0,
                    "locations": {},
                }
            row["netItemsSold"] += int(n.get("quantity") or 0)
            row["locations"].update(levels)

    rows = sorted(grouped.values(), key=lambda r: str(r["sku"]))
    return rows, location_names


def build_restocking_report(
    client: ShopifyClient,
    start: datetime,
    end: datetime,
    *,
    sleep: Callable[[float], None] = time.sleep,
    max_pages: Optional[int] = None,
    max_orders: Optional[int] = None,
) -> Dict[str, Any]:

    max_pages = int(max_pages or settings.RESTOCKING_MAX_PAGES)
    max_orders = int(max_orders or settings.RESTOCKING_MAX_ORDERS)

    kept: List[Dict[str, Any]] = []
    cursor: Optional[str] = None
    pages = 0
    reached_older = False

    while True:
        page = client.fetch_restocking_orders_page(cursor)
        pages += 1

        for order in page.records:
            created = parse_timestamp(order.get("createdAt"))
            if created is None:
                continue
            if start <= created <= end:
                kept.append(order)
            elif created < start:
                # 订单按创建时间倒序，后面的只会更早
                reached_older = True

        _wait_for_cost(page.cost, sleep)

        if reached_older or not page.has_more or not page.next_cursor:
            break
        # 页数超过上限才停：上限 20 时最多抓 21 页
        if pages > max_pages or len(kept) > max_orders:
            logger.info("restocking.limit_reached pages=%s orders=%s", pages, len(kept))
            break
        cursor = page.next_cursor

    rows, location_names = group_line_items(kept)
    logger.info("restocking.report pages=%s orders=%s rows=%s", pages, len(kept), len(rows))
    return {
        "rows": rows,
        "locationNames": location_names,
        "timestamp": to_iso_z(now_utc()),
        "ordersScanned": len(kept),
    }

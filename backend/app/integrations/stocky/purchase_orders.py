
"""
Stocky 采购单（purchase orders）接口：
  - fetch_page(limit, offset)：一次 GET 一页，按显式 offset 翻页（幂等）
  - iter_received_items(orders)：把采购单展开成 (sku, received_at)
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from app.core.config import settings
from app.integrations.stocky.http_client import StockyHttpClient

logger = logging.getLogger(__name__)

PURCHASE_ORDERS_PATH = "/purchase_orders.json"


class StockyPurchaseOrdersAPI:

    def __init__(self, shop: str, http: Optional[StockyHttpClient] = None) -> None:
        self.shop = shop
        self.http = http or StockyHttpClient(shop=shop)

    # test ✅
    def fetch_page(self, *, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        """返回一页采购单；缺失/不是列表的 purchase_orders 视为空页。"""
        limit = int(limit or settings.STOCKY_PAGE_SIZE)
        payload = self.http.get_json(PURCHASE_ORDERS_PATH, params={"limit": limit, "offset": max(0, int(offset))})

        orders = payload.get("purchase_orders") if isinstance(payload, dict) else None
        if not isinstance(orders, list):
            logger.info("stocky.purchase_orders.empty shop=%s offset=%s", self.shop, offset)
            return []
        return orders

    def close(self) -> None:
        self.http.close()


def iter_received_items(purchase_orders: Iterable[Dict[str, Any]]) -> Iterator[Tuple[str, Any]]:
    """逐个 purchase_item 产出 (sku, received_at)；SKU 为空或未到货的跳过。"""
    for po in purchase_orders or []:
        if not isinstance(po, dict):
            continue
        for item in po.get("purchase_items") or []:
            if not isinstance(item, dict):
                continue
            sku = str(item.get("sku") or "").strip()
            received_at = item.get("received_at")
            if not sku or not received_at:
                continue
            yield sku, received_at

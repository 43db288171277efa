
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.integrations.shopify.shopify_client import ShopifyClient
from app.orchestration.markdown_report.accumulator import count_line_items, merge_sales
from app.orchestration.resumable.chunk_driver import Page, ScanState
from app.repository import report_run_repo

logger = logging.getLogger(__name__)


class OrderScanStrategy:
    """按 cursor 扫描时间窗口内的订单，累计每个变体的销量。"""

    kind = "order_scan"

    def __init__(self, db: Session, run_id: str, client: ShopifyClient, since_iso: str) -> None:
        self.db = db
        self.run_id = run_id
        self.client = client
        self.since_iso = since_iso

    def fetch_page(self, position: Optional[str]) -> Page:
        page = self.client.fetch_orders_page(self.since_iso, position)
        # 有下一页却拿不到 cursor 时按结束处理，避免从头重扫
        has_more = bool(page.has_more and page.next_cursor)
        return Page(records=list(page.records), has_more=has_more, next_position=page.next_cursor if has_more else None)

    def fold(self, accumulator: Dict[str, Any], records: List[Dict[str, Any]]) -> Tuple[Dict[str, Any], int]:
        return merge_sales(accumulator, records), count_line_items(records)

    def persist(self, state: ScanState) -> None:
        report_run_repo.advance(
            self.db,
            self.run_id,
            cursor=state.position,
            processed_orders=state.processed,
            sales_by_variant=state.accumulator,
        )

    def finish(self, state: ScanState) -> None:
        report_run_repo.mark_done(self.db, self.run_id)
        logger.info("markdown_report.scan_done run=%s processed=%s variants=%s",
            self.run_id, state.processed, len(state.accumulator or {}))

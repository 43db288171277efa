
"""
Stocky 到货日期同步：
  - Full Sync：按 offset 分片翻完所有采购单（按店铺一个进度），每页展开后逐 SKU upsert 到货日期
  - Quick Sync：只拉第一页（offset=0），不推进持久化的 offset
upsert 是单调的 min/max 合并，分片中途失败时已提交的 upsert 可以保留。
"""

from __future__ import annotations
import logging, time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.integrations.stocky.purchase_orders import StockyPurchaseOrdersAPI, iter_received_items
from app.orchestration.errors import JobBusyError
from app.orchestration.resumable.chunk_driver import ChunkBudget, Page, ScanState, run_chunk
from app.repository import stocky_repo

logger = logging.getLogger(__name__)

MSG_FULL_DONE = "Full Sync complete."
MSG_FULL_ALREADY_DONE = "Full Sync already complete."
MSG_FULL_IN_PROGRESS = "Full Sync in progress…"


@dataclass(frozen=True)
class QuickSyncResult:
    scanned_orders: int
    items_processed: int
    items_updated: int

    @property
    def message(self) -> str:
        return (f"Quick Sync complete. Scanned {self.scanned_orders} POs, "
                f"updated {self.items_processed} received items.")


def full_sync_budget() -> ChunkBudget:
    return ChunkBudget(
        max_seconds=float(settings.STOCKY_FULL_SYNC_MAX_SECONDS),
        page_delay_s=settings.STOCKY_PAGE_DELAY_MS / 1000.0,
        next_poll_ms=int(settings.STOCKY_NEXT_POLL_MS),
    )


def _upsert_items(db: Session, shop: str, purchase_orders: List[Dict[str, Any]]) -> Tuple[int, int]:
    """返回 (有效 item 数, 实际写库数)。"""
    processed = updated = 0
    for sku, received_at in iter_received_items(purchase_orders):
        processed += 1
        if stocky_repo.upsert_receipt(db, shop, sku, received_at):
            updated += 1
    return processed, updated


class StockySyncStrategy:
    """按 offset 翻页；满页才继续，空页或不足一页即结束。"""

    kind = "stocky_full_sync"

    def __init__(self, db: Session, shop: str, api: StockyPurchaseOrdersAPI, page_size: int) -> None:
        self.db = db
        self.shop = shop
        self.api = api
        self.page_size = int(page_size)

    def fetch_page(self, position: int) -> Page:
        offset = int(position or 0)
        records = self.api.fetch_page(limit=self.page_size, offset=offset)
        has_more = bool(records) and len(records) >= self.page_size
        return Page(records=records, has_more=has_more, next_position=offset + len(records))

    def fold(self, accumulator: Dict[str, int], records: List[Dict[str, Any]]) -> Tuple[Dict[str, int], int]:
        processed, updated = _upsert_items(self.db, self.shop, records)
        acc = dict(accumulator or {})
        acc["itemsProcessed"] = acc.get("itemsProcessed", 0) + processed
        acc["itemsUpdated"] = acc.get("itemsUpdated", 0) + updated
        return acc, processed

    def persist(self, state: ScanState) -> None:
        stocky_repo.advance_offset(self.db, self.shop, int(state.position or 0))

    def finish(self, state: ScanState) -> None:
        stocky_repo.mark_full_done(self.db, self.shop)
        logger.info("stocky.full_sync.done shop=%s offset=%s", self.shop, state.position)


def busy_chunk_payload(db: Session, shop: str, retry_after_ms: int) -> Dict[str, Any]:
    """另一个分片持有租约时的响应；offset 取已持久化的进度。"""
    state_row = stocky_repo.get_or_create_sync_state(db, shop)
    return {
        "done": False,
        "busy": True,
        "offset": int(state_row.full_offset or 0),
        "scannedOrders": 0,
        "itemsProcessed": 0,
        "message": MSG_FULL_IN_PROGRESS,
        "suggestedNextPollMs": int(retry_after_ms),
    }


def run_full_sync_chunk(
    db: Session,
    *,
    shop: str,
    api: StockyPurchaseOrdersAPI,
    start_fresh: bool,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:

    token = stocky_repo.acquire_lease(db, shop)
    if token is None:
        logger.info("stocky.full_sync.busy shop=%s", shop)
        raise JobBusyError(shop, retry_after_ms=int(settings.STOCKY_NEXT_POLL_MS))

    try:
        state_row = stocky_repo.reset_full_sync(db, shop) if start_fresh else stocky_repo.get_or_create_sync_state(db, shop)
        offset = int(state_row.full_offset or 0)

        if state_row.full_done:
            return {
                "done": True,
                "offset": offset,
                "scannedOrders": 0,
                "itemsProcessed": 0,
                "message": MSG_FULL_ALREADY_DONE,
                "suggestedNextPollMs": 0,
            }

        strategy = StockySyncStrategy(db, shop, api, settings.STOCKY_PAGE_SIZE)
        scan_state = ScanState(position=offset, processed=0, done=False, accumulator={})
        progress = run_chunk(strategy, scan_state, full_sync_budget(), clock=clock, sleep=sleep)

        logger.info("stocky.full_sync.chunk shop=%s done=%s offset=%s scanned=%s items=%s",
            shop, progress.done, progress.position, progress.records_this_chunk, progress.items_this_chunk)
        return {
            "done": progress.done,
            "offset": int(progress.position or 0),
            "scannedOrders": progress.records_this_chunk,
            "itemsProcessed": progress.items_this_chunk,
            "message": MSG_FULL_DONE if progress.done else MSG_FULL_IN_PROGRESS,
            "suggestedNextPollMs": progress.suggested_next_poll_ms,
        }
    finally:
        stocky_repo.release_lease(db, shop, token)


def run_quick_sync(db: Session, *, shop: str, api: StockyPurchaseOrdersAPI) -> QuickSyncResult:
    """最新一页（或配置的前 N 页）采购单；不读写 full sync 的 offset。"""
    limit = int(settings.STOCKY_PAGE_SIZE)
    scanned = processed = updated = 0

    for p in range(max(1, int(settings.STOCKY_QUICK_SYNC_PAGES))):
        orders = api.fetch_page(limit=limit, offset=p * limit)
        if not orders:
            break
        scanned += len(orders)
        n_processed, n_updated = _upsert_items(db, shop, orders)
        processed += n_processed
        updated += n_updated
        if len(orders) < limit:
            break

    logger.info("stocky.quick_sync.done shop=%s scanned=%s items=%s updated=%s", shop, scanned, processed, updated)
    return QuickSyncResult(scanned_orders=scanned, items_processed=processed, items_updated=updated)

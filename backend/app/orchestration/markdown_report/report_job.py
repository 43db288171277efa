
"""
Markdown report 任务：
  reportStart    → 校验参数、建 run、跑第一个分片
  reportContinue → 抢租约后跑下一个分片；扫描刚结束则拉在售变体 + 到货缓存组装报表并缓存
错误策略：
  - 超时 / 网络 / HTTP / 限流：异常上抛，run 保持 running 停在上一次成功的 cursor，客户端可重试
  - ShopifyQueryError（响应结构不对）：run 标记 error，之后每次 continue 都抛同一个错误
"""

from __future__ import annotations
import logging, time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.model.report_run import ReportRunState, RUN_STATUS_ERROR
from app.integrations.shopify.errors import ShopifyQueryError
from app.integrations.shopify.shopify_client import ShopifyClient
from app.orchestration.errors import InputValidationError, JobBusyError, ReportRunFailedError
from app.orchestration.markdown_report.assembly import build_markdown_rows, variant_sku
from app.orchestration.markdown_report.order_scan import OrderScanStrategy
from app.orchestration.resumable.chunk_driver import ChunkBudget, ChunkProgress, ScanState, run_chunk
from app.repository import report_run_repo, stocky_repo

logger = logging.getLogger(__name__)

INVALID_INPUT_MESSAGE = "Invalid input values. Qty must be >= 0 and days must be > 0."
MAX_INT_DIGITS = 18
ASCII_DIGITS = "0123456789"
# report_runs.period_qty_sold_lte 是 INTEGER 列
MAX_QTY_THRESHOLD = 2 ** 31 - 1


# ---------- Inputs ----------
def parse_int_field(value: Any, fallback: int) -> int:
    """表单整数：取前导整数部分（'12abc' → 12），解析不了用 fallback。"""
    text = str(value if value is not None else "").strip()
    sign = 1
    if text[:1] in ("-", "+"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for ch in text:
        if ch not in ASCII_DIGITS:
            break
        digits += ch
    if not digits:
        return fallback
    # 超长数字串按上限截断，交给 validate_report_inputs 判越界
    if len(digits) > MAX_INT_DIGITS:
        return sign * 10 ** MAX_INT_DIGITS
    return sign * int(digits)


def validate_report_inputs(period_qty_sold_lte: int, look_back_days: int) -> Tuple[int, int]:
    if period_qty_sold_lte < 0 or look_back_days <= 0:
        raise InputValidationError(INVALID_INPUT_MESSAGE)
    if period_qty_sold_lte > MAX_QTY_THRESHOLD:
        raise InputValidationError(f"Invalid input values. Qty must be <= {MAX_QTY_THRESHOLD}.")
    if look_back_days > settings.REPORT_MAX_LOOK_BACK_DAYS:
        raise InputValidationError(
            f"Invalid input values. Days must be <= {settings.REPORT_MAX_LOOK_BACK_DAYS}."
        )
    return int(period_qty_sold_lte), int(look_back_days)


def report_chunk_budget() -> ChunkBudget:
    return ChunkBudget(
        max_seconds=float(settings.REPORT_CHUNK_MAX_SECONDS),
        max_pages=settings.REPORT_CHUNK_MAX_PAGES,
        page_delay_s=settings.REPORT_PAGE_DELAY_MS / 1000.0,
        next_poll_ms=int(settings.REPORT_NEXT_POLL_MS),
    )


# ---------- Payloads ----------
def _progress_payload(run: ReportRunState, progress: ChunkProgress) -> Dict[str, Any]:
    return {
        "jobId": run.id,
        "done": False,
        "status": "running",
        "sinceISO": run.since_iso,
        "processedOrders": progress.processed,
        "pagesThisChunk": progress.pages,
        "suggestedNextPollMs": progress.suggested_next_poll_ms,
    }


def _done_payload(run: ReportRunState) -> Dict[str, Any]:
    rows = list(run.report_rows or [])
    return {
        "jobId": run.id,
        "done": True,
        "status": "done",
        "sinceISO": run.since_iso,
        "processedOrders": run.processed_orders,
        "rows": rows,
        "rowsCount": len(rows),
        "truncated": bool(run.variants_truncated),
        "maxVariants": int(settings.REPORT_MAX_VARIANTS),
        "suggestedNextPollMs": 0,
    }


# ---------- Public ----------
def start_report(
    db: Session,
    *,
    shop: str,
    client: ShopifyClient,
    period_qty_sold_lte: int,
    look_back_days: int,
    now: Optional[datetime] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    qty, days = validate_report_inputs(period_qty_sold_lte, look_back_days)
    run = report_run_repo.create_run(db, shop, period_qty_sold_lte=qty, look_back_days=days, now=now)
    return _run_leased_chunk(db, run, client=client, clock=clock, sleep=sleep)


def continue_report(
    db: Session,
    *,
    shop: str,
    run_id: str,
    client: ShopifyClient,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    run = report_run_repo.get_run(db, run_id, shop)
    return _run_leased_chunk(db, run, client=client, clock=clock, sleep=sleep)


# ---------- Internals ----------
def _run_leased_chunk(
    db: Session,
    run: ReportRunState,
    *,
    client: ShopifyClient,
    clock: Callable[[], float],
    sleep: Callable[[float], None],
) -> Dict[str, Any]:
    # error 是粘性的；done 且已缓存报表直接返回，两者都不需要租约
    if run.status == RUN_STATUS_ERROR:
        raise ReportRunFailedError(run.id, run.error or "Report job failed.")
    if run.done and run.report_rows is not None:
        return _done_payload(run)

    token = report_run_repo.acquire_lease(db, run.id)
    if token is None:
        logger.info("markdown_report.busy run=%s", run.id)
        raise JobBusyError(run.id, retry_after_ms=int(settings.REPORT_NEXT_POLL_MS))

    try:
        # 拿到租约后重读，避免使用别的分片写入前的旧状态
        run = report_run_repo.get_run(db, run.id, run.shop)
        if run.status == RUN_STATUS_ERROR:
            raise ReportRunFailedError(run.id, run.error or "Report job failed.")
        if run.done and run.report_rows is not None:
            return _done_payload(run)

        try:
            if not run.done:
                progress = _scan_orders(db, run, client=client, clock=clock, sleep=sleep)
                if not progress.done:
                    return _progress_payload(run, progress)
                run = report_run_repo.get_run(db, run.id, run.shop)

            _assemble_and_cache(db, run, client=client)
        except ShopifyQueryError as e:
            report_run_repo.mark_error(db, run.id, str(e))
            raise

        return _done_payload(report_run_repo.get_run(db, run.id, run.shop))
    finally:
        report_run_repo.release_lease(db, run.id, token)


def _scan_orders(
    db: Session,
    run: ReportRunState,
    *,
    client: ShopifyClient,
    clock: Callable[[], float],
    sleep: Callable[[float], None],
) -> ChunkProgress:
    strategy = OrderScanStrategy(db, run.id, client, run.since_iso)
    state = ScanState(
        position=run.cursor,
        processed=int(run.processed_orders or 0),
        done=bool(run.done),
        accumulator=dict(run.sales_by_variant or {}),
    )
    progress = run_chunk(strategy, state, report_chunk_budget(), clock=clock, sleep=sleep)
    logger.info("markdown_report.chunk run=%s done=%s pages=%s processed=%s",
        run.id, progress.done, progress.pages, progress.processed)
    return progress


def _assemble_and_cache(db: Session, run: ReportRunState, *, client: ShopifyClient) -> None:
    scan = client.fetch_all_active_variants(settings.REPORT_MAX_VARIANTS)
    skus = [variant_sku(v) for v in scan.items]
    receipts = {
        sku: {"first": rec.first_received_at, "last": rec.last_received_at}
        for sku, rec in stocky_repo.load_receipts_by_skus(db, run.shop, skus).items()
    }
    rows = build_markdown_rows(scan.items, run.sales_by_variant or {}, receipts, run.period_qty_sold_lte)
    report_run_repo.save_report(db, run.id, rows, variants_truncated=scan.truncated)
    logger.info("markdown_report.assembled run=%s variants=%s rows=%s truncated=%s",
        run.id, len(scan.items), len(rows), scan.truncated)

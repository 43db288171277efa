# markdown report run-state repository

from __future__ import annotations

import logging, uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.model.report_run import (
    ReportRunState, RUN_STATUS_DONE, RUN_STATUS_ERROR, RUN_STATUS_RUNNING,
)
from app.orchestration.errors import JobNotFoundError
from app.utils.clock import now_utc, to_iso_z

logger = logging.getLogger(__name__)


# ---------- Query ----------
def get_run(db: Session, run_id: str, shop: str) -> ReportRunState:
    """按 (id, shop) 取任务；不存在或属于其他店铺一律 JobNotFoundError。"""
    stmt = (
        select(ReportRunState)
        .where(ReportRunState.id == run_id, ReportRunState.shop == shop)
        .execution_options(populate_existing=True)
    )
    row = db.scalars(stmt).first()
    if row is None:
        raise JobNotFoundError(run_id)
    return row


# ---------- Mutations ----------
def cleanup_older_than(db: Session, shop: str, cutoff: datetime) -> int:
    """删除该店铺 created_at < cutoff 的任务，返回删除条数。"""
    res = db.execute(
        delete(ReportRunState)
        .where(ReportRunState.shop == shop, ReportRunState.created_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if res.rowcount:
        logger.info("report_run.cleanup shop=%s deleted=%s cutoff=%s", shop, res.rowcount, cutoff.isoformat())
    return int(res.rowcount or 0)


def create_run(
    db: Session,
    shop: str,
    *,
    period_qty_sold_lte: int,
    look_back_days: int,
    now: Optional[datetime] = None,
) -> ReportRunState:
    """
    新建任务前先清理该店铺 48h 之前的旧任务。
    since_iso = now - look_back_days，创建时锁定。
    """
    now = now or now_utc()
    cleanup_older_than(db, shop, now - timedelta(hours=settings.REPORT_RUN_RETENTION_HOURS))

    row = ReportRunState(
        shop=shop,
        created_at=now,
        updated_at=now,
        period_qty_sold_lte=int(period_qty_sold_lte),
        look_back_days=int(look_back_days),
        since_iso=to_iso_z(now - timedelta(days=int(look_back_days))),
        cursor=None,
        done=False,
        processed_orders=0,
        sales_by_variant={},
        status=RUN_STATUS_RUNNING,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("report_run.created id=%s shop=%s since=%s threshold=%s",
        row.id, shop, row.since_iso, row.period_qty_sold_lte)
    return row


def advance(
    db: Session,
    run_id: str,
    *,
    cursor: Optional[str],
    processed_orders: int,
    sales_by_variant: Dict[str, Dict[str, Any]],
) -> None:
    """
    一页处理完后的单条 UPDATE：cursor + 计数 + 累计 map 一起落库。
    processed_orders 只增不减；已结束（done/error）的任务不会被改写。
    """
    res = db.execute(
        update(ReportRunState)
        .where(
            ReportRunState.id == run_id,
            ReportRunState.status == RUN_STATUS_RUNNING,
            ReportRunState.processed_orders <= int(processed_orders),
        )
        .values(
            cursor=cursor,
            processed_orders=int(processed_orders),
            sales_by_variant=dict(sales_by_variant),
            updated_at=now_utc(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if not res.rowcount:
        logger.warning("report_run.advance_skipped id=%s processed=%s", run_id, processed_orders)


def mark_done(db: Session, run_id: str) -> None:
    db.execute(
        update(ReportRunState)
        .where(ReportRunState.id == run_id)
        .values(done=True, status=RUN_STATUS_DONE, error=None, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    db.commit()


def mark_error(db: Session, run_id: str, message: str) -> None:
    db.execute(
        update(ReportRunState)
        .where(ReportRunState.id == run_id)
        .values(done=False, status=RUN_STATUS_ERROR, error=str(message)[:2000], updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.warning("report_run.error id=%s err=%s", run_id, message)


def save_report(db: Session, run_id: str, rows: List[Dict[str, Any]], *, variants_truncated: bool) -> None:
    """缓存组装好的报表行，后续 continue 不再请求上游。"""
    db.execute(
        update(ReportRunState)
        .where(ReportRunState.id == run_id)
        .values(report_rows=list(rows), variants_truncated=bool(variants_truncated), updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    db.commit()


# ---------- Lease ----------
def acquire_lease(db: Session, run_id: str, *, ttl_sec: Optional[int] = None) -> Optional[str]:
    """
    CAS 抢租约：lease 为空或已过期才能拿到；返回 token，拿不到返回 None。
    """
    now = now_utc()
    token = str(uuid.uuid4())
    ttl = int(ttl_sec or settings.JOB_LEASE_TTL_SEC)
    res = db.execute(
        update(ReportRunState)
        .where(
            ReportRunState.id == run_id,
            or_(ReportRunState.lease_expires_at.is_(None), ReportRunState.lease_expires_at < now),
        )
        .values(lease_token=token, lease_expires_at=now + timedelta(seconds=ttl))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return token if res.rowcount else None


def release_lease(db: Session, run_id: str, token: str) -> None:
    db.execute(
        update(ReportRunState)
        .where(ReportRunState.id == run_id, ReportRunState.lease_token == token)
        .values(lease_token=None, lease_expires_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()

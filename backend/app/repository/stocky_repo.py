# stocky sync-state / sku receipt repository

from __future__ import annotations

import logging, uuid
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.model.stocky import StockySkuReceipt, StockySyncState
from app.utils.clock import now_utc, parse_timestamp

logger = logging.getLogger(__name__)


# ---------- Sync state ----------
def get_or_create_sync_state(db: Session, shop: str) -> StockySyncState:
    """首次同步时插入 offset=0 的状态行；并发插入冲突时回滚后重读。"""
    row = db.get(StockySyncState, shop, populate_existing=True)
    if row is not None:
        return row

    try:
        now = now_utc()
        db.add(StockySyncState(shop=shop, full_offset=0, full_done=False, created_at=now, updated_at=now))
        db.commit()
    except IntegrityError:
        db.rollback()

    row = db.get(StockySyncState, shop, populate_existing=True)
    if row is None:
        raise RuntimeError(f"failed to create stocky sync state for {shop}")
    return row


def reset_full_sync(db: Session, shop: str) -> StockySyncState:
    get_or_create_sync_state(db, shop)
    db.execute(
        update(StockySyncState)
        .where(StockySyncState.shop == shop)
        .values(full_offset=0, full_done=False, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return _reload(db, shop)


def advance_offset(db: Session, shop: str, offset: int) -> None:
    """offset 只前进不后退。"""
    db.execute(
        update(StockySyncState)
        .where(StockySyncState.shop == shop, StockySyncState.full_offset <= int(offset))
        .values(full_offset=int(offset), updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    db.commit()


def mark_full_done(db: Session, shop: str) -> None:
    db.execute(
        update(StockySyncState)
        .where(StockySyncState.shop == shop)
        .values(full_done=True, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    db.commit()


def _reload(db: Session, shop: str) -> StockySyncState:
    return db.get(StockySyncState, shop, populate_existing=True)


# ---------- Lease ----------
def acquire_lease(db: Session, shop: str, *, ttl_sec: Optional[int] = None) -> Optional[str]:
    get_or_create_sync_state(db, shop)
    now = now_utc()
    token = str(uuid.uuid4())
    ttl = int(ttl_sec or settings.JOB_LEASE_TTL_SEC)
    res = db.execute(
        update(StockySyncState)
        .where(
            StockySyncState.shop == shop,
            or_(StockySyncState.lease_expires_at.is_(None), StockySyncState.lease_expires_at < now),
        )
        .values(lease_token=token, lease_expires_at=now + timedelta(seconds=ttl))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return token if res.rowcount else None


def release_lease(db: Session, shop: str, token: str) -> None:
    db.execute(
        update(StockySyncState)
        .where(StockySyncState.shop == shop, StockySyncState.lease_token == token)
        .values(lease_token=None, lease_expires_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()


# ---------- SKU receipts ----------
def upsert_receipt(db: Session, shop: str, sku: str, received_at: Any) -> bool:
    """
    合并一条到货记录：first 只会变早，last 只会变晚。
    时间无法解析 / SKU 为空 → 不写；边界没变化 → 不写。返回是否发生写入。
    """
    sku = str(sku or "").strip()
    ts = parse_timestamp(received_at)
    if not sku or ts is None:
        return False

    stmt = select(StockySkuReceipt).where(StockySkuReceipt.shop == shop, StockySkuReceipt.sku == sku)
    row = db.scalars(stmt).first()

    if row is None:
        now = now_utc()
        try:
            db.add(StockySkuReceipt(
                shop=shop, sku=sku, first_received_at=ts, last_received_at=ts,
                created_at=now, updated_at=now,
            ))
            db.commit()
            return True
        except IntegrityError:
            # 并发插入：回滚后按已有行合并
            db.rollback()
            row = db.scalars(stmt).first()
            if row is None:
                raise

    new_first = ts if row.first_received_at is None or ts < row.first_received_at else row.first_received_at
    new_last = ts if row.last_received_at is None or ts > row.last_received_at else row.last_received_at
    if new_first == row.first_received_at and new_last == row.last_received_at:
        return False

    row.first_received_at = new_first
    row.last_received_at = new_last
    row.updated_at = now_utc()
    db.commit()
    return True


def load_receipts_by_skus(db: Session, shop: str, skus: Iterable[str]) -> Dict[str, StockySkuReceipt]:
    """按 SKU 批量读取到货日期；分批 IN 查询，返回 {sku: row}。"""
    wanted = sorted({str(s).strip() for s in skus if s and str(s).strip()})
    out: Dict[str, StockySkuReceipt] = {}
    for i in range(0, len(wanted), 500):
        batch = wanted[i:i + 500]
        stmt = select(StockySkuReceipt).where(StockySkuReceipt.shop == shop, StockySkuReceipt.sku.in_(batch))
        for row in db.scalars(stmt):
            out[row.sku] = row
    return out


from __future__ import annotations
import uuid
from typing import Optional
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.utils.clock import now_utc


"""
  Stocky 全量同步进度（一个店铺一行）
  full_offset 只增不减；页为空或不足一页时 full_done=True。
"""
class StockySyncState(Base):

    __tablename__ = "stocky_sync_state"

    shop: Mapped[str] = mapped_column(String(255), primary_key=True)

    full_offset: Mapped[int]  = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    full_done:   Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    # 分片租约（按 shop）
    lease_token:      Mapped[Optional[str]]      = mapped_column(String(36))
    lease_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=now_utc, onupdate=now_utc)


"""
  SKU 到货日期缓存（shop + sku 唯一）
  first_received_at 只会变早，last_received_at 只会变晚；边界没变化就不写库。
"""
class StockySkuReceipt(Base):

    __tablename__ = "stocky_sku_receipt"

    id:   Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    sku:  Mapped[str] = mapped_column(String(255), nullable=False)

    first_received_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_received_at:  Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=now_utc, onupdate=now_utc)

    __table_args__ = (
        UniqueConstraint("shop", "sku", name="uq_stocky_sku_receipt_shop_sku"),
        Index("ix_stocky_sku_receipt_shop", "shop"),
    )


from __future__ import annotations
import uuid
from typing import Optional, Dict, Any, List
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, JSONType
from app.utils.clock import now_utc


RUN_STATUS_RUNNING = "running"
RUN_STATUS_DONE = "done"
RUN_STATUS_ERROR = "error"


def _new_run_id() -> str:
    return str(uuid.uuid4())


"""
  Markdown report 运行状态表（一次报表 = 一行）
  客户端轮询 reportContinue 时按 id 取出 cursor / 累计 map 继续扫描订单；
  done == (status == "done")，processed_orders 只增不减，sales_by_variant 的 key 只增不删。
"""
class ReportRunState(Base):

    __tablename__ = "report_run_state"

    id:   Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_run_id)
    shop: Mapped[str] = mapped_column(String(255), nullable=False)    # 租户键，所有读写都按 shop 过滤

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=now_utc)   # 用于 48h 清理
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=now_utc, onupdate=now_utc)

    # 创建时锁定的筛选参数，后续分片不需要客户端再传
    period_qty_sold_lte: Mapped[int] = mapped_column(Integer, nullable=False)
    look_back_days:      Mapped[int] = mapped_column(Integer, nullable=False)
    since_iso:           Mapped[str] = mapped_column(String(32), nullable=False)   # 扫描窗口下界（ISO-8601 Z）

    # 扫描进度
    cursor:           Mapped[Optional[str]] = mapped_column(Text)     # None = 尚未开始
    done:             Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    processed_orders: Mapped[int]  = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    # variantId -> {qtySold, firstSoldDate, lastSoldDate}
    sales_by_variant: Mapped[Dict[str, Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=dict)

    status: Mapped[str]           = mapped_column(String(16), nullable=False, default=RUN_STATUS_RUNNING)  # running/done/error
    error:  Mapped[Optional[str]] = mapped_column(Text)               # 仅 status=error 时有值

    # 扫描完成后组装好的报表行，重复 reportContinue 直接返回，不再请求上游
    report_rows:        Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSONType)
    variants_truncated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    # 分片租约：同一 run 同一时刻只允许一个分片在跑
    lease_token:      Mapped[Optional[str]]      = mapped_column(String(36))
    lease_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_report_run_state_shop_created_at", "shop", "created_at"),
    )

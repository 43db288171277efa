from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Optional


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)  # 与 DB naive UTC 对齐


def to_iso_z(value: datetime) -> str:
    """naive(UTC) / aware datetime -> 'YYYY-MM-DDTHH:MM:SS.mmmZ'，与 Shopify 返回格式一致，可按字符串比较。"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    解析上游时间戳（ISO-8601，可带 Z / 偏移），统一成 naive UTC；
    空值或无法解析返回 None。
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_mmddyyyy(value: Any) -> str:
    """报表日期列：MM/DD/YYYY；空或无法解析时返回空串。"""
    parsed = parse_timestamp(value)
    if parsed is None:
        return ""
    return parsed.strftime("%m/%d/%Y")

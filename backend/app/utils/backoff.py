
from __future__ import annotations
from typing import Any, Optional


def parse_retry_after(value: Any) -> Optional[float]:
    """Retry-After 头（秒）；缺失或不是数字返回 None。"""
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if seconds != seconds or seconds < 0:   # NaN / 负数
        return None
    return seconds


def calc_rate_limit_wait_ms(
    attempt: int,
    retry_after_s: Optional[float],
    *,
    floor_ms: int = 1000,
    default_ms: int = 2000,
    max_ms: int = 30000,
) -> int:
    """
    429 指数退避：
      base = max(floor_ms, retry_after*1000)，没有 retry-after 时用 default_ms
      wait = min(max_ms, base * 2^attempt)
    attempt: 从 0 开始的尝试序号
    """
    attempt = max(0, attempt)
    if retry_after_s is not None:
        base = max(float(floor_ms), retry_after_s * 1000.0)
    else:
        base = float(default_ms)
    return int(min(float(max_ms), base * (2 ** attempt)))

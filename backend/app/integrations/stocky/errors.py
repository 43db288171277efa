
"""
   Stocky 集成层专用异常类型。
   将 HTTP/限流/超时/载荷等错误与业务层解耦，便于上层统一处理。
"""

from typing import Optional


class StockyError(Exception):
    """Base for all Stocky errors."""


class StockyClientError(StockyError):
    """Network/connection errors raised by the HTTP layer."""


class StockyTimeoutError(StockyError, TimeoutError):
    """Request did not complete within the configured (connect, read) timeout."""


class StockyRateLimitError(StockyError):
    """429 Too Many Requests not resolved after retries."""

    def __init__(self, message: str, *, attempts: int, next_wait_ms: int) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.next_wait_ms = next_wait_ms


class StockyUpstreamError(StockyError):
    """Non-2xx (other than 429) response; carries status and a body snippet."""

    def __init__(self, status: int, body: Optional[str] = None) -> None:
        self.status = status
        self.body = (body or "")[:500]
        super().__init__(f"Stocky API error ({status}). {self.body}".strip())


class StockyPayloadError(StockyError):
    """Unexpected/invalid response payload shape or content."""

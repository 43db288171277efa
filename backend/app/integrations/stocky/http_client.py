
"""
低层 HTTP 客户端：鉴权头/限流/429 退避/超时
  - Stocky 用 `Store-Name` + `Authorization: API KEY=<key>` 鉴权，没有 token 交换；
  - 429 按 retry-after 指数退避（上限 30s），用尽重试抛 StockyRateLimitError；
  - 超时直接抛 StockyTimeoutError，由上层（客户端轮询）决定是否重试；
  - 提供 get_json 入口，不关心业务字段结构。
"""

from __future__ import annotations
import logging, time, requests
from typing import Any, Callable, Dict, Optional
from urllib.parse import urljoin

from app.core.config import settings
from app.integrations.stocky.errors import (
    StockyClientError, StockyPayloadError, StockyRateLimitError, StockyTimeoutError, StockyUpstreamError,
)
from app.infrastructure.ratelimit.redis_token_bucket import RedisTokenBucketLimiter
from app.utils.backoff import calc_rate_limit_wait_ms, parse_retry_after

logger = logging.getLogger(__name__)


def _secret(value: Any) -> Optional[str]:
    # 兼容 SecretStr 或 str
    if hasattr(value, "get_secret_value"):
        value = value.get_secret_value()
    return value or None


class StockyHttpClient:
    """Stocky API 的低层 HTTP 客户端：负责鉴权头、限流与 429 重试。"""

    def __init__(
        self,
        shop: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        connect_timeout: Optional[int] = None,
        read_timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        limiter: Optional[RedisTokenBucketLimiter] = None,
    ) -> None:
        """初始化客户端，允许覆盖基础配置以便测试或多店铺场景。"""
        self.shop = shop
        self.api_key = api_key or _secret(settings.STOCKY_API_KEY)
        self.base_url = (base_url or settings.STOCKY_BASE_URL).rstrip("/") + "/"
        self.connect_timeout = connect_timeout or settings.STOCKY_CONNECT_TIMEOUT
        self.read_timeout = read_timeout or settings.STOCKY_READ_TIMEOUT
        self.max_retries = settings.STOCKY_MAX_RETRIES if max_retries is None else max(0, int(max_retries))

        self._session = session or requests.Session()
        self._sleep = sleep
        # 全局限流（可选）：同一店铺多进程共用 Redis 令牌桶
        self._global_limiter = limiter if limiter is not None else RedisTokenBucketLimiter.from_settings(
            vendor="stocky", account=shop,
        )


    # ---------- Public ----------
    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """发送 GET 请求并返回解析后的 JSON，附带鉴权/限流/重试。"""
        resp = self._request("GET", path, params=params)
        return self._as_json(resp)

    def close(self) -> None:
        self._session.close()


    # ---------- Internals ----------
    def _as_json(self, resp: requests.Response) -> Any:
        """解析响应 JSON；失败时截取文本并抛 StockyPayloadError。"""
        try:
            return resp.json()
        except ValueError as e:
            text = (resp.text or "")[:500]  # 截断，避免日志过大
            raise StockyPayloadError(f"non-JSON response (status={resp.status_code}): {text}") from e


    def _headers(self) -> Dict[str, str]:
        return {
            "Store-Name": self.shop,
            "Authorization": f"API KEY={self.api_key}",
            "Accept": "application/json",
        }


    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """执行一次 HTTP 调用，负责限流、429 重试与状态码处理。"""
        url = urljoin(self.base_url, path.lstrip("/"))
        timeout = (self.connect_timeout, self.read_timeout)

        for attempt in range(self.max_retries + 1):
            self._respect_rate_limit()

            start = time.perf_counter()
            try:
                resp = self._session.request(method, url, headers=self._headers(), timeout=timeout, **kwargs)
            except requests.Timeout as e:
                latency_ms = int((time.perf_counter() - start) * 1000)
                logger.warning("stocky.http.timeout path=%s latency_ms=%s attempt=%s", path, latency_ms, attempt)
                raise StockyTimeoutError(f"Stocky request timed out after {latency_ms}ms: {e}") from e
            except requests.RequestException as e:
                logger.warning("stocky.http.request_exception path=%s attempt=%s err=%s", path, attempt, type(e).__name__)
                raise StockyClientError(f"request error: {e}") from e

            latency_ms = int((time.perf_counter() - start) * 1000)

            # 429 限流：按 retry-after 指数退避；用尽重试则抛 StockyRateLimitError
            if resp.status_code == 429:
                retry_after = parse_retry_after(resp.headers.get("Retry-After"))
                wait_ms = calc_rate_limit_wait_ms(
                    attempt,
                    retry_after,
                    floor_ms=settings.STOCKY_BACKOFF_BASE_MS,
                    default_ms=settings.STOCKY_BACKOFF_DEFAULT_MS,
                    max_ms=settings.STOCKY_BACKOFF_MAX_MS,
                )
                if attempt == self.max_retries:
                    raise StockyRateLimitError(
                        f"Stocky API error (429): rate limited. Retried {self.max_retries + 1} times. "
                        f"Try again in ~{-(-wait_ms // 1000)}s.",
                        attempts=attempt + 1,
                        next_wait_ms=wait_ms,
                    )
                logger.warning(
                    "stocky.http.429_throttled path=%s latency_ms=%s attempt=%s/%s retry_after=%s wait_ms=%s",
                    path, latency_ms, attempt, self.max_retries, retry_after, wait_ms)
                self._sleep(wait_ms / 1000.0)
                continue

            # 其它非 2xx：带状态码和正文片段直接抛
            if not (200 <= resp.status_code < 300):
                logger.warning("stocky.http.error path=%s status=%s latency_ms=%s", path, resp.status_code, latency_ms)
                raise StockyUpstreamError(resp.status_code, resp.text)

            logger.info("stocky.http.ok path=%s status=%s latency_ms=%s attempt=%s",
                path, resp.status_code, latency_ms, attempt)
            return resp

        # 理论上不会走到这里
        raise StockyClientError("unreachable retry loop")


    # ---------- Helpers ----------
    def _respect_rate_limit(self) -> None:
        """启用全局限流时先抢令牌；抢不到按建议等待后重试。"""
        limiter = self._global_limiter
        if limiter is None:
            return
        for _ in range(20):     # 最多 20 次，每次等待不超过 max_wait_ms
            allowed, wait_ms = limiter.acquire_once()
            if allowed:
                return
            self._sleep(max(0.001, (wait_ms or 1000) / 1000.0))
        logger.warning("stocky.ratelimit.token_not_acquired shop=%s", self.shop)

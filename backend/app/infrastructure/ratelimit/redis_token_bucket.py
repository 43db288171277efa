# app/infrastructure/ratelimit/redis_token_bucket.py
"""
Stocky 全局令牌桶（按店铺共享，多进程/多实例共用一个桶），速率单位 rpm。

    key: {prefix}:{env}:stocky:{shop}:v1

acquire_once() 在 Redis 里原子执行一段 Lua：
  - 以 Redis 服务器时间补桶（各实例本地时钟不一致也没关系）
  - 有令牌就扣 1 个返回 allowed=1，没有就返回还要等多少毫秒
  - 桶空闲超过 ttl 自动过期
"""

from __future__ import annotations
import logging
from typing import Any, Optional, Tuple

import redis

logger = logging.getLogger(__name__)


BUCKET_TTL_MS = 120_000

# ARGV: burst, rpm, ttl_ms → {allowed, 剩余令牌, 需等待毫秒}
TOKEN_BUCKET_LUA = """
local bucket = KEYS[1]
local burst = tonumber(ARGV[1])
local per_ms = tonumber(ARGV[2]) / 60000
local ttl_ms = tonumber(ARGV[3])

local clock = redis.call('TIME')
local now_ms = tonumber(clock[1]) * 1000 + math.floor(tonumber(clock[2]) / 1000)

local saved = redis.call('HMGET', bucket, 'tokens', 'ts')
local tokens = tonumber(saved[1]) or burst
local last_ms = tonumber(saved[2]) or now_ms
local elapsed = math.max(0, now_ms - last_ms)
tokens = math.min(burst, tokens + elapsed * per_ms)

local wait_ms = 0
local allowed = 0
if tokens >= 1 then
    tokens = tokens - 1
    allowed = 1
elseif per_ms > 0 then
    wait_ms = math.ceil((1 - tokens) / per_ms)
end

redis.call('HSET', bucket, 'tokens', tokens, 'ts', now_ms)
if ttl_ms > 0 then
    redis.call('PEXPIRE', bucket, ttl_ms)
end
return {allowed, tostring(tokens), wait_ms}
"""


def bucket_key(prefix: str, env: str, shop: Optional[str]) -> str:
    """店铺域名里的点换成下划线，缺省店铺用 'default'。"""
    account = (shop or "default").strip().lower().replace(".", "_")
    return f"{prefix}:{env}:stocky:{account}:v1"


class RedisTokenBucketLimiter:
    """Stocky 请求前调用 acquire_once()；返回 (allowed, wait_ms)。"""

    def __init__(self, client: Any, key: str, max_rpm: int, burst: int = 5,
                 ttl_ms: int = BUCKET_TTL_MS, max_wait_ms: Optional[int] = 5000) -> None:
        self.r = client
        self.key = key
        self.max_rpm = max(1, int(max_rpm))
        self.burst = max(1, int(burst))
        self.ttl_ms = int(ttl_ms)
        self.max_wait_ms = max_wait_ms
        self._sha = self.r.script_load(TOKEN_BUCKET_LUA)

    @classmethod
    def from_settings(cls, *, vendor: str = "stocky", account: Optional[str] = None) -> Optional[RedisTokenBucketLimiter]:
        """STOCKY_GLOBAL_RL_ENABLED 打开且配了 Redis URL 才启用；否则返回 None（只靠 429 退避）。"""
        from app.core.config import settings

        if not settings.STOCKY_GLOBAL_RL_ENABLED:
            return None
        url = settings.STOCKY_GLOBAL_RATE_LIMIT_REDIS_URL
        if not url:
            logger.warning("stocky.ratelimit.disabled reason=no_redis_url vendor=%s", vendor)
            return None

        key = bucket_key(settings.STOCKY_GLOBAL_RL_KEY_PREFIX, settings.ENVIRONMENT, account)
        logger.info("stocky.ratelimit.enabled key=%s rpm=%s burst=%s",
            key, settings.STOCKY_GLOBAL_RL_MAX_RPM, settings.STOCKY_GLOBAL_RL_BURST)
        return cls(
            client=redis.from_url(url, decode_responses=True),
            key=key,
            max_rpm=settings.STOCKY_GLOBAL_RL_MAX_RPM,
            burst=settings.STOCKY_GLOBAL_RL_BURST,
            max_wait_ms=settings.STOCKY_GLOBAL_RL_MAX_WAIT_MS,
        )

    def _run_script(self) -> Any:
        args = (self.burst, self.max_rpm, self.ttl_ms)
        try:
            return self.r.evalsha(self._sha, 1, self.key, *args)
        except redis.exceptions.NoScriptError:
            # Redis 重启或 SCRIPT FLUSH 后脚本缓存丢失，重新加载一次
            logger.info("stocky.ratelimit.script_reload key=%s", self.key)
            self._sha = self.r.script_load(TOKEN_BUCKET_LUA)
            return self.r.evalsha(self._sha, 1, self.key, *args)

    def acquire_once(self) -> Tuple[bool, int]:
        allowed_flag, _tokens, wait_raw = self._run_script()
        if int(allowed_flag) == 1:
            return True, 0
        wait_ms = max(0, int(float(wait_raw)))
        if self.max_wait_ms is not None:
            wait_ms = min(wait_ms, int(self.max_wait_ms))
        return False, wait_ms

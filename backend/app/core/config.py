# 环境变量和配置
# pydantic‑settings 读取 .env = core/config.py

from typing import Optional
from pydantic import SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 本机直接跑 uvicorn 时（不走 Docker），才会用到 model_config.env_file=".env"：
# 此时它会读取 backend/.env

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # ========= project config =========
    PROJECT_NAME: str = "Markdown Report"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"


    # ========= Database =========
    # 容器内默认连 docker 网络里的 "db" 服务
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://mr_user:mr_pass@db:5432/markdown_report",
        alias="DATABASE_URL",
    )


    # ========= Shopify API Config =========
    SHOPIFY_SHOP: Optional[str] = Field(None, alias="SHOPIFY_SHOP")                        # 请求里没带 shop 时的默认店铺
    SHOPIFY_ADMIN_TOKEN: Optional[SecretStr] = Field(None, alias="SHOPIFY_ADMIN_TOKEN")    # 必须在运行时填上真实值
    SHOPIFY_API_VERSION: str = Field("2025-07", alias="SHOPIFY_API_VERSION")

    # 网络/HTTP 层配置
    SHOPIFY_HTTP_TIMEOUT: int = Field(30, alias="SHOPIFY_HTTP_TIMEOUT")
    SHOPIFY_HTTP_RETRIES: int = Field(3, alias="SHOPIFY_HTTP_RETRIES")
    SHOPIFY_HTTP_BACKOFF_MS: int = Field(200, alias="SHOPIFY_HTTP_BACKOFF_MS")


    # ========= Markdown report（订单扫描分片） =========
    REPORT_ORDERS_PAGE_SIZE: int = Field(50, ge=1, le=250, alias="REPORT_ORDERS_PAGE_SIZE")
    REPORT_LINE_ITEMS_PAGE_SIZE: int = Field(100, ge=1, le=250, alias="REPORT_LINE_ITEMS_PAGE_SIZE")
    REPORT_VARIANTS_PAGE_SIZE: int = Field(100, ge=1, le=250, alias="REPORT_VARIANTS_PAGE_SIZE")
    REPORT_MAX_VARIANTS: int = Field(5000, ge=1, alias="REPORT_MAX_VARIANTS")                # 变体总数上限，超出标记 truncated
    REPORT_CHUNK_MAX_SECONDS: float = Field(8.0, gt=0, alias="REPORT_CHUNK_MAX_SECONDS")     # 单次请求的时间预算
    REPORT_CHUNK_MAX_PAGES: Optional[int] = Field(None, ge=1, alias="REPORT_CHUNK_MAX_PAGES")
    REPORT_PAGE_DELAY_MS: int = Field(250, ge=0, alias="REPORT_PAGE_DELAY_MS")
    REPORT_NEXT_POLL_MS: int = Field(600, ge=0, alias="REPORT_NEXT_POLL_MS")
    REPORT_RUN_RETENTION_HOURS: int = Field(48, ge=1, alias="REPORT_RUN_RETENTION_HOURS")  # 超过 48h 的 run 在新建前清理
    REPORT_DEFAULT_LOOK_BACK_DAYS: int = Field(60, ge=1, alias="REPORT_DEFAULT_LOOK_BACK_DAYS")
    REPORT_MAX_LOOK_BACK_DAYS: int = Field(3650, ge=1, le=36500, alias="REPORT_MAX_LOOK_BACK_DAYS")  # 超出直接 400，避免日期溢出
    JOB_LEASE_TTL_SEC: int = Field(30, ge=1, alias="JOB_LEASE_TTL_SEC")                      # 分片执行租约，防止并发重复处理


    # ========= Restocking report =========
    RESTOCKING_MAX_PAGES: int = Field(20, ge=1, alias="RESTOCKING_MAX_PAGES")
    RESTOCKING_MAX_ORDERS: int = Field(500, ge=1, alias="RESTOCKING_MAX_ORDERS")


    # ========= Stocky Base Config =========
    STOCKY_BASE_URL: str = Field("https://stocky.shopifyapps.com/api/v2", alias="STOCKY_BASE_URL")
    STOCKY_API_KEY: Optional[SecretStr] = Field(None, alias="STOCKY_API_KEY")
    STOCKY_CONNECT_TIMEOUT: int = Field(10, ge=1, alias="STOCKY_CONNECT_TIMEOUT")
    STOCKY_READ_TIMEOUT: int = Field(30, ge=1, alias="STOCKY_READ_TIMEOUT")
    STOCKY_MAX_RETRIES: int = Field(6, ge=0, alias="STOCKY_MAX_RETRIES")            # 429 重试次数（不含首次）
    STOCKY_BACKOFF_BASE_MS: int = Field(1000, ge=1, alias="STOCKY_BACKOFF_BASE_MS")  # retry-after 的下限
    STOCKY_BACKOFF_DEFAULT_MS: int = Field(2000, ge=1, alias="STOCKY_BACKOFF_DEFAULT_MS")  # 没有 retry-after 时的基准
    STOCKY_BACKOFF_MAX_MS: int = Field(30000, ge=1, alias="STOCKY_BACKOFF_MAX_MS")

    # Stocky 全量同步（分片 + 节流）
    STOCKY_PAGE_SIZE: int = Field(100, ge=1, alias="STOCKY_PAGE_SIZE")
    STOCKY_FULL_SYNC_MAX_SECONDS: float = Field(10.0, gt=0, alias="STOCKY_FULL_SYNC_MAX_SECONDS")
    STOCKY_PAGE_DELAY_MS: int = Field(800, ge=0, alias="STOCKY_PAGE_DELAY_MS")
    STOCKY_NEXT_POLL_MS: int = Field(1400, ge=0, alias="STOCKY_NEXT_POLL_MS")
    STOCKY_QUICK_SYNC_PAGES: int = Field(1, ge=1, alias="STOCKY_QUICK_SYNC_PAGES")

    # ========= Stocky 全局限流配置 =========
    STOCKY_GLOBAL_RL_ENABLED: bool = False     # 多进程共享令牌桶；默认关闭
    STOCKY_GLOBAL_RATE_LIMIT_REDIS_URL: str = "redis://redis:6379/0"
    STOCKY_GLOBAL_RL_MAX_RPM: int = 60
    STOCKY_GLOBAL_RL_BURST: int = 5
    STOCKY_GLOBAL_RL_MAX_WAIT_MS: int = 5000
    STOCKY_GLOBAL_RL_KEY_PREFIX: str = "stocky:rl"


settings = Settings()  # 只从环境读取（含 .env）

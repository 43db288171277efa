from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import configure_logging
from app.api.v1 import api_v1
from app.db.session import dispose_engine

logger = configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app.startup env=%s api_prefix=%s", settings.ENVIRONMENT, settings.API_PREFIX)
    yield
    # 关停时归还连接池
    dispose_engine()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# 嵌入式页面跑在 admin.shopify.com 的 iframe 里，白名单从环境读取（逗号分隔）：
# BACKEND_CORS_ORIGINS=http://localhost:5173,https://admin.shopify.com
origins = [o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(api_v1, prefix=settings.API_PREFIX)


# 根路径探活（Docker 健康检查用，不碰数据库）
@app.get("/")
def root():
    return {"app": settings.PROJECT_NAME, "env": settings.ENVIRONMENT, "ok": True}

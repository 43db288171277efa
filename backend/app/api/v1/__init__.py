
from fastapi import APIRouter

from .routes_health import router as health_router
from .markdown_report import router as markdown_report_router
from .restocking_report import router as restocking_report_router


# 嵌入式 App：鉴权由 Shopify Admin 前端会话负责，这里不挂登录依赖
api_v1 = APIRouter()
api_v1.include_router(health_router)
api_v1.include_router(markdown_report_router)
api_v1.include_router(restocking_report_router)

# 路由共用依赖：店铺解析 + 上游客户端工厂（测试里用 dependency_overrides 替换）

from typing import Callable, Iterator, List, Optional

from fastapi import Request

from app.core.config import settings
from app.integrations.shopify.shopify_client import ShopifyClient
from app.integrations.stocky.purchase_orders import StockyPurchaseOrdersAPI
from app.orchestration.errors import ConfigurationError


ShopifyClientFactory = Callable[[str], ShopifyClient]
StockyApiFactory = Callable[[str], StockyPurchaseOrdersAPI]


def resolve_shop(request: Request) -> Optional[str]:
    """?shop= 优先，其次 X-Shopify-Shop-Domain 头，最后回退到配置的默认店铺。"""
    shop = (request.query_params.get("shop") or "").strip()
    if not shop:
        shop = (request.headers.get("X-Shopify-Shop-Domain") or "").strip()
    return shop or settings.SHOPIFY_SHOP or None


def get_shopify_client_factory() -> Iterator[ShopifyClientFactory]:
    """本次请求里造出来的客户端在响应后统一 close（含异常路径）。"""
    created: List[ShopifyClient] = []

    def factory(shop: str) -> ShopifyClient:
        client = ShopifyClient(shop=shop)
        created.append(client)
        return client

    try:
        yield factory
    finally:
        for client in created:
            client.close()


def get_stocky_api_factory() -> Iterator[StockyApiFactory]:
    created: List[StockyPurchaseOrdersAPI] = []

    def factory(shop: str) -> StockyPurchaseOrdersAPI:
        api = StockyPurchaseOrdersAPI(shop)
        created.append(api)
        return api

    try:
        yield factory
    finally:
        for api in created:
            api.close()


MISSING_STOCKY_KEY_MESSAGE = "STOCKY_API_KEY is not set."


def require_stocky_api_key() -> None:
    """Stocky 相关 intent 的前置检查；没配 key 抛 ConfigurationError（路由转 500）。"""
    key = settings.STOCKY_API_KEY
    if hasattr(key, "get_secret_value"):
        key = key.get_secret_value()
    if not key:
        raise ConfigurationError(MISSING_STOCKY_KEY_MESSAGE)

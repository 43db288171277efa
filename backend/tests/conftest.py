
# 公共 fixture：内存 SQLite + 假上游对象
# 注意：环境变量必须在 import app.* 之前设置（settings 在 import 时读取）

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STOCKY_API_KEY", "test-stocky-key")
os.environ.setdefault("SHOPIFY_ADMIN_TOKEN", "shpat_test")
os.environ.setdefault("STOCKY_GLOBAL_RL_ENABLED", "false")

from typing import Any, Dict, Iterable, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.db.model  # noqa: F401  注册所有表
from app.db.base import Base
from app.integrations.shopify.shopify_client import OrdersPage, VariantScan


SHOP = "alpha.myshopify.com"
OTHER_SHOP = "beta.myshopify.com"


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,   # 同一个内存库在多线程（TestClient）间共享
        future=True,
    )
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


@pytest.fixture()
def db(session_factory) -> Iterable[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------- 假 Shopify ----------
def make_order(created_at: str, *lines) -> Dict[str, Any]:
    """lines: (variant_id, quantity) 元组；variant_id=None 表示没有变体的 line item。"""
    return {
        "createdAt": created_at,
        "lineItems": {
            "edges": [
                {"node": {"quantity": qty, "variant": ({"id": vid} if vid else None)}}
                for vid, qty in lines
            ]
        },
    }


def make_variant(vid: str, sku: str, *, title="Default", qty=5, cost="10.00", product_title="Tee",
                 vendor="Acme", product_type="Shirts", inventory_sku=None) -> Dict[str, Any]:
    return {
        "id": vid,
        "title": title,
        "sku": sku,
        "inventoryQuantity": qty,
        "product": {"title": product_title, "vendor": vendor, "productType": product_type},
        "inventoryItem": {"sku": inventory_sku, "unitCost": {"amount": cost, "currencyCode": "AUD"} if cost else None},
    }


class FakeShopify:
    """
    按 cursor 返回预设的订单页：cursor=None → 第 0 页，cursor="c1" → 第 1 页 ...
    记录每次调用，便于断言“没有请求上游”。
    """

    def __init__(self, order_pages: List[List[Dict[str, Any]]], variants: Optional[List[Dict[str, Any]]] = None,
                 *, truncated: bool = False) -> None:
        self.order_pages = order_pages
        self.variants = variants or []
        self.truncated = truncated
        self.calls: List[tuple] = []
        self.fail_on_cursor: Dict[Optional[str], Exception] = {}

    def fetch_orders_page(self, since_iso: str, cursor: Optional[str] = None) -> OrdersPage:
        self.calls.append(("orders", since_iso, cursor))
        if cursor in self.fail_on_cursor:
            raise self.fail_on_cursor[cursor]
        idx = 0 if cursor is None else int(cursor[1:])
        has_more = idx + 1 < len(self.order_pages)
        return OrdersPage(
            records=self.order_pages[idx],
            has_more=has_more,
            next_cursor=f"c{idx + 1}" if has_more else None,
        )

    def fetch_all_active_variants(self, max_items: Optional[int] = None) -> VariantScan:
        self.calls.append(("variants", max_items))
        return VariantScan(items=list(self.variants), truncated=self.truncated, max_items=max_items or 0)

    @property
    def upstream_calls(self) -> int:
        return len(self.calls)


# ---------- 假 Stocky ----------
def make_po(*items) -> Dict[str, Any]:
    """items: (sku, received_at) 元组。"""
    return {"purchase_items": [{"sku": sku, "received_at": at} for sku, at in items]}


class FakeStockyAPI:
    """按 offset 切片一份预设的采购单列表，行为与真实分页一致。"""

    def __init__(self, purchase_orders: List[Dict[str, Any]]) -> None:
        self.purchase_orders = purchase_orders
        self.calls: List[tuple] = []

    def fetch_page(self, *, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        self.calls.append((limit, offset))
        return self.purchase_orders[offset:offset + int(limit or 100)]


def no_sleep(_seconds: float) -> None:
    return None


# ---------- API ----------
class Upstreams:
    """路由里 client 工厂返回的假对象，测试按需替换。"""

    def __init__(self) -> None:
        self.shopify: Any = FakeShopify([[]])
        self.stocky: Any = FakeStockyAPI([])


@pytest.fixture()
def upstreams() -> Upstreams:
    return Upstreams()


@pytest.fixture()
def api_client(session_factory, upstreams):
    from fastapi.testclient import TestClient

    from app.api.deps import get_shopify_client_factory, get_stocky_api_factory
    from app.db.session import get_db
    from app.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_shopify_client_factory] = lambda: (lambda shop: upstreams.shopify)
    app.dependency_overrides[get_stocky_api_factory] = lambda: (lambda shop: upstreams.stocky)
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()

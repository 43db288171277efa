
"""面向 Admin GraphQL 的轻量 Client, 只放报表扫描相关的分页查询"""
from __future__ import annotations

import time, logging, requests
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from requests import HTTPError, Timeout, RequestException

from app.core.config import settings
from app.integrations.shopify.errors import ShopifyConfigError, ShopifyQueryError
from app.integrations.shopify.graphql_queries import (
    ACTIVE_VARIANTS,
    ACTIVE_VARIANTS_FILTER,
    ORDERS_SINCE,
    RESTOCKING_ORDERS,
    orders_since_filter,
)


logger = logging.getLogger(__name__)

def _default_query_error(name: str) -> str:
    return f"Could not read {name} from GraphQL response."


# ---------------- 基础：端点 & 认证 ----------------

# 统一GraphQL Admin API 入口: graphql.json 表示走 GraphQL Admin API
def _graphql_endpoint(shop: str) -> str:
    # 用 myshopify 域名 + 版本拼接 GraphQL Admin API 端点
    return f"https://{shop}/admin/api/{settings.SHOPIFY_API_VERSION}/graphql.json"


def _auth_headers(token: Any) -> dict:
    # 统一构造认证头。兼容 SecretStr 或 str。
    if hasattr(token, "get_secret_value"):
        token = token.get_secret_value()

    return {
        "Content-Type": "application/json",
        "X-Shopify-Access-Token": token or "",
        "User-Agent": "MarkdownReport/ShopifyClient (+python)",
    }


# ---------------- 返回结构 ----------------

@dataclass(frozen=True)
class OrdersPage:
    records: List[Dict[str, Any]]
    has_more: bool
    next_cursor: Optional[str]


@dataclass(frozen=True)
class VariantsPage:
    records: List[Dict[str, Any]]
    has_more: bool
    next_cursor: Optional[str]


@dataclass(frozen=True)
class VariantScan:
    """在售变体全量扫描结果；truncated=True 表示命中上限提前停止。"""
    items: List[Dict[str, Any]] = field(default_factory=list)
    truncated: bool = False
    max_items: int = 0


@dataclass(frozen=True)
class RestockingOrdersPage:
    records: List[Dict[str, Any]]
    has_more: bool
    next_cursor: Optional[str]
    cost: Dict[str, Any] = field(default_factory=dict)


# ---------------- 响应解析 ----------------

def _first_error_message(payload: Dict[str, Any]) -> Optional[str]:
    # 依次看 errors / data.errors / body.errors
    errors = payload.get("errors")
    if not errors and isinstance(payload.get("data"), dict):
        errors = payload["data"].get("errors")
    if not errors and isinstance(payload.get("body"), dict):
        errors = payload["body"].get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, dict) and first.get("message"):
            return str(first["message"])
        return str(first)
    if isinstance(errors, str) and errors:
        return errors
    return None


def extract_connection(payload: Dict[str, Any], name: str) -> Dict[str, Any]:
    """
    从 GraphQL 响应中取出指定 connection。
    兼容两种响应形态：{data: {...}} 与 {body: {data: {...}}}；
    取不到时抛 ShopifyQueryError（优先使用 errors[0].message）。
    """
    payload = payload if isinstance(payload, dict) else {}
    data = payload.get("data")
    if not isinstance(data, dict):
        body = payload.get("body")
        data = body.get("data") if isinstance(body, dict) else None

    conn = data.get(name) if isinstance(data, dict) else None
    if not isinstance(conn, dict):
        raise ShopifyQueryError(_first_error_message(payload) or _default_query_error(name))
    return conn


def _edges(conn: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [e for e in (conn.get("edges") or []) if isinstance(e, dict)]


def _page_parts(conn: Dict[str, Any]):
    edges = _edges(conn)
    page_info = conn.get("pageInfo") or {}
    has_more = bool(page_info.get("hasNextPage"))
    # 只有还有下一页才给 cursor：有 endCursor 用 endCursor，否则取最后一条 edge 的 cursor
    next_cursor = None
    if has_more:
        next_cursor = page_info.get("endCursor") or (edges[-1].get("cursor") if edges else None)
    records = [e.get("node") or {} for e in edges]
    return records, has_more, next_cursor


def _is_throttled(errors: Any) -> bool:
    if not isinstance(errors, list):
        return False
    for err in errors:
        code = ((err or {}).get("extensions") or {}).get("code") if isinstance(err, dict) else None
        if str(code or "").upper() == "THROTTLED":
            return True
    return False



class ShopifyClient:
    """按店铺调用 Admin GraphQL 的分页查询客户端。"""

    def __init__(
        self,
        shop: Optional[str] = None,
        token: Any = None,
        *,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.shop = shop or settings.SHOPIFY_SHOP
        self.token = token if token is not None else settings.SHOPIFY_ADMIN_TOKEN
        if not self.shop:
            raise ShopifyConfigError("Shopify shop domain is not configured.")
        self._session = session or requests.Session()
        self._sleep = sleep

    '''
    通用 GraphQL POST（带日志 + 重试 + 埋点) 调用 Admin GraphQL 的公共逻辑
        - 统一 headers、json 负载、超时、HTTP 错误与 GraphQL 顶层 errors 处理, 用 json= 发送
        - 返回完整响应 dict（上层用 extract_connection 取需要的节点）
        异常处理:
           1) HTTP 5xx/网络异常做指数退避重试，用尽后原样抛出（瞬时错误）
           2) HTTP 4xx 不重试（直接抛）
           3) 429 / THROTTLED 走 backoff 重试
           4) 其它顶层 GraphQL errors 抛 ShopifyQueryError
    '''
    def _post_graphql(
        self,
        query: str,
        variables: Optional[dict] = None,
        *,
        timeout: Optional[int] = None,
        op_name: str = "",
    ) -> dict:

        # 1. 参数准备
        timeout = timeout or settings.SHOPIFY_HTTP_TIMEOUT
        max_retries = max(0, int(settings.SHOPIFY_HTTP_RETRIES))
        backoff_s = max(50, int(settings.SHOPIFY_HTTP_BACKOFF_MS)) / 1000.0

        payload = {"query": query, "variables": variables or {}}
        # 不打印 query 全文；仅打 op_name / 变量键
        safe_vars_keys = list(payload["variables"].keys())

        for attempt in range(max_retries + 1):
            start = time.perf_counter()
            try:
                resp = self._session.post(
                    _graphql_endpoint(self.shop),
                    headers=_auth_headers(self.token),
                    json=payload,
                    timeout=timeout,
                )
                latency_ms = int((time.perf_counter() - start) * 1000)

                # HTTP 层错误
                try:
                    resp.raise_for_status()
                except HTTPError:
                    status = resp.status_code

                    if status == 429 and attempt < max_retries:
                        retry_after = resp.headers.get("Retry-After")
                        try:
                            sleep_s = max(0.1, float(retry_after))
                        except (TypeError, ValueError):
                            sleep_s = backoff_s * (2 ** attempt)
                        logger.warning(
                            "shopify.graphql.429_throttled op=%s latency_ms=%s attempt=%s/%s retry_after=%s",
                            op_name, latency_ms, attempt, max_retries, retry_after)
                        self._sleep(sleep_s)
                        continue

                    logger.warning(
                        "shopify.graphql.http_error op=%s status=%s latency_ms=%s attempt=%s/%s",
                        op_name, status, latency_ms, attempt, max_retries)

                    if 500 <= status < 600 and attempt < max_retries:
                        self._sleep(backoff_s * (2 ** attempt))
                        continue
                    raise

                # 解析 JSON
                try:
                    data = resp.json()
                except ValueError:
                    if attempt < max_retries:
                        logger.warning("shopify.graphql.non_json op=%s attempt=%s/%s", op_name, attempt, max_retries)
                        self._sleep(backoff_s * (2 ** attempt))
                        continue
                    raise ShopifyQueryError(f"GraphQL response is not JSON: status={resp.status_code}")

                errors = data.get("errors") if isinstance(data, dict) else None
                if errors:
                    # 成本限流：200 + THROTTLED，退避后重试
                    if _is_throttled(errors) and attempt < max_retries:
                        logger.warning("shopify.graphql.throttled op=%s attempt=%s/%s",
                            op_name, attempt, max_retries)
                        self._sleep(backoff_s * (2 ** attempt))
                        continue
                    logger.error(
                        "shopify.graphql.gql_errors op=%s latency_ms=%s attempt=%s/%s errors=%s",
                        op_name, latency_ms, attempt, max_retries, errors)
                    raise ShopifyQueryError(_first_error_message(data) or f"GraphQL top-level errors: {errors}")

                logger.info("shopify.graphql.ok op=%s latency_ms=%s attempt=%s vars=%s",
                    op_name, latency_ms, attempt, safe_vars_keys)
                return data

            except Timeout:
                latency_ms = int((time.perf_counter() - start) * 1000)
                logger.warning("shopify.graphql.timeout op=%s latency_ms=%s attempt=%s/%s",
                    op_name, latency_ms, attempt, max_retries)
                if attempt == max_retries:
                    raise
                self._sleep(backoff_s * (2 ** attempt))

            except HTTPError:
                raise

            except RequestException as e:
                latency_ms = int((time.perf_counter() - start) * 1000)
                logger.warning("shopify.graphql.request_exception op=%s latency_ms=%s attempt=%s/%s err=%s",
                    op_name, latency_ms, attempt, max_retries, type(e).__name__)
                if attempt == max_retries:
                    raise
                self._sleep(backoff_s * (2 ** attempt))

        raise ShopifyQueryError(f"GraphQL request failed after retries: op={op_name}")


    # ---------- Markdown report：订单窗口 ----------
    def fetch_orders_page(self, since_iso: str, cursor: Optional[str] = None) -> OrdersPage:
        """拉一页 created_at >= since_iso 的订单（正序）；cursor 为空表示从头开始。"""
        variables = {
            "q": orders_since_filter(since_iso),
            "after": cursor,
            "first": int(settings.REPORT_ORDERS_PAGE_SIZE),
            "lineItemsFirst": int(settings.REPORT_LINE_ITEMS_PAGE_SIZE),
        }
        data = self._post_graphql(ORDERS_SINCE, variables, op_name="ordersSince")
        records, has_more, next_cursor = _page_parts(extract_connection(data, "orders"))
        return OrdersPage(records=records, has_more=has_more, next_cursor=next_cursor)


    # ---------- Markdown report：在售变体 ----------
    def fetch_variants_page(self, cursor: Optional[str] = None, *, first: Optional[int] = None) -> VariantsPage:
        first = max(1, int(first or settings.REPORT_VARIANTS_PAGE_SIZE))
        variables = {"after": cursor, "q": ACTIVE_VARIANTS_FILTER, "first": first}
        data = self._post_graphql(ACTIVE_VARIANTS, variables, op_name="productVariants.active")
        records, has_more, next_cursor = _page_parts(extract_connection(data, "productVariants"))
        return VariantsPage(records=records, has_more=has_more, next_cursor=next_cursor)


    def fetch_all_active_variants(self, max_items: Optional[int] = None) -> VariantScan:
        """
        全量翻页拉取在售变体，命中 max_items 时立即停止并标记 truncated。
        每页请求量不超过剩余额度，上限之外的数据不会被请求。
        """
        max_items = int(max_items or settings.REPORT_MAX_VARIANTS)
        page_size = int(settings.REPORT_VARIANTS_PAGE_SIZE)
        items: List[Dict[str, Any]] = []
        cursor: Optional[str] = None

        while True:
            page = self.fetch_variants_page(cursor, first=min(page_size, max_items - len(items)))
            for node in page.records:
                items.append(node)
                if len(items) >= max_items:
                    logger.warning("shopify.variants.truncated shop=%s max_items=%s", self.shop, max_items)
                    return VariantScan(items=items, truncated=True, max_items=max_items)
            if not page.has_more or not page.next_cursor:
                return VariantScan(items=items, truncated=False, max_items=max_items)
            cursor = page.next_cursor


    # ---------- Restocking report：最近订单 + 仓位库存 ----------
    def fetch_restocking_orders_page(self, cursor: Optional[str] = None, *, first: int = 50) -> RestockingOrdersPage:
        data = self._post_graphql(RESTOCKING_ORDERS, {"cursor": cursor, "first": int(first)},
            op_name="orders.restocking")
        records, has_more, next_cursor = _page_parts(extract_connection(data, "orders"))
        cost = ((data.get("extensions") or {}).get("cost") or {}) if isinstance(data, dict) else {}
        return RestockingOrdersPage(records=records, has_more=has_more, next_cursor=next_cursor, cost=cost)


    def close(self) -> None:
        self._session.close()

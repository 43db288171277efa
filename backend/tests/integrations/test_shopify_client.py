
"""ShopifyClient：假 Session 返回预设 GraphQL 响应，验证分页/截断/错误形态。"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import pytest
import requests

from app.integrations.shopify import ShopifyClient, ShopifyQueryError


class FakeGqlResponse:
    def __init__(self, payload: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> None:
        self._payload = payload
        self.status_code = status_code
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        return self._payload


class FakeGqlSession:
    """responder(json_body) -> FakeGqlResponse；记录每次请求。"""

    def __init__(self, responder: Callable[[Dict[str, Any]], Any]) -> None:
        self.responder = responder
        self.posts: List[Dict[str, Any]] = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        return self.responder(json)

    def close(self):
        pass


def _client(responder, sleeps: Optional[List[float]] = None) -> ShopifyClient:
    return ShopifyClient(
        shop="alpha.myshopify.com",
        token="shpat_abc",
        session=FakeGqlSession(responder),
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
    )


def _orders_payload(cursors: List[str], has_next: bool) -> Dict[str, Any]:
    return {
        "data": {
            "orders": {
                "edges": [{"cursor": c, "node": {"createdAt": "2025-01-01T00:00:00Z", "lineItems": {"edges": []}}}
                          for c in cursors],
                "pageInfo": {"hasNextPage": has_next},
            }
        }
    }


def test_fetch_orders_page_sends_window_filter_and_returns_last_cursor():
    client = _client(lambda body: FakeGqlResponse(_orders_payload(["a", "b", "c"], True)))

    page = client.fetch_orders_page("2025-01-01T00:00:00.000Z", None)

    assert len(page.records) == 3
    assert page.has_more is True
    assert page.next_cursor == "c"

    sent = client._session.posts[0]
    assert sent["url"] == "https://alpha.myshopify.com/admin/api/2025-07/graphql.json"
    assert sent["headers"]["X-Shopify-Access-Token"] == "shpat_abc"
    variables = sent["json"]["variables"]
    assert variables["q"] == "created_at:>=2025-01-01T00:00:00.000Z"
    assert variables["after"] is None
    assert variables["first"] == 50
    assert variables["lineItemsFirst"] == 100


def test_fetch_orders_page_accepts_body_wrapped_response():
    wrapped = {"body": _orders_payload(["x"], False)}
    client = _client(lambda body: FakeGqlResponse(wrapped))

    page = client.fetch_orders_page("2025-01-01T00:00:00.000Z", "prev")
    assert [r["createdAt"] for r in page.records] == ["2025-01-01T00:00:00Z"]
    assert page.has_more is False
    assert page.next_cursor is None


def test_missing_connection_raises_query_error_with_default_message():
    client = _client(lambda body: FakeGqlResponse({"data": {}}))

    with pytest.raises(ShopifyQueryError) as exc_info:
        client.fetch_orders_page("2025-01-01T00:00:00.000Z")
    assert str(exc_info.value) == "Could not read orders from GraphQL response."


def test_top_level_errors_raise_query_error_with_first_message():
    payload = {"errors": [{"message": "Access denied for orders field."}]}
    client = _client(lambda body: FakeGqlResponse(payload))

    with pytest.raises(ShopifyQueryError) as exc_info:
        client.fetch_orders_page("2025-01-01T00:00:00.000Z")
    assert str(exc_info.value) == "Access denied for orders field."


def _variants_responder(total: int):
    """模拟 total 个在售变体，按 first/after 分页。"""
    def responder(body):
        variables = body["variables"]
        start = int(variables["after"] or 0)
        end = min(total, start + int(variables["first"]))
        edges = [{"cursor": str(i + 1), "node": {"id": f"gid://shopify/ProductVariant/{i}"}} for i in range(start, end)]
        return FakeGqlResponse({"data": {"productVariants": {"edges": edges, "pageInfo": {"hasNextPage": end < total}}}})
    return responder


def test_fetch_all_active_variants_stops_exactly_at_cap():
    client = _client(_variants_responder(7000))

    scan = client.fetch_all_active_variants()

    assert len(scan.items) == 5000
    assert scan.truncated is True
    assert scan.max_items == 5000
    assert len(client._session.posts) == 50


def test_fetch_all_active_variants_never_requests_beyond_remaining():
    client = _client(_variants_responder(1000))

    scan = client.fetch_all_active_variants(max_items=250)

    assert len(scan.items) == 250
    assert scan.truncated is True
    assert [p["json"]["variables"]["first"] for p in client._session.posts] == [100, 100, 50]
    assert client._session.posts[0]["json"]["variables"]["q"] == "status:active"


def test_fetch_all_active_variants_under_cap_is_not_truncated():
    client = _client(_variants_responder(230))

    scan = client.fetch_all_active_variants()
    assert len(scan.items) == 230
    assert scan.truncated is False


def test_5xx_is_retried_with_backoff_then_succeeds():
    responses = [FakeGqlResponse({}, status_code=502), FakeGqlResponse(_orders_payload(["a"], False))]
    sleeps: List[float] = []
    client = _client(lambda body: responses.pop(0), sleeps)

    page = client.fetch_orders_page("2025-01-01T00:00:00.000Z")
    assert len(page.records) == 1
    assert sleeps == [0.2]


def test_4xx_is_not_retried():
    sleeps: List[float] = []
    client = _client(lambda body: FakeGqlResponse({}, status_code=403), sleeps)

    with pytest.raises(requests.HTTPError):
        client.fetch_orders_page("2025-01-01T00:00:00.000Z")
    assert len(client._session.posts) == 1
    assert sleeps == []


def test_throttled_errors_are_retried():
    throttled = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}
    responses = [FakeGqlResponse(throttled), FakeGqlResponse(_orders_payload(["z"], False))]
    sleeps: List[float] = []
    client = _client(lambda body: responses.pop(0), sleeps)

    assert len(client.fetch_orders_page("2025-01-01T00:00:00.000Z").records) == 1
    assert len(sleeps) == 1


def test_restocking_page_exposes_cost_extension():
    payload = {
        "data": {"orders": {"edges": [], "pageInfo": {"hasNextPage": False, "endCursor": None}}},
        "extensions": {"cost": {"requestedQueryCost": 100, "throttleStatus": {"currentlyAvailable": 50, "restoreRate": 50}}},
    }
    client = _client(lambda body: FakeGqlResponse(payload))

    page = client.fetch_restocking_orders_page(None)
    assert page.records == []
    assert page.cost["requestedQueryCost"] == 100


def test_last_page_has_no_next_cursor_even_with_end_cursor():
    payload = {"data": {"orders": {"edges": [{"cursor": "a", "node": {}}],
                                   "pageInfo": {"hasNextPage": False, "endCursor": "a"}}}}
    client = _client(lambda body: FakeGqlResponse(payload))

    page = client.fetch_orders_page("2025-01-01T00:00:00.000Z")
    assert page.has_more is False
    assert page.next_cursor is None


def test_end_cursor_wins_over_edge_cursor_when_more_pages():
    payload = {"data": {"orders": {"edges": [{"cursor": "a", "node": {}}],
                                   "pageInfo": {"hasNextPage": True, "endCursor": "end"}}}}
    client = _client(lambda body: FakeGqlResponse(payload))

    assert client.fetch_orders_page("2025-01-01T00:00:00.000Z").next_cursor == "end"

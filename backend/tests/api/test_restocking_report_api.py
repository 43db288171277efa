
from app.integrations.shopify.errors import ShopifyQueryError
from app.integrations.shopify.shopify_client import RestockingOrdersPage

from conftest import SHOP


URL = f"/api/v1/restocking-report?shop={SHOP}"


class OnePageShopify:
    def __init__(self, orders):
        self.orders = orders

    def fetch_restocking_orders_page(self, cursor=None, *, first=50):
        return RestockingOrdersPage(records=self.orders, has_more=False, next_cursor=None)


def _order(created_at, sku, qty):
    return {"createdAt": created_at, "lineItems": {"edges": [{"node": {
        "quantity": qty,
        "product": {"title": "Tee", "vendor": "Acme", "productType": "Shirts"},
        "variant": {"title": "S", "sku": sku, "inventoryItem": {"inventoryLevels": {"edges": [
            {"node": {"location": {"name": "Sydney"}, "quantities": [{"name": "available", "quantity": 3}]}},
        ]}}},
    }}]}}


def test_restocking_report_groups_orders_in_window(api_client, upstreams):
    upstreams.shopify = OnePageShopify([
        _order("2025-02-10T00:00:00Z", "SKU-1", 2),
        _order("2025-02-11T00:00:00Z", "SKU-1", 1),
    ])

    resp = api_client.post(URL, json={"startDate": "2025-02-01T00:00", "endDate": "2025-02-28T23:59"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["ordersScanned"] == 2
    assert body["locationNames"] == ["Sydney"]
    assert body["rows"][0]["netItemsSold"] == 3
    assert body["rows"][0]["locations"] == {"Sydney": 3}
    assert body["startDate"] == "2025-02-01T00:00"


def test_bad_dates_are_400(api_client):
    resp = api_client.post(URL, json={"startDate": "2025-03-01T00:00", "endDate": "2025-02-01T00:00"})
    assert resp.status_code == 400


def test_upstream_query_error_is_502(api_client, upstreams):
    class Broken:
        def fetch_restocking_orders_page(self, cursor=None, *, first=50):
            raise ShopifyQueryError("Could not read orders from GraphQL response.")

    upstreams.shopify = Broken()
    resp = api_client.post(URL, json={"startDate": "2025-02-01T00:00", "endDate": "2025-02-28T23:59"})
    assert resp.status_code == 502
    assert resp.json()["detail"] == "Could not read orders from GraphQL response."


def test_health_endpoint(api_client):
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "database": "ok"}

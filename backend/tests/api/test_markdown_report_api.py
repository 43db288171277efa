
import pytest

from app.core.config import settings
from app.db.model.report_run import ReportRunState
from app.repository import report_run_repo, stocky_repo

from conftest import SHOP, FakeShopify, FakeStockyAPI, make_order, make_po, make_variant


URL = f"/api/v1/markdown-report?shop={SHOP}"


def _post(api_client, **form):
    return api_client.post(URL, data=form)


def test_report_start_runs_to_done_for_small_store(api_client, upstreams):
    upstreams.shopify = FakeShopify(
        [[make_order("2025-02-01T00:00:00Z", ("v1", 1))]],
        [make_variant("v1", "SKU-A"), make_variant("v2", "SKU-B")],
    )

    resp = _post(api_client, intent="reportStart", periodQtySoldLTE="0", lookBackDays="30")

    assert resp.status_code == 200
    body = resp.json()
    assert body["inputs"] == {"periodQtySoldLTE": 0, "lookBackDays": 30}
    report = body["report"]
    assert report["done"] is True
    assert [r["sku"] for r in report["rows"]] == ["SKU-B"]
    assert report["jobId"]


def test_missing_form_values_fall_back_to_defaults(api_client):
    body = _post(api_client, intent="reportStart").json()
    assert body["inputs"] == {"periodQtySoldLTE": 0, "lookBackDays": 60}
    assert body["report"]["done"] is True


@pytest.mark.parametrize("qty, days", [("-1", "60"), ("0", "0")])
def test_invalid_inputs_return_400(api_client, qty, days):
    resp = _post(api_client, intent="reportStart", periodQtySoldLTE=qty, lookBackDays=days)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid input values. Qty must be >= 0 and days must be > 0."


def test_unicode_digits_fall_back_instead_of_erroring(api_client):
    resp = _post(api_client, intent="reportStart", periodQtySoldLTE="²", lookBackDays="³0")

    assert resp.status_code == 200
    assert resp.json()["inputs"] == {"periodQtySoldLTE": 0, "lookBackDays": 60}


@pytest.mark.parametrize("days", ["99999999", "9" * 5000])
def test_huge_look_back_days_is_400_and_creates_no_run(api_client, session_factory, days):
    resp = _post(api_client, intent="reportStart", periodQtySoldLTE="5", lookBackDays=days)

    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Invalid input values.")
    with session_factory() as db:
        assert db.query(ReportRunState).count() == 0


def test_continue_without_job_id_is_400(api_client):
    resp = _post(api_client, intent="reportContinue")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing jobId."


def test_continue_unknown_job_returns_error_payload(api_client):
    resp = _post(api_client, intent="reportContinue", jobId="nope")
    assert resp.status_code == 200
    assert resp.json()["error"] == "Report job not found: nope"


def test_continue_polls_until_done(api_client, upstreams, monkeypatch):
    monkeypatch.setattr(settings, "REPORT_CHUNK_MAX_PAGES", 1)
    upstreams.shopify = FakeShopify(
        [[make_order("2025-02-01T00:00:00Z", ("v1", 1))], [make_order("2025-02-02T00:00:00Z", ("v1", 1))]],
        [make_variant("v1", "SKU-A")],
    )

    first = _post(api_client, intent="reportStart", periodQtySoldLTE="5").json()["report"]
    assert first["done"] is False

    final = _post(api_client, intent="reportContinue", jobId=first["jobId"]).json()["report"]
    assert final["done"] is True
    assert final["processedOrders"] == 2


def test_continue_while_leased_returns_busy(api_client, upstreams, session_factory, monkeypatch):
    monkeypatch.setattr(settings, "REPORT_CHUNK_MAX_PAGES", 1)
    upstreams.shopify = FakeShopify([[make_order("2025-02-01T00:00:00Z")], []])
    job_id = _post(api_client, intent="reportStart").json()["report"]["jobId"]

    with session_factory() as db:
        assert report_run_repo.acquire_lease(db, job_id)

    report = _post(api_client, intent="reportContinue", jobId=job_id).json()["report"]
    assert report["busy"] is True
    assert report["done"] is False
    assert report["suggestedNextPollMs"] == 600


def test_unknown_intent_is_400(api_client):
    resp = _post(api_client, intent="explode")
    assert resp.status_code == 400


def test_missing_shop_is_500(api_client, monkeypatch):
    monkeypatch.setattr(settings, "SHOPIFY_SHOP", None)
    resp = api_client.post("/api/v1/markdown-report", data={"intent": "reportStart"})
    assert resp.status_code == 500
    assert resp.json()["error"] == "Missing shop domain (needed for Stocky + caching)."


def test_shop_header_is_accepted(api_client):
    resp = api_client.post("/api/v1/markdown-report", data={"intent": "reportStart"},
                           headers={"X-Shopify-Shop-Domain": SHOP})
    assert resp.status_code == 200


# ---------- Stocky ----------
def test_full_sync_start_returns_chunk(api_client, upstreams, session_factory):
    upstreams.stocky = FakeStockyAPI([make_po(("SKU-1", "2025-01-01T00:00:00Z"))])

    body = _post(api_client, intent="stockyFullSync", mode="start").json()

    assert body["fullSync"]["done"] is True
    assert body["fullSync"]["itemsProcessed"] == 1
    with session_factory() as db:
        assert "SKU-1" in stocky_repo.load_receipts_by_skus(db, SHOP, ["SKU-1"])


def test_full_sync_busy_payload(api_client, session_factory):
    with session_factory() as db:
        assert stocky_repo.acquire_lease(db, SHOP)
        stocky_repo.advance_offset(db, SHOP, 300)

    sync = _post(api_client, intent="stockyFullSync", mode="continue").json()["fullSync"]
    assert sync["busy"] is True
    assert sync["done"] is False
    assert sync["message"] == "Full Sync in progress…"
    assert sync["offset"] == 300


def test_quick_sync_message(api_client, upstreams):
    upstreams.stocky = FakeStockyAPI([make_po(("SKU-1", "2025-01-01T00:00:00Z"), ("SKU-2", "2025-01-02T00:00:00Z"))])

    body = _post(api_client, intent="stockyQuickSync").json()
    assert body["message"] == "Quick Sync complete. Scanned 1 POs, updated 2 received items."


def test_stocky_failure_is_reported_as_error(api_client, upstreams):
    class Broken:
        def fetch_page(self, *, limit=None, offset=0):
            raise RuntimeError("boom")

    upstreams.stocky = Broken()
    body = _post(api_client, intent="stockyQuickSync").json()
    assert body["error"] == "Quick Sync failed: boom"


def test_stocky_intents_need_api_key(api_client, monkeypatch):
    monkeypatch.setattr(settings, "STOCKY_API_KEY", None)
    resp = _post(api_client, intent="stockyFullSync", mode="start")
    assert resp.status_code == 500
    assert resp.json()["error"] == "STOCKY_API_KEY is not set."

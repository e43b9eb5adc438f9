"""
HTTP surface: session handling, error mapping and role checks.

Users (users.json): user-1..3 are retailers for company-1..3, user-4 is a
sales rep, user-5 is an admin.
"""
import dataclasses

import pytest
from fastapi.testclient import TestClient

from wholesale_portal.api.main import app
from wholesale_portal.api.state import get_state, PortalState

from conftest import FixedClock


def test_health(client):
    assert client.get("/").json()["status"] == "online"

    status = client.get("/system/status").json()
    assert status["price_lists_loaded"] == 3
    assert status["quotes_count"] == 3


def test_missing_session_is_unauthorized(client):
    resp = client.get("/api/quotes")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}


def test_unknown_session_user_is_unauthorized(login):
    assert login("user-99").get("/api/quotes").status_code == 401


# Pricing

def test_calculate_uses_company_price_list(login):
    resp = login("user-1").post("/api/pricing/calculate", json={"productId": "prod-1", "msrp": 200, "quantity": 60})
    assert resp.status_code == 200
    data = resp.json()

    assert data["calculation"]["unit_price"] == 100.00
    assert data["calculation"]["total_price"] == 6000.00
    assert data["price_list"] == {"id": "pl-summit-2025", "name": "Summit Outdoor 2025 Contract", "base_tier": "tier-2"}
    assert data["user_context"] == {"company_id": "company-1", "pricing_tier": "tier-2", "role": "retailer"}


def test_calculate_without_price_list_uses_company_tier(login):
    data = login("user-3").post(
        "/api/pricing/calculate", json={"productId": "prod-3", "msrp": 150, "quantity": 1}
    ).json()

    assert data["calculation"]["unit_price"] == 75.00
    assert data["price_list"] is None


def test_calculate_rejects_bad_input(login):
    client = login("user-1")
    assert client.post("/api/pricing/calculate", json={"productId": "prod-1"}).status_code == 400
    assert client.post(
        "/api/pricing/calculate", json={"productId": "prod-1", "msrp": -1, "quantity": 1}
    ).status_code == 400
    assert client.post(
        "/api/pricing/calculate", json={"productId": "prod-1", "msrp": 10, "quantity": 1, "companyId": "company-2"}
    ).status_code == 403


def test_calculate_rejects_zero_quantity_and_msrp(login):
    client = login("user-1")
    for body in (
        {"productId": "prod-1", "msrp": 200, "quantity": 0},
        {"productId": "prod-1", "msrp": 200, "quantity": -3},
        {"productId": "prod-1", "msrp": 0, "quantity": 5},
    ):
        resp = client.post("/api/pricing/calculate", json=body)
        assert resp.status_code == 400, f"{body} should be rejected"
        assert "error" in resp.json()

    assert client.get(
        "/api/pricing/calculate", params={"productId": "prod-1", "msrp": 200, "quantity": 0}
    ).status_code == 400
    assert client.get(
        "/api/pricing/calculate", params={"productId": "prod-1", "msrp": 0, "quantity": 1}
    ).status_code == 400
    assert client.post(
        "/api/pricing/bulk", json={"items": [{"productId": "prod-1", "quantity": 0}]}
    ).status_code == 400


def test_price_breakdown_get(login):
    client = login("user-1")
    assert client.get("/api/pricing/calculate", params={"productId": "prod-1"}).status_code == 400

    data = client.get("/api/pricing/calculate", params={"productId": "prod-1", "msrp": 200, "quantity": 12}).json()
    assert data["calculation"]["unit_price"] == 110.00
    assert [vb["min_qty"] for vb in data["volume_breaks"]] == [10, 50]
    assert "Volume break (10+ units)" in data["breakdown"]


def test_bulk_pricing_with_closeout_minimum(login):
    data = login("user-2").post("/api/pricing/bulk", json={
        "items": [{"productId": "prod-4", "quantity": 12}],
        "orderType": "closeout",
    }).json()

    assert data["calculations"][0]["unit_price"] == 14.00
    assert data["order_total"] == 168.00
    assert data["minimum_order"] == {"is_valid": False, "minimum_required": 500.0, "shortfall": 332.0}


def test_bulk_pricing_prebook_deposit(login):
    data = login("user-1").post("/api/pricing/bulk", json={
        "items": [{"productId": "prod-1", "quantity": 10}, {"productId": "prod-2", "quantity": 24}],
        "orderType": "prebook",
    }).json()

    assert data["order_total"] == 2108.00
    assert data["deposit"] == {"deposit_amount": 632.40, "remaining_balance": 1475.60}
    assert data["minimum_order"]["minimum_required"] == 2500.0


def test_bulk_pricing_unknown_product(login):
    resp = login("user-1").post("/api/pricing/bulk", json={"items": [{"productId": "prod-404", "quantity": 1}]})
    assert resp.status_code == 400


# Quotes

def test_quote_list_is_role_filtered(login):
    retailer = login("user-1").get("/api/quotes").json()
    assert [q["id"] for q in retailer["quotes"]] == ["quote-seed-1"]

    rep = login("user-4").get("/api/quotes").json()
    assert [q["id"] for q in rep["quotes"]] == ["quote-seed-1", "quote-seed-3"]
    assert rep["summary"]["total_quotes"] == 2

    admin = login("user-5").get("/api/quotes", params={"status": "draft,accepted"}).json()
    assert [q["id"] for q in admin["quotes"]] == ["quote-seed-2", "quote-seed-3"]


def test_retailer_creates_rfq_for_own_company(login):
    resp = login("user-1").post("/api/quotes", json={
        "items": [{"productId": "prod-1", "quantity": 20}],
        "sendImmediately": True,
    })
    assert resp.status_code == 201
    quote = resp.json()["quote"]

    assert quote["type"] == "rfq"
    assert quote["company_id"] == "company-1"
    assert quote["contact_id"] == "user-1"
    assert quote["status"] == "draft", "Retailers cannot send quotes"
    assert quote["pricing"]["total"] == 2200.00


def test_retailer_cannot_quote_for_another_company(login):
    resp = login("user-1").post("/api/quotes", json={
        "companyId": "company-2", "items": [{"productId": "prod-1", "quantity": 1}],
    })
    assert resp.status_code == 403


def test_rep_creates_and_sends_quote(login):
    client = login("user-4")
    assert client.post("/api/quotes", json={"items": [{"productId": "prod-1", "quantity": 1}]}).status_code == 400

    quote = client.post("/api/quotes", json={
        "companyId": "company-3",
        "items": [{"productId": "prod-3", "quantity": 4}],
        "sendImmediately": True,
    }).json()["quote"]
    assert quote["type"] == "proactive"
    assert quote["status"] == "sent"
    assert quote["assigned_to"] == "user-4"
    assert quote["timeline"][0]["type"] == "sent"


def test_retailer_get_marks_sent_quote_viewed(login):
    quote = login("user-1").get("/api/quotes/quote-seed-1").json()["quote"]
    assert quote["status"] == "viewed"

    assert login("user-2").get("/api/quotes/quote-seed-1").status_code == 403
    assert login("user-5").get("/api/quotes/quote-404").status_code == 404


def test_quote_document_download(login):
    resp = login("user-1").get("/api/quotes/quote-seed-1/document")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert resp.headers["content-disposition"] == 'attachment; filename="QUOTE-2025-001.html"'

    html = resp.text
    assert "QUOTE-2025-001" in html
    assert "Summit Outdoor Supply" in html
    assert "Alpine Trail Jacket" in html
    assert "$2,200.00" in html
    assert "NET 30" in html
    assert "FOB DESTINATION" in html
    assert "July 1, 2025" in html

    # Downloading the document is not the same as opening the quote
    assert login("user-4").get("/api/quotes/quote-seed-1").json()["quote"]["status"] == "sent"


def test_quote_document_follows_view_rules(client, login):
    assert client.get("/api/quotes/quote-seed-1/document").status_code == 401
    assert login("user-2").get("/api/quotes/quote-seed-1/document").status_code == 403
    assert login("user-5").get("/api/quotes/quote-404/document").status_code == 404
    assert login("user-5").get("/api/quotes/quote-seed-1/document").status_code == 200

    html = login("user-2").get("/api/quotes/quote-seed-2/document").text
    assert "Sam Ortiz" in html
    assert "orders@riverbendboutique.com" in html


def test_quote_document_escapes_user_text(login):
    client = login("user-4")
    quote = client.post("/api/quotes", json={
        "companyId": "company-1",
        "items": [{"productId": "prod-3", "quantity": 2}],
        "notes": "<script>alert(1)</script>",
    }).json()["quote"]

    html = client.get(f"/api/quotes/{quote['id']}/document").text
    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html


def test_retailer_patch_limited_to_actions(login):
    client = login("user-1")
    assert client.patch("/api/quotes/quote-seed-1", json={"action": "send"}).status_code == 403
    assert client.patch("/api/quotes/quote-seed-1", json={"status": "accepted"}).status_code == 403

    resp = client.patch("/api/quotes/quote-seed-1", json={"action": "accept"})
    assert resp.status_code == 200
    assert resp.json()["quote"]["status"] == "accepted"
    assert resp.json()["quote"]["timeline"][-1]["details"] == "Customer accepted the quote"


def test_retailer_requests_revision(login):
    resp = login("user-1").patch(
        "/api/quotes/quote-seed-1", json={"action": "request-revision", "reason": "Need 30 units"}
    )
    assert resp.json()["quote"]["status"] == "revised"

    resent = login("user-4").patch("/api/quotes/quote-seed-1", json={"action": "send"})
    assert resent.json()["quote"]["status"] == "sent"


def test_invalid_transition_is_bad_request(login):
    resp = login("user-5").patch("/api/quotes/quote-seed-2", json={"status": "accepted"})
    assert resp.status_code == 400
    assert "Cannot move quote from 'draft' to 'accepted'" in resp.json()["error"]


def test_unknown_action_and_empty_patch(login):
    client = login("user-5")
    assert client.patch("/api/quotes/quote-seed-1", json={"action": "archive"}).status_code == 400
    assert client.patch("/api/quotes/quote-seed-1", json={}).status_code == 400


def test_rep_cannot_touch_unassigned_quote(login):
    assert login("user-4").patch("/api/quotes/quote-seed-2", json={"action": "send"}).status_code == 403


def test_rep_revises_quote(login):
    resp = login("user-4").patch("/api/quotes/quote-seed-1", json={
        "revision": {"items": [{"productId": "prod-1", "quantity": 50}], "notes": "Bigger order"},
    })
    quote = resp.json()["quote"]

    assert quote["status"] == "revised"
    assert quote["current_version"] == 2
    assert quote["items"][0]["unit_price"] == 98.00
    assert len(quote["versions"]) == 1


def test_delete_only_drafts_by_creator_or_admin(login):
    assert login("user-5").delete("/api/quotes/quote-seed-1").status_code == 400

    resp = login("user-2").delete("/api/quotes/quote-seed-2")
    assert resp.status_code == 200
    assert resp.json()["quote"]["status"] == "cancelled"


def test_convert_role_and_status_checks(login):
    assert login("user-4").post("/api/quotes/quote-seed-3/convert").status_code == 403
    assert login("user-5").post("/api/quotes/quote-seed-1/convert").status_code == 400

    resp = login("user-3").post("/api/quotes/quote-seed-3/convert")
    assert resp.status_code == 200
    data = resp.json()
    assert data["order"]["number"] == "ORD-2025-00001"
    assert data["quote"]["status"] == "converted"
    assert data["quote"]["converted_order_id"] == data["order"]["id"]


def test_expiring_endpoints(login, clock):
    clock.advance(days=13)
    client = login("user-4")
    assert [q["id"] for q in client.get("/api/quotes/expiring").json()["quotes"]] == ["quote-seed-1"]
    assert client.post("/api/quotes/expiring").status_code == 403

    clock.advance(days=5)
    assert login("user-5").post("/api/quotes/expiring").json() == {"expired": 1}


def test_check_expiration_requires_cron_secret(settings):
    state = PortalState(dataclasses.replace(settings, cron_secret="s3cret"), clock=FixedClock())
    app.dependency_overrides[get_state] = lambda: state
    try:
        with TestClient(app) as client:
            assert client.post("/api/quotes/check-expiration").status_code == 401
            assert client.post(
                "/api/quotes/check-expiration", headers={"X-Cron-Secret": "wrong"}
            ).status_code == 401

            resp = client.post("/api/quotes/check-expiration", headers={"X-Cron-Secret": "s3cret"})
            assert resp.status_code == 200
            assert resp.json() == {
                "success": True,
                "expired": 0,
                "expiring_soon": 0,
                "expiring": [],
                "message": "Expired 0 quotes, 0 expiring soon",
            }
    finally:
        app.dependency_overrides.clear()


def test_check_expiration_reports_counts(client, login, clock):
    clock.advance(days=13)
    data = client.post("/api/quotes/check-expiration").json()
    assert data["success"] is True
    assert data["expired"] == 0
    assert data["expiring_soon"] == 1
    assert [q["number"] for q in data["expiring"]] == ["QUOTE-2025-001"]
    assert data["message"] == "Expired 0 quotes, 1 expiring soon"

    clock.advance(days=5)
    data = client.post("/api/quotes/check-expiration").json()
    assert (data["expired"], data["expiring_soon"]) == (1, 0)
    assert login("user-5").get("/api/quotes/quote-seed-1").json()["quote"]["status"] == "expired"


def test_templates_are_staff_only(login):
    assert login("user-1").get("/api/quotes/templates").status_code == 403

    client = login("user-4")
    assert [t["id"] for t in client.get("/api/quotes/templates").json()["templates"]] == ["template-1"]
    assert client.post("/api/quotes/templates", json={"name": "No quote"}).status_code == 400

    created = client.post("/api/quotes/templates", json={"name": "Jackets", "quoteId": "quote-seed-1"})
    assert created.status_code == 201
    assert created.json()["template"]["items"] == [{"product_id": "prod-1", "quantity": 20}]

    quote = client.post("/api/quotes/templates/template-1/quotes", json={"companyId": "company-1"}).json()["quote"]
    assert quote["terms"]["payment_terms"] == "net-60"


# Products

def test_products_include_customer_price(login):
    products = {p["id"]: p for p in login("user-1").get("/api/products").json()["products"]}

    assert products["prod-2"]["your_price"] == 42.00
    assert products["prod-3"]["your_price"] == 90.00


def test_product_writes_are_admin_only(login):
    body = {"operations": [{"productId": "prod-3", "add": ["featured"]}]}
    assert login("user-4").post("/api/products/tags", json=body).status_code == 403

    client = login("user-5")
    assert client.post("/api/products/tags", json=body).json() == {"updated": 1}
    assert client.get("/api/products", params={"tag": "featured"}).json()["total"] == 1


def test_bulk_edit_and_variants(login):
    client = login("user-5")
    resp = client.post("/api/products/bulk", json={"productIds": ["prod-4"], "updates": {"msrp": 30, "orderTypes": ["at-once"]}})
    assert resp.json() == {"updated": 1}
    product = client.get("/api/products/prod-4").json()["product"]
    assert product["msrp"] == 30.0
    assert product["order_types"] == ["at-once"]

    assert client.post("/api/products/bulk", json={"productIds": ["prod-404"], "updates": {"name": "x"}}).status_code == 400
    resp = client.post("/api/products/bulk", json={"productIds": ["prod-1"], "updates": {"msrp": "abc"}})
    assert resp.status_code == 400
    assert resp.json() == {"error": "MSRP must be a non-negative number"}

    client.post("/api/products/variants", json={"productId": "prod-2", "remove": ["var-2a"]})
    assert client.get("/api/products/prod-2").json()["product"]["variants"] == []


def test_msrp_override_flows_into_quotes(login):
    login("user-5").post("/api/products/bulk", json={"productIds": ["prod-3"], "updates": {"msrp": 100}})
    quote = login("user-3").post("/api/quotes", json={"items": [{"productId": "prod-3", "quantity": 2}]}).json()["quote"]

    assert quote["items"][0]["unit_price"] == 50.00

"""
HTTP surface: staff resolution, JSON error shapes and the procurement flow
end to end through the API.
"""

import io

import pytest
from openpyxl import load_workbook


def _headers(staff):
    return {"X-Staff-Id": str(staff.id)}


# =============================================================================
# STAFF RESOLUTION (401)
# =============================================================================


class TestStaffResolution:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/forecasts"),
            ("GET", "/api/supplier-requests"),
            ("POST", "/api/supplier-requests"),
            ("GET", "/api/purchase-orders"),
            ("GET", "/api/goods-received"),
            ("GET", "/api/supplier-invoices"),
            ("GET", "/api/inventory/products"),
            ("GET", "/api/inventory/export"),
        ],
    )
    def test_requires_staff_header(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_malformed_header(self, client, db_session):
        resp = client.get("/api/forecasts", headers={"X-Staff-Id": "abc"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid staff id"

    def test_inactive_staff(self, client, manager, db_session):
        manager.is_active = False
        db_session.commit()
        resp = client.get("/api/forecasts", headers=_headers(manager))
        assert resp.status_code == 401


def test_health_needs_no_staff(client, db_session):
    resp = client.get("/api/system/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "ok"
    assert body["database"]["status"] == "healthy"


# =============================================================================
# ERROR SHAPES
# =============================================================================


class TestErrorShapes:
    def test_permission_denied_is_403(self, client, cashier, main_branch):
        resp = client.get("/api/forecasts", headers=_headers(cashier))
        assert resp.status_code == 403
        assert resp.get_json()["type"] == "PERMISSION_DENIED"

    def test_validation_is_400(self, client, owner, main_branch):
        resp = client.get("/api/forecasts?window=45", headers=_headers(owner))
        assert resp.status_code == 400
        assert resp.get_json()["type"] == "VALIDATION_ERROR"

    def test_not_found_is_404(self, client, owner, main_branch):
        resp = client.get("/api/purchase-orders/9999", headers=_headers(owner))
        assert resp.status_code == 404
        assert resp.get_json()["type"] == "NOT_FOUND"

    def test_missing_field(self, client, manager, main_branch):
        resp = client.post("/api/supplier-requests", json={"branch_id": main_branch.id}, headers=_headers(manager))
        assert resp.status_code == 400
        assert "Missing required field" in resp.get_json()["error"]

    def test_unknown_route_is_json(self, client, db_session):
        resp = client.get("/api/nowhere")
        assert resp.status_code == 404
        assert resp.get_json()["type"] == "NOT_FOUND"


# =============================================================================
# PROCUREMENT FLOW
# =============================================================================


def test_request_to_paid_invoice(client, owner, accountant, main_branch, supplier, make_product, notifier):
    owner_h = _headers(owner)
    product = make_product(stock=2, cost=400)

    resp = client.post("/api/supplier-requests", json={
        "branch_id": main_branch.id,
        "product_id": product.id,
        "supplier_id": supplier.id,
        "requested_quantity": 10,
        "communication_methods": ["Email"],
    }, headers=owner_h)
    assert resp.status_code == 201
    request_id = resp.get_json()["supplier_request"]["id"]
    assert resp.get_json()["supplier_request"]["status"] == "Sent"

    resp = client.post(f"/api/supplier-requests/{request_id}/convert", json={}, headers=owner_h)
    assert resp.status_code == 201
    po = resp.get_json()["purchase_order"]
    assert (po["po_number"], po["status"]) == ("PO-001", "Draft")

    resp = client.post(f"/api/supplier-requests/{request_id}/convert", json={}, headers=owner_h)
    assert resp.status_code == 409
    assert resp.get_json()["type"] == "INVALID_STATE"

    resp = client.post(f"/api/purchase-orders/{po['id']}/send", json={"methods": ["Email"]}, headers=owner_h)
    assert resp.get_json()["purchase_order"]["status"] == "Sent"
    resp = client.post(f"/api/purchase-orders/{po['id']}/approve", headers=owner_h)
    assert resp.get_json()["purchase_order"]["status"] == "Approved"

    resp = client.post("/api/goods-received", json={
        "purchase_order_id": po["id"],
        "lines": [{"product_id": product.id, "received_quantity": 25}],
    }, headers=owner_h)
    assert resp.status_code == 201
    grn = resp.get_json()["goods_received_note"]
    assert grn["lines"][0]["received_quantity"] == 10

    resp = client.post(f"/api/goods-received/{grn['id']}/confirm", headers=owner_h)
    assert resp.status_code == 200
    assert resp.get_json()["products_updated"] == [product.id]
    assert client.post(f"/api/goods-received/{grn['id']}/confirm", headers=owner_h).status_code == 409

    acct_h = _headers(accountant)
    resp = client.post("/api/supplier-invoices", json={
        "grn_id": grn["id"],
        "invoice_number": "FF-2210",
        "invoice_date": "2026-10-18",
        "due_date": "2026-11-17",
        "tax_cents": 400,
    }, headers=acct_h)
    assert resp.status_code == 201
    invoice = resp.get_json()["supplier_invoice"]
    assert invoice["total_cents"] == 4400

    resp = client.post(f"/api/supplier-invoices/{invoice['id']}/approve", headers=acct_h)
    assert resp.status_code == 200
    assert resp.get_json()["supplier_invoice"]["linked_expense_id"] is not None

    resp = client.get("/api/supplier-invoices/outstanding", headers=acct_h)
    assert resp.get_json()["outstanding_cents"] == 4400

    client.post(f"/api/supplier-invoices/{invoice['id']}/pay", headers=acct_h)
    resp = client.get("/api/supplier-invoices/outstanding", headers=acct_h)
    assert resp.get_json()["outstanding_cents"] == 0


def test_forecast_report_over_http(client, manager, main_branch, make_product):
    make_product(stock=0)
    resp = client.get("/api/forecasts?window=7", headers=_headers(manager))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["window_days"] == 7
    assert body["counts"]["Urgent"] == 1
    assert body["forecasts"][0]["sku"] == "RICE-5"


def test_lead_time_override_round_trip(client, owner, make_product):
    product = make_product()
    h = _headers(owner)
    resp = client.put("/api/forecasts/lead-times", json={
        "scope": "product", "target_id": product.id, "lead_time_days": 4,
    }, headers=h)
    assert resp.status_code == 200
    assert client.delete(f"/api/forecasts/lead-times/product/{product.id}", headers=h).status_code == 200
    assert client.delete(f"/api/forecasts/lead-times/product/{product.id}", headers=h).status_code == 404


# =============================================================================
# SPREADSHEETS
# =============================================================================


class TestSpreadsheets:
    def test_import_upload(self, client, manager, main_branch):
        sheet = b"Product Name,SKU,Stock Quantity,Cost Price\nFlour,FLOUR,8,2.25\n"
        resp = client.post(
            "/api/inventory/import",
            data={"file": (io.BytesIO(sheet), "stock.csv")},
            headers=_headers(manager),
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.get_json()["created"] == ['Row 2: Created product "Flour" (FLOUR)']

    def test_import_requires_file(self, client, manager, main_branch):
        resp = client.post("/api/inventory/import", data={}, headers=_headers(manager))
        assert resp.status_code == 400

    def test_import_rejects_unknown_format(self, client, manager, main_branch):
        resp = client.post(
            "/api/inventory/import",
            data={"file": (io.BytesIO(b"x"), "stock.pdf")},
            headers=_headers(manager),
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Unsupported file format"

    def test_export_download(self, client, owner, make_product):
        make_product("Flour", "FLOUR", stock=3)
        resp = client.get("/api/inventory/export", headers=_headers(owner))
        assert resp.status_code == 200
        assert resp.headers["Content-Disposition"].startswith("attachment;")
        rows = list(load_workbook(io.BytesIO(resp.data)).active.iter_rows(values_only=True))
        assert rows[1][0] == "Flour"

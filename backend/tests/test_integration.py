"""End-to-end tests through the FastAPI application."""
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from pharmadist.core.config import settings
from pharmadist.main import app

TODAY = date.today().isoformat()


@pytest.fixture
def client(session):
    with TestClient(app) as c:
        yield c


def _customer(client, code="C100", **extra):
    body = {"code": code, "name": f"Pharmacy {code}", "town": "Multan", **extra}
    resp = client.post("/api/customers", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def _salesman(client, code="sm1", rate=5.0):
    resp = client.post("/api/salesmen", json={"code": code, "name": "Imran", "commission_rate": rate})
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def _invoice(client, customer_id, salesman_id=None, price=1500.0, confirm=True):
    resp = client.post(
        "/api/invoices",
        json={
            "invoice_type": "sales",
            "customer_id": customer_id,
            "salesman_id": salesman_id,
            "advance_tax_rate": 0,
            "lines": [{"item_name": "Flagyl 400mg", "quantity": 1, "unit_price": price, "gst_rate": 0}],
        },
    )
    assert resp.status_code == 201, resp.text
    invoice = resp.json()["data"]
    if confirm:
        resp = client.post(f"/api/invoices/{invoice['id']}/confirm")
        assert resp.status_code == 200, resp.text
        invoice = resp.json()["data"]
    return invoice


class TestSystem:
    def test_root_and_health(self, client):
        assert client.get("/").json()["docs"] == "/docs"
        health = client.get("/api/health").json()
        assert health["status"] == "ok"
        assert health["db"] == "ok"

    def test_settings(self, client):
        data = client.get("/api/settings").json()
        assert data["currency"] == "PKR"
        assert data["auth_enabled"] is False
        assert data["watcher_active"] is False

    def test_unknown_route(self, client):
        resp = client.get("/api/nothing-here")
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "ROUTE_NOT_FOUND"


class TestErrorEnvelope:
    def test_not_found(self, client):
        resp = client.get("/api/customers/999")
        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["message"] == "Customer 999 not found"

    def test_duplicate_code(self, client):
        _customer(client, "C100")
        resp = client.post("/api/customers", json={"code": "c100", "name": "Another"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "DUPLICATE_ENTRY"

    def test_request_validation(self, client):
        resp = client.post("/api/customers", json={"code": "", "name": "X"})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert any(d["field"] == "code" for d in error["details"])

    def test_business_rule(self, client):
        customer = _customer(client)
        invoice = _invoice(client, customer["id"])
        resp = client.post(f"/api/invoices/{invoice['id']}/confirm")
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "BUSINESS_RULE_VIOLATION"


class TestMasterData:
    def test_customer_crud(self, client):
        customer = _customer(client, "C200", credit_limit=5000)
        resp = client.put(
            f"/api/customers/{customer['id']}",
            json={"code": "C200", "name": "Shifa Pharmacy", "town": "Multan", "credit_limit": 8000},
        )
        assert resp.json()["data"]["name"] == "Shifa Pharmacy"

        listing = client.get("/api/customers", params={"search": "shifa"}).json()["data"]
        assert listing["total"] == 1

        resp = client.delete(f"/api/customers/{customer['id']}")
        assert resp.json()["message"] == "Customer deactivated"
        listing = client.get("/api/customers", params={"active": True}).json()["data"]
        assert listing["total"] == 0

    def test_salesman_code_upper_cased(self, client):
        salesman = _salesman(client, "north-1")
        assert salesman["code"] == "NORTH-1"
        resp = client.put(f"/api/salesmen/{salesman['id']}", json={"commission_rate": 7.5})
        assert resp.json()["data"]["commission_rate"] == 7.5

    def test_seeded_accounts(self, client):
        accounts = client.get("/api/accounts").json()["data"]
        assert {a["code"] for a in accounts} >= {"1000", "4000", "5000", "5100"}


class TestInvoiceFlow:
    def test_confirm_pay_and_ledger(self, client):
        customer = _customer(client)
        invoice = _invoice(client, customer["id"], price=2000)
        assert invoice["status"] == "confirmed"
        assert len(invoice["lines"]) == 1

        ledger = client.get(f"/api/invoices/{invoice['id']}/ledger").json()["data"]
        assert len(ledger["entries"]) == 2
        assert ledger["net"] == 0.0

        resp = client.post(f"/api/invoices/{invoice['id']}/mark-paid", json={"amount": 500})
        assert resp.json()["message"] == "Invoice partial"
        assert resp.json()["data"]["paid_amount"] == 500.0

        balance = client.get(f"/api/ledger/balance/Customer/{customer['id']}").json()["data"]
        assert balance["balance"] == 2000.0

    def test_cancel_reverses(self, client):
        customer = _customer(client)
        invoice = _invoice(client, customer["id"])
        resp = client.post(f"/api/invoices/{invoice['id']}/cancel", json={"reason": "Returned"})
        assert resp.json()["data"]["status"] == "cancelled"
        balance = client.get(f"/api/ledger/balance/Customer/{customer['id']}").json()["data"]
        assert balance["balance"] == 0.0

    def test_draft_delete(self, client):
        customer = _customer(client)
        invoice = _invoice(client, customer["id"], confirm=False)
        assert client.delete(f"/api/invoices/{invoice['id']}").status_code == 200
        assert client.get(f"/api/invoices/{invoice['id']}").status_code == 404


class TestLedgerApi:
    def test_double_entry_and_reverse(self, client):
        customer = _customer(client)
        accounts = client.get("/api/accounts").json()["data"]
        sales = next(a for a in accounts if a["code"] == "4000")
        resp = client.post(
            "/api/ledger/double-entry",
            json={
                "debit": {"account_type": "Customer", "account_id": customer["id"]},
                "credit": {"account_type": "Account", "account_id": sales["id"]},
                "amount": 300,
                "description": "Opening balance",
                "reference_type": "opening_balance",
                "reference_id": customer["id"],
            },
        )
        assert resp.status_code == 201, resp.text
        assert len(resp.json()["data"]) == 2

        resp = client.post(
            "/api/ledger/reverse",
            json={"reference_type": "opening_balance", "reference_id": customer["id"], "reason": "Typo"},
        )
        assert len(resp.json()["data"]) == 2
        ref = client.get(f"/api/ledger/reference/opening_balance/{customer['id']}").json()["data"]
        assert ref["net"] == 0.0

        tb = client.get("/api/reports/trial-balance").json()["data"]
        assert tb["is_balanced"] is True

    def test_receipt_entries_not_reversible_by_hand(self, client):
        customer = _customer(client)
        invoice = _invoice(client, customer["id"], price=500)
        resp = client.post(
            "/api/cash/receipts",
            json={
                "customer_id": customer["id"],
                "amount": 500,
                "allocations": [{"invoice_id": invoice["id"], "amount": 500}],
            },
        )
        receipt = resp.json()["data"]

        resp = client.post(
            "/api/ledger/reverse",
            json={"reference_type": "cash_receipt", "reference_id": receipt["id"], "reason": "Oops"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "BUSINESS_RULE_VIOLATION"

        resp = client.post(f"/api/cash/receipts/{receipt['id']}/cancel", json={"reason": "Oops"})
        assert resp.status_code == 200, resp.text
        assert client.get(f"/api/invoices/{invoice['id']}").json()["data"]["status"] == "confirmed"

    def test_bad_account_type(self, client):
        resp = client.post(
            "/api/ledger/double-entry",
            json={
                "debit": {"account_type": "Bank", "account_id": 1},
                "credit": {"account_type": "Account", "account_id": 1},
                "amount": 10,
                "description": "x",
            },
        )
        assert resp.status_code == 400


class TestCashAndCommission:
    def test_commission_report(self, client):
        customer = _customer(client)
        salesman = _salesman(client, rate=5.0)
        _invoice(client, customer["id"], salesman["id"], price=1500)
        resp = client.post(
            "/api/cash/receipts",
            json={"customer_id": customer["id"], "salesman_id": salesman["id"], "amount": 2000},
        )
        assert resp.status_code == 201, resp.text
        receipt = resp.json()["data"]
        client.post(f"/api/cash/receipts/{receipt['id']}/clear", json={})

        params = {"start_date": (date.today() - timedelta(days=7)).isoformat(), "end_date": TODAY}
        data = client.get("/api/reports/commission", params=params).json()["data"]
        assert data["summary"]["total_sales_commission"] == 75.0
        assert data["summary"]["total_collections_commission"] == 100.0
        assert data["summary"]["total_commission"] == 175.0

        perf = client.get(f"/api/reports/salesman-performance/{salesman['id']}", params=params).json()
        assert perf["data"]["performance"]["sales"]["actual"] == 1500.0

    def test_receipt_allocation_through_api(self, client):
        customer = _customer(client)
        invoice = _invoice(client, customer["id"], price=800)
        resp = client.post(
            "/api/cash/receipts",
            json={
                "customer_id": customer["id"],
                "amount": 800,
                "allocations": [{"invoice_id": invoice["id"], "amount": 800}],
            },
        )
        assert resp.json()["data"]["allocations"][0]["invoice_id"] == invoice["id"]
        assert client.get(f"/api/invoices/{invoice['id']}").json()["data"]["status"] == "paid"

    def test_book_balance(self, client):
        customer = _customer(client)
        client.post("/api/cash/receipts", json={"customer_id": customer["id"], "amount": 120})
        assert client.get("/api/cash/book-balance").json()["data"]["balance"] == 120.0

    def test_bad_month(self, client):
        resp = client.get("/api/reports/salesman-sales", params={"month": "2024-13"})
        assert resp.status_code == 400


class TestExports:
    def _seed(self, client):
        customer = _customer(client)
        salesman = _salesman(client)
        _invoice(client, customer["id"], salesman["id"])
        return customer, salesman

    def test_csv(self, client):
        self._seed(client)
        resp = client.get("/api/reports/salesman-sales", params={"format": "csv"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=salesman_sales" in resp.headers["content-disposition"]
        assert "Imran" in resp.text

    def test_excel(self, client):
        self._seed(client)
        resp = client.get("/api/reports/commission", params={"format": "excel"})
        assert resp.status_code == 200
        assert "spreadsheetml" in resp.headers["content-type"]
        assert resp.content[:2] == b"PK"

    def test_pdf(self, client):
        self._seed(client)
        resp = client.get("/api/reports/receivables-aging", params={"format": "pdf"})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.content.startswith(b"%PDF")

    def test_unknown_format(self, client):
        resp = client.get("/api/reports/trial-balance", params={"format": "xml"})
        assert resp.status_code == 400


class TestCashBookApi:
    def _seed(self, client):
        customer = _customer(client)
        client.post("/api/cash/receipts", json={"customer_id": customer["id"], "amount": 640})
        supplier = client.post("/api/suppliers", json={"code": "S1", "name": "Getz Pharma"}).json()["data"]
        client.post("/api/cash/payments", json={"supplier_id": supplier["id"], "amount": 140})
        return customer, supplier

    def test_daily_book(self, client):
        self._seed(client)
        data = client.get("/api/cash/book/daily").json()["data"]
        assert data["totals"] == {"receipts": 640.0, "payments": 140.0, "net": 500.0}
        assert [t["party"] for t in data["transactions"]] == ["Pharmacy C100", "Getz Pharma"]

    def test_summary_and_statistics(self, client):
        self._seed(client)
        params = {"start_date": TODAY, "end_date": TODAY}
        summary = client.get("/api/cash/book/summary", params=params).json()["data"]
        assert summary["net_cash_flow"] == 500.0
        assert summary["receipts"]["by_payment_method"] == {"cash": {"count": 1, "amount": 640.0}}

        stats = client.get("/api/cash/book/receipt-statistics", params=params).json()["data"]
        assert stats["total_receipts"] == 1

        flow = client.get("/api/cash/book/cash-flow", params=params).json()["data"]
        assert flow["cash_balance"]["closing_balance"] == 500.0

    def test_running_balance_exports(self, client):
        self._seed(client)
        resp = client.get("/api/cash/book/running-balance", params={"format": "csv"})
        assert resp.status_code == 200
        assert "attachment; filename=cash_book_" in resp.headers["content-disposition"]
        assert "Getz Pharma" in resp.text

        resp = client.get("/api/cash/book/cash-flow", params={"format": "pdf"})
        assert resp.content.startswith(b"%PDF")

        resp = client.get("/api/cash/book/summary", params={"format": "excel"})
        assert resp.content[:2] == b"PK"

    def test_reversed_period(self, client):
        resp = client.get(
            "/api/cash/book/summary",
            params={"start_date": TODAY, "end_date": (date.today() - timedelta(days=1)).isoformat()},
        )
        assert resp.status_code == 400


class TestTaxApi:
    def test_calculate(self, client):
        resp = client.post(
            "/api/tax/calculate",
            json={"subtotal": 10000, "gst_rate": 18, "advance_tax_rate": 0.5},
        )
        assert resp.json()["data"]["grand_total"] == 11850.0

    def test_advance_rate(self, client):
        data = client.get("/api/tax/advance-rate", params={"registration_type": "unregistered"}).json()
        assert data["data"]["advance_tax_rate"] == 2.5


class TestPrinting:
    def test_invoice_pdf(self, client):
        customer = _customer(client)
        invoice = _invoice(client, customer["id"])
        resp = client.get(f"/api/print/invoices/{invoice['id']}")
        assert resp.status_code == 200
        assert resp.content.startswith(b"%PDF")
        assert f"{invoice['invoice_number']}.pdf" in resp.headers["content-disposition"]

    def test_recovery_summary_pdf(self, client):
        customer = _customer(client)
        salesman = _salesman(client)
        resp = client.post(
            "/api/recovery-summaries",
            json={
                "salesman_id": salesman["id"],
                "town": "Multan",
                "accounts": [
                    {"customer_id": customer["id"], "invoice_amount": 5000, "balance": 3000, "recovery_amount": 1200}
                ],
            },
        )
        assert resp.status_code == 201, resp.text
        summary = resp.json()["data"]
        assert summary["total_recovery"] == 1200.0

        data = client.get(f"/api/print/recovery-summaries/{summary['id']}/data").json()["data"]
        assert data["financials"]["net_outstanding"] == 1800.0
        resp = client.get(f"/api/print/recovery-summaries/{summary['id']}")
        assert resp.content.startswith(b"%PDF")


class TestReconciliationApi:
    def test_import_and_match(self, client):
        customer = _customer(client)
        client.post("/api/cash/receipts", json={"customer_id": customer["id"], "amount": 1500})

        csv_body = f"Date,Description,Reference,Debit,Credit\n{TODAY},Deposit,DEP1,,1500.00\n"
        resp = client.post(
            "/api/bank-reconciliation/statements/import",
            files={"file": ("statement.csv", csv_body.encode(), "text/csv")},
            data={"bank_account_number": "0123456789"},
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["lines_inserted"] == 1

        lines = client.get(
            "/api/bank-reconciliation/statements/lines", params={"bank_account_number": "0123456789"}
        ).json()["data"]
        assert lines["total"] == 1

        resp = client.post(
            "/api/bank-reconciliation",
            json={
                "bank_account_name": "Main",
                "bank_account_number": "0123456789",
                "bank_name": "MCB",
                "statement_start_date": (date.today() - timedelta(days=3)).isoformat(),
                "statement_end_date": TODAY,
                "closing_bank_balance": 1500,
            },
        )
        assert resp.status_code == 201, resp.text
        rec_id = resp.json()["data"]["id"]

        detail = client.post(f"/api/bank-reconciliation/{rec_id}/match", json={"statement_lines": []}).json()
        assert detail["data"]["matched_count"] == 1
        assert detail["data"]["items"][0]["status"] == "matched"

        assert client.post(f"/api/bank-reconciliation/{rec_id}/complete").json()["data"]["status"] == "completed"
        assert client.post(f"/api/bank-reconciliation/{rec_id}/approve").json()["data"]["status"] == "approved"
        report = client.get(f"/api/bank-reconciliation/{rec_id}/report").json()["data"]
        assert report["is_reconciled"] is True

    def test_failed_import_envelope(self, client):
        resp = client.post(
            "/api/bank-reconciliation/statements/import",
            files={"file": ("statement.csv", b"Date,Amount\n2024-03-01,10\n", "text/csv")},
        )
        body = resp.json()
        assert body["success"] is False
        assert body["data"]["status"] == "error"
        assert body["message"].startswith("Import failed")

    def test_import_needs_input(self, client):
        resp = client.post("/api/bank-reconciliation/statements/import")
        assert resp.status_code == 400


class TestAuth:
    @pytest.fixture
    def secured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "AUTH_ENABLED", True)
        return client

    def _login(self, client, username, password):
        return client.post("/api/auth/login", json={"username": username, "password": password})

    def test_token_required(self, secured):
        resp = secured.get("/api/customers")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "NO_TOKEN"

    def test_bad_password(self, secured):
        resp = self._login(secured, "admin", "wrong")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_garbage_token(self, secured):
        resp = secured.get("/api/customers", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_TOKEN"

    def test_login_and_roles(self, secured):
        token = self._login(secured, "admin", "changeme").json()["data"]["access_token"]
        admin = {"Authorization": f"Bearer {token}"}
        assert secured.get("/api/auth/me", headers=admin).json()["data"]["role"] == "admin"

        resp = secured.post(
            "/api/auth/users",
            json={"username": "field1", "password": "secret1", "role": "sales"},
            headers=admin,
        )
        assert resp.status_code == 201

        token = self._login(secured, "field1", "secret1").json()["data"]["access_token"]
        sales = {"Authorization": f"Bearer {token}"}
        assert secured.get("/api/customers", headers=sales).status_code == 200
        resp = secured.post("/api/customers", json={"code": "X1", "name": "Nope"}, headers=sales)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "AUTHORIZATION_ERROR"

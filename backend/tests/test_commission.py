"""Tests for salesman sales, collections, commission and performance figures."""
from datetime import date, timedelta

import pytest

from pharmadist.core.errors import NotFoundError, ValidationError
from pharmadist.schemas.requests import InvoiceCreate, InvoiceLineIn, ReceiptCreate
from pharmadist.services import cash, commission, invoices

TODAY = date.today()
START = TODAY - timedelta(days=30)


def _sale(session, customer, salesman, amount, confirm=True):
    invoice = invoices.create_invoice(
        session,
        InvoiceCreate(
            invoice_type="sales",
            customer_id=customer.id,
            salesman_id=salesman.id if salesman else None,
            advance_tax_rate=0.0,
            lines=[InvoiceLineIn(item_name="Ceftriaxone 1g", quantity=1, unit_price=amount, gst_rate=0)],
        ),
    )
    if confirm:
        invoice = invoices.confirm_invoice(session, invoice.id)
    return invoice


def _collection(session, customer, salesman, amount, clear=True):
    receipt = cash.create_receipt(
        session,
        ReceiptCreate(customer_id=customer.id, salesman_id=salesman.id, amount=amount),
    )
    if clear:
        receipt = cash.clear_receipt(session, receipt.id)
    return receipt


class TestCalculateCommission:
    def test_sales_collections_and_both(self, session, make_customer, make_salesman):
        customer = make_customer()
        salesman = make_salesman(commission_rate=5.0)
        _sale(session, customer, salesman, 1500)
        _collection(session, customer, salesman, 2000)

        sales = commission.calculate_commission(session, salesman.id, START, TODAY, basis="sales")
        assert sales["summary"]["total_commission"] == 75.0
        assert sales["commission_details"][0]["collections"]["commission"] == 0.0

        coll = commission.calculate_commission(session, salesman.id, START, TODAY, basis="collections")
        assert coll["summary"]["total_commission"] == 100.0

        both = commission.calculate_commission(session, salesman.id, START, TODAY)
        detail = both["commission_details"][0]
        assert detail["sales"]["commission"] == 75.0
        assert detail["collections"]["commission"] == 100.0
        assert detail["total_commission"] == 175.0
        assert both["summary"]["total_sales_commission"] == 75.0
        assert both["summary"]["total_collections_commission"] == 100.0

    def test_rounding_on_final_figure_only(self, session, make_customer, make_salesman):
        customer = make_customer()
        salesman = make_salesman(commission_rate=5.0)
        _sale(session, customer, salesman, 1049.93)
        result = commission.calculate_commission(session, salesman.id, START, TODAY, basis="sales")
        assert result["commission_details"][0]["sales"]["commission"] == 52.50

    def test_only_confirmed_sales_and_cleared_collections(self, session, make_customer, make_salesman):
        customer = make_customer()
        salesman = make_salesman(commission_rate=10.0)
        _sale(session, customer, salesman, 1000)
        _sale(session, customer, salesman, 9999, confirm=False)
        _collection(session, customer, salesman, 500)
        _collection(session, customer, salesman, 7777, clear=False)

        detail = commission.calculate_commission(session, salesman.id, START, TODAY)["commission_details"][0]
        assert detail["sales"]["total_sales"] == 1000.0
        assert detail["sales"]["invoice_count"] == 1
        assert detail["collections"]["total_collections"] == 500.0
        assert detail["total_commission"] == 150.0

    def test_override_rate_per_basis(self, session, make_customer, make_salesman):
        customer = make_customer()
        salesman = make_salesman(commission_rate=5.0)
        _sale(session, customer, salesman, 1000)
        _collection(session, customer, salesman, 1000)

        detail = commission.calculate_commission(
            session, salesman.id, START, TODAY, sales_rate=2.0
        )["commission_details"][0]
        assert detail["commission_rate"] == 5.0
        assert detail["sales"]["commission_rate"] == 2.0
        assert detail["sales"]["commission"] == 20.0
        assert detail["collections"]["commission_rate"] == 5.0
        assert detail["collections"]["commission"] == 50.0

    def test_all_salesmen_sorted_by_commission(self, session, make_customer, make_salesman):
        customer = make_customer()
        small = make_salesman(commission_rate=5.0)
        large = make_salesman(commission_rate=5.0)
        make_salesman(is_active=False)
        _sale(session, customer, small, 100)
        _sale(session, customer, large, 5000)

        result = commission.calculate_commission(session, None, START, TODAY, basis="sales")
        assert [d["salesman_id"] for d in result["commission_details"]] == [large.id, small.id]
        assert result["summary"]["total_salesmen"] == 2
        assert result["summary"]["total_commission"] == 255.0

    def test_period_outside_activity(self, session, make_customer, make_salesman):
        customer = make_customer()
        salesman = make_salesman()
        _sale(session, customer, salesman, 1000)
        old_end = START - timedelta(days=1)
        result = commission.calculate_commission(
            session, salesman.id, old_end - timedelta(days=30), old_end
        )
        assert result["summary"]["total_commission"] == 0.0

    def test_validation(self, session, make_salesman):
        salesman = make_salesman()
        with pytest.raises(ValidationError, match="basis"):
            commission.calculate_commission(session, salesman.id, START, TODAY, basis="profit")
        with pytest.raises(ValidationError, match="between 0 and 100"):
            commission.calculate_commission(session, salesman.id, START, TODAY, sales_rate=150)
        with pytest.raises(ValidationError, match="on or before"):
            commission.calculate_commission(session, salesman.id, TODAY, START)
        with pytest.raises(NotFoundError):
            commission.calculate_commission(session, 404, START, TODAY)


class TestSalesAndCollections:
    def test_sales_grouped_per_salesman(self, session, make_customer, make_salesman):
        customer = make_customer()
        first = make_salesman()
        second = make_salesman()
        _sale(session, customer, first, 300)
        _sale(session, customer, first, 200)
        _sale(session, customer, second, 1000)
        _sale(session, customer, None, 50)

        report = commission.salesman_sales(session, None, START, TODAY)
        assert report["summary"] == {"total_invoices": 3, "total_sales": 1500.0, "total_salesmen": 2}
        groups = report["sales_by_salesman"]
        assert [g["salesman_id"] for g in groups] == [second.id, first.id]
        assert groups[1]["invoice_count"] == 2
        assert groups[1]["invoices"][0]["customer"]["code"] == customer.code

    def test_collections_filter_by_salesman(self, session, make_customer, make_salesman):
        customer = make_customer()
        first = make_salesman()
        second = make_salesman()
        _collection(session, customer, first, 400)
        _collection(session, customer, second, 600)

        report = commission.salesman_collections(session, first.id, START, TODAY)
        assert report["summary"]["total_collections"] == 400.0
        assert len(report["collections_by_salesman"]) == 1


class TestPerformance:
    def test_achievement_against_targets(self, session, make_customer, make_salesman):
        customer = make_customer()
        salesman = make_salesman(sales_target=2000, collections_target=0)
        _sale(session, customer, salesman, 1500)
        _collection(session, customer, salesman, 300)

        perf = commission.salesman_performance(session, salesman.id, START, TODAY)["performance"]
        assert perf["sales"]["actual"] == 1500.0
        assert perf["sales"]["achievement"] == 75.0
        assert perf["collections"]["actual"] == 300.0
        assert perf["collections"]["achievement"] == 0.0

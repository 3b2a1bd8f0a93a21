"""Tests for salesman recovery summaries."""
from datetime import date
from types import SimpleNamespace

import pytest

from pharmadist.core.errors import NotFoundError, ValidationError
from pharmadist.schemas.requests import (
    RecoveryAccountIn,
    RecoverySummaryCreate,
    RecoverySummaryUpdate,
)
from pharmadist.services import recovery


def _create(session, salesman, customers, town="Lahore", on=date(2024, 3, 5)):
    return recovery.create_summary(
        session,
        RecoverySummaryCreate(
            summary_date=on,
            salesman_id=salesman.id,
            town=f"  {town} ",
            accounts=[
                RecoveryAccountIn(customer_id=c.id, invoice_amount=amount, balance=amount - 500,
                                  recovery_amount=rec)
                for c, amount, rec in customers
            ],
        ),
        created_by="admin",
    )


class TestRecoverySummaries:
    def test_totals_and_percentage(self, session, make_customer, make_salesman):
        salesman = make_salesman()
        first, second = make_customer(), make_customer()
        summary = _create(session, salesman, [(first, 5000, 1000), (second, 3000, 500)])

        assert summary.town == "Lahore"
        assert summary.total_invoice_amount == 8000.0
        assert summary.total_balance == 7000.0
        assert summary.total_recovery == 1500.0
        assert summary.recovery_percentage == 18.75
        assert [a.customer_id for a in recovery.get_accounts(session, summary.id)] == [first.id, second.id]

    def test_customer_once_per_summary(self, session, make_customer, make_salesman):
        salesman = make_salesman()
        customer = make_customer()
        with pytest.raises(ValidationError, match="only once"):
            _create(session, salesman, [(customer, 1000, 0), (customer, 2000, 0)])

    def test_unknown_customer_and_salesman(self, session, make_customer, make_salesman):
        salesman = make_salesman()
        ghost = SimpleNamespace(id=999)
        with pytest.raises(ValidationError, match="not found"):
            _create(session, salesman, [(ghost, 1000, 0)])
        with pytest.raises(NotFoundError):
            recovery.create_summary(
                session,
                RecoverySummaryCreate(
                    salesman_id=404, town="Multan", accounts=[RecoveryAccountIn(customer_id=1)]
                ),
            )

    def test_update_replaces_accounts(self, session, make_customer, make_salesman):
        salesman = make_salesman()
        first, second = make_customer(), make_customer()
        summary = _create(session, salesman, [(first, 5000, 1000)])

        updated = recovery.update_summary(
            session,
            summary.id,
            RecoverySummaryUpdate(
                town="Kasur",
                accounts=[RecoveryAccountIn(customer_id=second.id, invoice_amount=200, recovery_amount=200)],
            ),
        )
        assert updated.town == "Kasur"
        assert updated.total_recovery == 200.0
        assert len(recovery.get_accounts(session, summary.id)) == 1

    def test_soft_delete_hides_summary(self, session, make_customer, make_salesman):
        salesman = make_salesman()
        summary = _create(session, salesman, [(make_customer(), 1000, 100)])
        recovery.delete_summary(session, summary.id)
        with pytest.raises(NotFoundError):
            recovery.get_summary(session, summary.id)
        total, rows = recovery.list_summaries(session)
        assert total == 0
        assert rows == []

    def test_filters_and_statistics(self, session, make_customer, make_salesman):
        first, second = make_salesman(), make_salesman()
        _create(session, first, [(make_customer(), 4000, 1000)], town="Lahore")
        _create(session, second, [(make_customer(), 1000, 1000)], town="Sialkot", on=date(2024, 4, 1))

        total, rows = recovery.list_summaries(session, town="sial")
        assert total == 1
        assert rows[0].salesman_id == second.id

        total, _ = recovery.list_summaries(session, date_to=date(2024, 3, 31))
        assert total == 1

        stats = recovery.recovery_statistics(session)
        assert stats["total_summaries"] == 2
        assert stats["total_recovery"] == 2000.0
        assert stats["total_outstanding"] == 3000.0
        assert stats["average_recovery_percentage"] == 40.0

    def test_print_data(self, session, make_customer, make_salesman):
        salesman = make_salesman()
        customer = make_customer()
        summary = _create(session, salesman, [(customer, 5000, 1200)])
        data = recovery.summary_print_data(session, summary.id)
        assert data["summary"]["salesman"]["code"] == salesman.code
        assert data["accounts"][0]["customer_code"] == customer.code
        assert data["accounts"][0]["remaining_balance"] == 3300.0
        assert data["financials"]["net_outstanding"] == 3300.0

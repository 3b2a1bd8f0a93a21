"""Tests for bank statement matching and the reconciliation workflow."""
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from pharmadist.core.errors import BusinessRuleError
from pharmadist.schemas.requests import ItemUpdate, PaymentCreate, ReceiptCreate, ReconciliationCreate
from pharmadist.services import cash, reconciliation
from pharmadist.services.reconciliation import (
    AMOUNT_MISMATCH,
    NO_BOOK_MATCH,
    NO_STATEMENT_MATCH,
    BookTransaction,
    StatementLine,
    match_statement,
    summarize,
)

D = date(2024, 3, 10)


def _receipt(tx_id, amount, on=D):
    return BookTransaction("receipt", tx_id, f"CR{tx_id}", on, amount)


def _payment(tx_id, amount, on=D):
    return BookTransaction("payment", tx_id, f"CP{tx_id}", on, amount)


class TestMatchStatement:
    def test_exact_match(self):
        results = match_statement([_receipt(1, 500.0)], [StatementLine(D, "credit", 500.0)])
        assert len(results) == 1
        assert results[0].status == "matched"
        assert results[0].book.transaction_id == 1

    def test_within_date_window(self):
        book = [_receipt(1, 500.0, D - timedelta(days=3))]
        results = match_statement(book, [StatementLine(D, "credit", 500.0)])
        assert results[0].status == "matched"

    def test_outside_date_window(self):
        book = [_receipt(1, 500.0, D - timedelta(days=4))]
        results = match_statement(book, [StatementLine(D, "credit", 500.0)])
        assert [r.status for r in results] == ["unmatched", "unmatched"]
        assert results[0].discrepancy_reason == NO_BOOK_MATCH
        assert results[1].discrepancy_reason == NO_STATEMENT_MATCH
        assert results[1].line is None

    def test_amount_tolerance(self):
        results = match_statement([_receipt(1, 500.0)], [StatementLine(D, "credit", 500.009)])
        assert results[0].status == "matched"
        results = match_statement([_receipt(1, 500.0)], [StatementLine(D, "credit", 500.01)])
        assert results[0].status == "discrepancy"

    def test_kinds_never_cross(self):
        results = match_statement([_payment(1, 500.0)], [StatementLine(D, "credit", 500.0)])
        assert [r.status for r in results] == ["unmatched", "unmatched"]
        assert results[0].transaction_type == "receipt"
        assert results[1].transaction_type == "payment"

    def test_discrepancy_same_date(self):
        results = match_statement([_payment(9, 1000.0)], [StatementLine(D, "debit", 990.0)])
        assert results[0].status == "discrepancy"
        assert results[0].discrepancy_reason == AMOUNT_MISMATCH
        assert results[0].discrepancy_amount == -10.0

    def test_exact_matches_win_over_discrepancies(self):
        book = [_receipt(1, 300.0), _receipt(2, 200.0)]
        lines = [StatementLine(D, "credit", 250.0), StatementLine(D, "credit", 200.0)]
        results = match_statement(book, lines)
        assert results[0].status == "discrepancy"
        assert results[0].book.transaction_id == 1
        assert results[0].discrepancy_amount == -50.0
        assert results[1].status == "matched"
        assert results[1].book.transaction_id == 2

    def test_each_book_transaction_used_once(self):
        book = [_receipt(1, 100.0)]
        lines = [StatementLine(D, "credit", 100.0), StatementLine(D, "credit", 100.0)]
        results = match_statement(book, lines)
        assert [r.status for r in results] == ["matched", "unmatched"]

    def test_first_candidate_in_order(self):
        book = [_receipt(1, 100.0, D - timedelta(days=2)), _receipt(2, 100.0, D)]
        results = match_statement(book, [StatementLine(D, "credit", 100.0)])
        assert results[0].book.transaction_id == 1
        assert results[1].book.transaction_id == 2
        assert results[1].status == "unmatched"

    def test_empty_inputs(self):
        assert match_statement([], []) == []
        results = match_statement([_receipt(1, 10.0)], [])
        assert len(results) == 1
        assert results[0].discrepancy_reason == NO_STATEMENT_MATCH


class TestSummarize:
    def test_counts_and_totals(self):
        items = [
            SimpleNamespace(transaction_id=1, transaction_type="receipt", amount=500.0,
                            status="matched", discrepancy_amount=None),
            SimpleNamespace(transaction_id=2, transaction_type="payment", amount=1000.0,
                            status="discrepancy", discrepancy_amount=-10.0),
            SimpleNamespace(transaction_id=None, transaction_type="receipt", amount=0.0,
                            status="unmatched", discrepancy_amount=None),
            SimpleNamespace(transaction_id=3, transaction_type="receipt", amount=75.0,
                            status="discrepancy", discrepancy_amount=5.0),
        ]
        assert summarize(items) == {
            "total_receipts": 575.0,
            "total_payments": 1000.0,
            "matched_count": 1,
            "unmatched_count": 1,
            "discrepancy_count": 2,
            "total_discrepancy_amount": 15.0,
        }


class TestReconciliationWorkflow:
    def _setup(self, session, make_customer, make_supplier):
        today = date.today()
        customer = make_customer()
        supplier = make_supplier()
        receipt = cash.create_receipt(
            session, ReceiptCreate(customer_id=customer.id, amount=1500, receipt_date=today)
        )
        cash.create_payment(
            session, PaymentCreate(supplier_id=supplier.id, amount=400, payment_date=today)
        )
        rec = reconciliation.create_reconciliation(
            session,
            ReconciliationCreate(
                bank_account_name="Main",
                bank_account_number="0123456789",
                bank_name="HBL",
                reconciliation_date=today,
                statement_start_date=today - timedelta(days=7),
                statement_end_date=today,
                opening_bank_balance=0,
                closing_bank_balance=1100,
            ),
            created_by="accountant",
        )
        return rec, receipt

    def test_create_takes_book_balances(self, session, make_customer, make_supplier):
        rec, _ = self._setup(session, make_customer, make_supplier)
        today = date.today()
        assert rec.reconciliation_number == f"BR{today.year}{today.month:02d}0001"
        assert rec.status == "draft"
        assert rec.opening_book_balance == 0.0
        assert rec.closing_book_balance == 1100.0

    def test_match_and_complete(self, session, make_customer, make_supplier):
        rec, _ = self._setup(session, make_customer, make_supplier)
        today = date.today()
        lines = [
            StatementLine(today, "credit", 1500.0, "DEP1"),
            StatementLine(today, "debit", 395.0, "CHQ1"),
            StatementLine(today, "debit", 25.0, None, "Bank charges"),
        ]
        rec = reconciliation.match_transactions(session, rec.id, lines)
        assert rec.matched_count == 1
        assert rec.discrepancy_count == 1
        assert rec.unmatched_count == 1
        assert rec.total_discrepancy_amount == 5.0
        assert not rec.is_reconciled

        items = reconciliation.get_items(session, rec.id)
        assert [i.status for i in items] == ["matched", "discrepancy", "unmatched"]
        assert items[2].transaction_id is None
        assert items[2].bank_statement_description == "Bank charges"

        # resolve the open items by hand
        reconciliation.update_item(session, rec.id, items[1].id, ItemUpdate(status="matched"))
        reconciliation.update_item(
            session, rec.id, items[2].id, ItemUpdate(status="matched", notes="Bank charges booked")
        )
        done = reconciliation.complete_reconciliation(session, rec.id, "accountant")
        assert done.status == "completed"
        assert done.is_reconciled

        approved = reconciliation.approve_reconciliation(session, rec.id, "manager")
        assert approved.status == "approved"
        assert approved.approved_by == "manager"

    def test_rematch_replaces_items(self, session, make_customer, make_supplier):
        rec, _ = self._setup(session, make_customer, make_supplier)
        today = date.today()
        reconciliation.match_transactions(session, rec.id, [StatementLine(today, "credit", 1500.0)])
        reconciliation.match_transactions(session, rec.id, [StatementLine(today, "credit", 1500.0)])
        assert len(reconciliation.get_items(session, rec.id)) == 2

    def test_cancelled_receipts_excluded(self, session, make_customer, make_supplier):
        rec, receipt = self._setup(session, make_customer, make_supplier)
        cash.cancel_receipt(session, receipt.id, "Void")
        book = reconciliation.load_book_transactions(
            session, rec.statement_start_date, rec.statement_end_date
        )
        assert [b.transaction_type for b in book] == ["payment"]

    def test_only_drafts_change(self, session, make_customer, make_supplier):
        rec, _ = self._setup(session, make_customer, make_supplier)
        reconciliation.complete_reconciliation(session, rec.id)
        with pytest.raises(BusinessRuleError, match="only draft"):
            reconciliation.match_transactions(session, rec.id, [])
        with pytest.raises(BusinessRuleError):
            reconciliation.delete_reconciliation(session, rec.id)

    def test_approve_requires_completed(self, session, make_customer, make_supplier):
        rec, _ = self._setup(session, make_customer, make_supplier)
        with pytest.raises(BusinessRuleError, match="only completed"):
            reconciliation.approve_reconciliation(session, rec.id, "manager")

    def test_report_and_statistics(self, session, make_customer, make_supplier):
        rec, _ = self._setup(session, make_customer, make_supplier)
        reconciliation.match_transactions(
            session, rec.id, [StatementLine(date.today(), "credit", 1500.0)]
        )
        report = reconciliation.reconciliation_report(session, rec.id)
        assert len(report["matched"]) == 1
        assert len(report["unmatched"]) == 1
        assert report["balances"]["closing_difference"] == 0.0

        stats = reconciliation.reconciliation_statistics(session)
        assert stats["total_reconciliations"] == 1
        assert stats["by_status"]["draft"] == 1
        assert stats["match_rate"] == 50.0

"""Tests for ledger postings, reversals and balances."""
from datetime import date, timedelta

import pytest

from pharmadist.core.errors import BusinessRuleError, NotFoundError, ValidationError
from pharmadist.schemas.requests import InvoiceCreate, InvoiceLineIn
from pharmadist.services import invoices, ledger
from pharmadist.services.ledger import LedgerParty


def _cash(session):
    return ledger.system_account(session, "1000")


def _sales(session):
    return ledger.system_account(session, "4000")


class TestCreateEntry:
    def test_single_entry(self, session, make_customer):
        customer = make_customer()
        entry = ledger.create_entry(
            session,
            party=LedgerParty("Customer", customer.id),
            transaction_type="debit",
            amount=100.456,
            description="  Opening balance ",
            reference_type="opening_balance",
        )
        assert entry.id is not None
        assert entry.amount == 100.46
        assert entry.description == "Opening balance"
        assert entry.currency == "PKR"
        assert entry.transaction_date == date.today()

    def test_amount_below_minimum(self, session, make_customer):
        customer = make_customer()
        with pytest.raises(ValidationError, match="at least 0.01"):
            ledger.create_entry(
                session,
                party=LedgerParty("Customer", customer.id),
                transaction_type="debit",
                amount=0.004,
                description="Too small",
                reference_type="adjustment",
            )

    def test_future_date_rejected(self, session, make_customer):
        customer = make_customer()
        with pytest.raises(ValidationError, match="future"):
            ledger.create_entry(
                session,
                party=LedgerParty("Customer", customer.id),
                transaction_type="credit",
                amount=10,
                description="Tomorrow",
                reference_type="adjustment",
                transaction_date=date.today() + timedelta(days=1),
            )

    def test_document_reference_needs_id(self, session, make_customer):
        customer = make_customer()
        with pytest.raises(ValidationError, match="Reference id is required"):
            ledger.create_entry(
                session,
                party=LedgerParty("Customer", customer.id),
                transaction_type="debit",
                amount=10,
                description="Invoice without id",
                reference_type="invoice",
            )

    def test_unknown_party(self, session):
        with pytest.raises(NotFoundError):
            ledger.create_entry(
                session,
                party=LedgerParty("Customer", 999),
                transaction_type="debit",
                amount=10,
                description="Ghost",
                reference_type="adjustment",
            )

    def test_inactive_party(self, session, make_customer):
        customer = make_customer(is_active=False)
        with pytest.raises(BusinessRuleError, match="inactive"):
            ledger.create_entry(
                session,
                party=LedgerParty("Customer", customer.id),
                transaction_type="debit",
                amount=10,
                description="Closed account",
                reference_type="adjustment",
            )

    def test_unknown_account_type(self, session):
        with pytest.raises(ValidationError, match="Unknown account type"):
            ledger.get_party(session, LedgerParty("Bank", 1))


class TestDoubleEntry:
    def test_pair_posted(self, session, make_customer):
        customer = make_customer()
        debit, credit = ledger.create_double_entry(
            session,
            LedgerParty("Customer", customer.id),
            _sales(session),
            1180,
            "Manual sale",
            "adjustment",
        )
        assert debit.transaction_type == "debit"
        assert credit.transaction_type == "credit"
        assert debit.amount == credit.amount == 1180.0
        assert ledger.account_balance(session, "Customer", customer.id) == 1180.0
        assert ledger.account_balance(session, "Account", credit.account_id) == -1180.0

    def test_same_party_rejected(self, session):
        cash = _cash(session)
        with pytest.raises(ValidationError, match="must be different"):
            ledger.create_double_entry(session, cash, cash, 10, "Loop", "adjustment")

    def test_nothing_written_when_credit_invalid(self, session, make_customer):
        customer = make_customer()
        with pytest.raises(NotFoundError):
            ledger.create_double_entry(
                session,
                LedgerParty("Customer", customer.id),
                LedgerParty("Supplier", 404),
                50,
                "Bad credit side",
                "adjustment",
            )
        total, _ = ledger.list_entries(session)
        assert total == 0


class TestReversal:
    def _post(self, session, customer, amount=500.0, reference_id=7):
        return ledger.create_double_entry(
            session,
            _cash(session),
            LedgerParty("Customer", customer.id),
            amount,
            "Receipt",
            "cash_receipt",
            reference_id,
        )

    def test_reverse_mirrors_entries(self, session, make_customer):
        customer = make_customer()
        originals = self._post(session, customer)
        reversals = ledger.reverse_entries(session, "cash_receipt", 7, "Entered twice", "tester")

        assert len(reversals) == 2
        by_original = {r.reversed_entry_id: r for r in reversals}
        for original in originals:
            mirror = by_original[original.id]
            assert mirror.is_reversal
            assert mirror.amount == original.amount
            assert mirror.transaction_type != original.transaction_type
            assert mirror.reference_type == "cash_receipt"
            assert mirror.reference_id == 7
            assert mirror.description.startswith("Entered twice - Reverse of:")

        assert ledger.reference_net(session, "cash_receipt", 7) == 0.0
        assert all(v == 0.0 for v in ledger.reference_balances(session, "cash_receipt", 7).values())
        assert ledger.account_balance(session, "Customer", customer.id) == 0.0

    def test_double_reverse_rejected(self, session, make_customer):
        customer = make_customer()
        self._post(session, customer)
        ledger.reverse_entries(session, "cash_receipt", 7, "First")
        with pytest.raises(BusinessRuleError, match="already reversed"):
            ledger.reverse_entries(session, "cash_receipt", 7, "Second")

    def test_reverse_missing_reference(self, session):
        with pytest.raises(NotFoundError):
            ledger.reverse_entries(session, "invoice", 12345, "Nothing there")

    def test_reason_required(self, session, make_customer):
        customer = make_customer()
        self._post(session, customer)
        with pytest.raises(ValidationError, match="reason"):
            ledger.reverse_entries(session, "cash_receipt", 7, "   ")

    def test_has_live_entries(self, session, make_customer):
        customer = make_customer()
        self._post(session, customer)
        assert ledger.has_live_entries(session, "cash_receipt", 7)
        ledger.reverse_entries(session, "cash_receipt", 7, "Undo")
        assert not ledger.has_live_entries(session, "cash_receipt", 7)


class TestManualJournal:
    def test_document_references_refused(self, session, make_customer):
        customer = make_customer()
        for reference_type in ("invoice", "payment", "cash_receipt", "cash_payment"):
            with pytest.raises(BusinessRuleError, match="posted by their document"):
                ledger.post_manual_entry(
                    session,
                    _cash(session),
                    LedgerParty("Customer", customer.id),
                    100,
                    "Hand-posted receipt",
                    reference_type,
                    1,
                )
        total, _ = ledger.list_entries(session)
        assert total == 0

    def test_document_reversal_refused(self, session, make_customer):
        customer = make_customer()
        ledger.create_double_entry(
            session, _cash(session), LedgerParty("Customer", customer.id), 300, "Receipt", "cash_receipt", 3
        )
        with pytest.raises(BusinessRuleError, match="cancel or bounce the receipt"):
            ledger.reverse_manual_entries(session, "cash_receipt", 3, "Wrong customer")
        assert ledger.has_live_entries(session, "cash_receipt", 3)

    def test_trade_offer_adjustment_refused(self, session, make_customer):
        customer = make_customer()
        invoice = invoices.create_invoice(
            session,
            InvoiceCreate(
                invoice_type="sales",
                customer_id=customer.id,
                to1_percent=2,
                lines=[InvoiceLineIn(item_name="Panadol", quantity=1, unit_price=1000, gst_rate=0)],
            ),
        )
        invoices.confirm_invoice(session, invoice.id)
        with pytest.raises(BusinessRuleError, match="trade offers"):
            ledger.reverse_manual_entries(session, "adjustment", invoice.id, "Undo discount")
        assert ledger.has_live_entries(session, "adjustment", invoice.id)

    def test_adjustments_and_opening_balances_allowed(self, session, make_customer):
        customer = make_customer()
        ledger.post_manual_entry(
            session, LedgerParty("Customer", customer.id), _sales(session), 80, "Write-back", "adjustment", 55
        )
        ledger.post_manual_entry(
            session, LedgerParty("Customer", customer.id), _cash(session), 20, "Carried forward", "opening_balance"
        )
        assert ledger.account_balance(session, "Customer", customer.id) == 100.0

        reversals = ledger.reverse_manual_entries(session, "adjustment", 55, "Posted in error")
        assert len(reversals) == 2
        assert ledger.account_balance(session, "Customer", customer.id) == 20.0


class TestBalances:
    def test_balance_as_of(self, session, make_customer):
        customer = make_customer()
        party = LedgerParty("Customer", customer.id)
        ten_days_ago = date.today() - timedelta(days=10)
        ledger.create_double_entry(
            session, party, _sales(session), 300, "Old sale", "adjustment",
            transaction_date=ten_days_ago,
        )
        ledger.create_double_entry(session, _cash(session), party, 100, "Collection", "adjustment")

        assert ledger.account_balance(session, "Customer", customer.id) == 200.0
        assert ledger.account_balance(
            session, "Customer", customer.id, as_of=ten_days_ago
        ) == 300.0

    def test_statement_running_balance(self, session, make_customer):
        customer = make_customer()
        party = LedgerParty("Customer", customer.id)
        start = date.today() - timedelta(days=5)
        ledger.create_double_entry(
            session, party, _sales(session), 1000, "Before period", "adjustment",
            transaction_date=start - timedelta(days=1),
        )
        ledger.create_double_entry(
            session, party, _sales(session), 250, "In period", "adjustment",
            transaction_date=start,
        )
        ledger.create_double_entry(session, _cash(session), party, 400, "Paid", "adjustment")

        statement = ledger.account_statement(session, "Customer", customer.id, date_from=start)
        assert statement["opening_balance"] == 1000.0
        assert [e["balance"] for e in statement["entries"]] == [1250.0, 850.0]
        assert statement["total_debits"] == 250.0
        assert statement["total_credits"] == 400.0
        assert statement["closing_balance"] == 850.0

    def test_trial_balance_balances(self, session, make_customer, make_supplier):
        customer = make_customer()
        supplier = make_supplier()
        ledger.create_double_entry(
            session, LedgerParty("Customer", customer.id), _sales(session), 1180, "Sale", "adjustment"
        )
        ledger.create_double_entry(
            session,
            ledger.system_account(session, "5000"),
            LedgerParty("Supplier", supplier.id),
            640.5,
            "Purchase",
            "adjustment",
        )
        tb = ledger.trial_balance(session)
        assert tb["total_debits"] == tb["total_credits"] == 1820.5
        assert tb["is_balanced"]
        assert tb["difference"] == 0.0
        assert len(tb["accounts"]) == 4

    def test_summary_by_account_type(self, session, make_customer):
        first = make_customer()
        second = make_customer()
        for customer, amount in ((first, 100), (second, 250)):
            ledger.create_double_entry(
                session, LedgerParty("Customer", customer.id), _sales(session), amount, "Sale", "adjustment"
            )
        rows = ledger.summary_by_account_type(session, "Customer")
        assert [r["balance"] for r in rows] == [100.0, 250.0]
        assert rows[0]["account_name"] == first.name
        assert rows[1]["entry_count"] == 1

    def test_summary_unknown_type(self, session):
        with pytest.raises(ValidationError):
            ledger.summary_by_account_type(session, "Bank")

    def test_customer_credit_summary(self, session, make_customer):
        customer = make_customer(credit_limit=1000)
        ledger.create_double_entry(
            session, LedgerParty("Customer", customer.id), _sales(session), 1200, "Sale", "adjustment"
        )
        summary = ledger.customer_credit_summary(session, customer.id)
        assert summary["balance"] == 1200.0
        assert summary["available_credit"] == 0.0
        assert summary["over_limit"] is True

"""
Double-entry ledger.

Every business transaction posts a debit/credit pair through
``create_double_entry``. History is append-only: ``reverse_entries`` writes
mirrored entries that point back at the originals, so for any reference the
per-account sum of originals and reversals is zero.

Balances follow the receivable convention: debit adds, credit subtracts.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlmodel import Session, col, func, select

from pharmadist.core.config import settings
from pharmadist.core.errors import (
    BusinessRuleError,
    NotFoundError,
    ValidationError,
)
from pharmadist.core.money import round_money, to_decimal
from pharmadist.models.invoice import Invoice
from pharmadist.models.ledger import (
    ACCOUNT_TYPES,
    DOCUMENT_REFERENCE_TYPES,
    REFERENCE_TYPES,
    TRANSACTION_TYPES,
    LedgerEntry,
)
from pharmadist.models.party import Account, Customer, Supplier

PARTY_MODELS = {"Customer": Customer, "Supplier": Supplier, "Account": Account}

MAX_DESCRIPTION = 500


@dataclass(frozen=True)
class LedgerParty:
    """Either side of a posting: a customer, supplier or GL account."""

    account_type: str
    account_id: int


# ── Helpers ───────────────────────────────────────────────────────────────────


def get_party(session: Session, party: LedgerParty, require_active: bool = True):
    if party.account_type not in ACCOUNT_TYPES:
        raise ValidationError(
            f"Unknown account type '{party.account_type}'",
            details={"allowed": list(ACCOUNT_TYPES)},
        )
    record = session.get(PARTY_MODELS[party.account_type], party.account_id)
    if not record:
        raise NotFoundError(party.account_type, party.account_id)
    if require_active and not record.is_active:
        raise BusinessRuleError(
            f"{party.account_type} {party.account_id} is inactive",
            details={"account_type": party.account_type, "account_id": party.account_id},
        )
    return record


def account_by_code(session: Session, code: str) -> Account:
    account = session.exec(select(Account).where(Account.code == code)).first()
    if not account:
        raise NotFoundError("Account", code)
    return account


def system_account(session: Session, code: str) -> LedgerParty:
    return LedgerParty("Account", account_by_code(session, code).id)


def party_name(session: Session, account_type: str, account_id: int) -> str:
    model = PARTY_MODELS.get(account_type)
    record = session.get(model, account_id) if model else None
    return record.name if record else f"{account_type} #{account_id}"


def _truncate(text: str) -> str:
    return text if len(text) <= MAX_DESCRIPTION else text[: MAX_DESCRIPTION - 1] + "…"


# ── Posting ───────────────────────────────────────────────────────────────────


def create_entry(
    session: Session,
    *,
    party: LedgerParty,
    transaction_type: str,
    amount: float,
    description: str,
    reference_type: str,
    reference_id: Optional[int] = None,
    transaction_date: Optional[date] = None,
    created_by: Optional[str] = None,
    currency: Optional[str] = None,
    exchange_rate: float = 1.0,
    commit: bool = True,
) -> LedgerEntry:
    """Validate and persist one side of a posting."""
    get_party(session, party)

    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError("Transaction type must be debit or credit")
    if amount is None or round_money(amount) < 0.01:
        raise ValidationError("Amount must be at least 0.01", details={"amount": amount})
    if not description or not description.strip():
        raise ValidationError("Description is required")
    if len(description) > MAX_DESCRIPTION:
        raise ValidationError(f"Description cannot exceed {MAX_DESCRIPTION} characters")
    if reference_type not in REFERENCE_TYPES:
        raise ValidationError(
            f"Invalid reference type '{reference_type}'",
            details={"allowed": list(REFERENCE_TYPES)},
        )
    if reference_type in DOCUMENT_REFERENCE_TYPES and reference_id is None:
        raise ValidationError(f"Reference id is required for {reference_type} entries")
    transaction_date = transaction_date or date.today()
    if transaction_date > date.today():
        raise ValidationError("Transaction date cannot be in the future")
    if exchange_rate <= 0:
        raise ValidationError("Exchange rate must be positive")

    entry = LedgerEntry(
        account_type=party.account_type,
        account_id=party.account_id,
        transaction_type=transaction_type,
        amount=round_money(amount),
        description=description.strip(),
        reference_type=reference_type,
        reference_id=reference_id,
        transaction_date=transaction_date,
        currency=currency or settings.CURRENCY,
        exchange_rate=exchange_rate,
        created_by=created_by,
    )
    session.add(entry)
    if commit:
        session.commit()
        session.refresh(entry)
    else:
        session.flush()
    return entry


def create_double_entry(
    session: Session,
    debit: LedgerParty,
    credit: LedgerParty,
    amount: float,
    description: str,
    reference_type: str,
    reference_id: Optional[int] = None,
    created_by: Optional[str] = None,
    transaction_date: Optional[date] = None,
    commit: bool = True,
) -> tuple[LedgerEntry, LedgerEntry]:
    """
    Post ``amount`` as a debit to one party and a credit to another.

    Both parties are validated before anything is written, and both sides are
    committed together (or only flushed when the caller owns the commit).
    """
    if debit == credit:
        raise ValidationError("Debit and credit accounts must be different")
    get_party(session, debit)
    get_party(session, credit)

    common = dict(
        amount=amount,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        transaction_date=transaction_date,
        created_by=created_by,
        commit=False,
    )
    debit_entry = create_entry(session, party=debit, transaction_type="debit", **common)
    credit_entry = create_entry(session, party=credit, transaction_type="credit", **common)

    if commit:
        session.commit()
        session.refresh(debit_entry)
        session.refresh(credit_entry)

    logger.bind(audit=True).info(
        f"Posted {round_money(amount):,.2f} {reference_type}#{reference_id}: "
        f"Dr {debit.account_type}#{debit.account_id} / "
        f"Cr {credit.account_type}#{credit.account_id}"
    )
    return debit_entry, credit_entry


def _unreversed(
    session: Session, reference_type: str, reference_id: Optional[int]
) -> tuple[list[LedgerEntry], list[LedgerEntry]]:
    """(all original entries, originals without a reversal) for a reference."""
    originals = list(
        session.exec(
            select(LedgerEntry)
            .where(
                LedgerEntry.reference_type == reference_type,
                LedgerEntry.reference_id == reference_id,
                LedgerEntry.is_reversal == False,  # noqa: E712
            )
            .order_by(LedgerEntry.id)
        ).all()
    )
    if not originals:
        return [], []
    reversed_ids = set(
        session.exec(
            select(LedgerEntry.reversed_entry_id).where(
                col(LedgerEntry.reversed_entry_id).in_([e.id for e in originals])
            )
        ).all()
    )
    return originals, [e for e in originals if e.id not in reversed_ids]


def reverse_entries(
    session: Session,
    reference_type: str,
    reference_id: Optional[int],
    reason: str,
    created_by: Optional[str] = None,
    commit: bool = True,
) -> list[LedgerEntry]:
    """
    Mirror every not-yet-reversed original entry for a reference.

    Raises NotFoundError when the reference has no entries and
    BusinessRuleError when everything has already been reversed.
    """
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to reverse entries")

    originals, pending = _unreversed(session, reference_type, reference_id)
    if not originals:
        raise NotFoundError("Ledger entries for reference", f"{reference_type}#{reference_id}")
    if not pending:
        raise BusinessRuleError(
            f"Entries for {reference_type}#{reference_id} are already reversed"
        )

    today = date.today()
    reversals: list[LedgerEntry] = []
    for original in pending:
        reversal = LedgerEntry(
            account_type=original.account_type,
            account_id=original.account_id,
            transaction_type="credit" if original.transaction_type == "debit" else "debit",
            amount=original.amount,
            description=_truncate(f"{reason.strip()} - Reverse of: {original.description}"),
            reference_type=original.reference_type,
            reference_id=original.reference_id,
            transaction_date=today,
            currency=original.currency,
            exchange_rate=original.exchange_rate,
            is_reversal=True,
            reversal_reason=reason.strip(),
            reversed_entry_id=original.id,
            created_by=created_by,
        )
        session.add(reversal)
        reversals.append(reversal)

    if commit:
        session.commit()
        for r in reversals:
            session.refresh(r)
    else:
        session.flush()

    logger.bind(audit=True).info(
        f"Reversed {len(reversals)} entr{'y' if len(reversals) == 1 else 'ies'} "
        f"for {reference_type}#{reference_id}: {reason}"
    )
    return reversals


def has_live_entries(session: Session, reference_type: str, reference_id: int) -> bool:
    """True when the reference has original entries that are not reversed yet."""
    _, pending = _unreversed(session, reference_type, reference_id)
    return bool(pending)


# ── Manual journal ────────────────────────────────────────────────────────────

DOCUMENT_ACTIONS = {
    "invoice": "cancel the invoice",
    "payment": "cancel the payment",
    "cash_receipt": "cancel or bounce the receipt",
    "cash_payment": "cancel the payment",
}


def check_manual_reference(
    session: Session, reference_type: str, reference_id: Optional[int]
) -> None:
    """
    Refuse references whose postings belong to a document.

    Invoices, receipts and payments keep their own status in step with the
    ledger, so their entries only change through the document's actions. The
    same applies to the adjustment entries that carry an invoice's trade
    offers.
    """
    if reference_type in DOCUMENT_REFERENCE_TYPES:
        raise BusinessRuleError(
            f"{reference_type} entries are posted by their document; "
            f"{DOCUMENT_ACTIONS[reference_type]} instead",
            details={"reference_type": reference_type, "reference_id": reference_id},
        )
    if reference_type == "adjustment" and reference_id is not None:
        invoice = session.get(Invoice, reference_id)
        if invoice and (invoice.to1_percent or invoice.to2_percent):
            raise BusinessRuleError(
                f"adjustment#{reference_id} carries the trade offers of invoice "
                f"{invoice.invoice_number}; cancel the invoice instead",
                details={"invoice_id": invoice.id},
            )


def post_manual_entry(
    session: Session,
    debit: LedgerParty,
    credit: LedgerParty,
    amount: float,
    description: str,
    reference_type: str = "adjustment",
    reference_id: Optional[int] = None,
    created_by: Optional[str] = None,
    transaction_date: Optional[date] = None,
) -> tuple[LedgerEntry, LedgerEntry]:
    check_manual_reference(session, reference_type, reference_id)
    return create_double_entry(
        session,
        debit,
        credit,
        amount,
        description,
        reference_type,
        reference_id,
        created_by=created_by,
        transaction_date=transaction_date,
    )


def reverse_manual_entries(
    session: Session,
    reference_type: str,
    reference_id: Optional[int],
    reason: str,
    created_by: Optional[str] = None,
) -> list[LedgerEntry]:
    check_manual_reference(session, reference_type, reference_id)
    return reverse_entries(session, reference_type, reference_id, reason, created_by)


# ── Queries ───────────────────────────────────────────────────────────────────


def entries_for_reference(
    session: Session, reference_type: str, reference_id: int
) -> list[LedgerEntry]:
    return list(
        session.exec(
            select(LedgerEntry)
            .where(
                LedgerEntry.reference_type == reference_type,
                LedgerEntry.reference_id == reference_id,
            )
            .order_by(LedgerEntry.id)
        ).all()
    )


def reference_balances(
    session: Session, reference_type: str, reference_id: int
) -> dict[tuple[str, int], float]:
    """Signed net per (account_type, account_id) for one reference."""
    nets: dict[tuple[str, int], float] = defaultdict(float)
    for e in entries_for_reference(session, reference_type, reference_id):
        nets[(e.account_type, e.account_id)] += e.signed_amount
    return {k: round_money(v) for k, v in nets.items()}


def reference_net(session: Session, reference_type: str, reference_id: int) -> float:
    """Signed sum over every entry of a reference; 0 when it balances."""
    total = sum(
        (to_decimal(e.signed_amount) for e in entries_for_reference(session, reference_type, reference_id)),
        Decimal(0),
    )
    return round_money(total)


def _totals(session: Session, *conditions) -> tuple[float, float, int]:
    rows = session.exec(
        select(
            LedgerEntry.transaction_type,
            func.sum(LedgerEntry.amount),
            func.count(LedgerEntry.id),
        )
        .where(*conditions)
        .group_by(LedgerEntry.transaction_type)
    ).all()
    debits = credits = 0.0
    count = 0
    for tx_type, total, n in rows:
        if tx_type == "debit":
            debits = float(total or 0)
        else:
            credits = float(total or 0)
        count += n
    return debits, credits, count


def account_balance(
    session: Session,
    account_type: str,
    account_id: int,
    as_of: Optional[date] = None,
) -> float:
    """Σ debits − Σ credits up to and including ``as_of``."""
    conditions = [
        LedgerEntry.account_type == account_type,
        LedgerEntry.account_id == account_id,
    ]
    if as_of:
        conditions.append(LedgerEntry.transaction_date <= as_of)
    debits, credits, _ = _totals(session, *conditions)
    return round_money(debits - credits)


def account_statement(
    session: Session,
    account_type: str,
    account_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> dict:
    """Opening balance, entries with running balance, closing balance."""
    party = get_party(session, LedgerParty(account_type, account_id), require_active=False)

    opening = 0.0
    if date_from:
        opening = account_balance(
            session, account_type, account_id, date_from - timedelta(days=1)
        )

    stmt = select(LedgerEntry).where(
        LedgerEntry.account_type == account_type,
        LedgerEntry.account_id == account_id,
    )
    if date_from:
        stmt = stmt.where(LedgerEntry.transaction_date >= date_from)
    if date_to:
        stmt = stmt.where(LedgerEntry.transaction_date <= date_to)
    stmt = stmt.order_by(LedgerEntry.transaction_date, LedgerEntry.id)

    running = opening
    total_debits = total_credits = 0.0
    lines = []
    for e in session.exec(stmt).all():
        if e.transaction_type == "debit":
            total_debits += e.amount
        else:
            total_credits += e.amount
        running += e.signed_amount
        lines.append(
            {
                "id": e.id,
                "transaction_date": e.transaction_date,
                "description": e.description,
                "reference_type": e.reference_type,
                "reference_id": e.reference_id,
                "debit": e.amount if e.transaction_type == "debit" else 0.0,
                "credit": e.amount if e.transaction_type == "credit" else 0.0,
                "balance": round_money(running),
                "is_reversal": e.is_reversal,
            }
        )

    return {
        "account_type": account_type,
        "account_id": account_id,
        "account_name": party.name,
        "date_from": date_from,
        "date_to": date_to,
        "opening_balance": round_money(opening),
        "total_debits": round_money(total_debits),
        "total_credits": round_money(total_credits),
        "closing_balance": round_money(running),
        "entries": lines,
    }


def list_entries(
    session: Session,
    *,
    account_type: Optional[str] = None,
    account_id: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[int, list[LedgerEntry]]:
    stmt = select(LedgerEntry)
    if account_type:
        stmt = stmt.where(LedgerEntry.account_type == account_type)
    if account_id:
        stmt = stmt.where(LedgerEntry.account_id == account_id)
    if reference_type:
        stmt = stmt.where(LedgerEntry.reference_type == reference_type)
    if reference_id:
        stmt = stmt.where(LedgerEntry.reference_id == reference_id)
    if date_from:
        stmt = stmt.where(LedgerEntry.transaction_date >= date_from)
    if date_to:
        stmt = stmt.where(LedgerEntry.transaction_date <= date_to)

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(
        col(LedgerEntry.transaction_date).desc(), col(LedgerEntry.id).desc()
    )
    stmt = stmt.offset((page - 1) * page_size).limit(page_size)
    return total, list(session.exec(stmt).all())


def trial_balance(session: Session, as_of: Optional[date] = None) -> dict:
    stmt = select(
        LedgerEntry.account_type,
        LedgerEntry.account_id,
        LedgerEntry.transaction_type,
        func.sum(LedgerEntry.amount),
    ).group_by(
        LedgerEntry.account_type, LedgerEntry.account_id, LedgerEntry.transaction_type
    )
    if as_of:
        stmt = stmt.where(LedgerEntry.transaction_date <= as_of)

    sums: dict[tuple[str, int], dict[str, float]] = defaultdict(
        lambda: {"debit": 0.0, "credit": 0.0}
    )
    for account_type, account_id, tx_type, total in session.exec(stmt).all():
        sums[(account_type, account_id)][tx_type] += float(total or 0)

    rows = []
    total_debits = total_credits = 0.0
    for (account_type, account_id), s in sorted(sums.items()):
        total_debits += s["debit"]
        total_credits += s["credit"]
        rows.append(
            {
                "account_type": account_type,
                "account_id": account_id,
                "account_name": party_name(session, account_type, account_id),
                "total_debits": round_money(s["debit"]),
                "total_credits": round_money(s["credit"]),
                "balance": round_money(s["debit"] - s["credit"]),
            }
        )

    difference = round_money(total_debits - total_credits)
    return {
        "as_of": as_of or date.today(),
        "accounts": rows,
        "total_debits": round_money(total_debits),
        "total_credits": round_money(total_credits),
        "difference": difference,
        "is_balanced": abs(difference) < 0.01,
    }


def summary_by_account_type(
    session: Session,
    account_type: str,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> list[dict]:
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError(f"Unknown account type '{account_type}'")
    stmt = (
        select(
            LedgerEntry.account_id,
            LedgerEntry.transaction_type,
            func.sum(LedgerEntry.amount),
            func.count(LedgerEntry.id),
        )
        .where(LedgerEntry.account_type == account_type)
        .group_by(LedgerEntry.account_id, LedgerEntry.transaction_type)
    )
    if date_from:
        stmt = stmt.where(LedgerEntry.transaction_date >= date_from)
    if date_to:
        stmt = stmt.where(LedgerEntry.transaction_date <= date_to)

    acc: dict[int, dict] = {}
    for account_id, tx_type, total, n in session.exec(stmt).all():
        row = acc.setdefault(
            account_id,
            {"account_id": account_id, "total_debits": 0.0, "total_credits": 0.0, "entry_count": 0},
        )
        row["total_debits" if tx_type == "debit" else "total_credits"] += float(total or 0)
        row["entry_count"] += n

    result = []
    for account_id, row in sorted(acc.items()):
        row["account_name"] = party_name(session, account_type, account_id)
        row["balance"] = round_money(row["total_debits"] - row["total_credits"])
        row["total_debits"] = round_money(row["total_debits"])
        row["total_credits"] = round_money(row["total_credits"])
        result.append(row)
    return result


# ── Receivables / payables ───────────────────────────────────────────────────


AGING_BUCKETS = ("current", "days_1_30", "days_31_60", "days_61_90", "over_90")


def _bucket(days_overdue: int) -> str:
    if days_overdue <= 0:
        return "current"
    if days_overdue <= 30:
        return "days_1_30"
    if days_overdue <= 60:
        return "days_31_60"
    if days_overdue <= 90:
        return "days_61_90"
    return "over_90"


def _open_invoices(session: Session, invoice_type: str, party_field, party_id: Optional[int]):
    stmt = select(Invoice).where(
        Invoice.invoice_type == invoice_type,
        col(Invoice.status).in_(["confirmed", "paid"]),
        col(Invoice.payment_status).in_(["pending", "partial"]),
    )
    if party_id:
        stmt = stmt.where(party_field == party_id)
    return session.exec(stmt.order_by(Invoice.due_date, Invoice.id)).all()


def receivables_aging(
    session: Session, as_of: Optional[date] = None, customer_id: Optional[int] = None
) -> dict:
    """Outstanding sales invoices grouped per customer into overdue buckets."""
    as_of = as_of or date.today()
    per_customer: dict[int, dict] = {}
    totals = {b: 0.0 for b in AGING_BUCKETS}

    for inv in _open_invoices(session, "sales", Invoice.customer_id, customer_id):
        outstanding = inv.balance_due
        if outstanding <= 0:
            continue
        days = (as_of - (inv.due_date or inv.invoice_date)).days
        bucket = _bucket(days)
        row = per_customer.setdefault(
            inv.customer_id,
            {
                "customer_id": inv.customer_id,
                "customer_name": party_name(session, "Customer", inv.customer_id),
                **{b: 0.0 for b in AGING_BUCKETS},
                "total": 0.0,
                "invoice_count": 0,
            },
        )
        row[bucket] += outstanding
        row["total"] += outstanding
        row["invoice_count"] += 1
        totals[bucket] += outstanding

    customers = []
    for row in per_customer.values():
        for key in (*AGING_BUCKETS, "total"):
            row[key] = round_money(row[key])
        customers.append(row)
    customers.sort(key=lambda r: r["total"], reverse=True)

    return {
        "as_of": as_of,
        "customers": customers,
        "totals": {**{b: round_money(v) for b, v in totals.items()},
                   "total": round_money(sum(totals.values()))},
    }


def supplier_payables(
    session: Session, as_of: Optional[date] = None, supplier_id: Optional[int] = None
) -> dict:
    """Outstanding purchase invoices split into overdue / due within 7 days / current."""
    as_of = as_of or date.today()
    per_supplier: dict[int, dict] = {}
    for inv in _open_invoices(session, "purchase", Invoice.supplier_id, supplier_id):
        outstanding = inv.balance_due
        if outstanding <= 0:
            continue
        days_to_due = ((inv.due_date or inv.invoice_date) - as_of).days
        if days_to_due < 0:
            bucket = "overdue"
        elif days_to_due <= 7:
            bucket = "due_soon"
        else:
            bucket = "current_due"
        row = per_supplier.setdefault(
            inv.supplier_id,
            {
                "supplier_id": inv.supplier_id,
                "supplier_name": party_name(session, "Supplier", inv.supplier_id),
                "overdue": 0.0,
                "due_soon": 0.0,
                "current_due": 0.0,
                "total_payable": 0.0,
                "invoice_count": 0,
            },
        )
        row[bucket] += outstanding
        row["total_payable"] += outstanding
        row["invoice_count"] += 1

    suppliers = []
    for row in per_supplier.values():
        for key in ("overdue", "due_soon", "current_due", "total_payable"):
            row[key] = round_money(row[key])
        suppliers.append(row)
    suppliers.sort(key=lambda r: r["total_payable"], reverse=True)
    return {
        "as_of": as_of,
        "suppliers": suppliers,
        "total_payable": round_money(sum(r["total_payable"] for r in suppliers)),
        "total_overdue": round_money(sum(r["overdue"] for r in suppliers)),
    }


def customer_credit_summary(session: Session, customer_id: int) -> dict:
    customer = session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer", customer_id)
    balance = account_balance(session, "Customer", customer_id)
    return {
        "customer_id": customer.id,
        "customer_name": customer.name,
        "balance": balance,
        "credit_limit": customer.credit_limit,
        "available_credit": round_money(max(customer.credit_limit - balance, 0)),
        "over_limit": bool(customer.credit_limit and balance > customer.credit_limit),
    }

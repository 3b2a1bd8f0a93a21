"""
Bank reconciliation.

``match_statement`` is the pure matcher: it pairs bank statement lines with
book receipts/payments and knows nothing about the database. The rest of the
module loads the period's transactions, persists the resulting items and
drives the draft → completed → approved workflow.

Matching, per statement line in input order:

1. first unused book transaction of the same kind (credit ↔ receipt,
   debit ↔ payment) with |Δamount| < tolerance and |Δdate| ≤ window → matched;
2. otherwise the first unused same-kind transaction on the same date →
   discrepancy, recording statement − book;
3. otherwise → unmatched ("No matching book transaction").

Book transactions nobody claimed are reported as unmatched too.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlmodel import Session, col, func, select

from pharmadist.core.config import settings
from pharmadist.core.errors import BusinessRuleError, NotFoundError
from pharmadist.core.money import money_equal, round_money, to_decimal
from pharmadist.models.cash import CashPayment, CashReceipt
from pharmadist.models.reconciliation import (
    BankReconciliation,
    BankStatementLine,
    ReconciliationItem,
)
from pharmadist.schemas.requests import ItemUpdate, ReconciliationCreate
from pharmadist.services.cash import cash_book_balance
from pharmadist.services.numbering import next_number

STATEMENT_TO_BOOK = {"credit": "receipt", "debit": "payment"}

NO_BOOK_MATCH = "No matching book transaction"
NO_STATEMENT_MATCH = "Not found in bank statement"
AMOUNT_MISMATCH = "Amount mismatch"


@dataclass
class BookTransaction:
    transaction_type: str  # receipt | payment
    transaction_id: int
    transaction_number: str
    transaction_date: date
    amount: float


@dataclass
class StatementLine:
    statement_date: date
    transaction_type: str  # credit | debit
    amount: float
    reference: Optional[str] = None
    description: Optional[str] = None


@dataclass
class MatchResult:
    transaction_type: str
    status: str  # matched | unmatched | discrepancy
    book: Optional[BookTransaction] = None
    line: Optional[StatementLine] = None
    discrepancy_reason: Optional[str] = None
    discrepancy_amount: Optional[float] = None


def match_statement(
    book: list[BookTransaction],
    lines: list[StatementLine],
    amount_tolerance: float = 0.01,
    date_window_days: int = 3,
) -> list[MatchResult]:
    """Greedy first-match pairing; deterministic for a given input order."""
    used: set[int] = set()
    results: list[Optional[MatchResult]] = [None] * len(lines)

    for i, line in enumerate(lines):
        wanted = STATEMENT_TO_BOOK[line.transaction_type]
        for j, tx in enumerate(book):
            if j in used or tx.transaction_type != wanted:
                continue
            close_amount = money_equal(line.amount, tx.amount, amount_tolerance)
            close_date = abs((line.statement_date - tx.transaction_date).days) <= date_window_days
            if close_amount and close_date:
                used.add(j)
                results[i] = MatchResult(wanted, "matched", tx, line)
                break

    for i, line in enumerate(lines):
        if results[i] is not None:
            continue
        wanted = STATEMENT_TO_BOOK[line.transaction_type]
        for j, tx in enumerate(book):
            if j in used or tx.transaction_type != wanted:
                continue
            if tx.transaction_date == line.statement_date:
                used.add(j)
                delta = to_decimal(line.amount) - to_decimal(tx.amount)
                results[i] = MatchResult(
                    wanted, "discrepancy", tx, line, AMOUNT_MISMATCH, round_money(delta)
                )
                break
        else:
            results[i] = MatchResult(wanted, "unmatched", None, line, NO_BOOK_MATCH)

    leftovers = [
        MatchResult(tx.transaction_type, "unmatched", tx, None, NO_STATEMENT_MATCH)
        for j, tx in enumerate(book)
        if j not in used
    ]
    return [r for r in results if r is not None] + leftovers


def summarize(items: list) -> dict:
    """Summary figures over ReconciliationItem-like objects."""
    receipts = Decimal(0)
    payments = Decimal(0)
    counts = {"matched": 0, "unmatched": 0, "discrepancy": 0}
    discrepancy_total = Decimal(0)
    for item in items:
        if item.transaction_id is not None:
            if item.transaction_type == "receipt":
                receipts += to_decimal(item.amount)
            else:
                payments += to_decimal(item.amount)
        counts[item.status] += 1
        if item.status == "discrepancy" and item.discrepancy_amount is not None:
            discrepancy_total += abs(to_decimal(item.discrepancy_amount))
    return {
        "total_receipts": round_money(receipts),
        "total_payments": round_money(payments),
        "matched_count": counts["matched"],
        "unmatched_count": counts["unmatched"],
        "discrepancy_count": counts["discrepancy"],
        "total_discrepancy_amount": round_money(discrepancy_total),
    }


# ── Persistence ───────────────────────────────────────────────────────────────


def get_reconciliation(session: Session, reconciliation_id: int) -> BankReconciliation:
    rec = session.get(BankReconciliation, reconciliation_id)
    if not rec:
        raise NotFoundError("Bank reconciliation", reconciliation_id)
    return rec


def get_items(session: Session, reconciliation_id: int) -> list[ReconciliationItem]:
    return list(
        session.exec(
            select(ReconciliationItem)
            .where(ReconciliationItem.reconciliation_id == reconciliation_id)
            .order_by(ReconciliationItem.order)
        ).all()
    )


def list_reconciliations(
    session: Session,
    *,
    status: Optional[str] = None,
    bank_account_number: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[int, list[BankReconciliation]]:
    stmt = select(BankReconciliation)
    if status:
        stmt = stmt.where(BankReconciliation.status == status)
    if bank_account_number:
        stmt = stmt.where(BankReconciliation.bank_account_number == bank_account_number)
    if date_from:
        stmt = stmt.where(BankReconciliation.statement_end_date >= date_from)
    if date_to:
        stmt = stmt.where(BankReconciliation.statement_start_date <= date_to)
    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(col(BankReconciliation.reconciliation_date).desc(), col(BankReconciliation.id).desc())
    stmt = stmt.offset((page - 1) * page_size).limit(page_size)
    return total, list(session.exec(stmt).all())


def create_reconciliation(
    session: Session, data: ReconciliationCreate, created_by: Optional[str] = None
) -> BankReconciliation:
    opening_book = data.opening_book_balance
    if opening_book is None:
        opening_book = cash_book_balance(
            session, data.statement_start_date - timedelta(days=1)
        )["balance"]
    closing_book = data.closing_book_balance
    if closing_book is None:
        closing_book = cash_book_balance(session, data.statement_end_date)["balance"]

    rec = BankReconciliation(
        reconciliation_number=next_number(
            session,
            BankReconciliation.reconciliation_number,
            "BR",
            data.reconciliation_date,
            width=4,
            with_month=True,
        ),
        bank_account_name=data.bank_account_name,
        bank_account_number=data.bank_account_number,
        bank_name=data.bank_name,
        reconciliation_date=data.reconciliation_date,
        statement_start_date=data.statement_start_date,
        statement_end_date=data.statement_end_date,
        opening_book_balance=round_money(opening_book),
        opening_bank_balance=round_money(data.opening_bank_balance),
        closing_book_balance=round_money(closing_book),
        closing_bank_balance=round_money(data.closing_bank_balance),
        notes=data.notes,
        created_by=created_by,
    )
    session.add(rec)
    session.commit()
    session.refresh(rec)
    logger.info(
        f"Created reconciliation {rec.reconciliation_number} for {rec.bank_account_number} "
        f"{rec.statement_start_date} → {rec.statement_end_date}"
    )
    return rec


def load_book_transactions(session: Session, start: date, end: date) -> list[BookTransaction]:
    """Cleared and pending receipts/payments dated within the period."""
    book: list[BookTransaction] = []
    receipts = session.exec(
        select(CashReceipt)
        .where(
            CashReceipt.receipt_date >= start,
            CashReceipt.receipt_date <= end,
            col(CashReceipt.status).in_(["cleared", "pending"]),
        )
        .order_by(CashReceipt.receipt_date, CashReceipt.id)
    ).all()
    for r in receipts:
        book.append(BookTransaction("receipt", r.id, r.receipt_number, r.receipt_date, r.amount))

    payments = session.exec(
        select(CashPayment)
        .where(
            CashPayment.payment_date >= start,
            CashPayment.payment_date <= end,
            col(CashPayment.status).in_(["cleared", "pending"]),
        )
        .order_by(CashPayment.payment_date, CashPayment.id)
    ).all()
    for p in payments:
        book.append(BookTransaction("payment", p.id, p.payment_number, p.payment_date, p.amount))
    return book


def imported_statement_lines(
    session: Session, bank_account_number: str, start: date, end: date
) -> list[StatementLine]:
    rows = session.exec(
        select(BankStatementLine)
        .where(
            BankStatementLine.bank_account_number == bank_account_number,
            BankStatementLine.statement_date >= start,
            BankStatementLine.statement_date <= end,
        )
        .order_by(BankStatementLine.statement_date, BankStatementLine.id)
    ).all()
    return [
        StatementLine(r.statement_date, r.transaction_type, r.amount, r.reference, r.description)
        for r in rows
    ]


def _require_status(rec: BankReconciliation, status: str, action: str) -> None:
    if rec.status != status:
        raise BusinessRuleError(
            f"Reconciliation {rec.reconciliation_number} is {rec.status}; "
            f"only {status} reconciliations can be {action}"
        )


def _refresh_summary(session: Session, rec: BankReconciliation) -> None:
    for key, value in summarize(get_items(session, rec.id)).items():
        setattr(rec, key, value)
    rec.updated_at = datetime.utcnow()
    session.add(rec)


def match_transactions(
    session: Session,
    reconciliation_id: int,
    statement_lines: Optional[list[StatementLine]] = None,
) -> BankReconciliation:
    """Run the matcher for a draft reconciliation, replacing earlier items."""
    rec = get_reconciliation(session, reconciliation_id)
    _require_status(rec, "draft", "matched")

    if not statement_lines:
        statement_lines = imported_statement_lines(
            session, rec.bank_account_number, rec.statement_start_date, rec.statement_end_date
        )
    book = load_book_transactions(session, rec.statement_start_date, rec.statement_end_date)
    results = match_statement(
        book,
        statement_lines,
        settings.MATCH_AMOUNT_TOLERANCE,
        settings.MATCH_DATE_WINDOW_DAYS,
    )

    for old in get_items(session, rec.id):
        session.delete(old)
    session.flush()

    for order, r in enumerate(results):
        session.add(
            ReconciliationItem(
                reconciliation_id=rec.id,
                order=order,
                transaction_type=r.transaction_type,
                transaction_id=r.book.transaction_id if r.book else None,
                transaction_number=r.book.transaction_number if r.book else None,
                transaction_date=r.book.transaction_date if r.book else None,
                amount=r.book.amount if r.book else 0.0,
                bank_statement_date=r.line.statement_date if r.line else None,
                bank_statement_amount=r.line.amount if r.line else None,
                bank_statement_reference=r.line.reference if r.line else None,
                bank_statement_description=r.line.description if r.line else None,
                status=r.status,
                discrepancy_reason=r.discrepancy_reason,
                discrepancy_amount=r.discrepancy_amount,
            )
        )
    session.flush()
    _refresh_summary(session, rec)
    session.commit()
    session.refresh(rec)
    logger.info(
        f"Matched {rec.reconciliation_number}: {len(statement_lines)} statement line(s) vs "
        f"{len(book)} book transaction(s) → {rec.matched_count} matched, "
        f"{rec.unmatched_count} unmatched, {rec.discrepancy_count} discrepancies"
    )
    return rec


def update_item(
    session: Session, reconciliation_id: int, item_id: int, data: ItemUpdate
) -> ReconciliationItem:
    rec = get_reconciliation(session, reconciliation_id)
    _require_status(rec, "draft", "edited")
    item = session.get(ReconciliationItem, item_id)
    if not item or item.reconciliation_id != rec.id:
        raise NotFoundError("Reconciliation item", item_id)

    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(item, key, value)
    if item.status == "matched":
        item.discrepancy_reason = None
        item.discrepancy_amount = None
    session.add(item)
    session.flush()
    _refresh_summary(session, rec)
    session.commit()
    session.refresh(item)
    return item


def complete_reconciliation(
    session: Session, reconciliation_id: int, completed_by: Optional[str] = None
) -> BankReconciliation:
    rec = get_reconciliation(session, reconciliation_id)
    _require_status(rec, "draft", "completed")
    _refresh_summary(session, rec)
    rec.status = "completed"
    rec.completed_at = datetime.utcnow()
    session.add(rec)
    session.commit()
    session.refresh(rec)
    logger.info(
        f"Reconciliation {rec.reconciliation_number} completed by {completed_by} "
        f"({'reconciled' if rec.is_reconciled else 'with open items'})"
    )
    return rec


def approve_reconciliation(
    session: Session, reconciliation_id: int, approved_by: Optional[str] = None
) -> BankReconciliation:
    rec = get_reconciliation(session, reconciliation_id)
    _require_status(rec, "completed", "approved")
    rec.status = "approved"
    rec.approved_by = approved_by
    rec.approved_at = datetime.utcnow()
    rec.updated_at = datetime.utcnow()
    session.add(rec)
    session.commit()
    session.refresh(rec)
    logger.info(f"Reconciliation {rec.reconciliation_number} approved by {approved_by}")
    return rec


def delete_reconciliation(session: Session, reconciliation_id: int) -> None:
    rec = get_reconciliation(session, reconciliation_id)
    _require_status(rec, "draft", "deleted")
    for item in get_items(session, rec.id):
        session.delete(item)
    session.delete(rec)
    session.commit()


def reconciliation_report(session: Session, reconciliation_id: int) -> dict:
    rec = get_reconciliation(session, reconciliation_id)
    items = get_items(session, rec.id)
    return {
        "reconciliation": rec,
        "matched": [i for i in items if i.status == "matched"],
        "unmatched": [i for i in items if i.status == "unmatched"],
        "discrepancies": [i for i in items if i.status == "discrepancy"],
        "balances": {
            "opening_difference": round_money(
                to_decimal(rec.opening_bank_balance) - to_decimal(rec.opening_book_balance)
            ),
            "closing_difference": round_money(
                to_decimal(rec.closing_bank_balance) - to_decimal(rec.closing_book_balance)
            ),
        },
        "is_reconciled": rec.is_reconciled,
    }


def reconciliation_statistics(
    session: Session, date_from: Optional[date] = None, date_to: Optional[date] = None
) -> dict:
    stmt = select(BankReconciliation)
    if date_from:
        stmt = stmt.where(BankReconciliation.reconciliation_date >= date_from)
    if date_to:
        stmt = stmt.where(BankReconciliation.reconciliation_date <= date_to)
    recs = session.exec(stmt).all()

    by_status = {"draft": 0, "completed": 0, "approved": 0}
    matched = total_items = 0
    discrepancy_total = Decimal(0)
    for r in recs:
        by_status[r.status] = by_status.get(r.status, 0) + 1
        matched += r.matched_count
        total_items += r.matched_count + r.unmatched_count + r.discrepancy_count
        discrepancy_total += to_decimal(r.total_discrepancy_amount)

    return {
        "total_reconciliations": len(recs),
        "by_status": by_status,
        "reconciled_count": sum(1 for r in recs if r.is_reconciled and r.status != "draft"),
        "total_items": total_items,
        "matched_items": matched,
        "match_rate": round_money(Decimal(matched) / Decimal(total_items) * 100) if total_items else 0.0,
        "total_discrepancy_amount": round_money(discrepancy_total),
    }

"""
Cash receipts (customer → us) and cash payments (us → supplier).

A receipt posts Dr cash / Cr customer when it is recorded, a payment posts
Dr supplier / Cr cash. Post-dated cheques are held without a posting until
the cheque clears; a bounced cheque reverses whatever was posted. Invoice
allocations move with the posting: applied when posted, released when
reversed.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlmodel import Session, col, func, select

from pharmadist.core.config import settings
from pharmadist.core.errors import BusinessRuleError, NotFoundError, ValidationError
from pharmadist.core.money import money_equal, round_money, to_decimal
from pharmadist.models.cash import CashPayment, CashReceipt, PaymentAllocation
from pharmadist.models.invoice import Invoice
from pharmadist.models.ledger import LedgerEntry
from pharmadist.models.party import Customer, Salesman, Supplier
from pharmadist.schemas.requests import AllocationIn, PaymentCreate, ReceiptCreate
from pharmadist.services import invoices as invoice_service
from pharmadist.services import ledger
from pharmadist.services.ledger import LedgerParty
from pharmadist.services.numbering import next_number


# ── Lookups ───────────────────────────────────────────────────────────────────


def get_receipt(session: Session, receipt_id: int) -> CashReceipt:
    receipt = session.get(CashReceipt, receipt_id)
    if not receipt:
        raise NotFoundError("Cash receipt", receipt_id)
    return receipt


def get_payment(session: Session, payment_id: int) -> CashPayment:
    payment = session.get(CashPayment, payment_id)
    if not payment:
        raise NotFoundError("Cash payment", payment_id)
    return payment


def allocations_for(session: Session, source_type: str, source_id: int) -> list[PaymentAllocation]:
    return list(
        session.exec(
            select(PaymentAllocation)
            .where(
                PaymentAllocation.source_type == source_type,
                PaymentAllocation.source_id == source_id,
            )
            .order_by(PaymentAllocation.id)
        ).all()
    )


def _paginate(session: Session, stmt, order_col, page: int, page_size: int):
    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(col(order_col).desc()).offset((page - 1) * page_size).limit(page_size)
    return total, list(session.exec(stmt).all())


def list_receipts(
    session: Session,
    *,
    customer_id: Optional[int] = None,
    salesman_id: Optional[int] = None,
    status: Optional[str] = None,
    payment_method: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[int, list[CashReceipt]]:
    stmt = select(CashReceipt)
    if customer_id:
        stmt = stmt.where(CashReceipt.customer_id == customer_id)
    if salesman_id:
        stmt = stmt.where(CashReceipt.salesman_id == salesman_id)
    if status:
        stmt = stmt.where(CashReceipt.status == status)
    if payment_method:
        stmt = stmt.where(CashReceipt.payment_method == payment_method)
    if date_from:
        stmt = stmt.where(CashReceipt.receipt_date >= date_from)
    if date_to:
        stmt = stmt.where(CashReceipt.receipt_date <= date_to)
    return _paginate(session, stmt, CashReceipt.receipt_date, page, page_size)


def list_payments(
    session: Session,
    *,
    supplier_id: Optional[int] = None,
    status: Optional[str] = None,
    payment_method: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[int, list[CashPayment]]:
    stmt = select(CashPayment)
    if supplier_id:
        stmt = stmt.where(CashPayment.supplier_id == supplier_id)
    if status:
        stmt = stmt.where(CashPayment.status == status)
    if payment_method:
        stmt = stmt.where(CashPayment.payment_method == payment_method)
    if date_from:
        stmt = stmt.where(CashPayment.payment_date >= date_from)
    if date_to:
        stmt = stmt.where(CashPayment.payment_date <= date_to)
    return _paginate(session, stmt, CashPayment.payment_date, page, page_size)


# ── Allocations ───────────────────────────────────────────────────────────────


def _validate_allocations(
    session: Session,
    allocations: list[AllocationIn],
    amount: float,
    invoice_type: str,
    party_id: int,
) -> None:
    if not allocations:
        return
    allocated = sum(to_decimal(a.amount) for a in allocations)
    if not money_equal(allocated, amount):
        raise ValidationError(
            f"Allocations ({round_money(allocated):,.2f}) must equal the amount ({amount:,.2f})"
        )
    seen: set[int] = set()
    for a in allocations:
        if a.invoice_id in seen:
            raise ValidationError(f"Invoice {a.invoice_id} is allocated more than once")
        seen.add(a.invoice_id)
        invoice = invoice_service.get_invoice(session, a.invoice_id)
        if invoice.invoice_type != invoice_type or invoice.party_id != party_id:
            raise ValidationError(
                f"Invoice {invoice.invoice_number} does not belong to this {invoice.party_type.lower()}"
            )
        if invoice.status != "confirmed":
            raise BusinessRuleError(
                f"Invoice {invoice.invoice_number} is {invoice.status}; only confirmed invoices accept payments"
            )
        if round_money(a.amount) > invoice.balance_due + 0.001:
            raise BusinessRuleError(
                f"Allocation {a.amount:,.2f} exceeds balance {invoice.balance_due:,.2f} "
                f"on {invoice.invoice_number}"
            )


def _store_allocations(
    session: Session, source_type: str, source_id: int, allocations: list[AllocationIn]
) -> None:
    for a in allocations:
        session.add(
            PaymentAllocation(
                source_type=source_type,
                source_id=source_id,
                invoice_id=a.invoice_id,
                amount=round_money(a.amount),
            )
        )


def _apply_allocations(session: Session, source_type: str, source_id: int) -> None:
    for alloc in allocations_for(session, source_type, source_id):
        invoice = invoice_service.get_invoice(session, alloc.invoice_id)
        invoice_service.apply_payment(session, invoice, alloc.amount)


def _release_allocations(session: Session, source_type: str, source_id: int) -> None:
    for alloc in allocations_for(session, source_type, source_id):
        invoice = invoice_service.get_invoice(session, alloc.invoice_id)
        invoice.paid_amount = max(
            round_money(to_decimal(invoice.paid_amount) - to_decimal(alloc.amount)), 0.0
        )
        invoice.payment_status = "partial" if invoice.paid_amount > 0 else "pending"
        if invoice.status == "paid":
            invoice.status = "confirmed"
        invoice.updated_at = datetime.utcnow()
        session.add(invoice)


# ── Receipts ──────────────────────────────────────────────────────────────────


def _post_receipt(session: Session, receipt: CashReceipt, on: date, created_by: Optional[str]) -> None:
    ledger.create_double_entry(
        session,
        ledger.system_account(session, settings.CASH_ACCOUNT_CODE),
        LedgerParty("Customer", receipt.customer_id),
        receipt.amount,
        receipt.description or f"Cash receipt {receipt.receipt_number}",
        "cash_receipt",
        receipt.id,
        created_by=created_by,
        transaction_date=on,
        commit=False,
    )
    _apply_allocations(session, "cash_receipt", receipt.id)


def _unpost(session: Session, source_type: str, source_id: int, reason: str, created_by: Optional[str]) -> bool:
    if not ledger.has_live_entries(session, source_type, source_id):
        return False
    ledger.reverse_entries(session, source_type, source_id, reason, created_by, commit=False)
    _release_allocations(session, source_type, source_id)
    return True


def create_receipt(session: Session, data: ReceiptCreate, created_by: Optional[str] = None) -> CashReceipt:
    customer = session.get(Customer, data.customer_id)
    if not customer:
        raise NotFoundError("Customer", data.customer_id)
    if not customer.is_active:
        raise BusinessRuleError(f"Customer {customer.name} is inactive")
    if data.salesman_id:
        salesman = session.get(Salesman, data.salesman_id)
        if not salesman or not salesman.is_active:
            raise ValidationError("Salesman not found or inactive")
    if data.receipt_date > date.today():
        raise ValidationError("Receipt date cannot be in the future")
    if data.post_dated_cheque and data.payment_method != "cheque":
        raise ValidationError("Only cheque receipts can be post-dated")

    _validate_allocations(session, data.allocations, data.amount, "sales", customer.id)

    receipt = CashReceipt(
        receipt_number=next_number(session, CashReceipt.receipt_number, "CR", data.receipt_date),
        receipt_date=data.receipt_date,
        customer_id=customer.id,
        salesman_id=data.salesman_id,
        amount=round_money(data.amount),
        payment_method=data.payment_method,
        reference_number=data.reference_number,
        bank_name=data.bank_name,
        cheque_number=data.cheque_number,
        cheque_date=data.cheque_date,
        post_dated_cheque=data.post_dated_cheque,
        cheque_status="pending" if data.payment_method == "cheque" else None,
        description=data.description,
        created_by=created_by,
    )
    session.add(receipt)
    session.flush()
    _store_allocations(session, "cash_receipt", receipt.id, data.allocations)
    session.flush()

    if not receipt.post_dated_cheque:
        _post_receipt(session, receipt, receipt.receipt_date, created_by)

    session.commit()
    session.refresh(receipt)
    logger.info(
        f"Recorded receipt {receipt.receipt_number} {receipt.amount:,.2f} from {customer.name}"
        + (" (post-dated, not posted)" if receipt.post_dated_cheque else "")
    )
    return receipt


def clear_receipt(
    session: Session,
    receipt_id: int,
    cleared_date: Optional[date] = None,
    created_by: Optional[str] = None,
) -> CashReceipt:
    """Mark a pending receipt cleared; a post-dated cheque is posted at this point."""
    receipt = get_receipt(session, receipt_id)
    if receipt.status != "pending":
        raise BusinessRuleError(
            f"Only pending receipts can be cleared; {receipt.receipt_number} is {receipt.status}"
        )
    cleared_date = cleared_date or date.today()
    if cleared_date > date.today():
        raise ValidationError("Cleared date cannot be in the future")

    if receipt.post_dated_cheque and not ledger.has_live_entries(session, "cash_receipt", receipt.id):
        _post_receipt(session, receipt, cleared_date, created_by)

    receipt.status = "cleared"
    receipt.cleared_date = cleared_date
    if receipt.payment_method == "cheque":
        receipt.cheque_status = "cleared"
    receipt.updated_at = datetime.utcnow()
    session.add(receipt)
    session.commit()
    session.refresh(receipt)
    logger.info(f"Receipt {receipt.receipt_number} cleared on {cleared_date}")
    return receipt


def cancel_receipt(
    session: Session, receipt_id: int, reason: str, created_by: Optional[str] = None
) -> CashReceipt:
    receipt = get_receipt(session, receipt_id)
    if receipt.status != "pending":
        raise BusinessRuleError(
            f"Only pending receipts can be cancelled; {receipt.receipt_number} is {receipt.status}"
        )
    _unpost(session, "cash_receipt", receipt.id, f"Cancelled: {reason}", created_by)
    receipt.status = "cancelled"
    receipt.updated_at = datetime.utcnow()
    session.add(receipt)
    session.commit()
    session.refresh(receipt)
    logger.info(f"Receipt {receipt.receipt_number} cancelled: {reason}")
    return receipt


def bounce_cheque(
    session: Session, receipt_id: int, reason: str, created_by: Optional[str] = None
) -> CashReceipt:
    receipt = get_receipt(session, receipt_id)
    if receipt.payment_method != "cheque":
        raise BusinessRuleError(f"Receipt {receipt.receipt_number} is not a cheque")
    if receipt.status in ("cancelled", "bounced"):
        raise BusinessRuleError(f"Receipt {receipt.receipt_number} is already {receipt.status}")

    reversed_ = _unpost(session, "cash_receipt", receipt.id, f"Cheque bounced: {reason}", created_by)
    receipt.status = "bounced"
    receipt.cheque_status = "bounced"
    receipt.bounce_reason = reason
    receipt.updated_at = datetime.utcnow()
    session.add(receipt)
    session.commit()
    session.refresh(receipt)
    logger.warning(
        f"Cheque {receipt.cheque_number} on {receipt.receipt_number} bounced: {reason}"
        + (" (posting reversed)" if reversed_ else "")
    )
    return receipt


def pending_cheques(session: Session, due_by: Optional[date] = None) -> list[CashReceipt]:
    """Post-dated cheques still waiting to clear, soonest first."""
    stmt = select(CashReceipt).where(
        CashReceipt.post_dated_cheque == True,  # noqa: E712
        CashReceipt.status == "pending",
    )
    if due_by:
        stmt = stmt.where(CashReceipt.cheque_date <= due_by)
    return list(session.exec(stmt.order_by(CashReceipt.cheque_date, CashReceipt.id)).all())


# ── Payments ──────────────────────────────────────────────────────────────────


def create_payment(session: Session, data: PaymentCreate, created_by: Optional[str] = None) -> CashPayment:
    supplier = session.get(Supplier, data.supplier_id)
    if not supplier:
        raise NotFoundError("Supplier", data.supplier_id)
    if not supplier.is_active:
        raise BusinessRuleError(f"Supplier {supplier.name} is inactive")
    if data.payment_date > date.today():
        raise ValidationError("Payment date cannot be in the future")

    _validate_allocations(session, data.allocations, data.amount, "purchase", supplier.id)

    payment = CashPayment(
        payment_number=next_number(session, CashPayment.payment_number, "CP", data.payment_date),
        payment_date=data.payment_date,
        supplier_id=supplier.id,
        amount=round_money(data.amount),
        payment_method=data.payment_method,
        reference_number=data.reference_number,
        bank_name=data.bank_name,
        cheque_number=data.cheque_number,
        cheque_date=data.cheque_date,
        description=data.description,
        created_by=created_by,
    )
    session.add(payment)
    session.flush()
    _store_allocations(session, "cash_payment", payment.id, data.allocations)
    session.flush()

    ledger.create_double_entry(
        session,
        LedgerParty("Supplier", supplier.id),
        ledger.system_account(session, settings.CASH_ACCOUNT_CODE),
        payment.amount,
        payment.description or f"Cash payment {payment.payment_number}",
        "cash_payment",
        payment.id,
        created_by=created_by,
        transaction_date=payment.payment_date,
        commit=False,
    )
    _apply_allocations(session, "cash_payment", payment.id)

    session.commit()
    session.refresh(payment)
    logger.info(f"Recorded payment {payment.payment_number} {payment.amount:,.2f} to {supplier.name}")
    return payment


def clear_payment(session: Session, payment_id: int, cleared_date: Optional[date] = None) -> CashPayment:
    payment = get_payment(session, payment_id)
    if payment.status != "pending":
        raise BusinessRuleError(
            f"Only pending payments can be cleared; {payment.payment_number} is {payment.status}"
        )
    payment.status = "cleared"
    payment.cleared_date = cleared_date or date.today()
    payment.updated_at = datetime.utcnow()
    session.add(payment)
    session.commit()
    session.refresh(payment)
    return payment


def cancel_payment(
    session: Session, payment_id: int, reason: str, created_by: Optional[str] = None
) -> CashPayment:
    payment = get_payment(session, payment_id)
    if payment.status != "pending":
        raise BusinessRuleError(
            f"Only pending payments can be cancelled; {payment.payment_number} is {payment.status}"
        )
    _unpost(session, "cash_payment", payment.id, f"Cancelled: {reason}", created_by)
    payment.status = "cancelled"
    payment.updated_at = datetime.utcnow()
    session.add(payment)
    session.commit()
    session.refresh(payment)
    logger.info(f"Payment {payment.payment_number} cancelled: {reason}")
    return payment


# ── Cash book ─────────────────────────────────────────────────────────────────


def cash_book_balance(session: Session, as_of: Optional[date] = None) -> dict:
    """Receipts − payments posted to the cash account up to ``as_of``."""
    cash = ledger.account_by_code(session, settings.CASH_ACCOUNT_CODE)
    stmt = select(LedgerEntry.transaction_type, func.sum(LedgerEntry.amount)).where(
        LedgerEntry.account_type == "Account",
        LedgerEntry.account_id == cash.id,
    )
    if as_of:
        stmt = stmt.where(LedgerEntry.transaction_date <= as_of)
    totals = {"debit": 0.0, "credit": 0.0}
    for tx_type, total in session.exec(stmt.group_by(LedgerEntry.transaction_type)).all():
        totals[tx_type] = float(total or 0)
    return {
        "as_of": as_of or date.today(),
        "total_receipts": round_money(totals["debit"]),
        "total_payments": round_money(totals["credit"]),
        "balance": round_money(totals["debit"] - totals["credit"]),
    }


def _check_period(start: date, end: date) -> None:
    if start > end:
        raise ValidationError(
            "start_date must be on or before end_date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )


def _breakdown(session: Session, model, date_field, start: Optional[date], end: Optional[date]) -> dict:
    def grouped(column) -> dict:
        stmt = select(column, func.count(), func.sum(model.amount))
        if start:
            stmt = stmt.where(date_field >= start)
        if end:
            stmt = stmt.where(date_field <= end)
        return {
            key: {"count": count, "amount": round_money(total or 0)}
            for key, count, total in session.exec(stmt.group_by(column)).all()
        }

    by_status = grouped(model.status)
    return {
        "count": sum(v["count"] for v in by_status.values()),
        "amount": round_money(sum(to_decimal(v["amount"]) for v in by_status.values())),
        "by_status": by_status,
        "by_payment_method": grouped(model.payment_method),
    }


def receipt_statistics(
    session: Session, start: Optional[date] = None, end: Optional[date] = None
) -> dict:
    """Receipt counts and amounts by status and payment method, every status included."""
    if start and end:
        _check_period(start, end)
    stats = _breakdown(session, CashReceipt, CashReceipt.receipt_date, start, end)
    return {
        "total_receipts": stats["count"],
        "total_amount": stats["amount"],
        "by_status": stats["by_status"],
        "by_payment_method": stats["by_payment_method"],
    }


def payment_statistics(
    session: Session, start: Optional[date] = None, end: Optional[date] = None
) -> dict:
    if start and end:
        _check_period(start, end)
    stats = _breakdown(session, CashPayment, CashPayment.payment_date, start, end)
    return {
        "total_payments": stats["count"],
        "total_amount": stats["amount"],
        "by_status": stats["by_status"],
        "by_payment_method": stats["by_payment_method"],
    }


def _by_id(session: Session, model, ids: set) -> dict:
    if not ids:
        return {}
    return {row.id: row for row in session.exec(select(model).where(col(model.id).in_(ids))).all()}


def cash_movements(session: Session, start: date, end: date) -> list[dict]:
    """
    Postings to the cash account between ``start`` and ``end``, oldest first.

    Rows come from the ledger rather than the documents, so cheques waiting
    to clear are absent and cancellations or bounces show up as the reversing
    movement on the day they happened.
    """
    _check_period(start, end)
    cash = ledger.account_by_code(session, settings.CASH_ACCOUNT_CODE)
    entries = session.exec(
        select(LedgerEntry)
        .where(
            LedgerEntry.account_type == "Account",
            LedgerEntry.account_id == cash.id,
            LedgerEntry.transaction_date >= start,
            LedgerEntry.transaction_date <= end,
        )
        .order_by(LedgerEntry.transaction_date, LedgerEntry.id)
    ).all()

    receipts = _by_id(session, CashReceipt, {e.reference_id for e in entries if e.reference_type == "cash_receipt"})
    payments = _by_id(session, CashPayment, {e.reference_id for e in entries if e.reference_type == "cash_payment"})
    customers = _by_id(session, Customer, {r.customer_id for r in receipts.values()})
    suppliers = _by_id(session, Supplier, {p.supplier_id for p in payments.values()})

    rows = []
    for entry in entries:
        number = party = method = None
        if entry.reference_type == "cash_receipt" and entry.reference_id in receipts:
            receipt = receipts[entry.reference_id]
            number, method = receipt.receipt_number, receipt.payment_method
            party = customers[receipt.customer_id].name
        elif entry.reference_type == "cash_payment" and entry.reference_id in payments:
            payment = payments[entry.reference_id]
            number, method = payment.payment_number, payment.payment_method
            party = suppliers[payment.supplier_id].name
        rows.append(
            {
                "date": entry.transaction_date,
                "entry_id": entry.id,
                "reference_type": entry.reference_type,
                "reference_id": entry.reference_id,
                "number": number,
                "party": party,
                "payment_method": method,
                "description": entry.description,
                "is_reversal": entry.is_reversal,
                "debit": entry.amount if entry.transaction_type == "debit" else 0.0,
                "credit": entry.amount if entry.transaction_type == "credit" else 0.0,
            }
        )
    return rows


def _opening_balance(session: Session, start: date) -> float:
    return cash_book_balance(session, start - timedelta(days=1))["balance"]


def cash_book_with_running_balance(session: Session, start: date, end: date) -> dict:
    rows = cash_movements(session, start, end)
    opening = _opening_balance(session, start)
    running = to_decimal(opening)
    for row in rows:
        running += to_decimal(row["debit"]) - to_decimal(row["credit"])
        row["balance"] = round_money(running)
    return {
        "period": {"start_date": start, "end_date": end},
        "opening_balance": opening,
        "transactions": rows,
        "closing_balance": round_money(running),
    }


def daily_cash_book(session: Session, day: date) -> dict:
    book = cash_book_with_running_balance(session, day, day)
    receipts = sum(to_decimal(r["debit"]) for r in book["transactions"])
    payments = sum(to_decimal(r["credit"]) for r in book["transactions"])
    return {
        "date": day,
        "opening_balance": book["opening_balance"],
        "transactions": book["transactions"],
        "totals": {
            "receipts": round_money(receipts),
            "payments": round_money(payments),
            "net": round_money(receipts - payments),
        },
        "closing_balance": book["closing_balance"],
    }


def _net_by_reference(rows: list[dict]) -> dict[str, float]:
    net: dict[str, Decimal] = {}
    for row in rows:
        net[row["reference_type"]] = (
            net.get(row["reference_type"], Decimal("0")) + to_decimal(row["debit"]) - to_decimal(row["credit"])
        )
    return {k: round_money(v) for k, v in net.items()}


def cash_book_summary(session: Session, start: date, end: date) -> dict:
    """
    Opening and closing cash for the period with the receipt and payment
    documents dated inside it. ``net_cash_flow`` is the posted movement, so
    opening + net_cash_flow == closing.
    """
    _check_period(start, end)
    opening = _opening_balance(session, start)
    closing = cash_book_balance(session, end)["balance"]
    receipts = receipt_statistics(session, start, end)
    payments = payment_statistics(session, start, end)
    return {
        "period": {"start_date": start, "end_date": end},
        "opening_balance": opening,
        "receipts": {
            "count": receipts["total_receipts"],
            "amount": receipts["total_amount"],
            "by_status": receipts["by_status"],
            "by_payment_method": receipts["by_payment_method"],
        },
        "payments": {
            "count": payments["total_payments"],
            "amount": payments["total_amount"],
            "by_status": payments["by_status"],
            "by_payment_method": payments["by_payment_method"],
        },
        "closing_balance": closing,
        "net_cash_flow": round_money(to_decimal(closing) - to_decimal(opening)),
    }


def cash_flow_statement(session: Session, start: date, end: date) -> dict:
    summary = cash_book_summary(session, start, end)
    net = _net_by_reference(cash_movements(session, start, end))
    from_customers = net.pop("cash_receipt", 0.0)
    to_suppliers = round_money(0 - to_decimal(net.pop("cash_payment", 0.0)))
    other = round_money(sum(to_decimal(v) for v in net.values()))
    return {
        "period": summary["period"],
        "cash_flow_from_operations": {
            "receipts_from_customers": from_customers,
            "payments_to_suppliers": to_suppliers,
            "other_movements": other,
            "net_cash_flow": summary["net_cash_flow"],
        },
        "cash_balance": {
            "opening_balance": summary["opening_balance"],
            "net_increase": summary["net_cash_flow"],
            "closing_balance": summary["closing_balance"],
        },
        "breakdown": {
            "receipts_by_method": summary["receipts"]["by_payment_method"],
            "payments_by_method": summary["payments"]["by_payment_method"],
        },
    }

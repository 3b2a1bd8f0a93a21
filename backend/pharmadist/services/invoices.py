"""
Invoice lifecycle: draft → confirmed → (paid | cancelled).

Totals are rebuilt from the lines on every mutation. Confirmation posts the
invoice to the ledger (and any trade offers against the adjustment account);
cancellation of a confirmed invoice reverses those postings.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from loguru import logger
from sqlmodel import Session, col, func, select

from pharmadist.core.config import settings
from pharmadist.core.errors import AppError, BusinessRuleError, NotFoundError, ValidationError
from pharmadist.core.money import percent_of, round_money, to_decimal
from pharmadist.models.invoice import Invoice, InvoiceLine
from pharmadist.models.party import Account, Customer, Salesman, Supplier
from pharmadist.schemas.requests import InvoiceCreate, InvoiceLineIn, InvoiceUpdate
from pharmadist.services import ledger
from pharmadist.services.ledger import LedgerParty
from pharmadist.services.numbering import next_number
from pharmadist.services.tax import advance_tax_rate_for, line_taxes

PREFIXES = {"sales": "SI", "purchase": "PI"}


# ── Lookups ───────────────────────────────────────────────────────────────────


def get_invoice(session: Session, invoice_id: int) -> Invoice:
    invoice = session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


def get_lines(session: Session, invoice_id: int) -> list[InvoiceLine]:
    return list(
        session.exec(
            select(InvoiceLine)
            .where(InvoiceLine.invoice_id == invoice_id)
            .order_by(InvoiceLine.order)
        ).all()
    )


def list_invoices(
    session: Session,
    *,
    invoice_type: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    customer_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    salesman_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[int, list[Invoice]]:
    stmt = select(Invoice)
    if invoice_type:
        stmt = stmt.where(Invoice.invoice_type == invoice_type)
    if status:
        stmt = stmt.where(Invoice.status == status)
    if payment_status:
        stmt = stmt.where(Invoice.payment_status == payment_status)
    if customer_id:
        stmt = stmt.where(Invoice.customer_id == customer_id)
    if supplier_id:
        stmt = stmt.where(Invoice.supplier_id == supplier_id)
    if salesman_id:
        stmt = stmt.where(Invoice.salesman_id == salesman_id)
    if date_from:
        stmt = stmt.where(Invoice.invoice_date >= date_from)
    if date_to:
        stmt = stmt.where(Invoice.invoice_date <= date_to)
    if search:
        stmt = stmt.where(col(Invoice.invoice_number).contains(search))

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(col(Invoice.invoice_date).desc(), col(Invoice.id).desc())
    stmt = stmt.offset((page - 1) * page_size).limit(page_size)
    return total, list(session.exec(stmt).all())


# ── Totals ────────────────────────────────────────────────────────────────────


def build_line(data: InvoiceLineIn, invoice: Invoice, order: int) -> InvoiceLine:
    amounts = line_taxes(
        data.quantity,
        data.unit_price,
        discount_percent=data.discount_percent,
        gst_rate=data.gst_rate,
        advance_tax_rate=invoice.advance_tax_rate,
        is_non_filer=invoice.is_non_filer,
    )
    return InvoiceLine(
        invoice_id=invoice.id,
        order=order,
        item_code=data.item_code,
        item_name=data.item_name,
        batch_number=data.batch_number,
        expiry_date=data.expiry_date,
        quantity=data.quantity,
        scheme_quantity=data.scheme_quantity,
        unit_price=data.unit_price,
        discount_percent=data.discount_percent,
        gst_rate=data.gst_rate,
        **amounts,
    )


def apply_totals(invoice: Invoice, lines: list[InvoiceLine]) -> Invoice:
    """subtotal − discount + tax; trade offers are a percent of the taxable total."""
    subtotal = sum(to_decimal(l.gross_amount) for l in lines)
    discount = sum(to_decimal(l.discount_amount) for l in lines)
    tax = sum(to_decimal(l.tax_amount) for l in lines)
    taxable = subtotal - discount

    invoice.subtotal = round_money(subtotal)
    invoice.total_discount = round_money(discount)
    invoice.total_tax = round_money(tax)
    invoice.grand_total = round_money(subtotal - discount + tax)
    invoice.to1_amount = round_money(percent_of(taxable, invoice.to1_percent))
    invoice.to2_amount = round_money(percent_of(taxable, invoice.to2_percent))
    return invoice


def _replace_lines(session: Session, invoice: Invoice, lines_in: list[InvoiceLineIn]) -> list[InvoiceLine]:
    for old in get_lines(session, invoice.id):
        session.delete(old)
    session.flush()
    lines = [build_line(data, invoice, i) for i, data in enumerate(lines_in)]
    for line in lines:
        session.add(line)
    apply_totals(invoice, lines)
    return lines


def _check_trade_offers(session: Session, invoice: Invoice) -> None:
    if not (invoice.to1_percent or invoice.to2_percent):
        return
    if not invoice.adjustment_account_id:
        account = session.exec(
            select(Account).where(Account.code == settings.ADJUSTMENT_ACCOUNT_CODE)
        ).first()
        if not account:
            raise ValidationError("An adjustment account is required for trade offers")
        invoice.adjustment_account_id = account.id
    elif not session.get(Account, invoice.adjustment_account_id):
        raise NotFoundError("Account", invoice.adjustment_account_id)


def _check_salesman(session: Session, salesman_id: Optional[int]) -> None:
    if not salesman_id:
        return
    salesman = session.get(Salesman, salesman_id)
    if not salesman or not salesman.is_active:
        raise ValidationError("Salesman not found or inactive")


def check_credit_limit(customer: Customer, amount: float) -> None:
    """A zero credit limit means the customer is not limited."""
    limit = round_money(customer.credit_limit)
    if limit > 0 and round_money(amount) > limit:
        raise BusinessRuleError(
            f"Invoice amount {amount:,.2f} exceeds customer credit limit of {limit:,.2f}",
            code="CREDIT_LIMIT_EXCEEDED",
            details={"customer_id": customer.id, "credit_limit": limit, "amount": round_money(amount)},
        )


def _party(session: Session, invoice: Invoice):
    model = Customer if invoice.invoice_type == "sales" else Supplier
    return session.get(model, invoice.party_id)


# ── Mutations ─────────────────────────────────────────────────────────────────


def create_invoice(session: Session, data: InvoiceCreate, created_by: Optional[str] = None) -> Invoice:
    if data.invoice_type == "sales":
        party = session.get(Customer, data.customer_id)
        if not party:
            raise NotFoundError("Customer", data.customer_id)
    else:
        party = session.get(Supplier, data.supplier_id)
        if not party:
            raise NotFoundError("Supplier", data.supplier_id)
    if not party.is_active:
        raise BusinessRuleError(f"{party.name} is inactive")

    _check_salesman(session, data.salesman_id)

    advance_rate = data.advance_tax_rate
    if advance_rate is None:
        advance_rate = advance_tax_rate_for(party.registration_type) if data.invoice_type == "sales" else 0.0
    is_non_filer = data.is_non_filer
    if is_non_filer is None:
        is_non_filer = bool(getattr(party, "is_non_filer", False))

    invoice = Invoice(
        invoice_number=next_number(
            session, Invoice.invoice_number, PREFIXES[data.invoice_type], data.invoice_date
        ),
        invoice_type=data.invoice_type,
        invoice_date=data.invoice_date,
        due_date=data.due_date or data.invoice_date + timedelta(days=party.payment_terms_days),
        customer_id=data.customer_id if data.invoice_type == "sales" else None,
        supplier_id=data.supplier_id if data.invoice_type == "purchase" else None,
        salesman_id=data.salesman_id,
        supplier_bill_number=data.supplier_bill_number,
        advance_tax_rate=advance_rate,
        is_non_filer=is_non_filer,
        to1_percent=data.to1_percent,
        to2_percent=data.to2_percent,
        adjustment_account_id=data.adjustment_account_id,
        notes=data.notes,
        created_by=created_by,
    )
    _check_trade_offers(session, invoice)
    lines = [build_line(line, invoice, i) for i, line in enumerate(data.lines)]
    apply_totals(invoice, lines)
    if invoice.invoice_type == "sales":
        check_credit_limit(party, invoice.grand_total)

    session.add(invoice)
    session.flush()
    for line in lines:
        line.invoice_id = invoice.id
        session.add(line)
    session.commit()
    session.refresh(invoice)
    logger.info(
        f"Created {invoice.invoice_type} invoice {invoice.invoice_number} "
        f"({invoice.grand_total:,.2f})"
    )
    return invoice


def _require_draft(invoice: Invoice, action: str) -> None:
    if invoice.status != "draft":
        raise BusinessRuleError(
            f"Only draft invoices can be {action}; {invoice.invoice_number} is {invoice.status}"
        )


def update_invoice(session: Session, invoice_id: int, data: InvoiceUpdate) -> Invoice:
    invoice = get_invoice(session, invoice_id)
    _require_draft(invoice, "edited")
    try:
        _apply_update(session, invoice, data)
    except AppError:
        # discard the half-applied edit
        session.rollback()
        raise

    invoice.updated_at = datetime.utcnow()
    session.add(invoice)
    session.commit()
    session.refresh(invoice)
    return invoice


def _apply_update(session: Session, invoice: Invoice, data: InvoiceUpdate) -> None:
    changes = data.model_dump(exclude_unset=True, exclude={"lines"})
    if "salesman_id" in changes:
        _check_salesman(session, changes["salesman_id"])
    old_date = invoice.invoice_date
    for key, value in changes.items():
        if key == "invoice_date" and value is None:
            continue
        setattr(invoice, key, value)

    party = _party(session, invoice)
    if invoice.invoice_date != old_date:
        if "due_date" not in changes:
            invoice.due_date = invoice.invoice_date + timedelta(days=party.payment_terms_days)
        if invoice.invoice_date.year != old_date.year:
            invoice.invoice_number = next_number(
                session, Invoice.invoice_number, PREFIXES[invoice.invoice_type], invoice.invoice_date
            )
    if invoice.due_date and invoice.due_date < invoice.invoice_date:
        raise ValidationError("Due date cannot be before invoice date")
    _check_trade_offers(session, invoice)

    if data.lines is not None:
        _replace_lines(session, invoice, data.lines)
    else:
        # Tax options or trade offers may have changed
        lines = get_lines(session, invoice.id)
        rebuilt = []
        for line in lines:
            amounts = line_taxes(
                line.quantity,
                line.unit_price,
                discount_percent=line.discount_percent,
                gst_rate=line.gst_rate,
                advance_tax_rate=invoice.advance_tax_rate,
                is_non_filer=invoice.is_non_filer,
            )
            for key, value in amounts.items():
                setattr(line, key, value)
            session.add(line)
            rebuilt.append(line)
        apply_totals(invoice, rebuilt)

    if invoice.invoice_type == "sales":
        check_credit_limit(party, invoice.grand_total)


def delete_invoice(session: Session, invoice_id: int) -> None:
    invoice = get_invoice(session, invoice_id)
    _require_draft(invoice, "deleted")
    for line in get_lines(session, invoice.id):
        session.delete(line)
    session.delete(invoice)
    session.commit()
    logger.info(f"Deleted draft invoice {invoice.invoice_number}")


def _post_trade_offers(session: Session, invoice: Invoice, created_by: Optional[str]) -> None:
    adjustment = LedgerParty("Account", invoice.adjustment_account_id)
    party = LedgerParty(invoice.party_type, invoice.party_id)
    for label, amount in (("TO1", invoice.to1_amount), ("TO2", invoice.to2_amount)):
        if amount < 0.01:
            continue
        if invoice.invoice_type == "sales":
            debit, credit = adjustment, party
        else:
            debit, credit = party, adjustment
        ledger.create_double_entry(
            session,
            debit,
            credit,
            amount,
            f"Trade offer {label} on {invoice.invoice_number}",
            "adjustment",
            invoice.id,
            created_by=created_by,
            transaction_date=min(invoice.invoice_date, date.today()),
            commit=False,
        )


def confirm_invoice(session: Session, invoice_id: int, created_by: Optional[str] = None) -> Invoice:
    """Post the invoice (and trade offers) to the ledger and mark it confirmed."""
    invoice = get_invoice(session, invoice_id)
    _require_draft(invoice, "confirmed")
    if invoice.grand_total < 0.01:
        raise BusinessRuleError("Cannot confirm an invoice with a zero total")
    if invoice.invoice_type == "sales":
        check_credit_limit(_party(session, invoice), invoice.grand_total)

    party = LedgerParty(invoice.party_type, invoice.party_id)
    if invoice.invoice_type == "sales":
        debit = party
        credit = ledger.system_account(session, settings.SALES_ACCOUNT_CODE)
        description = f"Sales invoice {invoice.invoice_number}"
    else:
        debit = ledger.system_account(session, settings.PURCHASE_ACCOUNT_CODE)
        credit = party
        description = f"Purchase invoice {invoice.invoice_number}"

    ledger.create_double_entry(
        session,
        debit,
        credit,
        invoice.grand_total,
        description,
        "invoice",
        invoice.id,
        created_by=created_by,
        transaction_date=min(invoice.invoice_date, date.today()),
        commit=False,
    )
    if invoice.to1_amount or invoice.to2_amount:
        _post_trade_offers(session, invoice, created_by)

    invoice.status = "confirmed"
    invoice.confirmed_at = datetime.utcnow()
    invoice.updated_at = datetime.utcnow()
    session.add(invoice)
    session.commit()
    session.refresh(invoice)
    logger.info(f"Confirmed invoice {invoice.invoice_number}")
    return invoice


def cancel_invoice(
    session: Session, invoice_id: int, reason: str, created_by: Optional[str] = None
) -> Invoice:
    invoice = get_invoice(session, invoice_id)
    if invoice.status == "cancelled":
        raise BusinessRuleError(f"Invoice {invoice.invoice_number} is already cancelled")
    if invoice.status == "paid" or invoice.paid_amount > 0:
        raise BusinessRuleError(
            f"Invoice {invoice.invoice_number} has payments applied and cannot be cancelled"
        )

    if invoice.status == "confirmed":
        for reference_type in ("invoice", "adjustment"):
            if ledger.has_live_entries(session, reference_type, invoice.id):
                ledger.reverse_entries(
                    session,
                    reference_type,
                    invoice.id,
                    f"Cancelled: {reason}",
                    created_by,
                    commit=False,
                )

    invoice.status = "cancelled"
    invoice.cancelled_at = datetime.utcnow()
    invoice.cancellation_reason = reason
    invoice.updated_at = datetime.utcnow()
    session.add(invoice)
    session.commit()
    session.refresh(invoice)
    logger.info(f"Cancelled invoice {invoice.invoice_number}: {reason}")
    return invoice


def apply_payment(session: Session, invoice: Invoice, amount: float) -> Invoice:
    """Add ``amount`` to paid_amount and roll payment/status forward (no commit)."""
    if invoice.status not in ("confirmed", "paid"):
        raise BusinessRuleError(
            f"Payments can only be applied to confirmed invoices; "
            f"{invoice.invoice_number} is {invoice.status}"
        )
    if invoice.balance_due <= 0:
        raise BusinessRuleError(f"Invoice {invoice.invoice_number} is already fully paid")
    if round_money(amount) > round_money(invoice.balance_due) + 0.001:
        raise BusinessRuleError(
            f"Amount {amount:,.2f} exceeds balance {invoice.balance_due:,.2f} "
            f"on {invoice.invoice_number}"
        )

    invoice.paid_amount = round_money(to_decimal(invoice.paid_amount) + to_decimal(amount))
    if invoice.balance_due <= 0:
        invoice.payment_status = "paid"
        invoice.status = "paid"
    else:
        invoice.payment_status = "partial"
    invoice.updated_at = datetime.utcnow()
    session.add(invoice)
    return invoice


def mark_paid(session: Session, invoice_id: int, amount: Optional[float] = None) -> Invoice:
    """Record a settlement without a cash document; None settles the full balance."""
    invoice = get_invoice(session, invoice_id)
    apply_payment(session, invoice, amount if amount is not None else invoice.balance_due)
    session.commit()
    session.refresh(invoice)
    logger.info(
        f"Invoice {invoice.invoice_number} marked {invoice.payment_status} "
        f"({invoice.paid_amount:,.2f}/{invoice.grand_total:,.2f})"
    )
    return invoice


# ── Tax summary ───────────────────────────────────────────────────────────────


def tax_summary(
    session: Session,
    start: date,
    end: date,
    invoice_type: Optional[str] = None,
) -> dict:
    """Taxable value and each tax component of confirmed invoices, per type and GST rate."""
    if start > end:
        raise ValidationError("Start date must be on or before end date")
    stmt = (
        select(
            Invoice.invoice_type,
            InvoiceLine.gst_rate,
            func.count(func.distinct(Invoice.id)),
            func.sum(InvoiceLine.taxable_amount),
            func.sum(InvoiceLine.gst_amount),
            func.sum(InvoiceLine.advance_tax_amount),
            func.sum(InvoiceLine.non_filer_amount),
        )
        .select_from(InvoiceLine)
        .join(Invoice, InvoiceLine.invoice_id == Invoice.id)
        .where(
            col(Invoice.status).in_(["confirmed", "paid"]),
            Invoice.invoice_date >= start,
            Invoice.invoice_date <= end,
        )
        .group_by(Invoice.invoice_type, InvoiceLine.gst_rate)
        .order_by(Invoice.invoice_type, InvoiceLine.gst_rate)
    )
    if invoice_type:
        stmt = stmt.where(Invoice.invoice_type == invoice_type)

    rows = []
    for inv_type, rate, count, taxable, gst_amt, adv, nf in session.exec(stmt).all():
        total_tax = to_decimal(gst_amt) + to_decimal(adv) + to_decimal(nf)
        rows.append(
            {
                "invoice_type": inv_type,
                "gst_rate": rate,
                "invoice_count": count,
                "taxable_amount": round_money(taxable),
                "gst_amount": round_money(gst_amt),
                "advance_tax_amount": round_money(adv),
                "non_filer_amount": round_money(nf),
                "total_tax": round_money(total_tax),
            }
        )

    def _sum(key: str) -> float:
        return round_money(sum((to_decimal(r[key]) for r in rows), to_decimal(0)))

    return {
        "period": {"start_date": start, "end_date": end},
        "invoice_type": invoice_type,
        "rows": rows,
        "totals": {
            key: _sum(key)
            for key in ("taxable_amount", "gst_amount", "advance_tax_amount", "non_filer_amount", "total_tax")
        },
    }

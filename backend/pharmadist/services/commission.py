"""
Salesman sales, collections, performance and commission.

Sales are confirmed (or since paid) sales invoices carrying a salesman;
collections are cleared cash receipts carrying a salesman. Commission is
rate % of each base, computed independently per basis and rounded half-up to
two decimals only on the final figures.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlmodel import Session, col, select

from pharmadist.core.errors import NotFoundError, ValidationError
from pharmadist.core.money import percent_of, round_money, to_decimal
from pharmadist.models.cash import CashReceipt
from pharmadist.models.invoice import Invoice
from pharmadist.models.party import Customer, Salesman

COMMISSION_BASES = ("sales", "collections", "both")
SALES_STATUSES = ("confirmed", "paid")


def _check_period(start: date, end: date) -> None:
    if not start or not end:
        raise ValidationError("Start date and end date are required")
    if start > end:
        raise ValidationError("Start date must be on or before end date")


def _salesman(session: Session, salesman_id: int) -> Salesman:
    salesman = session.get(Salesman, salesman_id)
    if not salesman:
        raise NotFoundError("Salesman", salesman_id)
    return salesman


def _customer_ref(session: Session, customer_id: Optional[int]) -> Optional[dict]:
    customer = session.get(Customer, customer_id) if customer_id else None
    if not customer:
        return None
    return {"id": customer.id, "code": customer.code, "name": customer.name}


def _group(session: Session, rows: list, total_key: str, count_key: str, list_key: str) -> list[dict]:
    """Group (salesman_id, detail, amount) rows per salesman, largest total first."""
    groups: dict[int, dict] = {}
    for salesman_id, detail, amount in rows:
        group = groups.get(salesman_id)
        if group is None:
            salesman = session.get(Salesman, salesman_id)
            group = groups[salesman_id] = {
                "salesman_id": salesman_id,
                "salesman_code": salesman.code if salesman else None,
                "salesman_name": salesman.name if salesman else None,
                count_key: 0,
                total_key: Decimal(0),
                list_key: [],
            }
        group[count_key] += 1
        group[total_key] += to_decimal(amount)
        group[list_key].append(detail)

    out = []
    for group in groups.values():
        group[total_key] = round_money(group[total_key])
        out.append(group)
    out.sort(key=lambda g: g[total_key], reverse=True)
    return out


def salesman_sales(
    session: Session, salesman_id: Optional[int], start: date, end: date
) -> dict:
    _check_period(start, end)
    stmt = select(Invoice).where(
        Invoice.invoice_type == "sales",
        col(Invoice.status).in_(SALES_STATUSES),
        col(Invoice.salesman_id).is_not(None),
        Invoice.invoice_date >= start,
        Invoice.invoice_date <= end,
    )
    if salesman_id:
        stmt = stmt.where(Invoice.salesman_id == salesman_id)
    invoices = session.exec(stmt.order_by(col(Invoice.invoice_date).desc())).all()

    rows = [
        (
            inv.salesman_id,
            {
                "invoice_id": inv.id,
                "invoice_number": inv.invoice_number,
                "invoice_date": inv.invoice_date,
                "customer": _customer_ref(session, inv.customer_id),
                "amount": inv.grand_total,
            },
            inv.grand_total,
        )
        for inv in invoices
    ]
    by_salesman = _group(session, rows, "total_sales", "invoice_count", "invoices")
    total = sum((to_decimal(inv.grand_total) for inv in invoices), Decimal(0))
    return {
        "report_type": "salesman_sales",
        "salesman_id": salesman_id,
        "period": {"start_date": start, "end_date": end},
        "summary": {
            "total_invoices": len(invoices),
            "total_sales": round_money(total),
            "total_salesmen": len(by_salesman),
        },
        "sales_by_salesman": by_salesman,
    }


def salesman_collections(
    session: Session, salesman_id: Optional[int], start: date, end: date
) -> dict:
    _check_period(start, end)
    stmt = select(CashReceipt).where(
        CashReceipt.status == "cleared",
        col(CashReceipt.salesman_id).is_not(None),
        CashReceipt.receipt_date >= start,
        CashReceipt.receipt_date <= end,
    )
    if salesman_id:
        stmt = stmt.where(CashReceipt.salesman_id == salesman_id)
    receipts = session.exec(stmt.order_by(col(CashReceipt.receipt_date).desc())).all()

    rows = [
        (
            r.salesman_id,
            {
                "receipt_id": r.id,
                "receipt_number": r.receipt_number,
                "receipt_date": r.receipt_date,
                "customer": _customer_ref(session, r.customer_id),
                "amount": r.amount,
            },
            r.amount,
        )
        for r in receipts
    ]
    by_salesman = _group(session, rows, "total_collections", "receipt_count", "receipts")
    total = sum((to_decimal(r.amount) for r in receipts), Decimal(0))
    return {
        "report_type": "salesman_collections",
        "salesman_id": salesman_id,
        "period": {"start_date": start, "end_date": end},
        "summary": {
            "total_receipts": len(receipts),
            "total_collections": round_money(total),
            "total_salesmen": len(by_salesman),
        },
        "collections_by_salesman": by_salesman,
    }


def _raw_total(session: Session, amount_field, *conditions) -> tuple[Decimal, int]:
    rows = session.exec(select(amount_field).where(*conditions)).all()
    return sum((to_decimal(v) for v in rows), Decimal(0)), len(rows)


def _sales_base(session: Session, salesman_id: int, start: date, end: date) -> tuple[Decimal, int]:
    return _raw_total(
        session,
        Invoice.grand_total,
        Invoice.invoice_type == "sales",
        col(Invoice.status).in_(SALES_STATUSES),
        Invoice.salesman_id == salesman_id,
        Invoice.invoice_date >= start,
        Invoice.invoice_date <= end,
    )


def _collections_base(session: Session, salesman_id: int, start: date, end: date) -> tuple[Decimal, int]:
    return _raw_total(
        session,
        CashReceipt.amount,
        CashReceipt.status == "cleared",
        CashReceipt.salesman_id == salesman_id,
        CashReceipt.receipt_date >= start,
        CashReceipt.receipt_date <= end,
    )


def calculate_commission(
    session: Session,
    salesman_id: Optional[int],
    start: date,
    end: date,
    basis: str = "both",
    sales_rate: Optional[float] = None,
    collections_rate: Optional[float] = None,
) -> dict:
    """
    Commission for one salesman, or every active salesman when ``salesman_id``
    is None. Override rates replace the stored rate for their basis only.
    """
    _check_period(start, end)
    if basis not in COMMISSION_BASES:
        raise ValidationError(f"Commission basis must be one of {', '.join(COMMISSION_BASES)}")
    for rate in (sales_rate, collections_rate):
        if rate is not None and not 0 <= rate <= 100:
            raise ValidationError("Commission rate must be between 0 and 100")

    if salesman_id:
        salesmen = [_salesman(session, salesman_id)]
    else:
        salesmen = list(
            session.exec(select(Salesman).where(Salesman.is_active == True).order_by(Salesman.code)).all()  # noqa: E712
        )

    details = []
    total_sales_commission = Decimal(0)
    total_collections_commission = Decimal(0)

    for salesman in salesmen:
        stored = salesman.commission_rate or 0.0
        s_rate = sales_rate if sales_rate is not None else stored
        c_rate = collections_rate if collections_rate is not None else stored

        sales_total, invoice_count = (Decimal(0), 0)
        coll_total, receipt_count = (Decimal(0), 0)
        if basis in ("sales", "both"):
            sales_total, invoice_count = _sales_base(session, salesman.id, start, end)
        if basis in ("collections", "both"):
            coll_total, receipt_count = _collections_base(session, salesman.id, start, end)

        sales_commission = percent_of(sales_total, s_rate) if basis != "collections" else Decimal(0)
        coll_commission = percent_of(coll_total, c_rate) if basis != "sales" else Decimal(0)

        total_sales_commission += sales_commission
        total_collections_commission += coll_commission

        details.append(
            {
                "salesman_id": salesman.id,
                "salesman_code": salesman.code,
                "salesman_name": salesman.name,
                "commission_rate": stored,
                "sales": {
                    "total_sales": round_money(sales_total),
                    "invoice_count": invoice_count,
                    "commission_rate": s_rate,
                    "commission": round_money(sales_commission),
                },
                "collections": {
                    "total_collections": round_money(coll_total),
                    "receipt_count": receipt_count,
                    "commission_rate": c_rate,
                    "commission": round_money(coll_commission),
                },
                "total_commission": round_money(sales_commission + coll_commission),
            }
        )

    details.sort(key=lambda d: d["total_commission"], reverse=True)
    logger.debug(
        f"Commission {start} → {end} basis={basis}: {len(details)} salesman/men, "
        f"total {round_money(total_sales_commission + total_collections_commission)}"
    )
    return {
        "report_type": "salesman_commission",
        "salesman_id": salesman_id,
        "period": {"start_date": start, "end_date": end},
        "commission_basis": basis,
        "summary": {
            "total_salesmen": len(details),
            "total_sales_commission": round_money(total_sales_commission),
            "total_collections_commission": round_money(total_collections_commission),
            "total_commission": round_money(total_sales_commission + total_collections_commission),
        },
        "commission_details": details,
    }


def _achievement(actual: Decimal, target: float) -> float:
    if not target:
        return 0.0
    return round_money(actual / to_decimal(target) * 100)


def salesman_performance(session: Session, salesman_id: int, start: date, end: date) -> dict:
    """Actual sales and collections against the salesman's stored targets."""
    _check_period(start, end)
    salesman = _salesman(session, salesman_id)
    sales_total, invoice_count = _sales_base(session, salesman.id, start, end)
    coll_total, receipt_count = _collections_base(session, salesman.id, start, end)
    return {
        "report_type": "salesman_performance",
        "salesman_id": salesman.id,
        "salesman_code": salesman.code,
        "salesman_name": salesman.name,
        "period": {"start_date": start, "end_date": end},
        "performance": {
            "sales": {
                "actual": round_money(sales_total),
                "target": salesman.sales_target,
                "achievement": _achievement(sales_total, salesman.sales_target),
                "invoice_count": invoice_count,
            },
            "collections": {
                "actual": round_money(coll_total),
                "target": salesman.collections_target,
                "achievement": _achievement(coll_total, salesman.collections_target),
                "receipt_count": receipt_count,
            },
        },
    }

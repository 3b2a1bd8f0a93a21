"""Salesman recovery summaries: per-town sheets of customer balances and recoveries."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlmodel import Session, col, func, select

from pharmadist.core.config import settings
from pharmadist.core.errors import NotFoundError, ValidationError
from pharmadist.core.money import round_money, to_decimal
from pharmadist.models.party import Customer, Salesman
from pharmadist.models.recovery import RecoveryAccount, RecoverySummary
from pharmadist.schemas.requests import (
    RecoveryAccountIn,
    RecoverySummaryCreate,
    RecoverySummaryUpdate,
)


def get_summary(session: Session, summary_id: int) -> RecoverySummary:
    summary = session.get(RecoverySummary, summary_id)
    if not summary or summary.is_deleted:
        raise NotFoundError("Recovery summary", summary_id)
    return summary


def get_accounts(session: Session, summary_id: int) -> list[RecoveryAccount]:
    return list(
        session.exec(
            select(RecoveryAccount)
            .where(RecoveryAccount.summary_id == summary_id)
            .order_by(RecoveryAccount.order)
        ).all()
    )


def _filtered(
    stmt,
    date_from: Optional[date],
    date_to: Optional[date],
    salesman_id: Optional[int],
    town: Optional[str],
):
    stmt = stmt.where(RecoverySummary.is_deleted == False)  # noqa: E712
    if date_from:
        stmt = stmt.where(RecoverySummary.summary_date >= date_from)
    if date_to:
        stmt = stmt.where(RecoverySummary.summary_date <= date_to)
    if salesman_id:
        stmt = stmt.where(RecoverySummary.salesman_id == salesman_id)
    if town:
        stmt = stmt.where(func.lower(RecoverySummary.town).contains(town.strip().lower()))
    return stmt


def list_summaries(
    session: Session,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    salesman_id: Optional[int] = None,
    town: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[int, list[RecoverySummary]]:
    stmt = _filtered(select(RecoverySummary), date_from, date_to, salesman_id, town)
    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(col(RecoverySummary.summary_date).desc(), col(RecoverySummary.id).desc())
    stmt = stmt.offset((page - 1) * page_size).limit(page_size)
    return total, list(session.exec(stmt).all())


def _check_salesman(session: Session, salesman_id: int) -> Salesman:
    salesman = session.get(Salesman, salesman_id)
    if not salesman:
        raise NotFoundError("Salesman", salesman_id)
    return salesman


def _check_customers(session: Session, accounts: list[RecoveryAccountIn]) -> None:
    ids = [a.customer_id for a in accounts]
    if len(set(ids)) != len(ids):
        raise ValidationError("A customer may appear only once per recovery summary")
    found = session.exec(select(Customer.id).where(col(Customer.id).in_(ids))).all()
    missing = sorted(set(ids) - set(found))
    if missing:
        raise ValidationError(
            "One or more accounts not found", details={"customer_ids": missing}
        )


def _write_accounts(
    session: Session, summary: RecoverySummary, accounts: list[RecoveryAccountIn]
) -> None:
    """Replace the account lines and recompute the derived totals."""
    for old in get_accounts(session, summary.id):
        session.delete(old)

    invoice_total = balance_total = recovery_total = Decimal(0)
    for order, acc in enumerate(accounts):
        session.add(
            RecoveryAccount(
                summary_id=summary.id,
                customer_id=acc.customer_id,
                order=order,
                invoice_amount=round_money(acc.invoice_amount),
                balance=round_money(acc.balance),
                recovery_amount=round_money(acc.recovery_amount),
            )
        )
        invoice_total += to_decimal(acc.invoice_amount)
        balance_total += to_decimal(acc.balance)
        recovery_total += to_decimal(acc.recovery_amount)

    summary.total_invoice_amount = round_money(invoice_total)
    summary.total_balance = round_money(balance_total)
    summary.total_recovery = round_money(recovery_total)


def create_summary(
    session: Session, data: RecoverySummaryCreate, created_by: Optional[str] = None
) -> RecoverySummary:
    _check_salesman(session, data.salesman_id)
    _check_customers(session, data.accounts)

    summary = RecoverySummary(
        summary_date=data.summary_date,
        salesman_id=data.salesman_id,
        town=data.town.strip(),
        notes=data.notes,
        created_by=created_by,
    )
    session.add(summary)
    session.flush()
    _write_accounts(session, summary, data.accounts)
    session.commit()
    session.refresh(summary)
    logger.info(
        f"Recovery summary #{summary.id} for salesman {summary.salesman_id} in {summary.town}: "
        f"{len(data.accounts)} account(s), recovered {summary.total_recovery}"
    )
    return summary


def update_summary(
    session: Session, summary_id: int, data: RecoverySummaryUpdate
) -> RecoverySummary:
    summary = get_summary(session, summary_id)
    changes = data.model_dump(exclude_unset=True, exclude={"accounts"})
    if changes.get("salesman_id"):
        _check_salesman(session, changes["salesman_id"])
    for key, value in changes.items():
        if value is not None:
            setattr(summary, key, value.strip() if key == "town" else value)

    if data.accounts is not None:
        _check_customers(session, data.accounts)
        _write_accounts(session, summary, data.accounts)

    summary.updated_at = datetime.utcnow()
    session.add(summary)
    session.commit()
    session.refresh(summary)
    return summary


def delete_summary(session: Session, summary_id: int) -> RecoverySummary:
    summary = get_summary(session, summary_id)
    summary.is_deleted = True
    summary.updated_at = datetime.utcnow()
    session.add(summary)
    session.commit()
    logger.info(f"Recovery summary #{summary_id} deleted")
    return summary


def recovery_statistics(
    session: Session,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    salesman_id: Optional[int] = None,
    town: Optional[str] = None,
) -> dict:
    summaries = session.exec(
        _filtered(select(RecoverySummary), date_from, date_to, salesman_id, town)
    ).all()
    invoice_total = sum((to_decimal(s.total_invoice_amount) for s in summaries), Decimal(0))
    balance_total = sum((to_decimal(s.total_balance) for s in summaries), Decimal(0))
    recovery_total = sum((to_decimal(s.total_recovery) for s in summaries), Decimal(0))
    return {
        "total_summaries": len(summaries),
        "total_invoice_amount": round_money(invoice_total),
        "total_balance": round_money(balance_total),
        "total_recovery": round_money(recovery_total),
        "total_outstanding": round_money(invoice_total - recovery_total),
        "average_recovery_percentage": (
            round_money(recovery_total / invoice_total * 100) if invoice_total else 0.0
        ),
    }


def summary_print_data(session: Session, summary_id: int) -> dict:
    """Everything the printed recovery sheet shows."""
    summary = get_summary(session, summary_id)
    salesman = session.get(Salesman, summary.salesman_id)
    rows = []
    for acc in get_accounts(session, summary.id):
        customer = session.get(Customer, acc.customer_id)
        rows.append(
            {
                "customer_code": customer.code if customer else None,
                "customer_name": customer.name if customer else None,
                "town": summary.town,
                "invoice_amount": acc.invoice_amount,
                "balance": acc.balance,
                "recovery_amount": acc.recovery_amount,
                "remaining_balance": round_money(
                    to_decimal(acc.balance) - to_decimal(acc.recovery_amount)
                ),
            }
        )
    return {
        "company": {"name": settings.COMPANY_NAME},
        "title": "Cash Recovery Summary",
        "generated_at": datetime.utcnow(),
        "summary": {
            "id": summary.id,
            "date": summary.summary_date,
            "salesman": {
                "code": salesman.code if salesman else None,
                "name": salesman.name if salesman else None,
            },
            "town": summary.town,
            "notes": summary.notes,
            "created_by": summary.created_by,
        },
        "financials": {
            "total_invoice_amount": summary.total_invoice_amount,
            "total_balance": summary.total_balance,
            "total_recovery": summary.total_recovery,
            "net_outstanding": round_money(
                to_decimal(summary.total_balance) - to_decimal(summary.total_recovery)
            ),
            "recovery_percentage": summary.recovery_percentage,
        },
        "accounts": rows,
    }

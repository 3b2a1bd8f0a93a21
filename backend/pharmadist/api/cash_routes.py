"""
Cash receipt and payment routes.

Endpoints:
  GET  /api/cash/receipts
  POST /api/cash/receipts
  GET  /api/cash/receipts/{id}
  POST /api/cash/receipts/{id}/clear
  POST /api/cash/receipts/{id}/cancel
  POST /api/cash/receipts/{id}/bounce
  GET  /api/cash/cheques/pending
  GET  /api/cash/payments
  POST /api/cash/payments
  GET  /api/cash/payments/{id}
  POST /api/cash/payments/{id}/clear
  POST /api/cash/payments/{id}/cancel
  GET  /api/cash/book-balance
  GET  /api/cash/book/summary
  GET  /api/cash/book/daily
  GET  /api/cash/book/running-balance
  GET  /api/cash/book/cash-flow
  GET  /api/cash/book/receipt-statistics

Cash book reports take the same period and ``format`` parameters as
/api/reports.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from pharmadist.api.report_routes import FORMAT_PATTERN, _period, _period_label, _respond
from pharmadist.core.database import get_session
from pharmadist.core.security import CurrentUser, get_current_user, require_finance
from pharmadist.schemas.requests import ClearIn, PaymentCreate, ReasonIn, ReceiptCreate
from pharmadist.schemas.responses import (
    AllocationRead,
    Envelope,
    Page,
    PaymentRead,
    ReceiptRead,
    ok,
)
from pharmadist.services import cash as svc

cash_router = APIRouter(prefix="/api/cash")


def _receipt(session: Session, receipt) -> ReceiptRead:
    out = ReceiptRead.model_validate(receipt)
    out.allocations = [
        AllocationRead.model_validate(a)
        for a in svc.allocations_for(session, "cash_receipt", receipt.id)
    ]
    return out


def _payment(session: Session, payment) -> PaymentRead:
    out = PaymentRead.model_validate(payment)
    out.allocations = [
        AllocationRead.model_validate(a)
        for a in svc.allocations_for(session, "cash_payment", payment.id)
    ]
    return out


# ── Receipts ──────────────────────────────────────────────────────────────────


@cash_router.get("/receipts", response_model=Envelope[Page[ReceiptRead]])
def list_receipts(
    customer_id: Optional[int] = Query(default=None),
    salesman_id: Optional[int] = Query(default=None),
    status: Optional[str] = Query(default=None),
    payment_method: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    total, rows = svc.list_receipts(
        session,
        customer_id=customer_id,
        salesman_id=salesman_id,
        status=status,
        payment_method=payment_method,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    return ok(
        Page(total=total, page=page, page_size=page_size, items=[_receipt(session, r) for r in rows])
    )


@cash_router.post("/receipts", response_model=Envelope[ReceiptRead], status_code=201)
def create_receipt(
    body: ReceiptCreate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    receipt = svc.create_receipt(session, body, created_by=user.username)
    return ok(_receipt(session, receipt), f"Receipt {receipt.receipt_number} recorded")


@cash_router.get("/receipts/{receipt_id}", response_model=Envelope[ReceiptRead])
def get_receipt(
    receipt_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(_receipt(session, svc.get_receipt(session, receipt_id)))


@cash_router.post("/receipts/{receipt_id}/clear", response_model=Envelope[ReceiptRead])
def clear_receipt(
    receipt_id: int,
    body: ClearIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    receipt = svc.clear_receipt(session, receipt_id, body.cleared_date, created_by=user.username)
    return ok(_receipt(session, receipt), "Receipt cleared")


@cash_router.post("/receipts/{receipt_id}/cancel", response_model=Envelope[ReceiptRead])
def cancel_receipt(
    receipt_id: int,
    body: ReasonIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    receipt = svc.cancel_receipt(session, receipt_id, body.reason, created_by=user.username)
    return ok(_receipt(session, receipt), "Receipt cancelled")


@cash_router.post("/receipts/{receipt_id}/bounce", response_model=Envelope[ReceiptRead])
def bounce_cheque(
    receipt_id: int,
    body: ReasonIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    receipt = svc.bounce_cheque(session, receipt_id, body.reason, created_by=user.username)
    return ok(_receipt(session, receipt), "Cheque marked as bounced")


@cash_router.get("/cheques/pending", response_model=Envelope[list[ReceiptRead]])
def pending_cheques(
    due_by: Optional[date] = Query(default=None),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok([_receipt(session, r) for r in svc.pending_cheques(session, due_by)])


# ── Payments ──────────────────────────────────────────────────────────────────


@cash_router.get("/payments", response_model=Envelope[Page[PaymentRead]])
def list_payments(
    supplier_id: Optional[int] = Query(default=None),
    status: Optional[str] = Query(default=None),
    payment_method: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    total, rows = svc.list_payments(
        session,
        supplier_id=supplier_id,
        status=status,
        payment_method=payment_method,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    return ok(
        Page(total=total, page=page, page_size=page_size, items=[_payment(session, p) for p in rows])
    )


@cash_router.post("/payments", response_model=Envelope[PaymentRead], status_code=201)
def create_payment(
    body: PaymentCreate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    payment = svc.create_payment(session, body, created_by=user.username)
    return ok(_payment(session, payment), f"Payment {payment.payment_number} recorded")


@cash_router.get("/payments/{payment_id}", response_model=Envelope[PaymentRead])
def get_payment(
    payment_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(_payment(session, svc.get_payment(session, payment_id)))


@cash_router.post("/payments/{payment_id}/clear", response_model=Envelope[PaymentRead])
def clear_payment(
    payment_id: int,
    body: ClearIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    return ok(_payment(session, svc.clear_payment(session, payment_id, body.cleared_date)), "Payment cleared")


@cash_router.post("/payments/{payment_id}/cancel", response_model=Envelope[PaymentRead])
def cancel_payment(
    payment_id: int,
    body: ReasonIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    payment = svc.cancel_payment(session, payment_id, body.reason, created_by=user.username)
    return ok(_payment(session, payment), "Payment cancelled")


@cash_router.get("/book-balance")
def book_balance(
    as_of: Optional[date] = Query(default=None),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(svc.cash_book_balance(session, as_of))


# ── Cash book reports ─────────────────────────────────────────────────────────

MOVEMENT_COLUMNS = [
    ("date", "Date"),
    ("number", "Document"),
    ("party", "Party"),
    ("payment_method", "Method"),
    ("description", "Description"),
    ("debit", "Receipts"),
    ("credit", "Payments"),
    ("balance", "Balance"),
]

BREAKDOWN_COLUMNS = [
    ("document", "Document"),
    ("group", "Grouped by"),
    ("key", "Value"),
    ("count", "Count"),
    ("amount", "Amount"),
]


def _breakdown_rows(document: str, stats: dict) -> list[dict]:
    rows = []
    for group in ("by_status", "by_payment_method"):
        for key, item in sorted(stats[group].items()):
            rows.append(
                {
                    "document": document,
                    "group": group[3:].replace("_", " "),
                    "key": key,
                    "count": item["count"],
                    "amount": item["amount"],
                }
            )
    return rows


@cash_router.get("/book/summary")
def cash_book_summary(
    month: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    start, end = _period(month, start_date, end_date)
    data = svc.cash_book_summary(session, start, end)
    rows = _breakdown_rows("Receipts", data["receipts"]) + _breakdown_rows("Payments", data["payments"])
    return _respond(
        format,
        data,
        rows,
        BREAKDOWN_COLUMNS,
        "Cash Book Summary",
        f"cash_book_summary_{start:%Y%m%d}_{end:%Y%m%d}",
        f"{_period_label(start, end)} | opening {data['opening_balance']:,.2f} | "
        f"closing {data['closing_balance']:,.2f}",
        {"document": "Net cash flow", "amount": data["net_cash_flow"]},
    )


@cash_router.get("/book/daily")
def daily_cash_book(
    day: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    day = day or date.today()
    data = svc.daily_cash_book(session, day)
    return _respond(
        format,
        data,
        data["transactions"],
        MOVEMENT_COLUMNS,
        "Daily Cash Book",
        f"cash_book_{day:%Y%m%d}",
        f"{day.isoformat()} | opening {data['opening_balance']:,.2f}",
        {
            "description": "Closing balance",
            "debit": data["totals"]["receipts"],
            "credit": data["totals"]["payments"],
            "balance": data["closing_balance"],
        },
    )


@cash_router.get("/book/running-balance")
def cash_book_with_running_balance(
    month: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    start, end = _period(month, start_date, end_date)
    data = svc.cash_book_with_running_balance(session, start, end)
    return _respond(
        format,
        data,
        data["transactions"],
        MOVEMENT_COLUMNS,
        "Cash Book",
        f"cash_book_{start:%Y%m%d}_{end:%Y%m%d}",
        f"{_period_label(start, end)} | opening {data['opening_balance']:,.2f}",
        {"description": "Closing balance", "balance": data["closing_balance"]},
    )


@cash_router.get("/book/cash-flow")
def cash_flow_statement(
    month: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    start, end = _period(month, start_date, end_date)
    data = svc.cash_flow_statement(session, start, end)
    ops = data["cash_flow_from_operations"]
    balance = data["cash_balance"]
    rows = [
        {"item": "Opening balance", "amount": balance["opening_balance"]},
        {"item": "Receipts from customers", "amount": ops["receipts_from_customers"]},
        {"item": "Payments to suppliers", "amount": 0 - ops["payments_to_suppliers"]},
        {"item": "Other movements", "amount": ops["other_movements"]},
        {"item": "Net cash flow", "amount": ops["net_cash_flow"]},
    ]
    return _respond(
        format,
        data,
        rows,
        [("item", "Item"), ("amount", "Amount")],
        "Cash Flow Statement",
        f"cash_flow_{start:%Y%m%d}_{end:%Y%m%d}",
        _period_label(start, end),
        {"item": "Closing balance", "amount": balance["closing_balance"]},
    )


@cash_router.get("/book/receipt-statistics")
def receipt_statistics(
    month: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    start, end = _period(month, start_date, end_date)
    data = svc.receipt_statistics(session, start, end)
    return _respond(
        format,
        data,
        _breakdown_rows("Receipts", data),
        BREAKDOWN_COLUMNS,
        "Receipt Statistics",
        f"receipt_statistics_{start:%Y%m%d}_{end:%Y%m%d}",
        _period_label(start, end),
        {"document": "Total", "count": data["total_receipts"], "amount": data["total_amount"]},
    )

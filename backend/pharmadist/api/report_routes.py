"""
Report routes. Every report answers JSON by default; ``format=csv|excel|pdf``
streams the same rows as a download.

Period parameters: either ``month=YYYY-MM`` or ``start_date`` + ``end_date``
(defaults to the current month).

Endpoints:
  GET  /api/reports/salesman-sales
  GET  /api/reports/salesman-collections
  GET  /api/reports/salesman-performance/{salesman_id}
  GET  /api/reports/commission
  GET  /api/reports/trial-balance
  GET  /api/reports/receivables-aging
  GET  /api/reports/payables
  GET  /api/reports/tax-summary
  POST /api/tax/calculate
  GET  /api/tax/advance-rate
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from dateutil.relativedelta import relativedelta
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from pharmadist.core.database import get_session
from pharmadist.core.errors import ValidationError
from pharmadist.core.security import CurrentUser, get_current_user, require_finance
from pharmadist.schemas.requests import TaxCalculationIn
from pharmadist.schemas.responses import ok
from pharmadist.services import commission, export, ledger, tax
from pharmadist.services.invoices import tax_summary

report_router = APIRouter(prefix="/api/reports")
tax_router = APIRouter(prefix="/api/tax")

FORMAT_PATTERN = "^(json|csv|excel|pdf)$"


def _period(month: Optional[str], start_date: Optional[date], end_date: Optional[date]) -> tuple[date, date]:
    if month:
        try:
            start = datetime.strptime(month, "%Y-%m").date()
        except ValueError:
            raise ValidationError("month must be in YYYY-MM format", details={"month": month})
        return start, start + relativedelta(months=1) - relativedelta(days=1)
    if start_date or end_date:
        if not (start_date and end_date):
            raise ValidationError("Provide both start_date and end_date")
        if start_date > end_date:
            raise ValidationError("start_date must be on or before end_date")
        return start_date, end_date
    today = date.today()
    start = today.replace(day=1)
    return start, start + relativedelta(months=1) - relativedelta(days=1)


def _respond(
    fmt: str,
    data: dict,
    rows: list[dict],
    columns: export.Columns,
    title: str,
    filename: str,
    subtitle: Optional[str] = None,
    totals: Optional[dict] = None,
):
    if fmt == "json":
        return ok(data)
    return export.render(fmt, rows, columns, title, filename, subtitle, totals)


def _period_label(start: date, end: date) -> str:
    return f"{start.isoformat()} to {end.isoformat()}"


# ── Salesman reports ──────────────────────────────────────────────────────────


@report_router.get("/salesman-sales")
def salesman_sales(
    salesman_id: Optional[int] = Query(default=None),
    month: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    start, end = _period(month, start_date, end_date)
    data = commission.salesman_sales(session, salesman_id, start, end)
    return _respond(
        format,
        data,
        data["sales_by_salesman"],
        [
            ("salesman_code", "Code"),
            ("salesman_name", "Salesman"),
            ("invoice_count", "Invoices"),
            ("total_sales", "Total Sales"),
        ],
        "Salesman Sales",
        f"salesman_sales_{start:%Y%m%d}_{end:%Y%m%d}",
        _period_label(start, end),
        {
            "salesman_name": "Total",
            "invoice_count": data["summary"]["total_invoices"],
            "total_sales": data["summary"]["total_sales"],
        },
    )


@report_router.get("/salesman-collections")
def salesman_collections(
    salesman_id: Optional[int] = Query(default=None),
    month: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    start, end = _period(month, start_date, end_date)
    data = commission.salesman_collections(session, salesman_id, start, end)
    return _respond(
        format,
        data,
        data["collections_by_salesman"],
        [
            ("salesman_code", "Code"),
            ("salesman_name", "Salesman"),
            ("receipt_count", "Receipts"),
            ("total_collections", "Total Collections"),
        ],
        "Salesman Collections",
        f"salesman_collections_{start:%Y%m%d}_{end:%Y%m%d}",
        _period_label(start, end),
        {
            "salesman_name": "Total",
            "receipt_count": data["summary"]["total_receipts"],
            "total_collections": data["summary"]["total_collections"],
        },
    )


@report_router.get("/salesman-performance/{salesman_id}")
def salesman_performance(
    salesman_id: int,
    month: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    start, end = _period(month, start_date, end_date)
    data = commission.salesman_performance(session, salesman_id, start, end)
    perf = data["performance"]
    rows = [
        {"metric": "Sales", "count": perf["sales"]["invoice_count"], **perf["sales"]},
        {"metric": "Collections", "count": perf["collections"]["receipt_count"], **perf["collections"]},
    ]
    return _respond(
        format,
        data,
        rows,
        [
            ("metric", "Metric"),
            ("count", "Documents"),
            ("actual", "Actual"),
            ("target", "Target"),
            ("achievement", "Achievement %"),
        ],
        f"Performance: {data['salesman_name']}",
        f"salesman_performance_{data['salesman_code']}_{start:%Y%m}",
        _period_label(start, end),
    )


@report_router.get("/commission")
def commission_report(
    salesman_id: Optional[int] = Query(default=None),
    basis: str = Query(default="both", pattern="^(sales|collections|both)$"),
    sales_rate: Optional[float] = Query(default=None, ge=0, le=100),
    collections_rate: Optional[float] = Query(default=None, ge=0, le=100),
    month: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    start, end = _period(month, start_date, end_date)
    data = commission.calculate_commission(
        session, salesman_id, start, end, basis, sales_rate, collections_rate
    )
    rows = [
        {
            "salesman_code": d["salesman_code"],
            "salesman_name": d["salesman_name"],
            "total_sales": d["sales"]["total_sales"],
            "sales_rate": d["sales"]["commission_rate"],
            "sales_commission": d["sales"]["commission"],
            "total_collections": d["collections"]["total_collections"],
            "collections_rate": d["collections"]["commission_rate"],
            "collections_commission": d["collections"]["commission"],
            "total_commission": d["total_commission"],
        }
        for d in data["commission_details"]
    ]
    summary = data["summary"]
    return _respond(
        format,
        data,
        rows,
        [
            ("salesman_code", "Code"),
            ("salesman_name", "Salesman"),
            ("total_sales", "Sales"),
            ("sales_rate", "Rate %"),
            ("sales_commission", "Sales Comm."),
            ("total_collections", "Collections"),
            ("collections_rate", "Rate %"),
            ("collections_commission", "Coll. Comm."),
            ("total_commission", "Total"),
        ],
        "Salesman Commission",
        f"commission_{start:%Y%m%d}_{end:%Y%m%d}",
        f"{_period_label(start, end)} · basis: {basis}",
        {
            "salesman_name": "Total",
            "sales_commission": summary["total_sales_commission"],
            "collections_commission": summary["total_collections_commission"],
            "total_commission": summary["total_commission"],
        },
    )


# ── Accounting reports ────────────────────────────────────────────────────────


@report_router.get("/trial-balance")
def trial_balance(
    as_of: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    data = ledger.trial_balance(session, as_of)
    return _respond(
        format,
        data,
        data["accounts"],
        [
            ("account_type", "Type"),
            ("account_id", "ID"),
            ("account_name", "Account"),
            ("total_debits", "Debits"),
            ("total_credits", "Credits"),
            ("balance", "Balance"),
        ],
        "Trial Balance",
        f"trial_balance_{data['as_of']:%Y%m%d}",
        f"As of {data['as_of'].isoformat()}",
        {
            "account_name": "Total",
            "total_debits": data["total_debits"],
            "total_credits": data["total_credits"],
            "balance": data["difference"],
        },
    )


@report_router.get("/receivables-aging")
def receivables_aging(
    as_of: Optional[date] = Query(default=None),
    customer_id: Optional[int] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    data = ledger.receivables_aging(session, as_of, customer_id)
    return _respond(
        format,
        data,
        data["customers"],
        [
            ("customer_name", "Customer"),
            ("invoice_count", "Invoices"),
            ("current", "Current"),
            ("days_1_30", "1-30"),
            ("days_31_60", "31-60"),
            ("days_61_90", "61-90"),
            ("over_90", "90+"),
            ("total", "Total"),
        ],
        "Receivables Aging",
        f"receivables_aging_{data['as_of']:%Y%m%d}",
        f"As of {data['as_of'].isoformat()}",
        {"customer_name": "Total", **data["totals"]},
    )


@report_router.get("/payables")
def payables(
    as_of: Optional[date] = Query(default=None),
    supplier_id: Optional[int] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    data = ledger.supplier_payables(session, as_of, supplier_id)
    return _respond(
        format,
        data,
        data["suppliers"],
        [
            ("supplier_name", "Supplier"),
            ("invoice_count", "Invoices"),
            ("overdue", "Overdue"),
            ("due_soon", "Due in 7 days"),
            ("current_due", "Current"),
            ("total_payable", "Total"),
        ],
        "Supplier Payables",
        f"payables_{data['as_of']:%Y%m%d}",
        f"As of {data['as_of'].isoformat()}",
        {
            "supplier_name": "Total",
            "overdue": data["total_overdue"],
            "total_payable": data["total_payable"],
        },
    )


@report_router.get("/tax-summary")
def tax_summary_report(
    invoice_type: Optional[str] = Query(default=None, pattern="^(sales|purchase)$"),
    month: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    format: str = Query(default="json", pattern=FORMAT_PATTERN),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    start, end = _period(month, start_date, end_date)
    data = tax_summary(session, start, end, invoice_type)
    return _respond(
        format,
        data,
        data["rows"],
        [
            ("invoice_type", "Type"),
            ("gst_rate", "GST %"),
            ("invoice_count", "Invoices"),
            ("taxable_amount", "Taxable"),
            ("gst_amount", "GST"),
            ("advance_tax_amount", "Advance Tax"),
            ("non_filer_amount", "Non-filer"),
            ("total_tax", "Total Tax"),
        ],
        "Tax Summary",
        f"tax_summary_{start:%Y%m%d}_{end:%Y%m%d}",
        _period_label(start, end),
        {"invoice_type": "Total", **data["totals"]},
    )


# ── Tax calculator ────────────────────────────────────────────────────────────


@tax_router.post("/calculate")
def calculate_tax(body: TaxCalculationIn, user: CurrentUser = Depends(get_current_user)):
    return ok(
        tax.invoice_taxes(body.subtotal, body.gst_rate, body.advance_tax_rate, body.is_non_filer)
    )


@tax_router.get("/advance-rate")
def advance_rate(
    registration_type: str = Query(...),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(
        {
            "registration_type": registration_type,
            "advance_tax_rate": tax.advance_tax_rate_for(registration_type),
        }
    )

"""
Invoice routes.

Endpoints:
  GET    /api/invoices
  POST   /api/invoices
  GET    /api/invoices/{id}
  PUT    /api/invoices/{id}            (draft only)
  DELETE /api/invoices/{id}            (draft only)
  POST   /api/invoices/{id}/confirm
  POST   /api/invoices/{id}/cancel
  POST   /api/invoices/{id}/mark-paid
  GET    /api/invoices/{id}/ledger
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from pharmadist.core.database import get_session
from pharmadist.core.security import CurrentUser, get_current_user, require_finance
from pharmadist.schemas.requests import InvoiceCreate, InvoiceUpdate, MarkPaidIn, ReasonIn
from pharmadist.schemas.responses import (
    Envelope,
    InvoiceDetail,
    InvoiceLineRead,
    InvoiceRead,
    LedgerEntryRead,
    Page,
    ok,
)
from pharmadist.services import invoices as svc
from pharmadist.services.ledger import entries_for_reference, reference_net

invoice_router = APIRouter(prefix="/api/invoices")


def _detail(session: Session, invoice) -> InvoiceDetail:
    detail = InvoiceDetail.model_validate(invoice)
    detail.lines = [InvoiceLineRead.model_validate(l) for l in svc.get_lines(session, invoice.id)]
    return detail


@invoice_router.get("", response_model=Envelope[Page[InvoiceRead]])
def list_invoices(
    invoice_type: Optional[str] = Query(default=None, pattern="^(sales|purchase)$"),
    status: Optional[str] = Query(default=None),
    payment_status: Optional[str] = Query(default=None),
    customer_id: Optional[int] = Query(default=None),
    supplier_id: Optional[int] = Query(default=None),
    salesman_id: Optional[int] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    search: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    total, rows = svc.list_invoices(
        session,
        invoice_type=invoice_type,
        status=status,
        payment_status=payment_status,
        customer_id=customer_id,
        supplier_id=supplier_id,
        salesman_id=salesman_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
        page=page,
        page_size=page_size,
    )
    return ok(
        Page(
            total=total,
            page=page,
            page_size=page_size,
            items=[InvoiceRead.model_validate(i) for i in rows],
        )
    )


@invoice_router.post("", response_model=Envelope[InvoiceDetail], status_code=201)
def create_invoice(
    body: InvoiceCreate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    invoice = svc.create_invoice(session, body, created_by=user.username)
    return ok(_detail(session, invoice), f"Invoice {invoice.invoice_number} created")


@invoice_router.get("/{invoice_id}", response_model=Envelope[InvoiceDetail])
def get_invoice(
    invoice_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(_detail(session, svc.get_invoice(session, invoice_id)))


@invoice_router.put("/{invoice_id}", response_model=Envelope[InvoiceDetail])
def update_invoice(
    invoice_id: int,
    body: InvoiceUpdate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    invoice = svc.update_invoice(session, invoice_id, body)
    return ok(_detail(session, invoice), "Invoice updated")


@invoice_router.delete("/{invoice_id}")
def delete_invoice(
    invoice_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    svc.delete_invoice(session, invoice_id)
    return ok({"id": invoice_id}, "Invoice deleted")


@invoice_router.post("/{invoice_id}/confirm", response_model=Envelope[InvoiceDetail])
def confirm_invoice(
    invoice_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    invoice = svc.confirm_invoice(session, invoice_id, created_by=user.username)
    return ok(_detail(session, invoice), f"Invoice {invoice.invoice_number} confirmed")


@invoice_router.post("/{invoice_id}/cancel", response_model=Envelope[InvoiceRead])
def cancel_invoice(
    invoice_id: int,
    body: ReasonIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    invoice = svc.cancel_invoice(session, invoice_id, body.reason, created_by=user.username)
    return ok(InvoiceRead.model_validate(invoice), f"Invoice {invoice.invoice_number} cancelled")


@invoice_router.post("/{invoice_id}/mark-paid", response_model=Envelope[InvoiceRead])
def mark_paid(
    invoice_id: int,
    body: MarkPaidIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    invoice = svc.mark_paid(session, invoice_id, body.amount)
    return ok(InvoiceRead.model_validate(invoice), f"Invoice {invoice.payment_status}")


@invoice_router.get("/{invoice_id}/ledger")
def invoice_ledger(
    invoice_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    """Every ledger entry posted against the invoice, trade offers excluded."""
    invoice = svc.get_invoice(session, invoice_id)
    entries = entries_for_reference(session, "invoice", invoice.id)
    return ok(
        {
            "invoice_number": invoice.invoice_number,
            "entries": [LedgerEntryRead.model_validate(e).model_dump() for e in entries],
            "net": reference_net(session, "invoice", invoice.id),
        }
    )

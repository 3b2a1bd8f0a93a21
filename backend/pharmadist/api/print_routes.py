"""
Printable documents (PDF).

Endpoints:
  GET /api/print/invoices/{id}
  GET /api/print/recovery-summaries/{id}
  GET /api/print/recovery-summaries/{id}/data
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlmodel import Session

from pharmadist.core.database import get_session
from pharmadist.core.security import CurrentUser, get_current_user
from pharmadist.models.party import Customer, Salesman, Supplier
from pharmadist.schemas.responses import ok
from pharmadist.services import export
from pharmadist.services.invoices import get_invoice, get_lines
from pharmadist.services.recovery import summary_print_data

print_router = APIRouter(prefix="/api/print")


@print_router.get("/invoices/{invoice_id}")
def print_invoice(
    invoice_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    invoice = get_invoice(session, invoice_id)
    if invoice.invoice_type == "sales":
        party = session.get(Customer, invoice.customer_id)
    else:
        party = session.get(Supplier, invoice.supplier_id)
    salesman = session.get(Salesman, invoice.salesman_id) if invoice.salesman_id else None

    content = export.invoice_pdf(
        invoice,
        get_lines(session, invoice.id),
        {"code": party.code, "name": party.name} if party else {},
        salesman.name if salesman else None,
    )
    return export.file_response(content, f"{invoice.invoice_number}.pdf", export.MEDIA_TYPES["pdf"])


@print_router.get("/recovery-summaries/{summary_id}")
def print_recovery_summary(
    summary_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    data = summary_print_data(session, summary_id)
    content = export.recovery_pdf(data)
    filename = f"recovery_{summary_id}_{data['summary']['date']:%Y%m%d}.pdf"
    return export.file_response(content, filename, export.MEDIA_TYPES["pdf"])


@print_router.get("/recovery-summaries/{summary_id}/data")
def recovery_summary_print_data(
    summary_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(summary_print_data(session, summary_id))

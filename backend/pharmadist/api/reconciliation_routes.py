"""
Bank reconciliation and statement import routes.

Endpoints:
  GET    /api/bank-reconciliation
  POST   /api/bank-reconciliation
  GET    /api/bank-reconciliation/statistics
  GET    /api/bank-reconciliation/{id}
  DELETE /api/bank-reconciliation/{id}            (draft only)
  POST   /api/bank-reconciliation/{id}/match
  GET    /api/bank-reconciliation/{id}/items
  PATCH  /api/bank-reconciliation/{id}/items/{item_id}
  POST   /api/bank-reconciliation/{id}/complete
  POST   /api/bank-reconciliation/{id}/approve
  GET    /api/bank-reconciliation/{id}/report

  POST   /api/bank-reconciliation/statements/import
  GET    /api/bank-reconciliation/statements/import-logs
  GET    /api/bank-reconciliation/statements/lines
"""
from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlmodel import Session, col, func, select

from pharmadist.core.database import get_session
from pharmadist.core.errors import NotFoundError, ValidationError
from pharmadist.core.security import (
    CurrentUser,
    get_current_user,
    require_finance,
    require_roles,
)
from pharmadist.etl.importer import import_bytes, import_file
from pharmadist.models.reconciliation import BankStatementLine, ImportLog
from pharmadist.schemas.requests import ItemUpdate, MatchRequest, ReconciliationCreate
from pharmadist.schemas.responses import (
    Envelope,
    ImportLogRead,
    ImportResponse,
    Page,
    ReconciliationDetail,
    ReconciliationItemRead,
    ReconciliationRead,
    StatementLineRead,
    ok,
)
from pharmadist.services import reconciliation as svc
from pharmadist.services.reconciliation import StatementLine

reconciliation_router = APIRouter(prefix="/api/bank-reconciliation")
statement_router = APIRouter(prefix="/api/bank-reconciliation/statements")

require_approver = require_roles("admin", "manager")


def _detail(session: Session, rec) -> ReconciliationDetail:
    detail = ReconciliationDetail.model_validate(rec)
    detail.items = [ReconciliationItemRead.model_validate(i) for i in svc.get_items(session, rec.id)]
    return detail


# ── Reconciliations ───────────────────────────────────────────────────────────


@reconciliation_router.get("", response_model=Envelope[Page[ReconciliationRead]])
def list_reconciliations(
    status: Optional[str] = Query(default=None, pattern="^(draft|completed|approved)$"),
    bank_account_number: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    total, rows = svc.list_reconciliations(
        session,
        status=status,
        bank_account_number=bank_account_number,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    return ok(
        Page(
            total=total,
            page=page,
            page_size=page_size,
            items=[ReconciliationRead.model_validate(r) for r in rows],
        )
    )


@reconciliation_router.post("", response_model=Envelope[ReconciliationRead], status_code=201)
def create_reconciliation(
    body: ReconciliationCreate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    rec = svc.create_reconciliation(session, body, created_by=user.username)
    return ok(ReconciliationRead.model_validate(rec), f"Reconciliation {rec.reconciliation_number} created")


@reconciliation_router.get("/statistics")
def statistics(
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(svc.reconciliation_statistics(session, date_from, date_to))


@reconciliation_router.get("/{reconciliation_id}", response_model=Envelope[ReconciliationDetail])
def get_reconciliation(
    reconciliation_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(_detail(session, svc.get_reconciliation(session, reconciliation_id)))


@reconciliation_router.delete("/{reconciliation_id}")
def delete_reconciliation(
    reconciliation_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    svc.delete_reconciliation(session, reconciliation_id)
    return ok({"id": reconciliation_id}, "Reconciliation deleted")


@reconciliation_router.post("/{reconciliation_id}/match", response_model=Envelope[ReconciliationDetail])
def match(
    reconciliation_id: int,
    body: MatchRequest,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    """
    Match statement lines against the period's receipts and payments.

    With an empty ``statement_lines`` list the lines previously imported for
    the reconciliation's bank account and period are used.
    """
    lines = [
        StatementLine(
            statement_date=l.statement_date,
            transaction_type=l.type,
            amount=l.amount,
            reference=l.reference,
            description=l.description,
        )
        for l in body.statement_lines
    ]
    rec = svc.match_transactions(session, reconciliation_id, lines or None)
    return ok(
        _detail(session, rec),
        f"{rec.matched_count} matched, {rec.unmatched_count} unmatched, "
        f"{rec.discrepancy_count} discrepancies",
    )


@reconciliation_router.get(
    "/{reconciliation_id}/items", response_model=Envelope[list[ReconciliationItemRead]]
)
def list_items(
    reconciliation_id: int,
    status: Optional[str] = Query(default=None, pattern="^(matched|unmatched|discrepancy)$"),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    svc.get_reconciliation(session, reconciliation_id)
    items = svc.get_items(session, reconciliation_id)
    if status:
        items = [i for i in items if i.status == status]
    return ok([ReconciliationItemRead.model_validate(i) for i in items])


@reconciliation_router.patch(
    "/{reconciliation_id}/items/{item_id}", response_model=Envelope[ReconciliationItemRead]
)
def update_item(
    reconciliation_id: int,
    item_id: int,
    body: ItemUpdate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    item = svc.update_item(session, reconciliation_id, item_id, body)
    return ok(ReconciliationItemRead.model_validate(item), "Item updated")


@reconciliation_router.post("/{reconciliation_id}/complete", response_model=Envelope[ReconciliationRead])
def complete(
    reconciliation_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    rec = svc.complete_reconciliation(session, reconciliation_id, completed_by=user.username)
    return ok(ReconciliationRead.model_validate(rec), "Reconciliation completed")


@reconciliation_router.post("/{reconciliation_id}/approve", response_model=Envelope[ReconciliationRead])
def approve(
    reconciliation_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_approver),
):
    rec = svc.approve_reconciliation(session, reconciliation_id, approved_by=user.username)
    return ok(ReconciliationRead.model_validate(rec), "Reconciliation approved")


@reconciliation_router.get("/{reconciliation_id}/report")
def report(
    reconciliation_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    data = svc.reconciliation_report(session, reconciliation_id)

    def items(rows):
        return [ReconciliationItemRead.model_validate(i).model_dump() for i in rows]

    return ok(
        {
            "reconciliation": ReconciliationRead.model_validate(data["reconciliation"]).model_dump(),
            "matched": items(data["matched"]),
            "unmatched": items(data["unmatched"]),
            "discrepancies": items(data["discrepancies"]),
            "balances": data["balances"],
            "is_reconciled": data["is_reconciled"],
        }
    )


# ── Statement import ──────────────────────────────────────────────────────────


def _import_response(log: ImportLog) -> ImportResponse:
    return ImportResponse(
        id=log.id,
        file_name=log.file_name,
        status=log.status,
        lines_inserted=log.lines_inserted,
        lines_skipped=log.lines_skipped,
        error_message=log.error_message,
        warnings=json.loads(log.warnings) if log.warnings else None,
        started_at=log.started_at,
        finished_at=log.finished_at,
    )


@statement_router.post("/import", response_model=Envelope[ImportResponse])
async def import_statement(
    file: Optional[UploadFile] = File(default=None),
    bank_account_number: Optional[str] = Form(default=None),
    path: Optional[str] = Query(default=None, description="Absolute path to a CSV file on the server"),
    user: CurrentUser = Depends(require_finance),
):
    """
    Import a bank statement CSV.
    Either upload a file via multipart, or provide a server-side path.
    """
    if file is not None:
        raw = await file.read()
        log = import_bytes(
            raw, file.filename or "upload.csv", bank_account_number=bank_account_number
        )
    elif path:
        if not Path(path).exists():
            raise NotFoundError("File", path)
        log = import_file(path, bank_account_number=bank_account_number)
    else:
        raise ValidationError("Provide either a file upload or a path parameter")

    message = (
        f"Import failed: {log.error_message}"
        if log.status == "error"
        else f"{log.lines_inserted} line(s) imported, {log.lines_skipped} duplicate(s) skipped"
    )
    return {"success": log.status != "error", "data": _import_response(log), "message": message}


@statement_router.get("/import-logs", response_model=Envelope[list[ImportLogRead]])
def import_logs(
    limit: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    logs = session.exec(select(ImportLog).order_by(col(ImportLog.id).desc()).limit(limit)).all()
    return ok([ImportLogRead.model_validate(l) for l in logs])


@statement_router.get("/lines", response_model=Envelope[Page[StatementLineRead]])
def statement_lines(
    bank_account_number: Optional[str] = Query(default=None),
    transaction_type: Optional[str] = Query(default=None, pattern="^(credit|debit)$"),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=100, ge=1, le=1000),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    stmt = select(BankStatementLine)
    if bank_account_number:
        stmt = stmt.where(BankStatementLine.bank_account_number == bank_account_number)
    if transaction_type:
        stmt = stmt.where(BankStatementLine.transaction_type == transaction_type)
    if date_from:
        stmt = stmt.where(BankStatementLine.statement_date >= date_from)
    if date_to:
        stmt = stmt.where(BankStatementLine.statement_date <= date_to)

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(
        stmt.order_by(BankStatementLine.statement_date, BankStatementLine.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return ok(
        Page(
            total=total,
            page=page,
            page_size=page_size,
            items=[StatementLineRead.model_validate(r) for r in rows],
        )
    )

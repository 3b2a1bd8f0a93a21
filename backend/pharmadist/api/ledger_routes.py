"""
General ledger routes.

Endpoints:
  GET  /api/ledger/entries
  POST /api/ledger/double-entry     manual adjustments and opening balances
  POST /api/ledger/reverse          reverses those; documents use their own actions
  GET  /api/ledger/balance/{account_type}/{account_id}
  GET  /api/ledger/statement/{account_type}/{account_id}
  GET  /api/ledger/reference/{reference_type}/{reference_id}
  GET  /api/ledger/summary/{account_type}
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from pharmadist.core.database import get_session
from pharmadist.core.security import CurrentUser, get_current_user, require_finance
from pharmadist.schemas.requests import DoubleEntryIn, ReverseIn
from pharmadist.schemas.responses import Envelope, LedgerEntryRead, Page, ok
from pharmadist.services import ledger as svc
from pharmadist.services.ledger import LedgerParty

ledger_router = APIRouter(prefix="/api/ledger")


@ledger_router.get("/entries", response_model=Envelope[Page[LedgerEntryRead]])
def list_entries(
    account_type: Optional[str] = Query(default=None),
    account_id: Optional[int] = Query(default=None),
    reference_type: Optional[str] = Query(default=None),
    reference_id: Optional[int] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=100, ge=1, le=1000),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    total, rows = svc.list_entries(
        session,
        account_type=account_type,
        account_id=account_id,
        reference_type=reference_type,
        reference_id=reference_id,
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
            items=[LedgerEntryRead.model_validate(e) for e in rows],
        )
    )


@ledger_router.post(
    "/double-entry", response_model=Envelope[list[LedgerEntryRead]], status_code=201
)
def post_double_entry(
    body: DoubleEntryIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    debit, credit = svc.post_manual_entry(
        session,
        debit=LedgerParty(body.debit.account_type, body.debit.account_id),
        credit=LedgerParty(body.credit.account_type, body.credit.account_id),
        amount=body.amount,
        description=body.description,
        reference_type=body.reference_type,
        reference_id=body.reference_id,
        created_by=user.username,
        transaction_date=body.transaction_date,
    )
    return ok(
        [LedgerEntryRead.model_validate(debit), LedgerEntryRead.model_validate(credit)],
        "Entries posted",
    )


@ledger_router.post("/reverse", response_model=Envelope[list[LedgerEntryRead]])
def reverse(
    body: ReverseIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    reversals = svc.reverse_manual_entries(
        session, body.reference_type, body.reference_id, body.reason, created_by=user.username
    )
    return ok(
        [LedgerEntryRead.model_validate(r) for r in reversals],
        f"{len(reversals)} entries reversed",
    )


@ledger_router.get("/balance/{account_type}/{account_id}")
def balance(
    account_type: str,
    account_id: int,
    as_of: Optional[date] = Query(default=None),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    party = svc.get_party(session, LedgerParty(account_type, account_id), require_active=False)
    return ok(
        {
            "account_type": account_type,
            "account_id": account_id,
            "account_name": party.name,
            "as_of": as_of or date.today(),
            "balance": svc.account_balance(session, account_type, account_id, as_of),
        }
    )


@ledger_router.get("/statement/{account_type}/{account_id}")
def statement(
    account_type: str,
    account_id: int,
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(svc.account_statement(session, account_type, account_id, date_from, date_to))


@ledger_router.get("/reference/{reference_type}/{reference_id}")
def reference(
    reference_type: str,
    reference_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    entries = svc.entries_for_reference(session, reference_type, reference_id)
    balances = svc.reference_balances(session, reference_type, reference_id)
    return ok(
        {
            "reference_type": reference_type,
            "reference_id": reference_id,
            "entries": [LedgerEntryRead.model_validate(e).model_dump() for e in entries],
            "balances": [
                {"account_type": t, "account_id": i, "net": net}
                for (t, i), net in balances.items()
            ],
            "net": svc.reference_net(session, reference_type, reference_id),
        }
    )


@ledger_router.get("/summary/{account_type}")
def summary(
    account_type: str,
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(svc.summary_by_account_type(session, account_type, date_from, date_to))

"""
Recovery summary routes.

Endpoints:
  GET    /api/recovery-summaries
  POST   /api/recovery-summaries
  GET    /api/recovery-summaries/statistics
  GET    /api/recovery-summaries/{id}
  PUT    /api/recovery-summaries/{id}
  DELETE /api/recovery-summaries/{id}     (soft delete)
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from pharmadist.core.database import get_session
from pharmadist.core.security import CurrentUser, get_current_user, require_sales
from pharmadist.models.party import Customer, Salesman
from pharmadist.schemas.requests import RecoverySummaryCreate, RecoverySummaryUpdate
from pharmadist.schemas.responses import (
    Envelope,
    Page,
    RecoveryAccountRead,
    RecoverySummaryRead,
    ok,
)
from pharmadist.services import recovery as svc

recovery_router = APIRouter(prefix="/api/recovery-summaries")


def _read(session: Session, summary, with_accounts: bool = True) -> RecoverySummaryRead:
    out = RecoverySummaryRead.model_validate(summary)
    salesman = session.get(Salesman, summary.salesman_id)
    out.salesman_name = salesman.name if salesman else None
    if with_accounts:
        accounts = []
        for acc in svc.get_accounts(session, summary.id):
            row = RecoveryAccountRead.model_validate(acc)
            customer = session.get(Customer, acc.customer_id)
            row.customer_name = customer.name if customer else None
            accounts.append(row)
        out.accounts = accounts
    return out


@recovery_router.get("", response_model=Envelope[Page[RecoverySummaryRead]])
def list_summaries(
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    salesman_id: Optional[int] = Query(default=None),
    town: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    total, rows = svc.list_summaries(
        session,
        date_from=date_from,
        date_to=date_to,
        salesman_id=salesman_id,
        town=town,
        page=page,
        page_size=page_size,
    )
    return ok(
        Page(
            total=total,
            page=page,
            page_size=page_size,
            items=[_read(session, s, with_accounts=False) for s in rows],
        )
    )


@recovery_router.post("", response_model=Envelope[RecoverySummaryRead], status_code=201)
def create_summary(
    body: RecoverySummaryCreate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_sales),
):
    summary = svc.create_summary(session, body, created_by=user.username)
    return ok(_read(session, summary), "Recovery summary created")


@recovery_router.get("/statistics")
def statistics(
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    salesman_id: Optional[int] = Query(default=None),
    town: Optional[str] = Query(default=None),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(
        svc.recovery_statistics(
            session, date_from=date_from, date_to=date_to, salesman_id=salesman_id, town=town
        )
    )


@recovery_router.get("/{summary_id}", response_model=Envelope[RecoverySummaryRead])
def get_summary(
    summary_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(_read(session, svc.get_summary(session, summary_id)))


@recovery_router.put("/{summary_id}", response_model=Envelope[RecoverySummaryRead])
def update_summary(
    summary_id: int,
    body: RecoverySummaryUpdate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_sales),
):
    summary = svc.update_summary(session, summary_id, body)
    return ok(_read(session, summary), "Recovery summary updated")


@recovery_router.delete("/{summary_id}")
def delete_summary(
    summary_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_sales),
):
    svc.delete_summary(session, summary_id)
    return ok({"id": summary_id}, "Recovery summary deleted")

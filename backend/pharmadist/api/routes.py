"""
System and authentication routes.

Endpoints:
  GET  /api/health
  GET  /api/settings
  POST /api/settings/rescan
  POST /api/auth/login
  GET  /api/auth/me
  GET  /api/auth/users
  POST /api/auth/users
"""
from __future__ import annotations

import threading

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from pharmadist.core.config import settings
from pharmadist.core.database import get_session
from pharmadist.core.errors import ConflictError
from pharmadist.core.security import (
    CurrentUser,
    authenticate,
    get_current_user,
    hash_password,
    require_admin,
)
from pharmadist.etl.watcher import get_watcher
from pharmadist.models.party import Account, User
from pharmadist.schemas.requests import LoginRequest, UserCreate
from pharmadist.schemas.responses import (
    Envelope,
    HealthResponse,
    SettingsRead,
    TokenResponse,
    UserRead,
    ok,
)

router = APIRouter(prefix="/api")


# ── Health ────────────────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
def health(session: Session = Depends(get_session)):
    try:
        session.exec(select(Account).limit(1))
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {e}"
    return HealthResponse(status="ok", db=db_status, inbox=settings.STATEMENT_INBOX)


# ── Settings ──────────────────────────────────────────────────────────────────


@router.get("/settings", response_model=SettingsRead)
def get_settings(user: CurrentUser = Depends(get_current_user)):
    w = get_watcher()
    return SettingsRead(
        company_name=settings.COMPANY_NAME,
        currency=settings.CURRENCY,
        inbox_path=str(w.inbox),
        watcher_active=w.is_active,
        db_path=settings.DATABASE_URL,
        auth_enabled=settings.AUTH_ENABLED,
        match_amount_tolerance=settings.MATCH_AMOUNT_TOLERANCE,
        match_date_window_days=settings.MATCH_DATE_WINDOW_DAYS,
        recent_inbox_imports=[
            {"id": log.id, "file_name": log.file_name, "status": log.status} for log in w.recent
        ],
    )


@router.post("/settings/rescan", status_code=202)
def rescan_inbox(user: CurrentUser = Depends(require_admin)):
    """Import any statement files sitting in the inbox, in the background."""
    w = get_watcher()
    threading.Thread(target=w.scan_existing, daemon=True).start()
    return ok({"inbox": str(w.inbox)}, "Rescan started")


# ── Auth ──────────────────────────────────────────────────────────────────────


@router.post("/auth/login", response_model=Envelope[TokenResponse])
def login(body: LoginRequest, session: Session = Depends(get_session)):
    token, user = authenticate(session, body.username, body.password)
    return ok(
        TokenResponse(
            access_token=token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=UserRead.model_validate(user),
        ),
        "Login successful",
    )


@router.get("/auth/me", response_model=Envelope[CurrentUser])
def me(user: CurrentUser = Depends(get_current_user)):
    return ok(user)


@router.get("/auth/users", response_model=Envelope[list[UserRead]])
def list_users(
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_admin),
):
    users = session.exec(select(User).order_by(User.username)).all()
    return ok([UserRead.model_validate(u) for u in users])


@router.post("/auth/users", response_model=Envelope[UserRead], status_code=201)
def create_user(
    body: UserCreate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_admin),
):
    if session.exec(select(User).where(User.username == body.username)).first():
        raise ConflictError(f"Username '{body.username}' already exists")
    new_user = User(
        username=body.username,
        full_name=body.full_name,
        password_hash=hash_password(body.password),
        role=body.role,
    )
    session.add(new_user)
    session.commit()
    session.refresh(new_user)
    return ok(UserRead.model_validate(new_user), "User created")

"""
Bearer-token authentication and role checks.

Tokens are HS256 JWTs carrying the username (``sub``) and role. When
AUTH_ENABLED is false every request runs as the bootstrap admin so the API
stays usable on a single workstation.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from passlib.hash import pbkdf2_sha256
from pydantic import BaseModel
from sqlmodel import Session, select

from pharmadist.core.config import settings
from pharmadist.core.database import get_session
from pharmadist.core.errors import AuthenticationError, AuthorizationError
from pharmadist.models.party import User

ROLES = ("admin", "manager", "accountant", "sales")

_bearer = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: Optional[int] = None
    username: str
    role: str


def hash_password(password: str) -> str:
    return pbkdf2_sha256.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pbkdf2_sha256.verify(password, password_hash)


def create_access_token(user: User) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": user.username,
        "uid": user.id,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Raises jwt.ExpiredSignatureError / jwt.InvalidTokenError on bad tokens."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def authenticate(session: Session, username: str, password: str) -> tuple[str, User]:
    user = session.exec(select(User).where(User.username == username)).first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid username or password", code="INVALID_CREDENTIALS")
    if not user.is_active:
        raise AuthenticationError("User account is disabled", code="ACCOUNT_DISABLED")

    user.last_login_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info(f"User '{user.username}' logged in")
    return create_access_token(user), user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    session: Session = Depends(get_session),
) -> CurrentUser:
    if not settings.AUTH_ENABLED:
        return CurrentUser(username=settings.AUTH_USERNAME, role="admin")

    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Authentication token is missing", code="NO_TOKEN")

    payload = decode_token(credentials.credentials)
    user = session.exec(select(User).where(User.username == payload.get("sub"))).first()
    if not user or not user.is_active:
        raise AuthenticationError("User no longer exists or is inactive", code="INVALID_TOKEN")
    return CurrentUser(id=user.id, username=user.username, role=user.role)


def require_roles(*roles: str):
    """Dependency factory: allow only the given roles."""

    def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise AuthorizationError(
                f"Role '{user.role}' is not allowed to perform this action",
                details={"allowed_roles": list(roles)},
            )
        return user

    return _check


require_admin = require_roles("admin")
require_finance = require_roles("admin", "manager", "accountant")
require_sales = require_roles("admin", "manager", "sales")

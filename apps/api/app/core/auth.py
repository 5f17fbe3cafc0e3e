from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db
from app.core.errors import UnauthenticatedError
from app.models.entities import Account


@dataclass(frozen=True)
class AuthContext:
    email: str


def get_auth_context(
    x_forwarded_user: str | None = Header(default=None, alias="X-Forwarded-User"),
    x_dev_user: str | None = Header(default=None, alias="X-Dev-User"),
) -> AuthContext | None:
    """
    Auth boundary.

    In prod, requests are expected to be behind Traefik Forward Auth, which injects
    X-Forwarded-User (email). In dev/tests the optional X-Dev-User header names the caller.
    """
    if settings.auth_mode == "none":
        if not x_dev_user:
            return None
        return AuthContext(email=x_dev_user.strip().lower())

    if not x_forwarded_user:
        raise UnauthenticatedError("missing auth header (X-Forwarded-User)")
    return AuthContext(email=x_forwarded_user.strip().lower())


def require_auth(ctx: AuthContext | None = Depends(get_auth_context)) -> AuthContext:
    if ctx is None:
        raise UnauthenticatedError("authentication required")
    return ctx


def require_actor(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
) -> Account:
    account = db.execute(
        select(Account).where(Account.email == ctx.email, Account.deleted_at.is_(None)).order_by(Account.id.asc())
    ).scalars().first()
    if account is None:
        raise UnauthenticatedError("no account for authenticated user", email=ctx.email)
    return account

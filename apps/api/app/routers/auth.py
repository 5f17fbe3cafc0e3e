from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.auth import AuthContext, get_auth_context, require_auth
from app.core.db import get_db
from app.core.errors import ConflictError
from app.models.entities import Account, Family, Role
from app.schemas.accounts import AccountRegister, AccountResponse, MeResponse
from app.services.accounts import register_account

router = APIRouter(prefix="/v1", tags=["auth"])


@router.post("/register", response_model=AccountResponse, status_code=201)
def register(payload: AccountRegister, db: Session = Depends(get_db)):
    account = register_account(
        db,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=str(payload.email) if payload.email else None,
        mobile=payload.mobile,
        password=payload.password,
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("email or mobile number is already registered") from None
    db.refresh(account)
    return AccountResponse.from_entity(account)


@router.get("/me", response_model=MeResponse)
def get_me(
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    """
    Returns the caller's account, family number and granted capability keys.

    If no caller is identified (AUTH_MODE=none without X-Dev-User), this returns an anonymous response.
    """
    if ctx is None:
        return MeResponse(authenticated=False, email=None)

    account = db.execute(
        select(Account).where(Account.email == ctx.email, Account.deleted_at.is_(None)).order_by(Account.id.asc())
    ).scalars().first()
    if account is None:
        return MeResponse(authenticated=True, email=ctx.email)

    family = db.get(Family, account.family_id)
    role = db.get(Role, account.role_id) if account.role_id is not None else None
    granted = []
    if role is not None and role.is_active:
        granted = sorted(key for key, value in (role.permissions or {}).items() if value is True)
    return MeResponse(
        authenticated=True,
        email=ctx.email,
        account=AccountResponse.from_entity(account),
        family_number=family.family_number if family else None,
        permissions=granted,
    )


@router.post("/logout")
def logout(_: AuthContext = Depends(require_auth)):
    # With forward-auth, logout is handled by the IdP/proxy; the app doesn't hold a session.
    return {"ok": True}

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Literal

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.auth import require_actor
from app.core.db import get_db
from app.core.errors import ForbiddenError, InvalidArgumentError, UnauthenticatedError
from app.models.entities import Account, Role
from app.services import permissions
from app.services.roles import has_permission


def _load(db: Session, account_id: int | None) -> tuple[Account, Role]:
    # Always re-read: a role edit or account deletion must take effect on the next call.
    account = db.get(Account, account_id) if account_id is not None else None
    if account is None or account.is_deleted:
        raise UnauthenticatedError("user not found")
    role = db.get(Role, account.role_id) if account.role_id is not None else None
    if role is None or not role.is_active:
        raise ForbiddenError("user role is not active")
    return account, role


def _required(keys: Iterable[str]) -> list[str]:
    required = list(keys)
    if not required:
        raise InvalidArgumentError("at least one permission key is required")
    return required


def authorize(db: Session, account_id: int | None, key: str) -> Account:
    """
    Return the account if its role grants `key`.

    Keys outside the catalog are never granted, so they fail as Forbidden like
    any other missing grant.
    """
    account, role = _load(db, account_id)
    if not has_permission(role, key):
        raise ForbiddenError(f"access denied: {key} permission required", required_permission=key)
    return account


def authorize_any(db: Session, account_id: int | None, keys: Iterable[str]) -> Account:
    required = _required(keys)
    account, role = _load(db, account_id)
    if not any(has_permission(role, key) for key in required):
        raise ForbiddenError(
            f"access denied: one of {', '.join(required)} permissions required", required_permissions=required
        )
    return account


def authorize_all(db: Session, account_id: int | None, keys: Iterable[str]) -> Account:
    required = _required(keys)
    account, role = _load(db, account_id)
    missing = [key for key in required if not has_permission(role, key)]
    if missing:
        raise ForbiddenError(f"access denied: missing {', '.join(missing)}", missing_permissions=missing)
    return account


def can(db: Session, account: Account, key: str) -> bool:
    """Non-raising check used where a permission widens what the owner may do."""
    role = db.get(Role, account.role_id) if account.role_id is not None else None
    return role is not None and role.is_active and has_permission(role, key)


def require_permission(*keys: str, mode: Literal["all", "any"] = "all") -> Callable[..., Account]:
    """
    Dependency factory for route handlers.

    Resolves the caller, then checks `keys` against its current role.
    """
    permissions.validate_keys(keys)
    check = authorize_all if mode == "all" else authorize_any

    def dependency(
        db: Session = Depends(get_db),
        actor: Account = Depends(require_actor),
    ) -> Account:
        return check(db, actor.id, keys)

    return dependency

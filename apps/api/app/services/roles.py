"""
Role store.

Roles own a `capability key -> bool` map. The three system roles are seeded
by `initialize_system_roles` and may have their grants edited but never their
names; `admin` additionally must keep the critical capabilities.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from app.models.entities import Account, Role
from app.services import audit, permissions

logger = logging.getLogger(__name__)

ADMIN = "admin"
USER = "user"
COMMITTEE = "committee"
SYSTEM_ROLE_KEYS = (ADMIN, USER, COMMITTEE)

CRITICAL_ADMIN_CAPABILITIES = (permissions.CAN_MANAGE_ROLES, permissions.CAN_MANAGE_SETTINGS)

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 50

_USER_GRANTS = ("canViewEvents", "canViewCommittee")
_COMMITTEE_GRANTS = (
    permissions.CAN_VIEW_USERS,
    permissions.CAN_VIEW_FAMILY_MEMBERS,
    "canViewEvents",
    "canViewCommittee",
    "canViewReports",
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def derive_role_key(name: str) -> str:
    return _NON_ALNUM.sub("_", name.lower()).strip("_")


def _grant_set(granted: tuple[str, ...] | None = None) -> dict[str, bool]:
    grants = permissions.default_grant_set()
    if granted is None:
        return {key: True for key in grants}
    for key in granted:
        grants[key] = True
    return grants


_SYSTEM_ROLES: dict[str, dict[str, Any]] = {
    ADMIN: {"name": "Admin", "description": "Full system access", "granted": None},
    USER: {"name": "User", "description": "Regular community member", "granted": _USER_GRANTS},
    COMMITTEE: {"name": "Committee", "description": "Committee member with view access", "granted": _COMMITTEE_GRANTS},
}


def _merge_grants(base: Mapping[str, bool], requested: Mapping[str, Any] | None) -> dict[str, bool]:
    """Return a new map with the catalog-valid boolean entries of `requested` applied."""
    merged = dict(base)
    for key, value in (requested or {}).items():
        if permissions.exists(key) and isinstance(value, bool):
            merged[key] = value
    return merged


def _validate_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not NAME_MIN_LENGTH <= len(cleaned) <= NAME_MAX_LENGTH:
        raise InvalidArgumentError(
            f"role name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters", field="name"
        )
    if not derive_role_key(cleaned):
        raise InvalidArgumentError("role name must contain letters or digits", field="name")
    return cleaned


def _require_some_grant(grants: Mapping[str, bool]) -> None:
    if not any(value is True for value in grants.values()):
        raise InvalidArgumentError("role must have at least one permission enabled")


def has_permission(role: Role | None, key: str) -> bool:
    if role is None or not permissions.exists(key) or not isinstance(role.permissions, dict):
        return False
    return role.permissions.get(key) is True


def get_role(db: Session, role_id: int) -> Role | None:
    return db.get(Role, role_id)


def require_role(db: Session, role_id: int) -> Role:
    role = db.get(Role, role_id)
    if role is None:
        raise NotFoundError("role not found", role_id=role_id)
    return role


def get_role_by_key(db: Session, key: str) -> Role | None:
    return db.execute(select(Role).where(Role.key == key)).scalar_one_or_none()


def list_roles(db: Session, *, include_inactive: bool = False) -> list[Role]:
    query = select(Role)
    if not include_inactive:
        query = query.where(Role.is_active.is_(True))
    return list(db.execute(query.order_by(Role.is_system_role.desc(), Role.name.asc())).scalars().all())


def count_role_accounts(db: Session, role_id: int) -> int:
    return db.execute(
        select(func.count(Account.id)).where(
            Account.role_id == role_id,
            Account.is_active.is_(True),
            Account.deleted_at.is_(None),
        )
    ).scalar_one()


def create_role(
    db: Session,
    *,
    name: str,
    description: str = "",
    requested_grants: Mapping[str, Any] | None = None,
    created_by: int | None = None,
) -> Role:
    name = _validate_name(name)
    key = derive_role_key(name)
    grants = _merge_grants(permissions.default_grant_set(), requested_grants)
    _require_some_grant(grants)

    clash = db.execute(select(Role).where(func.lower(Role.name) == name.lower())).scalar_one_or_none()
    if clash is not None and clash.is_active:
        raise ConflictError("a role with this name already exists", name=name)
    existing = get_role_by_key(db, key)
    if existing is not None and (existing.is_active or existing.is_system_role):
        raise ConflictError("a role with this name already exists", name=name)

    if existing is not None:
        # Revive the disabled role rather than inserting a duplicate key.
        existing.name = name
        existing.description = description
        existing.permissions = grants
        existing.is_active = True
        existing.created_by_id = created_by
        role = existing
    else:
        role = Role(
            name=name,
            key=key,
            description=description,
            permissions=grants,
            is_system_role=False,
            is_active=True,
            created_by_id=created_by,
        )
        db.add(role)
    db.flush()

    audit.record_activity(
        db,
        performed_by=created_by,
        action=audit.ROLE_CREATED,
        details={"role_id": role.id, "role_key": role.key},
        description=f"Created role {role.name}",
    )
    logger.info("role %s (%s) created", role.key, role.id)
    return role


def update_role(
    db: Session,
    role_id: int,
    *,
    name: str | None = None,
    grants: Mapping[str, Any] | None = None,
    description: str | None = None,
    updated_by: int | None = None,
) -> Role:
    role = require_role(db, role_id)

    if name is not None and name.strip() != role.name:
        if role.is_system_role:
            raise ForbiddenError("cannot change the name of a system role", role_key=role.key)
        new_name = _validate_name(name)
        new_key = derive_role_key(new_name)
        clash = db.execute(
            select(Role.id).where(Role.id != role.id, (func.lower(Role.name) == new_name.lower()) | (Role.key == new_key))
        ).first()
        if clash is not None:
            raise ConflictError("a role with this name already exists", name=new_name)
        role.name = new_name
        role.key = new_key

    if grants is not None:
        merged = _merge_grants(role.permissions or {}, grants)
        if role.key == ADMIN:
            cleared = [key for key in CRITICAL_ADMIN_CAPABILITIES if merged.get(key) is not True]
            if cleared:
                raise ForbiddenError(
                    "cannot remove critical permissions from the admin role", permissions=cleared
                )
        if not role.is_system_role:
            _require_some_grant(merged)
        role.permissions = merged

    if description is not None:
        role.description = description
    db.flush()

    audit.record_activity(
        db,
        performed_by=updated_by,
        action=audit.ROLE_UPDATED,
        details={"role_id": role.id, "role_key": role.key},
        description=f"Updated role {role.name}",
    )
    logger.info("role %s (%s) updated", role.key, role.id)
    return role


def delete_role(db: Session, role_id: int, *, deleted_by: int | None = None) -> Role:
    role = require_role(db, role_id)
    if role.is_system_role:
        raise ForbiddenError("cannot delete a system role", role_key=role.key)
    in_use = count_role_accounts(db, role.id)
    if in_use:
        raise ConflictError(f"cannot delete role: {in_use} user(s) are assigned to this role", user_count=in_use)
    role.is_active = False
    db.flush()

    audit.record_activity(
        db,
        performed_by=deleted_by,
        action=audit.ROLE_DISABLED,
        details={"role_id": role.id, "role_key": role.key},
        description=f"Disabled role {role.name}",
    )
    logger.info("role %s (%s) disabled", role.key, role.id)
    return role


def initialize_system_roles(db: Session) -> dict[str, Role]:
    """
    Create any missing system role and give every role-less account the user role.

    Safe to call repeatedly; existing system roles keep their current grants.
    """
    seeded: dict[str, Role] = {}
    for key, seed in _SYSTEM_ROLES.items():
        role = get_role_by_key(db, key)
        if role is None:
            role = Role(
                name=seed["name"],
                key=key,
                description=seed["description"],
                permissions=_grant_set(seed["granted"]),
                is_system_role=True,
                is_active=True,
            )
            db.add(role)
            db.flush()
            logger.info("seeded system role %s", key)
        elif not role.is_system_role or not role.is_active:
            role.is_system_role = True
            role.is_active = True
        seeded[key] = role

    orphans = db.execute(select(Account).where(Account.role_id.is_(None))).scalars().all()
    for account in orphans:
        account.role_id = seeded[USER].id
    if orphans:
        logger.info("assigned default role to %s account(s)", len(orphans))
    db.flush()
    return seeded


def default_user_role(db: Session) -> Role:
    role = get_role_by_key(db, USER)
    if role is None or not role.is_active:
        role = initialize_system_roles(db)[USER]
    return role


def assign_role(db: Session, account_id: int, role_id: int, *, assigned_by: int | None = None) -> Account:
    account = db.get(Account, account_id)
    if account is None or account.is_deleted:
        raise NotFoundError("user not found", account_id=account_id)
    role = db.get(Role, role_id)
    if role is None or not role.is_active:
        raise NotFoundError("role not found or inactive", role_id=role_id)

    previous = account.role_id
    account.role_id = role.id
    db.flush()

    audit.record_activity(
        db,
        performed_by=assigned_by,
        action=audit.ROLE_CHANGED,
        target_account_id=account.id,
        details={"old_role_id": previous, "new_role_id": role.id, "new_role_key": role.key},
        description=f"Changed role of {account.full_name} to {role.name}",
    )
    logger.info("account %s assigned role %s", account.id, role.key)
    return account

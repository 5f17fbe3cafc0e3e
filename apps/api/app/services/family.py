"""
Family grouping: approval-gated membership growth.

`add_member` counts the family's occupied slots and inserts the new record in
one transaction holding the family row lock, so two concurrent adds can never
both see the same count.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import run_in_transaction
from app.core.errors import ForbiddenError, InvalidArgumentError, NotFoundError
from app.models.entities import (
    Account,
    AccountStatusEnum,
    ApprovalStatusEnum,
    DeleteTypeEnum,
    Family,
    MemberRecord,
)
from app.services import access, audit, members, permissions
from app.services.accounts import find_by_contact
from app.services.contact import mobile_digits, normalize_email, normalize_mobile
from app.services.passwords import hash_password
from app.services.roles import default_user_role

logger = logging.getLogger(__name__)

RELATIONSHIP_TYPES = (
    "Father",
    "Mother",
    "Son",
    "Daughter",
    "Husband",
    "Wife",
    "Brother",
    "Sister",
    "Grandfather",
    "Grandmother",
    "Grandson",
    "Granddaughter",
    "Uncle",
    "Aunt",
    "Nephew",
    "Niece",
    "Cousin",
    "Father-in-law",
    "Mother-in-law",
    "Son-in-law",
    "Daughter-in-law",
    "Brother-in-law",
    "Sister-in-law",
    "Other",
)
_RELATIONSHIPS_BY_LOWER = {item.lower(): item for item in RELATIONSHIP_TYPES}


@dataclass
class MemberDetails:
    relationship_to_owner: str
    first_name: str
    last_name: str
    middle_name: str | None = None
    date_of_birth: date | None = None
    email: str | None = None
    mobile: str | None = None
    create_login_account: bool = False
    password: str | None = None


@dataclass
class AddMemberOutcome:
    record: MemberRecord
    needs_approval: bool
    login_account: Account | None = None
    login_account_created: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_relationship(value: str | None) -> str:
    canonical = _RELATIONSHIPS_BY_LOWER.get((value or "").strip().lower())
    if canonical is None:
        raise InvalidArgumentError(
            f"relationship must be one of: {', '.join(RELATIONSHIP_TYPES)}", field="relationship_to_owner"
        )
    return canonical


def _require_name(value: str | None, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise InvalidArgumentError(f"{field} is required", field=field)
    return cleaned


def _check_birth_date(value: date | None) -> date | None:
    if value is not None and value > date.today():
        raise InvalidArgumentError("date of birth cannot be in the future", field="date_of_birth")
    return value


def placeholder_email(mobile: str, family_number: str) -> str:
    return f"family.{mobile_digits(mobile)}@{family_number.lower()}.{settings.placeholder_email_domain}"


def placeholder_mobile(email: str) -> str:
    digest = int(hashlib.md5(email.encode("utf-8")).hexdigest(), 16) % 10**9
    return f"{settings.mobile_country_code}9{digest:09d}"


def default_password(password: str | None, email: str | None, mobile: str | None) -> str:
    if password:
        return password
    digits = mobile_digits(mobile)
    if digits:
        return digits
    if email:
        return email.split("@", 1)[0]
    return settings.default_member_password


def lock_family(db: Session, family_id: int) -> Family:
    return db.execute(select(Family).where(Family.id == family_id).with_for_update()).scalar_one()


def _lock_owner(db: Session, account_id: int) -> tuple[Account, Family]:
    family_id = db.execute(
        select(Account.family_id).where(Account.id == account_id, Account.deleted_at.is_(None))
    ).scalar_one_or_none()
    if family_id is None:
        raise NotFoundError("user not found", account_id=account_id)
    family = lock_family(db, family_id)
    # Re-read under the lock so a demotion committed meanwhile is seen.
    owner = db.get(Account, account_id, populate_existing=True, with_for_update=True)
    if owner is None or owner.is_deleted:
        raise NotFoundError("user not found", account_id=account_id)
    return owner, family


def clean_details(details: MemberDetails) -> dict[str, Any]:
    """Validate and normalize member details into MemberRecord column values."""
    values = {
        "relationship_to_owner": normalize_relationship(details.relationship_to_owner),
        "first_name": _require_name(details.first_name, "first_name"),
        "middle_name": (details.middle_name or "").strip() or None,
        "last_name": _require_name(details.last_name, "last_name"),
        "date_of_birth": _check_birth_date(details.date_of_birth),
        "email": normalize_email(details.email),
        "mobile": normalize_mobile(details.mobile),
    }
    if details.create_login_account and not values["email"] and not values["mobile"]:
        raise InvalidArgumentError("email or mobile number is required to create a login account")
    return values


def login_password_hash(password: str | None, email: str | None, mobile: str | None) -> str:
    return hash_password(default_password(password, email, mobile))


def _provision_login(
    db: Session,
    *,
    owner: Account,
    family: Family,
    record: MemberRecord,
    password_hash: str,
) -> tuple[Account, bool]:
    email = record.email
    mobile = record.mobile
    login_email = email or placeholder_email(mobile, family.family_number)
    login_mobile = mobile or placeholder_mobile(email)

    existing = find_by_contact(db, email=login_email, mobile=login_mobile)
    if existing is not None:
        members.link(existing, record)
        return existing, False

    account = Account(
        first_name=record.first_name,
        last_name=record.last_name,
        email=login_email,
        mobile=login_mobile,
        password_hash=password_hash,
        family_id=owner.family_id,
        is_primary=False,
        role_id=default_user_role(db).id,
        status=AccountStatusEnum.approved,
        is_active=True,
        transfer_history=[],
    )
    db.add(account)
    db.flush()
    members.link(account, record)
    return account, True


def insert_member(
    db: Session,
    *,
    owner: Account,
    family: Family,
    values: Mapping[str, Any],
    login_hash: str | None = None,
) -> AddMemberOutcome:
    """
    Count-then-insert under a family lock the caller already holds.

    A login account is provisioned and linked when `login_hash` is given.
    """
    occupied = members.count_counted_members(db, family.id)
    needs_approval = occupied >= settings.member_approval_threshold
    record = MemberRecord(
        owner_account_id=owner.id,
        family_id=owner.family_id,
        approval_status=ApprovalStatusEnum.pending if needs_approval else ApprovalStatusEnum.approved,
        needs_approval=needs_approval,
        **values,
    )
    db.add(record)
    db.flush()

    login_account = None
    created = False
    if login_hash is not None:
        login_account, created = _provision_login(
            db, owner=owner, family=family, record=record, password_hash=login_hash
        )
        db.flush()
    return AddMemberOutcome(
        record=record,
        needs_approval=needs_approval,
        login_account=login_account,
        login_account_created=created,
    )


def add_member(db: Session, actor_id: int, details: MemberDetails) -> AddMemberOutcome:
    values = clean_details(details)
    login_hash = None
    if details.create_login_account:
        login_hash = login_password_hash(details.password, values["email"], values["mobile"])

    def operation() -> AddMemberOutcome:
        owner, family = _lock_owner(db, actor_id)
        if not owner.is_primary and not access.can(db, owner, permissions.CAN_MANAGE_FAMILY_MEMBERS):
            raise ForbiddenError("you don't have permission to add family members")
        if not owner.is_primary and details.create_login_account:
            raise ForbiddenError("family member accounts cannot create login accounts for others")

        outcome = insert_member(db, owner=owner, family=family, values=values, login_hash=login_hash)
        record = outcome.record
        audit.record_activity(
            db,
            performed_by=owner.id,
            action=audit.MEMBER_ADDED,
            target_account_id=owner.id,
            target_member_id=record.id,
            details={
                "approval_status": record.approval_status.value,
                "linked_account_id": record.linked_account_id,
                "login_account_created": outcome.login_account_created,
            },
            description=f"Family member {record.full_name} added by {owner.full_name}",
        )
        return outcome

    outcome = run_in_transaction(db, operation)
    logger.info(
        "member %s added to family %s (%s)",
        outcome.record.id,
        outcome.record.family_id,
        outcome.record.approval_status.value,
    )
    return outcome


def _set_approval(
    db: Session,
    actor_id: int,
    member_id: int,
    status: ApprovalStatusEnum,
    *,
    key: str,
    action: str,
    reason: str | None = None,
) -> MemberRecord:
    actor = access.authorize(db, actor_id, key)
    record = members.require_member(db, member_id)
    old_status = record.approval_status
    record.approval_status = status
    record.needs_approval = False
    db.flush()

    details: dict[str, Any] = {"old_status": old_status.value, "new_status": status.value}
    if reason:
        details["rejection_reason"] = reason
    audit.record_activity(
        db,
        performed_by=actor.id,
        action=action,
        target_account_id=record.owner_account_id,
        target_member_id=record.id,
        details=details,
        description=f"Family member {record.full_name} {status.value}",
    )
    logger.info("member %s %s -> %s by %s", record.id, old_status.value, status.value, actor.id)
    return record


def approve_member(db: Session, actor_id: int, member_id: int) -> MemberRecord:
    return _set_approval(
        db,
        actor_id,
        member_id,
        ApprovalStatusEnum.approved,
        key=permissions.CAN_APPROVE_FAMILY_MEMBERS,
        action=audit.MEMBER_APPROVED,
    )


def reject_member(db: Session, actor_id: int, member_id: int, reason: str | None = None) -> MemberRecord:
    # The linked account, if any, is left as it is.
    return _set_approval(
        db,
        actor_id,
        member_id,
        ApprovalStatusEnum.rejected,
        key=permissions.CAN_REJECT_FAMILY_MEMBERS,
        action=audit.MEMBER_REJECTED,
        reason=reason,
    )


def _apply_changes(record: MemberRecord, changes: Mapping[str, Any], *, allow_status: bool) -> list[str]:
    updated: list[str] = []
    for field, value in changes.items():
        if field in ("first_name", "last_name"):
            value = _require_name(value, field)
        elif field == "middle_name":
            value = (value or "").strip() or None
        elif field == "date_of_birth":
            value = _check_birth_date(value)
        elif field == "email":
            value = normalize_email(value)
        elif field == "mobile":
            value = normalize_mobile(value)
        elif field == "relationship_to_owner":
            value = normalize_relationship(value)
        elif field == "approval_status" and allow_status:
            value = ApprovalStatusEnum(value)
            record.needs_approval = value == ApprovalStatusEnum.pending
        else:
            raise InvalidArgumentError(f"field cannot be updated: {field}", field=field)
        setattr(record, field, value)
        updated.append(field)
    return updated


def update_member(db: Session, actor_id: int, member_id: int, changes: Mapping[str, Any]) -> MemberRecord:
    record = members.require_member(db, member_id)
    if record.owner_account_id != actor_id:
        raise ForbiddenError("you can only update your own family members")
    updated = _apply_changes(record, changes, allow_status=False)
    db.flush()
    audit.record_activity(
        db,
        performed_by=actor_id,
        action=audit.MEMBER_UPDATED,
        target_account_id=record.owner_account_id,
        target_member_id=record.id,
        details={"updated_fields": updated},
        description=f"Family member {record.full_name} updated",
    )
    return record


def admin_update_member(db: Session, actor_id: int, member_id: int, changes: Mapping[str, Any]) -> MemberRecord:
    actor = access.authorize(db, actor_id, permissions.CAN_EDIT_FAMILY_MEMBERS)
    record = members.require_member(db, member_id)
    updated = _apply_changes(record, changes, allow_status=True)
    db.flush()
    audit.record_activity(
        db,
        performed_by=actor.id,
        action=audit.MEMBER_UPDATED,
        target_account_id=record.owner_account_id,
        target_member_id=record.id,
        details={"updated_fields": updated},
        description=f"Family member {record.full_name} updated by admin",
    )
    logger.info("member %s updated by admin %s: %s", record.id, actor.id, ", ".join(updated))
    return record


def _soft_delete(db: Session, record: MemberRecord, actor_id: int, description: str) -> MemberRecord:
    members.unlink(db, record)
    record.deleted_at = _utcnow()
    record.deleted_by_id = actor_id
    record.delete_type = DeleteTypeEnum.soft
    db.flush()
    audit.record_activity(
        db,
        performed_by=actor_id,
        action=audit.MEMBER_DELETED,
        target_account_id=record.owner_account_id,
        target_member_id=record.id,
        details={"family_member_name": record.full_name},
        description=description,
    )
    return record


def delete_member(db: Session, actor_id: int, member_id: int) -> MemberRecord:
    record = members.require_member(db, member_id)
    if record.owner_account_id != actor_id:
        raise ForbiddenError("you can only delete your own family members")
    return _soft_delete(db, record, actor_id, f"Family member {record.full_name} deleted")


def admin_delete_member(db: Session, actor_id: int, member_id: int) -> MemberRecord:
    actor = access.authorize(db, actor_id, permissions.CAN_DELETE_FAMILY_MEMBERS)
    record = members.require_member(db, member_id)
    logger.info("member %s deleted by admin %s", record.id, actor.id)
    return _soft_delete(db, record, actor.id, f"Family member {record.full_name} deleted by admin")


def list_pending_members(db: Session, actor_id: int) -> list[MemberRecord]:
    access.authorize(db, actor_id, permissions.CAN_VIEW_PENDING_FAMILY_MEMBERS)
    return list(
        db.execute(
            select(MemberRecord)
            .where(
                MemberRecord.approval_status == ApprovalStatusEnum.pending,
                MemberRecord.deleted_at.is_(None),
            )
            .order_by(MemberRecord.created_at.asc(), MemberRecord.id.asc())
        )
        .scalars()
        .all()
    )

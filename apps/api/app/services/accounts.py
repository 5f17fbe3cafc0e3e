from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, InvalidArgumentError, InvalidStateError, NotFoundError
from app.models.entities import Account, AccountStatusEnum, DeleteTypeEnum, Family
from app.services import audit
from app.services.contact import normalize_email, normalize_mobile
from app.services.passwords import MIN_PASSWORD_LENGTH, hash_password
from app.services.roles import default_user_role

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_family_number(db: Session) -> str:
    stamp = _utcnow().strftime("%Y%m%d")
    while True:
        candidate = f"FAM-{stamp}-{secrets.token_hex(2).upper()}"
        taken = db.execute(select(Family.id).where(Family.family_number == candidate)).first()
        if taken is None:
            return candidate


def create_family(db: Session) -> Family:
    family = Family(family_number=generate_family_number(db))
    db.add(family)
    db.flush()
    return family


def get_account(db: Session, account_id: int) -> Account | None:
    return db.get(Account, account_id)


def require_account(db: Session, account_id: int, *, include_deleted: bool = False) -> Account:
    account = db.get(Account, account_id)
    if account is None or (account.is_deleted and not include_deleted):
        raise NotFoundError("user not found", account_id=account_id)
    return account


def _live_accounts():
    return select(Account).where(
        Account.deleted_at.is_(None),
        Account.status != AccountStatusEnum.rejected,
    )


def find_by_contact(db: Session, *, email: str | None = None, mobile: str | None = None) -> Account | None:
    """First non-deleted, non-rejected account matching either normalised contact."""
    clauses = []
    if email:
        clauses.append(Account.email == email)
    if mobile:
        clauses.append(Account.mobile == mobile)
    if not clauses:
        return None
    return db.execute(_live_accounts().where(or_(*clauses)).order_by(Account.id.asc())).scalars().first()


def ensure_contact_available(
    db: Session,
    *,
    email: str | None,
    mobile: str | None,
    exclude_account_id: int | None = None,
) -> None:
    if email:
        query = _live_accounts().where(Account.email == email)
        if exclude_account_id is not None:
            query = query.where(Account.id != exclude_account_id)
        if db.execute(query).first() is not None:
            raise ConflictError("email is already registered", field="email")
    if mobile:
        query = _live_accounts().where(Account.mobile == mobile)
        if exclude_account_id is not None:
            query = query.where(Account.id != exclude_account_id)
        if db.execute(query).first() is not None:
            raise ConflictError("mobile number is already registered", field="mobile")


def list_family_accounts(db: Session, family_id: int, *, include_deleted: bool = False) -> list[Account]:
    query = select(Account).where(Account.family_id == family_id)
    if not include_deleted:
        query = query.where(Account.deleted_at.is_(None))
    return list(db.execute(query.order_by(Account.is_primary.desc(), Account.id.asc())).scalars().all())


def register_account(
    db: Session,
    *,
    first_name: str,
    last_name: str,
    password: str,
    email: str | None = None,
    mobile: str | None = None,
) -> Account:
    """
    Self-registration: a fresh family with this account as its pending primary.
    """
    email = normalize_email(email)
    mobile = normalize_mobile(mobile)
    if not email and not mobile:
        raise InvalidArgumentError("either email or mobile number is required")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise InvalidArgumentError(
            f"password must be at least {MIN_PASSWORD_LENGTH} characters", field="password"
        )
    ensure_contact_available(db, email=email, mobile=mobile)

    family = create_family(db)
    account = Account(
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=email,
        mobile=mobile,
        password_hash=hash_password(password),
        family_id=family.id,
        is_primary=True,
        role_id=default_user_role(db).id,
        status=AccountStatusEnum.pending,
        is_active=True,
        transfer_history=[],
    )
    db.add(account)
    db.flush()

    audit.record_activity(
        db,
        performed_by=account.id,
        action=audit.ACCOUNT_REGISTERED,
        target_account_id=account.id,
        details={"family_number": family.family_number},
        description=f"{account.full_name} registered",
    )
    logger.info("account %s registered in family %s", account.id, family.family_number)
    return account


def _set_status(
    db: Session,
    account_id: int,
    status: AccountStatusEnum,
    *,
    actor_id: int | None,
    action: str,
    reason: str | None = None,
    bulk: bool = False,
) -> Account:
    account = require_account(db, account_id)
    old_status = account.status
    if status == AccountStatusEnum.approved and old_status == AccountStatusEnum.rejected:
        # Returning from rejection re-enters the contact uniqueness scope.
        ensure_contact_available(db, email=account.email, mobile=account.mobile, exclude_account_id=account.id)
    account.status = status
    db.flush()

    details = {"old_status": old_status.value, "new_status": status.value}
    if reason:
        details["rejection_reason"] = reason
    if bulk:
        details["bulk_operation"] = True
    verb = "approved" if status == AccountStatusEnum.approved else "rejected"
    audit.record_activity(
        db,
        performed_by=actor_id,
        action=action,
        target_account_id=account.id,
        details=details,
        description=f"User {account.full_name} {verb}" + (f": {reason}" if reason else "") + (" (bulk operation)" if bulk else ""),
    )
    logger.info("account %s %s -> %s", account.id, old_status.value, status.value)
    return account


def approve_account(db: Session, account_id: int, *, actor_id: int | None) -> Account:
    return _set_status(db, account_id, AccountStatusEnum.approved, actor_id=actor_id, action=audit.ACCOUNT_APPROVED)


def reject_account(db: Session, account_id: int, *, actor_id: int | None, reason: str | None = None) -> Account:
    return _set_status(
        db, account_id, AccountStatusEnum.rejected, actor_id=actor_id, action=audit.ACCOUNT_REJECTED, reason=reason
    )


def bulk_set_status(
    db: Session,
    account_ids: list[int],
    status: AccountStatusEnum,
    *,
    actor_id: int | None,
    reason: str | None = None,
) -> list[Account]:
    """Approve or reject several accounts; ids that are missing or deleted are skipped."""
    if not account_ids:
        raise InvalidArgumentError("account_ids are required")
    if status not in (AccountStatusEnum.approved, AccountStatusEnum.rejected):
        raise InvalidArgumentError("bulk status must be approved or rejected", status=status.value)
    action = audit.ACCOUNT_APPROVED if status == AccountStatusEnum.approved else audit.ACCOUNT_REJECTED
    changed = []
    for account_id in dict.fromkeys(account_ids):
        live = db.execute(
            select(Account.id).where(Account.id == account_id, Account.deleted_at.is_(None))
        ).scalar_one_or_none()
        if live is None:
            logger.info("bulk %s: skipping missing account %s", status.value, account_id)
            continue
        changed.append(
            _set_status(db, account_id, status, actor_id=actor_id, action=action, reason=reason, bulk=True)
        )
    return changed


def soft_delete_account(db: Session, account_id: int, *, actor_id: int | None, reason: str | None = None) -> Account:
    account = require_account(db, account_id, include_deleted=True)
    if account.is_deleted:
        raise InvalidStateError("user is already deleted", account_id=account.id)
    if account.is_primary:
        others = db.execute(
            select(Account.id).where(
                Account.family_id == account.family_id,
                Account.id != account.id,
                Account.deleted_at.is_(None),
            )
        ).first()
        if others is not None:
            raise InvalidStateError(
                "transfer the primary account before deleting it", account_id=account.id
            )

    account.is_active = False
    account.deleted_at = _utcnow()
    account.deleted_by_id = actor_id
    account.delete_type = DeleteTypeEnum.soft
    account.deletion_reason = reason or ""
    db.flush()

    audit.record_activity(
        db,
        performed_by=actor_id,
        action=audit.ACCOUNT_SOFT_DELETED,
        target_account_id=account.id,
        details={"deletion_reason": reason or ""},
        description=f"User {account.full_name} soft deleted",
    )
    logger.info("account %s soft deleted", account.id)
    return account


def restore_account(db: Session, account_id: int, *, actor_id: int | None) -> Account:
    account = db.get(Account, account_id)
    if account is None:
        if audit.was_hard_deleted(db, account_id):
            raise InvalidStateError("cannot restore hard deleted user", account_id=account_id)
        raise NotFoundError("user not found", account_id=account_id)
    if not account.is_deleted:
        raise InvalidStateError("user is not deleted", account_id=account.id)
    if account.delete_type == DeleteTypeEnum.hard:
        raise InvalidStateError("cannot restore hard deleted user", account_id=account.id)
    if account.status != AccountStatusEnum.rejected:
        ensure_contact_available(db, email=account.email, mobile=account.mobile, exclude_account_id=account.id)

    account.is_active = True
    account.deleted_at = None
    account.deleted_by_id = None
    account.delete_type = None
    account.deletion_reason = None
    db.flush()

    audit.record_activity(
        db,
        performed_by=actor_id,
        action=audit.ACCOUNT_RESTORED,
        target_account_id=account.id,
        description=f"User {account.full_name} restored",
    )
    logger.info("account %s restored", account.id)
    return account

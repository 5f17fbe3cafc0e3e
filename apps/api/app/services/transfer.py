"""
Primary-account handoff.

The whole protocol runs as one transaction under the family row lock: the old
primary is demoted, the chosen member records change owner and the new primary
is promoted together, so no reader can ever see two primaries or none.

Each account carries its transfer history by value. The new primary's chain is
the old primary's chain plus the new record, giving a linear ledger per family
lineage.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.db import run_in_transaction
from app.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from app.models.entities import Account, AccountStatusEnum, Family, MemberRecord
from app.services import audit, members

logger = logging.getLogger(__name__)

DECEASED_PATTERN = re.compile(r"deceased|death|passed away", re.IGNORECASE)
DEFAULT_REASON = "Primary account transfer"


@dataclass(frozen=True)
class TransferRecord:
    from_account_id: int
    from_name: str
    to_account_id: int
    to_name: str
    transferred_by: int | None
    transferred_at: str
    reason: str
    member_records_migrated: int

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TransferOutcome:
    migrated_count: int
    record: TransferRecord
    previous_primary: Account
    new_primary: Account
    previous_marked_deceased: bool


def is_deceased_reason(reason: str) -> bool:
    return DECEASED_PATTERN.search(reason or "") is not None


def _load_live(db: Session, account_id: int, label: str) -> Account:
    # Called under the family lock; overwrite any copy the session loaded before it.
    account = db.get(Account, account_id, populate_existing=True, with_for_update=True)
    if account is None or account.is_deleted:
        raise NotFoundError(f"{label} not found", account_id=account_id)
    return account


def _lock_family_of(db: Session, account_id: int) -> int:
    family_id = db.execute(
        select(Account.family_id).where(Account.id == account_id, Account.deleted_at.is_(None))
    ).scalar_one_or_none()
    if family_id is None:
        raise NotFoundError("current primary account not found", account_id=account_id)
    db.execute(select(Family.id).where(Family.id == family_id).with_for_update())
    return family_id


def demote_stray_primaries(db: Session, family_id: int, keep_account_id: int) -> int:
    strays = db.execute(
        select(Account).where(
            Account.family_id == family_id,
            Account.is_primary.is_(True),
            Account.id != keep_account_id,
        )
    ).scalars().all()
    for account in strays:
        logger.warning("family %s: demoting stray primary account %s", family_id, account.id)
        account.is_primary = False
    return len(strays)


def resolve_migration_set(db: Session, current: Account, member_record_ids: Sequence[int] | None) -> list[int]:
    """
    Ids of the records that move to the new primary.

    With `None` every non-deleted record owned by `current` moves; an empty
    list moves nothing. Explicit ids must all be owned by `current`.
    """
    owned = members.list_owned_record_ids(db, current.id)
    if member_record_ids is None:
        return owned
    owned_ids = set(owned)
    requested = list(dict.fromkeys(member_record_ids))
    foreign = [record_id for record_id in requested if record_id not in owned_ids]
    if foreign:
        raise InvalidArgumentError(
            "member records must belong to the current primary account", invalid_member_ids=foreign
        )
    return requested


def build_record(
    current: Account,
    new: Account,
    *,
    transferred_by: int | None,
    reason: str,
    migrated: int,
    at: datetime,
) -> TransferRecord:
    return TransferRecord(
        from_account_id=current.id,
        from_name=current.full_name,
        to_account_id=new.id,
        to_name=new.full_name,
        transferred_by=transferred_by,
        transferred_at=at.isoformat(),
        reason=reason,
        member_records_migrated=migrated,
    )


def reassign_records(db: Session, record_ids: Sequence[int], new_owner_id: int) -> None:
    if not record_ids:
        return
    db.execute(
        update(MemberRecord)
        .where(MemberRecord.id.in_(record_ids))
        .values(owner_account_id=new_owner_id)
        .execution_options(synchronize_session="fetch")
    )


def apply_transfer(
    db: Session,
    current: Account,
    new: Account,
    record: TransferRecord,
    record_ids: Sequence[int],
    *,
    at: datetime,
) -> bool:
    prior_chain = [dict(entry) for entry in (current.transfer_history or [])]
    entry = record.as_dict()

    current.is_primary = False
    deceased = is_deceased_reason(record.reason)
    if deceased:
        current.status = AccountStatusEnum.deceased
        current.is_active = False
    current.transfer_history = prior_chain + [entry]
    db.flush()

    reassign_records(db, record_ids, new.id)

    new.is_primary = True
    new.transferred_from_id = current.id
    new.transferred_at = at
    new.transferred_by_id = record.transferred_by
    new.transfer_reason = record.reason
    new.transfer_history = prior_chain + [dict(entry)]
    db.flush()
    return deceased


def transfer_primary(
    db: Session,
    current_id: int,
    new_id: int,
    *,
    reason: str | None,
    transferred_by: int | None,
    member_record_ids: Sequence[int] | None = None,
) -> TransferOutcome:
    reason = (reason or "").strip() or DEFAULT_REASON
    if current_id == new_id:
        raise InvalidArgumentError("cannot transfer primary account to itself")

    def operation() -> TransferOutcome:
        _lock_family_of(db, current_id)
        current = _load_live(db, current_id, "current primary account")
        new = _load_live(db, new_id, "new primary account")
        if not current.is_primary:
            raise InvalidArgumentError("current account is not a primary account", account_id=current.id)
        if new.family_id != current.family_id:
            raise InvalidArgumentError("both accounts must belong to the same family")
        if new.is_primary:
            raise ConflictError("new account is already a primary account", account_id=new.id)

        demote_stray_primaries(db, current.family_id, keep_account_id=current.id)
        record_ids = resolve_migration_set(db, current, member_record_ids)
        at = datetime.now(timezone.utc)
        record = build_record(
            current, new, transferred_by=transferred_by, reason=reason, migrated=len(record_ids), at=at
        )
        deceased = apply_transfer(db, current, new, record, record_ids, at=at)

        audit.record_activity(
            db,
            performed_by=transferred_by,
            action=audit.PRIMARY_TRANSFERRED,
            target_account_id=new.id,
            details={**record.as_dict(), "previous_marked_deceased": deceased},
            description=f"Primary account transferred from {current.full_name} to {new.full_name}",
        )
        return TransferOutcome(
            migrated_count=len(record_ids),
            record=record,
            previous_primary=current,
            new_primary=new,
            previous_marked_deceased=deceased,
        )

    outcome = run_in_transaction(db, operation)
    logger.info(
        "primary transferred %s -> %s (%s record(s) migrated)",
        outcome.record.from_account_id,
        outcome.record.to_account_id,
        outcome.migrated_count,
    )
    return outcome


@dataclass
class TransferCandidates:
    primary: Account
    eligible: list[Account]
    records: list[MemberRecord]


def transfer_candidates(db: Session, account_id: int) -> TransferCandidates:
    """Accounts that could take over from primary `account_id`, and the records it could hand over."""
    primary = db.get(Account, account_id)
    if primary is None or primary.is_deleted:
        raise NotFoundError("user not found", account_id=account_id)
    if not primary.is_primary:
        raise InvalidArgumentError("user is not a primary account holder", account_id=account_id)
    eligible = db.execute(
        select(Account)
        .where(
            Account.family_id == primary.family_id,
            Account.id != primary.id,
            Account.is_primary.is_(False),
            Account.is_active.is_(True),
            Account.deleted_at.is_(None),
            Account.status == AccountStatusEnum.approved,
        )
        .order_by(Account.created_at.asc(), Account.id.asc())
    ).scalars().all()
    records = db.execute(
        select(MemberRecord)
        .where(MemberRecord.owner_account_id == primary.id, MemberRecord.deleted_at.is_(None))
        .order_by(MemberRecord.created_at.asc(), MemberRecord.id.asc())
    ).scalars().all()
    return TransferCandidates(primary=primary, eligible=list(eligible), records=list(records))

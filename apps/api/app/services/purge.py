from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models.entities import Account, MemberRecord, MemberRequest, Role
from app.services import audit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependentSource:
    """
    Data outside the core that points at an account (comments, relationships, ...).

    `count` reports how many rows depend on the account; `release` detaches or
    removes them during a cascading delete.
    """

    name: str
    count: Callable[[Session, int], int]
    release: Callable[[Session, int], None]


_dependent_sources: list[DependentSource] = []


def register_dependent_source(source: DependentSource) -> None:
    _dependent_sources[:] = [item for item in _dependent_sources if item.name != source.name]
    _dependent_sources.append(source)


def registered_sources() -> list[DependentSource]:
    return list(_dependent_sources)


@dataclass
class DependencySummary:
    family_members: int
    family_user_accounts: int
    is_primary_account: bool
    external: dict[str, int] = field(default_factory=dict)

    @property
    def total_family_members(self) -> int:
        return self.family_members + self.family_user_accounts

    @property
    def has_external(self) -> bool:
        return any(count > 0 for count in self.external.values())

    @property
    def blocking(self) -> bool:
        if self.is_primary_account and self.total_family_members > 0:
            return True
        return self.has_external

    def as_dict(self) -> dict[str, Any]:
        return {
            "familyMembers": self.family_members,
            "familyUserAccounts": self.family_user_accounts,
            "totalFamilyMembers": self.total_family_members,
            **self.external,
            "isPrimaryAccount": self.is_primary_account,
        }


@dataclass
class HardDeleteOutcome:
    deleted: bool
    dependencies: DependencySummary
    deleted_account_ids: list[int] = field(default_factory=list)
    deleted_member_ids: list[int] = field(default_factory=list)


def _owned_record_ids(db: Session, account_ids: Sequence[int]) -> list[int]:
    if not account_ids:
        return []
    return list(
        db.execute(select(MemberRecord.id).where(MemberRecord.owner_account_id.in_(account_ids))).scalars().all()
    )


def _sibling_ids(db: Session, account: Account, *, live_only: bool) -> list[int]:
    query = select(Account.id).where(Account.family_id == account.family_id, Account.id != account.id)
    if live_only:
        query = query.where(Account.deleted_at.is_(None))
    else:
        query = query.where(Account.is_primary.is_(False))
    return list(db.execute(query.order_by(Account.id.asc())).scalars().all())


def summarize_dependencies(
    db: Session, account: Account, sources: Sequence[DependentSource] | None = None
) -> DependencySummary:
    sources = registered_sources() if sources is None else sources
    family_members = db.execute(
        select(func.count(MemberRecord.id)).where(MemberRecord.owner_account_id == account.id)
    ).scalar_one()
    siblings = len(_sibling_ids(db, account, live_only=True)) if account.is_primary else 0
    return DependencySummary(
        family_members=family_members,
        family_user_accounts=siblings,
        is_primary_account=bool(account.is_primary),
        external={source.name: source.count(db, account.id) for source in sources},
    )


def _family_primary_id(db: Session, account: Account) -> int | None:
    return db.execute(
        select(Account.id).where(
            Account.family_id == account.family_id,
            Account.id != account.id,
            Account.is_primary.is_(True),
            Account.deleted_at.is_(None),
        )
    ).scalars().first()


def _detach_references(db: Session, account_ids: Sequence[int], member_ids: Sequence[int]) -> None:
    if member_ids:
        db.execute(
            update(MemberRequest)
            .where(MemberRequest.member_record_id.in_(member_ids))
            .values(member_record_id=None)
            .execution_options(synchronize_session=False)
        )
        db.execute(
            update(Account)
            .where(Account.linked_member_record_id.in_(member_ids))
            .values(linked_member_record_id=None)
            .execution_options(synchronize_session=False)
        )
    if account_ids:
        db.execute(
            update(MemberRecord)
            .where(MemberRecord.linked_account_id.in_(account_ids))
            .values(linked_account_id=None)
            .execution_options(synchronize_session=False)
        )
        db.execute(
            update(Role)
            .where(Role.created_by_id.in_(account_ids))
            .values(created_by_id=None)
            .execution_options(synchronize_session=False)
        )
        db.execute(
            update(Account)
            .where(Account.id.in_(account_ids))
            .values(linked_member_record_id=None)
            .execution_options(synchronize_session=False)
        )


def hard_delete_account(
    db: Session,
    account_id: int,
    *,
    cascade: bool,
    actor_id: int | None,
    reason: str | None = None,
    sources: Sequence[DependentSource] | None = None,
) -> HardDeleteOutcome:
    """
    Permanently delete an account once its dependents are resolved.

    Without `cascade`, any blocking dependency leaves everything untouched and
    the outcome carries the counts. A non-primary account blocks only on
    external dependents; the records it owns pass to the family's primary.
    With `cascade`, owned records, (for a primary) the family's non-primary
    accounts and external dependents are removed along with the account.

    Deletes explicitly in dependency order; the caller commits.
    """
    sources = registered_sources() if sources is None else sources
    account = db.get(Account, account_id)
    if account is None:
        raise NotFoundError("user not found", account_id=account_id)
    db.flush()
    name = account.full_name

    summary = summarize_dependencies(db, account, sources)
    heir_id = None
    if not cascade:
        if not account.is_primary and summary.family_members:
            heir_id = _family_primary_id(db, account)
            if heir_id is None:
                return HardDeleteOutcome(deleted=False, dependencies=summary)
        if summary.blocking:
            return HardDeleteOutcome(deleted=False, dependencies=summary)

    doomed_accounts = [account.id]
    if cascade and account.is_primary:
        doomed_accounts += _sibling_ids(db, account, live_only=False)

    doomed_members: list[int] = []
    if heir_id is not None:
        db.execute(
            update(MemberRecord)
            .where(MemberRecord.owner_account_id == account.id)
            .values(owner_account_id=heir_id)
            .execution_options(synchronize_session=False)
        )
    else:
        doomed_members = _owned_record_ids(db, doomed_accounts)

    if cascade:
        for doomed_id in doomed_accounts:
            for source in sources:
                source.release(db, doomed_id)

    _detach_references(db, doomed_accounts, doomed_members)
    db.execute(delete(MemberRequest).where(MemberRequest.requested_by_id.in_(doomed_accounts)))
    if doomed_members:
        db.execute(delete(MemberRecord).where(MemberRecord.id.in_(doomed_members)))
    db.execute(delete(Account).where(Account.id.in_(doomed_accounts)))
    db.expire_all()

    audit.record_activity(
        db,
        performed_by=actor_id,
        action=audit.ACCOUNT_HARD_DELETED,
        target_account_id=account_id,
        details={
            "deletion_reason": reason or "",
            "cascade": cascade,
            "dependencies": summary.as_dict(),
            "deleted_account_ids": doomed_accounts,
            "deleted_member_ids": doomed_members,
        },
        description=f"User {name} permanently deleted",
    )
    logger.info(
        "account %s hard deleted (cascade=%s, %s account(s), %s record(s))",
        account_id,
        cascade,
        len(doomed_accounts),
        len(doomed_members),
    )
    return HardDeleteOutcome(
        deleted=True,
        dependencies=summary,
        deleted_account_ids=doomed_accounts,
        deleted_member_ids=doomed_members,
    )

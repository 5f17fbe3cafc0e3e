from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.models.entities import Account, ApprovalStatusEnum, MemberRecord

# Statuses that occupy a slot toward the approval threshold.
COUNTED_STATUSES = (ApprovalStatusEnum.approved, ApprovalStatusEnum.pending)


def require_member(db: Session, member_id: int) -> MemberRecord:
    record = db.get(MemberRecord, member_id)
    if record is None or record.deleted_at is not None:
        raise NotFoundError("family member not found", member_id=member_id)
    return record


def list_owner_members(db: Session, account_id: int) -> list[MemberRecord]:
    """The owner's active member list: everything it owns that is neither rejected nor deleted."""
    return list(
        db.execute(
            select(MemberRecord)
            .where(
                MemberRecord.owner_account_id == account_id,
                MemberRecord.deleted_at.is_(None),
                MemberRecord.approval_status != ApprovalStatusEnum.rejected,
            )
            .order_by(MemberRecord.id.asc())
        )
        .scalars()
        .all()
    )


def list_family_members(db: Session, family_id: int) -> list[MemberRecord]:
    return list(
        db.execute(
            select(MemberRecord)
            .where(
                MemberRecord.family_id == family_id,
                MemberRecord.deleted_at.is_(None),
                MemberRecord.approval_status == ApprovalStatusEnum.approved,
            )
            .order_by(MemberRecord.id.asc())
        )
        .scalars()
        .all()
    )


def list_owned_record_ids(db: Session, account_id: int) -> list[int]:
    return list(
        db.execute(
            select(MemberRecord.id)
            .where(MemberRecord.owner_account_id == account_id, MemberRecord.deleted_at.is_(None))
            .order_by(MemberRecord.id.asc())
        ).scalars().all()
    )


def count_counted_members(db: Session, family_id: int) -> int:
    return db.execute(
        select(func.count(MemberRecord.id)).where(
            MemberRecord.family_id == family_id,
            MemberRecord.deleted_at.is_(None),
            MemberRecord.approval_status.in_(COUNTED_STATUSES),
        )
    ).scalar_one()


def link(account: Account, record: MemberRecord) -> None:
    """Set both halves of the same-person cross-reference."""
    if account.linked_member_record_id not in (None, record.id):
        raise ConflictError(
            "this user is already linked to another family member",
            account_id=account.id,
            linked_member_id=account.linked_member_record_id,
        )
    if record.linked_account_id not in (None, account.id):
        raise ConflictError("this family member is already linked to another user", member_id=record.id)
    account.linked_member_record_id = record.id
    record.linked_account_id = account.id


def unlink(db: Session, record: MemberRecord) -> None:
    if record.linked_account_id is None:
        return
    account = db.get(Account, record.linked_account_id)
    if account is not None and account.linked_member_record_id == record.id:
        account.linked_member_record_id = None
    record.linked_account_id = None

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountStatusEnum(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    deceased = "deceased"


class ApprovalStatusEnum(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class DeleteTypeEnum(str, Enum):
    soft = "soft"
    hard = "hard"


def _values(enum_cls: type[Enum]) -> list[str]:
    return [item.value for item in enum_cls]


class Family(Base):
    __tablename__ = "families"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    family_number: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    key: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, default="")
    permissions: Mapped[dict[str, bool]] = mapped_column(JSON, nullable=False, default=dict)
    is_system_role: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id", use_alter=True, ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    mobile: Mapped[str | None] = mapped_column(String(20))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id"), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=True)
    role_id: Mapped[int | None] = mapped_column(ForeignKey("roles.id"))
    status: Mapped[AccountStatusEnum] = mapped_column(
        SqlEnum(AccountStatusEnum, name="accountstatusenum", values_callable=_values),
        default=AccountStatusEnum.pending,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    linked_member_record_id: Mapped[int | None] = mapped_column(
        ForeignKey("member_records.id", use_alter=True, ondelete="SET NULL")
    )

    # Stored by value; every change assigns a new list.
    transfer_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    transferred_from_id: Mapped[int | None] = mapped_column(Integer)
    transferred_at: Mapped[datetime | None] = mapped_column(DateTime)
    transferred_by_id: Mapped[int | None] = mapped_column(Integer)
    transfer_reason: Mapped[str | None] = mapped_column(String(500))

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime)
    deleted_by_id: Mapped[int | None] = mapped_column(Integer)
    delete_type: Mapped[DeleteTypeEnum | None] = mapped_column(
        SqlEnum(DeleteTypeEnum, name="deletetypeenum", values_callable=_values)
    )
    deletion_reason: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class MemberRecord(Base):
    __tablename__ = "member_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id"), nullable=False)
    relationship_to_owner: Mapped[str] = mapped_column(String(50), nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(50))
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date)
    email: Mapped[str | None] = mapped_column(String(255))
    mobile: Mapped[str | None] = mapped_column(String(20))
    approval_status: Mapped[ApprovalStatusEnum] = mapped_column(
        SqlEnum(ApprovalStatusEnum, name="approvalstatusenum", values_callable=_values),
        default=ApprovalStatusEnum.approved,
    )
    needs_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    linked_account_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime)
    deleted_by_id: Mapped[int | None] = mapped_column(Integer)
    delete_type: Mapped[DeleteTypeEnum | None] = mapped_column(
        SqlEnum(DeleteTypeEnum, name="deletetypeenum", values_callable=_values)
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class MemberRequest(Base):
    """A family member proposed by any account, added only once an administrator approves it."""

    __tablename__ = "member_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    requested_by_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id"), nullable=False)
    relationship_to_owner: Mapped[str] = mapped_column(String(50), nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(50))
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date)
    email: Mapped[str | None] = mapped_column(String(255))
    mobile: Mapped[str | None] = mapped_column(String(20))
    create_login_account: Mapped[bool] = mapped_column(Boolean, default=False)
    # Hash of the login password chosen at request time; only set when a login is requested.
    login_password_hash: Mapped[str | None] = mapped_column(String(255))
    request_reason: Mapped[str | None] = mapped_column(String(500))
    status: Mapped[ApprovalStatusEnum] = mapped_column(
        SqlEnum(ApprovalStatusEnum, name="approvalstatusenum", values_callable=_values),
        default=ApprovalStatusEnum.pending,
    )
    reviewed_by_id: Mapped[int | None] = mapped_column(Integer)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    rejection_reason: Mapped[str | None] = mapped_column(String(500))
    member_record_id: Mapped[int | None] = mapped_column(ForeignKey("member_records.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Plain integers: entries must outlive hard-deleted accounts and records.
    actor_account_id: Mapped[int | None] = mapped_column(Integer)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    target_account_id: Mapped[int | None] = mapped_column(Integer)
    target_member_id: Mapped[int | None] = mapped_column(Integer)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


Index("ix_accounts_family_primary", Account.family_id, Account.is_primary)
Index("ix_accounts_email", Account.email)
Index("ix_accounts_mobile", Account.mobile)
Index("ix_accounts_role", Account.role_id)
Index("ix_member_records_family_status", MemberRecord.family_id, MemberRecord.approval_status)
Index("ix_member_records_owner", MemberRecord.owner_account_id)
Index("ix_audit_target_account", AuditLog.target_account_id, AuditLog.action)
Index("ix_audit_action_created", AuditLog.action, AuditLog.created_at)
Index("ix_member_requests_requester_status", MemberRequest.requested_by_id, MemberRequest.status)
Index("ix_member_requests_status_created", MemberRequest.status, MemberRequest.created_at)

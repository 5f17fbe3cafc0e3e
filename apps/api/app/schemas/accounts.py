from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field


class AccountRegister(BaseModel):
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: EmailStr | None = None
    mobile: str | None = Field(default=None, max_length=20)
    password: str = Field(min_length=8, max_length=128)


class AccountResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    # Plain str: provisioned accounts may carry a placeholder address.
    email: str | None
    mobile: str | None
    family_id: int
    is_primary: bool
    role_id: int | None
    status: str
    is_active: bool
    linked_member_record_id: int | None
    transfer_history: list[dict[str, Any]]
    transferred_from_id: int | None
    transferred_at: datetime | None
    transfer_reason: str | None
    deleted_at: datetime | None
    delete_type: str | None
    created_at: datetime

    @classmethod
    def from_entity(cls, account) -> "AccountResponse":
        return cls(
            id=account.id,
            first_name=account.first_name,
            last_name=account.last_name,
            email=account.email,
            mobile=account.mobile,
            family_id=account.family_id,
            is_primary=account.is_primary,
            role_id=account.role_id,
            status=account.status.value,
            is_active=account.is_active,
            linked_member_record_id=account.linked_member_record_id,
            transfer_history=list(account.transfer_history or []),
            transferred_from_id=account.transferred_from_id,
            transferred_at=account.transferred_at,
            transfer_reason=account.transfer_reason,
            deleted_at=account.deleted_at,
            delete_type=account.delete_type.value if account.delete_type else None,
            created_at=account.created_at,
        )


class MeResponse(BaseModel):
    authenticated: bool
    email: str | None
    account: AccountResponse | None = None
    family_number: str | None = None
    permissions: list[str] = Field(default_factory=list)


class StatusChange(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class HardDeleteRequest(BaseModel):
    cascade: bool = False
    reason: str | None = Field(default=None, max_length=500)


class HardDeleteResponse(BaseModel):
    deleted: bool
    dependencies: dict[str, Any]
    deleted_account_ids: list[int]
    deleted_member_ids: list[int]


class TransferRequest(BaseModel):
    new_primary_id: int
    reason: str | None = Field(default=None, max_length=500)
    member_record_ids: list[int] | None = None


class TransferResponse(BaseModel):
    migrated_count: int
    record: dict[str, Any]
    previous_primary: AccountResponse
    new_primary: AccountResponse
    previous_marked_deceased: bool


class BulkStatusChange(BaseModel):
    account_ids: list[int] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=500)


class BulkStatusResponse(BaseModel):
    updated_count: int
    accounts: list[AccountResponse]


class TransferCandidate(BaseModel):
    id: int
    full_name: str
    email: str | None
    mobile: str | None


class TransferRecordSummary(BaseModel):
    id: int
    full_name: str
    relationship_to_owner: str
    approval_status: str
    linked_account_id: int | None


class TransferCandidatesResponse(BaseModel):
    primary_account_id: int
    eligible_for_primary: list[TransferCandidate]
    member_records: list[TransferRecordSummary]
    total_eligible_for_primary: int
    total_member_records: int

    @classmethod
    def from_entity(cls, candidates) -> "TransferCandidatesResponse":
        eligible = [
            TransferCandidate(
                id=account.id, full_name=account.full_name, email=account.email, mobile=account.mobile
            )
            for account in candidates.eligible
        ]
        records = [
            TransferRecordSummary(
                id=record.id,
                full_name=record.full_name,
                relationship_to_owner=record.relationship_to_owner,
                approval_status=record.approval_status.value,
                linked_account_id=record.linked_account_id,
            )
            for record in candidates.records
        ]
        return cls(
            primary_account_id=candidates.primary.id,
            eligible_for_primary=eligible,
            member_records=records,
            total_eligible_for_primary=len(eligible),
            total_member_records=len(records),
        )

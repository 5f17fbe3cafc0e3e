from datetime import date, datetime

from pydantic import BaseModel, EmailStr, Field


class MemberCreate(BaseModel):
    relationship_to_owner: str = Field(min_length=1, max_length=50)
    first_name: str = Field(min_length=1, max_length=50)
    middle_name: str | None = Field(default=None, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    date_of_birth: date | None = None
    email: EmailStr | None = None
    mobile: str | None = Field(default=None, max_length=20)
    create_login_account: bool = False
    password: str | None = Field(default=None, min_length=8, max_length=128)


class MemberUpdate(BaseModel):
    relationship_to_owner: str | None = Field(default=None, min_length=1, max_length=50)
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    middle_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)
    date_of_birth: date | None = None
    email: EmailStr | None = None
    mobile: str | None = Field(default=None, max_length=20)


class AdminMemberUpdate(MemberUpdate):
    approval_status: str | None = Field(default=None, pattern="^(pending|approved|rejected)$")


class MemberResponse(BaseModel):
    id: int
    owner_account_id: int
    family_id: int
    relationship_to_owner: str
    first_name: str
    middle_name: str | None
    last_name: str
    date_of_birth: date | None
    email: str | None
    mobile: str | None
    approval_status: str
    needs_approval: bool
    linked_account_id: int | None
    created_at: datetime

    @classmethod
    def from_entity(cls, record) -> "MemberResponse":
        return cls(
            id=record.id,
            owner_account_id=record.owner_account_id,
            family_id=record.family_id,
            relationship_to_owner=record.relationship_to_owner,
            first_name=record.first_name,
            middle_name=record.middle_name,
            last_name=record.last_name,
            date_of_birth=record.date_of_birth,
            email=record.email,
            mobile=record.mobile,
            approval_status=record.approval_status.value,
            needs_approval=record.needs_approval,
            linked_account_id=record.linked_account_id,
            created_at=record.created_at,
        )


class MemberListResponse(BaseModel):
    items: list[MemberResponse]


class AddMemberResponse(BaseModel):
    member: MemberResponse
    needs_approval: bool
    message: str
    login_account_id: int | None = None
    login_account_created: bool = False


class MemberRejection(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class MemberRequestCreate(MemberCreate):
    request_reason: str | None = Field(default=None, max_length=500)


class MemberRequestResponse(BaseModel):
    id: int
    requested_by_id: int
    family_id: int
    relationship_to_owner: str
    first_name: str
    middle_name: str | None
    last_name: str
    date_of_birth: date | None
    email: str | None
    mobile: str | None
    create_login_account: bool
    request_reason: str | None
    status: str
    reviewed_by_id: int | None
    reviewed_at: datetime | None
    rejection_reason: str | None
    member_record_id: int | None
    created_at: datetime

    @classmethod
    def from_entity(cls, request) -> "MemberRequestResponse":
        return cls(
            id=request.id,
            requested_by_id=request.requested_by_id,
            family_id=request.family_id,
            relationship_to_owner=request.relationship_to_owner,
            first_name=request.first_name,
            middle_name=request.middle_name,
            last_name=request.last_name,
            date_of_birth=request.date_of_birth,
            email=request.email,
            mobile=request.mobile,
            create_login_account=request.create_login_account,
            request_reason=request.request_reason,
            status=request.status.value,
            reviewed_by_id=request.reviewed_by_id,
            reviewed_at=request.reviewed_at,
            rejection_reason=request.rejection_reason,
            member_record_id=request.member_record_id,
            created_at=request.created_at,
        )


class MemberRequestListResponse(BaseModel):
    items: list[MemberRequestResponse]


class RequestApprovalResponse(BaseModel):
    request: MemberRequestResponse
    member: MemberResponse
    needs_approval: bool
    login_account_id: int | None = None

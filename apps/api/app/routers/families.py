from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import require_actor
from app.core.db import get_db
from app.core.errors import ForbiddenError
from app.models.entities import Account
from app.schemas.families import (
    AddMemberResponse,
    AdminMemberUpdate,
    MemberCreate,
    MemberListResponse,
    MemberRejection,
    MemberResponse,
    MemberUpdate,
)
from app.services import access, family, members, permissions

router = APIRouter(prefix="/v1/family-members", tags=["family-members"])


def _list(records) -> MemberListResponse:
    return MemberListResponse(items=[MemberResponse.from_entity(item) for item in records])


@router.post("", response_model=AddMemberResponse, status_code=201)
def add_member(
    payload: MemberCreate,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    outcome = family.add_member(
        db,
        actor.id,
        family.MemberDetails(
            relationship_to_owner=payload.relationship_to_owner,
            first_name=payload.first_name,
            middle_name=payload.middle_name,
            last_name=payload.last_name,
            date_of_birth=payload.date_of_birth,
            email=str(payload.email) if payload.email else None,
            mobile=payload.mobile,
            create_login_account=payload.create_login_account,
            password=payload.password,
        ),
    )
    message = (
        "Family member added. Waiting for admin approval."
        if outcome.needs_approval
        else "Family member added successfully."
    )
    return AddMemberResponse(
        member=MemberResponse.from_entity(outcome.record),
        needs_approval=outcome.needs_approval,
        message=message,
        login_account_id=outcome.login_account.id if outcome.login_account else None,
        login_account_created=outcome.login_account_created,
    )


@router.get("/mine", response_model=MemberListResponse)
def list_my_members(
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    return _list(members.list_owner_members(db, actor.id))


@router.get("/pending", response_model=MemberListResponse)
def list_pending_members(
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    return _list(family.list_pending_members(db, actor.id))


@router.get("/family/{family_id}", response_model=MemberListResponse)
def list_family_members(
    family_id: int,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    if actor.family_id != family_id:
        access.authorize(db, actor.id, permissions.CAN_VIEW_FAMILY_MEMBERS)
    return _list(members.list_family_members(db, family_id))


@router.patch("/admin/{member_id}", response_model=MemberResponse)
def admin_update_member(
    member_id: int,
    payload: AdminMemberUpdate,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    record = family.admin_update_member(db, actor.id, member_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(record)
    return MemberResponse.from_entity(record)


@router.delete("/admin/{member_id}", status_code=204)
def admin_delete_member(
    member_id: int,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    family.admin_delete_member(db, actor.id, member_id)
    db.commit()


@router.post("/{member_id}/approve", response_model=MemberResponse)
def approve_member(
    member_id: int,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    record = family.approve_member(db, actor.id, member_id)
    db.commit()
    db.refresh(record)
    return MemberResponse.from_entity(record)


@router.post("/{member_id}/reject", response_model=MemberResponse)
def reject_member(
    member_id: int,
    payload: MemberRejection | None = None,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    record = family.reject_member(db, actor.id, member_id, reason=payload.reason if payload else None)
    db.commit()
    db.refresh(record)
    return MemberResponse.from_entity(record)


@router.get("/{member_id}", response_model=MemberResponse)
def get_member(
    member_id: int,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    record = members.require_member(db, member_id)
    if record.family_id != actor.family_id and not access.can(db, actor, permissions.CAN_VIEW_FAMILY_MEMBERS):
        raise ForbiddenError("not a member of this family")
    return MemberResponse.from_entity(record)


@router.patch("/{member_id}", response_model=MemberResponse)
def update_member(
    member_id: int,
    payload: MemberUpdate,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    record = family.update_member(db, actor.id, member_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(record)
    return MemberResponse.from_entity(record)


@router.delete("/{member_id}", status_code=204)
def delete_member(
    member_id: int,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    family.delete_member(db, actor.id, member_id)
    db.commit()

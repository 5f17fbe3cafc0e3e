from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import require_actor
from app.core.db import get_db
from app.models.entities import Account, ApprovalStatusEnum
from app.schemas.families import (
    MemberRejection,
    MemberRequestCreate,
    MemberRequestListResponse,
    MemberRequestResponse,
    MemberResponse,
    RequestApprovalResponse,
)
from app.services import family, member_requests

router = APIRouter(prefix="/v1/family-member-requests", tags=["family-member-requests"])


def _list(requests) -> MemberRequestListResponse:
    return MemberRequestListResponse(items=[MemberRequestResponse.from_entity(item) for item in requests])


@router.post("", response_model=MemberRequestResponse, status_code=201)
def create_request(
    payload: MemberRequestCreate,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    request = member_requests.create_request(
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
        reason=payload.request_reason,
    )
    db.commit()
    db.refresh(request)
    return MemberRequestResponse.from_entity(request)


@router.get("", response_model=MemberRequestListResponse)
def list_my_requests(
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    return _list(member_requests.list_my_requests(db, actor.id))


@router.get("/admin", response_model=MemberRequestListResponse)
def list_requests(
    status: ApprovalStatusEnum | None = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    return _list(member_requests.list_requests(db, actor.id, status=status, limit=limit, offset=offset))


@router.post("/admin/{request_id}/approve", response_model=RequestApprovalResponse)
def approve_request(
    request_id: int,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    approval = member_requests.approve_request(db, actor.id, request_id)
    outcome = approval.outcome
    return RequestApprovalResponse(
        request=MemberRequestResponse.from_entity(approval.request),
        member=MemberResponse.from_entity(outcome.record),
        needs_approval=outcome.needs_approval,
        login_account_id=outcome.login_account.id if outcome.login_account else None,
    )


@router.post("/admin/{request_id}/reject", response_model=MemberRequestResponse)
def reject_request(
    request_id: int,
    payload: MemberRejection | None = None,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_actor),
):
    request = member_requests.reject_request(
        db, actor.id, request_id, reason=payload.reason if payload else None
    )
    db.commit()
    db.refresh(request)
    return MemberRequestResponse.from_entity(request)

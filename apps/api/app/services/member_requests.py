"""
Family member requests.

Any account may propose a family member. Nothing is added until a reviewer
approves the request; approval then goes through the same locked
count-then-insert as a direct add, with the family's primary account as owner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db import run_in_transaction
from app.core.errors import InvalidStateError, NotFoundError
from app.models.entities import Account, ApprovalStatusEnum, MemberRequest
from app.services import access, audit, family, permissions

logger = logging.getLogger(__name__)

_MEMBER_FIELDS = (
    "relationship_to_owner",
    "first_name",
    "middle_name",
    "last_name",
    "date_of_birth",
    "email",
    "mobile",
)


@dataclass
class RequestApproval:
    request: MemberRequest
    outcome: family.AddMemberOutcome


def create_request(
    db: Session, actor_id: int, details: family.MemberDetails, *, reason: str | None = None
) -> MemberRequest:
    values = family.clean_details(details)
    requester = db.get(Account, actor_id)
    if requester is None or requester.is_deleted:
        raise NotFoundError("user not found", account_id=actor_id)

    request = MemberRequest(
        requested_by_id=requester.id,
        family_id=requester.family_id,
        create_login_account=details.create_login_account,
        login_password_hash=(
            family.login_password_hash(details.password, values["email"], values["mobile"])
            if details.create_login_account
            else None
        ),
        request_reason=(reason or "").strip() or None,
        status=ApprovalStatusEnum.pending,
        **values,
    )
    db.add(request)
    db.flush()

    audit.record_activity(
        db,
        performed_by=requester.id,
        action=audit.MEMBER_REQUEST_CREATED,
        target_account_id=requester.id,
        details={"request_id": request.id, "family_member_name": request.full_name},
        description=f"Request to add family member: {request.full_name}",
    )
    logger.info("member request %s created by %s", request.id, requester.id)
    return request


def require_request(db: Session, request_id: int) -> MemberRequest:
    request = db.get(MemberRequest, request_id)
    if request is None:
        raise NotFoundError("family member request not found", request_id=request_id)
    return request


def list_requests(
    db: Session,
    actor_id: int,
    *,
    status: ApprovalStatusEnum | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[MemberRequest]:
    access.authorize(db, actor_id, permissions.CAN_VIEW_PENDING_FAMILY_MEMBERS)
    query = select(MemberRequest)
    if status is not None:
        query = query.where(MemberRequest.status == status)
    query = query.order_by(MemberRequest.created_at.desc(), MemberRequest.id.desc()).offset(offset).limit(limit)
    return list(db.execute(query).scalars().all())


def list_my_requests(db: Session, account_id: int) -> list[MemberRequest]:
    return list(
        db.execute(
            select(MemberRequest)
            .where(MemberRequest.requested_by_id == account_id)
            .order_by(MemberRequest.created_at.desc(), MemberRequest.id.desc())
        )
        .scalars()
        .all()
    )


def _require_pending(request: MemberRequest) -> None:
    if request.status != ApprovalStatusEnum.pending:
        raise InvalidStateError(
            f"request is already {request.status.value}", request_id=request.id, status=request.status.value
        )


def approve_request(db: Session, actor_id: int, request_id: int) -> RequestApproval:
    def operation() -> RequestApproval:
        actor = access.authorize(db, actor_id, permissions.CAN_APPROVE_FAMILY_MEMBERS)
        request = db.get(MemberRequest, request_id, populate_existing=True, with_for_update=True)
        if request is None:
            raise NotFoundError("family member request not found", request_id=request_id)
        _require_pending(request)

        household = family.lock_family(db, request.family_id)
        primary = db.execute(
            select(Account)
            .where(
                Account.family_id == household.id,
                Account.is_primary.is_(True),
                Account.deleted_at.is_(None),
            )
            .order_by(Account.id.asc())
            .execution_options(populate_existing=True)
        ).scalars().first()
        if primary is None:
            raise NotFoundError("primary account holder not found for this family", family_id=household.id)

        login_hash = None
        if request.create_login_account:
            login_hash = request.login_password_hash or family.login_password_hash(
                None, request.email, request.mobile
            )
        outcome = family.insert_member(
            db,
            owner=primary,
            family=household,
            values={name: getattr(request, name) for name in _MEMBER_FIELDS},
            login_hash=login_hash,
        )

        request.status = ApprovalStatusEnum.approved
        request.reviewed_by_id = actor.id
        request.reviewed_at = datetime.now(timezone.utc)
        request.member_record_id = outcome.record.id
        db.flush()

        audit.record_activity(
            db,
            performed_by=actor.id,
            action=audit.MEMBER_REQUEST_APPROVED,
            target_account_id=request.requested_by_id,
            target_member_id=outcome.record.id,
            details={
                "request_id": request.id,
                "family_member_name": request.full_name,
                "approval_status": outcome.record.approval_status.value,
            },
            description=f"Approved family member request: {request.full_name}",
        )
        return RequestApproval(request=request, outcome=outcome)

    approval = run_in_transaction(db, operation)
    logger.info(
        "member request %s approved as member %s (%s)",
        approval.request.id,
        approval.outcome.record.id,
        approval.outcome.record.approval_status.value,
    )
    return approval


def reject_request(db: Session, actor_id: int, request_id: int, *, reason: str | None = None) -> MemberRequest:
    actor = access.authorize(db, actor_id, permissions.CAN_REJECT_FAMILY_MEMBERS)
    request = require_request(db, request_id)
    _require_pending(request)

    request.status = ApprovalStatusEnum.rejected
    request.reviewed_by_id = actor.id
    request.reviewed_at = datetime.now(timezone.utc)
    request.rejection_reason = reason or ""
    db.flush()

    audit.record_activity(
        db,
        performed_by=actor.id,
        action=audit.MEMBER_REQUEST_REJECTED,
        target_account_id=request.requested_by_id,
        details={"request_id": request.id, "rejection_reason": reason or ""},
        description=f"Rejected family member request: {request.full_name}",
    )
    logger.info("member request %s rejected by %s", request.id, actor.id)
    return request

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.entities import AuditLog

logger = logging.getLogger(__name__)

# Action types written by the core.
ACCOUNT_REGISTERED = "account_registered"
ACCOUNT_APPROVED = "account_approved"
ACCOUNT_REJECTED = "account_rejected"
ACCOUNT_SOFT_DELETED = "account_soft_deleted"
ACCOUNT_HARD_DELETED = "account_hard_deleted"
ACCOUNT_RESTORED = "account_restored"
ROLE_CHANGED = "role_changed"
ROLE_CREATED = "role_created"
ROLE_UPDATED = "role_updated"
ROLE_DISABLED = "role_disabled"
MEMBER_ADDED = "family_member_added"
MEMBER_APPROVED = "family_member_approved"
MEMBER_REJECTED = "family_member_rejected"
MEMBER_UPDATED = "family_member_updated"
MEMBER_DELETED = "family_member_deleted"
PRIMARY_TRANSFERRED = "primary_account_transferred"
MEMBER_REQUEST_CREATED = "family_member_request_created"
MEMBER_REQUEST_APPROVED = "family_member_request_approved"
MEMBER_REQUEST_REJECTED = "family_member_request_rejected"


def record_activity(
    db: Session,
    *,
    performed_by: int | None,
    action: str,
    description: str,
    target_account_id: int | None = None,
    target_member_id: int | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Append an audit entry inside a savepoint of the caller's transaction.

    Fire-and-forget: a failure here is logged and the surrounding operation
    carries on.
    """
    try:
        with db.begin_nested():
            db.add(
                AuditLog(
                    actor_account_id=performed_by,
                    action=action,
                    target_account_id=target_account_id,
                    target_member_id=target_member_id,
                    details=details or {},
                    description=description,
                )
            )
    except Exception:
        logger.exception("failed to record %s activity", action)


def was_hard_deleted(db: Session, account_id: int) -> bool:
    return (
        db.execute(
            select(AuditLog.id)
            .where(AuditLog.action == ACCOUNT_HARD_DELETED, AuditLog.target_account_id == account_id)
            .limit(1)
        ).first()
        is not None
    )


def list_activity(
    db: Session,
    *,
    action: str | None = None,
    target_account_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AuditLog]:
    query = select(AuditLog)
    if action is not None:
        query = query.where(AuditLog.action == action)
    if target_account_id is not None:
        query = query.where(AuditLog.target_account_id == target_account_id)
    return list(
        db.execute(query.order_by(AuditLog.id.desc()).offset(offset).limit(limit)).scalars().all()
    )

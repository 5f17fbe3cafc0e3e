from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.core.errors import ConflictError
from app.models.entities import Account, AccountStatusEnum
from app.schemas.accounts import (
    AccountResponse,
    BulkStatusChange,
    BulkStatusResponse,
    HardDeleteRequest,
    HardDeleteResponse,
    StatusChange,
    TransferCandidatesResponse,
    TransferRequest,
    TransferResponse,
)
from app.schemas.roles import RoleAssignment
from app.services import accounts, permissions, roles
from app.services.access import require_permission
from app.services.purge import hard_delete_account
from app.services.transfer import transfer_candidates, transfer_primary

router = APIRouter(prefix="/v1/accounts", tags=["accounts"])


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: int,
    db: Session = Depends(get_db),
    _: Account = Depends(require_permission(permissions.CAN_VIEW_USERS)),
):
    return AccountResponse.from_entity(accounts.require_account(db, account_id, include_deleted=True))


@router.get("/family/{family_id}", response_model=list[AccountResponse])
def list_family_accounts(
    family_id: int,
    db: Session = Depends(get_db),
    _: Account = Depends(require_permission(permissions.CAN_VIEW_USERS)),
):
    return [AccountResponse.from_entity(item) for item in accounts.list_family_accounts(db, family_id)]


@router.post("/bulk-approve", response_model=BulkStatusResponse)
def bulk_approve_accounts(
    payload: BulkStatusChange,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_permission(permissions.CAN_BULK_APPROVE_USERS)),
):
    changed = accounts.bulk_set_status(db, payload.account_ids, AccountStatusEnum.approved, actor_id=actor.id)
    db.commit()
    return BulkStatusResponse(
        updated_count=len(changed), accounts=[AccountResponse.from_entity(item) for item in changed]
    )


@router.post("/bulk-reject", response_model=BulkStatusResponse)
def bulk_reject_accounts(
    payload: BulkStatusChange,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_permission(permissions.CAN_BULK_REJECT_USERS)),
):
    changed = accounts.bulk_set_status(
        db, payload.account_ids, AccountStatusEnum.rejected, actor_id=actor.id, reason=payload.reason
    )
    db.commit()
    return BulkStatusResponse(
        updated_count=len(changed), accounts=[AccountResponse.from_entity(item) for item in changed]
    )


@router.post("/{account_id}/approve", response_model=AccountResponse)
def approve_account(
    account_id: int,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_permission(permissions.CAN_APPROVE_USERS)),
):
    account = accounts.approve_account(db, account_id, actor_id=actor.id)
    db.commit()
    db.refresh(account)
    return AccountResponse.from_entity(account)


@router.post("/{account_id}/reject", response_model=AccountResponse)
def reject_account(
    account_id: int,
    payload: StatusChange | None = None,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_permission(permissions.CAN_REJECT_USERS)),
):
    account = accounts.reject_account(db, account_id, actor_id=actor.id, reason=payload.reason if payload else None)
    db.commit()
    db.refresh(account)
    return AccountResponse.from_entity(account)


@router.put("/{account_id}/role", response_model=AccountResponse)
def assign_role(
    account_id: int,
    payload: RoleAssignment,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_permission(permissions.CAN_CHANGE_ROLES)),
):
    account = roles.assign_role(db, account_id, payload.role_id, assigned_by=actor.id)
    db.commit()
    db.refresh(account)
    return AccountResponse.from_entity(account)


@router.post("/{account_id}/soft-delete", response_model=AccountResponse)
def soft_delete_account(
    account_id: int,
    payload: StatusChange | None = None,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_permission(permissions.CAN_DELETE_USERS)),
):
    account = accounts.soft_delete_account(
        db, account_id, actor_id=actor.id, reason=payload.reason if payload else None
    )
    db.commit()
    db.refresh(account)
    return AccountResponse.from_entity(account)


@router.post("/{account_id}/restore", response_model=AccountResponse)
def restore_account(
    account_id: int,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_permission(permissions.CAN_DELETE_USERS)),
):
    account = accounts.restore_account(db, account_id, actor_id=actor.id)
    db.commit()
    db.refresh(account)
    return AccountResponse.from_entity(account)


@router.post("/{account_id}/hard-delete", response_model=HardDeleteResponse)
def hard_delete(
    account_id: int,
    payload: HardDeleteRequest,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_permission(permissions.CAN_DELETE_USERS)),
):
    outcome = hard_delete_account(
        db, account_id, cascade=payload.cascade, actor_id=actor.id, reason=payload.reason
    )
    if not outcome.deleted:
        raise ConflictError(
            "user has dependent data; transfer the primary account or delete dependent data",
            dependencies=outcome.dependencies.as_dict(),
        )
    db.commit()
    return HardDeleteResponse(
        deleted=True,
        dependencies=outcome.dependencies.as_dict(),
        deleted_account_ids=outcome.deleted_account_ids,
        deleted_member_ids=outcome.deleted_member_ids,
    )


@router.post("/{account_id}/transfer-primary", response_model=TransferResponse)
def transfer_primary_account(
    account_id: int,
    payload: TransferRequest,
    db: Session = Depends(get_db),
    actor: Account = Depends(require_permission(permissions.CAN_MANAGE_USERS)),
):
    outcome = transfer_primary(
        db,
        account_id,
        payload.new_primary_id,
        reason=payload.reason,
        transferred_by=actor.id,
        member_record_ids=payload.member_record_ids,
    )
    return TransferResponse(
        migrated_count=outcome.migrated_count,
        record=outcome.record.as_dict(),
        previous_primary=AccountResponse.from_entity(outcome.previous_primary),
        new_primary=AccountResponse.from_entity(outcome.new_primary),
        previous_marked_deceased=outcome.previous_marked_deceased,
    )


@router.get("/{account_id}/family-for-transfer", response_model=TransferCandidatesResponse)
def family_for_transfer(
    account_id: int,
    db: Session = Depends(get_db),
    _: Account = Depends(require_permission(permissions.CAN_MANAGE_USERS)),
):
    return TransferCandidatesResponse.from_entity(transfer_candidates(db, account_id))

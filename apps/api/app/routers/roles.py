from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.models.entities import Account
from app.schemas.roles import RoleCreate, RoleListResponse, RoleResponse, RoleUpdate
from app.services import roles
from app.services.access import require_permission
from app.services.permissions import CAN_MANAGE_ROLES

router = APIRouter(prefix="/v1/roles", tags=["roles"])

can_manage_roles = require_permission(CAN_MANAGE_ROLES)


def _out(role) -> RoleResponse:
    return RoleResponse.model_validate(role, from_attributes=True)


@router.get("", response_model=RoleListResponse)
def list_roles(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    _: Account = Depends(can_manage_roles),
):
    return RoleListResponse(items=[_out(role) for role in roles.list_roles(db, include_inactive=include_inactive)])


@router.post("", response_model=RoleResponse, status_code=201)
def create_role(
    payload: RoleCreate,
    db: Session = Depends(get_db),
    actor: Account = Depends(can_manage_roles),
):
    role = roles.create_role(
        db,
        name=payload.name,
        description=payload.description,
        requested_grants=payload.permissions,
        created_by=actor.id,
    )
    db.commit()
    db.refresh(role)
    return _out(role)


@router.post("/initialize", response_model=RoleListResponse)
def initialize_roles(
    db: Session = Depends(get_db),
    _: Account = Depends(can_manage_roles),
):
    seeded = roles.initialize_system_roles(db)
    db.commit()
    return RoleListResponse(items=[_out(role) for role in seeded.values()])


@router.get("/{role_id}", response_model=RoleResponse)
def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    _: Account = Depends(can_manage_roles),
):
    return _out(roles.require_role(db, role_id))


@router.patch("/{role_id}", response_model=RoleResponse)
def update_role(
    role_id: int,
    payload: RoleUpdate,
    db: Session = Depends(get_db),
    actor: Account = Depends(can_manage_roles),
):
    role = roles.update_role(
        db,
        role_id,
        name=payload.name,
        grants=payload.permissions,
        description=payload.description,
        updated_by=actor.id,
    )
    db.commit()
    db.refresh(role)
    return _out(role)


@router.delete("/{role_id}", response_model=RoleResponse)
def delete_role(
    role_id: int,
    db: Session = Depends(get_db),
    actor: Account = Depends(can_manage_roles),
):
    role = roles.delete_role(db, role_id, deleted_by=actor.id)
    db.commit()
    db.refresh(role)
    return _out(role)

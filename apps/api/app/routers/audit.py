from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.schemas.audit import AuditEntryResponse, AuditListResponse
from app.services import audit
from app.services.access import require_permission
from app.services.permissions import CAN_VIEW_ACTIVITY_LOGS

router = APIRouter(prefix="/v1/audit", tags=["audit"])


@router.get("", response_model=AuditListResponse, dependencies=[Depends(require_permission(CAN_VIEW_ACTIVITY_LOGS))])
def list_audit_events(
    action: str | None = None,
    target_account_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    entries = audit.list_activity(db, action=action, target_account_id=target_account_id, limit=limit, offset=offset)
    return AuditListResponse(items=[AuditEntryResponse.model_validate(item, from_attributes=True) for item in entries])

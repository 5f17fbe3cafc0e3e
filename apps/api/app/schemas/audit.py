from datetime import datetime
from typing import Any

from pydantic import BaseModel


class AuditEntryResponse(BaseModel):
    id: int
    actor_account_id: int | None
    action: str
    target_account_id: int | None
    target_member_id: int | None
    details: dict[str, Any]
    description: str
    created_at: datetime


class AuditListResponse(BaseModel):
    items: list[AuditEntryResponse]

from datetime import datetime

from pydantic import BaseModel, Field


class RoleCreate(BaseModel):
    name: str = Field(min_length=3, max_length=50)
    description: str = Field(default="", max_length=500)
    permissions: dict[str, bool] = Field(default_factory=dict)


class RoleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=50)
    description: str | None = Field(default=None, max_length=500)
    permissions: dict[str, bool] | None = None


class RoleResponse(BaseModel):
    id: int
    name: str
    key: str
    description: str
    permissions: dict[str, bool]
    is_system_role: bool
    is_active: bool
    created_by_id: int | None
    created_at: datetime
    updated_at: datetime


class RoleListResponse(BaseModel):
    items: list[RoleResponse]


class RoleAssignment(BaseModel):
    role_id: int


class CapabilityResponse(BaseModel):
    key: str
    label: str
    category: str
    description: str


class CapabilityCatalogResponse(BaseModel):
    items: list[CapabilityResponse]
    categories: dict[str, list[str]]

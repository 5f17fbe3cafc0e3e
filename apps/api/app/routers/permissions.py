from fastapi import APIRouter, Depends

from app.core.auth import require_actor
from app.schemas.roles import CapabilityCatalogResponse, CapabilityResponse
from app.services import permissions

router = APIRouter(prefix="/v1/permissions", tags=["permissions"])


@router.get("", response_model=CapabilityCatalogResponse, dependencies=[Depends(require_actor)])
def list_permissions():
    return CapabilityCatalogResponse(
        items=[
            CapabilityResponse(key=cap.key, label=cap.label, category=cap.category, description=cap.description)
            for cap in permissions.list_all()
        ],
        categories={category: [cap.key for cap in caps] for category, caps in permissions.by_category().items()},
    )

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html

from app.core.config import settings
from app.core.db import SessionLocal
from app.core.logging import configure_logging
from app.routers import accounts, audit, auth, families, health, member_requests, permissions, roles
from app.services.roles import initialize_system_roles

logger = logging.getLogger(__name__)


def bootstrap_system_roles() -> None:
    db = SessionLocal()
    try:
        initialize_system_roles(db)
        db.commit()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    if settings.bootstrap_roles_on_startup:
        bootstrap_system_roles()
        logger.info("system roles ready")
    yield


app = FastAPI(
    title="Family Registry API",
    version="1.0.0",
    description="API for community accounts, family membership, roles and primary-account transfers.",
    # We proxy the API under /api at the edge. Swagger needs a fixed openapi URL
    # that includes this prefix; we provide a custom /docs route below.
    docs_url=None,
    # Ensure the generated OpenAPI schema includes the external base path (so "Try it out" hits /api/v1/...).
    root_path=settings.root_path,
    lifespan=lifespan,
)

# Custom Swagger UI that points at the externally reachable OpenAPI URL.
@app.get("/docs", include_in_schema=False)
def swagger_ui():
    prefix = (settings.root_path or "").rstrip("/")
    openapi_url = f"{prefix}{app.openapi_url}"
    return get_swagger_ui_html(openapi_url=openapi_url, title=f"{app.title} - Docs")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(permissions.router)
app.include_router(roles.router)
app.include_router(accounts.router)
app.include_router(families.router)
app.include_router(member_requests.router)
app.include_router(audit.router)

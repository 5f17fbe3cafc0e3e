from app.routers import accounts, audit, auth, families, health, member_requests, permissions, roles

__all__ = [
    "health",
    "auth",
    "permissions",
    "roles",
    "accounts",
    "families",
    "member_requests",
    "audit",
]

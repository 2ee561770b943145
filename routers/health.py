# routers/health.py

from fastapi import APIRouter, Depends

from core.config import settings
from core.permission_helpers import PermissionServices, get_permission_services
from core.supabase_client import ping_supabase

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)


# -----------------------------------------------------
# GET /health/db
# Checks Supabase connection + permissions table query
# No auth required
# -----------------------------------------------------
@router.get("/db", summary="Supabase / DB health check")
async def health_db():
    """
    Verifies Supabase connectivity.
    - Checks if URL + key are configured
    - Attempts to query the permissions table
    - Returns row-count + error details

    Safe for external health monitors (no auth required).
    """
    status = await ping_supabase()
    return {
        "service": "Supabase",
        "status": status.get("status", "unknown"),
        "details": status,
    }


# -----------------------------------------------------
# GET /health/app
# Simple API health check
# -----------------------------------------------------
@router.get("/app", summary="App health check")
async def health_app(services: PermissionServices = Depends(get_permission_services)):
    """
    Lightweight health check for uptime monitors.
    Also reports whether the permission matrix is currently resolved.
    """
    return {
        "service": settings.PROJECT_NAME,
        "status": "ok",
        "permission_cache_warm": services.cache.is_warm,
    }

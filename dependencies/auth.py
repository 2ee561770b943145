from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from core.errors import StoreUnavailable
from core.permissions import GUEST_ROLE


bearer_scheme = HTTPBearer()


# ============================================================
# Current User Model
# ============================================================
class CurrentUser(BaseModel):
    id: str                         # Supabase Auth UID
    email: str
    role: str = GUEST_ROLE

    full_name: Optional[str] = None


# ============================================================
# AUTH DECODING (Supabase: validates JWT + reads role metadata)
# ============================================================
async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> CurrentUser:

    token = credentials.credentials

    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired authentication token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    # Same long-lived client the permission store reads through
    try:
        client = await request.app.state.permissions.store.get_client()
    except StoreUnavailable:
        raise HTTPException(500, "Supabase client not configured")

    # ---------------------------------------------------------
    # Validate JWT via Supabase GoTrue
    # ---------------------------------------------------------
    try:
        auth_resp = await client.auth.get_user(token)
    except Exception:
        raise unauthorized

    if not auth_resp or not auth_resp.user:
        raise unauthorized
    auth_user = auth_resp.user

    if not auth_user.email:
        raise unauthorized

    # ---------------------------------------------------------
    # Role comes from user metadata; no role means no grants
    # ---------------------------------------------------------
    metadata = auth_user.user_metadata or {}
    role = str(metadata.get("role") or "").strip() or GUEST_ROLE

    return CurrentUser(
        id=auth_user.id,
        email=auth_user.email,
        role=role,
        full_name=metadata.get("full_name"),
    )

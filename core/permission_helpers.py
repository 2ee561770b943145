from typing import Optional
from fastapi import Depends, HTTPException, Request

from dependencies.auth import get_current_user, CurrentUser
from core.authorization import AuthorizationEngine
from core.cache import PermissionCache
from core.canonicalizer import UnmappedPairReporter
from core.logging_config import logger
from core.matrix_editor import MatrixEditor
from core.permission_store import PermissionStore


# -----------------------------------------------------
# Engine composition
#   store → cache → engine → editor, one set per app
# -----------------------------------------------------
class PermissionServices:
    def __init__(
        self,
        store: PermissionStore,
        cache: PermissionCache,
        engine: AuthorizationEngine,
        editor: MatrixEditor,
        unmapped: UnmappedPairReporter,
    ):
        self.store = store
        self.cache = cache
        self.engine = engine
        self.editor = editor
        self.unmapped = unmapped

    async def close(self):
        await self.cache.close()


def build_permission_services(
    store: Optional[PermissionStore] = None,
    ttl_seconds: Optional[int] = None,
) -> PermissionServices:
    store = store or PermissionStore()
    unmapped = UnmappedPairReporter()
    cache = PermissionCache(store, ttl_seconds=ttl_seconds, on_unmapped=unmapped)
    engine = AuthorizationEngine(cache)
    editor = MatrixEditor(store, engine)
    return PermissionServices(store, cache, engine, editor, unmapped)


# -----------------------------------------------------
# FastAPI accessors (services live on app.state)
# -----------------------------------------------------
def get_permission_services(request: Request) -> PermissionServices:
    return request.app.state.permissions


def get_authorization_engine(
    services: PermissionServices = Depends(get_permission_services),
) -> AuthorizationEngine:
    return services.engine


def get_matrix_editor(
    services: PermissionServices = Depends(get_permission_services),
) -> MatrixEditor:
    return services.editor


# -----------------------------------------------------
# FastAPI dependency wrapper
# -----------------------------------------------------
def requires_permission(action_id: str):
    """
    Usage:
        @router.put("/matrix", dependencies=[Depends(requires_permission("permission-matrix"))])
    """

    async def dependency(
        current_user: CurrentUser = Depends(get_current_user),
        engine: AuthorizationEngine = Depends(get_authorization_engine),
    ):
        if not await engine.has_permission(current_user.role, action_id):
            logger.info(f"User {current_user.id} ({current_user.role}) denied '{action_id}'")
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions: '{action_id}' required"
            )
        return current_user

    return dependency

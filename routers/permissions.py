# routers/permissions.py

from fastapi import APIRouter, Depends, Query

from core.authorization import AuthorizationEngine
from core.errors import StoreUnavailable, handle_supabase_error
from core.logging_config import logger
from core.matrix_editor import MatrixEditor
from core.permission_helpers import (
    PermissionServices,
    get_authorization_engine,
    get_matrix_editor,
    get_permission_services,
    requires_permission,
)
from core.permissions import ACTION_CATEGORIES, PERMISSION_ACTIONS, ROLES, is_known_action, matrix_roles
from dependencies.auth import get_current_user, CurrentUser
from models.permission import (
    BatchResult,
    MatrixUpdateRequest,
    PermissionCheckResponse,
    RolePermissionsResponse,
)


router = APIRouter(
    prefix="/permissions",
    tags=["Permissions"],
)

MANAGE_MATRIX = requires_permission(PERMISSION_ACTIONS.PERMISSION_MATRIX)


# ============================================================
# CALLER CHECKS
# ============================================================

@router.get(
    "/check",
    summary="Check whether the caller may perform an action",
    response_model=PermissionCheckResponse,
)
async def check_permission(
    action_id: str = Query(..., min_length=1),
    current_user: CurrentUser = Depends(get_current_user),
    engine: AuthorizationEngine = Depends(get_authorization_engine),
):
    allowed = await engine.has_permission(current_user.role, action_id)
    return PermissionCheckResponse(
        role_id=current_user.role,
        action_id=action_id,
        allowed=allowed,
    )


@router.get(
    "/me",
    summary="List the caller's granted actions",
    response_model=RolePermissionsResponse,
)
async def my_permissions(
    current_user: CurrentUser = Depends(get_current_user),
    engine: AuthorizationEngine = Depends(get_authorization_engine),
):
    actions = await engine.allowed_actions(current_user.role)
    return RolePermissionsResponse(role_id=current_user.role, action_ids=sorted(actions))


@router.get("/registry", summary="Known roles and action ids grouped by feature area")
async def action_registry(
    current_user: CurrentUser = Depends(get_current_user),
    engine: AuthorizationEngine = Depends(get_authorization_engine),
):
    return {
        "categories": ACTION_CATEGORIES,
        "roles": ROLES,
        "matrix_roles": matrix_roles(engine.admin_role),
    }


# ============================================================
# MATRIX ADMINISTRATION
# ============================================================

@router.get(
    "/roles/{role_id}",
    summary="List a role's granted actions",
    response_model=RolePermissionsResponse,
    dependencies=[Depends(MANAGE_MATRIX)],
)
async def role_permissions(
    role_id: str,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
):
    actions = await engine.allowed_actions(role_id)
    return RolePermissionsResponse(role_id=role_id, action_ids=sorted(actions))


@router.get(
    "/matrix",
    summary="Full permission matrix for editable roles",
    dependencies=[Depends(MANAGE_MATRIX)],
)
async def get_matrix(editor: MatrixEditor = Depends(get_matrix_editor)):
    try:
        return {"matrix": await editor.build_matrix()}
    except StoreUnavailable as e:
        raise handle_supabase_error(e, "Failed to load permission matrix")


@router.put(
    "/matrix",
    summary="Apply a batch of permission matrix edits",
    response_model=BatchResult,
)
async def update_matrix(
    payload: MatrixUpdateRequest,
    current_user: CurrentUser = Depends(MANAGE_MATRIX),
    editor: MatrixEditor = Depends(get_matrix_editor),
):
    logger.info(f"User {current_user.id} applying {len(payload.changes)} permission changes")
    return await editor.apply_changes(payload.changes)


@router.post(
    "/matrix/reset",
    summary="Reset the permission matrix to the shipped defaults",
    response_model=BatchResult,
)
async def reset_matrix(
    current_user: CurrentUser = Depends(MANAGE_MATRIX),
    editor: MatrixEditor = Depends(get_matrix_editor),
):
    logger.info(f"User {current_user.id} resetting permission matrix")
    try:
        return await editor.reset_to_defaults()
    except StoreUnavailable as e:
        raise handle_supabase_error(e, "Failed to reset permission matrix")


# ============================================================
# CACHE + DIAGNOSTICS
# ============================================================

@router.post(
    "/cache/invalidate",
    summary="Drop the resolved permission cache",
    dependencies=[Depends(MANAGE_MATRIX)],
)
async def invalidate_cache(services: PermissionServices = Depends(get_permission_services)):
    services.cache.invalidate()
    return {"status": "invalidated"}


@router.get(
    "/diagnostics/unmapped",
    summary="Persisted (resource, action) pairs with no explicit rule",
    dependencies=[Depends(MANAGE_MATRIX)],
)
async def unmapped_pairs(services: PermissionServices = Depends(get_permission_services)):
    if not services.cache.is_warm:
        try:
            await services.cache.warm()
        except StoreUnavailable as e:
            raise handle_supabase_error(e, "Failed to load permissions")

    grants = await services.cache.all_grants()
    unregistered = {
        action_id
        for actions in grants.values()
        for action_id in actions
        if not is_known_action(action_id)
    }

    return {
        "cache_loaded_at": services.cache.loaded_at,
        "unmapped": services.unmapped.snapshot(),
        "unregistered_actions": sorted(unregistered),
    }

# -------------------------
# Permission Models
# -------------------------
from .permission import (
    PermissionKey,
    PermissionRecord,
    CanonicalPermission,
    PermissionChange,
    BatchFailure,
    BatchResult,
    MatrixUpdateRequest,
    PermissionCheckResponse,
    RolePermissionsResponse,
)

__all__ = [
    # rows
    "PermissionKey",
    "PermissionRecord",
    "CanonicalPermission",

    # matrix edits
    "PermissionChange",
    "BatchFailure",
    "BatchResult",
    "MatrixUpdateRequest",

    # responses
    "PermissionCheckResponse",
    "RolePermissionsResponse",
]

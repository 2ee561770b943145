from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


# ======================================================
# Helpers
# ======================================================

def _clean(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


# ======================================================
# ROW IDENTITY
# ======================================================

class PermissionKey(BaseModel):
    """Unique key of a row in the permissions table."""

    model_config = ConfigDict(frozen=True)

    role_id: str
    resource: str
    action: str

    def __str__(self):
        return f"{self.role_id}:{self.resource}/{self.action}"


# ======================================================
# PERSISTED ROW
# ======================================================

class PermissionRecord(BaseModel):
    role_id: str
    resource: str
    action: str
    allowed: bool = False

    @property
    def key(self) -> PermissionKey:
        return PermissionKey(role_id=self.role_id, resource=self.resource, action=self.action)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PermissionRecord":
        """
        Build a record from a raw Supabase row.

        Tolerates older layouts: `role_id` instead of `role`, and rows that
        only carry `action_id` (read as resource "default").
        """
        role_id = _clean(row.get("role") or row.get("role_id"))
        resource = _clean(row.get("resource"))
        action = _clean(row.get("action"))

        legacy_action_id = _clean(row.get("action_id"))
        if legacy_action_id and not resource and not action:
            resource, action = "default", legacy_action_id

        return cls(
            role_id=role_id or "unknown",
            resource=resource or "unknown",
            action=action or "unknown",
            allowed=bool(row.get("allowed")),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "role": self.role_id,
            "resource": self.resource,
            "action": self.action,
            "allowed": self.allowed,
        }


# ======================================================
# DERIVED VIEW
# ======================================================

class CanonicalPermission(BaseModel):
    """A persisted row after canonicalization. Never written back."""

    model_config = ConfigDict(frozen=True)

    role_id: str
    action_id: str
    allowed: bool


# ======================================================
# MATRIX EDITS
# ======================================================

class PermissionChange(BaseModel):
    """
    One cell edit in the permission matrix.

    Either give the persisted spelling (resource + action) or the canonical
    action_id; an action_id is translated to the spelling used on write.
    """

    role_id: str
    resource: Optional[str] = None
    action: Optional[str] = None
    action_id: Optional[str] = Field(None, description="Canonical action id, e.g. 'system-settings'")
    allowed: bool


class BatchFailure(BaseModel):
    key: PermissionKey
    error_kind: str
    detail: Optional[str] = None


class BatchResult(BaseModel):
    succeeded: List[PermissionKey] = []
    failed: List[BatchFailure] = []

    @property
    def ok(self) -> bool:
        return not self.failed


class MatrixUpdateRequest(BaseModel):
    changes: List[PermissionChange]


# ======================================================
# RESPONSES
# ======================================================

class PermissionCheckResponse(BaseModel):
    role_id: str
    action_id: str
    allowed: bool


class RolePermissionsResponse(BaseModel):
    role_id: str
    action_ids: List[str]

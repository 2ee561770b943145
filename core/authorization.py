# core/authorization.py

from typing import FrozenSet, Iterable, Optional

from core.cache import PermissionCache
from core.config import settings
from core.errors import StoreUnavailable
from core.logging_config import logger
from core.permissions import ALL_ACTIONS, PERMISSION_ACTIONS


class AuthorizationEngine:
    """
    Answers "may role X do action Y?" from the permission cache.

    Every check goes through is_admin_bypass() first. Anything that cannot be
    verified (no rows, unknown ids, store outage) is denied.
    """

    def __init__(self, cache: PermissionCache, admin_role: Optional[str] = None):
        self.cache = cache
        self.admin_role = admin_role or settings.ADMIN_ROLE

    # -----------------------------------------------------
    # Admin policy (single decision point)
    # -----------------------------------------------------
    def is_admin_bypass(self, role_id: Optional[str]) -> bool:
        return role_id == self.admin_role

    # -----------------------------------------------------
    # Permission evaluation
    # -----------------------------------------------------
    async def has_permission(self, role_id: Optional[str], action_id: Optional[str]) -> bool:
        if self.is_admin_bypass(role_id):
            return True

        if not role_id or not action_id:
            return False

        try:
            granted = await self.cache.get(role_id)
        except StoreUnavailable as e:
            logger.warning(f"Permission DENIED for {role_id} - {action_id}: {e}")
            return False

        allowed = action_id in granted
        if not allowed:
            logger.debug(f"Permission denied for {role_id} - {action_id}")
        return allowed

    def has_permission_cached(self, role_id: Optional[str], action_id: Optional[str]) -> bool:
        """
        Synchronous check against the already-resolved matrix.
        A cold cache denies every non-admin role.
        """
        if self.is_admin_bypass(role_id):
            return True

        if not role_id or not action_id:
            return False

        return action_id in self.cache.peek(role_id)

    async def has_any_permission(self, role_id: Optional[str], action_ids: Iterable[str]) -> bool:
        for action_id in action_ids:
            if await self.has_permission(role_id, action_id):
                return True
        return False

    async def allowed_actions(self, role_id: Optional[str]) -> FrozenSet[str]:
        """Granted action ids for a role; admin gets the whole registry."""
        if self.is_admin_bypass(role_id):
            return frozenset(ALL_ACTIONS)

        if not role_id:
            return frozenset()

        try:
            return await self.cache.get(role_id)
        except StoreUnavailable as e:
            logger.warning(f"Could not resolve permissions for {role_id}: {e}")
            return frozenset()

    # -----------------------------------------------------
    # Attachment helpers
    # -----------------------------------------------------
    async def can_manage_attachments(
        self,
        user_id: str,
        role_id: Optional[str],
        case_submitted_by: Optional[str],
    ) -> bool:
        """Case creators always manage their own attachments."""
        if user_id and user_id == case_submitted_by:
            return True
        return await self.has_permission(role_id, PERMISSION_ACTIONS.MANAGE_ATTACHMENTS)

    async def can_view_attachments(self, role_id: Optional[str]) -> bool:
        return await self.has_permission(role_id, PERMISSION_ACTIONS.DOWNLOAD_FILES)

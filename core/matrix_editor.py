# core/matrix_editor.py

"""
Bulk edits to the permission matrix.

A batch upserts every change (concurrently, bounded), records per-item
failures instead of aborting, and invalidates the permission cache exactly
once after the last write has settled.

Revoking a cell clears every stored spelling that resolves to the same
action id for that role, so a revoke can't be undone by an older alias row.
"""

import asyncio
from typing import Awaitable, Dict, Iterable, List, Optional, Tuple, Union

from core.authorization import AuthorizationEngine
from core.canonicalizer import canonicalize, decanonicalize, normalize_part
from core.config import settings
from core.errors import InvalidPermissionChange, PermissionStoreError
from core.logging_config import logger
from core.permission_store import PermissionStore
from core.permissions import ALL_ACTIONS, DEFAULT_ROLE_PERMISSIONS, ROLES
from models.permission import (
    BatchFailure,
    BatchResult,
    PermissionChange,
    PermissionKey,
    PermissionRecord,
)


Outcome = Union[PermissionKey, BatchFailure]
BatchItem = Tuple[PermissionKey, Awaitable[Outcome]]


def _text(value: Optional[str]) -> str:
    return (value or "").strip()


def change_to_record(change: PermissionChange) -> PermissionRecord:
    """
    Resolve a matrix change to the row it writes.

    resource/action are normalized the same way reads canonicalize them.

    Raises:
        InvalidPermissionChange: no role, or neither resource/action nor action_id
    """
    role_id = _text(change.role_id)
    resource = _text(change.resource)
    action = _text(change.action)

    if not (resource and action) and _text(change.action_id):
        resource, action = decanonicalize(change.action_id)

    if not (role_id and resource and action):
        raise InvalidPermissionChange(
            f"Change needs a role and either resource/action or action_id: {change.model_dump()}"
        )

    return PermissionRecord(
        role_id=role_id,
        resource=normalize_part(resource),
        action=normalize_part(action),
        allowed=change.allowed,
    )


def change_key(change: PermissionChange) -> PermissionKey:
    """Best-effort key for reporting, also for changes that failed to resolve."""
    try:
        return change_to_record(change).key
    except InvalidPermissionChange:
        return PermissionKey(
            role_id=_text(change.role_id),
            resource=_text(change.resource),
            action=_text(change.action) or _text(change.action_id),
        )


class MatrixEditor:
    def __init__(
        self,
        store: PermissionStore,
        engine: AuthorizationEngine,
        concurrency: Optional[int] = None,
    ):
        self._store = store
        self._engine = engine
        self._cache = engine.cache
        self._concurrency = max(1, concurrency or settings.MATRIX_WRITE_CONCURRENCY)

    # -----------------------------------------------------
    # Bulk update
    # -----------------------------------------------------
    async def apply_changes(self, changes: Iterable[PermissionChange]) -> BatchResult:
        semaphore = asyncio.Semaphore(self._concurrency)
        return await self._run_batch([
            (change_key(change), self._apply_change(change, semaphore))
            for change in changes
        ])

    async def set_permission(self, role_id: str, action_id: str, allowed: bool) -> BatchResult:
        """Single cell edit addressed by canonical action id."""
        return await self.apply_changes(
            [PermissionChange(role_id=role_id, action_id=action_id, allowed=allowed)]
        )

    async def _run_batch(self, items: List[BatchItem]) -> BatchResult:
        batch = asyncio.gather(*(work for _, work in items), return_exceptions=True)

        try:
            outcomes = await asyncio.shield(batch)
        except asyncio.CancelledError:
            # Writes already dispatched keep going; make them visible when they land
            logger.warning(
                f"Permission batch of {len(items)} cancelled; "
                "cache will be invalidated once pending writes settle"
            )
            batch.add_done_callback(lambda _: self._cache.invalidate())
            raise

        self._cache.invalidate()

        result = BatchResult()
        for (key, _), outcome in zip(items, outcomes):
            if isinstance(outcome, PermissionKey):
                result.succeeded.append(outcome)
            elif isinstance(outcome, BatchFailure):
                result.failed.append(outcome)
            else:
                logger.error(f"Unexpected error applying permission change {key}", exc_info=outcome)
                result.failed.append(
                    BatchFailure(key=key, error_kind="unexpected", detail=str(outcome))
                )

        logger.info(
            f"Permission batch applied: {len(result.succeeded)} succeeded, "
            f"{len(result.failed)} failed"
        )
        return result

    async def _apply_change(self, change: PermissionChange, semaphore: asyncio.Semaphore) -> Outcome:
        try:
            record = change_to_record(change)
        except InvalidPermissionChange as e:
            logger.warning(f"Skipping invalid permission change: {e}")
            return BatchFailure(key=change_key(change), error_kind=e.kind, detail=str(e))

        outcome = await self._write(record, semaphore)
        if record.allowed or isinstance(outcome, BatchFailure):
            return outcome

        return await self._revoke_aliases(record, semaphore)

    async def _revoke_aliases(self, record: PermissionRecord, semaphore: asyncio.Semaphore) -> Outcome:
        """Revoke other allowed rows of the role that resolve to the same action id."""
        action_id = canonicalize(record.resource, record.action)

        try:
            rows = await self._store.fetch_all(record.role_id)
        except PermissionStoreError as e:
            logger.warning(f"Could not read aliases of {record.key}: {e}")
            return BatchFailure(key=record.key, error_kind=e.kind, detail=str(e))

        for row in rows:
            if not row.allowed or row.key == record.key:
                continue
            if canonicalize(row.resource, row.action) != action_id:
                continue

            logger.info(f"Revoking {row.key}, stored alias of {action_id}")
            alias = row.model_copy(update={"allowed": False})
            outcome = await self._write(alias, semaphore)
            if isinstance(outcome, BatchFailure):
                return BatchFailure(key=record.key, error_kind=outcome.error_kind, detail=outcome.detail)

        return record.key

    async def _write(self, record: PermissionRecord, semaphore: asyncio.Semaphore) -> Outcome:
        async with semaphore:
            try:
                await self._store.upsert(record)
            except PermissionStoreError as e:
                logger.warning(f"Permission write failed for {record.key}: {e}")
                return BatchFailure(key=record.key, error_kind=e.kind, detail=str(e))

        return record.key

    # -----------------------------------------------------
    # Reset to the shipped defaults
    # -----------------------------------------------------
    async def reset_to_defaults(self) -> BatchResult:
        """
        Grant every default cell and revoke every other allowed row.
        Rows for the admin role are left alone.

        Raises:
            StoreUnavailable: current rows could not be read
        """
        current = await self._store.fetch_allowed()

        records: List[PermissionRecord] = []
        for role_id, action_ids in DEFAULT_ROLE_PERMISSIONS.items():
            for action_id in action_ids:
                resource, action = decanonicalize(action_id)
                records.append(
                    PermissionRecord(role_id=role_id, resource=resource, action=action, allowed=True)
                )

        for record in current:
            if self._engine.is_admin_bypass(record.role_id):
                continue
            # Any stored spelling of a default cell may stay granted
            if canonicalize(record.resource, record.action) in DEFAULT_ROLE_PERMISSIONS.get(record.role_id, ()):
                continue
            # Revoke the row exactly as stored
            records.append(record.model_copy(update={"allowed": False}))

        logger.info(f"Resetting permission matrix to defaults ({len(records)} writes)")

        semaphore = asyncio.Semaphore(self._concurrency)
        return await self._run_batch([
            (record.key, self._write(record, semaphore)) for record in records
        ])

    # -----------------------------------------------------
    # Admin view
    # -----------------------------------------------------
    async def build_matrix(self) -> Dict[str, Dict[str, bool]]:
        """
        role -> action_id -> allowed for every editable role.

        Roles and action ids found in the table but not in the registry are
        included so drifted rows stay visible.
        """
        grants = await self._cache.all_grants()

        roles = [role_id for role_id in ROLES if not self._engine.is_admin_bypass(role_id)]
        roles += sorted(
            role_id for role_id in grants
            if role_id not in ROLES and not self._engine.is_admin_bypass(role_id)
        )

        seen = {action_id for actions in grants.values() for action_id in actions}
        actions = list(ALL_ACTIONS) + sorted(seen - set(ALL_ACTIONS))

        return {
            role_id: {
                action_id: action_id in grants.get(role_id, frozenset())
                for action_id in actions
            }
            for role_id in roles
        }

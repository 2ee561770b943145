# core/cache.py

"""
Resolved permission matrix cache.

Holds role -> frozenset(action_id) built from every allowed row in the
permissions table. One instance is owned by whoever composes the
authorization engine (the app keeps it on app.state); tests build their own.

Lifecycle:
    warm()        preload (optional)
    get()         resolve on demand, single in-flight fetch
    invalidate()  drop everything; next get() refetches
    close()       teardown
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterable, Iterator, Optional

from core.canonicalizer import UnmappedCallback, canonicalize
from core.config import settings
from core.logging_config import logger
from core.permission_store import PermissionStore
from models.permission import CanonicalPermission, PermissionRecord


# Rebuilds interrupted by invalidate() more often than this are served
# to their callers without being memoized.
MAX_REBUILD_ATTEMPTS = 3

EMPTY: FrozenSet[str] = frozenset()


class PermissionSnapshot:
    """Resolved grants with an optional expiration time."""

    def __init__(self, grants: Dict[str, FrozenSet[str]], ttl_seconds: Optional[int]):
        self.grants = grants
        self.loaded_at = datetime.now()
        self.expires_at = (
            self.loaded_at + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        )

    def is_expired(self) -> bool:
        """Check if the snapshot has expired."""
        return self.expires_at is not None and datetime.now() >= self.expires_at

    def for_role(self, role_id: str) -> FrozenSet[str]:
        return self.grants.get(role_id, EMPTY)


def canonical_permissions(
    records: Iterable[PermissionRecord],
    on_unmapped: Optional[UnmappedCallback] = None,
) -> Iterator[CanonicalPermission]:
    """Allowed rows as (role, action id) grants."""
    for record in records:
        if not record.allowed:
            continue
        yield CanonicalPermission(
            role_id=record.role_id,
            action_id=canonicalize(record.resource, record.action, on_unmapped=on_unmapped),
            allowed=True,
        )


def resolve_grants(
    records: Iterable[PermissionRecord],
    on_unmapped: Optional[UnmappedCallback] = None,
) -> Dict[str, FrozenSet[str]]:
    """Canonicalize allowed rows into role -> action ids."""
    grants: Dict[str, set] = {}
    for permission in canonical_permissions(records, on_unmapped):
        grants.setdefault(permission.role_id, set()).add(permission.action_id)

    return {role_id: frozenset(actions) for role_id, actions in grants.items()}


class PermissionCache:
    def __init__(
        self,
        store: PermissionStore,
        ttl_seconds: Optional[int] = None,
        on_unmapped: Optional[UnmappedCallback] = None,
    ):
        self._store = store
        self._ttl = settings.PERMISSION_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._on_unmapped = on_unmapped

        self._snapshot: Optional[PermissionSnapshot] = None
        self._generation = 0
        self._inflight: Optional[asyncio.Future] = None

    # -----------------------------------------------------
    # Introspection
    # -----------------------------------------------------
    @property
    def is_warm(self) -> bool:
        return self._fresh_snapshot() is not None

    @property
    def loaded_at(self) -> Optional[datetime]:
        snapshot = self._fresh_snapshot()
        return snapshot.loaded_at if snapshot else None

    # -----------------------------------------------------
    # Reads
    # -----------------------------------------------------
    async def get(self, role_id: str) -> FrozenSet[str]:
        """
        Allowed action ids for a role.

        Raises:
            StoreUnavailable: the cache was cold and the fetch failed
        """
        snapshot = self._fresh_snapshot() or await self._load()
        return snapshot.for_role(role_id)

    async def all_grants(self) -> Dict[str, FrozenSet[str]]:
        snapshot = self._fresh_snapshot() or await self._load()
        return dict(snapshot.grants)

    def peek(self, role_id: str) -> FrozenSet[str]:
        """Non-fetching lookup. Cold or expired cache answers with no grants."""
        snapshot = self._fresh_snapshot()
        if snapshot is None:
            return EMPTY
        return snapshot.for_role(role_id)

    async def warm(self) -> int:
        """Load the matrix now. Returns the number of roles resolved."""
        snapshot = await self._load()
        return len(snapshot.grants)

    # -----------------------------------------------------
    # Invalidation / teardown
    # -----------------------------------------------------
    def invalidate(self):
        """Drop the resolved matrix. Any rebuild already running will refetch."""
        self._generation += 1
        self._snapshot = None
        logger.info("Permission cache invalidated")

    async def close(self):
        inflight = self._inflight
        self._inflight = None
        self._generation += 1
        self._snapshot = None

        if inflight is not None and not inflight.done():
            inflight.cancel()
            try:
                await inflight
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Permission cache load failed during close: {e}")

    # -----------------------------------------------------
    # Internals
    # -----------------------------------------------------
    def _fresh_snapshot(self) -> Optional[PermissionSnapshot]:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        if snapshot.is_expired():
            self._snapshot = None
            return None
        return snapshot

    async def _load(self) -> PermissionSnapshot:
        # Concurrent cold callers share one fetch
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._rebuild())

        # A cancelled waiter must not cancel the fetch other callers share
        return await asyncio.shield(self._inflight)

    async def _rebuild(self) -> PermissionSnapshot:
        snapshot = None

        for attempt in range(1, MAX_REBUILD_ATTEMPTS + 1):
            generation = self._generation
            records = await self._store.fetch_allowed()
            snapshot = PermissionSnapshot(
                resolve_grants(records, on_unmapped=self._on_unmapped), self._ttl
            )

            if generation == self._generation:
                self._snapshot = snapshot
                logger.info(
                    f"Permission cache rebuilt: {len(records)} allowed rows, "
                    f"{len(snapshot.grants)} roles"
                )
                return snapshot

            logger.info(
                f"Permission cache invalidated during rebuild (attempt {attempt}), refetching"
            )

        logger.warning("Permission matrix kept changing during rebuild; serving unmemoized result")
        return snapshot

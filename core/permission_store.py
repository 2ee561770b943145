# core/permission_store.py

"""
Supabase adapter for the `permissions` table.

Rows are keyed by (role, resource, action). The table rejects duplicate
inserts instead of merging them, so writes go select → update / insert, and an
insert that loses a race is retried as an update.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from supabase import AsyncClient

from core.config import settings
from core.errors import (
    ConflictOnWrite,
    InvalidPermissionChange,
    PermissionStoreError,
    StoreUnavailable,
    extract_supabase_error,
    is_conflict_error,
)
from core.logging_config import logger
from core.supabase_client import get_supabase_client
from models.permission import PermissionKey, PermissionRecord


ClientFactory = Callable[[], Awaitable[Optional[AsyncClient]]]


class PermissionStore:
    def __init__(
        self,
        client: Optional[AsyncClient] = None,
        table: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._client = client
        self._table = table or settings.PERMISSIONS_TABLE
        self._client_factory = client_factory or get_supabase_client
        self._client_lock = asyncio.Lock()

    @property
    def table(self) -> str:
        return self._table

    async def get_client(self) -> AsyncClient:
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = await self._client_factory()

        if self._client is None:
            raise StoreUnavailable("Supabase client not configured")
        return self._client

    # -----------------------------------------------------
    # Reads
    # -----------------------------------------------------
    async def fetch_allowed(self) -> List[PermissionRecord]:
        """All rows with allowed = true, across every role."""
        client = await self.get_client()

        try:
            result = await (
                client.table(self._table)
                .select("*")
                .eq("allowed", True)
                .execute()
            )
        except Exception as e:
            raise StoreUnavailable(
                f"Failed to fetch permissions: {extract_supabase_error(e)}", cause=e
            ) from e

        return [PermissionRecord.from_row(row) for row in result.data or []]

    async def fetch_all(self, role_id: Optional[str] = None) -> List[PermissionRecord]:
        """Every row (allowed or not), optionally for a single role."""
        client = await self.get_client()

        try:
            query = client.table(self._table).select("*")
            if role_id:
                query = query.eq("role", role_id)
            result = await query.execute()
        except Exception as e:
            raise StoreUnavailable(
                f"Failed to fetch permissions: {extract_supabase_error(e)}", cause=e
            ) from e

        return [PermissionRecord.from_row(row) for row in result.data or []]

    # -----------------------------------------------------
    # Writes
    # -----------------------------------------------------
    async def upsert(self, record: PermissionRecord) -> PermissionRecord:
        """
        Idempotent write of one (role, resource, action) cell.

        Raises:
            InvalidPermissionChange: a key part is blank
            StoreUnavailable: Supabase could not be reached or rejected the write
        """
        key = record.key
        if not all((key.role_id, key.resource, key.action)):
            raise InvalidPermissionChange(f"Incomplete permission key: {key}")

        client = await self.get_client()

        try:
            if await self._exists(client, key):
                await self._update(client, record)
                return record

            try:
                await self._insert(client, record)
            except ConflictOnWrite:
                # Another writer inserted the same key between select and insert
                logger.info(f"Permission {key} inserted concurrently, retrying as update")
                await self._update(client, record)

            return record

        except PermissionStoreError:
            raise
        except Exception as e:
            raise StoreUnavailable(
                f"Failed to write permission {key}: {extract_supabase_error(e)}", cause=e
            ) from e

    def _match_key(self, query, key: PermissionKey):
        return (
            query.eq("role", key.role_id)
            .eq("resource", key.resource)
            .eq("action", key.action)
        )

    async def _exists(self, client: AsyncClient, key: PermissionKey) -> bool:
        query = client.table(self._table).select("*")
        result = await self._match_key(query, key).limit(1).execute()
        return bool(result.data)

    async def _update(self, client: AsyncClient, record: PermissionRecord):
        query = client.table(self._table).update({"allowed": record.allowed})
        await self._match_key(query, record.key).execute()

    async def _insert(self, client: AsyncClient, record: PermissionRecord):
        try:
            await client.table(self._table).insert(record.to_row()).execute()
        except Exception as e:
            if is_conflict_error(e):
                raise ConflictOnWrite(
                    f"Duplicate permission {record.key}", cause=e
                ) from e
            raise

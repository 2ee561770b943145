# tests/test_matrix_editor.py

"""
Tests for bulk permission matrix edits.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock

from core.authorization import AuthorizationEngine
from core.cache import PermissionCache
from core.errors import StoreUnavailable
from core.matrix_editor import MatrixEditor, change_to_record
from core.permissions import ALL_ACTIONS, DEFAULT_ROLE_PERMISSIONS
from models.permission import PermissionChange, PermissionKey, PermissionRecord


def _change(role, resource, action, allowed=True):
    return PermissionChange(role_id=role, resource=resource, action=action, allowed=allowed)


@pytest.fixture
def cache(permission_store):
    return PermissionCache(permission_store, ttl_seconds=0)


@pytest.fixture
def editor(permission_store, cache):
    return MatrixEditor(permission_store, AuthorizationEngine(cache, admin_role="admin"), concurrency=2)


def test_change_to_record_resolves_action_id():
    record = change_to_record(PermissionChange(role_id="it", action_id="system-settings", allowed=True))

    assert record == PermissionRecord(role_id="it", resource="settings", action="system", allowed=True)


def test_change_to_record_prefers_explicit_spelling():
    record = change_to_record(
        PermissionChange(role_id="it", resource="settings", action="system-settings",
                         action_id="system-settings", allowed=False)
    )

    assert (record.resource, record.action, record.allowed) == ("settings", "system-settings", False)


@pytest.mark.asyncio
async def test_partial_failure_reports_and_invalidates_once():
    store = AsyncMock()

    async def upsert(record):
        if record.action == "delete":
            raise StoreUnavailable("write timed out")
        return record

    store.upsert.side_effect = upsert
    cache = Mock()
    engine = AuthorizationEngine(cache, admin_role="admin")
    editor = MatrixEditor(store, engine, concurrency=3)

    changes = [
        _change("sales", "case", "view"),
        _change("sales", "case", "create"),
        _change("sales", "case", "delete"),
        _change("sales", "case", "amend"),
        _change("sales", "files", "upload"),
    ]

    result = await editor.apply_changes(changes)

    assert len(result.succeeded) == 4
    assert len(result.failed) == 1
    assert result.failed[0].key == PermissionKey(role_id="sales", resource="case", action="delete")
    assert result.failed[0].error_kind == "store_unavailable"
    assert store.upsert.await_count == 5
    cache.invalidate.assert_called_once()


@pytest.mark.asyncio
async def test_invalidate_happens_after_all_writes_settle():
    events = []
    store = AsyncMock()

    async def upsert(record):
        await asyncio.sleep(0.01 if record.action == "slow" else 0)
        events.append(("write", record.action))
        return record

    store.upsert.side_effect = upsert
    cache = Mock()
    cache.invalidate.side_effect = lambda: events.append(("invalidate", None))
    editor = MatrixEditor(store, AuthorizationEngine(cache, admin_role="admin"), concurrency=4)

    await editor.apply_changes([_change("it", "x", "slow"), _change("it", "x", "fast")])

    assert events[-1] == ("invalidate", None)
    assert len(events) == 3


@pytest.mark.asyncio
async def test_invalid_change_is_captured(editor):
    result = await editor.apply_changes([
        PermissionChange(role_id="sales", allowed=True),
        _change("sales", "reports", "view"),
    ])

    assert [k.action for k in result.succeeded] == ["view"]
    assert result.failed[0].error_kind == "invalid_change"
    assert result.failed[0].key.role_id == "sales"


@pytest.mark.asyncio
async def test_batch_is_idempotent(fake_supabase, editor):
    changes = [_change("driver", "files", "upload"), _change("driver", "case", "view")]

    await editor.apply_changes(changes)
    rows_after_first = [dict(row) for row in fake_supabase.permission_rows]
    await editor.apply_changes(changes)

    assert fake_supabase.permission_rows == rows_after_first


@pytest.mark.asyncio
async def test_successful_write_is_visible_on_next_read(editor, cache):
    engine = AuthorizationEngine(cache, admin_role="admin")
    assert await engine.has_permission("sales", "view-reports") is False

    await editor.set_permission("sales", "view-reports", True)

    assert await engine.has_permission("sales", "view-reports") is True


@pytest.mark.asyncio
async def test_revoking_permission(editor, cache):
    engine = AuthorizationEngine(cache, admin_role="admin")
    assert await engine.has_permission("it", "audit-logs") is True

    result = await editor.set_permission("it", "audit-logs", False)

    assert result.ok
    assert await engine.has_permission("it", "audit-logs") is False


@pytest.mark.asyncio
async def test_cancelled_batch_still_invalidates():
    release = asyncio.Event()
    store = AsyncMock()

    async def upsert(record):
        await release.wait()
        return record

    store.upsert.side_effect = upsert
    cache = Mock()
    editor = MatrixEditor(store, AuthorizationEngine(cache, admin_role="admin"), concurrency=2)

    task = asyncio.ensure_future(editor.apply_changes([_change("it", "a", "b"), _change("it", "c", "d")]))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    cache.invalidate.assert_not_called()

    release.set()
    for _ in range(5):
        await asyncio.sleep(0)

    assert store.upsert.await_count == 2
    cache.invalidate.assert_called_once()


@pytest.mark.asyncio
async def test_reset_to_defaults(fake_supabase, editor, cache):
    fake_supabase.permission_rows.append(
        {"role": "admin", "resource": "settings", "action": "system", "allowed": True}
    )

    result = await editor.reset_to_defaults()

    assert result.ok
    engine = AuthorizationEngine(cache, admin_role="admin")
    for role_id, action_ids in DEFAULT_ROLE_PERMISSIONS.items():
        assert await engine.allowed_actions(role_id) == frozenset(action_ids)

    # Extra grants outside the defaults were revoked, admin rows untouched
    matrix_row = next(
        r for r in fake_supabase.permission_rows
        if (r["role"], r["resource"], r["action"]) == ("it", "settings", "permission-matrix")
    )
    assert matrix_row["allowed"] is False
    assert any(
        r["role"] == "admin" and r["allowed"] for r in fake_supabase.permission_rows
    )


@pytest.mark.asyncio
async def test_build_matrix(fake_supabase, editor):
    fake_supabase.permission_rows.append(
        {"role": "warehouse", "resource": "inventory", "action": "recount", "allowed": True}
    )

    matrix = await editor.build_matrix()

    assert "admin" not in matrix
    assert "warehouse" in matrix
    assert matrix["it"]["system-settings"] is True
    assert matrix["sales"]["system-settings"] is False
    assert matrix["warehouse"]["inventory-recount"] is True
    assert set(ALL_ACTIONS) <= set(matrix["driver"])


@pytest.mark.asyncio
async def test_revoke_by_action_id_clears_every_stored_spelling(fake_supabase, editor, cache):
    fake_supabase.permission_rows.append(
        {"role": "sales", "resource": "settings", "action": "system-settings", "allowed": True}
    )
    engine = AuthorizationEngine(cache, admin_role="admin")
    assert await engine.has_permission("sales", "system-settings") is True

    result = await editor.set_permission("sales", "system-settings", False)

    assert result.ok
    assert await engine.has_permission("sales", "system-settings") is False
    alias = next(
        r for r in fake_supabase.permission_rows
        if (r["role"], r["resource"], r["action"]) == ("sales", "settings", "system-settings")
    )
    assert alias["allowed"] is False


@pytest.mark.asyncio
async def test_revoke_leaves_other_roles_and_actions_alone(fake_supabase, editor, cache):
    engine = AuthorizationEngine(cache, admin_role="admin")

    await editor.set_permission("it", "system-settings", False)

    assert await engine.has_permission("it", "email-config") is True
    assert await engine.has_permission("it", "audit-logs") is True


@pytest.mark.asyncio
async def test_alias_lookup_failure_is_reported():
    store = AsyncMock()
    store.upsert.side_effect = lambda record: record
    store.fetch_all.side_effect = StoreUnavailable("connection reset")
    cache = Mock()
    editor = MatrixEditor(store, AuthorizationEngine(cache, admin_role="admin"))

    result = await editor.set_permission("it", "audit-logs", False)

    assert result.failed[0].key == PermissionKey(role_id="it", resource="logs", action="audit")
    assert result.failed[0].error_kind == "store_unavailable"
    cache.invalidate.assert_called_once()


@pytest.mark.asyncio
async def test_write_key_is_normalized_like_reads(fake_supabase, editor, cache):
    engine = AuthorizationEngine(cache, admin_role="admin")
    assert await engine.has_permission("it", "system-settings") is True

    result = await editor.apply_changes([_change("it", " Settings", "SYSTEM ", allowed=False)])

    assert result.succeeded == [PermissionKey(role_id="it", resource="settings", action="system")]
    assert fake_supabase.count("insert") == 0
    assert await engine.has_permission("it", "system-settings") is False


@pytest.mark.asyncio
async def test_reset_keeps_alias_spelling_of_default(fake_supabase, editor, cache):
    fake_supabase.permission_rows.append(
        {"role": "it", "resource": "Settings", "action": "System-Settings", "allowed": True}
    )

    await editor.reset_to_defaults()

    alias = next(r for r in fake_supabase.permission_rows if r["resource"] == "Settings")
    assert alias["allowed"] is True
    engine = AuthorizationEngine(cache, admin_role="admin")
    assert await engine.has_permission("it", "system-settings") is True

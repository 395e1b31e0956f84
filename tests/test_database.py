"""
Unit tests for DatabaseClient query construction.

The supabase client is a MagicMock whose builder methods return the same
query object, so each test can assert on the filters that were applied.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from bot_orchestrator.bot_state import ACTIVE_STATUSES, BotStatus, DeploymentPlatform, SlotStatus
from bot_orchestrator.database import DatabaseClient


CUTOFF = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_client(rows=None):
    """DatabaseClient over a chainable query mock returning `rows`."""
    query = MagicMock()
    for method in ("select", "update", "delete", "eq", "neq", "lt", "in_", "or_", "order", "limit"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=rows if rows is not None else [])

    supabase = MagicMock()
    supabase.table.return_value = query
    return DatabaseClient(supabase=supabase), supabase, query


class TestConstruction:

    def test_missing_credentials_rejected(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
        with pytest.raises(ValueError):
            DatabaseClient()


class TestBotQueries:

    def test_stale_active_bots(self):
        db, supabase, query = make_client(rows=[
            {'id': 1, 'status': 'IN_CALL', 'last_heartbeat': None},
        ])
        bots = asyncio.run(db.get_stale_active_bots(ACTIVE_STATUSES, CUTOFF))

        supabase.table.assert_called_with("bots")
        query.in_.assert_called_once_with('status', ['JOINING_CALL', 'IN_WAITING_ROOM', 'IN_CALL', 'LEAVING'])
        query.or_.assert_called_once_with(
            "last_heartbeat.lt.2026-03-01T12:00:00Z,last_heartbeat.is.null"
        )
        assert [b.id for b in bots] == [1]

    def test_deploying_bots_filtered_by_platform(self):
        db, _, query = make_client()
        asyncio.run(db.get_deploying_bots_created_before(CUTOFF, platform=DeploymentPlatform.AWS))

        query.eq.assert_any_call('status', 'DEPLOYING')
        query.eq.assert_any_call('deployment_platform', 'aws')
        query.lt.assert_called_once_with('created_at', '2026-03-01T12:00:00Z')

    def test_mark_fatal_only_touches_live_rows(self):
        db, _, query = make_client(rows=[{'id': 5}])
        changed = asyncio.run(db.mark_bot_fatal(5, "x" * 2000))

        fields = query.update.call_args.args[0]
        assert fields['status'] == 'FATAL'
        assert 'end_time' in fields
        assert len(fields['deployment_error']) == 1024
        query.neq.assert_any_call('status', 'FATAL')
        query.neq.assert_any_call('status', 'DONE')
        assert changed is True

    def test_mark_fatal_on_terminal_bot_reports_no_change(self):
        db, _, _ = make_client(rows=[])
        assert asyncio.run(db.mark_bot_fatal(5)) is False

    def test_conditional_status_update(self):
        db, _, query = make_client(rows=[{'id': 5}])
        asyncio.run(db.update_bot_status(5, BotStatus.JOINING_CALL, expected_status=BotStatus.DEPLOYING))

        query.update.assert_called_once_with({'status': 'JOINING_CALL'})
        query.eq.assert_any_call('status', 'DEPLOYING')


class TestSlotQueries:

    def test_stuck_slots_filter(self):
        db, supabase, query = make_client(rows=[
            {'id': 8, 'slot_name': 'slot-8', 'application_uuid': 'u8', 'status': 'HEALTHY', 'assigned_bot_id': None},
        ])
        slots = asyncio.run(db.get_stuck_slots(CUTOFF))

        supabase.table.assert_called_with("bot_pool_slots")
        query.or_.assert_called_once_with(
            "status.eq.ERROR,"
            "and(status.eq.DEPLOYING,last_used_at.lt.2026-03-01T12:00:00Z),"
            "and(status.eq.HEALTHY,assigned_bot_id.is.null)"
        )
        assert slots[0].is_orphaned

    def test_update_slot_serializes_values(self):
        db, _, query = make_client(rows=[{'id': 1}])
        asyncio.run(db.update_slot(1, {'status': SlotStatus.IDLE, 'last_used_at': CUTOFF, 'assigned_bot_id': None}))

        query.update.assert_called_once_with({
            'status': 'IDLE',
            'last_used_at': '2026-03-01T12:00:00Z',
            'assigned_bot_id': None,
        })

    def test_delete_slot(self):
        db, _, query = make_client(rows=[])
        assert asyncio.run(db.delete_slot(3)) is False
        query.delete.assert_called_once()
        query.eq.assert_called_with('id', 3)

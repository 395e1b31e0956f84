"""
Database access for the recovery workers.

Thin async wrapper over the Supabase (PostgREST) client. Only the two tables the
recovery subsystem touches are covered: `bots` and `bot_pool_slots`. Every method
is a single filtered query or a single targeted row update/delete; there are no
multi-table transactions; the next tick reconciles any residual drift.
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client, create_client

from .bot_state import (
    Bot,
    BotStatus,
    DeploymentPlatform,
    PoolSlot,
    SlotStatus,
    format_timestamp,
)

logger = logging.getLogger(__name__)

BOTS_TABLE = "bots"
SLOTS_TABLE = "bot_pool_slots"

# Column is varchar(1024)
MAX_ERROR_LENGTH = 1024


def _values(items: Iterable[Any]) -> List[str]:
    return [item.value if hasattr(item, 'value') else str(item) for item in items]


class DatabaseClient:
    """Async facade over the bots / pool slot tables."""

    def __init__(self, supabase: Optional[Client] = None):
        if supabase is None:
            url = os.getenv("SUPABASE_URL")
            key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
            if not url or not key:
                raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
            supabase = create_client(url, key)
        self.supabase = supabase

    async def _execute(self, query) -> List[Dict[str, Any]]:
        # supabase-py is blocking; keep the event loop free for the other workers
        response = await asyncio.to_thread(query.execute)
        return response.data or []

    # =========================================================================
    # Bots
    # =========================================================================

    async def get_stale_active_bots(
        self,
        statuses: Iterable[BotStatus],
        heartbeat_cutoff: datetime,
    ) -> List[Bot]:
        """Bots in `statuses` whose heartbeat is older than the cutoff or missing."""
        cutoff = format_timestamp(heartbeat_cutoff)
        query = self.supabase.table(BOTS_TABLE).select('*') \
            .in_('status', _values(statuses)) \
            .or_(f"last_heartbeat.lt.{cutoff},last_heartbeat.is.null")
        rows = await self._execute(query)
        return [Bot.from_row(row) for row in rows]

    async def get_deploying_bots_created_before(
        self,
        cutoff: datetime,
        platform: Optional[DeploymentPlatform] = None,
    ) -> List[Bot]:
        """DEPLOYING bots older than the cutoff, optionally restricted to one platform."""
        query = self.supabase.table(BOTS_TABLE).select('*') \
            .eq('status', BotStatus.DEPLOYING.value) \
            .lt('created_at', format_timestamp(cutoff))
        if platform is not None:
            query = query.eq('deployment_platform', platform.value)
        rows = await self._execute(query.order('created_at'))
        return [Bot.from_row(row) for row in rows]

    async def get_bots_by_status(
        self,
        statuses: Iterable[BotStatus],
        platform: Optional[DeploymentPlatform] = None,
    ) -> List[Bot]:
        query = self.supabase.table(BOTS_TABLE).select('*').in_('status', _values(statuses))
        if platform is not None:
            query = query.eq('deployment_platform', platform.value)
        rows = await self._execute(query)
        return [Bot.from_row(row) for row in rows]

    async def get_bot_by_id(self, bot_id: int) -> Optional[Bot]:
        query = self.supabase.table(BOTS_TABLE).select('*').eq('id', bot_id).limit(1)
        rows = await self._execute(query)
        return Bot.from_row(rows[0]) if rows else None

    async def mark_bot_fatal(self, bot_id: int, error_message: Optional[str] = None) -> bool:
        """
        Move a bot to FATAL.

        Only rows that are not already terminal are touched, so marking a FATAL
        (or DONE) bot again changes nothing. Returns True if a row changed.
        """
        fields: Dict[str, Any] = {
            'status': BotStatus.FATAL.value,
            'end_time': format_timestamp(datetime.now(timezone.utc)),
        }
        if error_message:
            fields['deployment_error'] = error_message[:MAX_ERROR_LENGTH]

        query = self.supabase.table(BOTS_TABLE).update(fields) \
            .eq('id', bot_id) \
            .neq('status', BotStatus.FATAL.value) \
            .neq('status', BotStatus.DONE.value)
        rows = await self._execute(query)
        return len(rows) > 0

    async def update_bot_status(
        self,
        bot_id: int,
        status: BotStatus,
        expected_status: Optional[BotStatus] = None,
    ) -> bool:
        """Set a bot's status; with `expected_status`, only if it still has that status."""
        query = self.supabase.table(BOTS_TABLE).update({'status': status.value}).eq('id', bot_id)
        if expected_status is not None:
            query = query.eq('status', expected_status.value)
        rows = await self._execute(query)
        return len(rows) > 0

    # =========================================================================
    # Pool slots
    # =========================================================================

    async def get_stuck_slots(self, deploying_cutoff: datetime) -> List[PoolSlot]:
        """
        Slots needing recovery:
        ERROR, or DEPLOYING not touched since the cutoff, or HEALTHY with no bot.
        """
        cutoff = format_timestamp(deploying_cutoff)
        query = self.supabase.table(SLOTS_TABLE).select('*').or_(
            f"status.eq.{SlotStatus.ERROR.value},"
            f"and(status.eq.{SlotStatus.DEPLOYING.value},last_used_at.lt.{cutoff}),"
            f"and(status.eq.{SlotStatus.HEALTHY.value},assigned_bot_id.is.null)"
        ).order('id')
        rows = await self._execute(query)
        return [PoolSlot.from_row(row) for row in rows]

    async def get_pool_slots(self) -> List[PoolSlot]:
        rows = await self._execute(self.supabase.table(SLOTS_TABLE).select('*').order('id'))
        return [PoolSlot.from_row(row) for row in rows]

    async def get_slot_by_bot_id(self, bot_id: int) -> Optional[PoolSlot]:
        query = self.supabase.table(SLOTS_TABLE).select('*').eq('assigned_bot_id', bot_id).limit(1)
        rows = await self._execute(query)
        return PoolSlot.from_row(rows[0]) if rows else None

    async def update_slot(self, slot_id: int, fields: Dict[str, Any]) -> bool:
        payload = {
            key: (value.value if isinstance(value, SlotStatus) else
                  format_timestamp(value) if isinstance(value, datetime) else value)
            for key, value in fields.items()
        }
        query = self.supabase.table(SLOTS_TABLE).update(payload).eq('id', slot_id)
        rows = await self._execute(query)
        return len(rows) > 0

    async def delete_slot(self, slot_id: int) -> bool:
        rows = await self._execute(self.supabase.table(SLOTS_TABLE).delete().eq('id', slot_id))
        return len(rows) > 0

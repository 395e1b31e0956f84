"""
Coolify pool slot recovery.

Works on slots rather than bots. Candidates are slots in ERROR, slots stuck in
DEPLOYING past the deploying timeout, and HEALTHY slots with no bot.

    candidate slot
        |
        assigned bot alive (fresh heartbeat)?
        |-- yes: skip, bump last_used_at and recovery_attempts;
        |        after MAX_SKIPPED_RECOVERIES skips, set the slot HEALTHY
        |-- no:  recovery_attempts >= MAX_RECOVERY_ATTEMPTS?
                 |-- yes: bot FATAL, delete app (best effort), delete slot row
                 |-- no:  bot FATAL, stop app, reset slot to IDLE
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from ..bot_state import PoolSlot, RecoveryResult, SlotStatus, has_fresh_heartbeat
from ..config import RecoveryConfig
from ..platforms import BotPoolService
from .base import RecoveryStrategy

if TYPE_CHECKING:
    from ..database import DatabaseClient

logger = logging.getLogger(__name__)


class CoolifyRecoveryStrategy(RecoveryStrategy):
    name = "CoolifyRecovery"

    def __init__(self, db: 'DatabaseClient', pool: Optional[BotPoolService], config: RecoveryConfig):
        self.db = db
        self.pool = pool
        self.config = config

    async def recover(self) -> RecoveryResult:
        result = RecoveryResult.with_counters("deleted", "skipped")
        if self.pool is None:
            return result

        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.config.deploying_timeout_sec)
        stuck_slots = await self.db.get_stuck_slots(cutoff)

        if not stuck_slots:
            return result

        logger.info(f"[{self.name}] Found {len(stuck_slots)} stuck Coolify slots to process")

        for slot in stuck_slots:
            try:
                await self._process_slot(slot, now, result)
            except Exception as e:
                logger.error(f"[{self.name}] Failed to process {slot.slot_name}: {e}")
                result.failed += 1

        return result

    async def _process_slot(self, slot: PoolSlot, now: datetime, result: RecoveryResult) -> None:
        # Any stuck slot whose bot still heartbeats is kept, whatever the slot status;
        # an ERROR slot of a live bot ends up HEALTHY once the skips run out
        if slot.assigned_bot_id is not None and await self._bot_is_alive(slot, now):
            if slot.recovery_attempts >= self.config.max_skipped_recoveries:
                await self._fix_slot_status_to_healthy(slot, now)
            else:
                await self._bump_slot_timestamp(slot, now)
            result.increment("skipped")
            return

        if slot.recovery_attempts >= self.config.max_recovery_attempts:
            fatal_bot = await self._delete_slot_permanently(slot)
            if fatal_bot is not None:
                result.record_fatal(fatal_bot)
            result.increment("deleted")
            return

        if await self._attempt_slot_recovery(slot, result):
            result.recovered += 1
        else:
            result.failed += 1

    # =========================================================================
    # Heartbeat arbitration
    # =========================================================================

    async def _bot_is_alive(self, slot: PoolSlot, now: datetime) -> bool:
        """The slot's bot is still running and heartbeating; the slot status just lags."""
        bot = await self.db.get_bot_by_id(slot.assigned_bot_id)
        if bot is None or bot.is_terminal:
            return False
        return has_fresh_heartbeat(bot, now, self.config.heartbeat_freshness_sec)

    async def _bump_slot_timestamp(self, slot: PoolSlot, now: datetime) -> None:
        skip_count = slot.recovery_attempts + 1
        await self.db.update_slot(slot.id, {
            'last_used_at': now,
            'recovery_attempts': skip_count,
        })
        logger.info(
            f"[{self.name}] Skipped recovery for {slot.slot_name} - bot {slot.assigned_bot_id} "
            f"has recent heartbeat (skip count: {skip_count})"
        )

    async def _fix_slot_status_to_healthy(self, slot: PoolSlot, now: datetime) -> None:
        await self.db.update_slot(slot.id, {
            'status': SlotStatus.HEALTHY,
            'recovery_attempts': 0,
            'last_used_at': now,
        })
        logger.info(f"[{self.name}] Fixed slot {slot.slot_name} status to HEALTHY - bot is alive with heartbeats")

    # =========================================================================
    # Repair and give-up
    # =========================================================================

    async def _attempt_slot_recovery(self, slot: PoolSlot, result: RecoveryResult) -> bool:
        attempt = slot.recovery_attempts + 1
        logger.info(
            f"[{self.name}] Attempting recovery for {slot.slot_name} "
            f"(attempt {attempt}/{self.config.max_recovery_attempts})"
        )

        try:
            if slot.assigned_bot_id is not None:
                if await self.db.mark_bot_fatal(slot.assigned_bot_id, f"Pool slot {slot.slot_name} recovered"):
                    result.record_fatal(slot.assigned_bot_id)
                    logger.info(
                        f"[{self.name}] Updated bot {slot.assigned_bot_id} status to FATAL "
                        f"(slot {slot.slot_name} recovered)"
                    )

            await self.pool.reset_slot_to_idle(slot.id, slot.application_uuid)
            logger.info(f"[{self.name}] Successfully recovered {slot.slot_name}")
            return True

        except Exception as e:
            logger.error(f"[{self.name}] Failed to recover {slot.slot_name}: {e}")
            try:
                await self.db.update_slot(slot.id, {'recovery_attempts': attempt})
            except Exception as update_error:
                logger.error(
                    f"[{self.name}] Failed to record attempt {attempt} for {slot.slot_name}: {update_error}"
                )
            return False

    async def _delete_slot_permanently(self, slot: PoolSlot) -> Optional[int]:
        """Give up on a slot. Returns the id of the bot moved to FATAL, if any."""
        logger.warning(
            f"[{self.name}] Deleting permanently failed slot {slot.slot_name} "
            f"(attempts: {slot.recovery_attempts})"
        )

        fatal_bot = None
        if slot.assigned_bot_id is not None:
            if await self.db.mark_bot_fatal(slot.assigned_bot_id, f"Pool slot {slot.slot_name} deleted"):
                fatal_bot = slot.assigned_bot_id
                logger.info(
                    f"[{self.name}] Updated bot {slot.assigned_bot_id} status to FATAL "
                    f"(slot {slot.slot_name} deleted)"
                )

        try:
            await self.pool.coolify.delete_application(slot.application_uuid)
        except Exception as e:
            logger.error(f"[{self.name}] Failed to delete Coolify app {slot.application_uuid}: {e}")

        await self.db.delete_slot(slot.id)
        logger.info(f"[{self.name}] Deleted slot {slot.slot_name}")
        return fatal_bot

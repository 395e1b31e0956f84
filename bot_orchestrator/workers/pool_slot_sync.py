"""
Pool slot / Coolify consistency sync.

Bidirectional orphan check between the bot_pool_slots table and the Coolify
application list, joined on application_uuid:

- Platform orphan (app in Coolify, no slot row): slot creation crashed after
  the app was made. The app is deleted from Coolify.
- Database orphan (slot row, no app in Coolify): the app was removed outside the
  system. The slot's bot, if any, is marked FATAL, then the row is deleted.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..bot_state import PoolSlot
from ..config import RecoveryConfig
from ..platforms import CoolifyApplication
from .base import BaseWorker

if TYPE_CHECKING:
    from ..database import DatabaseClient
    from ..services import Services

logger = logging.getLogger(__name__)


class PoolSlotSyncWorker(BaseWorker):
    name = "PoolSlotSyncWorker"

    def __init__(
        self,
        db: 'DatabaseClient',
        services: 'Services',
        config: RecoveryConfig,
        interval_sec: Optional[float] = None,
        run_on_start: Optional[bool] = None,
    ):
        super().__init__(
            db,
            services,
            interval_sec=config.pool_sync_interval_sec if interval_sec is None else interval_sec,
            run_on_start=config.run_on_start if run_on_start is None else run_on_start,
        )
        self.config = config

    async def execute(self) -> Dict[str, Any]:
        result = {
            "platform_orphans_deleted": 0,
            "database_orphans_deleted": 0,
            "bots_marked_fatal": 0,
            "total_platform_apps": 0,
            "total_database_slots": 0,
            "failed": 0,
        }

        coolify = self.services.coolify
        if coolify is None:
            logger.info(f"[{self.name}] Coolify service not available, skipping sync")
            return result

        apps, slots = await asyncio.gather(
            coolify.list_pool_applications(),
            self.db.get_pool_slots(),
        )
        result["total_platform_apps"] = len(apps)
        result["total_database_slots"] = len(slots)

        platform_uuids = {app.uuid for app in apps}
        database_uuids = {slot.application_uuid for slot in slots}

        for app in apps:
            if app.uuid not in database_uuids:
                await self._delete_platform_orphan(app, result)

        for slot in slots:
            if slot.application_uuid not in platform_uuids:
                await self._delete_database_orphan(slot, result)

        return result

    async def _delete_platform_orphan(self, app: CoolifyApplication, result: Dict[str, Any]) -> None:
        logger.warning(f"[{self.name}] Found Coolify orphan: {app.name} ({app.uuid})")
        try:
            await self.services.coolify.delete_application(app.uuid)
            result["platform_orphans_deleted"] += 1
            logger.info(f"[{self.name}] Deleted Coolify orphan: {app.name} ({app.uuid})")
        except Exception as e:
            logger.error(f"[{self.name}] Failed to delete Coolify orphan {app.uuid}: {e}")
            result["failed"] += 1

    async def _delete_database_orphan(self, slot: PoolSlot, result: Dict[str, Any]) -> None:
        logger.warning(f"[{self.name}] Found database orphan: {slot.slot_name} ({slot.application_uuid})")
        try:
            # The bot's infrastructure is gone; it must not outlive its slot as a live bot
            if slot.assigned_bot_id is not None:
                if await self.db.mark_bot_fatal(
                    slot.assigned_bot_id, f"Pool slot {slot.slot_name} application no longer exists"
                ):
                    result["bots_marked_fatal"] += 1
                    logger.info(f"[{self.name}] Marked bot {slot.assigned_bot_id} as FATAL")

            await self.db.delete_slot(slot.id)
            result["database_orphans_deleted"] += 1
            logger.info(f"[{self.name}] Deleted database orphan: {slot.slot_name}")
        except Exception as e:
            logger.error(f"[{self.name}] Failed to delete database orphan {slot.slot_name}: {e}")
            result["failed"] += 1

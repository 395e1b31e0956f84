"""
Heartbeat health classifier.

Catches bots whose process died without reporting it: any bot in an active
status (JOINING_CALL, IN_WAITING_ROOM, IN_CALL, LEAVING) whose heartbeat is
older than HEARTBEAT_TIMEOUT_SEC, or missing, is marked FATAL and its platform
resources are released.

DEPLOYING bots are not checked here. They have no process sending heartbeats
yet; the recovery strategies own their timeouts.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..bot_state import ACTIVE_STATUSES, RecoveryResult
from ..config import RecoveryConfig
from .base import BaseWorker

if TYPE_CHECKING:
    from ..database import DatabaseClient
    from ..services import Services

logger = logging.getLogger(__name__)


class BotHealthWorker(BaseWorker):
    name = "BotHealthWorker"

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
            interval_sec=config.health_interval_sec if interval_sec is None else interval_sec,
            run_on_start=config.run_on_start if run_on_start is None else run_on_start,
        )
        self.config = config
        self.last_result: Optional[RecoveryResult] = None

    async def execute(self) -> Dict[str, Any]:
        self.last_result = await self.check_heartbeats()
        return self.last_result.to_dict()

    async def check_heartbeats(self) -> RecoveryResult:
        result = RecoveryResult.with_counters("checked", "marked_fatal", "resources_released")

        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.config.heartbeat_timeout_sec)
        stale_bots = await self.db.get_stale_active_bots(ACTIVE_STATUSES, cutoff)
        result.counters["checked"] = len(stale_bots)

        if not stale_bots:
            return result

        logger.info(f"[{self.name}] Found {len(stale_bots)} bots with stale heartbeats")
        timeout_min = self.config.heartbeat_timeout_sec // 60
        error_message = f"Bot crashed or stopped responding (no heartbeat for {timeout_min}+ minutes)"

        for bot in stale_bots:
            try:
                last_heartbeat = bot.last_heartbeat.isoformat() if bot.last_heartbeat else "never"
                logger.info(
                    f"[{self.name}] Marking bot {bot.id} as FATAL "
                    f"(status: {bot.status.value}, lastHeartbeat: {last_heartbeat})"
                )

                if not await self.db.mark_bot_fatal(bot.id, error_message):
                    logger.info(f"[{self.name}] Bot {bot.id} already terminal, skipping")
                    continue

                result.recovered += 1
                result.increment("marked_fatal")
                result.record_fatal(bot.id)

                if not bot.has_platform_resource:
                    continue

                try:
                    if await self.services.release_bot(bot):
                        result.increment("resources_released")
                        logger.info(f"[{self.name}] Released platform resources for bot {bot.id}")
                except Exception as e:
                    logger.error(f"[{self.name}] Failed to release resources for bot {bot.id}: {e}")
                    result.failed += 1

            except Exception as e:
                logger.error(f"[{self.name}] Failed to process bot {bot.id}: {e}")
                result.failed += 1

        return result

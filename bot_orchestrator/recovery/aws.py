"""
AWS ECS recovery.

ECS notices task death before the bot row does, so the orphan check runs in the
opposite direction from Kubernetes: non-terminal bots with a stale heartbeat
are looked up in ECS, and a task that is gone or stopped makes the bot FATAL.
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from ..bot_state import NON_TERMINAL_STATUSES, DeploymentPlatform, RecoveryResult, has_fresh_heartbeat
from ..config import RecoveryConfig
from ..platforms import AWSBotStatus, AWSPlatformClient
from .base import PlatformRecoveryStrategy

if TYPE_CHECKING:
    from ..database import DatabaseClient

logger = logging.getLogger(__name__)


class AWSRecoveryStrategy(PlatformRecoveryStrategy):
    name = "AWSRecovery"
    platform = DeploymentPlatform.AWS
    resource_label = "ECS task"
    counter_names = ("stuck_deploying", "status_corrected", "orphaned_tasks")

    def __init__(self, db: 'DatabaseClient', aws: Optional[AWSPlatformClient], config: RecoveryConfig):
        super().__init__(db, aws, config)

    async def _cleanup_orphans(self, result: RecoveryResult) -> None:
        active_bots = await self.db.get_bots_by_status(NON_TERMINAL_STATUSES, platform=self.platform)
        now = datetime.now(timezone.utc)

        for bot in active_bots:
            if not bot.platform_identifier:
                continue
            if has_fresh_heartbeat(bot, now, self.config.heartbeat_freshness_sec):
                continue

            try:
                status = await self.client.get_bot_status(bot.platform_identifier)
                if status not in (AWSBotStatus.FAILED, AWSBotStatus.STOPPED):
                    continue

                logger.info(
                    f"[{self.name}] Found orphaned bot {bot.id} - task {bot.platform_identifier} is {status.value}"
                )
                if await self.db.mark_bot_fatal(bot.id, f"ECS task {status.value.lower()}"):
                    result.recovered += 1
                    result.increment("orphaned_tasks")
                    result.record_fatal(bot.id)
            except Exception as e:
                logger.error(f"[{self.name}] Failed to check task for bot {bot.id}: {e}")
                result.failed += 1

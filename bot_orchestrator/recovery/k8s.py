"""
Kubernetes recovery.

Besides stuck DEPLOYING bots, looks for Jobs that outlived their bot: a bot can
be marked FATAL (by the health classifier, a user, or another strategy) without
its Job being deleted.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..bot_state import BotStatus, DeploymentPlatform, RecoveryResult
from ..config import RecoveryConfig
from ..platforms import K8sPlatformClient
from .base import PlatformRecoveryStrategy

if TYPE_CHECKING:
    from ..database import DatabaseClient

logger = logging.getLogger(__name__)


class K8sRecoveryStrategy(PlatformRecoveryStrategy):
    name = "K8sRecovery"
    platform = DeploymentPlatform.K8S
    resource_label = "K8s Job"
    counter_names = ("stuck_deploying", "status_corrected", "orphaned_jobs")

    def __init__(self, db: 'DatabaseClient', k8s: Optional[K8sPlatformClient], config: RecoveryConfig):
        super().__init__(db, k8s, config)

    async def _cleanup_orphans(self, result: RecoveryResult) -> None:
        fatal_bots = await self.db.get_bots_by_status([BotStatus.FATAL], platform=self.platform)

        for bot in fatal_bots:
            if not bot.platform_identifier:
                continue

            try:
                job = await self.client.get_job(bot.platform_identifier)
                if job is None:
                    continue

                logger.info(f"[{self.name}] Cleaning up orphaned Job {bot.platform_identifier} for bot {bot.id}")
                await self.client.stop_bot(bot.platform_identifier)
                result.recovered += 1
                result.increment("orphaned_jobs")
            except Exception as e:
                logger.error(f"[{self.name}] Failed to clean up Job {bot.platform_identifier} for bot {bot.id}: {e}")
                result.failed += 1

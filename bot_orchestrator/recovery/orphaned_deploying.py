"""
Platform-agnostic safety net for bots stuck in DEPLOYING.

Catches bots whose platform was never recorded (deployment failed early) and
anything the platform strategies missed. It overlaps with them on purpose;
marking an already-FATAL bot changes nothing.

A bot that is still DEPLOYING but already heartbeats is running; its status
just lags, so it is moved on to JOINING_CALL instead of being killed.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from ..bot_state import BotStatus, RecoveryResult, has_fresh_heartbeat
from ..config import RecoveryConfig
from .base import RecoveryStrategy

if TYPE_CHECKING:
    from ..database import DatabaseClient

logger = logging.getLogger(__name__)


class OrphanedDeployingStrategy(RecoveryStrategy):
    name = "OrphanedDeploying"

    def __init__(self, db: 'DatabaseClient', config: RecoveryConfig):
        self.db = db
        self.config = config

    async def recover(self) -> RecoveryResult:
        result = RecoveryResult.with_counters("stuck_deploying", "status_corrected")

        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.config.deploying_timeout_sec)
        stuck_bots = await self.db.get_deploying_bots_created_before(cutoff)

        if not stuck_bots:
            return result

        logger.info(f"[{self.name}] Found {len(stuck_bots)} bots stuck in DEPLOYING")
        timeout_min = self.config.deploying_timeout_sec // 60

        for bot in stuck_bots:
            try:
                if has_fresh_heartbeat(bot, now, self.config.heartbeat_freshness_sec):
                    logger.info(f"[{self.name}] Bot {bot.id} has recent heartbeat, updating to JOINING_CALL")
                    if await self.db.update_bot_status(
                        bot.id, BotStatus.JOINING_CALL, expected_status=BotStatus.DEPLOYING
                    ):
                        result.recovered += 1
                        result.increment("status_corrected")
                    continue

                platform = bot.deployment_platform.value if bot.deployment_platform else "none"
                if await self.db.mark_bot_fatal(bot.id, f"Stuck in DEPLOYING for over {timeout_min} minutes"):
                    logger.info(f"[{self.name}] Marked bot {bot.id} as FATAL (platform: {platform})")
                    result.recovered += 1
                    result.increment("stuck_deploying")
                    result.record_fatal(bot.id)
            except Exception as e:
                logger.error(f"[{self.name}] Failed to recover bot {bot.id}: {e}")
                result.failed += 1

        return result

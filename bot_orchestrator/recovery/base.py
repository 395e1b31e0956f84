"""
Recovery strategy interface.

A strategy detects and repairs one category of stuck resource, usually for one
platform. `recover()` must not raise for per-item problems: each bot or slot is
handled on its own and failures are counted in the result. A strategy whose
platform client is missing returns an empty result.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional, Tuple

from ..bot_state import BotStatus, DeploymentPlatform, RecoveryResult, has_fresh_heartbeat
from ..config import RecoveryConfig

if TYPE_CHECKING:
    from ..database import DatabaseClient

logger = logging.getLogger(__name__)


class RecoveryStrategy(ABC):
    name = "RecoveryStrategy"

    @abstractmethod
    async def recover(self) -> RecoveryResult:
        """Run one recovery pass."""


class PlatformRecoveryStrategy(RecoveryStrategy):
    """
    Shared shape of the one-bot-per-resource platforms (K8s Jobs, ECS tasks).

    Two passes per tick: stuck DEPLOYING bots first, then the platform-specific
    orphan check implemented by subclasses.
    """

    platform: DeploymentPlatform
    resource_label = "resource"
    counter_names: Tuple[str, ...] = ("stuck_deploying", "status_corrected")

    def __init__(self, db: 'DatabaseClient', client: Optional[Any], config: RecoveryConfig):
        self.db = db
        self.client = client
        self.config = config

    async def recover(self) -> RecoveryResult:
        result = RecoveryResult.with_counters(*self.counter_names)
        if self.client is None:
            return result

        await self._cleanup_stuck_deploying(result)
        await self._cleanup_orphans(result)
        return result

    @abstractmethod
    async def _cleanup_orphans(self, result: RecoveryResult) -> None:
        ...

    async def _cleanup_stuck_deploying(self, result: RecoveryResult) -> None:
        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.config.deploying_timeout_sec)
        stuck_bots = await self.db.get_deploying_bots_created_before(cutoff, platform=self.platform)

        if not stuck_bots:
            return

        logger.info(f"[{self.name}] Found {len(stuck_bots)} {self.platform.value} bots stuck in DEPLOYING")

        for bot in stuck_bots:
            try:
                if has_fresh_heartbeat(bot, now, self.config.heartbeat_freshness_sec):
                    # Alive, only the status update was lost
                    logger.info(f"[{self.name}] Bot {bot.id} has recent heartbeat, updating to JOINING_CALL")
                    if await self.db.update_bot_status(
                        bot.id, BotStatus.JOINING_CALL, expected_status=BotStatus.DEPLOYING
                    ):
                        result.recovered += 1
                        result.increment("status_corrected")
                    continue

                created = bot.created_at.isoformat() if bot.created_at else "unknown"
                logger.info(f"[{self.name}] Cleaning up stuck bot {bot.id} (created: {created})")

                if bot.platform_identifier:
                    try:
                        await self.client.stop_bot(bot.platform_identifier)
                        logger.info(f"[{self.name}] Stopped {self.resource_label} {bot.platform_identifier}")
                    except Exception as e:
                        logger.info(
                            f"[{self.name}] {self.resource_label} {bot.platform_identifier} "
                            f"could not be stopped, assuming already gone: {e}"
                        )

                timeout_min = self.config.deploying_timeout_sec // 60
                if await self.db.mark_bot_fatal(bot.id, f"Stuck in DEPLOYING for over {timeout_min} minutes"):
                    result.recovered += 1
                    result.increment("stuck_deploying")
                    result.record_fatal(bot.id)

            except Exception as e:
                logger.error(f"[{self.name}] Failed to recover bot {bot.id}: {e}")
                result.failed += 1

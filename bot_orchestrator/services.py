"""
Service container shared by all workers.

Each platform client is optional. A platform whose environment is not set up
gets None here, and every strategy for that platform turns into a no-op.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from .bot_state import Bot, DeploymentPlatform
from .config import RecoveryConfig
from .deployment_queue import DeploymentQueue
from .errors import PlatformNotConfiguredError
from .platforms import AWSPlatformClient, BotPoolService, CoolifyClient, K8sPlatformClient

if TYPE_CHECKING:
    from .database import DatabaseClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    coolify: Optional[CoolifyClient] = None
    pool: Optional[BotPoolService] = None
    k8s: Optional[K8sPlatformClient] = None
    aws: Optional[AWSPlatformClient] = None
    deployment_queue: Optional[DeploymentQueue] = None

    def configured_platforms(self) -> List[str]:
        platforms = []
        if self.coolify is not None:
            platforms.append(DeploymentPlatform.COOLIFY.value)
        if self.k8s is not None:
            platforms.append(DeploymentPlatform.K8S.value)
        if self.aws is not None:
            platforms.append(DeploymentPlatform.AWS.value)
        return platforms

    async def release_bot(self, bot: Bot) -> bool:
        """
        Tear down whatever a bot is running on.

        Coolify bots give their slot back to the pool; K8s and AWS bots have their
        Job/task stopped. Returns False when there was nothing to release.
        Raises PlatformNotConfiguredError if the bot's platform has no client.
        """
        platform = bot.deployment_platform
        if platform is None:
            return False

        if platform == DeploymentPlatform.COOLIFY:
            if self.pool is None:
                raise PlatformNotConfiguredError(platform.value)
            return await self.pool.release_bot(bot.id)

        if not bot.platform_identifier:
            return False

        if platform == DeploymentPlatform.K8S:
            if self.k8s is None:
                raise PlatformNotConfiguredError(platform.value)
            await self.k8s.stop_bot(bot.platform_identifier)
            return True

        if platform == DeploymentPlatform.AWS:
            if self.aws is None:
                raise PlatformNotConfiguredError(platform.value)
            await self.aws.stop_bot(bot.platform_identifier)
            return True

        raise PlatformNotConfiguredError(platform.value)

    async def aclose(self) -> None:
        if self.coolify is not None:
            await self.coolify.aclose()


def create_services(db: 'DatabaseClient', config: RecoveryConfig) -> Services:
    """Build every platform client the environment has credentials for."""
    coolify = CoolifyClient.from_env()
    services = Services(
        coolify=coolify,
        pool=BotPoolService(db, coolify) if coolify is not None else None,
        k8s=K8sPlatformClient.from_env(),
        aws=AWSPlatformClient.from_env(),
        deployment_queue=DeploymentQueue(
            max_concurrent=config.queue_max_concurrent,
            timeout_sec=config.queue_timeout_sec,
        ),
    )

    configured = services.configured_platforms()
    if configured:
        logger.info(f"Configured platforms: {', '.join(configured)}")
    else:
        logger.warning("No deployment platform configured, recovery strategies will be no-ops")
    return services

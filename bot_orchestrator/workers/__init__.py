"""
Background workers and their lifecycle.

`start_workers()` builds the worker set from config and starts their timers;
`stop_workers()` stops the timers and waits for in-flight executions.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List

from ..config import RecoveryConfig
from .base import BaseWorker
from .bot_health import BotHealthWorker
from .bot_recovery import BotRecoveryWorker
from .pool_slot_sync import PoolSlotSyncWorker

if TYPE_CHECKING:
    from ..database import DatabaseClient
    from ..services import Services

logger = logging.getLogger(__name__)

__all__ = [
    "BaseWorker",
    "BotHealthWorker",
    "BotRecoveryWorker",
    "PoolSlotSyncWorker",
    "WorkerInstances",
    "create_workers",
    "start_workers",
    "stop_workers",
]


@dataclass
class WorkerInstances:
    """Named worker handles, for lifecycle control and manual execution."""

    bot_health: BotHealthWorker
    bot_recovery: BotRecoveryWorker
    pool_slot_sync: PoolSlotSyncWorker

    def scheduled(self) -> List[BaseWorker]:
        """Workers that own a timer. Health runs inside recovery unless it has its own interval."""
        workers: List[BaseWorker] = [self.bot_recovery, self.pool_slot_sync]
        if self.bot_health.interval_sec > 0:
            workers.insert(0, self.bot_health)
        return workers


def create_workers(db: 'DatabaseClient', services: 'Services', config: RecoveryConfig) -> WorkerInstances:
    bot_health = BotHealthWorker(db, services, config)
    return WorkerInstances(
        bot_health=bot_health,
        bot_recovery=BotRecoveryWorker(db, services, config, health_worker=bot_health),
        pool_slot_sync=PoolSlotSyncWorker(db, services, config),
    )


def start_workers(db: 'DatabaseClient', services: 'Services', config: RecoveryConfig) -> WorkerInstances:
    """Create and start all background workers. Must be called inside a running event loop."""
    workers = create_workers(db, services, config)
    scheduled = workers.scheduled()

    logger.info(f"[Workers] Starting {len(scheduled)} background workers...")
    for worker in scheduled:
        worker.start()
    return workers


async def stop_workers(workers: WorkerInstances) -> None:
    scheduled = workers.scheduled()
    logger.info(f"[Workers] Stopping {len(scheduled)} workers...")
    for worker in scheduled:
        worker.stop()
    for worker in scheduled:
        await worker.wait_idle()

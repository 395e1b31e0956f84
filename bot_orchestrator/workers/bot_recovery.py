"""
Recovery orchestrator.

Each tick:
  1. Heartbeat health classifier (when wired in)
  2. Strategies, in order: OrphanedDeploying, K8s, AWS, Coolify
  3. Deployment queue: release reservations of bots that just went FATAL,
     log queue pressure, then drain the queue

Strategies run one after another. A strategy that raises is logged and counted
as one failure; the rest still run. Queue problems never fail the tick.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..bot_state import RecoveryResult
from ..config import RecoveryConfig
from ..recovery import (
    AWSRecoveryStrategy,
    CoolifyRecoveryStrategy,
    K8sRecoveryStrategy,
    OrphanedDeployingStrategy,
    RecoveryStrategy,
)
from .base import BaseWorker, format_result
from .bot_health import BotHealthWorker

if TYPE_CHECKING:
    from ..database import DatabaseClient
    from ..services import Services

logger = logging.getLogger(__name__)


class BotRecoveryWorker(BaseWorker):
    name = "BotRecoveryWorker"

    def __init__(
        self,
        db: 'DatabaseClient',
        services: 'Services',
        config: RecoveryConfig,
        health_worker: Optional[BotHealthWorker] = None,
        strategies: Optional[List[RecoveryStrategy]] = None,
        interval_sec: Optional[float] = None,
        run_on_start: Optional[bool] = None,
    ):
        super().__init__(
            db,
            services,
            interval_sec=config.recovery_interval_sec if interval_sec is None else interval_sec,
            run_on_start=config.run_on_start if run_on_start is None else run_on_start,
        )
        self.config = config
        self.health_worker = health_worker

        if strategies is None:
            strategies = [
                OrphanedDeployingStrategy(db, config),
                K8sRecoveryStrategy(db, services.k8s, config),
                AWSRecoveryStrategy(db, services.aws, config),
                CoolifyRecoveryStrategy(db, services.pool, config),
            ]
        self.strategies = strategies

    async def execute(self) -> Dict[str, Any]:
        total_recovered = 0
        total_failed = 0
        fatal_bot_ids: List[int] = []

        if self.health_worker is not None:
            health = await self._run_health_check()
            if health is not None:
                total_recovered += health.recovered
                total_failed += health.failed
                fatal_bot_ids.extend(health.fatal_bot_ids)

        for strategy in self.strategies:
            try:
                result = await strategy.recover()
            except Exception as e:
                logger.error(f"[{self.name}] Strategy {strategy.name} failed: {e}", exc_info=True)
                total_failed += 1
                continue

            total_recovered += result.recovered
            total_failed += result.failed
            fatal_bot_ids.extend(result.fatal_bot_ids)

            if not result.is_empty:
                logger.info(f"[{self.name}] {strategy.name}: {format_result(result.to_dict())}")

        queue_stats = self._process_deployment_queue(fatal_bot_ids)

        summary: Dict[str, Any] = {
            "total_recovered": total_recovered,
            "total_failed": total_failed,
            "bots_marked_fatal": len(set(fatal_bot_ids)),
        }
        if queue_stats:
            summary.update({f"queue_{key}": value for key, value in queue_stats.items()})
        return summary

    async def _run_health_check(self) -> Optional[RecoveryResult]:
        """Health classifier inside the recovery tick. Its errors are isolated like a strategy's."""
        try:
            health = await self.health_worker.execute_now()
        except Exception as e:
            logger.error(f"[{self.name}] Health check failed: {e}")
            return RecoveryResult(failed=1)

        if not health:
            # Its own timer is mid-execution; that run covers this tick
            logger.info(f"[{self.name}] Health check already running, not waiting for it")
            return None
        return self.health_worker.last_result

    def _process_deployment_queue(self, fatal_bot_ids: List[int]) -> Dict[str, int]:
        queue = self.services.deployment_queue
        if queue is None:
            return {}

        try:
            released = 0
            for bot_id in dict.fromkeys(fatal_bot_ids):
                if queue.release(str(bot_id)):
                    released += 1
            if released:
                logger.info(f"[{self.name}] Released {released} deployment queue reservations of FATAL bots")

            stats = queue.get_stats()
            logger.info(
                f"[{self.name}] Deployment queue: active={stats['active']}/{stats['max_concurrent']}, "
                f"queued={stats['queued']}"
            )
            if stats['queued'] > self.config.queue_warn_depth:
                logger.warning(f"[{self.name}] Deployment queue is backing up: {stats['queued']} bots waiting")
            elif stats['active'] >= stats['max_concurrent'] and stats['queued'] > 0:
                logger.warning(
                    f"[{self.name}] Deployment queue at capacity with {stats['queued']} bots waiting"
                )

            drained = queue.process_queue()
            if any(drained.values()):
                logger.info(f"[{self.name}] Deployment queue processed: {format_result(drained)}")
            return queue.get_stats()
        except Exception as e:
            logger.error(f"[{self.name}] Failed to process deployment queue: {e}")
            return {}

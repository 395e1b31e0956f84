"""
Unit tests for the recovery orchestrator.

- Strategy order and per-strategy isolation
- Aggregated totals
- Health classifier runs inside the tick
- Deployment queue: FATAL bots release their reservation, queue errors never fail the tick
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from bot_orchestrator.bot_state import BotStatus, DeploymentPlatform, RecoveryResult, SlotStatus
from bot_orchestrator.deployment_queue import DeploymentQueue
from bot_orchestrator.recovery import (
    AWSRecoveryStrategy,
    CoolifyRecoveryStrategy,
    K8sRecoveryStrategy,
    OrphanedDeployingStrategy,
    RecoveryStrategy,
)
from bot_orchestrator.services import Services
from bot_orchestrator.workers import BotHealthWorker, BotRecoveryWorker
from tests.fakes import (
    FakeDatabase,
    make_bot,
    make_config,
    make_coolify_mock,
    make_pool,
    make_slot,
    minutes_ago,
    seconds_ago,
)


class StubStrategy(RecoveryStrategy):

    def __init__(self, name, recovered=0, failed=0, error=None, fatal=(), log=None):
        self.name = name
        self.recovered = recovered
        self.failed = failed
        self.error = error
        self.fatal = fatal
        self.log = log if log is not None else []

    async def recover(self):
        self.log.append(self.name)
        if self.error:
            raise self.error
        result = RecoveryResult(recovered=self.recovered, failed=self.failed)
        for bot_id in self.fatal:
            result.record_fatal(bot_id)
        return result


def make_worker(db=None, services=None, strategies=None, health=False) -> BotRecoveryWorker:
    db = db or FakeDatabase()
    services = services or Services()
    config = make_config()
    health_worker = BotHealthWorker(db, services, config) if health else None
    return BotRecoveryWorker(db, services, config, health_worker=health_worker, strategies=strategies)


class TestStrategies:

    def test_default_order(self):
        worker = make_worker()
        assert [type(s) for s in worker.strategies] == [
            OrphanedDeployingStrategy,
            K8sRecoveryStrategy,
            AWSRecoveryStrategy,
            CoolifyRecoveryStrategy,
        ]

    def test_totals_aggregated(self):
        worker = make_worker(strategies=[
            StubStrategy("a", recovered=2, failed=1),
            StubStrategy("b", recovered=3),
        ])
        result = asyncio.run(worker.execute_now())
        assert result["total_recovered"] == 5
        assert result["total_failed"] == 1

    def test_failing_strategy_isolated(self):
        log = []
        worker = make_worker(strategies=[
            StubStrategy("a", recovered=1, log=log),
            StubStrategy("b", error=RuntimeError("db down"), log=log),
            StubStrategy("c", recovered=1, log=log),
        ])
        result = asyncio.run(worker.execute_now())

        assert log == ["a", "b", "c"]
        assert result["total_recovered"] == 2
        assert result["total_failed"] == 1

    def test_overlapping_strategies_are_harmless(self):
        """OrphanedDeploying and K8sRecovery both match the same stuck bot."""
        db = FakeDatabase(bots=[
            make_bot(1, BotStatus.DEPLOYING, DeploymentPlatform.K8S, "job-1", created_at=minutes_ago(30)),
        ])
        k8s = MagicMock()
        k8s.stop_bot = AsyncMock()
        k8s.get_job = AsyncMock(return_value=MagicMock())
        worker = make_worker(db=db, services=Services(k8s=k8s))

        first = asyncio.run(worker.execute_now())
        second = asyncio.run(worker.execute_now())

        assert db.bots[1].status == BotStatus.FATAL
        assert first["bots_marked_fatal"] == 1
        assert second["bots_marked_fatal"] == 0

    def test_live_coolify_bot_stuck_in_deploying_corrected(self):
        db = FakeDatabase(
            bots=[
                make_bot(
                    9, BotStatus.DEPLOYING, DeploymentPlatform.COOLIFY,
                    last_heartbeat=seconds_ago(20), created_at=minutes_ago(20),
                ),
            ],
            slots=[make_slot(2, SlotStatus.HEALTHY, assigned_bot_id=9)],
        )
        coolify = make_coolify_mock()
        worker = make_worker(db=db, services=Services(coolify=coolify, pool=make_pool(db, coolify)))

        results = [asyncio.run(worker.execute_now()) for _ in range(3)]

        assert db.bots[9].status == BotStatus.JOINING_CALL
        assert db.slots[2].status == SlotStatus.HEALTHY
        assert db.slots[2].assigned_bot_id == 9
        assert results[0]["total_recovered"] == 1
        assert results[0]["bots_marked_fatal"] == 0
        coolify.stop_application.assert_not_awaited()


class TestHealthInsideTick:

    def test_stale_active_bot_handled(self):
        db = FakeDatabase(bots=[make_bot(1, BotStatus.IN_CALL, last_heartbeat=minutes_ago(15))])
        worker = make_worker(db=db, strategies=[], health=True)
        result = asyncio.run(worker.execute_now())

        assert db.bots[1].status == BotStatus.FATAL
        assert result["total_recovered"] == 1
        assert result["bots_marked_fatal"] == 1


class TestDeploymentQueue:

    def test_fatal_bots_release_reservations(self):
        async def run():
            queue = DeploymentQueue(max_concurrent=2)
            await queue.acquire_slot("42")
            await queue.acquire_slot("43")
            worker = make_worker(
                services=Services(deployment_queue=queue),
                strategies=[StubStrategy("a", recovered=1, fatal=[42])],
            )
            result = await worker.execute_now()
            return queue, result

        queue, result = asyncio.run(run())
        assert queue.get_stats() == {"active": 1, "queued": 0, "max_concurrent": 2}
        assert result["queue_active"] == 1

    def test_queue_error_does_not_fail_tick(self):
        queue = MagicMock()
        queue.release.return_value = False
        queue.get_stats.return_value = {"active": 0, "queued": 0, "max_concurrent": 4}
        queue.process_queue.side_effect = RuntimeError("queue broken")
        worker = make_worker(
            services=Services(deployment_queue=queue),
            strategies=[StubStrategy("a", recovered=1)],
        )
        result = asyncio.run(worker.execute_now())

        assert result["total_recovered"] == 1
        assert "queue_active" not in result

    def test_no_queue_configured(self):
        worker = make_worker(strategies=[StubStrategy("a")])
        result = asyncio.run(worker.execute_now())
        assert result == {"total_recovered": 0, "total_failed": 0, "bots_marked_fatal": 0}

"""Unit tests for the platform-agnostic stuck-DEPLOYING safety net."""

import asyncio

from bot_orchestrator.bot_state import BotStatus, DeploymentPlatform
from bot_orchestrator.recovery import OrphanedDeployingStrategy
from tests.fakes import FakeDatabase, make_bot, make_config, minutes_ago, seconds_ago


def run_strategy(db: FakeDatabase):
    return asyncio.run(OrphanedDeployingStrategy(db, make_config()).recover())


class TestOrphanedDeploying:

    def test_bot_without_platform_marked_fatal(self):
        """Bot 42 stuck 20 minutes with no platform ends up FATAL."""
        db = FakeDatabase(bots=[make_bot(42, BotStatus.DEPLOYING, platform=None, created_at=minutes_ago(20))])
        result = run_strategy(db)

        assert db.bots[42].status == BotStatus.FATAL
        assert result.recovered == 1
        assert result.counters["stuck_deploying"] == 1
        assert result.fatal_bot_ids == [42]

    def test_recent_deploying_bot_untouched(self):
        db = FakeDatabase(bots=[make_bot(1, BotStatus.DEPLOYING, created_at=minutes_ago(5))])
        result = run_strategy(db)
        assert db.bots[1].status == BotStatus.DEPLOYING
        assert result.is_empty

    def test_fresh_heartbeat_corrected_to_joining(self):
        db = FakeDatabase(bots=[
            make_bot(
                1, BotStatus.DEPLOYING, DeploymentPlatform.K8S, "job",
                last_heartbeat=seconds_ago(30), created_at=minutes_ago(20),
            ),
        ])
        result = run_strategy(db)
        assert db.bots[1].status == BotStatus.JOINING_CALL
        assert result.counters["status_corrected"] == 1
        assert result.fatal_bot_ids == []

    def test_live_coolify_and_platformless_bots_corrected(self):
        db = FakeDatabase(bots=[
            make_bot(
                9, BotStatus.DEPLOYING, DeploymentPlatform.COOLIFY,
                last_heartbeat=seconds_ago(20), created_at=minutes_ago(20),
            ),
            make_bot(10, BotStatus.DEPLOYING, platform=None, last_heartbeat=seconds_ago(20), created_at=minutes_ago(20)),
        ])
        result = run_strategy(db)

        assert db.bots[9].status == BotStatus.JOINING_CALL
        assert db.bots[10].status == BotStatus.JOINING_CALL
        assert result.recovered == 2
        assert result.counters["stuck_deploying"] == 0

    def test_second_run_has_no_effect(self):
        db = FakeDatabase(bots=[make_bot(1, BotStatus.DEPLOYING, created_at=minutes_ago(30))])
        run_strategy(db)
        second = run_strategy(db)

        assert db.bots[1].status == BotStatus.FATAL
        assert second.is_empty

    def test_one_failure_does_not_abort_batch(self):
        db = FakeDatabase(bots=[
            make_bot(bot_id, BotStatus.DEPLOYING, created_at=minutes_ago(30)) for bot_id in (1, 2, 3)
        ])
        db.fail_mark_fatal_for.add(2)
        result = run_strategy(db)

        assert db.bots[1].status == BotStatus.FATAL
        assert db.bots[2].status == BotStatus.DEPLOYING
        assert db.bots[3].status == BotStatus.FATAL
        assert result.recovered == 2
        assert result.failed == 1

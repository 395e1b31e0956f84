"""Unit tests for RecoveryConfig.from_env() defaults and clamping."""

import pytest

from bot_orchestrator.config import RecoveryConfig


ENV_VARS = (
    "HEARTBEAT_TIMEOUT_SEC",
    "HEARTBEAT_FRESHNESS_SEC",
    "DEPLOYING_TIMEOUT_SEC",
    "MAX_RECOVERY_ATTEMPTS",
    "MAX_SKIPPED_RECOVERIES",
    "RECOVERY_INTERVAL_SEC",
    "POOL_SYNC_INTERVAL_SEC",
    "HEALTH_INTERVAL_SEC",
    "WORKERS_RUN_ON_START",
    "DEPLOYMENT_QUEUE_MAX_CONCURRENT",
    "DEPLOYMENT_QUEUE_TIMEOUT_SEC",
    "DEPLOYMENT_QUEUE_WARN_DEPTH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:

    def test_defaults(self):
        config = RecoveryConfig.from_env()
        assert config.heartbeat_timeout_sec == 600
        assert config.heartbeat_freshness_sec == 300
        assert config.deploying_timeout_sec == 900
        assert config.max_recovery_attempts == 3
        assert config.max_skipped_recoveries == 3
        assert config.recovery_interval_sec == 60
        assert config.health_interval_sec == 0
        assert config.run_on_start is True
        assert config.queue_max_concurrent == 4

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("DEPLOYING_TIMEOUT_SEC", "120")
        monkeypatch.setenv("WORKERS_RUN_ON_START", "false")
        config = RecoveryConfig.from_env()
        assert config.deploying_timeout_sec == 120
        assert config.run_on_start is False


class TestClamping:
    """Invalid values are corrected with a warning, never raised."""

    def test_freshness_clamped_to_timeout(self, monkeypatch):
        monkeypatch.setenv("HEARTBEAT_TIMEOUT_SEC", "200")
        monkeypatch.setenv("HEARTBEAT_FRESHNESS_SEC", "500")
        config = RecoveryConfig.from_env()
        assert config.heartbeat_freshness_sec == 200

    def test_non_integer_uses_default(self, monkeypatch):
        monkeypatch.setenv("MAX_RECOVERY_ATTEMPTS", "three")
        assert RecoveryConfig.from_env().max_recovery_attempts == 3

    def test_minimums(self, monkeypatch):
        monkeypatch.setenv("MAX_RECOVERY_ATTEMPTS", "0")
        monkeypatch.setenv("DEPLOYMENT_QUEUE_MAX_CONCURRENT", "-2")
        monkeypatch.setenv("RECOVERY_INTERVAL_SEC", "-5")
        config = RecoveryConfig.from_env()
        assert config.max_recovery_attempts == 1
        assert config.queue_max_concurrent == 1
        assert config.recovery_interval_sec == 0

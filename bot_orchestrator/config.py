"""
Recovery configuration management.

All recovery thresholds and worker intervals in one place, loaded from environment
variables with sensible defaults. Platform credentials live with the platform
clients (see bot_orchestrator.platforms), not here.
"""

from dataclasses import dataclass
import os
import logging

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not an integer, using default {default}")
        return default


@dataclass
class RecoveryConfig:
    """All recovery configuration in one place."""

    # Liveness thresholds (seconds)
    heartbeat_timeout_sec: int
    heartbeat_freshness_sec: int
    deploying_timeout_sec: int

    # Slot retry policy
    max_recovery_attempts: int
    max_skipped_recoveries: int

    # Worker scheduling (seconds, 0 disables the timer)
    recovery_interval_sec: int
    pool_sync_interval_sec: int
    health_interval_sec: int
    run_on_start: bool

    # Deployment queue
    queue_max_concurrent: int
    queue_timeout_sec: int
    queue_warn_depth: int

    @classmethod
    def from_env(cls) -> 'RecoveryConfig':
        """Load all config from environment with defaults."""
        heartbeat_timeout = _env_int("HEARTBEAT_TIMEOUT_SEC", 600)
        heartbeat_freshness = _env_int("HEARTBEAT_FRESHNESS_SEC", 300)

        # A heartbeat that still counts as fresh can never also count as timed out
        if heartbeat_freshness > heartbeat_timeout:
            logger.warning(
                f"HEARTBEAT_FRESHNESS_SEC ({heartbeat_freshness}) exceeds HEARTBEAT_TIMEOUT_SEC "
                f"({heartbeat_timeout}), clamping to {heartbeat_timeout}"
            )
            heartbeat_freshness = heartbeat_timeout

        max_attempts = _env_int("MAX_RECOVERY_ATTEMPTS", 3)
        if max_attempts < 1:
            logger.warning("MAX_RECOVERY_ATTEMPTS must be at least 1, setting to 1")
            max_attempts = 1

        max_concurrent = _env_int("DEPLOYMENT_QUEUE_MAX_CONCURRENT", 4)
        if max_concurrent < 1:
            logger.warning("DEPLOYMENT_QUEUE_MAX_CONCURRENT must be at least 1, setting to 1")
            max_concurrent = 1

        return cls(
            # Liveness thresholds
            heartbeat_timeout_sec=heartbeat_timeout,
            heartbeat_freshness_sec=heartbeat_freshness,
            deploying_timeout_sec=_env_int("DEPLOYING_TIMEOUT_SEC", 900),

            # Slot retry policy
            max_recovery_attempts=max_attempts,
            max_skipped_recoveries=_env_int("MAX_SKIPPED_RECOVERIES", 3),

            # Worker scheduling
            recovery_interval_sec=max(0, _env_int("RECOVERY_INTERVAL_SEC", 60)),
            pool_sync_interval_sec=max(0, _env_int("POOL_SYNC_INTERVAL_SEC", 300)),
            health_interval_sec=max(0, _env_int("HEALTH_INTERVAL_SEC", 0)),
            run_on_start=os.getenv("WORKERS_RUN_ON_START", "true").lower() == "true",

            # Deployment queue
            queue_max_concurrent=max_concurrent,
            queue_timeout_sec=_env_int("DEPLOYMENT_QUEUE_TIMEOUT_SEC", 1800),
            queue_warn_depth=_env_int("DEPLOYMENT_QUEUE_WARN_DEPTH", 10),
        )

    def log_config(self):
        """Log all config values at startup for debugging."""
        logger.info("RECOVERY CONFIG:")
        logger.info(f"   Heartbeat: timeout={self.heartbeat_timeout_sec}s, freshness={self.heartbeat_freshness_sec}s")
        logger.info(f"   Deploying timeout: {self.deploying_timeout_sec}s")
        logger.info(f"   Slot retries: max_attempts={self.max_recovery_attempts}, max_skips={self.max_skipped_recoveries}")
        logger.info(f"   Intervals: recovery={self.recovery_interval_sec}s, pool_sync={self.pool_sync_interval_sec}s, health={self.health_interval_sec}s")
        logger.info(f"   Run on start: {self.run_on_start}")
        logger.info(f"   Deployment queue: max_concurrent={self.queue_max_concurrent}, timeout={self.queue_timeout_sec}s, warn_depth={self.queue_warn_depth}")

"""
Bot orchestrator entry point.

Continuous mode starts all background workers and runs until SIGINT/SIGTERM.
`--once` runs the selected workers a single time and prints their results.

    python -m bot_orchestrator.main
    python -m bot_orchestrator.main --once recovery
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from typing import Dict

from dotenv import load_dotenv

from .config import RecoveryConfig
from .database import DatabaseClient
from .logging_config import setup_logging
from .services import create_services
from .workers import create_workers, start_workers, stop_workers

logger = logging.getLogger(__name__)

ONCE_CHOICES = ("health", "recovery", "sync", "all")


async def run_once(target: str) -> Dict[str, Dict]:
    config = RecoveryConfig.from_env()
    config.log_config()

    db = DatabaseClient()
    services = create_services(db, config)
    workers = create_workers(db, services, config)

    selected = {
        "health": [("health", workers.bot_health)],
        # Recovery already runs the health classifier first
        "recovery": [("recovery", workers.bot_recovery)],
        "sync": [("sync", workers.pool_slot_sync)],
        "all": [("recovery", workers.bot_recovery), ("sync", workers.pool_slot_sync)],
    }[target]

    results = {}
    try:
        for label, worker in selected:
            results[label] = await worker.execute_now()
    finally:
        await services.aclose()
    return results


async def run_continuous() -> None:
    config = RecoveryConfig.from_env()
    config.log_config()

    db = DatabaseClient()
    services = create_services(db, config)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_handler(sig: signal.Signals) -> None:
        if shutdown.is_set():
            logger.warning(f"Received {sig.name} during shutdown, forcing exit...")
            sys.exit(1)
        logger.info(f"Received signal {sig.name}, initiating graceful shutdown...")
        shutdown.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: _signal_handler(s))

    workers = start_workers(db, services, config)
    logger.info("Bot orchestrator is running")

    try:
        await shutdown.wait()
    finally:
        await stop_workers(workers)
        await services.aclose()
        logger.info("Bot orchestrator shutdown complete")


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Meeting bot recovery and reconciliation workers")
    parser.add_argument(
        "--once",
        choices=ONCE_CHOICES,
        help="Run the selected worker(s) a single time and exit",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ...)",
    )
    args = parser.parse_args()

    setup_logging(args.log_level)

    if args.once:
        try:
            results = asyncio.run(run_once(args.once))
        except Exception as e:
            logger.error(f"One-shot run failed: {e}")
            return 1
        print(json.dumps(results, indent=2, default=str))
        return 0

    asyncio.run(run_continuous())
    return 0


if __name__ == "__main__":
    sys.exit(main())

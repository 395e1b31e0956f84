"""
Base class for the periodic background workers.

A worker runs `execute()` on a fixed interval as an asyncio task. Executions of
one worker never overlap: a call made while the previous one is still in flight
is skipped and returns an empty result. Scheduled executions swallow errors so
the timer keeps going; manual `execute_now()` calls get the exception.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from ..logging_config import (
    get_current_cycle,
    get_current_worker,
    set_current_cycle,
    set_current_worker,
)

if TYPE_CHECKING:
    from ..database import DatabaseClient
    from ..services import Services

logger = logging.getLogger(__name__)


def format_result(result: Dict[str, Any]) -> str:
    return ", ".join(f"{key}={value}" for key, value in result.items()) or "no results"


class BaseWorker(ABC):
    """Fixed-interval runner with a single-flight guard."""

    name = "BaseWorker"

    def __init__(
        self,
        db: 'DatabaseClient',
        services: 'Services',
        interval_sec: float,
        run_on_start: bool = True,
    ):
        self.db = db
        self.services = services
        self.interval_sec = interval_sec
        self.run_on_start = run_on_start

        self.cycle_count = 0
        self._is_running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    @abstractmethod
    async def execute(self) -> Dict[str, Any]:
        """One unit of work. Returns counters for the summary log line."""

    @property
    def is_running(self) -> bool:
        """An execution is in progress right now."""
        return self._is_running

    @property
    def is_started(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def start(self) -> None:
        """Begin periodic execution. Must be called from inside a running event loop."""
        if self.is_started:
            logger.warning(f"[{self.name}] Already started")
            return

        logger.info(
            f"[{self.name}] Starting (interval={self.interval_sec}s, run_on_start={self.run_on_start})"
        )
        self._timer_task = asyncio.get_running_loop().create_task(
            self._run_timer(), name=f"{self.name}-timer"
        )

    def stop(self) -> None:
        """Stop scheduling new executions. An execution already in flight runs to completion."""
        if self._timer_task is None:
            return
        self._timer_task.cancel()
        self._timer_task = None
        logger.info(f"[{self.name}] Stopped")

    async def wait_idle(self) -> None:
        """Wait for scheduled executions that are still in flight."""
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def _run_timer(self) -> None:
        if self.run_on_start:
            self._spawn_execution()

        if self.interval_sec <= 0:
            return

        while True:
            await asyncio.sleep(self.interval_sec)
            self._spawn_execution()

    def _spawn_execution(self) -> None:
        # Separate task so stop() cancelling the timer never interrupts a running execution
        task = asyncio.get_running_loop().create_task(
            self._scheduled_execute(), name=f"{self.name}-cycle"
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _scheduled_execute(self) -> None:
        try:
            await self.execute_now()
        except Exception as e:
            # Already logged with traceback by execute_now
            logger.debug(f"[{self.name}] Scheduled execution failed, will retry next interval: {e}")

    async def execute_now(self) -> Dict[str, Any]:
        """
        Run one execution immediately, outside the schedule.

        Returns {} without doing anything if an execution is already running.
        Errors are logged and re-raised.
        """
        if self._is_running:
            logger.info(f"[{self.name}] Previous execution still running, skipping")
            return {}

        self._is_running = True
        self.cycle_count += 1
        # Restored afterwards: a worker run nested inside another keeps the outer tag
        outer_worker, outer_cycle = get_current_worker(), get_current_cycle()
        set_current_worker(self.name)
        set_current_cycle(self.cycle_count)
        started = time.monotonic()

        try:
            result = await self.execute()
            duration = time.monotonic() - started
            logger.info(f"[{self.name}] Completed in {duration:.2f}s: {format_result(result)}")
            return result
        except Exception as e:
            logger.error(f"[{self.name}] Execution failed: {e}", exc_info=True)
            raise
        finally:
            self._is_running = False
            set_current_worker(outer_worker)
            set_current_cycle(outer_cycle)

"""
In-memory deployment queue.

Bounds how many bots may be deploying at the same time. A bot holds a
reservation from `acquire_slot()` until `release()`; extra requests wait in
FIFO order. Reservations and waiters older than the queue timeout are dropped by
`process_queue()`, which the recovery worker calls every tick.

State lives in this process only. A restart forgets every reservation, which
is harmless: deployments that were running are tracked in the database.
"""

import asyncio
import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional

from .errors import DeploymentQueueTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class _Waiter:
    bot_id: str
    enqueued_at: float
    future: asyncio.Future


class DeploymentQueue:
    """Counting semaphore with FIFO waiters, keyed by bot id."""

    def __init__(self, max_concurrent: int = 4, timeout_sec: float = 1800):
        self.max_concurrent = max(1, max_concurrent)
        self.timeout_sec = timeout_sec
        # bot_id -> monotonic time the reservation was granted
        self._active: "OrderedDict[str, float]" = OrderedDict()
        self._waiters: Deque[_Waiter] = deque()

    def _pending_waiters(self):
        return [w for w in self._waiters if not w.future.done()]

    async def acquire_slot(self, bot_id: str) -> None:
        """
        Reserve a deployment slot for a bot, waiting if the queue is full.

        Raises DeploymentQueueTimeoutError if no slot frees up within the timeout.
        Acquiring twice for the same bot is a no-op.
        """
        bot_id = str(bot_id)
        if bot_id in self._active:
            return

        if len(self._active) < self.max_concurrent and not self._pending_waiters():
            self._active[bot_id] = time.monotonic()
            logger.debug(f"[DeploymentQueue] Bot {bot_id} acquired slot immediately")
            return

        waiter = _Waiter(bot_id, time.monotonic(), asyncio.get_running_loop().create_future())
        self._waiters.append(waiter)
        logger.info(
            f"[DeploymentQueue] Bot {bot_id} queued "
            f"(active={len(self._active)}/{self.max_concurrent}, queued={len(self._pending_waiters())})"
        )

        try:
            await asyncio.wait_for(waiter.future, timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            self._discard_waiter(waiter)
            raise DeploymentQueueTimeoutError(bot_id) from None
        except DeploymentQueueTimeoutError:
            self._discard_waiter(waiter)
            raise

    def _discard_waiter(self, waiter: _Waiter) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    def release(self, bot_id: str) -> bool:
        """
        Give back a bot's reservation (or drop it from the wait list).

        Idempotent: releasing a bot that holds nothing returns False. A freed
        slot is handed to the next waiter straight away.
        """
        bot_id = str(bot_id)
        released = self._active.pop(bot_id, None) is not None

        for waiter in list(self._waiters):
            if waiter.bot_id == bot_id and not waiter.future.done():
                waiter.future.cancel()
                self._discard_waiter(waiter)
                released = True

        if released:
            logger.debug(f"[DeploymentQueue] Released bot {bot_id}")
            self._fill_free_slots()
        return released

    def _fill_free_slots(self) -> int:
        granted = 0
        while self._waiters and len(self._active) < self.max_concurrent:
            waiter = self._waiters.popleft()
            if waiter.future.done():
                continue
            self._active[waiter.bot_id] = time.monotonic()
            waiter.future.set_result(None)
            granted += 1
            logger.info(f"[DeploymentQueue] Bot {waiter.bot_id} acquired slot from queue")
        return granted

    def process_queue(self, now: Optional[float] = None) -> Dict[str, int]:
        """
        Expire stale waiters and reservations, then fill free capacity.

        Returns counts of what happened for logging.
        """
        now = time.monotonic() if now is None else now
        expired_waiters = 0
        expired_reservations = 0

        for waiter in list(self._waiters):
            if waiter.future.done():
                self._discard_waiter(waiter)
            elif now - waiter.enqueued_at >= self.timeout_sec:
                waiter.future.set_exception(DeploymentQueueTimeoutError(waiter.bot_id))
                self._discard_waiter(waiter)
                expired_waiters += 1

        for bot_id, acquired_at in list(self._active.items()):
            if now - acquired_at >= self.timeout_sec:
                logger.warning(
                    f"[DeploymentQueue] Reservation for bot {bot_id} held for "
                    f"{now - acquired_at:.0f}s, releasing"
                )
                del self._active[bot_id]
                expired_reservations += 1

        granted = self._fill_free_slots()
        return {
            "granted": granted,
            "expired_waiters": expired_waiters,
            "expired_reservations": expired_reservations,
        }

    def get_stats(self) -> Dict[str, int]:
        return {
            "active": len(self._active),
            "queued": len(self._pending_waiters()),
            "max_concurrent": self.max_concurrent,
        }

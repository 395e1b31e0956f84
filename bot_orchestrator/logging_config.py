"""
Logging setup for the recovery workers.

Each log record carries the name of the worker that emitted it and that worker's
cycle number. Both are stored in context variables, so workers running as separate
asyncio tasks never see each other's context.
"""

import logging
import os
import sys
from contextvars import ContextVar
from typing import Optional

_current_worker: ContextVar[str] = ContextVar("current_worker", default="-")
_current_cycle: ContextVar[int] = ContextVar("current_cycle", default=0)

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(worker)s#%(cycle)s] %(name)s: %(message)s"

NOISY_LOGGERS = ("httpx", "httpcore", "kubernetes", "botocore", "boto3", "urllib3", "hpack")


def set_current_worker(name: str) -> None:
    _current_worker.set(name)


def set_current_cycle(cycle: int) -> None:
    _current_cycle.set(cycle)


def get_current_worker() -> str:
    return _current_worker.get()


def get_current_cycle() -> int:
    return _current_cycle.get()


class WorkerContextFilter(logging.Filter):
    """Injects worker name and cycle number into every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.worker = _current_worker.get()
        record.cycle = _current_cycle.get()
        return True


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once. Safe to call repeatedly."""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)

    for handler in root.handlers:
        if getattr(handler, "_bot_orchestrator", False):
            handler.setLevel(log_level)
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(WorkerContextFilter())
    handler.setLevel(log_level)
    handler._bot_orchestrator = True
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

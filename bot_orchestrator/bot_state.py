"""
Bot and pool slot state model for the recovery workers.

Provides a single source of truth for state checks:
- BotStatus / SlotStatus / DeploymentPlatform enums
- Bot / PoolSlot: typed views of database rows
- Pure heartbeat helpers that take `now` explicitly (for testability)
- RecoveryResult: per-strategy counters, aggregated by the orchestrator
"""

from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List


class BotStatus(str, Enum):
    """Lifecycle states for a meeting bot."""

    READY_TO_DEPLOY = "READY_TO_DEPLOY"
    DEPLOYING = "DEPLOYING"
    JOINING_CALL = "JOINING_CALL"
    IN_WAITING_ROOM = "IN_WAITING_ROOM"
    IN_CALL = "IN_CALL"
    LEAVING = "LEAVING"
    DONE = "DONE"
    FATAL = "FATAL"


# Statuses in which a running bot process must be sending heartbeats
ACTIVE_STATUSES = (
    BotStatus.JOINING_CALL,
    BotStatus.IN_WAITING_ROOM,
    BotStatus.IN_CALL,
    BotStatus.LEAVING,
)

# Everything that has been handed to a platform and has not finished
NON_TERMINAL_STATUSES = (BotStatus.DEPLOYING,) + ACTIVE_STATUSES

TERMINAL_STATUSES = (BotStatus.DONE, BotStatus.FATAL)


class SlotStatus(str, Enum):
    """Lifecycle states for a Coolify pool slot."""

    IDLE = "IDLE"
    DEPLOYING = "DEPLOYING"
    HEALTHY = "HEALTHY"
    ERROR = "ERROR"


class DeploymentPlatform(str, Enum):
    COOLIFY = "coolify"
    K8S = "k8s"
    AWS = "aws"


@dataclass
class Bot:
    """One meeting-bot deployment attempt."""

    id: int
    status: BotStatus
    deployment_platform: Optional[DeploymentPlatform] = None
    platform_identifier: Optional[str] = None
    last_heartbeat: Optional[datetime] = None
    created_at: Optional[datetime] = None
    end_time: Optional[datetime] = None
    deployment_error: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Bot':
        platform = row.get('deployment_platform')
        return cls(
            id=int(row['id']),
            status=BotStatus(row['status']),
            deployment_platform=DeploymentPlatform(platform) if platform else None,
            platform_identifier=row.get('platform_identifier') or None,
            last_heartbeat=parse_timestamp(row.get('last_heartbeat')),
            created_at=parse_timestamp(row.get('created_at')),
            end_time=parse_timestamp(row.get('end_time')),
            deployment_error=row.get('deployment_error'),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_platform_resource(self) -> bool:
        """
        Bot was placed on a platform and we know how to tear it down.

        Coolify bots are found through their pool slot, so they need no identifier.
        """
        if self.deployment_platform == DeploymentPlatform.COOLIFY:
            return True
        return self.deployment_platform is not None and bool(self.platform_identifier)


@dataclass
class PoolSlot:
    """One reusable Coolify container slot."""

    id: int
    slot_name: str
    application_uuid: str
    status: SlotStatus
    assigned_bot_id: Optional[int] = None
    last_used_at: Optional[datetime] = None
    error_message: Optional[str] = None
    recovery_attempts: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'PoolSlot':
        assigned = row.get('assigned_bot_id')
        return cls(
            id=int(row['id']),
            slot_name=row.get('slot_name') or f"slot-{row['id']}",
            application_uuid=row['application_uuid'],
            status=SlotStatus(row['status']),
            assigned_bot_id=int(assigned) if assigned is not None else None,
            last_used_at=parse_timestamp(row.get('last_used_at')),
            error_message=row.get('error_message'),
            recovery_attempts=int(row.get('recovery_attempts') or 0),
            created_at=parse_timestamp(row.get('created_at')),
        )

    @property
    def is_orphaned(self) -> bool:
        """HEALTHY with no bot is always an inconsistency."""
        return self.status == SlotStatus.HEALTHY and self.assigned_bot_id is None


def heartbeat_age_sec(bot: Bot, now: datetime) -> Optional[float]:
    """Seconds since the bot's last heartbeat, None if it never sent one."""
    if bot.last_heartbeat is None:
        return None
    return (now - bot.last_heartbeat).total_seconds()


def has_fresh_heartbeat(bot: Bot, now: datetime, freshness_sec: int) -> bool:
    """
    True if the bot has proven liveness within the freshness window.

    A fresh heartbeat always wins over the stored status: callers use this to
    decide between correcting a status and killing a bot.
    """
    age = heartbeat_age_sec(bot, now)
    return age is not None and age < freshness_sec


def parse_timestamp(ts: Any) -> Optional[datetime]:
    """Parse ISO timestamp string (or datetime) to an aware UTC datetime."""
    if not ts:
        return None
    if isinstance(ts, datetime):
        dt = ts
    else:
        try:
            dt = datetime.fromisoformat(str(ts).replace('Z', '+00:00'))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: datetime) -> str:
    """Serialize an aware datetime the way the database stores it."""
    return dt.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass
class RecoveryResult:
    """Summary of what one strategy did in one tick. Never persisted."""
    recovered: int = 0
    failed: int = 0
    counters: Dict[str, int] = field(default_factory=dict)
    fatal_bot_ids: List[int] = field(default_factory=list)

    @classmethod
    def with_counters(cls, *names: str) -> 'RecoveryResult':
        return cls(counters={name: 0 for name in names})

    def increment(self, counter: str, amount: int = 1) -> None:
        self.counters[counter] = self.counters.get(counter, 0) + amount

    def record_fatal(self, bot_id: int) -> None:
        if bot_id not in self.fatal_bot_ids:
            self.fatal_bot_ids.append(bot_id)

    @property
    def is_empty(self) -> bool:
        return self.recovered == 0 and self.failed == 0 and not any(self.counters.values())

    def to_dict(self) -> Dict[str, int]:
        return {
            "recovered": self.recovered,
            "failed": self.failed,
            **self.counters,
        }

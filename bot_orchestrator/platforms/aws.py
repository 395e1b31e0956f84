"""
AWS ECS platform client.

One bot runs as one Fargate task; the platform identifier is the task ARN.
Tasks are ephemeral, so there is no pool and nothing to return on release
beyond stopping the task.
"""

import asyncio
import logging
import os
from enum import Enum
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import AWSPlatformError

logger = logging.getLogger(__name__)


class AWSBotStatus(str, Enum):
    PROVISIONING = "PROVISIONING"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    FAILED = "FAILED"


def map_task_status(last_status: Optional[str]) -> AWSBotStatus:
    """Map an ECS task lastStatus to a bot status. A missing task counts as FAILED."""
    if not last_status:
        return AWSBotStatus.FAILED

    status = last_status.upper()
    if status == "RUNNING":
        return AWSBotStatus.RUNNING
    if status in ("STOPPED", "DEPROVISIONING", "STOPPING"):
        return AWSBotStatus.STOPPED
    if status in ("PENDING", "ACTIVATING", "PROVISIONING"):
        return AWSBotStatus.PROVISIONING

    logger.warning(f"[AWS] Unrecognized ECS status: {last_status}, defaulting to FAILED")
    return AWSBotStatus.FAILED


class AWSPlatformClient:
    """Task-level operations on one ECS cluster."""

    def __init__(self, ecs_client: Any, cluster: str):
        self.ecs = ecs_client
        self.cluster = cluster

    @classmethod
    def from_env(cls) -> Optional['AWSPlatformClient']:
        """Build a client from AWS_ECS_CLUSTER, or None if ECS is not configured."""
        cluster = os.getenv("AWS_ECS_CLUSTER")
        if not cluster:
            return None
        ecs = boto3.client("ecs", region_name=os.getenv("AWS_REGION"))
        return cls(ecs, cluster)

    async def stop_bot(self, task_arn: str, reason: str = "Stopped by bot recovery") -> None:
        try:
            await asyncio.to_thread(
                self.ecs.stop_task, cluster=self.cluster, task=task_arn, reason=reason
            )
            logger.info(f"[AWS] Stopped ECS task {task_arn}")
        except (ClientError, BotoCoreError) as e:
            raise AWSPlatformError(f"Failed to stop ECS task {task_arn}: {e}") from e

    async def get_bot_status(self, task_arn: str) -> AWSBotStatus:
        try:
            response = await asyncio.to_thread(
                self.ecs.describe_tasks, cluster=self.cluster, tasks=[task_arn]
            )
        except (ClientError, BotoCoreError) as e:
            raise AWSPlatformError(f"Failed to describe ECS task {task_arn}: {e}") from e

        tasks = response.get('tasks') or []
        if not tasks:
            # ECS reports unknown ARNs under "failures", the task is gone
            return AWSBotStatus.FAILED
        return map_task_status(tasks[0].get('lastStatus'))

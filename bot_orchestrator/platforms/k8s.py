"""
Kubernetes platform client.

One bot runs as one Job. The platform identifier stored on the bot row is the
Job name. The kubernetes client is blocking, so each call runs in a thread.
"""

import asyncio
import logging
import os
from enum import Enum
from typing import Any, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from ..errors import KubernetesPlatformError

logger = logging.getLogger(__name__)


class K8sBotStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


def map_job_status(job_status: Any) -> K8sBotStatus:
    """Map a V1JobStatus (or None) to a bot status."""
    if job_status is None:
        return K8sBotStatus.PENDING
    if (job_status.succeeded or 0) > 0:
        return K8sBotStatus.SUCCEEDED
    if (job_status.failed or 0) > 0:
        return K8sBotStatus.FAILED
    if (job_status.active or 0) > 0:
        return K8sBotStatus.ACTIVE
    # Job exists but no pods yet
    return K8sBotStatus.PENDING


class K8sPlatformClient:
    """Job-level operations in a single namespace."""

    def __init__(self, batch_api: client.BatchV1Api, namespace: str = "default"):
        self.batch_api = batch_api
        self.namespace = namespace

    @classmethod
    def from_env(cls) -> Optional['K8sPlatformClient']:
        """Build a client when K8S_ENABLED=true, or None if Kubernetes is not configured."""
        if os.getenv("K8S_ENABLED", "false").lower() != "true":
            return None
        try:
            # Try to load in-cluster config first
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
        except config.ConfigException:
            # Fall back to kubeconfig for local development
            config.load_kube_config()
            logger.info("Loaded kubeconfig configuration")
        return cls(client.BatchV1Api(), namespace=os.getenv("K8S_NAMESPACE", "default"))

    async def stop_bot(self, job_name: str) -> None:
        """Delete the Job and its pods. A missing Job is already stopped."""
        try:
            await asyncio.to_thread(
                self.batch_api.delete_namespaced_job,
                name=job_name,
                namespace=self.namespace,
                propagation_policy="Background",
            )
            logger.info(f"[K8s] Deleted Job {job_name}")
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"[K8s] Job {job_name} already deleted")
                return
            raise KubernetesPlatformError(f"Failed to delete Job {job_name}: {e.reason}", status_code=e.status) from e

    async def get_job(self, job_name: str) -> Optional[Any]:
        """The V1Job object, or None if it no longer exists."""
        try:
            return await asyncio.to_thread(
                self.batch_api.read_namespaced_job, name=job_name, namespace=self.namespace
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise KubernetesPlatformError(f"Failed to read Job {job_name}: {e.reason}", status_code=e.status) from e

    async def get_bot_status(self, job_name: str) -> K8sBotStatus:
        job = await self.get_job(job_name)
        if job is None:
            return K8sBotStatus.FAILED
        return map_job_status(job.status)

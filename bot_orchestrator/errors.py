"""Exception types raised by the platform clients and the deployment queue."""

from typing import Optional


class OrchestratorError(Exception):
    """Base class for all bot orchestrator errors."""


class PlatformError(OrchestratorError):
    """A platform API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CoolifyError(PlatformError):
    pass


class KubernetesPlatformError(PlatformError):
    pass


class AWSPlatformError(PlatformError):
    pass


class PlatformNotConfiguredError(OrchestratorError):
    """A bot lives on a platform this process has no client for."""

    def __init__(self, platform: Optional[str]):
        super().__init__(f"Platform {platform!r} is not configured")
        self.platform = platform


class DeploymentQueueTimeoutError(OrchestratorError):
    def __init__(self, bot_id: str):
        super().__init__(f"Deployment queue timeout for bot {bot_id}")
        self.bot_id = bot_id

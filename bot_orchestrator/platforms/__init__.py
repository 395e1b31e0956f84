from .aws import AWSBotStatus, AWSPlatformClient
from .coolify import BotPoolService, CoolifyApplication, CoolifyClient, idle_description
from .k8s import K8sBotStatus, K8sPlatformClient

__all__ = [
    "AWSBotStatus",
    "AWSPlatformClient",
    "BotPoolService",
    "CoolifyApplication",
    "CoolifyClient",
    "K8sBotStatus",
    "K8sPlatformClient",
    "idle_description",
]

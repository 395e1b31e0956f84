from .aws import AWSRecoveryStrategy
from .base import PlatformRecoveryStrategy, RecoveryStrategy
from .coolify import CoolifyRecoveryStrategy
from .k8s import K8sRecoveryStrategy
from .orphaned_deploying import OrphanedDeployingStrategy

__all__ = [
    "AWSRecoveryStrategy",
    "CoolifyRecoveryStrategy",
    "K8sRecoveryStrategy",
    "OrphanedDeployingStrategy",
    "PlatformRecoveryStrategy",
    "RecoveryStrategy",
]

"""Recovery and reconciliation workers for meeting bots deployed on Coolify, Kubernetes and AWS ECS."""

__version__ = "0.1.0"

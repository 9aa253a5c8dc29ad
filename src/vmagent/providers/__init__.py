"""
Provisioning services — plug-in backends that talk to a cloud.

Each service implements the ProvisioningService interface. The
verification gate and orchestrator don't care which one is in use.
"""

from .base import (
    DeploymentInfo,
    FailureStage,
    ProvisioningService,
    available_services,
    get_provisioning_service,
    register_provisioning_service,
)
from .offline import OfflineProvisioningService

__all__ = [
    "DeploymentInfo",
    "FailureStage",
    "OfflineProvisioningService",
    "ProvisioningService",
    "available_services",
    "get_provisioning_service",
    "register_provisioning_service",
]

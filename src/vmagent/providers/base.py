"""
Provisioning service interface and adapter registry.

A provisioning service is the only component that talks to a cloud. It
receives fully resolved ``TemplateProperties``, never raw form input, so
verification and deployment behave the same however a template was
entered.

Calls are blocking and may take seconds; callers apply their own timeouts.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from ..credentials import ServicePrincipal
from ..templates.schema import TemplateProperties


class FailureStage(str, Enum):
    """Where in the agent lifecycle a provisioning failure happened."""

    PROVISIONING = "provisioning"
    POSTPROVISIONING = "postprovisioning"


class DeploymentInfo(BaseModel):
    """Handle for a deployment request accepted by a provisioning service."""

    deployment_name: str
    vm_base_name: str
    vm_count: int = Field(ge=1)
    template_name: str
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class ProvisioningService:
    """Abstract base for provisioning services."""

    name: str = "abstract"

    def verify_template(self, properties: TemplateProperties) -> List[str]:
        """Check that a template can currently be provisioned.

        Args:
            properties: Resolved template fields.

        Returns:
            Human-readable problems; empty when the template is usable.
        """
        raise NotImplementedError

    def create_deployment(self, properties: TemplateProperties, count: int) -> DeploymentInfo:
        """Request ``count`` agents from a template.

        Args:
            properties: Resolved template fields.
            count: Number of agent VMs to create.

        Returns:
            DeploymentInfo identifying the request.

        Raises:
            Exception: Any failure reported by the cloud.
        """
        raise NotImplementedError

    def list_vm_sizes(self, principal: ServicePrincipal, location: str) -> List[str]:
        """VM sizes offered in a location, for populating choices."""
        raise NotImplementedError

    def list_locations(self, principal: ServicePrincipal) -> List[str]:
        """Locations the principal can deploy to, for populating choices."""
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Adapter registry
# ---------------------------------------------------------------------------

_PROVISIONING_SERVICES: Dict[str, type] = {}


def register_provisioning_service(name: str):
    """Decorator to register a provisioning service class.

    Args:
        name: Service name used in configuration (e.g. 'offline').
    """
    def wrapper(cls):
        cls.name = name
        _PROVISIONING_SERVICES[name] = cls
        return cls
    return wrapper


def available_services() -> List[str]:
    return sorted(_PROVISIONING_SERVICES)


def get_provisioning_service(name: str, **config: Any) -> ProvisioningService:
    """Instantiate a registered provisioning service.

    Raises:
        RuntimeError: If no service is registered under ``name``.
    """
    service_cls = _PROVISIONING_SERVICES.get(name)
    if service_cls is None:
        raise RuntimeError(
            f"Unknown provisioning service: {name} "
            f"(available: {', '.join(available_services()) or 'none'})"
        )
    return service_cls(**config)

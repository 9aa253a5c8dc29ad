"""
Provisioning Orchestrator — turns a verified template into agents.

The orchestrator trusts the verification cache: it refuses templates that
are not VERIFIED but never re-verifies on each call. When the provisioning
service fails, the template is demoted through the verification gate and
queued for re-verification before the failure is raised to the caller.

Usage:
    orchestrator = ProvisioningOrchestrator(gate, service)
    deployment = orchestrator.provision(template, context, count=2)
"""

from __future__ import annotations

import logging

from .cloud import CloudContext
from .providers.base import DeploymentInfo, FailureStage, ProvisioningService
from .templates.schema import AgentTemplate, resolve_template_properties
from .verification import VerificationGate, VerificationState

logger = logging.getLogger(__name__)


class TemplateNotVerifiedError(RuntimeError):
    """Provisioning was requested from a template that is not verified."""


class ProvisioningError(RuntimeError):
    """The provisioning service failed to create agents.

    Attributes:
        template_name: Template the request was made from.
        stage: Lifecycle stage of the failure.
    """

    def __init__(self, template_name: str, message: str, stage: FailureStage) -> None:
        super().__init__(message)
        self.template_name = template_name
        self.stage = stage


class ProvisioningOrchestrator:
    """Requests agents from verified templates.

    Args:
        gate: Verification gate holding template status.
        service: Provisioning service that creates the agents.
    """

    def __init__(self, gate: VerificationGate, service: ProvisioningService) -> None:
        self._gate = gate
        self._service = service

    def provision(
        self,
        template: AgentTemplate,
        context: CloudContext,
        count: int,
    ) -> DeploymentInfo:
        """Create ``count`` agents from a verified template.

        Args:
            template: A template in the VERIFIED state.
            context: Owning cloud context.
            count: Number of agents to request.

        Returns:
            The deployment handle from the provisioning service.

        Raises:
            ValueError: If ``count`` is below 1.
            TemplateNotVerifiedError: If the template is not VERIFIED.
            ProvisioningError: If the provisioning service fails. The
                template has been demoted and queued by then.
        """
        name = template.template_name
        if count < 1:
            raise ValueError(f"Agent count must be at least 1, got {count}")

        state = self._gate.state(name)
        if state != VerificationState.VERIFIED:
            raise TemplateNotVerifiedError(
                f"Template {name!r} is {state.value}; verify it before provisioning"
            )

        properties = resolve_template_properties(template, context.resource_group_name)
        logger.info("Provisioning %d agent(s) from template %s", count, name)

        try:
            deployment = self._service.create_deployment(properties, count)
        except Exception as exc:
            message = (
                f"Provisioning {count} agent(s) from {name} failed: "
                f"{str(exc) or type(exc).__name__}"
            )
            self.handle_provisioning_failure(name, message, FailureStage.PROVISIONING)
            raise ProvisioningError(name, message, FailureStage.PROVISIONING) from exc

        logger.info(
            "Deployment %s accepted for template %s", deployment.deployment_name, name,
        )
        return deployment

    def handle_provisioning_failure(
        self,
        template_name: str,
        message: str,
        stage: FailureStage = FailureStage.PROVISIONING,
    ) -> None:
        """Record a runtime failure of a previously verified template.

        Called by the scheduler when, for example, an image was deleted out
        of band. The template becomes FAILED with ``message`` as its status
        and is queued for automatic re-verification.
        """
        logger.error("Template %s failed during %s: %s", template_name, stage.value, message)
        self._gate.mark_failed(template_name, message, stage)

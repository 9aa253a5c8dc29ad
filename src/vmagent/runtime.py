"""
Controller runtime — wires configuration, stored templates, the cloud
context, the verification gate and the orchestrator together.

The CLI builds one of these per invocation. Verification results are
written back to the template store so they survive between runs; failed
templates come back queued for re-verification.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from . import VMAGENT_HOME
from .cloud import CloudContext
from .credentials import CredentialNotFoundError, CredentialStore, FileCredentialStore
from .models import ControllerConfig, load_config
from .naming import StorageNamingError
from .provisioning import ProvisioningOrchestrator
from .providers import ProvisioningService, get_provisioning_service
from .templates.registry import TemplateStore
from .templates.schema import AgentTemplate
from .verification import VerificationGate, VerificationTask

logger = logging.getLogger(__name__)


class ControllerRuntime:
    """Everything needed to verify and provision from stored templates.

    Args:
        home: vmagent home directory (default ~/.vmagent).
        credential_store: Override the file-backed credential store.
        service: Override the configured provisioning service.
    """

    def __init__(
        self,
        home: Optional[Path] = None,
        credential_store: Optional[CredentialStore] = None,
        service: Optional[ProvisioningService] = None,
    ) -> None:
        self.home = (home or Path(VMAGENT_HOME)).expanduser()
        self.config: ControllerConfig = load_config(self.home)
        self.credentials = credential_store or FileCredentialStore(self.home)
        self.store = TemplateStore(self.home)
        self.service = service or get_provisioning_service(
            self.config.provisioning_service, credential_store=self.credentials,
        )
        self.context = CloudContext(
            name=self.config.cloud_name,
            resource_group_name=self.config.resource_group_name,
            credential_store=self.credentials,
        )
        if self.config.credentials_id:
            try:
                self.context.service_principal = self.credentials.service_principal(
                    self.config.credentials_id
                )
            except CredentialNotFoundError:
                logger.warning(
                    "Cloud credentials %s not found; storage names are generated "
                    "without a subscription id", self.config.credentials_id,
                )
        self.gate = VerificationGate(self.service)
        self.orchestrator = ProvisioningOrchestrator(self.gate, self.service)

    def load(self) -> List[AgentTemplate]:
        """Register every stored template with the context and restore its status.

        Templates that cannot be bound (no storage name, none generated) are
        logged and left out.
        """
        loaded: List[AgentTemplate] = []
        for template in self.store.list_templates():
            try:
                bound = self.context.add_template(template)
            except (StorageNamingError, ValueError) as exc:
                logger.error("Cannot load template %s: %s", template.template_name, exc)
                continue
            flags = self.store.runtime_flags(bound.template_name)
            self.gate.restore(
                bound.template_name,
                flags["verified"],
                flags["status_details"],
                failed=flags["failed"],
            )
            loaded.append(bound)
        return loaded

    def register(self, template: AgentTemplate) -> AgentTemplate:
        """Add or replace a template; a changed template starts unverified.

        Raises:
            StorageNamingError: If no storage name could be generated.
            ValueError: If the template name is missing or invalid.
        """
        bound = self.context.add_template(template)
        self.gate.invalidate(bound.template_name)
        self.store.save(bound)
        return bound

    def persist_status(self, template_name: str) -> None:
        """Write the gate's status for a template back to its record."""
        template = self.context.get_template(template_name)
        if template is None:
            return
        status = self.gate.status(template_name)
        self.store.save(
            template,
            verified=status.verified,
            status_details=status.status_details,
            failed=status.failed,
        )

    def verification_task(self) -> VerificationTask:
        return VerificationTask(
            self.gate, self.context, interval=self.config.reverify_interval_seconds,
        )


def get_runtime(home: Optional[Path] = None) -> ControllerRuntime:
    """Build a runtime and load its stored templates."""
    runtime = ControllerRuntime(home=home)
    runtime.load()
    return runtime

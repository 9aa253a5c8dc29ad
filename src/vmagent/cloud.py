"""
Cloud context — the owning side of the cloud/template association.

A context knows its resource group and service principal and keeps the
set of templates registered with it. Templates never point back at the
context; anything that needs both looks the template up by name here.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from . import naming
from .credentials import CredentialStore, ServicePrincipal
from .templates.schema import AgentTemplate
from .validation import MAX_TEMPLATE_NAME_LENGTH, is_valid_template_name

logger = logging.getLogger(__name__)


def bind_storage_account(
    template: AgentTemplate,
    resource_group_name: str,
    service_principal: Optional[ServicePrincipal] = None,
) -> AgentTemplate:
    """Give a template a storage account name if it has none.

    Templates that already carry a name are returned unchanged, so binding
    the same template again is a no-op. Otherwise a deterministic name is
    generated from the resource group and subscription and the template
    switches to creating a new account.

    Raises:
        StorageNamingError: If no name is set and none could be generated.
    """
    if not naming.is_blank(template.storage_account_name):
        return template

    subscription_id = service_principal.subscription_id if service_principal else None
    generated = naming.generate_unique_storage_account_name(
        resource_group_name, subscription_id,
    )
    if not generated:
        raise naming.StorageNamingError(
            f"Template {template.template_name!r} has no storage account name "
            f"and one could not be generated for resource group "
            f"{resource_group_name!r}; set one explicitly"
        )

    logger.info(
        "Generated storage account %s for template %s",
        generated, template.template_name,
    )
    return template.with_storage_account(generated)


class CloudContext:
    """A configured cloud that owns a set of agent templates.

    Args:
        name: Cloud display name.
        resource_group_name: Resource group agents are deployed into.
        service_principal: API identity (its subscription seeds naming).
        credential_store: Where template credential ids are resolved.
    """

    def __init__(
        self,
        name: str,
        resource_group_name: str,
        service_principal: Optional[ServicePrincipal] = None,
        credential_store: Optional[CredentialStore] = None,
    ) -> None:
        self.name = name
        self.resource_group_name = resource_group_name
        self.service_principal = service_principal or ServicePrincipal()
        self.credential_store = credential_store
        self._templates: Dict[str, AgentTemplate] = {}

    @property
    def subscription_id(self) -> str:
        return self.service_principal.subscription_id

    def add_template(self, template: AgentTemplate) -> AgentTemplate:
        """Register a template, binding it to this context.

        Returns:
            The registered template, with a generated storage account
            name if it had none.

        Raises:
            ValueError: If the template name is missing or invalid.
            StorageNamingError: If a storage name was needed but could not
                be generated.
        """
        if not template.template_name:
            raise ValueError("Template name is required")
        if not is_valid_template_name(template.template_name):
            raise ValueError(
                f"Invalid template name {template.template_name!r}: use up to "
                f"{MAX_TEMPLATE_NAME_LENGTH} lowercase letters, digits and hyphens"
            )
        bound = bind_storage_account(
            template, self.resource_group_name, self.service_principal,
        )
        self._templates[bound.template_name] = bound
        return bound

    def remove_template(self, template_name: str) -> Optional[AgentTemplate]:
        """Unregister a template. Only ever called on administrator request."""
        removed = self._templates.pop(template_name, None)
        if removed is not None:
            logger.info("Removed template %s from cloud %s", template_name, self.name)
        return removed

    def get_template(self, template_name: str) -> Optional[AgentTemplate]:
        return self._templates.get(template_name)

    @property
    def templates(self) -> List[AgentTemplate]:
        return [self._templates[name] for name in sorted(self._templates)]

    def __contains__(self, template_name: object) -> bool:
        return template_name in self._templates

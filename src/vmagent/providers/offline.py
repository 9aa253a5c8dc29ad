"""
Offline provisioning service — checks templates without a cloud.

Runs every check that can be answered from the template alone (names,
image coordinates, numeric fields, network consistency, credential ids)
and keeps an in-memory ledger of deployments instead of creating VMs.
Useful for dry runs, the CLI, and tests.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Iterable, List, Optional

from .. import naming
from ..credentials import CredentialStore, ServicePrincipal
from ..templates.schema import StorageSku, TemplateProperties
from ..validation import (
    OP_SUCCESS,
    is_valid_jvm_option,
    is_valid_storage_account_name,
    is_valid_template_name,
    storage_account_type_choices,
    verify_no_of_executors,
    verify_retention_time,
)
from .base import DeploymentInfo, ProvisioningService, register_provisioning_service

logger = logging.getLogger(__name__)


@register_provisioning_service("offline")
class OfflineProvisioningService(ProvisioningService):
    """Structural verification plus an in-memory deployment ledger.

    Args:
        credential_store: If given, template credential ids must resolve.
        locations: If given, the only accepted locations.
        vm_sizes: If given, the only accepted VM sizes.
    """

    def __init__(
        self,
        credential_store: Optional[CredentialStore] = None,
        locations: Optional[Iterable[str]] = None,
        vm_sizes: Optional[Iterable[str]] = None,
        **kwargs: Any,
    ) -> None:
        self._credential_store = credential_store
        self._locations = sorted(locations) if locations else []
        self._vm_sizes = sorted(vm_sizes) if vm_sizes else []
        self.deployments: List[DeploymentInfo] = []

    def verify_template(self, properties: TemplateProperties) -> List[str]:
        errors: List[str] = []

        if not is_valid_template_name(properties.template_name):
            errors.append(f"Template name {properties.template_name!r} is not valid")

        if naming.is_blank(properties.location):
            errors.append("Location is required")
        elif self._locations and properties.location not in self._locations:
            errors.append(f"Location {properties.location!r} is not available")

        if naming.is_blank(properties.virtual_machine_size):
            errors.append("Virtual machine size is required")
        elif self._vm_sizes and properties.virtual_machine_size not in self._vm_sizes:
            errors.append(
                f"Virtual machine size {properties.virtual_machine_size!r} is not available"
            )

        if naming.is_blank(properties.resource_group_name):
            errors.append("Resource group name is required")

        if not is_valid_storage_account_name(properties.storage_account_name):
            errors.append(
                f"Storage account name {properties.storage_account_name!r} must be "
                "3-24 lowercase letters or digits"
            )
        if (
            properties.storage_account_type == StorageSku.PREMIUM_LRS
            and StorageSku.PREMIUM_LRS not in storage_account_type_choices(
                properties.virtual_machine_size
            )
        ):
            errors.append(
                f"Virtual machine size {properties.virtual_machine_size!r} "
                "does not support premium storage"
            )

        for check in (
            verify_no_of_executors(str(properties.no_of_parallel_jobs)),
            verify_retention_time(str(properties.retention_time_in_min)),
        ):
            if check != OP_SUCCESS:
                errors.append(check)

        errors.extend(self._verify_image(properties))
        errors.extend(self._verify_network(properties))

        if naming.is_blank(properties.credentials_id):
            errors.append("Admin credentials are required")
        elif self._credential_store is not None and not self._credential_store.contains(
            properties.credentials_id
        ):
            errors.append(f"Credentials {properties.credentials_id!r} not found")

        if not is_valid_jvm_option(properties.jvm_options):
            errors.append(f"JVM options {properties.jvm_options!r} are not valid")

        return errors

    @staticmethod
    def _verify_image(properties: TemplateProperties) -> List[str]:
        if properties.image_reference_type == naming.IMAGE_CUSTOM:
            if naming.is_blank(properties.image):
                return ["Custom image URI is required"]
            return []
        missing = [
            label
            for label, value in (
                ("publisher", properties.image_publisher),
                ("offer", properties.image_offer),
                ("sku", properties.image_sku),
                ("version", properties.image_version),
            )
            if naming.is_blank(value)
        ]
        if missing:
            return [f"Image reference is missing: {', '.join(missing)}"]
        return []

    @staticmethod
    def _verify_network(properties: TemplateProperties) -> List[str]:
        has_vnet = not naming.is_blank(properties.virtual_network_name)
        has_subnet = not naming.is_blank(properties.subnet_name)
        if has_vnet and not has_subnet:
            return ["Subnet name is required when a virtual network is set"]
        if has_subnet and not has_vnet:
            return ["Virtual network name is required when a subnet is set"]
        return []

    def create_deployment(self, properties: TemplateProperties, count: int) -> DeploymentInfo:
        if count < 1:
            raise ValueError(f"Agent count must be at least 1, got {count}")
        deployment = DeploymentInfo(
            deployment_name=f"{properties.template_name}-{int(time.time())}",
            vm_base_name=f"{properties.template_name[:11]}{uuid.uuid4().hex[:4]}",
            vm_count=count,
            template_name=properties.template_name,
        )
        self.deployments.append(deployment)
        logger.info(
            "Recorded offline deployment %s (%d agent(s) from %s)",
            deployment.deployment_name, count, properties.template_name,
        )
        return deployment

    def list_vm_sizes(self, principal: ServicePrincipal, location: str) -> List[str]:
        return list(self._vm_sizes)

    def list_locations(self, principal: ServicePrincipal) -> List[str]:
        return list(self._locations)

"""Shared test fixtures for vmagent."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from vmagent.cloud import CloudContext
from vmagent.credentials import InMemoryCredentialStore, UsernamePasswordCredential
from vmagent.providers.offline import OfflineProvisioningService
from vmagent.templates.schema import AgentTemplate, TemplateForm
from vmagent.verification import VerificationGate


def linux_form(**overrides) -> TemplateForm:
    """A complete advanced-mode form that passes offline verification."""
    base = {
        "template_name": "linux-builder",
        "labels": "linux docker",
        "location": "eastus",
        "virtual_machine_size": "Standard_DS2_v2",
        "storage_account_name_reference_type": "existing",
        "existing_storage_account_name": "acct2",
        "image_top_level_type": "advanced",
        "image_publisher": "Canonical",
        "image_offer": "UbuntuServer",
        "image_sku": "16.04-LTS",
        "image_version": "latest",
        "os_type": "Linux",
        "agent_launch_method": "SSH",
        "credentials_id": "build-admin",
        "no_of_parallel_jobs": "2",
        "retention_time_in_min": "30",
    }
    base.update(overrides)
    return TemplateForm(**base)


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Provide a temporary vmagent home directory."""
    home = tmp_path / ".vmagent"
    home.mkdir()
    return home


@pytest.fixture
def configured_home(tmp_home: Path) -> Path:
    """A home with a config file and one stored credential."""
    (tmp_home / "config").mkdir()
    (tmp_home / "config" / "config.yaml").write_text(
        yaml.dump({"cloud_name": "test-cloud", "resource_group_name": "build-rg"}),
        encoding="utf-8",
    )
    (tmp_home / "credentials.yaml").write_text(
        yaml.dump({"build-admin": {"username": "jenkins", "password": "s3cret"}}),
        encoding="utf-8",
    )
    return tmp_home


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore({
        "build-admin": UsernamePasswordCredential(
            id="build-admin", username="jenkins", password="s3cret",
        ),
    })


@pytest.fixture
def service(credential_store) -> OfflineProvisioningService:
    return OfflineProvisioningService(credential_store=credential_store)


@pytest.fixture
def context(credential_store) -> CloudContext:
    return CloudContext(
        name="test-cloud",
        resource_group_name="build-rg",
        credential_store=credential_store,
    )


@pytest.fixture
def gate(service) -> VerificationGate:
    return VerificationGate(service)


@pytest.fixture
def linux_template() -> AgentTemplate:
    return AgentTemplate.from_form(linux_form())


@pytest.fixture
def make_form():
    """Factory for valid forms; keyword arguments override fields."""
    return linux_form

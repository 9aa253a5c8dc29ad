"""Tests for field checks and the offline provisioning service."""

from __future__ import annotations

import pytest

from vmagent.providers import (
    OfflineProvisioningService,
    ProvisioningService,
    available_services,
    get_provisioning_service,
    register_provisioning_service,
)
from vmagent.providers.base import _PROVISIONING_SERVICES
from vmagent.templates.schema import AgentTemplate, StorageSku, TemplateForm, resolve_template_properties
from vmagent.validation import (
    OP_SUCCESS,
    check_template_name,
    is_valid_jvm_option,
    is_valid_storage_account_name,
    is_valid_template_name,
    storage_account_type_choices,
    verify_no_of_executors,
    verify_retention_time,
)


def _props(form: TemplateForm, resource_group: str = "build-rg"):
    return resolve_template_properties(AgentTemplate.from_form(form), resource_group)


# ---------------------------------------------------------------------------
# Field checks
# ---------------------------------------------------------------------------


class TestFieldChecks:
    @pytest.mark.parametrize("name", ["a", "linux-builder", "win2016", "a1-b2"])
    def test_valid_template_names(self, name):
        assert is_valid_template_name(name)

    @pytest.mark.parametrize("name", ["", "Linux", "1abc", "ends-", "has_underscore", "x" * 16])
    def test_invalid_template_names(self, name):
        assert not is_valid_template_name(name)

    def test_storage_account_names(self):
        assert is_valid_storage_account_name("acct2")
        assert not is_valid_storage_account_name("ab")
        assert not is_valid_storage_account_name("Upper123")
        assert not is_valid_storage_account_name("x" * 25)
        assert not is_valid_storage_account_name("")

    def test_jvm_options(self):
        assert is_valid_jvm_option("")
        assert is_valid_jvm_option("-Xmx2g -Dfoo=bar")
        assert not is_valid_jvm_option("-Xmx2g Dfoo=bar")

    def test_executors_and_retention(self):
        assert verify_no_of_executors("3") == OP_SUCCESS
        assert verify_no_of_executors("0") != OP_SUCCESS
        assert verify_retention_time("0") == OP_SUCCESS
        assert verify_retention_time("soon") != OP_SUCCESS

    def test_premium_storage_needs_s_size(self):
        assert StorageSku.PREMIUM_LRS in storage_account_type_choices("Standard_DS2_v2")
        assert StorageSku.PREMIUM_LRS in storage_account_type_choices("Standard_F4s")
        assert storage_account_type_choices("Standard_A2") == [StorageSku.STANDARD_LRS]

    def test_check_template_name(self):
        errors, warnings = check_template_name("Bad Name", template_disabled=True)
        assert len(errors) == 1
        assert len(warnings) == 1
        assert check_template_name("good") == ([], [])


# ---------------------------------------------------------------------------
# Offline service
# ---------------------------------------------------------------------------


class TestOfflineVerify:
    def test_valid_template_passes(self, service, make_form):
        assert service.verify_template(_props(make_form())) == []

    def test_basic_template_passes(self, service):
        form = TemplateForm(
            template_name="win",
            location="eastus",
            virtual_machine_size="Standard_A2",
            existing_storage_account_name="acct2",
            credentials_id="build-admin",
        )
        assert service.verify_template(_props(form)) == []

    def test_collects_every_problem(self, service, make_form):
        form = make_form(
            template_name="Bad_Name",
            location="",
            existing_storage_account_name="X!",
            credentials_id="",
        )
        errors = service.verify_template(_props(form, resource_group=""))
        assert len(errors) == 5
        assert "Location is required" in errors
        assert "Resource group name is required" in errors
        assert "Admin credentials are required" in errors

    def test_unknown_credentials(self, service, make_form):
        errors = service.verify_template(_props(make_form(credentials_id="ghost")))
        assert errors == ["Credentials 'ghost' not found"]

    def test_premium_on_standard_size(self, service, make_form):
        form = make_form(virtual_machine_size="Standard_A2", storage_account_type="Premium_LRS")
        errors = service.verify_template(_props(form))
        assert errors == ["Virtual machine size 'Standard_A2' does not support premium storage"]

    def test_incomplete_reference_image(self, service, make_form):
        errors = service.verify_template(_props(make_form(image_sku="", image_version="")))
        assert errors == ["Image reference is missing: sku, version"]

    def test_custom_image_needs_no_reference(self, service, make_form):
        form = make_form(image="/images/builder", image_publisher="", image_offer="")
        assert service.verify_template(_props(form)) == []

    def test_subnet_without_vnet(self, service, make_form):
        errors = service.verify_template(_props(make_form(subnet_name="agents")))
        assert errors == ["Virtual network name is required when a subnet is set"]

    def test_vnet_without_subnet(self, service, make_form):
        errors = service.verify_template(_props(make_form(virtual_network_name="vnet")))
        assert errors == ["Subnet name is required when a virtual network is set"]

    def test_bad_jvm_options(self, service, make_form):
        errors = service.verify_template(_props(make_form(jvm_options="Xmx1g")))
        assert errors == ["JVM options 'Xmx1g' are not valid"]

    def test_restricted_locations_and_sizes(self, make_form):
        service = OfflineProvisioningService(locations=["westus"], vm_sizes=["Standard_A2"])
        errors = service.verify_template(_props(make_form()))
        assert "Location 'eastus' is not available" in errors
        assert "Virtual machine size 'Standard_DS2_v2' is not available" in errors
        assert service.list_locations(None) == ["westus"]
        assert service.list_vm_sizes(None, "westus") == ["Standard_A2"]

    def test_without_store_any_credential_id_passes(self, make_form):
        service = OfflineProvisioningService()
        assert service.verify_template(_props(make_form(credentials_id="ghost"))) == []


class TestOfflineDeployment:
    def test_records_deployment(self, service, make_form):
        info = service.create_deployment(_props(make_form()), 3)
        assert info.vm_count == 3
        assert info.template_name == "linux-builder"
        assert info.deployment_name.startswith("linux-builder-")
        assert info.vm_base_name.startswith("linux-build")
        assert len(info.vm_base_name) == 15
        assert service.deployments == [info]

    def test_count_must_be_positive(self, service, make_form):
        with pytest.raises(ValueError):
            service.create_deployment(_props(make_form()), 0)


class TestServiceRegistry:
    def test_offline_registered(self):
        assert "offline" in available_services()
        service = get_provisioning_service("offline")
        assert isinstance(service, OfflineProvisioningService)
        assert service.name == "offline"

    def test_unknown_service(self):
        with pytest.raises(RuntimeError, match="Unknown provisioning service"):
            get_provisioning_service("nimbus")

    def test_register_custom_service(self):
        @register_provisioning_service("test-fake")
        class FakeService(ProvisioningService):
            pass

        try:
            assert isinstance(get_provisioning_service("test-fake"), FakeService)
            assert FakeService.name == "test-fake"
        finally:
            _PROVISIONING_SERVICES.pop("test-fake", None)

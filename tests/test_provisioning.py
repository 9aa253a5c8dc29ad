"""Tests for the provisioning orchestrator."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from vmagent.providers.base import FailureStage
from vmagent.provisioning import (
    ProvisioningError,
    ProvisioningOrchestrator,
    TemplateNotVerifiedError,
)
from vmagent.verification import VerificationGate, VerificationState, VerificationTask


@pytest.fixture
def verified(gate, context, linux_template):
    """The linux template, registered and verified."""
    tpl = context.add_template(linux_template)
    assert gate.verify(tpl, context) == []
    return tpl


class TestProvision:
    def test_provisions_verified_template(self, gate, service, context, verified):
        orchestrator = ProvisioningOrchestrator(gate, service)
        info = orchestrator.provision(verified, context, 2)
        assert info.vm_count == 2
        assert service.deployments == [info]
        assert gate.state(verified.template_name) == VerificationState.VERIFIED

    def test_unverified_template_refused(self, gate, service, context, linux_template):
        orchestrator = ProvisioningOrchestrator(gate, service)
        with pytest.raises(TemplateNotVerifiedError, match="unverified"):
            orchestrator.provision(linux_template, context, 1)
        assert service.deployments == []

    def test_failed_template_refused(self, gate, service, context, verified):
        gate.mark_failed(verified.template_name, "boom")
        with pytest.raises(TemplateNotVerifiedError, match="failed"):
            ProvisioningOrchestrator(gate, service).provision(verified, context, 1)

    def test_count_must_be_positive(self, gate, service, context, verified):
        with pytest.raises(ValueError):
            ProvisioningOrchestrator(gate, service).provision(verified, context, 0)

    def test_does_not_reverify(self, context, linux_template):
        service = MagicMock()
        gate = VerificationGate(service)
        gate.restore(linux_template.template_name, verified=True)
        ProvisioningOrchestrator(gate, service).provision(linux_template, context, 1)
        service.verify_template.assert_not_called()
        props, count = service.create_deployment.call_args[0]
        assert props.template_name == "linux-builder"
        assert props.resource_group_name == "build-rg"
        assert count == 1


class TestProvisioningFailure:
    def test_failure_demotes_and_queues(self, context, linux_template):
        service = MagicMock()
        service.create_deployment.side_effect = RuntimeError("image not found")
        gate = VerificationGate(service)
        gate.restore(linux_template.template_name, verified=True)

        with pytest.raises(ProvisioningError) as excinfo:
            ProvisioningOrchestrator(gate, service).provision(linux_template, context, 3)

        expected = "Provisioning 3 agent(s) from linux-builder failed: image not found"
        assert str(excinfo.value) == expected
        assert excinfo.value.stage == FailureStage.PROVISIONING
        assert isinstance(excinfo.value.__cause__, RuntimeError)

        status = gate.status("linux-builder")
        assert status.state == VerificationState.FAILED
        assert status.status_details == expected
        assert gate.queue.pending() == ["linux-builder"]

    def test_repeated_failures_queue_once(self, context, linux_template):
        service = MagicMock()
        service.create_deployment.side_effect = RuntimeError("quota exceeded")
        gate = VerificationGate(service)
        orchestrator = ProvisioningOrchestrator(gate, service)
        for _ in range(3):
            gate.restore(linux_template.template_name, verified=True)
            with pytest.raises(ProvisioningError):
                orchestrator.provision(linux_template, context, 1)
        assert gate.queue.pending() == ["linux-builder"]

    def test_handle_provisioning_failure(self, gate, service, context, verified):
        orchestrator = ProvisioningOrchestrator(gate, service)
        orchestrator.handle_provisioning_failure(
            verified.template_name, "image deleted", FailureStage.POSTPROVISIONING,
        )
        status = gate.status(verified.template_name)
        assert status.state == VerificationState.FAILED
        assert status.status_details == "image deleted"
        assert status.failure_stage == FailureStage.POSTPROVISIONING
        assert len(gate.queue) == 1
        assert not gate.is_usable(verified)

    def test_failed_template_still_registered(self, gate, service, context, verified):
        ProvisioningOrchestrator(gate, service).handle_provisioning_failure(
            verified.template_name, "boom",
        )
        assert verified.template_name in context

    def test_full_lifecycle_recovers(self, gate, service, context, verified):
        orchestrator = ProvisioningOrchestrator(gate, service)
        orchestrator.handle_provisioning_failure(verified.template_name, "transient")
        VerificationTask(gate, context).run_once()
        assert gate.state(verified.template_name) == VerificationState.VERIFIED
        assert orchestrator.provision(verified, context, 1).vm_count == 1

    def test_failure_without_message(self, context, linux_template):
        service = MagicMock()
        service.create_deployment.side_effect = TimeoutError()
        gate = VerificationGate(service)
        gate.restore(linux_template.template_name, verified=True)

        with pytest.raises(ProvisioningError, match="failed: TimeoutError"):
            ProvisioningOrchestrator(gate, service).provision(linux_template, context, 1)
        assert gate.state("linux-builder") == VerificationState.FAILED
        assert gate.queue.pending() == ["linux-builder"]

    def test_empty_failure_message_still_fails(self, gate, service, context, verified):
        ProvisioningOrchestrator(gate, service).handle_provisioning_failure(
            verified.template_name, "",
        )
        assert gate.state(verified.template_name) == VerificationState.FAILED
        assert gate.queue.pending() == [verified.template_name]

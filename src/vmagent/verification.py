"""
Verification Gate — tracks whether each template is currently usable.

Verification is a cache. A template becomes VERIFIED after the
provisioning service accepts its resolved properties, and stays that way
until a verification or provisioning failure demotes it to FAILED. Failed
templates are registered with the re-verification queue so a background
task re-checks them instead of leaving them blacklisted.

State per template::

    UNVERIFIED --verify ok--> VERIFIED
    UNVERIFIED/VERIFIED --verify errors / provisioning failure--> FAILED
    FAILED --queued, re-verified--> VERIFIED or FAILED

The administrator ``template_disabled`` flag is orthogonal: a disabled
template is never usable, whatever its verification state.

Templates themselves hold no locks. The gate serializes its own status
map and makes "queued for re-verification" and "marked failed" a single
step for any reader going through the gate.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from .cloud import CloudContext
from .providers.base import FailureStage, ProvisioningService
from .templates.schema import AgentTemplate, resolve_template_properties

logger = logging.getLogger(__name__)

ERROR_REPORT_HEADER = "Found errors in the template configuration:"


class VerificationState(str, Enum):
    """Observable verification state of a template."""

    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    FAILED = "failed"


class TemplateStatus(BaseModel):
    """Mutable runtime status of one template, kept apart from its configuration."""

    template_name: str
    verified: bool = False
    failed: bool = False
    status_details: str = ""
    failure_stage: Optional[FailureStage] = None
    last_verified_at: Optional[str] = None

    @property
    def state(self) -> VerificationState:
        if self.verified:
            return VerificationState.VERIFIED
        if self.failed:
            return VerificationState.FAILED
        return VerificationState.UNVERIFIED


def format_error_report(errors: List[str]) -> str:
    """Render verification problems as a numbered, operator-facing report."""
    lines = [ERROR_REPORT_HEADER]
    lines.extend(f"{i}: {error}" for i, error in enumerate(errors, start=1))
    return "\n".join(lines)


class ReverificationQueue:
    """Template names waiting for re-verification, in registration order.

    Registering a name that is already queued is a no-op.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: Dict[str, None] = {}

    def register(self, template_name: str) -> bool:
        """Queue a template. Returns False if it was already queued."""
        with self._lock:
            if template_name in self._pending:
                return False
            self._pending[template_name] = None
        logger.info("Queued template %s for re-verification", template_name)
        return True

    def remove(self, template_name: str) -> bool:
        with self._lock:
            if template_name not in self._pending:
                return False
            del self._pending[template_name]
            return True

    def pending(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def __contains__(self, template_name: object) -> bool:
        with self._lock:
            return template_name in self._pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


class VerificationGate:
    """Owns the verification status of every template.

    Args:
        service: Provisioning service that performs the actual checks.
        queue: Re-verification queue (a fresh one by default).
    """

    def __init__(
        self,
        service: ProvisioningService,
        queue: Optional[ReverificationQueue] = None,
    ) -> None:
        self._service = service
        self.queue = queue if queue is not None else ReverificationQueue()
        self._statuses: Dict[str, TemplateStatus] = {}
        # Bumped on every transition; a verify result only lands if none
        # happened while the service was being called.
        self._generations: Dict[str, int] = {}
        self._lock = threading.RLock()

    def _entry(self, template_name: str) -> TemplateStatus:
        status = self._statuses.get(template_name)
        if status is None:
            status = TemplateStatus(template_name=template_name)
            self._statuses[template_name] = status
        return status

    def _bump(self, template_name: str) -> None:
        self._generations[template_name] = self._generations.get(template_name, 0) + 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def status(self, template_name: str) -> TemplateStatus:
        """Snapshot of a template's status."""
        with self._lock:
            return self._entry(template_name).model_copy()

    def state(self, template_name: str) -> VerificationState:
        with self._lock:
            return self._entry(template_name).state

    def is_usable(self, template: AgentTemplate) -> bool:
        """True when the template is verified and not disabled."""
        if template.template_disabled:
            return False
        with self._lock:
            return self._entry(template.template_name).verified

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def restore(
        self,
        template_name: str,
        verified: bool,
        status_details: str = "",
        failed: bool = False,
    ) -> None:
        """Seed status from persisted flags, e.g. after a restart.

        A restored failure is queued again so it gets re-checked.
        """
        with self._lock:
            self._bump(template_name)
            status = self._entry(template_name)
            status.verified = verified
            status.failed = failed and not verified
            status.status_details = "" if verified else status_details
            if status.failed:
                self.queue.register(template_name)

    def invalidate(self, template_name: str) -> None:
        """Forget any cached result, e.g. after the configuration was edited."""
        with self._lock:
            self._bump(template_name)
            self._statuses[template_name] = TemplateStatus(template_name=template_name)

    def verify(self, template: AgentTemplate, context: CloudContext) -> List[str]:
        """Verify a template against the provisioning service.

        The service sees only resolved properties. An exception from the
        service counts as a single verification error. If the template's
        status changed while the service was working (for example it was
        marked failed), the result is returned but not recorded.

        Args:
            template: The template to check.
            context: Owning cloud context (supplies the resource group).

        Returns:
            The problems found; empty on success.
        """
        name = template.template_name
        properties = resolve_template_properties(template, context.resource_group_name)
        logger.info("Verifying template %s", name)
        with self._lock:
            generation = self._generations.get(name, 0)

        try:
            errors = list(self._service.verify_template(properties))
        except Exception as exc:
            logger.warning("Verification of template %s raised: %s", name, exc)
            errors = [f"Verification could not complete: {str(exc) or type(exc).__name__}"]

        with self._lock:
            if self._generations.get(name, 0) != generation:
                logger.info("Discarding stale verification result for template %s", name)
                return errors
            self._bump(name)
            status = self._entry(name)
            status.failure_stage = None
            if errors:
                status.verified = False
                status.failed = True
                status.status_details = format_error_report(errors)
            else:
                status.verified = True
                status.failed = False
                status.status_details = ""
                status.last_verified_at = datetime.now(timezone.utc).isoformat()
                self.queue.remove(name)

        if errors:
            logger.warning("Template %s failed verification: %s", name, "; ".join(errors))
        else:
            logger.info("Template %s verified", name)
        return errors

    def mark_failed(
        self,
        template_name: str,
        message: str,
        stage: FailureStage = FailureStage.PROVISIONING,
    ) -> None:
        """Demote a template after a runtime failure and queue it for re-checking.

        Queue registration and the status change happen under the gate
        lock, so no reader sees the template as verified but not queued.
        """
        with self._lock:
            self.queue.register(template_name)
            self._bump(template_name)
            status = self._entry(template_name)
            status.verified = False
            status.failed = True
            status.status_details = message
            status.failure_stage = stage
        logger.warning(
            "Template %s marked failed at %s stage: %s",
            template_name, stage.value, message,
        )


class VerificationTask:
    """Re-verifies queued templates of one cloud context.

    Args:
        gate: The verification gate.
        context: Cloud context the templates belong to.
        interval: Seconds between passes in ``run_forever``.
    """

    def __init__(
        self,
        gate: VerificationGate,
        context: CloudContext,
        interval: float = 300.0,
    ) -> None:
        self._gate = gate
        self._context = context
        self._interval = interval

    def run_once(self) -> Dict[str, List[str]]:
        """One pass over the queue.

        Templates no longer registered with the context are dropped from the
        queue. Disabled templates stay queued but are not checked. Templates
        that pass leave the queue; templates that fail stay.

        Returns:
            Dict mapping each checked template name to its errors.
        """
        results: Dict[str, List[str]] = {}
        for name in self._gate.queue.pending():
            template = self._context.get_template(name)
            if template is None:
                logger.info("Dropping %s from re-verification: not registered", name)
                self._gate.queue.remove(name)
                continue
            if template.template_disabled:
                logger.debug("Skipping disabled template %s", name)
                continue
            results[name] = self._gate.verify(template, self._context)
        return results

    def run_forever(self, stop_event: threading.Event) -> None:
        """Run passes until ``stop_event`` is set."""
        logger.info(
            "Re-verification task started for cloud %s (interval=%ss)",
            self._context.name, self._interval,
        )
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception as exc:
                logger.error("Re-verification pass failed: %s", exc)
            stop_event.wait(self._interval)

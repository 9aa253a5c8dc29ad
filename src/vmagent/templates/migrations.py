"""
Template record migrations — bring persisted records up to date on load.

Older records may predate the storage account type tag, the top-level
image type or the explicit failure flag. Each upgrade step is a pure ``dict -> dict`` function that
only fills in blanks, so running the chain on an already-current record
changes nothing and loading the same file any number of times yields the
same template.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Tuple

from .. import naming
from .catalog import DEFAULT_BUILT_IN_IMAGE
from .schema import AgentTemplate, StorageSku, TemplateForm

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

CURRENT_SCHEMA_VERSION = 4

LEGACY_STORAGE_ACCOUNT_NAME = "storage_account_name"


def _blank(record: Record, key: str) -> bool:
    return naming.is_blank(record.get(key))


def backfill_storage_account_type(record: Record) -> Record:
    """v0 -> v1: records without a storage SKU get Standard_LRS."""
    upgraded = dict(record)
    if _blank(upgraded, "storage_account_type"):
        upgraded["storage_account_type"] = StorageSku.STANDARD_LRS.value
    return upgraded


def backfill_storage_account_reference(record: Record) -> Record:
    """v1 -> v2: move a legacy flat storage account name to the ``new`` side.

    Only applies when neither the new nor the existing name is set, so an
    explicit choice is never overwritten.
    """
    upgraded = dict(record)
    if (
        _blank(upgraded, "new_storage_account_name")
        and _blank(upgraded, "existing_storage_account_name")
        and not _blank(upgraded, LEGACY_STORAGE_ACCOUNT_NAME)
    ):
        upgraded["new_storage_account_name"] = upgraded[LEGACY_STORAGE_ACCOUNT_NAME]
        upgraded["storage_account_name_reference_type"] = naming.REFERENCE_TYPE_NEW
    return upgraded


def backfill_image_top_level_type(record: Record) -> Record:
    """v2 -> v3: infer basic/advanced for records that predate the choice."""
    upgraded = dict(record)
    if _blank(upgraded, "image_top_level_type"):
        upgraded["image_top_level_type"] = naming.resolve_image_top_level_type(
            None,
            upgraded.get("image"),
            upgraded.get("image_publisher"),
            upgraded.get("image_offer"),
            upgraded.get("image_sku"),
        )
        if _blank(upgraded, "built_in_image"):
            upgraded["built_in_image"] = DEFAULT_BUILT_IN_IMAGE.value
    return upgraded


def backfill_template_failed(record: Record) -> Record:
    """v3 -> v4: older records only marked a failure by keeping a diagnostic."""
    upgraded = dict(record)
    if "template_failed" not in upgraded:
        upgraded["template_failed"] = not upgraded.get("template_verified") and not _blank(
            upgraded, "template_status_details"
        )
    return upgraded


# Index i upgrades a record from version i to version i + 1.
UPGRADE_STEPS: List[Callable[[Record], Record]] = [
    backfill_storage_account_type,
    backfill_storage_account_reference,
    backfill_image_top_level_type,
    backfill_template_failed,
]


def record_version(record: Record) -> int:
    """Schema version of a record; records without one are version 0."""
    try:
        return max(0, int(record.get("schema_version") or 0))
    except (TypeError, ValueError):
        return 0


def upgrade_record(record: Record) -> Record:
    """Run every pending upgrade step and stamp the current version.

    Args:
        record: Raw persisted mapping (not modified).

    Returns:
        A new, fully upgraded mapping.
    """
    version = record_version(record)
    upgraded = dict(record)
    for target, step in enumerate(UPGRADE_STEPS, start=1):
        if version < target:
            upgraded = step(upgraded)
    if version < CURRENT_SCHEMA_VERSION:
        logger.debug(
            "Upgraded template record %s from v%d to v%d",
            upgraded.get("template_name", "?"), version, CURRENT_SCHEMA_VERSION,
        )
    upgraded["schema_version"] = max(version, CURRENT_SCHEMA_VERSION)
    return upgraded


def rehydrate(record: Record) -> Tuple[AgentTemplate, Dict[str, Any]]:
    """Turn a persisted record into a template plus its saved runtime flags.

    Args:
        record: Raw persisted mapping, any schema version.

    Returns:
        Tuple of (AgentTemplate, runtime dict with ``verified``, ``failed``
        and ``status_details``).
    """
    upgraded = upgrade_record(record)
    template = AgentTemplate.from_form(TemplateForm(**upgraded))
    verified = bool(upgraded.get("template_verified", False))
    runtime = {
        "verified": verified,
        "failed": bool(upgraded.get("template_failed", False)) and not verified,
        "status_details": upgraded.get("template_status_details") or "",
    }
    return template, runtime


def to_record(
    template: AgentTemplate,
    verified: bool = False,
    status_details: str = "",
    failed: bool = False,
) -> Record:
    """Serialize a template and its runtime flags into a current-version record."""
    record: Record = template.to_form().model_dump(mode="json")
    record["schema_version"] = CURRENT_SCHEMA_VERSION
    record["template_verified"] = verified
    record["template_failed"] = failed and not verified
    record["template_status_details"] = status_details
    return record

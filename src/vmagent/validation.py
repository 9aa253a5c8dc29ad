"""
Field checks shared by the offline verifier and the CLI.

Each ``verify_*`` helper returns ``OP_SUCCESS`` or a human-readable
problem, so callers can collect problems into a single report.
"""

from __future__ import annotations

import re
from typing import List, Tuple

from .templates.schema import StorageSku

OP_SUCCESS = "Success"

_TEMPLATE_NAME = re.compile(r"^[a-z][a-z0-9-]*[a-z0-9]$|^[a-z]$")
_STORAGE_ACCOUNT_NAME = re.compile(r"^[a-z0-9]{3,24}$")
_DIGITS = re.compile(r"^\d+$")
# DS, GS, FS and LS sizes can use premium storage.
_PREMIUM_CAPABLE_SIZE = re.compile(r".*(D|G|F[0-9]+|L[0-9]+)[Ss].*")

MAX_TEMPLATE_NAME_LENGTH = 15


def is_valid_template_name(name: str) -> bool:
    """Lowercase letters, digits and hyphens; starts with a letter, ends alphanumeric."""
    return bool(name) and len(name) <= MAX_TEMPLATE_NAME_LENGTH and bool(
        _TEMPLATE_NAME.match(name)
    )


def is_valid_storage_account_name(name: str) -> bool:
    return bool(_STORAGE_ACCOUNT_NAME.match(name or ""))


def is_valid_jvm_option(options: str) -> bool:
    """Every whitespace-separated option must start with a dash."""
    return all(token.startswith("-") for token in (options or "").split())


def verify_no_of_executors(value: str) -> str:
    text = (value or "").strip()
    if not _DIGITS.match(text) or int(text) < 1:
        return "Number of parallel jobs must be a positive integer"
    return OP_SUCCESS


def verify_retention_time(value: str) -> str:
    text = (value or "").strip()
    if not _DIGITS.match(text):
        return "Retention time must be a non-negative number of minutes"
    return OP_SUCCESS


def storage_account_type_choices(virtual_machine_size: str) -> List[StorageSku]:
    """Storage SKUs a VM size can use."""
    choices = [StorageSku.STANDARD_LRS]
    if _PREMIUM_CAPABLE_SIZE.match(virtual_machine_size or ""):
        choices.append(StorageSku.PREMIUM_LRS)
    return choices


def check_template_name(name: str, template_disabled: bool = False) -> Tuple[List[str], List[str]]:
    """Validate a template name for display next to the form.

    Returns:
        Tuple of (errors, warnings).
    """
    errors: List[str] = []
    warnings: List[str] = []
    if not is_valid_template_name(name):
        errors.append(
            f"Template name {name!r} is not valid: use up to "
            f"{MAX_TEMPLATE_NAME_LENGTH} lowercase letters, digits or hyphens, "
            "starting with a letter"
        )
    if template_disabled:
        warnings.append("Template is disabled and will not be used to provision agents")
    return errors, warnings

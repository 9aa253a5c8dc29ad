"""
Naming Resolver — pure functions that pick the active side of each
configuration axis and derive deterministic resource names.

Every function here is side-effect free so that the template model, the
CLI, and the offline verifier all agree on the same effective values
without re-deriving the rules.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

STORAGE_ACCOUNT_PREFIX = "jn"
STORAGE_ACCOUNT_UID_LENGTH = 22

REFERENCE_TYPE_NEW = "new"
REFERENCE_TYPE_EXISTING = "existing"

IMAGE_TOP_LEVEL_BASIC = "basic"
IMAGE_TOP_LEVEL_ADVANCED = "advanced"
IMAGE_REFERENCE = "reference"
IMAGE_CUSTOM = "custom"

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class StorageNamingError(ValueError):
    """No storage account name was given and none could be generated."""


def is_blank(value: Optional[str]) -> bool:
    """True for None, empty, or whitespace-only strings."""
    return value is None or not str(value).strip()


# ---------------------------------------------------------------------------
# Tagged-choice resolution
# ---------------------------------------------------------------------------

def resolve_storage_reference_type(
    reference_type: Optional[str], new_name: Optional[str],
) -> str:
    """Decide whether the storage account is a new or an existing one.

    An explicit ``new`` tag wins. A blank tag falls back to ``new`` when a
    new-account name is present. Anything else is ``existing``.

    Args:
        reference_type: Raw type tag (may be None or blank).
        new_name: Raw new-account name.

    Returns:
        ``"new"`` or ``"existing"``.
    """
    if is_blank(reference_type):
        return REFERENCE_TYPE_NEW if not is_blank(new_name) else REFERENCE_TYPE_EXISTING
    if reference_type.strip().lower() == REFERENCE_TYPE_NEW:
        return REFERENCE_TYPE_NEW
    return REFERENCE_TYPE_EXISTING


def resolve_storage_account_name(
    reference_type: Optional[str],
    new_name: Optional[str],
    existing_name: Optional[str],
) -> str:
    """Return the effective storage account name.

    Args:
        reference_type: Raw type tag (``new``, ``existing`` or blank).
        new_name: Name of an account to be created.
        existing_name: Name of an account that must already exist.

    Returns:
        The new-account name when the ``new`` side is active, otherwise the
        existing-account name. None is returned as an empty string.
    """
    if resolve_storage_reference_type(reference_type, new_name) == REFERENCE_TYPE_NEW:
        return new_name or ""
    return existing_name or ""


def resolve_resource_group_name(
    reference_type: Optional[str],
    new_name: Optional[str],
    existing_name: Optional[str],
) -> str:
    """Same new/existing policy, applied to a cloud's resource group fields."""
    return resolve_storage_account_name(reference_type, new_name, existing_name)


def resolve_image_reference_type(custom_image: Optional[str]) -> str:
    """``custom`` iff a custom image identifier is set, else ``reference``."""
    return IMAGE_CUSTOM if not is_blank(custom_image) else IMAGE_REFERENCE


def resolve_image_top_level_type(
    top_level_type: Optional[str],
    image: Optional[str] = None,
    publisher: Optional[str] = None,
    offer: Optional[str] = None,
    sku: Optional[str] = None,
) -> str:
    """Decide between the built-in catalog and a fully specified image.

    An explicit, recognised tag is kept as-is. A blank or unknown tag infers
    ``advanced`` when any advanced-only field is filled in, else ``basic``.
    """
    if not is_blank(top_level_type):
        tag = top_level_type.strip().lower()
        if tag in (IMAGE_TOP_LEVEL_BASIC, IMAGE_TOP_LEVEL_ADVANCED):
            return tag
    if any(not is_blank(v) for v in (image, publisher, offer, sku)):
        return IMAGE_TOP_LEVEL_ADVANCED
    return IMAGE_TOP_LEVEL_BASIC


# ---------------------------------------------------------------------------
# Deterministic names
# ---------------------------------------------------------------------------

def generate_unique_storage_account_name(
    resource_group_name: Optional[str],
    subscription_id: Optional[str] = None,
) -> str:
    """Derive a stable storage account name for a resource group.

    MD5 over the subscription id followed by the resource group name,
    base64-encoded, cut to 22 characters, lowercased, with every
    character outside ``[a-z0-9]`` replaced by ``a`` and a two-letter
    prefix prepended. The same pair always yields the same 24-character
    name.

    Args:
        resource_group_name: Owning resource group.
        subscription_id: Subscription of the service principal, if known.

    Returns:
        The generated name, or ``""`` if the digest could not be computed.
    """
    try:
        digest = hashlib.md5()
        if subscription_id:
            digest.update(subscription_id.encode("utf-8"))
        if resource_group_name is not None:
            digest.update(resource_group_name.encode("utf-8"))
        uid = base64.b64encode(digest.digest()).decode("ascii")
    except (ValueError, UnicodeError) as exc:
        logger.warning(
            "Could not generate a storage account name for resource group %s: %s",
            resource_group_name, exc,
        )
        return ""

    uid = uid[:STORAGE_ACCOUNT_UID_LENGTH].lower()
    return STORAGE_ACCOUNT_PREFIX + _NON_ALNUM.sub("a", uid)

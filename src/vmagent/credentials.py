"""
Credential store — resolves opaque credential ids to secrets.

Templates only ever carry a credential id. The actual username/password
for agent VMs, or the service principal a cloud context authenticates
with, is looked up here when needed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from . import VMAGENT_HOME

logger = logging.getLogger(__name__)


class CredentialNotFoundError(KeyError):
    """No credential is stored under the requested id."""


class UsernamePasswordCredential(BaseModel):
    """Admin login provisioned onto agent VMs."""

    id: str
    username: str
    password: str = Field(default="", repr=False)
    description: str = ""


class ServicePrincipal(BaseModel):
    """Cloud API identity used by a cloud context."""

    id: str = ""
    subscription_id: str = ""
    client_id: str = ""
    client_secret: str = Field(default="", repr=False)
    tenant: str = ""
    service_management_url: str = "https://management.azure.com/"

    def masked(self) -> Dict[str, Optional[str]]:
        """Loggable view with the client id and secret hidden."""
        return {
            "subscription_id": self.subscription_id,
            "client_id": "********" if self.client_id else None,
            "client_secret": "********" if self.client_secret else None,
            "service_management_url": self.service_management_url,
        }


Credential = Union[UsernamePasswordCredential, ServicePrincipal]


class CredentialStore:
    """Abstract credential lookup."""

    def lookup(self, credentials_id: str) -> Credential:
        """Resolve a credential id.

        Raises:
            CredentialNotFoundError: If the id is unknown.
        """
        raise NotImplementedError

    def contains(self, credentials_id: str) -> bool:
        try:
            self.lookup(credentials_id)
        except CredentialNotFoundError:
            return False
        return True

    def service_principal(self, credentials_id: str) -> ServicePrincipal:
        """Resolve an id that must refer to a service principal.

        Raises:
            CredentialNotFoundError: If the id is unknown or not a principal.
        """
        credential = self.lookup(credentials_id)
        if not isinstance(credential, ServicePrincipal):
            raise CredentialNotFoundError(
                f"Credential {credentials_id!r} is not a service principal"
            )
        return credential


class InMemoryCredentialStore(CredentialStore):
    """Dictionary-backed store, mainly for tests and embedding."""

    def __init__(self, credentials: Optional[Dict[str, Credential]] = None) -> None:
        self._credentials: Dict[str, Credential] = dict(credentials or {})

    def add(self, credential: Credential) -> None:
        self._credentials[credential.id] = credential

    def lookup(self, credentials_id: str) -> Credential:
        try:
            return self._credentials[credentials_id]
        except KeyError:
            raise CredentialNotFoundError(credentials_id) from None


class FileCredentialStore(CredentialStore):
    """Credentials kept in ``<home>/credentials.yaml``.

    The file maps ids to mappings. Entries with a ``subscription_id`` are
    service principals, everything else is a username/password pair::

        build-admin:
          username: jenkins
          password: s3cret
        azure-sp:
          subscription_id: 0000-...
          client_id: ...
          client_secret: ...

    Args:
        home: vmagent home directory (default ~/.vmagent).
    """

    def __init__(self, home: Optional[Path] = None) -> None:
        self._path = (home or Path(VMAGENT_HOME)).expanduser() / "credentials.yaml"

    def _load(self) -> Dict[str, dict]:
        if not self._path.exists():
            return {}
        try:
            data = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            logger.warning("Failed to read %s: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a mapping of credentials", self._path)
            return {}
        return data

    def lookup(self, credentials_id: str) -> Credential:
        entry = self._load().get(credentials_id)
        if not isinstance(entry, dict):
            raise CredentialNotFoundError(credentials_id)
        # YAML reads unquoted ids and numeric secrets as ints
        fields = {
            k: str(v) if isinstance(v, (int, float)) else v
            for k, v in entry.items() if k != "id"
        }
        try:
            if "subscription_id" in fields:
                return ServicePrincipal(id=credentials_id, **fields)
            return UsernamePasswordCredential(id=credentials_id, **fields)
        except (TypeError, ValidationError) as exc:
            logger.warning("Malformed credential %s in %s: %s", credentials_id, self._path, exc)
            raise CredentialNotFoundError(credentials_id) from exc

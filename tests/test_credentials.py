"""Tests for credential lookup."""

from __future__ import annotations

import pytest
import yaml

from vmagent.credentials import (
    CredentialNotFoundError,
    FileCredentialStore,
    InMemoryCredentialStore,
    ServicePrincipal,
    UsernamePasswordCredential,
)


class TestInMemoryCredentialStore:
    def test_lookup(self, credential_store):
        cred = credential_store.lookup("build-admin")
        assert isinstance(cred, UsernamePasswordCredential)
        assert cred.username == "jenkins"

    def test_unknown_id_raises(self, credential_store):
        with pytest.raises(CredentialNotFoundError):
            credential_store.lookup("nope")

    def test_not_found_is_a_key_error(self, credential_store):
        with pytest.raises(KeyError):
            credential_store.lookup("nope")

    def test_contains(self, credential_store):
        assert credential_store.contains("build-admin")
        assert not credential_store.contains("nope")

    def test_service_principal_type_checked(self, credential_store):
        with pytest.raises(CredentialNotFoundError, match="not a service principal"):
            credential_store.service_principal("build-admin")

    def test_add(self):
        store = InMemoryCredentialStore()
        store.add(ServicePrincipal(id="sp", subscription_id="sub-1"))
        assert store.service_principal("sp").subscription_id == "sub-1"


class TestFileCredentialStore:
    def _write(self, home, data):
        (home / "credentials.yaml").write_text(yaml.dump(data), encoding="utf-8")

    def test_missing_file(self, tmp_home):
        assert not FileCredentialStore(tmp_home).contains("anything")

    def test_username_password(self, tmp_home):
        self._write(tmp_home, {"build-admin": {"username": "jenkins", "password": "pw"}})
        cred = FileCredentialStore(tmp_home).lookup("build-admin")
        assert isinstance(cred, UsernamePasswordCredential)
        assert cred.id == "build-admin"

    def test_service_principal(self, tmp_home):
        self._write(tmp_home, {
            "azure-sp": {
                "id": "ignored",
                "subscription_id": "sub-1",
                "client_id": "cid",
                "client_secret": "secret",
            },
        })
        sp = FileCredentialStore(tmp_home).service_principal("azure-sp")
        assert sp.id == "azure-sp"
        assert sp.subscription_id == "sub-1"

    def test_masked_hides_secrets(self):
        sp = ServicePrincipal(subscription_id="sub", client_id="cid", client_secret="secret")
        masked = sp.masked()
        assert "secret" not in masked.values()
        assert masked["client_id"] == "********"
        assert "secret" not in repr(sp)

    def test_broken_yaml_means_no_credentials(self, tmp_home):
        (tmp_home / "credentials.yaml").write_text("a: [b\n", encoding="utf-8")
        with pytest.raises(CredentialNotFoundError):
            FileCredentialStore(tmp_home).lookup("a")

    def test_numeric_values_read_as_strings(self, tmp_home):
        self._write(tmp_home, {"azure-sp": {"subscription_id": 12345, "client_secret": 987}})
        sp = FileCredentialStore(tmp_home).service_principal("azure-sp")
        assert sp.subscription_id == "12345"
        assert sp.client_secret == "987"

    def test_malformed_entry_is_not_found(self, tmp_home):
        self._write(tmp_home, {"build-admin": {"password": "pw"}})
        store = FileCredentialStore(tmp_home)
        with pytest.raises(CredentialNotFoundError):
            store.lookup("build-admin")
        assert not store.contains("build-admin")

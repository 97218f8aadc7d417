"""Tests for VaultClient - AppRole auth and clinic-scoped secrets (hvac mocked)."""

from unittest.mock import MagicMock, patch

import pytest
from hvac.exceptions import Forbidden, InvalidPath

import clients.vault_client as vault_module
from clients.vault_client import VaultClient, VaultError, get_database_url


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "http://vault.test:8200")
    monkeypatch.setenv("VAULT_ROLE_ID", "role")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)


@pytest.fixture
def hvac_client(vault_env):
    """hvac.Client double that authenticates and serves clinic/database."""
    client = MagicMock()
    client.is_authenticated.return_value = True
    client.auth.approle.login.return_value = {"auth": {"client_token": "tok"}}
    client.secrets.kv.v2.read_secret_version.return_value = {
        "data": {"data": {"url": "postgresql://app@db/clinic", "admin_url": "postgresql://admin@db/clinic"}}
    }
    with patch("clients.vault_client.hvac.Client", return_value=client):
        yield client


@pytest.fixture(autouse=True)
def fresh_singleton():
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()
    yield
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()


class TestVaultClientInit:
    """Initialization and authentication."""

    def test_missing_vault_addr_raises(self, vault_env, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR")
        with pytest.raises(VaultError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials_raises(self, vault_env, monkeypatch):
        monkeypatch.delenv("VAULT_SECRET_ID")
        with pytest.raises(VaultError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_rejected_approle_raises(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = Forbidden("denied")
        with pytest.raises(VaultError, match="AppRole"):
            VaultClient()

    def test_valid_approle_sets_token(self, hvac_client):
        client = VaultClient()
        assert client.client.token == "tok"


class TestGetSecret:
    """Secret retrieval - paths automatically scoped to clinic/."""

    def test_reads_under_clinic_prefix(self, hvac_client):
        url = VaultClient().get_secret("database", "url")

        assert url == "postgresql://app@db/clinic"
        kwargs = hvac_client.secrets.kv.v2.read_secret_version.call_args.kwargs
        assert kwargs["path"] == "clinic/database"

    def test_missing_path_raises(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = InvalidPath()
        with pytest.raises(VaultError, match="not found"):
            VaultClient().get_secret("nonexistent", "field")

    def test_missing_field_raises_keyerror(self, hvac_client):
        with pytest.raises(KeyError, match="not found"):
            VaultClient().get_secret("database", "nonexistent_field")


class TestConvenienceFunctions:
    """Module-level helpers cache per secret field."""

    def test_database_url_cached(self, hvac_client):
        assert get_database_url() == "postgresql://app@db/clinic"
        assert get_database_url() == "postgresql://app@db/clinic"

        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 1

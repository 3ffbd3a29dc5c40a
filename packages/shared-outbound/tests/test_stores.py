"""Tests for syncbridge.outbound.stores."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as gcp_exceptions
from syncbridge.outbound.credentials import CredentialStore
from syncbridge.outbound.exceptions import ConfigError
from syncbridge.outbound.stores import SecretManagerCredentialStore, SecretStoreConfig


@pytest.fixture
def secret_client() -> MagicMock:
    """Create a mock Secret Manager client."""
    return MagicMock()


@pytest.fixture
def store(secret_client) -> SecretManagerCredentialStore:
    """Create a store backed by the mock client."""
    return SecretManagerCredentialStore(SecretStoreConfig(project_id="test-project"), client=secret_client)


class TestSecretStoreConfig:
    """Tests for SecretStoreConfig."""

    def test_from_env(self, monkeypatch) -> None:
        """Test configuration is read from the environment."""
        monkeypatch.setenv("GCP_PROJECT_ID", "my-project")
        monkeypatch.setenv("SYNCBRIDGE_SECRET_PREFIX", "crm")

        config = SecretStoreConfig.from_env()

        assert config.project_id == "my-project"
        assert config.secret_prefix == "crm"

    def test_from_env_requires_project(self, monkeypatch) -> None:
        """Test a missing project id raises ConfigError."""
        monkeypatch.delenv("GCP_PROJECT_ID", raising=False)

        with pytest.raises(ConfigError, match="GCP_PROJECT_ID"):
            SecretStoreConfig.from_env()


class TestSecretManagerCredentialStore:
    """Tests for SecretManagerCredentialStore."""

    def test_satisfies_protocol(self, store) -> None:
        """Test the store satisfies the CredentialStore protocol."""
        assert isinstance(store, CredentialStore)

    def test_get(self, store, secret_client) -> None:
        """Test the latest secret version is read and decoded."""
        secret_client.access_secret_version.return_value.payload.data = b'{"access_token": "t"}'

        assert store.get("zoho-token-prod") == '{"access_token": "t"}'
        secret_client.access_secret_version.assert_called_once_with(
            request={"name": "projects/test-project/secrets/syncbridge-zoho-token-prod/versions/latest"}
        )

    def test_get_missing(self, store, secret_client) -> None:
        """Test a missing secret reads as None."""
        secret_client.access_secret_version.side_effect = gcp_exceptions.NotFound("missing")

        assert store.get("zoho-token-prod") is None

    def test_set_creates_secret_and_version(self, store, secret_client) -> None:
        """Test writing creates the secret then adds a version."""
        store.set("zoho-refresh-prod", "1000.refresh")

        create_request = secret_client.create_secret.call_args.kwargs["request"]
        assert create_request["parent"] == "projects/test-project"
        assert create_request["secret_id"] == "syncbridge-zoho-refresh-prod"
        secret_client.add_secret_version.assert_called_once_with(
            request={
                "parent": "projects/test-project/secrets/syncbridge-zoho-refresh-prod",
                "payload": {"data": b"1000.refresh"},
            }
        )

    def test_set_existing_secret(self, store, secret_client) -> None:
        """Test an existing secret only gets a new version."""
        secret_client.create_secret.side_effect = gcp_exceptions.AlreadyExists("exists")

        store.set("zoho-refresh-prod", "1000.new")

        secret_client.add_secret_version.assert_called_once()

    def test_set_empty_deletes(self, store, secret_client) -> None:
        """Test clearing a credential deletes its secret."""
        secret_client.delete_secret.side_effect = gcp_exceptions.NotFound("missing")

        store.set("zoho-token-prod", "")

        secret_client.delete_secret.assert_called_once_with(
            request={"name": "projects/test-project/secrets/syncbridge-zoho-token-prod"}
        )
        secret_client.add_secret_version.assert_not_called()

    def test_lazy_client(self) -> None:
        """Test the Secret Manager client is created on first use."""
        store = SecretManagerCredentialStore(SecretStoreConfig(project_id="p"))

        with patch("google.cloud.secretmanager.SecretManagerServiceClient") as client_class:
            assert store.client is client_class.return_value
            assert store.client is client_class.return_value

        client_class.assert_called_once_with()

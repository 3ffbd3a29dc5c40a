"""Google Cloud Secret Manager backed credential store.

Requires the ``gcp`` extra:

    pip install syncbridge-outbound[gcp]
"""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass
from typing import Any

from syncbridge.outbound.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class SecretStoreConfig:
    """Configuration for Secret Manager storage.

    Attributes:
        project_id: GCP project ID for Secret Manager.
        secret_prefix: Prefix for secret names. Defaults to "syncbridge".
    """

    project_id: str
    secret_prefix: str = "syncbridge"

    @classmethod
    def from_env(cls) -> SecretStoreConfig:
        """Create configuration from GCP_PROJECT_ID and SYNCBRIDGE_SECRET_PREFIX.

        Raises:
            ConfigError: If GCP_PROJECT_ID is not set.
        """
        project_id = os.getenv("GCP_PROJECT_ID")
        if not project_id:
            raise ConfigError("GCP_PROJECT_ID environment variable required")
        return cls(
            project_id=project_id,
            secret_prefix=os.getenv("SYNCBRIDGE_SECRET_PREFIX", "syncbridge"),
        )


class SecretManagerCredentialStore:
    """CredentialStore that keeps each key as a Secret Manager secret.

    Secrets are named ``{prefix}-{key}``, e.g.
    ``syncbridge-salesforce-token-prod``. Writing an empty value deletes the
    secret, so a cleared credential reads back as None.

    Example:
        >>> store = SecretManagerCredentialStore(SecretStoreConfig("my-project"))
        >>> adapter = SalesforceAdapter(config, credential_store=store)
    """

    def __init__(self, config: SecretStoreConfig | None = None, client: Any = None):
        self._config = config
        self._client = client

    @property
    def config(self) -> SecretStoreConfig:
        if self._config is None:
            self._config = SecretStoreConfig.from_env()
        return self._config

    @property
    def client(self) -> Any:
        """Lazy-initialize the Secret Manager client.

        Raises:
            ImportError: If google-cloud-secret-manager is not installed.
        """
        if self._client is None:
            try:
                from google.cloud import secretmanager
            except ImportError as e:
                raise ImportError(
                    "google-cloud-secret-manager is required. "
                    "Install with: pip install syncbridge-outbound[gcp]"
                ) from e
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def _secret_path(self, key: str) -> str:
        return f"projects/{self.config.project_id}/secrets/{self.config.secret_prefix}-{key}"

    def get(self, key: str) -> str | None:
        from google.api_core import exceptions

        name = f"{self._secret_path(key)}/versions/latest"
        try:
            response = self.client.access_secret_version(request={"name": name})
        except exceptions.NotFound:
            return None
        return response.payload.data.decode("utf-8")

    def set(self, key: str, value: str) -> None:
        from google.api_core import exceptions

        if not value:
            with contextlib.suppress(exceptions.NotFound):
                self.client.delete_secret(request={"name": self._secret_path(key)})
            logger.debug(f"Cleared secret for {key}")
            return

        parent = f"projects/{self.config.project_id}"
        with contextlib.suppress(exceptions.AlreadyExists):
            self.client.create_secret(
                request={
                    "parent": parent,
                    "secret_id": f"{self.config.secret_prefix}-{key}",
                    "secret": {
                        "replication": {"automatic": {}},
                        "labels": {"managed_by": "syncbridge"},
                    },
                }
            )
        self.client.add_secret_version(
            request={
                "parent": self._secret_path(key),
                "payload": {"data": value.encode("utf-8")},
            }
        )
        logger.debug(f"Stored secret for {key}")

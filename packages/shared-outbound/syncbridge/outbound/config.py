"""Configuration models for outbound integrations."""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from syncbridge.outbound.exceptions import ConfigError

# Refresh cached tokens 5 minutes before they expire
DEFAULT_REFRESH_BUFFER_MS = 5 * 60 * 1000


class VendorType(str, Enum):
    """Supported vendor adapters."""

    SALESFORCE = "salesforce"
    HUBSPOT = "hubspot"
    ZOHO = "zoho"


class LifecycleEvent(str, Enum):
    """Lifecycle events an integration can bind to."""

    AFTER_CREATE = "afterCreate"
    AFTER_UPDATE = "afterUpdate"
    AFTER_DELETE = "afterDelete"


# Environment variables read by VendorConfig.from_env, per vendor:
# (credentials, connection_params), each mapping config key -> env var
ENV_VARIABLES: dict[VendorType, tuple[dict[str, str], dict[str, str]]] = {
    VendorType.SALESFORCE: (
        {
            "client_id": "SALESFORCE_CONSUMER_KEY",
            "client_secret": "SALESFORCE_CONSUMER_SECRET",
        },
        {
            "instance_url": "SALESFORCE_INSTANCE_URL",
            "api_version": "SALESFORCE_API_VERSION",
        },
    ),
    VendorType.HUBSPOT: (
        {"api_key": "HUBSPOT_API_KEY"},
        {"portal_id": "HUBSPOT_PORTAL_ID"},
    ),
    VendorType.ZOHO: (
        {
            "client_id": "ZOHO_CLIENT_ID",
            "client_secret": "ZOHO_CLIENT_SECRET",
            "refresh_token": "ZOHO_REFRESH_TOKEN",
            "grant_token": "ZOHO_GRANT_TOKEN",
        },
        {"domain": "ZOHO_DOMAIN"},
    ),
}


@dataclass
class VendorConfig:
    """Configuration for a vendor adapter."""

    vendor_type: VendorType
    name: str  # Human-readable name for this connection

    # Authentication (repr=False to prevent credential exposure in logs)
    credentials: dict[str, Any] = field(default_factory=dict, repr=False)

    # Connection settings
    connection_params: dict[str, Any] = field(default_factory=dict)

    # Token cache settings
    environment: str = "dev"
    refresh_buffer_ms: int = DEFAULT_REFRESH_BUFFER_MS

    @property
    def token_key(self) -> str:
        """Credential store key for the cached token."""
        return f"{self.vendor_type.value}-token-{self.environment}"

    @classmethod
    def from_env(cls, vendor_type: VendorType, name: str | None = None) -> VendorConfig:
        """Create configuration from environment variables.

        Uses SYNCBRIDGE_ENV for the environment (default "dev") and
        SYNCBRIDGE_REFRESH_BUFFER_MS for the refresh buffer.

        Args:
            vendor_type: Vendor to configure.
            name: Optional connection name. Defaults to the vendor name.

        Returns:
            VendorConfig instance.

        Raises:
            ConfigError: If no credential variable is set for the vendor.
        """
        credential_vars, param_vars = ENV_VARIABLES[vendor_type]

        credentials = {
            key: os.environ[var] for key, var in credential_vars.items() if os.getenv(var)
        }
        if not credentials:
            raise ConfigError(
                f"No credentials found in environment for {vendor_type.value}: "
                f"set one of {', '.join(credential_vars.values())}"
            )
        connection_params = {
            key: os.environ[var] for key, var in param_vars.items() if os.getenv(var)
        }

        buffer = os.getenv("SYNCBRIDGE_REFRESH_BUFFER_MS")
        try:
            refresh_buffer_ms = int(buffer) if buffer else DEFAULT_REFRESH_BUFFER_MS
        except ValueError as e:
            raise ConfigError(
                f"SYNCBRIDGE_REFRESH_BUFFER_MS must be an integer, got {buffer!r}"
            ) from e

        return cls(
            vendor_type=vendor_type,
            name=name or vendor_type.value,
            credentials=credentials,
            connection_params=connection_params,
            environment=os.getenv("SYNCBRIDGE_ENV", "dev"),
            refresh_buffer_ms=refresh_buffer_ms,
        )


@dataclass(frozen=True)
class EventBinding:
    """Binding of a lifecycle event to a synchronization handler."""

    name: str
    handler: Callable[..., Any]
    transforms: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    after_transforms: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    pre_mapping: Callable[..., Any] | None = None
    post_mapping: Callable[..., Any] | None = None


@dataclass(frozen=True)
class IntegrationConfig:
    """Declarative mapping of one internal object to a vendor object.

    Built once at startup (see ConfigValidator) and never mutated.
    """

    source: str
    target: str
    map: Mapping[str, Any]
    events: tuple[EventBinding, ...]
    active: bool = True
    global_transforms: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    global_after_transforms: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    global_pre_mapping: Callable[..., Any] | None = None
    global_post_mapping: Callable[..., Any] | None = None

    # Gateway settings
    map_to_object: str | None = None
    additional_transforms: Mapping[str, Callable[..., Any]] = field(default_factory=dict)

    def get_event(self, name: str | LifecycleEvent) -> EventBinding | None:
        """Return the binding for an event name, or None if not declared."""
        if isinstance(name, LifecycleEvent):
            name = name.value
        for event in self.events:
            if event.name == name:
                return event
        return None

    @property
    def event_names(self) -> list[str]:
        """Names of all declared events, in declaration order."""
        return [event.name for event in self.events]

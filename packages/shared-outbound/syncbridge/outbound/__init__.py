"""SyncBridge outbound integrations.

This package pushes internal records to external CRM systems:
- Field mapping with nested paths and transforms (FieldMapper)
- Declarative integration configs bound to lifecycle events
  (ConfigValidator, OutboundGateway, EventBus)
- Vendor adapters with cached, self-refreshing credentials
  (Salesforce, HubSpot, Zoho)

Example:
    import syncbridge.outbound.adapters  # noqa: F401
    from syncbridge.outbound import FieldMapper, VendorConfig, VendorType, get_registry

    adapter = get_registry().create(VendorConfig.from_env(VendorType.SALESFORCE))

    async def push_contact(object_name, config):
        payload = FieldMapper.map(contact, config.map)
        await adapter.create(config.target, payload)
"""

from syncbridge.outbound.auth import (
    BearerKeyAdapter,
    ClientCredentialsAdapter,
    RefreshTokenAdapter,
)
from syncbridge.outbound.base import VendorAdapter
from syncbridge.outbound.config import (
    EventBinding,
    IntegrationConfig,
    LifecycleEvent,
    VendorConfig,
    VendorType,
)
from syncbridge.outbound.credentials import (
    CredentialStore,
    InMemoryCredentialStore,
    TokenLifecycle,
    TokenState,
    VendorCredential,
)
from syncbridge.outbound.events import (
    DetachedDispatch,
    EventBus,
    EventContext,
    EventFault,
    FaultMode,
    get_last_fault,
    reset_last_fault,
)
from syncbridge.outbound.exceptions import (
    AuthenticationError,
    AuthInvalidationError,
    ConfigError,
    ErrorKind,
    NetworkError,
    OutboundError,
    ValidationError,
    VendorHTTPError,
)
from syncbridge.outbound.gateway import OutboundGateway
from syncbridge.outbound.mapping import FieldMapper
from syncbridge.outbound.query import PaginatedResult, Pagination, QueryOptions
from syncbridge.outbound.registry import AdapterRegistry, get_registry
from syncbridge.outbound.retry import RetryExecutor, classify_error
from syncbridge.outbound.validation import ConfigValidator

__all__ = [
    # Adapters
    "VendorAdapter",
    "BearerKeyAdapter",
    "ClientCredentialsAdapter",
    "RefreshTokenAdapter",
    # Config
    "EventBinding",
    "IntegrationConfig",
    "LifecycleEvent",
    "VendorConfig",
    "VendorType",
    # Credentials
    "CredentialStore",
    "InMemoryCredentialStore",
    "TokenLifecycle",
    "TokenState",
    "VendorCredential",
    # Events
    "DetachedDispatch",
    "EventBus",
    "EventContext",
    "EventFault",
    "FaultMode",
    "get_last_fault",
    "reset_last_fault",
    # Exceptions
    "AuthenticationError",
    "AuthInvalidationError",
    "ConfigError",
    "ErrorKind",
    "NetworkError",
    "OutboundError",
    "ValidationError",
    "VendorHTTPError",
    # Mapping and gateway
    "ConfigValidator",
    "FieldMapper",
    "OutboundGateway",
    # Query
    "PaginatedResult",
    "Pagination",
    "QueryOptions",
    # Registry
    "AdapterRegistry",
    "get_registry",
    # Retry
    "RetryExecutor",
    "classify_error",
]

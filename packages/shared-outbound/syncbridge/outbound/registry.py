"""Adapter registry for managing available vendor adapters."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from syncbridge.outbound.config import VendorConfig, VendorType
from syncbridge.outbound.exceptions import ConfigError

if TYPE_CHECKING:
    from syncbridge.outbound.base import VendorAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry of available vendor adapter implementations.

    Singleton pattern for global adapter registration. Adapters register
    themselves when their module is imported; importing
    ``syncbridge.outbound.adapters`` registers all of them.

    Example:
        import syncbridge.outbound.adapters  # noqa: F401

        config = VendorConfig.from_env(VendorType.HUBSPOT)
        adapter = get_registry().create(config, credential_store=store)
    """

    _instance: AdapterRegistry | None = None
    _adapters: dict[VendorType, type[VendorAdapter]]

    def __new__(cls) -> AdapterRegistry:
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._adapters = {}
        return cls._instance

    def register(self, vendor_type: VendorType, adapter_class: type[VendorAdapter]) -> None:
        self._adapters[vendor_type] = adapter_class
        logger.debug(f"Registered adapter: {vendor_type.value}")

    def unregister(self, vendor_type: VendorType) -> None:
        if vendor_type in self._adapters:
            del self._adapters[vendor_type]

    def get(self, vendor_type: VendorType) -> type[VendorAdapter] | None:
        """Get an adapter class by vendor type, or None if not registered."""
        return self._adapters.get(vendor_type)

    def create(self, config: VendorConfig, **kwargs: Any) -> VendorAdapter:
        """Create an adapter instance from configuration.

        Args:
            config: Vendor configuration.
            **kwargs: Passed to the adapter constructor (credential_store,
                client).

        Raises:
            ConfigError: If the vendor type is not registered.
        """
        adapter_class = self.get(config.vendor_type)
        if adapter_class is None:
            raise ConfigError(f"No adapter registered for vendor: {config.vendor_type.value}")
        return adapter_class(config, **kwargs)

    def list_available(self) -> list[VendorType]:
        return list(self._adapters.keys())

    def is_registered(self, vendor_type: VendorType) -> bool:
        return vendor_type in self._adapters


# Global registry instance
_registry = AdapterRegistry()


def get_registry() -> AdapterRegistry:
    """Get the global adapter registry."""
    return _registry

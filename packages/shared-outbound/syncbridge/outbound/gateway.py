"""Binds declarative integration configs to EventBus listeners."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from syncbridge.outbound.config import IntegrationConfig
from syncbridge.outbound.events import EventBus
from syncbridge.outbound.exceptions import ConfigError, ValidationError
from syncbridge.outbound.validation import ConfigValidator

logger = logging.getLogger(__name__)

Handler = Callable[[str, IntegrationConfig], Any]


class OutboundGateway:
    """Registers one EventBus listener per declared event of each active object.

    The gateway performs no mapping or vendor I/O. Each listener calls the
    user handler as ``handler(object_name, config)``; the handler maps the
    record and talks to the vendor adapter.

    Listeners are registered under ``"<object_name>.<event_name>"``:

        gateway = OutboundGateway(
            {
                "Contact": {
                    "target": "Contact",
                    "map": ContactMap,
                    "events": {"afterCreate": push_contact},
                },
            },
            bus=bus,
        )
        await gateway.initialize()
        await bus.emit("Contact.afterCreate", record)
    """

    def __init__(self, configs: Mapping[str, Any], bus: EventBus | None = None):
        """Initialize the gateway.

        Args:
            configs: Object name -> IntegrationConfig or config mapping.
                Events may be given as a list of bindings or as a
                ``{event_name: handler}`` mapping.
            bus: Bus to register on. A new bus is created when omitted.

        Raises:
            ConfigError: If configs is empty or not a mapping.
        """
        if not isinstance(configs, Mapping) or not configs:
            raise ConfigError("OutboundGateway requires a non-empty mapping of object configs")
        self.raw_configs = dict(configs)
        self.bus = bus if bus is not None else EventBus()
        self.configs: dict[str, IntegrationConfig] = {}
        self._registered = False

    @classmethod
    def from_configs(
        cls, configs: Sequence[Any], bus: EventBus | None = None
    ) -> OutboundGateway:
        """Build a gateway from a list of configs keyed by their source."""
        validated = ConfigValidator.validate_configs(configs)
        return cls({config.source: config for config in validated}, bus=bus)

    def register_events(self) -> OutboundGateway:
        """Validate every config, then register listeners for all of them.

        Nothing is registered if any config is malformed. Calling this more
        than once has no further effect.

        Raises:
            ConfigError: If an events declaration has the wrong shape.
            ValidationError: If a config violates the schema.
        """
        if self._registered:
            return self

        prepared: dict[str, IntegrationConfig] = {}
        for object_name, raw in self.raw_configs.items():
            config = self._prepare(object_name, raw)
            if config is not None:
                prepared[object_name] = config

        for object_name, config in prepared.items():
            for binding in config.events:
                event = f"{object_name}.{binding.name}"
                self.bus.on(event, self._listener(object_name, config, binding.handler))
                logger.debug(f"Registered listener for {event}")

        self.configs = prepared
        self._registered = True
        logger.info(f"Registered {len(prepared)} outbound integration(s)")
        return self

    async def initialize(self) -> OutboundGateway:
        """Register all listeners, then start the bus."""
        self.register_events()
        await self.bus.start()
        return self

    def get_config(self, source: str) -> IntegrationConfig | None:
        return self.configs.get(source)

    def get_event_config(self, source: str, event_name: str) -> Any:
        """Return the EventBinding declared for an object's event, or None."""
        config = self.configs.get(source)
        return config.get_event(event_name) if config else None

    def active_configs(self) -> list[IntegrationConfig]:
        return [config for config in self.configs.values() if config.active]

    def _prepare(self, object_name: str, raw: Any) -> IntegrationConfig | None:
        """Apply defaults and validate one entry. Returns None for inactive entries."""
        if isinstance(raw, IntegrationConfig):
            entry: Any = {f.name: getattr(raw, f.name) for f in dataclasses.fields(raw)}
        else:
            entry = raw
        if not isinstance(entry, Mapping):
            raise ConfigError(f"Config for '{object_name}' must be a mapping")
        if entry.get("active", True) is False:
            logger.debug(f"Skipping inactive integration: {object_name}")
            return None

        entry = dict(entry)
        entry.setdefault("source", object_name)
        if entry.get("map_to_object") is None:
            entry["map_to_object"] = object_name
        if entry.get("target") is None:
            entry["target"] = entry["map_to_object"]
        if entry.get("additional_transforms") is None:
            entry["additional_transforms"] = {}

        events = entry.get("events")
        if isinstance(events, Mapping):
            entry["events"] = [{"name": name, "handler": handler} for name, handler in events.items()]
        elif isinstance(events, (str, bytes)) or not isinstance(events, Sequence):
            raise ConfigError(
                f"Config for '{object_name}': events must be a mapping of "
                f"event name to handler or a list of event bindings"
            )

        try:
            return ConfigValidator.validate_config(entry)
        except ValidationError as e:
            raise ValidationError(f"Config for '{object_name}': {e.message}") from e

    @staticmethod
    def _listener(
        object_name: str, config: IntegrationConfig, handler: Handler
    ) -> Callable[[Any], Any]:
        def listener(payload: Any = None) -> Any:
            return handler(object_name, config)

        return listener

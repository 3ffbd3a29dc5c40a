"""Schema validation for declarative integration configs."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from typing import Any

from syncbridge.outbound.config import EventBinding, IntegrationConfig, LifecycleEvent
from syncbridge.outbound.exceptions import ValidationError

EVENT_NAMES = tuple(event.value for event in LifecycleEvent)

# Root-level fields of an integration config. "events" is validated separately.
CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    "source": {"type": "string", "required": True},
    "target": {"type": "string", "required": True},
    "active": {"type": "boolean", "default": True},
    "map": {"type": "object", "required": True},
    "global_transforms": {"type": "object", "default": {}},
    "global_after_transforms": {"type": "object", "default": {}},
    "global_pre_mapping": {"type": "function", "default": None},
    "global_post_mapping": {"type": "function", "default": None},
    "map_to_object": {"type": "string", "default": None},
    "additional_transforms": {"type": "object", "default": {}},
}

EVENT_SCHEMA: dict[str, dict[str, Any]] = {
    "name": {"type": "string", "required": True, "enum": EVENT_NAMES},
    "handler": {"type": "function", "required": True},
    "transforms": {"type": "object", "default": {}},
    "after_transforms": {"type": "object", "default": {}},
    "pre_mapping": {"type": "function", "default": None},
    "post_mapping": {"type": "function", "default": None},
}


class ConfigValidator:
    """Validates and normalizes integration configs.

    Accepts plain mappings (as declared in code or loaded from elsewhere) or
    already-built IntegrationConfig instances, and always returns
    IntegrationConfig instances.

    Example:
        configs = ConfigValidator.validate_configs([
            {
                "source": "Contact",
                "target": "Contact",
                "map": ContactMap,
                "events": [{"name": "afterCreate", "handler": on_create}],
            }
        ])
        transforms, after = ConfigValidator.resolve_transforms(
            configs[0], configs[0].get_event("afterCreate")
        )
    """

    @classmethod
    def validate_configs(cls, configs: Sequence[Any]) -> list[IntegrationConfig]:
        """Validate a list of integration configs.

        Args:
            configs: Non-empty list of configs.

        Returns:
            Validated configs, in the same order.

        Raises:
            ValidationError: If the list or any config is invalid. The message
                names the failing index and source.
        """
        if isinstance(configs, (str, bytes)) or not isinstance(configs, Sequence):
            raise ValidationError("ConfigValidator: configs must be a list")
        if not configs:
            raise ValidationError("ConfigValidator: configs list cannot be empty")

        validated = []
        for index, config in enumerate(configs):
            try:
                validated.append(cls.validate_config(config))
            except ValidationError as e:
                source = _get(config, "source") or "unknown"
                raise ValidationError(
                    f"ConfigValidator: Error in config[{index}] ({source}): {e.message}"
                ) from e
        return validated

    @classmethod
    def validate_config(cls, config: Any) -> IntegrationConfig:
        """Validate a single integration config.

        Raises:
            ValidationError: If the config violates the schema.
        """
        if isinstance(config, IntegrationConfig):
            config = _as_mapping(config)
        if not isinstance(config, Mapping):
            raise ValidationError("Config must be a valid object")

        validated = _validate_fields(config, CONFIG_SCHEMA)

        events = config.get("events")
        if isinstance(events, (str, bytes)) or not isinstance(events, Sequence):
            raise ValidationError("events must be a list")
        if not events:
            raise ValidationError("events list cannot be empty")

        bindings = []
        for index, event in enumerate(events):
            try:
                bindings.append(cls.validate_event(event))
            except ValidationError as e:
                raise ValidationError(f"Error in events[{index}]: {e.message}") from e

        names = [binding.name for binding in bindings]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate event names found: {', '.join(duplicates)}")

        return IntegrationConfig(events=tuple(bindings), **validated)

    @classmethod
    def validate_event(cls, event: Any) -> EventBinding:
        """Validate a single event binding.

        Raises:
            ValidationError: If the event violates the schema.
        """
        if isinstance(event, EventBinding):
            event = _as_mapping(event)
        if not isinstance(event, Mapping):
            raise ValidationError("Event must be a valid object")
        validated = _validate_fields(event, EVENT_SCHEMA)
        if isinstance(validated["name"], LifecycleEvent):
            validated["name"] = validated["name"].value
        return EventBinding(**validated)

    @staticmethod
    def resolve_transforms(
        config: IntegrationConfig,
        event: EventBinding,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Resolve the effective transforms for an event.

        Event transforms replace the global ones when non-empty; they are
        never merged. Forward transforms and after-transforms are resolved
        independently.

        Returns:
            Tuple of (transforms, after_transforms).
        """
        transforms = event.transforms if event.transforms else config.global_transforms
        after_transforms = (
            event.after_transforms if event.after_transforms else config.global_after_transforms
        )
        return dict(transforms), dict(after_transforms)


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _as_mapping(obj: Any) -> dict[str, Any]:
    """Shallow field dict of a dataclass instance."""
    return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}


def _validate_fields(data: Mapping[str, Any], schema: dict[str, dict[str, Any]]) -> dict[str, Any]:
    validated: dict[str, Any] = {}
    for key, rules in schema.items():
        value = data.get(key)
        if value is None:
            if rules.get("required"):
                raise ValidationError(f"Required field '{key}' is missing")
            default = rules.get("default")
            validated[key] = dict(default) if isinstance(default, dict) else default
            continue
        _validate_type(value, rules, key)
        validated[key] = value
    return validated


def _validate_type(value: Any, rules: dict[str, Any], field_name: str) -> None:
    expected = rules["type"]
    if expected == "string":
        if not isinstance(value, str):
            raise ValidationError(f"Field '{field_name}' must be a string")
        if "enum" in rules and value not in rules["enum"]:
            raise ValidationError(
                f"Field '{field_name}' must be one of: {', '.join(rules['enum'])}"
            )
    elif expected == "boolean":
        if not isinstance(value, bool):
            raise ValidationError(f"Field '{field_name}' must be a boolean")
    elif expected == "object":
        if not isinstance(value, Mapping):
            raise ValidationError(f"Field '{field_name}' must be an object")
    elif expected == "function":
        if not callable(value):
            raise ValidationError(f"Field '{field_name}' must be a function")
    else:  # pragma: no cover
        raise ValidationError(f"Unknown type '{expected}' for field '{field_name}'")

"""Bidirectional field mapping between internal records and vendor schemas.

A field map is a plain dictionary of ``source_path -> target_path`` entries
using dot-separated paths for nested values, plus an optional reserved
``"transforms"`` entry:

    ContactMap = {
        "firstName": "FirstName",
        "address.country": "MailingCountry",
        "transforms": {
            "MailingCountry": lambda value, record: value.upper(),
        },
    }

Transforms are keyed by the field being written: the target path when mapping
forward, the source path when mapping in reverse. A transform receives the
value and the full source record; returning None omits the field.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from syncbridge.outbound.exceptions import ConfigError

if TYPE_CHECKING:
    from syncbridge.outbound.config import EventBinding, IntegrationConfig

TRANSFORMS_KEY = "transforms"

Transform = Callable[[Any, Mapping[str, Any]], Any]


class FieldMapper:
    """Stateless evaluator for field maps.

    Example:
        payload = FieldMapper.map(contact, ContactMap)
        restored = FieldMapper.map(payload, ContactMap, reverse=True)
    """

    @staticmethod
    def get_nested_value(data: Mapping[str, Any], path: str) -> Any:
        """Read a dot-separated path, returning None at the first missing key."""
        current: Any = data
        for key in path.split("."):
            if not isinstance(current, Mapping):
                return None
            current = current.get(key)
            if current is None:
                return None
        return current

    @staticmethod
    def set_nested_value(data: dict[str, Any], path: str, value: Any) -> None:
        """Write a dot-separated path, creating intermediate dicts as needed.

        Non-dict values found at intermediate segments are overwritten.
        """
        *parents, last = path.split(".")
        current = data
        for key in parents:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[last] = value

    @staticmethod
    def delete_nested_value(data: dict[str, Any], path: str) -> None:
        """Remove a dot-separated path if present."""
        *parents, last = path.split(".")
        current: Any = data
        for key in parents:
            current = current.get(key)
            if not isinstance(current, dict):
                return
        current.pop(last, None)

    @classmethod
    def map(
        cls,
        data: Mapping[str, Any],
        field_map: Mapping[str, Any],
        reverse: bool = False,
        additional_transforms: Mapping[str, Transform] | None = None,
    ) -> dict[str, Any]:
        """Map a record through a field map.

        Args:
            data: Record to read from.
            field_map: Mapping entries plus an optional "transforms" entry.
            reverse: Map from target schema back to source schema.
            additional_transforms: Transforms overriding the map's own,
                entry by entry.

        Returns:
            New dictionary with the mapped fields.

        Raises:
            ConfigError: If data or field_map is not a mapping, or the map is
                malformed.
        """
        result: dict[str, Any] = {}
        for target, transform, value in cls._operations(
            data, field_map, reverse, additional_transforms
        ):
            if transform is not None:
                value = transform(value, data)
                if inspect.isawaitable(value):
                    _close(value)
                    raise ConfigError(
                        f"Transform for '{target}' is asynchronous; use FieldMapper.map_async"
                    )
            if value is not None:
                cls.set_nested_value(result, target, value)
        return result

    @classmethod
    async def map_async(
        cls,
        data: Mapping[str, Any],
        field_map: Mapping[str, Any],
        reverse: bool = False,
        additional_transforms: Mapping[str, Transform] | None = None,
    ) -> dict[str, Any]:
        """Same as map(), awaiting transforms that return awaitables."""
        result: dict[str, Any] = {}
        for target, transform, value in cls._operations(
            data, field_map, reverse, additional_transforms
        ):
            if transform is not None:
                value = transform(value, data)
                if inspect.isawaitable(value):
                    value = await value
            if value is not None:
                cls.set_nested_value(result, target, value)
        return result

    @classmethod
    async def apply_after_transforms(
        cls,
        mapped: dict[str, Any],
        after_transforms: Mapping[str, Callable[..., Any]],
        source: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Post-process an already mapped record.

        Each after-transform is called as ``fn(current_value, mapped, source)``
        for its target path. A None result removes the field.
        """
        for path, transform in after_transforms.items():
            if not callable(transform):
                raise ConfigError(f"afterTransform for '{path}' must be a function")
            value = transform(cls.get_nested_value(mapped, path), mapped, source)
            if inspect.isawaitable(value):
                value = await value
            if value is None:
                cls.delete_nested_value(mapped, path)
            else:
                cls.set_nested_value(mapped, path, value)
        return mapped

    @classmethod
    async def map_with_config(
        cls,
        data: Mapping[str, Any],
        config: IntegrationConfig,
        event: EventBinding,
        reverse: bool = False,
    ) -> dict[str, Any]:
        """Map a record with the transforms an integration declares for an event.

        Event transforms override the config's global transforms (see
        ConfigValidator.resolve_transforms); the config's additional
        transforms are layered on top.

        Mapping hooks run in this order, each awaited if it returns an
        awaitable:

        1. ``config.global_pre_mapping(data, config, event)``
        2. ``event.pre_mapping(data, config, event)``
        3. field mapping and after-transforms
        4. ``event.post_mapping(data, config, event, mapped)``
        5. ``config.global_post_mapping(data, config, event, mapped)``

        Hook exceptions propagate.
        """
        from syncbridge.outbound.validation import ConfigValidator

        await _run_hook(config.global_pre_mapping, data, config, event)
        await _run_hook(event.pre_mapping, data, config, event)

        transforms, after_transforms = ConfigValidator.resolve_transforms(config, event)
        transforms.update(config.additional_transforms)

        mapped = await cls.map_async(data, config.map, reverse, transforms)
        if after_transforms:
            mapped = await cls.apply_after_transforms(mapped, after_transforms, data)

        await _run_hook(event.post_mapping, data, config, event, mapped)
        await _run_hook(config.global_post_mapping, data, config, event, mapped)
        return mapped

    @classmethod
    def _operations(
        cls,
        data: Mapping[str, Any],
        field_map: Mapping[str, Any],
        reverse: bool,
        additional_transforms: Mapping[str, Transform] | None,
    ) -> Iterator[tuple[str, Transform | None, Any]]:
        """Yield (target_path, transform, value) for each entry with a value."""
        if not isinstance(data, Mapping):
            raise ConfigError("FieldMapper: data must be a valid object")
        if not isinstance(field_map, Mapping):
            raise ConfigError("FieldMapper: map must be a valid mapping object")

        map_transforms = field_map.get(TRANSFORMS_KEY) or {}
        if not isinstance(map_transforms, Mapping):
            raise ConfigError("FieldMapper: map transforms must be a mapping")
        transforms = {**map_transforms, **(additional_transforms or {})}

        for source_key, target_key in field_map.items():
            if source_key == TRANSFORMS_KEY:
                continue
            if not isinstance(target_key, str):
                raise ConfigError(
                    f"FieldMapper: target for '{source_key}' must be a string path"
                )
            if reverse:
                source_path, target_path = target_key, source_key
            else:
                source_path, target_path = source_key, target_key

            value = cls.get_nested_value(data, source_path)
            if value is None:
                continue
            yield target_path, transforms.get(target_path), value


async def _run_hook(hook: Callable[..., Any] | None, *args: Any) -> None:
    if hook is None:
        return
    result = hook(*args)
    if inspect.isawaitable(result):
        await result


def _close(awaitable: Any) -> None:
    """Close an un-awaited coroutine to avoid a 'never awaited' warning."""
    close = getattr(awaitable, "close", None)
    if close is not None:
        close()

"""Helpers for the host's dynamic values.

Hosts hand operation arguments over as scalars, lists, or maps nested to any
depth. The functions here convert them into the flat shapes Artifactory
expects.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence, Union

from artifactory_ops.core.exceptions import ConfigurationError

RuntimeValue = Union[str, int, float, bool, None, Sequence['RuntimeValue'], Mapping[str, 'RuntimeValue']]


def is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def is_map(value: Any) -> bool:
    return isinstance(value, Mapping)


def _scalar_to_string(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def as_string(value: RuntimeValue) -> str:
    """Render a value as a string.

    Lists and maps are rendered as OtterScript literals, e.g. ``@(a, b)`` and
    ``%(key: value)``.
    """
    if is_map(value):
        items = ', '.join(
            f'{key}: {as_string(item)}' for key, item in value.items()  # type: ignore[union-attr]
        )
        return f'%({items})'
    if is_list(value):
        return '@(' + ', '.join(as_string(item) for item in value) + ')'  # type: ignore[union-attr]
    return _scalar_to_string(value)


def as_list(value: RuntimeValue) -> list[str]:
    """Flatten a value into a list of strings.

    A scalar becomes a one-element list and nested lists are flattened in
    order. Maps have no list form.
    """
    if is_map(value):
        raise ConfigurationError(f'Cannot convert map {as_string(value)} to a list')
    if is_list(value):
        flattened: list[str] = []
        for item in value:  # type: ignore[union-attr]
            flattened.extend(as_list(item))
        return flattened
    return [_scalar_to_string(value)]


def as_map(value: RuntimeValue) -> dict[str, RuntimeValue]:
    if not is_map(value):
        raise ConfigurationError(f'Expected a map but got {as_string(value)}')
    return dict(value)  # type: ignore[arg-type]


def as_string_map(value: RuntimeValue | None) -> dict[str, str] | None:
    if value is None:
        return None
    return {key: as_string(item) for key, item in as_map(value).items()}


def as_object(value: RuntimeValue) -> Any:
    """Convert a value into plain dicts, lists, and strings."""
    if is_map(value):
        return {key: as_object(item) for key, item in value.items()}  # type: ignore[union-attr]
    if is_list(value):
        return [as_object(item) for item in value]  # type: ignore[union-attr]
    return _scalar_to_string(value)

"""Type utilities for configuration processing.

This module provides utilities for type conversion and validation in
configuration files.
"""

from .exceptions import ConfigError


def force_list(val) -> list:
    """
    Ensure the value is a list.
    """
    return list(val) if isinstance(val, (list, tuple)) else [val]


def force_int(key, value, minimum=None) -> int:
    """
    Convert value to int, raise ConfigError on failure or if below `minimum`.
    """
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ConfigError(
            f"Could not convert value `{value}` for key `{expand_key(key)}` to integer"
        ) from None

    if minimum is not None and result < minimum:
        raise ConfigError(
            f"Value `{value}` for key `{expand_key(key)}` must be at least {minimum}"
        )
    return result


def force_choice(key, value, choices) -> str:
    """
    Ensure value is one of `choices` (case-insensitive), returning it lowercased.
    """
    text = str(value).strip().lower()
    if text not in choices:
        raise ConfigError(
            f"Value `{value}` for key `{expand_key(key)}` must be one of: "
            f"{', '.join(choices)}"
        )
    return text


def expand_key(key) -> str:
    """
    Expand config key for display.
    """
    return str(key).replace("_", " ").lower()

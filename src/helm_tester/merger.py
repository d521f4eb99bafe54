"""Deep merge utilities for chart values.

This module merges caller overrides over a chart's default values and
derives the values a subchart sees from its parent, following Helm's
coalescing rules:

1. Nested mappings merge recursively, the override winning per key
2. Any other override (scalar, list, or a value of a different shape)
   replaces the default wholesale
3. A ``None`` override deletes the default key
4. A subchart sees its own defaults, overridden by the parent's values
   under the subchart's alias or name, plus the parent's ``global`` block

Example:
    >>> from helm_tester.merger import deep_merge
    >>> base = {"image": {"repository": "ealen/echo-server", "tag": "0.5.0"}}
    >>> override = {"image": {"tag": "0.6.0"}}
    >>> deep_merge(base, override)["image"]
    {'repository': 'ealen/echo-server', 'tag': '0.6.0'}
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any

GLOBAL_KEY = "global"


def deep_merge(
    base: dict[str, Any],
    override: dict[str, Any] | None,
    *,
    keep_none: bool = False,
) -> dict[str, Any]:
    """Recursively merge two dictionaries with nested structure support.

    Args:
        base: Base dictionary (lower priority), typically chart defaults.
        override: Override dictionary (higher priority). ``None`` means
            "no overrides" and returns a copy of ``base``.
        keep_none: Store ``None`` overrides instead of deleting keys, for
            stacking several override layers before the final merge.

    Returns:
        New dictionary with merged values (does not modify inputs).

    Examples:
        Override takes precedence:
        >>> deep_merge({"a": 1}, {"a": 2})
        {'a': 2}

        Shape mismatch replaces wholesale:
        >>> deep_merge({"a": {"b": 1}}, {"a": [1, 2]})
        {'a': [1, 2]}

        None removes a default:
        >>> deep_merge({"a": 1, "b": 2}, {"a": None})
        {'b': 2}

        Unless it is kept for a later merge:
        >>> deep_merge({"a": 1, "b": 2}, {"a": None}, keep_none=True)
        {'a': None, 'b': 2}
    """
    result = deepcopy(base)
    if not override:
        return result

    for key, override_value in override.items():
        if override_value is None and not keep_none:
            result.pop(key, None)
        elif isinstance(result.get(key), dict) and isinstance(override_value, dict):
            base_dict: dict[str, Any] = result[key]
            override_dict: dict[str, Any] = override_value
            result[key] = deep_merge(base_dict, override_dict, keep_none=keep_none)
        else:
            result[key] = deepcopy(override_value)

    return result


def coalesce_subchart_values(
    defaults: dict[str, Any],
    parent_values: dict[str, Any],
    key: str,
) -> dict[str, Any]:
    """Compute the values a subchart sees after parent overrides.

    Args:
        defaults: The subchart's own default values.
        parent_values: The parent chart's merged values.
        key: The subchart's alias, or its name when it has no alias.

    Returns:
        New dictionary with the subchart's effective values.

    Example:
        >>> parent = {"echo-server": {"replicaCount": 2}, "global": {"env": "ci"}}
        >>> coalesce_subchart_values({"replicaCount": 1}, parent, "echo-server")
        {'replicaCount': 2, 'global': {'env': 'ci'}}
    """
    scoped = parent_values.get(key)
    result = deep_merge(defaults, scoped if isinstance(scoped, dict) else None)

    parent_global = parent_values.get(GLOBAL_KEY)
    if isinstance(parent_global, dict) and parent_global:
        own_global = result.get(GLOBAL_KEY)
        result[GLOBAL_KEY] = deep_merge(
            own_global if isinstance(own_global, dict) else {},
            parent_global,
        )

    return result


__all__: list[str] = [
    "GLOBAL_KEY",
    "coalesce_subchart_values",
    "deep_merge",
]

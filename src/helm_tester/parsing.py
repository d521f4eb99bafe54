"""Parsing of ``--set`` arguments into nested overrides.

Each argument follows Helm's ``--set`` grammar:

    - ``a.b=1`` nests keys: ``{"a": {"b": 1}}``
    - ``a=1,b=2`` sets several keys in one argument
    - ``list={x,y}`` sets a list: ``{"list": ["x", "y"]}``
    - ``ports[1].name=http`` indexes lists, padding gaps with None

A backslash makes the next character literal (``\\.``, ``\\,``,
``\\=``, ``\\[``). Values are typed like Helm types them: ``true``,
``false`` and ``null`` in any case, then integers without a leading
zero. Everything else, floats included, stays a string.

Example:
    >>> from helm_tester.parsing import parse_set_values
    >>> parse_set_values(("echo-server.image.tag=overriden,replicaCount=2",))
    {'echo-server': {'image': {'tag': 'overriden'}}, 'replicaCount': 2}
"""

from __future__ import annotations

import re
from collections.abc import Callable
from copy import deepcopy
from typing import Any

# Helm refuses to grow a list past this index
MAX_INDEX = 65536

_INDEX = re.compile(r"(?<!\\)\[(\d+)\]$")
_INTEGER = re.compile(r"-?[1-9]\d*")


class SetValueError(ValueError):
    """Raised when a ``--set`` argument does not follow the grammar."""


def _split(text: str, sep: str, *, braces: bool = False) -> list[str]:
    # Escapes are kept in the parts; unescape after splitting.
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    chars = iter(text)
    for char in chars:
        if char == "\\":
            current.append(char)
            current.append(next(chars, ""))
            continue
        if braces and char == "{":
            depth += 1
        elif braces and char == "}" and depth:
            depth -= 1
        elif char == sep and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text, flags=re.DOTALL)


def parse_value(value: str) -> str | int | bool | None:
    """Type a raw ``--set`` value the way Helm does.

    Args:
        value: Value text, already unescaped.

    Returns:
        True/False/None for ``true``/``false``/``null`` (any case), an
        int for integers without a leading zero, otherwise the string.
    """
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    if value == "0" or _INTEGER.fullmatch(value):
        return int(value)
    return value


def _parse_list(raw: str) -> list[Any]:
    inner = raw[1:-1]
    if not inner:
        return []
    return [parse_value(_unescape(item)) for item in _split(inner, ",")]


def _key_path(raw_key: str) -> list[str | int]:
    path: list[str | int] = []
    for raw_part in _split(raw_key, "."):
        indices: list[int] = []
        while match := _INDEX.search(raw_part):
            indices.insert(0, int(match.group(1)))
            raw_part = raw_part[: match.start()]
        if not raw_part:
            raise SetValueError(f"empty key segment in {raw_key!r}")
        path.append(_unescape(raw_part))
        for index in indices:
            if index > MAX_INDEX:
                raise SetValueError(f"index {index} exceeds {MAX_INDEX} in {raw_key!r}")
            path.append(index)
    return path


def _assign(target: Any, path: list[str | int], value: Any) -> Any:
    """Set ``value`` at ``path`` under ``target`` and return the new target."""
    head, rest = path[0], path[1:]
    if isinstance(head, int):
        items = target if isinstance(target, list) else []
        while len(items) <= head:
            items.append(None)
        items[head] = _assign(items[head], rest, value) if rest else value
        return items

    mapping = target if isinstance(target, dict) else {}
    mapping[head] = _assign(mapping.get(head), rest, value) if rest else value
    return mapping


def parse_set_string(text: str, into: dict[str, Any] | None = None) -> dict[str, Any]:
    """Parse one ``--set`` argument.

    Args:
        text: Comma-separated ``key=value`` pairs.
        into: Overrides to update in place (default: a new mapping).

    Returns:
        The updated overrides.

    Raises:
        SetValueError: If a pair has no ``=`` or a key is malformed.
    """
    result: dict[str, Any] = {} if into is None else into
    for pair in _split(text, ",", braces=True):
        if not pair:
            continue
        key_and_value = _split(pair, "=")
        if len(key_and_value) < 2:
            raise SetValueError(f"key {_unescape(pair)!r} has no value")
        raw_key, raw_value = key_and_value[0], "=".join(key_and_value[1:])
        if raw_value.startswith("{") and raw_value.endswith("}"):
            value: Any = _parse_list(raw_value)
        else:
            value = parse_value(_unescape(raw_value))
        _assign(result, _key_path(raw_key), value)
    return result


def parse_set_values(
    set_values: tuple[str, ...],
    *,
    warn_fn: Callable[[str], None] | None = None,
) -> dict[str, Any]:
    """Parse repeated ``--set`` arguments into one nested dict.

    Later arguments win over earlier ones. ``null`` values are kept so
    the render can delete the matching chart defaults.

    Args:
        set_values: ``--set`` arguments in command line order.
        warn_fn: Optional callback for invalid arguments. If *None*,
            invalid arguments are silently skipped.

    Returns:
        Nested dictionary with parsed values.
    """
    result: dict[str, Any] = {}
    for item in set_values:
        try:
            # A bad argument must leave no partial pairs behind
            result = parse_set_string(item, into=deepcopy(result))
        except SetValueError as e:
            if warn_fn is not None:
                warn_fn(f"Ignoring invalid --set value {item!r}: {e}")
    return result


__all__: list[str] = [
    "MAX_INDEX",
    "SetValueError",
    "parse_set_string",
    "parse_set_values",
    "parse_value",
]

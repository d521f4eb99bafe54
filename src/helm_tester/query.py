"""jq path queries with typed result decoding.

Queries use jq syntax (key/array indexing, ``select`` predicates,
``IN``/``index`` membership, ``length`` and ``keys``) and run against a
serialized document. Evaluation is split into distinct failure modes so
callers can tell a bad query from a bad result:

    QueryParseError     - the query does not compile
    QueryInputError     - the input document cannot be parsed/serialized
    QueryExecutionError - jq raised at runtime
    ResultDecodeError   - the result does not fit the destination type

Result Collapsing:
    | jq outputs | Result            |
    |------------|-------------------|
    | none       | None (no match)   |
    | one        | the output        |
    | several    | list of outputs   |

A ``None`` result decodes to the destination's zero value: ``""`` for
``str``, ``0`` for ``int``, ``[]`` for ``list[...]``, ``None`` for ``Any``.

Example:
    >>> evaluator = JqEvaluator()
    >>> collapse(evaluator.evaluate(".image.tag", "image: {tag: '0.6.0'}"))
    '0.6.0'
    >>> decode_result(None, str)
    ''
"""

from __future__ import annotations

import collections.abc
import json
import types
from datetime import date, datetime
from functools import lru_cache
from typing import Annotated, Any, Union, get_args, get_origin

import jq
import structlog
import yaml
from pydantic import BaseModel, TypeAdapter, ValidationError

from helm_tester.errors import (
    QueryExecutionError,
    QueryInputError,
    QueryParseError,
    ResultDecodeError,
)


_ZERO_FACTORIES: dict[Any, Any] = {
    str: str,
    int: int,
    float: float,
    bool: bool,
    bytes: bytes,
    list: list,
    dict: dict,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Iterable: list,
    collections.abc.Mapping: dict,
    collections.abc.MutableMapping: dict,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
}


@lru_cache(maxsize=256)
def _compile(query: str) -> Any:
    return jq.compile(query)


@lru_cache(maxsize=256)
def _adapter(dest: Any) -> TypeAdapter[Any]:
    return TypeAdapter(dest)


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return list(value)
    return str(value)


def serialize(data: Any, *, query: str = "") -> str:
    """Serialize an in-memory structure into evaluator input text.

    The output is JSON, which is also valid YAML.

    Raises:
        QueryInputError: If the structure cannot be serialized.
    """
    try:
        return json.dumps(data, default=_json_default)
    except (TypeError, ValueError) as e:
        raise QueryInputError(query, f"cannot serialize input: {e}") from e


def collapse(results: list[Any]) -> Any:
    """Collapse evaluator outputs: none -> None, one -> it, several -> list."""
    if not results:
        return None
    if len(results) == 1:
        return results[0]
    return results


class JqEvaluator:
    """Evaluates jq queries against YAML/JSON text or in-memory structures.

    Compiled queries are cached per process.
    """

    def __init__(self, *, logger: Any = None) -> None:
        """Initialize the evaluator.

        Args:
            logger: structlog logger (default: module logger).
        """
        self._log = logger or structlog.get_logger(__name__)

    def compile(self, query: str) -> Any:
        """Compile a query.

        Raises:
            QueryParseError: If the query is not valid jq.
        """
        try:
            return _compile(query)
        except ValueError as e:
            raise QueryParseError(query, str(e)) from e

    def parse_document(self, query: str, document: str) -> Any:
        """Parse serialized input text.

        JSON is read as JSON so number literals such as ``1e+20`` keep
        their type; anything else is read as YAML.

        Raises:
            QueryInputError: If the text is neither JSON nor valid YAML.
        """
        try:
            return json.loads(document)
        except ValueError:
            pass
        try:
            return yaml.safe_load(document)
        except yaml.YAMLError as e:
            raise QueryInputError(query, f"input is not valid YAML: {e}") from e

    def evaluate(self, query: str, document: Any) -> list[Any]:
        """Run a query and return every output.

        Args:
            query: jq query.
            document: Serialized YAML or JSON text, or an in-memory
                structure used as is.

        Returns:
            All outputs in order; empty when the query emits nothing.

        Raises:
            QueryParseError: If the query does not compile.
            QueryInputError: If the document cannot be parsed.
            QueryExecutionError: If jq fails while running.
        """
        program = self.compile(query)
        data = self.parse_document(query, document) if isinstance(document, str) else document
        payload = serialize(data, query=query)
        try:
            results: list[Any] = program.input_text(payload).all()
        except ValueError as e:
            raise QueryExecutionError(query, str(e)) from e
        self._log.debug("query_evaluated", query=query, outputs=len(results))
        return results


def zero_value(dest: Any, *, query: str = "") -> Any:
    """Return the zero value a "no match" decodes to for ``dest``.

    Args:
        dest: Destination type.
        query: Query string, for error messages.

    Returns:
        ``None`` for ``Any``/``object``/optional types, an empty value for
        builtin scalars and collections, a default instance for pydantic
        models whose fields all have defaults.

    Raises:
        ResultDecodeError: If ``dest`` has no zero value.

    Example:
        >>> zero_value(list[str]), zero_value(int), zero_value(str | None)
        ([], 0, None)
    """
    if dest is Any or dest is object or dest is None or dest is type(None):
        return None

    origin = get_origin(dest)
    if origin is Annotated:
        return zero_value(get_args(dest)[0], query=query)
    if origin is Union or origin is types.UnionType:
        if type(None) in get_args(dest):
            return None
        raise ResultDecodeError(query, dest, None, "no match and no zero value for union")

    base = origin or dest
    factory = _ZERO_FACTORIES.get(base)
    if factory is not None:
        return factory()

    if isinstance(base, type) and issubclass(base, BaseModel):
        try:
            return base()
        except ValidationError as e:
            raise ResultDecodeError(query, dest, None, f"no match: {e}") from e

    raise ResultDecodeError(query, dest, None, "no match and no zero value")


def decode_result(value: Any, dest: Any = Any, *, query: str = "", strict: bool = True) -> Any:
    """Decode a collapsed query result into ``dest``.

    Args:
        value: Collapsed query result.
        dest: Destination type (``str``, ``list[Any]``, a pydantic model...).
        query: Query string, for error messages.
        strict: Reject values that would need coercion (e.g. "16" for int).

    Returns:
        ``value`` validated as ``dest``, or the zero value for no match.

    Raises:
        ResultDecodeError: If the value does not fit ``dest``.

    Example:
        >>> decode_result(["one", 2], list[Any])
        ['one', 2]
    """
    if value is None:
        return zero_value(dest, query=query)
    if dest is Any or dest is object:
        return value
    try:
        return _adapter(dest).validate_python(value, strict=strict)
    except ValidationError as e:
        raise ResultDecodeError(query, dest, value, str(e)) from e
    except TypeError as e:
        # Unhashable or unsupported destination
        raise ResultDecodeError(query, dest, value, str(e)) from e


__all__: list[str] = [
    "JqEvaluator",
    "collapse",
    "decode_result",
    "serialize",
    "zero_value",
]

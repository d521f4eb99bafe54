"""Unit tests for jq evaluation and typed result decoding."""

from __future__ import annotations

from datetime import date
from typing import Any

import pytest
from pydantic import BaseModel

from helm_tester.errors import (
    QueryExecutionError,
    QueryInputError,
    QueryParseError,
    ResultDecodeError,
)
from helm_tester.query import JqEvaluator, collapse, decode_result, serialize, zero_value

RAW_DOCUMENT = """\
string: value
number: 16
list:
  - one
  - two
nested:
  image:
    tag: "0.6.0"
"""


class Image(BaseModel):
    repository: str = ""
    tag: str = ""


class RequiredImage(BaseModel):
    tag: str


@pytest.fixture
def evaluator() -> JqEvaluator:
    return JqEvaluator()


class TestJqEvaluator:
    """Tests for JqEvaluator.evaluate."""

    @pytest.mark.requirement("QUERY-EVAL")
    def test_yaml_input(self, evaluator: JqEvaluator) -> None:
        """Test that YAML text is accepted as input."""
        assert evaluator.evaluate(".string", RAW_DOCUMENT) == ["value"]
        assert evaluator.evaluate(".nested.image.tag", RAW_DOCUMENT) == ["0.6.0"]

    @pytest.mark.requirement("QUERY-EVAL")
    def test_json_input(self, evaluator: JqEvaluator) -> None:
        """Test that JSON text is accepted as input."""
        assert evaluator.evaluate(".a[1]", '{"a": [1, 2]}') == [2]

    @pytest.mark.requirement("QUERY-INPUT")
    def test_exponent_float_keeps_type(self, evaluator: JqEvaluator) -> None:
        """Test that exponent-form floats in serialized input stay numbers."""
        result = collapse(evaluator.evaluate(".x", serialize({"x": 1e20})))

        assert isinstance(result, float | int)
        assert result == 1e20

    @pytest.mark.requirement("QUERY-INPUT")
    def test_structured_input(self, evaluator: JqEvaluator) -> None:
        """Test that in-memory structures are queried without a text step."""
        data = {"x": 2.5e-7, "image": Image(tag="0.6.0"), "list": ["one"]}

        assert evaluator.evaluate(".x", data) == [2.5e-7]
        assert evaluator.evaluate(".image.tag", data) == ["0.6.0"]
        assert evaluator.evaluate(".list | length", data) == [1]

    @pytest.mark.requirement("QUERY-INPUT")
    def test_yaml_scalars_stay_yaml(self, evaluator: JqEvaluator) -> None:
        """Test that non-JSON text still follows YAML typing."""
        assert evaluator.evaluate(".tag", "tag: 0.6.0\n") == ["0.6.0"]
        assert evaluator.evaluate(".enabled", "enabled: yes\n") == [True]

    @pytest.mark.requirement("QUERY-EVAL")
    def test_multiple_outputs(self, evaluator: JqEvaluator) -> None:
        """Test that iterating queries return every output."""
        assert evaluator.evaluate(".list[]", RAW_DOCUMENT) == ["one", "two"]

    @pytest.mark.requirement("QUERY-EVAL")
    def test_no_output(self, evaluator: JqEvaluator) -> None:
        """Test that a query emitting nothing returns an empty list."""
        assert evaluator.evaluate('.list[] | select(. == "three")', RAW_DOCUMENT) == []

    @pytest.mark.requirement("QUERY-EVAL")
    def test_predicates_and_membership(self, evaluator: JqEvaluator) -> None:
        """Test select, index membership, length and keys."""
        assert evaluator.evaluate('.list | index("two") != null', RAW_DOCUMENT) == [True]
        assert evaluator.evaluate(".list | length", RAW_DOCUMENT) == [2]
        assert evaluator.evaluate(".nested | keys", RAW_DOCUMENT) == [["image"]]
        assert evaluator.evaluate('.string | IN("value", "other")', RAW_DOCUMENT) == [True]

    @pytest.mark.requirement("QUERY-ERRORS")
    def test_parse_error(self, evaluator: JqEvaluator) -> None:
        """Test that a malformed query raises QueryParseError."""
        with pytest.raises(QueryParseError, match=r"Invalid query '\.\['"):
            evaluator.evaluate(".[", RAW_DOCUMENT)

    @pytest.mark.requirement("QUERY-ERRORS")
    def test_execution_error(self, evaluator: JqEvaluator) -> None:
        """Test that a runtime jq error raises QueryExecutionError."""
        with pytest.raises(QueryExecutionError):
            evaluator.evaluate(".string | keys", RAW_DOCUMENT)

    @pytest.mark.requirement("QUERY-ERRORS")
    def test_input_error(self, evaluator: JqEvaluator) -> None:
        """Test that unparsable input raises QueryInputError."""
        with pytest.raises(QueryInputError, match="not valid YAML"):
            evaluator.evaluate(".a", "a: [unclosed\n")

    @pytest.mark.requirement("QUERY-ERRORS")
    def test_error_kinds_share_base(self) -> None:
        """Test that every query failure shares the QueryError exit code."""
        assert QueryParseError("q", "r").exit_code == QueryInputError("q", "r").exit_code


class TestSerialize:
    """Tests for serialize."""

    @pytest.mark.requirement("QUERY-INPUT")
    def test_dates_and_models(self) -> None:
        """Test that dates and pydantic models serialize."""
        text = serialize({"when": date(2026, 1, 2), "image": Image(tag="0.6.0")})

        assert '"when": "2026-01-02"' in text
        assert '"tag": "0.6.0"' in text

    @pytest.mark.requirement("QUERY-INPUT")
    def test_circular_structure(self) -> None:
        """Test that an unserializable structure raises QueryInputError."""
        data: dict[str, Any] = {}
        data["self"] = data

        with pytest.raises(QueryInputError, match="cannot serialize"):
            serialize(data, query=".self")


class TestCollapse:
    """Tests for collapse."""

    @pytest.mark.requirement("QUERY-EVAL")
    def test_collapse(self) -> None:
        """Test none, one, and several outputs."""
        assert collapse([]) is None
        assert collapse(["value"]) == "value"
        assert collapse([[1, 2]]) == [1, 2]
        assert collapse([1, 2]) == [1, 2]


class TestDecodeResult:
    """Tests for decode_result and zero_value."""

    @pytest.mark.requirement("QUERY-DECODE")
    def test_scalars(self) -> None:
        """Test decoding scalars into matching types."""
        assert decode_result("value", str) == "value"
        assert decode_result(16, int) == 16
        assert decode_result(True, bool) is True

    @pytest.mark.requirement("QUERY-DECODE")
    def test_any_returns_raw(self) -> None:
        """Test that Any returns the raw result."""
        assert decode_result(["one", 2], Any) == ["one", 2]
        assert decode_result({"a": 1}) == {"a": 1}

    @pytest.mark.requirement("QUERY-DECODE")
    def test_collections(self) -> None:
        """Test decoding lists and mappings."""
        assert decode_result(["one", "two"], list[str]) == ["one", "two"]
        assert decode_result({"a": 1}, dict[str, int]) == {"a": 1}

    @pytest.mark.requirement("QUERY-DECODE")
    def test_model(self) -> None:
        """Test decoding a mapping into a pydantic model."""
        image = decode_result({"repository": "ealen/echo-server", "tag": "0.6.0"}, Image)

        assert image == Image(repository="ealen/echo-server", tag="0.6.0")

    @pytest.mark.requirement("QUERY-DECODE")
    @pytest.mark.parametrize(
        ("dest", "expected"),
        [
            (str, ""),
            (int, 0),
            (bool, False),
            (list[str], []),
            (dict[str, Any], {}),
            (Any, None),
            (str | None, None),
            (Image, Image()),
        ],
    )
    def test_no_match_zero_value(self, dest: Any, expected: Any) -> None:
        """Test that no match decodes to the destination's zero value."""
        assert decode_result(None, dest) == expected

    @pytest.mark.requirement("QUERY-DECODE")
    def test_mismatch_raises(self) -> None:
        """Test that a shape mismatch raises ResultDecodeError."""
        with pytest.raises(ResultDecodeError, match="does not decode"):
            decode_result(["one", "two"], str, query=".list")

    @pytest.mark.requirement("QUERY-DECODE")
    def test_strict_rejects_coercion(self) -> None:
        """Test that strict decoding rejects numeric strings for int."""
        with pytest.raises(ResultDecodeError):
            decode_result("16", int)

        assert decode_result("16", int, strict=False) == 16

    @pytest.mark.requirement("QUERY-DECODE")
    def test_no_zero_value_raises(self) -> None:
        """Test destinations without a zero value."""
        with pytest.raises(ResultDecodeError):
            zero_value(RequiredImage)
        with pytest.raises(ResultDecodeError):
            zero_value(int | str)

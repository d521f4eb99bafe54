"""Unit tests for chart values merging.

Tests deep_merge and coalesce_subchart_values.
"""

from __future__ import annotations

import pytest

from helm_tester.merger import coalesce_subchart_values, deep_merge


class TestDeepMerge:
    """Tests for deep_merge function."""

    @pytest.mark.requirement("RENDER-MERGE")
    def test_merge_disjoint_dicts(self) -> None:
        """Test merging dictionaries with no overlapping keys."""
        result = deep_merge({"a": 1, "b": 2}, {"c": 3})

        assert result == {"a": 1, "b": 2, "c": 3}

    @pytest.mark.requirement("RENDER-MERGE")
    def test_override_takes_precedence(self) -> None:
        """Test that override values replace base values."""
        result = deep_merge({"a": 1, "b": 2}, {"a": 10})

        assert result == {"a": 10, "b": 2}

    @pytest.mark.requirement("RENDER-MERGE")
    def test_nested_dict_merge(self) -> None:
        """Test recursive merging keeps sibling defaults."""
        base = {"image": {"repository": "ealen/echo-server", "tag": "0.6.0"}}
        override = {"image": {"tag": "overriden"}}

        result = deep_merge(base, override)

        assert result == {"image": {"repository": "ealen/echo-server", "tag": "overriden"}}

    @pytest.mark.requirement("RENDER-MERGE")
    def test_lists_are_replaced(self) -> None:
        """Test that lists are replaced wholesale, not appended."""
        result = deep_merge({"items": [1, 2, 3]}, {"items": [4]})

        assert result == {"items": [4]}

    @pytest.mark.requirement("RENDER-MERGE")
    def test_shape_mismatch_override_wins(self) -> None:
        """Test that a scalar replaces a mapping and vice versa."""
        assert deep_merge({"a": {"b": 1}}, {"a": "string"}) == {"a": "string"}
        assert deep_merge({"a": "string"}, {"a": {"b": 1}}) == {"a": {"b": 1}}

    @pytest.mark.requirement("RENDER-MERGE")
    def test_none_removes_key(self) -> None:
        """Test that a None override deletes the default key."""
        result = deep_merge({"a": 1, "nested": {"x": 1, "y": 2}}, {"nested": {"x": None}})

        assert result == {"a": 1, "nested": {"y": 2}}

    @pytest.mark.requirement("RENDER-MERGE")
    def test_keep_none_stacks_deletions(self) -> None:
        """Test that kept None overrides still delete in the final merge."""
        layers = deep_merge(
            {"nested": {"x": 2}}, {"nested": {"x": None}, "a": None}, keep_none=True
        )

        assert layers == {"nested": {"x": None}, "a": None}
        assert deep_merge({"a": 1, "nested": {"x": 1, "y": 2}}, layers) == {"nested": {"y": 2}}

    @pytest.mark.requirement("RENDER-MERGE")
    def test_none_override_returns_copy(self) -> None:
        """Test that no overrides yields an independent copy of the base."""
        base = {"a": {"b": 1}}

        result = deep_merge(base, None)
        result["a"]["b"] = 2

        assert base == {"a": {"b": 1}}

    @pytest.mark.requirement("RENDER-MERGE")
    def test_does_not_mutate_inputs(self) -> None:
        """Test that merge does not modify input dictionaries."""
        base = {"a": {"b": 1}}
        override = {"a": {"c": [1]}}

        result = deep_merge(base, override)
        result["a"]["c"].append(2)

        assert base == {"a": {"b": 1}}
        assert override == {"a": {"c": [1]}}


class TestCoalesceSubchartValues:
    """Tests for coalesce_subchart_values function."""

    @pytest.mark.requirement("CHART-VALUES")
    def test_defaults_without_parent_overrides(self) -> None:
        """Test that a subchart keeps its defaults when the parent is silent."""
        defaults = {"image": {"tag": "0.6.0"}}

        assert coalesce_subchart_values(defaults, {}, "echo-server") == defaults

    @pytest.mark.requirement("CHART-VALUES")
    def test_parent_scope_overrides_defaults(self) -> None:
        """Test that values under the subchart key override its defaults."""
        defaults = {"image": {"repository": "ealen/echo-server", "tag": "0.6.0"}}
        parent = {"echo-server": {"image": {"tag": "overriden"}}, "other": True}

        result = coalesce_subchart_values(defaults, parent, "echo-server")

        assert result == {"image": {"repository": "ealen/echo-server", "tag": "overriden"}}

    @pytest.mark.requirement("CHART-VALUES")
    def test_global_block_is_inherited(self) -> None:
        """Test that the parent's global block merges into the subchart's."""
        defaults = {"global": {"own": 1, "env": "dev"}}
        parent = {"global": {"env": "ci"}}

        result = coalesce_subchart_values(defaults, parent, "echo-server")

        assert result["global"] == {"own": 1, "env": "ci"}

    @pytest.mark.requirement("CHART-VALUES")
    def test_non_mapping_scope_is_ignored(self) -> None:
        """Test that a scalar under the subchart key does not replace defaults."""
        result = coalesce_subchart_values({"a": 1}, {"echo-server": "oops"}, "echo-server")

        assert result == {"a": 1}

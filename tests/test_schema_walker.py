"""Tests for the schema index and the visibility walk."""
import logging

import pytest

from formstate import EngineConfig, FormSchema, SchemaConfigurationError, build_schema_index, walk
from formstate.errors import (
    DANGLING_REFERENCE, DUPLICATE_IDENTIFIER, UNKNOWN_KIND, UNKNOWN_OPERATOR, UNKNOWN_PREDICATE, UNKNOWN_RULE,
)


def _roots(fields):
    return FormSchema.from_dict({"fields": fields}).root_nodes


def test_walk_is_idempotent(nested_schema):
    values = {"plan": "business", "company": "ACME", "seats": 5}

    first = walk(nested_schema.root_nodes, values)
    second = walk(nested_schema.root_nodes, values, previous=first.snapshot)

    assert second.delta.is_empty
    assert second.delta.unchanged == first.visible_leaf_fields
    assert second.snapshot == first.snapshot


def test_first_walk_mounts_every_visible_leaf_in_dfs_order(nested_schema):
    result = walk(nested_schema.root_nodes, {"plan": "business"})

    assert result.visible_leaf_fields == ("plan", "company", "seats")
    assert result.delta.to_mount == ("plan", "company", "seats")
    assert result.delta.to_unmount == ()


def test_hidden_wrapper_hides_its_subtree(nested_schema):
    result = walk(nested_schema.root_nodes, {"plan": "basic"})

    assert result.snapshot.is_visible("business") is False
    assert result.snapshot.is_visible("company") is False
    assert result.visible_leaf_fields == ("plan",)


def test_wrappers_and_buttons_are_not_leaf_fields(nested_schema):
    result = walk(nested_schema.root_nodes, {"plan": "basic"})

    assert result.snapshot.is_visible("account") is True
    assert result.snapshot.is_visible("title") is True
    assert result.snapshot.is_visible("submit") is True
    assert "account" not in result.visible_leaf_fields
    assert "submit" not in result.visible_leaf_fields


def test_delta_against_previous_snapshot(nested_schema):
    before = walk(nested_schema.root_nodes, {"plan": "business"})
    after = walk(nested_schema.root_nodes, {"plan": "basic"}, previous=before.snapshot)

    assert after.delta.to_unmount == ("company", "seats")
    assert after.delta.to_mount == ()
    assert after.delta.unchanged == ("plan",)


def test_forward_references_resolve():
    roots = _roots({
        "details": {"uiType": "text-field", "showIf": [{"toggle": [{"equals": "on"}]}]},
        "toggle": {"uiType": "switch"},
    })

    result = walk(roots, {"toggle": "on"})

    assert "details" in result.visible_leaf_fields


def test_invisible_dependee_reads_as_absent():
    roots = _roots({
        "a": {"uiType": "text-field"},
        "b": {"uiType": "text-field", "showIf": [{"a": [{"filled": True}]}]},
        "c": {"uiType": "text-field", "showIf": [{"b": [{"filled": True}]}]},
    })

    # b still holds a value but is hidden, so c must not see it
    result = walk(roots, {"a": "", "b": "left over"})

    assert result.visible_leaf_fields == ("a",)


def test_oscillating_rules_stop_after_max_passes(caplog):
    roots = _roots({
        "x": {"uiType": "text-field", "showIf": [{"y": [{"notExists": True}]}]},
        "y": {"uiType": "text-field", "showIf": [{"x": [{"exists": True}]}]},
    })
    config = EngineConfig(max_walk_passes=4)

    with caplog.at_level(logging.WARNING, logger="formstate.schema_walker"):
        result = walk(roots, {"x": 1, "y": 1}, config=config)

    assert result.converged is False
    assert result.passes == 4
    assert "did not settle" in caplog.text


def test_index_tracks_dependees(nested_schema):
    index = build_schema_index(nested_schema.root_nodes)

    assert index.is_tracked_dependee("plan")
    assert not index.is_tracked_dependee("company")
    assert index.dependents["plan"] == {"business"}
    assert index.parents["company"] == "business"
    assert index.diagnostics == ()


@pytest.mark.parametrize("field, code", [
    ({"uiType": "text-field", "showIf": [{"ghost": [{"filled": True}]}]}, DANGLING_REFERENCE),
    ({"uiType": "text-field", "showIf": [{"ok": [{"resembles": 1}]}]}, UNKNOWN_OPERATOR),
    ({"uiType": "text-field", "validation": [{"resembles": 1}]}, UNKNOWN_RULE),
    ({"uiType": "text-field", "validation": [{"custom": "nope"}]}, UNKNOWN_PREDICATE),
    ({"uiType": "hologram"}, UNKNOWN_KIND),
    ({"uiType": "text-field", "validation": [{"equalsField": "ghost"}]}, DANGLING_REFERENCE),
    ({"uiType": "text-field", "showIf": "always"}, UNKNOWN_OPERATOR),
])
def test_misconfigured_node_is_reported_and_hidden(field, code, caplog):
    roots = _roots({"ok": {"uiType": "text-field"}, "bad": field})

    with caplog.at_level(logging.WARNING, logger="formstate.schema_walker"):
        index = build_schema_index(roots)
    result = walk(roots, {"ok": "x"}, index=index)

    assert [d.code for d in index.diagnostics] == [code]
    assert index.diagnostics[0].node_id == "bad"
    assert "bad" in index.broken
    assert result.visible_leaf_fields == ("ok",)
    assert caplog.text.count("Schema configuration problem") == 1


def test_duplicate_identifier_keeps_first_occurrence():
    schema = FormSchema.from_dict({
        "sections": {
            "one": {"uiType": "section", "children": {"name": {"uiType": "text-field"}}},
            "two": {"uiType": "section", "children": {"name": {"uiType": "numeric-field"}}},
        },
    })

    index = build_schema_index(schema.root_nodes)

    assert [d.code for d in index.diagnostics] == [DUPLICATE_IDENTIFIER]
    assert index.get_node("name").kind == "text-field"
    assert index.children["two"] == ()


def test_strict_mode_raises():
    roots = _roots({"bad": {"uiType": "text-field", "validation": [{"resembles": 1}]}})

    with pytest.raises(SchemaConfigurationError):
        build_schema_index(roots, config=EngineConfig(strict=True))


def test_walk_does_not_mutate_values(nested_schema):
    values = {"plan": "business", "company": "ACME"}

    walk(nested_schema.root_nodes, values)

    assert values == {"plan": "business", "company": "ACME"}

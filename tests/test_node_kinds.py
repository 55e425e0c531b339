"""Tests for the node kind registry and schema parsing."""
import pytest

from formstate import (
    FormEngine, FormSchema, NodeKindHandler, NodeVariant, RegistrationDelta, VisibilitySnapshot,
    build_schema_index, get_node_kind, register_node_kind,
)


def test_builtin_kinds():
    assert get_node_kind("section").variant is NodeVariant.WRAPPER
    assert get_node_kind("text-field").value_type == "string"
    assert get_node_kind("checkbox").required_message == "required_option"
    assert get_node_kind("submit").holds_value is False


def test_custom_kind_is_container_only_with_children():
    handler = get_node_kind("filter-checkbox")

    assert handler.is_leaf_field(has_children=False) is True
    assert handler.is_leaf_field(has_children=True) is False


def test_registering_a_kind_needs_no_core_changes():
    register_node_kind(NodeKindHandler("star-rating", NodeVariant.FIELD, value_type="integer"))

    engine = FormEngine({"fields": {"stars": {"uiType": "star-rating", "validation": [{"max": 5}]}}})
    engine.on_field_change("stars", 6)

    assert engine.diagnostics == ()
    assert engine.submit().errors == {"stars": "Must be at most 5"}


def test_registering_a_taken_tag_needs_replace():
    original = get_node_kind("text-field")

    with pytest.raises(ValueError, match="already registered"):
        register_node_kind(NodeKindHandler("text-field", NodeVariant.FIELD, value_type="number"))
    assert get_node_kind("text-field") is original

    register_node_kind(NodeKindHandler("text-field", NodeVariant.FIELD, value_type="number"), replace=True)
    assert get_node_kind("text-field").value_type == "number"


def test_kind_rules_follow_declared_rules():
    schema = FormSchema.from_dict({
        "fields": {"price": {"uiType": "histogram-slider", "validation": [{"required": True}]}},
    })
    index = build_schema_index(schema.root_nodes)

    assert index.rules_for("price") == ({"required": True}, {"range": True})
    assert index.required_message("price") == "required_option"


def test_reference_key_marks_custom_nodes():
    schema = FormSchema.from_dict({
        "fields": {
            "filters": {
                "referenceKey": "filter",
                "children": {"colours": {"referenceKey": "filter-checkbox", "options": ["red"]}},
            },
        },
    })
    index = build_schema_index(schema.root_nodes)

    filters = index.get_node("filters")
    assert filters.is_custom is True
    assert index.is_leaf_field("filters") is False
    assert index.is_leaf_field("colours") is True
    # Unrecognised keys are kept for renderers
    assert index.get_node("colours").props == {"options": ["red"]}


def test_node_local_errors_are_recorded_not_raised():
    schema = FormSchema.from_dict({
        "fields": {"a": {"uiType": "text-field", "validation": "required", "hiddenValuePolicy": "sometimes"}},
    })

    node = schema.root_nodes[0]
    assert len(node.config_errors) == 2
    assert node.validation_rules == ()


def test_snapshot_round_trip_and_delta():
    snapshot = VisibilitySnapshot(visibility={"a": True, "b": False}, leaf_fields=("a",))

    assert VisibilitySnapshot.from_dict(snapshot.to_dict()) == snapshot
    assert RegistrationDelta.between(("a", "b"), ("b", "c")).to_dict() == {
        "to_mount": ["c"], "to_unmount": ["a"], "unchanged": ["b"],
    }

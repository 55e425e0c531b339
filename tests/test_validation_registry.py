"""Tests for ValidationRegistry."""
import logging

import pytest

from formstate import SchemaConfigurationError, ValidationRegistry


def test_reregistering_unchanged_rules_keeps_validator():
    registry = ValidationRegistry()
    rules = ({"required": True}, {"max": 5})

    first = registry.register("name", rules)
    second = registry.register("name", ({"required": True}, {"max": 5}))

    assert second.compiled_validator is first.compiled_validator
    assert registry.compile_count == 1


def test_changed_rules_recompile_in_place():
    registry = ValidationRegistry()
    registry.register("a", ({"required": True},))
    registry.register("b", ())
    first = registry.get("a").compiled_validator

    registry.register("a", ({"required": True}, {"min": 2}))

    assert registry.get("a").compiled_validator is not first
    assert registry.compile_count == 3
    # Position in registration order is kept
    assert registry.registered_fields() == ["a", "b"]


def test_value_type_change_recompiles():
    registry = ValidationRegistry()
    registry.register("a", ())
    registry.register("a", (), value_type="number")

    assert registry.compile_count == 2


def test_unregistered_field_is_skipped():
    registry = ValidationRegistry()
    registry.register("a", ({"required": True},))
    registry.register("b", ({"required": True},))

    assert registry.unregister("b") is True
    assert registry.unregister("b") is False
    assert registry.validate_all({}) == {"a": "This field is required"}
    assert registry.validate_field("b", {}) is None


def test_validate_all_reports_every_field():
    registry = ValidationRegistry()
    registry.register("a", ({"required": True},))
    registry.register("b", ({"min": 3},))
    registry.register("c", ({"required": True},))

    results = registry.validate_all({"a": None, "b": "xy", "c": "ok"})

    assert list(results) == ["a", "b", "c"]
    assert results == {"a": "This field is required", "b": "Must be at least 3", "c": None}


def test_mark_stale_includes_cross_field_dependents():
    registry = ValidationRegistry()
    registry.register("from", ({"required": True},))
    registry.register("to", ({"moreThanField": "from"},))
    registry.pop_stale()

    affected = registry.mark_stale("from")

    assert affected == {"from", "to"}
    assert registry.pop_stale() == ["from", "to"]
    assert registry.pop_stale() == []


def test_dependents_follow_recompiles_and_unregisters():
    registry = ValidationRegistry()
    registry.register("to", ({"moreThanField": "from"},))
    assert registry.dependents_of("from") == {"to"}

    registry.register("to", ({"lessThanField": "limit"},))
    assert registry.dependents_of("from") == set()
    assert registry.dependents_of("limit") == {"to"}

    registry.unregister("to")
    assert registry.dependents_of("limit") == set()


def test_register_propagates_configuration_errors():
    registry = ValidationRegistry()

    with pytest.raises(SchemaConfigurationError):
        registry.register("a", ({"bogus": 1},))
    assert "a" not in registry


def test_clear_drops_everything():
    registry = ValidationRegistry()
    registry.register("a", ({"required": True},))
    registry.clear()

    assert len(registry) == 0
    assert registry.validate_all({}) == {}


def test_callback_errors_are_logged_not_raised(caplog):
    registry = ValidationRegistry()
    seen = []

    def broken(field_id, entry):
        raise RuntimeError("boom")

    registry.add_register_callback(broken)
    registry.add_register_callback(lambda field_id, entry: seen.append(field_id))
    registry.add_unregister_callback(seen.append)

    with caplog.at_level(logging.WARNING, logger="formstate.validation_registry"):
        registry.register("a", ())
    registry.unregister("a")

    assert seen == ["a", "a"]
    assert "Error in register callback: boom" in caplog.text

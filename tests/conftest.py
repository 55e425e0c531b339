"""Pytest configuration and shared fixtures."""
import pytest

import formstate.config as config_module
import formstate.node_kinds as node_kinds_module
import formstate.rules as rules_module
from formstate import FormSchema


@pytest.fixture(autouse=True)
def restore_module_registries():
    """Restore module-level config and registries after each test."""
    # Store original values
    original_config = config_module._default_engine_config
    original_kinds = dict(node_kinds_module._node_kind_registry)
    original_predicates = dict(rules_module._predicate_registry)

    yield

    # Restore original values after test
    config_module._default_engine_config = original_config
    node_kinds_module._node_kind_registry.clear()
    node_kinds_module._node_kind_registry.update(original_kinds)
    rules_module._predicate_registry.clear()
    rules_module._predicate_registry.update(original_predicates)


@pytest.fixture
def show_if_document():
    """A is required; B shows only when A equals "yes"."""
    return {
        "id": "show-if",
        "fields": {
            "A": {"uiType": "text-field", "validation": [{"required": True}]},
            "B": {
                "uiType": "text-field",
                "showIf": [{"A": {"operator": "equals", "value": "yes"}}],
            },
        },
    }


@pytest.fixture
def range_document():
    """Two numeric bounds; ``to`` must be greater than ``from``."""
    return {
        "id": "range",
        "fields": {
            "from": {"uiType": "numeric-field", "validation": [{"required": True}]},
            "to": {
                "uiType": "numeric-field",
                "validation": [
                    {"required": True},
                    {"moreThanField": "from", "errorMessage": "Must be greater than the lower bound"},
                ],
            },
        },
    }


@pytest.fixture
def nested_document():
    """Sections with wrappers, a hidden subtree and a submit button."""
    return {
        "id": "nested",
        "defaultValues": {"plan": "basic"},
        "sections": {
            "account": {
                "uiType": "section",
                "children": {
                    "title": {"uiType": "h2", "children": "Account"},
                    "plan": {"uiType": "radio", "validation": [{"required": True}]},
                    "business": {
                        "uiType": "div",
                        "showIf": [{"plan": [{"equals": "business"}]}],
                        "children": {
                            "company": {"uiType": "text-field", "validation": [{"required": True}]},
                            "seats": {"uiType": "numeric-field", "defaultValue": 5},
                        },
                    },
                    "submit": {"uiType": "submit", "disabled": "invalid-form"},
                },
            },
        },
    }


@pytest.fixture
def nested_schema(nested_document):
    return FormSchema.from_dict(nested_document)

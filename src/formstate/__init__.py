"""
Schema interpretation core for declarative, data-driven forms.

A form document describes field kinds, layout nesting, show-if rules and
per-field validation. This package turns that document into live form state:
which fields are mounted, what they hold, and whether they pass validation.

Key Features:
- Recursive schema walk with OR-of-AND show-if rules
- Declarative validation rules compiled once per field (backed by jsonschema)
- Cross-field and conditional (``when``) rules with dependency tracking
- Mount/unmount lifecycle with a configurable hidden-value policy
- Node kinds registered by tag, so new field kinds need no core changes

Quick Start:
    >>> from formstate import FormEngine
    >>> engine = FormEngine({
    ...     "id": "contact",
    ...     "fields": {
    ...         "hasPhone": {"uiType": "radio", "validation": [{"required": True}]},
    ...         "phone": {
    ...             "uiType": "text-field",
    ...             "showIf": [{"hasPhone": [{"equals": "yes"}]}],
    ...             "validation": [{"required": True}],
    ...         },
    ...     },
    ... })
    >>> engine.on_field_change("hasPhone", "yes")
    True
    >>> engine.submit().errors
    {'phone': 'This field is required'}

Modules:
    - schema_model: Schema node data model and document parsing
    - node_kinds: Kind tag → handler registry
    - conditions: Show-if rule evaluation
    - rules: Validation rule compiler and predicate registry
    - validation_registry: Per-form compiled validators
    - schema_walker: Schema index, diagnostics and visibility walk
    - lifecycle: Field mount/unmount state machine
    - form_state: Values, dirty flags and errors
    - form_engine: Runtime API
    - loader: JSON/YAML document loading
"""

# Configuration
from formstate.config import (
    EngineConfig,
    HiddenValuePolicy,
    RevalidateMode,
    ERROR_MESSAGES,
    set_default_engine_config,
    get_default_engine_config,
)

# Errors
from formstate.errors import SchemaConfigurationError, ConfigurationDiagnostic

# Schema model
from formstate.schema_model import Condition, RuleGroup, SchemaNode, FormSchema

# Node kinds
from formstate.node_kinds import (
    NodeVariant,
    NodeKindHandler,
    register_node_kind,
    unregister_node_kind,
    get_node_kind,
    get_registered_node_kinds,
)

# Conditions
from formstate.conditions import evaluate_condition, is_visible

# Rules
from formstate.rules import (
    CompiledValidator,
    compile_rules,
    register_predicate,
    unregister_predicate,
    get_predicate,
)

# Registry, walker, lifecycle, store
from formstate.validation_registry import ValidationRegistry, RegistryEntry
from formstate.snapshot_model import VisibilitySnapshot, RegistrationDelta, WalkResult
from formstate.schema_walker import SchemaIndex, build_schema_index, walk
from formstate.lifecycle import FieldLifecycleManager, FieldPhase
from formstate.form_state import FormStateStore, FieldSlot

# Engine
from formstate.form_engine import FormEngine, FieldProps, SubmitResult, ExternalFieldHandle

# Loading
from formstate.loader import load_schema, loads_schema

# Token cache
from formstate.token_cache import SingleValueTokenCache

__all__ = [
    # Configuration
    'EngineConfig',
    'HiddenValuePolicy',
    'RevalidateMode',
    'ERROR_MESSAGES',
    'set_default_engine_config',
    'get_default_engine_config',
    # Errors
    'SchemaConfigurationError',
    'ConfigurationDiagnostic',
    # Schema model
    'Condition',
    'RuleGroup',
    'SchemaNode',
    'FormSchema',
    # Node kinds
    'NodeVariant',
    'NodeKindHandler',
    'register_node_kind',
    'unregister_node_kind',
    'get_node_kind',
    'get_registered_node_kinds',
    # Conditions
    'evaluate_condition',
    'is_visible',
    # Rules
    'CompiledValidator',
    'compile_rules',
    'register_predicate',
    'unregister_predicate',
    'get_predicate',
    # Registry, walker, lifecycle, store
    'ValidationRegistry',
    'RegistryEntry',
    'VisibilitySnapshot',
    'RegistrationDelta',
    'WalkResult',
    'SchemaIndex',
    'build_schema_index',
    'walk',
    'FieldLifecycleManager',
    'FieldPhase',
    'FormStateStore',
    'FieldSlot',
    # Engine
    'FormEngine',
    'FieldProps',
    'SubmitResult',
    'ExternalFieldHandle',
    # Loading
    'load_schema',
    'loads_schema',
    # Token cache
    'SingleValueTokenCache',
]

__version__ = "0.1.0"

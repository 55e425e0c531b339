"""
FormEngine: runtime API over one form instance.

Owns the per-form objects (state store, validation registry, lifecycle
manager, schema index) and wires them together. The store notifies the engine
synchronously on every user-originated value change; the engine then:

1. re-walks the schema if the changed field is a visibility dependee,
2. applies the registration delta (mount/unmount, repeated until stable since
   mounting seeds defaults that can themselves change visibility),
3. marks validators that read the changed field as stale, and revalidates them
   when the form has been submitted and ``RevalidateMode.ON_CHANGE`` is set.

Lifecycle: one engine per rendered form. ``destroy()`` tears everything down.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional, Sequence, Tuple, Union

from formstate.config import EngineConfig, RevalidateMode, get_default_engine_config
from formstate.errors import ConfigurationDiagnostic
from formstate.form_state import FormStateStore
from formstate.lifecycle import FieldLifecycleManager
from formstate.rules import Predicate
from formstate.schema_model import FormSchema, SchemaNode
from formstate.schema_walker import SchemaIndex, build_schema_index, walk
from formstate.snapshot_model import VisibilitySnapshot
from formstate.token_cache import SingleValueTokenCache
from formstate.validation_registry import ValidationRegistry

logger = logging.getLogger(__name__)

SchemaSource = Union[FormSchema, Mapping[str, Any], Sequence[SchemaNode]]


@dataclass(frozen=True)
class FieldProps:
    """What a renderer needs to draw one node."""
    value: Any
    error: Optional[str]
    disabled: bool
    read_only: bool
    is_visible: bool


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of submit(): the payload on success, the errors otherwise."""
    success: bool
    values: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)


def _coerce_schema(schema: SchemaSource) -> FormSchema:
    if isinstance(schema, FormSchema):
        return schema
    if isinstance(schema, Mapping):
        return FormSchema.from_dict(schema)
    return FormSchema(root_nodes=tuple(schema))


class ExternalFieldHandle:
    """Handle given to external producers (async lookups, uploads) for one field.

    Captures the field's mount generation when created. Results arriving after
    the field was unmounted (or remounted) are dropped.
    """

    def __init__(self, engine: 'FormEngine', field_identifier: str, generation: int):
        self._engine = engine
        self.field_identifier = field_identifier
        self.generation = generation

    @property
    def is_stale(self) -> bool:
        return self._engine._is_stale_handle(self)

    def set_value(self, value: Any, dirty: bool = False) -> bool:
        """Apply a result. Returns False if the handle is stale."""
        if self.is_stale:
            logger.debug(f"Dropped stale value for field={self.field_identifier} (gen {self.generation})")
            return False
        self._engine._store.set(self.field_identifier, value, dirty=dirty)
        return True

    def set_error(self, error: Optional[str]) -> bool:
        if self.is_stale:
            logger.debug(f"Dropped stale error for field={self.field_identifier} (gen {self.generation})")
            return False
        self._engine._store.set_error(self.field_identifier, error)
        return True


class FormEngine:
    """Schema interpretation core for one form.

    Thread safety: Not thread-safe (all operations expected on the event loop).
    """

    def __init__(
        self,
        schema: SchemaSource,
        config: Optional[EngineConfig] = None,
        default_values: Optional[Mapping[str, Any]] = None,
        predicates: Optional[Mapping[str, Predicate]] = None,
        on_submit: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_error: Optional[Callable[[Dict[str, str]], None]] = None,
    ):
        self._config = config or get_default_engine_config()
        self._predicates: Dict[str, Predicate] = dict(predicates or {})
        self._default_overrides: Dict[str, Any] = dict(default_values or {})
        self._schema = _coerce_schema(schema)

        self._index: SchemaIndex = build_schema_index(self._schema.root_nodes, self._predicates, self._config)
        self._store = FormStateStore()
        self._registry = ValidationRegistry(self._config, self._predicates)
        self._lifecycle = FieldLifecycleManager(
            self._store, self._registry, self._index, self._config, self._form_defaults()
        )
        self._snapshot = VisibilitySnapshot.empty()
        self._validity_cache: SingleValueTokenCache[bool] = SingleValueTokenCache(lambda: self._store.token)

        self._submit_count = 0
        self._batch_depth = 0
        self._destroyed = False

        self._on_submit_callbacks: List[Callable[[Dict[str, Any]], None]] = []
        self._on_error_callbacks: List[Callable[[Dict[str, str]], None]] = []
        if on_submit is not None:
            self.add_submit_callback(on_submit)
        if on_error is not None:
            self.add_error_callback(on_error)

        self._unsubscribe = self._store.subscribe(self._on_store_change)
        self._refresh()
        logger.info(
            f"FormEngine ready: form={self._schema.id!r}, {len(self._lifecycle.mounted_fields())} mounted field(s), "
            f"{len(self._index.diagnostics)} diagnostic(s)"
        )

    def _form_defaults(self) -> Dict[str, Any]:
        defaults = dict(self._schema.default_values)
        defaults.update(self._default_overrides)
        return defaults

    # ========== CALLBACKS ==========

    def add_submit_callback(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Subscribe to successful submits. Receives the submitted values."""
        if callback not in self._on_submit_callbacks:
            self._on_submit_callbacks.append(callback)

    def remove_submit_callback(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        if callback in self._on_submit_callbacks:
            self._on_submit_callbacks.remove(callback)

    def add_error_callback(self, callback: Callable[[Dict[str, str]], None]) -> None:
        """Subscribe to failed submits. Receives field identifier → message."""
        if callback not in self._on_error_callbacks:
            self._on_error_callbacks.append(callback)

    def remove_error_callback(self, callback: Callable[[Dict[str, str]], None]) -> None:
        if callback in self._on_error_callbacks:
            self._on_error_callbacks.remove(callback)

    def _fire_submit_callbacks(self, values: Dict[str, Any]) -> None:
        for callback in self._on_submit_callbacks:
            try:
                callback(dict(values))
            except Exception as e:
                logger.warning(f"Error in submit callback: {e}")

    def _fire_error_callbacks(self, errors: Dict[str, str]) -> None:
        for callback in self._on_error_callbacks:
            try:
                callback(dict(errors))
            except Exception as e:
                logger.warning(f"Error in error callback: {e}")

    # ========== INTERNALS ==========

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("FormEngine has been destroyed")

    @contextmanager
    def atomic(self) -> Generator[None, None, None]:
        """Batch several changes into one re-walk and one revalidation.

        Example:
            with engine.atomic():
                engine.on_field_change("from", 10)
                engine.on_field_change("to", 15)
        """
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and not self._destroyed:
                changed = self._refresh()
                for field_identifier in changed:
                    self._registry.mark_stale(field_identifier)
                self._revalidate_stale()

    def _refresh(self) -> List[str]:
        """Walk and apply deltas until visibility is stable.

        Returns:
            Fields that were mounted or unmounted.
        """
        changed: List[str] = []
        for _ in range(self._config.max_walk_passes):
            result = walk(
                self._schema.root_nodes,
                self._store.get_all_visible_values(),
                previous=self._snapshot,
                index=self._index,
                config=self._config,
            )
            self._snapshot = result.snapshot
            if result.delta.is_empty:
                return changed
            self._lifecycle.apply_delta(result.delta)
            changed.extend(result.delta.to_unmount)
            changed.extend(result.delta.to_mount)
        logger.warning(f"Mounted fields did not settle after {self._config.max_walk_passes} walk(s)")
        return changed

    def _should_revalidate(self) -> bool:
        return self._submit_count > 0 and self._config.revalidate_mode is RevalidateMode.ON_CHANGE

    def _revalidate_stale(self) -> None:
        if not self._should_revalidate():
            return
        values = self._store.get_all_visible_values()
        for field_identifier in self._registry.pop_stale():
            self._store.set_error(field_identifier, self._registry.validate_field(field_identifier, values))

    def _on_store_change(self, field_identifier: str, value: Any) -> None:
        if self._batch_depth > 0:
            self._registry.mark_stale(field_identifier)
            return
        changed: List[str] = []
        if self._index.is_tracked_dependee(field_identifier):
            changed = self._refresh()
        self._registry.mark_stale(field_identifier)
        for other in changed:
            self._registry.mark_stale(other)
        self._revalidate_stale()

    def _is_stale_handle(self, handle: ExternalFieldHandle) -> bool:
        if self._destroyed:
            return True
        return (
            not self._lifecycle.is_mounted(handle.field_identifier)
            or self._lifecycle.generation(handle.field_identifier) != handle.generation
        )

    # ========== RUNTIME API ==========

    @property
    def schema(self) -> FormSchema:
        return self._schema

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def registry(self) -> ValidationRegistry:
        return self._registry

    @property
    def store(self) -> FormStateStore:
        return self._store

    @property
    def lifecycle(self) -> FieldLifecycleManager:
        return self._lifecycle

    @property
    def snapshot(self) -> VisibilitySnapshot:
        return self._snapshot

    @property
    def diagnostics(self) -> Tuple[ConfigurationDiagnostic, ...]:
        return self._index.diagnostics

    def mounted_fields(self) -> List[str]:
        return list(self._snapshot.leaf_fields)

    def get_values(self) -> Dict[str, Any]:
        return self._store.get_all_visible_values()

    def get_field_props(self, field_identifier: str) -> FieldProps:
        """Props for any node in the tree (fields, wrappers, buttons).

        Raises:
            KeyError: If the identifier is not in the schema.
        """
        node = self._index.get_node(field_identifier)
        if node is None:
            raise KeyError(f"Unknown field: {field_identifier}")

        if node.disabled == "invalid-form":
            disabled = not self.is_valid()
        else:
            disabled = bool(node.disabled)

        mounted = self._lifecycle.is_mounted(field_identifier)
        return FieldProps(
            value=self._store.get(field_identifier) if mounted else None,
            error=self._store.get_error(field_identifier) if mounted else None,
            disabled=disabled,
            read_only=node.read_only,
            is_visible=self._snapshot.is_visible(field_identifier),
        )

    def on_field_change(self, field_identifier: str, value: Any) -> bool:
        """Apply a user-originated change.

        Returns:
            False if the field is not mounted (the change is ignored).
        """
        self._ensure_alive()
        if not self._lifecycle.is_mounted(field_identifier):
            logger.debug(f"Ignored change to unmounted field={field_identifier}")
            return False
        self._store.set(field_identifier, value, dirty=True)
        return True

    def bind_external(self, field_identifier: str) -> ExternalFieldHandle:
        """Handle for a producer that reports back later (e.g. an address lookup)."""
        self._ensure_alive()
        return ExternalFieldHandle(self, field_identifier, self._lifecycle.generation(field_identifier))

    def validate(self) -> Dict[str, str]:
        """Validate every mounted field, store the errors and return the failing ones."""
        self._ensure_alive()
        values = self._store.get_all_visible_values()
        results = self._registry.validate_all(values)
        for field_identifier, message in results.items():
            self._store.set_error(field_identifier, message)
        return {field_id: message for field_id, message in results.items() if message is not None}

    def submit(self) -> SubmitResult:
        """Validate all mounted fields and report the payload or the errors.

        Unmounted fields are neither validated nor part of the payload.
        """
        self._ensure_alive()
        self._submit_count += 1
        errors = self.validate()
        if errors:
            logger.info(f"Submit rejected: {len(errors)} field error(s)")
            self._fire_error_callbacks(errors)
            return SubmitResult(success=False, errors=errors)

        values = self._store.get_all_visible_values()
        logger.info(f"Submit accepted: {len(values)} field(s)")
        self._fire_submit_callbacks(values)
        return SubmitResult(success=True, values=values)

    def reset(self, to_values: Optional[Mapping[str, Any]] = None) -> None:
        """Restore defaults (or ``to_values``, which become the new defaults).

        Clears dirty flags and errors, then re-walks since restored values can
        change visibility.
        """
        self._ensure_alive()
        if to_values is not None:
            self._default_overrides = dict(to_values)
        self._lifecycle.set_default_values(self._form_defaults())
        self._store.reset_all(self._lifecycle.resolved_defaults())
        self._submit_count = 0
        self._refresh()
        self._registry.pop_stale()
        self._validity_cache.invalidate()
        logger.info(f"Reset form={self._schema.id!r}")

    def get_dirty_state(self) -> bool:
        return self._store.is_dirty()

    def is_valid(self) -> bool:
        """Whether every mounted field currently passes, without touching stored errors."""
        self._ensure_alive()

        def compute() -> bool:
            values = self._store.get_all_visible_values()
            return all(
                self._registry.validate_field(field_identifier, values) is None
                for field_identifier in self._registry.registered_fields()
            )

        return self._validity_cache.get_or_compute(compute)

    def update_schema(self, schema: SchemaSource) -> None:
        """Swap in a new schema document, keeping values of fields that survive.

        Fields whose rules are unchanged keep their compiled validators.
        """
        self._ensure_alive()
        self._schema = _coerce_schema(schema)
        self._index = build_schema_index(self._schema.root_nodes, self._predicates, self._config)
        self._lifecycle.set_index(self._index)
        self._lifecycle.set_default_values(self._form_defaults())
        changed = self._refresh()
        self._lifecycle.refresh_registrations()
        for field_identifier in changed:
            self._registry.mark_stale(field_identifier)
        self._validity_cache.invalidate()
        self._revalidate_stale()
        logger.info(f"Updated schema for form={self._schema.id!r}: {len(self._index.nodes)} node(s)")

    def destroy(self) -> None:
        """Tear down the form. Pending external handles become stale."""
        if self._destroyed:
            return
        self._unsubscribe()
        self._lifecycle.unmount_all()
        self._registry.clear()
        self._store.clear_all()
        self._on_submit_callbacks.clear()
        self._on_error_callbacks.clear()
        self._destroyed = True
        logger.debug(f"Destroyed form={self._schema.id!r}")

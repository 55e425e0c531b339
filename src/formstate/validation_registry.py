"""
ValidationRegistry: per-form map from field identifier to compiled validator.

One registry belongs to one FormEngine and is torn down with it. Entries are
created when a leaf field mounts, replaced in place when its rules change, and
removed when it unmounts.

Cross-field rules declare the fields they read. The registry keeps the
reverse index (dependency -> dependents) so a change to any field can mark
every validator that reads it as stale, not just the field's own.
"""
from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from formstate.config import EngineConfig, get_default_engine_config
from formstate.rules import CompiledValidator, Predicate, compile_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryEntry:
    """A registered field: its compiled validator and the rules it came from."""
    field_identifier: str
    compiled_validator: CompiledValidator
    source_rules: Tuple[Dict[str, Any], ...]
    value_type: Optional[str] = None

    @property
    def depends_on(self) -> Tuple[str, ...]:
        return self.compiled_validator.depends_on


class ValidationRegistry:
    """Registry of compiled validators for the currently mounted fields.

    Thread safety: Not thread-safe (all operations expected on the event loop).
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        predicates: Optional[Mapping[str, Predicate]] = None,
    ):
        self._config = config or get_default_engine_config()
        self._predicates: Dict[str, Predicate] = dict(predicates or {})
        # Insertion order is registration order
        self._entries: Dict[str, RegistryEntry] = {}
        self._dependents: Dict[str, Set[str]] = {}
        self._stale: Set[str] = set()
        self.compile_count = 0

        self._on_register_callbacks: List[Callable[[str, RegistryEntry], None]] = []
        self._on_unregister_callbacks: List[Callable[[str], None]] = []

    # ========== SUBSCRIPTIONS ==========

    def add_register_callback(self, callback: Callable[[str, RegistryEntry], None]) -> None:
        if callback not in self._on_register_callbacks:
            self._on_register_callbacks.append(callback)

    def remove_register_callback(self, callback: Callable[[str, RegistryEntry], None]) -> None:
        if callback in self._on_register_callbacks:
            self._on_register_callbacks.remove(callback)

    def add_unregister_callback(self, callback: Callable[[str], None]) -> None:
        if callback not in self._on_unregister_callbacks:
            self._on_unregister_callbacks.append(callback)

    def remove_unregister_callback(self, callback: Callable[[str], None]) -> None:
        if callback in self._on_unregister_callbacks:
            self._on_unregister_callbacks.remove(callback)

    def _fire_register_callbacks(self, field_identifier: str, entry: RegistryEntry) -> None:
        for callback in self._on_register_callbacks:
            try:
                callback(field_identifier, entry)
            except Exception as e:
                logger.warning(f"Error in register callback: {e}")

    def _fire_unregister_callbacks(self, field_identifier: str) -> None:
        for callback in self._on_unregister_callbacks:
            try:
                callback(field_identifier)
            except Exception as e:
                logger.warning(f"Error in unregister callback: {e}")

    # ========== REGISTRATION ==========

    def register(
        self,
        field_identifier: str,
        rules: Tuple[Dict[str, Any], ...],
        value_type: Optional[str] = None,
        required_message: str = "required",
    ) -> RegistryEntry:
        """Register (or update) a field's validator.

        Compiles only when the field is new or its rules/value type differ from
        the stored source; otherwise the existing entry is returned untouched.

        Raises:
            SchemaConfigurationError: If the rules cannot be compiled.
        """
        source_rules = tuple(dict(rule) for rule in rules)
        existing = self._entries.get(field_identifier)
        if existing is not None and existing.source_rules == source_rules and existing.value_type == value_type:
            return existing

        validator = compile_rules(source_rules, value_type, required_message, self._predicates, self._config)
        self.compile_count += 1
        entry = RegistryEntry(field_identifier, validator, source_rules, value_type)

        if existing is not None:
            self._drop_dependencies(field_identifier, existing)
            logger.debug(f"Recompiled validator for field={field_identifier} (rules changed)")
        else:
            logger.debug(f"Registered validator for field={field_identifier}")

        # Replacing keeps the original registration position
        self._entries[field_identifier] = entry
        for dependency in entry.depends_on:
            self._dependents.setdefault(dependency, set()).add(field_identifier)
        self._stale.add(field_identifier)

        self._fire_register_callbacks(field_identifier, entry)
        return entry

    def unregister(self, field_identifier: str) -> bool:
        """Remove a field's entry. Returns False if it was not registered."""
        entry = self._entries.pop(field_identifier, None)
        if entry is None:
            return False
        self._drop_dependencies(field_identifier, entry)
        self._stale.discard(field_identifier)
        logger.debug(f"Unregistered validator for field={field_identifier}")
        self._fire_unregister_callbacks(field_identifier)
        return True

    def _drop_dependencies(self, field_identifier: str, entry: RegistryEntry) -> None:
        for dependency in entry.depends_on:
            dependents = self._dependents.get(dependency)
            if dependents is None:
                continue
            dependents.discard(field_identifier)
            if not dependents:
                del self._dependents[dependency]

    def clear(self) -> None:
        """Drop every entry. Called when the owning form is destroyed."""
        self._entries.clear()
        self._dependents.clear()
        self._stale.clear()
        logger.debug("Cleared validation registry")

    # ========== LOOKUP ==========

    def get(self, field_identifier: str) -> Optional[RegistryEntry]:
        return self._entries.get(field_identifier)

    def is_registered(self, field_identifier: str) -> bool:
        return field_identifier in self._entries

    def registered_fields(self) -> List[str]:
        return list(self._entries.keys())

    def dependents_of(self, field_identifier: str) -> Set[str]:
        """Registered fields whose validators read ``field_identifier``."""
        return set(self._dependents.get(field_identifier, ()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, field_identifier: object) -> bool:
        return field_identifier in self._entries

    # ========== STALENESS ==========

    def mark_stale(self, changed_field: str) -> Set[str]:
        """Mark the changed field and every validator depending on it as stale.

        Returns:
            The registered fields newly affected by the change.
        """
        affected = self.dependents_of(changed_field)
        if changed_field in self._entries:
            affected.add(changed_field)
        self._stale |= affected
        return affected

    def pop_stale(self) -> List[str]:
        """Return stale fields in registration order and clear the stale set."""
        stale = [field_id for field_id in self._entries if field_id in self._stale]
        self._stale.clear()
        return stale

    # ========== VALIDATION ==========

    def validate_field(self, field_identifier: str, values: Mapping[str, Any]) -> Optional[str]:
        """Run one field's validator. Unregistered fields always pass."""
        entry = self._entries.get(field_identifier)
        if entry is None:
            return None
        return entry.compiled_validator(values.get(field_identifier), values)

    def validate_all(self, values: Mapping[str, Any]) -> Dict[str, Optional[str]]:
        """Run every registered validator in registration order.

        A failing field does not stop the others, so the full error set is
        available after one pass. Unregistered fields are skipped entirely.
        """
        results: Dict[str, Optional[str]] = {}
        for field_identifier, entry in self._entries.items():
            results[field_identifier] = entry.compiled_validator(values.get(field_identifier), values)
        self._stale.clear()
        failed = sum(1 for message in results.values() if message is not None)
        logger.debug(f"validate_all: {len(results)} field(s), {failed} failing")
        return results

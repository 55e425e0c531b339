"""
Field lifecycle manager.

Applies registration deltas produced by the schema walker. Each leaf field
moves through::

    UNMOUNTED -> MOUNTING -> MOUNTED -> UNMOUNTING -> UNMOUNTED

and nothing but ``apply_delta`` moves it. Mounting seeds the field's default
(unless a preserved value survives from an earlier mount) and registers its
validator; unmounting applies the hidden-value policy and unregisters it.

Every transition bumps the field's mount generation. Work started against a
field (an async lookup, a file upload) captures the generation and is
discarded if it no longer matches when the result comes back.
"""
from enum import Enum
import logging
from typing import Any, Dict, List, Mapping, Optional

from formstate.config import EngineConfig, HiddenValuePolicy, get_default_engine_config
from formstate.form_state import FormStateStore
from formstate.schema_walker import SchemaIndex
from formstate.snapshot_model import RegistrationDelta
from formstate.validation_registry import ValidationRegistry

logger = logging.getLogger(__name__)


class FieldPhase(Enum):
    UNMOUNTED = "unmounted"
    MOUNTING = "mounting"
    MOUNTED = "mounted"
    UNMOUNTING = "unmounting"


class FieldLifecycleManager:
    """Drives mount/unmount of leaf fields against one store and one registry."""

    def __init__(
        self,
        store: FormStateStore,
        registry: ValidationRegistry,
        index: SchemaIndex,
        config: Optional[EngineConfig] = None,
        default_values: Optional[Mapping[str, Any]] = None,
    ):
        self._store = store
        self._registry = registry
        self._index = index
        self._config = config or get_default_engine_config()
        self._default_values: Dict[str, Any] = dict(default_values or {})
        self._phases: Dict[str, FieldPhase] = {}
        self._generations: Dict[str, int] = {}

    # ========== STATE ==========

    def phase(self, field_identifier: str) -> FieldPhase:
        return self._phases.get(field_identifier, FieldPhase.UNMOUNTED)

    def is_mounted(self, field_identifier: str) -> bool:
        return self.phase(field_identifier) is FieldPhase.MOUNTED

    def mounted_fields(self) -> List[str]:
        return [f for f, phase in self._phases.items() if phase is FieldPhase.MOUNTED]

    def generation(self, field_identifier: str) -> int:
        return self._generations.get(field_identifier, 0)

    def _transition(self, field_identifier: str, phase: FieldPhase) -> None:
        previous = self.phase(field_identifier)
        self._phases[field_identifier] = phase
        logger.debug(f"Field {field_identifier}: {previous.value} -> {phase.value}")

    # ========== CONFIGURATION ==========

    def set_index(self, index: SchemaIndex) -> None:
        self._index = index

    def set_default_values(self, default_values: Mapping[str, Any]) -> None:
        self._default_values = dict(default_values)

    def default_for(self, field_identifier: str) -> Any:
        """Form-level default values win over the node's own defaultValue."""
        if field_identifier in self._default_values:
            return self._default_values[field_identifier]
        node = self._index.get_node(field_identifier)
        return node.default_value if node is not None else None

    def resolved_defaults(self) -> Dict[str, Any]:
        return {field_id: self.default_for(field_id) for field_id in self._index.leaf_fields()}

    def policy_for(self, field_identifier: str) -> HiddenValuePolicy:
        node = self._index.get_node(field_identifier)
        if node is not None and node.hidden_value_policy is not None:
            return node.hidden_value_policy
        return self._config.hidden_value_policy

    # ========== TRANSITIONS ==========

    def apply_delta(self, delta: RegistrationDelta) -> None:
        """Unmount first so a field moving between branches never has two slots."""
        for field_identifier in delta.to_unmount:
            self._unmount(field_identifier)
        for field_identifier in delta.to_mount:
            self._mount(field_identifier)

    def _mount(self, field_identifier: str) -> None:
        if self.is_mounted(field_identifier):
            return
        self._transition(field_identifier, FieldPhase.MOUNTING)
        self._generations[field_identifier] = self.generation(field_identifier) + 1

        preserved = (
            self.policy_for(field_identifier) is HiddenValuePolicy.PRESERVE
            and self._store.has_value(field_identifier)
        )
        if not preserved:
            self._store.set(field_identifier, self.default_for(field_identifier), notify=False)
        self._store.set_mounted(field_identifier, True)

        self._registry.register(
            field_identifier,
            self._index.rules_for(field_identifier),
            self._index.value_type(field_identifier),
            self._index.required_message(field_identifier),
        )
        self._transition(field_identifier, FieldPhase.MOUNTED)

    def _unmount(self, field_identifier: str) -> None:
        if not self.is_mounted(field_identifier):
            return
        self._transition(field_identifier, FieldPhase.UNMOUNTING)
        self._generations[field_identifier] = self.generation(field_identifier) + 1

        keep_value = self.policy_for(field_identifier) is HiddenValuePolicy.PRESERVE
        self._store.clear(field_identifier, keep_value=keep_value)
        self._registry.unregister(field_identifier)
        self._transition(field_identifier, FieldPhase.UNMOUNTED)

    def refresh_registrations(self) -> None:
        """Re-register mounted fields against the current index.

        Fields whose rules did not change keep their compiled validator.
        """
        for field_identifier in self.mounted_fields():
            node = self._index.get_node(field_identifier)
            if node is None or field_identifier in self._index.broken:
                continue
            self._registry.register(
                field_identifier,
                self._index.rules_for(field_identifier),
                self._index.value_type(field_identifier),
                self._index.required_message(field_identifier),
            )

    def unmount_all(self) -> None:
        for field_identifier in self.mounted_fields():
            self._unmount(field_identifier)

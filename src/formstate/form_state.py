"""
Form state store.

Holds one FieldSlot per field that has been mounted at least once (and, under
the preserve policy, kept its value while hidden). It knows nothing about the
schema: the lifecycle manager decides which slots are mounted and the engine
decides what a change means.

Every value mutation bumps ``token`` so derived values (form validity) can be
cached with a token cache, and listeners are called synchronously unless the
caller passes ``notify=False`` (seeding, resets).
"""
from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]


@dataclass
class FieldSlot:
    """Current state of one field."""
    value: Any = None
    is_dirty: bool = False
    error: Optional[str] = None
    mounted: bool = False


class FormStateStore:
    """Per-form value/dirty/error storage with change listeners."""

    def __init__(self):
        self._slots: Dict[str, FieldSlot] = {}
        self._listeners: List[Listener] = []
        self._token = 0

    @property
    def token(self) -> int:
        """Mutation counter, bumped on every value, error or mount change."""
        return self._token

    def _bump(self) -> None:
        self._token += 1

    # ========== LISTENERS ==========

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called as ``listener(field_identifier, value)``.

        Returns:
            A function that removes the listener again.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, field_identifier: str, value: Any) -> None:
        # Copy: a listener may unsubscribe itself
        for listener in list(self._listeners):
            try:
                listener(field_identifier, value)
            except Exception as e:
                logger.warning(f"Error in form state listener for {field_identifier}: {e}")

    # ========== SLOTS ==========

    def get_slot(self, field_identifier: str) -> Optional[FieldSlot]:
        return self._slots.get(field_identifier)

    def has_value(self, field_identifier: str) -> bool:
        slot = self._slots.get(field_identifier)
        return slot is not None and slot.value is not None

    def get(self, field_identifier: str) -> Any:
        slot = self._slots.get(field_identifier)
        return slot.value if slot is not None else None

    def get_error(self, field_identifier: str) -> Optional[str]:
        slot = self._slots.get(field_identifier)
        return slot.error if slot is not None else None

    def is_mounted(self, field_identifier: str) -> bool:
        slot = self._slots.get(field_identifier)
        return slot is not None and slot.mounted

    def set(self, field_identifier: str, value: Any, dirty: bool = False, notify: bool = True) -> None:
        """Set a field's value.

        Args:
            dirty: True for user-originated changes. A slot stays dirty until
                it is reset or cleared.
            notify: False to skip listeners (seeding, bulk resets).
        """
        slot = self._slots.setdefault(field_identifier, FieldSlot())
        slot.value = value
        if dirty:
            slot.is_dirty = True
        self._bump()
        if notify:
            self._notify(field_identifier, value)

    def set_error(self, field_identifier: str, error: Optional[str]) -> None:
        slot = self._slots.get(field_identifier)
        if slot is None or slot.error == error:
            return
        slot.error = error
        self._bump()

    def set_mounted(self, field_identifier: str, mounted: bool) -> None:
        slot = self._slots.setdefault(field_identifier, FieldSlot())
        slot.mounted = mounted
        self._bump()

    def clear(self, field_identifier: str, keep_value: bool = False) -> None:
        """Drop a field's slot, or with ``keep_value`` only its error and mount.

        A kept value keeps its dirty flag, so a remounted field still reads as
        user-edited. Without ``keep_value`` the slot is removed entirely.
        """
        if field_identifier not in self._slots:
            return
        if keep_value:
            slot = self._slots[field_identifier]
            slot.error = None
            slot.mounted = False
        else:
            del self._slots[field_identifier]
        self._bump()

    def clear_all(self) -> None:
        self._slots.clear()
        self._bump()

    # ========== AGGREGATES ==========

    def get_all_visible_values(self) -> Dict[str, Any]:
        """Values of mounted fields only. Hidden-but-preserved values are excluded."""
        return {field_id: slot.value for field_id, slot in self._slots.items() if slot.mounted}

    def get_errors(self) -> Dict[str, str]:
        return {
            field_id: slot.error
            for field_id, slot in self._slots.items()
            if slot.mounted and slot.error is not None
        }

    def is_dirty(self) -> bool:
        return any(slot.is_dirty for slot in self._slots.values() if slot.mounted)

    def dirty_fields(self) -> List[str]:
        return [field_id for field_id, slot in self._slots.items() if slot.mounted and slot.is_dirty]

    def seed(self, values: Mapping[str, Any]) -> None:
        """Overwrite the values of existing slots without marking them dirty or notifying."""
        for field_id, value in values.items():
            slot = self._slots.get(field_id)
            if slot is None:
                continue
            slot.value = value
        self._bump()

    def reset_all(self, default_values: Mapping[str, Any]) -> None:
        """Return every mounted field to its default (or None), clearing dirty flags and errors.

        Values preserved for hidden fields are dropped. Visibility is not
        recomputed here; the caller re-walks afterwards.
        """
        for field_id in [f for f, slot in self._slots.items() if not slot.mounted]:
            del self._slots[field_id]
        for field_id, slot in self._slots.items():
            slot.value = default_values.get(field_id)
            slot.is_dirty = False
            slot.error = None
        self._bump()
        logger.debug(f"Reset {len(self._slots)} mounted field(s) to defaults")

    def __contains__(self, field_identifier: object) -> bool:
        return field_identifier in self._slots

    def __len__(self) -> int:
        return len(self._slots)

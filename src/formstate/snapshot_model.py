"""
Visibility snapshot and registration delta dataclasses.

This module provides typed data structures threaded through schema walks: the
previous walk's visibility map goes in, a new one comes out together with the
delta the Field Lifecycle Manager applies.

Design Philosophy: Correct by Construction
- Immutable snapshots (frozen dataclass)
- Data only, no node references, so snapshots can be logged and compared
- Derived every walk, never persisted by the engine
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, Mapping, Tuple


@dataclass(frozen=True)
class VisibilitySnapshot:
    """Immutable map of node identifier → visible, for every node in the tree.

    Also records which visible nodes are leaf fields, in DFS order, since
    that is what mount/unmount decisions compare.
    """
    visibility: Mapping[str, bool] = field(default_factory=dict)
    leaf_fields: Tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> 'VisibilitySnapshot':
        return cls()

    def is_visible(self, identifier: str) -> bool:
        return self.visibility.get(identifier, False)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.visibility

    def __iter__(self) -> Iterator[str]:
        return iter(self.visibility)

    def __len__(self) -> int:
        return len(self.visibility)

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {
            'visibility': dict(self.visibility),
            'leaf_fields': list(self.leaf_fields),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'VisibilitySnapshot':
        """Import from dict."""
        return cls(
            visibility=dict(data['visibility']),
            leaf_fields=tuple(data.get('leaf_fields', ())),
        )


@dataclass(frozen=True)
class RegistrationDelta:
    """Leaf fields whose mounted state changed between two walks."""
    to_mount: Tuple[str, ...] = ()
    to_unmount: Tuple[str, ...] = ()
    unchanged: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.to_mount and not self.to_unmount

    @classmethod
    def between(cls, previous: Tuple[str, ...], current: Tuple[str, ...]) -> 'RegistrationDelta':
        """Diff two ordered leaf-field lists. Output keeps the lists' own order."""
        previous_set = set(previous)
        current_set = set(current)
        return cls(
            to_mount=tuple(f for f in current if f not in previous_set),
            to_unmount=tuple(f for f in previous if f not in current_set),
            unchanged=tuple(f for f in current if f in previous_set),
        )

    def to_dict(self) -> Dict:
        return {
            'to_mount': list(self.to_mount),
            'to_unmount': list(self.to_unmount),
            'unchanged': list(self.unchanged),
        }


@dataclass(frozen=True)
class WalkResult:
    """Output of one schema walk."""
    snapshot: VisibilitySnapshot
    delta: RegistrationDelta
    passes: int = 1
    converged: bool = True

    @property
    def visible_leaf_fields(self) -> Tuple[str, ...]:
        return self.snapshot.leaf_fields

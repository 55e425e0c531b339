"""
Schema node data model.

A form document is a tree of SchemaNode objects reachable from a root mapping
(optionally split into top-level sections) plus a flat defaultValues mapping.

Design Philosophy: Data only
- Frozen dataclasses, no behaviour beyond parsing
- Insertion order of ``children`` is render order
- Rule objects are kept as plain dicts so registries can diff them

Problems local to one node (malformed showIf, malformed validation list,
missing kind tag) are recorded in ``SchemaNode.config_errors`` instead of
aborting the parse; the schema index turns them into diagnostics and hides
the node. Structural problems with the document itself raise
SchemaConfigurationError.
"""
from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from formstate.config import HiddenValuePolicy
from formstate.errors import SchemaConfigurationError, UNKNOWN_KIND, UNKNOWN_OPERATOR, UNKNOWN_RULE

logger = logging.getLogger(__name__)

# Document keys that are interpreted by the core; everything else goes to props
_INTERPRETED_KEYS = {
    "uiType", "referenceKey", "kind", "children", "validation", "validationRules",
    "showIf", "visibilityRules", "defaultValue", "disabled", "readOnly", "label",
    "hiddenValuePolicy",
}


@dataclass(frozen=True)
class Condition:
    """One (dependee, operator, value) triple of a visibility rule-group."""
    dependee: str
    operator: str
    value: Any = True

    def to_dict(self) -> Dict[str, Any]:
        return {self.dependee: {"operator": self.operator, "value": self.value}}


@dataclass(frozen=True)
class RuleGroup:
    """AND-combination of conditions. A node is visible if any group holds."""
    conditions: Tuple[Condition, ...]

    @property
    def dependees(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(c.dependee for c in self.conditions))

    @classmethod
    def from_dict(cls, data: Any) -> 'RuleGroup':
        """Parse ``{dependee: spec}``.

        ``spec`` is either ``{"operator": ..., "value": ...}`` or one or more
        one-key condition objects, e.g. ``[{"filled": True}, {"equals": "yes"}]``.
        """
        if not isinstance(data, Mapping):
            raise SchemaConfigurationError(
                f"Visibility rule-group must be a mapping, got {type(data).__name__}",
                code=UNKNOWN_OPERATOR,
            )
        conditions: List[Condition] = []
        for dependee, spec in data.items():
            conditions.extend(parse_condition_spec(str(dependee), spec))
        return cls(conditions=tuple(conditions))


def parse_condition_spec(dependee: str, spec: Any) -> List[Condition]:
    if isinstance(spec, Mapping) and "operator" in spec:
        return [Condition(dependee, str(spec["operator"]), spec.get("value", True))]
    if isinstance(spec, Mapping):
        return [Condition(dependee, str(op), value) for op, value in spec.items()]
    if isinstance(spec, (list, tuple)):
        conditions = []
        for item in spec:
            conditions.extend(parse_condition_spec(dependee, item))
        return conditions
    raise SchemaConfigurationError(
        f"Condition on '{dependee}' must be a mapping or a list of mappings, got {spec!r}",
        code=UNKNOWN_OPERATOR,
    )


def parse_visibility_rules(raw: Any) -> Optional[Tuple[RuleGroup, ...]]:
    """Parse a showIf value. None/empty means always visible."""
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        raise SchemaConfigurationError(
            f"showIf must be a list of rule-groups, got {type(raw).__name__}", code=UNKNOWN_OPERATOR
        )
    groups = tuple(RuleGroup.from_dict(group) for group in raw)
    return groups or None


def parse_validation_rules(raw: Any) -> Tuple[Dict[str, Any], ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise SchemaConfigurationError(
            f"validation must be a list of rule objects, got {type(raw).__name__}", code=UNKNOWN_RULE
        )
    rules = []
    for rule in raw:
        if not isinstance(rule, Mapping):
            raise SchemaConfigurationError(f"Validation rule must be a mapping, got {rule!r}", code=UNKNOWN_RULE)
        rules.append(dict(rule))
    return tuple(rules)


@dataclass(frozen=True)
class SchemaNode:
    """Declarative description of one field or structural wrapper."""
    identifier: str
    kind: str
    children: Dict[str, 'SchemaNode'] = field(default_factory=dict)
    validation_rules: Tuple[Dict[str, Any], ...] = ()
    visibility_rules: Optional[Tuple[RuleGroup, ...]] = None
    default_value: Any = None
    disabled: Any = False
    read_only: bool = False
    label: Optional[str] = None
    text: Any = None
    is_custom: bool = False
    hidden_value_policy: Optional[HiddenValuePolicy] = None
    props: Dict[str, Any] = field(default_factory=dict)
    config_errors: Tuple[SchemaConfigurationError, ...] = ()

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    @property
    def visibility_dependees(self) -> Tuple[str, ...]:
        if not self.visibility_rules:
            return ()
        seen: Dict[str, None] = {}
        for group in self.visibility_rules:
            for dependee in group.dependees:
                seen[dependee] = None
        return tuple(seen)

    def iter_descendants(self) -> Iterator['SchemaNode']:
        """Depth-first, children in declared order (self excluded)."""
        for child in self.children.values():
            yield child
            yield from child.iter_descendants()

    @classmethod
    def from_dict(cls, identifier: str, data: Any) -> 'SchemaNode':
        if not isinstance(data, Mapping):
            raise SchemaConfigurationError(
                f"Schema node '{identifier}' must be a mapping, got {type(data).__name__}",
                code=UNKNOWN_KIND, node_id=identifier,
            )

        errors: List[SchemaConfigurationError] = []
        is_custom = "referenceKey" in data
        kind = data.get("referenceKey") if is_custom else data.get("uiType", data.get("kind"))
        if not kind:
            errors.append(SchemaConfigurationError(
                f"Node '{identifier}' has no uiType/referenceKey", code=UNKNOWN_KIND, node_id=identifier
            ))
            kind = ""

        children: Dict[str, SchemaNode] = {}
        text = None
        raw_children = data.get("children")
        if isinstance(raw_children, Mapping):
            for child_id, child_data in raw_children.items():
                children[str(child_id)] = cls.from_dict(str(child_id), child_data)
        elif raw_children is not None:
            text = raw_children

        validation_rules: Tuple[Dict[str, Any], ...] = ()
        try:
            validation_rules = parse_validation_rules(data.get("validation", data.get("validationRules")))
        except SchemaConfigurationError as e:
            e.node_id = identifier
            errors.append(e)

        visibility_rules = None
        try:
            visibility_rules = parse_visibility_rules(data.get("showIf", data.get("visibilityRules")))
        except SchemaConfigurationError as e:
            e.node_id = identifier
            errors.append(e)

        policy = None
        if data.get("hiddenValuePolicy") is not None:
            try:
                policy = HiddenValuePolicy.parse(data["hiddenValuePolicy"])
            except ValueError as e:
                errors.append(SchemaConfigurationError(str(e), code=UNKNOWN_RULE, node_id=identifier))

        return cls(
            identifier=identifier,
            kind=str(kind),
            children=children,
            validation_rules=validation_rules,
            visibility_rules=visibility_rules,
            default_value=data.get("defaultValue"),
            disabled=data.get("disabled", False),
            read_only=bool(data.get("readOnly", False)),
            label=data.get("label"),
            text=text,
            is_custom=is_custom,
            hidden_value_policy=policy,
            props={k: v for k, v in data.items() if k not in _INTERPRETED_KEYS},
            config_errors=tuple(errors),
        )


@dataclass(frozen=True)
class FormSchema:
    """A parsed form document: ordered root nodes plus seed values."""
    root_nodes: Tuple[SchemaNode, ...]
    default_values: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def iter_nodes(self) -> Iterator[SchemaNode]:
        for root in self.root_nodes:
            yield root
            yield from root.iter_descendants()

    @classmethod
    def from_dict(cls, data: Any) -> 'FormSchema':
        """Parse ``{"id", "fields" | "sections", "defaultValues"}``."""
        if not isinstance(data, Mapping):
            raise SchemaConfigurationError(f"Form document must be a mapping, got {type(data).__name__}")

        roots: List[SchemaNode] = []
        for key in ("sections", "fields"):
            block = data.get(key)
            if block is None:
                continue
            if not isinstance(block, Mapping):
                raise SchemaConfigurationError(f"'{key}' must be a mapping of identifier to node")
            roots.extend(SchemaNode.from_dict(str(node_id), node) for node_id, node in block.items())

        defaults = data.get("defaultValues") or {}
        if not isinstance(defaults, Mapping):
            raise SchemaConfigurationError("'defaultValues' must be a mapping of identifier to value")

        logger.debug(f"Parsed form document id={data.get('id')!r} with {len(roots)} root node(s)")
        return cls(root_nodes=tuple(roots), default_values=dict(defaults), id=data.get("id"))

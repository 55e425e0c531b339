"""
Schema walker.

Two entry points:

``build_schema_index`` runs once per schema. It flattens the tree, resolves
every node's kind handler, records the dependee → dependents map used to
decide whether a value change can affect visibility at all, and collects
configuration diagnostics. Misconfigured nodes are marked *broken*; the walk
treats them as invisible so one bad node cannot take the whole form down.

``walk`` decides visibility for the current values. It is a pure function of
(tree, values): dependees that are themselves invisible are masked as absent,
and since a node may depend on a node declared after it, visibility is
iterated to a fixed point starting from "everything visible". The previous
snapshot is only used to compute the registration delta.
"""
from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from formstate.conditions import is_known_operator, is_visible
from formstate.config import EngineConfig, get_default_engine_config
from formstate.errors import (
    ConfigurationDiagnostic, DANGLING_REFERENCE, DUPLICATE_IDENTIFIER, SchemaConfigurationError,
    UNKNOWN_KIND, UNKNOWN_OPERATOR,
)
from formstate.node_kinds import NodeKindHandler, get_node_kind
from formstate.rules import Predicate, compile_rules
from formstate.schema_model import SchemaNode
from formstate.snapshot_model import RegistrationDelta, VisibilitySnapshot, WalkResult

logger = logging.getLogger(__name__)


@dataclass
class SchemaIndex:
    """Flattened, load-time view of one schema tree."""
    nodes: Dict[str, SchemaNode] = field(default_factory=dict)
    handlers: Dict[str, NodeKindHandler] = field(default_factory=dict)
    roots: Tuple[str, ...] = ()
    children: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    parents: Dict[str, Optional[str]] = field(default_factory=dict)
    dependents: Dict[str, Set[str]] = field(default_factory=dict)
    broken: Set[str] = field(default_factory=set)
    diagnostics: Tuple[ConfigurationDiagnostic, ...] = ()

    def get_node(self, identifier: str) -> Optional[SchemaNode]:
        return self.nodes.get(identifier)

    def is_tracked_dependee(self, identifier: str) -> bool:
        """True if some node's visibility reads this identifier's value."""
        return identifier in self.dependents

    def is_leaf_field(self, identifier: str) -> bool:
        node = self.nodes.get(identifier)
        handler = self.handlers.get(identifier)
        if node is None or handler is None:
            return False
        return handler.is_leaf_field(node.has_children)

    def leaf_fields(self) -> List[str]:
        return [identifier for identifier in self.nodes if self.is_leaf_field(identifier)]

    def value_type(self, identifier: str) -> Optional[str]:
        handler = self.handlers.get(identifier)
        return handler.value_type if handler else None

    def required_message(self, identifier: str) -> str:
        handler = self.handlers.get(identifier)
        return handler.required_message if handler else "required"

    def rules_for(self, identifier: str) -> Tuple[Dict[str, Any], ...]:
        """Declared rules followed by the rules the node's kind always carries."""
        node = self.nodes.get(identifier)
        handler = self.handlers.get(identifier)
        declared = node.validation_rules if node is not None else ()
        return declared + (handler.kind_rules if handler else ())


def _flatten(
    root_nodes: Iterable[SchemaNode],
    index: SchemaIndex,
    problems: List[SchemaConfigurationError],
) -> None:
    def visit(node: SchemaNode, parent: Optional[str]) -> Optional[str]:
        if node.identifier in index.nodes:
            problems.append(SchemaConfigurationError(
                f"Duplicate identifier '{node.identifier}'; later occurrence ignored",
                code=DUPLICATE_IDENTIFIER, node_id=node.identifier,
            ))
            return None
        index.nodes[node.identifier] = node
        index.parents[node.identifier] = parent
        child_ids = [visit(child, node.identifier) for child in node.children.values()]
        index.children[node.identifier] = tuple(c for c in child_ids if c is not None)
        return node.identifier

    root_ids = [visit(root, None) for root in root_nodes]
    index.roots = tuple(r for r in root_ids if r is not None)


def _check_node(
    node: SchemaNode,
    index: SchemaIndex,
    predicates: Mapping[str, Predicate],
    config: EngineConfig,
) -> List[SchemaConfigurationError]:
    problems: List[SchemaConfigurationError] = list(node.config_errors)

    handler = get_node_kind(node.kind) if node.kind else None
    if handler is None:
        if node.kind:
            problems.append(SchemaConfigurationError(
                f"Unknown node kind '{node.kind}'", code=UNKNOWN_KIND, node_id=node.identifier
            ))
    else:
        index.handlers[node.identifier] = handler

    for group in node.visibility_rules or ():
        for condition in group.conditions:
            if not is_known_operator(condition.operator):
                problems.append(SchemaConfigurationError(
                    f"Unknown visibility operator '{condition.operator}' on '{condition.dependee}'",
                    code=UNKNOWN_OPERATOR, node_id=node.identifier,
                ))
            if condition.dependee not in index.nodes:
                problems.append(SchemaConfigurationError(
                    f"Visibility rule references unknown field '{condition.dependee}'",
                    code=DANGLING_REFERENCE, node_id=node.identifier,
                ))

    rules = index.rules_for(node.identifier)
    if handler is not None and handler.is_leaf_field(node.has_children) and rules:
        try:
            validator = compile_rules(
                rules, handler.value_type, handler.required_message, predicates, config
            )
        except SchemaConfigurationError as e:
            e.node_id = node.identifier
            problems.append(e)
        else:
            for reference in validator.depends_on:
                if reference not in index.nodes:
                    problems.append(SchemaConfigurationError(
                        f"Validation rule references unknown field '{reference}'",
                        code=DANGLING_REFERENCE, node_id=node.identifier,
                    ))

    for problem in problems:
        if problem.node_id is None:
            problem.node_id = node.identifier
    return problems


def build_schema_index(
    root_nodes: Sequence[SchemaNode],
    predicates: Optional[Mapping[str, Predicate]] = None,
    config: Optional[EngineConfig] = None,
) -> SchemaIndex:
    """Flatten the tree and collect configuration diagnostics.

    Each diagnostic is logged once, here. With ``config.strict`` the first
    problem is raised instead.

    Raises:
        SchemaConfigurationError: Only in strict mode.
    """
    config = config or get_default_engine_config()
    predicates = predicates or {}
    index = SchemaIndex()
    problems: List[SchemaConfigurationError] = []

    _flatten(root_nodes, index, problems)
    for node in index.nodes.values():
        node_problems = _check_node(node, index, predicates, config)
        if node_problems:
            index.broken.add(node.identifier)
            problems.extend(node_problems)
        for dependee in node.visibility_dependees:
            index.dependents.setdefault(dependee, set()).add(node.identifier)

    if problems and config.strict:
        raise problems[0]

    diagnostics = []
    for problem in problems:
        diagnostic = ConfigurationDiagnostic.from_error(problem.node_id, problem)
        logger.warning(f"Schema configuration problem: {diagnostic}")
        diagnostics.append(diagnostic)
    index.diagnostics = tuple(diagnostics)

    logger.debug(
        f"Indexed schema: {len(index.nodes)} node(s), {len(index.leaf_fields())} leaf field(s), "
        f"{len(index.broken)} broken"
    )
    return index


def _visibility_pass(
    index: SchemaIndex,
    current_values: Mapping[str, Any],
    assumed: Mapping[str, bool],
) -> Dict[str, bool]:
    # Values of nodes assumed invisible read as absent
    masked = {k: v for k, v in current_values.items() if assumed.get(k, True)}
    visibility: Dict[str, bool] = {}

    def visit(identifier: str, parent_visible: bool) -> None:
        node = index.nodes[identifier]
        visible = (
            parent_visible
            and identifier not in index.broken
            and is_visible(node.visibility_rules, masked)
        )
        visibility[identifier] = visible
        for child_id in index.children.get(identifier, ()):
            visit(child_id, visible)

    for root_id in index.roots:
        visit(root_id, True)
    return visibility


def walk(
    root_nodes: Sequence[SchemaNode],
    current_values: Mapping[str, Any],
    previous: Optional[VisibilitySnapshot] = None,
    index: Optional[SchemaIndex] = None,
    config: Optional[EngineConfig] = None,
) -> WalkResult:
    """Compute visibility and the leaf fields to mount/unmount.

    Args:
        root_nodes: Ordered top-level nodes.
        current_values: Values of the currently mounted fields (read-only).
        previous: Snapshot from the last walk (None on the first walk).
        index: Prebuilt index for ``root_nodes``; built on the fly if omitted.
        config: Supplies ``max_walk_passes``.

    Returns:
        WalkResult with the new snapshot and the delta against ``previous``.
    """
    config = config or get_default_engine_config()
    if index is None:
        index = build_schema_index(root_nodes, config=config)

    assumed: Dict[str, bool] = {identifier: True for identifier in index.nodes}
    passes = 0
    converged = False
    while passes < config.max_walk_passes:
        passes += 1
        visibility = _visibility_pass(index, current_values, assumed)
        if visibility == assumed:
            converged = True
            break
        assumed = visibility

    if not converged:
        logger.warning(
            f"Visibility did not settle after {passes} pass(es); check for circular showIf rules"
        )

    leaf_fields = tuple(
        identifier for identifier in index.nodes
        if assumed.get(identifier) and index.is_leaf_field(identifier)
    )
    snapshot = VisibilitySnapshot(visibility=assumed, leaf_fields=leaf_fields)
    delta = RegistrationDelta.between(previous.leaf_fields if previous else (), leaf_fields)

    logger.debug(
        f"Walk: {passes} pass(es), {len(leaf_fields)} visible field(s), "
        f"+{len(delta.to_mount)} -{len(delta.to_unmount)}"
    )
    return WalkResult(snapshot=snapshot, delta=delta, passes=passes, converged=converged)

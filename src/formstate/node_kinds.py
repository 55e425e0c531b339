"""
Node kind registry.

Every schema node carries a kind tag (``uiType`` for built-in elements and
fields, ``referenceKey`` for custom components). The tag is looked up here to
find the handler that decides how the core treats the node: as a structural
wrapper that only gates its subtree, as a leaf field that holds a value, or as
a custom composite that does either depending on whether it has children.

New kinds are added with register_node_kind(); nothing else needs editing.
"""
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class NodeVariant(Enum):
    WRAPPER = "wrapper"
    FIELD = "field"
    CUSTOM = "custom"


@dataclass(frozen=True)
class NodeKindHandler:
    """How the core interprets one kind tag.

    Attributes:
        tag: The kind tag as written in schema documents.
        variant: Closed set of node variants.
        holds_value: False for leaf nodes such as buttons that never own a
            form-state slot.
        value_type: JSON Schema type of the field's value, checked before any
            declared rule (None = anything).
        required_message: Message key used when ``required`` fails without a
            custom message (selection widgets say "Make a selection").
        kind_rules: Rules every field of this kind carries, appended after the
            ones declared in the schema.
    """
    tag: str
    variant: NodeVariant
    holds_value: bool = True
    value_type: Optional[str] = None
    required_message: str = "required"
    kind_rules: Tuple[Dict[str, Any], ...] = ()

    def is_container(self, has_children: bool) -> bool:
        if self.variant is NodeVariant.WRAPPER:
            return True
        if self.variant is NodeVariant.CUSTOM:
            return has_children
        return False

    def is_leaf_field(self, has_children: bool) -> bool:
        return self.holds_value and not self.is_container(has_children)


_node_kind_registry: Dict[str, NodeKindHandler] = {}


def register_node_kind(handler: NodeKindHandler, replace: bool = False) -> None:
    """Register a handler for a kind tag.

    Raises:
        ValueError: If the tag already has a handler and ``replace`` is False.
    """
    if handler.tag in _node_kind_registry:
        if not replace:
            raise ValueError(f"Node kind already registered: {handler.tag}")
        logger.debug(f"Replacing node kind handler for tag: {handler.tag}")
    _node_kind_registry[handler.tag] = handler
    logger.debug(f"Registered node kind: tag={handler.tag}, variant={handler.variant.value}")


def unregister_node_kind(tag: str) -> None:
    _node_kind_registry.pop(tag, None)


def get_node_kind(tag: str) -> Optional[NodeKindHandler]:
    return _node_kind_registry.get(tag)


def get_registered_node_kinds() -> List[str]:
    return list(_node_kind_registry.keys())


def _register_builtin_kinds() -> None:
    for tag in ("section", "div", "span", "header", "footer", "p",
                "h1", "h2", "h3", "h4", "h5", "h6", "accordion", "grid"):
        register_node_kind(NodeKindHandler(tag, NodeVariant.WRAPPER, holds_value=False), replace=True)

    for tag in ("text-field", "textarea", "email-field", "contact-field", "date-field", "time-field"):
        register_node_kind(NodeKindHandler(tag, NodeVariant.FIELD, value_type="string"), replace=True)
    for tag in ("numeric-field", "slider"):
        register_node_kind(NodeKindHandler(tag, NodeVariant.FIELD, value_type="number"), replace=True)
    for tag in ("select", "radio"):
        register_node_kind(
            NodeKindHandler(tag, NodeVariant.FIELD, required_message="required_option"), replace=True
        )
    for tag in ("multi-select", "nested-multi-select", "checkbox", "chips"):
        register_node_kind(
            NodeKindHandler(tag, NodeVariant.FIELD, value_type="array", required_message="required_option"),
            replace=True,
        )
    register_node_kind(NodeKindHandler("switch", NodeVariant.FIELD, value_type="boolean"), replace=True)
    # from/to pairs; the range rule also enforces from < to
    for tag in ("range-slider", "histogram-slider"):
        register_node_kind(
            NodeKindHandler(tag, NodeVariant.FIELD, value_type="object", required_message="required_option",
                            kind_rules=({"range": True},)),
            replace=True,
        )
    register_node_kind(NodeKindHandler("file-upload", NodeVariant.FIELD, value_type="array"), replace=True)

    for tag in ("submit", "reset"):
        register_node_kind(NodeKindHandler(tag, NodeVariant.FIELD, holds_value=False), replace=True)

    # Custom components, keyed by referenceKey
    for tag in ("filter", "filter-item"):
        register_node_kind(NodeKindHandler(tag, NodeVariant.CUSTOM, holds_value=False), replace=True)
    register_node_kind(
        NodeKindHandler("filter-checkbox", NodeVariant.CUSTOM, value_type="array", required_message="required_option"),
        replace=True,
    )


_register_builtin_kinds()

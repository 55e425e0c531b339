"""
Validation rule compiler.

Turns a field's declarative rule list into one CompiledValidator. Value-shape
rules (min, max, length, pattern, email, ...) are translated into JSON Schema
fragments and checked with jsonschema; rules that need other fields' values
(cross-field comparisons, ``when`` branches, named predicates) are plain
callables over the full values mapping.

Rule objects carry one rule key plus an optional ``errorMessage``::

    [{"required": True}, {"max": 5, "errorMessage": "Maximum length of 5"}]

Non-``required`` rules pass on empty values; ``required`` decides emptiness.
The first failing rule's message is the field's error.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import SchemaError

from formstate.conditions import as_number, evaluate_condition, is_empty_value, is_known_operator
from formstate.config import EngineConfig, get_default_engine_config
from formstate.errors import SchemaConfigurationError, UNKNOWN_OPERATOR, UNKNOWN_PREDICATE, UNKNOWN_RULE
from formstate.schema_model import Condition, parse_condition_spec

logger = logging.getLogger(__name__)

# Keys that modify a rule rather than name one
_MODIFIER_KEYS = {"errorMessage", "args", "dependsOn"}

_FORMAT_CHECKER = FormatChecker()

# A check returns None when the value passes, otherwise the error message
Check = Callable[[Any, Mapping[str, Any]], Optional[str]]
Predicate = Callable[..., bool]

# Function registries for schema builders and named predicates
_schema_builder_registry: Dict[str, Callable[[Any], Dict[str, Any]]] = {}
_predicate_registry: Dict[str, Predicate] = {}


def _register_schema_builder(rule_name: str):
    """Decorator to register a JSON Schema fragment builder for a rule key."""
    def decorator(func: Callable[[Any], Dict[str, Any]]):
        _schema_builder_registry[rule_name] = func
        return func
    return decorator


def register_predicate(name: str):
    """Decorator to register a named predicate for ``{"custom": name}`` rules.

    The predicate is called as ``predicate(value, values, **args)`` and returns
    True when the value is acceptable.
    """
    def decorator(func: Predicate):
        if name in _predicate_registry:
            logger.warning(f"Overwriting predicate: {name}")
        _predicate_registry[name] = func
        return func
    return decorator


def unregister_predicate(name: str) -> None:
    _predicate_registry.pop(name, None)


def get_predicate(name: str) -> Optional[Predicate]:
    return _predicate_registry.get(name)


# ----------------------------- schema builders -----------------------------

def _require_number(rule_name: str, bound: Any) -> float:
    number = as_number(bound)
    if number is None:
        raise SchemaConfigurationError(f"'{rule_name}' expects a number, got {bound!r}", code=UNKNOWN_RULE)
    return bound


def _length_bound(bound: Any) -> Optional[int]:
    if isinstance(bound, bool) or not isinstance(bound, (int, float)):
        return None
    if bound < 0 or not float(bound).is_integer():
        return None
    return int(bound)


@_register_schema_builder("min")
def _build_min(bound: Any) -> Dict[str, Any]:
    fragment: Dict[str, Any] = {"minimum": _require_number("min", bound)}
    length = _length_bound(bound)
    if length is not None:
        fragment.update(minLength=length, minItems=length)
    return fragment


@_register_schema_builder("max")
def _build_max(bound: Any) -> Dict[str, Any]:
    fragment: Dict[str, Any] = {"maximum": _require_number("max", bound)}
    length = _length_bound(bound)
    if length is not None:
        fragment.update(maxLength=length, maxItems=length)
    return fragment


@_register_schema_builder("length")
def _build_length(length: Any) -> Dict[str, Any]:
    exact = _length_bound(length)
    if exact is None:
        raise SchemaConfigurationError(f"'length' expects a non-negative integer, got {length!r}", code=UNKNOWN_RULE)
    return {"minLength": exact, "maxLength": exact, "minItems": exact, "maxItems": exact}


@_register_schema_builder("pattern")
@_register_schema_builder("matches")
def _build_pattern(pattern: Any) -> Dict[str, Any]:
    if not isinstance(pattern, str):
        raise SchemaConfigurationError(f"'pattern' expects a string, got {pattern!r}", code=UNKNOWN_RULE)
    try:
        re.compile(pattern)
    except re.error as e:
        raise SchemaConfigurationError(f"Invalid pattern {pattern!r}: {e}", code=UNKNOWN_RULE)
    return {"pattern": pattern}


@_register_schema_builder("email")
def _build_email(enabled: Any) -> Dict[str, Any]:
    return {"format": "email"} if enabled else {}


@_register_schema_builder("integer")
def _build_integer(enabled: Any) -> Dict[str, Any]:
    return {"type": "integer"} if enabled else {}


@_register_schema_builder("moreThan")
def _build_more_than(bound: Any) -> Dict[str, Any]:
    return {"exclusiveMinimum": _require_number("moreThan", bound)}


@_register_schema_builder("lessThan")
def _build_less_than(bound: Any) -> Dict[str, Any]:
    return {"exclusiveMaximum": _require_number("lessThan", bound)}


@_register_schema_builder("oneOf")
def _build_one_of(options: Any) -> Dict[str, Any]:
    if not isinstance(options, (list, tuple)):
        raise SchemaConfigurationError(f"'oneOf' expects a list, got {options!r}", code=UNKNOWN_RULE)
    options = list(options)
    return {"anyOf": [{"enum": options}, {"type": "array", "items": {"enum": options}}]}


def _schema_check(fragment: Dict[str, Any], message: str) -> Check:
    try:
        Draft202012Validator.check_schema(fragment)
    except SchemaError as e:
        raise SchemaConfigurationError(f"Rule compiles to an invalid schema: {e.message}", code=UNKNOWN_RULE)
    validator = Draft202012Validator(fragment, format_checker=_FORMAT_CHECKER)

    def check(value: Any, values: Mapping[str, Any]) -> Optional[str]:
        return None if validator.is_valid(value) else message

    return check


# ----------------------------- compiled form -----------------------------

@dataclass(frozen=True)
class CompiledRule:
    """One executable rule with the fields whose values it reads."""
    name: str
    check: Check
    depends_on: Tuple[str, ...] = ()
    runs_on_empty: bool = False


class CompiledValidator:
    """Executable form of a field's declarative rules.

    Pure: owns no external resources and never mutates the values it is given.
    """

    def __init__(self, rules: Sequence[CompiledRule], source_rules: Tuple[Dict[str, Any], ...] = ()):
        self._rules: Tuple[CompiledRule, ...] = tuple(rules)
        self.source_rules = source_rules

    @property
    def depends_on(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for rule in self._rules:
            for dependency in rule.depends_on:
                seen[dependency] = None
        return tuple(seen)

    @property
    def rule_names(self) -> Tuple[str, ...]:
        return tuple(rule.name for rule in self._rules)

    def __call__(self, value: Any, values: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        values = values if values is not None else {}
        empty = is_empty_value(value)
        for rule in self._rules:
            if empty and not rule.runs_on_empty:
                continue
            message = rule.check(value, values)
            if message is not None:
                return message
        return None

    def __repr__(self) -> str:
        return f"CompiledValidator(rules={list(self.rule_names)})"


# ----------------------------- compiler -----------------------------

def _format_message(template: str, rule: Mapping[str, Any]) -> str:
    try:
        return template.format(**{k: v for k, v in rule.items() if isinstance(k, str)})
    except (KeyError, IndexError, ValueError):
        return template


def _rule_names(rule: Mapping[str, Any]) -> List[str]:
    return [key for key in rule.keys() if key not in _MODIFIER_KEYS]


def _cross_field_check(name: str, ref: Any, message: str) -> CompiledRule:
    if not isinstance(ref, str) or not ref:
        raise SchemaConfigurationError(f"'{name}' expects a field identifier, got {ref!r}", code=UNKNOWN_RULE)

    def compare(value: Any, other: Any) -> bool:
        if name == "equalsField":
            return value == other
        if name == "notEqualsField":
            return value != other
        left, right = as_number(value), as_number(other)
        if left is None or right is None:
            return False
        return left > right if name == "moreThanField" else left < right

    def check(value: Any, values: Mapping[str, Any]) -> Optional[str]:
        other = values.get(ref)
        # The referenced field's own rules report its emptiness
        if is_empty_value(other):
            return None
        return None if compare(value, other) else message

    return CompiledRule(name=name, check=check, depends_on=(ref,))


def _custom_check(rule: Mapping[str, Any], message: str, predicates: Mapping[str, Predicate]) -> CompiledRule:
    predicate_name = rule["custom"]
    predicate = predicates.get(predicate_name) or _predicate_registry.get(predicate_name)
    if predicate is None:
        raise SchemaConfigurationError(f"Unknown custom predicate: {predicate_name!r}", code=UNKNOWN_PREDICATE)
    args = dict(rule.get("args") or {})
    depends_on = tuple(rule.get("dependsOn") or ())

    def check(value: Any, values: Mapping[str, Any]) -> Optional[str]:
        return None if predicate(value, values, **args) else message

    return CompiledRule(name="custom", check=check, depends_on=depends_on)


_RANGE_SHAPE = {
    "type": "object",
    "properties": {"from": {"type": ["number", "null"]}, "to": {"type": ["number", "null"]}},
}


def _on_step(number: float, base: float, step: float) -> bool:
    steps = (number - base) / step
    return abs(steps - round(steps)) < 1e-9


def _range_check(bounds: Any, message: str, required_text: Optional[str]) -> CompiledRule:
    """A from/to pair: both ends set when required, ``from < to``, inside min/max and on step."""
    if bounds is True:
        bounds = {}
    if not isinstance(bounds, Mapping):
        raise SchemaConfigurationError(f"'range' expects true or a mapping, got {bounds!r}", code=UNKNOWN_RULE)
    low, high, step = (
        None if bounds.get(key) is None else _require_number("range", bounds[key]) for key in ("min", "max", "step")
    )
    if step is not None and step <= 0:
        raise SchemaConfigurationError(f"'range' step must be positive, got {step!r}", code=UNKNOWN_RULE)
    shape = Draft202012Validator(_RANGE_SHAPE)

    def check(value: Any, values: Mapping[str, Any]) -> Optional[str]:
        if not shape.is_valid(value):
            return message
        start, end = value.get("from"), value.get("to")
        if start is None or end is None:
            return required_text
        if start >= end:
            return message
        if (low is not None and start < low) or (high is not None and end > high):
            return message
        if step is not None:
            base = low if low is not None else 0
            if not (_on_step(start, base, step) and _on_step(end, base, step)):
                return message
        return None

    return CompiledRule(name="range", check=check)


def _parse_when_conditions(dependee: str, spec: Any) -> List[Condition]:
    if isinstance(spec, (Mapping, list, tuple)):
        conditions = parse_condition_spec(dependee, spec)
    else:
        conditions = [Condition(dependee, "equals", spec)]
    for condition in conditions:
        if not is_known_operator(condition.operator):
            raise SchemaConfigurationError(
                f"Unknown operator {condition.operator!r} in 'when' on {dependee!r}", code=UNKNOWN_OPERATOR
            )
    return conditions


def _when_check(
    branches: Any,
    value_type: Optional[str],
    required_message: str,
    predicates: Mapping[str, Predicate],
    config: EngineConfig,
) -> CompiledRule:
    if not isinstance(branches, Mapping) or not branches:
        raise SchemaConfigurationError(f"'when' expects a mapping of field to branch, got {branches!r}", code=UNKNOWN_RULE)

    compiled: List[Tuple[List[Condition], CompiledValidator, CompiledValidator]] = []
    depends_on: List[str] = []
    for dependee, branch in branches.items():
        if not isinstance(branch, Mapping) or "is" not in branch:
            raise SchemaConfigurationError(f"'when' branch for {dependee!r} needs an 'is' key", code=UNKNOWN_RULE)
        conditions = _parse_when_conditions(str(dependee), branch["is"])
        then_validator = compile_rules(branch.get("then") or (), None, required_message, predicates, config)
        otherwise_validator = compile_rules(branch.get("otherwise") or (), None, required_message, predicates, config)
        compiled.append((conditions, then_validator, otherwise_validator))
        depends_on.append(str(dependee))
        depends_on.extend(then_validator.depends_on)
        depends_on.extend(otherwise_validator.depends_on)

    def check(value: Any, values: Mapping[str, Any]) -> Optional[str]:
        for conditions, then_validator, otherwise_validator in compiled:
            holds = all(evaluate_condition(condition, values) for condition in conditions)
            message = (then_validator if holds else otherwise_validator)(value, values)
            if message is not None:
                return message
        return None

    return CompiledRule(name="when", check=check, depends_on=tuple(dict.fromkeys(depends_on)), runs_on_empty=True)


def _compile_one(
    name: str,
    rule: Mapping[str, Any],
    value_type: Optional[str],
    required_message: str,
    predicates: Mapping[str, Predicate],
    config: EngineConfig,
    required_text: Optional[str] = None,
) -> CompiledRule:
    custom_message = rule.get("errorMessage")
    template_name = required_message if name == "required" else name
    message = custom_message or _format_message(config.message_for(template_name), rule)

    if name == "required":
        enabled = bool(rule["required"])

        def check(value: Any, values: Mapping[str, Any]) -> Optional[str]:
            return message if enabled and is_empty_value(value) else None

        return CompiledRule(name=name, check=check, runs_on_empty=True)

    if name in ("equalsField", "notEqualsField", "moreThanField", "lessThanField"):
        return _cross_field_check(name, rule[name], message)

    if name == "custom":
        return _custom_check(rule, message, predicates)

    if name == "range":
        return _range_check(rule[name], message, required_text)

    if name == "when":
        return _when_check(rule[name], value_type, required_message, predicates, config)

    builder = _schema_builder_registry.get(name)
    if builder is None:
        raise SchemaConfigurationError(f"Unknown validation rule: {name!r}", code=UNKNOWN_RULE)
    return CompiledRule(name=name, check=_schema_check(builder(rule[name]), message))


def compile_rules(
    rules: Iterable[Mapping[str, Any]],
    value_type: Optional[str] = None,
    required_message: str = "required",
    predicates: Optional[Mapping[str, Predicate]] = None,
    config: Optional[EngineConfig] = None,
) -> CompiledValidator:
    """Compile declarative rules into a single validator.

    Args:
        rules: Ordered rule objects.
        value_type: JSON Schema type every non-empty value must have, checked
            before any declared rule (None = no base type).
        required_message: Message key for ``required`` without errorMessage.
        predicates: Extra named predicates, looked up before the global registry.
        config: Supplies default error messages.

    Raises:
        SchemaConfigurationError: For unknown rules, predicates or malformed parameters.
    """
    config = config or get_default_engine_config()
    predicates = predicates or {}
    source_rules = tuple(dict(rule) for rule in rules)

    # Ranges reuse the required message for a half-set pair
    required_rule = next((rule for rule in source_rules if rule.get("required")), None)
    required_text = None
    if required_rule is not None:
        required_text = required_rule.get("errorMessage") or config.message_for(required_message)

    compiled: List[CompiledRule] = []
    if value_type is not None:
        compiled.append(CompiledRule(
            name="type",
            check=_schema_check({"type": value_type}, config.message_for("invalid")),
        ))

    for rule in source_rules:
        names = _rule_names(rule)
        if not names:
            raise SchemaConfigurationError(f"Validation rule names no check: {rule!r}", code=UNKNOWN_RULE)
        for name in names:
            compiled.append(_compile_one(name, rule, value_type, required_message, predicates, config, required_text))

    # required is reported ahead of shape errors, whatever its position
    compiled.sort(key=lambda r: 0 if r.name == "required" else 1)
    return CompiledValidator(compiled, source_rules=source_rules)

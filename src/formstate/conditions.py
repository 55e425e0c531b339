"""
Conditional rule evaluator.

Pure functions that decide show-if visibility from current form values.
Rules are OR-of-AND: a node is visible when at least one rule-group has every
condition satisfied, or when it declares no rules at all.

A dependee that is missing from ``current_values`` (unmounted, hidden, or never
set) or holds None is *absent*. Comparisons against an absent value fail; only
the emptiness checks (``empty``, ``notExists``, ``filled: False``,
``exists: False``) can succeed on it.
"""
import logging
import numbers
import re
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from formstate.schema_model import Condition, RuleGroup

logger = logging.getLogger(__name__)

_ABSENT = object()

# operator -> (dependee_value, comparison_value) -> bool, only called with present values
_operator_registry: Dict[str, Callable[[Any, Any], bool]] = {}


def _register_operator(name: str):
    """Decorator to register a comparison operator."""
    def decorator(func: Callable[[Any, Any], bool]):
        _operator_registry[name] = func
        return func
    return decorator


def is_known_operator(name: str) -> bool:
    return name in _operator_registry or name in _EMPTINESS_OPERATORS


def known_operators() -> Iterable[str]:
    return sorted(set(_operator_registry) | set(_EMPTINESS_OPERATORS))


def is_empty_value(value: Any) -> bool:
    """True for absent values and empty strings/collections."""
    if value is None or value is _ABSENT:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        return float(value)
    return None


def _measure(value: Any) -> Optional[float]:
    """Numbers compare by value, strings and collections by length."""
    number = as_number(value)
    if number is not None:
        return number
    if isinstance(value, (str, list, tuple, set, dict)):
        return float(len(value))
    return None


def _compare(left: Any, right: Any, predicate: Callable[[float, float], bool]) -> bool:
    measured = _measure(left)
    bound = as_number(right)
    if measured is None or bound is None:
        return False
    return predicate(measured, bound)


@_register_operator("equals")
def _equals(value: Any, expected: Any) -> bool:
    return value == expected


@_register_operator("notEquals")
def _not_equals(value: Any, expected: Any) -> bool:
    return value != expected


@_register_operator("oneOf")
def _one_of(value: Any, options: Any) -> bool:
    return isinstance(options, (list, tuple, set)) and value in options


@_register_operator("notOneOf")
def _not_one_of(value: Any, options: Any) -> bool:
    return isinstance(options, (list, tuple, set)) and value not in options


@_register_operator("includes")
def _includes(value: Any, expected: Any) -> bool:
    if isinstance(value, str):
        return isinstance(expected, str) and expected in value
    if isinstance(value, (list, tuple, set)):
        if isinstance(expected, (list, tuple, set)):
            return all(item in value for item in expected)
        return expected in value
    return False


@_register_operator("notIncludes")
def _not_includes(value: Any, expected: Any) -> bool:
    if isinstance(value, str):
        return isinstance(expected, str) and expected not in value
    if isinstance(value, (list, tuple, set)):
        if isinstance(expected, (list, tuple, set)):
            return not any(item in value for item in expected)
        return expected not in value
    return False


@_register_operator("lessThan")
def _less_than(value: Any, bound: Any) -> bool:
    return _compare(value, bound, lambda a, b: a < b)


@_register_operator("moreThan")
def _more_than(value: Any, bound: Any) -> bool:
    return _compare(value, bound, lambda a, b: a > b)


@_register_operator("min")
def _min(value: Any, bound: Any) -> bool:
    return _compare(value, bound, lambda a, b: a >= b)


@_register_operator("max")
def _max(value: Any, bound: Any) -> bool:
    return _compare(value, bound, lambda a, b: a <= b)


@_register_operator("matches")
def _matches(value: Any, pattern: Any) -> bool:
    if not isinstance(value, str) or not isinstance(pattern, str):
        return False
    try:
        return re.search(pattern, value) is not None
    except re.error:
        return False


def _filled(value: Any, expected: Any) -> bool:
    return (not is_empty_value(value)) == bool(expected)


def _exists(value: Any, expected: Any) -> bool:
    present = value is not None and value is not _ABSENT
    return present == bool(expected)


# These see absent values too, every other operator fails on them
_EMPTINESS_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "filled": _filled,
    "empty": lambda value, expected: _filled(value, not bool(expected)),
    "exists": _exists,
    "notExists": lambda value, expected: _exists(value, not bool(expected)),
}


def evaluate_condition(condition: Condition, current_values: Mapping[str, Any]) -> bool:
    """Evaluate one triple against the current values (read-only)."""
    value = current_values.get(condition.dependee, _ABSENT)

    emptiness = _EMPTINESS_OPERATORS.get(condition.operator)
    if emptiness is not None:
        return emptiness(value, condition.value)

    operator = _operator_registry.get(condition.operator)
    if operator is None:
        raise ValueError(f"Unknown visibility operator: {condition.operator!r}")

    if value is _ABSENT or value is None:
        return False
    return operator(value, condition.value)


def is_group_satisfied(group: RuleGroup, current_values: Mapping[str, Any]) -> bool:
    return all(evaluate_condition(condition, current_values) for condition in group.conditions)


def is_visible(rules: Optional[Iterable[RuleGroup]], current_values: Mapping[str, Any]) -> bool:
    """True iff rules are empty/absent or at least one group is fully satisfied."""
    if not rules:
        return True
    groups = list(rules)
    if not groups:
        return True
    return any(is_group_satisfied(group, current_values) for group in groups)

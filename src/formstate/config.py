"""
Engine configuration.

EngineConfig is immutable and provided as a Python object. A module-level
default is used by every FormEngine created without an explicit config;
tests and applications swap it with set_default_engine_config().
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class HiddenValuePolicy(Enum):
    """What happens to a field's value when it is hidden."""
    CLEAR = "clear-on-hide"
    PRESERVE = "preserve"

    @classmethod
    def parse(cls, raw: Any) -> 'HiddenValuePolicy':
        if isinstance(raw, cls):
            return raw
        for member in cls:
            if raw in (member.value, member.name, member.name.lower()):
                return member
        raise ValueError(f"Unknown hidden value policy: {raw!r}")


class RevalidateMode(Enum):
    """When errors are recomputed after the first submit attempt."""
    ON_SUBMIT = "onSubmit"
    ON_CHANGE = "onChange"


# Default messages, formatted with the rule's own parameters
ERROR_MESSAGES: Dict[str, str] = {
    "required": "This field is required",
    "required_option": "Make a selection",
    "invalid": "Invalid value",
    "min": "Must be at least {min}",
    "max": "Must be at most {max}",
    "length": "Must be exactly {length}",
    "pattern": "Invalid format",
    "email": "Invalid email address",
    "integer": "Must be a whole number",
    "moreThan": "Must be greater than {moreThan}",
    "lessThan": "Must be less than {lessThan}",
    "oneOf": "Select a valid option",
    "range": "Select a valid range",
    "equalsField": "Must match {equalsField}",
    "notEqualsField": "Must not match {notEqualsField}",
    "moreThanField": "Must be greater than {moreThanField}",
    "lessThanField": "Must be less than {lessThanField}",
    "custom": "Invalid value",
}


@dataclass(frozen=True)
class EngineConfig:
    """Behaviour switches for one FormEngine.

    Attributes:
        hidden_value_policy: Whether hidden fields drop their value (CLEAR) or keep
            it for when they are shown again (PRESERVE). Nodes may override it.
        revalidate_mode: ON_CHANGE re-runs affected validators on every change once
            the form has been submitted at least once; ON_SUBMIT waits for the next submit.
        max_walk_passes: Upper bound on fixed-point passes when visibility rules
            depend on fields that are themselves conditionally visible.
        strict: Raise SchemaConfigurationError on load instead of hiding the node.
        error_messages: Overrides merged over ERROR_MESSAGES.
    """
    hidden_value_policy: HiddenValuePolicy = HiddenValuePolicy.CLEAR
    revalidate_mode: RevalidateMode = RevalidateMode.ON_CHANGE
    max_walk_passes: int = 10
    strict: bool = False
    error_messages: Dict[str, str] = field(default_factory=dict)

    def message_for(self, rule_name: str) -> str:
        if rule_name in self.error_messages:
            return self.error_messages[rule_name]
        return ERROR_MESSAGES.get(rule_name, ERROR_MESSAGES["invalid"])


_default_engine_config: Optional[EngineConfig] = None


def set_default_engine_config(config: Optional[EngineConfig]) -> None:
    """Set the config used by engines created without one (None restores built-in defaults)."""
    global _default_engine_config
    _default_engine_config = config


def get_default_engine_config() -> EngineConfig:
    if _default_engine_config is None:
        return EngineConfig()
    return _default_engine_config

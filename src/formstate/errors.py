"""
Error types for schema interpretation.

Configuration problems in a schema document are a developer-facing defect,
not a user-facing one. They are raised as SchemaConfigurationError where a
single value is being parsed or compiled, and collected into
ConfigurationDiagnostic records when a whole tree is indexed so one broken
node never takes the rest of the form down with it.
"""
from dataclasses import dataclass
from typing import Optional


# Diagnostic codes
DUPLICATE_IDENTIFIER = "duplicate-identifier"
DANGLING_REFERENCE = "dangling-reference"
UNKNOWN_OPERATOR = "unknown-operator"
UNKNOWN_RULE = "unknown-rule"
UNKNOWN_PREDICATE = "unknown-predicate"
UNKNOWN_KIND = "unknown-kind"


class SchemaConfigurationError(ValueError):
    """Raised when a schema document or rule cannot be interpreted.

    Attributes:
        code: One of the diagnostic codes defined in this module.
        node_id: Identifier of the offending node, when known.
    """

    def __init__(self, message: str, code: str = UNKNOWN_RULE, node_id: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.node_id = node_id


@dataclass(frozen=True)
class ConfigurationDiagnostic:
    """One configuration problem found while indexing a schema tree."""
    node_id: str
    code: str
    message: str

    def __str__(self) -> str:
        return f"[{self.code}] {self.node_id}: {self.message}"

    @classmethod
    def from_error(cls, node_id: str, error: SchemaConfigurationError) -> 'ConfigurationDiagnostic':
        return cls(node_id=error.node_id or node_id, code=error.code, message=str(error))

"""Load form documents from JSON or YAML."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from formstate.errors import SchemaConfigurationError
from formstate.schema_model import FormSchema

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = {".yaml", ".yml"}


def _parse(content: str, fmt: str, origin: str) -> Dict[str, Any]:
    if fmt not in ("json", "yaml"):
        raise SchemaConfigurationError(f"Unsupported document format: {fmt!r}")
    try:
        data = json.loads(content) if fmt == "json" else yaml.safe_load(content)
    except (ValueError, yaml.YAMLError) as exc:
        raise SchemaConfigurationError(f"Failed to parse {fmt.upper()} form document {origin}: {exc}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SchemaConfigurationError(f"Form document {origin} must be a mapping, got {type(data).__name__}")
    return data


def loads_schema(content: str, fmt: str = "yaml") -> FormSchema:
    """Parse a form document from a string.

    Args:
        content: Document text.
        fmt: "yaml" or "json".

    Raises:
        SchemaConfigurationError: If the text cannot be parsed or is not a form document.
    """
    return FormSchema.from_dict(_parse(content, fmt, "<string>"))


def load_schema(file_path: Union[str, Path]) -> FormSchema:
    """Load a form document from a ``.json``, ``.yaml`` or ``.yml`` file.

    Raises:
        SchemaConfigurationError: If the file is missing, unreadable or malformed.
    """
    path = Path(file_path)

    if not path.is_file():
        raise SchemaConfigurationError(f"Form document not found: {path}")

    fmt = "yaml" if path.suffix.lower() in _YAML_SUFFIXES else "json"
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SchemaConfigurationError(f"Failed to read form document {path}: {exc}")

    schema = FormSchema.from_dict(_parse(content, fmt, str(path)))
    logger.info(f"Loaded form document {path} (id={schema.id!r}, {len(schema.root_nodes)} root node(s))")
    return schema

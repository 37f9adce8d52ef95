"""JSON Schema-based validation for the Lantern settings file."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

logger = logging.getLogger(__name__)

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Lantern settings",
    "type": "object",
    "additionalProperties": False,
    "required": ["zone_file", "zone_file_format"],
    "properties": {
        "zone_file": {"type": "string", "minLength": 1},
        "zone_file_format": {"type": "string", "enum": ["yaml", "csv"]},
        "host": {"type": "string", "minLength": 1},
        "port": {"type": "integer", "minimum": 0, "maximum": 65535},
        "forwarder": {"type": ["string", "null"]},
        "forwarder_port": {"type": "integer", "minimum": 1, "maximum": 65535},
        "forward_timeout_ms": {"type": "integer", "minimum": 1},
        "enable_forwarding": {"type": "boolean"},
        "query_logging": {"type": "boolean"},
        "query_log_file": {"type": ["string", "null"]},
        "logging": {
            "type": ["object", "null"],
            "additionalProperties": False,
            "properties": {
                "level": {
                    "type": "string",
                    "enum": [
                        "debug",
                        "info",
                        "warn",
                        "warning",
                        "error",
                        "crit",
                        "critical",
                    ],
                },
                "stderr": {"type": "boolean"},
                "file": {"type": ["string", "null"]},
                "syslog": {
                    "oneOf": [
                        {"type": "boolean"},
                        {
                            "type": "object",
                            "additionalProperties": False,
                            "properties": {
                                "address": {"type": "string"},
                                "facility": {"type": "string"},
                                "tag": {"type": "string", "minLength": 1},
                            },
                        },
                    ]
                },
            },
        },
    },
    "if": {
        "properties": {"query_logging": {"const": True}},
        "required": ["query_logging"],
    },
    "then": {
        "required": ["query_log_file"],
        "properties": {"query_log_file": {"type": "string", "minLength": 1}},
    },
}


def _format_error_path(path) -> str:
    parts = [str(p) for p in path]
    return ".".join(parts) if parts else "<root>"


def validate_config(cfg: Dict[str, Any], *, config_path: str = "<config>") -> None:
    """Brief: Validate a decoded settings mapping against CONFIG_SCHEMA.

    Inputs:
      - cfg: Mapping produced by yaml.safe_load().
      - config_path: Path used in error messages.

    Outputs:
      - None.

    Raises:
      - ValueError: Listing every schema violation, one per line.

    Example:
      >>> validate_config({"zone_file": "zone.yaml", "zone_file_format": "yaml"})
    """
    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(cfg), key=lambda e: [str(p) for p in e.path])
    if not errors:
        return

    lines: List[str] = [f"Invalid configuration in {config_path}:"]
    for err in errors:
        lines.append(f"  - {_format_error_path(err.path)}: {err.message}")
    logger.debug("Config validation failed with %d errors", len(errors))
    raise ValueError("\n".join(lines))

"""Settings-file parsing for Lantern.

Brief:
  Reads the YAML settings file, validates it with the JSON Schema in
  config_schema, and returns an immutable ServerConfig snapshot. The rest of
  the process only ever sees the snapshot.

Inputs:
  - Path to a YAML settings file

Outputs:
  - ServerConfig instance
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

from ..forwarder import DEFAULT_PORT, DEFAULT_TIMEOUT_MS, ForwardingConfig
from .config_schema import validate_config

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """Brief: Typed, immutable view of the settings file.

    Inputs:
      - zone_file: Path to the zone source.
      - zone_file_format: ``yaml`` or ``csv``.
      - host: Listen address.
      - port: Listen UDP port.
      - forwarder: Upstream resolver address (empty disables forwarding).
      - forwarder_port: Upstream port.
      - forward_timeout_ms: Deadline for one upstream exchange.
      - enable_forwarding: Master switch for forwarding.
      - query_logging: Whether to write the query log.
      - query_log_file: Query log path.
      - logging: Mapping passed to init_logging().

    Outputs:
      - ServerConfig instance.
    """

    zone_file: str
    zone_file_format: str
    host: str = "0.0.0.0"
    port: int = Field(default=53, ge=0, le=65535)
    forwarder: Optional[str] = None
    forwarder_port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    forward_timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, ge=1)
    enable_forwarding: bool = True
    query_logging: bool = False
    query_log_file: Optional[str] = None
    logging: Optional[Dict[str, Any]] = None

    class Config:
        frozen = True

    @property
    def forwarding(self) -> ForwardingConfig:
        return ForwardingConfig(
            enabled=self.enable_forwarding,
            upstream_address=(self.forwarder or "").strip() or None,
            port=self.forwarder_port,
            timeout_ms=self.forward_timeout_ms,
        )


def parse_config_dict(
    cfg: Dict[str, Any], *, config_path: str = "<config>"
) -> ServerConfig:
    """Brief: Validate a decoded settings mapping and build a ServerConfig.

    Inputs:
      - cfg: Mapping decoded from YAML.
      - config_path: Path used in error messages.

    Outputs:
      - ServerConfig.

    Raises:
      - ValueError: Schema violations.
    """
    if not isinstance(cfg, dict):
        raise ValueError(f"Configuration root in {config_path} must be a mapping")
    validate_config(cfg, config_path=config_path)
    return ServerConfig(**cfg)


def parse_config_file(config_path: str) -> ServerConfig:
    """Brief: Read, schema-validate, and snapshot a YAML settings file.

    Inputs:
      - config_path: Path to the YAML settings file.

    Outputs:
      - ServerConfig.

    Raises:
      - OSError: The file cannot be read.
      - ValueError: The YAML is invalid or fails schema validation.
    """
    with open(config_path, "r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"Could not parse {config_path}: {exc}") from exc
    return parse_config_dict(cfg or {}, config_path=config_path)


def log_config_summary(cfg: ServerConfig) -> None:
    """Log the effective settings once at startup."""
    logger.info("Configuration loaded:")
    logger.info("  Zone file: %s (%s)", cfg.zone_file, cfg.zone_file_format)
    logger.info("  Listen: %s:%d", cfg.host, cfg.port)
    logger.info("  Forwarder: %s:%d", cfg.forwarder or "-", cfg.forwarder_port)
    logger.info("  Enable forwarding: %s", cfg.enable_forwarding)
    logger.info("  Forward timeout: %dms", cfg.forward_timeout_ms)
    logger.info("  Query logging: %s", cfg.query_logging)
    logger.info("  Query log file: %s", cfg.query_log_file or "-")

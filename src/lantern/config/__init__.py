"""Settings parsing and logging setup."""

from .config_parser import ServerConfig, log_config_summary, parse_config_dict, parse_config_file
from .logging_config import init_logging

__all__ = [
    "ServerConfig",
    "init_logging",
    "log_config_summary",
    "parse_config_dict",
    "parse_config_file",
]

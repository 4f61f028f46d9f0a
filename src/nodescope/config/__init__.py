"""Configuration module for nodescope.

This module provides:
- Pydantic models for configuration validation
- YAML config file loading and discovery
- Default configuration values
- Environment variable expansion
- Clear error messages for config issues
"""

from nodescope.config.defaults import DEFAULT_CONFIG
from nodescope.config.loader import (
    CollectorToggle,
    Config,
    ConfigError,
    ConfigSyntaxError,
    ConfigValidationError,
    LoggingConfig,
    NetstatConfig,
    PodNetstatConfig,
    SentryConfig,
    get_config_path,
    load_config,
)

__all__ = [
    "Config",
    "CollectorToggle",
    "ConfigError",
    "ConfigSyntaxError",
    "ConfigValidationError",
    "LoggingConfig",
    "NetstatConfig",
    "PodNetstatConfig",
    "SentryConfig",
    "DEFAULT_CONFIG",
    "get_config_path",
    "load_config",
]

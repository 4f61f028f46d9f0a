"""Default configuration values for nodescope.

This module defines the configuration used when no config file exists or when
config values are not specified. All configuration options are documented
here for reference.

Environment Variables:
    NODESCOPE_CONFIG_PATH: Override default config file path
    Any config value can reference environment variables using ${VAR} syntax

Config File Locations (in order of precedence):
    1. Path specified via --config CLI flag
    2. Path specified via NODESCOPE_CONFIG_PATH environment variable
    3. ~/.config/nodescope/config.yaml (XDG default)
    4. /etc/nodescope/config.yaml (system-wide)
"""

from typing import Any

from nodescope.procfs.netstat import DEFAULT_FIELDS_PATTERN

DEFAULT_CONFIG: dict[str, Any] = {
    "namespace": "node",  # First segment of every metric name
    "procfs": "/proc",  # Mount point of the proc filesystem
    "interval": 15.0,  # Seconds between scrapes in --stream mode
    # Per-collector overrides, e.g. {"gpu": {"enabled": False}}.
    # Collectors not listed use their probed default.
    "collectors": {},
    "netstat": {
        "fields": DEFAULT_FIELDS_PATTERN,  # Regexp of host netstat keys to export
    },
    "netstat_pod": {
        "pool_size": 20,  # Containers inspected concurrently
        "protocols": ["tcp"],  # Socket tables read per container
    },
    "logging": {
        "level": "INFO",
        "file": None,  # Log to stderr when unset
    },
    "sentry": {
        "dsn": None,  # Error reporting is off unless a DSN is configured
        "environment": "production",
        "traces_sample_rate": 0.0,
    },
}

"""Loading and validation of the nodescope YAML config.

A config is built in three layers: the built-in defaults, the YAML file
(found via --config, $NODESCOPE_CONFIG_PATH, ~/.config or /etc) and the
command-line overrides. ``${VAR}`` references are expanded after merging,
and pydantic/YAML failures are rewritten into short messages that point at
the offending key or line.
"""

import copy
from difflib import get_close_matches
import os
from pathlib import Path
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import yaml

from nodescope.config.defaults import DEFAULT_CONFIG
from nodescope.procfs.netstat import DEFAULT_FIELDS_PATTERN


class ConfigError(Exception):
    """A config problem that can be shown to the user as is.

    Attributes:
        message: What is wrong
        file_path: Config file the problem was found in
        line_number: 1-based line in that file, for syntax errors
        suggestion: A hint for fixing it, if one is known
    """

    def __init__(
        self,
        message: str,
        *,
        file_path: str | None = None,
        line_number: int | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.message = message
        self.file_path = file_path
        self.line_number = line_number
        self.suggestion = suggestion
        super().__init__(self._render())

    def _render(self) -> str:
        if not self.file_path:
            header = "Configuration error:"
        elif self.line_number:
            header = f"Error in {self.file_path} line {self.line_number}:"
        else:
            header = f"Error in {self.file_path}:"
        lines = [header, f"  {self.message}"]
        if self.suggestion:
            lines += ["", f"  Suggestion: {self.suggestion}"]
        return "\n".join(lines)


class ConfigSyntaxError(ConfigError):
    """The config file is not valid YAML."""


class ConfigValidationError(ConfigError):
    """The config file parsed but a value is rejected."""


VALID_TOP_LEVEL_KEYS = {
    "namespace",
    "procfs",
    "interval",
    "collectors",
    "netstat",
    "netstat_pod",
    "logging",
    "sentry",
}

VALID_SECTION_KEYS = {
    "netstat": {"fields"},
    "netstat_pod": {"pool_size", "protocols"},
    "logging": {"level", "file"},
    "sentry": {"dsn", "environment", "traces_sample_rate"},
}

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")

_RANGE_ERRORS = {"greater_than_equal": "ge", "less_than_equal": "le", "greater_than": "gt"}


def _suggest_key(unknown_key: str, valid_keys: set[str]) -> str | None:
    close = get_close_matches(unknown_key, sorted(valid_keys), n=1, cutoff=0.6)
    return f"Did you mean '{close[0]}'?" if close else None


def _format_pydantic_error(
    error: ValidationError,
    file_path: str | None = None,
) -> ConfigValidationError:
    """Describe the first pydantic validation failure in user terms."""
    details = error.errors()
    if not details:
        return ConfigValidationError("Configuration validation failed", file_path=file_path)

    detail = details[0]
    loc = tuple(str(part) for part in detail.get("loc", ()))
    kind = detail.get("type", "")
    ctx = detail.get("ctx") or {}
    dotted = ".".join(loc)
    suggestion: str | None = None

    if kind == "extra_forbidden":
        message = f"Unknown configuration key '{dotted}'"
        if len(loc) == 1:
            suggestion = _suggest_key(loc[0], VALID_TOP_LEVEL_KEYS)
        elif loc and loc[0] in VALID_SECTION_KEYS:
            suggestion = _suggest_key(loc[-1], VALID_SECTION_KEYS[loc[0]])
        suggestion = suggestion or "Check the documentation for valid configuration options"
    elif kind in _RANGE_ERRORS:
        message = f"Value for '{dotted}' is out of range"
        limit = ctx.get(_RANGE_ERRORS[kind])
        if limit is not None:
            suggestion = f"Limit is {limit}"
    elif kind == "literal_error":
        message = f"Invalid value for '{dotted}'"
        suggestion = f"Expected one of: {ctx.get('expected', '')}"
    elif kind in ("int_parsing", "float_parsing"):
        message = f"Invalid number for '{dotted}'"
        suggestion = "Please provide a valid number"
    else:
        message = f"Invalid value for '{dotted}': {detail.get('msg', 'Invalid value')}"

    return ConfigValidationError(message, file_path=file_path, suggestion=suggestion)


_YAML_HINTS = (
    ("tab", "Use spaces instead of tabs for indentation"),
    ("mapping values are not allowed", "Nested keys must be indented under their parent"),
    ("could not find expected ':'", "A key is missing its colon, as in 'key: value'"),
)


def _format_yaml_error(error: yaml.YAMLError, file_path: str | None = None) -> ConfigSyntaxError:
    mark = getattr(error, "problem_mark", None)
    text = str(error).lower()
    suggestion = next((hint for needle, hint in _YAML_HINTS if needle in text), None)
    problem = getattr(error, "problem", None)
    return ConfigSyntaxError(
        f"YAML syntax error: {problem}" if problem else "Invalid YAML syntax",
        file_path=file_path,
        line_number=mark.line + 1 if mark is not None else None,
        suggestion=suggestion,
    )


def expand_env_vars(value: Any) -> Any:
    """Substitute ``${VAR}`` and ``${VAR:-default}`` in every string of a config tree.

    A reference to an unset variable with no default is kept verbatim.
    """
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value

    def substitute(match: re.Match[str]) -> str:
        name, default = match.groups()
        resolved = os.environ.get(name, default)
        return match.group(0) if resolved is None else resolved

    return ENV_VAR_PATTERN.sub(substitute, value)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated with ``override``, merging nested mappings key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


# Models


class CollectorToggle(BaseModel):
    """Enable override for one collector; None keeps the probed default."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool | None = None


class NetstatConfig(BaseModel):
    """Host netstat collector configuration."""

    model_config = ConfigDict(extra="forbid")

    fields: str = DEFAULT_FIELDS_PATTERN

    @field_validator("fields")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """Reject patterns that do not compile."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid regular expression: {e}") from e
        return v

    @property
    def pattern(self) -> re.Pattern[str]:
        """Return the compiled field pattern."""
        return re.compile(self.fields)


class PodNetstatConfig(BaseModel):
    """Per-container socket aggregator configuration."""

    model_config = ConfigDict(extra="forbid")

    pool_size: int = Field(default=20, ge=1, le=1024)
    protocols: list[Literal["tcp", "udp"]] = Field(default_factory=lambda: ["tcp"], min_length=1)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file: str | None = None


class SentryConfig(BaseModel):
    """Error reporting configuration."""

    model_config = ConfigDict(extra="forbid")

    dsn: str | None = None
    environment: str = "production"
    traces_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)


class Config(BaseModel):
    """Main configuration model for nodescope.

    Loaded from YAML and optionally overridden by CLI flags.
    """

    model_config = ConfigDict(extra="forbid")

    namespace: str = Field(default="node", pattern=r"^[a-zA-Z_][a-zA-Z0-9_]*$")
    procfs: str = "/proc"
    interval: float = Field(default=15.0, ge=0.1, le=3600)

    collectors: dict[str, CollectorToggle] = Field(default_factory=dict)
    netstat: NetstatConfig = Field(default_factory=NetstatConfig)
    netstat_pod: PodNetstatConfig = Field(default_factory=PodNetstatConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sentry: SentryConfig = Field(default_factory=SentryConfig)

    @field_validator("collectors", mode="before")
    @classmethod
    def validate_collectors(cls, v: Any) -> Any:
        """Accept the shorthand ``gpu: false`` for ``gpu: {enabled: false}``."""
        if isinstance(v, dict):
            return {
                name: {"enabled": toggle} if isinstance(toggle, bool) else toggle
                for name, toggle in v.items()
            }
        return v

    def overrides(self) -> dict[str, bool]:
        """Return the explicit collector enable overrides."""
        return {
            name: toggle.enabled
            for name, toggle in self.collectors.items()
            if toggle.enabled is not None
        }

    def procfs_path(self, *parts: str) -> Path:
        """Build a path under the configured proc mount point."""
        return Path(self.procfs, *parts)


def get_config_path(custom_path: str | None = None) -> Path | None:
    """Locate the config file.

    An explicit ``--config`` path must exist. Otherwise $NODESCOPE_CONFIG_PATH
    is used if it names an existing file, then ~/.config/nodescope/config.yaml,
    then /etc/nodescope/config.yaml. Returns None when nothing is found.

    Raises:
        FileNotFoundError: If ``custom_path`` is given and missing
    """
    if custom_path:
        path = Path(custom_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {custom_path}")
        return path

    env_path = os.environ.get("NODESCOPE_CONFIG_PATH")
    if env_path:
        path = Path(env_path).expanduser()
        return path if path.exists() else None

    candidates = (
        Path.home() / ".config" / "nodescope" / "config.yaml",
        Path("/etc/nodescope/config.yaml"),
    )
    return next((candidate for candidate in candidates if candidate.exists()), None)


def load_config(
    config_path: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> Config:
    """Build the effective Config.

    Defaults, then the config file, then ``cli_overrides`` are deep-merged in
    that order before env references are expanded and the result validated.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist
        ConfigSyntaxError: If the file is not valid YAML
        ConfigValidationError: If a value is rejected
    """
    data = copy.deepcopy(DEFAULT_CONFIG)
    path = get_config_path(config_path)
    source = str(path) if path else None

    if path:
        try:
            from_file = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise _format_yaml_error(e, source) from e
        if not isinstance(from_file, dict):
            raise ConfigValidationError(
                "Top level of the config file must be a mapping", file_path=source
            )
        data = deep_merge(data, from_file)

    if cli_overrides:
        data = deep_merge(data, cli_overrides)

    try:
        return Config(**expand_env_vars(data))
    except ValidationError as e:
        raise _format_pydantic_error(e, source) from e

# === NAVMAP v1 ===
# {
#   "module": "RpkiMirror.RrdpFetch.settings",
#   "purpose": "Configuration models, environment overrides, and YAML loading for the RRDP fetcher",
#   "sections": [
#     {"id": "models", "name": "Configuration Models", "anchor": "MOD", "kind": "api"},
#     {"id": "env", "name": "Environment Overrides", "anchor": "ENV", "kind": "api"},
#     {"id": "loading", "name": "Loading Helpers", "anchor": "LOAD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models and loaders for the RRDP fetcher.

Settings come from three layers applied in order: model defaults, an optional
YAML file (``fetch``, ``logging``, ``metrics`` and ``scheduler`` sections), and
``RRDPFETCH_*`` environment variables.  Validation failures surface as
:class:`~RpkiMirror.RrdpFetch.errors.ConfigurationError` with one
``location: message`` line per problem.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__
from .errors import ConfigurationError

__all__ = [
    "FetchConfiguration",
    "LoggingConfiguration",
    "MetricsConfiguration",
    "SchedulerConfiguration",
    "RrdpSettings",
    "EnvironmentOverrides",
    "get_env_overrides",
    "build_settings",
    "normalize_config_path",
    "load_raw_yaml",
    "load_settings",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"rpkimirror-rrdp/{__version__}"


# --- Configuration models -----------------------------------------------------


class FetchConfiguration(BaseModel):
    """Notification endpoint and HTTP behaviour for a fetch cycle."""

    rrdp_url: Optional[str] = Field(default=None, description="URL of the RRDP notification file")
    timeout_sec: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Total deadline for one request, covering connect, headers, and body",
    )
    connect_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    http2_enabled: bool = Field(default=False)
    verify_tls: bool = Field(default=True)

    @field_validator("rrdp_url")
    @classmethod
    def validate_rrdp_url(cls, value: Optional[str]) -> Optional[str]:
        """Require an absolute http(s) URL when a notification endpoint is given."""

        if value is None:
            return None
        stripped = value.strip()
        if not stripped.startswith(("http://", "https://")):
            raise ValueError("rrdp_url must be an http:// or https:// URL")
        return stripped

    def require_rrdp_url(self) -> str:
        """Return the notification URL or raise when none is configured."""

        if not self.rrdp_url:
            raise ConfigurationError(
                "No RRDP notification URL configured (set fetch.rrdp_url or RRDPFETCH_RRDP_URL)"
            )
        return self.rrdp_url

    model_config = {"validate_assignment": True}


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for the fetcher."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")
    log_dir: Optional[Path] = Field(
        default=None,
        description="Directory for JSON log files; console logging only when unset",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}")
        return upper

    model_config = {"validate_assignment": True}


class MetricsConfiguration(BaseModel):
    """Prometheus exposition settings."""

    enabled: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=9464, ge=1, le=65535)

    model_config = {"validate_assignment": True}


class SchedulerConfiguration(BaseModel):
    """Cadence of the serial fetch loop."""

    interval_sec: float = Field(default=60.0, gt=0.0, le=86400.0)

    model_config = {"validate_assignment": True}


class RrdpSettings(BaseModel):
    """Root settings object."""

    fetch: FetchConfiguration = Field(default_factory=FetchConfiguration)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    metrics: MetricsConfiguration = Field(default_factory=MetricsConfiguration)
    scheduler: SchedulerConfiguration = Field(default_factory=SchedulerConfiguration)

    model_config = {"validate_assignment": True, "extra": "forbid"}


# --- Environment overrides ----------------------------------------------------


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    rrdp_url: Optional[str] = Field(default=None, alias="RRDPFETCH_RRDP_URL")
    timeout_sec: Optional[float] = Field(default=None, alias="RRDPFETCH_TIMEOUT_SEC")
    log_level: Optional[str] = Field(default=None, alias="RRDPFETCH_LOG_LEVEL")
    log_dir: Optional[Path] = Field(default=None, alias="RRDPFETCH_LOG_DIR")
    interval_sec: Optional[float] = Field(default=None, alias="RRDPFETCH_INTERVAL_SEC")

    model_config = SettingsConfigDict(env_prefix="RRDPFETCH_", case_sensitive=False, extra="ignore")


def get_env_overrides() -> Dict[str, str]:
    """Return environment-derived overrides as stringified key/value pairs."""

    env = EnvironmentOverrides()
    return {
        key: str(value) for key, value in env.model_dump(by_alias=False, exclude_none=True).items()
    }


def _apply_env_overrides(settings: RrdpSettings) -> None:
    """Mutate ``settings`` in-place using values from :class:`EnvironmentOverrides`."""

    env = EnvironmentOverrides()

    if env.rrdp_url is not None:
        settings.fetch.rrdp_url = env.rrdp_url
        LOGGER.info("Config overridden: rrdp_url=%s", env.rrdp_url, extra={"stage": "config"})
    if env.timeout_sec is not None:
        settings.fetch.timeout_sec = env.timeout_sec
        LOGGER.info("Config overridden: timeout_sec=%s", env.timeout_sec, extra={"stage": "config"})
    if env.log_level is not None:
        settings.logging.level = env.log_level
        LOGGER.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
    if env.log_dir is not None:
        settings.logging.log_dir = env.log_dir
        LOGGER.info("Config overridden: log_dir=%s", env.log_dir, extra={"stage": "config"})
    if env.interval_sec is not None:
        settings.scheduler.interval_sec = env.interval_sec
        LOGGER.info(
            "Config overridden: interval_sec=%s", env.interval_sec, extra={"stage": "config"}
        )


# --- Loading helpers ----------------------------------------------------------


def _format_validation_error(exc: PydanticValidationError) -> str:
    messages: List[str] = []
    for error in exc.errors():
        location = " -> ".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}")
    return "Configuration validation failed:\n  " + "\n  ".join(messages)


def build_settings(raw_config: Optional[Mapping[str, Any]] = None, *, apply_env: bool = True) -> RrdpSettings:
    """Materialise :class:`RrdpSettings` from a raw mapping plus environment overrides."""

    raw = dict(raw_config or {})
    try:
        settings = RrdpSettings.model_validate(raw)
        if apply_env:
            _apply_env_overrides(settings)
    except PydanticValidationError as exc:
        raise ConfigurationError(_format_validation_error(exc)) from exc
    return settings


def normalize_config_path(config_path: Path) -> Path:
    """Return a user-supplied configuration path with ``~`` and symlinks resolved."""

    expanded = Path(config_path).expanduser()
    try:
        return expanded.resolve(strict=False)
    except (OSError, RuntimeError):  # pragma: no cover - only triggered on rare filesystems
        return expanded


def load_raw_yaml(config_path: Path) -> Mapping[str, Any]:
    """Read a YAML configuration file and return its top-level mapping."""

    normalized_path = normalize_config_path(config_path)

    if not normalized_path.exists():
        raise ConfigurationError(f"Configuration file not found: {normalized_path}")

    try:
        with normalized_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Configuration file '{normalized_path}' contains invalid YAML"
        ) from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration file must contain a mapping at the root")
    return data


def load_settings(config_path: Optional[Path] = None, *, apply_env: bool = True) -> RrdpSettings:
    """Load, validate, and resolve settings suitable for execution."""

    raw: Mapping[str, Any] = {}
    if config_path is not None:
        raw = load_raw_yaml(config_path)
    return build_settings(raw, apply_env=apply_env)

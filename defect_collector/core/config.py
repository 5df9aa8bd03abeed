"""
Service configuration.

Loads the collector settings from a YAML file, applies environment
overrides (optionally from a ``.env`` file) and validates them.

Expected YAML format:
```yaml
connection_strings:
  production_db: "host=db dbname=production user=collector password=secret"

monitor_settings:
  base_folder: "Data Server"
  check_interval_minutes: 60
  lines:
    - name: "Line A"
      ip: "10.20.1.11"
      table_name: "defect_line_a"
```
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from defect_collector.core.models import LineConfig

DEFAULT_BASE_FOLDER = "Data Server"
DEFAULT_CHECK_INTERVAL_MINUTES = 60
DEFAULT_SHARE_PATH_TEMPLATE = "\\\\{address}\\{base_folder}"
DEFAULT_FILE_ENCODING = "utf-8-sig"

ENV_CONNECTION_STRING = "PRODUCTION_DB"
ENV_BASE_FOLDER = "COLLECTOR_BASE_FOLDER"
ENV_CHECK_INTERVAL = "COLLECTOR_CHECK_INTERVAL_MINUTES"
ENV_METRICS_PORT = "METRICS_PORT"


class ConfigurationError(Exception):
    """Raised when the configuration file is missing or invalid."""
    pass


class MonitorSettings(BaseModel):
    """
    Settings for the folder monitor.

    Attributes:
        lines: Monitored lines
        base_folder: Shared folder name on every line machine
        check_interval_minutes: Minutes between the end of one cycle and the next
        share_path_template: Template for a line's root folder; receives
            ``address`` and ``base_folder``. The default builds a UNC path.
        file_encoding: Encoding of the CSV exports
        max_workers: Upper bound on concurrent line scans
        metrics_port: Port for the Prometheus endpoint, disabled when None
    """

    lines: list[LineConfig] = Field(default_factory=list)
    base_folder: str = DEFAULT_BASE_FOLDER
    check_interval_minutes: float = Field(DEFAULT_CHECK_INTERVAL_MINUTES, gt=0)
    share_path_template: str = DEFAULT_SHARE_PATH_TEMPLATE
    file_encoding: str = DEFAULT_FILE_ENCODING
    max_workers: int = Field(16, ge=1)
    metrics_port: int | None = Field(None, ge=1, le=65535)

    @field_validator("lines", mode="before")
    @classmethod
    def none_means_no_lines(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("base_folder", mode="before")
    @classmethod
    def default_base_folder(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_BASE_FOLDER
        return v

    @field_validator("check_interval_minutes", mode="before")
    @classmethod
    def default_interval(cls, v: Any) -> Any:
        return DEFAULT_CHECK_INTERVAL_MINUTES if v in (None, "") else v

    @field_validator("share_path_template")
    @classmethod
    def check_template(cls, v: str) -> str:
        if "{address}" not in v:
            raise ValueError("share_path_template must contain '{address}'")
        return v

    @model_validator(mode="after")
    def unique_line_names(self) -> "MonitorSettings":
        names = [line.name for line in self.lines]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate line names: {duplicates}")
        return self

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_minutes * 60


class CollectorSettings(BaseModel):
    """Top-level settings: database connection plus monitor settings."""

    connection_string: str = ""
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables on the raw YAML mapping."""
    connection_strings = config.get("connection_strings") or {}
    monitor = dict(config.get("monitor_settings") or {})

    connection_string = os.getenv(ENV_CONNECTION_STRING) or connection_strings.get("production_db") or ""

    if os.getenv(ENV_BASE_FOLDER):
        monitor["base_folder"] = os.environ[ENV_BASE_FOLDER]
    if os.getenv(ENV_CHECK_INTERVAL):
        monitor["check_interval_minutes"] = os.environ[ENV_CHECK_INTERVAL]
    if os.getenv(ENV_METRICS_PORT):
        monitor["metrics_port"] = os.environ[ENV_METRICS_PORT]

    return {"connection_string": connection_string, "monitor": monitor}


def parse_settings(config: dict[str, Any] | None) -> CollectorSettings:
    """
    Build settings from an already-loaded mapping.

    Raises:
        ConfigurationError: If the mapping fails validation
    """
    try:
        return CollectorSettings(**_apply_env_overrides(config or {}))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid collector configuration: {e}") from e


def load_settings(config_path: str | Path, env_file: str | Path | None = None) -> CollectorSettings:
    """
    Load and validate settings from a YAML file.

    Args:
        config_path: Path to the YAML configuration file
        env_file: Optional ``.env`` file; the default lookup of python-dotenv
            is used when omitted

    Returns:
        Validated CollectorSettings

    Raises:
        ConfigurationError: If the file is missing, not valid YAML or invalid
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Configuration file is not valid YAML: {e}") from e

    if config is not None and not isinstance(config, dict):
        raise ConfigurationError("Configuration file must contain a mapping")

    return parse_settings(config)

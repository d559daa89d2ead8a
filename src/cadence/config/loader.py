"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cadence.config.models import CadenceConfig, ConfigError
from cadence.config.paths import get_config_path

# (section, key, env var, is_list)
ENV_OVERRIDES: list[tuple[str, str, str, bool]] = [
    ("broker", "redis_url", "CADENCE_REDIS_URL", False),
    ("broker", "allowed_subjects", "CADENCE_BROKER_ALLOWED_SUBJECTS", True),
    ("tenancy", "tenants_url", "CADENCE_TENANTS_URL", False),
    ("store", "url_template", "CADENCE_STORE_URL_TEMPLATE", False),
    ("http", "allowed_base_urls", "CADENCE_HTTP_ALLOWED_BASE_URLS", True),
]


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.cadence/config.toml (or CADENCE_HOME)
        Path("/etc/cadence/config.toml"),  # System-wide
    ]


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables on top of file values."""
    for section, key, env_var, is_list in ENV_OVERRIDES:
        value = os.environ.get(env_var)
        if not value:
            continue
        target = config.setdefault(section, {})
        target[key] = _split_list(value) if is_list else value
    return config


def _find_config_path(path: Path | None) -> Path | None:
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return config_path

    for default_path in _get_default_config_paths():
        expanded = default_path.expanduser()
        if expanded.exists():
            return expanded
    return None


def load_config(path: Path | None = None) -> CadenceConfig:
    """Load configuration from a TOML file and the environment.

    Args:
        path: Explicit path to config file. If None, searches default
            locations and falls back to defaults when none exists.

    Returns:
        Validated CadenceConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigError: If the file cannot be parsed or fails validation.
    """
    config_path = _find_config_path(path)

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _apply_env_overrides(raw_config)

    try:
        return CadenceConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(str(e)) from e


def get_default_config() -> CadenceConfig:
    """Get a default configuration for development/testing."""
    return CadenceConfig()

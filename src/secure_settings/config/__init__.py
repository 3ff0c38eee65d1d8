"""Configuration loader for secure-settings.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the SECURE_SETTINGS_ prefix with double-underscore
nesting (e.g., SECURE_SETTINGS_STORE__DATA_DIR=/srv/happy).
"""

from __future__ import annotations

import os
import pathlib
import sys
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

class StoreConfig(BaseModel):
    app_name: str = "happy"
    data_dir: str = "auto"
    file_name: str = "secure-settings.json"

    @field_validator("file_name")
    @classmethod
    def validate_file_name(cls, v: str) -> str:
        if not v or pathlib.Path(v).name != v:
            raise ValueError(f"file_name must be a bare file name, got {v!r}")
        return v


class SodiumConfig(BaseModel):
    enabled: bool = True


class LegacyConfig(BaseModel):
    enabled: bool = True
    service: str | None = None
    account: str | None = None


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported log level: {v}")
        return level


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    store: StoreConfig = Field(default_factory=StoreConfig)
    sodium: SodiumConfig = Field(default_factory=SodiumConfig)
    legacy: LegacyConfig = Field(default_factory=LegacyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def data_dir(self) -> pathlib.Path:
        """Resolve ``store.data_dir``, expanding ``auto`` to the platform default."""
        if self.store.data_dir == "auto":
            return default_data_dir(self.store.app_name)
        return pathlib.Path(self.store.data_dir).expanduser()

    def settings_path(self) -> pathlib.Path:
        return self.data_dir() / self.store.file_name

    def legacy_service(self) -> str:
        return self.legacy.service or f"{self.store.app_name} Safe Storage"

    def legacy_account(self) -> str:
        return self.legacy.account or self.store.app_name


def default_data_dir(app_name: str) -> pathlib.Path:
    """Return the per-user application data directory for *app_name*."""
    home = pathlib.Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / app_name
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = pathlib.Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / app_name
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = pathlib.Path(xdg) if xdg else home / ".config"
    return base / app_name


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "SECURE_SETTINGS_"


def _collect_env_overrides() -> dict[str, Any]:
    """Collect SECURE_SETTINGS_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: SECURE_SETTINGS_SODIUM__ENABLED=false
    becomes  {"sodium": {"enabled": False}}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        parts = key[len(_ENV_PREFIX) :].lower().split("__")
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        final_value: Any = value
        try:
            final_value = int(value)
        except ValueError:
            try:
                final_value = float(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    final_value = value.lower() == "true"
        current[parts[-1]] = final_value
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_BUILTIN_DEFAULTS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "defaults.yaml"


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None`` or the file does not exist,
        built-in defaults are used.
    """
    base: dict[str, Any] = {}

    path = config_path if config_path is not None else _BUILTIN_DEFAULTS_PATH
    if path.exists():
        with open(path) as fh:
            file_data = yaml.safe_load(fh)
        if isinstance(file_data, dict):
            base = _deep_merge(base, file_data)

    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    return Settings(**base)

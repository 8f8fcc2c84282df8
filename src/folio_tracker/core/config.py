"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from folio_tracker.core.exceptions import ConfigError

# Fallback chain used when the config does not name one
DEFAULT_PROVIDER_ORDER = ["fmp", "yahoo", "alpha_vantage"]

# Environment variables honoured for keys when providers.api_keys is silent
LEGACY_KEY_ENV_VARS = {
    "alpha_vantage": "ALPHA_VANTAGE_API_KEY",
    "fmp": "FMP_API_KEY",
}


class MonitoringConfig(BaseModel):
    """Price monitoring loop settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    threshold: float = 5.0
    refresh_interval_ms: int = 300_000

    @field_validator("threshold")
    @classmethod
    def threshold_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("threshold must be > 0 (percent)")
        return v

    @field_validator("refresh_interval_ms")
    @classmethod
    def interval_floor(cls, v: int) -> int:
        if v < 1000:
            raise ValueError("refresh_interval_ms must be >= 1000")
        return v


class ProviderOverride(BaseModel):
    """Per-provider tuning that replaces the adapter's defaults."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    batch_size: int | None = None
    batch_delay_ms: int | None = None

    @field_validator("batch_size")
    @classmethod
    def batch_size_positive(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("batch_size must be >= 1")
        return v

    @field_validator("batch_delay_ms")
    @classmethod
    def delay_non_negative(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("batch_delay_ms must be >= 0")
        return v


class ProvidersConfig(BaseModel):
    """Quote provider chain configuration."""

    model_config = ConfigDict(frozen=True)

    order: list[str] = DEFAULT_PROVIDER_ORDER
    api_keys: dict[str, str] = {}
    overrides: dict[str, ProviderOverride] = {}
    request_timeout: float = 15.0
    cache_ttl_seconds: int = 300

    @field_validator("order")
    @classmethod
    def order_not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("providers.order must name at least one provider")
        return [name.strip().lower() for name in v]

    @field_validator("api_keys", mode="before")
    @classmethod
    def keys_as_strings(cls, v: dict) -> dict:
        # Env auto-casting can turn an all-digit key into an int
        return {str(k).lower(): str(val) for k, val in (v or {}).items()}

    @field_validator("cache_ttl_seconds")
    @classmethod
    def ttl_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")
        return v

    def api_key_for(self, provider: str) -> str | None:
        """Return the configured key, falling back to the legacy env var."""
        key = self.api_keys.get(provider)
        if key:
            return key
        env_var = LEGACY_KEY_ENV_VARS.get(provider)
        if env_var:
            return os.environ.get(env_var) or None
        return None

    def override_for(self, provider: str) -> ProviderOverride:
        return self.overrides.get(provider, ProviderOverride())


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/folio_tracker.db"


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None


class TrackerConfig(BaseModel):
    """Root configuration for folio-tracker."""

    model_config = ConfigDict(frozen=True)

    monitoring: MonitoringConfig = MonitoringConfig()
    providers: ProvidersConfig = ProvidersConfig()
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "FOLIO_TRACKER_",
) -> TrackerConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (FOLIO_TRACKER_MONITORING__THRESHOLD, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        FOLIO_TRACKER_PROVIDERS__API_KEYS__FMP=abc  ->  providers.api_keys.fmp = "abc"
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return TrackerConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("FOLIO_TRACKER_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from FOLIO_TRACKER_CONFIG not found: {env_path}",
                context={"field": "FOLIO_TRACKER_CONFIG", "value": env_path},
            )
        return p

    default = Path("folio-tracker.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float,
    comma-separated values for ``order`` -> list.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        if parts[-1] == "order":
            cast_value: object = [p.strip() for p in value.split(",") if p.strip()]
        else:
            cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            nested = target.get(part)
            target[part] = dict(nested) if isinstance(nested, dict) else {}
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value

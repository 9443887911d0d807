"""
Configuration loader for Market Pulse.

This module provides Pydantic models for strong validation of settings
and a loader function that merges a YAML configuration file with
environment variables.

Design Principles:
- Strict Schema: All settings are defined in Pydantic models to ensure type
  safety and validate constraints (e.g., value ranges, list contents).
- Usable Defaults: Every section carries defaults, so `PulseSettings()` is a
  valid configuration for tests and embedded use without a YAML file.
- Environment Overrides: Any setting can be overridden by an environment
  variable following the nested structure, e.g. `impact.spike_threshold`
  can be overridden by `MARKET_PULSE_IMPACT__SPIKE_THRESHOLD`.
- Clear Errors: If validation fails, Pydantic raises a detailed
  `ValidationError` which is wrapped in a `ConfigError`.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_core import PydanticCustomError

from .exceptions import ConfigError

ENV_PREFIX = "MARKET_PULSE"

# --- Pydantic Models for Configuration Sections ---

class RuntimeSettings(BaseModel):
    """Tracked instruments and compute cadence."""
    instruments: List[str] = Field(default_factory=lambda: ["BTC", "ETH"], min_length=1)
    tick_interval_ms: int = Field(1000, gt=0)

    @field_validator("instruments")
    def instruments_must_be_unique(cls, v):
        if len(set(v)) != len(v):
            raise PydanticCustomError(
                "instruments_duplicate",
                "Instrument identifiers must be unique: {instruments}",
                {"instruments": v},
            )
        return v


class SeriesSettings(BaseModel):
    """Rolling buffer limits applied to every (instrument, kind) series."""
    window_ms: int = Field(120_000, gt=0)
    capacity: int = Field(2000, gt=1)
    # fraction of the buffer dropped (oldest first) when capacity is exceeded
    compaction_ratio: float = Field(0.5, gt=0.0, le=1.0)
    seed_neutral_info: bool = True


class PredictorSettings(BaseModel):
    """Weights of the linear predicted-return heuristic (not a forecast)."""
    sentiment_weight: float = 0.6
    price_weight: float = -0.2


class SignalSettings(BaseModel):
    """Parameters of the per-tick divergence signal."""
    delta_lookback_ms: int = Field(60_000, gt=0)
    strong_threshold: float = Field(1.5, ge=0.0)
    min_info_count: int = Field(3, ge=0)
    min_zscore_samples: int = Field(5, ge=2)
    predictor: PredictorSettings = PredictorSettings()


class ImpactSettings(BaseModel):
    """Spike detection and delayed impact measurement."""
    spike_threshold: float = Field(1.2, gt=0.0)
    debounce_ms: int = Field(15_000, ge=0)
    window_ms: int = Field(60_000, gt=0)
    log_capacity: int = Field(100, gt=0)
    read_limit: int = Field(10, gt=0)
    drain_on_shutdown: bool = False

    @model_validator(mode="after")
    def read_limit_within_capacity(self):
        if self.read_limit > self.log_capacity:
            raise ValueError(
                f"impact.read_limit ({self.read_limit}) cannot exceed impact.log_capacity ({self.log_capacity})"
            )
        return self


class LeadLagSettings(BaseModel):
    """Coarse cross-correlation between price and sentiment differences."""
    enabled: bool = True
    lookback_ms: int = Field(300_000, gt=0)
    lags_sec: Tuple[int, ...] = (-60, -30, -15, 0, 15, 30, 60)
    min_points: int = Field(8, ge=3)


class ReplaySettings(BaseModel):
    """Synthetic random-walk producer for offline demos."""
    enabled: bool = False
    interval_ms: int = Field(1000, gt=0)
    base_prices: Dict[str, float] = Field(default_factory=lambda: {"BTC": 40_000.0, "ETH": 2_500.0})
    default_base_price: float = Field(100.0, gt=0.0)
    seed: Optional[int] = None


class ApiSettings(BaseModel):
    """Read-only HTTP surface for presentation clients."""
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = Field(4000, gt=0, lt=65536)


class PulseSettings(BaseModel):
    """The root Pydantic model for the entire configuration."""
    runtime: RuntimeSettings = RuntimeSettings()
    series: SeriesSettings = SeriesSettings()
    signals: SignalSettings = SignalSettings()
    impact: ImpactSettings = ImpactSettings()
    lead_lag: LeadLagSettings = LeadLagSettings()
    replay: ReplaySettings = ReplaySettings()
    api: ApiSettings = ApiSettings()

# --- Helper Functions ---

def _load_config_from_yaml(path: Path) -> Dict[str, Any]:
    """Loads the YAML configuration file."""
    if not path.is_file():
        raise ConfigError(f"Configuration file not found at: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file at {path}: {e}") from e


def _parse_env_value(value: str) -> Any:
    # JSON for lists, dicts, booleans and numbers; anything else stays a string
    lowered = value.lower()
    if lowered in ("true", "false", "null"):
        return json.loads(lowered)
    if (value.startswith("[") and value.endswith("]")) or \
       (value.startswith("{") and value.endswith("}")) or \
       value.lstrip("-").replace(".", "", 1).isdigit():
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _get_env_overrides(prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """
    Parses environment variables and converts them into a nested dict.
    e.g., MARKET_PULSE_IMPACT__SPIKE_THRESHOLD=2.0 becomes
    {'impact': {'spike_threshold': 2.0}}
    """
    overrides: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix + "_"):
            continue
        parts = key.removeprefix(prefix).strip("_").lower().split("__")
        d = overrides
        for part in parts[:-1]:
            d = d.setdefault(part, {})
        d[parts[-1]] = _parse_env_value(value)
    return overrides


def _merge_configs(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges the override dict into the base dict.
    Overwrites values, dictionaries, and lists.
    """
    for key, value in overrides.items():
        if isinstance(value, dict) and key in base and isinstance(base[key], dict):
            base[key] = _merge_configs(base[key], value)
        else:
            base[key] = value
    return base


def _format_validation_error(e: ValidationError) -> str:
    error_details = e.errors()
    error_msg = f"Configuration validation failed with {len(error_details)} error(s):\n"
    for error in error_details:
        loc = " -> ".join(map(str, error["loc"])) if error["loc"] else "root"
        error_msg += f"  - Location: {loc}\n    Message: {error['msg']}\n"
    return error_msg

# --- Public API ---

def settings_from_dict(config: Optional[Dict[str, Any]] = None, *, use_env: bool = True) -> PulseSettings:
    """Validate a plain dict (optionally merged with env overrides)."""
    final_config = dict(config or {})
    if use_env:
        final_config = _merge_configs(final_config, _get_env_overrides())
    try:
        return PulseSettings.model_validate(final_config)
    except ValidationError as e:
        logger.error(_format_validation_error(e))
        raise ConfigError("Failed to validate settings.") from e


def load_settings(path: str = "settings.yaml") -> PulseSettings:
    """
    Loads, validates, and returns the application settings.

    1. Loads the base configuration from the specified YAML file.
    2. Scans environment variables for overrides (prefixed with "MARKET_PULSE_").
    3. Merges the environment overrides into the base configuration.
    4. Validates the final configuration against the `PulseSettings` model.

    Raises:
        ConfigError: If the file is not found, cannot be parsed, or if
                     validation fails.
    """
    logger.info(f"Loading settings from '{path}'...")
    yaml_config = _load_config_from_yaml(Path(path))
    if yaml_config is None:
        yaml_config = {}
    if not isinstance(yaml_config, dict):
        raise ConfigError(f"YAML file '{path}' must contain a mapping at the top level.")
    settings = settings_from_dict(yaml_config)
    logger.success("Settings loaded and validated successfully.")
    return settings


__all__ = [
    "ApiSettings",
    "ImpactSettings",
    "LeadLagSettings",
    "PredictorSettings",
    "PulseSettings",
    "ReplaySettings",
    "RuntimeSettings",
    "SeriesSettings",
    "SignalSettings",
    "load_settings",
    "settings_from_dict",
]

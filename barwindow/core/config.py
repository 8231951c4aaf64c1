"""
Configuration Manager - Loads and validates bar window configuration.

Merges YAML config with environment variables. Environment variables take
precedence over YAML values for deployment flexibility.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Pydantic Configuration Models (strict validation)
# ---------------------------------------------------------------------------

class BufferConfig(BaseModel):
    capacity: int = 100
    extended_mode: bool = False
    periods_per_year: float = 365.0
    guard_policy: Literal["carry", "zero"] = "carry"

    @field_validator("capacity")
    @classmethod
    def validate_capacity(cls, v):
        if v <= 0:
            raise ValueError("capacity must be a positive number of bars")
        return v

    @field_validator("periods_per_year")
    @classmethod
    def validate_periods(cls, v):
        if v <= 0:
            raise ValueError("periods_per_year must be positive")
        return v


class AppConfig(BaseModel):
    name: str = "Bar Window"
    version: str = "1.0.0"
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    json_logs: bool = False


class BarWindowConfig(BaseModel):
    """Master configuration model with full validation."""
    app: AppConfig = Field(default_factory=AppConfig)
    buffer: BufferConfig = Field(default_factory=BufferConfig)


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Configuration Manager (Singleton)
# ---------------------------------------------------------------------------

class ConfigManager:
    """
    Configuration manager singleton.

    Loads configuration from YAML file, then overlays environment
    variables. Validates all values through Pydantic models.
    """

    _instance: Optional[ConfigManager] = None
    _config: Optional[BarWindowConfig] = None

    def __new__(cls) -> ConfigManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._config is None:
            self.load()

    def load(self, config_path: str = "config/config.yaml") -> BarWindowConfig:
        """Load configuration from YAML + environment variables."""
        load_dotenv()

        yaml_config: Dict[str, Any] = {}
        config_file = Path(config_path)
        if config_file.exists():
            with open(config_file, "r") as f:
                yaml_config = yaml.safe_load(f) or {}

        self._apply_env_overrides(yaml_config)

        self._config = BarWindowConfig(**yaml_config)
        return self._config

    def _apply_env_overrides(self, config: Dict[str, Any]) -> None:
        """Override YAML values with environment variables where set."""
        env_mappings = {
            "BAR_WINDOW_CAPACITY": ("buffer", "capacity", int),
            "BAR_WINDOW_EXTENDED": ("buffer", "extended_mode", _to_bool),
            "BAR_WINDOW_PERIODS_PER_YEAR": ("buffer", "periods_per_year", float),
            "BAR_WINDOW_GUARD_POLICY": ("buffer", "guard_policy"),
            "LOG_LEVEL": ("app", "log_level"),
            "LOG_DIR": ("app", "log_dir"),
            "LOG_JSON": ("app", "json_logs", _to_bool),
        }

        for env_key, mapping in env_mappings.items():
            value = os.getenv(env_key)
            if value is not None:
                section = mapping[0]
                key = mapping[1]
                converter = mapping[2] if len(mapping) > 2 else str

                if section not in config:
                    config[section] = {}
                try:
                    config[section][key] = converter(value)
                except (ValueError, TypeError):
                    pass  # Keep YAML value if env conversion fails

    @property
    def config(self) -> BarWindowConfig:
        """Get the current validated configuration."""
        if self._config is None:
            self.load()
        return self._config

    def reload(self, config_path: str = "config/config.yaml") -> BarWindowConfig:
        """Reload configuration from disk."""
        return self.load(config_path)

    def get(self, dotpath: str, default: Any = None) -> Any:
        """
        Access config values using dot notation.

        Example: config.get("buffer.capacity") -> 100
        """
        obj = self._config
        for key in dotpath.split("."):
            if hasattr(obj, key):
                obj = getattr(obj, key)
            elif isinstance(obj, dict) and key in obj:
                obj = obj[key]
            else:
                return default
        return obj

    def to_dict(self) -> Dict[str, Any]:
        """Export full config as dictionary."""
        return self._config.model_dump() if self._config else {}

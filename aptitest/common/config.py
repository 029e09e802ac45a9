"""
Centralized Configuration for Aptitest

This module provides the configuration system for the assessment engine and
its persistence adapters. Values come from defaults, an optional YAML/JSON
config file, a ``.env`` file and ``APTITEST_``-prefixed environment variables
(highest priority, ``__`` separates nested sections, e.g.
``APTITEST_ENGINE__TICK_INTERVAL_SECONDS=0.5``).
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from aptitest.common.error_handling import ConfigurationError
from aptitest.common.logger import APP_LOGGER_NAME, configure_logger

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "APTITEST_CONFIG_PATH"


class EngineConfig(BaseModel):
    """Assessment session engine configuration"""
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    autosave_every_ticks: int = Field(default=30, ge=0)
    numeric_tolerance: float = Field(default=1e-3, gt=0)
    allow_pause: bool = True
    submit_max_retries: int = Field(default=5, ge=0)
    submit_retry_delay: float = Field(default=0.5, ge=0)
    submit_backoff_factor: float = Field(default=2.0, ge=1)
    submit_retry_jitter: float = Field(default=0.1, ge=0, lt=1)


class DatabaseConfig(BaseModel):
    """Database configuration"""
    url: str = "sqlite+aiosqlite:///./aptitest.db"
    echo: bool = False
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)

    @property
    def is_sqlite(self) -> bool:
        """Whether the URL points at SQLite"""
        return self.url.startswith("sqlite")


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    json_output: bool = Field(default=False, alias="json")
    file_path: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class EnvironmentConfig(BaseModel):
    """Environment configuration"""
    env: str = "development"
    debug: bool = False

    @field_validator('env')
    @classmethod
    def validate_env(cls, v):
        """Validate environment"""
        valid_envs = ['development', 'testing', 'staging', 'production']
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v.lower()


class AppConfig(BaseSettings):
    """Main application configuration"""
    model_config = SettingsConfigDict(
        env_prefix="APTITEST_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "Aptitest"
    version: str = "0.1.0"
    engine: EngineConfig = Field(default_factory=EngineConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over the config file passed as init kwargs
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def is_development(self) -> bool:
        return self.environment.env == "development"

    @property
    def is_testing(self) -> bool:
        return self.environment.env == "testing"

    @property
    def is_production(self) -> bool:
        return self.environment.env == "production"


class ConfigLoader:
    """
    Configuration loader for the application.

    Loads configuration from:
    1. Default values
    2. Config file (YAML or JSON)
    3. ``.env`` and environment variables (highest priority)
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.environ.get(CONFIG_PATH_ENV)
        self._config: Optional[AppConfig] = None

    def load(self) -> AppConfig:
        """
        Load configuration from all sources.

        Raises:
            ConfigurationError: If the file cannot be parsed or values are invalid
        """
        if self._config is not None:
            return self._config

        file_config: Dict[str, Any] = {}
        if self.config_path:
            file_config = self._load_from_file(self.config_path)

        try:
            self._config = AppConfig(**file_config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}", cause=e) from e
        return self._config

    def _load_from_file(self, path: str) -> Dict[str, Any]:
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return {}

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f)
                elif path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    logger.warning(f"Unsupported config file format: {path.suffix}")
                    return {}
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not parse config file {path}", cause=e) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data


_config_loader: Optional[ConfigLoader] = None


def get_config() -> AppConfig:
    """Get the loaded configuration, loading it on first use."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader.load()


def reload_config(config_path: Optional[str] = None) -> AppConfig:
    """Discard the cached configuration and load it again."""
    global _config_loader
    _config_loader = ConfigLoader(config_path)
    return _config_loader.load()


def configure_logging(config: Optional[AppConfig] = None) -> logging.Logger:
    """Reconfigure the ``aptitest`` logger from the logging section."""
    logging_config = (config or get_config()).logging
    return configure_logger(
        name=APP_LOGGER_NAME,
        level=logging_config.level,
        use_json=logging_config.json_output,
        log_file=logging_config.file_path
    )

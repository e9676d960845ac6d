"""Configuration management for the Index Lifecycle Engine.

This module provides centralized configuration management using Pydantic Settings,
supporting environment variables, .env files, and a YAML retention policy file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from index_lifecycle.retention.models import RetentionPolicy


class ElasticsearchSettings(BaseSettings):
    """Elasticsearch connection settings for the index backend."""

    url: Optional[str] = Field(
        default=None,
        description="Cluster URL; the dry-run backend is used when unset",
    )
    username: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None)
    verify_certs: bool = Field(default=True)
    timeout: float = Field(default=30.0, gt=0)
    index_prefix: str = Field(default="logs-")
    ilm_actions: bool = Field(
        default=False,
        description="Install ILM policies that roll over and delete indices themselves",
    )

    model_config = SettingsConfigDict(env_prefix="ES_")


class SchedulerSettings(BaseSettings):
    """Lifecycle scheduler settings."""

    interval_seconds: float = Field(default=300.0, gt=0)
    sync_policies_on_start: bool = Field(default=True)

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")


class ObservabilitySettings(BaseSettings):
    """Logging and metrics settings."""

    service_name: str = Field(default="index-lifecycle")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    metrics_enabled: bool = Field(default=True)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in ("json", "console"):
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v.lower()

    model_config = SettingsConfigDict(env_prefix="OBS_")


class PolicyYamlConfig(BaseSettings):
    """Retention policies loaded from a YAML file."""

    config_path: Path = Field(default=Path("config/retention.yaml"))
    _config_cache: Optional[Dict[str, Any]] = None

    def load_yaml(self) -> Dict[str, Any]:
        """Load retention configuration from the YAML file.

        Returns:
            Dictionary containing retention configuration
        """
        if self._config_cache is not None:
            return self._config_cache

        if not self.config_path.exists():
            return self._default_config()

        with open(self.config_path, "r") as f:
            self._config_cache = yaml.safe_load(f)
        return self._config_cache or self._default_config()

    def _default_config(self) -> Dict[str, Any]:
        """Return the built-in retention table."""
        defaults = {"rollover_max_age": "1d", "rollover_max_size": "5gb"}
        return {
            "retention": {
                "defaults": defaults,
                "streams": {
                    "api": {"delete_min_age": "30d", "description": "API service logs"},
                    "postgres": {"delete_min_age": "7d", "description": "PostgreSQL logs"},
                    "redis": {"delete_min_age": "3d", "description": "Redis logs"},
                    "minio": {"delete_min_age": "14d", "description": "MinIO logs"},
                    "web": {"delete_min_age": "7d", "description": "Web frontend logs"},
                },
            }
        }

    def load_policies(self) -> List[RetentionPolicy]:
        """Build retention policies from the configuration.

        Stream entries inherit any threshold they omit from ``defaults``.

        Returns:
            Retention policies in stream name order
        """
        retention = self.load_yaml().get("retention", {})
        defaults = retention.get("defaults", {})
        streams = retention.get("streams", {})
        return [
            RetentionPolicy(stream_name=name, **{**defaults, **(overrides or {})})
            for name, overrides in sorted(streams.items())
        ]

    model_config = SettingsConfigDict(env_prefix="POLICY_")


class Settings(BaseSettings):
    """Main application settings."""

    # Application
    app_name: str = Field(default="Index Lifecycle Engine")
    app_version: str = Field(default="1.0.0")
    env: str = Field(default="development")

    # Sub-settings
    elasticsearch: ElasticsearchSettings = Field(default_factory=ElasticsearchSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    policy_yaml: PolicyYamlConfig = Field(default_factory=PolicyYamlConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance with loaded configuration
    """
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from environment.

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()

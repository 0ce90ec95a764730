"""Playground configuration management.

Configuration sources (in priority order):
1. Environment variables (PLAYGROUND_ prefix)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class K8sConfig(BaseModel):
    """Kubernetes driver configuration."""

    namespace: str = "playground"
    kubeconfig: str | None = None
    # Shared ingress holding one rule per session subdomain
    ingress_name: str = "ingress"
    # Base host; sessions are exposed as <session_id>.<host>
    host: str = "playground.local"


class DriverConfig(BaseModel):
    """Driver layer configuration."""

    type: Literal["k8s"] = "k8s"
    k8s: K8sConfig = Field(default_factory=K8sConfig)


class ResourceSpec(BaseModel):
    """Session container resource specification."""

    memory_request: str = "6Gi"
    memory_limit: str = "8Gi"
    ephemeral_storage: str = "5Gi"


class SessionDefaults(BaseModel):
    """Defaults applied to every session.

    Durations are expressed in minutes, like the rest of the operator-facing
    configuration.
    """

    duration: int = 60
    max_duration: int = 240
    pool_affinity: str = "default"
    max_sessions_per_node: int = 1
    web_port: int = 3000
    resources: ResourceSpec = Field(default_factory=ResourceSpec)
    env: dict[str, str] = Field(default_factory=dict)

    @property
    def default_duration(self) -> timedelta:
        return timedelta(minutes=self.duration)

    @property
    def max_duration_delta(self) -> timedelta:
        return timedelta(minutes=self.max_duration)


class VolumeConfig(BaseModel):
    """Workspace volume configuration."""

    storage_size: str = "5Gi"
    storage_class: str | None = None


class RouteTableConfig(BaseModel):
    """Ingress route table configuration."""

    # Bounded retries on optimistic-concurrency conflicts
    max_retries: int = 5


class ReaperConfig(BaseModel):
    """Background reaper configuration."""

    enabled: bool = True
    interval_seconds: float = 5.0
    run_on_startup: bool = False


class BuilderConfig(BaseModel):
    """Repository version build job configuration."""

    image: str = "playground/builder:latest"
    backoff_limit: int = 1


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_output: bool = False


class Settings(BaseSettings):
    """Playground control plane settings."""

    model_config = SettingsConfigDict(
        env_prefix="PLAYGROUND_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    driver: DriverConfig = Field(default_factory=DriverConfig)
    session: SessionDefaults = Field(default_factory=SessionDefaults)
    volume: VolumeConfig = Field(default_factory=VolumeConfig)
    route_table: RouteTableConfig = Field(default_factory=RouteTableConfig)
    reaper: ReaperConfig = Field(default_factory=ReaperConfig)
    builder: BuilderConfig = Field(default_factory=BuilderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values passed in from the YAML file
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. PLAYGROUND_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/playground/config.yaml
    """
    import os

    config_paths = [
        os.environ.get("PLAYGROUND_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/playground/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Environment variables override values read from the YAML file.
    """
    file_config = _load_config_file()
    return Settings(**file_config)

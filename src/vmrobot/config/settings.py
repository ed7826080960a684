"""Configuration management for vmrobot.

Loads settings from a YAML configuration file with environment variable
overrides (``VMROBOT_`` prefix, ``__`` for nested sections). Supports
.env files.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/vmrobot.yaml")


class HypervisorConfig(BaseModel):
    backend: Literal["memory"] = Field(default="memory")
    clone_timeout: float | None = Field(
        default=None, gt=0, description="Seconds to wait for clone/launch; unset waits forever"
    )
    machines: list[str] = Field(
        default_factory=list, description="Running machines to seed the memory backend with"
    )


class PipelineConfig(BaseModel):
    keyboard_layout: str = Field(default="us")
    smooth_move_tick: float = Field(default=0.05, gt=0)
    calibration_tolerance: int = Field(default=0, ge=0, le=255)


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=7778, ge=1, le=65535)
    username: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)


class ClientConfig(BaseModel):
    base_url: str = Field(default="http://localhost:7778")
    timeout: float = Field(default=30.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for vmrobot.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "VMROBOT_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    hypervisor: HypervisorConfig = Field(default_factory=HypervisorConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: init (YAML) values > env vars > .env file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    return Settings(**yaml_data)

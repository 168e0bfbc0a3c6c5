"""Configuration management for camrelay.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files and the unprefixed variable names used by
older deployments (CAMERA_STREAM_URL, PORT_STREAM, PORT_DATA).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/camrelay.yaml")

DEFAULT_CAMERA_URL = "http://192.168.137.215/mjpeg/1"


class StreamConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)
    camera_url: str = Field(default=DEFAULT_CAMERA_URL, description="Upstream MJPEG source")
    timeout: float = Field(default=5.0, gt=0, description="Upstream connect/read timeout (seconds)")
    chunk_size: int = Field(default=4096, gt=0)
    max_frame_size: int = Field(default=8 * 1024 * 1024, gt=0)


class DataConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001, ge=1, le=65535)
    send_timeout: float = Field(default=10.0, gt=0, description="Seconds a write to one peer may take")
    max_pending: int = Field(default=64, gt=0, description="Outbox size per peer")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the camrelay servers.

    Values passed as keywords (the YAML file, via load_settings) form the
    lowest layer; CAMRELAY_* variables and the .env file override them.
    """

    model_config = {
        "env_prefix": "CAMRELAY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    stream: StreamConfig = Field(default_factory=StreamConfig)
    data: DataConfig = Field(default_factory=DataConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, dotenv_settings, init_settings, file_secret_settings


# Unprefixed names from older deployments: env name -> (section, key)
LEGACY_ENV_NAMES = {
    "CAMERA_STREAM_URL": ("stream", "camera_url"),
    "PORT_STREAM": ("stream", "port"),
    "PORT_DATA": ("data", "port"),
}


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: CAMRELAY_* env vars > .env file > legacy env names > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    yaml_data: dict = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_legacy_env(yaml_data)

    return Settings(**yaml_data)


def _apply_legacy_env(yaml_data: dict) -> None:
    """Fold CAMERA_STREAM_URL, PORT_STREAM and PORT_DATA into the file layer.

    The process environment wins over a .env file in the working directory.
    """
    dotenv = dotenv_values(".env") if Path(".env").exists() else {}
    for name, (section, key) in LEGACY_ENV_NAMES.items():
        value = os.environ.get(name) or dotenv.get(name)
        if value:
            yaml_data.setdefault(section, {})[key] = value

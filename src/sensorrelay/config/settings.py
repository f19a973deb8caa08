"""Configuration management for sensorrelay.

Loads settings from a YAML configuration file with environment variable
overrides for sensitive values (device key, signing secret). Supports
.env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/sensorrelay.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class DeviceConfig(BaseModel):
    api_key: SecretStr = Field(default=SecretStr("123456789"))
    silence_timeout: float = Field(default=120.0, gt=0, description="Seconds without contact before disconnect")
    sweep_interval: float = Field(default=30.0, gt=0, description="Seconds between liveness sweeps")
    base_url: str = Field(default="http://192.168.232.67", description="Device's own HTTP server (proxy mode)")
    request_timeout: float = Field(default=5.0, gt=0)


class HistoryConfig(BaseModel):
    max_points: int = Field(default=1000, gt=0)
    seed_simulated: bool = Field(default=True, description="Store a synthetic reading at boot")


class RelayConfig(BaseModel):
    mode: Literal["push", "proxy"] = Field(default="push")
    allow_simulate: bool = Field(default=True)


class AuthConfig(BaseModel):
    mode: Literal["none", "device", "operator"] = Field(default="device")
    jwt_secret: SecretStr = Field(default=SecretStr("change-me"))
    jwt_algorithm: str = Field(default="HS256")
    token_ttl: float = Field(default=3600.0, gt=0, description="Session token lifetime in seconds")
    admin_username: str = Field(default="admin")
    admin_password: SecretStr = Field(default=SecretStr("admin"))


class BroadcastConfig(BaseModel):
    queue_size: int = Field(default=100, gt=0, description="Per-subscriber outbound queue bound")


class SimulatorConfig(BaseModel):
    url: str = Field(default="http://localhost:3000")
    push_interval: float = Field(default=10.0, gt=0)
    poll_interval: float = Field(default=5.0, gt=0)
    timeout: float = Field(default=10.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the sensorrelay system.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "SENSORRELAY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    device: DeviceConfig = Field(default_factory=DeviceConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: unprefixed deployment vars > YAML file > prefixed env vars > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    # Load .env file manually for non-prefixed vars
    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if not os.environ.get(key):
                    os.environ[key] = value


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply the unprefixed variables the device deployments already use."""
    port = os.environ.get("PORT", "")
    device_key = os.environ.get("DEVICE_API_KEY", "")
    jwt_secret = os.environ.get("JWT_SECRET", "")
    esp_ip = os.environ.get("ESP_IP", "")

    for section in ("server", "device", "auth"):
        if not isinstance(yaml_data.get(section), dict):
            yaml_data[section] = {}

    if port:
        yaml_data["server"]["port"] = int(port)

    if device_key:
        yaml_data["device"]["api_key"] = device_key

    if jwt_secret:
        yaml_data["auth"]["jwt_secret"] = jwt_secret

    if esp_ip:
        yaml_data["device"]["base_url"] = f"http://{esp_ip}"

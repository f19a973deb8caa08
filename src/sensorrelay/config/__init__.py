"""Configuration management for sensorrelay.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides for the device secret, the
session-signing secret and the listen port.
"""

from sensorrelay.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]

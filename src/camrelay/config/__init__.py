"""Configuration management for camrelay.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides for the camera URL and the
listen ports.
"""

from camrelay.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]

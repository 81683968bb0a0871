"""Core: config, lifespan, and exception handlers."""

from echohub.core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]

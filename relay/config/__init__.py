"""Configuration primitives for the relay."""

from .settings import RelaySettings, get_settings

__all__ = ["RelaySettings", "get_settings"]

"""Configuration package for the MFTR team ratings model."""

from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]

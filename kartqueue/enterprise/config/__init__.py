"""Configuration package for the kart dispatch platform."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]

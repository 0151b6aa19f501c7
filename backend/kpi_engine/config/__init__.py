"""Configuration package for the KPI snapshot engine."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]

"""Configuration management for Grid Watch."""

from grid_watch.config.schema import AppConfig
from grid_watch.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager"]

"""
config/ — runtime settings for promptvolley.
"""

from promptvolley.config.settings import ConfigError, Settings, get_settings, load_settings

__all__ = ["ConfigError", "Settings", "get_settings", "load_settings"]

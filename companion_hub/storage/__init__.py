"""
Storage Layer.

This package handles all data persistence: the INI settings file and the JSON
app catalog together with the saved argument values.
"""

from .catalog import AppCatalog, AppSpec
from .config_manager import ConfigManager

__all__ = ["AppCatalog", "AppSpec", "ConfigManager"]

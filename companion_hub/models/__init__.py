"""
Data Models Layer.

This package contains the Pydantic models and plain data structures that
describe apps: their arguments, configurations, events and host settings.
"""

from .argument import Argument
from .configuration import Configuration
from .events import AppEvent, DownloadProgress, EventKind
from .settings import AutoRunPolicy, HubSettings

__all__ = [
    "AppEvent",
    "Argument",
    "AutoRunPolicy",
    "Configuration",
    "DownloadProgress",
    "EventKind",
    "HubSettings",
]

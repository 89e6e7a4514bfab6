"""
Core app engine.

This package contains the lifecycle logic. `AppRuntime` supervises one
external program; the concrete kinds (`AppLocal`, `AppOpen`,
`AppDownloadable`, `AppInstallable`) add how the program is acquired and
where its executable lives.
"""

from .downloadable import AppDownloadable
from .events import EventChannel
from .factory import APP_CLASSES, create_app
from .installable import AppInstallable
from .local import AppLocal, AppOpen
from .monitor import OutputMonitor
from .runtime import AppKind, AppRuntime, WindowState

__all__ = [
    "APP_CLASSES",
    "AppDownloadable",
    "AppInstallable",
    "AppKind",
    "AppLocal",
    "AppOpen",
    "AppRuntime",
    "EventChannel",
    "OutputMonitor",
    "WindowState",
    "create_app",
]

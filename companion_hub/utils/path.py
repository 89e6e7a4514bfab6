"""
Utilities for handling directories, file sizes and download URLs.
"""

import os
import shutil
from pathlib import Path
from urllib.parse import unquote, urlsplit

from pathvalidate import sanitize_filename

# Sentinels chosen so that an unknown remote size never equals a missing file.
REMOTE_SIZE_UNKNOWN = -1
LOCAL_FILE_MISSING = -2


def get_config_dir() -> Path:
    """Returns the per-user configuration directory of the application."""
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "companion-hub"


def get_default_apps_dir() -> Path:
    return get_config_dir() / "apps"


def app_directory(apps_dir: Path, app_name: str) -> Path:
    """Returns the install directory owned by an app."""
    return Path(apps_dir) / sanitize_filename(app_name, platform="auto")


def file_name_from_url(url: str) -> str:
    """
    Derives the local file name of a download from its URL.
    Query strings and fragments are ignored.
    """
    path = unquote(urlsplit(url).path)
    name = path.rstrip("/").rsplit("/", 1)[-1]
    return sanitize_filename(name, platform="auto") or "download"


def local_file_size(path: Path) -> int:
    """Returns the size of a local file or ``LOCAL_FILE_MISSING``."""
    try:
        return Path(path).stat().st_size if Path(path).is_file() else LOCAL_FILE_MISSING
    except OSError:
        return LOCAL_FILE_MISSING


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def remove_dir(directory_path: Path, recreate: bool = False) -> None:
    """Deletes a directory tree, optionally leaving an empty directory behind."""
    if directory_path.is_dir():
        shutil.rmtree(directory_path)
    if recreate:
        create_dir(directory_path)

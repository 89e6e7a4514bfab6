"""
Cross-platform helpers for launching, locating and terminating app processes.
"""

import asyncio
import logging
import os
import shlex
import sys
import webbrowser
from pathlib import Path
from urllib.parse import urlsplit

import psutil

from companion_hub.exceptions import SpawnError

log = logging.getLogger(__name__)

URI_SCHEMES = ("http", "https")
WINDOWS_EXECUTABLE_SUFFIXES = (".exe",)


def is_windows() -> bool:
    return os.name == "nt"


def is_uri(target: str | None) -> bool:
    """True if the target is a network resource the OS should resolve."""
    if not target:
        return False
    parts = urlsplit(target)
    return parts.scheme.lower() in URI_SCHEMES and bool(parts.netloc)


def split_command_line(arguments: str) -> list[str]:
    """Splits a composed argument string the way the launched process would."""
    if not arguments or not arguments.strip():
        return []
    return shlex.split(arguments, posix=not is_windows())


def build_elevated_command(command: list[str]) -> list[str]:
    """Wraps a command so that it runs with administrative rights."""
    if is_windows():
        executable, *args = command
        arg_list = ",".join(f"'{a}'" for a in args) or "''"
        return [
            "powershell",
            "-NoProfile",
            "-Command",
            f"$p = Start-Process -FilePath '{executable}' -ArgumentList {arg_list} "
            "-Verb RunAs -Wait -PassThru; exit $p.ExitCode",
        ]
    return ["sudo", *command]


async def ensure_executable_permissions(path: str) -> None:
    """
    Marks a file as executable with ``chmod +x``. No-op on Windows.

    Raises:
        SpawnError: If chmod cannot be run or exits with an error.
    """
    if is_windows():
        return
    try:
        process = await asyncio.create_subprocess_exec("chmod", "+x", path)
        exit_code = await process.wait()
    except OSError as e:
        raise SpawnError(f"Failed to run chmod for {path}: {e}") from e
    if exit_code != 0:
        raise SpawnError(
            f"Failed to set executable permissions for {path}. Exit code: {exit_code}"
        )


async def open_with_shell(target: str) -> bool:
    """
    Hands a URL or a document over to the default handler of the operating
    system. Nothing is captured and nothing is awaited beyond the hand-over.
    """
    if is_uri(target):
        return await asyncio.to_thread(webbrowser.open, target)
    if is_windows():
        await asyncio.to_thread(os.startfile, target)
        return True

    opener = "open" if sys.platform == "darwin" else "xdg-open"
    try:
        process = await asyncio.create_subprocess_exec(
            opener,
            target,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        raise SpawnError(f"Failed to open {target} with {opener}: {e}") from e
    return await process.wait() == 0


def kill_process(pid: int) -> bool:
    """
    Forcibly terminates a process and its children.

    Returns:
        True if a process with that id was found and killed.
    """
    if pid <= 0:
        return False
    try:
        process = psutil.Process(pid)
        for child in process.children(recursive=True):
            try:
                child.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass
        process.kill()
        return True
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        log.debug(f"Not allowed to kill process {pid}.")
        return False


def kill_processes_by_path(executable: str) -> int:
    """
    Forcibly terminates every process started from the given executable path.
    Covers children relaunched outside of the tracked process handle.

    Returns:
        The number of processes killed.
    """
    target = os.path.normcase(os.path.abspath(executable))
    own_pid = os.getpid()
    killed = 0
    for process in psutil.process_iter(["pid", "exe", "cmdline"]):
        info = process.info
        if info["pid"] == own_pid:
            continue
        candidates = [info.get("exe")] + list((info.get("cmdline") or [])[:2])
        if not any(
            c and os.path.normcase(os.path.abspath(c)) == target for c in candidates
        ):
            continue
        try:
            process.kill()
            killed += 1
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            log.debug(f"Could not kill process {info['pid']} ({executable}): {e}")
    return killed


def search_executable(directory: Path) -> Path | None:
    """
    Finds the first executable below a directory. On Windows this is the first
    ``.exe`` file; elsewhere the first file without an extension.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return None

    for root, dirs, files in os.walk(directory):
        dirs.sort()
        for name in sorted(files):
            suffix = Path(name).suffix.lower()
            if is_windows():
                if suffix in WINDOWS_EXECUTABLE_SUFFIXES:
                    return Path(root) / name
            elif not suffix:
                return Path(root) / name
    return None

"""Shared fixtures: isolated settings, event recording, child scripts and a
local HTTP server that serves app artifacts."""

import io
import os
import stat
import sys
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from companion_hub.acquisition import close_connection_pool
from companion_hub.models.events import AppEvent, EventKind
from companion_hub.models.settings import HubSettings

posix_only = pytest.mark.skipif(os.name == "nt", reason="uses POSIX shebang scripts")


@pytest.fixture
def settings(tmp_path: Path) -> HubSettings:
    return HubSettings(
        apps_dir=tmp_path / "apps",
        close_timeout=2.0,
        download_attempts=1,
        retry_base_delay=0.0,
        probe_timeout=5.0,
    )


class EventRecorder:
    """Observer that keeps every event it receives."""

    def __init__(self):
        self.events: list[AppEvent] = []

    def __call__(self, event: AppEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[EventKind]:
        return [event.kind for event in self.events]

    def lifecycle(self) -> list[EventKind]:
        """Kinds without the high-frequency progress and output events."""
        return [
            kind
            for kind in self.kinds
            if kind not in (EventKind.DOWNLOAD_PROGRESSED, EventKind.OUTPUT)
        ]

    def first(self, kind: EventKind) -> AppEvent:
        return next(event for event in self.events if event.kind == kind)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


def python_script(source: str) -> str:
    """Prefixes Python source with a shebang for the running interpreter."""
    return f"#!{sys.executable}\n{source}"


@pytest.fixture
def make_script(tmp_path: Path):
    """Writes an executable Python script and returns its path."""

    def _make(name: str, source: str, directory: Path | None = None) -> Path:
        directory = directory or tmp_path / "bin"
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text(python_script(source), encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


def zip_bytes(files: dict[str, str], mode: int = 0o755) -> bytes:
    """Builds a zip archive in memory; entries carry POSIX permission bits."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            info = zipfile.ZipInfo(name)
            info.external_attr = (stat.S_IFREG | mode) << 16
            archive.writestr(info, content)
    return buffer.getvalue()


def deflate64_zip(files: dict[str, str]) -> bytes:
    """A well-formed zip whose entries claim Deflate64, which zipfile cannot read."""
    data = bytearray(zip_bytes(files))
    for signature, method_offset in ((b"PK\x03\x04", 8), (b"PK\x01\x02", 10)):
        start = data.find(signature)
        while start != -1:
            data[start + method_offset : start + method_offset + 2] = (9).to_bytes(
                2, "little"
            )
            start = data.find(signature, start + 4)
    return bytes(data)


@dataclass
class ArtifactServer:
    server: TestServer
    files: dict[str, bytes]
    requests: list[tuple[str, str]] = field(default_factory=list)
    failing_gets: set[str] = field(default_factory=set)

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    def methods_for(self, path: str) -> list[str]:
        return [method for method, requested in self.requests if requested == path]


@pytest.fixture
async def artifact_server():
    state = ArtifactServer(server=None, files={})  # type: ignore[arg-type]

    async def handler(request: web.Request) -> web.Response:
        state.requests.append((request.method, request.path))
        body = state.files.get(request.path)
        if body is None:
            raise web.HTTPNotFound()
        if request.method == "HEAD":
            return web.Response(headers={"Content-Length": str(len(body))})
        if request.path in state.failing_gets:
            raise web.HTTPInternalServerError()
        return web.Response(body=body, content_type="application/octet-stream")

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", handler)
    state.server = TestServer(app)
    await state.server.start_server()
    try:
        yield state
    finally:
        await close_connection_pool()
        await state.server.close()

"""Tests for downloading, extracting and auto-running downloadable apps."""

import pytest

from companion_hub.acquisition.downloader import content_length
from companion_hub.core import downloadable as downloadable_module
from companion_hub.core.downloadable import LOCAL_VERSION_MARKER, AppDownloadable
from companion_hub.models.events import EventKind
from companion_hub.models.settings import AutoRunPolicy
from companion_hub.utils.path import REMOTE_SIZE_UNKNOWN

from .conftest import deflate64_zip, posix_only, python_script, zip_bytes

TOOL_SOURCE = "print('tool ran')\n"


def downloadable(artifact_server, settings, path="/tool.zip", name="tool"):
    return AppDownloadable(name, artifact_server.url(path), settings=settings)


@posix_only
class TestInstall:
    """Tests for the freshness check and the acquisition pipeline."""

    async def test_run_downloads_extracts_and_starts(
        self, artifact_server, settings, recorder
    ):
        artifact_server.files["/tool.zip"] = zip_bytes({"tool": python_script(TOOL_SOURCE)})
        app = downloadable(artifact_server, settings)
        app.events.subscribe(recorder)

        assert await app.run() is False
        assert await app.wait_for_acquisition(timeout=10)
        assert await app.wait_for_exit(timeout=10)

        assert recorder.lifecycle() == [
            EventKind.DOWNLOAD_STARTED,
            EventKind.DOWNLOAD_FINISHED,
            EventKind.RUN_STARTED,
            EventKind.RUN_STOPPED,
        ]
        assert recorder.first(EventKind.DOWNLOAD_FINISHED).message == "success"
        progress = [e for e in recorder.events if e.kind == EventKind.DOWNLOAD_PROGRESSED]
        assert progress
        assert progress[-1].message == "100%"
        assert app.monitor.stdout_lines == ["tool ran"]
        assert (app.download_path / "tool.zip").is_file()
        assert app.is_installed()
        assert app.executable == str(app.download_path / "tool")

    async def test_equal_size_skips_download(self, artifact_server, settings, recorder):
        body = zip_bytes({"tool": python_script(TOOL_SOURCE)})
        artifact_server.files["/tool.zip"] = body
        app = downloadable(artifact_server, settings)
        app.download_path.mkdir(parents=True)
        app.download_path_file.write_bytes(body)
        app.events.subscribe(recorder)

        assert await app.install() is False

        assert artifact_server.methods_for("/tool.zip") == ["HEAD"]
        assert recorder.kinds == []

    async def test_size_change_triggers_download(self, artifact_server, settings, recorder):
        artifact_server.files["/tool.zip"] = zip_bytes({"tool": python_script(TOOL_SOURCE)})
        app = downloadable(artifact_server, settings)
        app.download_path.mkdir(parents=True)
        app.download_path_file.write_bytes(b"old build")
        (app.download_path / "stale.txt").write_text("stale")
        app.events.subscribe(recorder)

        assert await app.install() is True
        assert await app.wait_for_acquisition(timeout=10)

        assert artifact_server.methods_for("/tool.zip") == ["HEAD", "GET"]
        assert not (app.download_path / "stale.txt").exists()
        assert recorder.lifecycle() == [
            EventKind.DOWNLOAD_STARTED,
            EventKind.DOWNLOAD_FINISHED,
        ]
        assert not app.is_running()

    async def test_failed_download_rolls_back(self, artifact_server, settings, recorder):
        artifact_server.files["/tool.zip"] = zip_bytes({"tool": python_script(TOOL_SOURCE)})
        artifact_server.failing_gets.add("/tool.zip")
        app = downloadable(artifact_server, settings)
        app.events.subscribe(recorder)

        assert await app.run() is False
        await app.wait_for_acquisition(timeout=10)

        assert recorder.lifecycle() == [
            EventKind.DOWNLOAD_STARTED,
            EventKind.DOWNLOAD_FAILED,
        ]
        assert "500" in recorder.first(EventKind.DOWNLOAD_FAILED).message
        assert not app.download_path.exists()
        assert not app.is_running()

    async def test_failed_probe_rolls_back(self, artifact_server, settings, recorder):
        app = downloadable(artifact_server, settings, path="/missing.zip")
        app.download_path.mkdir(parents=True)
        app.events.subscribe(recorder)

        assert await app.install() is False

        assert recorder.kinds == [EventKind.DOWNLOAD_FAILED]
        assert not app.download_path.exists()

    async def test_corrupt_archive_fails(self, artifact_server, settings, recorder):
        artifact_server.files["/tool.zip"] = b"this is not a zip archive"
        app = downloadable(artifact_server, settings)
        app.events.subscribe(recorder)

        await app.install()
        await app.wait_for_acquisition(timeout=10)

        assert recorder.lifecycle() == [
            EventKind.DOWNLOAD_STARTED,
            EventKind.DOWNLOAD_FAILED,
        ]
        assert not app.download_path.exists()

    async def test_local_version_skips_download(self, artifact_server, settings, recorder):
        app = downloadable(artifact_server, settings)
        app.download_path.mkdir(parents=True)
        (app.download_path / f"{LOCAL_VERSION_MARKER}.txt").write_text("pinned")
        app.events.subscribe(recorder)

        assert app.has_local_version()
        assert await app.install() is False

        assert artifact_server.requests == []
        assert recorder.kinds == []

    async def test_install_is_idempotent_while_acquiring(self, artifact_server, settings):
        artifact_server.files["/tool.zip"] = zip_bytes({"tool": python_script(TOOL_SOURCE)})
        app = downloadable(artifact_server, settings)

        assert await app.install() is True
        assert await app.install() is True
        await app.wait_for_acquisition(timeout=10)

        assert artifact_server.methods_for("/tool.zip") == ["HEAD", "GET"]


@posix_only
class TestAutoRunPolicy:
    """Tests for the launch decision after a completed acquisition."""

    async def test_never(self, artifact_server, settings, recorder):
        settings.auto_run_policy = AutoRunPolicy.NEVER
        artifact_server.files["/tool.zip"] = zip_bytes({"tool": python_script(TOOL_SOURCE)})
        app = downloadable(artifact_server, settings)
        app.events.subscribe(recorder)

        assert await app.run() is False
        await app.wait_for_acquisition(timeout=10)

        assert EventKind.RUN_STARTED not in recorder.kinds
        assert app.is_installed()

    async def test_always(self, artifact_server, settings, recorder):
        settings.auto_run_policy = AutoRunPolicy.ALWAYS
        artifact_server.files["/tool.zip"] = zip_bytes({"tool": python_script(TOOL_SOURCE)})
        app = downloadable(artifact_server, settings)
        app.events.subscribe(recorder)

        assert await app.install() is True
        await app.wait_for_acquisition(timeout=10)
        await app.wait_for_exit(timeout=10)

        assert EventKind.RUN_STARTED in recorder.kinds

    def test_when_requested(self, settings):
        app = AppDownloadable("tool", "https://example.com/tool.zip", settings=settings)
        assert app.should_auto_run(run_requested=True)
        assert not app.should_auto_run(run_requested=False)


class TestPaths:
    """Tests for the install directory layout."""

    def test_download_paths(self, settings):
        app = AppDownloadable(
            "tool", "https://example.com/files/tool-1.2.zip?token=abc", settings=settings
        )
        assert app.download_path == settings.apps_dir / "tool"
        assert app.download_path_file == settings.apps_dir / "tool" / "tool-1.2.zip"

    def test_capabilities(self, settings):
        app = AppDownloadable("tool", "https://example.com/tool.zip", settings=settings)
        assert app.is_installable()
        assert not app.is_configurable()
        assert not app.is_installed()


@posix_only
class TestFailureReporting:
    """Tests for failures that must surface as events."""

    async def test_unsupported_archive_method_rolls_back(
        self, artifact_server, settings, recorder
    ):
        artifact_server.files["/tool.zip"] = deflate64_zip(
            {"tool": python_script(TOOL_SOURCE)}
        )
        app = downloadable(artifact_server, settings)
        app.events.subscribe(recorder)

        assert await app.run() is False
        assert await app.wait_for_acquisition(timeout=10)

        assert recorder.lifecycle() == [
            EventKind.DOWNLOAD_STARTED,
            EventKind.DOWNLOAD_FAILED,
        ]
        assert not app.download_path.exists()
        assert app._acquisition.exception() is None
        assert not app.is_running()

    async def test_unexpected_error_is_reported(
        self, artifact_server, settings, recorder, monkeypatch
    ):
        artifact_server.files["/tool.zip"] = zip_bytes({"tool": python_script(TOOL_SOURCE)})

        def broken_extract(*args):
            raise KeyError("boom")

        monkeypatch.setattr(downloadable_module, "extract_archive", broken_extract)
        app = downloadable(artifact_server, settings)
        app.events.subscribe(recorder)

        await app.install()
        await app.wait_for_acquisition(timeout=10)

        assert recorder.lifecycle() == [
            EventKind.DOWNLOAD_STARTED,
            EventKind.DOWNLOAD_FAILED,
        ]
        assert "boom" in recorder.first(EventKind.DOWNLOAD_FAILED).message
        assert not app.download_path.exists()
        assert app._acquisition.exception() is None

    async def test_current_artifact_without_executable(
        self, artifact_server, settings, recorder
    ):
        body = zip_bytes({"readme.txt": "nothing to launch"})
        artifact_server.files["/tool.zip"] = body
        app = downloadable(artifact_server, settings)
        app.download_path.mkdir(parents=True)
        app.download_path_file.write_bytes(body)
        app.events.subscribe(recorder)

        assert await app.run() is False

        assert recorder.kinds == [EventKind.RUN_FAILED]
        assert "No executable found" in recorder.first(EventKind.RUN_FAILED).message
        assert not app.is_running()


class TestContentLength:
    """Tests for reading the artifact size from response headers."""

    @pytest.mark.parametrize(
        "headers, expected",
        [
            ({"Content-Length": "1024"}, 1024),
            ({"Content-Length": "0"}, 0),
            ({"Content-Length": "unknown"}, REMOTE_SIZE_UNKNOWN),
            ({"Content-Length": "-5"}, REMOTE_SIZE_UNKNOWN),
            ({}, REMOTE_SIZE_UNKNOWN),
        ],
    )
    def test_parse(self, headers, expected):
        assert content_length(headers) == expected

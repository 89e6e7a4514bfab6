"""Tests for the INI settings file and the JSON app catalog."""

import json

import pytest

from companion_hub.core.downloadable import AppDownloadable
from companion_hub.core.installable import AppInstallable
from companion_hub.core.local import AppLocal, AppOpen
from companion_hub.exceptions import ConfigurationError
from companion_hub.models.settings import AutoRunPolicy
from companion_hub.storage import AppCatalog, ConfigManager


class TestConfigManager:
    """Tests for creating, loading and migrating settings.ini."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "settings.ini"
        manager = ConfigManager(path)
        manager.save_new_config(
            {"apps_dir": tmp_path / "apps", "auto_run_policy": AutoRunPolicy.NEVER}
        )

        settings = ConfigManager(path).load_config()

        assert settings.apps_dir == tmp_path / "apps"
        assert settings.auto_run_policy == AutoRunPolicy.NEVER
        assert settings.max_monitor_entries == 300
        assert settings.log_json is False
        assert settings.config_path == str(tmp_path)
        assert settings.app_log_files is True
        assert settings.logs_dir == tmp_path / "logs"

    def test_cli_options_override_the_file(self, tmp_path):
        path = tmp_path / "settings.ini"
        ConfigManager(path).save_new_config({"apps_dir": tmp_path})

        settings = ConfigManager(path).load_config({"close_timeout": 1.5})

        assert settings.close_timeout == 1.5

    def test_missing_keys_are_migrated(self, tmp_path):
        path = tmp_path / "settings.ini"
        path.write_text(f"[DEFAULT]\napps_dir = {tmp_path}\nclose_timeout = 9\n")

        settings = ConfigManager(path).load_config()

        assert settings.close_timeout == 9.0
        content = path.read_text()
        assert "download_attempts = 3" in content
        assert "auto_run_policy = when_requested" in content

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="init") as exc_info:
            ConfigManager(tmp_path / "settings.ini").load_config()
        assert exc_info.value.file == str(tmp_path / "settings.ini")

    @pytest.mark.parametrize(
        "line",
        ["download_attempts = many", "download_attempts = 0", "auto_run_policy = later"],
    )
    def test_invalid_values(self, tmp_path, line):
        path = tmp_path / "settings.ini"
        path.write_text(f"[DEFAULT]\napps_dir = {tmp_path}\n{line}\n")

        with pytest.raises(ConfigurationError):
            ConfigManager(path).load_config()


CATALOG = {
    "apps": [
        {"kind": "local", "name": "editor", "description_short": "Text editor"},
        {"kind": "open", "name": "docs", "default_value": "https://example.com/docs"},
        {
            "kind": "downloadable",
            "name": "tool",
            "download_url": "https://example.com/tool.zip",
            "configuration": {
                "prefix": "--",
                "delimiter": "=",
                "arguments": [
                    {"name": "port", "type": "int[1..65535]", "value": "8080"},
                    {"name": "session", "type": "string", "is_runtime_argument": True},
                ],
            },
        },
        {
            "kind": "installable",
            "name": "service",
            "download_url": "https://example.com/setup.msi",
            "executable": "service.exe",
            "default_path_executable": "/opt/service",
            "is_service": True,
        },
    ]
}


def write_catalog(path, data) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


class TestAppCatalog:
    """Tests for loading the catalog and writing values back."""

    def test_load_builds_one_runtime_per_kind(self, tmp_path, settings):
        path = tmp_path / "apps.json"
        write_catalog(path, CATALOG)

        apps = AppCatalog(path, settings).load()

        assert list(apps) == ["editor", "docs", "tool", "service"]
        assert isinstance(apps["editor"], AppLocal)
        assert isinstance(apps["docs"], AppOpen)
        assert type(apps["tool"]) is AppDownloadable
        assert isinstance(apps["service"], AppInstallable)
        assert apps["editor"].description_short == "Text editor"
        assert apps["docs"].resolve_executable() == "https://example.com/docs"
        assert apps["tool"].settings is settings
        assert not apps["service"].is_runnable()

    @pytest.mark.parametrize(
        "entry",
        [
            {"kind": "spaceship", "name": "x"},
            {"kind": "downloadable", "name": "x"},
            {"kind": "installable", "name": "x", "download_url": "https://e.com/a"},
            {"kind": "local", "name": "x", "unexpected": True},
            {
                "kind": "local",
                "name": "x",
                "configuration": {"arguments": [{"name": "a", "type": "int[1..x]"}]},
            },
        ],
    )
    def test_invalid_entries(self, tmp_path, settings, entry):
        path = tmp_path / "apps.json"
        write_catalog(path, {"apps": [entry]})

        with pytest.raises(ConfigurationError):
            AppCatalog(path, settings).load()

    def test_duplicate_names(self, tmp_path, settings):
        path = tmp_path / "apps.json"
        write_catalog(
            path,
            {"apps": [{"kind": "local", "name": "a"}, {"kind": "local", "name": "a"}]},
        )
        with pytest.raises(ConfigurationError, match="more than once"):
            AppCatalog(path, settings).load()

    def test_malformed_json(self, tmp_path, settings):
        path = tmp_path / "apps.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="parsing"):
            AppCatalog(path, settings).load()

    def test_missing_file(self, tmp_path, settings):
        with pytest.raises(ConfigurationError, match="init"):
            AppCatalog(tmp_path / "apps.json", settings).load()

    def test_save_values_round_trip(self, tmp_path, settings):
        path = tmp_path / "apps.json"
        write_catalog(path, CATALOG)
        catalog = AppCatalog(path, settings)
        apps = catalog.load()

        assert catalog.save_values(apps) is False

        apps["tool"].configuration.update_values({"port": "9090"})
        apps["tool"].configuration.apply_runtime_arguments({"session": "temp"})
        apps["editor"].configuration.update_values({"path-to-executable": "/usr/bin/vi"})
        assert catalog.save_values(apps) is True
        assert not apps["tool"].configuration.is_changed()

        reloaded = AppCatalog(path, settings).load()
        tool_arguments = reloaded["tool"].configuration
        assert tool_arguments.get_argument("port").value == "9090"
        assert tool_arguments.get_argument("session").value is None
        editor_arguments = reloaded["editor"].configuration
        assert editor_arguments.is_raw
        assert editor_arguments.get_argument("path-to-executable").value == "/usr/bin/vi"

    def test_clearing_a_value_removes_it(self, tmp_path, settings):
        path = tmp_path / "apps.json"
        write_catalog(path, CATALOG)
        catalog = AppCatalog(path, settings)
        apps = catalog.load()

        apps["tool"].configuration.update_values({"port": None})
        catalog.save_values(apps)

        saved = json.loads(path.read_text(encoding="utf-8"))
        port = saved["apps"][2]["configuration"]["arguments"][0]
        assert "value" not in port

    def test_write_empty(self, tmp_path, settings):
        path = tmp_path / "nested" / "apps.json"
        AppCatalog.write_empty(path)
        assert AppCatalog(path, settings).load() == {}

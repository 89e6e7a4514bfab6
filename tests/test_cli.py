"""Tests for the command-line interface."""

import json

import pytest
from typer.testing import CliRunner

from companion_hub import __version__
from companion_hub.cli.app import app

runner = CliRunner()


@pytest.fixture
def config_dir(tmp_path):
    result = runner.invoke(app, ["--config-dir", str(tmp_path), "init"])
    assert result.exit_code == 0, result.output
    return tmp_path


def invoke(config_dir, *args):
    return runner.invoke(app, ["--config-dir", str(config_dir), *args])


def write_apps(config_dir, apps):
    (config_dir / "apps.json").write_text(json.dumps({"apps": apps}), encoding="utf-8")


TOOL = {
    "kind": "local",
    "name": "tool",
    "configuration": {
        "prefix": "--",
        "delimiter": "=",
        "arguments": [
            {"name": "path", "type": "file", "required": True, "value": "/usr/bin/env"},
            {"name": "port", "type": "int[1..100]", "value": "50"},
        ],
    },
}


class TestCli:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_init_creates_files(self, config_dir):
        assert (config_dir / "settings.ini").is_file()
        assert json.loads((config_dir / "apps.json").read_text()) == {"apps": []}

    def test_list_empty_catalog(self, config_dir):
        result = invoke(config_dir, "list")
        assert result.exit_code == 0
        assert "empty" in result.output

    def test_list(self, config_dir):
        write_apps(config_dir, [TOOL])
        result = invoke(config_dir, "list")
        assert result.exit_code == 0
        assert "tool" in result.output

    def test_validate_success(self, config_dir):
        write_apps(config_dir, [TOOL])
        result = invoke(config_dir, "validate")
        assert result.exit_code == 0, result.output

    def test_validate_failure(self, config_dir):
        write_apps(config_dir, [TOOL, {"kind": "local", "name": "blank"}])
        result = invoke(config_dir, "validate")
        assert result.exit_code == 1
        assert "path-to-executable" in result.output

    def test_validate_unknown_app(self, config_dir):
        write_apps(config_dir, [TOOL])
        result = invoke(config_dir, "validate", "nope")
        assert result.exit_code == 1
        assert "Unknown app" in result.output

    def test_set_saves_values(self, config_dir):
        write_apps(config_dir, [TOOL])
        result = invoke(config_dir, "set", "tool", "port=75")
        assert result.exit_code == 0, result.output

        saved = json.loads((config_dir / "apps.json").read_text())
        assert saved["apps"][0]["configuration"]["arguments"][1]["value"] == "75"

    def test_set_rejects_unknown_argument(self, config_dir):
        write_apps(config_dir, [TOOL])
        result = invoke(config_dir, "set", "tool", "colour=blue")
        assert result.exit_code == 1

    def test_set_rejects_malformed_assignment(self, config_dir):
        write_apps(config_dir, [TOOL])
        result = invoke(config_dir, "set", "tool", "port")
        assert result.exit_code == 1

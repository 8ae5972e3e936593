"""Shared test fixtures and helpers for almig tests.

Provides:
- AL source helpers: al_source(), write_al()
- CliRunner fixtures: cli_runner, invoke_cli()
- Composable project fixtures: project -> base_path -> service
- JSON validation helpers: parse_json_output(), assert_json_envelope()
"""

from __future__ import annotations

import json
import os

import pytest
from click.testing import CliRunner

from almig.config import ENV_BASE_PATH, ENV_LOG_LEVEL, load_settings
from almig.events import IndexService

# ===========================================================================
# AL source helpers
# ===========================================================================


def al_source(object_type="table", object_id=50100, name="Item", body=None):
    """Minimal AL object text with a header line."""
    if body is None:
        body = "    fields\n    {\n        field(1; \"No.\"; Code[20]) { }\n    }\n"
    return f'{object_type} {object_id} "{name}"\n{{\n{body}}}\n'


def write_al(folder, object_type="table", object_id=50100, name="Item", file_name=None, body=None):
    """Write an AL object file into *folder* and return its path."""
    folder.mkdir(parents=True, exist_ok=True)
    if file_name is None:
        file_name = f"{object_type.capitalize()}{object_id}_{name.replace(' ', '_')}.al"
    path = folder / file_name
    path.write_text(al_source(object_type, object_id, name, body), encoding="utf-8")
    return path


def read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


# ===========================================================================
# CliRunner helpers
# ===========================================================================


@pytest.fixture
def cli_runner():
    """Provide a Click CliRunner for in-process CLI testing."""
    return CliRunner()


def invoke_cli(runner, args, cwd=None, json_mode=False):
    """Invoke the almig CLI via CliRunner.

    Args:
        runner: CliRunner instance
        args: list of CLI arguments (e.g. ["index"])
        cwd: directory to run in
        json_mode: if True, prepend --json flag
    Returns:
        click.testing.Result
    """
    from almig.cli import cli

    full_args = []
    if json_mode:
        full_args.append("--json")
    full_args.extend(args)

    old_cwd = os.getcwd()
    try:
        if cwd:
            os.chdir(str(cwd))
        result = runner.invoke(cli, full_args, catch_exceptions=False)
    finally:
        os.chdir(old_cwd)

    return result


# ===========================================================================
# JSON validation helpers
# ===========================================================================


def parse_json_output(result, command=None, exit_code=0):
    """Parse the JSON envelope a command wrote to stdout."""
    assert result.exit_code == exit_code, (
        f"Command {command or '?'} exited {result.exit_code}, expected {exit_code}:\n{result.output}"
    )
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        pytest.fail(f"Invalid JSON from {command or '?'}: {e}\nOutput was:\n{result.stdout[:500]}")


def assert_json_envelope(data, command=None):
    """Validate that a parsed JSON dict follows the almig envelope contract."""
    assert isinstance(data, dict), f"Expected dict, got {type(data)}"
    for key in ("schema", "schema_version", "command", "version", "summary"):
        assert key in data, f"Missing {key!r} key in envelope"
    assert "timestamp" in data.get("_meta", {}), "Missing 'timestamp' in _meta"
    if command:
        assert data["command"] == command, f"Expected command={command}, got {data['command']}"
    assert isinstance(data["summary"], dict)


# ===========================================================================
# Project fixtures
# ===========================================================================


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep the developer's environment from leaking into settings."""
    monkeypatch.delenv(ENV_BASE_PATH, raising=False)
    monkeypatch.delenv(ENV_LOG_LEVEL, raising=False)


@pytest.fixture
def project(tmp_path):
    """Project root with .almig/config.json pointing at ./upgraded.

    Layout::

        proj/
          .almig/config.json
          upgraded/            <- base path (index lives in upgraded/.index)
            src/               <- working AL files
            Tables/            <- legacy table exports
    """
    proj = tmp_path / "proj"
    (proj / ".almig").mkdir(parents=True)
    (proj / "upgraded" / "src").mkdir(parents=True)
    (proj / "upgraded" / "Tables").mkdir()
    config = {
        "basePath": "upgraded",
        "upgradedObjectFolders": {"table": "Tables", "default": "Misc"},
        "workingObjectFolders": {"table": "upgraded/src", "page": "upgraded/src"},
    }
    (proj / ".almig" / "config.json").write_text(json.dumps(config, indent=2), encoding="utf-8")
    return proj


@pytest.fixture
def base_path(project):
    return project / "upgraded"


@pytest.fixture
def src(base_path):
    return base_path / "src"


@pytest.fixture
def settings(project):
    return load_settings(project)


@pytest.fixture
def service(settings):
    return IndexService(settings)

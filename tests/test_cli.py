"""End-to-end command tests through typer's CliRunner."""

from __future__ import annotations

import json
import shutil
import subprocess

import pytest
from typer.testing import CliRunner

from projman.cli.app import app

runner = CliRunner()


@pytest.fixture
def home(tmp_path, monkeypatch):
    h = tmp_path / "pm-home"
    monkeypatch.setenv("PM_HOME", str(h))
    monkeypatch.setenv("PM_MACHINE_ID", "test-machine")
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.setenv("VISUAL", "true")
    return h


@pytest.fixture
def folders(tmp_path):
    out = {}
    for name in ("api", "web", "apiary"):
        p = tmp_path / "code" / name
        p.mkdir(parents=True)
        out[name] = p
    return out


def _registry(home):
    return json.loads((home / "registry.json").read_text(encoding="utf-8"))


def _invoke(*args, **kwargs):
    return runner.invoke(app, list(args), **kwargs)


def test_version():
    result = _invoke("--version")
    assert result.exit_code == 0
    assert "pm" in result.output


def test_no_args_prints_command_table(home):
    result = _invoke()
    assert result.exit_code == 0
    assert "pm project add" in result.output


def test_init_creates_registry(home):
    result = _invoke("init")
    assert result.exit_code == 0
    assert _registry(home)["projects"] == {}

    again = _invoke("init")
    assert again.exit_code == 0
    assert "already exists" in again.output


def test_add_and_list(home, folders):
    result = _invoke("project", "add", str(folders["api"]), "--tag", "rust", "--tag", "backend")
    assert result.exit_code == 0, result.output
    _invoke("project", "add", str(folders["web"]), "-t", "javascript")

    projects = list(_registry(home)["projects"].values())
    assert sorted(p["name"] for p in projects) == ["api", "web"]
    api = next(p for p in projects if p["name"] == "api")
    assert api["tags"] == ["rust", "backend"]
    assert api["is_git_repository"] is False

    listed = _invoke("project", "list", "--tags", "rust")
    assert listed.exit_code == 0
    assert "api" in listed.output
    assert "web" not in listed.output


def test_add_duplicate_name_fails_without_mutation(home, folders):
    _invoke("project", "add", str(folders["api"]))
    result = _invoke("project", "add", str(folders["web"]), "--name", "api")

    assert result.exit_code == 1
    assert "already exists" in result.output
    assert len(_registry(home)["projects"]) == 1


def test_add_duplicate_path_fails(home, folders):
    _invoke("project", "add", str(folders["api"]))
    result = _invoke("project", "add", str(folders["api"]), "--name", "other")

    assert result.exit_code == 1
    assert len(_registry(home)["projects"]) == 1


def test_add_invalid_path_fails(home, tmp_path):
    result = _invoke("project", "add", str(tmp_path / "missing"))
    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_switch_records_access(home, folders):
    _invoke("project", "add", str(folders["api"]))

    _invoke("project", "switch", "api")
    result = _invoke("project", "switch", "api")

    assert result.exit_code == 0, result.output
    assert "accessed 2 times" in result.output
    assert result.output.strip().splitlines()[-1] == str(folders["api"].resolve())

    machines = _registry(home)["machine_metadata"]
    (record,) = machines["test-machine"]["access"].values()
    assert record["access_count"] == 2


def test_switch_unknown_name_suggests(home, folders):
    _invoke("project", "add", str(folders["apiary"]))
    _invoke("project", "add", str(folders["web"]))

    result = _invoke("project", "switch", "apix")

    assert result.exit_code == 1
    assert "not found" in result.output
    assert "apiary" in result.output
    assert "web" not in result.output.split("Did you mean:")[-1]


def test_show_includes_access_stats(home, folders):
    _invoke("project", "add", str(folders["api"]), "-d", "The API")
    _invoke("project", "switch", "api")

    result = _invoke("project", "show", "api")

    assert result.exit_code == 0
    assert "The API" in result.output
    assert "1 here, 1 total" in result.output


def test_rename(home, folders):
    _invoke("project", "add", str(folders["api"]))
    result = _invoke("project", "rename", "api", "--name", "backend")

    assert result.exit_code == 0
    names = [p["name"] for p in _registry(home)["projects"].values()]
    assert names == ["backend"]


def test_remove_clears_access(home, folders):
    _invoke("project", "add", str(folders["api"]))
    _invoke("project", "switch", "api")

    result = _invoke("project", "remove", "api", "--yes")

    assert result.exit_code == 0
    data = _registry(home)
    assert data["projects"] == {}
    assert data["machine_metadata"]["test-machine"]["access"] == {}


def test_remove_can_be_cancelled(home, folders):
    _invoke("project", "add", str(folders["api"]))
    result = _invoke("project", "remove", "api", input="n\n")

    assert result.exit_code == 0
    assert len(_registry(home)["projects"]) == 1


def test_list_empty_registry(home):
    result = _invoke("project", "list")
    assert result.exit_code == 0
    assert "No projects yet" in result.output


def test_config_set_and_show(home):
    result = _invoke("config", "set", "recent_projects_limit", "3")
    assert result.exit_code == 0
    assert _registry(home)["settings"]["recent_projects_limit"] == 3

    shown = _invoke("config", "show")
    assert "recent_projects_limit" in shown.output
    assert "test-machine" in shown.output


def test_config_set_rejects_unknown_key(home):
    result = _invoke("config", "set", "colour", "red")
    assert result.exit_code == 1
    assert "Unknown setting" in result.output


def test_refresh_waits_for_units(home, folders):
    _invoke("project", "add", str(folders["api"]))
    result = _invoke("project", "refresh")
    assert result.exit_code == 0
    assert "Refreshed 1 project(s)" in result.output


def test_switch_opens_editor_in_project(home, folders, monkeypatch):
    monkeypatch.setenv("VISUAL", "code -w")
    calls = []

    def fake_run(cmd, cwd=None):
        calls.append((cmd, cwd))
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr("projman.projects.commands.subprocess.run", fake_run)
    _invoke("project", "add", str(folders["api"]))

    result = _invoke("project", "switch", "api")

    path = str(folders["api"].resolve())
    assert result.exit_code == 0, result.output
    assert calls == [(["code", "-w", path], path)]


def test_switch_no_editor_skips_launch(home, folders, monkeypatch):
    calls = []
    monkeypatch.setattr("projman.projects.commands.subprocess.run", lambda *a, **k: calls.append(a))
    _invoke("project", "add", str(folders["api"]))

    result = _invoke("project", "switch", "api", "--no-editor")

    assert result.exit_code == 0
    assert calls == []
    assert result.output.strip().splitlines()[-1] == str(folders["api"].resolve())


def test_switch_with_missing_editor_still_succeeds(home, folders, monkeypatch):
    monkeypatch.setenv("VISUAL", "pm-test-no-such-editor")
    _invoke("project", "add", str(folders["api"]))

    result = _invoke("project", "switch", "api")

    assert result.exit_code == 0
    assert "Could not start editor" in result.output
    (record,) = _registry(home)["machine_metadata"]["test-machine"]["access"].values()
    assert record["access_count"] == 1


def test_add_bare_name_resolves_under_projects_root(home, folders):
    root = folders["api"].parent
    assert _invoke("config", "set", "projects_root_dir", str(root)).exit_code == 0

    result = _invoke("project", "add", "web")

    assert result.exit_code == 0, result.output
    (project,) = _registry(home)["projects"].values()
    assert project["path"] == str(folders["web"].resolve())


def test_list_recent_uses_recent_projects_limit(home, folders):
    _invoke("project", "add", str(folders["api"]))
    _invoke("project", "add", str(folders["web"]))
    _invoke("config", "set", "recent_projects_limit", "1")

    capped = _invoke("project", "list", "--recent", "1w")
    assert capped.exit_code == 0
    assert "Projects (1)" in capped.output

    explicit = _invoke("project", "list", "--recent", "1w", "--limit", "2")
    assert "Projects (2)" in explicit.output

    unfiltered = _invoke("project", "list")
    assert "Projects (2)" in unfiltered.output


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_show_prints_git_status_when_enabled(home, tmp_path):
    repo = tmp_path / "repo"
    subprocess.run(["git", "init", "-q", str(repo)], check=True)
    (repo / "README.md").write_text("hi\n", encoding="utf-8")
    git = ["git", "-C", str(repo), "-c", "user.name=Test", "-c", "user.email=test@example.com"]
    subprocess.run([*git, "add", "README.md"], check=True)
    subprocess.run([*git, "commit", "-q", "-m", "init"], check=True)
    subprocess.run([*git, "checkout", "-q", "-b", "trunk"], check=True)
    subprocess.run([*git, "remote", "add", "origin", "https://example.com/repo.git"], check=True)

    _invoke("project", "add", str(repo))
    hidden = _invoke("project", "show", "repo")
    assert "branch:" not in hidden.output

    _invoke("config", "set", "show_git_status", "true")
    result = _invoke("project", "show", "repo")

    assert result.exit_code == 0, result.output
    assert "branch: trunk" in result.output
    assert "status: clean" in result.output
    assert "remote: https://example.com/repo.git" in result.output

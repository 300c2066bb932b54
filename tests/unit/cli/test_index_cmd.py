"""Tests for lodestar index."""

from __future__ import annotations

from typer.testing import CliRunner

from lodestar.cli.main import app

from conftest import FakeEmbeddings

runner = CliRunner()


def _workspace(tmp_path):
    ws = tmp_path / "ws"
    ws.mkdir()
    (ws / "main.py").write_text("print('hi')\n")
    (ws / "util.py").write_text("def add(a, b):\n    return a + b\n")
    return ws


def test_index_new_workspace(tmp_path, cli_env):
    ws = _workspace(tmp_path)
    result = runner.invoke(app, ["index", str(ws), "--db", str(cli_env)])
    assert result.exit_code == 0, result.output
    assert "Inserted" in result.output
    assert cli_env.exists()


def test_reindex_unchanged(tmp_path, cli_env):
    ws = _workspace(tmp_path)
    runner.invoke(app, ["index", str(ws), "--db", str(cli_env)])
    result = runner.invoke(app, ["index", str(ws), "--db", str(cli_env)])
    assert result.exit_code == 0, result.output
    assert "Unchanged" in result.output


def test_index_branch_option(tmp_path, cli_env):
    ws = _workspace(tmp_path)
    result = runner.invoke(app, ["index", str(ws), "--branch", "feature-x", "--db", str(cli_env)])
    assert result.exit_code == 0, result.output
    assert "feature-x" in result.output


def test_index_not_a_directory(tmp_path, cli_env):
    result = runner.invoke(app, ["index", str(tmp_path / "missing"), "--db", str(cli_env)])
    assert result.exit_code == 1
    assert "Not a directory" in result.output


def test_index_missing_api_key(tmp_path, cli_env, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    result = runner.invoke(app, ["index", str(_workspace(tmp_path)), "--db", str(cli_env)])
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_index_remote_unconfigured(tmp_path, cli_env):
    result = runner.invoke(app, ["index", str(_workspace(tmp_path)), "--remote", "--db", str(cli_env)])
    assert result.exit_code == 1
    assert "Remote index unavailable" in result.output


def test_index_model_mismatch(tmp_path, cli_env, monkeypatch):
    ws = _workspace(tmp_path)
    runner.invoke(app, ["index", str(ws), "--db", str(cli_env)])

    class OtherModel(FakeEmbeddings):
        model = "fake/other-8"

    monkeypatch.setattr("lodestar.cli.runtime.LiteLLMEmbeddings", lambda *a, **kw: OtherModel())
    result = runner.invoke(app, ["index", str(ws), "--db", str(cli_env)])
    assert result.exit_code == 1
    assert "mismatch" in result.output


def test_index_invalid_project_config(tmp_path, cli_env):
    ws = _workspace(tmp_path)
    (ws / "lodestar.yaml").write_text("embedding:\n  metric: dot\n")
    result = runner.invoke(app, ["index", str(ws), "--db", str(cli_env)])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_index_unsupported_host(tmp_path, cli_env, monkeypatch):
    ws = _workspace(tmp_path)
    (ws / "lodestar.yaml").write_text("host:\n  type: web\n  unsupported:\n    - [fake, web]\n")
    result = runner.invoke(app, ["index", str(ws), "--db", str(cli_env)])
    assert result.exit_code == 1
    assert "fake" in result.output

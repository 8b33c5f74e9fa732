"""Tests for the mindflow CLI."""

import json
import re
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from mindflow.application.config import AppConfig
from mindflow.infrastructure.persistence import (
    SqlRecordStore,
    create_store_engine,
    init_db,
)
from mindflow.interface.cli import app

runner = CliRunner()


def strip_ansi(text):
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a throwaway database and a missing session file."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("MINDFLOW_ACCESS_TOKEN", raising=False)
    db_path = tmp_path / "data" / "mindflow.db"
    monkeypatch.setenv("MINDFLOW_DATABASE_PATH", str(db_path))
    monkeypatch.setenv("MINDFLOW_SESSION_FILE", str(tmp_path / "session.json"))
    monkeypatch.setenv("MINDFLOW_LOG_DIR", str(tmp_path / "logs"))
    return db_path


@pytest.fixture
def seeded_db(cli_env, make_interaction, make_entry):
    engine = create_store_engine(cli_env)
    factory = init_db(engine)
    store = SqlRecordStore(factory)
    store.create(make_interaction())
    store.create(make_entry(word="serendipity"))
    engine.dispose()
    return cli_env


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    output = strip_ansi(result.stdout)
    for command in ("sync", "status", "review", "stats", "config", "serve"):
        assert command in output


def test_sync_command_help():
    result = runner.invoke(app, ["sync", "--help"])
    assert result.exit_code == 0
    output = strip_ansi(result.stdout)
    assert "--record" in output
    assert "--watch" in output


@patch("mindflow.interface.cli.resolve_config")
def test_config_show_masks_secrets(mock_resolve_config, tmp_path):
    mock_resolve_config.return_value = AppConfig(
        database_path=tmp_path / "m.db", access_token="very-secret"
    )

    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["database_path"] == str(tmp_path / "m.db")
    assert data["access_token"] == "**********"
    assert "very-secret" not in result.stdout


def test_invalid_configuration_exits_with_usage_error(cli_env, monkeypatch):
    monkeypatch.setenv("MINDFLOW_MAX_RETRIES", "0")

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 2
    assert "Invalid configuration" in result.output


def test_status_counts_records(seeded_db):
    result = runner.invoke(app, ["status", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["authenticated"] is False
    assert data["in_flight"] == 0
    assert data["due_words"] == 1
    assert data["interaction"]["pending"] == 1
    assert data["vocabulary"]["synced"] == 0


def test_status_text(seeded_db):
    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Signed in: no" in result.stdout
    assert "Words due: 1" in result.stdout


def test_review_due_lists_words(seeded_db):
    result = runner.invoke(app, ["review", "due"])

    assert result.exit_code == 0
    assert "serendipity" in result.stdout
    assert "1 word(s), about 1 min" in result.stdout

    as_json = json.loads(runner.invoke(app, ["review", "due", "--json"]).stdout)
    assert as_json[0]["word"] == "serendipity"
    assert as_json[0]["mastery"] == "New"


def test_review_due_empty(cli_env):
    result = runner.invoke(app, ["review", "due"])

    assert result.exit_code == 0
    assert "Nothing due." in result.stdout


def test_stats_commands(seeded_db):
    today = runner.invoke(app, ["stats", "today", "--json"])
    assert today.exit_code == 0
    assert json.loads(today.stdout)["words_added"] == 0

    streak = runner.invoke(app, ["stats", "streak"])
    assert streak.exit_code == 0
    assert "0 day(s)" in streak.stdout

    progress = runner.invoke(app, ["stats", "progress", "--json"])
    assert progress.exit_code == 0
    data = json.loads(progress.stdout)
    assert data["total_words"] == 1
    assert data["new_words"] == 1


def test_manual_sync_of_unknown_record(cli_env):
    result = runner.invoke(app, ["sync", "--record", "int_missing"])

    assert result.exit_code == 1
    assert "int_missing" in result.output


def test_manual_sync_requires_sign_in(seeded_db):
    result = runner.invoke(app, ["sync", "--record", "int_0001"])

    assert result.exit_code == 1
    assert "Sync failed" in result.output
    assert "sign in" in result.output


@patch("mindflow.main.run_sweep_logic", new_callable=AsyncMock)
@patch("mindflow.interface.cli.resolve_config")
def test_sync_runs_one_sweep(mock_resolve_config, mock_sweep):
    mock_resolve_config.return_value = MagicMock()
    mock_sweep.return_value = MagicMock(errors=0)

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 0
    mock_sweep.assert_awaited_once_with(mock_resolve_config.return_value)


@patch("mindflow.main.run_sweep_logic", new_callable=AsyncMock)
@patch("mindflow.interface.cli.resolve_config")
def test_sync_exits_nonzero_on_sweep_errors(mock_resolve_config, mock_sweep):
    mock_resolve_config.return_value = MagicMock()
    mock_sweep.return_value = MagicMock(errors=2)

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 1


@patch("mindflow.interface.cli.resolve_config")
def test_global_database_option_is_forwarded(mock_resolve_config, tmp_path):
    mock_resolve_config.return_value = AppConfig(database_path=":memory:")

    result = runner.invoke(app, ["-vv", "--database", str(tmp_path / "x.db"), "stats", "streak"])

    assert result.exit_code == 0
    overrides = mock_resolve_config.call_args[0][0]
    assert str(overrides["database_path"]) == str(tmp_path / "x.db")
    assert overrides["verbose"] == 2


def test_records_lists_sync_labels(seeded_db):
    result = runner.invoke(app, ["records", "--json"])

    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert [(row["id"], row["label"]) for row in rows] == [("int_0001", "local only")]

    text = runner.invoke(app, ["records", "--kind", "vocabulary"])
    assert text.exit_code == 0
    assert "voc_0001" in text.stdout
    assert "local only" in text.stdout


def test_records_empty(cli_env):
    result = runner.invoke(app, ["records"])

    assert result.exit_code == 0
    assert "No records." in result.stdout

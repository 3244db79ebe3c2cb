from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from timeline_export.app import AppState, app
from timeline_export.config import ConfigRepository, ExportSettings
from timeline_export.engine.resume import build_resume_payload
from timeline_export.infra import SQLiteManager, SQLiteResumeStore
from timeline_export.service import BackgroundService, RepositorySettingsStore


@pytest.fixture
def state(repository: ConfigRepository, monkeypatch: pytest.MonkeyPatch) -> AppState:
    storage = SQLiteManager()
    app_state = AppState(
        repository=repository,
        storage=storage,
        resume_store=SQLiteResumeStore(storage, repository.resume_store_path()),
        service=BackgroundService(RepositorySettingsStore(repository)),
    )
    monkeypatch.setattr("timeline_export.app.build_state", lambda verbose: app_state)
    return app_state


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _write_json(path: Path, payload) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_cli_merge(state: AppState, runner: CliRunner, tmp_path: Path) -> None:
    previous = _write_json(
        tmp_path / "previous.json",
        {"meta": {"username": "alice"}, "items": [{"id": "1"}, {"id": "2"}]},
    )
    new = _write_json(tmp_path / "new.json", {"items": [{"id": "2"}, {"id": "3"}]})
    output = tmp_path / "out"
    result = runner.invoke(app, ["merge", str(previous), str(new), "--output", str(output)])
    assert result.exit_code == 0, result.stdout
    assert "Merge result" in result.stdout
    files = list(output.glob("alice-posts-*.json"))
    assert len(files) == 1
    exported = json.loads(files[0].read_text(encoding="utf-8"))
    assert [item["id"] for item in exported["items"]] == ["1", "2", "3"]
    assert exported["meta"]["merge_info"] == {
        "previous_count": 2,
        "new_count": 2,
        "duplicates_removed": 1,
        "final_count": 3,
    }


def test_cli_merge_reports_invalid_json(state: AppState, runner: CliRunner, tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{nope", encoding="utf-8")
    result = runner.invoke(app, ["merge", str(broken), str(broken)])
    assert result.exit_code == 1
    assert "Invalid JSON" in result.stdout


def test_cli_replay(state: AppState, runner: CliRunner, tmp_path: Path, make_tweet, make_timeline_body) -> None:
    events = tmp_path / "events.jsonl"
    lines = [
        {"type": "response", "status": 200, "body": make_timeline_body([make_tweet("1"), make_tweet("2")])},
        {"type": "scroll"},
        {"type": "response", "status": 200, "body": make_timeline_body([make_tweet("3")])},
    ]
    events.write_text("\n".join(json.dumps(line) for line in lines) + "\n", encoding="utf-8")
    result = runner.invoke(app, ["replay", str(events), "--username", "alice", "--user-id", "1001"])
    assert result.exit_code == 0, result.stdout
    assert "Replay result" in result.stdout
    assert "completed" in result.stdout
    exported = list(state.repository.outputs_dir().glob("alice-posts-*.json"))
    assert len(exported) == 1


def test_cli_replay_rejects_unknown_event(state: AppState, runner: CliRunner, tmp_path: Path) -> None:
    events = tmp_path / "events.jsonl"
    events.write_text(json.dumps({"type": "teleport"}) + "\n", encoding="utf-8")
    result = runner.invoke(app, ["replay", str(events), "--username", "alice"])
    assert result.exit_code == 1
    assert "teleport" in result.stdout


def test_cli_resume_import_show_and_clear(state: AppState, runner: CliRunner, tmp_path: Path) -> None:
    export = _write_json(
        tmp_path / "export.json",
        {
            "meta": {"username": "alice"},
            "items": [
                {"id": "2", "created_at": "2024-03-05 10:00:00"},
                {"id": "1", "created_at": "2024-02-28 12:00:00"},
            ],
        },
    )
    result = runner.invoke(app, ["resume", "import", str(export)])
    assert result.exit_code == 0, result.stdout
    assert "Imported 2 items" in result.stdout
    assert "2024-02-29" in result.stdout

    listed = runner.invoke(app, ["resume", "show"])
    assert listed.exit_code == 0, listed.stdout
    assert "alice" in listed.stdout

    shown = runner.invoke(app, ["resume", "show", "alice"])
    assert "2 items" in shown.stdout

    cleared = runner.invoke(app, ["resume", "clear", "alice", "--yes"])
    assert cleared.exit_code == 0, cleared.stdout
    assert state.resume_store.load("alice") is None


def test_cli_resume_import_rejects_empty_file(state: AppState, runner: CliRunner, tmp_path: Path) -> None:
    export = _write_json(tmp_path / "empty.json", {"items": []})
    result = runner.invoke(app, ["resume", "import", str(export)])
    assert result.exit_code == 1
    assert "No tweets found" in result.stdout


def test_cli_resume_clear_can_be_declined(state: AppState, runner: CliRunner) -> None:
    state.resume_store.save(build_resume_payload("alice", [{"id": "1"}]))
    result = runner.invoke(app, ["resume", "clear"], input="n\n")
    assert result.exit_code == 0
    assert "Cancelled" in result.stdout
    assert state.resume_store.load("alice") is not None


def test_cli_settings_show_and_set(state: AppState, runner: CliRunner) -> None:
    shown = runner.invoke(app, ["settings", "show"])
    assert shown.exit_code == 0, shown.stdout
    assert "minimal_data" in shown.stdout

    updated = runner.invoke(app, ["settings", "set", "--full-data", "--max-count", "25"])
    assert updated.exit_code == 0, updated.stdout
    assert state.repository.load_settings() == ExportSettings(minimal_data=False, max_count=25)

    rejected = runner.invoke(app, ["settings", "set", "--max-count=-1"])
    assert rejected.exit_code == 1


def test_cli_log_commands(state: AppState, runner: CliRunner) -> None:
    listed = runner.invoke(app, ["log", "list"])
    assert listed.exit_code == 0, listed.stdout
    shown = runner.invoke(app, ["log", "show", "--tail", "5"])
    assert shown.exit_code == 0, shown.stdout

"""Typer CLI entrypoint for timeline-export."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository
from .engine.exporter import FileExporter
from .engine.resume import (
    MergeMetadata,
    build_consolidated_meta,
    build_resume_payload,
    merge_items,
    normalize_username,
    parse_resume_input,
)
from .engine.resume_import import build_resume_url, parse_resume_import
from .errors import ResumeImportError, TimelineExportError
from .infra import SQLiteManager, SQLiteResumeStore
from .logging_conf import available_session_logs, configure_logging, log_dir, tail_log
from .orchestrator import ExportSession, SessionEvent
from .service import BackgroundService, RepositorySettingsStore

app = typer.Typer(
    help="timeline-export command line tools",
    no_args_is_help=True,
    rich_markup_mode=None,
)
resume_app = typer.Typer(name="resume", help="Resume payload commands", no_args_is_help=True, rich_markup_mode=None)
settings_app = typer.Typer(name="settings", help="Export settings commands", no_args_is_help=True, rich_markup_mode=None)
log_app = typer.Typer(name="log", help="Log viewing commands", no_args_is_help=True, rich_markup_mode=None)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    storage: SQLiteManager
    resume_store: SQLiteResumeStore
    service: BackgroundService


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose)
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    storage = SQLiteManager()
    resume_store = SQLiteResumeStore(
        storage,
        repository.resume_store_path(),
        max_age_ms=global_config.resume.max_age_ms,
    )
    service = BackgroundService(RepositorySettingsStore(repository))
    return AppState(repository=repository, storage=storage, resume_store=resume_store, service=service)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ResumeImportError(f"File not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ResumeImportError(f"Invalid JSON in {path}: {exc}") from exc


def _render_merge_table(metadata: MergeMetadata, path: Path | None) -> Table:
    table = Table(title=f"Merge result · {metadata.username or 'unknown'}", box=box.SIMPLE_HEAD)
    table.add_column("Previous", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Duplicates removed", justify="right", style="yellow")
    table.add_column("Final", justify="right", style="green")
    table.add_column("Output", overflow="fold")
    table.add_row(
        str(metadata.previous_count),
        str(metadata.new_count),
        str(metadata.duplicates_removed),
        str(metadata.final_count),
        str(path) if path else "-",
    )
    return table


def _render_settings_table(settings: dict[str, Any]) -> Table:
    table = Table(title="Export settings", box=box.SIMPLE_HEAD)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in settings.items():
        table.add_row(key, str(value))
    return table


def _fail(message: str) -> NoReturn:
    console.print(message, style="red")
    raise typer.Exit(code=1)


app.add_typer(resume_app, name="resume", help="Inspect, import or clear resume payloads")
app.add_typer(settings_app, name="settings", help="Show or change export settings")
app.add_typer(log_app, name="log", help="View log files")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@app.command("merge", help="Merge a previous export with a new one, keeping the first copy of each id.")
def merge_command(
    ctx: typer.Context,
    previous: Path = typer.Argument(..., help="Previous export or resume file."),
    new: Path = typer.Argument(..., help="New export file."),
    username: Optional[str] = typer.Option(None, "--username", help="Override the username from meta."),
    output: Optional[Path] = typer.Option(None, "--output", help="Output directory (defaults to data/outputs)."),
    fmt: Optional[str] = typer.Option(None, "--format", help="json, jsonl or csv."),
) -> None:
    state = _get_state(ctx)
    try:
        previous_data = parse_resume_input(_load_json(previous))
        new_data = parse_resume_input(_load_json(new))
    except ResumeImportError as exc:
        _fail(str(exc))
    effective_username = normalize_username(username) or previous_data.username or new_data.username or "unknown"
    result = merge_items(previous_data.tweets, new_data.tweets, effective_username)
    now = datetime.now(timezone.utc).isoformat()
    new_meta = new_data.meta or {}
    meta = build_consolidated_meta(
        username=effective_username,
        started_at=str(new_meta.get("export_started_at") or now),
        completed_at=str(new_meta.get("export_completed_at") or now),
        new_collected_count=len(new_data.tweets),
        previous_collected_count=len(previous_data.tweets),
        collection_method="merge",
        responses_captured=0,
        previous_meta=previous_data.meta,
        merge=result.metadata,
    )
    settings = state.repository.load_settings()
    try:
        exporter = FileExporter(
            output or state.repository.outputs_dir(),
            effective_username,
            fmt=fmt or state.repository.load_global_config().output_format,
            include_replies=settings.include_replies,
        )
    except ValueError as exc:
        _fail(str(exc))
    exporter.set_meta(meta)
    exporter.export_many(result.items)
    exporter.close()
    console.print(_render_merge_table(result.metadata, exporter.path))


@app.command("replay", help="Replay a JSONL capture of interception events through an export session.")
def replay_command(
    ctx: typer.Context,
    events: Path = typer.Argument(..., help="JSONL file, one event per line."),
    username: str = typer.Option(..., "--username", help="Timeline owner."),
    user_id: Optional[str] = typer.Option(None, "--user-id", help="Only keep items authored by this id."),
    use_resume: bool = typer.Option(True, "--resume/--no-resume", help="Merge with a saved resume payload."),
) -> None:
    state = _get_state(ctx)
    if not events.exists():
        _fail(f"Events file not found: {events}")
    session = ExportSession(
        username,
        state.repository,
        resume_store=state.resume_store if use_resume else None,
        target_user_id=user_id or "unknown",
        collection_method="replay",
    )
    session.start()
    with events.open("r", encoding="utf-8") as stream:
        for line_number, line in enumerate(stream, start=1):
            if not line.strip():
                continue
            try:
                data = json.loads(line)
                if not isinstance(data, dict):
                    _fail(f"Line {line_number}: expected a JSON object")
                session.dispatch(SessionEvent.from_dict(data))
            except json.JSONDecodeError as exc:
                _fail(f"Line {line_number}: invalid JSON ({exc})")
            except TimelineExportError as exc:
                _fail(f"Line {line_number}: {exc}")
    result = session.finish()

    table = Table(title=f"Replay result · {result.username}", box=box.SIMPLE_HEAD)
    table.add_column("Status", style="cyan")
    table.add_column("Collected", justify="right", style="green")
    table.add_column("Responses", justify="right")
    table.add_column("Output", overflow="fold")
    table.add_row(
        result.status.value,
        str(len(result.items)),
        str(result.meta.get("scroll_responses_captured", 0)),
        str(result.path) if result.path else "-",
    )
    console.print(table)
    if result.merge is not None:
        console.print(_render_merge_table(result.merge.metadata, result.path))


@resume_app.command("show", help="Show saved resume payloads.")
def resume_show(
    ctx: typer.Context,
    username: Optional[str] = typer.Argument(None, help="Username (all payloads when omitted)."),
) -> None:
    state = _get_state(ctx)
    if username:
        payload = state.resume_store.load(username)
        if payload is None:
            console.print(f"No resume payload for `{username}`.", style="dim")
            return
        saved = datetime.fromtimestamp(payload.saved_at / 1000, tz=timezone.utc).isoformat()
        console.print(f"{payload.username} · {len(payload.tweets)} items · saved {saved}", style="cyan")
        if payload.meta:
            console.print_json(json.dumps(payload.meta, ensure_ascii=False))
        return
    rows = state.resume_store.list_usernames()
    if not rows:
        console.print("No resume payloads saved.", style="dim")
        return
    table = Table(title=f"Resume payloads · {len(rows)}", box=box.SIMPLE_HEAD)
    table.add_column("Username", style="green")
    table.add_column("Saved at")
    for name, saved_at in rows:
        table.add_row(name, datetime.fromtimestamp(saved_at / 1000, tz=timezone.utc).isoformat())
    console.print(table)


@resume_app.command("import", help="Import an export file as the resume payload for its user.")
def resume_import(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Export or resume JSON file."),
    username: Optional[str] = typer.Option(None, "--username", help="Used when the file has no meta username."),
) -> None:
    state = _get_state(ctx)
    try:
        details = parse_resume_import(_load_json(path), fallback_username=username)
    except ResumeImportError as exc:
        _fail(f"Cannot import {path}: {exc}")
    payload = build_resume_payload(details.username, details.tweets, meta=details.source_meta)
    if not state.resume_store.save(payload):
        _fail(f"Nothing to import from {path}.")
    console.print(
        f"Imported {len(details.tweets)} items for `{details.username}` (continue before {details.until_date}).",
        style="green",
    )
    console.print(build_resume_url(details.username, details.until_date), style="dim")


@resume_app.command("clear", help="Drop a resume payload, or all of them.")
def resume_clear(
    ctx: typer.Context,
    username: Optional[str] = typer.Argument(None, help="Username (all payloads when omitted)."),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    target = f"`{username}`" if username else "all users"
    if not yes and not typer.confirm(f"Clear resume payloads for {target}?", default=False):
        console.print("Cancelled.", style="yellow")
        raise typer.Exit(code=0)
    state.resume_store.clear(username)
    console.print(f"Resume payloads cleared for {target}.", style="green")


@settings_app.command("show", help="Show current export settings.")
def settings_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    response = state.service.dispatch({"type": "getSettings"})
    if response.get("success") is False:
        _fail(str(response.get("error")))
    console.print(_render_settings_table(response))


@settings_app.command("set", help="Change export settings; omitted options keep their value.")
def settings_set(
    ctx: typer.Context,
    minimal_data: Optional[bool] = typer.Option(
        None, "--minimal-data/--full-data", help="Drop the raw API object from each item."
    ),
    include_replies: Optional[bool] = typer.Option(
        None, "--include-replies/--exclude-replies", help="Keep replies to other users."
    ),
    max_count: Optional[int] = typer.Option(None, "--max-count", help="Stop after N items (0 = unlimited)."),
) -> None:
    state = _get_state(ctx)
    message: dict[str, Any] = {"type": "saveSettings"}
    if minimal_data is not None:
        message["minimal_data"] = minimal_data
    if include_replies is not None:
        message["include_replies"] = include_replies
    if max_count is not None:
        message["max_count"] = max_count
    response = state.service.dispatch(message)
    if response.get("success") is False:
        _fail(str(response.get("error")))
    console.print(_render_settings_table(state.service.dispatch({"type": "getSettings"})))


@log_app.command("list", help="List available session logs.")
def log_list() -> None:
    logs = list(available_session_logs())
    console.print("Log files:", style="cyan")
    if not logs:
        console.print("No session logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the most recent lines of a log.")
def log_show(
    session: Optional[str] = typer.Option(None, "--session", help="Username (global log when omitted)."),
    tail: int = typer.Option(100, "--tail", help="Number of lines."),
    errors: bool = typer.Option(False, "--errors", help="Show error.log instead.", is_flag=True),
) -> None:
    base_dir = log_dir()
    if session:
        path = base_dir / "sessions" / f"{normalize_username(session) or session}.log"
    else:
        path = base_dir / ("error.log" if errors else "export.log")
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()

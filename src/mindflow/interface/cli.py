"""MindFlow CLI: sync, review and stats commands over the local store."""

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import SecretStr
from pydantic import ValidationError as ConfigError

from mindflow.application.config import AppConfig, resolve_config
from mindflow.domain.errors import MindFlowError, NotFound
from mindflow.domain.models import RecordKind, SyncStatus

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="mindflow: local-first capture, sync and vocabulary review.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

review_app = typer.Typer(help="Spaced-repetition review.", no_args_is_help=True)
app.add_typer(review_app, name="review")

stats_app = typer.Typer(help="Learning statistics.", no_args_is_help=True)
app.add_typer(stats_app, name="stats")

config_app = typer.Typer(help="Manage mindflow configuration.")
app.add_typer(config_app, name="config")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
    database: Annotated[
        Path | None, typer.Option("--database", help="SQLite database file.")
    ] = None,
):
    """Global settings for mindflow."""
    ctx.ensure_object(dict)
    ctx.obj["verbose_bonus"] = verbose
    ctx.obj["database_path"] = database


def _resolve(ctx: typer.Context | None = None, **overrides: Any) -> AppConfig:
    if ctx is not None and ctx.obj:
        overrides.setdefault("database_path", ctx.obj.get("database_path"))
        overrides.setdefault("verbose", ctx.obj.get("verbose_bonus"))
    try:
        return resolve_config(overrides)
    except ConfigError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(2) from e


def _run(config: AppConfig, action: Callable[[Any], Any]) -> Any:
    """Build services, run ``action(services)`` (sync or async) and close them."""
    from mindflow.application.factory import build_services

    async def runner():
        services = build_services(config)
        try:
            result = action(services)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        finally:
            await services.aclose()

    return asyncio.run(runner())


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@app.command()
def sync(
    ctx: typer.Context,
    record: Annotated[
        str | None, typer.Option("--record", "-r", help="Manually sync one record by id.")
    ] = None,
    kind: Annotated[
        RecordKind, typer.Option("--kind", "-k", help="Kind of the record given with --record.")
    ] = RecordKind.INTERACTION,
    watch: Annotated[
        bool, typer.Option("--watch", help="Keep sweeping every sweep_interval_seconds.")
    ] = False,
):
    """[bold green]Sync[/bold green] pending records to the backend."""
    config = _resolve(ctx)

    if record:
        _manual_sync(config, kind, record)
        return

    if watch:
        from mindflow.main import run_periodic_sync

        stop = asyncio.Event()
        try:
            asyncio.run(run_periodic_sync(config, stop))
        except KeyboardInterrupt:
            typer.echo("Stopped.")
        return

    from mindflow.main import run_sweep_logic

    report = asyncio.run(run_sweep_logic(config))
    if report.errors:
        raise typer.Exit(1)


def _manual_sync(config: AppConfig, kind: RecordKind, record_id: str) -> None:
    async def action(services):
        return await services.coordinator.sync_record(kind, record_id, manual=True)

    try:
        outcome = _run(config, action)
    except NotFound as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from e
    except MindFlowError as e:
        typer.secho(f"Sync failed: {e}", fg="red", err=True)
        raise typer.Exit(1) from e

    if outcome.backend_id:
        typer.echo(f"{record_id}: {outcome.state.value} ({outcome.backend_id})")
    else:
        typer.echo(f"{record_id}: {outcome.state.value} ({outcome.skipped_reason})")


@app.command()
def status(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show how many records are pending, synced or failed."""
    config = _resolve(ctx)

    def action(services):
        from mindflow.domain.clock import utc_now

        return {
            "authenticated": services.auth.is_authenticated(),
            "in_flight": services.coordinator.in_flight,
            "due_words": services.store.due_count(utc_now()),
            **{
                kind.value: {
                    status.value: count
                    for status, count in services.store.counts_by_sync_status(kind).items()
                }
                for kind in RecordKind
            },
        }

    data = _run(config, action)
    if json_output:
        _echo_json(data)
        return

    typer.echo(f"Signed in: {'yes' if data['authenticated'] else 'no'}")
    for kind in RecordKind:
        counts = data[kind.value]
        typer.echo(
            f"{kind.value}: "
            + ", ".join(f"{counts[s.value]} {s.value}" for s in SyncStatus)
        )
    typer.echo(f"Words due: {data['due_words']}")


@app.command()
def records(
    ctx: typer.Context,
    kind: Annotated[
        RecordKind, typer.Option("--kind", "-k", help="Which records to list.")
    ] = RecordKind.INTERACTION,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max records.")] = 20,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List recent records with their sync label."""
    config = _resolve(ctx)

    def action(services):
        return [
            {
                "id": r.id,
                "label": services.coordinator.label_for(r),
                "retry_count": r.sync.retry_count,
                "sync_error": r.sync.sync_error,
                "created_at": r.created_at,
            }
            for r in services.store.list(kind, limit=limit)
        ]

    rows = _run(config, action)
    if json_output:
        _echo_json(rows)
        return

    if not rows:
        typer.echo("No records.")
        return
    for row in rows:
        line = f"{row['id']}  {row['label']:<12}"
        if row["sync_error"]:
            line += f"  {row['sync_error']} (attempt {row['retry_count']})"
        typer.echo(line)


# ---------------------------------------------------------------------------
# Review subgroup
# ---------------------------------------------------------------------------


@review_app.command("due")
def review_due(
    ctx: typer.Context,
    limit: Annotated[int | None, typer.Option("--limit", "-n", help="Max words.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List vocabulary due for review."""
    from mindflow.domain.repetition import estimate_review_minutes

    config = _resolve(ctx)
    entries = _run(config, lambda services: services.reviews.due_words(limit))

    if json_output:
        _echo_json(
            [
                {
                    "id": e.id,
                    "word": e.word,
                    "mastery": e.mastery.display_name,
                    "next_review_at": e.next_review_at,
                }
                for e in entries
            ]
        )
        return

    if not entries:
        typer.echo("Nothing due.")
        return
    for e in entries:
        typer.echo(f"{e.word:<24} {e.mastery.display_name:<10} {e.id}")
    typer.echo(f"{len(entries)} word(s), about {estimate_review_minutes(len(entries))} min")


# ---------------------------------------------------------------------------
# Stats subgroup
# ---------------------------------------------------------------------------


@stats_app.command("today")
def stats_today(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Today's learning activity."""
    config = _resolve(ctx)
    today = _run(config, lambda services: services.stats.get_or_create_today())

    if json_output:
        _echo_json(
            {
                "day": today.day.isoformat(),
                "words_added": today.words_added,
                "words_reviewed": today.words_reviewed,
                "correct_reviews": today.correct_reviews,
                "incorrect_reviews": today.incorrect_reviews,
                "study_time_seconds": today.study_time_seconds,
                "streak_days": today.streak_days,
            }
        )
        return

    typer.echo(f"{today.day}: {today.words_added} added, {today.words_reviewed} reviewed")
    typer.echo(
        f"Accuracy: {today.accuracy * 100:.0f}%  "
        f"Study time: {today.study_time_seconds // 60} min"
    )


@stats_app.command("streak")
def stats_streak(ctx: typer.Context):
    """Current streak of consecutive active days."""
    config = _resolve(ctx)
    streak = _run(config, lambda services: services.stats.calculate_streak())
    typer.echo(f"{streak} day(s)")


@stats_app.command("progress")
def stats_progress(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Vocabulary progress across all active words."""
    from dataclasses import asdict

    config = _resolve(ctx)
    progress = _run(
        config,
        lambda services: services.progress.summarize(services.store.list(RecordKind.VOCABULARY)),
    )

    if json_output:
        _echo_json(asdict(progress))
        return

    typer.echo(
        f"{progress.total_words} words: {progress.mastered_words} mastered, "
        f"{progress.learning_words} learning, {progress.new_words} new"
    )
    typer.echo(
        f"Mastery {progress.mastery_percentage:.0f}%  Accuracy {progress.accuracy:.0f}%  "
        f"Avg ease {progress.average_ease_factor:.2f}"
    )


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = _resolve()
    d = {
        k: str(v) if isinstance(v, (Path, SecretStr)) else v
        for k, v in config.model_dump().items()
    }
    typer.echo(json.dumps(d, indent=2))


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Port.")] = 8777,
):
    """Run the HTTP server with background sync."""
    import uvicorn

    uvicorn.run("mindflow.server:app", host=host, port=port)

"""CLI entrypoints for devtrail."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from devtrail.config import load_settings
from devtrail.errors import DevtrailError
from devtrail.events import Event
from devtrail.logging import configure_logging, get_logger
from devtrail.orchestrator.session import ExplorationResult, Explorer, build_explorer, read_final_answer
from devtrail.stream import create_stream
from devtrail.stream.export import write_audit_trail

app = typer.Typer(add_completion=False, help="Answer questions over a project's development history")
logger = get_logger(__name__)


async def _explore(explorer: Explorer, query: str, scope: str) -> tuple[ExplorationResult, list[Event]]:
    result = await explorer.explore(query, scope)
    return result, await explorer.get_audit_trail(result.session_id)


@app.command()
def run(
    query: str = typer.Argument(..., help="Question about the project's history."),
    scope: str = typer.Option(..., "--scope", "-s", help="Project id the search is scoped to"),
    history_file: Path | None = typer.Option(
        None,
        "--history-file",
        help="JSONL dump of interactions to search instead of DEVTRAIL_DATABASE_URL",
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the answer to this file"),
    artifacts_dir: Path | None = typer.Option(
        None,
        "--artifacts-dir",
        help="Artifacts directory (overrides DEVTRAIL_ARTIFACTS_DIR)",
    ),
) -> None:
    """Explore the history until the answer converges and print it."""

    settings = load_settings()
    if artifacts_dir is not None:
        settings.artifacts_dir = artifacts_dir

    configure_logging(settings.log_level)
    logger.info("CLI run requested")

    try:
        explorer = build_explorer(settings, history_file=history_file)
        result, events = asyncio.run(_explore(explorer, query, scope))
    except (DevtrailError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    trail = settings.artifacts_dir / result.session_id / "events.jsonl"
    write_audit_trail(trail, events)
    logger.info(
        "Session finished",
        extra={"session_id": result.session_id, "state": result.state.value, **result.stats.snapshot()},
    )

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result.answer, encoding="utf-8")
        typer.echo(str(output))
    else:
        typer.echo(result.answer)
    typer.echo(f"session: {result.session_id} ({result.state.value}), audit trail: {trail}", err=True)


@app.command()
def show(session_id: str = typer.Argument(..., help="Session id printed by `devtrail run`")) -> None:
    """Print the finalized answer of a session from the durable log."""

    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.redis_enabled:
        typer.echo("Error: `show` needs the durable log (DEVTRAIL_REDIS_ENABLED=true).", err=True)
        raise typer.Exit(code=1)

    try:
        answer = asyncio.run(read_final_answer(create_stream(session_id, settings)))
    except DevtrailError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    if answer is None:
        typer.echo(f"Session {session_id} has no finalized answer.", err=True)
        raise typer.Exit(code=1)
    typer.echo(answer)


if __name__ == "__main__":
    app()

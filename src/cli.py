"""
Command-line interface for event-scout.

Provides commands to ingest datasets, serve the ingest API, manage
extraction patterns and scrape runs, and run diagnostic checks.

Usage:
    event-scout init-db              # Initialize database
    event-scout seed-patterns        # Load the built-in extraction patterns
    event-scout ingest posts.json    # Run a dataset file through the pipeline
    event-scout serve                # Start the ingest API
    event-scout reclaim-stuck        # Fail runs whose heartbeat went stale
    event-scout suggestions list     # Review learned pattern suggestions
    event-scout health               # Check service health
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Event Scout - Turn social-media posts into structured events."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


def _load_dataset(path: Path) -> list[dict[str, Any]]:
    """Read dataset items from a JSON array or an object with an ``items`` list."""
    with path.open(encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("items", data.get("posts", []))
    if not isinstance(data, list):
        raise click.ClickException(f"{path} does not contain a list of posts")
    return [item for item in data if isinstance(item, dict)]


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from src.storage.database import Database
    from src.storage.repository import PostRepository

    async def run():
        db = Database()
        await db.connect()

        try:
            repo = PostRepository(db)
            await repo.create_tables()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command("seed-patterns")
def seed_patterns() -> None:
    """Load the built-in extraction patterns.

    Existing patterns with the same type and regex are left untouched,
    so the command is safe to re-run.
    """
    from src.extraction.patterns import default_patterns
    from src.extraction.repository import PatternRepository
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            patterns = default_patterns()
            seeded = await PatternRepository(db).seed(patterns)
            click.echo(f"Seeded {seeded} of {len(patterns)} built-in patterns")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.argument("dataset", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--batch-size", default=25, type=click.IntRange(1, 500), help="Posts per batch")
@click.option("--run-id", default=None, help="Run id to record the batches under")
@click.option("--force-import", is_flag=True, help="Reprocess unchanged posts and keep ended events")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def ingest(dataset: Path, batch_size: int, run_id: str | None, force_import: bool, metrics: bool) -> None:
    """Run a dataset file through the event pipeline.

    The file holds a JSON array of dataset items (or an object with an
    ``items`` list). Items are processed in batches that share one run.

    Example:
        event-scout ingest posts.json
        event-scout ingest posts.json --batch-size 50 --force-import
    """
    from pydantic import ValidationError

    from src.ingestion.schemas import BatchRequest, RawPostRecord
    from src.services.ingest_service import IngestService
    from src.storage.database import Database

    items = _load_dataset(dataset)
    posts: list[RawPostRecord] = []
    for index, item in enumerate(items):
        try:
            posts.append(RawPostRecord.from_dataset_item(item))
        except ValidationError as e:
            click.echo(click.style(f"  Skipping item {index}: {e.error_count()} validation errors", fg="yellow"))

    if not posts:
        click.echo("No valid posts found.")
        return

    chunks = [posts[i:i + batch_size] for i in range(0, len(posts), batch_size)]

    async def run():
        if metrics:
            get_metrics().start_server()

        db = Database()
        await db.connect()

        try:
            service = IngestService(db)
            current_run = run_id
            totals: dict[str, int] = {}

            for number, chunk in enumerate(chunks, start=1):
                batch = BatchRequest(
                    run_id=current_run,
                    batch_index=number,
                    total_batches=len(chunks),
                    dataset_id=dataset.name,
                    posts=chunk,
                )
                result = await service.process_batch(batch, force_import=force_import)
                current_run = result.run_id

                stats = result.progress.to_dict()
                for key, value in stats.items():
                    totals[key] = totals.get(key, 0) + value

                click.echo(
                    f"  Batch {number}/{len(chunks)} {result.status}: "
                    f"{stats['posts_added']} added, {stats['posts_updated']} updated, "
                    f"{stats['posts_rejected']} rejected, {stats['posts_skipped']} skipped, "
                    f"{stats['posts_failed']} failed"
                )
                if result.status != "completed":
                    click.echo(click.style(f"Run {current_run} stopped: {result.run_status}", fg="red"))
                    break

            click.echo(f"\nRun {current_run}")
            click.echo("-" * 40)
            for key, value in totals.items():
                click.echo(f"  {key:16s} {value}")

        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the ingest API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command("reclaim-stuck")
@click.option("--timeout", default=None, type=float, help="Seconds without heartbeat (default: settings)")
def reclaim_stuck(timeout: float | None) -> None:
    """Mark running runs with a stale heartbeat as failed.

    Example:
        event-scout reclaim-stuck
        event-scout reclaim-stuck --timeout 300
    """
    from src.runs.repository import RunRepository
    from src.storage.database import Database

    timeout = timeout or get_settings().stuck_run_timeout_seconds

    async def run():
        db = Database()
        await db.connect()

        try:
            reclaimed = await RunRepository(db).reclaim_stuck_runs(timeout)
            if not reclaimed:
                click.echo("No stuck runs found.")
                return
            click.echo(f"Reclaimed {len(reclaimed)} stuck runs:")
            for run_id in reclaimed:
                click.echo(f"  {run_id}")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--limit", default=20, help="Number of runs to show")
def runs(limit: int) -> None:
    """List the most recent scrape runs."""
    from src.runs.repository import RunRepository
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            recent = await RunRepository(db).list_recent(limit=limit)
            if not recent:
                click.echo("No runs found.")
                return

            click.echo(f"\n{'run':36s}  {'status':10s}  {'added':>5s} {'upd':>5s} {'rej':>5s} {'skip':>5s} {'fail':>5s}")
            for r in recent:
                color = {"completed": "green", "failed": "red", "cancelled": "yellow"}.get(r.status)
                click.echo(click.style(
                    f"{r.run_id:36s}  {r.status:10s}  {r.posts_added:5d} {r.posts_updated:5d} "
                    f"{r.posts_rejected:5d} {r.posts_skipped:5d} {r.posts_failed:5d}",
                    fg=color,
                ))
        finally:
            await db.close()

    asyncio.run(run())


@main.group()
def suggestions() -> None:
    """Pattern suggestion review commands."""


@suggestions.command("list")
@click.option("--status", "status", default="pending",
              type=click.Choice(["pending", "approved", "rejected"]), help="Suggestion status")
@click.option("--min-occurrences", default=None, type=int, help="Minimum times proposed (default: config)")
@click.option("--limit", default=50, help="Maximum suggestions to show")
def suggestions_list(status: str, min_occurrences: int | None, limit: int) -> None:
    """List pattern suggestions learned from AI extractions.

    Example:
        event-scout suggestions list
        event-scout suggestions list --min-occurrences 3
    """
    from src.storage.database import Database
    from src.training.config import TrainingConfig
    from src.training.repository import TrainingRepository

    if min_occurrences is None:
        min_occurrences = TrainingConfig().suggestion_min_occurrences if status == "pending" else 1

    async def run():
        db = Database()
        await db.connect()

        try:
            found = await TrainingRepository(db).list_suggestions(
                status=status, min_occurrences=min_occurrences, limit=limit
            )
            if not found:
                click.echo(f"No {status} suggestions found.")
                return

            for s in found:
                click.echo(f"\n{s.suggestion_id}  [{s.pattern_type}]  seen {s.occurrence_count}x")
                click.echo(f"  regex:  {s.suggested_regex}")
                click.echo(f"  value:  {s.correct_value}")
                click.echo(f"  sample: {s.sample_text[:120]}")
        finally:
            await db.close()

    asyncio.run(run())


async def _build_trainer(db: Any) -> Any:
    from src.extraction.patterns import PatternExtractor
    from src.extraction.repository import PatternRepository
    from src.extraction.store import PatternStore
    from src.training.repository import TrainingRepository
    from src.training.trainer import PatternTrainer

    patterns = PatternRepository(db)
    extractor = PatternExtractor(PatternStore(await patterns.list_active()))
    return PatternTrainer(patterns, TrainingRepository(db), extractor)


@suggestions.command("approve")
@click.argument("suggestion_id")
def suggestions_approve(suggestion_id: str) -> None:
    """Approve a suggestion, creating an active learned pattern."""
    from src.extraction.store import PatternCompileError
    from src.storage.database import Database

    async def run() -> int:
        db = Database()
        await db.connect()

        try:
            trainer = await _build_trainer(db)
            try:
                pattern = await trainer.approve_suggestion(suggestion_id)
            except PatternCompileError as e:
                click.echo(click.style(f"Suggested regex does not compile: {e}", fg="red"))
                return 1
            if pattern is None:
                click.echo(click.style(f"No pending suggestion {suggestion_id}", fg="red"))
                return 1
            click.echo(f"Created pattern {pattern.pattern_id} ({pattern.pattern_type})")
            return 0
        finally:
            await db.close()

    sys.exit(asyncio.run(run()))


@suggestions.command("reject")
@click.argument("suggestion_id")
def suggestions_reject(suggestion_id: str) -> None:
    """Reject a pending suggestion."""
    from src.storage.database import Database

    async def run() -> int:
        db = Database()
        await db.connect()

        try:
            trainer = await _build_trainer(db)
            if not await trainer.reject_suggestion(suggestion_id):
                click.echo(click.style(f"No pending suggestion {suggestion_id}", fg="red"))
                return 1
            click.echo(f"Rejected suggestion {suggestion_id}")
            return 0
        finally:
            await db.close()

    sys.exit(asyncio.run(run()))


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from src.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check collaborators
        from src.extraction.config import ExtractionConfig
        from src.venues.config import VenueConfig

        settings = get_settings()
        results["ingest_token_configured"] = settings.ingest_token_configured
        results["ai_configured"] = ExtractionConfig().ai_enabled
        results["geocoder_configured"] = bool(VenueConfig().geocoder_url)

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name == "postgres" and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()

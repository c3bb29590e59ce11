"""CLI entry point for twitter-list-rss."""

import logging
import threading
import time
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from twitter_list_rss import __version__
from twitter_list_rss.config import AppConfig, load_config
from twitter_list_rss.db import Database
from twitter_list_rss.errors import ConfigError, UpstreamError
from twitter_list_rss.monitoring.logging import setup_logging
from twitter_list_rss.scheduler import CURRENT_INTERVAL_KEY, EMPTY_POLLS_KEY, LAST_POLL_TIME_KEY
from twitter_list_rss.service import LAST_FEED_BUILD_KEY, FeedService

logger = logging.getLogger(__name__)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"twitter-list-rss {__version__}")
        raise typer.Exit()


app = typer.Typer(name="twitter-list-rss", help="Twitter List RSS: serve a Twitter list as an RSS feed")


@app.callback()
def main(
    version: Annotated[
        bool, typer.Option("--version", "-V", help="Show version and exit", callback=_version_callback, is_eager=True)
    ] = False,
) -> None:
    """Twitter List RSS: serve a Twitter list as an RSS feed."""


DEFAULT_CONFIG = Path("config.yaml")
DEFAULT_DB = Path("data/tweets.db")

ConfigOption = Annotated[Path, typer.Option("--config", "-c", help="Path to config.yaml")]
DbOption = Annotated[Path, typer.Option("--db", help="Path to SQLite database")]


def _load_config(config_path: Path) -> AppConfig:
    """Load config from file, warning if the file does not exist."""
    if config_path.exists():
        return load_config(config_path)
    load_dotenv(override=False)
    logger.warning("Config file %s not found, using defaults", config_path)
    return AppConfig()


def _build_service(cfg: AppConfig, db_path: Path, *, initialize: bool = True) -> FeedService:
    """Create a FeedService, exiting with code 1 on bad config or credentials."""
    try:
        service = FeedService(config=cfg, db_path=db_path)
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}")
        raise typer.Exit(code=1) from exc
    if initialize:
        try:
            service.initialize()
        except UpstreamError as exc:
            service.close()
            typer.echo(f"Failed to connect to Twitter: {exc}")
            raise typer.Exit(code=1) from exc
    return service


@app.command()
def serve(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = DEFAULT_DB,
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", help="Port")] = None,
) -> None:
    """Serve the RSS feed over HTTP and poll in the background."""
    cfg = _load_config(config)
    setup_logging(cfg.monitoring)

    # Fall back to config values when CLI flags are not provided
    resolved_host = host if host is not None else cfg.monitoring.host
    resolved_port = port if port is not None else cfg.monitoring.port

    from twitter_list_rss.web.api import create_app  # noqa: PLC0415

    service = _build_service(cfg, db)
    service.cleanup()
    try:
        import uvicorn  # noqa: PLC0415

        fastapi_app = create_app(service)
        threading.Thread(target=service.start_scheduler, name="scheduler", daemon=True).start()
        typer.echo(f"Server running on http://{resolved_host}:{resolved_port}")
        typer.echo(f"RSS feed available at: http://{resolved_host}:{resolved_port}/rss")
        uvicorn.run(fastapi_app, host=resolved_host, port=resolved_port, log_level=cfg.monitoring.log_level.lower())
    except ImportError:
        typer.echo("Serving requires optional dependencies: pip install twitter-list-rss[server]")
        raise typer.Exit(code=1)
    finally:
        service.close()


@app.command()
def run(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Run the adaptive polling loop without the HTTP server."""
    cfg = _load_config(config)
    setup_logging(cfg.monitoring)

    service = _build_service(cfg, db)
    service.cleanup()
    typer.echo(
        f"Starting scheduler (interval {cfg.scheduler.min_interval:g}-{cfg.scheduler.max_interval:g} minutes)"
    )
    try:
        service.start_scheduler()
        while service.scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        typer.echo("\nStopped.")
    finally:
        service.close()


@app.command()
def poll(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Run one poll cycle and report what was stored."""
    cfg = _load_config(config)
    setup_logging(cfg.monitoring)

    service = _build_service(cfg, db, initialize=False)
    try:
        result = service.poll_cycle()
    except UpstreamError as exc:
        typer.echo(f"Poll failed: {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        service.close()
    typer.echo(f"Fetched {result.new_item_count} new tweets ({result.total_items} stored)")


@app.command()
def status(
    db: DbOption = DEFAULT_DB,
) -> None:
    """Show stored tweets and the last persisted scheduler snapshot."""
    with Database(db) as store:
        typer.echo(f"Stored tweets: {store.count_items()}")
        typer.echo(f"Oldest tweet: {store.get_oldest_item_date() or '-'}")
        typer.echo(f"Last poll: {store.get_config(LAST_POLL_TIME_KEY) or 'never'}")
        interval = store.get_config(CURRENT_INTERVAL_KEY)
        typer.echo(f"Current interval: {f'{float(interval):.1f} minutes' if interval else '-'}")
        typer.echo(f"Consecutive empty polls: {store.get_config(EMPTY_POLLS_KEY) or 0}")
        typer.echo(f"Last feed build: {store.get_config(LAST_FEED_BUILD_KEY) or 'never'}")


@app.command()
def verify(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Check credentials and list access, then print the observed rate limits."""
    cfg = _load_config(config)
    setup_logging(cfg.monitoring)

    service = _build_service(cfg, db)
    try:
        typer.echo("Credentials: OK")
        info = service.list_info
        if info is None:
            typer.echo(f"List {cfg.resolved_list_id()}: not accessible")
            raise typer.Exit(code=1)
        typer.echo(f"List: {info.name} ({info.member_count} members, {info.follower_count} followers)")
        for endpoint, quota in service.ledger.snapshot().items():
            if quota.get("has_info"):
                typer.echo(f"  {endpoint}: {quota['remaining']}/{quota['limit']} remaining, resets {quota['reset_at']}")
    finally:
        service.close()


@app.command()
def cleanup(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = DEFAULT_DB,
    days: Annotated[int | None, typer.Option("--days", help="Retention window in days")] = None,
) -> None:
    """Delete tweets older than the retention window."""
    cfg = _load_config(config)
    setup_logging(cfg.monitoring)
    retention = days if days is not None else cfg.storage.retention_days

    with Database(db) as store:
        removed = store.cleanup_old_items(retention)
    typer.echo(f"Removed {removed} tweets older than {retention} days")

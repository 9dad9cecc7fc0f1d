"""CLI for plansync: run the API, prepare the database, validate configuration."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from plansync import __version__
from plansync.config import ConfigError, PlanSyncConfig, load_config
from plansync.core.logging import configure_logging

logger = logging.getLogger(__name__)

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to plansync.toml (defaults plus environment variables when omitted)",
)


def _load_or_exit(config_path: Path | None) -> PlanSyncConfig:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """plansync: AI plan generation with calendar sync."""


@cli.command()
@_config_option
@click.option("--host", default=None, help="Bind address (overrides [server].host)")
@click.option("--port", type=int, default=None, help="Bind port (overrides [server].port)")
def serve(config_path: Path | None, host: str | None, port: int | None) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from plansync.api.app import create_app

    config = _load_or_exit(config_path)
    if not config.database.dsn:
        click.echo("Configuration error: [database].dsn or DATABASE_URL is required", err=True)
        sys.exit(1)
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=Path(config.logging.log_root) if config.logging.log_root else None,
    )

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    logger.info("Starting plansync API on %s:%d", bind_host, bind_port)
    uvicorn.run(create_app(config), host=bind_host, port=bind_port, log_config=None)


@cli.command("init-db")
@_config_option
def init_db(config_path: Path | None) -> None:
    """Create the calendar credential table if it does not exist."""
    from plansync.db import Database

    config = _load_or_exit(config_path)
    configure_logging(level=config.logging.level, fmt=config.logging.format)

    async def _run() -> None:
        database = Database(config.database)
        try:
            await database.ensure_schema()
        finally:
            await database.close()

    try:
        asyncio.run(_run())
    except ValueError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)
    click.echo("Database schema is up to date.")


@cli.command("check-config")
@_config_option
def check_config(config_path: Path | None) -> None:
    """Validate configuration and print a summary (secrets are never shown)."""
    config = _load_or_exit(config_path)

    click.echo(f"server:    {config.server.host}:{config.server.port}")
    click.echo(f"logging:   level={config.logging.level} format={config.logging.format}")
    click.echo(f"database:  {'configured' if config.database.dsn else 'MISSING'}")
    click.echo(
        f"planning:  {config.planning.provider} model={config.planning.model} "
        f"api_key={'set' if config.planning.api_key else 'MISSING'} "
        f"weekly_span_days={config.planning.weekly_span_days}"
    )
    click.echo(
        f"sync:      default_provider={config.sync.default_provider} "
        f"refresh_margin={config.sync.refresh_margin_seconds}s"
    )
    for name, provider in sorted(config.providers.items()):
        state = "configured" if provider.is_configured else "not configured"
        click.echo(f"provider:  {name:<8} {state}")

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from pymongo.errors import PyMongoError
from rich.console import Console

from mongo_lazy_schema import __version__
from mongo_lazy_schema.config import DEFAULT_CONFIG_PATH, RuntimeConfig, load_runtime_config, write_default_config
from mongo_lazy_schema.db import get_motor_client
from mongo_lazy_schema.exceptions import LazySchemaError
from mongo_lazy_schema.loader import load_schema_object
from mongo_lazy_schema.reporting import print_json, print_version_table
from mongo_lazy_schema.sweep import touch_collection, version_histogram


app = typer.Typer(no_args_is_help=True)
console = Console()


def _load_config(uri: Optional[str], db: Optional[str]) -> RuntimeConfig:
    """Settings with ``--uri``/``--db`` layered on top, logging configured from them."""
    config = load_runtime_config(DEFAULT_CONFIG_PATH, mongodb_uri=uri, default_db=db)
    level = config.log_level.upper()
    logging.basicConfig(level=level)
    logging.getLogger("mongo_lazy_schema").setLevel(level)
    return config


def _fail(exc: Exception) -> None:
    console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code=1)


@app.command()
def version() -> None:
    console.print(f"mongo-lazy-schema v{__version__}")


@app.command()
def init(path: Optional[Path] = typer.Option(None, "--path", help="Path for config file")) -> None:
    config_path = path or DEFAULT_CONFIG_PATH
    if config_path.exists():
        console.print(f"Config already exists at {config_path}")
        raise typer.Exit(code=0)

    write_default_config(config_path)
    console.print(f"Created config at {config_path}")


@app.command()
def status(
    schema: str = typer.Option(..., "--schema", help="Schema reference as module:attribute"),
    uri: Optional[str] = typer.Option(None, "--uri", help="MongoDB URI"),
    db: Optional[str] = typer.Option(None, "--db", help="Database name"),
    collection: str = typer.Option(..., "--collection", help="Collection name"),
    output: str = typer.Option("table", "--output", help="Output format: table or json"),
) -> None:
    """Show how many documents sit at each schema version."""
    try:
        lazy_schema = load_schema_object(schema)
        config = _load_config(uri, db)
    except LazySchemaError as exc:
        _fail(exc)

    async def _run() -> None:
        client = get_motor_client(config.mongodb_uri)
        try:
            result = await version_histogram(client, config.default_db, collection, lazy_schema)
        finally:
            client.close()
        if output == "json":
            print_json(result)
        else:
            print_version_table(result)

    try:
        asyncio.run(_run())
    except (LazySchemaError, PyMongoError) as exc:
        _fail(exc)


@app.command()
def touch(
    schema: str = typer.Option(..., "--schema", help="Schema reference as module:attribute"),
    uri: Optional[str] = typer.Option(None, "--uri", help="MongoDB URI"),
    db: Optional[str] = typer.Option(None, "--db", help="Database name"),
    collection: str = typer.Option(..., "--collection", help="Collection name"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Documents per batch"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Count stale documents without writing"),
    rate_limit_ms: Optional[int] = typer.Option(None, "--rate-limit-ms", help="Delay between batches"),
    resume_from: Optional[str] = typer.Option(None, "--resume-from", help="Resume after this _id"),
) -> None:
    """Migrate every stale document of a collection now instead of on read."""
    try:
        lazy_schema = load_schema_object(schema)
        config = _load_config(uri, db)
    except LazySchemaError as exc:
        _fail(exc)

    async def _run() -> None:
        client = get_motor_client(config.mongodb_uri)
        try:
            result = await touch_collection(
                client,
                config.default_db,
                collection,
                lazy_schema,
                batch_size=batch_size or config.batch_size,
                dry_run=dry_run,
                rate_limit_ms=config.rate_limit_ms if rate_limit_ms is None else rate_limit_ms,
                resume_from=resume_from,
                ordered_writes=config.ordered_writes,
            )
        finally:
            client.close()
        print_json(result)

    try:
        asyncio.run(_run())
    except (LazySchemaError, PyMongoError) as exc:
        _fail(exc)


if __name__ == "__main__":
    app()

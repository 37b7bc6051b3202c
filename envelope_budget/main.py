from __future__ import annotations

import sys

import typer
import uvicorn

from envelope_budget.config import get_settings
from envelope_budget.store.postgres import PostgresStore
from envelope_budget.utils.logging import configure_logging

app = typer.Typer(help="Envelope Budget API CLI.")


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"store={settings.store_backend} "
        f"pool=({settings.db_pool_min_size},{settings.db_pool_max_size}) "
        f"lock_timeout_ms={settings.db_lock_timeout_ms} | "
        f"api=http://{settings.api_host}:{settings.api_port}{settings.api_prefix}"
    )


@app.command("init-db")
def init_db(
    dsn: str | None = typer.Option(
        None,
        "--dsn",
        help="Optional DSN override for Postgres.",
    ),
) -> None:
    """
    Create the tables, indexes and the envelope_balances view (idempotent).
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    with PostgresStore.from_settings(settings, dsn=dsn) as store:
        store.create_schema()
    typer.echo("Schema applied.")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default from settings)."),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default from settings)."),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes (development)."),
) -> None:
    """
    Run the HTTP API with uvicorn.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    bind_host = host or settings.api_host
    bind_port = port or settings.api_port
    typer.echo(
        f"Serving on http://{bind_host}:{bind_port}{settings.api_prefix} "
        f"(store={settings.store_backend})."
    )
    uvicorn.run(
        "envelope_budget.api:create_app",
        factory=True,
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_config=None,
    )


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()

"""Logs subcommand: import, stats."""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError

from predpos.sources.snapshot import Snapshot
from predpos.storage.db import get_connection, init_schema
from predpos.storage.store import import_snapshot, store_stats

app = typer.Typer(help="Local event log and position store")


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    snapshot: Path = typer.Option(..., "--snapshot", "-s", help="JSON snapshot of logs and positions"),
) -> None:
    """Load a snapshot into the local store, replacing logs of the accounts it contains."""
    settings = ctx.obj["settings"]
    try:
        data = Snapshot.model_validate_json(snapshot.read_bytes())
    except ValidationError as e:
        typer.echo(f"Invalid snapshot: {e}", err=True)
        raise typer.Exit(1)
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        counts = import_snapshot(conn, data)
        typer.echo(f"Imported {counts['logs']} logs and {counts['positions']} position rows.")
    finally:
        conn.close()


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Show store statistics (log counts by bucket, accounts, positions)."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = store_stats(conn)
        typer.echo(f"Total logs: {s['total_logs']}")
        typer.echo(f"Accounts: {s['accounts']}")
        typer.echo(f"Position rows: {s['position_rows']}")
        for row in s["by_bucket"]:
            typer.echo(f"  {row['bucket']}  {row['count']}")
    finally:
        conn.close()

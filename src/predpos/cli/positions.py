"""Positions subcommand: adjust."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from pydantic import ValidationError

from predpos.errors import PredposError
from predpos.models.logs import LogOptions
from predpos.models.positions import encode_position
from predpos.positions.backends import AsyncBackend, BlockingBackend
from predpos.positions.pipeline import PositionPipeline
from predpos.sources.base import ThreadedPositionSource
from predpos.sources.rpc import AsyncRpcLogSource, RpcLogSource
from predpos.sources.snapshot import SnapshotSource
from predpos.storage.db import get_connection, init_schema
from predpos.storage.store import DuckDBSource

app = typer.Typer(help="Adjusted positions")


@app.command("adjust")
def adjust(
    ctx: typer.Context,
    account: str = typer.Option(..., "--account", "-a", help="Trader account address"),
    market: str | None = typer.Option(None, "--market", "-m", help="Only this market ID"),
    snapshot: Path | None = typer.Option(
        None, "--snapshot", "-s", help="JSON snapshot to read logs and positions from (default: local store)"
    ),
    rpc: bool = typer.Option(False, "--rpc", help="Fetch logs with eth_getLogs instead"),
    from_block: int | None = typer.Option(None, "--from-block", help="First block of the log range"),
    to_block: int | None = typer.Option(None, "--to-block", help="Last block of the log range"),
    use_async: bool = typer.Option(False, "--async", help="Fetch the log buckets concurrently"),
) -> None:
    """Print adjusted positions per market as JSON."""
    settings = ctx.obj["settings"]
    options = LogOptions(market=market, from_block=from_block, to_block=to_block)
    conn = None
    try:
        if snapshot is not None:
            source = SnapshotSource.from_file(snapshot)
        else:
            conn = get_connection(settings.db_path)
            init_schema(conn)
            source = DuckDBSource(conn)
        if use_async:
            if rpc:
                backend = AsyncBackend(
                    AsyncRpcLogSource.from_settings(settings), ThreadedPositionSource(source)
                )
            else:
                backend = AsyncBackend.from_blocking(source, source)
            adjusted = asyncio.run(PositionPipeline(backend).get_adjusted_positions(account, options))
        else:
            log_source = RpcLogSource.from_settings(settings) if rpc else source
            adjusted = PositionPipeline(BlockingBackend(log_source, source)).get_adjusted_positions(
                account, options
            )
    except (PredposError, ValidationError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        if conn is not None:
            conn.close()
    output = {market_id: encode_position(position) for market_id, position in adjusted.items()}
    typer.echo(json.dumps(output, indent=2))

"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

MEMORY_DB = ":memory:"

SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS event_log_seq START 1;

-- Event logs per account and bucket, payload kept verbatim
CREATE TABLE IF NOT EXISTS event_logs (
    id              BIGINT PRIMARY KEY DEFAULT nextval('event_log_seq'),
    account         VARCHAR NOT NULL,
    bucket          VARCHAR NOT NULL,
    market_id       VARCHAR,
    block_number    BIGINT,
    payload         JSON NOT NULL
);

-- Raw on-chain positions (decimal strings, as reported by the chain).
-- One row per (account, market_id, outcome_id), kept by import_snapshot
CREATE TABLE IF NOT EXISTS positions (
    account         VARCHAR NOT NULL,
    market_id       VARCHAR NOT NULL,
    outcome_id      VARCHAR NOT NULL,
    balance         VARCHAR NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Open the position store. ":memory:" gives a throwaway in-process store."""
    if str(db_path) == MEMORY_DB:
        return duckdb.connect(MEMORY_DB)
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create the event_logs and positions tables. Safe to call on every open."""
    for stmt in filter(None, (s.strip() for s in SCHEMA_SQL.split(";"))):
        conn.execute(stmt)

"""Snapshot import, store statistics, and a DuckDB-backed log/position source."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from predpos.models.logs import MARKET_TOPIC_INDEX, EventLog, LogOptions, block_number
from predpos.sources.snapshot import Snapshot

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def _account_key(account: str) -> str:
    return account.strip().lower()


def _log_row(account: str, bucket: str, entry: EventLog) -> tuple[str, str, str | None, int | None, str]:
    index = MARKET_TOPIC_INDEX.get(bucket)
    market_id = entry.topics[index] if index is not None and len(entry.topics) > index else None
    payload = entry.model_dump_json(by_alias=True, exclude_none=True)
    return (account, bucket, market_id, block_number(entry.block_number), payload)


def import_snapshot(conn: DuckDBPyConnection, snapshot: Snapshot) -> dict[str, int]:
    """Replace stored logs and positions for every account in the snapshot.

    All-or-nothing: a failed insert leaves the store as it was.
    """
    log_rows = [
        _log_row(_account_key(account), bucket, e)
        for account, buckets in snapshot.logs.items()
        for bucket, entries in buckets.items()
        for e in entries
        if e is not None
    ]
    # Account spellings that differ only in case collapse to one set of rows
    balances = {
        (_account_key(account), market_id, outcome_id): str(balance)
        for account, markets in snapshot.positions.items()
        for market_id, position in markets.items()
        for outcome_id, balance in position.items()
    }
    position_rows = [(*key, balance) for key, balance in balances.items()]
    conn.begin()
    try:
        for account in snapshot.logs:
            conn.execute("DELETE FROM event_logs WHERE account = ?", [_account_key(account)])
        for account in snapshot.positions:
            conn.execute("DELETE FROM positions WHERE account = ?", [_account_key(account)])
        if log_rows:
            conn.executemany(
                "INSERT INTO event_logs (account, bucket, market_id, block_number, payload) VALUES (?, ?, ?, ?, ?)",
                log_rows,
            )
        if position_rows:
            conn.executemany(
                "INSERT INTO positions (account, market_id, outcome_id, balance) VALUES (?, ?, ?, ?)",
                position_rows,
            )
    except Exception:
        conn.rollback()
        raise
    conn.commit()
    return {"logs": len(log_rows), "positions": len(position_rows)}


def store_stats(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Return store statistics: log counts by bucket, accounts, position rows."""
    total = conn.execute("SELECT COUNT(*) FROM event_logs").fetchone()[0]
    by_bucket = conn.execute(
        "SELECT bucket, COUNT(*) AS cnt FROM event_logs GROUP BY bucket ORDER BY bucket"
    ).fetchall()
    accounts = conn.execute("SELECT COUNT(DISTINCT account) FROM event_logs").fetchone()[0]
    position_rows = conn.execute("SELECT COUNT(*) FROM positions").fetchone()[0]
    return {
        "total_logs": total,
        "accounts": accounts,
        "position_rows": position_rows,
        "by_bucket": [{"bucket": r[0], "count": r[1]} for r in by_bucket],
    }


class DuckDBSource:
    """Blocking LogSource and PositionSource over the local store. One cursor per call."""

    def __init__(self, conn: DuckDBPyConnection) -> None:
        self.conn = conn

    def fetch_logs(self, bucket: str, account: str, options: LogOptions) -> list[EventLog]:
        conditions = ["account = ?", "bucket = ?"]
        params: list[Any] = [_account_key(account), bucket]
        if options.market:
            conditions.append("market_id = ?")
            params.append(options.market)
        lo, hi = block_number(options.from_block), block_number(options.to_block)
        if lo is not None:
            conditions.append("(block_number IS NULL OR block_number >= ?)")
            params.append(lo)
        if hi is not None:
            conditions.append("(block_number IS NULL OR block_number <= ?)")
            params.append(hi)
        sql = f"SELECT payload FROM event_logs WHERE {' AND '.join(conditions)} ORDER BY id ASC"
        cursor = self.conn.cursor()
        try:
            rows = cursor.execute(sql, params).fetchall()
        finally:
            cursor.close()
        return [
            EventLog.model_validate(json.loads(payload) if isinstance(payload, str) else payload)
            for (payload,) in rows
        ]

    def fetch_position(self, market_id: str, account: str) -> dict[str, str] | None:
        cursor = self.conn.cursor()
        try:
            rows = cursor.execute(
                "SELECT outcome_id, balance FROM positions WHERE account = ? AND market_id = ? ORDER BY outcome_id",
                [_account_key(account), market_id],
            ).fetchall()
        finally:
            cursor.close()
        return {outcome_id: balance for outcome_id, balance in rows} or None

"""JSON snapshot source - logs and raw positions captured ahead of time.

Snapshot layout::

    {
      "logs": {"<account>": {"shortAskBuyCompleteSets": [log, ...], ...}},
      "positions": {"<account>": {"<market_id>": {"0": "100", "1": "100"}}}
    }
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field

from predpos.models.logs import MARKET_TOPIC_INDEX, EventLog, LogOptions, log_in_range

log = structlog.get_logger(__name__)


class Snapshot(BaseModel):
    logs: dict[str, dict[str, list[EventLog | None]]] = Field(default_factory=dict)
    positions: dict[str, dict[str, dict[str, Any]]] = Field(default_factory=dict)


def _account_key(account: str) -> str:
    return account.strip().lower()


def log_matches(entry: EventLog, bucket: str, options: LogOptions) -> bool:
    """Apply the market filter and block range of options to one log."""
    if options.market:
        index = MARKET_TOPIC_INDEX.get(bucket)
        if index is not None and (len(entry.topics) <= index or entry.topics[index] != options.market):
            return False
    return log_in_range(entry, options)


class SnapshotSource:
    """Blocking LogSource and PositionSource over an in-memory snapshot."""

    def __init__(self, snapshot: Snapshot) -> None:
        self.logs = {_account_key(a): buckets for a, buckets in snapshot.logs.items()}
        self.positions = {_account_key(a): markets for a, markets in snapshot.positions.items()}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SnapshotSource:
        return cls(Snapshot.model_validate(raw))

    @classmethod
    def from_file(cls, path: str | Path) -> SnapshotSource:
        path = Path(path)
        snapshot = Snapshot.model_validate_json(path.read_bytes())
        log.info("snapshot_loaded", path=str(path), accounts=len(snapshot.logs))
        return cls(snapshot)

    def fetch_logs(self, bucket: str, account: str, options: LogOptions) -> list[EventLog]:
        entries = self.logs.get(_account_key(account), {}).get(bucket, [])
        return [e for e in entries if e is not None and log_matches(e, bucket, options)]

    def fetch_position(self, market_id: str, account: str) -> dict[str, Any] | None:
        return self.positions.get(_account_key(account), {}).get(market_id)

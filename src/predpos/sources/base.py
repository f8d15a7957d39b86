"""Collaborator contracts - where event logs and raw on-chain positions come from."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Protocol, Sequence

from predpos.models.logs import EventLog, LogOptions

# Raw position as returned by a source: outcome ID -> decimal string, or None when unavailable.
RawPosition = Mapping[str, Any] | None


class LogSource(Protocol):
    """Blocking log source: one call per log bucket."""

    def fetch_logs(self, bucket: str, account: str, options: LogOptions) -> Sequence[EventLog]: ...


class PositionSource(Protocol):
    """Blocking source of raw on-chain positions."""

    def fetch_position(self, market_id: str, account: str) -> RawPosition: ...


class AsyncLogSource(Protocol):
    async def fetch_logs(
        self, bucket: str, account: str, options: LogOptions
    ) -> Sequence[EventLog]: ...


class AsyncPositionSource(Protocol):
    async def fetch_position(self, market_id: str, account: str) -> RawPosition: ...


class ThreadedLogSource:
    """Runs a blocking LogSource in a worker thread."""

    def __init__(self, source: LogSource) -> None:
        self.source = source

    async def fetch_logs(self, bucket: str, account: str, options: LogOptions) -> Sequence[EventLog]:
        return await asyncio.to_thread(self.source.fetch_logs, bucket, account, options)


class ThreadedPositionSource:
    """Runs a blocking PositionSource in a worker thread."""

    def __init__(self, source: PositionSource) -> None:
        self.source = source

    async def fetch_position(self, market_id: str, account: str) -> RawPosition:
        return await asyncio.to_thread(self.source.fetch_position, market_id, account)

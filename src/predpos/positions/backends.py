"""Fetch backends - resolve the pipeline's fetch requests, blocking or async.

The pipeline is written once as a generator that yields FetchLogs / FetchPosition
requests and receives their results. A backend drives the generator: BlockingBackend
calls blocking sources directly, AsyncBackend awaits async sources.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Generator, TypeVar

import structlog

from predpos.errors import LogFetchError, PositionFetchError
from predpos.models.logs import BUCKETS, EventLog, LogOptions
from predpos.sources.base import (
    AsyncLogSource,
    AsyncPositionSource,
    LogSource,
    PositionSource,
    RawPosition,
    ThreadedLogSource,
    ThreadedPositionSource,
)

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FetchLogs:
    """Request all three log buckets for an account."""

    account: str
    options: LogOptions


@dataclass(frozen=True)
class FetchPosition:
    """Request the raw on-chain position of an account in one market."""

    market_id: str
    account: str


Request = FetchLogs | FetchPosition
Steps = Generator[Request, Any, T]
LogsByBucket = dict[str, list[EventLog]]


def _log_fetch_error(bucket: str, request: FetchLogs, exc: Exception) -> LogFetchError:
    log.warning("log_fetch_failed", bucket=bucket, account=request.account, error=str(exc))
    return LogFetchError(f"couldn't load {bucket} logs for {request.account}: {exc}", bucket)


def _position_fetch_error(request: FetchPosition, exc: Exception) -> PositionFetchError:
    log.warning(
        "position_fetch_failed", market_id=request.market_id, account=request.account, error=str(exc)
    )
    return PositionFetchError(
        f"couldn't load position in {request.market_id}: {exc}", request.market_id
    )


class BlockingBackend:
    """Resolves requests with blocking sources. run() returns the result directly."""

    def __init__(self, log_source: LogSource | None, position_source: PositionSource) -> None:
        self.log_source = log_source
        self.position_source = position_source

    def fetch_logs(self, request: FetchLogs) -> LogsByBucket:
        if self.log_source is None:
            raise LogFetchError("no log source configured")
        logs: LogsByBucket = {}
        for bucket in BUCKETS:
            try:
                logs[bucket] = list(
                    self.log_source.fetch_logs(bucket, request.account, request.options)
                )
            except LogFetchError:
                raise
            except Exception as e:
                raise _log_fetch_error(bucket, request, e) from e
        return logs

    def fetch_position(self, request: FetchPosition) -> RawPosition:
        try:
            return self.position_source.fetch_position(request.market_id, request.account)
        except PositionFetchError:
            raise
        except Exception as e:
            raise _position_fetch_error(request, e) from e

    def resolve(self, request: Request) -> Any:
        if isinstance(request, FetchLogs):
            return self.fetch_logs(request)
        if isinstance(request, FetchPosition):
            return self.fetch_position(request)
        raise TypeError(f"unknown request: {request!r}")

    def run(self, steps: Steps[T]) -> T:
        try:
            request = next(steps)
            while True:
                request = steps.send(self.resolve(request))
        except StopIteration as stop:
            return stop.value
        finally:
            steps.close()


class AsyncBackend:
    """Resolves requests with async sources. run() returns a coroutine.

    The three log buckets are fetched concurrently in a task group and must all succeed;
    the first failure cancels the rest. Positions are fetched one market at a time.
    """

    def __init__(
        self, log_source: AsyncLogSource | None, position_source: AsyncPositionSource
    ) -> None:
        self.log_source = log_source
        self.position_source = position_source

    @classmethod
    def from_blocking(
        cls, log_source: LogSource | None, position_source: PositionSource
    ) -> AsyncBackend:
        """Async backend over blocking sources, each call run in a worker thread."""
        return cls(
            ThreadedLogSource(log_source) if log_source is not None else None,
            ThreadedPositionSource(position_source),
        )

    async def _fetch_bucket(self, bucket: str, request: FetchLogs) -> list[EventLog]:
        try:
            return list(await self.log_source.fetch_logs(bucket, request.account, request.options))
        except LogFetchError:
            raise
        except Exception as e:
            raise _log_fetch_error(bucket, request, e) from e

    async def fetch_logs(self, request: FetchLogs) -> LogsByBucket:
        if self.log_source is None:
            raise LogFetchError("no log source configured")
        # First failure cancels the other buckets
        try:
            async with asyncio.TaskGroup() as group:
                tasks = {b: group.create_task(self._fetch_bucket(b, request)) for b in BUCKETS}
        except ExceptionGroup as eg:
            # Every bucket failure is a LogFetchError; report the earliest
            raise eg.exceptions[0]
        return {bucket: task.result() for bucket, task in tasks.items()}

    async def fetch_position(self, request: FetchPosition) -> RawPosition:
        try:
            return await self.position_source.fetch_position(request.market_id, request.account)
        except PositionFetchError:
            raise
        except Exception as e:
            raise _position_fetch_error(request, e) from e

    async def resolve(self, request: Request) -> Any:
        if isinstance(request, FetchLogs):
            return await self.fetch_logs(request)
        if isinstance(request, FetchPosition):
            return await self.fetch_position(request)
        raise TypeError(f"unknown request: {request!r}")

    async def run(self, steps: Steps[T]) -> T:
        try:
            request = next(steps)
            while True:
                request = steps.send(await self.resolve(request))
        except StopIteration as stop:
            return stop.value
        finally:
            steps.close()

"""Position pipeline: fetch logs -> share totals -> market IDs -> adjusted positions."""

from __future__ import annotations

from typing import Any, Generator, Iterable

import structlog

from predpos.aggregation.markets import find_unique_market_ids
from predpos.aggregation.totals import calculate_share_totals
from predpos.models.logs import LogOptions
from predpos.models.positions import AdjustedPositions, ShareTotals
from predpos.positions.adjuster import adjust_positions_steps
from predpos.positions.backends import AsyncBackend, BlockingBackend, FetchLogs, Request

log = structlog.get_logger(__name__)


def adjusted_positions_steps(
    account: str, options: LogOptions
) -> Generator[Request, Any, AdjustedPositions]:
    logs = yield FetchLogs(account=account, options=options)
    share_totals = calculate_share_totals(logs)
    market_ids = [options.market] if options.market else find_unique_market_ids(share_totals)
    log.debug("share_totals_computed", account=account, market_count=len(market_ids))
    return (yield from adjust_positions_steps(account, market_ids, share_totals))


class PositionPipeline:
    """Adjusted positions for an account.

    With a BlockingBackend every method returns its result; with an AsyncBackend
    every method returns an awaitable of the same result.
    """

    def __init__(self, backend: BlockingBackend | AsyncBackend) -> None:
        self.backend = backend

    def adjust_positions(
        self, account: str, market_ids: Iterable[str], share_totals: ShareTotals
    ) -> AdjustedPositions | Any:
        return self.backend.run(adjust_positions_steps(account, list(market_ids), share_totals))

    def get_adjusted_positions(
        self, account: str, options: LogOptions | dict[str, Any] | None = None
    ) -> AdjustedPositions | Any:
        return self.backend.run(adjusted_positions_steps(account, LogOptions.coerce(options)))

    def get_adjusted_position_in_market(
        self, account: str, market_id: str, options: LogOptions | dict[str, Any] | None = None
    ) -> AdjustedPositions | Any:
        """get_adjusted_positions restricted to a single market."""
        return self.get_adjusted_positions(account, LogOptions.coerce(options).with_market(market_id))

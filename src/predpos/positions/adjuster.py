"""Position adjuster - removes complete sets created by short trades from raw positions.

Short asks buy complete sets on the seller's behalf, and taker short sells create
them implicitly (without a buyCompleteSets log). Those shares inflate the raw
on-chain position, so each market's position is decreased by

    shortAskBuyCompleteSets + shortSellBuyCompleteSets + sellCompleteSets

Standalone buyCompleteSets are assumed to come from order book generation and stay
in the position.
"""

from __future__ import annotations

from decimal import Decimal, localcontext
from typing import Any, Generator, Iterable, Mapping

from pydantic import ValidationError

from predpos.codec.fixedpoint import FIXED_CONTEXT
from predpos.errors import PositionFetchError
from predpos.models.positions import AdjustedPositions, Position, ShareTotals, decode_position
from predpos.positions.backends import FetchPosition


def decrease_position(position: Mapping[str, Decimal], adjustment: Decimal) -> Position:
    """Decrease every outcome's balance by the same adjustment."""
    with localcontext(FIXED_CONTEXT):
        return {outcome_id: balance - adjustment for outcome_id, balance in position.items()}


def check_position(market_id: str, raw: Any) -> Position:
    """Validate and decode a raw position; anything unusable is a fetch failure."""
    if not raw or not isinstance(raw, Mapping):
        raise PositionFetchError(f"couldn't load position in {market_id}", market_id)
    if "error" in raw:
        raise PositionFetchError(f"position source error in {market_id}: {raw['error']}", market_id)
    try:
        return decode_position(raw)
    except ValidationError as e:
        raise PositionFetchError(f"invalid position in {market_id}: {e}", market_id) from e


def adjust_positions_steps(
    account: str,
    market_ids: Iterable[str],
    share_totals: ShareTotals,
) -> Generator[FetchPosition, Any, AdjustedPositions]:
    """Fetch and adjust positions one market at a time; the first failure ends the run."""
    adjusted: AdjustedPositions = {}
    for market_id in market_ids:
        raw = yield FetchPosition(market_id=market_id, account=account)
        position = check_position(market_id, raw)
        adjusted[market_id] = decrease_position(position, share_totals.adjustment(market_id))
    return adjusted

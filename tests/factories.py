"""Builders for event logs used across tests."""

from __future__ import annotations

from predpos.codec.fixedpoint import fix, strip_hex_prefix
from predpos.models.logs import EventLog

ACCOUNT = "0x00000000000000000000000000000000000000aa"
BUY = "0x1"
SELL = "0x2"


def complete_sets_log(market_id: str, shares, type_code: str = BUY, block: int | None = None) -> EventLog:
    return EventLog(
        topics=["0xevent", ACCOUNT, market_id, type_code],
        data=fix(shares),
        blockNumber=block,
    )


def short_sell_log(market_id: str, shares, outcome: int, block: int | None = None) -> EventLog:
    words = [fix(0), fix(shares), fix(0), "0x" + format(outcome, "064x")]
    return EventLog(
        topics=["0xevent", market_id, ACCOUNT],
        data="0x" + "".join(strip_hex_prefix(w) for w in words),
        blockNumber=block,
    )

"""Share totals from complete-set event logs.

Two aggregation rules:

- complete sets (short-ask buys, sells): signed running total per market, keyed by topics[2]
- taker short sells: largest per-outcome total per market, keyed by topics[1]
"""

from __future__ import annotations

from decimal import Decimal, localcontext
from typing import Iterable, Mapping

from predpos.codec.fixedpoint import FIXED_CONTEXT, unfix, unmarshal, word_to_int
from predpos.errors import DecodeError
from predpos.models.logs import (
    SELL_COMPLETE_SETS,
    SHORT_ASK_BUY_COMPLETE_SETS,
    SHORT_SELL_BUY_COMPLETE_SETS,
    EventLog,
)
from predpos.models.positions import ZERO, ShareTotals

BUY = 1

COMPLETE_SETS_MARKET_TOPIC = 2
COMPLETE_SETS_TYPE_TOPIC = 3
SHORT_SELL_MARKET_TOPIC = 1
# Payload word indexes of a taker short sell log
SHORT_SELL_SHARES_WORD = 1
SHORT_SELL_OUTCOME_WORD = 3


def modify_position(type_code: str, position: Decimal, num_shares: str) -> Decimal:
    """Add (type code 1, buy) or subtract (anything else, sell) fixed-point num_shares."""
    shares = unfix(num_shares)
    with localcontext(FIXED_CONTEXT):
        if word_to_int(type_code, signed=False) == BUY:
            return position + shares
        return position - shares


def _with_payload(logs: Iterable[EventLog | None]) -> Iterable[EventLog]:
    return (entry for entry in logs if entry is not None and entry.has_payload)


def calculate_complete_sets_share_totals(logs: Iterable[EventLog | None]) -> dict[str, Decimal]:
    """Net complete sets bought/sold, keyed by market ID."""
    share_totals: dict[str, Decimal] = {}
    for entry in _with_payload(logs):
        market_id = entry.topic(COMPLETE_SETS_MARKET_TOPIC)
        share_totals.setdefault(market_id, ZERO)
        words = unmarshal(entry.data)
        if words:
            # A log without a type-code topic is rejected rather than counted as a sell
            share_totals[market_id] = modify_position(
                entry.topic(COMPLETE_SETS_TYPE_TOPIC), share_totals[market_id], words[0]
            )
    return share_totals


def calculate_short_sell_share_totals(logs: Iterable[EventLog | None]) -> dict[str, Decimal]:
    """Largest number of shares short sold in any single outcome, keyed by market ID."""
    share_totals: dict[str, Decimal] = {}
    outcome_totals: dict[str, dict[str, Decimal]] = {}
    with localcontext(FIXED_CONTEXT):
        for entry in _with_payload(logs):
            market_id = entry.topic(SHORT_SELL_MARKET_TOPIC)
            words = unmarshal(entry.data)
            if len(words) <= SHORT_SELL_OUTCOME_WORD:
                raise DecodeError(f"short sell payload has {len(words)} words, expected at least 4")
            outcome_id = str(word_to_int(words[SHORT_SELL_OUTCOME_WORD], signed=False))
            outcomes = outcome_totals.setdefault(market_id, {})
            outcomes[outcome_id] = outcomes.get(outcome_id, ZERO) + unfix(words[SHORT_SELL_SHARES_WORD])
            share_totals[market_id] = max(outcomes[outcome_id], share_totals.get(market_id, ZERO))
    return share_totals


def calculate_share_totals(logs: Mapping[str, Iterable[EventLog | None]]) -> ShareTotals:
    """Aggregate all three log buckets. Missing buckets count as empty."""
    return ShareTotals(
        short_ask_buy_complete_sets=calculate_complete_sets_share_totals(
            logs.get(SHORT_ASK_BUY_COMPLETE_SETS) or []
        ),
        short_sell_buy_complete_sets=calculate_short_sell_share_totals(
            logs.get(SHORT_SELL_BUY_COMPLETE_SETS) or []
        ),
        sell_complete_sets=calculate_complete_sets_share_totals(logs.get(SELL_COMPLETE_SETS) or []),
    )

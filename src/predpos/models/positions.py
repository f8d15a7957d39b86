"""ShareTotals, Position - aggregated share totals and per-market positions."""

from __future__ import annotations

from decimal import Decimal, localcontext
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from predpos.codec.fixedpoint import FIXED_CONTEXT
from predpos.models.logs import (
    SELL_COMPLETE_SETS,
    SHORT_ASK_BUY_COMPLETE_SETS,
    SHORT_SELL_BUY_COMPLETE_SETS,
)

ZERO = Decimal(0)

# outcome ID (base-10 string) -> share balance
Position = dict[str, Decimal]
# market ID -> adjusted position
AdjustedPositions = dict[str, Position]

_position_adapter = TypeAdapter(dict[str, Decimal])


class ShareTotals(BaseModel):
    """Share totals per market for each of the three log buckets."""

    model_config = ConfigDict(populate_by_name=True)

    short_ask_buy_complete_sets: dict[str, Decimal] = Field(
        default_factory=dict, alias=SHORT_ASK_BUY_COMPLETE_SETS
    )
    short_sell_buy_complete_sets: dict[str, Decimal] = Field(
        default_factory=dict, alias=SHORT_SELL_BUY_COMPLETE_SETS
    )
    sell_complete_sets: dict[str, Decimal] = Field(default_factory=dict, alias=SELL_COMPLETE_SETS)

    def bucket(self, name: str) -> dict[str, Decimal]:
        """Return a bucket by its camelCase log bucket name."""
        field_name = _BUCKET_FIELDS.get(name)
        if field_name is None:
            raise KeyError(name)
        return getattr(self, field_name)

    def total(self, name: str, market_id: str) -> Decimal:
        return self.bucket(name).get(market_id, ZERO)

    def adjustment(self, market_id: str) -> Decimal:
        """Complete sets created as a side effect of short trades, plus complete sets sold."""
        with localcontext(FIXED_CONTEXT):
            return (
                self.short_ask_buy_complete_sets.get(market_id, ZERO)
                + self.short_sell_buy_complete_sets.get(market_id, ZERO)
                + self.sell_complete_sets.get(market_id, ZERO)
            )


_BUCKET_FIELDS = {
    info.alias: name for name, info in ShareTotals.model_fields.items() if info.alias
}


def decode_position(raw: Mapping[str, Any]) -> Position:
    """Decimal-string balances from a position source -> Position."""
    return _position_adapter.validate_python(dict(raw))


def format_decimal(value: Decimal) -> str:
    """Plain notation, no exponent, no trailing zeros (BigNumber toFixed style)."""
    if value == value.to_integral_value():
        return format(value.quantize(Decimal(1), context=FIXED_CONTEXT), "f")
    return format(value.normalize(FIXED_CONTEXT), "f")


def encode_position(position: Mapping[str, Decimal]) -> dict[str, str]:
    return {outcome_id: format_decimal(balance) for outcome_id, balance in position.items()}

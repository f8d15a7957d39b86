"""EventLog, LogOptions - raw event logs and the filters used to fetch them."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from predpos.errors import DecodeError

SHORT_ASK_BUY_COMPLETE_SETS = "shortAskBuyCompleteSets"
SHORT_SELL_BUY_COMPLETE_SETS = "shortSellBuyCompleteSets"
SELL_COMPLETE_SETS = "sellCompleteSets"

# Bucket order matters: market IDs are collected in this order.
BUCKETS = (SHORT_ASK_BUY_COMPLETE_SETS, SHORT_SELL_BUY_COMPLETE_SETS, SELL_COMPLETE_SETS)

EMPTY_PAYLOAD = "0x"

BlockTag = int | str


class EventLog(BaseModel):
    """Single eth_getLogs entry. Only topics and data are used for aggregation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    topics: list[str] = Field(default_factory=list)
    data: str | None = None
    address: str | None = None
    block_number: BlockTag | None = Field(None, alias="blockNumber")
    log_index: BlockTag | None = Field(None, alias="logIndex")
    transaction_hash: str | None = Field(None, alias="transactionHash")

    @property
    def has_payload(self) -> bool:
        return bool(self.data) and self.data != EMPTY_PAYLOAD

    def topic(self, index: int) -> str:
        try:
            return self.topics[index]
        except IndexError:
            raise DecodeError(f"log has {len(self.topics)} topics, expected at least {index + 1}") from None


class LogOptions(BaseModel):
    """Log query options: optional single-market filter plus block range."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    market: str | None = None
    from_block: BlockTag | None = Field(None, alias="fromBlock")
    to_block: BlockTag | None = Field(None, alias="toBlock")

    @classmethod
    def coerce(cls, options: LogOptions | dict[str, Any] | None) -> LogOptions:
        if options is None:
            return cls()
        if isinstance(options, LogOptions):
            return options
        return cls.model_validate(options)

    def with_market(self, market_id: str) -> LogOptions:
        return self.model_copy(update={"market": market_id})


# Topic index of the market ID in each bucket's logs
MARKET_TOPIC_INDEX = {
    SHORT_ASK_BUY_COMPLETE_SETS: 2,
    SHORT_SELL_BUY_COMPLETE_SETS: 1,
    SELL_COMPLETE_SETS: 2,
}


def block_number(tag: BlockTag | None) -> int | None:
    """Block tag -> int. Open-ended tags (latest, pending) and None give None."""
    if tag is None or isinstance(tag, int):
        return tag
    if tag == "earliest":
        return 0
    if tag in ("latest", "pending", "safe", "finalized"):
        return None
    return int(tag, 16) if tag[:2] in ("0x", "0X") else int(tag)


def log_in_range(entry: EventLog, options: LogOptions) -> bool:
    """True if the log's block is inside options' block range (logs without a block pass)."""
    number = block_number(entry.block_number)
    if number is None:
        return True
    lo, hi = block_number(options.from_block), block_number(options.to_block)
    return (lo is None or number >= lo) and (hi is None or number <= hi)

"""Canonical schema (Pydantic) - EventLog, LogOptions, ShareTotals, Position."""

from predpos.models.logs import BUCKETS, EventLog, LogOptions
from predpos.models.positions import (
    AdjustedPositions,
    Position,
    ShareTotals,
    decode_position,
    encode_position,
)

__all__ = [
    "BUCKETS",
    "EventLog",
    "LogOptions",
    "ShareTotals",
    "Position",
    "AdjustedPositions",
    "decode_position",
    "encode_position",
]

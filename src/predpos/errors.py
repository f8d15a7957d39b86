"""Exception types raised by decoding, aggregation and the position pipeline."""

from __future__ import annotations


class PredposError(Exception):
    """Base class for all predpos errors."""


class DecodeError(PredposError):
    """A fixed-point value or log payload could not be decoded."""


class LogFetchError(PredposError):
    """The log source failed for one of the log buckets."""

    def __init__(self, message: str, bucket: str | None = None) -> None:
        super().__init__(message)
        self.bucket = bucket


class PositionFetchError(PredposError):
    """The position source failed or returned nothing for a market."""

    def __init__(self, message: str, market_id: str | None = None) -> None:
        super().__init__(message)
        self.market_id = market_id


class ConfigError(PredposError):
    """Missing or invalid configuration."""

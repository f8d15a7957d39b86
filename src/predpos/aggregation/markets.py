"""Market IDs that need position adjustment."""

from __future__ import annotations

from predpos.models.logs import BUCKETS
from predpos.models.positions import ShareTotals


def find_unique_market_ids(share_totals: ShareTotals) -> list[str]:
    """Market IDs across all buckets, in bucket order, first occurrence kept."""
    seen: dict[str, None] = {}
    for name in BUCKETS:
        for market_id in share_totals.bucket(name):
            seen.setdefault(market_id, None)
    return list(seen)

"""Market layer - trade decoding, aggregation and snapshot orchestration."""

from sportfun_market.market.aggregates import to_usd_number
from sportfun_market.market.decoder import DecodeError
from sportfun_market.market.models import (
    BuildState,
    MarketSnapshot,
    MarketToken,
    MetadataSource,
    TokenMetadata,
    TradeEvent,
)

__all__ = [
    "BuildState",
    "DecodeError",
    "MarketSnapshot",
    "MarketToken",
    "MetadataSource",
    "TokenMetadata",
    "TradeEvent",
    "to_usd_number",
]

"""Decoding of FDFPair trade logs and DevelopmentPlayers promotion logs.

Buy (`PlayerTokensPurchase`) and sell (`CurrencyPurchase`) events carry five
parallel `uint256[]` arrays in their data section: token ids, share amounts,
currency amounts, new prices and fees. Promotions (`PlayerSharesPromoted`)
carry token ids and amounts. Indexed addresses are not needed here.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes

from sportfun_market.chain.client import parse_quantity
from sportfun_market.chain.contracts import (
    PROMOTION_EVENT_DATA_TYPES,
    TOPIC_CURRENCY_PURCHASE,
    TOPIC_PLAYER_SHARES_PROMOTED,
    TOPIC_PLAYER_TOKENS_PURCHASE,
    TRADE_EVENT_DATA_TYPES,
)
from sportfun_market.errors import SportfunMarketError
from sportfun_market.market.models import TradeEvent

PRICE_SCALE = 10**18


class DecodeError(SportfunMarketError):
    """Raised when a log payload cannot be decoded."""


class EventKind(str, Enum):
    BUY = "buy"
    SELL = "sell"
    PROMOTION = "promotion"
    UNKNOWN = "unknown"


_TOPIC_KINDS = {
    TOPIC_PLAYER_TOKENS_PURCHASE: EventKind.BUY,
    TOPIC_CURRENCY_PURCHASE: EventKind.SELL,
    TOPIC_PLAYER_SHARES_PROMOTED: EventKind.PROMOTION,
}


def _topic0(log: dict[str, Any]) -> str | None:
    topics = log.get("topics") or []
    if not topics:
        return None
    topic = topics[0]
    if isinstance(topic, (bytes, bytearray)):
        return HexBytes(topic).to_0x_hex().lower()
    return str(topic).lower()


def classify_log(log: dict[str, Any]) -> EventKind:
    """Classify a raw log by its first topic."""
    topic = _topic0(log)
    if topic is None:
        return EventKind.UNKNOWN
    return _TOPIC_KINDS.get(topic, EventKind.UNKNOWN)


def _decode_arrays(log: dict[str, Any], types: list[str]) -> tuple[tuple[int, ...], ...]:
    data = log.get("data")
    if data is None:
        raise DecodeError("Log has no data")
    try:
        return tuple(decode(types, HexBytes(data)))
    except (DecodingError, ValueError, TypeError) as e:
        raise DecodeError(f"Malformed log data: {e}") from e


def price_per_share(currency_amount: int, share_amount: int) -> int | None:
    """USDC per whole share, in USDC raw units. None when no shares moved."""
    if share_amount <= 0:
        return None
    return currency_amount * PRICE_SCALE // share_amount


def decode_trade_log(log: dict[str, Any], timestamp_ms: int) -> list[TradeEvent]:
    """Decode one buy or sell log into per-token trade events.

    Args:
        log: Raw `eth_getLogs` entry.
        timestamp_ms: Timestamp of the block containing the log.

    Returns:
        One event per token in the log. Sell share amounts are negative.
        Entries with a zero token id are dropped. Non-trade logs yield [].

    Raises:
        DecodeError: If the data section is malformed.
    """
    kind = classify_log(log)
    if kind not in (EventKind.BUY, EventKind.SELL):
        return []

    ids, amounts, currency, _new_prices, _fees = _decode_arrays(log, TRADE_EVENT_DATA_TYPES)
    sign = 1 if kind is EventKind.BUY else -1

    events: list[TradeEvent] = []
    for i, token_id in enumerate(ids):
        if not token_id:
            continue
        share_amount = amounts[i] if i < len(amounts) else 0
        currency_amount = currency[i] if i < len(currency) else 0
        events.append(
            TradeEvent(
                token_id=str(token_id),
                share_amount=sign * share_amount,
                timestamp_ms=timestamp_ms,
                price_usdc_per_share=price_per_share(currency_amount, share_amount),
            )
        )
    return events


def decode_promotion_log(log: dict[str, Any]) -> list[str]:
    """Token ids granted by a `PlayerSharesPromoted` log."""
    if classify_log(log) is not EventKind.PROMOTION:
        return []
    ids, _amounts = _decode_arrays(log, PROMOTION_EVENT_DATA_TYPES)
    return [str(token_id) for token_id in ids if token_id]


def decode_token_ids(log: dict[str, Any]) -> list[str]:
    """Token ids referenced by a trade or promotion log, without timestamps."""
    kind = classify_log(log)
    if kind is EventKind.PROMOTION:
        return decode_promotion_log(log)
    if kind in (EventKind.BUY, EventKind.SELL):
        return [e.token_id for e in decode_trade_log(log, 0)]
    return []


def log_block_number(log: dict[str, Any]) -> int:
    try:
        return parse_quantity(log["blockNumber"])
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(f"Log has no usable blockNumber: {e}") from e

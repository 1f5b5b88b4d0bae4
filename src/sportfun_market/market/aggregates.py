"""Pure builders turning trade events and prices into snapshot sections.

Nothing here performs I/O; the snapshot service feeds these functions the
events, token ids and prices it has fetched.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime

from sportfun_market.chain.contracts import BASE_USDC_DECIMALS
from sportfun_market.market.models import (
    DistributionBin,
    MarketSummary,
    MarketToken,
    TokenAggregate,
    TradeEvent,
    TrendPoint,
)

_USDC_UNIT = 10**BASE_USDC_DECIMALS

# (label, inclusive lower bound, exclusive upper bound) in whole USD.
PRICE_DISTRIBUTION_BINS: tuple[tuple[str, int | None, int | None], ...] = (
    ("< $1", None, 1),
    ("$1 - $5", 1, 5),
    ("$5 - $10", 5, 10),
    ("$10 - $25", 10, 25),
    ("$25 - $50", 25, 50),
    ("$50 - $100", 50, 100),
    ("> $100", 100, None),
)


def bucket_day(ts_ms: int) -> int:
    """Start of the UTC day containing `ts_ms`, in epoch milliseconds."""
    day = datetime.fromtimestamp(ts_ms / 1000, tz=UTC).date()
    return int(datetime(day.year, day.month, day.day, tzinfo=UTC).timestamp() * 1000)


def iso_timestamp(ts_ms: int) -> str:
    """ISO-8601 UTC string with millisecond precision and a `Z` suffix."""
    dt = datetime.fromtimestamp(ts_ms / 1000, tz=UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts_ms % 1000:03d}Z"


def percentile(sorted_values: Sequence[int], pct: float) -> int | None:
    """Rank percentile: element at floor(len * pct), clamped to the list."""
    if not sorted_values:
        return None
    idx = min(len(sorted_values) - 1, max(0, int(len(sorted_values) * pct)))
    return sorted_values[idx]


def to_usd_number(raw: str | int | None, decimals: int = BASE_USDC_DECIMALS) -> float:
    """Convert a raw fixed-point amount to a float for display. Empty is 0."""
    if raw is None or raw == "":
        return 0.0
    value = int(raw)
    base = 10**decimals
    whole, fraction = divmod(abs(value), base)
    result = whole + fraction / base
    return -result if value < 0 else result


def build_token_aggregates(events: Iterable[TradeEvent], window_start_ms: int) -> dict[str, TokenAggregate]:
    """Roll up events at or after `window_start_ms` per token.

    Volume is the sum of absolute share amounts. First/last prices come from
    the earliest and latest events that carry a price.
    """
    aggregates: dict[str, TokenAggregate] = {}
    for event in events:
        if event.timestamp_ms < window_start_ms:
            continue
        agg = aggregates.setdefault(event.token_id, TokenAggregate())
        agg.trades += 1
        agg.volume_shares += abs(event.share_amount)
        if event.price_usdc_per_share is not None:
            if agg.first_ts is None or event.timestamp_ms < agg.first_ts:
                agg.first_ts = event.timestamp_ms
                agg.first_price = event.price_usdc_per_share
            if agg.last_ts is None or event.timestamp_ms > agg.last_ts:
                agg.last_ts = event.timestamp_ms
                agg.last_price = event.price_usdc_per_share
        if agg.last_ts is None or event.timestamp_ms > agg.last_ts:
            agg.last_ts = event.timestamp_ms
    return aggregates


def last_trade_times(events: Iterable[TradeEvent]) -> dict[str, int]:
    """Latest event timestamp per token across all events."""
    latest: dict[str, int] = {}
    for event in events:
        if event.timestamp_ms > latest.get(event.token_id, -1):
            latest[event.token_id] = event.timestamp_ms
    return latest


def build_trend(events: Iterable[TradeEvent], trend_start_ms: int) -> list[TrendPoint]:
    """Daily UTC buckets with volume-weighted average price, ascending by day."""
    buckets: dict[int, list[int]] = {}
    for event in events:
        if event.timestamp_ms < trend_start_ms:
            continue
        # volume, trades, price*shares, priced shares
        bucket = buckets.setdefault(bucket_day(event.timestamp_ms), [0, 0, 0, 0])
        shares = abs(event.share_amount)
        bucket[0] += shares
        bucket[1] += 1
        if event.price_usdc_per_share is not None and shares > 0:
            bucket[2] += event.price_usdc_per_share * shares
            bucket[3] += shares

    return [
        TrendPoint(
            ts=day,
            volume_shares=volume,
            trades=trades,
            avg_price=price_volume // priced_shares if priced_shares > 0 else None,
        )
        for day, (volume, trades, price_volume, priced_shares) in sorted(buckets.items())
    ]


def build_distribution(sorted_prices: Iterable[int]) -> list[DistributionBin]:
    """Histogram of current prices over the fixed USD bins."""
    prices = list(sorted_prices)
    bins: list[DistributionBin] = []
    for label, low, high in PRICE_DISTRIBUTION_BINS:
        min_raw = None if low is None else low * _USDC_UNIT
        max_raw = None if high is None else high * _USDC_UNIT
        count = sum(
            1
            for p in prices
            if (min_raw is None or p >= min_raw) and (max_raw is None or p < max_raw)
        )
        bins.append(DistributionBin(label=label, count=count, min_raw=min_raw, max_raw=max_raw))
    return bins


def build_summary(
    total_tokens: int,
    aggregates: Mapping[str, TokenAggregate],
    sorted_prices: Sequence[int],
) -> MarketSummary:
    return MarketSummary(
        total_tokens=total_tokens,
        active_tokens_24h=len(aggregates),
        trades_24h=sum(a.trades for a in aggregates.values()),
        volume_24h_shares=sum(a.volume_shares for a in aggregates.values()),
        price_avg=sum(sorted_prices) // len(sorted_prices) if sorted_prices else None,
        price_median=percentile(sorted_prices, 0.5),
        price_min=sorted_prices[0] if sorted_prices else None,
        price_max=sorted_prices[-1] if sorted_prices else None,
    )


def build_market_token(
    token_id: str,
    aggregate: TokenAggregate | None,
    current_price: int | None,
    last_trade_ms: int | None,
) -> MarketToken:
    """Reconcile the live AMM price with window trade prices for one token.

    The change is measured from the first priced trade in the window to the
    current price, or to the last priced trade when no current price exists.
    """
    first_price = aggregate.first_price if aggregate else None
    last_price = aggregate.last_price if aggregate else None

    change: int | None = None
    if first_price is not None:
        if current_price is not None:
            change = current_price - first_price
        elif last_price is not None:
            change = last_price - first_price

    change_pct = change / first_price * 100 if first_price and change is not None else None

    last_ts = aggregate.last_ts if aggregate and aggregate.last_ts else last_trade_ms
    return MarketToken(
        token_id=token_id,
        trades_24h=aggregate.trades if aggregate else 0,
        volume_24h_shares=aggregate.volume_shares if aggregate else 0,
        current_price=current_price,
        price_24h_ago=first_price,
        price_change=change,
        price_change_24h_percent=change_pct,
        last_trade_at=iso_timestamp(last_ts) if last_ts else None,
    )


def build_market_tokens(
    token_ids: Iterable[str],
    aggregates: Mapping[str, TokenAggregate],
    prices: Mapping[str, int],
    last_trades: Mapping[str, int],
) -> list[MarketToken]:
    """Per-token records sorted by current price descending, then token id."""
    tokens = [
        build_market_token(token_id, aggregates.get(token_id), prices.get(token_id), last_trades.get(token_id))
        for token_id in token_ids
    ]
    tokens.sort(key=lambda t: (-(t.current_price or 0), t.token_id))
    return tokens


def split_movers(tokens: Iterable[MarketToken]) -> tuple[set[str], set[str]]:
    """Token ids with a positive and a negative 24h change."""
    gainers: set[str] = set()
    losers: set[str] = set()
    for token in tokens:
        change = token.price_change_24h_percent or 0
        if change > 0:
            gainers.add(token.token_id)
        elif change < 0:
            losers.add(token.token_id)
    return gainers, losers


def build_mover_trend(events: Sequence[TradeEvent], token_ids: set[str], trend_start_ms: int) -> list[TrendPoint]:
    if not token_ids:
        return []
    return build_trend((e for e in events if e.token_id in token_ids), trend_start_ms)

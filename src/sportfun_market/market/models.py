"""Data models for market snapshots.

Raw fixed-point quantities are Python ints in memory and decimal strings on
the wire. `to_dict` emits the camelCase JSON shape served to pages and API
routes and persisted as the last-good snapshot; `from_dict` reads it back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _str_or_none(value: int | None) -> str | None:
    return None if value is None else str(value)


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


class MetadataSource(str, Enum):
    """Which sources contributed a token's displayed metadata."""

    ONCHAIN = "onchain"
    FALLBACK = "fallback"
    HYBRID = "hybrid"
    OVERRIDE = "override"
    NONE = "none"


class BuildState(str, Enum):
    """Outcome of one snapshot build."""

    BUILDING = "building"
    SUCCEEDED = "succeeded"
    DEGRADED_USING_STALE = "degraded_using_stale"
    FAILED_USING_STALE = "failed_using_stale"
    FAILED_EMPTY = "failed_empty"


@dataclass(frozen=True)
class TradeEvent:
    """One decoded buy or sell fill for a single token."""

    token_id: str
    share_amount: int
    timestamp_ms: int
    price_usdc_per_share: int | None = None


@dataclass
class TokenAggregate:
    """Per-token rollup over the activity window."""

    volume_shares: int = 0
    trades: int = 0
    first_price: int | None = None
    first_ts: int | None = None
    last_price: int | None = None
    last_ts: int | None = None


@dataclass(frozen=True)
class TokenMetadata:
    """Decoded ERC-1155 metadata JSON."""

    name: str | None = None
    description: str | None = None
    image: str | None = None
    attributes: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "name": self.name,
                "description": self.description,
                "image": self.image,
                "attributes": self.attributes,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenMetadata:
        return cls(
            name=data.get("name"),
            description=data.get("description"),
            image=data.get("image"),
            attributes=data.get("attributes"),
        )


@dataclass(frozen=True)
class MarketToken:
    """Externally visible per-token record."""

    token_id: str
    trades_24h: int = 0
    volume_24h_shares: int = 0
    current_price: int | None = None
    price_24h_ago: int | None = None
    price_change: int | None = None
    price_change_24h_percent: float | None = None
    last_trade_at: str | None = None
    name: str | None = None
    image: str | None = None
    description: str | None = None
    attributes: Any = None
    position: str | None = None
    team: str | None = None
    supply: float | None = None
    is_tradeable: bool | None = None
    metadata_source: MetadataSource | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "tokenIdDec": self.token_id,
                "name": self.name,
                "image": self.image,
                "description": self.description,
                "attributes": self.attributes,
                "position": self.position,
                "team": self.team,
                "supply": self.supply,
                "currentPriceUsdcRaw": _str_or_none(self.current_price),
                "price24hAgoUsdcRaw": _str_or_none(self.price_24h_ago),
                "priceChangeUsdcRaw": _str_or_none(self.price_change),
                "priceChange24hPercent": self.price_change_24h_percent,
                "volume24hSharesRaw": str(self.volume_24h_shares),
                "trades24h": self.trades_24h,
                "lastTradeAt": self.last_trade_at,
                "isTradeable": self.is_tradeable,
                "metadataSource": self.metadata_source.value if self.metadata_source else None,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarketToken:
        source = data.get("metadataSource")
        return cls(
            token_id=str(data["tokenIdDec"]),
            trades_24h=int(data.get("trades24h", 0)),
            volume_24h_shares=int(data.get("volume24hSharesRaw") or 0),
            current_price=_int_or_none(data.get("currentPriceUsdcRaw")),
            price_24h_ago=_int_or_none(data.get("price24hAgoUsdcRaw")),
            price_change=_int_or_none(data.get("priceChangeUsdcRaw")),
            price_change_24h_percent=data.get("priceChange24hPercent"),
            last_trade_at=data.get("lastTradeAt"),
            name=data.get("name"),
            image=data.get("image"),
            description=data.get("description"),
            attributes=data.get("attributes"),
            position=data.get("position"),
            team=data.get("team"),
            supply=data.get("supply"),
            is_tradeable=data.get("isTradeable"),
            metadata_source=MetadataSource(source) if source else None,
        )


@dataclass(frozen=True)
class MarketSummary:
    total_tokens: int = 0
    active_tokens_24h: int = 0
    trades_24h: int = 0
    volume_24h_shares: int = 0
    price_avg: int | None = None
    price_median: int | None = None
    price_min: int | None = None
    price_max: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "totalTokens": self.total_tokens,
                "activeTokens24h": self.active_tokens_24h,
                "trades24h": self.trades_24h,
                "volume24hSharesRaw": str(self.volume_24h_shares),
                "priceAvgUsdcRaw": _str_or_none(self.price_avg),
                "priceMedianUsdcRaw": _str_or_none(self.price_median),
                "priceMinUsdcRaw": _str_or_none(self.price_min),
                "priceMaxUsdcRaw": _str_or_none(self.price_max),
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarketSummary:
        return cls(
            total_tokens=int(data.get("totalTokens", 0)),
            active_tokens_24h=int(data.get("activeTokens24h", 0)),
            trades_24h=int(data.get("trades24h", 0)),
            volume_24h_shares=int(data.get("volume24hSharesRaw") or 0),
            price_avg=_int_or_none(data.get("priceAvgUsdcRaw")),
            price_median=_int_or_none(data.get("priceMedianUsdcRaw")),
            price_min=_int_or_none(data.get("priceMinUsdcRaw")),
            price_max=_int_or_none(data.get("priceMaxUsdcRaw")),
        )


@dataclass(frozen=True)
class TrendPoint:
    """One UTC day of trading activity."""

    ts: int
    volume_shares: int
    trades: int
    avg_price: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "ts": self.ts,
                "avgPriceUsdcRaw": _str_or_none(self.avg_price),
                "volumeSharesRaw": str(self.volume_shares),
                "trades": self.trades,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrendPoint:
        return cls(
            ts=int(data["ts"]),
            volume_shares=int(data.get("volumeSharesRaw") or 0),
            trades=int(data.get("trades", 0)),
            avg_price=_int_or_none(data.get("avgPriceUsdcRaw")),
        )


@dataclass(frozen=True)
class DistributionBin:
    label: str
    count: int
    min_raw: int | None = None
    max_raw: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "label": self.label,
                "minUsdcRaw": _str_or_none(self.min_raw),
                "maxUsdcRaw": _str_or_none(self.max_raw),
                "count": self.count,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DistributionBin:
        return cls(
            label=str(data["label"]),
            count=int(data.get("count", 0)),
            min_raw=_int_or_none(data.get("minUsdcRaw")),
            max_raw=_int_or_none(data.get("maxUsdcRaw")),
        )


@dataclass
class MetadataSourceCounts:
    onchain_only: int = 0
    fallback_only: int = 0
    hybrid: int = 0
    override_only: int = 0
    unresolved: int = 0

    def record(self, source: MetadataSource) -> None:
        if source is MetadataSource.ONCHAIN:
            self.onchain_only += 1
        elif source is MetadataSource.FALLBACK:
            self.fallback_only += 1
        elif source is MetadataSource.HYBRID:
            self.hybrid += 1
        elif source is MetadataSource.OVERRIDE:
            self.override_only += 1
        else:
            self.unresolved += 1

    def to_dict(self) -> dict[str, int]:
        return {
            "onchainOnly": self.onchain_only,
            "fallbackOnly": self.fallback_only,
            "hybrid": self.hybrid,
            "overrideOnly": self.override_only,
            "unresolved": self.unresolved,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetadataSourceCounts:
        return cls(
            onchain_only=int(data.get("onchainOnly", 0)),
            fallback_only=int(data.get("fallbackOnly", 0)),
            hybrid=int(data.get("hybrid", 0)),
            override_only=int(data.get("overrideOnly", 0)),
            unresolved=int(data.get("unresolved", 0)),
        )


@dataclass(frozen=True)
class SnapshotStats:
    metadata_source_counts: MetadataSourceCounts = field(default_factory=MetadataSourceCounts)
    fallback_feed_source: str = "n/a"
    fallback_feed_stale_age_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadataSourceCounts": self.metadata_source_counts.to_dict(),
            "fallbackFeed": _drop_none(
                {
                    "source": self.fallback_feed_source,
                    "staleAgeMs": self.fallback_feed_stale_age_ms,
                }
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotStats:
        feed = data.get("fallbackFeed") or {}
        return cls(
            metadata_source_counts=MetadataSourceCounts.from_dict(data.get("metadataSourceCounts") or {}),
            fallback_feed_source=str(feed.get("source", "n/a")),
            fallback_feed_stale_age_ms=feed.get("staleAgeMs"),
        )


@dataclass(frozen=True)
class MarketSnapshot:
    """Aggregate root served to callers."""

    sport: str
    as_of: str
    window_hours: float
    trend_days: float
    tokens: tuple[MarketToken, ...] = ()
    summary: MarketSummary = field(default_factory=MarketSummary)
    trend: tuple[TrendPoint, ...] = ()
    trend_gainers: tuple[TrendPoint, ...] = ()
    trend_losers: tuple[TrendPoint, ...] = ()
    distribution: tuple[DistributionBin, ...] = ()
    stats: SnapshotStats = field(default_factory=SnapshotStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sport": self.sport,
            "asOf": self.as_of,
            "windowHours": self.window_hours,
            "trendDays": self.trend_days,
            "tokens": [t.to_dict() for t in self.tokens],
            "summary": self.summary.to_dict(),
            "trend": [p.to_dict() for p in self.trend],
            "trendGainers": [p.to_dict() for p in self.trend_gainers],
            "trendLosers": [p.to_dict() for p in self.trend_losers],
            "distribution": [b.to_dict() for b in self.distribution],
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarketSnapshot:
        return cls(
            sport=str(data["sport"]),
            as_of=str(data["asOf"]),
            window_hours=data.get("windowHours", 24),
            trend_days=data.get("trendDays", 30),
            tokens=tuple(MarketToken.from_dict(t) for t in data.get("tokens") or []),
            summary=MarketSummary.from_dict(data.get("summary") or {}),
            trend=tuple(TrendPoint.from_dict(p) for p in data.get("trend") or []),
            trend_gainers=tuple(TrendPoint.from_dict(p) for p in data.get("trendGainers") or []),
            trend_losers=tuple(TrendPoint.from_dict(p) for p in data.get("trendLosers") or []),
            distribution=tuple(DistributionBin.from_dict(b) for b in data.get("distribution") or []),
            stats=SnapshotStats.from_dict(data.get("stats") or {}),
        )

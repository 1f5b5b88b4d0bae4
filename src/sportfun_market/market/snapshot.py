"""Market snapshot orchestration.

`MarketSnapshotService` builds a `MarketSnapshot` for a sport from window
trades, the token universe, current AMM prices and resolved metadata. Builds
are memoized in the shared TTL cache; a last-known-good copy on disk keeps
callers served through RPC outages.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
from redis.asyncio import Redis

from sportfun_market.cache import TtlCache
from sportfun_market.chain.blocks import BlockTimeLocator
from sportfun_market.chain.client import BaseRpcClient
from sportfun_market.chain.contracts import GET_PRICES_SELECTOR, get_sport_contracts
from sportfun_market.chain.logs import LogFetcher
from sportfun_market.config import Settings
from sportfun_market.market.aggregates import (
    build_distribution,
    build_market_tokens,
    build_mover_trend,
    build_summary,
    build_token_aggregates,
    build_trend,
    iso_timestamp,
    last_trade_times,
    split_movers,
)
from sportfun_market.market.models import (
    BuildState,
    MarketSnapshot,
    MarketToken,
    MetadataSourceCounts,
    SnapshotStats,
    TokenMetadata,
    TradeEvent,
)
from sportfun_market.market.prices import PriceReader
from sportfun_market.market.trades import TradeEventSource
from sportfun_market.market.universe import TokenUniverseResolver
from sportfun_market.metadata.cache import MetadataCacheStore
from sportfun_market.metadata.fallback import FallbackFeedResult, NflFallbackFeed
from sportfun_market.metadata.merge import decorate_token
from sportfun_market.metadata.overrides import NameOverrides
from sportfun_market.metadata.resolver import Erc1155MetadataResolver
from sportfun_market.pool import map_limited
from sportfun_market.storage.files import SnapshotStore

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

DEFAULT_WINDOW_HOURS = 24
DEFAULT_TREND_DAYS = 30
DEFAULT_MAX_TOKENS = 250
MIN_METADATA_LIMIT = 500


def _now_ms() -> int:
    return int(time.time() * 1000)


def empty_snapshot(sport: str, now_ms: int, window_hours: float, trend_days: float) -> MarketSnapshot:
    """Zeroed snapshot returned when nothing fresh or persisted is usable."""
    return MarketSnapshot(
        sport=sport,
        as_of=iso_timestamp(now_ms),
        window_hours=window_hours,
        trend_days=trend_days,
        distribution=tuple(build_distribution([])),
        stats=SnapshotStats(fallback_feed_source="empty" if sport == "nfl" else "n/a"),
    )


class MarketSnapshotService:
    """Builds, caches and persists market snapshots.

    Example:
        ```python
        service = MarketSnapshotService.from_settings(get_settings())
        snapshot = await service.get_market_snapshot("nfl")
        await service.aclose()
        ```
    """

    def __init__(
        self,
        *,
        locator: BlockTimeLocator,
        trades: TradeEventSource,
        universe: TokenUniverseResolver,
        prices: PriceReader,
        metadata: Erc1155MetadataResolver,
        store: SnapshotStore,
        cache: TtlCache,
        overrides: NameOverrides | None = None,
        fallback_feed: NflFallbackFeed | None = None,
        snapshot_ttl_seconds: int = 120,
        snapshot_stale_seconds: int = 24 * 60 * 60,
        token_universe_days: int = 180,
        concurrency: int = 6,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._locator = locator
        self._trades = trades
        self._universe = universe
        self._prices = prices
        self._metadata = metadata
        self._store = store
        self._cache = cache
        self._overrides = overrides or NameOverrides()
        self._fallback_feed = fallback_feed
        self._snapshot_ttl = snapshot_ttl_seconds
        self._stale_ms = snapshot_stale_seconds * 1000
        self._token_universe_days = token_universe_days
        self._concurrency = concurrency
        self._clock = clock

        self._closers: list[Callable[[], Any]] = []
        self._last_build_state: BuildState | None = None

    @classmethod
    def from_settings(cls, settings: Settings, *, redis: Redis | None = None) -> MarketSnapshotService:
        """Wire the service and its collaborators from settings."""
        rpc = BaseRpcClient(
            settings.rpc.resolve_url(),
            max_retries=settings.rpc.max_retries,
            retry_base_seconds=settings.rpc.retry_base_seconds,
            retry_max_delay_seconds=settings.rpc.retry_max_delay_seconds,
            request_timeout=settings.rpc.request_timeout_seconds,
        )
        if redis is None and settings.redis.url:
            redis = Redis.from_url(settings.redis.url)
        cache = TtlCache(redis=redis)
        http = httpx.AsyncClient(timeout=settings.metadata.http_timeout_seconds, follow_redirects=True)

        market = settings.market
        locator = BlockTimeLocator(
            rpc,
            cache,
            block_at_ttl_seconds=market.block_at_ttl_seconds,
            concurrency=market.concurrency,
        )
        logs = LogFetcher(rpc, chunk_blocks=market.log_chunk_blocks, min_chunk_blocks=market.log_min_chunk_blocks)
        store = SnapshotStore(market.cache_dir)

        service = cls(
            locator=locator,
            trades=TradeEventSource(logs, locator),
            universe=TokenUniverseResolver(
                rpc,
                locator,
                logs,
                store,
                ttl_seconds=market.token_universe_ttl_seconds,
                max_transfer_pages=market.max_transfer_pages,
            ),
            prices=PriceReader(rpc, GET_PRICES_SELECTOR, batch_size=market.price_batch_size),
            metadata=Erc1155MetadataResolver(
                rpc,
                MetadataCacheStore(settings.metadata.cache_path, ttl_seconds=settings.metadata.cache_ttl_seconds),
                http,
                template=settings.metadata.template,
                default_template=settings.metadata.default_template,
                cache=cache,
                cache_ttl_seconds=settings.metadata.cache_ttl_seconds,
                ipfs_gateway=settings.metadata.ipfs_gateway,
                arweave_gateway=settings.metadata.arweave_gateway,
            ),
            store=store,
            cache=cache,
            overrides=NameOverrides.load(settings.name_overrides_path),
            fallback_feed=NflFallbackFeed(
                http,
                url=settings.fallback_feed.url,
                snapshot_path=settings.fallback_feed.snapshot_path,
                bundled_snapshot_path=settings.fallback_feed.bundled_snapshot_path,
                cache=cache,
                cache_ttl_seconds=settings.fallback_feed.cache_ttl_seconds,
                stale_max_age_seconds=settings.fallback_feed.stale_max_age_seconds,
            ),
            snapshot_ttl_seconds=market.snapshot_ttl_seconds,
            snapshot_stale_seconds=market.snapshot_stale_seconds,
            token_universe_days=market.token_universe_days,
            concurrency=market.concurrency,
        )
        service._closers = [rpc.aclose, http.aclose]
        if redis is not None:
            service._closers.append(redis.aclose)
        return service

    async def aclose(self) -> None:
        """Release clients created by `from_settings`."""
        for close in self._closers:
            await close()
        self._closers = []

    @property
    def last_build_state(self) -> BuildState | None:
        """Terminal state of the most recent build, None before any build."""
        return self._last_build_state

    async def get_market_snapshot(
        self,
        sport: str,
        window_hours: float = DEFAULT_WINDOW_HOURS,
        trend_days: float = DEFAULT_TREND_DAYS,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        metadata_limit: int | None = None,
    ) -> MarketSnapshot:
        """Return the market snapshot for `sport`.

        Concurrent callers with the same parameters share one build. Build
        failures never raise; they resolve to the persisted snapshot or to a
        zeroed one.

        Args:
            sport: "nfl" or "soccer".
            window_hours: Activity window for 24h-style fields.
            trend_days: Lookback for the daily trend series.
            max_tokens: Sets the default metadata limit; part of the cache key.
            metadata_limit: Max tokens decorated with metadata per build.
                Defaults to max(max_tokens, 500).

        Raises:
            UnknownSportError: If no contracts are configured for `sport`.
        """
        get_sport_contracts(sport)
        limit = metadata_limit if metadata_limit is not None else max(max_tokens, MIN_METADATA_LIMIT)
        key = f"market:{sport}:{window_hours}:{trend_days}:{max_tokens}:{limit}"

        async def load() -> dict[str, Any]:
            snapshot = await self._build(sport, window_hours, trend_days, limit)
            return snapshot.to_dict()

        data = await self._cache.get_or_load(key, self._snapshot_ttl, load)
        return MarketSnapshot.from_dict(data)

    async def _build(self, sport: str, window_hours: float, trend_days: float, metadata_limit: int) -> MarketSnapshot:
        self._last_build_state = BuildState.BUILDING
        now = self._clock()

        try:
            snapshot, window_errored = await self._build_fresh(sport, now, window_hours, trend_days, metadata_limit)
        except Exception as e:
            logger.warning("Snapshot build failed for %s: %s", sport, e)
            stale = self._read_stale(sport)
            if stale is not None:
                logger.warning("Serving persisted %s snapshot after error (tokens=%d)", sport, len(stale.tokens))
                return self._finish(sport, stale, BuildState.FAILED_USING_STALE)
            return self._finish(
                sport, empty_snapshot(sport, now, window_hours, trend_days), BuildState.FAILED_EMPTY
            )

        if snapshot.tokens:
            # Heuristic: a failed window fetch with zero trades looks like a
            # quiet market but usually is an outage.
            degraded = window_errored and snapshot.summary.trades_24h == 0
            if not degraded:
                self._store.write_snapshot(sport, snapshot)
                return self._finish(sport, snapshot, BuildState.SUCCEEDED)

            logger.warning("Keeping last-good %s snapshot: window fetch failed and trades24h=0", sport)
            stale = self._read_stale(sport)
            if stale is not None and stale.summary.trades_24h > 0:
                logger.warning(
                    "Serving persisted %s activity snapshot (trades24h=%d)", sport, stale.summary.trades_24h
                )
                return self._finish(sport, stale, BuildState.DEGRADED_USING_STALE)
            return self._finish(sport, snapshot, BuildState.SUCCEEDED)

        stale = self._read_stale(sport)
        if stale is not None:
            logger.warning("Fresh %s snapshot has no tokens; serving persisted (tokens=%d)", sport, len(stale.tokens))
            return self._finish(sport, stale, BuildState.FAILED_USING_STALE)
        return self._finish(sport, snapshot, BuildState.FAILED_EMPTY)

    def _read_stale(self, sport: str) -> MarketSnapshot | None:
        stale = self._store.read_snapshot(sport, self._stale_ms)
        if stale is None or not stale.tokens:
            return None
        return stale

    def _finish(self, sport: str, snapshot: MarketSnapshot, state: BuildState) -> MarketSnapshot:
        self._last_build_state = state
        logger.info(
            "Market snapshot %s: state=%s tokens=%d trades24h=%d",
            sport,
            state.value,
            len(snapshot.tokens),
            snapshot.summary.trades_24h,
        )
        return snapshot

    async def _build_fresh(
        self,
        sport: str,
        now: int,
        window_hours: float,
        trend_days: float,
        metadata_limit: int,
    ) -> tuple[MarketSnapshot, bool]:
        """Build a snapshot from chain data. Returns it and whether the window fetch failed."""
        contracts = get_sport_contracts(sport)
        latest = await self._locator.latest_block()
        window_start = int(now - window_hours * HOUR_MS)
        trend_start = int(now - trend_days * DAY_MS)
        window_from = await self._locator.find_block_by_timestamp(window_start)
        trend_from = (
            await self._locator.find_block_by_timestamp(trend_start) if trend_start < window_start else window_from
        )

        window_errored = False
        window_events: list[TradeEvent] = []
        try:
            window_events = await self._trades.get_trade_events(sport, window_from, latest)
        except Exception as e:
            window_errored = True
            logger.warning("Window trade fetch failed for %s (window_hours=%s): %s", sport, window_hours, e)

        events = window_events
        if trend_from < window_from:
            try:
                historical = await self._trades.get_trade_events(sport, trend_from, window_from - 1)
                events = [*historical, *window_events]
            except Exception as e:
                logger.warning("Historical trend fetch failed for %s (trend_days=%s): %s", sport, trend_days, e)

        aggregates = build_token_aggregates(events, window_start)
        last_trades = last_trade_times(events)

        token_ids, fallback = await asyncio.gather(self._token_universe(sport), self._fallback_meta(sport))
        if not token_ids and fallback is not None and fallback.rows:
            token_ids = fallback.token_ids()
            logger.warning(
                "Using fallback token universe for %s: count=%d source=%s",
                sport,
                len(token_ids),
                fallback.source.value,
            )

        prices: dict[str, int] = {}
        if token_ids:
            try:
                prices = await self._prices.get_current_prices(contracts[0].fdf_pair, token_ids)
            except Exception as e:
                logger.warning("Current price read failed for %s: %s", sport, e)

        tokens = build_market_tokens(token_ids, aggregates, prices, last_trades)
        decorated, counts = await self._decorate(tokens, contracts[0].player_token, fallback, metadata_limit)

        sorted_prices = sorted(t.current_price for t in tokens if t.current_price is not None)
        gainers, losers = split_movers(tokens)

        snapshot = MarketSnapshot(
            sport=sport,
            as_of=iso_timestamp(now),
            window_hours=window_hours,
            trend_days=trend_days,
            tokens=tuple(decorated),
            summary=build_summary(len(tokens), aggregates, sorted_prices),
            trend=tuple(build_trend(events, trend_start)),
            trend_gainers=tuple(build_mover_trend(events, gainers, trend_start)),
            trend_losers=tuple(build_mover_trend(events, losers, trend_start)),
            distribution=tuple(build_distribution(sorted_prices)),
            stats=SnapshotStats(
                metadata_source_counts=counts,
                fallback_feed_source=fallback.source.value if fallback is not None else "n/a",
                fallback_feed_stale_age_ms=fallback.stale_age_ms if fallback is not None else None,
            ),
        )
        return snapshot, window_errored

    async def _token_universe(self, sport: str) -> list[str]:
        try:
            return await self._universe.get_token_universe(sport, self._token_universe_days)
        except Exception as e:
            logger.warning("Token universe lookup failed for %s: %s", sport, e)
            return []

    async def _fallback_meta(self, sport: str) -> FallbackFeedResult | None:
        if sport != "nfl" or self._fallback_feed is None:
            return None
        return await self._fallback_feed.get_token_meta()

    async def _decorate(
        self,
        tokens: list[MarketToken],
        player_token: str,
        fallback: FallbackFeedResult | None,
        metadata_limit: int,
    ) -> tuple[list[MarketToken], MetadataSourceCounts]:
        """Attach metadata to every token, resolving on-chain metadata for at most `metadata_limit`.

        Inactive tokens are resolved first; active ones are usually already
        cached from earlier builds.
        """
        pool = [t for t in tokens if t.trades_24h == 0] + [t for t in tokens if t.trades_24h > 0]
        targets = [t.token_id for t in pool[: min(len(tokens), metadata_limit)]]

        async def fetch(token_id: str) -> tuple[str, TokenMetadata | None]:
            return token_id, await self._metadata.get_metadata(player_token, int(token_id))

        with self._metadata.deferred_writes():
            resolved = dict(await map_limited(targets, self._concurrency, fetch))

        counts = MetadataSourceCounts()
        decorated: list[MarketToken] = []
        for token in tokens:
            row = fallback.get(token.token_id) if fallback is not None else None
            override = self._overrides.get(player_token, token.token_id)
            result = decorate_token(token, resolved.get(token.token_id), row, override)
            if result.metadata_source is not None:
                counts.record(result.metadata_source)
            decorated.append(result)
        return decorated, counts

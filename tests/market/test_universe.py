"""Tests for token universe discovery."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from sportfun_market.chain.contracts import (
    TOPIC_CURRENCY_PURCHASE,
    TOPIC_PLAYER_SHARES_PROMOTED,
    TOPIC_PLAYER_TOKENS_PURCHASE,
)
from sportfun_market.market.universe import (
    DAY_MS,
    UNIVERSE_EPOCH_MS,
    TokenUniverseResolver,
    extract_transfer_token_ids,
    parse_token_id,
    sort_token_ids,
)
from sportfun_market.storage.files import SnapshotStore

NOW = UNIVERSE_EPOCH_MS + 200 * DAY_MS
HOUR_MS = 3_600_000


class Clock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock(NOW)


@pytest.fixture
def store(tmp_path, clock) -> SnapshotStore:
    return SnapshotStore(tmp_path, clock=clock)


@pytest.fixture
def locator() -> MagicMock:
    locator = MagicMock()
    locator.latest_block = AsyncMock(return_value=5000)
    locator.find_block_by_timestamp = AsyncMock(return_value=100)
    return locator


def _fetcher(by_topic: dict) -> MagicMock:
    async def fetch_logs(addresses, topic0, from_block, to_block):
        result = by_topic.get(topic0, [])
        if isinstance(result, Exception):
            raise result
        return result

    fetcher = MagicMock()
    fetcher.fetch_logs = AsyncMock(side_effect=fetch_logs)
    return fetcher


def _resolver(store, locator, fetcher, clock, rpc=None) -> TokenUniverseResolver:
    if rpc is None:
        rpc = MagicMock()
        rpc.call = AsyncMock(return_value={"transfers": []})
    return TokenUniverseResolver(rpc, locator, fetcher, store, clock=clock)


class TestHelpers:
    def test_parse_token_id(self) -> None:
        assert parse_token_id("0x0a") == "10"
        assert parse_token_id("42") == "42"
        assert parse_token_id("") is None
        assert parse_token_id("nope") is None

    def test_extract_transfer_ids(self) -> None:
        transfer = {"erc1155Metadata": [{"tokenId": "0x07", "value": "0x1"}, {"tokenId": "0x09"}]}
        assert extract_transfer_token_ids(transfer) == ["7", "9"]
        assert extract_transfer_token_ids({"tokenId": "0x0b"}) == ["11"]

    def test_sort_numeric(self) -> None:
        assert sort_token_ids(["10", "9", "100", "9"]) == ["9", "10", "100"]


class TestTokenUniverseResolver:
    """Tests for cache, log scan and transfer fallback paths."""

    @pytest.mark.asyncio
    async def test_fresh_cache_skips_rpc(self, store, locator, clock) -> None:
        store.write_token_cache("nfl", ["1", "2"])
        clock.now += HOUR_MS
        fetcher = _fetcher({})

        result = await _resolver(store, locator, fetcher, clock).get_token_universe("nfl", 180)

        assert result == ["1", "2"]
        fetcher.fetch_logs.assert_not_awaited()
        locator.latest_block.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_cache_is_unioned_with_logs(self, store, locator, clock, trade_log, promotion_log) -> None:
        store.write_token_cache("nfl", ["5"])
        clock.now += 7 * HOUR_MS
        fetcher = _fetcher(
            {
                TOPIC_PLAYER_TOKENS_PURCHASE: [trade_log([10], [1], [1])],
                TOPIC_CURRENCY_PURCHASE: [trade_log([7], [1], [1], sell=True)],
                TOPIC_PLAYER_SHARES_PROMOTED: [promotion_log([9])],
            }
        )

        result = await _resolver(store, locator, fetcher, clock).get_token_universe("nfl", 180)

        assert result == ["5", "7", "9", "10"]
        cached = store.read_token_cache("nfl")
        assert cached.token_ids == result
        assert cached.updated_at_ms == clock.now
        promo_call = fetcher.fetch_logs.await_args_list[2]
        assert promo_call.args == (
            ["0xc21c2d586f1db92eedb67a2fc348f21ed7541965"],
            TOPIC_PLAYER_SHARES_PROMOTED,
            100,
            5000,
        )

    @pytest.mark.asyncio
    async def test_buy_and_sell_scans_overlap(self, store, locator, clock, trade_log) -> None:
        in_flight: set[str] = set()
        both_started = asyncio.Event()

        async def fetch_logs(addresses, topic0, from_block, to_block):
            if topic0 == TOPIC_PLAYER_SHARES_PROMOTED:
                return []
            in_flight.add(topic0)
            if len(in_flight) == 2:
                both_started.set()
            await asyncio.wait_for(both_started.wait(), timeout=1.0)
            return [trade_log([1], [1], [1], sell=topic0 == TOPIC_CURRENCY_PURCHASE)]

        fetcher = MagicMock()
        fetcher.fetch_logs = AsyncMock(side_effect=fetch_logs)

        result = await _resolver(store, locator, fetcher, clock).get_token_universe("nfl", 180)

        assert result == ["1"]
        assert in_flight == {TOPIC_PLAYER_TOKENS_PURCHASE, TOPIC_CURRENCY_PURCHASE}

    @pytest.mark.asyncio
    async def test_failed_topic_scan_keeps_other_topics(self, store, locator, clock, promotion_log) -> None:
        fetcher = _fetcher(
            {
                TOPIC_PLAYER_TOKENS_PURCHASE: RuntimeError("too many results"),
                TOPIC_PLAYER_SHARES_PROMOTED: [promotion_log([3])],
            }
        )

        result = await _resolver(store, locator, fetcher, clock).get_token_universe("nfl", 180)

        assert result == ["3"]

    @pytest.mark.asyncio
    async def test_lookback_is_clamped_to_epoch(self, store, locator, clock) -> None:
        await _resolver(store, locator, _fetcher({}), clock).get_token_universe("nfl", 365)
        locator.find_block_by_timestamp.assert_awaited_once_with(UNIVERSE_EPOCH_MS)

    @pytest.mark.asyncio
    async def test_short_lookback(self, store, locator, clock) -> None:
        await _resolver(store, locator, _fetcher({}), clock).get_token_universe("nfl", 7)
        locator.find_block_by_timestamp.assert_awaited_once_with(NOW - 7 * DAY_MS)

    @pytest.mark.asyncio
    async def test_transfers_fallback_paginates(self, store, locator, clock) -> None:
        rpc = MagicMock()
        rpc.call = AsyncMock(
            side_effect=[
                {"transfers": [{"erc1155Metadata": [{"tokenId": "0x0c"}]}], "pageKey": "page-2"},
                {"transfers": [{"erc1155Metadata": [{"tokenId": "0x04"}]}]},
            ]
        )

        result = await _resolver(store, locator, _fetcher({}), clock, rpc).get_token_universe("nfl", 180)

        assert result == ["4", "12"]
        assert rpc.call.await_count == 2
        first = rpc.call.await_args_list[0].args
        second = rpc.call.await_args_list[1].args
        assert first[0] == "alchemy_getAssetTransfers"
        assert "pageKey" not in first[1][0]
        assert second[1][0]["pageKey"] == "page-2"
        assert first[1][0]["contractAddresses"] == ["0x71c8b0c5148edb0399d1edf9bf0c8c81dea16918"]

    @pytest.mark.asyncio
    async def test_empty_rebuild_keeps_existing_cache(self, store, locator, clock) -> None:
        store.write_token_cache("nfl", ["5", "6"])
        clock.now += 7 * HOUR_MS

        result = await _resolver(store, locator, _fetcher({}), clock).get_token_universe("nfl", 180)

        assert result == ["5", "6"]

    @pytest.mark.asyncio
    async def test_unknown_sport(self, store, locator, clock) -> None:
        with pytest.raises(ValueError):
            await _resolver(store, locator, _fetcher({}), clock).get_token_universe("cricket", 180)

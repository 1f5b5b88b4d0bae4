"""Tests for chunked log scans."""

from typing import Any

import pytest

from sportfun_market.chain.logs import LogFetcher

PAIR = "0x9da1bb4e725acc0d96010b7ce2a7244cda446617"
TOPIC = "0x" + "11" * 32


class RangeLimitedRpc:
    """Fails any eth_getLogs spanning more than `max_span` blocks."""

    def __init__(self, max_span: int | None = 300) -> None:
        self.max_span = max_span
        self.requests: list[tuple[int, int]] = []
        self.served: list[tuple[int, int]] = []

    async def call(self, method: str, params: list[Any]) -> Any:
        assert method == "eth_getLogs"
        log_filter = params[0]
        start = int(log_filter["fromBlock"], 16)
        end = int(log_filter["toBlock"], 16)
        self.requests.append((start, end))
        if self.max_span is None or end - start + 1 > self.max_span:
            raise RuntimeError("query returned more than 10000 results")
        self.served.append((start, end))
        return [{"blockNumber": hex(start), "address": log_filter["address"][0]}]


class TestLogFetcher:
    """Tests for adaptive chunk halving."""

    @pytest.mark.asyncio
    async def test_small_range_single_call(self) -> None:
        rpc = RangeLimitedRpc(max_span=10_000)
        logs = await LogFetcher(rpc).fetch_logs([PAIR], TOPIC, 100, 199)

        assert rpc.requests == [(100, 199)]
        assert len(logs) == 1

    @pytest.mark.asyncio
    async def test_halves_until_provider_accepts(self) -> None:
        rpc = RangeLimitedRpc(max_span=300)
        await LogFetcher(rpc, chunk_blocks=2500, min_chunk_blocks=200).fetch_logs([PAIR], TOPIC, 0, 999)

        # 2500 -> 1250 -> 625 -> 312 all fail; 156 succeeds.
        assert all(end - start + 1 <= 156 for start, end in rpc.served)
        covered = [b for start, end in rpc.served for b in range(start, end + 1)]
        assert covered == list(range(0, 1000))

    @pytest.mark.asyncio
    async def test_chunks_run_in_order(self) -> None:
        rpc = RangeLimitedRpc(max_span=10_000)
        logs = await LogFetcher(rpc, chunk_blocks=100).fetch_logs([PAIR], TOPIC, 0, 349)

        assert rpc.served == [(0, 99), (100, 199), (200, 299), (300, 349)]
        assert [int(log["blockNumber"], 16) for log in logs] == [0, 100, 200, 300]

    @pytest.mark.asyncio
    async def test_propagates_at_min_chunk(self) -> None:
        rpc = RangeLimitedRpc(max_span=None)
        with pytest.raises(RuntimeError):
            await LogFetcher(rpc, chunk_blocks=800, min_chunk_blocks=200).fetch_logs([PAIR], TOPIC, 0, 5000)

        # 800 -> 400 -> 200, then the failure at 200 propagates.
        assert [end - start + 1 for start, end in rpc.requests] == [800, 400, 200]

    @pytest.mark.asyncio
    async def test_filter_shape(self) -> None:
        rpc = RangeLimitedRpc(max_span=10_000)
        captured: list[dict[str, Any]] = []
        original = rpc.call

        async def spy(method: str, params: list[Any]) -> Any:
            captured.append(params[0])
            return await original(method, params)

        rpc.call = spy  # type: ignore[method-assign]
        await LogFetcher(rpc).fetch_logs([PAIR], TOPIC, 16, 31)

        assert captured == [{"address": [PAIR], "topics": [TOPIC], "fromBlock": "0x10", "toBlock": "0x1f"}]

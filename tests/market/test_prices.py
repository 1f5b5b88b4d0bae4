"""Tests for batched AMM price reads."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import decode, encode

from sportfun_market.chain.contracts import GET_PRICES_SELECTOR
from sportfun_market.market.decoder import DecodeError
from sportfun_market.market.prices import PriceReader, decode_get_prices, encode_get_prices

PAIR = "0x9da1bb4e725acc0d96010b7ce2a7244cda446617"


def _price_rpc(missing: set[int] | None = None) -> MagicMock:
    """eth_call stub pricing token N at N * $1, omitting trailing ids in `missing`."""

    async def call(method, params):
        assert method == "eth_call"
        data = bytes.fromhex(params[0]["data"][10:])
        (ids,) = decode(["uint256[]"], data)
        prices = [i * 1_000_000 for i in ids if i not in (missing or set())]
        return "0x" + encode(["uint256[]"], [prices]).hex()

    rpc = MagicMock()
    rpc.call = AsyncMock(side_effect=call)
    return rpc


class TestCodec:
    def test_encode_starts_with_selector(self) -> None:
        data = encode_get_prices(GET_PRICES_SELECTOR, [1, 2])
        assert data.startswith(GET_PRICES_SELECTOR)
        assert decode(["uint256[]"], bytes.fromhex(data[10:])) == ((1, 2),)

    def test_decode_malformed(self) -> None:
        with pytest.raises(DecodeError):
            decode_get_prices("0x00")


class TestPriceReader:
    @pytest.mark.asyncio
    async def test_batches(self) -> None:
        rpc = _price_rpc()
        reader = PriceReader(rpc, GET_PRICES_SELECTOR, batch_size=2)

        prices = await reader.get_current_prices(PAIR, ["1", "2", "3", "4", "5"])

        assert prices == {str(i): i * 1_000_000 for i in range(1, 6)}
        assert rpc.call.await_count == 3
        request, block = rpc.call.await_args_list[0].args[1]
        assert request["to"] == PAIR
        assert block == "latest"

    @pytest.mark.asyncio
    async def test_short_result_leaves_tokens_unpriced(self) -> None:
        reader = PriceReader(_price_rpc(missing={3}), GET_PRICES_SELECTOR)

        prices = await reader.get_current_prices(PAIR, ["1", "2", "3"])

        assert set(prices) == {"1", "2"}

    @pytest.mark.asyncio
    async def test_empty_token_list(self) -> None:
        rpc = _price_rpc()
        assert await PriceReader(rpc, GET_PRICES_SELECTOR).get_current_prices(PAIR, []) == {}
        rpc.call.assert_not_awaited()

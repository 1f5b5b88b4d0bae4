"""Current AMM prices from the FDFPair `getPrices(uint256[])` view."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes

from sportfun_market.chain.blocks import RpcCaller
from sportfun_market.market.decoder import DecodeError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 200


def encode_get_prices(selector: str, token_ids: Sequence[int]) -> str:
    return selector + encode(["uint256[]"], [list(token_ids)]).hex()


def decode_get_prices(result: str | bytes) -> list[int]:
    try:
        (prices,) = decode(["uint256[]"], HexBytes(result))
    except (DecodingError, ValueError, TypeError) as e:
        raise DecodeError(f"Malformed getPrices result: {e}") from e
    return list(prices)


class PriceReader:
    """Reads current prices in fixed-size batches, one `eth_call` per batch."""

    def __init__(self, rpc: RpcCaller, selector: str, *, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self._rpc = rpc
        self._selector = selector
        self._batch_size = batch_size

    async def get_current_prices(self, fdf_pair: str, token_ids: Sequence[str]) -> dict[str, int]:
        """Map token id -> price in USDC raw units.

        Tokens the contract returns no price for are absent from the result.
        RPC failures propagate.
        """
        prices: dict[str, int] = {}
        ids = [int(t) for t in token_ids]

        for start in range(0, len(ids), self._batch_size):
            batch = ids[start : start + self._batch_size]
            data = encode_get_prices(self._selector, batch)
            result = await self._rpc.call("eth_call", [{"to": fdf_pair, "data": data}, "latest"])
            values = decode_get_prices(result)
            for token_id, price in zip(batch, values, strict=False):
                prices[str(token_id)] = price

        logger.debug("Read %d prices from %s", len(prices), fdf_pair)
        return prices

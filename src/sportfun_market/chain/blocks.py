"""Block-time lookups: block timestamps and timestamp -> block search."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from sportfun_market.cache import TtlCache
from sportfun_market.chain.client import parse_quantity, to_hex
from sportfun_market.pool import map_limited

logger = logging.getLogger(__name__)

MAX_SEARCH_ITERATIONS = 40
DEFAULT_BLOCK_AT_TTL_SECONDS = 3600
DEFAULT_CONCURRENCY = 6


class RpcCaller(Protocol):
    async def call(self, method: str, params: list[Any]) -> Any: ...


class BlockTimeLocator:
    """Maps wall-clock times to blocks on a chain whose head keeps advancing.

    Block timestamps are cached without expiry. Searches are cached per whole
    second of the target for `block_at_ttl_seconds`; the chain head is read
    again for every uncached search.
    """

    def __init__(
        self,
        rpc: RpcCaller,
        cache: TtlCache,
        *,
        block_at_ttl_seconds: int = DEFAULT_BLOCK_AT_TTL_SECONDS,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self._rpc = rpc
        self._cache = cache
        self._block_at_ttl = block_at_ttl_seconds
        self._concurrency = concurrency

    async def latest_block(self) -> int:
        """Current chain head. Never cached."""
        return parse_quantity(await self._rpc.call("eth_blockNumber", []))

    async def get_block_timestamp_ms(self, block_number: int) -> int:
        async def load() -> int:
            block = await self._rpc.call("eth_getBlockByNumber", [to_hex(block_number), False])
            if not block:
                raise LookupError(f"Block {block_number} not found")
            return parse_quantity(block["timestamp"]) * 1000

        return await self._cache.get_or_load(f"block-ts:{block_number}", None, load)

    async def get_block_timestamps(self, block_numbers: Iterable[int]) -> dict[int, int]:
        """Resolve timestamps (ms) for many blocks through a bounded worker pool."""
        blocks = sorted(set(block_numbers))

        async def one(block_number: int) -> tuple[int, int]:
            return block_number, await self.get_block_timestamp_ms(block_number)

        pairs = await map_limited(blocks, self._concurrency, one)
        return dict(pairs)

    async def find_block_by_timestamp(self, target_ms: int) -> int:
        """Return the first block whose timestamp is at or after `target_ms`.

        Binary search keeps `ts(low) < target_ms <= ts(high)`. If the target is
        past the head, the head is returned.
        """
        key = f"block-at:{target_ms // 1000}"

        async def search() -> int:
            low = 0
            high = await self.latest_block()
            iterations = 0
            while low + 1 < high and iterations < MAX_SEARCH_ITERATIONS:
                iterations += 1
                mid = (low + high) // 2
                if await self.get_block_timestamp_ms(mid) < target_ms:
                    low = mid
                else:
                    high = mid
            logger.debug("Resolved ts=%d to block %d in %d iterations", target_ms, high, iterations)
            return high

        return await self._cache.get_or_load(key, self._block_at_ttl, search)

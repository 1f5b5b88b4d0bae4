"""Chunked `eth_getLogs` scans with adaptive chunk sizing."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sportfun_market.chain.blocks import RpcCaller
from sportfun_market.chain.client import to_hex

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_BLOCKS = 2500
DEFAULT_MIN_CHUNK_BLOCKS = 200


class LogFetcher:
    """Paginates a log query over a block range.

    Chunks run sequentially, in block order. When a chunk fails the chunk size
    is halved and the same start block is retried; once the chunk size is at
    or below `min_chunk_blocks` the failure propagates. Providers cap response
    size and compute per call without documenting the limit.
    """

    def __init__(
        self,
        rpc: RpcCaller,
        *,
        chunk_blocks: int = DEFAULT_CHUNK_BLOCKS,
        min_chunk_blocks: int = DEFAULT_MIN_CHUNK_BLOCKS,
    ) -> None:
        self._rpc = rpc
        self._chunk_blocks = chunk_blocks
        self._min_chunk_blocks = min_chunk_blocks

    async def _fetch_chunk(
        self,
        addresses: Sequence[str],
        topic0: str,
        from_block: int,
        to_block: int,
    ) -> list[dict[str, Any]]:
        log_filter = {
            "address": list(addresses),
            "topics": [topic0],
            "fromBlock": to_hex(from_block),
            "toBlock": to_hex(to_block),
        }
        result = await self._rpc.call("eth_getLogs", [log_filter])
        return list(result or [])

    async def fetch_logs(
        self,
        addresses: Sequence[str],
        topic0: str,
        from_block: int,
        to_block: int,
    ) -> list[dict[str, Any]]:
        """Fetch every log matching `topic0` from `addresses` in [from_block, to_block]."""
        logs: list[dict[str, Any]] = []
        chunk = self._chunk_blocks
        start = from_block

        while start <= to_block:
            end = min(to_block, start + chunk - 1)
            try:
                batch = await self._fetch_chunk(addresses, topic0, start, end)
            except Exception as e:
                if chunk <= self._min_chunk_blocks:
                    raise
                chunk //= 2
                logger.warning(
                    "eth_getLogs %d-%d failed (%s); retrying with chunk=%d",
                    start,
                    end,
                    e,
                    chunk,
                )
                continue
            logs.extend(batch)
            start = end + 1

        return logs

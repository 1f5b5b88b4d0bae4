"""Trade event retrieval for a sport over a block range."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sportfun_market.chain.blocks import BlockTimeLocator
from sportfun_market.chain.contracts import (
    TOPIC_CURRENCY_PURCHASE,
    TOPIC_PLAYER_TOKENS_PURCHASE,
    get_sport_contracts,
)
from sportfun_market.chain.logs import LogFetcher
from sportfun_market.market.decoder import DecodeError, decode_trade_log, log_block_number
from sportfun_market.market.models import TradeEvent

logger = logging.getLogger(__name__)


class TradeEventSource:
    """Fetches and decodes buy/sell fills from a sport's FDFPair contracts."""

    def __init__(self, logs: LogFetcher, locator: BlockTimeLocator) -> None:
        self._logs = logs
        self._locator = locator

    async def get_trade_events(self, sport: str, from_block: int, to_block: int) -> list[TradeEvent]:
        """Return every decoded trade in [from_block, to_block].

        Buy and sell logs are fetched concurrently. A log that fails to decode
        is skipped with a warning; fetch errors propagate.
        """
        pairs = [c.fdf_pair.lower() for c in get_sport_contracts(sport)]
        buys, sells = await asyncio.gather(
            self._logs.fetch_logs(pairs, TOPIC_PLAYER_TOKENS_PURCHASE, from_block, to_block),
            self._logs.fetch_logs(pairs, TOPIC_CURRENCY_PURCHASE, from_block, to_block),
        )
        logs: list[dict[str, Any]] = [*buys, *sells]
        if not logs:
            return []

        numbered: list[tuple[int, dict[str, Any]]] = []
        for log in logs:
            try:
                numbered.append((log_block_number(log), log))
            except DecodeError as e:
                logger.warning("Skipping %s log: %s", sport, e)

        timestamps = await self._locator.get_block_timestamps(n for n, _ in numbered)

        events: list[TradeEvent] = []
        skipped = 0
        for block_number, log in numbered:
            timestamp_ms = timestamps.get(block_number)
            if not timestamp_ms:
                continue
            try:
                events.extend(decode_trade_log(log, timestamp_ms))
            except DecodeError as e:
                skipped += 1
                logger.warning(
                    "Skipping undecodable %s trade log tx=%s: %s",
                    sport,
                    log.get("transactionHash"),
                    e,
                )

        logger.debug(
            "Decoded %d %s trade events from %d logs (%d skipped) in blocks %d-%d",
            len(events),
            sport,
            len(logs),
            skipped,
            from_block,
            to_block,
        )
        return events

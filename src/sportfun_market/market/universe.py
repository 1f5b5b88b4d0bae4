"""Token universe discovery for a sport.

The universe is every token id that has traded or been promoted since the
platform went live, plus whatever a previous run already recorded. It is
expensive to rebuild (months of logs), so results are kept on disk.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sportfun_market.chain.blocks import BlockTimeLocator, RpcCaller
from sportfun_market.chain.client import to_hex
from sportfun_market.chain.contracts import (
    TOPIC_CURRENCY_PURCHASE,
    TOPIC_PLAYER_SHARES_PROMOTED,
    TOPIC_PLAYER_TOKENS_PURCHASE,
    get_sport_contracts,
)
from sportfun_market.chain.logs import LogFetcher
from sportfun_market.market.decoder import DecodeError, decode_token_ids
from sportfun_market.storage.files import SnapshotStore

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
UNIVERSE_EPOCH_MS = int(datetime(2025, 8, 1, tzinfo=UTC).timestamp() * 1000)
DEFAULT_TTL_SECONDS = 6 * 60 * 60
DEFAULT_MAX_TRANSFER_PAGES = 20
TRANSFER_PAGE_SIZE = 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_token_id(value: Any) -> str | None:
    """Normalize a hex or decimal token id to a decimal string."""
    if value is None or value == "":
        return None
    try:
        text = str(value).strip()
        number = int(text, 16) if text[:2].lower() == "0x" else int(text, 10)
    except ValueError:
        return None
    return str(number)


def extract_transfer_token_ids(transfer: dict[str, Any]) -> list[str]:
    """Token ids carried by one `alchemy_getAssetTransfers` entry."""
    ids = [
        token_id
        for entry in transfer.get("erc1155Metadata") or []
        if isinstance(entry, dict) and (token_id := parse_token_id(entry.get("tokenId")))
    ]
    if not ids:
        token_id = parse_token_id(transfer.get("tokenId"))
        if token_id:
            ids.append(token_id)
    return ids


def sort_token_ids(token_ids: set[str] | list[str]) -> list[str]:
    return sorted(set(token_ids), key=int)


class TokenUniverseResolver:
    """Resolves and persists the set of known token ids for a sport."""

    def __init__(
        self,
        rpc: RpcCaller,
        locator: BlockTimeLocator,
        logs: LogFetcher,
        store: SnapshotStore,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_transfer_pages: int = DEFAULT_MAX_TRANSFER_PAGES,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._rpc = rpc
        self._locator = locator
        self._logs = logs
        self._store = store
        self._ttl_ms = ttl_seconds * 1000
        self._max_transfer_pages = max_transfer_pages
        self._clock = clock

    async def get_token_universe(self, sport: str, lookback_days: int) -> list[str]:
        """Return known token ids for `sport`, ascending by numeric value.

        A disk cache younger than the TTL is returned without any RPC. An
        empty rebuild never replaces a non-empty cache.
        """
        now = self._clock()
        cached = self._store.read_token_cache(sport)
        if cached is not None and now - cached.updated_at_ms < self._ttl_ms:
            logger.debug("Token universe cache hit for %s (%d ids)", sport, len(cached.token_ids))
            return cached.token_ids

        contracts = get_sport_contracts(sport)
        latest = await self._locator.latest_block()
        from_ts = max(now - lookback_days * DAY_MS, UNIVERSE_EPOCH_MS)
        from_block = await self._locator.find_block_by_timestamp(from_ts)

        token_ids: set[str] = set(cached.token_ids if cached else [])

        pairs = [c.fdf_pair.lower() for c in contracts]
        buy_ids, sell_ids = await asyncio.gather(
            self._ids_from_logs(sport, pairs, TOPIC_PLAYER_TOKENS_PURCHASE, from_block, latest),
            self._ids_from_logs(sport, pairs, TOPIC_CURRENCY_PURCHASE, from_block, latest),
        )
        token_ids.update(buy_ids)
        token_ids.update(sell_ids)

        dev_players = [c.development_players.lower() for c in contracts if c.development_players]
        if dev_players:
            token_ids.update(
                await self._ids_from_logs(sport, dev_players, TOPIC_PLAYER_SHARES_PROMOTED, from_block, latest)
            )

        if not token_ids:
            players = [c.player_token for c in contracts]
            token_ids.update(await self._ids_from_transfers(players, from_block, latest))

        result = sort_token_ids(token_ids)
        if not result and cached is not None and cached.token_ids:
            logger.warning("Token universe rebuild for %s came back empty; keeping cache", sport)
            return cached.token_ids

        self._store.write_token_cache(sport, result)
        logger.info("Token universe for %s: %d ids (blocks %d-%d)", sport, len(result), from_block, latest)
        return result

    async def _ids_from_logs(
        self,
        sport: str,
        addresses: list[str],
        topic0: str,
        from_block: int,
        to_block: int,
    ) -> list[str]:
        try:
            logs = await self._logs.fetch_logs(addresses, topic0, from_block, to_block)
        except Exception as e:
            logger.warning("Token universe log scan failed for %s topic=%s: %s", sport, topic0, e)
            return []

        ids: list[str] = []
        for log in logs:
            try:
                ids.extend(decode_token_ids(log))
            except DecodeError as e:
                logger.warning("Skipping undecodable %s log: %s", sport, e)
        return ids

    async def _ids_from_transfers(self, addresses: list[str], from_block: int, to_block: int) -> set[str]:
        """Enumerate ERC-1155 transfers of the player token contracts."""
        token_ids: set[str] = set()
        page_key: str | None = None

        for _ in range(self._max_transfer_pages):
            params: dict[str, Any] = {
                "fromBlock": to_hex(from_block),
                "toBlock": to_hex(to_block),
                "category": ["erc1155"],
                "contractAddresses": addresses,
                "withMetadata": False,
                "maxCount": to_hex(TRANSFER_PAGE_SIZE),
                "order": "desc",
            }
            if page_key:
                params["pageKey"] = page_key

            result = await self._rpc.call("alchemy_getAssetTransfers", [params]) or {}
            for transfer in result.get("transfers") or []:
                token_ids.update(extract_transfer_token_ids(transfer))

            page_key = result.get("pageKey")
            if not page_key:
                break

        return token_ids

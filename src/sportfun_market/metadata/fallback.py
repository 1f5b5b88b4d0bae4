"""NFL player feed used to fill metadata gaps left by on-chain URIs.

The feed is a public JSON document with a `players` list. Each successful
download is written to a local snapshot; when the feed is unavailable the
local snapshot (if recent enough) and then a bundled snapshot are used.
"""

from __future__ import annotations

import logging
import math
import re
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import httpx

from sportfun_market.cache import TtlCache
from sportfun_market.metadata.attributes import normalize_position, parse_number
from sportfun_market.storage.files import read_json_file, write_json_file

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = "https://nfl-fun.vercel.app/data/players/players.json"
DEFAULT_CACHE_TTL_SECONDS = 6 * 60 * 60
DEFAULT_STALE_MAX_AGE_SECONDS = 14 * 24 * 60 * 60

_TEAM_ALIASES = {"JAC": "JAX", "LA": "LAR"}
_INTEGER = re.compile(r"^-?\d+$")


def _now_ms() -> int:
    return int(time.time() * 1000)


class FeedSource(str, Enum):
    REMOTE = "remote"
    STALE_SNAPSHOT = "stale_snapshot"
    BUNDLED_SNAPSHOT = "bundled_snapshot"
    EMPTY = "empty"


@dataclass(frozen=True)
class FallbackRow:
    """Player metadata from the feed for one token id."""

    token_id: str
    name: str | None = None
    position: str | None = None
    team: str | None = None
    image: str | None = None
    is_tradeable: bool | None = None
    supply: float | None = None

    def merge(self, other: FallbackRow) -> FallbackRow:
        """Fill this row's empty fields from `other`."""
        return FallbackRow(
            token_id=self.token_id,
            name=self.name if self.name is not None else other.name,
            position=self.position if self.position is not None else other.position,
            team=self.team if self.team is not None else other.team,
            image=self.image if self.image is not None else other.image,
            is_tradeable=self.is_tradeable if self.is_tradeable is not None else other.is_tradeable,
            supply=self.supply if self.supply is not None else other.supply,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tokenIdDec": self.token_id,
            "name": self.name,
            "position": self.position,
            "team": self.team,
            "image": self.image,
            "isTradeable": self.is_tradeable,
            "supply": self.supply,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FallbackRow | None:
        token_id = data.get("tokenIdDec")
        if not isinstance(token_id, str) or not token_id:
            return None
        supply = data.get("supply")
        return cls(
            token_id=token_id,
            name=_str(data.get("name")),
            position=_str(data.get("position")),
            team=_str(data.get("team")),
            image=_str(data.get("image")),
            is_tradeable=data.get("isTradeable") if isinstance(data.get("isTradeable"), bool) else None,
            supply=float(supply) if isinstance(supply, (int, float)) and math.isfinite(supply) else None,
        )


@dataclass(frozen=True)
class FallbackFeedResult:
    rows: tuple[FallbackRow, ...] = ()
    source: FeedSource = FeedSource.EMPTY
    stale_age_ms: int | None = None
    by_token: dict[str, FallbackRow] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_token", {row.token_id: row for row in self.rows})

    def get(self, token_id: str) -> FallbackRow | None:
        return self.by_token.get(token_id)

    def token_ids(self) -> list[str]:
        return sorted({row.token_id for row in self.rows}, key=int)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": [row.to_dict() for row in self.rows],
            "source": self.source.value,
            "staleAgeMs": self.stale_age_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FallbackFeedResult:
        return cls(
            rows=_rows_from_dicts(data.get("rows") or []),
            source=FeedSource(data.get("source", FeedSource.EMPTY.value)),
            stale_age_ms=data.get("staleAgeMs"),
        )


def _str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _rows_from_dicts(items: Iterable[Any]) -> tuple[FallbackRow, ...]:
    rows = []
    for item in items:
        if isinstance(item, dict) and (row := FallbackRow.from_dict(item)) is not None:
            rows.append(row)
    return tuple(rows)


def parse_token_id_dec(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if _INTEGER.match(text):
            return str(int(text))
    return None


def parse_boolean(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in ("1", "true", "yes"):
            return True
        if normalized in ("0", "false", "no"):
            return False
    return None


def normalize_team(value: str | None) -> str | None:
    if not value:
        return None
    team = value.strip().upper()
    if not team:
        return None
    return _TEAM_ALIASES.get(team, team)


def parse_player(raw: dict[str, Any]) -> FallbackRow | None:
    token_id = parse_token_id_dec(raw.get("oPlayerId"))
    if token_id is None:
        return None
    position = _str(raw.get("position"))
    return FallbackRow(
        token_id=token_id,
        name=_str(raw.get("name")),
        position=normalize_position(position) if position else None,
        team=normalize_team(_str(raw.get("team"))),
        image=_str(raw.get("photoUrl")),
        is_tradeable=parse_boolean(raw.get("isTradeable")),
        supply=parse_number(raw.get("circulatingSupply")),
    )


def parse_players_payload(payload: Any) -> list[FallbackRow]:
    """Rows from a feed document, merged by token id (first value wins)."""
    players = payload.get("players") if isinstance(payload, dict) else None
    by_token: dict[str, FallbackRow] = {}
    for item in players if isinstance(players, list) else []:
        if not isinstance(item, dict):
            continue
        row = parse_player(item)
        if row is None:
            continue
        current = by_token.get(row.token_id)
        by_token[row.token_id] = current.merge(row) if current else row
    return list(by_token.values())


class NflFallbackFeed:
    """Remote NFL player feed with local and bundled snapshot fallbacks."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        url: str = DEFAULT_FEED_URL,
        snapshot_path: Path,
        bundled_snapshot_path: Path | None = None,
        cache: TtlCache | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        stale_max_age_seconds: int = DEFAULT_STALE_MAX_AGE_SECONDS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._http = http
        self._url = url
        self._snapshot_path = Path(snapshot_path)
        self._bundled_path = Path(bundled_snapshot_path) if bundled_snapshot_path else None
        self._cache = cache
        self._cache_ttl = cache_ttl_seconds
        self._stale_max_age_ms = stale_max_age_seconds * 1000
        self._clock = clock

    async def get_token_meta(self) -> FallbackFeedResult:
        """Return feed rows and where they came from. Never raises."""
        if self._cache is None:
            return await self._load()

        async def load() -> dict[str, Any]:
            return (await self._load()).to_dict()

        data = await self._cache.get_or_load(f"nfl-fallback:players:{self._url}", self._cache_ttl, load)
        return FallbackFeedResult.from_dict(data)

    async def _load(self) -> FallbackFeedResult:
        now = self._clock()
        try:
            rows = await self._fetch_remote()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("NFL fallback feed fetch failed (%s): %s", self._url, e)
            return self._from_snapshots(now)

        if rows:
            self._write_snapshot(rows, now)
            return FallbackFeedResult(rows=tuple(rows), source=FeedSource.REMOTE)

        logger.warning("NFL fallback feed returned no players (%s)", self._url)
        return self._from_snapshots(now)

    async def _fetch_remote(self) -> list[FallbackRow]:
        response = await self._http.get(
            self._url,
            headers={"accept": "application/json", "user-agent": "sportfun-market/0.1"},
        )
        response.raise_for_status()
        return parse_players_payload(response.json())

    def _from_snapshots(self, now: int) -> FallbackFeedResult:
        data = read_json_file(self._snapshot_path)
        if isinstance(data, dict) and isinstance(data.get("updatedAt"), (int, float)):
            rows = _rows_from_dicts(data.get("rows") or [])
            age = int(now - data["updatedAt"])
            if rows and age <= self._stale_max_age_ms:
                logger.info("Using NFL fallback snapshot aged %dms", age)
                return FallbackFeedResult(rows=rows, source=FeedSource.STALE_SNAPSHOT, stale_age_ms=age)

        if self._bundled_path is not None:
            bundled = read_json_file(self._bundled_path)
            rows = _rows_from_dicts(bundled.get("rows") or []) if isinstance(bundled, dict) else ()
            if rows:
                return FallbackFeedResult(rows=rows, source=FeedSource.BUNDLED_SNAPSHOT)

        return FallbackFeedResult(source=FeedSource.EMPTY)

    def _write_snapshot(self, rows: list[FallbackRow], now: int) -> None:
        try:
            write_json_file(
                self._snapshot_path,
                {"updatedAt": now, "sourceUrl": self._url, "rows": [row.to_dict() for row in rows]},
            )
        except OSError as e:
            logger.warning("Failed to write NFL fallback snapshot %s: %s", self._snapshot_path, e)

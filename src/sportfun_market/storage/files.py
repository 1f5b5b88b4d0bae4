"""JSON files holding the token universe and the last-known-good snapshot.

Files are rewritten whole. A missing, unreadable or malformed file reads as
a cache miss; write failures are logged and otherwise ignored.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sportfun_market.market.models import MarketSnapshot

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TokenCache:
    token_ids: list[str]
    updated_at_ms: int


def write_json_file(path: Path, payload: Any) -> None:
    """Replace `path` with `payload` as JSON. Raises OSError on failure."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    tmp.write_text(json.dumps(payload), encoding="utf-8")
    os.replace(tmp, path)


def read_json_file(path: Path) -> Any | None:
    """Load JSON from `path`, or None when missing or unparseable."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        logger.warning("Ignoring corrupt JSON in %s: %s", path, e)
        return None


class SnapshotStore:
    """Per-sport files under one cache directory."""

    def __init__(self, cache_dir: Path, *, clock: Callable[[], int] = _now_ms) -> None:
        self._dir = Path(cache_dir)
        self._clock = clock

    def token_cache_path(self, sport: str) -> Path:
        return self._dir / f"tokens-{sport}.json"

    def snapshot_path(self, sport: str) -> Path:
        return self._dir / f"snapshot-{sport}.json"

    def read_token_cache(self, sport: str) -> TokenCache | None:
        data = read_json_file(self.token_cache_path(sport))
        if not isinstance(data, dict) or not isinstance(data.get("tokenIds"), list):
            return None
        updated_at = data.get("updatedAt")
        return TokenCache(
            token_ids=[str(t) for t in data["tokenIds"]],
            updated_at_ms=int(updated_at) if isinstance(updated_at, (int, float)) else 0,
        )

    def write_token_cache(self, sport: str, token_ids: list[str]) -> None:
        try:
            write_json_file(
                self.token_cache_path(sport),
                {"tokenIds": token_ids, "updatedAt": self._clock()},
            )
        except OSError as e:
            logger.warning("Failed to write %s token cache: %s", sport, e)

    def read_snapshot(self, sport: str, max_age_ms: int) -> MarketSnapshot | None:
        """Return the persisted snapshot if it is at most `max_age_ms` old."""
        data = read_json_file(self.snapshot_path(sport))
        if not isinstance(data, dict):
            return None
        updated_at = data.get("updatedAt")
        snapshot = data.get("snapshot")
        if not isinstance(updated_at, (int, float)) or not isinstance(snapshot, dict):
            return None
        if self._clock() - updated_at > max_age_ms:
            logger.debug("Persisted %s snapshot is stale (updatedAt=%d)", sport, updated_at)
            return None
        try:
            return MarketSnapshot.from_dict(snapshot)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed persisted %s snapshot: %s", sport, e)
            return None

    def write_snapshot(self, sport: str, snapshot: MarketSnapshot) -> None:
        try:
            write_json_file(
                self.snapshot_path(sport),
                {"updatedAt": self._clock(), "snapshot": snapshot.to_dict()},
            )
        except OSError as e:
            logger.warning("Failed to persist %s snapshot: %s", sport, e)

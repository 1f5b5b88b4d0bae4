"""File-backed cache of resolved ERC-1155 metadata, keyed by contract and token."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sportfun_market.market.models import TokenMetadata
from sportfun_market.storage.files import read_json_file, write_json_file

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60


def _now_ms() -> int:
    return int(time.time() * 1000)


def metadata_cache_key(contract_address: str, token_id: int | str) -> str:
    return f"{contract_address.lower()}:{token_id}"


@dataclass(frozen=True)
class MetadataCacheEntry:
    updated_at_ms: int
    uri: str | None = None
    metadata: TokenMetadata | None = None
    template: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "updatedAt": self.updated_at_ms,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }
        if self.uri is not None:
            data["uri"] = self.uri
        if self.template is not None:
            data["template"] = self.template
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetadataCacheEntry:
        metadata = data.get("metadata")
        return cls(
            updated_at_ms=int(data.get("updatedAt") or 0),
            uri=data.get("uri"),
            metadata=TokenMetadata.from_dict(metadata) if isinstance(metadata, dict) else None,
            template=data.get("template"),
            error=data.get("error"),
        )


class MetadataCacheStore:
    """In-memory map mirrored to a single JSON file.

    The file is read lazily on first access and rewritten on every `set`,
    or once on exit when writes are batched with `deferred_writes()`.
    A missing or corrupt file starts an empty cache.
    """

    def __init__(
        self,
        path: Path,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._path = Path(path)
        self._ttl_ms = ttl_seconds * 1000
        self._clock = clock
        self._entries: dict[str, MetadataCacheEntry] | None = None
        self._deferred = 0
        self._dirty = False

    def now_ms(self) -> int:
        return self._clock()

    def _load(self) -> dict[str, MetadataCacheEntry]:
        if self._entries is not None:
            return self._entries
        entries: dict[str, MetadataCacheEntry] = {}
        data = read_json_file(self._path)
        raw_entries = data.get("entries") if isinstance(data, dict) else None
        if isinstance(raw_entries, dict):
            for key, raw in raw_entries.items():
                if isinstance(raw, dict):
                    entries[key] = MetadataCacheEntry.from_dict(raw)
        self._entries = entries
        return entries

    def get(self, key: str) -> MetadataCacheEntry | None:
        return self._load().get(key)

    def is_fresh(self, entry: MetadataCacheEntry | None, now_ms: int | None = None) -> bool:
        if entry is None:
            return False
        now = self._clock() if now_ms is None else now_ms
        return now - entry.updated_at_ms < self._ttl_ms

    def set(self, key: str, entry: MetadataCacheEntry) -> None:
        self._load()[key] = entry
        self._dirty = True
        if not self._deferred:
            self.flush()

    def flush(self) -> None:
        """Write the cache file if any entry changed since the last write."""
        if not self._dirty or self._entries is None:
            return
        try:
            write_json_file(
                self._path,
                {
                    "updatedAt": self._clock(),
                    "entries": {k: v.to_dict() for k, v in self._entries.items()},
                },
            )
        except OSError as e:
            logger.warning("Failed to write metadata cache %s: %s", self._path, e)
            return
        self._dirty = False

    @contextmanager
    def deferred_writes(self) -> Iterator[None]:
        """Hold file writes until the outermost block exits."""
        self._deferred += 1
        try:
            yield
        finally:
            self._deferred -= 1
            if not self._deferred:
                self.flush()

"""Storage layer - JSON files for the token universe and last-good snapshots."""

from sportfun_market.storage.files import SnapshotStore, TokenCache

__all__ = [
    "SnapshotStore",
    "TokenCache",
]

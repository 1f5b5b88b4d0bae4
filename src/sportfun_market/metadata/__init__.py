"""Metadata layer - ERC-1155 URI resolution, fallback feed and overrides."""

from sportfun_market.metadata.cache import MetadataCacheStore
from sportfun_market.metadata.fallback import FallbackFeedResult, FallbackRow, NflFallbackFeed
from sportfun_market.metadata.overrides import NameOverrides
from sportfun_market.metadata.resolver import Erc1155MetadataResolver
from sportfun_market.metadata.uri import MetadataResolutionError

__all__ = [
    "Erc1155MetadataResolver",
    "FallbackFeedResult",
    "FallbackRow",
    "MetadataCacheStore",
    "MetadataResolutionError",
    "NameOverrides",
    "NflFallbackFeed",
]

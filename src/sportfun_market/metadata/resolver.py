"""ERC-1155 token metadata resolution with cache-first lookups.

Lookups consult, in order: the shared TTL cache, the on-disk metadata cache
(fresh entries with an unchanged template skip the network), the previously
resolved URI, and finally the contract's `uri(uint256)`.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from typing import Any

import httpx
from eth_abi import decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes

from sportfun_market.cache import TtlCache
from sportfun_market.chain.blocks import RpcCaller
from sportfun_market.chain.contracts import ERC1155_URI_SELECTOR
from sportfun_market.market.models import TokenMetadata
from sportfun_market.metadata.cache import MetadataCacheEntry, MetadataCacheStore, metadata_cache_key
from sportfun_market.metadata.uri import (
    DEFAULT_ARWEAVE_GATEWAY,
    DEFAULT_IPFS_GATEWAY,
    MetadataResolutionError,
    build_metadata_candidates,
    decode_data_uri_json,
    format_token_id_hex,
    parse_erc1155_metadata,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60


def encode_uri_call(token_id: int) -> str:
    return ERC1155_URI_SELECTOR + format_token_id_hex(token_id)


def decode_abi_string(result: str | bytes) -> str:
    try:
        (value,) = decode(["string"], HexBytes(result))
    except (DecodingError, ValueError, TypeError) as e:
        raise MetadataResolutionError(f"Malformed uri() result: {e}") from e
    return str(value)


class Erc1155MetadataResolver:
    """Resolves display metadata for ERC-1155 player tokens.

    Example:
        ```python
        resolver = Erc1155MetadataResolver(
            rpc=rpc,
            store=MetadataCacheStore(Path(".cache/sportfun/erc1155-metadata.json")),
            http=httpx.AsyncClient(timeout=10.0),
            template="https://api.sport.fun/athletes/{id}/metadata.json",
        )
        metadata = await resolver.get_metadata(player_token, 42)
        ```
    """

    def __init__(
        self,
        rpc: RpcCaller,
        store: MetadataCacheStore,
        http: httpx.AsyncClient,
        *,
        template: str,
        default_template: str | None = None,
        cache: TtlCache | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        ipfs_gateway: str = DEFAULT_IPFS_GATEWAY,
        arweave_gateway: str = DEFAULT_ARWEAVE_GATEWAY,
    ) -> None:
        """Initialize the resolver.

        Args:
            rpc: JSON-RPC caller used for `eth_call`.
            store: File-backed metadata cache.
            http: HTTP client used for metadata fetches; its timeout applies.
            template: Athlete metadata URL template with `{id}`.
            default_template: Template tried after `template` when different.
            cache: Optional shared cache in front of the file store.
            cache_ttl_seconds: Lifetime of shared cache entries.
            ipfs_gateway: Gateway prefix for `ipfs://` URIs.
            arweave_gateway: Gateway prefix for `ar://` URIs.
        """
        self._rpc = rpc
        self._store = store
        self._http = http
        self._template = template
        self._default_template = default_template or template
        self._cache = cache
        self._cache_ttl = cache_ttl_seconds
        self._ipfs_gateway = ipfs_gateway
        self._arweave_gateway = arweave_gateway

    def deferred_writes(self) -> AbstractContextManager[None]:
        """Batch metadata cache file writes for the duration of a block."""
        return self._store.deferred_writes()

    async def get_metadata(self, contract_address: str, token_id: int) -> TokenMetadata | None:
        """Return metadata for a token, or None when nothing is known.

        Failures never raise: the last cached metadata is returned instead.
        """
        if self._cache is None:
            return await self._resolve(contract_address, token_id)

        key = f"meta:{metadata_cache_key(contract_address, token_id)}:{self._template}"

        async def load() -> dict[str, Any] | None:
            metadata = await self._resolve(contract_address, token_id)
            return metadata.to_dict() if metadata else None

        data = await self._cache.get_or_load(key, self._cache_ttl, load)
        return TokenMetadata.from_dict(data) if data else None

    async def _resolve(self, contract_address: str, token_id: int) -> TokenMetadata | None:
        key = metadata_cache_key(contract_address, token_id)
        now = self._store.now_ms()
        cached = self._store.get(key)
        template_changed = bool(cached and cached.template and cached.template != self._template)

        if cached is not None and self._store.is_fresh(cached, now) and not template_changed:
            logger.debug("Metadata cache hit for %s", key)
            return cached.metadata

        try:
            cached_uri = cached.uri if cached is not None and not template_changed else None
            if cached_uri:
                try:
                    metadata, resolved = await self.resolve_uri(cached_uri, token_id)
                    self._store.set(
                        key,
                        MetadataCacheEntry(
                            updated_at_ms=now,
                            uri=resolved or cached_uri,
                            metadata=metadata,
                            template=self._template,
                        ),
                    )
                    return metadata
                except MetadataResolutionError as e:
                    logger.debug("Cached URI for %s no longer resolves: %s", key, e)

            result = await self._rpc.call(
                "eth_call",
                [{"to": contract_address, "data": encode_uri_call(token_id)}, "latest"],
            )
            uri_raw = decode_abi_string(result).strip()
            if not uri_raw:
                raise MetadataResolutionError("Empty token URI")

            metadata, resolved = await self.resolve_uri(uri_raw, token_id)
            self._store.set(
                key,
                MetadataCacheEntry(
                    updated_at_ms=now,
                    uri=resolved or (cached.uri if cached else None),
                    metadata=metadata,
                    template=self._template,
                ),
            )
            return metadata
        except Exception as e:
            logger.warning("Metadata resolution failed for %s: %s", key, e)
            # Failures are recorded so the entry stays fresh until the TTL lapses.
            self._store.set(
                key,
                MetadataCacheEntry(
                    updated_at_ms=now,
                    uri=cached.uri if cached else None,
                    metadata=cached.metadata if cached else None,
                    template=self._template,
                    error=str(e),
                ),
            )
            return cached.metadata if cached else None

    async def resolve_uri(self, uri_raw: str, token_id: int) -> tuple[TokenMetadata, str | None]:
        """Resolve a token URI to metadata.

        Returns:
            The parsed metadata and the URL it came from (None for inline
            data URIs).

        Raises:
            MetadataResolutionError: If no candidate yields usable metadata.
        """
        trimmed = uri_raw.strip()
        if not trimmed:
            raise MetadataResolutionError("Empty token URI")

        inline = decode_data_uri_json(trimmed)
        if inline is not None:
            metadata = parse_erc1155_metadata(inline)
            if metadata is None:
                raise MetadataResolutionError("Inline metadata has no usable fields")
            return metadata, None

        candidates = build_metadata_candidates(
            trimmed,
            token_id,
            self._template,
            self._default_template,
            ipfs_gateway=self._ipfs_gateway,
            arweave_gateway=self._arweave_gateway,
        )
        last_error = "no candidates"
        for url in candidates:
            try:
                payload = await self._fetch_json(url)
            except (httpx.HTTPError, ValueError) as e:
                last_error = f"{url}: {e}"
                continue
            metadata = parse_erc1155_metadata(payload)
            if metadata is not None:
                return metadata, url
            last_error = f"Metadata parse failed for {url}"

        raise MetadataResolutionError(last_error, resolved_uri=candidates[0] if candidates else None)

    async def _fetch_json(self, url: str) -> Any:
        response = await self._http.get(url, headers={"accept": "application/json"})
        response.raise_for_status()
        return response.json()

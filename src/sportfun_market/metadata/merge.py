"""Merge on-chain metadata, fallback feed rows and name overrides into tokens."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from sportfun_market.market.models import MarketToken, MetadataSource, TokenMetadata
from sportfun_market.metadata.attributes import extract_position, extract_supply, extract_team
from sportfun_market.metadata.fallback import FallbackRow


def fallback_attributes(row: FallbackRow) -> list[dict[str, Any]]:
    """Trait list standing in for on-chain attributes."""
    traits: list[dict[str, Any]] = []
    if row.position:
        traits.append({"trait_type": "position", "value": row.position})
    if row.team:
        traits.append({"trait_type": "team", "value": row.team})
    if row.supply is not None:
        traits.append({"trait_type": "circulating_supply", "value": row.supply})
    return traits


def resolve_provenance(
    metadata: TokenMetadata | None,
    fallback: FallbackRow | None,
    override: str | None,
) -> MetadataSource:
    """Classify which sources contributed name, position, team or supply.

    The fallback counts only where it filled a field the on-chain metadata
    left empty.
    """
    onchain_name = metadata.name if metadata else None
    attributes = metadata.attributes if metadata else None
    onchain_position = extract_position(attributes)
    onchain_team = extract_team(attributes)
    onchain_supply = extract_supply(attributes)

    used_onchain = bool(onchain_name or onchain_position or onchain_team or onchain_supply is not None)
    used_fallback = fallback is not None and bool(
        (not onchain_name and fallback.name)
        or (not onchain_position and fallback.position)
        or (not onchain_team and fallback.team)
        or (onchain_supply is None and fallback.supply is not None)
    )

    if used_onchain and used_fallback:
        return MetadataSource.HYBRID
    if used_onchain:
        return MetadataSource.ONCHAIN
    if used_fallback:
        return MetadataSource.FALLBACK
    if override:
        return MetadataSource.OVERRIDE
    return MetadataSource.NONE


def decorate_token(
    token: MarketToken,
    metadata: TokenMetadata | None,
    fallback: FallbackRow | None,
    override: str | None,
) -> MarketToken:
    """Return `token` with display metadata and its provenance filled in.

    Name precedence is override, then on-chain, then fallback. Position, team
    and supply come from the on-chain attribute bag, else the fallback row.
    """
    attributes = metadata.attributes if metadata and metadata.attributes is not None else None
    if attributes is None and fallback is not None:
        attributes = fallback_attributes(fallback)

    position = extract_position(attributes)
    team = extract_team(attributes)
    supply = extract_supply(attributes)

    return replace(
        token,
        name=override or (metadata.name if metadata else None) or (fallback.name if fallback else None),
        image=(metadata.image if metadata else None) or (fallback.image if fallback else None),
        description=metadata.description if metadata else None,
        attributes=attributes,
        position=position or (fallback.position if fallback else None),
        team=team or (fallback.team if fallback else None),
        supply=supply if supply is not None else (fallback.supply if fallback else None),
        is_tradeable=fallback.is_tradeable if fallback else None,
        metadata_source=resolve_provenance(metadata, fallback, override),
    )

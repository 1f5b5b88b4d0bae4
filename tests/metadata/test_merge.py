"""Tests for metadata merging and provenance."""

from sportfun_market.market.models import MarketToken, MetadataSource, TokenMetadata
from sportfun_market.metadata.fallback import FallbackRow
from sportfun_market.metadata.merge import decorate_token, fallback_attributes, resolve_provenance

ONCHAIN = TokenMetadata(
    name="Josh Allen",
    image="https://img/onchain.png",
    description="QB",
    attributes=[{"trait_type": "Position", "value": "Quarterback"}],
)
ROW = FallbackRow(token_id="101", name="J. Allen", position="QB", team="BUF", image="https://img/feed.png", supply=10.0)


class TestProvenance:
    def test_onchain_only(self) -> None:
        assert resolve_provenance(ONCHAIN, None, None) is MetadataSource.ONCHAIN

    def test_fallback_only(self) -> None:
        assert resolve_provenance(None, ROW, None) is MetadataSource.FALLBACK

    def test_hybrid_when_feed_fills_gaps(self) -> None:
        assert resolve_provenance(ONCHAIN, ROW, None) is MetadataSource.HYBRID

    def test_feed_adds_nothing_new(self) -> None:
        complete = TokenMetadata(
            name="Josh Allen",
            attributes=[
                {"trait_type": "Position", "value": "QB"},
                {"trait_type": "Team", "value": "BUF"},
                {"trait_type": "Supply", "value": 10},
            ],
        )
        assert resolve_provenance(complete, ROW, None) is MetadataSource.ONCHAIN

    def test_override_and_none(self) -> None:
        assert resolve_provenance(None, None, "Name") is MetadataSource.OVERRIDE
        assert resolve_provenance(None, None, None) is MetadataSource.NONE


class TestDecorateToken:
    def test_onchain_attributes_with_feed_gaps(self) -> None:
        token = decorate_token(MarketToken(token_id="101"), ONCHAIN, ROW, None)

        assert token.name == "Josh Allen"
        assert token.image == "https://img/onchain.png"
        assert token.position == "QB"
        assert token.team == "BUF"
        assert token.supply == 10.0
        assert token.metadata_source is MetadataSource.HYBRID

    def test_feed_only_builds_attributes(self) -> None:
        token = decorate_token(MarketToken(token_id="101"), None, ROW, None)

        assert token.name == "J. Allen"
        assert token.image == "https://img/feed.png"
        assert token.attributes == fallback_attributes(ROW)
        assert token.description is None

    def test_override_name_wins(self) -> None:
        token = decorate_token(MarketToken(token_id="101", trades_24h=3), ONCHAIN, None, "Override")

        assert token.name == "Override"
        assert token.trades_24h == 3
        assert token.metadata_source is MetadataSource.ONCHAIN

    def test_nothing_known(self) -> None:
        token = decorate_token(MarketToken(token_id="5"), None, None, None)
        assert token.name is None
        assert token.metadata_source is MetadataSource.NONE

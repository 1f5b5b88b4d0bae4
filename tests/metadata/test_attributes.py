"""Tests for attribute bag lookups."""

import pytest

from sportfun_market.metadata.attributes import (
    AttributeBag,
    extract_position,
    extract_supply,
    extract_team,
    normalize_position,
    parse_number,
)


class TestAttributeBag:
    def test_list_and_mapping_shapes(self) -> None:
        listed = AttributeBag.parse([{"traitType": "Team", "val": "KC"}, "junk", {"value": "no key"}])
        mapped = AttributeBag.parse({"Team": "KC"})

        assert listed.pairs == (("team", "KC"),)
        assert mapped.pairs == (("team", "KC"),)
        assert AttributeBag.parse(None).pairs == ()

    def test_first_matching_pair_wins(self) -> None:
        attributes = [{"trait_type": "Club", "value": "A"}, {"trait_type": "Team", "value": "B"}]
        assert extract_team(attributes) == "A"


class TestExtractors:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Quarterback", "QB"),
            ("running back", "RB"),
            ("WR", "WR"),
            ("Tight End", "TE"),
            ("Kicker", "K"),
            ("Defense", "DST"),
            ("Midfielder", "MIDFIELDER"),
        ],
    )
    def test_normalize_position(self, raw: str, expected: str) -> None:
        assert normalize_position(raw) == expected

    def test_position_and_team(self) -> None:
        attributes = [
            {"trait_type": "Player Position", "value": "Quarterback"},
            {"trait_type": "Team", "value": " BUF "},
        ]
        assert extract_position(attributes) == "QB"
        assert extract_team(attributes) == "BUF"
        assert extract_position([{"trait_type": "pos", "value": "WR"}]) == "WR"

    def test_supply_scaling(self) -> None:
        assert extract_supply({"circulating_supply": "1,250"}) == 1250.0
        assert extract_supply({"total_shares": 2.5e21}) == 2500.0
        assert extract_supply({"outstanding": "n/a"}) is None

    def test_parse_number(self) -> None:
        assert parse_number(True) is None
        assert parse_number(float("inf")) is None
        assert parse_number(" 3.5 ") == 3.5
        assert parse_number("") is None

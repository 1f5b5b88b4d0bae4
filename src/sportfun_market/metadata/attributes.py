"""Lookup of loosely-typed ERC-1155 attribute bags.

Metadata `attributes` arrive either as a list of trait records
(`{"trait_type": ..., "value": ...}` and variants) or as a flat mapping.
`AttributeBag` normalizes both into ordered (key, value) pairs and answers
lookups with an ordered list of key predicates.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

KeyPredicate = Callable[[str], bool]

_KEY_FIELDS = ("trait_type", "traitType", "name", "key")
_VALUE_FIELDS = ("value", "val", "text", "content")

POSITION_KEYS: tuple[KeyPredicate, ...] = (lambda k: "position" in k, lambda k: k == "pos")
TEAM_KEYS: tuple[KeyPredicate, ...] = (lambda k: "team" in k, lambda k: "club" in k)
SUPPLY_KEYS: tuple[KeyPredicate, ...] = (
    lambda k: "supply" in k,
    lambda k: "shares" in k,
    lambda k: "outstanding" in k,
)

# Supplies above this are raw 18-decimal share amounts.
RAW_SUPPLY_THRESHOLD = 1e12


def _first_present(record: dict[str, Any], fields: Sequence[str]) -> Any:
    for name in fields:
        value = record.get(name)
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class AttributeBag:
    pairs: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def parse(cls, attributes: Any) -> AttributeBag:
        pairs: list[tuple[str, Any]] = []
        if isinstance(attributes, list):
            for record in attributes:
                if not isinstance(record, dict):
                    continue
                key = str(_first_present(record, _KEY_FIELDS) or "").lower()
                if key:
                    pairs.append((key, _first_present(record, _VALUE_FIELDS)))
        elif isinstance(attributes, dict):
            pairs = [(str(k).lower(), v) for k, v in attributes.items()]
        return cls(tuple(pairs))

    def find(self, predicates: Sequence[KeyPredicate]) -> Any | None:
        """Value of the first pair whose key matches any predicate.

        Pairs are scanned in order; for each pair the predicates are tried in
        order.
        """
        for key, value in self.pairs:
            if any(predicate(key) for predicate in predicates):
                return value
        return None


def normalize_position(raw: str) -> str:
    value = raw.strip().upper()
    if "QUARTERBACK" in value or value == "QB":
        return "QB"
    if "RUNNING BACK" in value or value == "RB":
        return "RB"
    if "WIDE RECEIVER" in value or value == "WR":
        return "WR"
    if "TIGHT END" in value or value == "TE":
        return "TE"
    if "KICKER" in value or value == "K":
        return "K"
    if "DEF" in value or "DST" in value:
        return "DST"
    return value


def parse_number(value: Any) -> float | None:
    """Finite number from a number or a comma-grouped numeric string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        if not cleaned:
            return None
        try:
            parsed = float(cleaned)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def extract_position(attributes: Any) -> str | None:
    raw = AttributeBag.parse(attributes).find(POSITION_KEYS)
    if isinstance(raw, str) and raw.strip():
        return normalize_position(raw)
    return None


def extract_team(attributes: Any) -> str | None:
    raw = AttributeBag.parse(attributes).find(TEAM_KEYS)
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


def extract_supply(attributes: Any) -> float | None:
    parsed = parse_number(AttributeBag.parse(attributes).find(SUPPLY_KEYS))
    if parsed is None:
        return None
    if parsed > RAW_SUPPLY_THRESHOLD:
        return parsed / 1e18
    return parsed

"""Known Sport.fun contracts on Base and their event/function identifiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from web3 import Web3

from sportfun_market.errors import SportfunMarketError

Sport = Literal["nfl", "soccer"]
SPORTS: tuple[Sport, ...] = ("nfl", "soccer")

BASE_USDC_DECIMALS = 6
SHARE_DECIMALS = 18


class UnknownSportError(SportfunMarketError, ValueError):
    """Raised when no contracts are configured for a sport."""


@dataclass(frozen=True)
class SportfunContracts:
    """One Sport.fun deployment: ERC-1155 player token, AMM pair, promotions."""

    label: str
    sport: Sport
    player_token: str
    fdf_pair: str
    development_players: str | None = None


# Explicit list so unrelated ERC-1155 activity never leaks into the universe.
SPORTFUN_DEPLOYMENTS: tuple[SportfunContracts, ...] = (
    SportfunContracts(
        label="sportfun-1",
        sport="nfl",
        player_token="0x71c8b0c5148edb0399d1edf9bf0c8c81dea16918",
        fdf_pair="0x9da1bb4e725acc0d96010b7ce2a7244cda446617",
        development_players="0xc21c2d586f1db92eedb67a2fc348f21ed7541965",
    ),
    SportfunContracts(
        label="sportfun-2",
        sport="soccer",
        player_token="0x2eef466e802ab2835ab81be63eebc55167d35b56",
        fdf_pair="0x4fdce033b9f30019337ddc5cc028dc023580585e",
        development_players="0xc98bf3fc49a8a7ad162098ad0bb62268d46dacf9",
    ),
)

# topic0 values observed on BaseScan for the FDFPair and DevelopmentPlayers proxies.
TOPIC_PLAYER_TOKENS_PURCHASE = "0x687289c2856f43779157318472d0a835253d93a290e03ee79b9e27b0e403493d"
TOPIC_CURRENCY_PURCHASE = "0x2ac32fc1571b5f084cc08aa7b74d280dd7ccf29a3c58d1b42c369291f06a9a46"
TOPIC_PLAYER_SHARES_PROMOTED = "0xdf85ea724d07d95f8a2eee7dd82e4878a451bd282e57e84f96996918b441a6c2"

# Non-indexed payloads: ids, amounts, currency, newPrices, fees.
TRADE_EVENT_DATA_TYPES = ["uint256[]"] * 5
# Non-indexed payload: ids, amounts.
PROMOTION_EVENT_DATA_TYPES = ["uint256[]"] * 2

GET_PRICES_SELECTOR = "0x" + Web3.keccak(text="getPrices(uint256[])")[:4].hex().removeprefix("0x")
ERC1155_URI_SELECTOR = "0x0e89341c"


def get_sport_contracts(sport: str) -> list[SportfunContracts]:
    """Return the deployments for a sport, raising if none are configured."""
    contracts = [c for c in SPORTFUN_DEPLOYMENTS if c.sport == sport]
    if not contracts:
        raise UnknownSportError(f"No Sport.fun contracts configured for {sport}")
    return contracts

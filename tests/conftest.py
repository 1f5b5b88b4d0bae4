"""Pytest configuration and fixtures."""

from collections.abc import Callable
from typing import Any

import pytest
from eth_abi import encode

from sportfun_market.chain.contracts import (
    TOPIC_CURRENCY_PURCHASE,
    TOPIC_PLAYER_SHARES_PROMOTED,
    TOPIC_PLAYER_TOKENS_PURCHASE,
)

GENESIS_TS_SECONDS = 1_754_006_400  # 2025-08-01T00:00:00Z
BLOCK_TIME_SECONDS = 2

NFL_PLAYER_TOKEN = "0x71c8b0c5148edb0399d1edf9bf0c8c81dea16918"
NFL_FDF_PAIR = "0x9da1bb4e725acc0d96010b7ce2a7244cda446617"


class FakeChain:
    """In-memory JSON-RPC endpoint with one block every two seconds."""

    def __init__(self, head: int = 1000) -> None:
        self.head = head
        self.calls: list[tuple[str, list[Any]]] = []

    def block_ts_ms(self, block_number: int) -> int:
        return (GENESIS_TS_SECONDS + block_number * BLOCK_TIME_SECONDS) * 1000

    async def call(self, method: str, params: list[Any]) -> Any:
        self.calls.append((method, params))
        if method == "eth_blockNumber":
            return hex(self.head)
        if method == "eth_getBlockByNumber":
            number = int(params[0], 16)
            if number > self.head:
                return None
            return {"number": hex(number), "timestamp": hex(self.block_ts_ms(number) // 1000)}
        raise AssertionError(f"unexpected RPC method {method}")

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)


@pytest.fixture
def fake_chain() -> FakeChain:
    """Fake Base chain with head block 1000."""
    return FakeChain()


@pytest.fixture
def trade_log() -> Callable[..., dict[str, Any]]:
    """Factory for raw buy/sell logs."""

    def make(
        ids: list[int],
        amounts: list[int],
        currency: list[int],
        *,
        sell: bool = False,
        block_number: int = 100,
        tx_hash: str = "0x" + "ab" * 32,
    ) -> dict[str, Any]:
        data = encode(
            ["uint256[]"] * 5,
            [ids, amounts, currency, [0] * len(ids), [0] * len(ids)],
        )
        return {
            "address": NFL_FDF_PAIR,
            "topics": [
                TOPIC_CURRENCY_PURCHASE if sell else TOPIC_PLAYER_TOKENS_PURCHASE,
                "0x" + "00" * 32,
                "0x" + "00" * 32,
            ],
            "data": "0x" + data.hex(),
            "blockNumber": hex(block_number),
            "transactionHash": tx_hash,
        }

    return make


@pytest.fixture
def promotion_log() -> Callable[..., dict[str, Any]]:
    """Factory for raw PlayerSharesPromoted logs."""

    def make(ids: list[int], amounts: list[int] | None = None, *, block_number: int = 100) -> dict[str, Any]:
        data = encode(["uint256[]", "uint256[]"], [ids, amounts or [1] * len(ids)])
        return {
            "address": "0xc21c2d586f1db92eedb67a2fc348f21ed7541965",
            "topics": [TOPIC_PLAYER_SHARES_PROMOTED, "0x" + "00" * 32],
            "data": "0x" + data.hex(),
            "blockNumber": hex(block_number),
        }

    return make

"""Chain access layer - Base JSON-RPC, block-time lookups and log scans."""

from sportfun_market.chain.blocks import BlockTimeLocator
from sportfun_market.chain.client import (
    BaseRpcClient,
    RetryableRPCError,
    RpcClientError,
    RPCError,
)
from sportfun_market.chain.contracts import (
    SPORTFUN_DEPLOYMENTS,
    SportfunContracts,
    UnknownSportError,
    get_sport_contracts,
)
from sportfun_market.chain.logs import LogFetcher

__all__ = [
    "BaseRpcClient",
    "BlockTimeLocator",
    "LogFetcher",
    "RPCError",
    "RetryableRPCError",
    "RpcClientError",
    "SPORTFUN_DEPLOYMENTS",
    "SportfunContracts",
    "UnknownSportError",
    "get_sport_contracts",
]

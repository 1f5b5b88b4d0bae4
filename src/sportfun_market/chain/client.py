"""Base chain JSON-RPC client with retry and backoff.

This module provides the raw JSON-RPC client used by the snapshot builder:
- `call(method, params)` for any node or provider-specific method
- Retry with exponential backoff plus jitter on retryable failures
  (HTTP 408/429/5xx, timeouts, connection errors, rate-limit messages)
- Immediate propagation of non-retryable errors
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Mapping, Sequence
from typing import Any

import aiohttp
from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider
from web3.types import RPCEndpoint

from sportfun_market.errors import SportfunMarketError

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_MAX_RETRIES = 4
DEFAULT_RETRY_BASE_SECONDS = 0.3
DEFAULT_RETRY_MAX_DELAY_SECONDS = 5.0
DEFAULT_RETRY_JITTER_SECONDS = 0.25
DEFAULT_REQUEST_TIMEOUT = 30.0

MAX_ERROR_DETAIL_CHARS = 500

RATE_LIMIT_MARKERS = (
    "too many requests",
    "rate limit",
    "throughput",
    "compute units per second",
)


class RpcClientError(SportfunMarketError):
    """Base exception for RPC client errors."""


class RPCError(RpcClientError):
    """Raised when an RPC call fails and will not be retried."""


class RetryableRPCError(RpcClientError):
    """Raised for transient failures that the retry loop may repeat."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


def to_hex(value: int) -> str:
    """Encode an integer as a JSON-RPC quantity."""
    return hex(value)


def parse_quantity(value: Any) -> int:
    """Parse a JSON-RPC quantity (hex string, decimal string or int)."""
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text[:2].lower() == "0x":
            return int(text, 16)
        return int(text, 10)
    raise TypeError(f"Expected hex quantity, got {type(value).__name__}")


def is_retryable_status(status: int) -> bool:
    return status == 408 or status == 429 or status >= 500


def is_rate_limit_message(message: str) -> bool:
    normalized = message.lower()
    return any(marker in normalized for marker in RATE_LIMIT_MARKERS)


def parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    """Parse a Retry-After header given in seconds."""
    if not headers:
        return None
    raw = headers.get("Retry-After") or headers.get("retry-after")
    if raw is None:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def format_rpc_error(error: Any) -> str:
    """Render a JSON-RPC error object as `<code> <message>`, truncated."""
    if isinstance(error, Mapping):
        message = str(error.get("message") or "Unknown error")
        code = error.get("code")
        detail = f"{code} {message}" if code is not None else message
    else:
        detail = str(error)
    if len(detail) > MAX_ERROR_DETAIL_CHARS:
        detail = f"{detail[:MAX_ERROR_DETAIL_CHARS]}..."
    return detail


class BaseRpcClient:
    """Base chain JSON-RPC client with retry and backoff.

    Example:
        ```python
        client = BaseRpcClient("https://base-mainnet.g.alchemy.com/v2/<key>")
        head = parse_quantity(await client.call("eth_blockNumber", []))
        await client.aclose()
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_seconds: float = DEFAULT_RETRY_BASE_SECONDS,
        retry_max_delay_seconds: float = DEFAULT_RETRY_MAX_DELAY_SECONDS,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the RPC client.

        Args:
            rpc_url: JSON-RPC endpoint URL.
            max_retries: Retries after the first attempt for retryable failures.
            retry_base_seconds: Initial backoff delay (doubles per attempt).
            retry_max_delay_seconds: Cap on a single backoff delay.
            request_timeout: Total HTTP timeout per request.
        """
        self._rpc_url = rpc_url
        self._max_retries = max_retries
        self._retry_base = retry_base_seconds
        self._retry_max_delay = retry_max_delay_seconds

        # Retries are owned by this client, not by the provider.
        provider = AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": aiohttp.ClientTimeout(total=request_timeout)},
            exception_retry_configuration=None,
        )
        self._w3 = AsyncWeb3(provider)

    def _retry_delay(self, attempt: int, retry_after: float | None) -> float:
        if retry_after is not None:
            return retry_after
        exponential = self._retry_base * (2**attempt)
        jitter = random.uniform(0, DEFAULT_RETRY_JITTER_SECONDS)
        return min(self._retry_max_delay, exponential + jitter)

    async def _send(self, method: str, params: Sequence[Any]) -> Any:
        try:
            response = await self._w3.provider.make_request(RPCEndpoint(method), list(params))
        except aiohttp.ClientResponseError as e:
            detail = f"RPC {method} failed: HTTP {e.status} {e.message}"
            if is_retryable_status(e.status) or is_rate_limit_message(str(e.message)):
                raise RetryableRPCError(detail, retry_after=parse_retry_after(e.headers)) from e
            raise RPCError(detail) from e
        except (aiohttp.ClientConnectionError, TimeoutError) as e:
            raise RetryableRPCError(f"RPC {method} transport error: {e!r}") from e

        error = response.get("error")
        if error:
            message = format_rpc_error(error)
            if is_rate_limit_message(message):
                raise RetryableRPCError(f"RPC {method} error: {message}")
            raise RPCError(f"RPC {method} error: {message}")
        return response.get("result")

    async def call(self, method: str, params: Sequence[Any]) -> Any:
        """Execute a JSON-RPC call with retry on transient failures.

        Args:
            method: JSON-RPC method name.
            params: Positional parameters.

        Returns:
            The `result` member of the JSON-RPC response.

        Raises:
            RPCError: On a non-retryable failure or once retries are exhausted.
        """
        last_error: RetryableRPCError | None = None
        attempts = self._max_retries + 1

        for attempt in range(attempts):
            try:
                return await self._send(method, params)
            except RetryableRPCError as e:
                last_error = e
                if attempt == attempts - 1:
                    break
                delay = self._retry_delay(attempt, e.retry_after)
                logger.warning(
                    "RPC %s failed (attempt %d/%d): %s. Retrying in %.2fs",
                    method,
                    attempt + 1,
                    attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)

        raise RPCError(f"RPC call {method} failed after {attempts} attempts: {last_error}") from last_error

    async def aclose(self) -> None:
        """Close the provider's HTTP session."""
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if not callable(disconnect):
            return
        try:
            result = disconnect()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.warning("Failed to close RPC provider session: %s", e)

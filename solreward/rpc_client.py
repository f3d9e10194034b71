"""JSON-RPC transport over aiohttp, routed through an :class:`EndpointPool`."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import aiohttp

from .endpoint_pool import Endpoint, EndpointPool
from .errors import (
    DeprioritizedError,
    FatalProviderError,
    RetryableProviderError,
    RPCError,
    UnsupportedMethodError,
)
from .http import get_session
from .jsonutil import JSONDecodeError, dumps_bytes, loads
from .metrics import RPC_LATENCY, observe
from .rpc_helpers import (
    as_int,
    extract_aligned_values,
    extract_pagination_key,
    extract_value_list,
)

logger = logging.getLogger(__name__)

# Markers providers use when refusing an unpaginated getProgramAccounts call.
_DEPRIORITIZED_MARKERS = (
    "deprioritized",
    "deprioritised",
    "use getprogramaccountsv2",
    "use the paginated",
    "pagination required",
)

_RATE_LIMIT_MARKERS = (
    "rate limit",
    "rate-limit",
    "ratelimit",
    "too many requests",
    "max usage reached",
)

_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "temporarily unavailable",
    "node is behind",
    "node is unhealthy",
    "overloaded",
    "busy",
    "gateway",
    "connection reset",
)

# JSON-RPC codes that signal throttling or a transiently unhealthy node.
_RETRYABLE_RPC_CODES = {429, -32429, -32005, -32004, -32014, -32016}
_METHOD_NOT_FOUND = -32601

_BODY_PREVIEW = 300


def _contains(message: str, markers: Sequence[str]) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in markers)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


def classify_http_error(
    status: int,
    body: str,
    *,
    method: str,
    retry_after: Optional[str] = None,
) -> RPCError:
    """Map a non-2xx HTTP response to the provider error taxonomy."""

    preview = (body or "")[:_BODY_PREVIEW]
    message = f"{method} -> HTTP {status}: {preview}"
    if _contains(preview, _DEPRIORITIZED_MARKERS):
        return DeprioritizedError(message, status=status, method=method)
    if status == 429 or status >= 500 or _contains(preview, _RATE_LIMIT_MARKERS):
        return RetryableProviderError(
            message,
            status=status,
            method=method,
            retry_after=_parse_retry_after(retry_after),
        )
    return FatalProviderError(message, status=status, method=method)


def classify_rpc_error(method: str, error: Any) -> RPCError:
    """Map a JSON-RPC ``error`` object to the provider error taxonomy."""

    code: Optional[int] = None
    data: Any = None
    if isinstance(error, Mapping):
        code = as_int(error.get("code"))
        data = error.get("data")
        text = str(error.get("message") or "")
        if not text and isinstance(data, Mapping):
            text = str(data.get("message") or data.get("error") or "")
    else:
        text = str(error)
    message = f"{method} error {code}: {text or error}"

    if _contains(text, _DEPRIORITIZED_MARKERS):
        return DeprioritizedError(message, code=code, method=method, data=data)
    if code in _RETRYABLE_RPC_CODES or _contains(text, _RATE_LIMIT_MARKERS):
        return RetryableProviderError(message, code=code, method=method, data=data)
    if code == _METHOD_NOT_FOUND:
        return UnsupportedMethodError(message, code=code, method=method, data=data)
    if _contains(text, _TRANSIENT_MARKERS):
        return RetryableProviderError(message, code=code, method=method, data=data)
    return FatalProviderError(message, code=code, method=method, data=data)


class SolanaRpcClient:
    """Minimal Solana JSON-RPC client.

    Each call is a single logical request handed to the endpoint pool, which
    owns retries and failover.  ``max_concurrency`` bounds the number of HTTP
    attempts in flight; backoff sleeps do not hold a slot.
    """

    def __init__(
        self,
        pool: EndpointPool,
        *,
        timeout: float = 15.0,
        max_concurrency: int = 4,
        commitment: str = "confirmed",
        session_factory: Callable[[], Awaitable[aiohttp.ClientSession]] = get_session,
    ) -> None:
        self.pool = pool
        self.timeout = float(timeout)
        self.commitment = commitment
        self._session_factory = session_factory
        self._limiter = asyncio.Semaphore(max(1, int(max_concurrency)))
        self._ids = itertools.count(1)

    async def _post(self, endpoint: Endpoint, method: str, payload: Dict[str, Any]) -> Any:
        session = await self._session_factory()
        started = time.monotonic()
        async with self._limiter:
            try:
                async with session.post(
                    endpoint.url,
                    data=dumps_bytes(payload),
                    headers={"Content-Type": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    text = await resp.text()
                    if resp.status >= 400:
                        raise classify_http_error(
                            resp.status,
                            text,
                            method=method,
                            retry_after=resp.headers.get("Retry-After"),
                        )
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise RetryableProviderError(
                    f"{method} transport failure on {endpoint.label}: {exc!r}", method=method
                ) from exc
            finally:
                observe(RPC_LATENCY, time.monotonic() - started, op=method)

        try:
            data = loads(text)
        except JSONDecodeError as exc:
            raise RetryableProviderError(
                f"{method} returned non-JSON body: {text[:_BODY_PREVIEW]}", method=method
            ) from exc
        if not isinstance(data, dict):
            raise FatalProviderError(f"{method} returned unexpected payload type", method=method)
        if data.get("error"):
            raise classify_rpc_error(method, data["error"])
        return data.get("result")

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Issue ``method`` and return the JSON-RPC ``result`` member."""

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }

        async def _attempt(endpoint: Endpoint) -> Any:
            return await self._post(endpoint, method, payload)

        return await self.pool.execute(_attempt, op=method)

    async def get_health(self) -> str:
        result = await self.call("getHealth")
        return str(result)

    async def get_token_accounts_by_owner(
        self,
        owner: str,
        program_id: str,
        *,
        encoding: str = "jsonParsed",
    ) -> List[Dict[str, Any]]:
        """Token accounts of ``owner`` under ``program_id`` as ``{pubkey, account}`` dicts."""

        result = await self.call(
            "getTokenAccountsByOwner",
            [
                owner,
                {"programId": program_id},
                {"encoding": encoding, "commitment": self.commitment},
            ],
        )
        return extract_value_list(result)

    async def get_multiple_accounts(
        self,
        addresses: Sequence[str],
        *,
        encoding: str = "base64",
    ) -> List[Optional[Dict[str, Any]]]:
        """Account payloads aligned with ``addresses``; missing accounts are ``None``."""

        if not addresses:
            return []
        result = await self.call(
            "getMultipleAccounts",
            [list(addresses), {"encoding": encoding, "commitment": self.commitment}],
        )
        return extract_aligned_values(result)

    async def get_program_accounts(
        self,
        program_id: str,
        *,
        filters: Sequence[Mapping[str, Any]] = (),
        encoding: str = "base64",
    ) -> List[Dict[str, Any]]:
        """Unpaginated ``getProgramAccounts``; providers may refuse it as deprioritized."""

        config: Dict[str, Any] = {"encoding": encoding, "commitment": self.commitment}
        if filters:
            config["filters"] = [dict(f) for f in filters]
        result = await self.call("getProgramAccounts", [program_id, config])
        return extract_value_list(result)

    async def get_program_accounts_page(
        self,
        program_id: str,
        *,
        filters: Sequence[Mapping[str, Any]] = (),
        limit: int = 1000,
        pagination_key: Optional[str] = None,
        encoding: str = "base64",
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """One ``getProgramAccountsV2`` page and the cursor for the next one."""

        config: Dict[str, Any] = {
            "encoding": encoding,
            "commitment": self.commitment,
            "limit": int(limit),
        }
        if filters:
            config["filters"] = [dict(f) for f in filters]
        if pagination_key:
            config["paginationKey"] = pagination_key
        result = await self.call("getProgramAccountsV2", [program_id, config])
        return extract_value_list(result), extract_pagination_key(result)


__all__ = [
    "SolanaRpcClient",
    "classify_http_error",
    "classify_rpc_error",
]

"""Wallet scanning entry points used by the route layer and batch jobs."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, Optional, TypeVar

import aiohttp

from .balance import get_balance
from .chunked import ChunkedFetcher
from .config import Config
from .discovery import PositionDiscoveryEngine
from .endpoint_pool import EndpointPool
from .http import new_session
from .models import DiscoveryResult, ScanResult
from .pagination import PaginatedScanner
from .rpc_client import SolanaRpcClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WalletScanner:
    """Owns the RPC stack for one configuration and scans wallets with it.

    Every public coroutine accepts ``timeout`` (seconds, defaulting to
    ``config.scan_timeout``); on expiry in-flight requests are cancelled and
    :class:`asyncio.TimeoutError` is raised.
    """

    def __init__(
        self,
        config: Config,
        *,
        pool: EndpointPool | None = None,
        client: SolanaRpcClient | None = None,
    ) -> None:
        self.config = config
        self._session: aiohttp.ClientSession | None = None
        self.pool = pool or EndpointPool(config.rpc_urls, config.retry_policy)
        self.client = client or SolanaRpcClient(
            self.pool,
            timeout=config.request_timeout,
            max_concurrency=config.max_concurrency,
            commitment=config.commitment,
            session_factory=self._get_session,
        )
        self.fetcher = ChunkedFetcher(
            self.client, chunk_size=config.chunk_size, max_concurrency=config.max_concurrency
        )
        self.paginator = PaginatedScanner(self.client, page_size=config.page_size)
        self.engine = PositionDiscoveryEngine(
            self.client, config, fetcher=self.fetcher, scanner=self.paginator
        )

    async def __aenter__(self) -> "WalletScanner":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = new_session()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session this scanner opened; other scanners keep theirs."""
        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()

    async def _bounded(self, coro: Awaitable[T], timeout: Optional[float]) -> T:
        limit = self.config.scan_timeout if timeout is None else timeout
        if limit is None:
            return await coro
        return await asyncio.wait_for(coro, timeout=limit)

    async def check_health(self) -> str:
        return await self.client.get_health()

    async def get_balance(
        self, wallet: str, mint: str | None = None, *, timeout: Optional[float] = None
    ) -> Decimal:
        """Balance of ``mint`` (default: the target mint) held by ``wallet``."""
        return await self._bounded(
            get_balance(self.engine, wallet, mint or self.config.target_mint), timeout
        )

    async def discover_positions(
        self, wallet: str, *, timeout: Optional[float] = None
    ) -> DiscoveryResult:
        return await self._bounded(self.engine.discover_positions(wallet), timeout)

    async def _scan(self, wallet: str) -> ScanResult:
        token_accounts = await self.engine.fetch_token_accounts(wallet)
        balance = await get_balance(
            self.engine, wallet, self.config.target_mint, token_accounts=token_accounts
        )
        discovery = await self.engine.discover_positions(wallet, token_accounts=token_accounts)
        return ScanResult(
            wallet=wallet,
            token_balance=balance,
            lp_positions=discovery.positions,
            lp_total_liquidity=discovery.total_liquidity,
        )

    async def scan(self, wallet: str, *, timeout: Optional[float] = None) -> ScanResult:
        """Token balance and LP positions of ``wallet`` from one token-account fetch."""
        return await self._bounded(self._scan(wallet), timeout)


def scan_wallet_sync(wallet: str, config: Config, *, timeout: Optional[float] = None) -> ScanResult:
    """Synchronous wrapper for scripts."""

    async def _run() -> ScanResult:
        async with WalletScanner(config) as scanner:
            return await scanner.scan(wallet, timeout=timeout)

    return asyncio.run(_run())


__all__ = ["WalletScanner", "scan_wallet_sync"]

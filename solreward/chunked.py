from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .constants import MAX_MULTIPLE_ACCOUNTS
from .errors import FatalProviderError

logger = logging.getLogger(__name__)


class MultipleAccountsClient(Protocol):
    async def get_multiple_accounts(
        self, addresses: Sequence[str], *, encoding: str = "base64"
    ) -> List[Optional[Dict[str, Any]]]:
        ...


def partition(items: Sequence[str], size: int) -> List[List[str]]:
    """Split ``items`` into consecutive groups of at most ``size`` entries."""

    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class ChunkedFetcher:
    """Fetch account payloads for many addresses via grouped ``getMultipleAccounts``.

    Chunks run with at most ``max_concurrency`` requests in flight and the
    results are reassembled by input position, not completion order.  A chunk
    that fails after the endpoint pool gave up fails the whole fetch.
    """

    def __init__(
        self,
        client: MultipleAccountsClient,
        *,
        chunk_size: int = MAX_MULTIPLE_ACCOUNTS,
        max_concurrency: int = 4,
    ) -> None:
        if not 1 <= chunk_size <= MAX_MULTIPLE_ACCOUNTS:
            raise ValueError(f"chunk_size must be between 1 and {MAX_MULTIPLE_ACCOUNTS}")
        self.client = client
        self.chunk_size = chunk_size
        self.max_concurrency = max(1, int(max_concurrency))

    async def _fetch_chunk(
        self,
        chunk: List[str],
        *,
        encoding: str,
        semaphore: asyncio.Semaphore,
    ) -> List[Optional[Dict[str, Any]]]:
        async with semaphore:
            values = await self.client.get_multiple_accounts(chunk, encoding=encoding)
        if len(values) != len(chunk):
            raise FatalProviderError(
                f"getMultipleAccounts returned {len(values)} value(s) for {len(chunk)} address(es)",
                method="getMultipleAccounts",
            )
        return values

    async def fetch(
        self,
        addresses: Sequence[str],
        *,
        encoding: str = "base64",
    ) -> List[Optional[Dict[str, Any]]]:
        """Return payloads aligned with ``addresses``; absent accounts are ``None``."""

        if not addresses:
            return []
        # Duplicates are fetched once and fanned back out below.
        unique = list(dict.fromkeys(addresses))
        chunks = partition(unique, self.chunk_size)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.ensure_future(self._fetch_chunk(chunk, encoding=encoding, semaphore=semaphore))
            for chunk in chunks
        ]
        logger.debug(
            "Fetching %d account(s) in %d chunk(s) of <= %d",
            len(unique),
            len(chunks),
            self.chunk_size,
        )
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        by_address: Dict[str, Optional[Dict[str, Any]]] = {}
        for chunk, values in zip(chunks, results):
            by_address.update(zip(chunk, values))
        return [by_address[address] for address in addresses]

    async def fetch_existing(
        self,
        addresses: Sequence[str],
        *,
        encoding: str = "base64",
    ) -> Dict[str, Dict[str, Any]]:
        """Return ``{address: payload}`` for accounts that exist, in input order."""

        values = await self.fetch(addresses, encoding=encoding)
        return {address: value for address, value in zip(addresses, values) if value is not None}


__all__ = ["ChunkedFetcher", "MultipleAccountsClient", "partition"]

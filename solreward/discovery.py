"""Discover a wallet's CLMM positions in the configured pool.

Position NFTs held by the wallet (token accounts with zero decimals and an
amount of one) identify candidate positions.  Each candidate mint yields two
derived position-state addresses.  Matches are found with one of two
strategies:

``BULK_SCAN``
    A single ``getProgramAccounts`` over the CLMM program filtered on the
    pool id, narrowed locally to the derived addresses.  If the provider
    refuses it as deprioritized the same filter is walked with the paginated
    scanner; the bulk call itself is never retried.

``DERIVED_SCAN``
    The derived addresses are fetched directly.  Used when the bulk scan is
    refused or finds nothing.  When the bulk scan did find positions those
    addresses are re-fetched this way before being trusted.

Whatever path produced a payload, each address is decoded once, positions
from other pools are dropped and the raw liquidity values are summed.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from cachetools import LRUCache
from solders.pubkey import Pubkey

from .chunked import ChunkedFetcher
from .config import Config
from .constants import LIQUIDITY_DISPLAY_DIVISOR, POSITION_SEEDS
from .decoder import decode_mint_decimals, decode_position, decode_token_entry
from .errors import DecodeError, DeprioritizedError, FatalProviderError, NotFoundError
from .logging_utils import warn_once_per
from .metrics import DECODE_FAILURES, DISCOVERY_SCANS, observe
from .models import (
    TOKEN_PROGRAM_KINDS,
    CandidateToken,
    DerivedAddress,
    DiscoveryResult,
    PositionRecord,
    ProgramKind,
    TokenAccountInfo,
)
from .pagination import PaginatedScanner

logger = logging.getLogger(__name__)

Payloads = Dict[str, Dict[str, Any]]


class ScanStrategy(str, Enum):
    BULK_SCAN = "bulk_scan"
    DERIVED_SCAN = "derived_scan"


class DiscoveryClient(Protocol):
    async def get_token_accounts_by_owner(
        self, owner: str, program_id: str, *, encoding: str = "jsonParsed"
    ) -> List[Dict[str, Any]]:
        ...

    async def get_multiple_accounts(
        self, addresses: Sequence[str], *, encoding: str = "base64"
    ) -> List[Optional[Dict[str, Any]]]:
        ...

    async def get_program_accounts(
        self,
        program_id: str,
        *,
        filters: Sequence[Mapping[str, Any]] = (),
        encoding: str = "base64",
    ) -> List[Dict[str, Any]]:
        ...

    async def get_program_accounts_page(
        self,
        program_id: str,
        *,
        filters: Sequence[Mapping[str, Any]] = (),
        limit: int = 1000,
        pagination_key: Optional[str] = None,
        encoding: str = "base64",
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        ...


def derive_position_addresses(
    candidates: Sequence[CandidateToken], program_id: str
) -> List[DerivedAddress]:
    """Derive the position-state addresses of each candidate, in candidate order."""

    program = Pubkey.from_string(program_id)
    derived: List[DerivedAddress] = []
    for index, candidate in enumerate(candidates):
        mint = Pubkey.from_string(candidate.mint)
        for seed in POSITION_SEEDS:
            address, _bump = Pubkey.find_program_address([seed, bytes(mint)], program)
            derived.append(
                DerivedAddress(
                    address=str(address),
                    seed=seed.decode(),
                    mint=candidate.mint,
                    candidate_index=index,
                )
            )
    return derived


def select_candidates(accounts: Iterable[TokenAccountInfo]) -> List[CandidateToken]:
    """Token accounts shaped like position NFTs: decimals 0 and amount 1."""

    seen: set[str] = set()
    candidates: List[CandidateToken] = []
    for account in accounts:
        if account.decimals != 0 or account.amount_raw != 1:
            continue
        if account.mint in seen:
            continue
        seen.add(account.mint)
        candidates.append(CandidateToken(account=account.ref, mint=account.mint))
    return candidates


def merge_matches(
    fast: Mapping[str, Dict[str, Any]],
    slow: Mapping[str, Dict[str, Any]],
    refetched: Iterable[str] = (),
) -> Payloads:
    """One payload per address; slow-path payloads always win.

    Addresses in ``refetched`` were fetched again by the slow path, so a
    fast-path payload for them is only kept if the slow path returned one.
    """

    verified = set(refetched) | set(slow)
    merged: Payloads = {
        address: dict(payload) for address, payload in fast.items() if address not in verified
    }
    merged.update({address: dict(payload) for address, payload in slow.items()})
    return merged


def liquidity_to_display(raw_total: int) -> Decimal:
    """Approximate display value of summed raw liquidity (raw / 1e9).

    This is not the token amount locked in the positions; that would need
    the pool price and tick range.
    """

    return Decimal(raw_total) / LIQUIDITY_DISPLAY_DIVISOR


class PositionDiscoveryEngine:
    """Find a wallet's positions in ``config.target_pool``."""

    def __init__(
        self,
        client: DiscoveryClient,
        config: Config,
        *,
        fetcher: ChunkedFetcher | None = None,
        scanner: PaginatedScanner | None = None,
        decimals_cache: LRUCache | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.fetcher = fetcher or ChunkedFetcher(
            client, chunk_size=config.chunk_size, max_concurrency=config.max_concurrency
        )
        self.scanner = scanner or PaginatedScanner(client, page_size=config.page_size)
        # Mint decimals never change, so they are safe to keep across scans.
        self._decimals: LRUCache = decimals_cache if decimals_cache is not None else LRUCache(
            maxsize=4096
        )

    # ------------------------------------------------------------------
    # Token accounts
    # ------------------------------------------------------------------

    async def _token_accounts_for(self, wallet: str, program: ProgramKind) -> List[TokenAccountInfo]:
        entries = await self.client.get_token_accounts_by_owner(wallet, program.program_id)
        accounts: List[TokenAccountInfo] = []
        for entry in entries:
            try:
                accounts.append(
                    decode_token_entry(
                        entry,
                        program=program,
                        amount_offset=self.config.token_amount_offset,
                    )
                )
            except DecodeError as exc:
                observe(DECODE_FAILURES, kind="token_account")
                logger.warning("Skipping undecodable token account of %s: %s", wallet, exc)
        return accounts

    async def fetch_token_accounts(self, wallet: str) -> List[TokenAccountInfo]:
        """Token accounts of ``wallet`` under both token programs, decimals resolved."""

        per_program = await asyncio.gather(
            *(self._token_accounts_for(wallet, program) for program in TOKEN_PROGRAM_KINDS)
        )
        accounts = [account for group in per_program for account in group]
        await self.resolve_decimals(accounts)
        logger.debug("Wallet %s holds %d token account(s)", wallet, len(accounts))
        return accounts

    async def resolve_decimals(self, accounts: Sequence[TokenAccountInfo]) -> None:
        """Fill in decimals for raw-decoded accounts from their mint accounts.

        Accounts whose mint cannot be found or decoded keep ``decimals=None``
        and are ignored by candidate selection and balance lookups.
        """

        missing = [a.mint for a in accounts if a.decimals is None and a.mint not in self._decimals]
        if missing:
            mints = list(dict.fromkeys(missing))
            payloads = await self.fetcher.fetch(mints)
            for mint, payload in zip(mints, payloads):
                try:
                    if payload is None:
                        raise NotFoundError(f"mint {mint} does not exist")
                    self._decimals[mint] = decode_mint_decimals(payload, address=mint)
                except (NotFoundError, DecodeError) as exc:
                    observe(DECODE_FAILURES, kind="mint")
                    warn_once_per(
                        10.0, f"mint-decimals-{mint}", "Cannot resolve decimals: %s", exc, logger=logger
                    )
        for account in accounts:
            if account.decimals is None:
                account.decimals = self._decimals.get(account.mint)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _pool_filters(self) -> List[Dict[str, Any]]:
        return [{"memcmp": {"offset": self.config.pool_id_offset, "bytes": self.config.target_pool}}]

    async def bulk_scan(self, derived: Sequence[DerivedAddress]) -> Optional[Payloads]:
        """Fast path: pool-filtered program scan narrowed to ``derived``.

        Returns ``None`` when the provider rejected the scan: a fatal or
        unsupported-method reply to the bulk call, or a deprioritized reply
        followed by a rejected paginated scan.  Exhausted endpoints propagate.
        """

        wanted = {d.address for d in derived}
        program_id = self.config.clmm_program_id
        filters = self._pool_filters()
        try:
            entries = await self.client.get_program_accounts(program_id, filters=filters)
        except FatalProviderError as exc:
            logger.info("Bulk position scan rejected; skipping fast path: %s", exc)
            return None
        except DeprioritizedError as exc:
            if not self.config.paginated_fallback:
                logger.info("Bulk position scan deprioritized; skipping fast path: %s", exc)
                return None
            logger.info("Bulk position scan deprioritized; switching to paginated scan: %s", exc)
            try:
                entries = await self.scanner.scan(program_id, filters)
            except (DeprioritizedError, FatalProviderError) as page_exc:
                logger.info("Paginated position scan unavailable; skipping fast path: %s", page_exc)
                return None

        matches: Payloads = {}
        for entry in entries:
            address = entry.get("pubkey")
            account = entry.get("account")
            if address in wanted and isinstance(account, dict):
                matches[address] = account
        logger.debug(
            "Bulk scan returned %d account(s), %d derived match(es)", len(entries), len(matches)
        )
        return matches

    async def derived_scan(self, addresses: Sequence[str]) -> Payloads:
        """Slow path: fetch derived addresses directly; absent accounts are skipped."""

        return await self.fetcher.fetch_existing(addresses)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def _decode_matches(
        self, derived: Sequence[DerivedAddress], payloads: Mapping[str, Dict[str, Any]]
    ) -> List[PositionRecord]:
        positions: List[PositionRecord] = []
        seen: set[str] = set()
        for item in derived:
            if item.address in seen:
                continue
            payload = payloads.get(item.address)
            if payload is None:
                continue
            seen.add(item.address)
            try:
                record = decode_position(
                    payload,
                    address=item.address,
                    mint=item.mint,
                    liquidity_offset=self.config.liquidity_offset,
                    pool_id_offset=self.config.pool_id_offset,
                )
            except DecodeError as exc:
                observe(DECODE_FAILURES, kind="position")
                logger.warning("Skipping position %s: %s", item.address, exc)
                continue
            if record.pool_id != self.config.target_pool:
                logger.debug(
                    "Ignoring position %s in pool %s (target %s)",
                    record.address,
                    record.pool_id,
                    self.config.target_pool,
                )
                continue
            positions.append(record)
        return positions

    async def discover_positions(
        self,
        wallet: str,
        *,
        token_accounts: Sequence[TokenAccountInfo] | None = None,
    ) -> DiscoveryResult:
        if token_accounts is None:
            token_accounts = await self.fetch_token_accounts(wallet)
        candidates = select_candidates(token_accounts)
        if not candidates:
            logger.debug("Wallet %s holds no position NFTs", wallet)
            return DiscoveryResult()

        derived = derive_position_addresses(candidates, self.config.clmm_program_id)
        addresses = [d.address for d in derived]

        strategy = ScanStrategy.BULK_SCAN
        fast: Payloads = {}
        bulk = await self.bulk_scan(derived)
        if not bulk:
            strategy = ScanStrategy.DERIVED_SCAN
        else:
            fast = bulk

        if strategy is ScanStrategy.DERIVED_SCAN:
            refetch: List[str] = addresses
        elif self.config.verify_fast_path:
            refetch = [a for a in addresses if a in fast]
        else:
            refetch = []
        slow = await self.derived_scan(refetch) if refetch else {}

        payloads = merge_matches(fast, slow, refetch)
        positions = self._decode_matches(derived, payloads)
        raw_total = sum(p.raw_liquidity for p in positions)
        observe(DISCOVERY_SCANS, strategy=strategy.value)
        logger.info(
            "Wallet %s: %d candidate(s), %d position(s) in pool via %s",
            wallet,
            len(candidates),
            len(positions),
            strategy.value,
            extra={"wallet": wallet, "strategy": strategy.value, "raw_liquidity": str(raw_total)},
        )
        return DiscoveryResult(
            positions=tuple(positions),
            raw_total_liquidity=raw_total,
            total_liquidity=liquidity_to_display(raw_total),
            strategy=strategy.value,
        )


__all__ = [
    "ScanStrategy",
    "PositionDiscoveryEngine",
    "derive_position_addresses",
    "select_candidates",
    "merge_matches",
    "liquidity_to_display",
]

import asyncio
from decimal import Decimal

import pytest

from fakes import (
    mint_bytes,
    new_key,
    parsed_token_entry,
    position_bytes,
    raw_account,
    raw_token_entry,
)
from solreward import scanner as scanner_mod
from solreward.balance import sum_mint_balance
from solreward.constants import CLMM_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from solreward.discovery import derive_position_addresses
from solreward.models import AccountRef, CandidateToken, ProgramKind, TokenAccountInfo
from solreward.scanner import WalletScanner, scan_wallet_sync


def _position_address(mint):
    candidate = CandidateToken(AccountRef("holder", ProgramKind.TOKEN), mint)
    return derive_position_addresses([candidate], CLMM_PROGRAM_ID)[0].address


@pytest.mark.asyncio
async def test_check_health(chain, make_config):
    scanner = WalletScanner(make_config(), client=chain)
    assert await scanner.check_health() == "ok"


@pytest.mark.asyncio
async def test_balance_is_zero_without_accounts(chain, make_config, wallet):
    scanner = WalletScanner(make_config(), client=chain)
    assert await scanner.get_balance(wallet) == Decimal(0)


@pytest.mark.asyncio
async def test_balance_sums_accounts_across_both_programs(chain, make_config, wallet, target_mint):
    chain.add_token_entry(
        wallet,
        TOKEN_PROGRAM_ID,
        parsed_token_entry(new_key(), mint=target_mint, owner=wallet, amount=1_500_000, decimals=6),
    )
    chain.add_token_entry(
        wallet,
        TOKEN_2022_PROGRAM_ID,
        raw_token_entry(
            new_key(),
            mint=target_mint,
            owner=wallet,
            amount=250_000,
            program_id=TOKEN_2022_PROGRAM_ID,
        ),
    )
    chain.accounts[target_mint] = raw_account(mint_bytes(6), owner=TOKEN_PROGRAM_ID)
    scanner = WalletScanner(make_config(), client=chain)

    assert await scanner.get_balance(wallet) == Decimal("1.75")


@pytest.mark.asyncio
async def test_balance_of_other_mint(chain, make_config, wallet):
    other = new_key()
    chain.add_token_entry(
        wallet,
        TOKEN_PROGRAM_ID,
        parsed_token_entry(new_key(), mint=other, owner=wallet, amount=5, decimals=0),
    )
    scanner = WalletScanner(make_config(), client=chain)

    assert await scanner.get_balance(wallet, other) == Decimal(5)
    assert await scanner.get_balance(wallet) == Decimal(0)


def test_unresolved_decimals_are_skipped():
    mint = new_key()
    accounts = [
        TokenAccountInfo("a", mint, "w", 10, None, ProgramKind.TOKEN),
        TokenAccountInfo("b", mint, "w", 300, 2, ProgramKind.TOKEN),
    ]
    assert sum_mint_balance(accounts, mint) == Decimal("3.00")


@pytest.mark.asyncio
async def test_scan_reuses_one_token_account_fetch(
    chain, make_config, wallet, target_mint, target_pool
):
    chain.add_token_entry(
        wallet,
        TOKEN_PROGRAM_ID,
        parsed_token_entry(new_key(), mint=target_mint, owner=wallet, amount=7_000, decimals=3),
    )
    nft = new_key()
    chain.add_token_entry(
        wallet,
        TOKEN_PROGRAM_ID,
        parsed_token_entry(new_key(), mint=nft, owner=wallet, amount=1, decimals=0),
    )
    address = _position_address(nft)
    chain.accounts[address] = raw_account(position_bytes(target_pool, 2_000_000_000, nft_mint=nft))
    scanner = WalletScanner(make_config(), client=chain)

    result = await scanner.scan(wallet)

    assert result.wallet == wallet
    assert result.token_balance == Decimal(7)
    assert [p.address for p in result.lp_positions] == [address]
    assert result.lp_total_liquidity == Decimal(2)
    assert chain.count("getTokenAccountsByOwner") == 2
    assert result.to_dict()["lp_total_liquidity"] == "2"


@pytest.mark.asyncio
async def test_scan_timeout_cancels_work(chain, make_config, wallet):
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def hang(owner, program_id, *, encoding="jsonParsed"):
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return []

    chain.get_token_accounts_by_owner = hang
    scanner = WalletScanner(make_config(), client=chain)

    with pytest.raises(asyncio.TimeoutError):
        await scanner.scan(wallet, timeout=0.05)
    assert started.is_set()
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_configured_scan_timeout_applies(chain, make_config, wallet):
    async def hang(owner, program_id, *, encoding="jsonParsed"):
        await asyncio.sleep(10)

    chain.get_token_accounts_by_owner = hang
    scanner = WalletScanner(make_config(scan_timeout=0.05), client=chain)

    with pytest.raises(asyncio.TimeoutError):
        await scanner.discover_positions(wallet)


class FakeSession:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


def test_scan_wallet_sync_closes_its_scanner(monkeypatch, chain, make_config, wallet):
    closed = []
    original_init = WalletScanner.__init__
    original_close = WalletScanner.close

    def init_with_chain(self, config, **kwargs):
        original_init(self, config, client=chain)

    async def recording_close(self):
        closed.append(self)
        await original_close(self)

    monkeypatch.setattr(WalletScanner, "__init__", init_with_chain)
    monkeypatch.setattr(WalletScanner, "close", recording_close)

    result = scan_wallet_sync(wallet, make_config())

    assert result.token_balance == Decimal(0)
    assert result.lp_positions == ()
    assert len(closed) == 1


@pytest.mark.asyncio
async def test_closing_one_scanner_keeps_other_sessions_open(monkeypatch, make_config):
    monkeypatch.setattr(scanner_mod, "new_session", FakeSession)
    first = WalletScanner(make_config())
    second = WalletScanner(make_config())

    first_session = await first._get_session()
    second_session = await second._get_session()
    assert first_session is not second_session
    assert await first._get_session() is first_session
    assert first.client._session_factory == first._get_session

    async with first:
        pass

    assert first_session.closed
    assert not second_session.closed
    await second.close()
    assert second_session.closed

"""In-memory Solana account fixtures shared by the test-suite."""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from solreward.constants import (
    CLMM_PROGRAM_ID,
    MINT_ACCOUNT_DATA_SIZE,
    MINT_DECIMALS_OFFSET,
    TOKEN_ACCOUNT_DATA_SIZE,
    TOKEN_PROGRAM_ID,
)


def new_key() -> str:
    return str(Pubkey.new_unique())


def b64(data: bytes) -> List[str]:
    return [base64.b64encode(data).decode(), "base64"]


def token_account_bytes(mint: str, owner: str, amount: int) -> bytes:
    data = bytearray(TOKEN_ACCOUNT_DATA_SIZE)
    data[0:32] = bytes(Pubkey.from_string(mint))
    data[32:64] = bytes(Pubkey.from_string(owner))
    data[64:72] = amount.to_bytes(8, "little")
    return bytes(data)


def mint_bytes(decimals: int) -> bytes:
    data = bytearray(MINT_ACCOUNT_DATA_SIZE)
    data[MINT_DECIMALS_OFFSET] = decimals
    return bytes(data)


def position_bytes(pool: str, liquidity: int, nft_mint: Optional[str] = None) -> bytes:
    data = bytearray(8)  # discriminator
    data += b"\xfe"  # bump
    data += bytes(Pubkey.from_string(nft_mint or new_key()))
    data += bytes(Pubkey.from_string(pool))
    data += (-100).to_bytes(4, "little", signed=True)
    data += (100).to_bytes(4, "little", signed=True)
    data += liquidity.to_bytes(16, "little")
    data += bytes(64)  # fee growth and reward fields
    return bytes(data)


def raw_account(data: bytes, owner: str = CLMM_PROGRAM_ID) -> Dict[str, Any]:
    return {
        "data": b64(data),
        "owner": owner,
        "lamports": 2_039_280,
        "executable": False,
        "rentEpoch": 0,
    }


def parsed_token_entry(
    address: str,
    *,
    mint: str,
    owner: str,
    amount: int,
    decimals: int,
    program_id: str = TOKEN_PROGRAM_ID,
) -> Dict[str, Any]:
    return {
        "pubkey": address,
        "account": {
            "data": {
                "parsed": {
                    "info": {
                        "isNative": False,
                        "mint": mint,
                        "owner": owner,
                        "state": "initialized",
                        "tokenAmount": {
                            "amount": str(amount),
                            "decimals": decimals,
                            "uiAmountString": str(amount / 10**decimals),
                        },
                    },
                    "type": "account",
                },
                "program": "spl-token",
                "space": TOKEN_ACCOUNT_DATA_SIZE,
            },
            "owner": program_id,
            "lamports": 2_039_280,
            "executable": False,
        },
    }


def raw_token_entry(
    address: str,
    *,
    mint: str,
    owner: str,
    amount: int,
    program_id: str = TOKEN_PROGRAM_ID,
) -> Dict[str, Any]:
    return {
        "pubkey": address,
        "account": raw_account(token_account_bytes(mint, owner, amount), owner=program_id),
    }


def _decode(payload: Mapping[str, Any]) -> bytes:
    return base64.b64decode(payload["data"][0])


def _matches(payload: Mapping[str, Any], filters: Sequence[Mapping[str, Any]]) -> bool:
    data = _decode(payload)
    for flt in filters:
        memcmp = flt.get("memcmp")
        if memcmp:
            expected = bytes(Pubkey.from_string(memcmp["bytes"]))
            offset = memcmp["offset"]
            if data[offset : offset + len(expected)] != expected:
                return False
        size = flt.get("dataSize")
        if size is not None and len(data) != size:
            return False
    return True


class FakeChain:
    """Implements the RPC client methods the scanner uses against in-memory state.

    ``program_accounts`` overrides what program scans see, which lets a test
    serve stale data to the fast path while ``accounts`` holds the truth.
    """

    def __init__(self) -> None:
        self.token_accounts: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.program_accounts: Optional[List[Dict[str, Any]]] = None
        self.bulk_error: Optional[BaseException] = None
        self.page_error: Optional[BaseException] = None
        self.page_size_seen: List[int] = []
        self.calls: List[Tuple[str, Any]] = []

    def add_token_entry(self, owner: str, program_id: str, entry: Dict[str, Any]) -> None:
        self.token_accounts.setdefault((owner, program_id), []).append(entry)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def get_health(self) -> str:
        self.calls.append(("getHealth", None))
        return "ok"

    async def get_token_accounts_by_owner(
        self, owner: str, program_id: str, *, encoding: str = "jsonParsed"
    ) -> List[Dict[str, Any]]:
        self.calls.append(("getTokenAccountsByOwner", (owner, program_id)))
        return list(self.token_accounts.get((owner, program_id), []))

    async def get_multiple_accounts(
        self, addresses: Sequence[str], *, encoding: str = "base64"
    ) -> List[Optional[Dict[str, Any]]]:
        self.calls.append(("getMultipleAccounts", list(addresses)))
        return [self.accounts.get(address) for address in addresses]

    def _program_entries(
        self, program_id: str, filters: Sequence[Mapping[str, Any]]
    ) -> List[Dict[str, Any]]:
        if self.program_accounts is not None:
            source = self.program_accounts
        else:
            source = [
                {"pubkey": address, "account": payload}
                for address, payload in self.accounts.items()
                if payload.get("owner") == program_id
            ]
        return [entry for entry in source if _matches(entry["account"], filters)]

    async def get_program_accounts(
        self,
        program_id: str,
        *,
        filters: Sequence[Mapping[str, Any]] = (),
        encoding: str = "base64",
    ) -> List[Dict[str, Any]]:
        self.calls.append(("getProgramAccounts", (program_id, list(filters))))
        if self.bulk_error is not None:
            raise self.bulk_error
        return self._program_entries(program_id, filters)

    async def get_program_accounts_page(
        self,
        program_id: str,
        *,
        filters: Sequence[Mapping[str, Any]] = (),
        limit: int = 1000,
        pagination_key: Optional[str] = None,
        encoding: str = "base64",
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        self.calls.append(("getProgramAccountsV2", (program_id, pagination_key)))
        if self.page_error is not None:
            raise self.page_error
        self.page_size_seen.append(limit)
        entries = self._program_entries(program_id, filters)
        start = int(pagination_key or 0)
        page = entries[start : start + limit]
        end = start + len(page)
        next_key = str(end) if end < len(entries) else None
        return page, next_key

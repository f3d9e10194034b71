"""Decode token, mint and position-state account payloads.

Token and mint accounts are decoded in two tiers.  The provider's
``jsonParsed`` structure is read first; when it is absent or malformed the
fixed binary layout is decoded from the base64 data instead.  The second tier
is a normal path, not an error: providers return raw bytes for accounts they
cannot parse and for any request made with ``encoding=base64``.

Position-state accounts are always decoded from raw bytes.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, Mapping, Optional

from solders.pubkey import Pubkey

from .constants import (
    MINT_DECIMALS_OFFSET,
    POSITION_LIQUIDITY_OFFSET,
    POSITION_POOL_ID_OFFSET,
    PUBKEY_LENGTH,
    TOKEN_ACCOUNT_AMOUNT_OFFSET,
    TOKEN_ACCOUNT_MINT_OFFSET,
    TOKEN_ACCOUNT_OWNER_OFFSET,
    U64_LENGTH,
    U128_LENGTH,
)
from .errors import DecodeError
from .models import TOKEN_PROGRAM_KINDS, PositionRecord, ProgramKind, TokenAccountInfo
from .rpc_helpers import as_int

logger = logging.getLogger(__name__)


def account_bytes(payload: Mapping[str, Any] | None) -> Optional[bytes]:
    """Raw account data of ``payload`` or ``None`` when only parsed data is present."""

    if not isinstance(payload, Mapping):
        return None
    data = payload.get("data")
    encoded: Any = None
    encoding = "base64"
    if isinstance(data, list) and data and isinstance(data[0], str):
        encoded = data[0]
        if len(data) > 1 and isinstance(data[1], str):
            encoding = data[1]
    elif isinstance(data, Mapping) and isinstance(data.get("encoded"), str):
        encoded = data["encoded"]
    elif isinstance(data, str):
        encoded = data
    if encoded is None:
        return None
    if encoding != "base64":
        raise DecodeError(f"unsupported account data encoding {encoding!r}")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"invalid base64 account data: {exc}") from exc


def _require(data: bytes, length: int, what: str) -> None:
    if len(data) < length:
        raise DecodeError(f"{what} payload is {len(data)} bytes, need at least {length}")


def read_pubkey(data: bytes, offset: int) -> str:
    _require(data, offset + PUBKEY_LENGTH, "pubkey")
    return str(Pubkey.from_bytes(data[offset : offset + PUBKEY_LENGTH]))


def read_u64(data: bytes, offset: int) -> int:
    _require(data, offset + U64_LENGTH, "u64")
    return int.from_bytes(data[offset : offset + U64_LENGTH], "little", signed=False)


def read_u128(data: bytes, offset: int) -> int:
    _require(data, offset + U128_LENGTH, "u128")
    return int.from_bytes(data[offset : offset + U128_LENGTH], "little", signed=False)


def _parsed_info(payload: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    data = payload.get("data")
    if not isinstance(data, Mapping):
        return None
    parsed = data.get("parsed")
    if not isinstance(parsed, Mapping):
        return None
    info = parsed.get("info")
    return dict(info) if isinstance(info, Mapping) else None


def _structured_token_account(
    payload: Mapping[str, Any], *, address: str, program: ProgramKind
) -> Optional[TokenAccountInfo]:
    info = _parsed_info(payload)
    if info is None:
        return None
    token_amount = info.get("tokenAmount")
    if not isinstance(token_amount, Mapping):
        return None
    mint = info.get("mint")
    owner = info.get("owner")
    amount = as_int(token_amount.get("amount"))
    decimals = as_int(token_amount.get("decimals"))
    if not isinstance(mint, str) or not isinstance(owner, str) or amount is None or amount < 0:
        return None
    return TokenAccountInfo(
        address=address,
        mint=mint,
        owner=owner,
        amount_raw=amount,
        decimals=decimals,
        program=program,
    )


def _raw_token_account(
    payload: Mapping[str, Any],
    *,
    address: str,
    program: ProgramKind,
    amount_offset: int,
) -> TokenAccountInfo:
    data = account_bytes(payload)
    if data is None:
        raise DecodeError(f"token account {address} has neither parsed nor raw data")
    _require(data, amount_offset + U64_LENGTH, f"token account {address}")
    return TokenAccountInfo(
        address=address,
        mint=read_pubkey(data, TOKEN_ACCOUNT_MINT_OFFSET),
        owner=read_pubkey(data, TOKEN_ACCOUNT_OWNER_OFFSET),
        amount_raw=read_u64(data, amount_offset),
        decimals=None,
        program=program,
    )


def _program_of(payload: Mapping[str, Any], default: ProgramKind) -> ProgramKind:
    owner = payload.get("owner")
    if isinstance(owner, str):
        try:
            kind = ProgramKind.from_program_id(owner)
        except ValueError:
            return default
        if kind in TOKEN_PROGRAM_KINDS:
            return kind
    return default


def decode_token_account(
    payload: Mapping[str, Any],
    *,
    address: str = "",
    program: ProgramKind = ProgramKind.TOKEN,
    amount_offset: int = TOKEN_ACCOUNT_AMOUNT_OFFSET,
) -> TokenAccountInfo:
    """Decode a token account, structured form first and raw layout second.

    Raw decodes leave ``decimals`` as ``None``; they live on the mint account.
    """

    if not isinstance(payload, Mapping):
        raise DecodeError(f"token account {address} payload is not an object")
    program = _program_of(payload, program)
    structured = _structured_token_account(payload, address=address, program=program)
    if structured is not None:
        return structured
    return _raw_token_account(
        payload, address=address, program=program, amount_offset=amount_offset
    )


def decode_token_entry(
    entry: Mapping[str, Any],
    *,
    program: ProgramKind = ProgramKind.TOKEN,
    amount_offset: int = TOKEN_ACCOUNT_AMOUNT_OFFSET,
) -> TokenAccountInfo:
    """Decode a ``{pubkey, account}`` entry from ``getTokenAccountsByOwner``."""

    address = entry.get("pubkey")
    account = entry.get("account")
    if not isinstance(address, str) or not isinstance(account, Mapping):
        raise DecodeError("token account entry lacks pubkey or account")
    return decode_token_account(
        account, address=address, program=program, amount_offset=amount_offset
    )


def decode_mint_decimals(payload: Mapping[str, Any], *, address: str = "") -> int:
    info = _parsed_info(payload) if isinstance(payload, Mapping) else None
    if info is not None:
        decimals = as_int(info.get("decimals"))
        if decimals is not None and decimals >= 0:
            return decimals
    data = account_bytes(payload)
    if data is None:
        raise DecodeError(f"mint {address} has neither parsed nor raw data")
    _require(data, MINT_DECIMALS_OFFSET + 1, f"mint {address}")
    return data[MINT_DECIMALS_OFFSET]


def decode_liquidity(data: bytes, *, offset: int = POSITION_LIQUIDITY_OFFSET) -> int:
    """Little-endian u128 liquidity of a position-state account."""

    _require(data, offset + U128_LENGTH, "position state")
    return read_u128(data, offset)


def decode_pool_id(data: bytes, *, offset: int = POSITION_POOL_ID_OFFSET) -> str:
    _require(data, offset + PUBKEY_LENGTH, "position state")
    return read_pubkey(data, offset)


def decode_position(
    payload: Mapping[str, Any],
    *,
    address: str,
    mint: Optional[str] = None,
    liquidity_offset: int = POSITION_LIQUIDITY_OFFSET,
    pool_id_offset: int = POSITION_POOL_ID_OFFSET,
) -> PositionRecord:
    data = account_bytes(payload)
    if data is None:
        raise DecodeError(f"position {address} has no raw account data")
    min_len = max(liquidity_offset + U128_LENGTH, pool_id_offset + PUBKEY_LENGTH)
    _require(data, min_len, f"position {address}")
    return PositionRecord(
        address=address,
        pool_id=decode_pool_id(data, offset=pool_id_offset),
        raw_liquidity=decode_liquidity(data, offset=liquidity_offset),
        mint=mint,
    )


__all__ = [
    "account_bytes",
    "read_pubkey",
    "read_u64",
    "read_u128",
    "decode_token_account",
    "decode_token_entry",
    "decode_mint_decimals",
    "decode_liquidity",
    "decode_pool_id",
    "decode_position",
]

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .constants import CLMM_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID


class ProgramKind(str, Enum):
    """Programs whose accounts the scanner reads."""

    TOKEN = "token"
    TOKEN_2022 = "token-2022"
    CLMM = "clmm"

    @property
    def program_id(self) -> str:
        return _PROGRAM_IDS[self]

    @classmethod
    def from_program_id(cls, program_id: str) -> "ProgramKind":
        for kind, pid in _PROGRAM_IDS.items():
            if pid == program_id:
                return kind
        raise ValueError(f"unknown program id {program_id}")


_PROGRAM_IDS: Dict[ProgramKind, str] = {
    ProgramKind.TOKEN: TOKEN_PROGRAM_ID,
    ProgramKind.TOKEN_2022: TOKEN_2022_PROGRAM_ID,
    ProgramKind.CLMM: CLMM_PROGRAM_ID,
}

TOKEN_PROGRAM_KINDS: Tuple[ProgramKind, ...] = (ProgramKind.TOKEN, ProgramKind.TOKEN_2022)


@dataclass(slots=True, frozen=True)
class AccountRef:
    address: str
    program: ProgramKind


@dataclass(slots=True)
class TokenAccountInfo:
    """A decoded token account.

    ``decimals`` is ``None`` when the account was decoded from raw bytes and
    the mint has not been looked up yet.
    """

    address: str
    mint: str
    owner: str
    amount_raw: int
    decimals: Optional[int]
    program: ProgramKind

    @property
    def ref(self) -> AccountRef:
        return AccountRef(self.address, self.program)

    def ui_amount(self) -> Decimal:
        if self.decimals is None:
            raise ValueError(f"decimals unresolved for token account {self.address}")
        return Decimal(self.amount_raw).scaleb(-self.decimals)


@dataclass(slots=True, frozen=True)
class CandidateToken:
    """A wallet-held token shaped like a position NFT (decimals 0, amount 1)."""

    account: AccountRef
    mint: str


@dataclass(slots=True, frozen=True)
class DerivedAddress:
    address: str
    seed: str
    mint: str
    candidate_index: int


@dataclass(slots=True, frozen=True)
class PositionRecord:
    address: str
    pool_id: str
    raw_liquidity: int
    mint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "pool_id": self.pool_id,
            "raw_liquidity": str(self.raw_liquidity),
            "mint": self.mint,
        }


@dataclass(slots=True, frozen=True)
class DiscoveryResult:
    positions: Tuple[PositionRecord, ...] = ()
    raw_total_liquidity: int = 0
    total_liquidity: Decimal = Decimal(0)
    strategy: Optional[str] = None

    @property
    def addresses(self) -> Tuple[str, ...]:
        return tuple(p.address for p in self.positions)


@dataclass(slots=True, frozen=True)
class ScanResult:
    """Outcome of one wallet scan. Persisting it is the caller's concern."""

    wallet: str
    token_balance: Decimal
    lp_positions: Tuple[PositionRecord, ...] = field(default_factory=tuple)
    lp_total_liquidity: Decimal = Decimal(0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet": self.wallet,
            "token_balance": str(self.token_balance),
            "lp_positions": [p.to_dict() for p in self.lp_positions],
            "lp_total_liquidity": str(self.lp_total_liquidity),
        }


__all__ = [
    "ProgramKind",
    "TOKEN_PROGRAM_KINDS",
    "AccountRef",
    "TokenAccountInfo",
    "CandidateToken",
    "DerivedAddress",
    "PositionRecord",
    "DiscoveryResult",
    "ScanResult",
]

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List

from .config import Config
from .models import ScanResult


@dataclass(slots=True, frozen=True)
class EligibilityRules:
    """Thresholds a scan must meet.

    With ``mode="any"`` either the token balance or the LP liquidity
    threshold qualifies the wallet; ``mode="all"`` requires both.  A zero
    threshold still requires a non-zero holding.
    """

    min_token_balance: Decimal = Decimal(0)
    min_lp_liquidity: Decimal = Decimal(0)
    mode: str = "any"

    def __post_init__(self) -> None:
        if self.mode not in {"any", "all"}:
            raise ValueError(f"unknown eligibility mode {self.mode!r}")

    @classmethod
    def from_config(cls, config: Config) -> "EligibilityRules":
        return cls(
            min_token_balance=Decimal(config.min_token_balance),
            min_lp_liquidity=Decimal(config.min_lp_liquidity),
            mode=config.eligibility_mode,
        )


@dataclass(slots=True, frozen=True)
class EligibilityDecision:
    eligible: bool
    token_ok: bool
    lp_ok: bool
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eligible": self.eligible,
            "token_ok": self.token_ok,
            "lp_ok": self.lp_ok,
            "reasons": list(self.reasons),
        }


def _meets(value: Decimal, threshold: Decimal) -> bool:
    return value > 0 and value >= threshold


def evaluate_eligibility(result: ScanResult, rules: EligibilityRules) -> EligibilityDecision:
    token_ok = _meets(result.token_balance, rules.min_token_balance)
    lp_ok = _meets(result.lp_total_liquidity, rules.min_lp_liquidity)

    reasons: List[str] = []
    if not token_ok:
        reasons.append(
            f"token balance {result.token_balance} below minimum {rules.min_token_balance}"
        )
    if not lp_ok:
        reasons.append(
            f"LP liquidity {result.lp_total_liquidity} below minimum {rules.min_lp_liquidity}"
        )

    eligible = (token_ok and lp_ok) if rules.mode == "all" else (token_ok or lp_ok)
    return EligibilityDecision(eligible=eligible, token_ok=token_ok, lp_ok=lp_ok, reasons=reasons)


__all__ = ["EligibilityRules", "EligibilityDecision", "evaluate_eligibility"]

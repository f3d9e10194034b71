from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Sequence

from .discovery import PositionDiscoveryEngine
from .models import TokenAccountInfo

logger = logging.getLogger(__name__)


def sum_mint_balance(accounts: Iterable[TokenAccountInfo], mint: str) -> Decimal:
    """Sum the UI balance of every account holding ``mint``.

    Accounts whose decimals could not be resolved are skipped with a warning.
    """

    total = Decimal(0)
    for account in accounts:
        if account.mint != mint:
            continue
        if account.decimals is None:
            logger.warning(
                "Ignoring token account %s: decimals for mint %s unresolved", account.address, mint
            )
            continue
        total += account.ui_amount()
    return total


async def get_balance(
    engine: PositionDiscoveryEngine,
    wallet: str,
    mint: str,
    *,
    token_accounts: Sequence[TokenAccountInfo] | None = None,
) -> Decimal:
    """Balance of ``mint`` held by ``wallet`` across both token programs.

    A wallet without any account for ``mint`` has a balance of zero.
    """

    if token_accounts is None:
        token_accounts = await engine.fetch_token_accounts(wallet)
    balance = sum_mint_balance(token_accounts, mint)
    logger.debug("Wallet %s holds %s of %s", wallet, balance, mint)
    return balance


__all__ = ["get_balance", "sum_mint_balance"]

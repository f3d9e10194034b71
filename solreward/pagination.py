from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)


class ProgramAccountsPager(Protocol):
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


class PaginatedScanner:
    """Walk ``getProgramAccountsV2`` continuation cursors until the provider runs dry.

    This is the fallback for a bulk ``getProgramAccounts`` call the provider
    refused as deprioritized.
    """

    def __init__(self, client: ProgramAccountsPager, *, page_size: int = 1000) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.client = client
        self.page_size = page_size

    async def scan(
        self,
        program_id: str,
        filters: Sequence[Mapping[str, Any]] = (),
        *,
        encoding: str = "base64",
        max_accounts: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        aggregated: List[Dict[str, Any]] = []
        pagination_key: Optional[str] = None
        pages = 0

        while max_accounts is None or len(aggregated) < max_accounts:
            limit = self.page_size
            if max_accounts is not None:
                limit = max(1, min(self.page_size, max_accounts - len(aggregated)))
            accounts, next_key = await self.client.get_program_accounts_page(
                program_id,
                filters=filters,
                limit=limit,
                pagination_key=pagination_key,
                encoding=encoding,
            )
            pages += 1
            aggregated.extend(accounts)
            logger.debug(
                "Program scan page %d for %s returned %d account(s)",
                pages,
                program_id,
                len(accounts),
            )
            if not next_key or not accounts or next_key == pagination_key:
                break
            pagination_key = next_key

        if max_accounts is not None:
            del aggregated[max_accounts:]
        logger.info(
            "Paginated scan of %s collected %d account(s) over %d page(s)",
            program_id,
            len(aggregated),
            pages,
        )
        return aggregated


__all__ = ["PaginatedScanner", "ProgramAccountsPager"]

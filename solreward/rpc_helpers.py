"""Utilities for normalising JSON-RPC response payloads.

Providers disagree on where list payloads live: ``getProgramAccounts`` returns
a bare list, ``getProgramAccountsV2`` nests it under ``accounts`` next to a
``paginationKey``, and context-wrapped methods put it under ``value``.  The
helpers below flatten those shapes into plain lists of dictionaries.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


def _extract_path(obj: Any, path: Iterable[str]) -> Any:
    cur = obj
    for key in path:
        if isinstance(cur, dict):
            cur = cur.get(key)
        else:
            return None
    return cur


def as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text, 10)
        except ValueError:
            return None
    return None


def extract_value_list(resp: Any) -> List[Dict[str, Any]]:
    """Return a list of dictionaries representing ``resp``'s value payload."""

    candidates: Any = []
    if isinstance(resp, list):
        candidates = resp
    elif isinstance(resp, dict):
        paths = (
            ("result", "value"),
            ("result", "accounts"),
            ("result",),
            ("value",),
            ("accounts",),
        )
        for path in paths:
            extracted = _extract_path(resp, path)
            if isinstance(extracted, list):
                candidates = extracted
                break

    return [item for item in candidates or [] if isinstance(item, dict)]


def extract_aligned_values(resp: Any) -> List[Optional[Dict[str, Any]]]:
    """Return ``getMultipleAccounts`` values keeping ``None`` placeholders.

    Unlike :func:`extract_value_list` the position of each entry matters, so
    missing accounts are preserved as ``None``.
    """

    values: Any = None
    if isinstance(resp, list):
        values = resp
    elif isinstance(resp, dict):
        for path in (("result", "value"), ("value",)):
            extracted = _extract_path(resp, path)
            if isinstance(extracted, list):
                values = extracted
                break
    if values is None:
        return []
    return [item if isinstance(item, dict) else None for item in values]


def extract_pagination_key(resp: Any) -> Optional[str]:
    """Return the continuation cursor of a paginated program-account page."""

    for path in (("result", "paginationKey"), ("paginationKey",)):
        key = _extract_path(resp, path)
        if isinstance(key, str) and key:
            return key
    return None


__all__ = [
    "as_int",
    "extract_value_list",
    "extract_aligned_values",
    "extract_pagination_key",
]

from __future__ import annotations

import asyncio
import logging
import os
import weakref

import aiohttp

logger = logging.getLogger(__name__)

# Maintain a session per event loop to avoid cross-loop usage errors when
# running multiple asyncio loops in different threads.
_SESSIONS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aiohttp.ClientSession]" = (
    weakref.WeakKeyDictionary()
)

# Connector limits are configurable via environment variables.
CONNECTOR_LIMIT = int(os.getenv("HTTP_CONNECTOR_LIMIT", "0") or 0)
CONNECTOR_LIMIT_PER_HOST = int(os.getenv("HTTP_CONNECTOR_LIMIT_PER_HOST", "0") or 0)

DEFAULT_USER_AGENT = "solreward/0.1"


def new_session() -> aiohttp.ClientSession:
    """Create an aiohttp session configured from the environment.

    Must be called with an event loop running.  The caller owns the session
    and is responsible for closing it.
    """
    connector = aiohttp.TCPConnector(
        limit=CONNECTOR_LIMIT,
        limit_per_host=CONNECTOR_LIMIT_PER_HOST,
        ttl_dns_cache=60,
    )
    ua = os.getenv("HTTP_USER_AGENT", DEFAULT_USER_AGENT)
    try:
        timeout_total = float(os.getenv("HTTP_TIMEOUT_SEC", "30") or 30)
    except ValueError:
        timeout_total = 30.0
    trust_env = str(os.getenv("HTTP_TRUST_ENV", "")).lower() in {"1", "true", "yes"}
    if trust_env:
        logger.info("HTTP session will honor proxy settings from the environment")
    return aiohttp.ClientSession(
        connector=connector,
        headers={"User-Agent": ua},
        timeout=aiohttp.ClientTimeout(total=timeout_total),
        trust_env=trust_env,
    )


async def get_session() -> aiohttp.ClientSession:
    """Return the shared aiohttp session bound to the current event loop."""
    loop = asyncio.get_running_loop()
    sess = _SESSIONS.get(loop)
    if sess is None or sess.closed:
        sess = new_session()
        _SESSIONS[loop] = sess
    return sess


async def close_session() -> None:
    """Close the shared session of the current event loop."""
    sess = _SESSIONS.pop(asyncio.get_running_loop(), None)
    if sess is not None and not sess.closed:
        await sess.close()


__all__ = [
    "new_session",
    "get_session",
    "close_session",
    "CONNECTOR_LIMIT",
    "CONNECTOR_LIMIT_PER_HOST",
]

# core/services/web3_cache.py
"""
Process-wide AsyncWeb3 instances, one per RPC URL.

Entries expire after WEB3_CACHE_TTL_SEC and are rebuilt on the next lookup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from time import time
from typing import Dict

from web3 import AsyncWeb3
from web3.providers.rpc import AsyncHTTPProvider

logger = logging.getLogger(__name__)

WEB3_CACHE_TTL_SEC = 10 * 60


@dataclass
class _CachedWeb3:
    w3: AsyncWeb3
    expires_at: float


_ENTRIES: Dict[str, _CachedWeb3] = {}


def get_async_web3(rpc_url: str, *, ttl_sec: float = WEB3_CACHE_TTL_SEC) -> AsyncWeb3:
    url = (rpc_url or "").strip()
    if not url:
        raise ValueError("rpc_url is required")

    now = time()
    entry = _ENTRIES.get(url)
    if entry is None or entry.expires_at <= now:
        entry = _CachedWeb3(w3=AsyncWeb3(AsyncHTTPProvider(url)), expires_at=now + ttl_sec)
        _ENTRIES[url] = entry
        logger.debug("AsyncWeb3 provider (re)built for %s", url)
    return entry.w3


def clear_web3_cache() -> None:
    _ENTRIES.clear()

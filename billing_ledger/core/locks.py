"""Per-account asyncio locks.

A lock lives only while some coroutine holds a reference to it, so the
registry does not grow with the number of accounts ever touched.
"""

import asyncio
import weakref
from typing import Tuple

_locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()


def account_lock(tenant_id: str, account_id: str) -> asyncio.Lock:
    """Lock serializing every ledger mutation of one account."""
    key = (tenant_id, account_id)
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    return lock

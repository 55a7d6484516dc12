"""In-process keyed locks.

Serializes ledger mutations that touch the same key (an invoice, a tenant's
invoice sequence, a fee structure slot) within one worker. Row locks taken with
SELECT ... FOR UPDATE and the version counters on invoices/transactions cover
the multi-worker case.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLock:
    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                # Nobody is waiting; drop the lock so the registry does not grow unbounded
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


ledger_locks = KeyedLock()

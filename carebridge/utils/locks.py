"""Per-conversation async locks with LRU eviction."""

import asyncio
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ConversationLockManager:
    """In-process exclusive lock per conversation id.

    Serialises the read-modify-write steps of a single conversation
    (assigning ``created_at`` and appending, clearing counters) inside one
    server process. Locks that are neither held nor awaited are evicted
    once more than ``max_locks`` conversations are tracked.
    """

    def __init__(self, max_locks: int = 1024) -> None:
        self._locks: "OrderedDict[str, asyncio.Lock]" = OrderedDict()
        self._refcounts: Dict[str, int] = {}
        self._max_locks = max_locks

    def _get_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        else:
            self._locks.move_to_end(key)
        self._refcounts[key] = self._refcounts.get(key, 0) + 1
        self._evict()
        return lock

    def _release_ref(self, key: str) -> None:
        count = self._refcounts.get(key, 0) - 1
        if count <= 0:
            self._refcounts.pop(key, None)
        else:
            self._refcounts[key] = count

    def _evict(self) -> None:
        if len(self._locks) <= self._max_locks:
            return
        for key in list(self._locks):
            if len(self._locks) <= self._max_locks:
                break
            if not self._locks[key].locked() and self._refcounts.get(key, 0) <= 0:
                del self._locks[key]

    @asynccontextmanager
    async def locked(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._get_lock(conversation_id)
        try:
            async with lock:
                yield
        finally:
            self._release_ref(conversation_id)

    @property
    def size(self) -> int:
        return len(self._locks)

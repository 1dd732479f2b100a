"""
Cache store interface and in-memory implementation.
"""

import asyncio
from typing import Dict, Optional, Protocol

from shared.logging import get_logger
from .models import CacheEntry


class CacheStore(Protocol):
    """Key-value store for rendered pages.

    Implementations must make a single key's get/put atomic. ``put`` is an
    upsert (last writer wins) and returns the stored form of the entry.
    """

    async def get(self, key: str) -> Optional[CacheEntry]:
        ...

    async def put(self, entry: CacheEntry) -> CacheEntry:
        ...

    async def health_check(self) -> bool:
        ...


class InMemoryCacheStore:
    """Process-local cache store."""

    def __init__(self):
        self.logger = get_logger("renderer.cache.memory")
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def start(self):
        self.logger.info("In-memory cache store started")

    async def stop(self):
        return None

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self._lock:
            return self._entries.get(key)

    async def put(self, entry: CacheEntry) -> CacheEntry:
        async with self._lock:
            self._entries[entry.key] = entry
            return entry

    async def health_check(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._entries)

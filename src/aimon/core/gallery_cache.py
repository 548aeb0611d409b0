"""Read-through gallery listing with write-side incremental updates.

The gallery is a single cache entry holding every creature, newest first.
Reads go through :meth:`GalleryCache.list_gallery`, which falls back to the
store on a miss and repopulates the entry with a full TTL.

Writes never invalidate the entry.  After the store has accepted a mutation
the handler calls :meth:`GalleryCache.prepend` (creation) or
:meth:`GalleryCache.replace` (like, action image), which patch the cached
list in place when it is present:

- entry absent: nothing to do, the next read rebuilds it from the store
- creation: the new record goes to the front of the list
- update: the record with the same id is swapped in place; if no cached
  record has that id the entry is left alone and corrects itself on expiry

The read-modify-write is not atomic.  Two concurrent writers can race and the
cache may lose one of the updates until the entry expires.  The store record
itself is never affected because every mutation targets it by id.

Write-side maintenance is best-effort: the store write has already
succeeded, so backend errors are logged and swallowed here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from aimon.core.cache import CacheBackend

logger = logging.getLogger(__name__)


class GalleryCache:
    """Gallery projection of the creature store kept in a cache backend.

    Args:
        backend: Expiring key/value store.
        loader: Zero-argument callable returning the full listing from the
            store (typically ``CreatureDB.list_creatures``).
        key: Cache key of the gallery entry.
        ttl_seconds: Lifetime of the entry after every (re)store.
    """

    def __init__(
        self,
        backend: CacheBackend,
        loader: Callable[[], list[dict[str, Any]]],
        key: str = "gallery:all",
        ttl_seconds: int = 300,
    ):
        self.backend = backend
        self.loader = loader
        self.key = key
        self.ttl_seconds = ttl_seconds

    async def list_gallery(self) -> list[dict[str, Any]]:
        """Return the cached listing, loading it from the store on a miss.

        Backend errors propagate: on the read path there is nothing to fall
        back to that the caller could not retry itself.
        """
        return await self.backend.get_or_set(self.key, self.loader, self.ttl_seconds)

    async def prepend(self, record: dict[str, Any]) -> bool:
        """Put a newly created record at the front of the cached listing.

        Returns:
            True if the cache entry was rewritten.
        """

        def _prepend(entries: list[dict[str, Any]]) -> bool:
            entries.insert(0, record)
            return True

        updated = await self._update(_prepend)
        if updated:
            logger.info(f"Cache updated: {self.key} prepended #{record.get('id')}")
        return updated

    async def replace(self, record: dict[str, Any]) -> bool:
        """Swap the cached copy of ``record`` (matched by id) in place.

        Returns:
            True if the cache entry was rewritten, False when the entry is
            absent or holds no record with this id.
        """
        record_id = record.get("id")

        def _replace(entries: list[dict[str, Any]]) -> bool:
            for index, entry in enumerate(entries):
                if isinstance(entry, dict) and entry.get("id") == record_id:
                    entries[index] = record
                    return True
            return False

        updated = await self._update(_replace)
        if updated:
            logger.info(f"Cache updated: AImon #{record_id} in {self.key}")
        return updated

    async def _update(self, mutate: Callable[[list[dict[str, Any]]], bool]) -> bool:
        try:
            cached = await self.backend.get(self.key)
            if not isinstance(cached, list):
                # Absent (or not a listing): the next read repopulates.
                return False

            if not mutate(cached):
                return False

            await self.backend.set(self.key, cached, self.ttl_seconds)
            return True

        except Exception:
            logger.exception(f"Gallery cache maintenance failed for {self.key}")
            return False

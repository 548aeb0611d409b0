"""Core services for the AImon backend.

This package holds everything the HTTP layer talks to:

- **AimonConfig** / **config**: settings loaded from ``AIMON_*`` environment
  variables (config.py)
- **CreatureDB**: SQLite store for generated creatures (creature_db.py)
- **ImageStorage**: base64 image persistence under the images directory
  (image_storage.py)
- **CreatureGenerator**: Gemini image and metadata generation (generation.py)
- **build_creature**: metadata normalisation (creature_builder.py)
- **MemoryCache** / **RedisCache**: expiring key/value backends (cache.py)
- **GalleryCache**: read-through gallery listing with write-side
  incremental updates (gallery_cache.py)

Architecture Overview
---------------------
The store is always the source of truth.  The gallery cache is a disposable
projection of ``CreatureDB.list_creatures()`` that is patched in place after
each write instead of being invalidated, so a warm cache stays warm.
"""

from aimon.core.cache import CacheBackend, MemoryCache, RedisCache
from aimon.core.config import AimonConfig, config
from aimon.core.creature_db import CreatureDB
from aimon.core.gallery_cache import GalleryCache

__all__ = [
    "AimonConfig",
    "CacheBackend",
    "CreatureDB",
    "GalleryCache",
    "MemoryCache",
    "RedisCache",
    "config",
]

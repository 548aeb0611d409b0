"""AImon: FastAPI Application.

This module defines the FastAPI application factory, all REST API routes,
and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
Route handlers are thin.  Every collaborator they use is built once per
application and stored on ``app.state``:

- **store**: :class:`~aimon.core.creature_db.CreatureDB`, the source of
  truth for creature records.
- **gallery**: :class:`~aimon.core.gallery_cache.GalleryCache`, the cached
  gallery listing (key ``gallery:all``, TTL 300 s by default).
- **generator**: :class:`~aimon.core.generation.CreatureGenerator`, Gemini
  image and metadata generation.
- **image_storage**: :class:`~aimon.core.image_storage.ImageStorage`,
  writes generated images under ``/images``.

:func:`create_app` accepts any of these pre-built (tests pass fakes); the
lifespan builds the missing ones from configuration and closes the cache
backend on shutdown.

Every successful write (generate, like, action image) patches the gallery
cache in place after the store has accepted it.  Cache maintenance failures
are logged and never reach the client.

Endpoints
---------
========  =================================  ==============================
Method    Path                               Purpose
========  =================================  ==============================
GET       ``/api/health``                    Liveness probe
GET       ``/api/gallery``                   All creatures, newest first
POST      ``/api/generate``                  Doodle → new creature
PATCH     ``/api/aimon/{id}/like``           Increment like count
POST      ``/api/aimon/{id}/action-image``   Image of a creature's power
GET       ``/images/...``                    Stored images
GET       ``/{path}``                        Single-page app fallback
========  =================================  ==============================

Usage
-----
CLI (installed entry point)::

    aimon

Direct invocation::

    python -m aimon.api.main
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from aimon import __version__
from aimon.api.models import (
    ActionImageRequest,
    ActionImageResponse,
    Creature,
    GenerateRequest,
)
from aimon.core.cache import CacheBackend, MemoryCache, RedisCache
from aimon.core.config import AimonConfig, config
from aimon.core.creature_builder import build_creature
from aimon.core.creature_db import CreatureDB
from aimon.core.gallery_cache import GalleryCache
from aimon.core.generation import CreatureGenerator
from aimon.core.image_storage import ImageStorage, strip_data_url

logger = logging.getLogger(__name__)

METADATA_PROMPT = (
    "Design an original battle-creature matching the reference. "
    "Use allowed types and include the name in each power description."
)


# ---------------------------------------------------------------------------
# Collaborator construction.
# ---------------------------------------------------------------------------


def build_cache_backend(settings: AimonConfig) -> CacheBackend:
    """Create the cache backend selected by ``settings.cache_backend``."""
    if settings.cache_backend == "redis":
        logger.info(f"Using Redis gallery cache at {settings.redis_url}")
        return RedisCache(settings.redis_url)
    logger.info("Using in-process gallery cache")
    return MemoryCache()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build missing collaborators on startup and release them on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    state = app.state
    settings: AimonConfig = state.config

    # --- Startup -----------------------------------------------------------
    if state.store is None:
        state.store = CreatureDB(settings.database_path)
    if state.cache is None:
        state.cache = build_cache_backend(settings)
    if state.generator is None:
        state.generator = CreatureGenerator(settings)
    if state.image_storage is None:
        state.image_storage = ImageStorage(settings.images_dir)

    state.gallery = GalleryCache(
        state.cache,
        state.store.list_creatures,
        key=settings.gallery_cache_key,
        ttl_seconds=settings.gallery_cache_ttl,
    )
    logger.info("AImon services initialised.")

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    await state.cache.close()
    logger.info("AImon services shut down.")


# ---------------------------------------------------------------------------
# Dependencies.
# ---------------------------------------------------------------------------


def get_store(request: Request) -> CreatureDB:
    return request.app.state.store


def get_gallery(request: Request) -> GalleryCache:
    return request.app.state.gallery


def get_generator(request: Request) -> CreatureGenerator:
    return request.app.state.generator


def get_image_storage(request: Request) -> ImageStorage:
    return request.app.state.image_storage


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = error.get("loc", ())
        if loc[:1] == ("path",):
            return "Invalid id"
        parts.append(f"{'.'.join(str(p) for p in loc[1:]) or 'body'}: {error.get('msg')}")
    return "; ".join(parts) or "Invalid request"


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    settings: AimonConfig | None = None,
    *,
    store: CreatureDB | None = None,
    cache: CacheBackend | None = None,
    generator: CreatureGenerator | None = None,
    image_storage: ImageStorage | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Configuration; defaults to the global ``config``.
        store: Pre-built creature store.
        cache: Pre-built cache backend for the gallery listing.
        generator: Pre-built creature generator.
        image_storage: Pre-built image storage.

    Returns:
        A configured application.  Collaborators left as ``None`` are
        created by the lifespan on startup.
    """
    settings = settings or config

    app = FastAPI(
        title="AImon",
        description="Doodle-to-creature generation with a cached gallery.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = settings
    app.state.store = store
    app.state.cache = cache
    app.state.generator = generator
    app.state.image_storage = image_storage
    app.state.gallery = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed requests as 400 rather than FastAPI's default 422."""
        return JSONResponse(status_code=400, content={"detail": _validation_message(exc)})

    # -----------------------------------------------------------------------
    # Routes.
    # -----------------------------------------------------------------------

    @app.get("/api/health")
    async def health() -> dict:
        """Liveness probe."""
        return {"ok": True}

    @app.get("/api/gallery", response_model=list[Creature])
    async def list_gallery(gallery: GalleryCache = Depends(get_gallery)) -> list[dict]:
        """Return every creature, newest first, through the read-through cache.

        Raises:
            HTTPException: 500 if neither the cache nor the store can answer.
        """
        try:
            return await gallery.list_gallery()
        except Exception:
            logger.exception("Failed to fetch gallery")
            raise HTTPException(status_code=500, detail="Failed to fetch gallery")

    @app.post("/api/generate", response_model=Creature)
    async def generate_creature(
        req: GenerateRequest,
        store: CreatureDB = Depends(get_store),
        gallery: GalleryCache = Depends(get_gallery),
        generator: CreatureGenerator = Depends(get_generator),
        image_storage: ImageStorage = Depends(get_image_storage),
    ) -> dict:
        """Generate a creature from a doodle and store it.

        This endpoint:

        1. Redraws the doodle as a creature image and saves it.
        2. Generates metadata using that image as reference.
        3. Normalises the metadata and inserts the record.
        4. Prepends the record to the cached gallery, if warm.

        Raises:
            HTTPException: 400 if ``doodle_data`` is missing or not base64,
                500 if generation or storage fails.
        """
        if not req.doodle_data:
            raise HTTPException(status_code=400, detail="doodle_data (base64) is required")
        try:
            base64.b64decode(strip_data_url(req.doodle_data), validate=True)
        except binascii.Error:
            raise HTTPException(status_code=400, detail="doodle_data (base64) is required")

        try:
            image_b64 = await generator.generate_image_from_doodle(
                req.doodle_data, req.gemini_api_key
            )
            image_url = image_storage.save_base64_image(image_b64, "aimon")

            meta = await generator.generate_metadata(
                METADATA_PROMPT,
                base_image_b64=image_b64,
                api_key=req.gemini_api_key,
            )
            saved = store.insert(build_creature(meta, image_url, req.doodle_data))
        except Exception:
            logger.exception("Failed to generate creature")
            raise HTTPException(status_code=500, detail="Failed to generate")

        await gallery.prepend(saved)
        return saved

    @app.patch("/api/aimon/{aimon_id}/like", response_model=Creature)
    async def like_creature(
        aimon_id: int,
        store: CreatureDB = Depends(get_store),
        gallery: GalleryCache = Depends(get_gallery),
    ) -> dict:
        """Increment a creature's like count.

        Raises:
            HTTPException: 404 for an unknown id, 500 if the store fails.
        """
        try:
            updated = store.like(aimon_id)
        except Exception:
            logger.exception(f"Failed to like AImon #{aimon_id}")
            raise HTTPException(status_code=500, detail="Failed to like")

        if updated is None:
            raise HTTPException(status_code=404, detail="Not found")

        await gallery.replace(updated)
        return updated

    @app.post("/api/aimon/{aimon_id}/action-image", response_model=ActionImageResponse)
    async def action_image(
        aimon_id: int,
        req: ActionImageRequest,
        store: CreatureDB = Depends(get_store),
        gallery: GalleryCache = Depends(get_gallery),
        generator: CreatureGenerator = Depends(get_generator),
        image_storage: ImageStorage = Depends(get_image_storage),
    ) -> dict[str, Any]:
        """Return (or generate) the image of a creature using one power.

        A stored image is returned with ``cached: true`` unless ``force`` is
        set.  A freshly generated image is attached to the record and the
        gallery cache is patched in place.

        Raises:
            HTTPException: 400 without a power name, 404 for an unknown id,
                500 if generation or storage fails.
        """
        power_name = req.power_name
        if not power_name:
            raise HTTPException(status_code=400, detail="power (name) required")

        try:
            creature = store.get_by_id(aimon_id)
        except Exception:
            logger.exception(f"Failed to load AImon #{aimon_id}")
            raise HTTPException(status_code=500, detail="Failed to generate action image")

        if creature is None:
            raise HTTPException(status_code=404, detail="Not found")

        existing = creature["action_images"].get(power_name)
        if existing and not req.force:
            return {"image_url": existing, "cached": True}

        try:
            reference = image_storage.load_reference(creature.get("image_url") or "")
            image_b64 = await generator.generate_action_image(
                creature,
                {"name": power_name, "description": req.power_description},
                reference_image=reference,
                api_key=req.gemini_api_key,
            )
            action_url = image_storage.save_base64_image(image_b64, "action")
            updated = store.set_action_image(aimon_id, power_name, action_url)
        except Exception:
            logger.exception(f"Failed to generate action image for AImon #{aimon_id}")
            raise HTTPException(status_code=500, detail="Failed to generate action image")

        if updated is not None:
            await gallery.replace(updated)
        return {"image_url": action_url, "cached": False}

    # -----------------------------------------------------------------------
    # Static files and single-page app fallback.  Registered last so the API
    # routes above always win.
    # -----------------------------------------------------------------------

    app.mount(
        "/images",
        StaticFiles(directory=str(settings.images_dir), check_dir=False),
        name="images",
    )

    @app.get("/{full_path:path}", include_in_schema=False)
    async def spa_fallback(full_path: str) -> FileResponse:
        """Serve frontend files, falling back to ``index.html`` for app routes.

        Raises:
            HTTPException: 404 for unknown API paths and missing files.
        """
        static_root = settings.static_dir.resolve()

        if full_path.startswith("api/") or full_path == "api":
            raise HTTPException(status_code=404, detail="Not found")

        if "." in full_path:
            candidate = (static_root / full_path).resolve()
            if candidate.is_relative_to(static_root) and candidate.is_file():
                return FileResponse(candidate)
            raise HTTPException(status_code=404, detail="Not found")

        index_path = static_root / "index.html"
        if index_path.is_file():
            return FileResponse(index_path)
        raise HTTPException(status_code=404, detail="index.html not found")

    return app


# ---------------------------------------------------------------------------
# Default application instance (``uvicorn aimon.api.main:app``).
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~aimon.core.config.config`
    (``AIMON_SERVER_HOST``, ``AIMON_SERVER_PORT``, ``AIMON_LOG_LEVEL``).
    Defaults to ``0.0.0.0:3001``.

    This function is registered as the ``aimon`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "aimon.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()

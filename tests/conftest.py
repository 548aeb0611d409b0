"""Shared pytest fixtures for AImon tests."""

import base64
import io
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from aimon.api.main import create_app
from aimon.core.cache import MemoryCache
from aimon.core.config import AimonConfig
from aimon.core.creature_db import CreatureDB
from aimon.core.image_storage import ImageStorage


def make_png_b64(color: str = "red", size: tuple[int, int] = (8, 8)) -> str:
    """Return a tiny PNG encoded as base64."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGenerator:
    """Stand-in for CreatureGenerator that never calls Gemini."""

    def __init__(self, meta: dict | None = None):
        self.meta = meta if meta is not None else {
            "name": "Inky",
            "type": ["Water", "Dark", "Fairy"],
            "powers": [
                {"name": "Ink Wave", "description": "The creature floods the arena with ink."},
                {"name": "Blot", "description": "Leaves a blot on the foe."},
            ],
            "characteristics": "Shy but loyal.",
        }
        self.fail = False
        self.doodle_calls = 0
        self.action_calls: list[dict] = []

    async def generate_image_from_doodle(self, doodle_b64, api_key=None):
        self.doodle_calls += 1
        if self.fail:
            raise RuntimeError("provider down")
        return make_png_b64("blue")

    async def generate_metadata(self, prompt, base_image_b64=None, api_key=None):
        return dict(self.meta)

    async def generate_action_image(self, creature, power, reference_image=None, api_key=None):
        if self.fail:
            raise RuntimeError("provider down")
        self.action_calls.append(
            {"creature": creature, "power": power, "reference_image": reference_image}
        )
        return make_png_b64("green")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> AimonConfig:
    """Create a test configuration with temporary directories."""
    return AimonConfig(
        _env_file=None,
        database_path=temp_dir / "data" / "aimon.db",
        static_dir=temp_dir / "public",
        images_dir=temp_dir / "public" / "images",
        cache_backend="memory",
        gemini_api_key=None,
    )


@pytest.fixture
def store(test_config: AimonConfig) -> CreatureDB:
    return CreatureDB(test_config.database_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(clock: FakeClock) -> MemoryCache:
    return MemoryCache(timer=clock)


@pytest.fixture
def image_storage(test_config: AimonConfig) -> ImageStorage:
    return ImageStorage(test_config.images_dir)


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def doodle_b64() -> str:
    return make_png_b64("black", (16, 16))


@pytest.fixture
def sample_creature() -> dict:
    """A creature record ready for CreatureDB.insert."""
    return {
        "name": "Sketchy",
        "type": "Normal",
        "powers": [{"name": "Ink Splash", "description": "Sketchy splashes ink playfully."}],
        "characteristics": "Cheerful and imaginative.",
        "image_url": "/images/aimon-1-abc.png",
        "doodle_source": "iVBORw0...",
    }


@pytest.fixture
def test_app(test_config, store, memory_cache, fake_generator, image_storage):
    """Application wired to temporary storage, an in-memory cache and a fake generator."""
    return create_app(
        test_config,
        store=store,
        cache=memory_cache,
        generator=fake_generator,
        image_storage=image_storage,
    )


@pytest.fixture
def test_client(test_app) -> Generator[TestClient, None, None]:
    """TestClient with the application lifespan running."""
    with TestClient(test_app) as client:
        yield client


@pytest.fixture
def png_b64():
    """Factory building small base64 PNGs: ``png_b64("red")``."""
    return make_png_b64

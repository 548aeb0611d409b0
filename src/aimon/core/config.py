"""Configuration management for the AImon backend.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the AIMON_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (AIMON_* prefix)
2. .env file in the project root
3. Default values defined in AimonConfig

Example .env file:
    AIMON_GEMINI_API_KEY=your-key
    AIMON_DATABASE_PATH=data/aimon.db
    AIMON_CACHE_BACKEND=redis
    AIMON_REDIS_URL=redis://localhost:6379/0

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time and
is used by the ``aimon`` CLI entry point.  Request handlers never read it
directly: :func:`aimon.api.main.create_app` receives a configuration object
and everything downstream is built from that, so tests can pass their own.

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- static_dir: Frontend build served by the SPA fallback
- images_dir: Generated creature and action images
- the parent directory of database_path
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AimonConfig(BaseSettings):
    """Main configuration for the AImon backend.

    Attributes
    ----------
    Storage:
        database_path : Path
            SQLite database file holding the ``generated_aimon`` table
        static_dir : Path
            Directory served for the single-page frontend
        images_dir : Path
            Directory where generated images are written (served at /images)

    Gallery cache:
        cache_backend : Literal["memory", "redis"]
            Which expiring key/value store backs the gallery cache
        redis_url : str
            Connection URL used when cache_backend is "redis"
        gallery_cache_key : str
            Key of the single gallery listing entry
        gallery_cache_ttl : int
            Time-to-live of the gallery entry in seconds

    Generation:
        gemini_api_key : str | None
            Default Gemini key; requests may supply their own
        gemini_image_model : str
            Model used for doodle and action images
        gemini_text_model : str
            Model used for structured creature metadata

    Server:
        server_host, server_port, cors_origin, log_level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="AIMON_",
        case_sensitive=False,
    )

    # Storage
    database_path: Path = Field(
        default=Path("data/aimon.db"),
        description="SQLite database file for generated creatures",
    )
    static_dir: Path = Field(
        default=Path("public"),
        description="Directory holding the built frontend (index.html)",
    )
    images_dir: Path = Field(
        default=Path("public/images"),
        description="Directory where generated images are saved",
    )

    # Gallery cache
    cache_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Backend for the gallery cache (memory or redis)",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (cache_backend=redis only)",
    )
    gallery_cache_key: str = Field(
        default="gallery:all",
        min_length=1,
        description="Cache key holding the full gallery listing",
    )
    gallery_cache_ttl: int = Field(
        default=300,
        ge=1,
        description="Gallery cache time-to-live in seconds",
    )

    # Generation
    gemini_api_key: str | None = Field(
        default=None,
        description="Default Gemini API key (requests may override it)",
    )
    gemini_image_model: str = Field(
        default="gemini-2.5-flash-image",
        description="Gemini model used for image generation",
    )
    gemini_text_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used for creature metadata",
    )

    # Server
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=3001,
        description="Server port",
        ge=1024,
        le=65535,
    )
    cors_origin: str = Field(
        default="*",
        description="Allowed CORS origin",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root logging level used by the CLI entry point",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.static_dir.mkdir(parents=True, exist_ok=True)
        self.images_dir.mkdir(parents=True, exist_ok=True)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance, read by the CLI entry point.
config = AimonConfig()

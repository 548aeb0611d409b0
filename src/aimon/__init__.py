"""AImon - turn hand-drawn doodles into battle creatures with Gemini."""

__version__ = "0.1.0"

from aimon.core.config import AimonConfig, config

__all__ = [
    "AimonConfig",
    "config",
]

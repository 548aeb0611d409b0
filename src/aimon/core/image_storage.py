"""Persist base64 images as PNG files under the images directory."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import secrets
import time
from pathlib import Path

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

URL_PREFIX = "/images/"


def strip_data_url(data: str) -> str:
    """Return the base64 payload of ``data``, dropping a ``data:...;base64,`` header."""
    if data.startswith("data:") and "," in data:
        return data.split(",", 1)[1]
    return data


def data_url_mime_type(data: str, default: str = "image/png") -> str:
    """Return the MIME type declared by a ``data:<type>;base64,`` header, else ``default``."""
    if data.startswith("data:") and "," in data:
        mime_type = data[len("data:") :].split(",", 1)[0].split(";", 1)[0]
        if mime_type:
            return mime_type
    return default


class ImageStorage:
    """Write decoded images to disk and hand back stable ``/images/...`` paths.

    Args:
        images_dir: Directory served at ``/images``.
    """

    def __init__(self, images_dir: Path):
        self.images_dir = Path(images_dir)
        self.images_dir.mkdir(parents=True, exist_ok=True)

    def save_base64_image(self, image_b64: str, prefix: str) -> str:
        """Decode a base64 image, save it as PNG and return its URL path.

        The bytes are opened with Pillow before anything is written, so a
        corrupt payload never leaves a file behind.

        Args:
            image_b64: Raw base64 or a ``data:`` URL.
            prefix: Filename prefix (``aimon`` or ``action``).

        Returns:
            Path such as ``/images/aimon-1700000000000-3f9a1c.png``.

        Raises:
            ValueError: If the payload is not valid base64 image data.
        """
        try:
            raw = base64.b64decode(strip_data_url(image_b64), validate=True)
            image = Image.open(io.BytesIO(raw))
            image.load()
        except (binascii.Error, UnidentifiedImageError, OSError) as e:
            raise ValueError(f"Invalid image data: {e}") from e

        filename = f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3)}.png"
        image.save(self.images_dir / filename, format="PNG")
        logger.info(f"Saved image {filename}")
        return f"{URL_PREFIX}{filename}"

    def resolve(self, image_url: str) -> Path | None:
        """Map an ``/images/...`` URL path back to a file inside images_dir."""
        if not image_url.startswith(URL_PREFIX):
            return None
        candidate = (self.images_dir / image_url[len(URL_PREFIX) :]).resolve()
        if candidate.parent != self.images_dir.resolve():
            return None
        return candidate

    def load_reference(self, image_url: str) -> bytes | None:
        """Return the bytes behind a stored image reference, if available.

        Accepts ``/images/...`` paths written by :meth:`save_base64_image` and
        inline ``data:`` URLs.  Anything else yields None.
        """
        if image_url.startswith("data:"):
            try:
                return base64.b64decode(strip_data_url(image_url))
            except binascii.Error:
                logger.warning("Stored image is an undecodable data URL")
                return None

        path = self.resolve(image_url)
        if path is None or not path.exists():
            logger.warning(f"Reference image not found: {image_url}")
            return None
        return path.read_bytes()

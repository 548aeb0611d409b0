"""Creature generation with Gemini.

Three calls are made against the Gemini API through ``google-genai``:

1. **Doodle to creature**: the image model redraws the user's doodle as a
   polished creature illustration.
2. **Metadata**: the text model looks at that illustration and answers with
   JSON (name, types, powers, characteristics).
3. **Action image**: the image model draws an existing creature using one of
   its powers, with the stored creature image as reference.

Every call accepts an optional per-request API key, falling back to the
configured ``AIMON_GEMINI_API_KEY``.  No retries are attempted; failures
propagate to the route handler.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

from google import genai
from google.genai import types

from aimon.core.config import AimonConfig
from aimon.core.creature_builder import ALLOWED_TYPES
from aimon.core.image_storage import data_url_mime_type, strip_data_url

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """Raised when the provider cannot be called or returns nothing usable."""


METADATA_INSTRUCTIONS = f"""You are naming and describing a battle creature.
Respond with JSON only, using this shape:
{{
  "name": "short original name",
  "type": ["one or two of: {', '.join(ALLOWED_TYPES)}"],
  "powers": [{{"name": "power name", "description": "one sentence"}}],
  "characteristics": "two sentences about personality and habitat"
}}
Give exactly two powers and always refer to the creature by its name."""

DOODLE_PROMPT = (
    "Turn this hand-drawn doodle into an original, cute battle creature. "
    "Keep the doodle's silhouette, colours and spirit. Full body, centered, "
    "clean white background, vibrant cel-shaded illustration. No text."
)


def _action_prompt(creature: dict[str, Any], power: dict[str, str | None]) -> str:
    description = power.get("description") or ""
    return (
        f"Draw {creature.get('name')} ({creature.get('type')} type) using the power "
        f"\"{power['name']}\". {description}\n"
        f"Personality: {creature.get('characteristics') or ''}\n"
        "Keep the exact same character design as the reference image. Dynamic "
        "action pose, energy effects, vibrant cel-shaded illustration. No text."
    )


class CreatureGenerator:
    """Gemini-backed creature image and metadata generator.

    Args:
        config: Application configuration (models and default API key).
        client: Pre-built ``genai.Client`` used for every call regardless of
            per-request keys.  Intended for tests.
    """

    def __init__(self, config: AimonConfig, client: genai.Client | None = None):
        self.image_model = config.gemini_image_model
        self.text_model = config.gemini_text_model
        self.default_api_key = config.gemini_api_key
        self._client = client
        self._default_client: genai.Client | None = None

    def _client_for(self, api_key: str | None) -> genai.Client:
        """Injected client, else a per-request client, else the shared default one."""
        if self._client is not None:
            return self._client
        if api_key and api_key != self.default_api_key:
            return genai.Client(api_key=api_key)
        if not self.default_api_key:
            raise GenerationError(
                "No Gemini API key. Pass gemini_api_key or set AIMON_GEMINI_API_KEY."
            )
        if self._default_client is None:
            self._default_client = genai.Client(api_key=self.default_api_key)
        return self._default_client

    @staticmethod
    def _first_image_b64(response) -> str:
        for part in response.parts or []:
            if getattr(part, "inline_data", None) is not None and part.inline_data.data:
                return base64.b64encode(part.inline_data.data).decode("ascii")
            if getattr(part, "text", None):
                logger.debug(f"Model commentary: {part.text}")
        raise GenerationError("Gemini returned no image")

    async def generate_image_from_doodle(self, doodle_b64: str, api_key: str | None = None) -> str:
        """Redraw a doodle as a creature; returns base64 PNG data."""
        client = self._client_for(api_key)
        doodle = base64.b64decode(strip_data_url(doodle_b64))

        logger.info(f"Generating creature image with {self.image_model}")
        response = await client.aio.models.generate_content(
            model=self.image_model,
            contents=[
                types.Part.from_bytes(data=doodle, mime_type=data_url_mime_type(doodle_b64)),
                DOODLE_PROMPT,
            ],
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )
        return self._first_image_b64(response)

    async def generate_metadata(
        self,
        prompt: str,
        base_image_b64: str | None = None,
        api_key: str | None = None,
    ) -> dict[str, Any]:
        """Ask the text model for creature metadata as JSON.

        Returns:
            Parsed JSON object.  A reply that is not a JSON object yields an
            empty dict so the builder defaults apply.
        """
        client = self._client_for(api_key)

        contents: list = []
        if base_image_b64:
            contents.append(
                types.Part.from_bytes(
                    data=base64.b64decode(strip_data_url(base_image_b64)),
                    mime_type=data_url_mime_type(base_image_b64),
                )
            )
        contents.append(f"{METADATA_INSTRUCTIONS}\n\n{prompt}")

        logger.info(f"Generating creature metadata with {self.text_model}")
        response = await client.aio.models.generate_content(
            model=self.text_model,
            contents=contents,
            config=types.GenerateContentConfig(response_mime_type="application/json"),
        )

        try:
            meta = json.loads(response.text or "")
        except json.JSONDecodeError:
            logger.warning(f"Unparseable metadata response: {response.text!r}")
            return {}
        return meta if isinstance(meta, dict) else {}

    async def generate_action_image(
        self,
        creature: dict[str, Any],
        power: dict[str, str | None],
        reference_image: bytes | None = None,
        api_key: str | None = None,
    ) -> str:
        """Draw ``creature`` performing ``power``; returns base64 PNG data."""
        client = self._client_for(api_key)

        contents: list = []
        if reference_image:
            contents.append(types.Part.from_bytes(data=reference_image, mime_type="image/png"))
        else:
            logger.warning(f"No reference image for creature #{creature.get('id')}")
        contents.append(_action_prompt(creature, power))

        logger.info(f"Generating action image '{power['name']}' for #{creature.get('id')}")
        response = await client.aio.models.generate_content(
            model=self.image_model,
            contents=contents,
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )
        return self._first_image_b64(response)

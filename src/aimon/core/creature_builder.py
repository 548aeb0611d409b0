"""Turn raw Gemini metadata into a storable creature record.

The model's JSON is treated as untrusted: every field has a fallback so a
partial or malformed answer still produces a complete record.

Power descriptions are rewritten to mention the creature by name.  Generic
references ("the creature", "the character", "the user") are replaced with
the name, and descriptions that still do not mention it get the name
prefixed, e.g. ``"Blots the arena."`` -> ``"Inky blots the arena."``.
"""

from __future__ import annotations

import re
from typing import Any

DEFAULT_NAME = "Sketchy"
DEFAULT_TYPE = "Normal"
DEFAULT_CHARACTERISTICS = "Cheerful and imaginative."
DEFAULT_POWERS: list[dict[str, str]] = [
    {"name": "Ink Splash", "description": "Splashes ink playfully."},
    {"name": "Doodle Dash", "description": "Dashes leaving doodle lines."},
]

# Allowed creature categories offered to the metadata model.
ALLOWED_TYPES = (
    "Normal",
    "Fire",
    "Water",
    "Grass",
    "Electric",
    "Ice",
    "Fighting",
    "Poison",
    "Ground",
    "Flying",
    "Psychic",
    "Bug",
    "Rock",
    "Ghost",
    "Dragon",
    "Dark",
    "Steel",
    "Fairy",
)

DOODLE_SOURCE_LENGTH = 60

_GENERIC_SUBJECT = re.compile(r"\b(the user|the creature|the character)\b", re.IGNORECASE)


def normalize_powers(raw_powers: Any) -> list[dict[str, str]]:
    """Keep only ``name``/``description`` of each power, or use the defaults."""
    if not isinstance(raw_powers, list):
        return [dict(p) for p in DEFAULT_POWERS]

    powers = []
    for power in raw_powers:
        if not isinstance(power, dict):
            continue
        powers.append(
            {
                "name": str(power.get("name") or ""),
                "description": str(power.get("description") or ""),
            }
        )
    return powers


def personalize_description(description: str, name: str) -> str:
    """Make a power description refer to the creature by ``name``."""
    replaced = _GENERIC_SUBJECT.sub(lambda _m: name, description)
    if re.search(rf"\b{re.escape(name)}\b", replaced, re.IGNORECASE):
        return replaced

    trimmed = replaced.strip()
    lowered = trimmed[:1].lower() + trimmed[1:]
    return f"{name} {lowered}"


def resolve_type(raw_type: Any) -> str:
    """Join up to two categories with ``/``; strings pass through."""
    if isinstance(raw_type, list) and raw_type:
        return "/".join(str(t) for t in raw_type[:2])
    if isinstance(raw_type, str):
        return raw_type
    return DEFAULT_TYPE


def doodle_provenance(doodle_data: str) -> str:
    """Short prefix of the original doodle kept for provenance only."""
    return f"{(doodle_data or '')[:DOODLE_SOURCE_LENGTH]}..."


def build_creature(meta: Any, image_url: str, doodle_data: str) -> dict[str, Any]:
    """Assemble a creature record (without id) from generated metadata.

    Args:
        meta: Parsed metadata from the model; anything that is not a dict is
            treated as empty.
        image_url: Stored image reference of the base creature image.
        doodle_data: Original base64 doodle.

    Returns:
        Record ready for :meth:`aimon.core.creature_db.CreatureDB.insert`.
    """
    if not isinstance(meta, dict):
        meta = {}

    name = str(meta.get("name") or DEFAULT_NAME)
    characteristics = meta.get("characteristics")
    if not isinstance(characteristics, str) or not characteristics:
        characteristics = DEFAULT_CHARACTERISTICS
    powers = [
        {**power, "description": personalize_description(power["description"], name)}
        for power in normalize_powers(meta.get("powers"))
    ]

    return {
        "name": name,
        "type": resolve_type(meta.get("type")),
        "powers": powers,
        "characteristics": characteristics,
        "image_url": image_url,
        "doodle_source": doodle_provenance(doodle_data),
    }

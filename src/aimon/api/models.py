"""Pydantic request and response models for the AImon API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation, serialisation, and OpenAPI
documentation generation.

Models
------
GenerateRequest
    Payload for ``POST /api/generate``: the base64 doodle and an optional
    Gemini key.
PowerRef
    A power named by an action-image request, with an optional description.
ActionImageRequest
    Payload for ``POST /api/aimon/{id}/action-image``.
Power, Creature
    Stored creature records as returned by the gallery, generate and like
    endpoints.
ActionImageResponse
    Result of ``POST /api/aimon/{id}/action-image``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class GenerateRequest(BaseModel):
    """Request body for the ``POST /api/generate`` endpoint.

    ``doodle_data`` is optional at the schema level so that a missing value
    is reported by the handler with a specific 400 message.

    Attributes:
        doodle_data: Base64 PNG of the doodle (raw or ``data:`` URL).
        gemini_api_key: Per-request Gemini key overriding the server default.
    """

    doodle_data: str | None = Field(
        default=None,
        description="Base64-encoded doodle image (required).",
    )
    gemini_api_key: str | None = Field(
        default=None,
        description="Optional Gemini API key for this request.",
    )


class PowerRef(BaseModel):
    """A power named in an action-image request."""

    name: str | None = None
    description: str | None = None


class ActionImageRequest(BaseModel):
    """Request body for the ``POST /api/aimon/{id}/action-image`` endpoint.

    Attributes:
        power: Either the power name or an object with ``name`` and an
            optional ``description``.
        force: Regenerate even when an image for this power already exists.
        gemini_api_key: Per-request Gemini key overriding the server default.
    """

    power: str | PowerRef | None = Field(
        default=None,
        description="Power name, or {name, description}.",
    )
    force: bool = Field(
        default=False,
        description="Regenerate even if an action image is already stored.",
    )
    gemini_api_key: str | None = Field(
        default=None,
        description="Optional Gemini API key for this request.",
    )

    @property
    def power_name(self) -> str | None:
        if isinstance(self.power, str):
            return self.power
        return self.power.name if self.power else None

    @property
    def power_description(self) -> str | None:
        if isinstance(self.power, PowerRef):
            return self.power.description
        return None


class Power(BaseModel):
    """One named power of a creature."""

    name: str
    description: str


class Creature(BaseModel):
    """A stored creature record."""

    id: int
    name: str
    type: str | None = None
    powers: list[Power] = Field(default_factory=list)
    characteristics: str | None = None
    image_url: str | None = None
    doodle_source: str | None = None
    like_count: int = Field(default=0, ge=0)
    action_images: dict[str, str] = Field(default_factory=dict)


class ActionImageResponse(BaseModel):
    """Response of the action-image endpoint."""

    image_url: str
    cached: bool

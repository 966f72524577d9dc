"""API request and response schemas using Pydantic."""

from __future__ import annotations

from pydantic import BaseModel, Field

from imagelingo.schemas import Generation, GenerationStatus, GenerationType


class GenerationCreate(BaseModel):
    """Request body for queueing a new generation."""

    project_id: str | None = None
    type: GenerationType = GenerationType.TRANSLATION
    prompt: str | None = None
    input_image_id: str | None = None
    source_language: str | None = None
    target_language: str | None = None


class GenerationPatch(BaseModel):
    """Fields the AI worker may set while a generation runs."""

    status: GenerationStatus | None = None
    output_text: str | None = None
    output_image_id: str | None = None
    error_message: str | None = None
    model_used: str | None = None
    tokens_used: int | None = Field(default=None, ge=0)
    processing_ms: int | None = Field(default=None, ge=0)


class GenerationEnvelope(BaseModel):
    """Single-generation response wrapper."""

    generation: Generation

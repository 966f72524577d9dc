"""Pydantic models and enums describing generation records and events."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class GenerationStatus(str, Enum):
    """Lifecycle of one generation: pending -> processing -> terminal."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.COMPLETED, GenerationStatus.FAILED)


class GenerationType(str, Enum):
    """Kind of AI work a generation represents."""

    TEXT_EXTRACTION = "text_extraction"
    TRANSLATION = "translation"
    IMAGE_GENERATION = "image_generation"
    IMAGE_EDIT = "image_edit"


class Generation(BaseModel):
    """A generation record as returned by the API or pushed by the feed.

    The core only observes these; the external producer owns the transitions.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    project_id: str | None = None
    user_id: str | None = None
    type: GenerationType = GenerationType.TRANSLATION
    status: GenerationStatus = GenerationStatus.PENDING
    prompt: str | None = None
    input_image_id: str | None = None
    output_image_id: str | None = None
    output_text: str | None = None
    source_language: str | None = None
    target_language: str | None = None
    error_message: str | None = None
    model_used: str | None = None
    tokens_used: int | None = None
    processing_ms: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GenerationResult(BaseModel):
    """Response of the status-fetch interface: the record plus resolved URLs."""

    generation: Generation
    input_url: str | None = None
    output_url: str | None = None


class GenerationUpdateEvent(BaseModel):
    """Push-channel payload; `new` holds the record after the change."""

    new: Generation
    event_id: int | None = Field(default=None, description="Monotonic per feed")

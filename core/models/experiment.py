# =============================================================================
# core/models/experiment.py - Experiment Schemas
# =============================================================================
# An experiment A/B/C-tests thumbnails for one published video:
# - ExperimentCreate / ExperimentUpdate: CRUD payloads
# - VariantGenerateRequest: input for generating the three variants
# - VariantUpdate: manual edits to a single variant
# =============================================================================

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from .subscription import Resolution


class ExperimentStatus(str, Enum):
    """
    Experiment lifecycle.

    Flow: draft -> ready_for_studio -> running -> needs_import -> completed
    """
    DRAFT = "draft"
    READY_FOR_STUDIO = "ready_for_studio"
    RUNNING = "running"
    NEEDS_IMPORT = "needs_import"
    COMPLETED = "completed"


class VariantLabel(str, Enum):
    """Variant slots within an experiment."""
    A = "A"
    B = "B"
    C = "C"


class ExperimentCreate(BaseModel):
    """
    Schema for creating an experiment.

    Example:
        {"video_id": "dQw4w9WgXcQ", "channel_id": "UC...", "notes": "Face vs no face"}
    """
    video_id: str = Field(..., min_length=1, max_length=64)
    channel_id: str = Field(..., min_length=1, max_length=64)
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("video_id", "channel_id")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ExperimentUpdate(BaseModel):
    """Fields a user may change on an experiment; at least one is required."""
    status: ExperimentStatus | None = None
    notes: str | None = Field(default=None, max_length=2000)
    started_at: datetime | None = None
    ended_at: datetime | None = None


class VariantGenerateRequest(BaseModel):
    """
    Input for generating the A/B/C variants of an experiment.

    Description and tags from the video are folded into the prompt context.
    """
    title: str = Field(..., min_length=1, max_length=300)
    description: str | None = Field(default=None, max_length=5000)
    tags: list[str] = Field(default_factory=list, max_length=50)
    style: str | None = None
    palette: str | None = None
    emotion: str | None = None
    pose: str | None = None
    resolution: Resolution = Resolution.R1K
    aspect_ratio: str = "16:9"
    custom_style: str | None = Field(default=None, max_length=2000)
    thumbnail_text: str | None = Field(default=None, max_length=300)
    face_image_urls: list[str] = Field(default_factory=list, max_length=8)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title is required")
        return value


class VariantUpdate(BaseModel):
    """Manual edits to one variant, addressed by label."""
    label: VariantLabel
    title_text: str | None = Field(default=None, max_length=300)
    thumbnail_asset_url: str | None = None
    thumbnail_id: str | None = None

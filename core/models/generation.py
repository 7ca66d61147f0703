# =============================================================================
# core/models/generation.py - Thumbnail Generation Schemas
# =============================================================================
# Request/response contract for POST /generate.
# =============================================================================

from pydantic import BaseModel, Field, field_validator

from .subscription import Resolution


class GenerateRequest(BaseModel):
    """
    Schema for generating one or more thumbnail variations.

    Example:
        {
            "title": "I built a house in 24 hours: the results",
            "variations": 2,
            "style": "bold-gaming",
            "emotion": "surprised",
            "aspect_ratio": "16:9",
            "resolution": "1K"
        }
    """

    title: str = Field(
        ...,
        min_length=1,
        max_length=300,
        description="Video title rendered into the thumbnail"
    )

    variations: int = Field(
        default=1,
        ge=1,
        le=4,
        description="Number of variations to generate (1-4)"
    )

    style: str | None = Field(default=None, description="Style id or name")
    palette: str | None = Field(default=None, description="Palette id or name")
    emotion: str | None = Field(default=None, description="Emotional tone of the subject")
    pose: str | None = Field(default=None, description="Subject pose")
    aspect_ratio: str = Field(default="16:9", description="Output aspect ratio")
    resolution: Resolution = Field(default=Resolution.R1K, description="Output resolution")
    custom_style: str | None = Field(
        default=None,
        max_length=2000,
        description="Free-form style notes appended to the prompt"
    )
    thumbnail_text: str | None = Field(default=None, max_length=300)
    face_image_urls: list[str] = Field(default_factory=list, max_length=8)
    project_id: str | None = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title is required")
        return value

    @property
    def has_custom_assets(self) -> bool:
        """Custom styles, palettes and face references need a paid tier."""
        return bool(self.style or self.palette or self.face_image_urls)


class VariationResult(BaseModel):
    """Outcome of one generated variation."""
    success: bool
    thumbnail_id: str | None = None
    image_url: str | None = None
    error: str | None = None


class GenerateResponse(BaseModel):
    """
    Response for POST /generate.

    `image_url` and `thumbnail_id` point at the first successful variation.
    """
    image_url: str | None = None
    thumbnail_id: str | None = None
    results: list[VariationResult]
    credits_used: int
    credits_remaining: int
    total_requested: int
    total_succeeded: int
    total_failed: int

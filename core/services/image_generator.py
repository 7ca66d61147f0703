# =============================================================================
# core/services/image_generator.py - Thumbnail Image Generation
# =============================================================================
# Builds the structured prompt for a thumbnail and renders it with the
# OpenAI image API. Returns raw PNG bytes; storage and bookkeeping happen in
# GenerationService.
#
# Usage:
#   generator = ThumbnailImageGenerator()
#   png_bytes = generator.generate(prompt, aspect_ratio="16:9", resolution="1K")
# =============================================================================

import base64
import json
import logging
from typing import Any

from openai import OpenAI, OpenAIError

from app.config import settings
from app.exceptions import AIServiceError

logger = logging.getLogger(__name__)

# gpt-image-1 renders these three canvas sizes
SQUARE_SIZE = "1024x1024"
LANDSCAPE_SIZE = "1536x1024"
PORTRAIT_SIZE = "1024x1536"

QUALITY_BY_RESOLUTION = {
    "1K": "medium",
    "2K": "high",
    "4K": "high",
}

TITLE_INSTRUCTIONS = (
    "Use the title text EXACTLY as provided. The main_title should be prominent and the "
    "subtext (if provided) should be secondary/smaller. NO EXTRA TEXT. DO NOT CHANGE OR ADD TEXT."
)

QUALITY_NOTES = (
    "ultra high quality, professional YouTuber or movie-like thumbnail, eye-catching, "
    "high contrast, designed to maximize click-through rate"
)


def size_for_aspect_ratio(aspect_ratio: str) -> str:
    """Closest supported canvas for an aspect ratio like "16:9"."""
    try:
        width, height = (float(part) for part in aspect_ratio.split(":", 1))
    except ValueError:
        return LANDSCAPE_SIZE

    if width > height:
        return LANDSCAPE_SIZE
    if height > width:
        return PORTRAIT_SIZE
    return SQUARE_SIZE


def build_thumbnail_prompt(
    title: str,
    aspect_ratio: str,
    resolution: str,
    style_description: str | None = None,
    palette_name: str | None = None,
    emotion: str | None = None,
    pose: str | None = None,
    custom_style: str | None = None,
    face_reference_count: int = 0,
) -> str:
    """
    Build the JSON prompt sent to the image model.

    A title containing a colon is split into a main title and subtext.
    """
    main_title, _, subtext = title.strip().partition(":")

    prompt_data: dict[str, Any] = {
        "task": "thumbnail_generation",
        "title": {
            "main_title": main_title.strip(),
            "subtext": subtext.strip() or None,
            "instructions": TITLE_INSTRUCTIONS,
        },
        "style_requirements": {
            "style": style_description,
            "additional_notes": custom_style.strip() if custom_style else None,
            "color_palette": palette_name,
        },
        "characters": {
            "count": face_reference_count,
            "facial_references_provided": face_reference_count > 0,
            "emotional_tone": emotion,
            "pose": pose if pose and pose != "none" else None,
        },
        "technical_specs": {
            "aspect_ratio": aspect_ratio,
            "resolution": resolution,
            "quality": QUALITY_NOTES,
        },
    }
    return json.dumps(prompt_data, indent=2)


class ThumbnailImageGenerator:
    """
    Thin wrapper around the OpenAI image API.

    Example:
        generator = ThumbnailImageGenerator()
        image = generator.generate(prompt, "16:9", "2K")
    """

    def __init__(self, model: str | None = None, client: OpenAI | None = None):
        self.model = model or settings.OPENAI_IMAGE_MODEL
        self.client = client or OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.AI_REQUEST_TIMEOUT_SECONDS,
        )

    def generate(self, prompt: str, aspect_ratio: str, resolution: str) -> bytes:
        """
        Render one image.

        Returns:
            PNG bytes

        Raises:
            AIServiceError: If the provider call fails or returns no image
        """
        size = size_for_aspect_ratio(aspect_ratio)
        quality = QUALITY_BY_RESOLUTION.get(resolution, "medium")

        try:
            response = self.client.images.generate(
                model=self.model,
                prompt=prompt,
                size=size,
                quality=quality,
                n=1,
            )
        except OpenAIError as e:
            logger.error(f"Image generation failed ({self.model}, {size}): {e}")
            raise AIServiceError(error=str(e))

        if not response.data or not response.data[0].b64_json:
            raise AIServiceError(error="provider returned no image data")

        logger.debug(f"Generated image with {self.model} at {size}/{quality}")
        return base64.b64decode(response.data[0].b64_json)

# =============================================================================
# core/services/generation_service.py - Thumbnail Generation Business Logic
# =============================================================================
# Orchestrates one generation request:
# 1. Check tier limits and credit balance
# 2. Create one thumbnail row per variation
# 3. Render and upload each variation (failures are logged and skipped)
# 4. Charge credits for the variations that succeeded
#
# A request fails as a whole only when no variation could be produced.
# =============================================================================

import logging
import re
from typing import Any
from uuid import UUID, uuid4

from lib.supabase_client import SupabaseClient
from lib.utils import log_context, normalize_uuid
from core.models.generation import GenerateRequest, GenerateResponse, VariationResult
from core.models.notification import NotificationCreate, NotificationType, NotificationSeverity
from core.models.subscription import RESOLUTION_CREDITS, TierConfig
from core.services.image_generator import ThumbnailImageGenerator, build_thumbnail_prompt
from core.services.notification_service import NotificationService
from core.services.storage_service import StorageService, THUMBNAILS_BUCKET
from core.services.subscription_service import SubscriptionService
from app.exceptions import (
    AIServiceError,
    DatabaseError,
    InsufficientCreditsError,
    TierLimitError,
    ViewBaitException,
)

logger = logging.getLogger(__name__)

_UUID_PATTERN = re.compile(r"^[0-9a-fA-F-]{36}$")

FIRST_THUMBNAIL_MILESTONE = "first_thumbnail"

_image_generator: ThumbnailImageGenerator | None = None


def get_image_generator() -> ThumbnailImageGenerator:
    """Shared image generator, created on first use."""
    global _image_generator
    if _image_generator is None:
        _image_generator = ThumbnailImageGenerator()
    return _image_generator


class GenerationService:
    """
    Service for generating thumbnails.

    Used by POST /generate and by experiment variant generation.
    """

    @staticmethod
    def check_tier_limits(request: GenerateRequest, tier: TierConfig) -> None:
        """
        Validate the request against the user's tier.

        Raises:
            TierLimitError: If any requested option exceeds the tier
        """
        tier_name = tier.tier_name.value

        if request.variations > tier.max_variations:
            raise TierLimitError(
                f"Your plan allows up to {tier.max_variations} variation(s)",
                tier=tier_name,
                max_variations=tier.max_variations,
            )

        if request.has_custom_assets and not tier.can_create_custom:
            raise TierLimitError(
                "Custom styles, palettes, and face references require Starter or higher",
                tier=tier_name,
            )

        if request.resolution.value not in tier.allowed_resolutions:
            raise TierLimitError(
                f"Resolution {request.resolution.value} is not available on your plan",
                tier=tier_name,
                allowed_resolutions=tier.allowed_resolutions,
            )

        if request.aspect_ratio not in tier.allowed_aspect_ratios:
            raise TierLimitError(
                f"Aspect ratio {request.aspect_ratio} is not available on your plan",
                tier=tier_name,
                allowed_aspect_ratios=tier.allowed_aspect_ratios,
            )

    @staticmethod
    def _resolve_named(table: str, value: str | None, column: str) -> str | None:
        """
        Resolve a style/palette reference to its prompt text.

        Ids are looked up in `table`; anything else is used verbatim.
        """
        if not value or not _UUID_PATTERN.match(value):
            return value

        client = SupabaseClient.get_client()
        try:
            row = SupabaseClient.fetch_first(
                client.table(table).select(f"id, {column}").eq("id", value)
            )
        except Exception as e:
            logger.warning(f"Failed to look up {table} {value}: {e}")
            return None
        return (row or {}).get(column)

    @staticmethod
    def _create_thumbnail_rows(
        user_id: str,
        request: GenerateRequest,
        tier: TierConfig,
    ) -> list[str]:
        client = SupabaseClient.get_client()
        row = {
            "user_id": user_id,
            "title": request.title,
            "image_url": "",
            "style": request.style,
            "palette": request.palette,
            "emotion": request.emotion,
            "aspect_ratio": request.aspect_ratio,
            "resolution": request.resolution.value,
            "has_watermark": tier.has_watermark,
            "liked": False,
            "project_id": request.project_id,
        }

        try:
            response = client.table("thumbnails").insert([dict(row) for _ in range(request.variations)]).execute()
        except Exception as e:
            raise DatabaseError("create thumbnail records", str(e))

        ids = [created["id"] for created in response.data or []]
        if len(ids) != request.variations:
            raise DatabaseError("create thumbnail records", f"expected {request.variations} rows, got {len(ids)}")
        return ids

    @staticmethod
    def _render_variation(
        user_id: str,
        thumbnail_id: str,
        prompt: str,
        request: GenerateRequest,
    ) -> str:
        """Render, upload and sign one variation; returns its signed URL."""
        image = get_image_generator().generate(prompt, request.aspect_ratio, request.resolution.value)

        path = StorageService.thumbnail_path(user_id, thumbnail_id)
        StorageService.upload_image(THUMBNAILS_BUCKET, path, image)
        image_url = StorageService.create_signed_url(THUMBNAILS_BUCKET, path)

        client = SupabaseClient.get_client()
        try:
            client.table("thumbnails").update({"image_url": image_url}).eq("id", thumbnail_id).execute()
        except Exception as e:
            raise DatabaseError("save thumbnail URL", str(e))

        return image_url

    @staticmethod
    def _discard(thumbnail_ids: list[str], user_id: str, remove_files: bool = False) -> None:
        """Delete rows (and optionally files) for variations that will not be kept."""
        if not thumbnail_ids:
            return

        client = SupabaseClient.get_client()
        try:
            client.table("thumbnails").delete().in_("id", thumbnail_ids).eq("user_id", user_id).execute()
        except Exception as e:
            logger.error(f"Failed to delete thumbnail records {thumbnail_ids}: {e}")

        if remove_files:
            try:
                StorageService.remove(
                    THUMBNAILS_BUCKET,
                    [StorageService.thumbnail_path(user_id, tid) for tid in thumbnail_ids],
                )
            except ViewBaitException as e:
                logger.error(f"Failed to delete thumbnail files {thumbnail_ids}: {e.details}")

    @staticmethod
    def generate(user_id: str | UUID, request: GenerateRequest) -> GenerateResponse:
        """
        Generate thumbnails for a request.

        Args:
            user_id: The requesting user
            request: Validated generation request

        Returns:
            GenerateResponse with per-variation results and credit usage

        Raises:
            TierLimitError: Request exceeds the user's tier
            InsufficientCreditsError: Not enough credits for all variations
            AIServiceError: No variation could be generated
        """
        user_id = normalize_uuid(user_id)
        tier = SubscriptionService.get_tier_for_user(user_id)
        GenerationService.check_tier_limits(request, tier)

        cost_per_image = RESOLUTION_CREDITS[request.resolution.value]
        total_cost = cost_per_image * request.variations
        subscription = SubscriptionService.ensure_subscription(user_id)
        credits_remaining = subscription.get("credits_remaining") or 0
        if total_cost > credits_remaining:
            raise InsufficientCreditsError(credits_remaining, total_cost)

        thumbnail_ids = GenerationService._create_thumbnail_rows(user_id, request, tier)

        prompt = build_thumbnail_prompt(
            title=request.thumbnail_text or request.title,
            aspect_ratio=request.aspect_ratio,
            resolution=request.resolution.value,
            style_description=GenerationService._resolve_named("styles", request.style, "description"),
            palette_name=GenerationService._resolve_named("palettes", request.palette, "name"),
            emotion=request.emotion,
            pose=request.pose,
            custom_style=request.custom_style,
            face_reference_count=len(request.face_image_urls),
        )

        results: list[VariationResult] = []
        for index, thumbnail_id in enumerate(thumbnail_ids, start=1):
            try:
                image_url = GenerationService._render_variation(user_id, thumbnail_id, prompt, request)
                results.append(VariationResult(success=True, thumbnail_id=thumbnail_id, image_url=image_url))
            except Exception as e:
                logger.error(
                    f"Variation {index}/{len(thumbnail_ids)} failed "
                    f"{log_context(user_id=user_id, thumbnail_id=thumbnail_id, operation='generate-variation')}: {e}"
                )
                results.append(VariationResult(success=False, thumbnail_id=thumbnail_id, error="Generation failed"))

        succeeded = [r for r in results if r.success]
        failed_ids = [r.thumbnail_id for r in results if not r.success]
        GenerationService._discard(failed_ids, user_id)

        if not succeeded:
            raise AIServiceError("Failed to generate thumbnail", error=f"all {len(results)} variation(s) failed")

        # One key per request, generated here so a client cannot replay a charge
        credits_used = cost_per_image * len(succeeded)
        credit_result = SubscriptionService.deduct_credits(
            user_id,
            credits_used,
            str(uuid4()),
            thumbnail_id=succeeded[0].thumbnail_id if len(succeeded) == 1 else None,
            description=f"Generated {len(succeeded)} {request.resolution.value} thumbnail(s): {request.title[:50]}",
        )
        if not credit_result.get("success"):
            GenerationService._discard([r.thumbnail_id for r in succeeded], user_id, remove_files=True)
            raise InsufficientCreditsError(credit_result.get("remaining") or 0, credits_used)

        GenerationService._notify_first_thumbnail(user_id)

        return GenerateResponse(
            image_url=succeeded[0].image_url,
            thumbnail_id=succeeded[0].thumbnail_id,
            results=results,
            credits_used=credits_used,
            credits_remaining=credit_result.get("remaining", credits_remaining - credits_used),
            total_requested=request.variations,
            total_succeeded=len(succeeded),
            total_failed=len(failed_ids),
        )

    @staticmethod
    def _notify_first_thumbnail(user_id: str) -> None:
        notification = NotificationCreate(
            user_id=user_id,
            type=NotificationType.REWARD,
            severity=NotificationSeverity.SUCCESS,
            title="Your first thumbnail is ready",
            body="Nice work! Find it in your gallery and try another style.",
            action_url="/studio",
            action_label="Open gallery",
        )
        try:
            NotificationService.create_notification_if_new(notification, FIRST_THUMBNAIL_MILESTONE)
        except ViewBaitException as e:
            logger.warning(f"Could not create milestone notification for user {user_id}: {e.message}")

    @staticmethod
    def summarize(response: GenerateResponse) -> dict[str, Any]:
        """Short dict for logs."""
        return {
            "requested": response.total_requested,
            "succeeded": response.total_succeeded,
            "credits_used": response.credits_used,
        }

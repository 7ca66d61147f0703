# =============================================================================
# core/services/experiment_service.py - Experiment Business Logic
# =============================================================================
# Handles experiment CRUD and generation of the A/B/C thumbnail variants.
#
# Variant generation is best effort: the three variants are generated one
# after another and a failing variant is logged and skipped. The request
# only fails when none of them could be generated. A variant whose row
# can't be saved has its thumbnail discarded and its credits refunded.
# =============================================================================

import asyncio
import logging
from typing import Any
from uuid import UUID, uuid4

from lib.supabase_client import SupabaseClient
from lib.utils import log_context, normalize_uuid, utc_now_iso
from core.models.experiment import (
    ExperimentCreate,
    ExperimentStatus,
    ExperimentUpdate,
    VariantGenerateRequest,
    VariantLabel,
    VariantUpdate,
)
from core.models.generation import GenerateRequest, GenerateResponse
from core.services.generation_service import GenerationService
from core.services.subscription_service import SubscriptionService
from app.exceptions import (
    AIServiceError,
    DatabaseError,
    InvalidRequestError,
    ResourceNotFoundError,
    ViewBaitException,
)

logger = logging.getLogger(__name__)

VARIANT_LABELS = [VariantLabel.A, VariantLabel.B, VariantLabel.C]

VARIANT_DIRECTIONS = {
    VariantLabel.A: None,
    VariantLabel.B: "Try a different camera angle or composition.",
    VariantLabel.C: "Experiment with different color emphasis or mood.",
}


def build_variant_requests(request: VariantGenerateRequest) -> dict[VariantLabel, GenerateRequest]:
    """
    Build one generation request per variant label.

    The video description and tags become prompt context; B and C each add
    a creative direction so the three variants differ.
    """
    context_parts = []
    if request.description:
        context_parts.append(f"Video description: {request.description}")
    if request.tags:
        context_parts.append(f"Video tags: {', '.join(request.tags)}")
    context = ". ".join(context_parts) + ". " if context_parts else ""

    base_style = request.custom_style or ""
    if context:
        base_style = context + (f" {base_style}" if base_style else "")

    requests = {}
    for label in VARIANT_LABELS:
        direction = VARIANT_DIRECTIONS[label]
        custom_style = base_style
        if direction:
            custom_style = f"{base_style} {direction}" if base_style else direction

        requests[label] = GenerateRequest(
            title=request.title,
            variations=1,
            style=request.style,
            palette=request.palette,
            emotion=request.emotion,
            pose=request.pose,
            resolution=request.resolution,
            aspect_ratio=request.aspect_ratio,
            custom_style=custom_style.strip() or None,
            thumbnail_text=request.thumbnail_text or request.title,
            face_image_urls=request.face_image_urls,
        )
    return requests


class ExperimentService:
    """
    Service for experiment operations.

    Ownership is enforced by filtering every query on user_id.
    """

    @staticmethod
    def create_experiment(user_id: UUID | str, data: ExperimentCreate) -> dict[str, Any]:
        """
        Create a draft experiment for one of the user's videos.

        Raises:
            DatabaseError: If the insert fails
        """
        client = SupabaseClient.get_client()
        row = {
            "user_id": normalize_uuid(user_id),
            "video_id": data.video_id,
            "channel_id": data.channel_id,
            "status": ExperimentStatus.DRAFT.value,
            "notes": data.notes,
        }

        try:
            response = client.table("experiments").insert(row).execute()
        except Exception as e:
            raise DatabaseError("create experiment", str(e))

        if not response.data:
            raise DatabaseError("create experiment", "insert returned no data")

        experiment = response.data[0]
        logger.info(f"Created experiment {experiment['id']} for video {data.video_id}")
        return experiment

    @staticmethod
    def get_experiment(experiment_id: str, user_id: UUID | str) -> dict[str, Any]:
        """
        Get one of the user's experiments.

        Raises:
            ResourceNotFoundError: If it doesn't exist or belongs to someone else
        """
        client = SupabaseClient.get_client()

        try:
            experiment = SupabaseClient.fetch_first(
                client.table("experiments")
                .select("*")
                .eq("id", experiment_id)
                .eq("user_id", normalize_uuid(user_id))
            )
        except Exception as e:
            raise DatabaseError("fetch experiment", str(e))

        if not experiment:
            raise ResourceNotFoundError("experiment", experiment_id)
        return experiment

    @staticmethod
    def get_variants(experiment_id: str) -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        response = (
            client.table("experiment_variants")
            .select("*")
            .eq("experiment_id", experiment_id)
            .order("label")
            .execute()
        )
        return response.data or []

    @staticmethod
    def get_result(experiment_id: str) -> dict[str, Any] | None:
        client = SupabaseClient.get_client()
        return SupabaseClient.fetch_first(
            client.table("experiment_results")
            .select("*")
            .eq("experiment_id", experiment_id)
        )

    @staticmethod
    async def list_experiments(
        user_id: UUID | str,
        status: ExperimentStatus | None = None,
        video_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """
        List the user's experiments with their variants and results.

        Variants and results for all experiments on the page are fetched
        concurrently. A failed branch leaves that field empty and is
        reported in the experiment's `errors` list.
        """
        client = SupabaseClient.get_client()
        user_id_str = normalize_uuid(user_id)

        query = (
            client.table("experiments")
            .select("*", count="exact")
            .eq("user_id", user_id_str)
        )
        if status:
            query = query.eq("status", status.value)
        if video_id:
            query = query.eq("video_id", video_id)

        try:
            response = await asyncio.to_thread(
                query.order("created_at", desc=True).range(offset, offset + limit - 1).execute
            )
        except Exception as e:
            raise DatabaseError("fetch experiments", str(e))

        experiments = response.data or []
        branches = []
        for experiment in experiments:
            branches.append(asyncio.to_thread(ExperimentService.get_variants, experiment["id"]))
            branches.append(asyncio.to_thread(ExperimentService.get_result, experiment["id"]))

        outcomes = await asyncio.gather(*branches, return_exceptions=True)

        for index, experiment in enumerate(experiments):
            variants, result = outcomes[2 * index], outcomes[2 * index + 1]
            errors = []
            if isinstance(variants, Exception):
                logger.error(f"Failed to fetch variants {log_context(user_id=user_id_str, experiment_id=experiment['id'])}: {variants}")
                errors.append("variants")
                variants = []
            if isinstance(result, Exception):
                logger.error(f"Failed to fetch result {log_context(user_id=user_id_str, experiment_id=experiment['id'])}: {result}")
                errors.append("result")
                result = None
            experiment["variants"] = variants
            experiment["result"] = result
            if errors:
                experiment["errors"] = errors

        total = response.count if response.count is not None else len(experiments)
        return {
            "experiments": experiments,
            "count": total,
            "has_more": offset + len(experiments) < total,
        }

    @staticmethod
    def update_experiment(
        experiment_id: str,
        user_id: UUID | str,
        update: ExperimentUpdate,
    ) -> dict[str, Any]:
        """
        Update an experiment's status or metadata.

        Raises:
            InvalidRequestError: If no fields were provided
            ResourceNotFoundError: If it doesn't exist or belongs to someone else
        """
        changes = update.model_dump(exclude_unset=True, mode="json")
        if not changes:
            raise InvalidRequestError("No fields to update")
        changes["updated_at"] = utc_now_iso()

        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("experiments")
                .update(changes)
                .eq("id", experiment_id)
                .eq("user_id", normalize_uuid(user_id))
                .execute()
            )
        except Exception as e:
            raise DatabaseError("update experiment", str(e))

        if not response.data:
            raise ResourceNotFoundError("experiment", experiment_id)
        return response.data[0]

    @staticmethod
    def delete_experiment(experiment_id: str, user_id: UUID | str) -> None:
        """
        Delete an experiment; variants are removed by the foreign key cascade.

        Raises:
            ResourceNotFoundError: If it doesn't exist or belongs to someone else
        """
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("experiments")
                .delete()
                .eq("id", experiment_id)
                .eq("user_id", normalize_uuid(user_id))
                .execute()
            )
        except Exception as e:
            raise DatabaseError("delete experiment", str(e))

        if not response.data:
            raise ResourceNotFoundError("experiment", experiment_id)
        logger.info(f"Deleted experiment {experiment_id}")

    @staticmethod
    def count_experiments(user_id: UUID | str) -> int:
        client = SupabaseClient.get_client()
        response = (
            client.table("experiments")
            .select("id", count="exact")
            .eq("user_id", normalize_uuid(user_id))
            .limit(1)
            .execute()
        )
        return response.count or 0

    # -------------------------------------------------------------------------
    # Variants
    # -------------------------------------------------------------------------

    @staticmethod
    def generate_variants(
        experiment_id: str,
        user_id: UUID | str,
        request: VariantGenerateRequest,
    ) -> dict[str, Any]:
        """
        Generate the A/B/C thumbnail variants for an experiment.

        Existing variants are replaced. Each variant is generated in turn;
        a failure is logged and the batch continues.

        Returns:
            {"variants": [...], "count": k} for the k variants that succeeded

        Raises:
            ResourceNotFoundError: If the experiment isn't the user's
            AIServiceError: If no variant could be generated
        """
        user_id_str = normalize_uuid(user_id)
        ExperimentService.get_experiment(experiment_id, user_id_str)

        client = SupabaseClient.get_client()
        try:
            client.table("experiment_variants").delete().eq("experiment_id", experiment_id).execute()
        except Exception as e:
            logger.error(f"Failed to clear existing variants {log_context(user_id=user_id_str, experiment_id=experiment_id)}: {e}")

        variants = []
        for label, generate_request in build_variant_requests(request).items():
            try:
                generated = GenerationService.generate(user_id_str, generate_request)
                variants.extend(
                    ExperimentService._save_variant(experiment_id, user_id_str, label, request.title, generated)
                )
                logger.info(f"Generated variant {label.value} for experiment {experiment_id}")
            except ViewBaitException as e:
                # Tier and credit rejections apply to every variant alike
                if e.status_code < 500 and not variants:
                    raise
                logger.error(
                    f"Variant {label.value} failed "
                    f"{log_context(user_id=user_id_str, experiment_id=experiment_id, operation='generate-variant')}: {e.message}"
                )
            except Exception as e:
                logger.error(
                    f"Variant {label.value} failed "
                    f"{log_context(user_id=user_id_str, experiment_id=experiment_id, operation='generate-variant')}: {e}"
                )

        if not variants:
            raise AIServiceError("Failed to generate any variants", error=f"experiment {experiment_id}")

        if len(variants) == len(VARIANT_LABELS):
            ExperimentService.update_experiment(
                experiment_id,
                user_id_str,
                ExperimentUpdate(status=ExperimentStatus.READY_FOR_STUDIO),
            )

        return {"variants": variants, "count": len(variants)}

    @staticmethod
    def _save_variant(
        experiment_id: str,
        user_id: str,
        label: VariantLabel,
        title: str,
        generated: GenerateResponse,
    ) -> list[dict[str, Any]]:
        """
        Store a generated variant.

        If the row can't be written the thumbnail is discarded and its
        credits are given back before the error propagates.
        """
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("experiment_variants")
                .insert({
                    "experiment_id": experiment_id,
                    "label": label.value,
                    "title_text": title,
                    "thumbnail_asset_url": generated.image_url,
                    "thumbnail_id": generated.thumbnail_id,
                })
                .execute()
            )
            return response.data or []
        except Exception as e:
            logger.error(
                f"Failed to save variant {label.value} "
                f"{log_context(user_id=user_id, experiment_id=experiment_id)}: {e}"
            )
            GenerationService._discard(
                [r.thumbnail_id for r in generated.results if r.success and r.thumbnail_id],
                user_id,
                remove_files=True,
            )
            if generated.credits_used:
                SubscriptionService.refund_credits(
                    user_id,
                    generated.credits_used,
                    f"refund:experiment:{experiment_id}:{label.value}:{uuid4()}",
                    description=f"Variant {label.value} could not be saved",
                )
            raise DatabaseError("save variant", str(e))

    @staticmethod
    def update_variant(
        experiment_id: str,
        user_id: UUID | str,
        update: VariantUpdate,
    ) -> dict[str, Any]:
        """
        Edit one variant of the user's experiment.

        Raises:
            InvalidRequestError: If no fields besides the label were provided
            ResourceNotFoundError: If the experiment or variant doesn't exist
        """
        ExperimentService.get_experiment(experiment_id, user_id)

        changes = update.model_dump(exclude_unset=True, exclude={"label"})
        if not changes:
            raise InvalidRequestError("No fields to update")

        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("experiment_variants")
                .update(changes)
                .eq("experiment_id", experiment_id)
                .eq("label", update.label.value)
                .execute()
            )
        except Exception as e:
            raise DatabaseError("update variant", str(e))

        if not response.data:
            raise ResourceNotFoundError("variant", update.label.value)
        return response.data[0]

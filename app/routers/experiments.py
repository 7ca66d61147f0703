# =============================================================================
# app/routers/experiments.py - Experiment Endpoints
# =============================================================================
# CRUD for A/B/C thumbnail experiments and generation of their variants.
# All endpoints require authentication; other users' experiments are 404.
# =============================================================================

import asyncio
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status

from app.auth import get_current_user, AuthUser
from core.models.experiment import (
    ExperimentCreate,
    ExperimentStatus,
    ExperimentUpdate,
    VariantGenerateRequest,
    VariantUpdate,
)
from core.services.experiment_service import ExperimentService

router = APIRouter()


# =============================================================================
# Experiments
# =============================================================================

@router.get("")
async def list_experiments(
    user: AuthUser = Depends(get_current_user),
    status_filter: Annotated[ExperimentStatus | None, Query(alias="status", description="Filter by status")] = None,
    video_id: Annotated[str | None, Query(description="Filter by video")] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Page size")] = 20,
    offset: Annotated[int, Query(ge=0, description="Rows to skip")] = 0,
):
    """
    List the user's experiments, newest first, with variants and results.
    """
    return await ExperimentService.list_experiments(
        user.id,
        status=status_filter,
        video_id=video_id,
        limit=limit,
        offset=offset,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_experiment(
    data: ExperimentCreate,
    user: AuthUser = Depends(get_current_user),
):
    """Create a draft experiment for one of the user's videos."""
    return {"experiment": ExperimentService.create_experiment(user.id, data)}


@router.get("/{experiment_id}")
async def get_experiment(
    experiment_id: Annotated[UUID, Path(description="Experiment UUID")],
    user: AuthUser = Depends(get_current_user),
):
    """Get an experiment with its variants and result."""
    experiment = ExperimentService.get_experiment(str(experiment_id), user.id)
    experiment["variants"] = ExperimentService.get_variants(experiment["id"])
    experiment["result"] = ExperimentService.get_result(experiment["id"])
    return {"experiment": experiment}


@router.patch("/{experiment_id}")
async def update_experiment(
    experiment_id: Annotated[UUID, Path(description="Experiment UUID")],
    update: ExperimentUpdate,
    user: AuthUser = Depends(get_current_user),
):
    """Update status, notes or run dates."""
    return {"experiment": ExperimentService.update_experiment(str(experiment_id), user.id, update)}


@router.delete("/{experiment_id}")
async def delete_experiment(
    experiment_id: Annotated[UUID, Path(description="Experiment UUID")],
    user: AuthUser = Depends(get_current_user),
):
    """Delete an experiment and its variants."""
    ExperimentService.delete_experiment(str(experiment_id), user.id)
    return {"success": True, "experiment_id": str(experiment_id)}


# =============================================================================
# Variants
# =============================================================================

@router.post("/{experiment_id}/variants")
async def generate_variants(
    experiment_id: Annotated[UUID, Path(description="Experiment UUID")],
    request: VariantGenerateRequest,
    user: AuthUser = Depends(get_current_user),
):
    """
    Generate the A, B and C thumbnails, replacing any existing variants.

    Succeeds if at least one variant was generated; `count` says how many.
    """
    return await asyncio.to_thread(
        ExperimentService.generate_variants,
        str(experiment_id),
        user.id,
        request,
    )


@router.patch("/{experiment_id}/variants")
async def update_variant(
    experiment_id: Annotated[UUID, Path(description="Experiment UUID")],
    update: VariantUpdate,
    user: AuthUser = Depends(get_current_user),
):
    """Edit a single variant, addressed by its label."""
    return {"variant": ExperimentService.update_variant(str(experiment_id), user.id, update)}

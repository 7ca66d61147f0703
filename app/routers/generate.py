# =============================================================================
# app/routers/generate.py - Thumbnail Generation Endpoint
# =============================================================================
# POST /generate renders 1-4 thumbnail variations for a video title.
#
# Generation blocks on the image provider for tens of seconds, so the
# service runs in a worker thread.
# =============================================================================

import asyncio
import logging

from fastapi import APIRouter, Depends

from app.auth import get_current_user, AuthUser
from core.models.generation import GenerateRequest, GenerateResponse
from core.services.generation_service import GenerationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=GenerateResponse)
async def generate_thumbnails(
    request: GenerateRequest,
    user: AuthUser = Depends(get_current_user),
):
    """
    Generate thumbnails.

    Checks the request against the user's tier and credit balance, then
    renders each variation. Credits are charged only for variations that
    succeeded, once per request. Users without a subscription row start
    with the free allowance.

    Errors:
        403 TIER_LIMIT / INSUFFICIENT_CREDITS
        500 AI_SERVICE_ERROR when no variation could be generated
    """
    response = await asyncio.to_thread(
        GenerationService.generate,
        user.id,
        request,
    )
    logger.info(f"Generation for user {user.id}: {GenerationService.summarize(response)}")
    return response

"""League phase and prompt queue route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.api.auth_dependencies import (
    make_require_league_member,
    make_require_league_owner,
)
from challenge_league.api.routes import limiter
from challenge_league.database.db import get_db_session
from challenge_league.models.schemas import (
    PhaseTransitionResponse,
    PromptQueueResponse,
    ReorderPromptsRequest,
)
from challenge_league.services import prompt_queue_service
from challenge_league.services.prompt_queue_service import get_prompt_queue_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/api/leagues/{league_id}/admin/transition-phase",
    response_model=PhaseTransitionResponse,
    response_model_exclude_none=True,
)
@limiter.limit("10/minute")
async def transition_phase(
    request: Request,
    league_id: int,
    user: dict = Depends(make_require_league_owner()),
):
    """
    Manually advance a league to its next phase (league owner only).
    """
    try:
        result = await get_prompt_queue_service().manual_phase_transition(league_id)
        if not result["success"]:
            raise HTTPException(status_code=400, detail=result["error"])
        logger.info(f"User {user['id']} transitioned league {league_id}: {result['action']}")
        return result
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Manual phase transition failed for league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error transitioning phase: {str(e)}")


@router.get("/api/leagues/{league_id}/phase")
async def get_league_phase(
    league_id: int,
    user: dict = Depends(make_require_league_member()),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Get the league's current phase, its end time and the phase that follows.
    """
    try:
        info = await prompt_queue_service.get_league_phase_info(session, league_id)
        if info is None:
            raise HTTPException(status_code=404, detail="League not found")
        return info
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting league phase: {str(e)}")


@router.get("/api/leagues/{league_id}/admin/prompts", response_model=PromptQueueResponse)
async def list_league_prompts(
    league_id: int,
    user: dict = Depends(make_require_league_owner()),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List the league's prompts grouped by phase (league owner only).
    """
    try:
        queue = await prompt_queue_service.get_prompt_queue(session, league_id)
        if queue is None:
            raise HTTPException(status_code=404, detail="League not found")
        return queue
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error listing prompts: {str(e)}")


@router.put("/api/leagues/{league_id}/admin/prompts/reorder")
async def reorder_league_prompts(
    league_id: int,
    payload: ReorderPromptsRequest,
    user: dict = Depends(make_require_league_owner()),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Reorder the league's scheduled prompts (league owner only).
    """
    try:
        prompts = await prompt_queue_service.reorder_prompts(session, league_id, payload.prompt_ids)
        await session.commit()
        return {"success": True, "prompts": prompts}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error reordering prompts: {str(e)}")

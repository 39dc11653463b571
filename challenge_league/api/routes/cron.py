"""Cron entry point route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from challenge_league.api.auth_dependencies import require_cron_secret
from challenge_league.services import warning_service
from challenge_league.services.prompt_queue_service import get_prompt_queue_service
from challenge_league.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


def _cron_response(report: dict, message: str):
    body = {**report, "timestamp": utcnow().isoformat()}
    if not report.get("success", False):
        return JSONResponse(status_code=500, content=body)
    body["message"] = message
    return body


@router.api_route(
    "/api/cron/prompt-cycle",
    methods=["GET", "POST"],
    dependencies=[Depends(require_cron_secret)],
)
async def run_prompt_cycle():
    """
    Advance every league's prompt phases (scheduled once per execution slot).
    """
    try:
        logger.info("Cron job triggered: processing prompt queue")
        report = await get_prompt_queue_service().process_prompt_queue()
        return _cron_response(report, "Prompt queue processed successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Prompt cycle cron failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error processing prompt queue: {str(e)}")


@router.api_route(
    "/api/cron/two-hour-reminder",
    methods=["GET", "POST"],
    dependencies=[Depends(require_cron_secret)],
)
async def run_two_hour_reminder():
    """
    Send 2-hour deadline reminders (scheduled two hours before the execution slot).
    """
    try:
        logger.info("Cron job triggered: 2-hour deadline reminders")
        report = await warning_service.send_2_hour_warning_notifications()
        return _cron_response(report, "2-hour reminders processed successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"2-hour reminder cron failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error sending 2-hour reminders: {str(e)}")

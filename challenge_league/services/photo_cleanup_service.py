"""
Removes stored submission photos for long-finished challenges.

Runs at the end of each prompt cycle. Photos of prompts completed more than
PHOTO_RETENTION_DAYS ago are deleted from storage and the response's
image_url is cleared so the photo is not picked up again. Each file is
handled independently; a failed delete is logged and retried next cycle.
URLs that do not point into the photo bucket are cleared without a delete,
since no later cycle could remove them either.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.database.models import Prompt, PromptStatus, Response
from challenge_league.services import s3_service
from challenge_league.utils.constants import PHOTO_RETENTION_DAYS
from challenge_league.utils.datetime_utils import utcnow, ensure_utc

logger = logging.getLogger(__name__)


async def cleanup_old_submission_photos(
    session: AsyncSession,
    now: Optional[datetime] = None,
    retention_days: int = PHOTO_RETENTION_DAYS,
) -> Dict[str, int]:
    """
    Delete submission photos for prompts completed more than retention_days ago.

    Args:
        session: Database session
        now: Reference time (defaults to current UTC time)
        retention_days: Days to keep photos after a prompt completes

    Returns:
        Dict with deleted, discarded and failed counts
    """
    current = ensure_utc(now) if now is not None else utcnow()
    cutoff = current - timedelta(days=retention_days)

    result = await session.execute(
        select(Response)
        .join(Prompt, Prompt.id == Response.prompt_id)
        .where(
            and_(
                Prompt.status == PromptStatus.COMPLETED,
                Prompt.completed_at < cutoff,
                Response.image_url.isnot(None),
            )
        )
        .order_by(Response.id)
    )
    responses = result.scalars().all()

    if not responses:
        return {"deleted": 0, "discarded": 0, "failed": 0}

    logger.info(f"Found {len(responses)} submission photo(s) past the {retention_days}-day retention")

    deleted = 0
    discarded = 0
    failed = 0
    for response in responses:
        if s3_service.is_foreign_photo_url(response.image_url):
            logger.warning(
                f"Dropping photo URL outside the photo bucket for response {response.id}: "
                f"{response.image_url}"
            )
            response.image_url = None
            discarded += 1
            continue
        if await s3_service.delete_submission_photo(response.image_url):
            response.image_url = None
            deleted += 1
        else:
            failed += 1

    await session.commit()

    logger.info(f"Photo cleanup finished: {deleted} deleted, {discarded} discarded, {failed} failed")
    return {"deleted": deleted, "discarded": discarded, "failed": failed}

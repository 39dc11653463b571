"""
Notification service for scheduler announcements.

Builds notification payloads for phase events and dispatches them as in-app
notifications to individual users or to a whole league. Dispatch never
raises: failures are logged and reported as counts so a phase transition is
never undone by its announcement.
"""

from typing import Dict, Optional, Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from challenge_league.database.models import Notification, NotificationType
from challenge_league.services.data_service import get_active_member_user_ids
import json
import logging

logger = logging.getLogger(__name__)


_PAYLOAD_TEMPLATES = {
    NotificationType.NEW_PROMPT_AVAILABLE: ("A New Challenge Is Available!", "new-prompt"),
    NotificationType.VOTING_AVAILABLE: ("Voting is Open!", "voting-open"),
    NotificationType.SUBMISSION_DEADLINE_24H: ("24 Hours Left to Submit!", "submission-reminder"),
    NotificationType.VOTING_DEADLINE_24H: ("24 Hours Left to Vote!", "voting-reminder"),
    NotificationType.SUBMISSION_DEADLINE_2H: ("2 Hours Left to Submit!", "submission-reminder-2h"),
    NotificationType.VOTING_DEADLINE_2H: ("2 Hours Left to Vote!", "voting-reminder-2h"),
}


def create_notification_data(
    type: NotificationType,
    prompt_text: Optional[str] = None,
    league_name: Optional[str] = None,
    league_id: Optional[int] = None,
    prompt_id: Optional[int] = None,
) -> Dict:
    """
    Build a notification payload for a phase event.

    Args:
        type: NotificationType of the event
        prompt_text: Challenge text (used as the message body)
        league_name: League display name
        league_id: League ID (used for the link and metadata)
        prompt_id: Prompt ID (metadata only)

    Returns:
        Dict with type, title, message, link_url and data
    """
    type = NotificationType(type)
    title, tag = _PAYLOAD_TEMPLATES[type]

    message = prompt_text or ""
    if league_name:
        message = f"{league_name}: {message}" if message else league_name

    data = {"tag": tag}
    if league_id is not None:
        data["league_id"] = league_id
    if prompt_id is not None:
        data["prompt_id"] = prompt_id

    return {
        "type": type.value,
        "title": title,
        "message": message or "New activity in your league!",
        "link_url": f"/app/league/{league_id}" if league_id is not None else "/",
        "data": data,
    }


async def notify_users(
    session: AsyncSession,
    user_ids: Iterable[int],
    payload: Dict,
) -> Dict[str, int]:
    """
    Send a notification to each of the given users.

    One in-app notification row is created per distinct user and committed.
    If the write fails the batch is rolled back and every recipient counts
    as failed; nothing is raised.

    Args:
        session: Database session
        user_ids: Recipients
        payload: Payload from create_notification_data()

    Returns:
        Dict with sent and failed counts
    """
    recipients = list(dict.fromkeys(uid for uid in user_ids if uid))
    if not recipients:
        return {"sent": 0, "failed": 0}

    try:
        data_json = json.dumps(payload["data"]) if payload.get("data") is not None else None
        session.add_all([
            Notification(
                user_id=user_id,
                type=payload["type"],
                title=payload["title"],
                message=payload["message"],
                data=data_json,
                link_url=payload.get("link_url"),
                is_read=False,
            )
            for user_id in recipients
        ])
        await session.flush()
        await session.commit()
    except Exception as e:
        logger.warning(
            f"Failed to send '{payload.get('type')}' notification to {len(recipients)} user(s): {e}"
        )
        await session.rollback()
        return {"sent": 0, "failed": len(recipients)}

    logger.info(f"Sent '{payload['type']}' notification to {len(recipients)} user(s)")
    return {"sent": len(recipients), "failed": 0}


async def notify_league(
    session: AsyncSession,
    league_id: int,
    payload: Dict,
    exclude_user_id: Optional[int] = None,
) -> Dict[str, int]:
    """
    Send a notification to every active member of a league.

    Args:
        session: Database session
        league_id: League whose members are notified
        payload: Payload from create_notification_data()
        exclude_user_id: Optional member to leave out

    Returns:
        Dict with sent and failed counts
    """
    try:
        member_user_ids = await get_active_member_user_ids(
            session, league_id, exclude_user_id=exclude_user_id
        )
    except Exception as e:
        logger.warning(f"Failed to load members of league {league_id} for notification: {e}")
        return {"sent": 0, "failed": 0}

    if not member_user_ids:
        logger.info(f"No active members found in league {league_id}")
        return {"sent": 0, "failed": 0}

    return await notify_users(session, member_user_ids, payload)

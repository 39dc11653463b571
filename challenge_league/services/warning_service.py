"""
Deadline warning service.

Two reminder passes over in-flight prompts:

- 24-hour warning: runs inside the prompt cycle, targets phases that end at
  the next execution slot.
- 2-hour warning: runs from its own cron two hours before the slot, targets
  phases that end at that slot.

Submission reminders go to active members who have not submitted yet; voting
reminders go to members who still have votes left. Each warning flag is
claimed and committed before any notification goes out, so a prompt gets at
most one warning of each kind even across overlapping runs.
"""

import logging
from collections import namedtuple
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.database import db
from challenge_league.database.models import NotificationType, PromptStatus
from challenge_league.services import data_service, notification_service, redis_service
from challenge_league.services.phase_calculations import (
    LeagueSettings,
    get_phase_end_time,
    is_ending_at_next_slot,
    is_phase_expired,
    should_suppress_24h_warning,
    will_expire_in_next_slot,
)
from challenge_league.utils.constants import SCHEDULER_LOCK_TTL_SECONDS, TWO_HOUR_REMINDER_LOCK_KEY

logger = logging.getLogger(__name__)

WarningTier = namedtuple("WarningTier", ["status", "flag", "notification_type"])

SUBMISSION_24H = WarningTier(
    PromptStatus.ACTIVE, "submission_warning_notification_sent", NotificationType.SUBMISSION_DEADLINE_24H
)
VOTING_24H = WarningTier(
    PromptStatus.VOTING, "voting_warning_notification_sent", NotificationType.VOTING_DEADLINE_24H
)
SUBMISSION_2H = WarningTier(
    PromptStatus.ACTIVE, "submission_2hour_warning_notification_sent", NotificationType.SUBMISSION_DEADLINE_2H
)
VOTING_2H = WarningTier(
    PromptStatus.VOTING, "voting_2hour_warning_notification_sent", NotificationType.VOTING_DEADLINE_2H
)

# Plain copy of a candidate row; ORM objects expire on rollback
_Candidate = namedtuple(
    "_Candidate",
    ["id", "text", "status", "phase_started_at", "league_id", "league_name", "settings"],
)

# Per-candidate decisions
_WAIT = "wait"
_CLAIM_ONLY = "claim_only"
_NOTIFY = "notify"


def _decide_24h(candidate: _Candidate, now: Optional[datetime]) -> str:
    if should_suppress_24h_warning(candidate.status, candidate.settings):
        return _CLAIM_ONLY
    if is_phase_expired(candidate, candidate.settings, now):
        # Transition is due; a warning now would be pointless
        return _CLAIM_ONLY
    if will_expire_in_next_slot(candidate, candidate.settings, now):
        return _NOTIFY
    return _WAIT


def _decide_2h(candidate: _Candidate, now: Optional[datetime]) -> str:
    if get_phase_end_time(candidate, candidate.settings) is None:
        logger.warning(f"Prompt {candidate.id} has no phase start time, skipping 2-hour check")
        return _WAIT
    if is_ending_at_next_slot(candidate, candidate.settings, now):
        return _NOTIFY
    return _WAIT


async def _pending_recipients(session: AsyncSession, candidate: _Candidate) -> List[int]:
    """Members who still have something to do in the current phase."""
    member_ids = await data_service.get_active_member_user_ids(session, candidate.league_id)
    if candidate.status == PromptStatus.ACTIVE:
        submitted = await data_service.get_submitted_user_ids(session, candidate.id)
        return [uid for uid in member_ids if uid not in submitted]

    votes_cast = await data_service.get_vote_counts_by_voter(session, candidate.id)
    return [
        uid for uid in member_ids
        if votes_cast.get(uid, 0) < candidate.settings.votes_per_player
    ]


async def _load_candidates(session: AsyncSession, tier: WarningTier) -> List[_Candidate]:
    rows = await data_service.get_prompts_pending_warning(session, tier.status, tier.flag)
    return [
        _Candidate(
            id=prompt.id,
            text=prompt.text,
            status=prompt.status,
            phase_started_at=prompt.phase_started_at,
            league_id=league.id,
            league_name=league.name,
            settings=LeagueSettings.from_league(league),
        )
        for prompt, league in rows
    ]


async def _run_warning_pass(
    tiers: List[WarningTier], decide, now: Optional[datetime], label: str
) -> Dict:
    report = {
        "success": True,
        "checked": 0,
        "notified_prompts": 0,
        "users_notified": 0,
        "skipped": 0,
        "errors": [],
    }

    async with db.AsyncSessionLocal() as session:
        for tier in tiers:
            candidates = await _load_candidates(session, tier)
            for candidate in candidates:
                report["checked"] += 1
                try:
                    decision = decide(candidate, now)
                    if decision == _WAIT:
                        report["skipped"] += 1
                        continue

                    claimed = await data_service.claim_prompt_flag(session, candidate.id, tier.flag)
                    await session.commit()
                    if not claimed:
                        # Another run got here first
                        report["skipped"] += 1
                        continue
                    if decision == _CLAIM_ONLY:
                        logger.info(
                            f"Marked {label} {tier.status.value} warning for prompt {candidate.id} "
                            f"without sending"
                        )
                        report["skipped"] += 1
                        continue

                    recipients = await _pending_recipients(session, candidate)
                    if not recipients:
                        logger.info(
                            f"No members left to remind for prompt {candidate.id} "
                            f"in league {candidate.league_id}"
                        )
                        continue

                    payload = notification_service.create_notification_data(
                        tier.notification_type,
                        prompt_text=candidate.text,
                        league_name=candidate.league_name,
                        league_id=candidate.league_id,
                        prompt_id=candidate.id,
                    )
                    result = await notification_service.notify_users(session, recipients, payload)
                    report["notified_prompts"] += 1
                    report["users_notified"] += result["sent"]
                    logger.info(
                        f"Sent {label} {tier.status.value} warning for prompt {candidate.id} "
                        f"to {result['sent']} user(s)"
                    )
                except Exception as e:
                    logger.error(
                        f"Error sending {label} warning for prompt {candidate.id}: {e}", exc_info=True
                    )
                    await session.rollback()
                    report["errors"].append({"prompt_id": candidate.id, "error": str(e)})

    report["success"] = not report["errors"]
    return report


async def send_24_hour_warning_notifications(now: Optional[datetime] = None) -> Dict:
    """
    Send 24-hour deadline reminders for phases ending at the next execution slot.

    Phases of a day or less and phases that are already overdue have their
    flag set without a notification.

    Args:
        now: Reference time (defaults to current UTC time)

    Returns:
        Report dict with success, checked, notified_prompts, users_notified,
        skipped and errors
    """
    logger.info("Checking 24-hour deadline warnings...")
    return await _run_warning_pass([SUBMISSION_24H, VOTING_24H], _decide_24h, now, "24-hour")


async def send_2_hour_warning_notifications(now: Optional[datetime] = None) -> Dict:
    """
    Send 2-hour deadline reminders for phases ending at the next execution slot.

    Args:
        now: Reference time (defaults to current UTC time)

    Returns:
        Report dict like send_24_hour_warning_notifications(), or
        {"success": True, "skipped": True} if another run holds the lock
    """
    lock_token = await redis_service.acquire_lock(TWO_HOUR_REMINDER_LOCK_KEY, SCHEDULER_LOCK_TTL_SECONDS)
    if lock_token is False:
        logger.warning("2-hour reminder already running elsewhere, skipping this invocation")
        return {"success": True, "skipped": True}

    try:
        logger.info("Checking 2-hour deadline warnings...")
        return await _run_warning_pass([SUBMISSION_2H, VOTING_2H], _decide_2h, now, "2-hour")
    finally:
        await redis_service.release_lock(TWO_HOUR_REMINDER_LOCK_KEY, lock_token)

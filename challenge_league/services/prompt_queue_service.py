"""
Prompt queue service — drives each league's challenge through its phases.

One pass per invocation across all active, started leagues:

- ACTIVE prompt past its end   -> publish responses, move to VOTING
- VOTING prompt past its end   -> tally votes, move to COMPLETED, then
                                  activate the next SCHEDULED prompt in the same pass
- nothing in flight            -> activate the next SCHEDULED prompt

An ACTIVE prompt (expired or not) always ends the league's turn, so a league
advances at most one submission phase per pass. Each league runs in its own
session and error boundary; a failure is logged and reported without
stopping the remaining leagues. Each transition's writes are committed
together, and announcements are sent only after that commit so a failed
notification never undoes a transition.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.database import db
from challenge_league.database.models import League, Prompt, PromptStatus, NotificationType
from challenge_league.services import (
    data_service,
    notification_service,
    photo_cleanup_service,
    redis_service,
    vote_tally_service,
    warning_service,
)
from challenge_league.services.phase_calculations import (
    LeagueSettings,
    get_realistic_phase_end_time,
    get_time_until_phase_end,
    is_phase_expired,
)
from challenge_league.services.phase_clock import normalized_now
from challenge_league.utils.constants import PROMPT_CYCLE_LOCK_KEY, SCHEDULER_LOCK_TTL_SECONDS

logger = logging.getLogger(__name__)

# Transition actions reported per league
ACTION_NONE = "none"
ACTION_ACTIVATED = "activated"
ACTION_STARTED_VOTING = "started_voting"
ACTION_COMPLETED = "completed"
ACTION_COMPLETED_AND_STARTED_NEXT = "completed_and_started_next"
ACTION_SKIPPED_RACE = "skipped_race"


class PromptQueueService:
    """Phase state machine over every league's prompt queue."""

    async def process_prompt_queue(self, now: Optional[datetime] = None) -> Dict:
        """
        Run one scheduler pass over all active, started leagues.

        Intended to be triggered once per execution slot by an external cron.
        After the transitions it sends 24-hour warnings and cleans up old
        submission photos, each best-effort.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            Report dict with success, processed, transitions, errors,
            warnings and photos_deleted
        """
        lock_token = await redis_service.acquire_lock(
            PROMPT_CYCLE_LOCK_KEY, SCHEDULER_LOCK_TTL_SECONDS
        )
        if lock_token is False:
            logger.warning("Prompt cycle already running elsewhere, skipping this invocation")
            return {"success": True, "skipped": True}
        if lock_token is None:
            logger.warning("Redis unavailable, running prompt cycle without a run lock")

        try:
            return await self._run_cycle(now)
        finally:
            await redis_service.release_lock(PROMPT_CYCLE_LOCK_KEY, lock_token)

    async def _run_cycle(self, now: Optional[datetime]) -> Dict:
        logger.info("Processing prompt queue...")

        async with db.AsyncSessionLocal() as session:
            league_ids = await data_service.get_schedulable_league_ids(session)

        transitions: List[Dict] = []
        errors: List[Dict] = []

        for league_id in league_ids:
            async with db.AsyncSessionLocal() as session:
                try:
                    league = await data_service.get_league_by_id(session, league_id)
                    if league is None:
                        continue
                    outcome = await self._advance_league(session, league, now=now, force=False)
                    if outcome["action"] != ACTION_NONE:
                        transitions.append(outcome)
                except Exception as e:
                    logger.error(f"Error processing league {league_id}: {e}", exc_info=True)
                    await session.rollback()
                    errors.append({"league_id": league_id, "error": str(e)})

        warnings: Dict = {}
        try:
            warnings = await warning_service.send_24_hour_warning_notifications(now=now)
        except Exception as e:
            logger.error(f"Error sending 24-hour warnings: {e}", exc_info=True)
            warnings = {"success": False, "error": str(e)}

        photos_deleted = 0
        try:
            async with db.AsyncSessionLocal() as session:
                cleanup = await photo_cleanup_service.cleanup_old_submission_photos(session, now=now)
                photos_deleted = cleanup["deleted"]
        except Exception as e:
            logger.error(f"Error cleaning up old submission photos: {e}", exc_info=True)

        logger.info(
            f"Prompt queue processed: {len(league_ids)} league(s), "
            f"{len(transitions)} transition(s), {len(errors)} error(s)"
        )
        return {
            "success": not errors,
            "processed": len(league_ids),
            "transitions": transitions,
            "errors": errors,
            "warnings": warnings,
            "photos_deleted": photos_deleted,
        }

    async def manual_phase_transition(
        self, league_id: int, now: Optional[datetime] = None
    ) -> Dict:
        """
        Force one transition for a league, ignoring phase end times.

        Same state-machine rules as the scheduled pass, under the same run
        lock. Precondition failures are returned as
        {"success": False, "error": ...} rather than raised.

        Args:
            league_id: League to advance
            now: Reference time (defaults to current UTC time)

        Returns:
            Result dict with success, action and prompt text(s)
        """
        lock_token = await redis_service.acquire_lock(
            PROMPT_CYCLE_LOCK_KEY, SCHEDULER_LOCK_TTL_SECONDS
        )
        if lock_token is False:
            logger.warning(f"Manual transition for league {league_id} refused: prompt cycle in progress")
            return {"success": False, "error": "A scheduled phase update is in progress, try again shortly"}

        try:
            return await self._run_manual_transition(league_id, now)
        finally:
            await redis_service.release_lock(PROMPT_CYCLE_LOCK_KEY, lock_token)

    async def _run_manual_transition(self, league_id: int, now: Optional[datetime]) -> Dict:
        async with db.AsyncSessionLocal() as session:
            league = await data_service.get_league_by_id(session, league_id)
            if league is None:
                return {"success": False, "error": "League not found"}
            if not league.is_active:
                return {"success": False, "error": "League is not active"}

            try:
                outcome = await self._advance_league(session, league, now=now, force=True)
            except Exception:
                await session.rollback()
                raise

        action = outcome["action"]
        if action == ACTION_NONE:
            return {"success": False, "error": "No prompts available to transition"}
        if action == ACTION_SKIPPED_RACE:
            return {
                "success": False,
                "error": "Prompt was already transitioned by another process",
            }

        logger.info(f"Manual phase transition for league {league_id}: {action}")
        result = {"success": True}
        result.update({k: v for k, v in outcome.items() if k != "league_id"})
        return result

    async def _advance_league(
        self,
        session: AsyncSession,
        league: League,
        now: Optional[datetime],
        force: bool,
    ) -> Dict:
        """Apply at most one step of the state machine (plus activation after completion)."""
        league_id = league.id
        league_name = league.name
        settings = LeagueSettings.from_league(league)
        phase_time = normalized_now(now)

        active = await data_service.get_prompt_with_status(session, league_id, PromptStatus.ACTIVE)
        if active is not None:
            if not force and not is_phase_expired(active, settings, now):
                return {"league_id": league_id, "action": ACTION_NONE}

            prompt_id, prompt_text = active.id, active.text
            published = await data_service.publish_prompt_responses(session, prompt_id, phase_time)
            moved = await data_service.transition_prompt_status(
                session,
                prompt_id,
                PromptStatus.ACTIVE,
                PromptStatus.VOTING,
                phase_started_at=phase_time,
                submission_ended_at=phase_time,
            )
            if not moved:
                await session.rollback()
                logger.warning(f"Prompt {prompt_id} left ACTIVE before this pass could move it")
                return {"league_id": league_id, "action": ACTION_SKIPPED_RACE}
            await session.commit()

            logger.info(
                f"Started voting for \"{prompt_text}\" in league {league_id} "
                f"({published} response(s) published)"
            )
            await self._announce(
                session, NotificationType.VOTING_AVAILABLE, league_id, league_name, prompt_id, prompt_text
            )
            return {"league_id": league_id, "action": ACTION_STARTED_VOTING, "prompt": prompt_text}

        completed_text = None
        voting = await data_service.get_prompt_with_status(session, league_id, PromptStatus.VOTING)
        if voting is not None:
            if not force and not is_phase_expired(voting, settings, now):
                return {"league_id": league_id, "action": ACTION_NONE}

            prompt_id, completed_text = voting.id, voting.text
            await vote_tally_service.calculate_prompt_results(session, prompt_id)
            moved = await data_service.transition_prompt_status(
                session,
                prompt_id,
                PromptStatus.VOTING,
                PromptStatus.COMPLETED,
                voting_ended_at=phase_time,
                completed_at=phase_time,
            )
            if not moved:
                await session.rollback()
                logger.warning(f"Prompt {prompt_id} left VOTING before this pass could complete it")
                return {"league_id": league_id, "action": ACTION_SKIPPED_RACE}
            logger.info(f"Completed \"{completed_text}\" in league {league_id}")

        activated = await self._activate_next(session, league_id, phase_time)
        await session.commit()

        if activated is not None:
            new_id, new_text = activated
            logger.info(f"Activated next prompt \"{new_text}\" in league {league_id}")
            await self._announce(
                session, NotificationType.NEW_PROMPT_AVAILABLE, league_id, league_name, new_id, new_text
            )
        elif completed_text is not None:
            logger.info(f"No scheduled prompts left in league {league_id}")

        if completed_text is not None and activated is not None:
            return {
                "league_id": league_id,
                "action": ACTION_COMPLETED_AND_STARTED_NEXT,
                "completed_prompt": completed_text,
                "new_prompt": activated[1],
            }
        if completed_text is not None:
            return {"league_id": league_id, "action": ACTION_COMPLETED, "prompt": completed_text}
        if activated is not None:
            return {"league_id": league_id, "action": ACTION_ACTIVATED, "prompt": activated[1]}
        return {"league_id": league_id, "action": ACTION_NONE}

    async def _activate_next(
        self, session: AsyncSession, league_id: int, phase_time: datetime
    ) -> Optional[tuple]:
        """Activate the lowest-queue-order SCHEDULED prompt. Returns (id, text) or None."""
        next_prompt = await data_service.get_next_scheduled_prompt(session, league_id)
        if next_prompt is None:
            return None

        prompt_id, prompt_text = next_prompt.id, next_prompt.text
        moved = await data_service.activate_prompt_if_idle(session, prompt_id, league_id, phase_time)
        if not moved:
            logger.warning(
                f"Prompt {prompt_id} not activated: league {league_id} already has a prompt in flight"
            )
            return None
        return prompt_id, prompt_text

    async def _announce(
        self,
        session: AsyncSession,
        type: NotificationType,
        league_id: int,
        league_name: str,
        prompt_id: int,
        prompt_text: str,
    ) -> None:
        """Notify the whole league about a transition. Never raises."""
        try:
            payload = notification_service.create_notification_data(
                type,
                prompt_text=prompt_text,
                league_name=league_name,
                league_id=league_id,
                prompt_id=prompt_id,
            )
            result = await notification_service.notify_league(session, league_id, payload)
            if result["failed"]:
                logger.warning(
                    f"{result['failed']} '{type.value}' notification(s) failed for league {league_id}"
                )
        except Exception as e:
            logger.warning(f"Failed to send '{type.value}' notification for league {league_id}: {e}")


# Global singleton
_prompt_queue_service = PromptQueueService()


def get_prompt_queue_service() -> PromptQueueService:
    """Get the global prompt queue service instance."""
    return _prompt_queue_service


#
# Queue administration
#


def _serialize_prompt(prompt: Prompt, settings: LeagueSettings) -> Dict:
    """Convert a Prompt to a response dict."""
    end_time = get_realistic_phase_end_time(prompt, settings)
    return {
        "id": prompt.id,
        "text": prompt.text,
        "status": prompt.status.value,
        "queue_order": prompt.queue_order,
        "phase_started_at": prompt.phase_started_at.isoformat() if prompt.phase_started_at else None,
        "phase_ends_at": end_time.isoformat() if end_time else None,
        "completed_at": prompt.completed_at.isoformat() if prompt.completed_at else None,
    }


async def get_prompt_queue(session: AsyncSession, league_id: int) -> Optional[Dict]:
    """
    Get a league's prompts grouped by phase.

    Returns:
        Dict with active, voting, scheduled (queue order) and completed
        (most recent first) lists, or None if the league does not exist
    """
    league = await data_service.get_league_by_id(session, league_id)
    if league is None:
        return None
    settings = LeagueSettings.from_league(league)
    prompts = await data_service.get_league_prompts(session, league_id)

    def _group(status: PromptStatus) -> List[Dict]:
        return [_serialize_prompt(p, settings) for p in prompts if p.status == status]

    completed = [p for p in prompts if p.status == PromptStatus.COMPLETED]
    completed.sort(key=lambda p: (p.completed_at is not None, p.completed_at, p.id), reverse=True)

    return {
        "active": _group(PromptStatus.ACTIVE),
        "voting": _group(PromptStatus.VOTING),
        "scheduled": _group(PromptStatus.SCHEDULED),
        "completed": [_serialize_prompt(p, settings) for p in completed],
    }


async def reorder_prompts(session: AsyncSession, league_id: int, prompt_ids: List[int]) -> List[Dict]:
    """
    Rewrite the queue order of a league's SCHEDULED prompts.

    The first ID gets queue_order 1, the next 2, and so on.

    Args:
        session: Database session
        league_id: League that owns the prompts
        prompt_ids: SCHEDULED prompt IDs in their new order

    Returns:
        The reordered prompts as dicts

    Raises:
        ValueError: If IDs repeat, or any ID is unknown, from another league,
            or not SCHEDULED
    """
    if len(set(prompt_ids)) != len(prompt_ids):
        raise ValueError("Duplicate prompt IDs in reorder request")

    league = await data_service.get_league_by_id(session, league_id)
    if league is None:
        raise ValueError("League not found")

    scheduled = {
        p.id: p
        for p in await data_service.get_league_prompts(
            session, league_id, statuses=[PromptStatus.SCHEDULED]
        )
    }
    unknown = [pid for pid in prompt_ids if pid not in scheduled]
    if unknown:
        raise ValueError(f"Prompts are not scheduled in this league: {unknown}")

    for position, prompt_id in enumerate(prompt_ids, start=1):
        scheduled[prompt_id].queue_order = position
    await session.flush()

    settings = LeagueSettings.from_league(league)
    return [_serialize_prompt(scheduled[pid], settings) for pid in prompt_ids]


async def get_league_phase_info(
    session: AsyncSession, league_id: int, now: Optional[datetime] = None
) -> Optional[Dict]:
    """
    Describe a league's current and upcoming phase.

    Returns:
        Dict with current_phase (type, prompt, end_time, time_remaining) and
        next_phase (type, prompt), or None if the league does not exist
    """
    league = await data_service.get_league_by_id(session, league_id)
    if league is None:
        return None
    settings = LeagueSettings.from_league(league)

    active = await data_service.get_prompt_with_status(session, league_id, PromptStatus.ACTIVE)
    voting = await data_service.get_prompt_with_status(session, league_id, PromptStatus.VOTING)
    scheduled = await data_service.get_next_scheduled_prompt(session, league_id)

    current_phase: Dict = {"type": "NONE"}
    next_phase: Dict = {"type": "NEW_ACTIVE", "prompt": scheduled.text if scheduled else None}

    in_flight = active or voting
    if in_flight is not None:
        end_time = get_realistic_phase_end_time(in_flight, settings)
        current_phase = {
            "type": in_flight.status.value,
            "prompt": in_flight.text,
            "end_time": end_time.isoformat() if end_time else None,
            "time_remaining": get_time_until_phase_end(in_flight, settings, now),
        }

    if active is not None:
        next_phase = {"type": PromptStatus.VOTING.value, "prompt": active.text}
    elif voting is not None and scheduled is None:
        next_phase = {"type": PromptStatus.COMPLETED.value, "prompt": None}

    return {
        "league_id": league_id,
        "is_started": league.is_started,
        "current_phase": current_phase,
        "next_phase": next_phase,
    }

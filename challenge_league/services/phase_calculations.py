"""
Phase calculations for prompt lifecycle timing.

Pure, side-effect-free helpers over a prompt and its league's timing settings.
A "prompt" here is anything with `status` and `phase_started_at` attributes
(the Prompt ORM model in practice).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Union

from challenge_league.database.models import PromptStatus
from challenge_league.services.phase_clock import (
    next_execution_slot,
    slot_at_or_after,
)
from challenge_league.utils.constants import (
    DEFAULT_SUBMISSION_DAYS,
    DEFAULT_VOTING_DAYS,
    DEFAULT_VOTES_PER_PLAYER,
    SHORT_PHASE_MAX_DAYS,
    TWO_HOUR_WARNING_TOLERANCE_MINUTES,
)
from challenge_league.utils.datetime_utils import utcnow, ensure_utc


@dataclass(frozen=True)
class LeagueSettings:
    """Timing settings that drive phase lengths for a league."""

    submission_days: int = DEFAULT_SUBMISSION_DAYS
    voting_days: int = DEFAULT_VOTING_DAYS
    votes_per_player: int = DEFAULT_VOTES_PER_PLAYER

    @classmethod
    def from_league(cls, league) -> "LeagueSettings":
        return cls(
            submission_days=league.submission_days,
            voting_days=league.voting_days,
            votes_per_player=league.votes_per_player,
        )


DEFAULT_SETTINGS = LeagueSettings()

_NEXT_PHASE = {
    PromptStatus.SCHEDULED: PromptStatus.ACTIVE,
    PromptStatus.ACTIVE: PromptStatus.VOTING,
    PromptStatus.VOTING: PromptStatus.COMPLETED,
    PromptStatus.COMPLETED: PromptStatus.COMPLETED,
}


def _as_status(status: Union[PromptStatus, str]) -> PromptStatus:
    return status if isinstance(status, PromptStatus) else PromptStatus(status)


def phase_duration_days(
    status: Union[PromptStatus, str], settings: Optional[LeagueSettings] = None
) -> Optional[int]:
    """Length of the given phase in days, or None for phases without a deadline."""
    settings = settings or DEFAULT_SETTINGS
    status = _as_status(status)
    if status == PromptStatus.ACTIVE:
        return settings.submission_days
    if status == PromptStatus.VOTING:
        return settings.voting_days
    return None


def get_phase_end_time(prompt, settings: Optional[LeagueSettings] = None) -> Optional[datetime]:
    """
    Calculate when the current phase nominally ends.

    Args:
        prompt: Prompt with status and phase_started_at
        settings: League timing settings (defaults used if omitted)

    Returns:
        phase_started_at + phase duration, or None for SCHEDULED/COMPLETED
        prompts and prompts without a phase start
    """
    if prompt.phase_started_at is None:
        return None
    days = phase_duration_days(prompt.status, settings)
    if days is None:
        return None
    return ensure_utc(prompt.phase_started_at) + timedelta(days=days)


def is_phase_expired(
    prompt, settings: Optional[LeagueSettings] = None, now: Optional[datetime] = None
) -> bool:
    """Check if the current phase has expired (False when there is no end time)."""
    end_time = get_phase_end_time(prompt, settings)
    if end_time is None:
        return False
    current = ensure_utc(now) if now is not None else utcnow()
    return current >= end_time


def is_submission_window_open(
    prompt, settings: Optional[LeagueSettings] = None, now: Optional[datetime] = None
) -> bool:
    """Check if submissions are currently open."""
    return _as_status(prompt.status) == PromptStatus.ACTIVE and not is_phase_expired(
        prompt, settings, now
    )


def get_realistic_phase_end_time(
    prompt, settings: Optional[LeagueSettings] = None
) -> Optional[datetime]:
    """
    Calculate when the phase will actually end.

    Phases can only advance when the cron runs, so the phase start is snapped
    forward to the next execution slot before the duration is added. The
    result always lands on a slot boundary. This is the value shown to users.
    """
    if prompt.phase_started_at is None:
        return None
    days = phase_duration_days(prompt.status, settings)
    if days is None:
        return None
    return slot_at_or_after(prompt.phase_started_at) + timedelta(days=days)


def will_expire_in_next_slot(
    prompt, settings: Optional[LeagueSettings] = None, now: Optional[datetime] = None
) -> bool:
    """True if the phase ends at or before the next execution slot (24-hour warning check)."""
    end_time = get_phase_end_time(prompt, settings)
    if end_time is None:
        return False
    return end_time <= next_execution_slot(now)


def is_ending_at_next_slot(
    prompt,
    settings: Optional[LeagueSettings] = None,
    now: Optional[datetime] = None,
    tolerance: Optional[timedelta] = None,
) -> bool:
    """
    True if the phase ends at the next execution slot, within a tolerance window.

    Used by the 2-hour reminder, which runs shortly before that slot (on the
    previous UTC day when the slot hour is early). The window (default ±1 hour)
    absorbs clock and cron timing slack.
    """
    end_time = get_phase_end_time(prompt, settings)
    if end_time is None:
        return False
    if tolerance is None:
        tolerance = timedelta(minutes=TWO_HOUR_WARNING_TOLERANCE_MINUTES)
    return abs(end_time - next_execution_slot(now)) < tolerance


def get_next_phase(current_status: Union[PromptStatus, str]) -> PromptStatus:
    """Get the phase that follows current_status (COMPLETED is absorbing)."""
    return _NEXT_PHASE[_as_status(current_status)]


def should_suppress_24h_warning(
    status: Union[PromptStatus, str], settings: Optional[LeagueSettings] = None
) -> bool:
    """
    Phases of a day or less skip the 24-hour warning entirely.

    The 2-hour warning or the transition itself would otherwise fire right
    after it.
    """
    days = phase_duration_days(status, settings)
    return days is not None and days <= SHORT_PHASE_MAX_DAYS


def get_time_until_phase_end(
    prompt, settings: Optional[LeagueSettings] = None, now: Optional[datetime] = None
) -> Dict:
    """
    Get time remaining until the realistic phase end.

    Returns:
        Dict with days, hours, minutes and is_expired
    """
    end_time = get_realistic_phase_end_time(prompt, settings)
    if end_time is None:
        return {"days": 0, "hours": 0, "minutes": 0, "is_expired": True}

    current = ensure_utc(now) if now is not None else utcnow()
    remaining = end_time - current
    if remaining.total_seconds() <= 0:
        return {"days": 0, "hours": 0, "minutes": 0, "is_expired": True}

    total_minutes = int(remaining.total_seconds() // 60)
    return {
        "days": total_minutes // (24 * 60),
        "hours": (total_minutes % (24 * 60)) // 60,
        "minutes": total_minutes % 60,
        "is_expired": False,
    }

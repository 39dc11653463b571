"""
Phase clock — aligns timestamps to the fixed daily execution slot.

The prompt cycle cron runs once a day at EXECUTION_HOUR_UTC. Every phase
timestamp the scheduler writes is snapped to that slot so phase boundaries
line up with the runs that actually advance them, not with the wall-clock
moment a transition happened to be processed.
"""

from datetime import datetime, timedelta
from typing import Optional

from challenge_league.utils.constants import EXECUTION_HOUR_UTC
from challenge_league.utils.datetime_utils import utcnow, ensure_utc

SLOT_INTERVAL = timedelta(days=1)


def _slot_on_date(value: datetime) -> datetime:
    """Return the execution slot on the same UTC date as value."""
    return value.replace(hour=EXECUTION_HOUR_UTC, minute=0, second=0, microsecond=0)


def normalized_now(now: Optional[datetime] = None) -> datetime:
    """
    Most recent execution slot at or before now.

    Args:
        now: Reference time (defaults to the real current UTC time)

    Returns:
        Aware UTC datetime on a slot boundary
    """
    current = ensure_utc(now) if now is not None else utcnow()
    slot = _slot_on_date(current)
    if slot > current:
        slot -= SLOT_INTERVAL
    return slot


def next_execution_slot(from_time: Optional[datetime] = None) -> datetime:
    """
    First execution slot strictly after from_time.

    Args:
        from_time: Reference time (defaults to the real current UTC time)

    Returns:
        Aware UTC datetime on a slot boundary
    """
    current = ensure_utc(from_time) if from_time is not None else utcnow()
    slot = _slot_on_date(current)
    if slot <= current:
        slot += SLOT_INTERVAL
    return slot


def slot_at_or_after(value: datetime) -> datetime:
    """Snap a timestamp forward to the nearest execution slot (unchanged if already on one)."""
    current = ensure_utc(value)
    slot = _slot_on_date(current)
    if slot < current:
        slot += SLOT_INTERVAL
    return slot


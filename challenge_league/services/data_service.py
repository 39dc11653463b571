"""
Data service layer for scheduler database operations.

Narrow data-access functions over leagues, prompts, responses, votes and
memberships. Writes that guard a state transition are conditional updates,
so a concurrent invocation that already moved the row finds nothing to do.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, update, func, and_
from sqlalchemy.orm import aliased
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.database.models import (
    League,
    LeagueMembership,
    Prompt,
    PromptStatus,
    Response,
    User,
    Vote,
)

# Prompt columns that act as one-shot warning flags
WARNING_FLAGS = (
    "submission_warning_notification_sent",
    "voting_warning_notification_sent",
    "submission_2hour_warning_notification_sent",
    "voting_2hour_warning_notification_sent",
)


#
# Users
#


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "email": user.email}


#
# Leagues and memberships
#


async def get_league_by_id(session: AsyncSession, league_id: int) -> Optional[League]:
    """Get a league ORM object by ID."""
    result = await session.execute(select(League).where(League.id == league_id))
    return result.scalar_one_or_none()


async def get_schedulable_league_ids(session: AsyncSession) -> List[int]:
    """IDs of leagues that accept phase transitions (active and started)."""
    result = await session.execute(
        select(League.id)
        .where(and_(League.is_active == True, League.is_started == True))  # noqa: E712
        .order_by(League.id)
    )
    return list(result.scalars().all())


async def get_active_member_user_ids(
    session: AsyncSession, league_id: int, exclude_user_id: Optional[int] = None
) -> List[int]:
    """Get user IDs of a league's current (active) members."""
    query = select(LeagueMembership.user_id).where(
        and_(LeagueMembership.league_id == league_id, LeagueMembership.is_active == True)  # noqa: E712
    )
    if exclude_user_id is not None:
        query = query.where(LeagueMembership.user_id != exclude_user_id)
    result = await session.execute(query.order_by(LeagueMembership.user_id))
    return list(result.scalars().all())


async def is_active_league_member(session: AsyncSession, league_id: int, user_id: int) -> bool:
    """Check if a user is a current member of a league."""
    result = await session.execute(
        select(LeagueMembership.id)
        .where(
            and_(
                LeagueMembership.league_id == league_id,
                LeagueMembership.user_id == user_id,
                LeagueMembership.is_active == True,  # noqa: E712
            )
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


#
# Prompts
#


async def get_league_prompts(
    session: AsyncSession, league_id: int, statuses: Optional[Iterable[PromptStatus]] = None
) -> List[Prompt]:
    """Get a league's prompts, optionally filtered by status, in queue order."""
    query = select(Prompt).where(Prompt.league_id == league_id)
    if statuses is not None:
        query = query.where(Prompt.status.in_(list(statuses)))
    query = query.order_by(Prompt.queue_order.asc(), Prompt.created_at.asc(), Prompt.id.asc())
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_prompt_with_status(
    session: AsyncSession, league_id: int, status: PromptStatus
) -> Optional[Prompt]:
    """Get the first prompt in a league with the given status (lowest queue order)."""
    result = await session.execute(
        select(Prompt)
        .where(and_(Prompt.league_id == league_id, Prompt.status == status))
        .order_by(Prompt.queue_order.asc(), Prompt.created_at.asc(), Prompt.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_next_scheduled_prompt(session: AsyncSession, league_id: int) -> Optional[Prompt]:
    """Get the SCHEDULED prompt that is next in the league's queue."""
    return await get_prompt_with_status(session, league_id, PromptStatus.SCHEDULED)


async def transition_prompt_status(
    session: AsyncSession,
    prompt_id: int,
    expected_status: PromptStatus,
    new_status: PromptStatus,
    **values,
) -> bool:
    """
    Move a prompt to new_status only if it is still in expected_status.

    Args:
        session: Database session
        prompt_id: Prompt to update
        expected_status: Status the prompt must currently have
        new_status: Status to set
        **values: Additional columns to set (timestamps)

    Returns:
        True if the row was updated, False if another writer got there first
    """
    result = await session.execute(
        update(Prompt)
        .where(and_(Prompt.id == prompt_id, Prompt.status == expected_status))
        .values(status=new_status, **values)
    )
    return result.rowcount == 1


async def activate_prompt_if_idle(
    session: AsyncSession, prompt_id: int, league_id: int, phase_started_at: datetime
) -> bool:
    """
    Move a SCHEDULED prompt to ACTIVE only while its league has nothing in flight.

    The idle check is part of the UPDATE itself, so a prompt activated or
    moved to voting by a concurrent writer since the caller looked makes
    this a no-op.

    Returns:
        True if the prompt was activated
    """
    in_flight = aliased(Prompt)
    league_busy = (
        select(in_flight.id)
        .where(
            and_(
                in_flight.league_id == league_id,
                in_flight.status.in_([PromptStatus.ACTIVE, PromptStatus.VOTING]),
            )
        )
        .exists()
    )
    result = await session.execute(
        update(Prompt)
        .where(
            and_(
                Prompt.id == prompt_id,
                Prompt.league_id == league_id,
                Prompt.status == PromptStatus.SCHEDULED,
                ~league_busy,
            )
        )
        .values(status=PromptStatus.ACTIVE, phase_started_at=phase_started_at)
    )
    return result.rowcount == 1


async def claim_prompt_flag(session: AsyncSession, prompt_id: int, flag: str) -> bool:
    """
    Flip a one-shot warning flag from false to true.

    Returns:
        True if this call flipped it, False if it was already set
    """
    if flag not in WARNING_FLAGS:
        raise ValueError(f"Unknown warning flag: {flag}")
    column = getattr(Prompt, flag)
    result = await session.execute(
        update(Prompt)
        .where(and_(Prompt.id == prompt_id, column == False))  # noqa: E712
        .values({flag: True})
    )
    return result.rowcount == 1


async def get_prompts_pending_warning(
    session: AsyncSession, status: PromptStatus, flag: str
) -> List[Tuple[Prompt, League]]:
    """
    Get in-flight prompts of schedulable leagues whose warning flag is still false.

    Returns:
        List of (prompt, league) pairs
    """
    if flag not in WARNING_FLAGS:
        raise ValueError(f"Unknown warning flag: {flag}")
    result = await session.execute(
        select(Prompt, League)
        .join(League, League.id == Prompt.league_id)
        .where(
            and_(
                Prompt.status == status,
                getattr(Prompt, flag) == False,  # noqa: E712
                League.is_active == True,  # noqa: E712
                League.is_started == True,  # noqa: E712
            )
        )
        .order_by(Prompt.id)
    )
    return [(prompt, league) for prompt, league in result.all()]


#
# Responses and votes
#


async def publish_prompt_responses(
    session: AsyncSession, prompt_id: int, published_at: datetime
) -> int:
    """Publish every response for a prompt. Returns the number of responses published."""
    result = await session.execute(
        update(Response)
        .where(Response.prompt_id == prompt_id)
        .values(is_published=True, published_at=published_at)
    )
    return result.rowcount or 0


async def get_submitted_user_ids(session: AsyncSession, prompt_id: int) -> Set[int]:
    """User IDs that already have a response for a prompt."""
    result = await session.execute(
        select(Response.user_id).where(Response.prompt_id == prompt_id)
    )
    return set(result.scalars().all())


async def get_vote_counts_by_voter(session: AsyncSession, prompt_id: int) -> Dict[int, int]:
    """Number of votes each voter has cast on a prompt's responses."""
    result = await session.execute(
        select(Vote.voter_id, func.count(Vote.id))
        .join(Response, Response.id == Vote.response_id)
        .where(Response.prompt_id == prompt_id)
        .group_by(Vote.voter_id)
    )
    return {voter_id: count for voter_id, count in result.all()}

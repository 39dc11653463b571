"""
Vote tally for completed voting phases.

Counts votes per response and assigns final ranks. Vote count is the primary
key; the earlier submission wins a tie. Ranks are always distinct and
consecutive, even for exact ties.
"""

import logging
from datetime import datetime
from typing import Dict, List, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.database.models import Response, Vote
from challenge_league.utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1)


def _ranking_key(response, vote_counts: Dict[int, int]) -> Tuple[int, datetime, int]:
    submitted_at = ensure_utc(response.submitted_at) or ensure_utc(_EPOCH)
    return (-vote_counts.get(response.id, 0), submitted_at, response.id)


def rank_responses(
    responses: Sequence, vote_counts: Dict[int, int]
) -> List[Tuple[object, int, int]]:
    """
    Order responses by (votes DESC, submitted_at ASC, id ASC).

    Args:
        responses: Response-like objects with id and submitted_at
        vote_counts: Mapping of response id -> number of votes

    Returns:
        List of (response, total_votes, final_rank) with 1-based ranks
    """
    ordered = sorted(responses, key=lambda r: _ranking_key(r, vote_counts))
    return [
        (response, vote_counts.get(response.id, 0), rank)
        for rank, response in enumerate(ordered, start=1)
    ]


async def get_vote_counts(session: AsyncSession, prompt_id: int) -> Dict[int, int]:
    """Count votes per response for a prompt in a single grouped query."""
    result = await session.execute(
        select(Vote.response_id, func.count(Vote.id))
        .join(Response, Response.id == Vote.response_id)
        .where(Response.prompt_id == prompt_id)
        .group_by(Vote.response_id)
    )
    return {response_id: count for response_id, count in result.all()}


async def calculate_prompt_results(session: AsyncSession, prompt_id: int) -> List[Dict]:
    """
    Recompute total_votes and final_rank for every response of a prompt.

    Flushes but does not commit; the caller owns the transaction. Running it
    again over the same votes yields the same assignments.

    Args:
        session: Database session
        prompt_id: Prompt whose voting phase is being closed

    Returns:
        List of dicts (response_id, user_id, total_votes, final_rank) in rank order
    """
    result = await session.execute(select(Response).where(Response.prompt_id == prompt_id))
    responses = result.scalars().all()
    if not responses:
        logger.info(f"No responses to tally for prompt {prompt_id}")
        return []

    vote_counts = await get_vote_counts(session, prompt_id)

    standings = []
    for response, total_votes, rank in rank_responses(responses, vote_counts):
        response.total_votes = total_votes
        response.final_rank = rank
        standings.append({
            "response_id": response.id,
            "user_id": response.user_id,
            "total_votes": total_votes,
            "final_rank": rank,
        })

    await session.flush()
    logger.info(f"Tallied {len(standings)} response(s) for prompt {prompt_id}")
    return standings

"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

Initial schema for the prompt phase scheduler - creates all tables from scratch.

Creates:
- Core tables: users, leagues, league_memberships
- Challenge tables: prompts, responses, votes
- Supporting tables: notifications
- The promptstatus enum type and indexes
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from scratch."""
    # Import models to register them with Base.metadata
    from challenge_league.database.db import Base
    from challenge_league.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables."""
    from challenge_league.database.db import Base
    from challenge_league.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)

"""Add partial unique indexes so a league has at most one ACTIVE and one VOTING prompt

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Activation is already a conditional update, but two transactions that both
saw the league idle can still commit concurrently. These indexes make the
second commit fail instead of leaving two prompts in flight.
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade():
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_prompts_league_active
        ON prompts(league_id) WHERE status = 'ACTIVE'
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_prompts_league_voting
        ON prompts(league_id) WHERE status = 'VOTING'
    """)


def downgrade():
    op.execute("DROP INDEX IF EXISTS uq_prompts_league_voting")
    op.execute("DROP INDEX IF EXISTS uq_prompts_league_active")

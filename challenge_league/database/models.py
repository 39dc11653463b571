"""
SQLAlchemy ORM models for the Challenge League prompt scheduler.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.sql import text as sql_text
from challenge_league.database.db import Base
from challenge_league.utils.constants import (
    DEFAULT_SUBMISSION_DAYS,
    DEFAULT_VOTING_DAYS,
    DEFAULT_VOTES_PER_PLAYER,
)


class PromptStatus(str, enum.Enum):
    """Prompt (challenge) phase. Strictly ordered, one-directional."""

    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    VOTING = "VOTING"
    COMPLETED = "COMPLETED"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    NEW_PROMPT_AVAILABLE = "new_prompt_available"
    VOTING_AVAILABLE = "voting_available"
    SUBMISSION_DEADLINE_24H = "submission_deadline_24h"
    VOTING_DEADLINE_24H = "voting_deadline_24h"
    SUBMISSION_DEADLINE_2H = "submission_deadline_2h"
    VOTING_DEADLINE_2H = "voting_deadline_2h"


class User(Base):
    """Application users."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    memberships = relationship("LeagueMembership", back_populates="user")


class League(Base):
    """League groups competing on a shared prompt queue."""

    __tablename__ = "leagues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_started = Column(Boolean, default=False, nullable=False)  # Accepting phase transitions
    submission_days = Column(Integer, default=DEFAULT_SUBMISSION_DAYS, nullable=False)
    voting_days = Column(Integer, default=DEFAULT_VOTING_DAYS, nullable=False)
    votes_per_player = Column(Integer, default=DEFAULT_VOTES_PER_PLAYER, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id], backref="owned_leagues")
    memberships = relationship(
        "LeagueMembership", back_populates="league", cascade="all, delete-orphan"
    )
    prompts = relationship("Prompt", back_populates="league", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_leagues_active_started", "is_active", "is_started"),)


class LeagueMembership(Base):
    """Join table (User ↔ League)."""

    __tablename__ = "league_memberships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)  # False once the member leaves
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="memberships")
    league = relationship("League", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("user_id", "league_id"),
        Index("idx_league_memberships_league_active", "league_id", "is_active"),
    )


class Prompt(Base):
    """One round of competition (challenge) within a league."""

    __tablename__ = "prompts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    text = Column(Text, nullable=False)
    status = Column(Enum(PromptStatus), default=PromptStatus.SCHEDULED, nullable=False)
    queue_order = Column(Integer, default=0, nullable=False)
    phase_started_at = Column(DateTime(timezone=True), nullable=True)  # Reset on every transition
    submission_ended_at = Column(DateTime(timezone=True), nullable=True)
    voting_ended_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # One-shot warning flags (false -> true exactly once)
    submission_warning_notification_sent = Column(Boolean, default=False, nullable=False)
    voting_warning_notification_sent = Column(Boolean, default=False, nullable=False)
    submission_2hour_warning_notification_sent = Column(Boolean, default=False, nullable=False)
    voting_2hour_warning_notification_sent = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    league = relationship("League", back_populates="prompts")
    responses = relationship("Response", back_populates="prompt", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_prompts_league_status", "league_id", "status"),
        Index("idx_prompts_league_queue", "league_id", "queue_order"),
        # At most one ACTIVE and one VOTING prompt per league
        Index(
            "uq_prompts_league_active",
            "league_id",
            unique=True,
            postgresql_where=sql_text("status = 'ACTIVE'"),
            sqlite_where=sql_text("status = 'ACTIVE'"),
        ),
        Index(
            "uq_prompts_league_voting",
            "league_id",
            unique=True,
            postgresql_where=sql_text("status = 'VOTING'"),
            sqlite_where=sql_text("status = 'VOTING'"),
        ),
    )


class Response(Base):
    """One member's photo submission for a prompt."""

    __tablename__ = "responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prompt_id = Column(Integer, ForeignKey("prompts.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    caption = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)  # Cleared once the photo is removed from storage
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    is_published = Column(Boolean, default=False, nullable=False)
    published_at = Column(DateTime(timezone=True), nullable=True)
    total_votes = Column(Integer, default=0, nullable=False)
    final_rank = Column(Integer, nullable=True)

    # Relationships
    prompt = relationship("Prompt", back_populates="responses")
    user = relationship("User", backref="responses")
    votes = relationship("Vote", back_populates="response", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("user_id", "prompt_id"),
        Index("idx_responses_prompt", "prompt_id"),
    )


class Vote(Base):
    """A member's vote for one response."""

    __tablename__ = "votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    voter_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    response_id = Column(Integer, ForeignKey("responses.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    voter = relationship("User", backref="votes")
    response = relationship("Response", back_populates="votes")

    __table_args__ = (
        UniqueConstraint("voter_id", "response_id"),
        Index("idx_votes_response", "response_id"),
    )


class Notification(Base):
    """User notifications for in-app messaging."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)  # NotificationType enum value
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(
        Text, nullable=True
    )  # JSON string for flexible metadata (league_id, prompt_id)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    link_url = Column(String(500), nullable=True)  # Navigation target
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", backref="notifications")

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read", "created_at"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )

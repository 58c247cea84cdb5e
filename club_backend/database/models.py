"""
SQLAlchemy ORM models for the club roster.

Membership is unidirectional: Player.team_ids is the only stored edge between
players and teams. Teams keep no roster and matches keep player ids inside
their JSON lineup/unavailable_players documents.
"""

import enum
import uuid
from sqlalchemy import (
    Column,
    String,
    Text,
    Boolean,
    Integer,
    Date,
    DateTime,
    JSON,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from club_backend.database.db import Base
from club_backend.utils.constants import MIN_RANKING, MAX_RANKING
from club_backend.utils.datetime_utils import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


def generate_id() -> str:
    """Opaque string id for new documents."""
    return uuid.uuid4().hex


class UserRole(str, enum.Enum):
    """User role enum."""

    ADMIN = "admin"
    MEMBER = "member"
    APPLICANT = "applicant"
    GUEST_PLAYER = "guest_player"


class Gender(str, enum.Enum):
    """User gender enum."""

    MALE = "male"
    FEMALE = "female"
    NON_BINARY = "non-binary"


class MembershipStatus(str, enum.Enum):
    """Club membership status enum."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class MatchStatus(str, enum.Enum):
    """Match status enum."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class User(Base):
    """Club user accounts."""

    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    email = Column(String, nullable=False, unique=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    gender = Column(String, nullable=False, default=Gender.MALE.value)
    role = Column(String, nullable=False, default=UserRole.APPLICANT.value)
    membership_status = Column(String, nullable=False, default=MembershipStatus.ACTIVE.value)
    is_player = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    player = relationship("Player", back_populates="user", uselist=False)

    __table_args__ = (
        Index("idx_users_email", "email"),
        Index("idx_users_role", "role"),
    )

    @property
    def display_name(self) -> str:
        """'Last, First' as shown on rosters."""
        if self.first_name and self.last_name:
            return f"{self.last_name}, {self.first_name}"
        return ""


class Player(Base):
    """Player sports profile, owned 1:1 by a user."""

    __tablename__ = "players"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, unique=True)
    singles_ranking = Column(Integer, default=0, nullable=False)
    doubles_ranking = Column(Integer, default=0, nullable=False)
    preferred_positions = Column(JSONDocument, default=list, nullable=False)
    is_active_player = Column(Boolean, default=True, nullable=False)
    team_ids = Column(JSONDocument, default=list, nullable=False)  # Only stored membership edge
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="player")

    __table_args__ = (
        CheckConstraint(
            f"singles_ranking >= {MIN_RANKING} AND singles_ranking <= {MAX_RANKING}",
            name="ck_players_singles_ranking_range",
        ),
        CheckConstraint(
            f"doubles_ranking >= {MIN_RANKING} AND doubles_ranking <= {MAX_RANKING}",
            name="ck_players_doubles_ranking_range",
        ),
        Index("idx_players_active", "is_active_player"),
        Index("idx_players_singles_ranking", "singles_ranking"),
        Index("idx_players_doubles_ranking", "doubles_ranking"),
    )


class Team(Base):
    """Teams. The roster is computed from Player.team_ids, never stored here."""

    __tablename__ = "teams"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(50), nullable=False, unique=True)
    match_level = Column(String(20), nullable=True)
    created_by_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("idx_teams_created_by", "created_by_id"),)


class Match(Base):
    """Scheduled and played matches of a home team."""

    __tablename__ = "matches"

    id = Column(String(32), primary_key=True, default=generate_id)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)  # HH:MM
    location = Column(String(100), nullable=False)
    status = Column(String, nullable=False, default=MatchStatus.SCHEDULED.value)
    home_team_id = Column(String(32), ForeignKey("teams.id"), nullable=False)
    away_team_name = Column(String(50), nullable=False)
    home_score = Column(Integer, nullable=True)
    away_score = Column(Integer, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    lineup = Column(JSONDocument, default=dict, nullable=False)  # position -> [player_id, ...]
    unavailable_players = Column(JSONDocument, default=list, nullable=False)
    created_by_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_matches_date", "date"),
        Index("idx_matches_home_team", "home_team_id"),
        Index("idx_matches_status", "status"),
    )

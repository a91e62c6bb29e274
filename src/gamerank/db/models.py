"""
SQLAlchemy ORM models for GameRank.

This module defines all database tables. The schema is designed around the
player row as the unit of mutual exclusion: every match locks both player
rows, applies ratings and counters, and appends history in one transaction.

Key design decisions:
- Players carry their own counters (no aggregate queries on the hot path)
- A version column guards against lost updates on backends without row locks
- match_records.match_id is the idempotency key for match processing
- Rating history and match records are append-only
- The leaderboard is a derived projection, rebuilt from players

Tables:
- players: Ratings and cumulative statistics
- match_records: One row per processed match
- rating_history: Every rating change with its reason
- achievements: Achievement definitions
- player_achievements: Achievements unlocked by players
- leaderboard_entries: Ranked projection of qualifying players
- update_log: System audit trail
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from gamerank.rating.constants import INITIAL_RATING, MAX_RATING, MIN_RATING


# =============================================================================
# Constants
# =============================================================================

# Allowed reasons for a rating_history row
RATING_CHANGE_REASONS = ("win", "loss", "draw", "decay")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Base Class
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# =============================================================================
# Player Models
# =============================================================================

class Player(Base):
    """
    A rated player and their cumulative statistics.

    Counters are only ever written by match processing (and rating by the
    decay job), always while the row is locked. The version column is
    SQLAlchemy's version_id_col: every UPDATE checks and bumps it, so a
    write based on a stale read fails instead of silently overwriting.
    """
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(primary_key=True)

    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    # Current rating (integer ELO)
    rating: Mapped[int] = mapped_column(Integer, nullable=False, default=INITIAL_RATING)

    # Match counters (won + lost + drawn == played)
    games_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_lost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_drawn: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Signed streak: +N for N wins in a row, -N for N losses in a row
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_win_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_playtime_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_moves_per_game: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Position within the qualifying population (0-100), NULL below min games
    ranking_percentile: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    last_match_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Metadata
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            f"rating >= {MIN_RATING} AND rating <= {MAX_RATING}",
            name="ck_players_rating_bounds",
        ),
        CheckConstraint(
            "games_played >= 0 AND games_won >= 0 AND games_lost >= 0 AND games_drawn >= 0",
            name="ck_players_counters_non_negative",
        ),
        CheckConstraint(
            "games_won + games_lost + games_drawn = games_played",
            name="ck_players_counters_sum",
        ),
        Index("idx_players_rating", "rating"),
        Index("idx_players_games_played", "games_played"),
    )

    @property
    def win_rate(self) -> float:
        """Percentage of games won, rounded to 2 decimals."""
        if not self.games_played:
            return 0.0
        return round(self.games_won / self.games_played * 100, 2)

    def __repr__(self) -> str:
        return f"<Player(id={self.id}, username='{self.username}', rating={self.rating})>"


# =============================================================================
# Match Models
# =============================================================================

class MatchRecord(Base):
    """
    One processed match.

    Written once by match processing and never updated. The unique match_id
    makes a replayed match fail instead of being applied twice, and the
    stored before/after ratings let a replay return the original result.
    """
    __tablename__ = "match_records"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Caller-supplied idempotency key
    match_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    player1_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    player2_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    winner_id: Mapped[Optional[int]] = mapped_column(ForeignKey("players.id"), nullable=True)

    match_type: Mapped[str] = mapped_column(String(30), nullable=False, default="standard")
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)

    # Move analysis
    total_moves: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    player1_moves: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    player2_moves: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    player1_avg_move_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    player2_avg_move_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Ratings around the match
    player1_rating_before: Mapped[int] = mapped_column(Integer, nullable=False)
    player2_rating_before: Mapped[int] = mapped_column(Integer, nullable=False)
    player1_rating_after: Mapped[int] = mapped_column(Integer, nullable=False)
    player2_rating_after: Mapped[int] = mapped_column(Integer, nullable=False)

    played_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("player1_id <> player2_id", name="ck_match_records_distinct_players"),
        CheckConstraint(
            "duration_seconds >= 1 AND duration_seconds <= 86400",
            name="ck_match_records_duration",
        ),
        Index("idx_match_records_player1_date", "player1_id", "played_at"),
        Index("idx_match_records_player2_date", "player2_id", "played_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<MatchRecord(match_id='{self.match_id}', "
            f"{self.player1_id} vs {self.player2_id}, winner={self.winner_id})>"
        )


class RatingHistoryEntry(Base):
    """
    Append-only log of rating changes.

    Match rows carry the match_id (one per player per match); decay rows
    have no match_id.
    """
    __tablename__ = "rating_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[int] = mapped_column(
        ForeignKey("players.id", ondelete="CASCADE"), nullable=False
    )

    old_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    new_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    rating_change: Mapped[int] = mapped_column(Integer, nullable=False)

    match_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reason: Mapped[str] = mapped_column(String(10), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("player_id", "match_id", name="uq_rating_history_player_match"),
        CheckConstraint(
            "reason IN (" + ", ".join(f"'{r}'" for r in RATING_CHANGE_REASONS) + ")",
            name="ck_rating_history_reason",
        ),
        Index("idx_rating_history_player_date", "player_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RatingHistoryEntry(player={self.player_id}, "
            f"{self.old_rating} -> {self.new_rating}, reason='{self.reason}')>"
        )


# =============================================================================
# Achievement Models
# =============================================================================

class Achievement(Base):
    """
    Achievement definition.

    condition_type selects an evaluator from the condition registry and
    condition_value is its threshold. Unknown condition types are never
    awarded.
    """
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)

    condition_type: Mapped[str] = mapped_column(String(50), nullable=False)
    condition_value: Mapped[int] = mapped_column(Integer, nullable=False)

    points: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    icon_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<Achievement(name='{self.name}', {self.condition_type}>={self.condition_value})>"


class PlayerAchievement(Base):
    """
    An achievement unlocked by a player.

    The (player_id, achievement_id) pair is unique, so an achievement can
    be earned at most once no matter how often its condition holds again.
    """
    __tablename__ = "player_achievements"

    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[int] = mapped_column(
        ForeignKey("players.id", ondelete="CASCADE"), nullable=False
    )
    achievement_id: Mapped[int] = mapped_column(
        ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )

    earned_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=100)

    # Match that unlocked it
    match_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    achievement: Mapped["Achievement"] = relationship()

    __table_args__ = (
        UniqueConstraint("player_id", "achievement_id", name="uq_player_achievement"),
        Index("idx_player_achievements_match", "match_id"),
    )

    def __repr__(self) -> str:
        return f"<PlayerAchievement(player={self.player_id}, achievement={self.achievement_id})>"


# =============================================================================
# Leaderboard Models
# =============================================================================

class LeaderboardEntry(Base):
    """
    Ranked projection of a qualifying player.

    Derived entirely from players; rebuilding it is always safe.
    """
    __tablename__ = "leaderboard_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[int] = mapped_column(
        ForeignKey("players.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    highest_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    # Positive when the player climbed
    rank_change: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    draws: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    win_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    player: Mapped["Player"] = relationship()

    __table_args__ = (
        Index("idx_leaderboard_rank", "rank"),
    )

    def __repr__(self) -> str:
        return f"<LeaderboardEntry(rank={self.rank}, player={self.player_id}, rating={self.rating})>"


# =============================================================================
# System Tables
# =============================================================================

class UpdateLog(Base):
    """
    Audit log for system updates.

    Records when batch operations happen (decay runs, percentile refreshes,
    leaderboard rebuilds) for debugging and monitoring.
    """
    __tablename__ = "update_log"

    id: Mapped[int] = mapped_column(primary_key=True)

    # What type of update this was
    update_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Details about the update (varies by type)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Outcome
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_seconds: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_update_log_type_date", "update_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<UpdateLog(type='{self.update_type}', success={self.success})>"

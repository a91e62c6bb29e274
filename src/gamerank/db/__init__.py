"""
Database module for GameRank.

Provides SQLAlchemy ORM models, session management, row locking and
common queries.

Usage:
    from gamerank.db import get_session, Player

    with get_session() as session:
        players = session.query(Player).all()
"""

from gamerank.db.models import (
    Base,
    Player,
    MatchRecord,
    RatingHistoryEntry,
    Achievement,
    PlayerAchievement,
    LeaderboardEntry,
    UpdateLog,
)
from gamerank.db.session import (
    SessionLocal,
    get_engine,
    get_session,
    make_session_factory,
    session_scope,
)
from gamerank.db.locking import lock_players

__all__ = [
    # Base
    "Base",
    # Models
    "Player",
    "MatchRecord",
    "RatingHistoryEntry",
    "Achievement",
    "PlayerAchievement",
    "LeaderboardEntry",
    "UpdateLog",
    # Session
    "SessionLocal",
    "get_engine",
    "get_session",
    "make_session_factory",
    "session_scope",
    # Locking
    "lock_players",
]

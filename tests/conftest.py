"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

import itertools
from datetime import datetime

import pytest

from gamerank.achievements.catalogue import seed_achievements
from gamerank.db.models import Base, Player
from gamerank.db.session import get_engine, make_session_factory, session_scope
from gamerank.services.match_processing import MatchProcessingService


# Fixed "now" for every time-dependent test
NOW = datetime(2026, 6, 1, 12, 0, 0)


@pytest.fixture
def test_engine(tmp_path):
    """
    Create a test database engine.

    Each test gets its own file-backed SQLite database, so several
    sessions (and their transactions) can see each other's commits.
    """
    engine = get_engine(f"sqlite:///{tmp_path / 'gamerank_test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return make_session_factory(test_engine)


@pytest.fixture
def db_session(session_factory):
    """A session for arranging and inspecting state; closed after the test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def make_player(session_factory):
    """
    Factory creating committed players.

    games_won defaults to whatever keeps won + lost + drawn == played.

    Usage:
        player_id = make_player(rating=1500, games_played=50, games_lost=20)
    """
    counter = itertools.count(1)

    def _make(
        rating: int = 1200,
        games_played: int = 0,
        games_won: int | None = None,
        games_lost: int = 0,
        games_drawn: int = 0,
        **fields,
    ) -> int:
        if games_won is None:
            games_won = games_played - games_lost - games_drawn
        username = fields.pop("username", None) or f"player{next(counter)}"
        with session_scope(session_factory) as session:
            player = Player(
                username=username,
                rating=rating,
                games_played=games_played,
                games_won=games_won,
                games_lost=games_lost,
                games_drawn=games_drawn,
                **fields,
            )
            session.add(player)
            session.flush()
            return player.id

    return _make


@pytest.fixture
def seeded_achievements(session_factory):
    """Insert the default achievement catalogue."""
    with session_scope(session_factory) as session:
        seed_achievements(session)


@pytest.fixture
def service(session_factory):
    """Match processing service on the test database with a fixed clock."""
    return MatchProcessingService(
        session_factory=session_factory,
        clock=lambda: NOW,
        percentile_refresh="per_match",
        percentile_min_games=10,
        lock_timeout_ms=0,
    )

"""
Database session management for GameRank.

Provides SQLAlchemy engine and session factory with proper
connection pooling configuration. Uses the settings from config.py.
The engine is created on first use, so importing this module never
opens a connection.

Usage:
    # As a context manager (recommended for scripts)
    from gamerank.db import get_session

    with get_session() as session:
        players = session.query(Player).all()
        session.add(new_player)
        # Commits automatically on exit, rolls back on exception

    # With an injected factory (services and tests)
    from gamerank.db import session_scope

    with session_scope(factory) as session:
        ...
"""

from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from gamerank.config import settings


SessionFactory = Callable[[], Session]


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    The engine is configured with:
    - Connection pool for efficient reuse (server databases only)
    - Echo mode disabled (set LOG_LEVEL=DEBUG for SQL logging)
    - Pre-ping to verify connections before use (handles stale connections)
    - Foreign keys enforced on SQLite
    """
    url = database_url or settings.database_url
    kwargs: dict = {
        "pool_pre_ping": True,
        "echo": settings.log_level == "DEBUG",
    }
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow

    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            """SQLite ignores foreign keys unless asked per connection."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    """
    Session factory bound to an engine.

    Objects stay usable after commit (expire_on_commit=False) so services
    can build their results from the rows they just wrote.
    """
    return sessionmaker(
        bind=engine,
        autoflush=False,  # Flushes are explicit (more control)
        expire_on_commit=False,
    )


# Created lazily (singleton pattern via module-level variables)
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _get_engine() -> Engine:
    """Get or create the singleton engine instance."""
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


def SessionLocal() -> Session:
    """Create a new session bound to the application engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(_get_engine())
    return _session_factory()


@contextmanager
def session_scope(factory: SessionFactory) -> Generator[Session, None, None]:
    """
    Transaction scope around a session from the given factory.

    Commits on successful exit, rolls back on exception, always closes.

    Raises:
        Any exception from the database operation (after rollback)
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically commits on successful exit, rolls back on exception.
    This is the recommended way to use sessions in scripts and tasks.

    Example:
        with get_session() as session:
            player = session.query(Player).filter_by(username="alice").first()
            # Commits automatically when exiting the block
    """
    with session_scope(SessionLocal) as session:
        yield session

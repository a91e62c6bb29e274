"""
Named advisory locks.

Two scopes are offered, both keyed by a job name:

- job_lock(engine, name): held on a dedicated connection for as long as a
  batch script runs, so a second run of the same job exits instead of
  overlapping.
- transaction_lock(session, name): taken inside a transaction and released
  by its commit or rollback. Writers that touch many player rows queue on it.

PostgreSQL is the only backend with advisory locks; elsewhere both are
no-ops.
"""

from __future__ import annotations

import hashlib
import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

# Batch scripts
DECAY_LOCK = "gamerank:rating_decay"
PERCENTILE_LOCK = "gamerank:refresh_percentiles"
LEADERBOARD_LOCK = "gamerank:rebuild_leaderboard"

# Population-wide percentile writes (transaction scope)
PERCENTILE_WRITE_LOCK = "gamerank:percentile_write"


def advisory_lock_key(name: str) -> int:
    """Signed 64-bit key for a lock name (PostgreSQL advisory locks take a bigint)."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


def _try_lock(connection: Connection, key: int) -> bool:
    return bool(
        connection.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key}).scalar()
    )


@contextmanager
def job_lock(
    engine: Engine,
    name: str,
    timeout_seconds: float = 0.0,
    poll_interval_seconds: float = 1.0,
) -> Generator[bool, None, None]:
    """
    Run a named job at most once at a time.

    Args:
        engine: Engine of the database the job writes to
        name: Job name, e.g. DECAY_LOCK
        timeout_seconds: How long to wait for a running job (0 = fail at once)
        poll_interval_seconds: Wait between attempts

    Yields:
        True once the lock is held

    Raises:
        TimeoutError: another run of the job holds the lock
    """
    if engine.dialect.name != "postgresql":
        yield True
        return

    key = advisory_lock_key(name)
    with engine.connect() as connection:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while not _try_lock(connection, key):
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Job {name} is already running")
            time.sleep(max(poll_interval_seconds, 0.05))

        try:
            yield True
        finally:
            connection.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})


def transaction_lock(session: Session, name: str) -> bool:
    """
    Wait for a named lock that lasts until the session's transaction ends.

    Take it before writing any row in the transaction: a holder that already
    owns row locks could otherwise wait on a transaction that is queued
    behind it.

    Returns:
        True if a lock was taken, False on backends without advisory locks
    """
    if session.get_bind().dialect.name != "postgresql":
        return False
    session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_lock_key(name)})
    return True

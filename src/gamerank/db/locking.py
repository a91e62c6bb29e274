"""
Player row locking for match processing.

Both players of a match are locked with SELECT ... FOR UPDATE before any
counter is read. Rows are always locked in ascending id order, so two
matches between the same pair (in either order) queue up instead of
deadlocking.

On PostgreSQL the wait is bounded by lock_timeout; a timeout surfaces as
ConcurrencyError, which callers may retry with backoff.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from gamerank.db.models import Player
from gamerank.errors import ConcurrencyError, NotFoundError

logger = logging.getLogger(__name__)


def set_lock_timeout(session: Session, lock_timeout_ms: int) -> None:
    """Bound row-lock waits for the current transaction (PostgreSQL only)."""
    if session.get_bind().dialect.name != "postgresql":
        return
    # SET does not accept bind parameters
    session.execute(text(f"SET LOCAL lock_timeout = {int(lock_timeout_ms)}"))


def lock_players(
    session: Session,
    player_ids: Iterable[int],
    lock_timeout_ms: Optional[int] = None,
) -> dict[int, Player]:
    """
    Lock player rows for the rest of the transaction.

    Args:
        session: Session with an open (or about to open) transaction
        player_ids: Players to lock
        lock_timeout_ms: Optional lock wait limit

    Returns:
        Locked players keyed by id, freshly loaded from the database

    Raises:
        NotFoundError: if any id has no player row
        ConcurrencyError: if the lock could not be acquired in time
    """
    ids = sorted(set(player_ids))

    try:
        if lock_timeout_ms:
            set_lock_timeout(session, lock_timeout_ms)

        players = (
            session.query(Player)
            .filter(Player.id.in_(ids))
            .order_by(Player.id)
            .with_for_update()
            .populate_existing()
            .all()
        )
    except OperationalError as exc:
        logger.warning("Could not lock players %s: %s", ids, exc.orig)
        raise ConcurrencyError(f"Could not lock players {ids}") from exc

    found = {player.id: player for player in players}
    missing = [player_id for player_id in ids if player_id not in found]
    if missing:
        raise NotFoundError(f"Player(s) not found: {missing}")

    return found


# SQLSTATEs a retry can clear: serialization_failure, deadlock_detected,
# lock_not_available (lock_timeout)
LOCK_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def is_lock_conflict(exc: OperationalError) -> bool:
    """True when a database error means another transaction won a lock."""
    return getattr(exc.orig, "pgcode", None) in LOCK_CONFLICT_SQLSTATES

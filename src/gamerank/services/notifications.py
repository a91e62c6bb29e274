"""
Match-completed notifications.

After a match commits, match processing publishes a MatchCompletedEvent.
Delivery is best effort: a subscriber that raises is logged and skipped,
and never affects the committed result or the other subscribers.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol

from sqlalchemy.orm import Session

from gamerank.db.session import session_scope
from gamerank.services.leaderboard import rebuild_leaderboard

logger = logging.getLogger(__name__)


@dataclass
class MatchCompletedEvent:
    """Published once per successfully processed match."""
    match_id: str
    rating_changes: dict[str, int]
    achievements_earned: dict[str, list[dict]] = field(default_factory=dict)
    player_ids: tuple[int, int] = (0, 0)


class Notifier(Protocol):
    def publish(self, event: MatchCompletedEvent) -> None:
        ...


class LoggingNotifier:
    """Default notifier: writes one log line per event."""

    def publish(self, event: MatchCompletedEvent) -> None:
        earned = sum(len(items) for items in event.achievements_earned.values())
        logger.info(
            "Match %s completed: rating changes %s, %d achievement(s) earned",
            event.match_id, event.rating_changes, earned,
        )


class NotifierChain:
    """
    Fan an event out to several notifiers.

    Each subscriber is isolated: an exception is logged with its traceback
    and the remaining subscribers still receive the event.
    """

    def __init__(self, notifiers: Optional[Iterable[Notifier]] = None):
        self.notifiers: list[Notifier] = list(notifiers or [])

    def add(self, notifier: Notifier) -> "NotifierChain":
        self.notifiers.append(notifier)
        return self

    def publish(self, event: MatchCompletedEvent) -> None:
        for notifier in self.notifiers:
            try:
                notifier.publish(event)
            except Exception:
                logger.exception(
                    "Notifier %s failed for match %s",
                    type(notifier).__name__, event.match_id,
                )


class LeaderboardInvalidator:
    """
    Rebuild the leaderboard projection after every completed match.

    Runs in its own transaction, after the match has committed.
    """

    def __init__(self, session_factory: Callable[[], Session], min_games: Optional[int] = None):
        self.session_factory = session_factory
        self.min_games = min_games

    def publish(self, event: MatchCompletedEvent) -> None:
        with session_scope(self.session_factory) as session:
            stats = rebuild_leaderboard(session, min_games=self.min_games)
        logger.debug("Leaderboard rebuilt after match %s: %s", event.match_id, stats.summary())

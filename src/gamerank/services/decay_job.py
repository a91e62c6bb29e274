"""
Inactivity decay batch job.

Established players (PROVISIONAL_GAMES or more games, rated above the
floor) who haven't played for more than the threshold lose rating every
day past it. See gamerank.rating.decay for the formula.

Each player is decayed in their own transaction with their row locked, so
a concurrent match for that player either happens entirely before or
entirely after the decay. A failure for one player is logged and recorded
in the summary; the batch moves on to the next player.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.orm import Session

from gamerank.config import settings
from gamerank.db.locking import lock_players
from gamerank.db.models import RatingHistoryEntry, UpdateLog, utcnow
from gamerank.db.queries import calendar_days_between, inactive_players
from gamerank.db.session import SessionLocal, SessionFactory, session_scope
from gamerank.rating.constants import PROVISIONAL_GAMES, RATING_FLOOR
from gamerank.rating.decay import calculate_rating_decay

logger = logging.getLogger(__name__)


@dataclass
class DecayResult:
    """Rating change applied to one player."""
    player_id: int
    old_rating: int
    new_rating: int
    days_inactive: int

    @property
    def rating_change(self) -> int:
        return self.new_rating - self.old_rating


@dataclass
class DecaySummary:
    """Statistics from a decay run."""
    days_threshold: int = 0
    players_scanned: int = 0
    players_decayed: int = 0
    results: list[DecayResult] = field(default_factory=list)
    failures: list[tuple[int, str]] = field(default_factory=list)
    stopped_early: bool = False

    def summary(self) -> str:
        """Return a human-readable summary of the decay run."""
        lines = [
            f"Inactivity decay complete (threshold {self.days_threshold} days):",
            f"  Players scanned: {self.players_scanned}",
            f"  Players decayed: {self.players_decayed}",
        ]
        if self.stopped_early:
            lines.append("  Stopped early on request")
        if self.failures:
            lines.append(f"  Failures: {len(self.failures)}")
            for player_id, error in self.failures[:5]:
                lines.append(f"    - player {player_id}: {error}")
            if len(self.failures) > 5:
                lines.append(f"    ... and {len(self.failures) - 5} more")
        return "\n".join(lines)


class DecayJob:
    """
    Applies inactivity decay across the player population.

    Usage:
        job = DecayJob(session_factory=SessionLocal)
        summary = job.apply_inactivity_decay(days_threshold=90)
        print(summary.summary())
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lock_timeout_ms: Optional[int] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.clock = clock or utcnow
        self.lock_timeout_ms = (
            settings.lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms
        )

    def apply_inactivity_decay(
        self,
        days_threshold: Optional[int] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> DecaySummary:
        """
        Decay every eligible player.

        Args:
            days_threshold: Calendar days of inactivity tolerated
                (default: settings.decay_days_threshold)
            should_stop: Checked before each player; returning True ends the
                run, keeping every decay already committed

        Returns:
            DecaySummary with per-player results and failures
        """
        if days_threshold is None:
            days_threshold = settings.decay_days_threshold

        started = time.monotonic()
        now = self.clock()
        summary = DecaySummary(days_threshold=days_threshold)

        with session_scope(self.session_factory) as session:
            candidates = inactive_players(session, now, days_threshold)
        summary.players_scanned = len(candidates)

        for player_id, _ in candidates:
            if should_stop is not None and should_stop():
                summary.stopped_early = True
                logger.info("Decay run stopped before player %s", player_id)
                break

            try:
                with session_scope(self.session_factory) as session:
                    result = self._decay_player(session, player_id, now, days_threshold)
            except Exception as exc:
                logger.exception("Failed to decay player %s", player_id)
                summary.failures.append((player_id, str(exc)))
                continue

            if result is not None:
                summary.results.append(result)
                summary.players_decayed += 1
                logger.debug(
                    "Decayed player %s: %d -> %d (%d days inactive)",
                    player_id, result.old_rating, result.new_rating, result.days_inactive,
                )

        self._log_run(summary, time.monotonic() - started)
        logger.info(summary.summary())
        return summary

    def _decay_player(
        self,
        session: Session,
        player_id: int,
        now: datetime,
        days_threshold: int,
    ) -> Optional[DecayResult]:
        player = lock_players(session, [player_id], lock_timeout_ms=self.lock_timeout_ms)[player_id]

        # Re-check under the lock: the player may have played since the scan
        if player.games_played < PROVISIONAL_GAMES or player.rating <= RATING_FLOOR:
            return None
        days = calendar_days_between(player.last_match_at or player.created_at, now)
        if days <= days_threshold:
            return None

        new_rating = calculate_rating_decay(player.rating, days, threshold=days_threshold)
        if new_rating == player.rating:
            return None

        old_rating = player.rating
        player.rating = new_rating
        session.add(
            RatingHistoryEntry(
                player_id=player_id,
                old_rating=old_rating,
                new_rating=new_rating,
                rating_change=new_rating - old_rating,
                match_id=None,
                reason="decay",
                created_at=now,
            )
        )
        return DecayResult(player_id, old_rating, new_rating, days)

    def _log_run(self, summary: DecaySummary, elapsed: float) -> None:
        with session_scope(self.session_factory) as session:
            session.add(
                UpdateLog(
                    update_type="rating_decay",
                    details={
                        "days_threshold": summary.days_threshold,
                        "players_scanned": summary.players_scanned,
                        "players_decayed": summary.players_decayed,
                        "failed_player_ids": [player_id for player_id, _ in summary.failures],
                        "stopped_early": summary.stopped_early,
                    },
                    success=not summary.failures,
                    error_message="; ".join(error for _, error in summary.failures[:5]) or None,
                    duration_seconds=Decimal(f"{elapsed:.2f}"),
                )
            )

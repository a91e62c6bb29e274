"""
Match completion processing.

Turns one completed match into rating changes, statistics updates,
achievement unlocks and a match record, all in a single transaction:

1. Validate the match (before touching any state)
2. Reject a match_id that was already processed (ConflictError)
3. Lock both player rows in ascending id order
4. Compute new ratings with the rating engine
5. Write the match record and one rating history row per player
6. Apply counters via the statistics aggregator
7. Evaluate achievements for both players on their updated counters
8. Commit
9. Refresh ranking percentiles in a transaction of its own (per_match policy)
10. Publish a MatchCompletedEvent (best effort)

If anything fails between steps 2 and 8 the whole transaction rolls
back: readers only ever see the state before or after a match, never a
partial update. The percentile refresh writes every qualifying player, so
it never runs while the match holds its two player locks.
"""

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from gamerank.achievements.conditions import AchievementContext
from gamerank.achievements.evaluator import AchievementEvaluator, EarnedAchievement
from gamerank.config import settings
from gamerank.db.locking import is_lock_conflict, lock_players
from gamerank.db.models import (
    Achievement,
    MatchRecord,
    PlayerAchievement,
    RatingHistoryEntry,
    utcnow,
)
from gamerank.db.queries import find_match_record
from gamerank.db.session import SessionLocal, SessionFactory, session_scope
from gamerank.errors import ConcurrencyError, ConflictError, ValidationError
from gamerank.rating.calculator import GameOutcome, PlayerRating, calculate_new_ratings
from gamerank.services.notifications import LoggingNotifier, MatchCompletedEvent, Notifier
from gamerank.stats.aggregator import PlayerOutcome, StatisticsAggregator
from gamerank.stats.percentiles import refresh_ranking_percentiles

logger = logging.getLogger(__name__)

MIN_DURATION_SECONDS = 1
MAX_DURATION_SECONDS = 86400


# =============================================================================
# Input / output types
# =============================================================================

@dataclass(frozen=True)
class Move:
    """One move of a match, tagged with the player who made it."""
    player_id: int
    move_time: Optional[float] = None


@dataclass
class MatchResult:
    """
    A completed match as reported by the game.

    winner_id is None for a draw. ended_at defaults to the service clock;
    it is also the timestamp recorded for the match.
    """
    match_id: str
    player1_id: int
    player2_id: int
    winner_id: Optional[int]
    duration_seconds: int
    move_history: Sequence[Move] = ()
    match_type: str = "standard"
    ended_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "MatchResult":
        """
        Build a MatchResult from a JSON-style dict.

        Moves may be given as dicts ({"player_id": 1, "move_time": 2.5})
        or as Move instances. ended_at may be an ISO 8601 string.

        Raises:
            ValidationError: data, a move or ended_at has the wrong shape
        """
        if not isinstance(data, dict):
            raise ValidationError("A match must be a JSON object")

        moves = []
        for index, move in enumerate(data.get("move_history") or []):
            if isinstance(move, Move):
                moves.append(move)
            elif isinstance(move, dict):
                moves.append(Move(player_id=move.get("player_id"), move_time=move.get("move_time")))
            else:
                raise ValidationError(f"Move {index} must be an object")

        ended_at = data.get("ended_at")
        if isinstance(ended_at, str):
            try:
                ended_at = datetime.fromisoformat(ended_at)
            except ValueError as exc:
                raise ValidationError(
                    f"ended_at is not an ISO 8601 timestamp: {ended_at!r}"
                ) from exc
        return cls(
            match_id=data.get("match_id"),
            player1_id=data.get("player1_id"),
            player2_id=data.get("player2_id"),
            winner_id=data.get("winner_id"),
            duration_seconds=data.get("duration_seconds"),
            move_history=moves,
            match_type=data.get("match_type") or "standard",
            ended_at=ended_at,
        )


@dataclass
class MoveAnalysis:
    """Per-player move counts and average move times for a match."""
    total_moves: int = 0
    player1_moves: int = 0
    player2_moves: int = 0
    player1_avg_move_time: Optional[float] = None
    player2_avg_move_time: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MatchProcessingResult:
    """Summary of a processed match, returned to the caller."""
    match_id: str
    result: GameOutcome
    rating_changes: dict[str, int]
    new_ratings: dict[str, int]
    achievements_earned: dict[str, list[dict]]
    move_analysis: MoveAnalysis
    player_ids: tuple[int, int] = (0, 0)

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "result": self.result.value,
            "rating_changes": dict(self.rating_changes),
            "new_ratings": dict(self.new_ratings),
            "achievements_earned": {k: list(v) for k, v in self.achievements_earned.items()},
            "move_analysis": self.move_analysis.to_dict(),
        }


# =============================================================================
# Pure helpers
# =============================================================================

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_match_result(match: MatchResult) -> None:
    """
    Check a match before any state is touched.

    Raises:
        ValidationError: describing the first problem found
    """
    if not isinstance(match.match_id, str) or not match.match_id.strip():
        raise ValidationError("match_id is required")

    if not _is_int(match.player1_id) or not _is_int(match.player2_id):
        raise ValidationError("player1_id and player2_id must be integers")

    if match.player1_id == match.player2_id:
        raise ValidationError("Players cannot play against themselves")

    if match.winner_id is not None and match.winner_id not in (match.player1_id, match.player2_id):
        raise ValidationError(
            f"Winner {match.winner_id} is not a participant of match {match.match_id}"
        )

    if not _is_int(match.duration_seconds) or not (
        MIN_DURATION_SECONDS <= match.duration_seconds <= MAX_DURATION_SECONDS
    ):
        raise ValidationError(
            f"duration_seconds must be an integer in "
            f"[{MIN_DURATION_SECONDS}, {MAX_DURATION_SECONDS}], got {match.duration_seconds!r}"
        )

    if not isinstance(match.match_type, str) or not match.match_type:
        raise ValidationError("match_type must be a non-empty string")

    if match.ended_at is not None and not isinstance(match.ended_at, datetime):
        raise ValidationError(f"ended_at must be a datetime, got {match.ended_at!r}")

    participants = (match.player1_id, match.player2_id)
    for index, move in enumerate(match.move_history or ()):
        if getattr(move, "player_id", None) not in participants:
            raise ValidationError(f"Move {index} does not belong to either player")
        move_time = getattr(move, "move_time", None)
        if move_time is not None and (
            isinstance(move_time, bool)
            or not isinstance(move_time, (int, float))
            or move_time < 0
        ):
            raise ValidationError(f"Move {index} has an invalid move_time")


def match_outcome(match: MatchResult) -> GameOutcome:
    if match.winner_id is None:
        return GameOutcome.DRAW
    if match.winner_id == match.player1_id:
        return GameOutcome.PLAYER1_WINS
    return GameOutcome.PLAYER2_WINS


def player_outcomes(outcome: GameOutcome) -> tuple[PlayerOutcome, PlayerOutcome]:
    """(player 1, player 2) outcomes for a match outcome."""
    if outcome == GameOutcome.PLAYER1_WINS:
        return PlayerOutcome.WIN, PlayerOutcome.LOSS
    if outcome == GameOutcome.PLAYER2_WINS:
        return PlayerOutcome.LOSS, PlayerOutcome.WIN
    return PlayerOutcome.DRAW, PlayerOutcome.DRAW


def as_naive_utc(value: datetime) -> datetime:
    """Naive UTC form of a timestamp; naive values are taken as UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _average(values: list[float]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def analyze_moves(match: MatchResult) -> MoveAnalysis:
    """
    Count moves per player and average their move times.

    Moves without a move_time are counted but left out of the average;
    a player with no timed moves has an average of None.
    """
    times: dict[int, list[float]] = {match.player1_id: [], match.player2_id: []}
    counts = {match.player1_id: 0, match.player2_id: 0}

    for move in match.move_history or ():
        counts[move.player_id] += 1
        if move.move_time is not None:
            times[move.player_id].append(float(move.move_time))

    return MoveAnalysis(
        total_moves=counts[match.player1_id] + counts[match.player2_id],
        player1_moves=counts[match.player1_id],
        player2_moves=counts[match.player2_id],
        player1_avg_move_time=_average(times[match.player1_id]),
        player2_avg_move_time=_average(times[match.player2_id]),
    )


# =============================================================================
# Service
# =============================================================================

class MatchProcessingService:
    """
    Applies completed matches atomically.

    Usage:
        service = MatchProcessingService(session_factory=SessionLocal)
        result = service.process_match(MatchResult(
            match_id="m-1001", player1_id=1, player2_id=2,
            winner_id=1, duration_seconds=600,
        ))
        print(result.rating_changes)  # {'player1': 16, 'player2': -16}
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        notifier: Optional[Notifier] = None,
        evaluator: Optional[AchievementEvaluator] = None,
        aggregator: Optional[StatisticsAggregator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        percentile_refresh: Optional[str] = None,
        percentile_min_games: Optional[int] = None,
        lock_timeout_ms: Optional[int] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.notifier = notifier or LoggingNotifier()
        self.evaluator = evaluator or AchievementEvaluator()
        self.aggregator = aggregator or StatisticsAggregator()
        self.clock = clock or utcnow
        self.percentile_refresh = percentile_refresh or settings.percentile_refresh
        self.percentile_min_games = (
            settings.percentile_min_games if percentile_min_games is None else percentile_min_games
        )
        self.lock_timeout_ms = (
            settings.lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms
        )

    def process_match(self, match: MatchResult) -> MatchProcessingResult:
        """
        Process one completed match.

        Returns:
            MatchProcessingResult with rating changes, achievements earned
            per player and the move analysis

        Raises:
            ValidationError: malformed match (nothing was touched)
            NotFoundError: a player does not exist
            ConflictError: match_id already processed; prior_result holds
                the original MatchProcessingResult
            ConcurrencyError: lock timeout or concurrent modification of a
                player; safe to retry
        """
        validate_match_result(match)
        played_at = as_naive_utc(match.ended_at) if match.ended_at is not None else self.clock()
        moves = analyze_moves(match)

        try:
            with session_scope(self.session_factory) as session:
                result = self._apply(session, match, moves, played_at)
        except StaleDataError as exc:
            logger.warning("Concurrent update while processing match %s", match.match_id)
            raise ConcurrencyError(
                f"Players of match {match.match_id} were modified concurrently"
            ) from exc
        except OperationalError as exc:
            if not is_lock_conflict(exc):
                raise
            logger.warning("Lock conflict while processing match %s: %s", match.match_id, exc.orig)
            raise ConcurrencyError(
                f"Match {match.match_id} lost a lock to a concurrent transaction"
            ) from exc
        except IntegrityError as exc:
            # A concurrent duplicate committed first
            prior = self.get_match_result(match.match_id)
            if prior is None:
                raise
            raise ConflictError(
                f"Match {match.match_id} has already been processed", prior_result=prior
            ) from exc

        logger.info(
            "Processed match %s (%s): player %s %+d -> %d, player %s %+d -> %d",
            match.match_id, result.result.value,
            match.player1_id, result.rating_changes["player1"], result.new_ratings["player1"],
            match.player2_id, result.rating_changes["player2"], result.new_ratings["player2"],
        )
        if self.percentile_refresh == "per_match":
            self._refresh_percentiles(match.match_id)
        self._publish(result)
        return result

    def _refresh_percentiles(self, match_id: str) -> None:
        # The match is committed either way; a failed refresh is caught up
        # by the next one
        try:
            with session_scope(self.session_factory) as session:
                refresh_ranking_percentiles(session, min_games=self.percentile_min_games)
        except SQLAlchemyError:
            logger.exception("Percentile refresh after match %s failed", match_id)

    def get_match_result(self, match_id: str) -> Optional[MatchProcessingResult]:
        """Rebuild the result of an already processed match (None if unknown)."""
        with session_scope(self.session_factory) as session:
            record = find_match_record(session, match_id)
            if record is None:
                return None
            return build_result_from_record(session, record)

    def _apply(
        self,
        session: Session,
        match: MatchResult,
        moves: MoveAnalysis,
        played_at: datetime,
    ) -> MatchProcessingResult:
        existing = find_match_record(session, match.match_id)
        if existing is not None:
            logger.info("Match %s already processed, returning prior result", match.match_id)
            raise ConflictError(
                f"Match {match.match_id} has already been processed",
                prior_result=build_result_from_record(session, existing),
            )

        players = lock_players(
            session, [match.player1_id, match.player2_id], lock_timeout_ms=self.lock_timeout_ms
        )
        player1 = players[match.player1_id]
        player2 = players[match.player2_id]

        outcome = match_outcome(match)
        update = calculate_new_ratings(
            PlayerRating(player1.id, player1.rating, player1.games_played),
            PlayerRating(player2.id, player2.rating, player2.games_played),
            outcome,
        )
        outcome1, outcome2 = player_outcomes(outcome)

        session.add(
            MatchRecord(
                match_id=match.match_id,
                player1_id=match.player1_id,
                player2_id=match.player2_id,
                winner_id=match.winner_id,
                match_type=match.match_type,
                duration_seconds=match.duration_seconds,
                total_moves=moves.total_moves,
                player1_moves=moves.player1_moves,
                player2_moves=moves.player2_moves,
                player1_avg_move_time=moves.player1_avg_move_time,
                player2_avg_move_time=moves.player2_avg_move_time,
                player1_rating_before=update.player1_before,
                player2_rating_before=update.player2_before,
                player1_rating_after=update.player1_after,
                player2_rating_after=update.player2_after,
                played_at=played_at,
            )
        )

        for player_id, player_outcome, before, after, move_count in (
            (player1.id, outcome1, update.player1_before, update.player1_after, moves.player1_moves),
            (player2.id, outcome2, update.player2_before, update.player2_after, moves.player2_moves),
        ):
            session.add(
                RatingHistoryEntry(
                    player_id=player_id,
                    old_rating=before,
                    new_rating=after,
                    rating_change=after - before,
                    match_id=match.match_id,
                    reason=player_outcome.value,
                    created_at=played_at,
                )
            )
            self.aggregator.record_outcome(
                session,
                player_id,
                player_outcome,
                new_rating=after,
                duration_seconds=match.duration_seconds,
                move_count=move_count,
                played_at=played_at,
            )

        session.flush()

        earned: dict[str, list[dict]] = {}
        for key, player, player_outcome in (
            ("player1", player1, outcome1),
            ("player2", player2, outcome2),
        ):
            ctx = AchievementContext(
                session=session,
                player=player,
                now=played_at,
                is_win=player_outcome == PlayerOutcome.WIN,
                duration_seconds=match.duration_seconds,
                match_id=match.match_id,
            )
            earned[key] = [a.to_dict() for a in self.evaluator.evaluate(ctx)]

        return MatchProcessingResult(
            match_id=match.match_id,
            result=outcome,
            rating_changes={"player1": update.player1_change, "player2": update.player2_change},
            new_ratings={"player1": update.player1_after, "player2": update.player2_after},
            achievements_earned=earned,
            move_analysis=moves,
            player_ids=(match.player1_id, match.player2_id),
        )

    def _publish(self, result: MatchProcessingResult) -> None:
        event = MatchCompletedEvent(
            match_id=result.match_id,
            rating_changes=dict(result.rating_changes),
            achievements_earned={k: list(v) for k, v in result.achievements_earned.items()},
            player_ids=result.player_ids,
        )
        try:
            self.notifier.publish(event)
        except Exception:
            logger.exception("Failed to publish completion of match %s", result.match_id)


def build_result_from_record(session: Session, record: MatchRecord) -> MatchProcessingResult:
    """Reconstruct the processing result of a stored match."""
    if record.winner_id is None:
        outcome = GameOutcome.DRAW
    elif record.winner_id == record.player1_id:
        outcome = GameOutcome.PLAYER1_WINS
    else:
        outcome = GameOutcome.PLAYER2_WINS

    rows = (
        session.query(PlayerAchievement.player_id, Achievement)
        .join(Achievement, Achievement.id == PlayerAchievement.achievement_id)
        .filter(PlayerAchievement.match_id == record.match_id)
        .order_by(Achievement.id)
        .all()
    )
    earned: dict[str, list[dict]] = {"player1": [], "player2": []}
    for player_id, achievement in rows:
        key = "player1" if player_id == record.player1_id else "player2"
        earned[key].append(EarnedAchievement.from_model(achievement).to_dict())

    return MatchProcessingResult(
        match_id=record.match_id,
        result=outcome,
        rating_changes={
            "player1": record.player1_rating_after - record.player1_rating_before,
            "player2": record.player2_rating_after - record.player2_rating_before,
        },
        new_ratings={
            "player1": record.player1_rating_after,
            "player2": record.player2_rating_after,
        },
        achievements_earned=earned,
        move_analysis=MoveAnalysis(
            total_moves=record.total_moves,
            player1_moves=record.player1_moves,
            player2_moves=record.player2_moves,
            player1_avg_move_time=record.player1_avg_move_time,
            player2_avg_move_time=record.player2_avg_move_time,
        ),
        player_ids=(record.player1_id, record.player2_id),
    )


def process_match_with_retry(
    service: MatchProcessingService,
    match: MatchResult,
    attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> MatchProcessingResult:
    """
    Process a match, retrying on ConcurrencyError with exponential backoff.

    Every other error (including ConflictError) is raised immediately.
    """
    attempts = settings.match_retry_attempts if attempts is None else attempts
    backoff = settings.match_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
    attempts = max(1, attempts)

    attempt = 1
    while True:
        try:
            return service.process_match(match)
        except ConcurrencyError:
            if attempt >= attempts:
                logger.error("Match %s failed after %d attempt(s)", match.match_id, attempts)
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                "Concurrency conflict on match %s (attempt %d/%d), retrying in %.2fs",
                match.match_id, attempt, attempts, delay,
            )
            sleep(delay)
            attempt += 1

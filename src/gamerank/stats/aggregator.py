"""
Per-player statistics aggregation.

Cumulative counters live on the player row. apply_match_outcome() computes
the next counters from the previous ones and a single match, without
touching the database; StatisticsAggregator writes the result onto a
(locked) player inside the match transaction.

Streak rules:
- win:  streak + 1 if the streak is >= 0, otherwise restart at +1
- loss: streak - 1 if the streak is <= 0, otherwise restart at -1
- draw: streak unchanged
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from sqlalchemy.orm import Session

from gamerank.db.models import Player
from gamerank.db.queries import get_player

logger = logging.getLogger(__name__)


class PlayerOutcome(str, Enum):
    """A match result from one player's point of view."""

    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


@dataclass(frozen=True)
class PlayerCounters:
    """Snapshot of a player's cumulative counters."""

    games_played: int = 0
    games_won: int = 0
    games_lost: int = 0
    games_drawn: int = 0
    current_streak: int = 0
    longest_win_streak: int = 0
    total_playtime_seconds: int = 0
    average_moves_per_game: float = 0.0

    @classmethod
    def from_player(cls, player: Player) -> "PlayerCounters":
        return cls(
            games_played=player.games_played,
            games_won=player.games_won,
            games_lost=player.games_lost,
            games_drawn=player.games_drawn,
            current_streak=player.current_streak,
            longest_win_streak=player.longest_win_streak,
            total_playtime_seconds=player.total_playtime_seconds,
            average_moves_per_game=player.average_moves_per_game,
        )

    def apply_to(self, player: Player) -> None:
        player.games_played = self.games_played
        player.games_won = self.games_won
        player.games_lost = self.games_lost
        player.games_drawn = self.games_drawn
        player.current_streak = self.current_streak
        player.longest_win_streak = self.longest_win_streak
        player.total_playtime_seconds = self.total_playtime_seconds
        player.average_moves_per_game = self.average_moves_per_game


def next_streak(current_streak: int, outcome: PlayerOutcome) -> int:
    """Signed streak after one more result."""
    if outcome == PlayerOutcome.WIN:
        return current_streak + 1 if current_streak >= 0 else 1
    if outcome == PlayerOutcome.LOSS:
        return current_streak - 1 if current_streak <= 0 else -1
    return current_streak


def apply_match_outcome(
    counters: PlayerCounters,
    outcome: PlayerOutcome,
    duration_seconds: int,
    move_count: int,
) -> PlayerCounters:
    """
    Counters after one more match.

    Args:
        counters: Counters before the match
        outcome: WIN, LOSS or DRAW for this player
        duration_seconds: Match duration, added to total playtime
        move_count: Moves this player made in the match, folded into the running average

    Returns:
        New PlayerCounters (the input is not modified)
    """
    outcome = PlayerOutcome(outcome)
    played = counters.games_played + 1

    streak = next_streak(counters.current_streak, outcome)
    longest = counters.longest_win_streak
    if streak > 0:
        longest = max(longest, streak)

    average_moves = (
        counters.average_moves_per_game * counters.games_played + move_count
    ) / played

    return replace(
        counters,
        games_played=played,
        games_won=counters.games_won + (outcome == PlayerOutcome.WIN),
        games_lost=counters.games_lost + (outcome == PlayerOutcome.LOSS),
        games_drawn=counters.games_drawn + (outcome == PlayerOutcome.DRAW),
        current_streak=streak,
        longest_win_streak=longest,
        total_playtime_seconds=counters.total_playtime_seconds + duration_seconds,
        average_moves_per_game=average_moves,
    )


class StatisticsAggregator:
    """
    Writes match results onto player rows.

    The caller owns the transaction and must already hold the row lock.
    """

    def record_outcome(
        self,
        session: Session,
        player_id: int,
        outcome: PlayerOutcome,
        new_rating: int,
        duration_seconds: int,
        move_count: int,
        played_at: datetime,
    ) -> PlayerCounters:
        """
        Apply one match to a player.

        Returns:
            The player's new counters

        Raises:
            NotFoundError: if the player does not exist
        """
        player = get_player(session, player_id)

        counters = apply_match_outcome(
            PlayerCounters.from_player(player),
            outcome,
            duration_seconds,
            move_count,
        )
        counters.apply_to(player)
        player.rating = new_rating
        if player.last_match_at is None or played_at > player.last_match_at:
            player.last_match_at = played_at

        logger.debug(
            "Player %s: %s, rating %s, streak %+d, %s games",
            player_id, PlayerOutcome(outcome).value, new_rating,
            counters.current_streak, counters.games_played,
        )
        return counters

"""
ELO rating calculator for two-player games.

Implements the standard ELO formula with status-dependent K factors:
- New (provisional) players use a high K so they converge quickly
- Regular players use a moderate K
- Established experts use a low K

The ELO formula:
  Expected score: E_A = 1 / (1 + 10^((R_B - R_A) / 400))
  Change:         delta_A = round(K_A * (actual_A - E_A))

Each player's change uses that player's own K factor, so the two changes
are not required to be symmetric. Ratings are integers; changes are
rounded half up before the rating bounds are applied, and the reported
change is always new_rating - old_rating.
"""

import math
from dataclasses import dataclass
from enum import Enum

from gamerank.errors import ValidationError
from gamerank.rating.constants import (
    BASE_DEVIATION,
    CONFIDENCE_Z,
    DEFAULT_CATEGORY,
    DEVIATION_GAMES_SCALE,
    DRAW_RATE,
    EXPERT_RATING,
    K_FACTOR_EXPERT,
    K_FACTOR_NEW_PLAYER,
    K_FACTOR_REGULAR,
    MAX_RATING,
    MIN_RATING,
    PROVISIONAL_GAMES,
    RATING_CATEGORIES,
    RATING_FLOOR,
    RATING_SCALE,
)


class GameOutcome(str, Enum):
    """Result of a match from player 1's point of view."""

    PLAYER1_WINS = "player1_wins"
    PLAYER2_WINS = "player2_wins"
    DRAW = "draw"


# Actual scores per outcome: (player 1, player 2)
_ACTUAL_SCORES: dict[GameOutcome, tuple[float, float]] = {
    GameOutcome.PLAYER1_WINS: (1.0, 0.0),
    GameOutcome.PLAYER2_WINS: (0.0, 1.0),
    GameOutcome.DRAW: (0.5, 0.5),
}


@dataclass(frozen=True)
class PlayerRating:
    """The slice of a player the rating engine needs."""

    player_id: int
    rating: int
    games_played: int


@dataclass
class RatingUpdate:
    """
    Result of a rating calculation.

    Contains everything the orchestrator needs to write history rows
    and explain what happened.
    """
    # Ratings before the match
    player1_before: int
    player2_before: int

    # Ratings after the match (bounded)
    player1_after: int
    player2_after: int

    # Expected scores before the match
    expected1: float
    expected2: float

    # K factors used
    k_factor1: int
    k_factor2: int

    outcome: GameOutcome

    @property
    def player1_change(self) -> int:
        """Rating change for player 1."""
        return self.player1_after - self.player1_before

    @property
    def player2_change(self) -> int:
        """Rating change for player 2."""
        return self.player2_after - self.player2_before

    def __repr__(self) -> str:
        return (
            f"<RatingUpdate(P1: {self.player1_before} -> {self.player1_after}, "
            f"P2: {self.player2_before} -> {self.player2_after}, "
            f"outcome={self.outcome.value})>"
        )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves upward (-2.5 -> -2, 2.5 -> 3)."""
    return math.floor(value + 0.5)


def expected_score(rating_a: float, rating_b: float) -> float:
    """
    Probability-like expected score of player A against player B.

    expected_score(a, b) + expected_score(b, a) == 1 for any pair.
    """
    return 1.0 / (1.0 + 10 ** ((rating_b - rating_a) / RATING_SCALE))


def k_factor(rating: int, games_played: int) -> int:
    """
    K factor for a player.

    Provisional status takes precedence: a new player rated above
    EXPERT_RATING still uses the new-player K.
    """
    if games_played < PROVISIONAL_GAMES:
        return K_FACTOR_NEW_PLAYER
    if rating >= EXPERT_RATING:
        return K_FACTOR_EXPERT
    return K_FACTOR_REGULAR


def apply_rating_bounds(rating: int, games_played: int) -> int:
    """Clamp a rating to the absolute bounds and the established floor."""
    bounded = max(MIN_RATING, min(MAX_RATING, rating))
    if games_played >= PROVISIONAL_GAMES:
        bounded = max(RATING_FLOOR, bounded)
    return bounded


def validate_rating_inputs(
    player1: PlayerRating,
    player2: PlayerRating,
    outcome: GameOutcome | str,
) -> GameOutcome:
    """
    Check the inputs of a rating calculation.

    Returns:
        The outcome coerced to GameOutcome

    Raises:
        ValidationError: if a player is missing, a rating is out of bounds,
            the outcome is unknown, or both sides are the same player
    """
    if player1 is None or player2 is None:
        raise ValidationError("Both players must be provided")

    for player in (player1, player2):
        if isinstance(player.rating, bool) or not isinstance(player.rating, (int, float)):
            raise ValidationError("Player ratings must be numbers")
        if player.rating < MIN_RATING or player.rating > MAX_RATING:
            raise ValidationError(
                f"Player rating {player.rating} outside [{MIN_RATING}, {MAX_RATING}]"
            )

    try:
        outcome = GameOutcome(outcome)
    except ValueError:
        raise ValidationError(f"Invalid game result: {outcome!r}") from None

    if player1.player_id == player2.player_id:
        raise ValidationError("Players cannot play against themselves")

    return outcome


def calculate_new_ratings(
    player1: PlayerRating,
    player2: PlayerRating,
    outcome: GameOutcome | str,
) -> RatingUpdate:
    """
    Calculate new ratings after a match.

    Args:
        player1: Player 1's rating and games played before the match
        player2: Player 2's rating and games played before the match
        outcome: Who won, or DRAW

    Returns:
        RatingUpdate with both new ratings, expected scores and K factors

    Raises:
        ValidationError: on invalid inputs (see validate_rating_inputs)

    Example:
        # Two provisional 1200 players, player 1 wins
        update = calculate_new_ratings(
            PlayerRating(1, 1200, 0), PlayerRating(2, 1200, 0),
            GameOutcome.PLAYER1_WINS,
        )
        # update.player1_after == 1216, update.player2_after == 1184
    """
    outcome = validate_rating_inputs(player1, player2, outcome)

    expected1 = expected_score(player1.rating, player2.rating)
    expected2 = 1.0 - expected1
    actual1, actual2 = _ACTUAL_SCORES[outcome]

    k1 = k_factor(player1.rating, player1.games_played)
    k2 = k_factor(player2.rating, player2.games_played)

    change1 = round_half_up(k1 * (actual1 - expected1))
    change2 = round_half_up(k2 * (actual2 - expected2))

    # Bounds use the games played before this match
    new1 = apply_rating_bounds(int(player1.rating) + change1, player1.games_played)
    new2 = apply_rating_bounds(int(player2.rating) + change2, player2.games_played)

    return RatingUpdate(
        player1_before=int(player1.rating),
        player2_before=int(player2.rating),
        player1_after=new1,
        player2_after=new2,
        expected1=expected1,
        expected2=expected2,
        k_factor1=k1,
        k_factor2=k2,
        outcome=outcome,
    )


def win_probabilities(rating_a: float, rating_b: float) -> dict[str, float]:
    """
    Win/draw/loss probabilities for a prospective match.

    The draw share shrinks as the matchup becomes more lopsided. Values are
    rounded to two decimals independently, so they need not sum to 1.
    """
    expected_a = expected_score(rating_a, rating_b)
    expected_b = expected_score(rating_b, rating_a)
    draw = DRAW_RATE * (1 - abs(expected_a - expected_b))

    return {
        "player1_win": round_half_up(expected_a * (1 - draw) * 100) / 100,
        "player2_win": round_half_up(expected_b * (1 - draw) * 100) / 100,
        "draw": round_half_up(draw * 100) / 100,
    }


@dataclass
class RatingConfidence:
    """Confidence interval around a rating."""

    rating: int
    lower: int
    upper: int
    confidence: float
    deviation: float


def rating_confidence(rating: int, games_played: int) -> RatingConfidence:
    """
    Estimate how trustworthy a rating is from the number of games behind it.

    The deviation starts at BASE_DEVIATION and shrinks with sqrt(games).
    """
    deviation = BASE_DEVIATION / math.sqrt(1 + games_played / DEVIATION_GAMES_SCALE)
    confidence = 100 - (deviation / BASE_DEVIATION) * 100

    return RatingConfidence(
        rating=rating,
        lower=round_half_up(rating - CONFIDENCE_Z * deviation),
        upper=round_half_up(rating + CONFIDENCE_Z * deviation),
        confidence=max(0.0, min(100.0, confidence)),
        deviation=deviation,
    )


def rating_category(rating: int) -> str:
    """Display category for a rating (Grandmaster down to Novice)."""
    for minimum, name in RATING_CATEGORIES:
        if rating >= minimum:
            return name
    return DEFAULT_CATEGORY

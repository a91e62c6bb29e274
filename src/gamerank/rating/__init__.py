"""
ELO rating engine for GameRank.

Stateless functions over integer ratings:
- calculator: expected scores, K factors, bounded updates, predictions
- decay: inactivity decay for established players
- constants: K factors, bounds and thresholds
"""

from gamerank.rating.calculator import (
    GameOutcome,
    PlayerRating,
    RatingConfidence,
    RatingUpdate,
    apply_rating_bounds,
    calculate_new_ratings,
    expected_score,
    k_factor,
    rating_category,
    rating_confidence,
    validate_rating_inputs,
    win_probabilities,
)
from gamerank.rating.decay import calculate_rating_decay

__all__ = [
    "GameOutcome",
    "PlayerRating",
    "RatingConfidence",
    "RatingUpdate",
    "apply_rating_bounds",
    "calculate_new_ratings",
    "calculate_rating_decay",
    "expected_score",
    "k_factor",
    "rating_category",
    "rating_confidence",
    "validate_rating_inputs",
    "win_probabilities",
]

"""
Inactivity decay for ratings.

When an established player hasn't played for a while their rating becomes
less reliable. Past the threshold the rating shrinks by a fixed percentage
per excess day, compounding, but never below RATING_FLOOR.

Formula:
    new_rating = round(rating * (1 - rate) ** excess_days)

Where excess_days = days_inactive - threshold
"""

from gamerank.rating.calculator import round_half_up
from gamerank.rating.constants import (
    INACTIVITY_DECAY_RATE,
    INACTIVITY_DECAY_THRESHOLD,
    RATING_FLOOR,
)


def calculate_rating_decay(
    rating: int,
    days_inactive: int,
    threshold: int = INACTIVITY_DECAY_THRESHOLD,
    decay_rate: float = INACTIVITY_DECAY_RATE,
) -> int:
    """
    Apply inactivity decay to a rating.

    Args:
        rating: Current rating
        days_inactive: Whole calendar days since the last match
        threshold: Days of inactivity tolerated without decay
        decay_rate: Fraction lost per day past the threshold

    Returns:
        Decayed rating (unchanged within the threshold)

    Examples:
        calculate_rating_decay(1500, 90)   # -> 1500
        calculate_rating_decay(1500, 91)   # -> 1470
        calculate_rating_decay(900, 200)   # -> 800 (floor)
    """
    if days_inactive <= threshold:
        return rating

    excess_days = days_inactive - threshold
    decayed = round_half_up(rating * (1 - decay_rate) ** excess_days)

    return max(RATING_FLOOR, decayed)

"""
Achievement condition registry.

Every achievement definition names a condition_type and a threshold
(condition_value). The registry maps each condition_type to an evaluator:

    evaluator(ctx: AchievementContext, threshold: int) -> bool

and optionally a progress function returning the player's current value
on the same scale as the threshold. New kinds of achievement register
here; the evaluator and match processing never change for them.

Built-in kinds:
- Threshold:  total_wins, win_streak, games_played, rating_reached
- Match:      fast_win, long_win
- History:    daily_streak, perfect_week, comeback_wins
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from gamerank.db import queries
from gamerank.db.models import Player

# Trailing window scanned for perfect_week
PERFECT_WEEK_DAYS = 7

# Trailing window counted as daily_streak progress
DAILY_STREAK_PROGRESS_DAYS = 30


@dataclass
class AchievementContext:
    """
    Everything a condition may look at.

    player holds the counters after the current match. For progress
    queries outside a match, is_win is False and duration_seconds is None.
    """
    session: Session
    player: Player
    now: datetime
    is_win: bool = False
    duration_seconds: Optional[int] = None
    match_id: Optional[str] = None


Evaluator = Callable[[AchievementContext, int], bool]
Progress = Callable[[AchievementContext], int]


@dataclass
class Condition:
    condition_type: str
    evaluate: Evaluator
    progress: Optional[Progress] = None


@dataclass
class ConditionRegistry:
    """Lookup table from condition_type to its evaluator."""

    conditions: dict[str, Condition] = field(default_factory=dict)

    def register(
        self,
        condition_type: str,
        progress: Optional[Progress] = None,
    ) -> Callable[[Evaluator], Evaluator]:
        """
        Decorator registering an evaluator for a condition type.

        Example:
            @registry.register("total_wins", progress=lambda ctx: ctx.player.games_won)
            def total_wins(ctx, threshold):
                return ctx.player.games_won >= threshold
        """
        def decorator(func: Evaluator) -> Evaluator:
            self.conditions[condition_type] = Condition(condition_type, func, progress)
            return func
        return decorator

    def get(self, condition_type: str) -> Optional[Condition]:
        return self.conditions.get(condition_type)

    def __contains__(self, condition_type: str) -> bool:
        return condition_type in self.conditions

    def copy(self) -> "ConditionRegistry":
        return ConditionRegistry(dict(self.conditions))


default_registry = ConditionRegistry()


# =============================================================================
# Threshold conditions
# =============================================================================

@default_registry.register("total_wins", progress=lambda ctx: ctx.player.games_won)
def total_wins(ctx: AchievementContext, threshold: int) -> bool:
    return ctx.player.games_won >= threshold


@default_registry.register("win_streak", progress=lambda ctx: ctx.player.longest_win_streak)
def win_streak(ctx: AchievementContext, threshold: int) -> bool:
    # Best streak ever, so a streak broken before the evaluator ran still counts
    return ctx.player.longest_win_streak >= threshold


@default_registry.register("games_played", progress=lambda ctx: ctx.player.games_played)
def games_played(ctx: AchievementContext, threshold: int) -> bool:
    return ctx.player.games_played >= threshold


@default_registry.register("rating_reached", progress=lambda ctx: ctx.player.rating)
def rating_reached(ctx: AchievementContext, threshold: int) -> bool:
    return ctx.player.rating >= threshold


# =============================================================================
# Match conditions
# =============================================================================

@default_registry.register("fast_win")
def fast_win(ctx: AchievementContext, threshold: int) -> bool:
    return ctx.is_win and ctx.duration_seconds is not None and ctx.duration_seconds <= threshold


@default_registry.register("long_win")
def long_win(ctx: AchievementContext, threshold: int) -> bool:
    return ctx.is_win and ctx.duration_seconds is not None and ctx.duration_seconds >= threshold


# =============================================================================
# History conditions
# =============================================================================

def _daily_streak_progress(ctx: AchievementContext) -> int:
    since = ctx.now - timedelta(days=DAILY_STREAK_PROGRESS_DAYS)
    return len(queries.match_days(ctx.session, ctx.player.id, since))


@default_registry.register("daily_streak", progress=_daily_streak_progress)
def daily_streak(ctx: AchievementContext, threshold: int) -> bool:
    """The most recent `threshold` match days in the window are consecutive."""
    if threshold <= 0:
        return True

    days = queries.match_days(ctx.session, ctx.player.id, ctx.now - timedelta(days=threshold))
    if len(days) < threshold:
        return False

    recent = days[:threshold]
    return all(
        (recent[i] - recent[i + 1]).days == 1
        for i in range(len(recent) - 1)
    )


@default_registry.register("perfect_week")
def perfect_week(ctx: AchievementContext, threshold: int) -> bool:
    """At least `threshold` matches in the last week, every one of them won."""
    since = ctx.now - timedelta(days=PERFECT_WEEK_DAYS)
    total, wins = queries.results_since(ctx.session, ctx.player.id, since)
    return total >= threshold and total == wins


def _comeback_progress(ctx: AchievementContext) -> int:
    return queries.comeback_win_count(ctx.session, ctx.player.id)


@default_registry.register("comeback_wins", progress=_comeback_progress)
def comeback_wins(ctx: AchievementContext, threshold: int) -> bool:
    return _comeback_progress(ctx) >= threshold

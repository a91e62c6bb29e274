"""
Achievements for GameRank.

- conditions: registry of condition evaluators keyed by condition_type
- evaluator: awards newly satisfied achievements, reports progress
- catalogue: default achievement definitions and seeding
"""

from gamerank.achievements.catalogue import DEFAULT_ACHIEVEMENTS, seed_achievements
from gamerank.achievements.conditions import (
    AchievementContext,
    ConditionRegistry,
    default_registry,
)
from gamerank.achievements.evaluator import (
    AchievementEvaluator,
    AchievementProgress,
    EarnedAchievement,
    achievement_progress,
)

__all__ = [
    "DEFAULT_ACHIEVEMENTS",
    "seed_achievements",
    "AchievementContext",
    "ConditionRegistry",
    "default_registry",
    "AchievementEvaluator",
    "AchievementProgress",
    "EarnedAchievement",
    "achievement_progress",
]

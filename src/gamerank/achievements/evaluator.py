"""
Achievement evaluation.

After a match has been applied to a player's counters, every active
achievement the player has not yet earned is checked against the
condition registry. Conditions that hold produce a PlayerAchievement row
with progress 100 in the same transaction as the match.

Whether an achievement is already earned is decided by the stored
(player, achievement) pair, never by re-running the condition, so an
achievement is awarded at most once.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from gamerank.achievements.conditions import (
    AchievementContext,
    ConditionRegistry,
    default_registry,
)
from gamerank.db.models import Achievement, PlayerAchievement, utcnow
from gamerank.db.queries import get_player

logger = logging.getLogger(__name__)


@dataclass
class EarnedAchievement:
    """An achievement unlocked by a match, as reported to callers."""
    achievement_id: int
    name: str
    description: str
    category: str
    points: int
    icon_url: Optional[str] = None

    @classmethod
    def from_model(cls, achievement: Achievement) -> "EarnedAchievement":
        return cls(
            achievement_id=achievement.id,
            name=achievement.name,
            description=achievement.description,
            category=achievement.category,
            points=achievement.points,
            icon_url=achievement.icon_url,
        )

    def to_dict(self) -> dict:
        return asdict(self)


class AchievementEvaluator:
    """
    Checks achievement conditions for a player and records new unlocks.

    Usage:
        evaluator = AchievementEvaluator()
        ctx = AchievementContext(session=session, player=player, now=now,
                                 is_win=True, duration_seconds=95, match_id="m-1")
        earned = evaluator.evaluate(ctx)
    """

    def __init__(self, registry: Optional[ConditionRegistry] = None):
        self.registry = registry or default_registry

    def unearned_achievements(self, session: Session, player_id: int) -> list[Achievement]:
        """Active achievements the player has not earned yet."""
        earned_ids = select(PlayerAchievement.achievement_id).where(
            PlayerAchievement.player_id == player_id
        )
        return (
            session.query(Achievement)
            .filter(Achievement.is_active.is_(True))
            .filter(Achievement.id.not_in(earned_ids))
            .order_by(Achievement.id)
            .all()
        )

    def is_satisfied(self, ctx: AchievementContext, achievement: Achievement) -> bool:
        """Run the achievement's condition; unknown condition types never hold."""
        condition = self.registry.get(achievement.condition_type)
        if condition is None:
            logger.warning(
                "Unknown achievement condition type '%s' (achievement '%s')",
                achievement.condition_type, achievement.name,
            )
            return False
        return bool(condition.evaluate(ctx, achievement.condition_value))

    def evaluate(self, ctx: AchievementContext) -> list[EarnedAchievement]:
        """
        Award every newly satisfied achievement to ctx.player.

        Runs inside the caller's transaction. The player's counters must
        already include the current match, and the match record must be
        flushed so history conditions can see it.

        Returns:
            Achievements unlocked now (empty if none)
        """
        session = ctx.session
        earned: list[EarnedAchievement] = []

        for achievement in self.unearned_achievements(session, ctx.player.id):
            if not self.is_satisfied(ctx, achievement):
                continue

            session.add(
                PlayerAchievement(
                    player_id=ctx.player.id,
                    achievement_id=achievement.id,
                    earned_at=ctx.now,
                    progress=100,
                    match_id=ctx.match_id,
                )
            )
            earned.append(EarnedAchievement.from_model(achievement))

        if earned:
            session.flush()
            logger.info(
                "Player %s earned %d achievement(s): %s",
                ctx.player.id, len(earned), ", ".join(a.name for a in earned),
            )
        return earned


# =============================================================================
# Progress report
# =============================================================================

@dataclass
class AchievementProgress:
    """A player's earned and outstanding achievements."""
    player_id: int
    earned: list[dict] = field(default_factory=list)
    available: list[dict] = field(default_factory=list)
    total_points: int = 0

    @property
    def total_earned(self) -> int:
        return len(self.earned)

    @property
    def total_available(self) -> int:
        return len(self.earned) + len(self.available)

    @property
    def completion_percentage(self) -> float:
        if not self.total_available:
            return 0.0
        return round(self.total_earned / self.total_available * 100, 2)

    def by_category(self, earned: bool = True) -> dict[str, list[dict]]:
        """Group earned (or available) achievements by category."""
        groups: dict[str, list[dict]] = {}
        for item in self.earned if earned else self.available:
            groups.setdefault(item["category"], []).append(item)
        return groups


def achievement_progress(
    session: Session,
    player_id: int,
    registry: Optional[ConditionRegistry] = None,
    now: Optional[datetime] = None,
) -> AchievementProgress:
    """
    Report what a player has earned and how close they are to the rest.

    Progress is the player's current value on the threshold's scale (wins,
    best streak, rating, ...); condition types without a progress measure
    report 0. progress_percentage is capped at 100.

    Raises:
        NotFoundError: if the player does not exist
    """
    registry = registry or default_registry
    player = get_player(session, player_id)
    ctx = AchievementContext(session=session, player=player, now=now or utcnow())

    earned_rows = (
        session.query(PlayerAchievement, Achievement)
        .join(Achievement, Achievement.id == PlayerAchievement.achievement_id)
        .filter(PlayerAchievement.player_id == player_id)
        .order_by(PlayerAchievement.earned_at.desc(), Achievement.id)
        .all()
    )
    report = AchievementProgress(player_id=player_id)
    for unlock, achievement in earned_rows:
        report.earned.append({
            **EarnedAchievement.from_model(achievement).to_dict(),
            "earned_at": unlock.earned_at,
            "progress": unlock.progress,
        })
        report.total_points += achievement.points

    evaluator = AchievementEvaluator(registry)
    pending = sorted(
        evaluator.unearned_achievements(session, player_id),
        key=lambda a: (a.category, a.condition_value),
    )
    for achievement in pending:
        condition = registry.get(achievement.condition_type)
        value = condition.progress(ctx) if condition and condition.progress else 0
        percentage = (
            min(100.0, value / achievement.condition_value * 100)
            if achievement.condition_value > 0 else 100.0
        )
        report.available.append({
            **EarnedAchievement.from_model(achievement).to_dict(),
            "condition_type": achievement.condition_type,
            "condition_value": achievement.condition_value,
            "progress": value,
            "progress_percentage": round(percentage, 2),
        })

    return report

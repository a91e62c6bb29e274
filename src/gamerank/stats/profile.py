"""
Read-only statistics report for a single player.

Collects what a profile page shows: counters with derived rates, the most
recent matches from the player's side, recent rating history, earned
achievements and a day-by-day performance trend.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import case, or_
from sqlalchemy.orm import Session, aliased

from gamerank.db.models import (
    Achievement,
    MatchRecord,
    Player,
    PlayerAchievement,
    RatingHistoryEntry,
    utcnow,
)
from gamerank.db.queries import get_player
from gamerank.rating.calculator import round_half_up

RECENT_MATCHES_LIMIT = 10
RATING_HISTORY_LIMIT = 30
TREND_DAYS = 30


@dataclass
class DailyPerformance:
    """One calendar day of a player's matches."""
    day: date
    games: int = 0
    wins: int = 0
    average_rating: float = 0.0


@dataclass
class PlayerStatistics:
    """Everything the statistics report holds for one player."""
    player_id: int
    username: str
    rating: int
    games_played: int
    games_won: int
    games_lost: int
    games_drawn: int
    current_streak: int
    longest_win_streak: int
    total_playtime_seconds: int
    average_moves_per_game: float
    ranking_percentile: Optional[float]
    last_match_at: Optional[datetime]
    win_rate: float = 0.0
    loss_rate: float = 0.0
    draw_rate: float = 0.0
    average_game_duration: int = 0
    recent_matches: list[dict] = field(default_factory=list)
    rating_history: list[dict] = field(default_factory=list)
    achievements: list[dict] = field(default_factory=list)
    performance_trend: list[DailyPerformance] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _rate(count: int, total: int) -> float:
    return round(count / total * 100, 2) if total else 0.0


def _recent_matches(session: Session, player: Player, limit: int) -> list[dict]:
    opponent = aliased(Player)
    opponent_id = case(
        (MatchRecord.player1_id == player.id, MatchRecord.player2_id),
        else_=MatchRecord.player1_id,
    )
    rows = (
        session.query(MatchRecord, opponent.username)
        .join(opponent, opponent.id == opponent_id)
        .filter(or_(MatchRecord.player1_id == player.id, MatchRecord.player2_id == player.id))
        .order_by(MatchRecord.played_at.desc(), MatchRecord.id.desc())
        .limit(limit)
        .all()
    )

    matches = []
    for record, opponent_name in rows:
        is_player1 = record.player1_id == player.id
        before = record.player1_rating_before if is_player1 else record.player2_rating_before
        after = record.player1_rating_after if is_player1 else record.player2_rating_after
        if record.winner_id is None:
            result = "draw"
        elif record.winner_id == player.id:
            result = "win"
        else:
            result = "loss"
        matches.append({
            "match_id": record.match_id,
            "played_at": record.played_at,
            "opponent_id": record.player2_id if is_player1 else record.player1_id,
            "opponent_username": opponent_name,
            "result": result,
            "match_type": record.match_type,
            "duration_seconds": record.duration_seconds,
            "moves": record.player1_moves if is_player1 else record.player2_moves,
            "rating_before": before,
            "rating_after": after,
            "rating_change": after - before,
        })
    return matches


def _performance_trend(
    session: Session, player_id: int, now: datetime, days: int
) -> list[DailyPerformance]:
    since = datetime.combine(now.date() - timedelta(days=days), time.min)
    records = (
        session.query(MatchRecord)
        .filter(or_(MatchRecord.player1_id == player_id, MatchRecord.player2_id == player_id))
        .filter(MatchRecord.played_at >= since)
        .order_by(MatchRecord.played_at)
        .all()
    )

    trend: dict[date, DailyPerformance] = {}
    ratings: dict[date, list[int]] = {}
    for record in records:
        day = record.played_at.date()
        entry = trend.setdefault(day, DailyPerformance(day=day))
        entry.games += 1
        if record.winner_id == player_id:
            entry.wins += 1
        ratings.setdefault(day, []).append(
            record.player1_rating_after if record.player1_id == player_id
            else record.player2_rating_after
        )

    for day, entry in trend.items():
        entry.average_rating = round(sum(ratings[day]) / len(ratings[day]), 2)
    return [trend[day] for day in sorted(trend)]


def player_statistics(
    session: Session,
    player_id: int,
    now: Optional[datetime] = None,
    recent_limit: int = RECENT_MATCHES_LIMIT,
    history_limit: int = RATING_HISTORY_LIMIT,
    trend_days: int = TREND_DAYS,
) -> PlayerStatistics:
    """
    Build the statistics report for a player.

    Rates are percentages of games played (two decimals, 0 with no games);
    average_game_duration is whole seconds, rounded half up. The trend
    covers the last trend_days calendar days, one entry per day with a
    match.

    Raises:
        NotFoundError: if the player does not exist
    """
    now = now or utcnow()
    player = get_player(session, player_id)
    played = player.games_played

    history = (
        session.query(RatingHistoryEntry)
        .filter(RatingHistoryEntry.player_id == player_id)
        .order_by(RatingHistoryEntry.created_at.desc(), RatingHistoryEntry.id.desc())
        .limit(history_limit)
        .all()
    )
    unlocks = (
        session.query(PlayerAchievement, Achievement)
        .join(Achievement, Achievement.id == PlayerAchievement.achievement_id)
        .filter(PlayerAchievement.player_id == player_id)
        .order_by(PlayerAchievement.earned_at.desc(), Achievement.id)
        .all()
    )

    return PlayerStatistics(
        player_id=player.id,
        username=player.username,
        rating=player.rating,
        games_played=played,
        games_won=player.games_won,
        games_lost=player.games_lost,
        games_drawn=player.games_drawn,
        current_streak=player.current_streak,
        longest_win_streak=player.longest_win_streak,
        total_playtime_seconds=player.total_playtime_seconds,
        average_moves_per_game=player.average_moves_per_game,
        ranking_percentile=player.ranking_percentile,
        last_match_at=player.last_match_at,
        win_rate=_rate(player.games_won, played),
        loss_rate=_rate(player.games_lost, played),
        draw_rate=_rate(player.games_drawn, played),
        average_game_duration=(
            round_half_up(player.total_playtime_seconds / played) if played else 0
        ),
        recent_matches=_recent_matches(session, player, recent_limit),
        rating_history=[
            {
                "old_rating": entry.old_rating,
                "new_rating": entry.new_rating,
                "rating_change": entry.rating_change,
                "reason": entry.reason,
                "match_id": entry.match_id,
                "created_at": entry.created_at,
            }
            for entry in history
        ],
        achievements=[
            {
                "name": achievement.name,
                "description": achievement.description,
                "category": achievement.category,
                "points": achievement.points,
                "earned_at": unlock.earned_at,
                "match_id": unlock.match_id,
            }
            for unlock, achievement in unlocks
        ],
        performance_trend=_performance_trend(session, player_id, now, trend_days),
    )

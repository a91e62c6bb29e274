"""
Common read queries.

Small helpers shared by the services so the same question is always asked
the same way: player lookup, idempotency lookup, population selections for
the batch jobs, and the match-history scans behind history achievements.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from gamerank.db.models import MatchRecord, Player
from gamerank.errors import NotFoundError
from gamerank.rating.constants import PROVISIONAL_GAMES, RATING_FLOOR


def get_player(session: Session, player_id: int) -> Player:
    """Load a player or raise NotFoundError."""
    player = session.get(Player, player_id)
    if player is None:
        raise NotFoundError(f"Player {player_id} not found")
    return player


def find_match_record(session: Session, match_id: str) -> Optional[MatchRecord]:
    return session.query(MatchRecord).filter(MatchRecord.match_id == match_id).first()


def percentile_population(session: Session, min_games: int) -> list[tuple[int, int]]:
    """(player_id, rating) of every player with at least min_games games."""
    rows = (
        session.query(Player.id, Player.rating)
        .filter(Player.games_played >= min_games)
        .order_by(Player.id)
        .all()
    )
    return [(row.id, row.rating) for row in rows]


def stale_percentile_players(session: Session, min_games: int) -> list[int]:
    """Ids of players below min_games who still carry a percentile."""
    rows = (
        session.query(Player.id)
        .filter(Player.games_played < min_games)
        .filter(Player.ranking_percentile.is_not(None))
        .order_by(Player.id)
        .all()
    )
    return [row.id for row in rows]


def calendar_days_between(earlier: datetime, later: datetime) -> int:
    """Whole calendar days from earlier to later (time of day ignored)."""
    return (later.date() - earlier.date()).days


def inactive_players(
    session: Session,
    now: datetime,
    days_threshold: int,
    min_games: int = PROVISIONAL_GAMES,
    rating_floor: int = RATING_FLOOR,
) -> list[tuple[int, int]]:
    """
    Established players inactive for more than days_threshold calendar days.

    Inactivity counts from the last match, or from account creation for a
    player with no recorded match.

    Returns:
        (player_id, days_inactive) pairs ordered by player id
    """
    last_activity = func.coalesce(Player.last_match_at, Player.created_at)

    # Last activity on or before this day means more than days_threshold days
    cutoff = datetime.combine(now.date() - timedelta(days=days_threshold), time.min)

    rows = (
        session.query(Player.id, Player.last_match_at, Player.created_at)
        .filter(Player.games_played >= min_games)
        .filter(Player.rating > rating_floor)
        .filter(last_activity < cutoff)
        .order_by(Player.id)
        .all()
    )

    result = []
    for row in rows:
        reference = row.last_match_at or row.created_at
        days = calendar_days_between(reference, now)
        if days > days_threshold:
            result.append((row.id, days))
    return result


def _involving(player_id: int):
    return or_(MatchRecord.player1_id == player_id, MatchRecord.player2_id == player_id)


def match_days(session: Session, player_id: int, since: datetime) -> list[date]:
    """Distinct calendar days with a match since the given time, newest first."""
    rows = (
        session.query(MatchRecord.played_at)
        .filter(_involving(player_id))
        .filter(MatchRecord.played_at >= since)
        .all()
    )
    return sorted({row.played_at.date() for row in rows}, reverse=True)


def results_since(session: Session, player_id: int, since: datetime) -> tuple[int, int]:
    """(matches, wins) for a player since the given time."""
    total = (
        session.query(func.count(MatchRecord.id))
        .filter(_involving(player_id))
        .filter(MatchRecord.played_at >= since)
        .scalar()
    )
    wins = (
        session.query(func.count(MatchRecord.id))
        .filter(MatchRecord.winner_id == player_id)
        .filter(MatchRecord.played_at >= since)
        .scalar()
    )
    return total or 0, wins or 0


def comeback_win_count(session: Session, player_id: int) -> int:
    """Wins where the player went in rated below the opponent."""
    count = (
        session.query(func.count(MatchRecord.id))
        .filter(MatchRecord.winner_id == player_id)
        .filter(
            or_(
                and_(
                    MatchRecord.player1_id == player_id,
                    MatchRecord.player1_rating_before < MatchRecord.player2_rating_before,
                ),
                and_(
                    MatchRecord.player2_id == player_id,
                    MatchRecord.player2_rating_before < MatchRecord.player1_rating_before,
                ),
            )
        )
        .scalar()
    )
    return count or 0


def head_to_head(session: Session, player1_id: int, player2_id: int) -> dict:
    """
    Record between two players across every processed match.

    Returns:
        Dict with total_games, player1_wins, player2_wins, draws and
        player1_win_rate (percent of all games, 2 decimals)
    """
    rows = (
        session.query(MatchRecord.winner_id)
        .filter(
            or_(
                and_(MatchRecord.player1_id == player1_id, MatchRecord.player2_id == player2_id),
                and_(MatchRecord.player1_id == player2_id, MatchRecord.player2_id == player1_id),
            )
        )
        .all()
    )

    total = len(rows)
    player1_wins = sum(1 for row in rows if row.winner_id == player1_id)
    player2_wins = sum(1 for row in rows if row.winner_id == player2_id)
    draws = total - player1_wins - player2_wins

    return {
        "total_games": total,
        "player1_wins": player1_wins,
        "player2_wins": player2_wins,
        "draws": draws,
        "player1_win_rate": round(player1_wins / total * 100, 2) if total else 0.0,
    }

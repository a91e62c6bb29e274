"""
Leaderboard projection.

The leaderboard is derived from the players table and can be rebuilt at
any time. Ranking order:

1. rating (descending)
2. wins (descending)
3. win percentage (descending)
4. player id (ascending, so ties are stable)

Only players with at least min_games games are ranked. Each rebuild keeps
the previous rank, so rank_change shows movement since the last rebuild
(positive = climbed), and highest_rank remembers the best rank reached.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from gamerank.config import settings
from gamerank.db.models import LeaderboardEntry, Player, utcnow

logger = logging.getLogger(__name__)


@dataclass
class LeaderboardRebuildStats:
    """Statistics from a leaderboard rebuild."""
    ranked_players: int = 0
    new_entries: int = 0
    removed_entries: int = 0

    def summary(self) -> str:
        """Return a human-readable summary of the rebuild."""
        return (
            f"Leaderboard rebuilt: {self.ranked_players} ranked, "
            f"{self.new_entries} new, {self.removed_entries} removed"
        )


def _win_percentage(player: Player) -> float:
    if not player.games_played:
        return 0.0
    return round(player.games_won / player.games_played * 100, 2)


def rebuild_leaderboard(session: Session, min_games: Optional[int] = None) -> LeaderboardRebuildStats:
    """
    Recompute every leaderboard entry from the players table.

    Runs inside the caller's transaction.
    """
    if min_games is None:
        min_games = settings.leaderboard_min_games

    players = (
        session.query(Player)
        .filter(Player.games_played >= min_games)
        .all()
    )
    players.sort(key=lambda p: (-p.rating, -p.games_won, -_win_percentage(p), p.id))

    existing = {entry.player_id: entry for entry in session.query(LeaderboardEntry).all()}
    stats = LeaderboardRebuildStats(ranked_players=len(players))
    now = utcnow()

    for rank, player in enumerate(players, start=1):
        entry = existing.pop(player.id, None)
        if entry is None:
            entry = LeaderboardEntry(player_id=player.id, highest_rank=rank, previous_rank=None)
            session.add(entry)
            stats.new_entries += 1
            entry.rank_change = 0
        else:
            entry.previous_rank = entry.rank
            entry.rank_change = entry.rank - rank
            entry.highest_rank = min(entry.highest_rank, rank)

        entry.rank = rank
        entry.rating = player.rating
        entry.wins = player.games_won
        entry.losses = player.games_lost
        entry.draws = player.games_drawn
        entry.games_played = player.games_played
        entry.win_percentage = _win_percentage(player)
        entry.updated_at = now

    # Players that no longer qualify
    for entry in existing.values():
        session.delete(entry)
        stats.removed_entries += 1

    session.flush()
    logger.info(stats.summary())
    return stats


@dataclass
class LeaderboardPage:
    """One page of the leaderboard."""
    entries: list[dict] = field(default_factory=list)
    page: int = 1
    limit: int = 50
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def get_leaderboard(session: Session, page: int = 1, limit: int = 50) -> LeaderboardPage:
    """
    Read a page of the current leaderboard projection.

    Args:
        page: 1-based page number (values below 1 are treated as 1)
        limit: Entries per page (clamped to 1-100)
    """
    page = max(1, page)
    limit = max(1, min(100, limit))

    total = session.query(LeaderboardEntry).count()
    rows = (
        session.query(LeaderboardEntry, Player.username)
        .join(Player, Player.id == LeaderboardEntry.player_id)
        .order_by(LeaderboardEntry.rank)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    entries = [
        {
            "rank": entry.rank,
            "player_id": entry.player_id,
            "username": username,
            "rating": entry.rating,
            "wins": entry.wins,
            "losses": entry.losses,
            "draws": entry.draws,
            "games_played": entry.games_played,
            "win_percentage": entry.win_percentage,
            "previous_rank": entry.previous_rank,
            "rank_change": entry.rank_change,
            "highest_rank": entry.highest_rank,
        }
        for entry, username in rows
    ]
    return LeaderboardPage(entries=entries, page=page, limit=limit, total=total)

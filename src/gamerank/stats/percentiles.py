"""
Population ranking percentiles.

A player's percentile is the share of the qualifying population rated at
or below them:

    percentile = 100 * (count(rating <= own) - 1) / (count(qualifying) - 1)

rounded to two decimals. The best-rated player sits at 100, the worst at 0,
and a lone qualifying player gets 100. Players below the minimum number of
games have no percentile (NULL).

Percentiles move for everyone whenever anyone's rating changes, so a
refresh always rewrites the whole population.
"""

import logging
from bisect import bisect_right
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import bindparam
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from gamerank.db.models import Player
from gamerank.db.queries import percentile_population, stale_percentile_players
from gamerank.tasks.locks import PERCENTILE_WRITE_LOCK, transaction_lock

logger = logging.getLogger(__name__)


@dataclass
class PercentileRefreshStats:
    """Statistics from a percentile refresh."""
    qualifying_players: int = 0
    cleared_players: int = 0
    min_games: int = 0

    def summary(self) -> str:
        """Return a human-readable summary of the refresh."""
        return (
            f"Percentile refresh complete: {self.qualifying_players} ranked, "
            f"{self.cleared_players} cleared (min games {self.min_games})"
        )


def compute_percentiles(ratings: dict[int, int]) -> dict[int, float]:
    """
    Percentile of every player in a population.

    Args:
        ratings: player_id -> rating for the qualifying population

    Returns:
        player_id -> percentile (0-100, 2 decimals)
    """
    count = len(ratings)
    if count == 0:
        return {}
    if count == 1:
        return {player_id: 100.0 for player_id in ratings}

    ordered = sorted(ratings.values())
    return {
        player_id: round(100 * (bisect_right(ordered, rating) - 1) / (count - 1), 2)
        for player_id, rating in ratings.items()
    }


def refresh_ranking_percentiles(session: Session, min_games: int = 10) -> PercentileRefreshStats:
    """
    Recompute ranking_percentile for the whole population.

    Runs inside the caller's transaction, which should hold no other row
    locks: every qualifying player's row is written. Concurrent refreshes
    queue on an advisory lock (PostgreSQL), and rows are then written in a
    single pass in ascending id order, the same order match processing
    locks players in.

    Percentiles are written with plain table UPDATEs, which leaves the
    players' version counters alone: a refresh never makes a concurrent
    match writer fail.
    """
    transaction_lock(session, PERCENTILE_WRITE_LOCK)
    session.flush()

    population = dict(percentile_population(session, min_games))
    percentiles = compute_percentiles(population)
    stale = stale_percentile_players(session, min_games)

    values: dict[int, Optional[float]] = {player_id: None for player_id in stale}
    values.update(percentiles)

    if values:
        table = Player.__table__
        stmt = (
            table.update()
            .where(table.c.id == bindparam("b_id"))
            .values(ranking_percentile=bindparam("b_pct"))
        )
        session.execute(
            stmt,
            [{"b_id": player_id, "b_pct": values[player_id]} for player_id in sorted(values)],
        )

    # Keep already-loaded players in step with what was just written
    for obj in list(session.identity_map.values()):
        if isinstance(obj, Player):
            set_committed_value(obj, "ranking_percentile", percentiles.get(obj.id))

    stats = PercentileRefreshStats(
        qualifying_players=len(percentiles),
        cleared_players=len(stale),
        min_games=min_games,
    )
    logger.debug(stats.summary())
    return stats

"""Player statistics: cumulative counters, population percentiles and the per-player report."""

from gamerank.stats.aggregator import (
    PlayerCounters,
    PlayerOutcome,
    StatisticsAggregator,
    apply_match_outcome,
    next_streak,
)
from gamerank.stats.percentiles import (
    PercentileRefreshStats,
    compute_percentiles,
    refresh_ranking_percentiles,
)
from gamerank.stats.profile import DailyPerformance, PlayerStatistics, player_statistics

__all__ = [
    "PlayerCounters",
    "PlayerOutcome",
    "StatisticsAggregator",
    "apply_match_outcome",
    "next_streak",
    "PercentileRefreshStats",
    "compute_percentiles",
    "refresh_ranking_percentiles",
    "DailyPerformance",
    "PlayerStatistics",
    "player_statistics",
]

"""
GameRank v1.0 - Competitive standing for turn-based two-player games

Turns completed match results into ratings, statistics, achievements
and leaderboard positions.

Main components:
- rating: ELO rating engine (K-factors, bounds, decay, predictions)
- stats: Per-player counters and population ranking percentiles
- achievements: Achievement condition registry and evaluator
- services: Match processing, decay job, leaderboard, predictions
- db: SQLAlchemy models, sessions and row locking
- tasks: Advisory locks for scheduled jobs
"""

__version__ = "1.0.0"

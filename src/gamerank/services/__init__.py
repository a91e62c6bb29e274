"""
Services for GameRank.

- match_processing: atomic application of a completed match
- decay_job: batch inactivity decay
- leaderboard: leaderboard projection and paging
- notifications: match-completed events and subscribers
- prediction: read-only match predictions
"""

from gamerank.services.decay_job import DecayJob, DecayResult, DecaySummary
from gamerank.services.leaderboard import (
    LeaderboardPage,
    get_leaderboard,
    rebuild_leaderboard,
)
from gamerank.services.match_processing import (
    MatchProcessingResult,
    MatchProcessingService,
    MatchResult,
    Move,
    MoveAnalysis,
    process_match_with_retry,
)
from gamerank.services.notifications import (
    LeaderboardInvalidator,
    LoggingNotifier,
    MatchCompletedEvent,
    NotifierChain,
)
from gamerank.services.prediction import PredictionService

__all__ = [
    "DecayJob",
    "DecayResult",
    "DecaySummary",
    "LeaderboardPage",
    "get_leaderboard",
    "rebuild_leaderboard",
    "MatchProcessingResult",
    "MatchProcessingService",
    "MatchResult",
    "Move",
    "MoveAnalysis",
    "process_match_with_retry",
    "LeaderboardInvalidator",
    "LoggingNotifier",
    "MatchCompletedEvent",
    "NotifierChain",
    "PredictionService",
]

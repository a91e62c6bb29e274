#!/usr/bin/env python3
"""
Process completed matches from a JSON file.

The file holds one match object or a list of them:

    {
      "match_id": "m-1001",
      "player1_id": 1,
      "player2_id": 2,
      "winner_id": 1,
      "duration_seconds": 600,
      "move_history": [{"player_id": 1, "move_time": 3.2}, ...]
    }

Usage:
  python scripts/process_match.py matches.json
  python scripts/process_match.py matches.json --rebuild-leaderboard
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gamerank.config import configure_logging
from gamerank.db.session import SessionLocal
from gamerank.errors import ConflictError, GameRankError
from gamerank.services.match_processing import (
    MatchProcessingService,
    MatchResult,
    process_match_with_retry,
)
from gamerank.services.notifications import (
    LeaderboardInvalidator,
    LoggingNotifier,
    NotifierChain,
)

logger = logging.getLogger(__name__)


@dataclass
class BatchStats:
    """Outcome counts for one input file."""
    processed: int = 0
    duplicates: int = 0
    failed: int = 0

    def summary(self) -> str:
        return f"Processed {self.processed}, duplicates {self.duplicates}, failed {self.failed}"


def process_batch(service: MatchProcessingService, matches: list) -> BatchStats:
    """Process matches in order; a bad entry is counted and skipped."""
    stats = BatchStats()
    for index, data in enumerate(matches):
        label = data.get("match_id") if isinstance(data, dict) else None
        label = label or f"#{index}"
        try:
            match = MatchResult.from_dict(data)
            result = process_match_with_retry(service, match)
        except ConflictError:
            logger.info("Skipping %s: already processed", label)
            stats.duplicates += 1
            continue
        except GameRankError as exc:
            logger.error("Match %s rejected: %s", label, exc)
            stats.failed += 1
            continue
        stats.processed += 1
        print(json.dumps(result.to_dict(), indent=2))
    return stats


def main() -> int:
    parser = argparse.ArgumentParser(description="Process completed matches from a JSON file")
    parser.add_argument("path", type=Path, help="JSON file with a match or a list of matches")
    parser.add_argument(
        "--rebuild-leaderboard",
        action="store_true",
        help="Rebuild the leaderboard after every processed match",
    )
    args = parser.parse_args()
    configure_logging()

    payload = json.loads(args.path.read_text(encoding="utf-8"))
    matches = payload if isinstance(payload, list) else [payload]

    notifier = NotifierChain([LoggingNotifier()])
    if args.rebuild_leaderboard:
        notifier.add(LeaderboardInvalidator(SessionLocal))
    service = MatchProcessingService(session_factory=SessionLocal, notifier=notifier)

    stats = process_batch(service, matches)
    print(f"\n{stats.summary()}")
    return 1 if stats.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())

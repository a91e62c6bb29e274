#!/usr/bin/env python3
"""
Rebuild the leaderboard projection and print the top of it.

Usage:
  python scripts/rebuild_leaderboard.py
  python scripts/rebuild_leaderboard.py --min-games 20 --top 25
"""

import argparse
import sys
import time
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gamerank.config import configure_logging, settings
from gamerank.db.models import UpdateLog
from gamerank.db.session import get_engine, get_session
from gamerank.services.leaderboard import get_leaderboard, rebuild_leaderboard
from gamerank.tasks.locks import LEADERBOARD_LOCK, job_lock


def main() -> int:
    parser = argparse.ArgumentParser(description="Rebuild the leaderboard")
    parser.add_argument(
        "--min-games",
        type=int,
        default=settings.leaderboard_min_games,
        help="Games required to appear on the leaderboard (default: %(default)s)",
    )
    parser.add_argument("--top", type=int, default=10, help="Entries to print")
    args = parser.parse_args()
    configure_logging()

    started = time.monotonic()
    try:
        with job_lock(get_engine(), LEADERBOARD_LOCK):
            with get_session() as session:
                stats = rebuild_leaderboard(session, min_games=args.min_games)
                session.add(
                    UpdateLog(
                        update_type="leaderboard_rebuild",
                        details={
                            "ranked_players": stats.ranked_players,
                            "new_entries": stats.new_entries,
                            "removed_entries": stats.removed_entries,
                        },
                        success=True,
                        duration_seconds=Decimal(f"{time.monotonic() - started:.2f}"),
                    )
                )
                session.flush()
                page = get_leaderboard(session, page=1, limit=args.top)
    except TimeoutError as exc:
        print(f"Leaderboard rebuild already running: {exc}")
        return 2

    print(stats.summary())
    print(f"\n{'Rank':>4}  {'Player':<20} {'Rating':>6} {'W':>5} {'L':>5} {'D':>5} {'Win%':>6} {'Chg':>4}")
    for entry in page.entries:
        print(
            f"{entry['rank']:>4}  {entry['username']:<20} {entry['rating']:>6} "
            f"{entry['wins']:>5} {entry['losses']:>5} {entry['draws']:>5} "
            f"{entry['win_percentage']:>6.1f} {entry['rank_change']:>+4}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

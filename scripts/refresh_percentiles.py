#!/usr/bin/env python3
"""
Recompute ranking percentiles for every player.

Needed when GAMERANK_PERCENTILE_REFRESH=scheduled, where match processing
leaves percentiles alone. Safe to run in per_match mode too.

Usage:
  python scripts/refresh_percentiles.py
  python scripts/refresh_percentiles.py --min-games 20
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
from gamerank.stats.percentiles import refresh_ranking_percentiles
from gamerank.tasks.locks import PERCENTILE_LOCK, job_lock


def main() -> int:
    parser = argparse.ArgumentParser(description="Refresh player ranking percentiles")
    parser.add_argument(
        "--min-games",
        type=int,
        default=settings.percentile_min_games,
        help="Games required for a percentile (default: %(default)s)",
    )
    args = parser.parse_args()
    configure_logging()

    started = time.monotonic()
    try:
        with job_lock(get_engine(), PERCENTILE_LOCK):
            with get_session() as session:
                stats = refresh_ranking_percentiles(session, min_games=args.min_games)
                session.add(
                    UpdateLog(
                        update_type="percentile_refresh",
                        details={
                            "qualifying_players": stats.qualifying_players,
                            "cleared_players": stats.cleared_players,
                            "min_games": stats.min_games,
                        },
                        success=True,
                        duration_seconds=Decimal(f"{time.monotonic() - started:.2f}"),
                    )
                )
    except TimeoutError as exc:
        print(f"Percentile refresh already running: {exc}")
        return 2

    print(stats.summary())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

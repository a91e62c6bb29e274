#!/usr/bin/env python3
"""
Apply inactivity decay to established players.

Meant to run once a day from a scheduler. An advisory lock keeps two runs
from overlapping.

Usage:
  python scripts/apply_rating_decay.py
  python scripts/apply_rating_decay.py --days 120
  python scripts/apply_rating_decay.py --lock-timeout-seconds 60
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gamerank.config import configure_logging, settings
from gamerank.db.session import SessionLocal, get_engine
from gamerank.services.decay_job import DecayJob
from gamerank.tasks.locks import DECAY_LOCK, job_lock

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Apply rating decay to inactive players")
    parser.add_argument(
        "--days",
        type=int,
        default=settings.decay_days_threshold,
        help="Days of inactivity before decay starts (default: %(default)s)",
    )
    parser.add_argument(
        "--lock-timeout-seconds",
        type=float,
        default=0.0,
        help="Wait this long for a running decay job to finish",
    )
    args = parser.parse_args()
    configure_logging()

    try:
        with job_lock(get_engine(), DECAY_LOCK, timeout_seconds=args.lock_timeout_seconds):
            summary = DecayJob(session_factory=SessionLocal).apply_inactivity_decay(
                days_threshold=args.days
            )
    except TimeoutError as exc:
        print(f"Decay job already running: {exc}")
        return 2

    print(summary.summary())
    return 1 if summary.failures else 0


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
Insert the default achievement catalogue.

Existing achievements (matched by name) are left as they are.

Usage:
  python scripts/seed_achievements.py
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gamerank.achievements.catalogue import DEFAULT_ACHIEVEMENTS, seed_achievements
from gamerank.config import configure_logging
from gamerank.db.session import get_session


def main() -> int:
    configure_logging()
    with get_session() as session:
        created = seed_achievements(session)
    print(f"Created {created} of {len(DEFAULT_ACHIEVEMENTS)} default achievements.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

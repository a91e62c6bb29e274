"""
Default achievement catalogue.

Seeding is idempotent by name: existing achievements are left untouched,
so thresholds or points edited in the database survive a re-seed.
"""

import logging

from sqlalchemy.orm import Session

from gamerank.db.models import Achievement

logger = logging.getLogger(__name__)


DEFAULT_ACHIEVEMENTS: list[dict] = [
    # Wins
    {"name": "First Blood", "description": "Win your very first game",
     "category": "wins", "condition_type": "total_wins", "condition_value": 1,
     "points": 10, "icon_url": "/achievements/first_win.png"},
    {"name": "Getting Started", "description": "Win 5 games",
     "category": "wins", "condition_type": "total_wins", "condition_value": 5,
     "points": 25, "icon_url": "/achievements/wins_5.png"},
    {"name": "Veteran", "description": "Win 25 games",
     "category": "wins", "condition_type": "total_wins", "condition_value": 25,
     "points": 75, "icon_url": "/achievements/wins_25.png"},
    {"name": "Champion", "description": "Win 100 games",
     "category": "wins", "condition_type": "total_wins", "condition_value": 100,
     "points": 250, "icon_url": "/achievements/wins_100.png"},
    {"name": "Legend", "description": "Win 500 games",
     "category": "wins", "condition_type": "total_wins", "condition_value": 500,
     "points": 1000, "icon_url": "/achievements/wins_500.png"},

    # Streaks
    {"name": "Double Trouble", "description": "Win 2 games in a row",
     "category": "streaks", "condition_type": "win_streak", "condition_value": 2,
     "points": 15, "icon_url": "/achievements/streak_2.png"},
    {"name": "Hot Streak", "description": "Win 3 games in a row",
     "category": "streaks", "condition_type": "win_streak", "condition_value": 3,
     "points": 30, "icon_url": "/achievements/streak_3.png"},
    {"name": "On Fire", "description": "Win 5 games in a row",
     "category": "streaks", "condition_type": "win_streak", "condition_value": 5,
     "points": 75, "icon_url": "/achievements/streak_5.png"},
    {"name": "Unstoppable", "description": "Win 10 games in a row",
     "category": "streaks", "condition_type": "win_streak", "condition_value": 10,
     "points": 200, "icon_url": "/achievements/streak_10.png"},
    {"name": "Legendary Streak", "description": "Win 20 games in a row",
     "category": "streaks", "condition_type": "win_streak", "condition_value": 20,
     "points": 500, "icon_url": "/achievements/streak_20.png"},

    # Games played
    {"name": "Getting Active", "description": "Play 10 games",
     "category": "games", "condition_type": "games_played", "condition_value": 10,
     "points": 20, "icon_url": "/achievements/games_10.png"},
    {"name": "Regular Player", "description": "Play 50 games",
     "category": "games", "condition_type": "games_played", "condition_value": 50,
     "points": 60, "icon_url": "/achievements/games_50.png"},
    {"name": "Dedicated Gamer", "description": "Play 200 games",
     "category": "games", "condition_type": "games_played", "condition_value": 200,
     "points": 150, "icon_url": "/achievements/games_200.png"},
    {"name": "Game Enthusiast", "description": "Play 1000 games",
     "category": "games", "condition_type": "games_played", "condition_value": 1000,
     "points": 400, "icon_url": "/achievements/games_1000.png"},

    # Rating milestones
    {"name": "Rising Star", "description": "Reach 1300 rating",
     "category": "rating", "condition_type": "rating_reached", "condition_value": 1300,
     "points": 50, "icon_url": "/achievements/rating_1300.png"},
    {"name": "Skilled Player", "description": "Reach 1500 rating",
     "category": "rating", "condition_type": "rating_reached", "condition_value": 1500,
     "points": 100, "icon_url": "/achievements/rating_1500.png"},
    {"name": "Expert", "description": "Reach 1700 rating",
     "category": "rating", "condition_type": "rating_reached", "condition_value": 1700,
     "points": 200, "icon_url": "/achievements/rating_1700.png"},
    {"name": "Master", "description": "Reach 1900 rating",
     "category": "rating", "condition_type": "rating_reached", "condition_value": 1900,
     "points": 400, "icon_url": "/achievements/rating_1900.png"},
    {"name": "Grandmaster", "description": "Reach 2100 rating",
     "category": "rating", "condition_type": "rating_reached", "condition_value": 2100,
     "points": 800, "icon_url": "/achievements/rating_2100.png"},

    # Special
    {"name": "Speed Demon", "description": "Win a game in under 2 minutes",
     "category": "special", "condition_type": "fast_win", "condition_value": 120,
     "points": 100, "icon_url": "/achievements/speed_demon.png"},
    {"name": "Marathon Master", "description": "Win a game lasting over 30 minutes",
     "category": "special", "condition_type": "long_win", "condition_value": 1800,
     "points": 75, "icon_url": "/achievements/marathon.png"},
    {"name": "Daily Player", "description": "Play at least one game every day for 7 days",
     "category": "special", "condition_type": "daily_streak", "condition_value": 7,
     "points": 150, "icon_url": "/achievements/daily_7.png"},
    {"name": "Perfect Week",
     "description": "Win every game in a 7-day period (minimum 5 games)",
     "category": "special", "condition_type": "perfect_week", "condition_value": 5,
     "points": 300, "icon_url": "/achievements/perfect_week.png"},
    {"name": "Comeback King", "description": "Win 10 games after being behind in rating",
     "category": "special", "condition_type": "comeback_wins", "condition_value": 10,
     "points": 200, "icon_url": "/achievements/comeback.png"},
]


def seed_achievements(session: Session, definitions: list[dict] | None = None) -> int:
    """
    Insert catalogue achievements that don't exist yet.

    Returns:
        Number of achievements created
    """
    definitions = DEFAULT_ACHIEVEMENTS if definitions is None else definitions
    existing = {name for (name,) in session.query(Achievement.name).all()}

    created = 0
    for definition in definitions:
        if definition["name"] in existing:
            continue
        session.add(Achievement(**definition))
        existing.add(definition["name"])
        created += 1

    session.flush()
    logger.info("Seeded %d achievement(s), %d already present", created, len(definitions) - created)
    return created

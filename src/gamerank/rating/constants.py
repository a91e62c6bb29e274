"""
ELO rating system constants.

K factor: Controls rating volatility (how much ratings change per match)
  - New players move fast so they find their level quickly
  - Experts move slowly so a single upset doesn't erase a long record

Bounds:
  - Every rating lives in [MIN_RATING, MAX_RATING]
  - Established players (PROVISIONAL_GAMES or more) never drop below
    RATING_FLOOR, neither from losses nor from inactivity decay
"""

# K factors by player status
K_FACTOR_NEW_PLAYER = 32
K_FACTOR_REGULAR = 24
K_FACTOR_EXPERT = 16

# Rating at or above which an established player uses K_FACTOR_EXPERT
EXPERT_RATING = 2000

# Starting rating for every new player
INITIAL_RATING = 1200

# Games before a player stops being provisional
PROVISIONAL_GAMES = 30

# Absolute rating bounds
MIN_RATING = 100
MAX_RATING = 3000

# Floor for established players
RATING_FLOOR = 800

# Inactivity decay: 2% per day beyond the threshold
INACTIVITY_DECAY_THRESHOLD = 90
INACTIVITY_DECAY_RATE = 0.02

# Spread used by the expected-score formula
RATING_SCALE = 400

# Match prediction parameters
BASE_DEVIATION = 200
DEVIATION_GAMES_SCALE = 20
DRAW_RATE = 0.15
CONFIDENCE_Z = 1.96

# Display categories, highest first
# Format: (minimum rating, category name)
RATING_CATEGORIES: list[tuple[int, str]] = [
    (2200, "Grandmaster"),
    (2000, "Master"),
    (1800, "Expert"),
    (1600, "Advanced"),
    (1400, "Intermediate"),
    (1200, "Beginner"),
]
DEFAULT_CATEGORY = "Novice"

"""Read-only match prediction between two players."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from gamerank.db.models import Player
from gamerank.db.queries import get_player, head_to_head
from gamerank.db.session import SessionLocal, SessionFactory, session_scope
from gamerank.errors import ValidationError
from gamerank.rating.calculator import (
    GameOutcome,
    PlayerRating,
    calculate_new_ratings,
    rating_category,
    rating_confidence,
    win_probabilities,
)

logger = logging.getLogger(__name__)


def _player_summary(player: Player) -> dict:
    confidence = rating_confidence(player.rating, player.games_played)
    return {
        "id": player.id,
        "username": player.username,
        "rating": player.rating,
        "games_played": player.games_played,
        "win_rate": player.win_rate,
        "category": rating_category(player.rating),
        "confidence": {
            "lower": confidence.lower,
            "upper": confidence.upper,
            "confidence": round(confidence.confidence, 2),
        },
    }


class PredictionService:
    """
    Predicts the outcome of a prospective match.

    Nothing is written; the prediction reflects current ratings only.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self.session_factory = session_factory or SessionLocal

    def match_prediction(self, player1_id: int, player2_id: int) -> dict:
        """
        Predict a match between two players.

        Returns:
            Dict with:
            - players: {"player1": ..., "player2": ...} rating, games played,
              win rate, category and confidence interval
            - prediction: win/draw probabilities, rating difference and the
              rating changes each outcome would cause
            - head_to_head: record between the two players so far

        Raises:
            ValidationError: if both ids are the same player
            NotFoundError: if either player does not exist
        """
        if player1_id == player2_id:
            raise ValidationError("Cannot predict a match of a player against themselves")

        with session_scope(self.session_factory) as session:
            return self._predict(session, player1_id, player2_id)

    def _predict(self, session: Session, player1_id: int, player2_id: int) -> dict:
        player1 = get_player(session, player1_id)
        player2 = get_player(session, player2_id)

        rating1 = PlayerRating(player1.id, player1.rating, player1.games_played)
        rating2 = PlayerRating(player2.id, player2.rating, player2.games_played)

        expected_changes = {}
        for key, outcome in (
            ("if_player1_wins", GameOutcome.PLAYER1_WINS),
            ("if_player2_wins", GameOutcome.PLAYER2_WINS),
            ("if_draw", GameOutcome.DRAW),
        ):
            update = calculate_new_ratings(rating1, rating2, outcome)
            expected_changes[key] = {
                "player1": update.player1_change,
                "player2": update.player2_change,
            }

        return {
            "players": {
                "player1": _player_summary(player1),
                "player2": _player_summary(player2),
            },
            "prediction": {
                "probabilities": win_probabilities(player1.rating, player2.rating),
                "rating_difference": player1.rating - player2.rating,
                "expected_rating_changes": expected_changes,
            },
            "head_to_head": head_to_head(session, player1_id, player2_id),
        }

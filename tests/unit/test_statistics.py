"""
Unit tests for statistics aggregation and ranking percentiles.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import event

from gamerank.db.models import Player
from gamerank.errors import NotFoundError
from gamerank.stats import (
    PlayerCounters,
    PlayerOutcome,
    StatisticsAggregator,
    apply_match_outcome,
    compute_percentiles,
    next_streak,
    refresh_ranking_percentiles,
)


class TestStreaks:
    """Signed streak rules."""

    @pytest.mark.parametrize(
        "current,outcome,expected",
        [
            (0, PlayerOutcome.WIN, 1),
            (3, PlayerOutcome.WIN, 4),
            (-2, PlayerOutcome.WIN, 1),
            (0, PlayerOutcome.LOSS, -1),
            (-3, PlayerOutcome.LOSS, -4),
            (5, PlayerOutcome.LOSS, -1),
            (4, PlayerOutcome.DRAW, 4),
            (-4, PlayerOutcome.DRAW, -4),
            (0, PlayerOutcome.DRAW, 0),
        ],
    )
    def test_next_streak(self, current, outcome, expected):
        assert next_streak(current, outcome) == expected


class TestApplyMatchOutcome:
    """Tests for apply_match_outcome()."""

    def test_first_win(self):
        counters = apply_match_outcome(PlayerCounters(), PlayerOutcome.WIN, 300, 40)

        assert counters.games_played == 1
        assert counters.games_won == 1
        assert counters.games_lost == 0
        assert counters.current_streak == 1
        assert counters.longest_win_streak == 1
        assert counters.total_playtime_seconds == 300
        assert counters.average_moves_per_game == pytest.approx(40.0)

    def test_counters_always_sum(self):
        counters = PlayerCounters()
        for outcome in [PlayerOutcome.WIN, PlayerOutcome.DRAW, PlayerOutcome.LOSS, PlayerOutcome.WIN]:
            counters = apply_match_outcome(counters, outcome, 60, 10)

        assert counters.games_played == 4
        assert counters.games_won + counters.games_lost + counters.games_drawn == 4

    def test_running_average_of_moves(self):
        counters = PlayerCounters(games_played=2, games_won=2, average_moves_per_game=40.0)
        counters = apply_match_outcome(counters, PlayerOutcome.LOSS, 60, 10)

        assert counters.average_moves_per_game == pytest.approx(30.0)

    def test_longest_win_streak_kept_after_loss(self):
        counters = PlayerCounters(
            games_played=5, games_won=5, current_streak=5, longest_win_streak=5
        )
        counters = apply_match_outcome(counters, PlayerOutcome.LOSS, 60, 10)

        assert counters.current_streak == -1
        assert counters.longest_win_streak == 5

    def test_draw_keeps_streak(self):
        counters = PlayerCounters(games_played=2, games_won=2, current_streak=2, longest_win_streak=2)
        counters = apply_match_outcome(counters, PlayerOutcome.DRAW, 60, 10)

        assert counters.current_streak == 2
        assert counters.games_drawn == 1

    def test_input_not_modified(self):
        before = PlayerCounters()
        apply_match_outcome(before, PlayerOutcome.WIN, 60, 10)
        assert before.games_played == 0


class TestStatisticsAggregator:

    def test_record_outcome_updates_player(self, db_session, make_player):
        player_id = make_player(rating=1200)
        played_at = datetime(2026, 5, 1, 10, 0)

        StatisticsAggregator().record_outcome(
            db_session, player_id, PlayerOutcome.WIN, 1216, 300, 42, played_at
        )
        db_session.flush()
        player = db_session.get(Player, player_id)

        assert player.rating == 1216
        assert player.games_won == 1
        assert player.total_playtime_seconds == 300
        assert player.last_match_at == played_at

    def test_last_match_only_moves_forward(self, db_session, make_player):
        later = datetime(2026, 5, 2, 10, 0)
        player_id = make_player(last_match_at=later)

        StatisticsAggregator().record_outcome(
            db_session, player_id, PlayerOutcome.LOSS, 1184, 60, 10,
            later - timedelta(days=1),
        )

        assert db_session.get(Player, player_id).last_match_at == later

    def test_missing_player(self, db_session):
        with pytest.raises(NotFoundError):
            StatisticsAggregator().record_outcome(
                db_session, 999, PlayerOutcome.WIN, 1216, 60, 10, datetime(2026, 5, 1)
            )


class TestComputePercentiles:
    """Tests for compute_percentiles()."""

    def test_empty(self):
        assert compute_percentiles({}) == {}

    def test_single_player_is_top(self):
        assert compute_percentiles({7: 1200}) == {7: 100.0}

    def test_ties_share_percentile(self):
        result = compute_percentiles({1: 1000, 2: 1200, 3: 1200, 4: 1500})

        assert result[1] == 0.0
        assert result[2] == result[3] == pytest.approx(66.67)
        assert result[4] == 100.0


class TestRefreshRankingPercentiles:

    def test_only_qualifying_players_ranked(self, db_session, make_player):
        low = make_player(rating=1000, games_played=20)
        high = make_player(rating=1600, games_played=20)
        newcomer = make_player(rating=2000, games_played=3, ranking_percentile=55.0)

        stats = refresh_ranking_percentiles(db_session, min_games=10)
        db_session.commit()
        db_session.expire_all()

        assert stats.qualifying_players == 2
        assert stats.cleared_players == 1
        assert db_session.get(Player, low).ranking_percentile == 0.0
        assert db_session.get(Player, high).ranking_percentile == 100.0
        assert db_session.get(Player, newcomer).ranking_percentile is None

    def test_does_not_bump_versions(self, db_session, make_player):
        player_id = make_player(rating=1500, games_played=20)
        before = db_session.get(Player, player_id).version

        refresh_ranking_percentiles(db_session, min_games=10)
        db_session.commit()
        db_session.expire_all()

        assert db_session.get(Player, player_id).version == before

    def test_loaded_players_see_new_values(self, db_session, make_player):
        player_id = make_player(rating=1500, games_played=20)
        player = db_session.get(Player, player_id)

        refresh_ranking_percentiles(db_session, min_games=10)

        assert player.ranking_percentile == 100.0

    def test_single_pass_in_id_order(self, db_session, make_player):
        """Clears and rankings go out as one statement batch, lowest id first."""
        stale = make_player(rating=1300, games_played=2, ranking_percentile=40.0)
        high = make_player(rating=1600, games_played=20)
        low = make_player(rating=1000, games_played=20)
        writes = []

        def capture(state):
            if state.is_update:
                writes.append(state.parameters)

        event.listen(db_session, "do_orm_execute", capture)
        refresh_ranking_percentiles(db_session, min_games=10)

        assert len(writes) == 1
        assert writes[0] == [
            {"b_id": stale, "b_pct": None},
            {"b_id": high, "b_pct": 100.0},
            {"b_id": low, "b_pct": 0.0},
        ]

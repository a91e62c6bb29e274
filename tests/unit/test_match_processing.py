"""
Tests for match processing.

Covers the full match unit against a real (SQLite) database:
- rating changes, history rows and counters
- idempotency by match_id
- validation before any state is touched
- all-or-nothing rollback
- concurrent modification and retry
- post-commit notification
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func
from sqlalchemy.exc import OperationalError

from gamerank.achievements.evaluator import AchievementEvaluator
from gamerank.db.models import MatchRecord, Player, PlayerAchievement, RatingHistoryEntry
from gamerank.db.session import session_scope
from gamerank.errors import ConcurrencyError, ConflictError, NotFoundError, ValidationError
from gamerank.rating.calculator import GameOutcome
from gamerank.services import match_processing
from gamerank.services.match_processing import (
    MatchProcessingService,
    MatchResult,
    Move,
    analyze_moves,
    process_match_with_retry,
)
from gamerank.stats.aggregator import StatisticsAggregator
from gamerank.stats.percentiles import refresh_ranking_percentiles

from tests.conftest import NOW


def make_match(match_id, player1_id, player2_id, winner_id, duration_seconds=600, **kwargs):
    return MatchResult(
        match_id=match_id,
        player1_id=player1_id,
        player2_id=player2_id,
        winner_id=winner_id,
        duration_seconds=duration_seconds,
        **kwargs,
    )


def count(session, model):
    return session.query(func.count(model.id)).scalar()


class TestProcessMatch:
    """Happy-path processing."""

    def test_regular_players(self, service, make_player, seeded_achievements, db_session):
        """1500 beats 1400 in 600s over 40 moves, both with 50 games: K=24, +9 / -9."""
        alice = make_player(rating=1500, games_played=50, games_lost=20)
        bob = make_player(rating=1400, games_played=50, games_lost=25)
        moves = [Move(alice if i % 2 == 0 else bob, 15.0) for i in range(40)]
        match = make_match("m-1", alice, bob, winner_id=alice, move_history=moves)

        result = service.process_match(match)

        assert result.result == GameOutcome.PLAYER1_WINS
        assert result.rating_changes == {"player1": 9, "player2": -9}
        assert result.new_ratings == {"player1": 1509, "player2": 1391}
        assert result.move_analysis.player1_moves == 20
        assert result.move_analysis.player2_moves == 20

        a = db_session.get(Player, alice)
        b = db_session.get(Player, bob)
        assert (a.rating, a.games_played, a.games_won) == (1509, 51, 31)
        assert (b.rating, b.games_played, b.games_lost) == (1391, 51, 26)
        assert a.last_match_at == NOW

        reasons = {
            row.player_id: row.reason
            for row in db_session.query(RatingHistoryEntry).filter_by(match_id="m-1")
        }
        assert reasons == {alice: "win", bob: "loss"}

        # Replay: no second application, no duplicated achievements
        earned_before = db_session.query(PlayerAchievement).count()
        with pytest.raises(ConflictError):
            service.process_match(match)
        db_session.expire_all()
        assert db_session.get(Player, alice).games_won == 31
        assert db_session.query(PlayerAchievement).count() == earned_before

    def test_writes_match_record_and_history(self, service, make_player, db_session):
        alice = make_player()
        bob = make_player()

        service.process_match(make_match("m-1", alice, bob, winner_id=bob))

        record = db_session.query(MatchRecord).filter_by(match_id="m-1").one()
        assert record.winner_id == bob
        assert record.player1_rating_before == 1200
        assert record.player1_rating_after == 1184
        assert record.player2_rating_after == 1216
        assert record.played_at == NOW

        history = {
            row.player_id: row
            for row in db_session.query(RatingHistoryEntry).filter_by(match_id="m-1")
        }
        assert history[alice].reason == "loss"
        assert history[alice].rating_change == -16
        assert history[bob].reason == "win"
        assert history[bob].new_rating == 1216

    def test_draw(self, service, make_player, db_session):
        alice = make_player(current_streak=2, longest_win_streak=2, games_played=2)
        bob = make_player()

        result = service.process_match(make_match("m-1", alice, bob, winner_id=None))

        assert result.result == GameOutcome.DRAW
        a = db_session.get(Player, alice)
        assert a.games_drawn == 1
        assert a.current_streak == 2
        history = db_session.query(RatingHistoryEntry).filter_by(player_id=alice).one()
        assert history.reason == "draw"

    def test_counters_from_moves(self, service, make_player, db_session):
        alice = make_player()
        bob = make_player()
        moves = [Move(alice, 2.0), Move(bob, 3.0), Move(alice, 4.0), Move(bob), Move(alice)]

        result = service.process_match(
            make_match("m-1", alice, bob, winner_id=alice, duration_seconds=300, move_history=moves)
        )

        assert result.move_analysis.total_moves == 5
        assert result.move_analysis.player1_avg_move_time == pytest.approx(3.0)
        assert result.move_analysis.player2_avg_move_time == pytest.approx(3.0)
        a = db_session.get(Player, alice)
        b = db_session.get(Player, bob)
        assert a.total_playtime_seconds == 300
        assert a.average_moves_per_game == pytest.approx(3.0)
        assert b.average_moves_per_game == pytest.approx(2.0)

    def test_move_average_uses_own_moves(self, service, make_player, db_session):
        """Each player's running average counts only the moves they made."""
        alice = make_player()
        bob = make_player()
        service.process_match(
            make_match("m-1", alice, bob, winner_id=alice, move_history=[Move(alice), Move(bob)])
        )
        service.process_match(
            make_match(
                "m-2", bob, alice, winner_id=bob,
                move_history=[Move(bob), Move(alice), Move(bob), Move(alice), Move(bob)],
            )
        )

        assert db_session.get(Player, alice).average_moves_per_game == pytest.approx(1.5)
        assert db_session.get(Player, bob).average_moves_per_game == pytest.approx(2.0)

    def test_ended_at_is_recorded(self, service, make_player, db_session):
        alice = make_player()
        bob = make_player()
        ended = NOW - timedelta(days=3)

        service.process_match(make_match("m-1", alice, bob, winner_id=alice, ended_at=ended))

        assert db_session.query(MatchRecord).one().played_at == ended
        assert db_session.get(Player, alice).last_match_at == ended

    def test_to_dict(self, service, make_player):
        alice = make_player()
        bob = make_player()

        data = service.process_match(make_match("m-1", alice, bob, winner_id=alice)).to_dict()

        assert data["result"] == "player1_wins"
        assert data["rating_changes"] == {"player1": 16, "player2": -16}
        assert data["achievements_earned"] == {"player1": [], "player2": []}
        assert data["move_analysis"]["total_moves"] == 0


class TestPercentilePolicy:

    def test_per_match_refresh(self, session_factory, make_player, db_session):
        service = MatchProcessingService(
            session_factory=session_factory,
            clock=lambda: NOW,
            percentile_refresh="per_match",
            percentile_min_games=1,
        )
        alice = make_player()
        bob = make_player()

        service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        assert db_session.get(Player, alice).ranking_percentile == 100.0
        assert db_session.get(Player, bob).ranking_percentile == 0.0

    def test_scheduled_skips_refresh(self, session_factory, make_player, db_session):
        service = MatchProcessingService(
            session_factory=session_factory,
            clock=lambda: NOW,
            percentile_refresh="scheduled",
            percentile_min_games=1,
        )
        alice = make_player()
        bob = make_player()

        service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        assert db_session.get(Player, alice).ranking_percentile is None

    def test_refresh_runs_after_match_commits(self, session_factory, make_player, monkeypatch):
        """The population-wide write never shares a transaction with the player locks."""
        service = MatchProcessingService(
            session_factory=session_factory,
            clock=lambda: NOW,
            percentile_refresh="per_match",
            percentile_min_games=1,
        )
        alice = make_player()
        bob = make_player()
        seen = []

        def refresh(session, min_games):
            seen.append((session.new, session.dirty))
            with session_scope(session_factory) as other:
                seen.append(other.query(MatchRecord).filter_by(match_id="m-1").count())
            return refresh_ranking_percentiles(session, min_games=min_games)

        monkeypatch.setattr(match_processing, "refresh_ranking_percentiles", refresh)

        service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        pending, committed_records = seen
        assert not pending[0] and not pending[1]
        assert committed_records == 1

    def test_failed_refresh_keeps_match(
        self, session_factory, make_player, db_session, monkeypatch, caplog
    ):
        service = MatchProcessingService(
            session_factory=session_factory,
            clock=lambda: NOW,
            percentile_refresh="per_match",
            percentile_min_games=1,
        )
        alice = make_player()
        bob = make_player()

        def refresh(session, min_games):
            raise OperationalError("UPDATE players", {}, Exception("server closed the connection"))

        monkeypatch.setattr(match_processing, "refresh_ranking_percentiles", refresh)

        result = service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        assert result.rating_changes == {"player1": 16, "player2": -16}
        assert count(db_session, MatchRecord) == 1
        assert db_session.get(Player, alice).ranking_percentile is None
        assert "Percentile refresh after match m-1 failed" in caplog.text


class TestIdempotency:

    def test_replay_raises_conflict_with_prior_result(
        self, service, make_player, seeded_achievements, db_session
    ):
        alice = make_player()
        bob = make_player()
        match = make_match("m-1", alice, bob, winner_id=alice)

        first = service.process_match(match)
        with pytest.raises(ConflictError) as exc_info:
            service.process_match(match)

        prior = exc_info.value.prior_result
        assert prior.rating_changes == first.rating_changes
        assert prior.new_ratings == first.new_ratings
        assert prior.achievements_earned == first.achievements_earned

        # Nothing applied twice
        assert db_session.get(Player, alice).games_played == 1
        assert count(db_session, MatchRecord) == 1
        assert count(db_session, RatingHistoryEntry) == 2

    def test_concurrent_duplicate_reported_as_conflict(
        self, service, make_player, monkeypatch
    ):
        """A duplicate that slips past the pre-check fails on the unique key."""
        alice = make_player()
        bob = make_player()
        match = make_match("m-1", alice, bob, winner_id=alice)
        first = service.process_match(match)

        real_lookup = match_processing.find_match_record
        calls = []

        def blind_first_lookup(session, match_id):
            calls.append(match_id)
            if len(calls) == 1:
                return None
            return real_lookup(session, match_id)

        monkeypatch.setattr(match_processing, "find_match_record", blind_first_lookup)

        with pytest.raises(ConflictError) as exc_info:
            service.process_match(match)
        assert exc_info.value.prior_result.rating_changes == first.rating_changes

    def test_get_match_result_unknown(self, service):
        assert service.get_match_result("nope") is None


class TestValidation:
    """Malformed matches are rejected before the database is touched."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"match_id": ""},
            {"match_id": None},
            {"player2_id": 1},
            {"player1_id": "1"},
            {"winner_id": 3},
            {"duration_seconds": 0},
            {"duration_seconds": 86401},
            {"duration_seconds": "600"},
            {"duration_seconds": 60.5},
            {"match_type": ""},
            {"move_history": [Move(3, 1.0)]},
            {"move_history": [Move(1, -1.0)]},
            {"move_history": [Move(1, "fast")]},
        ],
    )
    def test_invalid_match(self, service, overrides):
        fields = {
            "match_id": "m-1",
            "player1_id": 1,
            "player2_id": 2,
            "winner_id": 1,
            "duration_seconds": 600,
        }
        fields.update(overrides)

        with pytest.raises(ValidationError):
            service.process_match(MatchResult(**fields))

    def test_duration_bounds_accepted(self, service, make_player):
        alice = make_player()
        bob = make_player()

        service.process_match(make_match("m-1", alice, bob, alice, duration_seconds=1))
        service.process_match(make_match("m-2", alice, bob, bob, duration_seconds=86400))

    def test_unknown_player(self, service, make_player, db_session):
        alice = make_player()

        with pytest.raises(NotFoundError):
            service.process_match(make_match("m-1", alice, 999, winner_id=alice))

        assert count(db_session, MatchRecord) == 0


class FailingEvaluator(AchievementEvaluator):
    def evaluate(self, ctx):
        raise RuntimeError("evaluator exploded")


class TestAtomicity:

    def test_failure_rolls_back_everything(self, session_factory, make_player, db_session):
        service = MatchProcessingService(
            session_factory=session_factory,
            evaluator=FailingEvaluator(),
            clock=lambda: NOW,
            percentile_refresh="per_match",
            percentile_min_games=1,
        )
        alice = make_player()
        bob = make_player()

        with pytest.raises(RuntimeError):
            service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        a = db_session.get(Player, alice)
        assert a.rating == 1200
        assert a.games_played == 0
        assert a.ranking_percentile is None
        assert count(db_session, MatchRecord) == 0
        assert count(db_session, RatingHistoryEntry) == 0


class InterferingAggregator(StatisticsAggregator):
    """Commits a competing change to a player once, mid-transaction."""

    def __init__(self, session_factory, victim_id):
        self.session_factory = session_factory
        self.victim_id = victim_id
        self.fired = False

    def record_outcome(self, session, player_id, *args, **kwargs):
        if not self.fired:
            self.fired = True
            with session_scope(self.session_factory) as other:
                other.get(Player, self.victim_id).rating += 1
        return super().record_outcome(session, player_id, *args, **kwargs)


class DriverError(Exception):
    def __init__(self, pgcode):
        super().__init__(f"driver error {pgcode}")
        self.pgcode = pgcode


class LockLosingAggregator(StatisticsAggregator):
    """Fails the way PostgreSQL reports a lost lock or deadlock."""

    def __init__(self, pgcode):
        self.pgcode = pgcode

    def record_outcome(self, session, player_id, *args, **kwargs):
        raise OperationalError("UPDATE players", {}, DriverError(self.pgcode))


class TestConcurrency:

    def test_stale_player_raises_concurrency_error(
        self, session_factory, make_player, db_session
    ):
        alice = make_player()
        bob = make_player()
        service = MatchProcessingService(
            session_factory=session_factory,
            aggregator=InterferingAggregator(session_factory, alice),
            clock=lambda: NOW,
            percentile_refresh="scheduled",
        )

        with pytest.raises(ConcurrencyError):
            service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        # The competing write survives, the match left no trace
        a = db_session.get(Player, alice)
        assert a.rating == 1201
        assert a.games_played == 0
        assert count(db_session, MatchRecord) == 0

    def test_retry_recovers(self, session_factory, make_player, db_session):
        alice = make_player()
        bob = make_player()
        service = MatchProcessingService(
            session_factory=session_factory,
            aggregator=InterferingAggregator(session_factory, alice),
            clock=lambda: NOW,
            percentile_refresh="scheduled",
        )
        sleeps = []

        result = process_match_with_retry(
            service,
            make_match("m-1", alice, bob, winner_id=alice),
            attempts=3,
            backoff_seconds=0.1,
            sleep=sleeps.append,
        )

        assert sleeps == [0.1]
        assert result.new_ratings["player1"] == 1201 + result.rating_changes["player1"]
        assert db_session.get(Player, alice).games_played == 1

    @pytest.mark.parametrize("pgcode", ["40P01", "55P03", "40001"])
    def test_lock_conflicts_raise_concurrency_error(
        self, session_factory, make_player, db_session, pgcode
    ):
        alice = make_player()
        bob = make_player()
        service = MatchProcessingService(
            session_factory=session_factory,
            aggregator=LockLosingAggregator(pgcode),
            clock=lambda: NOW,
            percentile_refresh="scheduled",
        )

        with pytest.raises(ConcurrencyError):
            service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        assert count(db_session, MatchRecord) == 0

    def test_other_database_errors_propagate(self, session_factory, make_player):
        alice = make_player()
        bob = make_player()
        service = MatchProcessingService(
            session_factory=session_factory,
            aggregator=LockLosingAggregator(None),
            clock=lambda: NOW,
            percentile_refresh="scheduled",
        )

        with pytest.raises(OperationalError):
            service.process_match(make_match("m-1", alice, bob, winner_id=alice))


class FlakyService:
    def __init__(self, failures, result="ok"):
        self.failures = failures
        self.result = result
        self.calls = 0

    def process_match(self, match):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConcurrencyError("locked")
        return self.result


class TestProcessMatchWithRetry:

    def test_backoff_doubles(self):
        service = FlakyService(failures=2)
        sleeps = []

        result = process_match_with_retry(
            service, make_match("m-1", 1, 2, 1), attempts=3, backoff_seconds=0.5, sleep=sleeps.append
        )

        assert result == "ok"
        assert sleeps == [0.5, 1.0]

    def test_gives_up(self):
        service = FlakyService(failures=5)
        sleeps = []

        with pytest.raises(ConcurrencyError):
            process_match_with_retry(
                service, make_match("m-1", 1, 2, 1), attempts=3, backoff_seconds=0.1, sleep=sleeps.append
            )
        assert service.calls == 3
        assert len(sleeps) == 2

    def test_conflict_not_retried(self):
        class ConflictingService:
            calls = 0

            def process_match(self, match):
                self.calls += 1
                raise ConflictError("seen", prior_result="prior")

        service = ConflictingService()
        with pytest.raises(ConflictError):
            process_match_with_retry(service, make_match("m-1", 1, 2, 1), attempts=3, sleep=lambda s: None)
        assert service.calls == 1


class RecordingNotifier:
    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.events = []
        self.committed = []

    def publish(self, event):
        self.events.append(event)
        with session_scope(self.session_factory) as session:
            self.committed.append(
                session.query(MatchRecord).filter_by(match_id=event.match_id).count()
            )


class ExplodingNotifier:
    def publish(self, event):
        raise RuntimeError("subscriber down")


class TestNotification:

    def test_event_published_after_commit(self, session_factory, make_player):
        notifier = RecordingNotifier(session_factory)
        service = MatchProcessingService(
            session_factory=session_factory, notifier=notifier, clock=lambda: NOW
        )
        alice = make_player()
        bob = make_player()

        service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        assert len(notifier.events) == 1
        event = notifier.events[0]
        assert event.match_id == "m-1"
        assert event.rating_changes == {"player1": 16, "player2": -16}
        assert event.player_ids == (alice, bob)
        assert notifier.committed == [1]

    def test_no_event_on_failure(self, session_factory, make_player):
        notifier = RecordingNotifier(session_factory)
        service = MatchProcessingService(
            session_factory=session_factory, notifier=notifier, clock=lambda: NOW
        )
        alice = make_player()

        with pytest.raises(NotFoundError):
            service.process_match(make_match("m-1", alice, 999, winner_id=alice))
        assert notifier.events == []

    def test_notifier_failure_does_not_undo_match(self, session_factory, make_player, db_session):
        service = MatchProcessingService(
            session_factory=session_factory, notifier=ExplodingNotifier(), clock=lambda: NOW
        )
        alice = make_player()
        bob = make_player()

        result = service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        assert result.rating_changes["player1"] == 16
        assert count(db_session, MatchRecord) == 1


class TestAchievementsDuringProcessing:

    def test_first_win_and_speed_demon(self, service, make_player, seeded_achievements):
        alice = make_player()
        bob = make_player()

        result = service.process_match(
            make_match("m-1", alice, bob, winner_id=alice, duration_seconds=90)
        )

        names = {a["name"] for a in result.achievements_earned["player1"]}
        assert names == {"First Blood", "Speed Demon"}
        assert result.achievements_earned["player2"] == []

    def test_achievement_awarded_once(self, service, make_player, seeded_achievements, db_session):
        alice = make_player()
        bob = make_player()

        service.process_match(make_match("m-1", alice, bob, winner_id=alice))
        second = service.process_match(make_match("m-2", alice, bob, winner_id=alice))

        names = {a["name"] for a in second.achievements_earned["player1"]}
        assert "First Blood" not in names
        assert "Double Trouble" in names
        assert db_session.query(PlayerAchievement).filter_by(player_id=alice).count() == 2

    def test_perfect_week(self, service, make_player, seeded_achievements):
        alice = make_player()
        bob = make_player()
        earned = []
        for day in range(5):
            result = service.process_match(
                make_match(
                    f"m-{day}", alice, bob, winner_id=alice,
                    ended_at=NOW - timedelta(days=4 - day),
                )
            )
            earned.append({a["name"] for a in result.achievements_earned["player1"]})

        assert "Perfect Week" not in earned[3]
        assert "Perfect Week" in earned[4]

    def test_daily_streak(self, service, make_player, seeded_achievements):
        alice = make_player()
        bob = make_player()
        earned = []
        for day in range(7):
            result = service.process_match(
                make_match(
                    f"m-{day}", alice, bob, winner_id=None,
                    ended_at=NOW - timedelta(days=6 - day),
                )
            )
            earned.append({a["name"] for a in result.achievements_earned["player1"]})

        assert not any("Daily Player" in names for names in earned[:6])
        assert "Daily Player" in earned[6]


class TestMatchResultHelpers:

    def test_from_dict(self):
        match = MatchResult.from_dict({
            "match_id": "m-9",
            "player1_id": 1,
            "player2_id": 2,
            "winner_id": None,
            "duration_seconds": 120,
            "move_history": [{"player_id": 1, "move_time": 1.5}, {"player_id": 2}],
            "ended_at": "2026-05-30T18:00:00",
        })

        assert match.match_type == "standard"
        assert match.move_history == [Move(1, 1.5), Move(2, None)]
        assert match.ended_at == datetime(2026, 5, 30, 18, 0)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"ended_at": "yesterday"},
            {"move_history": [1, 2]},
            {"move_history": ["player1"]},
        ],
    )
    def test_from_dict_rejects_malformed_fields(self, overrides):
        data = {
            "match_id": "m-9",
            "player1_id": 1,
            "player2_id": 2,
            "winner_id": 1,
            "duration_seconds": 120,
            **overrides,
        }

        with pytest.raises(ValidationError):
            MatchResult.from_dict(data)

    def test_from_dict_rejects_non_objects(self):
        with pytest.raises(ValidationError):
            MatchResult.from_dict(["m-9", 1, 2])

    def test_ended_at_must_be_a_datetime(self, service, make_player):
        alice = make_player()
        bob = make_player()

        with pytest.raises(ValidationError):
            service.process_match(
                make_match("m-1", alice, bob, winner_id=alice, ended_at="2026-06-01")
            )

    def test_offset_timestamps_stored_as_utc(self, service, make_player, db_session):
        alice = make_player()
        bob = make_player()
        service.process_match(make_match("m-1", alice, bob, winner_id=alice))

        second = MatchResult.from_dict({
            "match_id": "m-2",
            "player1_id": alice,
            "player2_id": bob,
            "winner_id": bob,
            "duration_seconds": 300,
            "ended_at": "2026-06-02T14:00:00+02:00",
        })
        service.process_match(second)

        record = db_session.query(MatchRecord).filter_by(match_id="m-2").one()
        assert record.played_at == datetime(2026, 6, 2, 12, 0)
        assert db_session.get(Player, alice).last_match_at == datetime(2026, 6, 2, 12, 0)

    def test_analyze_moves_without_timings(self):
        analysis = analyze_moves(make_match("m-1", 1, 2, 1, move_history=[Move(1), Move(2), Move(1)]))

        assert analysis.player1_moves == 2
        assert analysis.player2_moves == 1
        assert analysis.player1_avg_move_time is None

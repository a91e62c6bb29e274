"""Initial GameRank schema: players, match records, rating history, achievements, leaderboard

Revision ID: 5e1f0b7c2a91
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers, used by Alembic.
revision: str = "5e1f0b7c2a91"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False, server_default="1200"),
        sa.Column("games_played", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_won", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_lost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_drawn", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_win_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_playtime_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_moves_per_game", sa.Float(), nullable=False, server_default="0"),
        sa.Column("ranking_percentile", sa.Float(), nullable=True),
        sa.Column("last_match_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("rating >= 100 AND rating <= 3000", name="ck_players_rating_bounds"),
        sa.CheckConstraint(
            "games_played >= 0 AND games_won >= 0 AND games_lost >= 0 AND games_drawn >= 0",
            name="ck_players_counters_non_negative",
        ),
        sa.CheckConstraint(
            "games_won + games_lost + games_drawn = games_played",
            name="ck_players_counters_sum",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_index("idx_players_rating", "players", ["rating"])
    op.create_index("idx_players_games_played", "players", ["games_played"])

    op.create_table(
        "match_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.String(length=100), nullable=False),
        sa.Column("player1_id", sa.Integer(), nullable=False),
        sa.Column("player2_id", sa.Integer(), nullable=False),
        sa.Column("winner_id", sa.Integer(), nullable=True),
        sa.Column("match_type", sa.String(length=30), nullable=False, server_default="standard"),
        sa.Column("duration_seconds", sa.Integer(), nullable=False),
        sa.Column("total_moves", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("player1_moves", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("player2_moves", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("player1_avg_move_time", sa.Float(), nullable=True),
        sa.Column("player2_avg_move_time", sa.Float(), nullable=True),
        sa.Column("player1_rating_before", sa.Integer(), nullable=False),
        sa.Column("player2_rating_before", sa.Integer(), nullable=False),
        sa.Column("player1_rating_after", sa.Integer(), nullable=False),
        sa.Column("player2_rating_after", sa.Integer(), nullable=False),
        sa.Column("played_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("player1_id <> player2_id", name="ck_match_records_distinct_players"),
        sa.CheckConstraint(
            "duration_seconds >= 1 AND duration_seconds <= 86400",
            name="ck_match_records_duration",
        ),
        sa.ForeignKeyConstraint(["player1_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["player2_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["winner_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("match_id"),
    )
    op.create_index("idx_match_records_player1_date", "match_records", ["player1_id", "played_at"])
    op.create_index("idx_match_records_player2_date", "match_records", ["player2_id", "played_at"])

    op.create_table(
        "rating_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("old_rating", sa.Integer(), nullable=False),
        sa.Column("new_rating", sa.Integer(), nullable=False),
        sa.Column("rating_change", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.String(length=100), nullable=True),
        sa.Column("reason", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint(
            "reason IN ('win', 'loss', 'draw', 'decay')",
            name="ck_rating_history_reason",
        ),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("player_id", "match_id", name="uq_rating_history_player_match"),
    )
    op.create_index("idx_rating_history_player_date", "rating_history", ["player_id", "created_at"])

    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("condition_type", sa.String(length=50), nullable=False),
        sa.Column("condition_value", sa.Integer(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("icon_url", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "player_achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("achievement_id", sa.Integer(), nullable=False),
        sa.Column("earned_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("match_id", sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["achievement_id"], ["achievements.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("player_id", "achievement_id", name="uq_player_achievement"),
    )
    op.create_index("idx_player_achievements_match", "player_achievements", ["match_id"])

    op.create_table(
        "leaderboard_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("previous_rank", sa.Integer(), nullable=True),
        sa.Column("highest_rank", sa.Integer(), nullable=False),
        sa.Column("rank_change", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("wins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("losses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("draws", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_played", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("win_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("player_id"),
    )
    op.create_index("idx_leaderboard_rank", "leaderboard_entries", ["rank"])

    op.create_table(
        "update_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("update_type", sa.String(length=50), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("duration_seconds", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_update_log_type_date", "update_log", ["update_type", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_update_log_type_date", table_name="update_log")
    op.drop_table("update_log")

    op.drop_index("idx_leaderboard_rank", table_name="leaderboard_entries")
    op.drop_table("leaderboard_entries")

    op.drop_index("idx_player_achievements_match", table_name="player_achievements")
    op.drop_table("player_achievements")

    op.drop_table("achievements")

    op.drop_index("idx_rating_history_player_date", table_name="rating_history")
    op.drop_table("rating_history")

    op.drop_index("idx_match_records_player2_date", table_name="match_records")
    op.drop_index("idx_match_records_player1_date", table_name="match_records")
    op.drop_table("match_records")

    op.drop_index("idx_players_games_played", table_name="players")
    op.drop_index("idx_players_rating", table_name="players")
    op.drop_table("players")

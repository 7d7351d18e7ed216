"""Initial schema: users, games, game_participants with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table (rows provisioned by the login flow)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("picture", sa.String(1024), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Games table
    op.create_table(
        "games",
        sa.Column("id", sa.String(16), primary_key=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("total_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        # NULL means unlimited
        sa.Column("max_players", sa.Integer(), nullable=True),
        sa.Column("max_guests_per_player", sa.Integer(), nullable=True),
        sa.Column("max_waitlist_size", sa.Integer(), nullable=True),
        sa.Column("spots_left", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("max_players IS NULL OR max_players >= 0", name="check_max_players_non_negative"),
        sa.CheckConstraint(
            "max_guests_per_player IS NULL OR max_guests_per_player >= 0",
            name="check_max_guests_non_negative",
        ),
        sa.CheckConstraint(
            "max_waitlist_size IS NULL OR max_waitlist_size >= 0",
            name="check_max_waitlist_non_negative",
        ),
        # spots_left follows max_players: both NULL, or 0 <= spots_left <= max_players
        sa.CheckConstraint(
            "(max_players IS NULL AND spots_left IS NULL) OR "
            "(max_players IS NOT NULL AND spots_left IS NOT NULL "
            "AND spots_left >= 0 AND spots_left <= max_players)",
            name="check_spots_left_within_capacity",
        ),
        sa.CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        sa.CheckConstraint("total_price_cents >= 0", name="check_price_non_negative"),
    )
    op.create_index("ix_games_organizer_id", "games", ["organizer_id"])
    op.create_index("ix_games_published_at", "games", ["published_at"])

    # Participants table: one row per (game, user), never deleted
    op.create_table(
        "game_participants",
        sa.Column("game_id", sa.String(16), sa.ForeignKey("games.id"), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("intent", sa.String(20), nullable=False, server_default="unset"),
        sa.Column("guests", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("intent_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("guests >= 0", name="check_participant_guests_non_negative"),
        sa.CheckConstraint(
            "intent IN ('going', 'not_going', 'unset')",
            name="check_participant_intent",
        ),
        sa.CheckConstraint(
            "intent != 'not_going' OR guests = 0",
            name="check_not_going_has_no_guests",
        ),
    )
    op.create_index("ix_game_participants_user_id", "game_participants", ["user_id"])
    # The admission pass reads every claim of a game in arrival order
    op.create_index(
        "ix_game_participants_order",
        "game_participants",
        ["game_id", "intent_updated_at", "user_id"],
    )


def downgrade() -> None:
    op.drop_table("game_participants")
    op.drop_table("games")
    op.drop_table("users")

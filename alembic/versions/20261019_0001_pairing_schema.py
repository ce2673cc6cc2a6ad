"""pairing_schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

queue_state = sa.Enum("WAITING", "PENDING", name="queuestate")
game_status = sa.Enum("ONGOING", "FINISHED", "ABORTED", name="gamestatus")
game_result = sa.Enum("WHITE", "BLACK", "DRAW", name="gameresult")


def upgrade() -> None:
    op.create_table(
        "queueentry",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tournament_id", sa.String(length=64), nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("rating", sa.Float(), nullable=False),
        sa.Column("color_history", sa.JSON(), nullable=True),
        sa.Column("recent_opponents", sa.JSON(), nullable=True),
        sa.Column("waiting_since", sa.DateTime(), nullable=False),
        sa.Column("enqueued_at", sa.DateTime(), nullable=False),
        sa.Column("state", queue_state, nullable=False),
        sa.Column("batch_id", sa.String(length=64), nullable=True),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tournament_id", "player_id", name="uq_queueentry_tournament_player"),
    )
    op.create_index("ix_queueentry_tournament_id", "queueentry", ["tournament_id"], unique=False)
    op.create_index("ix_queueentry_player_id", "queueentry", ["player_id"], unique=False)
    op.create_index("ix_queueentry_state", "queueentry", ["state"], unique=False)
    op.create_index("ix_queueentry_batch_id", "queueentry", ["batch_id"], unique=False)
    op.create_index("ix_queueentry_claimed_at", "queueentry", ["claimed_at"], unique=False)
    op.create_index(
        "ix_queueentry_claim_order",
        "queueentry",
        ["tournament_id", "state", "waiting_since"],
        unique=False,
    )

    op.create_table(
        "playerprofile",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tournament_id", sa.String(length=64), nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("rating", sa.Float(), nullable=False),
        sa.Column("color_history", sa.JSON(), nullable=True),
        sa.Column("recent_opponents", sa.JSON(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tournament_id", "player_id", name="uq_playerprofile_tournament_player"
        ),
    )
    op.create_index("ix_playerprofile_tournament_id", "playerprofile", ["tournament_id"], unique=False)
    op.create_index("ix_playerprofile_player_id", "playerprofile", ["player_id"], unique=False)
    op.create_index("ix_playerprofile_user_id", "playerprofile", ["user_id"], unique=False)
    op.create_index("ix_playerprofile_active", "playerprofile", ["active"], unique=False)

    op.create_table(
        "pairinggame",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tournament_id", sa.String(length=64), nullable=False),
        sa.Column("white_player_id", sa.String(length=64), nullable=False),
        sa.Column("black_player_id", sa.String(length=64), nullable=False),
        sa.Column("batch_id", sa.String(length=64), nullable=False),
        sa.Column("status", game_status, nullable=False),
        sa.Column("result", game_result, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pairinggame_tournament_id", "pairinggame", ["tournament_id"], unique=False)
    op.create_index("ix_pairinggame_white_player_id", "pairinggame", ["white_player_id"], unique=False)
    op.create_index("ix_pairinggame_black_player_id", "pairinggame", ["black_player_id"], unique=False)
    op.create_index("ix_pairinggame_batch_id", "pairinggame", ["batch_id"], unique=False)
    op.create_index("ix_pairinggame_status", "pairinggame", ["status"], unique=False)

    op.create_table(
        "pairingcontrol",
        sa.Column("tournament_id", sa.String(length=64), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("batch_limit", sa.Integer(), nullable=False),
        sa.Column("tick_interval_s", sa.Float(), nullable=False),
        sa.Column("claim_timeout_s", sa.Float(), nullable=False),
        sa.Column("owner_instance_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("tournament_id"),
    )
    op.create_index("ix_pairingcontrol_enabled", "pairingcontrol", ["enabled"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_pairingcontrol_enabled", table_name="pairingcontrol")
    op.drop_table("pairingcontrol")

    for index_name in (
        "ix_pairinggame_status",
        "ix_pairinggame_batch_id",
        "ix_pairinggame_black_player_id",
        "ix_pairinggame_white_player_id",
        "ix_pairinggame_tournament_id",
    ):
        op.drop_index(index_name, table_name="pairinggame")
    op.drop_table("pairinggame")

    for index_name in (
        "ix_playerprofile_active",
        "ix_playerprofile_user_id",
        "ix_playerprofile_player_id",
        "ix_playerprofile_tournament_id",
    ):
        op.drop_index(index_name, table_name="playerprofile")
    op.drop_table("playerprofile")

    for index_name in (
        "ix_queueentry_claim_order",
        "ix_queueentry_claimed_at",
        "ix_queueentry_batch_id",
        "ix_queueentry_state",
        "ix_queueentry_player_id",
        "ix_queueentry_tournament_id",
    ):
        op.drop_index(index_name, table_name="queueentry")
    op.drop_table("queueentry")

    bind = op.get_bind()
    game_result.drop(bind, checkfirst=True)
    game_status.drop(bind, checkfirst=True)
    queue_state.drop(bind, checkfirst=True)

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import JSON, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from arena.db.enums import QueueState


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class QueueEntry(SQLModel, table=True):
    # One row per player and tournament: a player is either waiting or
    # pending, never both.
    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_queueentry_tournament_player"),
        Index("ix_queueentry_claim_order", "tournament_id", "state", "waiting_since"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tournament_id: str = Field(max_length=64, index=True, nullable=False)
    player_id: str = Field(max_length=64, index=True, nullable=False)
    user_id: str = Field(max_length=64, nullable=False)
    rating: float = Field(nullable=False)
    color_history: list[str] = Field(default_factory=list, sa_type=JSON)
    recent_opponents: list[str] = Field(default_factory=list, sa_type=JSON)
    waiting_since: datetime = Field(default_factory=utcnow, nullable=False)
    enqueued_at: datetime = Field(default_factory=utcnow, nullable=False)

    state: QueueState = Field(default=QueueState.WAITING, index=True)
    batch_id: str | None = Field(default=None, max_length=64, index=True)
    claimed_at: datetime | None = Field(default=None, index=True)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

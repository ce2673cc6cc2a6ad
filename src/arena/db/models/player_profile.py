from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import JSON, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PlayerProfile(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_playerprofile_tournament_player"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tournament_id: str = Field(max_length=64, index=True, nullable=False)
    player_id: str = Field(max_length=64, index=True, nullable=False)
    user_id: str = Field(max_length=64, index=True, nullable=False)
    rating: float = Field(default=1200.0, nullable=False)
    color_history: list[str] = Field(default_factory=list, sa_type=JSON)
    recent_opponents: list[str] = Field(default_factory=list, sa_type=JSON)
    active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

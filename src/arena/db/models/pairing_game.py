from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from arena.db.enums import GameResult, GameStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PairingGame(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tournament_id: str = Field(max_length=64, index=True, nullable=False)
    white_player_id: str = Field(max_length=64, index=True, nullable=False)
    black_player_id: str = Field(max_length=64, index=True, nullable=False)
    batch_id: str = Field(max_length=64, index=True, nullable=False)

    status: GameStatus = Field(default=GameStatus.ONGOING, index=True)
    result: GameResult | None = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    finished_at: datetime | None = Field(default=None)

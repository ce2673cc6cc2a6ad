from __future__ import annotations

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PairingControl(SQLModel, table=True):
    tournament_id: str = Field(max_length=64, primary_key=True)
    enabled: bool = Field(default=True, index=True)
    batch_limit: int = Field(nullable=False)
    tick_interval_s: float = Field(nullable=False)
    claim_timeout_s: float = Field(nullable=False)
    owner_instance_id: str | None = Field(default=None, max_length=64)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

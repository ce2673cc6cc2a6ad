from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from arena.config import Settings
from arena.db.enums import SchedulerState


class PairingLoopConfig(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "batch_limit": 80,
                "tick_interval_s": 3.0,
                "claim_timeout_s": 30.0,
                "min_pool_size": 2,
                "max_rating_gap": None,
                "seed": None,
            }
        },
    )

    batch_limit: int = Field(default=80, ge=2)
    tick_interval_s: float = Field(default=3.0, gt=0)
    claim_timeout_s: float = Field(default=30.0, gt=0)
    min_pool_size: int = Field(default=2, ge=2)
    max_backoff_s: float = Field(default=30.0, gt=0)
    max_rating_gap: float | None = Field(default=None, gt=0)
    seed: int | None = None

    @model_validator(mode="after")
    def validate_claim_timeout(self) -> PairingLoopConfig:
        # A claim must outlive one full claim-to-commit cycle.
        if self.claim_timeout_s <= self.tick_interval_s:
            raise ValueError("claim_timeout_s must be greater than tick_interval_s.")
        return self

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: object) -> PairingLoopConfig:
        values: dict[str, object] = {
            "batch_limit": settings.pairing_batch_limit,
            "tick_interval_s": settings.pairing_tick_interval_s,
            "claim_timeout_s": settings.pairing_claim_timeout_s,
            "min_pool_size": settings.pairing_min_pool_size,
            "max_backoff_s": settings.pairing_max_backoff_s,
            "max_rating_gap": settings.pairing_max_rating_gap,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)


class PairingLoopOverrides(BaseModel):
    batch_limit: int | None = Field(default=None, ge=2)
    tick_interval_s: float | None = Field(default=None, gt=0)
    claim_timeout_s: float | None = Field(default=None, gt=0)
    min_pool_size: int | None = Field(default=None, ge=2)
    max_rating_gap: float | None = Field(default=None, gt=0)
    seed: int | None = None


class CycleReport(BaseModel):
    batch_id: str
    claimed: int = 0
    paired: int = 0
    requeued: int = 0
    failed_pairs: int = 0
    dropped: int = 0
    unacked: int = 0
    exhausted: int = 0
    started_at: datetime
    finished_at: datetime | None = None


class LoopStartResponse(BaseModel):
    tournament_id: str
    started: bool
    state: SchedulerState
    config: PairingLoopConfig


class LoopStopResponse(BaseModel):
    tournament_id: str
    stopped: bool


class LoopStatusResponse(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "tournament_id": "t-42",
                "running": True,
                "state": "idle",
                "instance_id": "scheduler-3f1a9c0e21ab",
                "waiting": 3,
                "pending": 0,
                "consecutive_failures": 0,
                "last_error": None,
                "last_cycle": None,
            }
        }
    )

    tournament_id: str
    running: bool
    state: SchedulerState
    instance_id: str | None
    waiting: int
    pending: int
    consecutive_failures: int = 0
    last_error: str | None = None
    last_cycle: CycleReport | None = None


class ReclaimResponse(BaseModel):
    tournament_id: str
    reclaimed: int

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from arena.db.enums import GameResult

PLAYER_AVAILABLE = "pairing.player_available"
PLAYER_UNAVAILABLE = "pairing.player_unavailable"
PAIRING_CREATED = "pairing.created"
GAME_FINISHED = "game.finished"
PLAYER_JOINED = "tournament.player_joined"
PLAYER_LEFT = "tournament.player_left"


class EventModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class PlayerAvailableEvent(EventModel):
    player_id: str = Field(min_length=1, max_length=64)
    tournament_id: str = Field(min_length=1, max_length=64)


class PlayerUnavailableEvent(EventModel):
    player_id: str = Field(min_length=1, max_length=64)
    tournament_id: str | None = Field(default=None, max_length=64)


class PlayerJoinedEvent(EventModel):
    tournament_id: str = Field(min_length=1, max_length=64)
    player_id: str = Field(min_length=1, max_length=64)
    user_id: str = Field(min_length=1, max_length=64)
    rating: float | None = None


class PlayerLeftEvent(EventModel):
    tournament_id: str = Field(min_length=1, max_length=64)
    player_id: str = Field(min_length=1, max_length=64)


class GameFinishedEvent(EventModel):
    game_id: UUID
    result: GameResult


class PairingCreatedEvent(EventModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "whitePlayerId": "p-1001",
                "blackPlayerId": "p-1002",
                "tournamentId": "t-42",
                "gameId": "44efed45-d197-4416-bc45-d1cc804f3936",
                "batchId": "b-3f1a9c0e",
            }
        }
    )

    white_player_id: str
    black_player_id: str
    tournament_id: str
    game_id: UUID
    batch_id: str


class EventAcceptedResponse(BaseModel):
    topic: str
    accepted: bool

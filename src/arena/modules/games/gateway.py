from __future__ import annotations

from typing import Protocol
from uuid import UUID

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena.db.models import PairingGame
from arena.errors import PlayerIneligible, TransientStoreError
from arena.modules.games.repository import PairingGameRepository
from arena.modules.pairing.types import Pairing
from arena.modules.players.repository import PlayerProfileRepository


class GameGateway(Protocol):
    async def create_game(self, pairing: Pairing, *, batch_id: str) -> UUID: ...


class SqlGameGateway:
    """Creates the downstream game for a committed pair."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def create_game(self, pairing: Pairing, *, batch_id: str) -> UUID:
        try:
            async with self.sessionmaker() as session:
                profiles = PlayerProfileRepository(session)
                games = PairingGameRepository(session)
                ineligible: list[str] = []
                for player_id in pairing.player_ids:
                    profile = await profiles.get(
                        tournament_id=pairing.tournament_id,
                        player_id=player_id,
                    )
                    if profile is None or not profile.active:
                        ineligible.append(player_id)
                    elif await games.has_ongoing_game(
                        tournament_id=pairing.tournament_id,
                        player_id=player_id,
                    ):
                        ineligible.append(player_id)
                if ineligible:
                    raise PlayerIneligible(
                        ineligible,
                        "Player left the tournament or is already playing.",
                    )

                game = await games.create(
                    PairingGame(
                        tournament_id=pairing.tournament_id,
                        white_player_id=pairing.white_player_id,
                        black_player_id=pairing.black_player_id,
                        batch_id=batch_id,
                    )
                )
                return game.id
        except (OperationalError, DBAPIError, OSError) as exc:
            raise TransientStoreError("create_game") from exc

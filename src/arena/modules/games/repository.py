from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from arena.db.enums import GameResult, GameStatus
from arena.db.models import PairingGame


class PairingGameRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, game_id: UUID) -> PairingGame | None:
        return await self.session.get(PairingGame, game_id)

    async def has_ongoing_game(self, *, tournament_id: str, player_id: str) -> bool:
        stmt = (
            select(PairingGame.id)
            .where(col(PairingGame.tournament_id) == tournament_id)
            .where(col(PairingGame.status) == GameStatus.ONGOING)
            .where(
                or_(
                    col(PairingGame.white_player_id) == player_id,
                    col(PairingGame.black_player_id) == player_id,
                )
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def create(self, game: PairingGame) -> PairingGame:
        self.session.add(game)
        await self.session.commit()
        await self.session.refresh(game)
        return game

    def mark_finished(self, game: PairingGame, *, result: GameResult, now: datetime) -> PairingGame:
        game.status = GameStatus.FINISHED
        game.result = result
        game.finished_at = now
        self.session.add(game)
        return game

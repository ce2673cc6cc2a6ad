from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena.db.enums import GameStatus, PieceColor
from arena.db.models import PlayerProfile
from arena.errors import DuplicateEntry
from arena.modules.events.bus import InProcessEventBus
from arena.modules.events.schemas import (
    GAME_FINISHED,
    PLAYER_AVAILABLE,
    PLAYER_JOINED,
    PLAYER_LEFT,
    PLAYER_UNAVAILABLE,
    GameFinishedEvent,
    PlayerAvailableEvent,
    PlayerJoinedEvent,
    PlayerLeftEvent,
    PlayerUnavailableEvent,
)
from arena.modules.games.repository import PairingGameRepository
from arena.modules.pairing.scheduler import utcnow
from arena.modules.pairing.service import PairingLoopRegistry
from arena.modules.players.repository import PlayerProfileRepository, snapshot_from_profile
from arena.modules.queue.repository import PairingQueue

logger = logging.getLogger("arena.events")


class PairingEventHandlers:
    """Inbound event handlers. Every handler tolerates duplicate delivery."""

    def __init__(
        self,
        *,
        sessionmaker: async_sessionmaker[AsyncSession],
        queue: PairingQueue,
        registry: PairingLoopRegistry | None = None,
        recent_opponents_limit: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.sessionmaker = sessionmaker
        self.queue = queue
        self.registry = registry
        self.recent_opponents_limit = recent_opponents_limit
        self.clock = clock

    def register(self, bus: InProcessEventBus) -> None:
        bus.subscribe(PLAYER_AVAILABLE, PlayerAvailableEvent, self.on_player_available)
        bus.subscribe(PLAYER_UNAVAILABLE, PlayerUnavailableEvent, self.on_player_unavailable)
        bus.subscribe(PLAYER_JOINED, PlayerJoinedEvent, self.on_player_joined)
        bus.subscribe(PLAYER_LEFT, PlayerLeftEvent, self.on_player_left)
        bus.subscribe(GAME_FINISHED, GameFinishedEvent, self.on_game_finished)

    async def on_player_available(self, event: PlayerAvailableEvent) -> None:
        async with self.sessionmaker() as session:
            profile = await PlayerProfileRepository(session).get(
                tournament_id=event.tournament_id,
                player_id=event.player_id,
            )
        if profile is None or not profile.active:
            logger.warning(
                "player_available_without_profile",
                extra={"tournament_id": event.tournament_id, "player_id": event.player_id},
            )
            return
        await self._enqueue_profile(profile)

    async def on_player_unavailable(self, event: PlayerUnavailableEvent) -> None:
        removed = await self.queue.remove_player_everywhere(event.tournament_id, event.player_id)
        logger.info(
            "player_unavailable",
            extra={
                "tournament_id": event.tournament_id,
                "player_id": event.player_id,
                "removed": removed,
            },
        )

    async def on_player_joined(self, event: PlayerJoinedEvent) -> None:
        async with self.sessionmaker() as session:
            profile = await PlayerProfileRepository(session).upsert(
                tournament_id=event.tournament_id,
                player_id=event.player_id,
                user_id=event.user_id,
                rating=event.rating,
            )
        await self._enqueue_profile(profile)

    async def on_player_left(self, event: PlayerLeftEvent) -> None:
        async with self.sessionmaker() as session:
            await PlayerProfileRepository(session).deactivate(
                tournament_id=event.tournament_id,
                player_id=event.player_id,
            )
        await self.queue.remove_player_everywhere(event.tournament_id, event.player_id)

    async def on_game_finished(self, event: GameFinishedEvent) -> None:
        async with self.sessionmaker() as session:
            games = PairingGameRepository(session)
            profiles = PlayerProfileRepository(session)
            game = await games.get_by_id(event.game_id)
            if game is None:
                logger.warning("game_finished_unknown_game", extra={"game_id": str(event.game_id)})
                return
            if game.status != GameStatus.ONGOING:
                return

            white = await profiles.get(tournament_id=game.tournament_id, player_id=game.white_player_id)
            black = await profiles.get(tournament_id=game.tournament_id, player_id=game.black_player_id)
            games.mark_finished(game, result=event.result, now=self.clock())
            if white is not None:
                profiles.record_game(
                    white,
                    color=PieceColor.WHITE,
                    opponent_user_id=black.user_id if black is not None else game.black_player_id,
                    recent_limit=self.recent_opponents_limit,
                )
            if black is not None:
                profiles.record_game(
                    black,
                    color=PieceColor.BLACK,
                    opponent_user_id=white.user_id if white is not None else game.white_player_id,
                    recent_limit=self.recent_opponents_limit,
                )
            # Game status and both histories change together so a redelivery
            # either sees all of it or none of it.
            await session.commit()

        for profile in (white, black):
            if profile is not None and profile.active:
                await self._enqueue_profile(profile)

    async def _enqueue_profile(self, profile: PlayerProfile) -> None:
        snapshot = snapshot_from_profile(profile, waiting_since=self.clock())
        try:
            await self.queue.enqueue(profile.tournament_id, snapshot)
        except DuplicateEntry:
            # Already claimed by a batch; it comes back through ack or requeue.
            logger.info(
                "player_already_claimed",
                extra={"tournament_id": profile.tournament_id, "player_id": profile.player_id},
            )
            return
        if self.registry is not None:
            self.registry.nudge(profile.tournament_id)

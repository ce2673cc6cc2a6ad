from __future__ import annotations

import asyncio
import logging

from arena.config import Settings
from arena.modules.events.bus import EventPublisher
from arena.modules.games.gateway import GameGateway
from arena.modules.pairing.repository import PairingControlStore
from arena.modules.pairing.scheduler import PairingScheduler, new_instance_id
from arena.modules.pairing.schemas import (
    LoopStatusResponse,
    PairingLoopConfig,
)
from arena.modules.queue.repository import PairingQueue

logger = logging.getLogger("arena.pairing.scheduler")


class PairingLoopRegistry:
    """Control surface: one scheduler per tournament in this process."""

    def __init__(
        self,
        *,
        settings: Settings,
        queue: PairingQueue,
        games: GameGateway,
        publisher: EventPublisher,
        controls: PairingControlStore,
        instance_id: str | None = None,
    ) -> None:
        self.settings = settings
        self.queue = queue
        self.games = games
        self.publisher = publisher
        self.controls = controls
        self.instance_id = instance_id or new_instance_id()
        self._schedulers: dict[str, PairingScheduler] = {}

    def running_tournaments(self) -> list[str]:
        return sorted(tid for tid, scheduler in self._schedulers.items() if scheduler.running)

    async def start_pairing_loop(
        self,
        tournament_id: str,
        config: PairingLoopConfig | None = None,
    ) -> tuple[PairingScheduler, bool]:
        existing = self._schedulers.get(tournament_id)
        if existing is not None and existing.running and not existing.stop_requested:
            return existing, False
        if existing is not None and existing.running:
            # A stop is still finishing its commit; let it end before restarting.
            await existing.wait_stopped()

        cfg = config or PairingLoopConfig.from_settings(self.settings)
        scheduler = PairingScheduler(
            tournament_id,
            cfg,
            queue=self.queue,
            games=self.games,
            publisher=self.publisher,
            instance_id=self.instance_id,
        )
        await self.controls.enable(tournament_id, cfg, owner_instance_id=self.instance_id)
        self._schedulers[tournament_id] = scheduler
        scheduler.start()
        return scheduler, True

    async def stop_pairing_loop(self, tournament_id: str) -> bool:
        scheduler = self._schedulers.get(tournament_id)
        stopped = scheduler.stop() if scheduler is not None else False
        await self.controls.disable(tournament_id)
        if stopped:
            logger.info("pairing_loop_stop_requested", extra={"tournament_id": tournament_id})
        return stopped

    def nudge(self, tournament_id: str) -> None:
        scheduler = self._schedulers.get(tournament_id)
        if scheduler is not None:
            scheduler.nudge()

    async def status(self, tournament_id: str) -> LoopStatusResponse:
        counts = await self.queue.counts(tournament_id)
        scheduler = self._schedulers.get(tournament_id)
        if scheduler is None:
            return LoopStatusResponse(
                tournament_id=tournament_id,
                running=False,
                state="stopped",
                instance_id=None,
                waiting=counts.waiting,
                pending=counts.pending,
            )
        return LoopStatusResponse(
            tournament_id=tournament_id,
            running=scheduler.running,
            state=scheduler.state,
            instance_id=scheduler.instance_id,
            waiting=counts.waiting,
            pending=counts.pending,
            consecutive_failures=scheduler.consecutive_failures,
            last_error=scheduler.last_error,
            last_cycle=scheduler.last_cycle,
        )

    async def shutdown(self, *, timeout: float = 10.0) -> None:
        """Stop every loop in this process. Pending claims stay for the sweeper."""
        schedulers = list(self._schedulers.values())
        for scheduler in schedulers:
            scheduler.stop()
        await asyncio.gather(*(scheduler.wait_stopped(timeout) for scheduler in schedulers))
        self._schedulers.clear()

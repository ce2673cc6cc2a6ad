from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from arena.errors import TransientStoreError
from arena.modules.pairing.repository import PairingControlStore
from arena.modules.pairing.scheduler import utcnow
from arena.modules.queue.repository import PairingQueue

logger = logging.getLogger("arena.pairing.sweeper")


class ReclaimSweeper:
    """Returns stale pending claims to the waiting partition.

    Sweeps every tournament that currently holds pending entries, which
    covers every tournament with pairing enabled as well as loops that were
    stopped with claims still in flight. Each tournament uses the claim
    timeout it was started with, or ``default_claim_timeout_s``.
    """

    def __init__(
        self,
        *,
        queue: PairingQueue,
        controls: PairingControlStore,
        interval_s: float,
        default_claim_timeout_s: float,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.queue = queue
        self.controls = controls
        self.interval_s = interval_s
        self.default_claim_timeout_s = default_claim_timeout_s
        self.clock = clock
        self.last_error: str | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop_requested = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        if self.running:
            return False
        self._stop_requested = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="pairing-reclaim-sweeper")
        logger.info("reclaim_sweeper_started", extra={"interval_s": self.interval_s})
        return True

    async def stop(self) -> bool:
        task = self._task
        if task is None or task.done():
            return False
        self._stop_requested.set()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("reclaim_sweeper_stopped")
        return True

    async def reclaim(self, tournament_id: str, *, now: datetime | None = None) -> int:
        timeouts = await self.controls.claim_timeouts([tournament_id])
        timeout_s = timeouts.get(tournament_id, self.default_claim_timeout_s)
        current = now or self.clock()
        return await self.queue.reclaim_pending(
            tournament_id,
            current - timedelta(seconds=timeout_s),
            now=current,
        )

    async def sweep_once(self, *, now: datetime | None = None) -> dict[str, int]:
        current = now or self.clock()
        tournament_ids = await self.queue.tournaments_with_pending()
        timeouts = await self.controls.claim_timeouts(tournament_ids)
        reclaimed: dict[str, int] = {}
        for tournament_id in tournament_ids:
            timeout_s = timeouts.get(tournament_id, self.default_claim_timeout_s)
            count = await self.queue.reclaim_pending(
                tournament_id,
                current - timedelta(seconds=timeout_s),
                now=current,
            )
            if count:
                reclaimed[tournament_id] = count
        if reclaimed:
            logger.info("reclaim_sweep_completed", extra={"reclaimed": reclaimed})
        return reclaimed

    async def _run(self) -> None:
        while not self._stop_requested.is_set():
            try:
                await self.sweep_once()
                self.last_error = None
            except TransientStoreError as exc:
                self.last_error = f"{exc.__class__.__name__}: {exc}"
                logger.warning("reclaim_sweep_store_error", extra={"operation": exc.operation})
            except Exception as exc:
                self.last_error = f"{exc.__class__.__name__}: {exc}"
                logger.exception("reclaim_sweep_failed")
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                continue

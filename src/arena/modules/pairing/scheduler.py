from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone
from uuid import uuid4

from arena.db.enums import SchedulerState
from arena.errors import CommitFailure, DuplicateClaim, PlayerIneligible, TransientStoreError
from arena.modules.events.bus import EventPublisher
from arena.modules.events.schemas import PAIRING_CREATED, PairingCreatedEvent
from arena.modules.games.gateway import GameGateway
from arena.modules.pairing.algorithm import pair
from arena.modules.pairing.schemas import CycleReport, PairingLoopConfig
from arena.modules.pairing.types import Pairing
from arena.modules.queue.repository import PairingQueue

logger = logging.getLogger("arena.pairing.scheduler")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_instance_id() -> str:
    return f"scheduler-{uuid4().hex[:12]}"


class PairingScheduler:
    """Pairing loop for one tournament.

    Idle -> Claiming -> Pairing -> Committing -> Idle, until stopped. Stopping
    never interrupts a commit and never requeues in-flight claims; those are
    left to the reclaim sweeper.
    """

    def __init__(
        self,
        tournament_id: str,
        config: PairingLoopConfig,
        *,
        queue: PairingQueue,
        games: GameGateway,
        publisher: EventPublisher,
        instance_id: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.tournament_id = tournament_id
        self.config = config
        self.queue = queue
        self.games = games
        self.publisher = publisher
        self.instance_id = instance_id or new_instance_id()
        self.clock = clock
        self.rng = random.Random(config.seed)  # noqa: S311

        self.state = SchedulerState.IDLE
        self.consecutive_failures = 0
        self.last_error: str | None = None
        self.last_cycle: CycleReport | None = None

        self._task: asyncio.Task[None] | None = None
        self._stop_requested = asyncio.Event()
        self._wake = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def start(self) -> bool:
        if self.running:
            return False
        self._stop_requested = asyncio.Event()
        self._wake = asyncio.Event()
        self.state = SchedulerState.IDLE
        self._task = asyncio.create_task(self._run(), name=f"pairing-loop:{self.tournament_id}")
        logger.info(
            "pairing_loop_started",
            extra={"tournament_id": self.tournament_id, "instance_id": self.instance_id},
        )
        return True

    def stop(self) -> bool:
        """Request a stop. Safe to call from any thread or task, any number of times."""
        task = self._task
        if task is None or task.done() or self._stop_requested.is_set():
            return False
        loop = task.get_loop()
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            self._request_stop()
        else:
            loop.call_soon_threadsafe(self._request_stop)
        return True

    def _request_stop(self) -> None:
        self._stop_requested.set()
        self._wake.set()

    def nudge(self) -> None:
        """Wake the loop early; it still runs only if the pool is large enough."""
        if self.running and not self._stop_requested.is_set():
            self._wake.set()

    async def wait_stopped(self, timeout: float | None = None) -> None:
        task = self._task
        if task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "pairing_loop_stop_timeout",
                extra={"tournament_id": self.tournament_id, "timeout_s": timeout},
            )
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def next_delay(self) -> float:
        if self.consecutive_failures == 0:
            return self.config.tick_interval_s
        backoff = self.config.tick_interval_s * (2 ** self.consecutive_failures)
        return min(backoff, self.config.max_backoff_s)

    async def _run(self) -> None:
        delay = 0.0
        try:
            while not self._stop_requested.is_set():
                await self._wait_for_turn(delay)
                if self._stop_requested.is_set():
                    break
                if not await self._pool_ready():
                    delay = self.next_delay()
                    continue
                if self._stop_requested.is_set():
                    break
                await self._run_guarded_cycle()
                delay = self.next_delay()
        finally:
            self.state = SchedulerState.STOPPED
            logger.info(
                "pairing_loop_stopped",
                extra={"tournament_id": self.tournament_id, "instance_id": self.instance_id},
            )

    async def _wait_for_turn(self, delay: float) -> None:
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        finally:
            self._wake.clear()

    async def _pool_ready(self) -> bool:
        try:
            counts = await self.queue.counts(self.tournament_id)
        except TransientStoreError as exc:
            self._record_failure(exc)
            logger.warning(
                "pairing_pool_check_failed",
                extra={"tournament_id": self.tournament_id, "retry_in_s": self.next_delay()},
            )
            return False
        if counts.waiting < self.config.min_pool_size:
            # No cycle will run, so the healthy store read ends any backoff.
            self.consecutive_failures = 0
            return False
        return True

    def _record_failure(self, exc: BaseException) -> None:
        self.consecutive_failures += 1
        self.last_error = f"{exc.__class__.__name__}: {exc}"

    async def _run_guarded_cycle(self) -> None:
        try:
            await self.run_cycle()
        except TransientStoreError as exc:
            self._record_failure(exc)
            logger.warning(
                "pairing_cycle_store_error",
                extra={
                    "tournament_id": self.tournament_id,
                    "operation": exc.operation,
                    "retry_in_s": self.next_delay(),
                },
            )
        except DuplicateClaim as exc:
            self._record_failure(exc)
            logger.critical(
                "pairing_duplicate_claim",
                exc_info=True,
                extra={
                    "tournament_id": self.tournament_id,
                    "batch_id": exc.batch_id,
                    "player_ids": exc.player_ids,
                },
            )
        except Exception as exc:
            self._record_failure(exc)
            logger.exception("pairing_cycle_failed", extra={"tournament_id": self.tournament_id})
        else:
            self.consecutive_failures = 0
            self.last_error = None
        finally:
            if self.state != SchedulerState.STOPPED:
                self.state = SchedulerState.IDLE

    async def run_cycle(self) -> CycleReport:
        batch_id = f"{self.instance_id}:{uuid4().hex[:12]}"
        report = CycleReport(batch_id=batch_id, started_at=self.clock())
        self.last_cycle = report
        if self._stop_requested.is_set():
            report.finished_at = self.clock()
            return report

        self.state = SchedulerState.CLAIMING
        batch = await self.queue.batch_dequeue_to_pending(
            self.tournament_id,
            self.config.batch_limit,
            batch_id,
            now=self.clock(),
        )
        report.claimed = len(batch)
        if not batch:
            self.state = SchedulerState.IDLE
            report.finished_at = self.clock()
            return report

        self.state = SchedulerState.PAIRING
        outcome = pair(batch, rng=self.rng, max_rating_gap=self.config.max_rating_gap)
        report.exhausted = len(outcome.exhausted)

        self.state = SchedulerState.COMMITTING
        if outcome.leftovers:
            report.requeued += await self.queue.requeue_leftovers(
                self.tournament_id,
                outcome.leftovers,
                batch_id=batch_id,
                now=self.clock(),
            )
        for pairing in outcome.pairs:
            await self._commit_pair(pairing, batch_id=batch_id, report=report)

        report.finished_at = self.clock()
        self.state = SchedulerState.IDLE
        logger.info(
            "pairing_cycle_completed",
            extra={
                "tournament_id": self.tournament_id,
                "batch_id": batch_id,
                "claimed": report.claimed,
                "paired": report.paired,
                "requeued": report.requeued,
                "failed_pairs": report.failed_pairs,
                "dropped": report.dropped,
                "unacked": report.unacked,
            },
        )
        return report

    async def _commit_pair(self, pairing: Pairing, *, batch_id: str, report: CycleReport) -> None:
        try:
            game_id = await self.games.create_game(pairing, batch_id=batch_id)
        except PlayerIneligible as exc:
            report.failed_pairs += 1
            gone = [player_id for player_id in pairing.player_ids if player_id in exc.player_ids]
            keep = [player for player in (pairing.white, pairing.black) if player.player_id not in gone]
            report.dropped += await self.queue.remove_snapshots_from_pending(
                self.tournament_id, gone, batch_id=batch_id
            )
            report.requeued += await self.queue.requeue_leftovers(
                self.tournament_id, keep, batch_id=batch_id, now=self.clock()
            )
            logger.warning(
                "pairing_commit_rejected",
                extra={
                    "tournament_id": self.tournament_id,
                    "batch_id": batch_id,
                    "reason": exc.reason,
                    "dropped_player_ids": gone,
                },
            )
            return
        except (CommitFailure, TransientStoreError) as exc:
            report.failed_pairs += 1
            report.requeued += await self.queue.requeue_leftovers(
                self.tournament_id,
                [pairing.white, pairing.black],
                batch_id=batch_id,
                now=self.clock(),
            )
            logger.warning(
                "pairing_commit_failed",
                extra={
                    "tournament_id": self.tournament_id,
                    "batch_id": batch_id,
                    "white_player_id": pairing.white_player_id,
                    "black_player_id": pairing.black_player_id,
                    "error": str(exc),
                },
            )
            return

        try:
            await self.queue.ack_from_pending(self.tournament_id, pairing.player_ids, batch_id=batch_id)
        except TransientStoreError as exc:
            # The game is committed; the sweeper returns the stale claims and the
            # gateway drops them as already playing.
            report.unacked += 1
            logger.warning(
                "pairing_ack_failed",
                extra={
                    "tournament_id": self.tournament_id,
                    "batch_id": batch_id,
                    "game_id": str(game_id),
                    "operation": exc.operation,
                },
            )
        report.paired += 1
        event = PairingCreatedEvent(
            white_player_id=pairing.white_player_id,
            black_player_id=pairing.black_player_id,
            tournament_id=self.tournament_id,
            game_id=game_id,
            batch_id=batch_id,
        )
        try:
            await self.publisher.publish(PAIRING_CREATED, event)
        except Exception:
            # The game exists; only the notification is lost.
            logger.exception(
                "pairing_publish_failed",
                extra={"tournament_id": self.tournament_id, "game_id": str(game_id)},
            )

from __future__ import annotations

import logging
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import NamedTuple

from sqlalchemy import and_, delete, func, not_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col, select

from arena.db.enums import PieceColor, QueueState
from arena.db.models import QueueEntry
from arena.db.models.queue_entry import utcnow
from arena.db.session import store_transaction
from arena.errors import DuplicateClaim, DuplicateEntry
from arena.modules.pairing.types import PlayerSnapshot

logger = logging.getLogger("arena.queue")


class QueueCounts(NamedTuple):
    waiting: int
    pending: int


def snapshot_from_entry(entry: QueueEntry) -> PlayerSnapshot:
    return PlayerSnapshot(
        player_id=entry.player_id,
        user_id=entry.user_id,
        tournament_id=entry.tournament_id,
        rating=entry.rating,
        waiting_since=entry.waiting_since,
        color_history=tuple(PieceColor(color) for color in entry.color_history or []),
        recent_opponents=frozenset(entry.recent_opponents or []),
    )


def _unique(player_ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(player_ids))


class PairingQueue:
    """Per-tournament reliable queue with a waiting and a pending partition.

    Every verb runs in its own transaction. Cross-instance coordination
    relies only on the conditional claim update, so any number of
    schedulers may share one database.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    def _transaction(self, operation: str) -> AbstractAsyncContextManager[AsyncSession]:
        return store_transaction(self.sessionmaker, operation)

    @staticmethod
    async def _get_entry(session: AsyncSession, tournament_id: str, player_id: str) -> QueueEntry | None:
        stmt = (
            select(QueueEntry)
            .where(col(QueueEntry.tournament_id) == tournament_id)
            .where(col(QueueEntry.player_id) == player_id)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def enqueue(
        self,
        tournament_id: str,
        snapshot: PlayerSnapshot,
        *,
        now: datetime | None = None,
    ) -> bool:
        """Insert or refresh the player's waiting entry.

        Returns True when a new entry was created. A player already waiting
        keeps its original ``waiting_since``.
        """
        if snapshot.tournament_id != tournament_id:
            raise ValueError("Snapshot belongs to a different tournament.")
        try:
            return await self._enqueue_once(tournament_id, snapshot, now=now)
        except IntegrityError:
            # A concurrent delivery inserted the row first; the retry sees it.
            return await self._enqueue_once(tournament_id, snapshot, now=now)

    async def _enqueue_once(
        self,
        tournament_id: str,
        snapshot: PlayerSnapshot,
        *,
        now: datetime | None,
    ) -> bool:
        timestamp = now or utcnow()
        async with self._transaction("enqueue") as session:
            entry = await self._get_entry(session, tournament_id, snapshot.player_id)
            if entry is not None and entry.state == QueueState.PENDING:
                raise DuplicateEntry(tournament_id, snapshot.player_id)

            color_history = [color.value for color in snapshot.color_history]
            recent_opponents = sorted(snapshot.recent_opponents)
            if entry is None:
                session.add(
                    QueueEntry(
                        tournament_id=tournament_id,
                        player_id=snapshot.player_id,
                        user_id=snapshot.user_id,
                        rating=snapshot.rating,
                        color_history=color_history,
                        recent_opponents=recent_opponents,
                        waiting_since=snapshot.waiting_since,
                        enqueued_at=timestamp,
                        state=QueueState.WAITING,
                        updated_at=timestamp,
                    )
                )
                created = True
            else:
                entry.user_id = snapshot.user_id
                entry.rating = snapshot.rating
                entry.color_history = color_history
                entry.recent_opponents = recent_opponents
                entry.updated_at = timestamp
                session.add(entry)
                created = False

        logger.debug(
            "queue_enqueued",
            extra={
                "tournament_id": tournament_id,
                "player_id": snapshot.player_id,
                "new_entry": created,
            },
        )
        return created

    async def batch_dequeue_to_pending(
        self,
        tournament_id: str,
        limit: int,
        batch_id: str,
        *,
        now: datetime | None = None,
    ) -> list[PlayerSnapshot]:
        if limit <= 0:
            return []
        claimed_at = now or utcnow()
        async with self._transaction("batch_dequeue_to_pending") as session:
            id_stmt = (
                select(QueueEntry.id)
                .where(col(QueueEntry.tournament_id) == tournament_id)
                .where(col(QueueEntry.state) == QueueState.WAITING)
                .order_by(
                    col(QueueEntry.waiting_since),
                    col(QueueEntry.enqueued_at),
                    col(QueueEntry.player_id),
                )
                .limit(limit)
                .with_for_update(skip_locked=True)
            )
            entry_ids = list((await session.execute(id_stmt)).scalars().all())
            if not entry_ids:
                return []

            # The state guard makes the claim conditional: a row another
            # claimer took in the meantime is simply not updated here.
            await session.execute(
                update(QueueEntry)
                .where(col(QueueEntry.id).in_(entry_ids))
                .where(col(QueueEntry.state) == QueueState.WAITING)
                .values(
                    state=QueueState.PENDING,
                    batch_id=batch_id,
                    claimed_at=claimed_at,
                    updated_at=claimed_at,
                )
                .execution_options(synchronize_session=False)
            )
            claimed_stmt = (
                select(QueueEntry)
                .where(col(QueueEntry.tournament_id) == tournament_id)
                .where(col(QueueEntry.state) == QueueState.PENDING)
                .where(col(QueueEntry.batch_id) == batch_id)
                .order_by(
                    col(QueueEntry.waiting_since),
                    col(QueueEntry.enqueued_at),
                    col(QueueEntry.player_id),
                )
            )
            claimed = list((await session.execute(claimed_stmt)).scalars().all())
            snapshots = [snapshot_from_entry(entry) for entry in claimed]

        logger.debug(
            "queue_batch_claimed",
            extra={"tournament_id": tournament_id, "batch_id": batch_id, "claimed": len(snapshots)},
        )
        return snapshots

    async def ack_from_pending(
        self,
        tournament_id: str,
        player_ids: Iterable[str],
        *,
        batch_id: str | None = None,
    ) -> int:
        """Remove committed pending entries. Unknown ids are ignored.

        With ``batch_id`` the ack also verifies that every named player that
        is still queued is pending under that batch, and raises
        ``DuplicateClaim`` otherwise.
        """
        ids = _unique(player_ids)
        if not ids:
            return 0
        async with self._transaction("ack_from_pending") as session:
            if batch_id is not None:
                foreign_stmt = (
                    select(QueueEntry.player_id)
                    .where(col(QueueEntry.tournament_id) == tournament_id)
                    .where(col(QueueEntry.player_id).in_(ids))
                    .where(
                        not_(
                            and_(
                                col(QueueEntry.state) == QueueState.PENDING,
                                col(QueueEntry.batch_id) == batch_id,
                            )
                        )
                    )
                )
                foreign = list((await session.execute(foreign_stmt)).scalars().all())
                if foreign:
                    raise DuplicateClaim(tournament_id, foreign, batch_id)

            result = await session.execute(
                delete(QueueEntry)
                .where(col(QueueEntry.tournament_id) == tournament_id)
                .where(col(QueueEntry.player_id).in_(ids))
                .where(col(QueueEntry.state) == QueueState.PENDING)
            )
            removed = int(result.rowcount or 0)

        logger.debug(
            "queue_acked",
            extra={"tournament_id": tournament_id, "batch_id": batch_id, "removed": removed},
        )
        return removed

    async def requeue_leftovers(
        self,
        tournament_id: str,
        snapshots: Iterable[PlayerSnapshot],
        *,
        batch_id: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Return pending entries to waiting. ``waiting_since`` is kept.

        With ``batch_id`` only entries still claimed by that batch move, so a
        claim that was reclaimed and taken by another batch is left alone.
        """
        ids = _unique(snapshot.player_id for snapshot in snapshots)
        if not ids:
            return 0
        timestamp = now or utcnow()
        async with self._transaction("requeue_leftovers") as session:
            stmt = (
                update(QueueEntry)
                .where(col(QueueEntry.tournament_id) == tournament_id)
                .where(col(QueueEntry.player_id).in_(ids))
                .where(col(QueueEntry.state) == QueueState.PENDING)
            )
            if batch_id is not None:
                stmt = stmt.where(col(QueueEntry.batch_id) == batch_id)
            result = await session.execute(
                stmt.values(
                    state=QueueState.WAITING,
                    batch_id=None,
                    claimed_at=None,
                    updated_at=timestamp,
                )
                .execution_options(synchronize_session=False)
            )
            requeued = int(result.rowcount or 0)
        return requeued

    async def reclaim_pending(
        self,
        tournament_id: str,
        older_than: datetime,
        *,
        now: datetime | None = None,
    ) -> int:
        timestamp = now or utcnow()
        async with self._transaction("reclaim_pending") as session:
            result = await session.execute(
                update(QueueEntry)
                .where(col(QueueEntry.tournament_id) == tournament_id)
                .where(col(QueueEntry.state) == QueueState.PENDING)
                .where(col(QueueEntry.claimed_at) < older_than)
                .values(
                    state=QueueState.WAITING,
                    batch_id=None,
                    claimed_at=None,
                    updated_at=timestamp,
                )
                .execution_options(synchronize_session=False)
            )
            reclaimed = int(result.rowcount or 0)

        if reclaimed:
            logger.info(
                "queue_pending_reclaimed",
                extra={"tournament_id": tournament_id, "reclaimed": reclaimed},
            )
        return reclaimed

    async def remove_player_everywhere(self, tournament_id: str | None, player_id: str) -> int:
        """Drop the player from both partitions.

        Without ``tournament_id`` the player is removed from every tournament.
        """
        async with self._transaction("remove_player_everywhere") as session:
            stmt = delete(QueueEntry).where(col(QueueEntry.player_id) == player_id)
            if tournament_id is not None:
                stmt = stmt.where(col(QueueEntry.tournament_id) == tournament_id)
            result = await session.execute(stmt)
            return int(result.rowcount or 0)

    async def remove_snapshots_from_pending(
        self,
        tournament_id: str,
        player_ids: Iterable[str],
        *,
        batch_id: str | None = None,
    ) -> int:
        ids = _unique(player_ids)
        if not ids:
            return 0
        async with self._transaction("remove_snapshots_from_pending") as session:
            stmt = (
                delete(QueueEntry)
                .where(col(QueueEntry.tournament_id) == tournament_id)
                .where(col(QueueEntry.player_id).in_(ids))
                .where(col(QueueEntry.state) == QueueState.PENDING)
            )
            if batch_id is not None:
                stmt = stmt.where(col(QueueEntry.batch_id) == batch_id)
            result = await session.execute(stmt)
            removed = int(result.rowcount or 0)

        if removed:
            logger.info(
                "queue_pending_dropped",
                extra={"tournament_id": tournament_id, "player_ids": ids, "removed": removed},
            )
        return removed

    async def counts(self, tournament_id: str) -> QueueCounts:
        async with self._transaction("counts") as session:
            stmt = (
                select(QueueEntry.state, func.count())
                .where(col(QueueEntry.tournament_id) == tournament_id)
                .group_by(col(QueueEntry.state))
            )
            rows = (await session.execute(stmt)).all()
        by_state = {QueueState(row[0]): int(row[1]) for row in rows}
        return QueueCounts(
            waiting=by_state.get(QueueState.WAITING, 0),
            pending=by_state.get(QueueState.PENDING, 0),
        )

    async def tournaments_with_pending(self) -> list[str]:
        async with self._transaction("tournaments_with_pending") as session:
            stmt = (
                select(QueueEntry.tournament_id)
                .where(col(QueueEntry.state) == QueueState.PENDING)
                .distinct()
                .order_by(col(QueueEntry.tournament_id))
            )
            return list((await session.execute(stmt)).scalars().all())

    async def state_of(self, tournament_id: str, player_id: str) -> QueueState | None:
        async with self._transaction("state_of") as session:
            entry = await self._get_entry(session, tournament_id, player_id)
            return None if entry is None else entry.state

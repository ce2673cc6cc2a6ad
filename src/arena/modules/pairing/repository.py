from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col, select

from arena.db.models import PairingControl
from arena.db.models.pairing_control import utcnow
from arena.db.session import store_transaction
from arena.modules.pairing.schemas import PairingLoopConfig


class PairingControlStore:
    """Which tournaments have pairing enabled, and with which loop settings."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def enable(
        self,
        tournament_id: str,
        config: PairingLoopConfig,
        *,
        owner_instance_id: str | None = None,
    ) -> PairingControl:
        now = utcnow()
        async with store_transaction(self.sessionmaker, "control_enable") as session:
            control = await session.get(PairingControl, tournament_id)
            if control is None:
                control = PairingControl(
                    tournament_id=tournament_id,
                    batch_limit=config.batch_limit,
                    tick_interval_s=config.tick_interval_s,
                    claim_timeout_s=config.claim_timeout_s,
                    created_at=now,
                )
            control.enabled = True
            control.batch_limit = config.batch_limit
            control.tick_interval_s = config.tick_interval_s
            control.claim_timeout_s = config.claim_timeout_s
            control.owner_instance_id = owner_instance_id
            control.updated_at = now
            session.add(control)
        return control

    async def disable(self, tournament_id: str) -> bool:
        async with store_transaction(self.sessionmaker, "control_disable") as session:
            control = await session.get(PairingControl, tournament_id)
            if control is None or not control.enabled:
                return False
            control.enabled = False
            control.updated_at = utcnow()
            session.add(control)
        return True

    async def list_enabled(self) -> list[PairingControl]:
        async with store_transaction(self.sessionmaker, "control_list_enabled") as session:
            stmt = (
                select(PairingControl)
                .where(col(PairingControl.enabled))
                .order_by(col(PairingControl.tournament_id))
            )
            return list((await session.execute(stmt)).scalars().all())

    async def claim_timeouts(self, tournament_ids: list[str]) -> dict[str, float]:
        if not tournament_ids:
            return {}
        async with store_transaction(self.sessionmaker, "control_claim_timeouts") as session:
            stmt = select(PairingControl).where(col(PairingControl.tournament_id).in_(tournament_ids))
            controls = (await session.execute(stmt)).scalars().all()
            return {control.tournament_id: control.claim_timeout_s for control in controls}

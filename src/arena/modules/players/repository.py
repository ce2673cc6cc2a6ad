from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from arena.db.enums import PieceColor
from arena.db.models import PlayerProfile
from arena.db.models.player_profile import utcnow
from arena.modules.pairing.types import PlayerSnapshot


class PlayerProfileRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, *, tournament_id: str, player_id: str) -> PlayerProfile | None:
        stmt = (
            select(PlayerProfile)
            .where(col(PlayerProfile.tournament_id) == tournament_id)
            .where(col(PlayerProfile.player_id) == player_id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def upsert(
        self,
        *,
        tournament_id: str,
        player_id: str,
        user_id: str,
        rating: float | None = None,
    ) -> PlayerProfile:
        now = utcnow()
        profile = await self.get(tournament_id=tournament_id, player_id=player_id)
        if profile is None:
            profile = PlayerProfile(
                tournament_id=tournament_id,
                player_id=player_id,
                user_id=user_id,
                created_at=now,
                updated_at=now,
            )
        profile.user_id = user_id
        if rating is not None:
            profile.rating = rating
        profile.active = True
        profile.updated_at = now
        return await self.save(profile)

    async def deactivate(self, *, tournament_id: str, player_id: str) -> bool:
        profile = await self.get(tournament_id=tournament_id, player_id=player_id)
        if profile is None or not profile.active:
            return False
        profile.active = False
        profile.updated_at = utcnow()
        await self.save(profile)
        return True

    def record_game(
        self,
        profile: PlayerProfile,
        *,
        color: PieceColor,
        opponent_user_id: str,
        recent_limit: int,
    ) -> PlayerProfile:
        """Append the game to the profile. The caller commits."""
        # JSON columns are reassigned, not mutated, so the change is tracked.
        profile.color_history = [*profile.color_history, color.value]
        opponents = [opponent_user_id, *(o for o in profile.recent_opponents if o != opponent_user_id)]
        profile.recent_opponents = opponents[: max(0, recent_limit)]
        profile.updated_at = utcnow()
        self.session.add(profile)
        return profile

    async def save(self, profile: PlayerProfile) -> PlayerProfile:
        self.session.add(profile)
        await self.session.commit()
        await self.session.refresh(profile)
        return profile


def snapshot_from_profile(profile: PlayerProfile, *, waiting_since: datetime) -> PlayerSnapshot:
    return PlayerSnapshot(
        player_id=profile.player_id,
        user_id=profile.user_id,
        tournament_id=profile.tournament_id,
        rating=profile.rating,
        waiting_since=waiting_since,
        color_history=tuple(PieceColor(color) for color in profile.color_history or []),
        recent_opponents=frozenset(profile.recent_opponents or []),
    )

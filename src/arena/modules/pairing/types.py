from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from arena.db.enums import PieceColor


@dataclass(frozen=True)
class PlayerSnapshot:
    """Queueable identity of one tournament participant."""

    player_id: str
    user_id: str
    tournament_id: str
    rating: float
    waiting_since: datetime
    color_history: tuple[PieceColor, ...] = ()
    recent_opponents: frozenset[str] = frozenset()

    @property
    def color_balance(self) -> int:
        whites = sum(1 for color in self.color_history if color == PieceColor.WHITE)
        blacks = sum(1 for color in self.color_history if color == PieceColor.BLACK)
        return whites - blacks

    @property
    def last_color(self) -> PieceColor | None:
        return self.color_history[-1] if self.color_history else None

    def has_recently_met(self, other: PlayerSnapshot) -> bool:
        return (
            other.user_id in self.recent_opponents
            or other.player_id in self.recent_opponents
            or self.user_id in other.recent_opponents
            or self.player_id in other.recent_opponents
        )


@dataclass(frozen=True)
class Pairing:
    white: PlayerSnapshot
    black: PlayerSnapshot
    relaxed: bool = False

    @property
    def tournament_id(self) -> str:
        return self.white.tournament_id

    @property
    def white_player_id(self) -> str:
        return self.white.player_id

    @property
    def black_player_id(self) -> str:
        return self.black.player_id

    @property
    def player_ids(self) -> tuple[str, str]:
        return (self.white.player_id, self.black.player_id)


@dataclass(frozen=True)
class PairingOutcome:
    pairs: list[Pairing] = field(default_factory=list)
    leftovers: list[PlayerSnapshot] = field(default_factory=list)
    exhausted: list[str] = field(default_factory=list)

    @property
    def paired_player_ids(self) -> list[str]:
        return [player_id for pair in self.pairs for player_id in pair.player_ids]

from __future__ import annotations

import random

from arena.db.enums import PieceColor
from arena.errors import ConstraintExhausted
from arena.modules.pairing.selection import quickselect
from arena.modules.pairing.types import Pairing, PairingOutcome, PlayerSnapshot


def pair(
    snapshots: list[PlayerSnapshot],
    *,
    seed: int | None = None,
    rng: random.Random | None = None,
    max_rating_gap: float | None = None,
) -> PairingOutcome:
    """Pair a claimed batch of players.

    Each round anchors on the longest-waiting unpaired player and picks the
    nearest-rated partner by selection instead of sorting the pool. Recent
    opponents are skipped unless nobody else is left, in which case the
    nearest one is taken anyway. ``max_rating_gap`` is a hard window that is
    never relaxed; an anchor with nobody inside it becomes a leftover.
    """
    generator = rng or random.Random(seed)  # noqa: S311
    pool = list(range(len(snapshots)))
    pairs: list[Pairing] = []
    leftover_indexes: list[int] = []
    exhausted: list[str] = []

    while len(pool) >= 2:
        anchor_index = min(pool, key=lambda index: (snapshots[index].waiting_since, index))
        pool.remove(anchor_index)
        anchor = snapshots[anchor_index]
        try:
            partner_index, relaxed = select_partner(
                anchor,
                snapshots,
                pool,
                rng=generator,
                max_rating_gap=max_rating_gap,
            )
        except ConstraintExhausted as exc:
            exhausted.append(exc.player_id)
            leftover_indexes.append(anchor_index)
            continue
        pool.remove(partner_index)
        pairs.append(assign_colors(anchor, snapshots[partner_index], relaxed=relaxed))

    leftover_indexes.extend(pool)
    return PairingOutcome(
        pairs=pairs,
        leftovers=[snapshots[index] for index in sorted(leftover_indexes)],
        exhausted=exhausted,
    )


def select_partner(
    anchor: PlayerSnapshot,
    snapshots: list[PlayerSnapshot],
    pool: list[int],
    *,
    rng: random.Random,
    max_rating_gap: float | None = None,
) -> tuple[int, bool]:
    """Return ``(index, relaxed)`` of the best partner for ``anchor``."""

    def proximity(index: int) -> tuple[float, object, str]:
        candidate = snapshots[index]
        return (
            abs(candidate.rating - anchor.rating),
            candidate.waiting_since,
            candidate.player_id,
        )

    candidates = [
        index
        for index in pool
        if max_rating_gap is None or abs(snapshots[index].rating - anchor.rating) <= max_rating_gap
    ]
    if not candidates:
        raise ConstraintExhausted(anchor.player_id)

    for rank in range(len(candidates)):
        index = quickselect(candidates, rank, key=proximity, rng=rng)
        if not anchor.has_recently_met(snapshots[index]):
            return index, False
    return quickselect(candidates, 0, key=proximity, rng=rng), True


def _black_priority(player: PlayerSnapshot) -> tuple[int, bool, str]:
    return (player.color_balance, player.last_color == PieceColor.WHITE, player.player_id)


def assign_colors(a: PlayerSnapshot, b: PlayerSnapshot, *, relaxed: bool = False) -> Pairing:
    # Higher white-minus-black balance plays black; then whoever had white
    # last; then the larger player id.
    black = max(a, b, key=_black_priority)
    white = b if black is a else a
    return Pairing(white=white, black=black, relaxed=relaxed)

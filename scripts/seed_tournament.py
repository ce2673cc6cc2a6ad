from __future__ import annotations

import argparse
import asyncio
import random
import sys
from pathlib import Path

# Allows running the script from the repository root.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))


async def seed_tournament(
    tournament_id: str,
    *,
    players: int,
    base_rating: float,
    spread: float,
    seed: int | None,
) -> int:
    from arena.config import get_settings
    from arena.db.session import get_sessionmaker, init_db
    from arena.modules.events.handlers import PairingEventHandlers
    from arena.modules.events.schemas import PlayerJoinedEvent
    from arena.modules.queue.repository import PairingQueue

    await init_db()
    sessionmaker = get_sessionmaker()
    handlers = PairingEventHandlers(
        sessionmaker=sessionmaker,
        queue=PairingQueue(sessionmaker),
        recent_opponents_limit=get_settings().pairing_recent_opponents_limit,
    )
    rng = random.Random(seed)  # noqa: S311
    for index in range(1, players + 1):
        await handlers.on_player_joined(
            PlayerJoinedEvent(
                tournament_id=tournament_id,
                player_id=f"{tournament_id}-p{index:04d}",
                user_id=f"user-{index:04d}",
                rating=round(rng.gauss(base_rating, spread), 1),
            )
        )
    counts = await handlers.queue.counts(tournament_id)
    return counts.waiting


async def main_async() -> None:
    parser = argparse.ArgumentParser(description="Registers fake players in a tournament queue.")
    parser.add_argument("tournament_id", help="Tournament to seed.")
    parser.add_argument("--players", type=int, default=20, help="Number of players to register.")
    parser.add_argument("--base-rating", type=float, default=1500.0)
    parser.add_argument("--spread", type=float, default=200.0, help="Rating standard deviation.")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    waiting = await seed_tournament(
        args.tournament_id,
        players=args.players,
        base_rating=args.base_rating,
        spread=args.spread,
        seed=args.seed,
    )
    print(f"Tournament {args.tournament_id} ready: {waiting} players waiting")

    from arena.db.session import get_engine

    await get_engine().dispose()


if __name__ == "__main__":
    asyncio.run(main_async())

from __future__ import annotations

import asyncio
import sys
import unittest
from pathlib import Path

from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from arena.modules.events.bus import InProcessEventBus, LoggingEventPublisher
from arena.modules.events.schemas import (
    PAIRING_CREATED,
    PLAYER_AVAILABLE,
    PLAYER_UNAVAILABLE,
    PairingCreatedEvent,
    PlayerAvailableEvent,
    PlayerUnavailableEvent,
)


class TestEventBus(unittest.TestCase):
    def test_parse_accepts_camel_case_payload(self) -> None:
        bus = InProcessEventBus()

        async def handler(event: PlayerAvailableEvent) -> None:
            del event

        bus.subscribe(PLAYER_AVAILABLE, PlayerAvailableEvent, handler)
        event = bus.parse(PLAYER_AVAILABLE, {"playerId": "p-1", "tournamentId": "t-1"})

        assert isinstance(event, PlayerAvailableEvent)
        self.assertEqual(event.player_id, "p-1")
        self.assertEqual(event.tournament_id, "t-1")

    def test_parse_rejects_unknown_topic_and_bad_payload(self) -> None:
        bus = InProcessEventBus()

        async def handler(event: PlayerAvailableEvent) -> None:
            del event

        bus.subscribe(PLAYER_AVAILABLE, PlayerAvailableEvent, handler)
        with self.assertRaises(LookupError):
            bus.parse("pairing.unknown", {})
        with self.assertRaises(ValidationError):
            bus.parse(PLAYER_AVAILABLE, {"playerId": "p-1"})

    def test_topic_cannot_change_model(self) -> None:
        bus = InProcessEventBus()

        async def handler(event: object) -> None:
            del event

        bus.subscribe(PLAYER_AVAILABLE, PlayerAvailableEvent, handler)
        with self.assertRaises(ValueError):
            bus.subscribe(PLAYER_AVAILABLE, PlayerUnavailableEvent, handler)

    def test_inline_dispatch_before_start(self) -> None:
        async def _run() -> list[str]:
            bus = InProcessEventBus()
            seen: list[str] = []

            async def handler(event: PlayerUnavailableEvent) -> None:
                seen.append(event.player_id)

            bus.subscribe(PLAYER_UNAVAILABLE, PlayerUnavailableEvent, handler)
            await bus.deliver(PLAYER_UNAVAILABLE, {"playerId": "p-9"})
            return seen

        self.assertEqual(asyncio.run(_run()), ["p-9"])

    def test_consumer_delivers_in_order_and_isolates_failures(self) -> None:
        async def _run() -> list[str]:
            bus = InProcessEventBus(drain_timeout_s=2.0)
            seen: list[str] = []

            async def flaky(event: PlayerAvailableEvent) -> None:
                if event.player_id == "p-2":
                    raise RuntimeError("handler bug")

            async def recorder(event: PlayerAvailableEvent) -> None:
                seen.append(event.player_id)

            bus.subscribe(PLAYER_AVAILABLE, PlayerAvailableEvent, flaky)
            bus.subscribe(PLAYER_AVAILABLE, PlayerAvailableEvent, recorder)
            await bus.start()
            self.assertTrue(bus.running)
            with self.assertLogs("arena.events", level="ERROR") as captured:
                for player_id in ("p-1", "p-2", "p-3"):
                    await bus.deliver(PLAYER_AVAILABLE, {"playerId": player_id, "tournamentId": "t-1"})
                await bus.stop()
            self.assertIn("event_handler_failed", "\n".join(captured.output))
            self.assertFalse(bus.running)
            return seen

        self.assertEqual(asyncio.run(_run()), ["p-1", "p-2", "p-3"])

    def test_publish_without_subscribers_only_logs(self) -> None:
        async def _run() -> None:
            bus = InProcessEventBus()
            event = PairingCreatedEvent(
                white_player_id="p-1",
                black_player_id="p-2",
                tournament_id="t-1",
                game_id="44efed45-d197-4416-bc45-d1cc804f3936",
                batch_id="b-1",
            )
            with self.assertLogs("arena.events", level="INFO") as captured:
                await bus.publish(PAIRING_CREATED, event)
                await LoggingEventPublisher().publish(PAIRING_CREATED, event)
            self.assertEqual(sum("event_published" in line for line in captured.output), 2)

        asyncio.run(_run())

    def test_outbound_event_serializes_with_camel_case(self) -> None:
        event = PairingCreatedEvent(
            white_player_id="p-1",
            black_player_id="p-2",
            tournament_id="t-1",
            game_id="44efed45-d197-4416-bc45-d1cc804f3936",
            batch_id="b-1",
        )
        payload = event.model_dump(by_alias=True, mode="json")
        self.assertEqual(
            payload,
            {
                "whitePlayerId": "p-1",
                "blackPlayerId": "p-2",
                "tournamentId": "t-1",
                "gameId": "44efed45-d197-4416-bc45-d1cc804f3936",
                "batchId": "b-1",
            },
        )


if __name__ == "__main__":
    unittest.main()

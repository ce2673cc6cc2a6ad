from __future__ import annotations

import asyncio
import sys
import tempfile
import time
import unittest
from collections.abc import Callable
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, col, select

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from arena.app import create_app
from arena.config import Settings
from arena.db import models as _models
from arena.db.models import PairingGame

del _models


class TestApiPairingIntegration(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls.tmpdir.name) / "pairing_integration.db"
        cls.database_url = f"sqlite+aiosqlite:///{db_path}"
        cls.engine = create_async_engine(cls.database_url, echo=False)
        cls.sessionmaker = async_sessionmaker(
            bind=cls.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        async def _init_db() -> None:
            async with cls.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            await cls.engine.dispose()

        asyncio.run(_init_db())
        settings = Settings(
            app_env="test",
            app_docs_enabled=False,
            app_log_json=False,
            database_url=cls.database_url,
            pairing_tick_interval_s=0.05,
            pairing_claim_timeout_s=1.0,
            pairing_sweep_interval_s=0.2,
        )
        app = create_app(settings=settings, sessionmaker=cls.sessionmaker)
        cls.client = TestClient(app)
        cls.client.__enter__()

    @classmethod
    def tearDownClass(cls) -> None:
        cls.client.__exit__(None, None, None)

        async def _dispose() -> None:
            await cls.engine.dispose()

        asyncio.run(_dispose())
        cls.tmpdir.cleanup()

    def _wait_for(self, predicate: Callable[[], bool], timeout_s: float = 5.0) -> None:
        deadline = time.monotonic() + timeout_s
        while time.monotonic() < deadline:
            if predicate():
                return
            time.sleep(0.05)
        self.fail("condition not reached in time")

    def _status(self, tournament_id: str) -> dict[str, object]:
        response = self.client.get(f"/api/v1/pairing/tournaments/{tournament_id}")
        self.assertEqual(response.status_code, 200)
        return response.json()

    def _join(self, tournament_id: str, player_id: str, rating: float) -> None:
        response = self.client.post(
            "/api/v1/events/tournament.player_joined",
            json={
                "tournamentId": tournament_id,
                "playerId": player_id,
                "userId": f"user-{player_id}",
                "rating": rating,
            },
        )
        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json(), {"topic": "tournament.player_joined", "accepted": True})

    def _games(self, tournament_id: str) -> list[PairingGame]:
        async def _load() -> list[PairingGame]:
            engine = create_async_engine(self.database_url, echo=False)
            try:
                async with AsyncSession(engine, expire_on_commit=False) as session:
                    stmt = select(PairingGame).where(col(PairingGame.tournament_id) == tournament_id)
                    return list((await session.execute(stmt)).scalars().all())
            finally:
                await engine.dispose()

        return asyncio.run(_load())

    def test_start_pairs_waiting_players_and_stop_is_idempotent(self) -> None:
        tournament_id = "t-flow"
        for index, rating in enumerate([1500, 1510, 1900, 1890], start=1):
            self._join(tournament_id, f"p{index}", rating)
        self._wait_for(lambda: self._status(tournament_id)["waiting"] == 4)

        before = self._status(tournament_id)
        self.assertFalse(before["running"])
        self.assertEqual(before["state"], "stopped")

        start = self.client.post(
            f"/api/v1/pairing/tournaments/{tournament_id}/start",
            json={"seed": 3},
        )
        self.assertEqual(start.status_code, 200)
        self.assertTrue(start.json()["started"])
        self.assertEqual(start.json()["config"]["tick_interval_s"], 0.05)

        self._wait_for(lambda: self._status(tournament_id)["waiting"] == 0 and self._status(tournament_id)["pending"] == 0)
        again = self.client.post(f"/api/v1/pairing/tournaments/{tournament_id}/start")
        self.assertEqual(again.status_code, 200)
        self.assertFalse(again.json()["started"])

        stop = self.client.post(f"/api/v1/pairing/tournaments/{tournament_id}/stop")
        self.assertEqual(stop.json(), {"tournament_id": tournament_id, "stopped": True})
        stop_again = self.client.post(f"/api/v1/pairing/tournaments/{tournament_id}/stop")
        self.assertEqual(stop_again.json(), {"tournament_id": tournament_id, "stopped": False})
        self._wait_for(lambda: self._status(tournament_id)["running"] is False)

        games = self._games(tournament_id)
        self.assertEqual(len(games), 2)
        pairs = {frozenset((game.white_player_id, game.black_player_id)) for game in games}
        self.assertEqual(pairs, {frozenset({"p1", "p2"}), frozenset({"p3", "p4"})})

        status_after = self._status(tournament_id)
        self.assertEqual(status_after["state"], "stopped")
        self.assertIsNotNone(status_after["last_cycle"])

    def test_game_finished_requeues_both_players(self) -> None:
        tournament_id = "t-rematch"
        self._join(tournament_id, "a", 1500)
        self._join(tournament_id, "b", 1520)
        self.client.post(f"/api/v1/pairing/tournaments/{tournament_id}/start")
        self._wait_for(lambda: len(self._games(tournament_id)) == 1)
        self.client.post(f"/api/v1/pairing/tournaments/{tournament_id}/stop")
        self._wait_for(lambda: self._status(tournament_id)["running"] is False)

        game = self._games(tournament_id)[0]
        response = self.client.post(
            "/api/v1/events/game.finished",
            json={"gameId": str(game.id), "result": "white"},
        )
        self.assertEqual(response.status_code, 202)
        self._wait_for(lambda: self._status(tournament_id)["waiting"] == 2)

    def test_player_unavailable_removes_waiting_player(self) -> None:
        tournament_id = "t-leave"
        self._join(tournament_id, "solo", 1500)
        self._wait_for(lambda: self._status(tournament_id)["waiting"] == 1)

        response = self.client.post(
            "/api/v1/events/pairing.player_unavailable",
            json={"playerId": "solo", "tournamentId": tournament_id},
        )
        self.assertEqual(response.status_code, 202)
        self._wait_for(lambda: self._status(tournament_id)["waiting"] == 0)

    def test_unknown_topic_is_404(self) -> None:
        response = self.client.post("/api/v1/events/pairing.unknown", json={})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error_code"], "not_found")

    def test_invalid_payload_is_422(self) -> None:
        response = self.client.post("/api/v1/events/pairing.player_available", json={"playerId": "p1"})
        self.assertEqual(response.status_code, 422)
        payload = response.json()
        self.assertEqual(payload["error_code"], "validation_error")
        self.assertIsInstance(payload["details"], list)

    def test_invalid_loop_overrides_are_422(self) -> None:
        response = self.client.post(
            "/api/v1/pairing/tournaments/t-bad/start",
            json={"tick_interval_s": 5.0, "claim_timeout_s": 2.0},
        )
        self.assertEqual(response.status_code, 422)
        self.assertFalse(self._status("t-bad")["running"])

    def test_reclaim_endpoint_reports_count(self) -> None:
        response = self.client.post("/api/v1/pairing/tournaments/t-empty/reclaim")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"tournament_id": "t-empty", "reclaimed": 0})


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import sys
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from arena.app import create_app
from arena.config import Settings


def build_settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "app_name": "Arena Pairing (Test)",
        "app_env": "test",
        "app_docs_enabled": False,
        "pairing_sweeper_enabled": False,
        "pairing_resume_enabled_loops": False,
    }
    values.update(overrides)
    return Settings(**values)


class TestApiHealth(unittest.TestCase):
    def test_health_endpoint_returns_ok(self) -> None:
        client = TestClient(create_app(settings=build_settings()))

        response = client.get("/health")
        self.assertEqual(response.status_code, 200)

        payload = response.json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["app"], "Arena Pairing (Test)")
        self.assertEqual(payload["env"], "test")

    def test_docs_disabled_hides_docs_routes(self) -> None:
        client = TestClient(create_app(settings=build_settings()))

        self.assertEqual(client.get("/docs").status_code, 404)
        self.assertEqual(client.get("/redoc").status_code, 404)

    def test_ready_endpoint_reports_engine_and_loops(self) -> None:
        app = create_app(settings=build_settings())
        with patch(
            "arena.modules.health.router._check_db_ready",
            new=AsyncMock(return_value=True),
        ), TestClient(app) as client:
            response = client.get("/health/ready")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "ready")
        self.assertEqual(payload["checks"], {"db": True, "pairing_engine": True})
        self.assertEqual(payload["running_loops"], [])

    def test_ready_endpoint_returns_503_when_db_check_fails(self) -> None:
        app = create_app(settings=build_settings())
        with patch(
            "arena.modules.health.router._check_db_ready",
            new=AsyncMock(return_value=False),
        ), TestClient(app) as client:
            response = client.get("/health/ready")

        self.assertEqual(response.status_code, 503)
        payload = response.json()
        self.assertEqual(payload["error_code"], "service_unavailable")
        self.assertEqual(payload["detail"], "Database not ready")

    def test_ready_endpoint_returns_503_before_engine_starts(self) -> None:
        client = TestClient(create_app(settings=build_settings()))
        with patch(
            "arena.modules.health.router._check_db_ready",
            new=AsyncMock(return_value=True),
        ):
            response = client.get("/health/ready")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["detail"], "Pairing engine not ready")

    def test_cors_headers_are_present_when_origins_configured(self) -> None:
        client = TestClient(create_app(settings=build_settings(app_cors_origins=["http://localhost:5173"])))

        response = client.options(
            "/health",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "GET",
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.headers.get("access-control-allow-origin"),
            "http://localhost:5173",
        )

    def test_request_logging_emits_request_log(self) -> None:
        client = TestClient(create_app(settings=build_settings(app_log_requests=True, app_log_json=False)))

        with self.assertLogs("arena.request", level="INFO") as captured:
            response = client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertIn("request_completed", "\n".join(captured.output))


if __name__ == "__main__":
    unittest.main()

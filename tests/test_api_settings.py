from __future__ import annotations

import sys
import unittest
from pathlib import Path

from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from arena.config import Settings
from arena.modules.pairing.schemas import PairingLoopConfig


class TestApiSettings(unittest.TestCase):
    def test_defaults_are_valid(self) -> None:
        settings = Settings()
        self.assertEqual(settings.pairing_batch_limit, 80)
        self.assertEqual(settings.pairing_tick_interval_s, 3.0)
        self.assertEqual(settings.pairing_claim_timeout_s, 30.0)
        self.assertIsNone(settings.pairing_max_rating_gap)

    def test_claim_timeout_must_exceed_tick_interval(self) -> None:
        with self.assertRaises(ValidationError):
            Settings(pairing_tick_interval_s=5.0, pairing_claim_timeout_s=5.0)

    def test_batch_limit_and_pool_size_need_two_players(self) -> None:
        with self.assertRaises(ValidationError):
            Settings(pairing_batch_limit=1)
        with self.assertRaises(ValidationError):
            Settings(pairing_min_pool_size=1)

    def test_loop_config_from_settings_applies_overrides(self) -> None:
        settings = Settings(pairing_batch_limit=40, pairing_max_rating_gap=300.0)
        config = PairingLoopConfig.from_settings(settings, tick_interval_s=1.0, seed=9, batch_limit=None)

        self.assertEqual(config.batch_limit, 40)
        self.assertEqual(config.tick_interval_s, 1.0)
        self.assertEqual(config.max_rating_gap, 300.0)
        self.assertEqual(config.seed, 9)

    def test_loop_config_rejects_short_claim_timeout(self) -> None:
        with self.assertRaises(ValidationError):
            PairingLoopConfig(tick_interval_s=10.0, claim_timeout_s=5.0)
        with self.assertRaises(ValidationError):
            PairingLoopConfig.from_settings(Settings(), claim_timeout_s=1.0)


if __name__ == "__main__":
    unittest.main()

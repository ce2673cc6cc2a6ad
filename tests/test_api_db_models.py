from __future__ import annotations

import sys
import unittest
from pathlib import Path

from sqlmodel import SQLModel

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from arena.db import models as _models

del _models


def _constraint_names(table_name: str) -> set[str]:
    return {
        str(constraint.name)
        for constraint in SQLModel.metadata.tables[table_name].constraints
        if constraint.name is not None
    }


class TestApiDbModels(unittest.TestCase):
    def test_expected_tables_are_registered(self) -> None:
        table_names = set(SQLModel.metadata.tables.keys())
        self.assertTrue({"queueentry", "playerprofile", "pairinggame", "pairingcontrol"} <= table_names)

    def test_queue_entry_is_unique_per_tournament_and_player(self) -> None:
        self.assertIn("uq_queueentry_tournament_player", _constraint_names("queueentry"))

    def test_queue_entry_has_claim_columns(self) -> None:
        table = SQLModel.metadata.tables["queueentry"]
        for column in ("state", "batch_id", "claimed_at", "waiting_since", "color_history", "recent_opponents"):
            self.assertIn(column, table.c)
        self.assertIn("ix_queueentry_claim_order", {index.name for index in table.indexes})

    def test_player_profile_is_unique_per_tournament_and_player(self) -> None:
        self.assertIn("uq_playerprofile_tournament_player", _constraint_names("playerprofile"))
        self.assertIn("active", SQLModel.metadata.tables["playerprofile"].c)

    def test_pairing_game_tracks_batch_and_result(self) -> None:
        table = SQLModel.metadata.tables["pairinggame"]
        for column in ("white_player_id", "black_player_id", "batch_id", "status", "result", "finished_at"):
            self.assertIn(column, table.c)

    def test_pairing_control_is_keyed_by_tournament(self) -> None:
        table = SQLModel.metadata.tables["pairingcontrol"]
        self.assertEqual([column.name for column in table.primary_key.columns], ["tournament_id"])
        self.assertIn("claim_timeout_s", table.c)


if __name__ == "__main__":
    unittest.main()

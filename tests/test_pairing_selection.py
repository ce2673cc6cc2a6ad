from __future__ import annotations

import random
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from arena.modules.pairing.selection import quickselect


class TestPairingSelection(unittest.TestCase):
    def test_returns_element_of_each_rank(self) -> None:
        values = [42, 7, 19, 3, 88, 23, 7, 61, 0, 15]
        expected = sorted(values)
        for rank in range(len(values)):
            items = list(values)
            picked = quickselect(items, rank, key=lambda value: value, rng=random.Random(rank))
            self.assertEqual(picked, expected[rank])

    def test_partitions_items_around_rank(self) -> None:
        items = [9, 4, 7, 1, 8, 2, 6, 3, 5]
        picked = quickselect(items, 4, key=lambda value: value, rng=random.Random(3))

        self.assertEqual(picked, 5)
        self.assertEqual(items[4], 5)
        self.assertTrue(all(value <= 5 for value in items[:4]))
        self.assertTrue(all(value >= 5 for value in items[5:]))
        self.assertEqual(sorted(items), list(range(1, 10)))

    def test_result_does_not_depend_on_pivot_choice(self) -> None:
        records = [(abs(1500 - rating), f"p{index}") for index, rating in enumerate([1510, 1490, 1600, 1400, 1505])]
        picks = {
            quickselect(list(records), 1, key=lambda record: record, rng=random.Random(seed))
            for seed in range(20)
        }
        self.assertEqual(picks, {(10, "p0")})

    def test_single_item(self) -> None:
        self.assertEqual(quickselect(["only"], 0, key=len, rng=random.Random(0)), "only")

    def test_rank_out_of_range_raises(self) -> None:
        with self.assertRaises(IndexError):
            quickselect([1, 2, 3], 3, key=lambda value: value, rng=random.Random(0))
        with self.assertRaises(IndexError):
            quickselect([], 0, key=lambda value: value, rng=random.Random(0))


if __name__ == "__main__":
    unittest.main()

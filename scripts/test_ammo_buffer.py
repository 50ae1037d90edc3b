#!/usr/bin/env python3
"""Ammo Buffer & Chamber Tests

Tests cover:
  - Exact capacity semantics (35 puts into a 30-round magazine)
  - FIFO law over randomized put/get sequences, including wrap-around
  - Best-effort remove_many
  - peek / snapshot / fill / clear / filled helpers
  - ChamberState set / clear / take_all
"""

import random
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from ammo_buffer import AmmoBuffer, ChamberState
from attachment_types import BulletType


class TestCapacity(unittest.TestCase):

    def test_thirty_five_puts(self):
        mag = AmmoBuffer(30)
        results = [mag.put(BulletType.STANDARD_FMJ) for _ in range(35)]
        self.assertEqual(mag.count, 30)
        self.assertTrue(all(results[:30]))
        self.assertEqual(results[30:], [False] * 5)
        self.assertTrue(mag.is_full())
        self.assertEqual(mag.capacity, 30)

    def test_empty_get(self):
        mag = AmmoBuffer(5)
        self.assertTrue(mag.is_empty())
        self.assertIsNone(mag.get())
        self.assertEqual(mag.count, 0)

    def test_zero_capacity(self):
        mag = AmmoBuffer(0)
        self.assertFalse(mag.put(BulletType.TRACER))
        self.assertIsNone(mag.get())
        self.assertTrue(mag.is_empty())
        self.assertTrue(mag.is_full())

    def test_negative_capacity_rejected(self):
        with self.assertRaises(ValueError):
            AmmoBuffer(-1)


class TestFifo(unittest.TestCase):

    def test_order_preserved(self):
        mag = AmmoBuffer(4)
        for bullet in (BulletType.TRACER, BulletType.SUBSONIC, BulletType.ARMOR_PIERCING):
            mag.put(bullet)
        self.assertEqual(mag.get(), BulletType.TRACER)
        self.assertEqual(mag.get(), BulletType.SUBSONIC)
        self.assertEqual(mag.get(), BulletType.ARMOR_PIERCING)

    def test_randomized_fifo_law(self):
        """Interleaved puts and gets come out in put order, across wrap-around."""
        rng = random.Random(42)
        for capacity in (1, 3, 7, 30):
            mag = AmmoBuffer(capacity)
            put_order, got_order = [], []
            next_item = 0
            for _ in range(500):
                if mag.count < capacity and (mag.is_empty() or rng.random() < 0.55):
                    self.assertTrue(mag.put(next_item))
                    put_order.append(next_item)
                    next_item += 1
                else:
                    got_order.append(mag.get())
            got_order.extend(mag.remove_many(mag.count))
            self.assertEqual(got_order, put_order)
            self.assertTrue(mag.is_empty())


class TestRemoveMany(unittest.TestCase):

    def test_best_effort_drain(self):
        mag = AmmoBuffer.filled(10, BulletType.STANDARD_FMJ)
        taken = mag.remove_many(4)
        self.assertEqual(len(taken), 4)
        self.assertEqual(mag.count, 6)

        taken = mag.remove_many(50)
        self.assertEqual(len(taken), 6)
        self.assertEqual(mag.count, 0)

    def test_non_positive_removes_nothing(self):
        mag = AmmoBuffer.filled(3, BulletType.TRACER)
        self.assertEqual(mag.remove_many(0), [])
        self.assertEqual(mag.remove_many(-2), [])
        self.assertEqual(mag.count, 3)

    def test_returns_oldest_first(self):
        mag = AmmoBuffer(5)
        for i in range(5):
            mag.put(i)
        self.assertEqual(mag.remove_many(3), [0, 1, 2])


class TestHelpers(unittest.TestCase):

    def test_peek_does_not_remove(self):
        mag = AmmoBuffer(3)
        self.assertIsNone(mag.peek())
        mag.put(BulletType.HUNTING_JSP)
        self.assertEqual(mag.peek(), BulletType.HUNTING_JSP)
        self.assertEqual(mag.count, 1)

    def test_snapshot_after_wrap(self):
        mag = AmmoBuffer(3)
        for i in range(3):
            mag.put(i)
        mag.get()
        mag.put(3)
        self.assertEqual(mag.snapshot(), [1, 2, 3])
        self.assertEqual(mag.count, 3)

    def test_fill_stops_when_full(self):
        mag = AmmoBuffer(5)
        mag.put(BulletType.TRACER)
        self.assertEqual(mag.fill(BulletType.STANDARD_FMJ), 4)
        self.assertEqual(mag.fill(BulletType.STANDARD_FMJ), 0)

    def test_fill_limited(self):
        mag = AmmoBuffer(5)
        self.assertEqual(mag.fill(BulletType.STANDARD_FMJ, 2), 2)
        self.assertEqual(mag.count, 2)

    def test_clear(self):
        mag = AmmoBuffer.filled(4, BulletType.SUBSONIC)
        mag.clear()
        self.assertTrue(mag.is_empty())
        self.assertTrue(mag.put(BulletType.TRACER))
        self.assertEqual(mag.snapshot(), [BulletType.TRACER])


class TestChamberState(unittest.TestCase):

    def test_set_and_clear(self):
        chamber = ChamberState()
        self.assertFalse(chamber.has_round())
        chamber.set_rounds([BulletType.STANDARD_FMJ])
        self.assertTrue(chamber.has_round())
        chamber.clear()
        self.assertFalse(chamber.has_round())

    def test_empty_list_clears(self):
        chamber = ChamberState()
        chamber.set_rounds([BulletType.TRACER])
        chamber.set_rounds([])
        self.assertFalse(chamber.has_round())

    def test_rounds_is_a_copy(self):
        chamber = ChamberState()
        chamber.set_rounds([BulletType.TRACER] * 8)
        view = chamber.rounds()
        view.clear()
        self.assertEqual(len(chamber), 8)

    def test_take_all(self):
        chamber = ChamberState()
        chamber.set_rounds([BulletType.HOLLOW_POINT_SP] * 3)
        taken = chamber.take_all()
        self.assertEqual(taken, [BulletType.HOLLOW_POINT_SP] * 3)
        self.assertFalse(chamber.has_round())
        self.assertEqual(chamber.take_all(), [])


# =========================================================================
# Run
# =========================================================================

if __name__ == '__main__':
    unittest.main(verbosity=2)

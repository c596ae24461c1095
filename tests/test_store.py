"""Unit tests for the in-memory position store."""

import unittest

from engine.domain.models import Position
from engine.store import InMemoryPositionStore


class TestInMemoryPositionStore(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryPositionStore()
        self.aapl = self.store.insert("alice", Position(id="a1", symbol="AAPL", shares=10, avg_price=150))
        self.store.insert("bob", Position(id="b1", symbol="MSFT", shares=5, avg_price=300))

    def test_list_is_per_user(self):
        self.assertEqual([p.id for p in self.store.list("alice")], ["a1"])
        self.assertEqual([p.id for p in self.store.list("bob")], ["b1"])
        self.assertEqual(self.store.list("carol"), [])

    def test_insert_duplicate_id(self):
        with self.assertRaises(ValueError):
            self.store.insert("alice", Position(id="a1", symbol="AAPL", shares=1, avg_price=1))

    def test_update_editable_fields(self):
        updated = self.store.update("a1", shares=12, name="Apple Inc.")
        self.assertEqual(updated.shares, 12)
        self.assertEqual(updated.avg_price, 150)
        self.assertEqual(updated.name, "Apple Inc.")
        self.assertEqual(updated.symbol, "AAPL")
        self.assertEqual(self.store.list("alice")[0], updated)

    def test_update_rejects_symbol_change(self):
        with self.assertRaises(ValueError):
            self.store.update("a1", symbol="MSFT")

    def test_update_unknown(self):
        self.assertIsNone(self.store.update("nope", shares=1))

    def test_delete(self):
        self.assertTrue(self.store.delete("a1"))
        self.assertFalse(self.store.delete("a1"))
        self.assertEqual(self.store.list("alice"), [])

        self.store.insert("bob", Position(id="a1", symbol="AAPL", shares=1, avg_price=1))
        self.assertEqual(self.store.list("alice"), [])
        self.assertEqual([p.id for p in self.store.list("bob")], ["b1", "a1"])

    def test_new_ids_are_unique(self):
        self.assertNotEqual(self.store.new_id(), self.store.new_id())


if __name__ == "__main__":
    unittest.main()

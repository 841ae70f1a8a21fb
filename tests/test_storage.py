"""
Tests for the key/value storage, cache and refresh signal
"""
import unittest

from database.repository import cache_key, cart_key, stock_signal_key
from tests.helpers import StorageFixture


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestStorageRepository(unittest.TestCase):
    """Test cases for StorageRepository"""

    def setUp(self):
        self.fixture = StorageFixture()
        self.storage = self.fixture.storage

    def tearDown(self):
        self.fixture.cleanup()

    def test_set_get_remove(self):
        self.assertIsNone(self.storage.get("a"))
        self.storage.set("a", "1")
        self.storage.set("a", "2")
        self.assertEqual(self.storage.get("a"), "2")
        self.assertTrue(self.storage.remove("a"))
        self.assertFalse(self.storage.remove("a"))

    def test_remove_scoped_stops_at_segment_boundary(self):
        for key in ("theater_products_T1", "theater_products_T1_p2_l10", "theater_products_T10",
                    "theater_products_T12_p1_l5", "theaterXproducts_T1", "combo_offers_T1"):
            self.storage.set(key, "x")

        self.assertEqual(self.storage.remove_scoped("theater_products_T1"), 2)
        self.assertEqual(sorted(self.storage.keys()), ["combo_offers_T1", "theaterXproducts_T1",
                                                       "theater_products_T10", "theater_products_T12_p1_l5"])
        self.assertEqual(self.storage.remove_scoped("theater_products_T"), 0)

    def test_stock_signal_is_monotonic(self):
        self.assertEqual(self.storage.stock_signal("T1"), 0)
        first = self.storage.bump_stock_signal("T1")
        second = self.storage.bump_stock_signal("T1")
        self.assertGreater(second, first)
        self.assertEqual(self.storage.stock_signal("T1"), second)
        self.assertEqual(self.storage.get(stock_signal_key("T1")), str(second))
        self.assertEqual(self.storage.stock_signal("T2"), 0)

    def test_garbled_stock_signal_reads_as_zero(self):
        self.storage.set(stock_signal_key("T1"), "soon")
        self.assertEqual(self.storage.stock_signal("T1"), 0)
        self.assertGreater(self.storage.bump_stock_signal("T1"), 0)


class TestCacheRepository(unittest.TestCase):
    """Test cases for CacheRepository"""

    def setUp(self):
        self.clock = FakeClock()
        self.fixture = StorageFixture(clock=self.clock)
        self.cache = self.fixture.cache

    def tearDown(self):
        self.fixture.cleanup()

    def test_entries_expire(self):
        self.cache.set("theater_products_T1", [{"_id": "P1"}], ttl=120)
        self.clock.now += 119
        self.assertEqual(self.cache.get("theater_products_T1"), [{"_id": "P1"}])

        self.clock.now += 1
        self.assertIsNone(self.cache.get("theater_products_T1"))
        self.assertIsNone(self.fixture.storage.get("theater_products_T1"))

    def test_corrupt_entry_is_dropped(self):
        self.fixture.storage.set("theater_banners_T1", "[1, 2")
        self.assertIsNone(self.cache.get("theater_banners_T1"))
        self.assertIsNone(self.fixture.storage.get("theater_banners_T1"))

    def test_clear_pattern_leaves_carts_alone(self):
        self.cache.set("/orders/theater/T1?page=1", [], ttl=60)
        self.cache.set("order_T1_ORD-1", {}, ttl=60)
        self.fixture.storage.set(cart_key("T1"), "[]")

        self.assertEqual(self.cache.clear_pattern("/orders/theater/T1"), 1)
        self.assertEqual(self.cache.clear_pattern("order_T1"), 1)
        self.assertEqual(self.fixture.storage.get(cart_key("T1")), "[]")

    def test_invalidate(self):
        self.cache.set("k", 1, ttl=60)
        self.assertTrue(self.cache.invalidate("k"))
        self.assertIsNone(self.cache.get("k"))


class TestKeys(unittest.TestCase):

    def test_key_formats(self):
        self.assertEqual(cart_key("T1"), "kioskCart_T1")
        self.assertEqual(stock_signal_key("T1"), "stock_updated_T1")
        self.assertEqual(cache_key("theater_products", "T1"), "theater_products_T1")
        self.assertEqual(cache_key("theater_products", "T1", 1, 50), "theater_products_T1_p1_l50")
        self.assertEqual(cache_key("theater_products", "T1", 1, 50, "cola"), "theater_products_T1_p1_l50_scola")


if __name__ == '__main__':
    unittest.main()

"""
Tests for the catalog loader
"""
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import httpx

from core.errors import CatalogLoadError
from database.repository import cache_key
from models.product import Category
from services.catalog_service import CATALOG_EMPTY, CatalogService, merge_entries
from tests.helpers import FakeApi, StorageFixture, cola_payload, make_client, popcorn_payload


class TestCatalogService(unittest.TestCase):
    """Test cases for CatalogService"""

    def setUp(self):
        self.fixture = StorageFixture()
        self.fake = FakeApi()
        self.client = make_client(self.fake)
        self.executor = ThreadPoolExecutor(max_workers=8)
        self.service = self._service()

    def tearDown(self):
        self.client.abort_all()
        self.executor.shutdown(wait=True)
        self.client.close()
        self.fixture.cleanup()

    def _service(self, **kwargs):
        return CatalogService(self.client, self.fixture.cache, self.fixture.storage,
                              executor=self.executor, **kwargs)

    def test_load_normalises_every_list(self):
        self.fake.catalog(products=[popcorn_payload(), cola_payload(), popcorn_payload(_id="P9", isActive=False)])
        snapshot = self.service.load_catalog("T1")

        self.assertEqual([p.product_id for p in snapshot.products], ["P1", "P2"])
        self.assertEqual([c.name for c in snapshot.categories], ["Snacks", "Drinks"])
        self.assertEqual([k.kiosk_type_id for k in snapshot.kiosk_types], ["KT1", "KT2"])
        self.assertEqual([b.banner_id for b in snapshot.banners], ["B1", "B2"])
        self.assertEqual([c.combo_id for c in snapshot.combos], ["C1"])
        self.assertEqual(snapshot.errors, {})
        self.assertEqual(snapshot.warnings, ())
        self.assertEqual([tab.tab_id for tab in snapshot.tabs()], ["all", "KT1", "KT2", "combo"])
        self.assertIs(self.service.current("T1"), snapshot)

    def test_products_are_fetched_from_cafe_stock(self):
        self.fake.catalog()
        self.service.load_catalog("T1")
        request = self.fake.calls("GET", "/theater-products/T1")[0]
        self.assertEqual(request.url.params["stockSource"], "cafe")

    def test_inactive_entries_are_dropped(self):
        self.fake.catalog(
            kiosk_types=[{"_id": "KT1", "name": "Snacks", "isActive": False}],
            banners=[{"_id": "B1", "imageUrl": "/b.png", "isActive": False}],
            combos=[{"_id": "C1", "name": "Old", "offerPrice": 1, "isActive": False, "products": []}],
        )
        snapshot = self.service.load_catalog("T1")
        self.assertEqual((snapshot.kiosk_types, snapshot.banners, snapshot.combos), ((), (), ()))

    def test_image_urls_are_resolved(self):
        self.fake.catalog(products=[popcorn_payload(images=[{"url": "gs://bucket/popcorn.png"}])])
        snapshot = self._service(image_proxy_enabled=False).load_catalog("T1")

        self.assertEqual(snapshot.product("P1").image_url, "https://storage.googleapis.com/bucket/popcorn.png")
        self.assertEqual(snapshot.banners[0].image_url, "http://api.test/b1.png")

    def test_failed_list_does_not_fail_the_others(self):
        self.fake.catalog()
        self.fake.json("GET", "/theater-banners/T1", {"error": "boom"}, status=500)

        with self.assertLogs("theater_kiosk.catalog", level="WARNING"):
            snapshot = self.service.load_catalog("T1")

        self.assertEqual(snapshot.banners, ())
        self.assertEqual(set(snapshot.errors), {"banners"})
        self.assertEqual(len(snapshot.products), 2)

    def test_every_list_failing_raises(self):
        with self.assertLogs("theater_kiosk.catalog", level="WARNING"):
            with self.assertRaises(CatalogLoadError):
                self.service.load_catalog("T1")
        self.assertIsNone(self.service.current("T1"))

    def test_unrecognised_shape_is_empty_with_diagnostic(self):
        self.fake.catalog()
        self.fake.json("GET", "/theater-products/T1", {"success": True, "items": [popcorn_payload()]})

        with self.assertLogs("theater_kiosk.catalog", level="WARNING") as logs:
            snapshot = self.service.load_catalog("T1")

        self.assertEqual(snapshot.products, ())
        self.assertEqual(snapshot.warnings, (CATALOG_EMPTY,))
        self.assertTrue(any("Unrecognised" in line for line in logs.output))

    def test_composite_timeout(self):
        release = threading.Event()

        def slow(request):
            release.wait(5)
            return httpx.Response(200, json={"data": {"products": [popcorn_payload()]}})

        self.fake.catalog()
        self.fake.on("GET", "/theater-products/T1", slow)
        service = self._service(timeout=0.2)
        try:
            with self.assertLogs("theater_kiosk.catalog", level="ERROR"):
                with self.assertRaises(CatalogLoadError):
                    service.load_catalog("T1")
        finally:
            release.set()
        self.assertIsNone(service.current("T1"))

    def test_lists_are_cached(self):
        self.fake.catalog()
        self.service.load_catalog("T1")

        cached = self.fixture.cache.get(cache_key("theater_products", "T1"))
        self.assertEqual([item["_id"] for item in cached], ["P1", "P2"])
        for resource in ("theater_categories", "theater_kiosk_types", "theater_banners", "combo_offers"):
            self.assertIsNotNone(self.fixture.cache.get(cache_key(resource, "T1")))

    def test_cache_hit_returns_then_refreshes_in_background(self):
        self.fake.catalog()
        self.service.load_catalog("T1")
        self.assertEqual(len(self.fake.calls("GET", "/theater-products/T1")), 1)

        # the server changes; a fresh service reads the cache first
        self.fake.catalog(products=[popcorn_payload(pricing={"basePrice": 300}), cola_payload()])
        service = self._service()
        updates = []
        service.subscribe(updates.append)

        snapshot = service.load_catalog("T1")
        self.assertEqual(snapshot.product("P1").base_price, Decimal("250"))

        service.wait_for_background(timeout=5)
        self.assertEqual(len(self.fake.calls("GET", "/theater-products/T1")), 2)
        self.assertEqual(service.current("T1").product("P1").base_price, Decimal("300"))
        self.assertGreaterEqual(len(updates), 2)

    def test_force_refresh_bypasses_cache(self):
        self.fake.catalog()
        self.service.load_catalog("T1")
        self.service.load_catalog("T1", force_refresh=True)

        calls = self.fake.calls("GET", "/theater-products/T1")
        self.assertEqual(len(calls), 2)
        self.assertIn("_t", calls[1].url.params)
        self.assertEqual(calls[1].headers["cache-control"], "no-cache")

    def test_paginated_cache_keys(self):
        self.fake.catalog()
        self.service.load_catalog("T1", page=2, limit=10, search="pop")

        request = self.fake.calls("GET", "/theater-products/T1")[0]
        self.assertEqual((request.url.params["page"], request.url.params["limit"]), ("2", "10"))
        self.assertEqual(request.url.params["search"], "pop")
        self.assertIsNotNone(self.fixture.cache.get("theater_products_T1_p2_l10_spop"))

    def test_invalidate_is_scoped_to_the_theater(self):
        self.fake.catalog()
        self.service.load_catalog("T1")
        self.service.load_catalog("T1", page=2, limit=10)
        self.fixture.cache.set(cache_key("theater_products", "T10"), ["cached"], 60)
        self.fixture.cache.set(cache_key("theater_products", "T12", 1, 5), ["cached"], 60)

        self.assertEqual(self.service.invalidate("T1", ["products"]), 2)
        self.assertIsNone(self.fixture.cache.get(cache_key("theater_products", "T1")))
        self.assertIsNone(self.fixture.cache.get(cache_key("theater_products", "T1", 2, 10)))
        self.assertEqual(self.fixture.cache.get(cache_key("theater_products", "T10")), ["cached"])
        self.assertEqual(self.fixture.cache.get(cache_key("theater_products", "T12", 1, 5)), ["cached"])

    def test_refresh_if_stale(self):
        self.fake.catalog()
        self.service.load_catalog("T1")
        self.assertIsNone(self.service.refresh_if_stale("T1"))

        self.fixture.storage.bump_stock_signal("T1")
        self.assertIsNotNone(self.service.refresh_if_stale("T1"))
        self.assertEqual(len(self.fake.calls("GET", "/theater-products/T1")), 2)
        self.assertIsNone(self.service.refresh_if_stale("T1"))

        self.service.mark_stale("T1")
        self.service.refresh_if_stale("T1")
        self.assertEqual(len(self.fake.calls("GET", "/theater-products/T1")), 3)

    def test_closing_a_theater_discards_late_responses(self):
        self.fake.catalog()
        self.service.load_catalog("T1")

        release = threading.Event()
        arrived = threading.Event()

        def slow(request):
            arrived.set()
            release.wait(5)
            return httpx.Response(200, json={"data": {"products": [popcorn_payload(pricing={"basePrice": 999})]}})

        self.fake.on("GET", "/theater-products/T1", slow)
        service = self._service()
        service.load_catalog("T1")
        self.assertTrue(arrived.wait(5))

        with self.assertLogs("theater_kiosk.catalog", level="INFO"):
            service.close_theater("T1")
            release.set()
            service.wait_for_background(timeout=5)

        self.assertIsNone(service.current("T1"))
        cached = self.fixture.cache.get(cache_key("theater_products", "T1"))
        self.assertEqual(cached[0]["pricing"]["basePrice"], 250)

    def test_pending_entries_survive_refresh_until_confirmed(self):
        self.fake.catalog()
        self.service.load_catalog("T1")

        pending_id = self.service.add_pending("T1", "categories", Category("draft", "Combos"))
        self.assertTrue(pending_id.startswith("pending-"))
        snapshot = self.service.load_catalog("T1", force_refresh=True)
        self.assertEqual([c.category_id for c in snapshot.categories], ["CAT1", "CAT2", pending_id])

        self.service.confirm_pending("T1", pending_id, "CAT9")
        self.fake.catalog(categories=[{"_id": "CAT1", "categoryName": "Snacks"},
                                      {"_id": "CAT2", "categoryName": "Drinks"},
                                      {"_id": "CAT9", "categoryName": "Combos"}])
        snapshot = self.service.load_catalog("T1", force_refresh=True)
        self.assertEqual([c.category_id for c in snapshot.categories], ["CAT1", "CAT2", "CAT9"])

    def test_confirmed_ids_are_forgotten_once_placed(self):
        self.fake.catalog()
        self.service.load_catalog("T1")
        pending_id = self.service.add_pending("T1", "categories", Category("draft", "Combos"))

        self.service.confirm_pending("T1", pending_id, "CAT9")
        self.assertEqual(self.service._confirmed, {pending_id: "CAT9"})

        self.fake.catalog(categories=[{"_id": "CAT1", "categoryName": "Snacks"},
                                      {"_id": "CAT9", "categoryName": "Combos"}])
        self.service.load_catalog("T1", force_refresh=True)
        self.assertEqual(self.service._confirmed, {})

    def test_background_refreshes_are_not_retained(self):
        self.fake.catalog()
        self.service.load_catalog("T1")

        service = self._service()
        for _ in range(5):
            service.load_catalog("T1")
        service.wait_for_background(timeout=5)

        self.assertEqual(service._background, [])


class TestMergeEntries(unittest.TestCase):
    """Server list wins; pending entries wait for their server id"""

    def test_server_wins_for_known_ids(self):
        local = (Category("A", "old"), Category("B", "gone"))
        server = (Category("A", "new"), Category("C", "added"))
        merged = merge_entries(local, server, {})
        self.assertEqual([(c.category_id, c.name) for c in merged], [("A", "new"), ("C", "added")])

    def test_pending_entry_is_kept_in_place(self):
        local = (Category("A", "a"), Category("pending-1", "draft"), Category("B", "b"))
        server = (Category("A", "a"), Category("B", "b"))
        merged = merge_entries(local, server, {})
        self.assertEqual([c.category_id for c in merged], ["A", "pending-1", "B"])

    def test_confirmed_pending_entry_is_replaced_in_place(self):
        local = (Category("A", "a"), Category("pending-1", "draft"), Category("B", "b"))
        server = (Category("A", "a"), Category("B", "b"), Category("Z", "final"))
        merged = merge_entries(local, server, {"pending-1": "Z"})
        self.assertEqual([(c.category_id, c.name) for c in merged], [("A", "a"), ("Z", "final"), ("B", "b")])

    def test_confirmed_but_unlisted_entry_stays_pending(self):
        local = (Category("pending-1", "draft"),)
        merged = merge_entries(local, (), {"pending-1": "Z"})
        self.assertEqual([c.category_id for c in merged], ["pending-1"])


if __name__ == '__main__':
    unittest.main()

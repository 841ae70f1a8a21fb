"""
Tests for the TheaterKiosk facade
"""
import threading
import unittest
from unittest import mock

from core.kiosk import TheaterKiosk
from tests.helpers import FakeApi, StorageFixture, order_payload


class TestTheaterKiosk(unittest.TestCase):
    """Test cases for TheaterKiosk"""

    def setUp(self):
        self.fixture = StorageFixture()
        self.fake = FakeApi()
        self.fake.catalog()
        self.waits = []
        self.kiosk = self._kiosk()

    def tearDown(self):
        self.kiosk.close()
        self.fixture.cleanup()

    def _kiosk(self):
        return TheaterKiosk(self.fixture.settings(), transport=self.fake.transport(),
                            sleep=lambda seconds: None, payment_wait=self._wait)

    def _wait(self, seconds):
        self.waits.append(seconds)
        return False

    def test_menu_flags(self):
        self.kiosk.add_to_cart("T1", "P1")
        menu = self.kiosk.get_menu("T1")

        self.assertTrue(menu["success"])
        self.assertEqual([tab["id"] for tab in menu["tabs"]], ["all", "KT1", "KT2", "combo"])
        self.assertEqual([banner["id"] for banner in menu["banners"]], ["B1", "B2"])
        items = {item["id"]: item for item in menu["items"]}
        self.assertEqual(list(items), ["P1", "P2", "C1"])
        self.assertEqual(items["P1"]["in_cart"], 1)
        self.assertEqual(items["P1"]["remaining"], 2)
        self.assertFalse(items["P1"]["out_of_stock"])
        self.assertEqual(items["P2"]["remaining"], 3)
        self.assertEqual(items["C1"]["kind"], "combo")
        self.assertNotIn("remaining", items["C1"])

    def test_menu_tab_and_category(self):
        drinks = self.kiosk.get_menu("T1", tab_id="KT2")
        self.assertEqual([item["id"] for item in drinks["items"]], ["P2"])

        combos = self.kiosk.get_menu("T1", tab_id="combo")
        self.assertEqual([item["id"] for item in combos["items"]], ["C1"])

        snacks = self.kiosk.get_menu("T1", category_id="CAT1")
        self.assertEqual([item["id"] for item in snacks["items"]], ["P1"])

    def test_fourth_popcorn_is_refused(self):
        """Popcorn with 3 in stock: the fourth add is rejected"""
        for _ in range(3):
            result = self.kiosk.add_to_cart("T1", "P1")
            self.assertTrue(result["success"])

        result = self.kiosk.add_to_cart("T1", "P1")
        self.assertFalse(result["success"])
        self.assertEqual(result["code"], "StockInsufficient")

        cart = self.kiosk.get_cart_details("T1")
        self.assertEqual(cart["total_quantity"], 3)
        summary = cart["summary"]
        self.assertEqual((summary["subtotal"], summary["tax"], summary["total"]), ("750.00", "105.00", "855.00"))
        self.assertEqual(cart["display_total"], "₹855.00")

        menu = self.kiosk.get_menu("T1")
        popcorn = next(item for item in menu["items"] if item["id"] == "P1")
        self.assertTrue(popcorn["out_of_stock"])
        self.assertEqual(popcorn["remaining"], 0)

    def test_cola_by_millilitre(self):
        for _ in range(3):
            self.assertTrue(self.kiosk.add_to_cart("T1", "P2")["success"])
        self.assertEqual(self.kiosk.add_to_cart("T1", "P2")["code"], "StockInsufficient")

    def test_combo_pledges_its_components(self):
        self.assertTrue(self.kiosk.add_to_cart("T1", "C1")["success"])
        self.assertTrue(self.kiosk.add_to_cart("T1", "C1")["success"])

        self.assertTrue(self.kiosk.add_to_cart("T1", "P1")["success"])
        self.assertEqual(self.kiosk.add_to_cart("T1", "P1")["code"], "StockInsufficient")

        cart = self.kiosk.get_cart_details("T1")
        self.assertEqual([(line["item_id"], line["count"]) for line in cart["cart_items"]], [("C1", 2), ("P1", 1)])

    def test_update_cart_item(self):
        self.kiosk.add_to_cart("T1", "P1")

        refused = self.kiosk.update_cart_item("T1", "P1", 4)
        self.assertEqual(refused["code"], "StockInsufficient")

        result = self.kiosk.update_cart_item("T1", "P1", 3)
        self.assertEqual(result["total_quantity"], 3)

        result = self.kiosk.update_cart_item("T1", "P1", 1)
        self.assertEqual(result["total_quantity"], 1)

        result = self.kiosk.update_cart_item("T1", "P1", 0)
        self.assertEqual(result["cart_items"], [])

    def test_catalog_reload_runs_outside_the_cart_lock(self):
        self.kiosk.add_to_cart("T1", "P1")
        cart_lock = self.kiosk.cart("T1").lock
        load_catalog = self.kiosk.catalog
        free = []

        def try_cart_lock():
            acquired = cart_lock.acquire(timeout=1)
            if acquired:
                cart_lock.release()
            free.append(acquired)

        def catalog(theater_id, force_refresh=False):
            # another thread can take the cart lock while the catalog loads
            worker = threading.Thread(target=try_cart_lock)
            worker.start()
            worker.join()
            return load_catalog(theater_id, force_refresh)

        self.fixture.storage.bump_stock_signal("T1")
        with mock.patch.object(self.kiosk, "catalog", side_effect=catalog):
            result = self.kiosk.update_cart_item("T1", "P1", 2)

        self.assertEqual(result["total_quantity"], 2)
        self.assertEqual(free, [True])

    def test_unknown_items(self):
        self.assertEqual(self.kiosk.add_to_cart("T1", "NOPE")["code"], "Validation")
        self.assertEqual(self.kiosk.update_cart_item("T1", "NOPE", 2)["code"], "Validation")
        self.assertEqual(self.kiosk.remove_from_cart("T1", "NOPE")["code"], "Validation")

    def test_missing_theater(self):
        for result in (self.kiosk.get_menu(""), self.kiosk.add_to_cart("  ", "P1"),
                       self.kiosk.get_cart_details(None), self.kiosk.find_order("", "ORD-1")):
            self.assertFalse(result["success"])
            self.assertEqual(result["code"], "MissingTheater")
            self.assertEqual(result["error"], "Theater ID is required")

    def test_cart_survives_restart_per_theater(self):
        self.kiosk.add_to_cart("T1", "P1")
        self.kiosk.add_to_cart("T1", "P2")
        self.kiosk.close()

        self.kiosk = self._kiosk()
        self.assertEqual(self.kiosk.get_cart_details("T2")["cart_items"], [])
        items = self.kiosk.get_cart_details("T1")["cart_items"]
        self.assertEqual([(line["item_id"], line["count"]) for line in items], [("P1", 1), ("P2", 1)])

    def test_order_reloads_the_catalog(self):
        self.fake.json("POST", "/orders/theater", {"success": True, "data": order_payload()})
        self.kiosk.get_menu("T1")
        self.kiosk.add_to_cart("T1", "P1")

        self.assertEqual(self.kiosk.proceed_to_payment("T1")["state"], "reviewing")
        result = self.kiosk.pay("T1", customer_name="Ravi")
        self.assertTrue(result["success"])
        self.assertEqual(result["state"], "editing")
        self.assertEqual(result["order"]["order_number"], "ORD-1001")
        self.assertEqual(self.waits, [2.5])
        self.assertEqual(self.kiosk.get_cart_details("T1")["cart_items"], [])

        before = len(self.fake.calls("GET", "/theater-products/T1"))
        self.kiosk.get_menu("T1")
        self.assertEqual(len(self.fake.calls("GET", "/theater-products/T1")), before + 1)

    def test_checkout_state_errors(self):
        self.assertEqual(self.kiosk.proceed_to_payment("T1")["code"], "Validation")
        self.assertEqual(self.kiosk.pay("T1")["code"], "CheckoutState")
        self.assertEqual(self.kiosk.cancel_checkout("T1")["state"], "editing")
        self.assertEqual(self.kiosk.close_checkout("T1")["state"], "editing")

    def test_cancel_order(self):
        self.fake.json("GET", "/orders/theater/T1/ORD-1001", {"success": True, "data": order_payload()})
        self.fake.json("PUT", "/orders/theater/T1/O1/status", {"success": True})
        self.kiosk.get_menu("T1")

        found = self.kiosk.find_order("T1", "ORD-1001")
        self.assertEqual(found["order"]["status"], "pending")

        result = self.kiosk.cancel_order("T1", "ORD-1001")
        self.assertTrue(result["success"])
        self.assertEqual(result["order"]["status"], "cancelled")

        # stock changed, so the next menu read reloads
        before = len(self.fake.calls("GET", "/theater-products/T1"))
        self.kiosk.get_menu("T1")
        self.assertEqual(len(self.fake.calls("GET", "/theater-products/T1")), before + 1)

    def test_order_not_found(self):
        result = self.kiosk.find_order("T1", "ORD-404")
        self.assertEqual(result["code"], "OrderNotFound")


if __name__ == '__main__':
    unittest.main()

"""
Shared fixtures for the kiosk tests
"""
import json
import os
import shutil
import tempfile
import threading

import httpx

from api.client import TheaterApiClient
from config import Settings
from database.connection import DatabaseConnection
from database.repository import CacheRepository, CartRepository, StorageRepository
from models.cart import CartLine, CartSnapshot
from models.product import CatalogSnapshot, ComboOffer, Product

BASE_URL = "http://api.test/api"
THEATER = "T1"


def popcorn_payload(stock=3, **overrides):
    payload = {
        "_id": "P1",
        "name": "Popcorn Large",
        "quantity": "Large",
        "isActive": True,
        "pricing": {"basePrice": 250, "taxRate": 14, "gstType": "EXCLUDE"},
        "inventory": {"currentStock": stock},
        "kioskType": "KT1",
        "categoryId": "CAT1",
    }
    payload.update(overrides)
    return payload


def cola_payload(stock=450, **overrides):
    payload = {
        "_id": "P2",
        "name": "Cola",
        "quantity": "150 ML",
        "isActive": True,
        "pricing": {"basePrice": 60, "taxRate": 5, "gstType": "Inclusive"},
        "inventory": {"currentStock": stock, "unit": "ML"},
        "kioskType": "KT2",
        "categoryId": "CAT2",
    }
    payload.update(overrides)
    return payload


def movie_meal_payload(**overrides):
    payload = {
        "_id": "C1",
        "name": "Movie Meal",
        "offerPrice": 400,
        "gstTaxRate": 14,
        "gstType": "Inclusive",
        "isActive": True,
        "products": [
            {"productId": "P1", "quantity": 1},
            {"productId": "P2", "quantity": 1},
        ],
    }
    payload.update(overrides)
    return payload


def build_catalog(products=None, combos=None, theater_id=THEATER) -> CatalogSnapshot:
    if products is None:
        products = [popcorn_payload(), cola_payload()]
    if combos is None:
        combos = [movie_meal_payload()]
    return CatalogSnapshot(
        theater_id=theater_id,
        products=tuple(Product.from_api(raw) for raw in products),
        combos=tuple(ComboOffer.from_api(raw) for raw in combos),
    )


def cart_of(*items_and_counts, theater_id=THEATER) -> CartSnapshot:
    return CartSnapshot(theater_id, tuple(CartLine.from_item(item, count) for item, count in items_and_counts))


def order_payload(order_id="O1", number="ORD-1001", status="pending", items=None):
    if items is None:
        items = [
            {"_id": "L1", "productId": "P1", "name": "Popcorn Large", "quantity": 2, "unitPrice": 250},
            {"_id": "L2", "productId": "P2", "name": "Cola", "quantity": 1, "unitPrice": 60},
        ]
    return {
        "_id": order_id,
        "orderNumber": number,
        "status": status,
        "items": items,
        "pricing": {"subtotal": 560, "tax": 72.86, "total": 632.86},
        "customerInfo": {"name": "Asha"},
    }


class FakeApi:
    """In-memory stand-in for the REST API, served through httpx.MockTransport"""

    def __init__(self):
        self.routes = {}
        self.requests = []
        self._lock = threading.Lock()

    def on(self, method, path, handler):
        # handler(request) -> httpx.Response
        self.routes[(method, path)] = handler

    def json(self, method, path, body, status=200):
        self.on(method, path, lambda request: httpx.Response(status, json=body))

    def catalog(self, products=None, categories=None, kiosk_types=None, banners=None, combos=None,
                theater_id=THEATER):
        # the five catalog lists, each in a different accepted response shape
        if products is None:
            products = [popcorn_payload(), cola_payload()]
        if categories is None:
            categories = [{"_id": "CAT1", "categoryName": "Snacks"}, {"_id": "CAT2", "categoryName": "Drinks"}]
        if kiosk_types is None:
            kiosk_types = [{"_id": "KT1", "name": "Snacks", "isActive": True},
                           {"_id": "KT2", "name": "Beverages", "isActive": True}]
        if banners is None:
            banners = [{"_id": "B2", "imageUrl": "/b2.png", "sortOrder": 2, "isActive": True},
                       {"_id": "B1", "imageUrl": "/b1.png", "sortOrder": 1, "isActive": True}]
        if combos is None:
            combos = [movie_meal_payload()]
        self.json("GET", f"/theater-products/{theater_id}", {"success": True, "data": {"products": products}})
        self.json("GET", f"/theater-categories/{theater_id}", {"success": True, "data": categories})
        self.json("GET", f"/theater-kiosk-types/{theater_id}", {"kioskTypes": kiosk_types})
        self.json("GET", f"/theater-banners/{theater_id}", {"data": {"banners": banners}})
        self.json("GET", f"/combo-offers/{theater_id}", {"success": True, "data": combos})

    def calls(self, method, path):
        with self._lock:
            return [r for r in self.requests if r.method == method and self.path_of(r) == path]

    @staticmethod
    def path_of(request):
        path = request.url.path
        return path[len("/api"):] if path.startswith("/api") else path

    def __call__(self, request):
        with self._lock:
            self.requests.append(request)
        handler = self.routes.get((request.method, self.path_of(request)))
        if handler is None:
            return httpx.Response(404, json={"success": False, "error": "Not found"})
        return handler(request)

    def transport(self):
        return httpx.MockTransport(self)


def body_of(request):
    return json.loads(request.content.decode("utf-8"))


def make_client(fake, sleeps=None, **kwargs):
    recorder = sleeps.append if sleeps is not None else (lambda seconds: None)
    return TheaterApiClient(BASE_URL, transport=fake.transport(), sleep=recorder, **kwargs)


class StorageFixture:
    """Temporary sqlite storage plus its repositories"""

    def __init__(self, clock=None):
        self.directory = tempfile.mkdtemp(prefix="kiosk-test-")
        self.db_path = os.path.join(self.directory, "kiosk.db")
        self.db = DatabaseConnection(self.db_path)
        self.storage = StorageRepository(self.db)
        self.carts = CartRepository(self.storage)
        self.cache = CacheRepository(self.storage, clock=clock) if clock else CacheRepository(self.storage)

    def settings(self, **overrides):
        values = dict(
            api_base_url=BASE_URL,
            db_path=self.db_path,
            log_file=os.path.join(self.directory, "kiosk.log"),
        )
        values.update(overrides)
        return Settings(**values)

    def cleanup(self):
        shutil.rmtree(self.directory, ignore_errors=True)

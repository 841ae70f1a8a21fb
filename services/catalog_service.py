"""
Catalog service - loads and normalises a theater's catalog snapshot
"""
import logging
import uuid
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from api.client import AbortHandle, TheaterApiClient
from api.shapes import extract_list, resolve_image_url
from core.errors import CatalogLoadError, KioskError, RequestAborted
from database.repository import CacheRepository, StorageRepository, cache_key
from models.product import Banner, CatalogSnapshot, Category, ComboOffer, KioskType, Product

logger = logging.getLogger("theater_kiosk.catalog")

PENDING_PREFIX = "pending-"
CATALOG_EMPTY = "CatalogEmpty"


@dataclass(frozen=True)
class ListSource:
    """One of the five catalog lists"""
    resource: str
    path: str
    name: str
    model: Any
    id_field: str
    params: Tuple[Tuple[str, str], ...] = ()


LIST_SOURCES: "OrderedDict[str, ListSource]" = OrderedDict([
    ("products", ListSource("theater_products", "/theater-products/{theater_id}", "products",
                            Product, "product_id", (("stockSource", "cafe"),))),
    ("categories", ListSource("theater_categories", "/theater-categories/{theater_id}", "categories",
                              Category, "category_id")),
    ("kiosk_types", ListSource("theater_kiosk_types", "/theater-kiosk-types/{theater_id}", "kioskTypes",
                               KioskType, "kiosk_type_id")),
    ("banners", ListSource("theater_banners", "/theater-banners/{theater_id}", "banners",
                           Banner, "banner_id")),
    ("combos", ListSource("combo_offers", "/combo-offers/{theater_id}", "comboOffers",
                          ComboOffer, "combo_id")),
])


def is_pending(entry_id: str) -> bool:
    return str(entry_id).startswith(PENDING_PREFIX)


def merge_entries(local, server, confirmed: Dict[str, str]) -> tuple:
    """Merge a fresh server list into the local one.

    Server data wins for ids it knows. Locally minted pending entries stay in
    place until the server id they were confirmed as shows up, at which point
    the server entry takes the pending entry's position.
    """
    server_by_id = OrderedDict((entry.entry_id, entry) for entry in server)
    placed: Set[str] = set()
    merged = []
    for entry in local:
        entry_id = entry.entry_id
        if is_pending(entry_id):
            real_id = confirmed.get(entry_id)
            if real_id and real_id in server_by_id:
                if real_id not in placed:
                    merged.append(server_by_id[real_id])
                    placed.add(real_id)
            else:
                merged.append(entry)
        elif entry_id in server_by_id and entry_id not in placed:
            merged.append(server_by_id[entry_id])
            placed.add(entry_id)
    for entry_id, entry in server_by_id.items():
        if entry_id not in placed:
            merged.append(entry)
    return tuple(merged)


class CatalogService:
    # Catalog Loader: five concurrent list fetches with independent failure domains

    def __init__(self, api_client: TheaterApiClient, cache: CacheRepository, storage: StorageRepository,
                 cache_ttl: float = 120.0, timeout: float = 30.0, image_proxy_enabled: bool = False,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.api = api_client
        self.cache = cache
        self.storage = storage
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self.image_proxy_enabled = image_proxy_enabled
        self.executor = executor or ThreadPoolExecutor(max_workers=8, thread_name_prefix="catalog")
        self._lock = RLock()
        self._snapshots: Dict[str, CatalogSnapshot] = {}
        self._stale: Set[str] = set()
        self._seen_signal: Dict[str, int] = {}
        self._confirmed: Dict[str, str] = {}
        self._background: List[Future] = []
        self._listeners: List[Callable[[CatalogSnapshot], None]] = []

    # === snapshots ===
    def current(self, theater_id: str) -> Optional[CatalogSnapshot]:
        with self._lock:
            return self._snapshots.get(theater_id)

    def subscribe(self, listener: Callable[[CatalogSnapshot], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def load_catalog(self, theater_id: str, force_refresh: bool = False, page: Optional[int] = None,
                     limit: Optional[int] = None, search: Optional[str] = None) -> CatalogSnapshot:
        """Fetch (or serve from cache) the five lists and publish a snapshot.

        Cached lists are returned immediately and refreshed in the background.
        ``force_refresh`` bypasses the cache and sends no-cache hints.
        """
        raw_lists: Dict[str, List[Dict[str, Any]]] = {}
        cache_hits: List[str] = []
        pending: Dict[str, Tuple[Future, AbortHandle]] = {}

        for kind, source in LIST_SOURCES.items():
            key = cache_key(source.resource, theater_id, page, limit, search)
            if not force_refresh:
                cached = self.cache.get(key)
                if cached is not None:
                    raw_lists[kind] = cached
                    cache_hits.append(kind)
                    continue
            handle = self.api.begin(key, owner=theater_id)
            future = self.executor.submit(self._fetch_list, theater_id, kind, key, force_refresh,
                                          handle, page, limit, search)
            pending[kind] = (future, handle)

        if pending:
            _, not_done = wait([future for future, _ in pending.values()], timeout=self.timeout)
            if not_done:
                for future, handle in pending.values():
                    handle.abort()
                    self.api.finish(handle)
                logger.error("Catalog load for %s timed out after %.0fs", theater_id, self.timeout)
                raise CatalogLoadError(f"Catalog load timed out after {self.timeout:.0f}s")

        errors: Dict[str, str] = {}
        for kind, (future, handle) in pending.items():
            self.api.finish(handle)
            try:
                raw_lists[kind] = future.result()
            except RequestAborted:
                logger.info("Catalog load for %s aborted", theater_id)
                raise
            except KioskError as e:
                logger.warning("Failed to load %s for %s: %s", kind, theater_id, e.message)
                errors[kind] = e.message
                raw_lists[kind] = []

        if len(errors) == len(LIST_SOURCES):
            raise CatalogLoadError(f"Could not load the catalog: {errors['products']}")

        built = {kind: self._build(kind, raw_lists.get(kind, [])) for kind in LIST_SOURCES}
        with self._lock:
            previous = self._snapshots.get(theater_id)
            if previous is not None:
                built = {kind: merge_entries(getattr(previous, kind), entries, self._confirmed)
                         for kind, entries in built.items()}
                built["banners"] = self._sorted_banners(built["banners"])
            snapshot = self._assemble(theater_id, built, errors)
            self._snapshots[theater_id] = snapshot
            self._forget_placed()
            self._stale.discard(theater_id)
            self._seen_signal[theater_id] = self.storage.stock_signal(theater_id)
        self._notify(snapshot)

        for kind in cache_hits:
            self._refresh_in_background(theater_id, kind, page, limit, search)
        return snapshot

    def refresh_if_stale(self, theater_id: str) -> Optional[CatalogSnapshot]:
        # stock bump key (other contexts) or stockUpdated event (this context) seen since last load
        with self._lock:
            stale = theater_id in self._stale or theater_id not in self._snapshots
            seen = self._seen_signal.get(theater_id, 0)
        if not stale and self.storage.stock_signal(theater_id) <= seen:
            return None
        return self.load_catalog(theater_id, force_refresh=True)

    def mark_stale(self, theater_id: str):
        with self._lock:
            self._stale.add(theater_id)

    def invalidate(self, theater_id: str, kinds=None) -> int:
        # drop cached lists of this theater
        removed = 0
        for kind in kinds or LIST_SOURCES:
            removed += self.cache.clear_pattern(f"{LIST_SOURCES[kind].resource}_{theater_id}")
        return removed

    def close_theater(self, theater_id: str):
        # navigation away: abort in-flight fetches and discard the snapshot
        aborted = self.api.abort_owner(theater_id)
        with self._lock:
            self._snapshots.pop(theater_id, None)
            self._stale.discard(theater_id)
            self._seen_signal.pop(theater_id, None)
        if aborted:
            logger.info("Aborted %d catalog request(s) for %s", aborted, theater_id)

    def wait_for_background(self, timeout: Optional[float] = None):
        with self._lock:
            futures = list(self._background)
        done, _ = wait(futures, timeout=timeout)
        for future in done:
            self._discard_background(future)

    def shutdown(self):
        self.api.abort_all()
        self.executor.shutdown(wait=False)

    # === optimistic admin writes ===
    def add_pending(self, theater_id: str, kind: str, entry) -> str:
        """Insert ``entry`` under a locally minted pending id; returns that id."""
        pending_id = f"{PENDING_PREFIX}{uuid.uuid4().hex}"
        source = LIST_SOURCES[kind]
        entry = replace(entry, **{source.id_field: pending_id})
        with self._lock:
            snapshot = self._snapshots.get(theater_id) or CatalogSnapshot(theater_id)
            snapshot = replace(snapshot, **{kind: getattr(snapshot, kind) + (entry,)})
            self._snapshots[theater_id] = snapshot
        self._notify(snapshot)
        return pending_id

    def confirm_pending(self, theater_id: str, pending_id: str, server_id: str):
        # the server assigned an id; the pending row is replaced once the server lists it
        with self._lock:
            self._confirmed[pending_id] = server_id
            snapshot = self._snapshots.get(theater_id)
            if snapshot is None:
                self._forget_placed()
                return
            changed = {}
            for kind in LIST_SOURCES:
                entries = getattr(snapshot, kind)
                server_entries = [e for e in entries if not is_pending(e.entry_id)]
                if any(e.entry_id == pending_id for e in entries) and any(
                        e.entry_id == server_id for e in server_entries):
                    changed[kind] = merge_entries(entries, server_entries, self._confirmed)
            if changed:
                snapshot = replace(snapshot, **changed)
                self._snapshots[theater_id] = snapshot
            self._forget_placed()
            if not changed:
                return
        self._notify(snapshot)

    # === internals ===
    def _fetch_list(self, theater_id: str, kind: str, key: str, force_refresh: bool,
                    handle: AbortHandle, page: Optional[int], limit: Optional[int],
                    search: Optional[str]) -> List[Dict[str, Any]]:
        source = LIST_SOURCES[kind]
        params: Dict[str, Any] = dict(source.params)
        if page is not None:
            params["page"] = page
            params["limit"] = limit
        if search:
            params["search"] = search

        payload = self.api.get(source.path.format(theater_id=theater_id), params=params,
                               force_refresh=force_refresh, handle=handle, timeout=self.timeout)
        items = extract_list(payload, source.name)
        if items is None:
            logger.warning("Unrecognised %s response shape for theater %s; treating as empty",
                           source.name, theater_id)
            items = []
        items = [item for item in items if isinstance(item, dict)]
        self.cache.set(key, items, self.cache_ttl)
        return items

    def _refresh_in_background(self, theater_id: str, kind: str, page, limit, search):
        key = cache_key(LIST_SOURCES[kind].resource, theater_id, page, limit, search)
        handle = self.api.begin(key, owner=theater_id)
        future = self.executor.submit(self._background_refresh, theater_id, kind, key, handle,
                                      page, limit, search)
        with self._lock:
            self._background.append(future)
        # finished refreshes drop out of the list; runs at once if already done
        future.add_done_callback(self._discard_background)

    def _discard_background(self, future: Future):
        with self._lock:
            if future in self._background:
                self._background.remove(future)

    def _forget_placed(self):
        # confirmed pending ids no snapshot still shows have been replaced by their server row
        live = {entry.entry_id
                for snapshot in self._snapshots.values()
                for kind in LIST_SOURCES
                for entry in getattr(snapshot, kind)
                if is_pending(entry.entry_id)}
        for pending_id in [p for p in self._confirmed if p not in live]:
            del self._confirmed[pending_id]

    def _background_refresh(self, theater_id: str, kind: str, key: str, handle: AbortHandle,
                            page, limit, search):
        try:
            raw = self._fetch_list(theater_id, kind, key, False, handle, page, limit, search)
        except RequestAborted:
            logger.info("Background refresh of %s for %s aborted", kind, theater_id)
            return
        except KioskError as e:
            logger.warning("Background refresh of %s for %s failed: %s", kind, theater_id, e.message)
            return
        finally:
            self.api.finish(handle)

        entries = self._build(kind, raw)
        with self._lock:
            snapshot = self._snapshots.get(theater_id)
            if handle.aborted or snapshot is None:
                return
            merged = merge_entries(getattr(snapshot, kind), entries, self._confirmed)
            if kind == "banners":
                merged = self._sorted_banners(merged)
            snapshot = replace(snapshot, **{kind: merged})
            if kind == "products":
                snapshot = replace(snapshot, warnings=self._warnings(snapshot.products))
            self._snapshots[theater_id] = snapshot
            self._forget_placed()
        self._notify(snapshot)

    def _build(self, kind: str, raw_items: List[Dict[str, Any]]) -> tuple:
        source = LIST_SOURCES[kind]
        entries = []
        for raw in raw_items:
            if not (raw.get("_id") or raw.get("id")):
                logger.warning("Skipping %s entry without an id", source.name)
                continue
            entry = source.model.from_api(raw)
            # categories are listed as-is; every other list shows active entries only
            if kind != "categories" and not entry.is_active:
                continue
            if entry.image_url:
                entry = replace(entry, image_url=resolve_image_url(
                    entry.image_url, self.api.base_url, self.image_proxy_enabled))
            entries.append(entry)
        if kind == "banners":
            return self._sorted_banners(entries)
        return tuple(entries)

    @staticmethod
    def _sorted_banners(banners) -> tuple:
        return tuple(sorted(banners, key=lambda banner: banner.sort_order))

    @staticmethod
    def _warnings(products) -> tuple:
        return (CATALOG_EMPTY,) if not products else ()

    def _assemble(self, theater_id: str, built: Dict[str, tuple], errors: Dict[str, str]) -> CatalogSnapshot:
        warnings = self._warnings(built["products"])
        if warnings:
            logger.warning("Catalog for theater %s has no products", theater_id)
        return CatalogSnapshot(
            theater_id=theater_id,
            products=built["products"],
            categories=built["categories"],
            kiosk_types=built["kiosk_types"],
            banners=built["banners"],
            combos=built["combos"],
            warnings=warnings,
            errors=dict(errors),
        )

    def _notify(self, snapshot: CatalogSnapshot):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Catalog listener failed")

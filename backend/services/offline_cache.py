"""
Versioned offline cache and the request policies built on it.

`CacheManager` owns named cache regions stored in SQLite. Region names carry
the deployment version ("<version>-static", "<version>-runtime"); `activate()`
drops every region left over from older versions.

`CachingTransport` wraps another transport and picks a policy per request:

- page navigations: network first, pinned offline page when the network fails;
- Overpass queries and the place directory API: stale-while-revalidate. With
  neither cache nor network, directory reads get an empty JSON placeholder
  while Overpass queries re-raise so the search schedule sees the outage;
- same-origin static assets: cache first, pinned default asset as last resort;
- anything else: network, falling back to whatever the runtime cache holds.
"""
from __future__ import annotations

import base64
import json
import logging
import os
import sqlite3
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from domain.errors import TransportError
from services.http_transport import HttpRequest, HttpResponse, Transport
from settings import settings

logger = logging.getLogger(__name__)

SHELL_PATH = "/"
OFFLINE_PAGE_PATH = "/offline.html"
DEFAULT_ASSET_PATH = "/assets/icon.png"
EMPTY_PLACEHOLDER = {"items": [], "elements": []}


class CacheRegion:
    """One named cache; entries are keyed by HttpRequest.cache_key()."""

    def __init__(self, manager: "CacheManager", name: str):
        self.manager = manager
        self.name = name

    def match(self, key: str) -> Optional[HttpResponse]:
        row = self.manager._fetchone(
            "SELECT status, headers_json, body FROM cache_entries WHERE region=? AND key=?",
            (self.name, key),
        )
        if not row:
            return None
        status, headers_json, body = row
        try:
            headers = json.loads(headers_json or "{}")
        except ValueError:
            headers = {}
        return HttpResponse(status=status, body=bytes(body or b""), headers=headers, from_cache=True)

    def put(self, key: str, response: HttpResponse) -> None:
        self.manager._execute(
            """
            INSERT OR REPLACE INTO cache_entries (region, key, status, headers_json, body, stored_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                self.name,
                key,
                response.status,
                json.dumps(dict(response.headers)),
                sqlite3.Binary(response.body),
                int(time.time()),
            ),
        )

    def delete(self, key: str) -> None:
        self.manager._execute(
            "DELETE FROM cache_entries WHERE region=? AND key=?", (self.name, key)
        )

    def keys(self) -> List[str]:
        rows = self.manager._fetchall(
            "SELECT key FROM cache_entries WHERE region=? ORDER BY key", (self.name,)
        )
        return [r[0] for r in rows]


class CacheManager:
    """
    Explicit owner of the versioned cache regions.

    Call `install()` once per deployment to pin the offline essentials, then
    `activate()` to rotate out regions from previous versions. Storage errors
    are logged and swallowed: a broken cache degrades to a cache miss.
    """

    def __init__(self, db_path: Optional[str] = None, version: Optional[str] = None):
        self.db_path = db_path or settings.OFFLINE_CACHE_PATH
        self.version = version or settings.OFFLINE_CACHE_VERSION
        self.controlling = False
        self._clients: List[Callable[[str], None]] = []
        self._lock = threading.Lock()
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._init_schema()

    @property
    def static_cache_name(self) -> str:
        return f"{self.version}-static"

    @property
    def runtime_cache_name(self) -> str:
        return f"{self.version}-runtime"

    def _init_schema(self) -> None:
        with self._lock:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_regions (
                    name TEXT PRIMARY KEY,
                    created_at INTEGER NOT NULL
                )
                """
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entries (
                    region TEXT NOT NULL,
                    key TEXT NOT NULL,
                    status INTEGER NOT NULL,
                    headers_json TEXT,
                    body BLOB,
                    stored_at INTEGER NOT NULL,
                    PRIMARY KEY (region, key)
                )
                """
            )
            self._conn.commit()

    def _execute(self, sql: str, params: tuple = ()) -> None:
        try:
            with self._lock:
                self._conn.execute(sql, params)
                self._conn.commit()
        except sqlite3.Error as exc:
            logger.warning("Offline cache write failed: %s", exc)

    def _fetchone(self, sql: str, params: tuple = ()):
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            logger.warning("Offline cache read failed: %s", exc)
            return None

    def _fetchall(self, sql: str, params: tuple = ()) -> list:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            logger.warning("Offline cache read failed: %s", exc)
            return []

    def open(self, name: str) -> CacheRegion:
        self._execute(
            "INSERT OR IGNORE INTO cache_regions (name, created_at) VALUES (?, ?)",
            (name, int(time.time())),
        )
        return CacheRegion(self, name)

    def keys(self) -> List[str]:
        return [r[0] for r in self._fetchall("SELECT name FROM cache_regions ORDER BY name")]

    def has(self, name: str) -> bool:
        return name in self.keys()

    def delete(self, name: str) -> bool:
        existed = self.has(name)
        self._execute("DELETE FROM cache_entries WHERE region=?", (name,))
        self._execute("DELETE FROM cache_regions WHERE name=?", (name,))
        return existed

    def install(self, precache: Mapping[str, HttpResponse]) -> CacheRegion:
        """Create both regions for this version and pin the given entries in the static one."""
        static = self.open(self.static_cache_name)
        self.open(self.runtime_cache_name)
        for key, response in precache.items():
            static.put(key, response)
        logger.info("Offline cache %s installed with %d pinned entries", self.version, len(precache))
        return static

    def add_client(self, callback: Callable[[str], None]) -> None:
        """Register a listener told about the active version once `activate()` claims control."""
        self._clients.append(callback)

    def activate(self) -> List[str]:
        """Delete every region that does not belong to the current version, then claim clients."""
        current = {self.static_cache_name, self.runtime_cache_name}
        stale = [name for name in self.keys() if name not in current]
        for name in stale:
            self.delete(name)
        if stale:
            logger.info("Offline cache %s activated, removed %s", self.version, ", ".join(stale))
        self.controlling = True
        for callback in self._clients:
            callback(self.version)
        return stale

    def close(self) -> None:
        with self._lock:
            self._conn.close()


OFFLINE_PAGE_HTML = (
    b"<!doctype html><html><head><meta charset=\"utf-8\"><title>Offline</title></head>"
    b"<body><h1>You are offline</h1><p>Nearby toilets from your last search are still "
    b"available. Reconnect to search again.</p></body></html>"
)
# 1x1 transparent PNG
DEFAULT_ASSET_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)

_manager: Optional[CacheManager] = None
_manager_lock = threading.Lock()


def default_precache(origin: Optional[str] = None) -> Dict[str, HttpResponse]:
    """Entries pinned at install time: the offline page and the default asset."""
    origin = (origin or settings.APP_ORIGIN).rstrip("/")
    return {
        HttpRequest("GET", origin + OFFLINE_PAGE_PATH).cache_key(): HttpResponse(
            status=200, body=OFFLINE_PAGE_HTML, headers={"Content-Type": "text/html; charset=utf-8"}
        ),
        HttpRequest("GET", origin + DEFAULT_ASSET_PATH).cache_key(): HttpResponse(
            status=200, body=DEFAULT_ASSET_PNG, headers={"Content-Type": "image/png"}
        ),
    }


def get_cache_manager() -> CacheManager:
    """Process-wide CacheManager shared by the startup hook and every CachingTransport."""
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = CacheManager()
        return _manager


def prepare_offline_cache(manager: Optional[CacheManager] = None) -> List[str]:
    """Install this version's regions, then rotate out older versions. Run once per deployment."""
    manager = manager or get_cache_manager()
    manager.install(default_precache())
    return manager.activate()


class Route(str, Enum):
    NAVIGATION = "navigation"
    RUNTIME = "runtime"
    STATIC = "static"
    PASSTHROUGH = "passthrough"


class CachingTransport(Transport):
    """Transport decorator applying the offline policies of a CacheManager."""

    def __init__(
        self,
        inner: Transport,
        manager: CacheManager,
        origin: Optional[str] = None,
        runtime_hosts: Optional[Iterable[str]] = None,
        api_prefix: str = "/api/",
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.inner = inner
        self.manager = manager
        self.origin = (origin or settings.APP_ORIGIN).rstrip("/")
        if runtime_hosts is None:
            runtime_hosts = [HttpRequest("POST", url).host for url in settings.OVERPASS_ENDPOINTS]
        self.runtime_hosts = {h.lower() for h in runtime_hosts if h}
        self.api_prefix = api_prefix
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="cache-refresh")
        self._pending: List[Future] = []
        self._pending_lock = threading.Lock()

    def route_for(self, request: HttpRequest) -> Route:
        method = request.method.upper()
        same_origin = request.origin == self.origin
        if request.host.lower() in self.runtime_hosts:
            # Overpass queries are read-only even though they are POSTed
            return Route.RUNTIME if method in ("GET", "POST") else Route.PASSTHROUGH
        if method != "GET":
            return Route.PASSTHROUGH
        if request.mode == "navigate":
            return Route.NAVIGATION
        if same_origin and request.path.startswith(self.api_prefix):
            return Route.RUNTIME
        if same_origin:
            return Route.STATIC
        return Route.PASSTHROUGH

    def send(self, request: HttpRequest, timeout: float) -> HttpResponse:
        route = self.route_for(request)
        if route is Route.NAVIGATION:
            return self._network_first(request, timeout)
        if route is Route.RUNTIME:
            return self._stale_while_revalidate(request, timeout)
        if route is Route.STATIC:
            return self._cache_first(request, timeout)
        if request.method.upper() != "GET":
            return self.inner.send(request, timeout)
        return self._network_with_runtime_fallback(request, timeout)

    def pinned_key(self, path: str) -> str:
        return HttpRequest("GET", self.origin + path).cache_key()

    # --- policies --------------------------------------------------------

    def _network_first(self, request: HttpRequest, timeout: float) -> HttpResponse:
        static = self.manager.open(self.manager.static_cache_name)
        try:
            resp = self.inner.send(request, timeout)
        except TransportError as exc:
            logger.debug("Navigation to %s failed offline: %s", request.url, exc.message)
            offline = static.match(self.pinned_key(OFFLINE_PAGE_PATH))
            if offline is None:
                raise
            return offline
        if resp.ok:
            static.put(self.pinned_key(SHELL_PATH), resp)
        return resp

    def _stale_while_revalidate(self, request: HttpRequest, timeout: float) -> HttpResponse:
        runtime = self.manager.open(self.manager.runtime_cache_name)
        key = request.cache_key()
        cached = runtime.match(key)
        if cached is not None:
            logger.debug("Runtime cache hit for %s, revalidating", request.url)
            self._schedule_refresh(request, timeout, runtime, key)
            return cached
        try:
            resp = self.inner.send(request, timeout)
        except TransportError as exc:
            logger.warning("No cache and no network for %s: %s", request.url, exc.message)
            if request.host.lower() in self.runtime_hosts:
                raise
            return HttpResponse.from_json(EMPTY_PLACEHOLDER)
        if resp.ok:
            runtime.put(key, resp)
        return resp

    def _cache_first(self, request: HttpRequest, timeout: float) -> HttpResponse:
        static = self.manager.open(self.manager.static_cache_name)
        key = request.cache_key()
        cached = static.match(key)
        if cached is not None:
            return cached
        try:
            resp = self.inner.send(request, timeout)
        except TransportError:
            fallback = static.match(self.pinned_key(DEFAULT_ASSET_PATH))
            if fallback is None:
                raise
            return fallback
        if resp.ok:
            static.put(key, resp)
        return resp

    def _network_with_runtime_fallback(self, request: HttpRequest, timeout: float) -> HttpResponse:
        try:
            return self.inner.send(request, timeout)
        except TransportError:
            cached = self.manager.open(self.manager.runtime_cache_name).match(request.cache_key())
            if cached is None:
                raise
            return cached

    # --- background revalidation ----------------------------------------

    def _schedule_refresh(self, request: HttpRequest, timeout: float, region: CacheRegion, key: str) -> None:
        future = self._executor.submit(self._refresh, request, timeout, region, key)
        with self._pending_lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def _refresh(self, request: HttpRequest, timeout: float, region: CacheRegion, key: str) -> None:
        try:
            resp = self.inner.send(request, timeout)
        except TransportError as exc:
            logger.debug("Background refresh of %s failed: %s", request.url, exc.message)
            return
        if resp.ok:
            region.put(key, resp)

    def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight background refreshes."""
        with self._pending_lock:
            pending = list(self._pending)
            self._pending = []
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self.drain()
        self._executor.shutdown(wait=True)

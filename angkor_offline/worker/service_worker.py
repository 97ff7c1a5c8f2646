"""
Service worker model: shell pre-caching, cache-first fetch, offline fallback.

Lifecycle:
    parsed -> installing -> installed -> activating -> activated
    (redundant once a newer worker replaces it)

Two caches per build, named <app>-static-<version> and
<app>-dynamic-<version>. Activation deletes every other cache, which is
how a version bump rolls old content out.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..events import EventEmitter, WorkerEvent
from ..types import Notification, WorkerState
from ..utils.metrics import OfflineMetrics
from ..utils.retry import RetryConfig, retry_async
from .cache_storage import CachedResponse, CacheStorage

if TYPE_CHECKING:
    from .registration import ServiceWorkerRegistration

logger = logging.getLogger(__name__)

BACKGROUND_SYNC_TAG = "background-sync"
NOTIFICATION_TITLE = "Angkor Compliance"
DEFAULT_PUSH_BODY = "New notification from Angkor Compliance"
EXPLORE_URL = "/dashboard.html"


class OfflineFetchError(Exception):
    """The network failed and no cached fallback exists for the request."""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        self.url = url
        self.cause = cause
        super().__init__(f"Offline and no cached response for {url}")


@dataclass
class FetchRequest:
    """A request as seen by the worker's fetch handler."""
    url: str
    method: str = "GET"
    mode: str = "cors"  # "navigate" for page loads
    headers: Dict[str, str] = field(default_factory=dict)


def _origin(url: httpx.URL) -> tuple:
    return (url.scheme, url.host, url.port)


class ServiceWorker:
    """
    One worker instance bound to a build version.

    Args:
        client: HTTP client used for network fetches
        caches: Cache storage shared with older and newer workers
        app_name: Prefix for cache names
        version: Build version used in cache names
        origin: Scope origin; requests elsewhere are not intercepted
        static_files: Shell URLs pre-cached on install
        offline_page: Served for navigations when the network is down
        sync_handler: Coroutine run for background sync events
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        caches: CacheStorage,
        app_name: str = "angkor-compliance",
        version: str = "v2-2025",
        origin: str = "http://localhost:8000",
        static_files: Optional[List[str]] = None,
        offline_page: str = "/offline.html",
        sync_handler: Optional[Callable[[], Awaitable[Any]]] = None,
        dynamic_max_entries: Optional[int] = None,
        dynamic_max_bytes: Optional[int] = None,
        retry_config: Optional[RetryConfig] = None,
        skip_waiting_on_install: bool = True,
        emitter: Optional[EventEmitter] = None,
        metrics: Optional[OfflineMetrics] = None,
        worker_id: Optional[str] = None,
    ) -> None:
        self._client = client
        self._caches = caches
        self._app_name = app_name
        self._version = version
        self._origin = httpx.URL(origin)
        self._static_files = list(static_files or [])
        self._offline_page = offline_page
        self._sync_handler = sync_handler
        self._dynamic_max_entries = dynamic_max_entries
        self._dynamic_max_bytes = dynamic_max_bytes
        self._retry_config = retry_config or RetryConfig()
        self._skip_waiting_on_install = skip_waiting_on_install
        self._emitter = emitter
        self._metrics = metrics

        self.worker_id = worker_id or uuid.uuid4().hex[:8]
        self.state = WorkerState.PARSED
        self.skip_waiting_requested = False
        self.manifest_cached = False
        self.registration: Optional["ServiceWorkerRegistration"] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def version(self) -> str:
        return self._version

    @property
    def static_cache_name(self) -> str:
        return f"{self._app_name}-static-{self._version}"

    @property
    def dynamic_cache_name(self) -> str:
        return f"{self._app_name}-dynamic-{self._version}"

    @property
    def caches(self) -> CacheStorage:
        return self._caches

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def install(self) -> None:
        """
        Pre-cache the shell manifest.

        Each attempt fetches every manifest URL and stores them only if all
        succeeded. Attempts are retried with backoff; if every attempt fails
        the install still completes, without the manifest.
        """
        self._set_state(WorkerState.INSTALLING)
        logger.info(f"Worker {self.worker_id}: installing {self.static_cache_name}")
        static = self._caches.open(self.static_cache_name)

        try:
            entries = await retry_async(
                self._fetch_manifest,
                config=self._retry_config,
                on_retry=lambda attempt, exc: logger.warning(
                    f"Worker {self.worker_id}: manifest attempt {attempt} failed: {exc}"
                ),
            )
        except (httpx.HTTPError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Worker {self.worker_id}: error caching static files: {e}")
        else:
            for entry in entries:
                static.put_entry(entry)
            self.manifest_cached = True
            logger.info(f"Worker {self.worker_id}: cached {len(entries)} static files")

        if self._skip_waiting_on_install:
            await self.skip_waiting()
        self._set_state(WorkerState.INSTALLED)

    async def activate(self) -> None:
        """Delete caches from other versions and take control of open clients."""
        self._set_state(WorkerState.ACTIVATING)
        keep = {self.static_cache_name, self.dynamic_cache_name}
        for name in self._caches.keys():
            if name not in keep:
                logger.info(f"Worker {self.worker_id}: deleting old cache {name}")
                self._caches.delete(name)
        self._set_state(WorkerState.ACTIVATED)
        if self.registration is not None:
            self.registration.claim(self)

    def mark_redundant(self) -> None:
        self._set_state(WorkerState.REDUNDANT)

    async def skip_waiting(self) -> None:
        """Ask to become active without waiting for clients to close."""
        self.skip_waiting_requested = True
        if self.registration is not None and self.registration.waiting is self:
            await self.registration.activate_waiting()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def fetch(self, request: FetchRequest) -> Optional[httpx.Response]:
        """
        Answer a request cache-first.

        Returns None for requests the worker does not handle (non-GET or
        other origins); the caller should go to the network directly.

        Raises:
            OfflineFetchError: Network failed and nothing cached applies.
        """
        url = self._resolve(request.url)
        if request.method.upper() != "GET" or _origin(url) != _origin(self._origin):
            return None

        key = str(url)
        cached = self._caches.match(key)
        if cached is not None:
            self._record("cache_hit")
            return cached

        started = time.monotonic()
        try:
            response = await self._client.get(key, headers=request.headers)
        except httpx.TransportError as e:
            logger.debug(f"Worker {self.worker_id}: network failed for {key}: {e}")
            return self._fallback(request, key, e)

        self._record("network", (time.monotonic() - started) * 1000)
        if response.status_code == 200 and _origin(response.url) == _origin(self._origin):
            dynamic = self._caches.open(
                self.dynamic_cache_name,
                max_entries=self._dynamic_max_entries,
                max_bytes=self._dynamic_max_bytes,
            )
            dynamic.put(key, response)
        return response

    async def sync(self, tag: str) -> bool:
        """Handle a background sync event. Returns True if the handler ran cleanly."""
        logger.info(f"Worker {self.worker_id}: background sync {tag}")
        if tag != BACKGROUND_SYNC_TAG or self._sync_handler is None:
            return False
        try:
            await self._sync_handler()
        except Exception as e:
            logger.error(f"Worker {self.worker_id}: error syncing offline data: {e}")
            return False
        return True

    def push(self, data: Optional[str] = None) -> Notification:
        """Build the notification shown for a push message."""
        logger.info(f"Worker {self.worker_id}: push notification received")
        return Notification(
            title=NOTIFICATION_TITLE,
            body=data or DEFAULT_PUSH_BODY,
            actions=[
                {"action": "explore", "title": "View Details", "icon": "/favicon.png"},
                {"action": "close", "title": "Close", "icon": "/favicon.png"},
            ],
            data={"dateOfArrival": int(time.time() * 1000), "primaryKey": 1},
        )

    def notification_click(self, action: Optional[str]) -> Optional[str]:
        """Return the URL to open for a notification action, if any."""
        if action == "explore":
            return EXPLORE_URL
        return None

    async def message(self, data: Any) -> None:
        """Handle a message posted by a page."""
        logger.debug(f"Worker {self.worker_id}: message received {data!r}")
        if not isinstance(data, dict):
            return
        if data.get("action") == "skipWaiting" or data.get("type") == "SKIP_WAITING":
            await self.skip_waiting()
        elif data.get("type") == "UPDATE_AVAILABLE" and self.registration is not None:
            self.registration.post_to_clients({"type": "UPDATE_AVAILABLE"})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fetch_manifest(self) -> List[CachedResponse]:
        urls = [str(self._resolve(path)) for path in self._static_files]
        # Wait for every request before failing the attempt
        responses = await asyncio.gather(
            *(self._client.get(url) for url in urls), return_exceptions=True,
        )
        entries = []
        for url, response in zip(urls, responses):
            if isinstance(response, BaseException):
                raise response
            response.raise_for_status()
            entries.append(CachedResponse.from_response(response, url))
        return entries

    def _fallback(self, request: FetchRequest, key: str, cause: Exception) -> httpx.Response:
        if request.mode == "navigate":
            page = self._caches.match(str(self._resolve(self._offline_page)))
        else:
            page = self._caches.match(key)
        if page is None:
            self._record("failed")
            raise OfflineFetchError(key, cause)
        self._record("fallback")
        return page

    def _resolve(self, url: str) -> httpx.URL:
        return self._origin.join(url)

    def _set_state(self, state: WorkerState) -> None:
        old = self.state
        self.state = state
        logger.debug(f"Worker {self.worker_id}: {old.value} -> {state.value}")
        if self._emitter is not None:
            self._emitter.emit(WorkerEvent(
                source="service_worker",
                worker_id=self.worker_id,
                old_state=old,
                new_state=state,
            ))

    def _record(self, outcome: str, duration_ms: float = 0.0) -> None:
        if self._metrics is not None:
            self._metrics.record_worker_fetch(outcome, duration_ms)

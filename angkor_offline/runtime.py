"""
Offline runtime: builds and owns every offline component for one app.

Usage (async):
    runtime = OfflineRuntime.from_config("angkor-offline.yaml")
    await runtime.start()
    runtime.cache.set_cache("factories", [...])
    runtime.sync_queue.add_to_sync_queue({"caseId": 7, "note": "x"})
    await runtime.monitor.dispatch("online")
    await runtime.stop()

Usage (sync):
    runtime = OfflineRuntime()
    runtime.start_sync()
    runtime.stop_sync()

Usage (event-driven):
    runtime = OfflineRuntime()

    @runtime.on(IndicatorEvent)
    def on_indicator(event):
        print(event.indicator.value, event.visible, event.message)
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Set

import httpx

from .cache import PersistentCache
from .capabilities import Capabilities, ProcessCapabilities
from .config import OfflineConfig
from .diagnostics import CacheDiagnostics
from .events import DiagnosticEvent, EventEmitter
from .monitor import ConnectivityMonitor
from .remote import HttpRemoteDataService, RemoteDataProvider, RemoteDataService
from .storage import JsonFileStore, KeyValueStore, MemoryStore
from .sync_queue import SyncQueue
from .types import OfflineHealth
from .utils.logging import setup_logging
from .utils.metrics import MetricsConfig, OfflineMetrics
from .utils.retry import RetryConfig
from .worker import (
    CacheStorage,
    FetchRequest,
    ServiceWorker,
    ServiceWorkerRegistration,
)

logger = logging.getLogger(__name__)


class OfflineRuntime(EventEmitter):
    """
    Root composition object for offline support.

    Every collaborator can be injected; anything not supplied is built
    from the configuration.

    Args:
        config: Runtime configuration (defaults when None)
        store: Durable store (JsonFileStore when storage.path is set, else memory)
        session_store: Session-scoped store
        client: HTTP client; the runtime closes it on stop() only if it created it
        remote_service: Remote data service, if already available
        capabilities: Host capability provider
        online: Initial connectivity
        reload_page: Called by diagnostics to force a fresh page load
    """

    def __init__(
        self,
        config: Optional[OfflineConfig] = None,
        *,
        store: Optional[KeyValueStore] = None,
        session_store: Optional[KeyValueStore] = None,
        client: Optional[httpx.AsyncClient] = None,
        remote_service: Optional[RemoteDataService] = None,
        capabilities: Optional[Capabilities] = None,
        online: bool = True,
        reload_page: Optional[Callable[[], Any]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__()
        self._config = config or OfflineConfig()
        cfg = self._config
        if config:
            setup_logging(config)

        self._started = False
        self._start_time: Optional[float] = None
        self._sync_loop: Optional[asyncio.AbstractEventLoop] = None
        self._sync_loop_lock = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()

        self.metrics = OfflineMetrics(MetricsConfig(enabled=cfg.metrics_enabled))

        if store is None:
            path = cfg.get_storage_path()
            if path is not None:
                store = JsonFileStore(path, quota_bytes=cfg.storage_quota_bytes)
            else:
                store = MemoryStore(quota_bytes=cfg.storage_quota_bytes)
        self.store = store
        self.session_store = session_store or MemoryStore(quota_bytes=cfg.storage_quota_bytes)

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=cfg.origin)

        self.capabilities = capabilities or ProcessCapabilities()
        self.remote = RemoteDataProvider()
        if remote_service is not None:
            self.remote.attach(remote_service)
        elif cfg.remote_query_url:
            self.remote.attach(HttpRemoteDataService(
                self.client, cfg.remote_query_url, cfg.remote_user_url or None,
            ))

        self.cache = PersistentCache(
            self.store,
            version=cfg.build_version,
            prefix=cfg.cache_prefix,
            session_store=self.session_store,
            default_ttl_ms=cfg.default_ttl_ms,
            clock=clock,
            metrics=self.metrics,
        )
        self.diagnostics = CacheDiagnostics(
            self.cache,
            self.store,
            session_store=self.session_store,
            capabilities=self.capabilities,
            remote=self.remote,
            reload_page=reload_page,
            protected_keys=(cfg.sync_storage_key,),
            quota_bytes=cfg.storage_quota_bytes,
            quota_threshold=cfg.quota_threshold,
            memory_threshold=cfg.memory_threshold,
            stale_session_hours=cfg.stale_session_hours,
            remote_timeout=cfg.remote_timeout,
            remote_ready_timeout=cfg.remote_ready_timeout,
            clock=clock,
        )
        self.sync_queue = SyncQueue(
            self.store,
            self.client,
            endpoint=cfg.sync_endpoint,
            storage_key=cfg.sync_storage_key,
            is_online=lambda: self.monitor.is_online,
            emitter=self,
            batch_clear=cfg.sync_batch_clear,
            timeout=cfg.sync_timeout,
            clock=clock,
            metrics=self.metrics,
        )
        self.monitor = ConnectivityMonitor(
            self.sync_queue,
            self.client,
            self,
            online=online,
            probe_url=cfg.probe_url,
            probe_timeout=cfg.probe_timeout,
            online_toast_seconds=cfg.online_toast_seconds,
            on_reconnect=self._diagnose_after_reconnect if cfg.diagnose_on_reconnect else None,
        )
        self.caches = CacheStorage()
        self.registration = ServiceWorkerRegistration(scope="/", emitter=self)
        self.registration.add_client(self._handle_worker_message)

    @classmethod
    def from_config(cls, config_path: str, **kwargs: Any) -> "OfflineRuntime":
        """
        Create a runtime from a YAML config file.

        Args:
            config_path: Path to YAML configuration file
            **kwargs: Injected collaborators, as for __init__

        Returns:
            OfflineRuntime instance
        """
        return cls(config=OfflineConfig.load(config_path), **kwargs)

    @property
    def config(self) -> OfflineConfig:
        return self._config

    @property
    def is_started(self) -> bool:
        return self._started

    # === Lifecycle (async) ===

    async def start(self) -> None:
        """Show the initial connectivity state and register the service worker."""
        if self._started:
            return
        self.monitor.show_initial_state()
        await self.registration.register(self.create_worker())
        self._started = True
        self._start_time = time.time()
        logger.info(
            f"Offline runtime ready: version {self._config.build_version}, "
            f"{len(self.sync_queue)} items pending sync"
        )

    async def stop(self) -> None:
        """Persist pending mutations and release the HTTP client."""
        self.monitor.handle_before_unload()
        self.monitor.cancel_timers()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._owns_client:
            await self.client.aclose()
        self._started = False
        self._start_time = None

    # === Lifecycle (sync wrappers) ===

    def _get_sync_loop(self) -> asyncio.AbstractEventLoop:
        with self._sync_loop_lock:
            if self._sync_loop is None or self._sync_loop.is_closed():
                self._sync_loop = asyncio.new_event_loop()
            return self._sync_loop

    def start_sync(self) -> None:
        """Start the runtime (sync wrapper)."""
        loop = self._get_sync_loop()
        loop.run_until_complete(self.start())

    def stop_sync(self) -> None:
        """Stop the runtime (sync wrapper)."""
        with self._sync_loop_lock:
            if self._sync_loop is None or self._sync_loop.is_closed():
                return
            loop = self._sync_loop
        try:
            loop.run_until_complete(self.stop())
        finally:
            with self._sync_loop_lock:
                if self._sync_loop and not self._sync_loop.is_closed():
                    self._sync_loop.close()
                self._sync_loop = None

    # === Service worker ===

    def create_worker(self, cache_version: Optional[str] = None) -> ServiceWorker:
        """Build a worker for the configured (or given) cache version."""
        cfg = self._config
        return ServiceWorker(
            self.client,
            self.caches,
            app_name=cfg.app_name,
            version=cache_version or cfg.cache_version,
            origin=cfg.origin,
            static_files=cfg.static_files,
            offline_page=cfg.offline_page,
            sync_handler=self.sync_queue.sync_pending_data,
            dynamic_max_entries=cfg.dynamic_cache_max_entries,
            dynamic_max_bytes=cfg.dynamic_cache_max_bytes,
            retry_config=RetryConfig(
                max_attempts=cfg.install_max_attempts,
                backoff_base=cfg.install_backoff,
            ),
            emitter=self,
            metrics=self.metrics,
        )

    async def fetch(self, url: str, mode: str = "cors") -> Optional[httpx.Response]:
        """Send a GET through the controlling worker."""
        worker = self.registration.controller
        if worker is None:
            return None
        return await worker.fetch(FetchRequest(url=url, mode=mode))

    async def update_app(self) -> bool:
        return await self.registration.update_app()

    # === Diagnostics ===

    def attach_remote(self, service: RemoteDataService) -> None:
        self.remote.attach(service)

    async def run_diagnostics(self, fix: bool = False) -> Dict[str, Any]:
        """Run diagnostics, optionally apply fixes, and return the report."""
        report = await self.diagnostics.run_diagnostics()
        if fix and report.issues:
            await self.diagnostics.apply_fixes()
        level = {"healthy": "info", "warning": "warning", "critical": "error"}[report.summary.status.value]
        self.emit(DiagnosticEvent(
            source="diagnostics",
            message=f"{report.summary.total} cache issues ({report.summary.status.value})",
            level=level,
        ))
        return self.diagnostics.create_report()

    # === Health ===

    def get_health(self) -> OfflineHealth:
        static = self.caches.get(self._config.static_cache_name)
        dynamic = self.caches.get(self._config.dynamic_cache_name)
        active = self.registration.active
        return OfflineHealth(
            online=self.monitor.is_online,
            sync_status=self.sync_queue.status.value,
            pending_sync=len(self.sync_queue),
            worker_state=active.state.value if active else "none",
            static_cached=len(static) if static else 0,
            dynamic_cached=len(dynamic) if dynamic else 0,
            memory_entries=self.cache.memory_size,
            storage_bytes=self.store.size_bytes(),
            uptime_seconds=time.time() - self._start_time if self._start_time else 0.0,
        )

    # === Internals ===

    async def _diagnose_after_reconnect(self) -> None:
        await self.run_diagnostics(fix=False)

    def _handle_worker_message(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "SYNC_COMPLETE":
            self._spawn(self.sync_queue.sync_pending_data())
        elif kind == "CACHE_UPDATED":
            self.emit(DiagnosticEvent(source="service_worker", message="Cache updated", level="info"))
        elif kind == "UPDATE_AVAILABLE":
            logger.info("A new version of the app is available")

    def _spawn(self, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running loop, dropping worker-triggered task")
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

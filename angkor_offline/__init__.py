"""
Angkor Offline — offline support and cache synchronization.

Keeps the Angkor compliance platform usable without a connection:
a two-tier persistent cache, cache diagnostics with automatic fixes,
a service worker model with cache-first fetch and offline fallback,
a durable queue for mutations made offline, and a connectivity monitor
that flushes that queue when the connection comes back.

Basic Usage:
    from angkor_offline import OfflineRuntime

    runtime = OfflineRuntime.from_config("angkor-offline.yaml")
    runtime.start_sync()
    runtime.cache.set_cache("factories", [{"id": 1}])
    print(runtime.cache.get_cache("factories"))
    runtime.stop_sync()

Event-Driven Usage:
    from angkor_offline import OfflineRuntime, IndicatorEvent

    runtime = OfflineRuntime(online=False)

    @runtime.on(IndicatorEvent)
    def on_indicator(event):
        print(event.indicator.value, event.visible, event.message)

Async Usage:
    import asyncio
    from angkor_offline import OfflineRuntime

    async def main():
        runtime = OfflineRuntime(online=False)
        await runtime.start()
        runtime.sync_queue.add_to_sync_queue({"caseId": 7, "note": "x"})
        await runtime.monitor.dispatch("online")
        await runtime.stop()

    asyncio.run(main())
"""

__version__ = "1.0.0"

# Cache
from .cache import ESSENTIAL_KEYS, PersistentCache

# Capabilities
from .capabilities import Capabilities, ProcessCapabilities

# Configuration
from .config import OfflineConfig

# Diagnostics
from .diagnostics import CacheDiagnostics

# Event system
from .events import (
    ConnectivityEvent,
    DiagnosticEvent,
    ErrorEvent,
    EventEmitter,
    Indicator,
    IndicatorEvent,
    OfflineEvent,
    SyncEvent,
    UpdateAvailableEvent,
    WorkerEvent,
)
from .monitor import ConnectivityMonitor
from .remote import HttpRemoteDataService, RemoteDataProvider, RemoteDataService
from .runtime import OfflineRuntime

# Storage
from .storage import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    QuotaExceededError,
    StorageError,
)
from .sync_queue import SyncQueue

# Types
from .types import (
    CacheEntry,
    ConnectivityState,
    DiagnosticIssue,
    DiagnosticReport,
    DiagnosticSummary,
    FixResult,
    HealthLevel,
    IssueType,
    NavigationType,
    Notification,
    OfflineHealth,
    Severity,
    SyncQueueItem,
    SyncResult,
    SyncStatus,
    WorkerState,
)

# Service worker
from .worker import (
    CachedResponse,
    CacheStorage,
    FetchRequest,
    NamedCache,
    OfflineFetchError,
    ServiceWorker,
    ServiceWorkerRegistration,
)

__all__ = [
    "__version__",
    # Runtime
    "OfflineRuntime",
    "OfflineConfig",
    # Components
    "PersistentCache",
    "ESSENTIAL_KEYS",
    "CacheDiagnostics",
    "SyncQueue",
    "ConnectivityMonitor",
    "Capabilities",
    "ProcessCapabilities",
    "RemoteDataService",
    "HttpRemoteDataService",
    "RemoteDataProvider",
    # Storage
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "StorageError",
    "QuotaExceededError",
    # Service worker
    "ServiceWorker",
    "ServiceWorkerRegistration",
    "CacheStorage",
    "NamedCache",
    "CachedResponse",
    "FetchRequest",
    "OfflineFetchError",
    # Events
    "EventEmitter",
    "OfflineEvent",
    "ConnectivityEvent",
    "IndicatorEvent",
    "Indicator",
    "SyncEvent",
    "WorkerEvent",
    "UpdateAvailableEvent",
    "DiagnosticEvent",
    "ErrorEvent",
    # Types
    "CacheEntry",
    "ConnectivityState",
    "DiagnosticIssue",
    "DiagnosticReport",
    "DiagnosticSummary",
    "FixResult",
    "HealthLevel",
    "IssueType",
    "NavigationType",
    "Notification",
    "OfflineHealth",
    "Severity",
    "SyncQueueItem",
    "SyncResult",
    "SyncStatus",
    "WorkerState",
]

"""Service worker model: caches, lifecycle and fetch handling."""

from .cache_storage import CachedResponse, CacheStorage, NamedCache
from .registration import ServiceWorkerRegistration
from .service_worker import (
    BACKGROUND_SYNC_TAG,
    FetchRequest,
    OfflineFetchError,
    ServiceWorker,
)

__all__ = [
    "BACKGROUND_SYNC_TAG",
    "CachedResponse",
    "CacheStorage",
    "FetchRequest",
    "NamedCache",
    "OfflineFetchError",
    "ServiceWorker",
    "ServiceWorkerRegistration",
]

"""
Named response caches shared by the service worker and its clients.

Responses are stored keyed by full request URL. Each read hands back a
fresh httpx.Response, so callers may consume bodies freely without
affecting the cached copy.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass
class CachedResponse:
    """Stored form of an HTTP response."""
    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_response(cls, response: httpx.Response, url: str) -> "CachedResponse":
        return cls(
            url=url,
            status=response.status_code,
            headers=dict(response.headers),
            content=response.content,
        )

    def to_response(self) -> httpx.Response:
        """Build a new response object carrying the stored status, headers and body."""
        headers = {k: v for k, v in self.headers.items()
                   if k.lower() not in ("content-encoding", "transfer-encoding", "content-length")}
        return httpx.Response(
            status_code=self.status,
            headers=headers,
            content=self.content,
            request=httpx.Request("GET", self.url),
        )


class NamedCache:
    """
    A single named cache.

    When max_entries or max_bytes is set, the least recently used
    entries are evicted on put() until the cache is back within bounds.
    """

    def __init__(
        self,
        name: str,
        max_entries: Optional[int] = None,
        max_bytes: Optional[int] = None,
    ) -> None:
        self.name = name
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self._entries: "OrderedDict[str, CachedResponse]" = OrderedDict()

    def match(self, url: str) -> Optional[httpx.Response]:
        entry = self._entries.get(url)
        if entry is None:
            return None
        self._entries.move_to_end(url)
        return entry.to_response()

    def put(self, url: str, response: httpx.Response) -> None:
        self.put_entry(CachedResponse.from_response(response, url))

    def put_entry(self, entry: CachedResponse) -> None:
        self._entries[entry.url] = entry
        self._entries.move_to_end(entry.url)
        self._evict(keep=entry.url)

    def delete(self, url: str) -> bool:
        return self._entries.pop(url, None) is not None

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def size_bytes(self) -> int:
        return sum(entry.size for entry in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def _evict(self, keep: str) -> None:
        evicted = 0
        while self._over_bounds() and len(self._entries) > 1:
            oldest = next(iter(self._entries))
            if oldest == keep:
                break
            del self._entries[oldest]
            evicted += 1
        if evicted:
            logger.debug(f"Evicted {evicted} entries from cache {self.name}")

    def _over_bounds(self) -> bool:
        if self.max_entries is not None and len(self._entries) > self.max_entries:
            return True
        if self.max_bytes is not None and self.size_bytes() > self.max_bytes:
            return True
        return False


class CacheStorage:
    """The set of named caches for one origin."""

    def __init__(self) -> None:
        self._caches: Dict[str, NamedCache] = {}

    def open(
        self,
        name: str,
        max_entries: Optional[int] = None,
        max_bytes: Optional[int] = None,
    ) -> NamedCache:
        """Return the cache with this name, creating it if needed."""
        cache = self._caches.get(name)
        if cache is None:
            cache = NamedCache(name, max_entries=max_entries, max_bytes=max_bytes)
            self._caches[name] = cache
            logger.debug(f"Opened cache {name}")
        return cache

    def match(self, url: str) -> Optional[httpx.Response]:
        """Look the URL up in every cache, in creation order."""
        for cache in self._caches.values():
            response = cache.match(url)
            if response is not None:
                return response
        return None

    def has(self, name: str) -> bool:
        return name in self._caches

    def delete(self, name: str) -> bool:
        if self._caches.pop(name, None) is None:
            return False
        logger.info(f"Deleted cache {name}")
        return True

    def keys(self) -> List[str]:
        return list(self._caches.keys())

    def get(self, name: str) -> Optional[NamedCache]:
        return self._caches.get(name)

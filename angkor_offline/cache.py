"""
Two-tier persistent cache.

A memory tier sits in front of a durable key-value store. Values written
through set_cache() land in both tiers; reads prefer memory and fall back
to the durable store, promoting live entries back into memory.

Durable entries are stored as JSON envelopes under a namespace prefix:

    angkor_compliance_<key> -> {"data": <value>, "expiry": <ms since epoch>}

The version stamp lives at angkor_compliance_version as a plain string.
When it differs from the running build, every non-essential entry is
dropped before the cache serves anything.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

from .storage import KeyValueStore, StorageError
from .types import CacheEntry
from .utils.metrics import OfflineMetrics

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "angkor_compliance_"
DEFAULT_TTL_MS = 5 * 60 * 1000
USER_DATA_TTL_MS = 30 * 60 * 1000

# Keys that survive clear_all_cache() and version resets.
ESSENTIAL_KEYS: FrozenSet[str] = frozenset({
    "userRole",
    "userName",
    "language",
    "preferred-language",
})

AUTH_KEYS = (
    "user_profile",
    "user_permissions",
    "factory_data",
    "userRole",
    "userName",
)


class PersistentCache:
    """
    Memory + durable cache with TTL expiry and build-version invalidation.

    Args:
        store: Durable store (survives restart)
        version: Current build version; a stored stamp that differs
            triggers clear_all_cache() on construction
        prefix: Namespace prefix for durable keys
        session_store: Optional session-scoped store, emptied by clear_all_cache()
        essential_keys: Keys never removed by clear_all_cache()
        default_ttl_ms: TTL used when set_cache() is called without one
        clock: Returns seconds since epoch; injectable for tests
        metrics: Optional metrics collector
    """

    def __init__(
        self,
        store: KeyValueStore,
        version: str,
        prefix: str = DEFAULT_PREFIX,
        session_store: Optional[KeyValueStore] = None,
        essential_keys: Iterable[str] = ESSENTIAL_KEYS,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], float] = time.time,
        metrics: Optional[OfflineMetrics] = None,
    ) -> None:
        self._store = store
        self._session_store = session_store
        self._version = version
        self._prefix = prefix
        self._essential = frozenset(essential_keys)
        self._default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._metrics = metrics
        self._memory: Dict[str, CacheEntry] = {}

        self._check_version()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def version(self) -> str:
        return self._version

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def version_key(self) -> str:
        return f"{self._prefix}version"

    @property
    def essential_keys(self) -> FrozenSet[str]:
        return self._essential

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def session_store(self) -> Optional[KeyValueStore]:
        return self._session_store

    @property
    def memory_size(self) -> int:
        return len(self._memory)

    def now_ms(self) -> int:
        return round(self._clock() * 1000)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def set_cache(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """
        Cache a value in both tiers.

        A durable write failure (quota, I/O, unserializable value) is logged;
        the memory tier still holds the value.
        """
        ttl = self._default_ttl_ms if ttl_ms is None else ttl_ms
        expires_at = self.now_ms() + ttl
        self._memory[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

        try:
            payload = json.dumps({"data": value, "expiry": expires_at})
            self._store.set_item(self._prefix + key, payload)
        except (StorageError, TypeError, ValueError) as e:
            logger.warning(f"Durable cache write failed for {key!r}: {e}")
            self._record("write_failed")
            return
        self._record("write")

    def get_cache(self, key: str) -> Any:
        """
        Return the live value for key, or None.

        Expired entries are evicted from whichever tier held them.
        """
        now = self.now_ms()

        entry = self._memory.get(key)
        if entry is not None:
            if entry.is_live(now):
                self._record("hit")
                return entry.value
            del self._memory[key]

        raw = self._store.get_item(self._prefix + key)
        if raw is None:
            self._record("miss")
            return None

        try:
            envelope = json.loads(raw)
            value = envelope["data"]
            expires_at = int(envelope["expiry"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring corrupt cache entry {key!r}: {e}")
            self._record("miss")
            return None

        if now < expires_at:
            self._memory[key] = CacheEntry(key=key, value=value, expires_at=expires_at)
            self._record("hit")
            return value

        self._remove_durable(self._prefix + key)
        self._record("expired")
        return None

    def invalidate_cache(self, key: str) -> None:
        """Remove key from both tiers. Safe to call for absent keys."""
        self._memory.pop(key, None)
        self._remove_durable(self._prefix + key)
        logger.debug(f"Invalidated cache key {key!r}")

    def clear_all_cache(self) -> int:
        """
        Drop every non-essential cached entry.

        Clears the memory tier, removes each prefixed durable key whose name
        is not essential, and empties the session store.

        Returns:
            Number of durable keys removed
        """
        self._memory.clear()

        removed = 0
        for key in self._store.keys():
            if not key.startswith(self._prefix):
                continue
            if self._is_essential(key):
                continue
            if self._remove_durable(key):
                removed += 1

        if self._session_store is not None:
            try:
                self._session_store.clear()
            except StorageError as e:
                logger.warning(f"Failed to clear session store: {e}")

        logger.info(f"Cleared cache ({removed} durable entries)")
        return removed

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def clear_expired_cache(self) -> int:
        """Evict expired entries from the memory tier. Returns the count."""
        now = self.now_ms()
        expired = [k for k, entry in self._memory.items() if not entry.is_live(now)]
        for key in expired:
            del self._memory[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired memory entries")
        return len(expired)

    def clear_by_pattern(self, pattern: str) -> int:
        """
        Remove every key containing pattern from the durable and session stores.

        Memory entries whose un-prefixed key matches are dropped as well.
        """
        removed = 0
        stores = [self._store]
        if self._session_store is not None:
            stores.append(self._session_store)
        for store in stores:
            for key in store.keys():
                if pattern in key:
                    try:
                        store.remove_item(key)
                        removed += 1
                    except StorageError as e:
                        logger.warning(f"Failed to remove {key!r}: {e}")

        for key in [k for k in self._memory if pattern in self._prefix + k]:
            del self._memory[key]

        logger.info(f"Removed {removed} keys matching {pattern!r}")
        return removed

    # ------------------------------------------------------------------
    # User data
    # ------------------------------------------------------------------

    def cache_user_data(self, user_id: Optional[str], data: Any) -> None:
        self.set_cache(self._user_key(user_id), data, USER_DATA_TTL_MS)

    def get_cached_user_data(self, user_id: Optional[str]) -> Any:
        return self.get_cache(self._user_key(user_id))

    def clear_auth_cache(self) -> None:
        """Forget the signed-in user's profile, permissions and identity keys."""
        for key in AUTH_KEYS:
            self.invalidate_cache(key)
            self._remove_durable(key)
        for key in [k for k in self._memory if k.startswith("user_")]:
            self.invalidate_cache(key)
        logger.info("Cleared authentication cache")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        durable_keys = [k for k in self._store.keys() if k.startswith(self._prefix)]
        session_size = self._session_store.size_bytes() if self._session_store is not None else 0
        return {
            "version": self._version,
            "stored_version": self._store.get_item(self.version_key),
            "memory_entries": len(self._memory),
            "durable_entries": len(durable_keys),
            "durable_bytes": self._store.size_bytes(),
            "session_entries": len(self._session_store) if self._session_store is not None else 0,
            "session_bytes": session_size,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_version(self) -> None:
        stored = self._store.get_item(self.version_key)
        if stored == self._version:
            return
        logger.info(f"Cache version changed ({stored!r} -> {self._version!r}), clearing cache")
        self.clear_all_cache()
        try:
            self._store.set_item(self.version_key, self._version)
        except StorageError as e:
            logger.warning(f"Failed to write cache version stamp: {e}")

    def _is_essential(self, key: str) -> bool:
        if key == self.version_key:
            return True
        return key in self._essential or key[len(self._prefix):] in self._essential

    def _remove_durable(self, key: str) -> bool:
        if key not in self._store:
            return False
        try:
            self._store.remove_item(key)
        except StorageError as e:
            logger.warning(f"Failed to remove durable key {key!r}: {e}")
            return False
        return True

    @staticmethod
    def _user_key(user_id: Optional[str]) -> str:
        return f"user_{user_id or 'current_user'}"

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_cache(outcome)

"""
Offline mutation queue.

Mutations made while offline are appended to a queue that is written
through to durable storage on every change. A flush POSTs every pending
item to the sync endpoint concurrently.

Delivery is at-least-once. Each item carries an Idempotency-Key header
so the server can drop duplicates. By default items are removed one by
one as their delivery is confirmed; with batch_clear the queue is only
emptied when every item in the flush succeeded.
"""

import asyncio
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

import httpx

from .events import EventEmitter, SyncEvent
from .storage import KeyValueStore, StorageError
from .types import SyncQueueItem, SyncResult, SyncStatus
from .utils.metrics import OfflineMetrics

logger = logging.getLogger(__name__)


class SyncQueue:
    """
    Durable queue of pending mutations.

    Args:
        store: Durable store holding the serialized queue
        client: HTTP client used for delivery
        endpoint: Sync endpoint (relative to the client's base URL)
        storage_key: Store key for the serialized queue
        is_online: Returns the current connectivity
        emitter: Receives SyncEvent status changes
        batch_clear: Clear only when a whole flush succeeds
        timeout: Per-request timeout in seconds
        clock: Returns seconds since epoch
    """

    def __init__(
        self,
        store: KeyValueStore,
        client: httpx.AsyncClient,
        endpoint: str = "/api/sync",
        storage_key: str = "syncQueue",
        is_online: Callable[[], bool] = lambda: True,
        emitter: Optional[EventEmitter] = None,
        batch_clear: bool = False,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
        metrics: Optional[OfflineMetrics] = None,
    ) -> None:
        self._store = store
        self._client = client
        self._endpoint = endpoint
        self._storage_key = storage_key
        self._is_online = is_online
        self._emitter = emitter
        self._batch_clear = batch_clear
        self._timeout = timeout
        self._clock = clock
        self._metrics = metrics

        self._items: List[SyncQueueItem] = self._load()
        self._last_id = max((item.id for item in self._items), default=0)
        self._inflight: Optional["asyncio.Future[SyncResult]"] = None
        self.status = SyncStatus.READY

    @property
    def items(self) -> List[SyncQueueItem]:
        return list(self._items)

    @property
    def storage_key(self) -> str:
        return self._storage_key

    @property
    def is_syncing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def __len__(self) -> int:
        return len(self._items)

    def add_to_sync_queue(self, data: Any, idempotency_key: Optional[str] = None) -> SyncQueueItem:
        """Queue a mutation and write the queue through to storage."""
        now = self._clock()
        item_id = max(int(now * 1000), self._last_id + 1)
        self._last_id = item_id
        item = SyncQueueItem(
            id=item_id,
            data=data,
            timestamp=datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            retries=0,
            idempotency_key=idempotency_key or uuid.uuid4().hex,
        )
        self._items.append(item)
        self.persist()
        logger.debug(f"Queued item {item.id} ({len(self._items)} pending)")
        status = SyncStatus.SYNCING if self.is_syncing else SyncStatus.READY
        self._emit(status, f"{len(self._items)} items pending")
        return item

    async def sync_pending_data(self) -> SyncResult:
        """
        Deliver every pending item.

        Does nothing when offline or when the queue is empty. A call made
        while a flush is running waits for that flush and returns its result.
        """
        if self._inflight is not None and not self._inflight.done():
            logger.debug("Flush already running, joining it")
            return await asyncio.shield(self._inflight)

        if not self._is_online() or not self._items:
            return SyncResult(skipped=True)

        self._inflight = asyncio.ensure_future(self._flush())
        return await asyncio.shield(self._inflight)

    def persist(self) -> None:
        """Write the queue to storage, removing the key when the queue is empty."""
        try:
            if self._items:
                payload = json.dumps([item.to_dict() for item in self._items])
                self._store.set_item(self._storage_key, payload)
            else:
                self._store.remove_item(self._storage_key)
        except (StorageError, TypeError, ValueError) as e:
            logger.warning(f"Failed to persist sync queue: {e}")

    def clear(self) -> None:
        self._items = []
        self.persist()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _flush(self) -> SyncResult:
        snapshot = list(self._items)
        self._emit(SyncStatus.SYNCING, "Syncing data...")
        logger.info(f"Syncing {len(snapshot)} queued items")

        outcomes = await asyncio.gather(*(self._deliver(item) for item in snapshot))
        delivered = {item.id for item, ok in zip(snapshot, outcomes) if ok}
        failed = len(snapshot) - len(delivered)

        if self._batch_clear:
            if failed == 0:
                self._items = [item for item in self._items if item.id not in delivered]
        else:
            self._items = [item for item in self._items if item.id not in delivered]
            attempted = {item.id for item in snapshot}
            for item in self._items:
                if item.id in attempted:
                    item.retries += 1
        self.persist()

        result = SyncResult(attempted=len(snapshot), succeeded=len(delivered), failed=failed)
        if failed == 0:
            self._emit(SyncStatus.SYNCED, "All data synced", result)
            logger.info(f"Synced {result.succeeded} items")
        else:
            self._emit(SyncStatus.ERROR, f"{failed} items failed to sync", result)
            logger.warning(f"{failed} of {result.attempted} items failed to sync")

        if self._metrics is not None:
            self._metrics.record_sync(result.succeeded, result.failed, len(self._items))
        return result

    async def _deliver(self, item: SyncQueueItem) -> bool:
        try:
            response = await self._client.post(
                self._endpoint,
                json=item.data,
                headers={"Idempotency-Key": item.idempotency_key},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.debug(f"Item {item.id} delivery failed: {e}")
            return False
        if not response.is_success:
            logger.debug(f"Item {item.id} rejected with HTTP {response.status_code}")
            return False
        return True

    def _load(self) -> List[SyncQueueItem]:
        raw = self._store.get_item(self._storage_key)
        if not raw:
            return []
        try:
            return [SyncQueueItem.from_dict(entry) for entry in json.loads(raw)]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable sync queue: {e}")
            return []

    def _emit(self, status: SyncStatus, message: str, result: Optional[SyncResult] = None) -> None:
        self.status = status
        if self._emitter is None:
            return
        self._emitter.emit(SyncEvent(
            source="sync_queue",
            status=status,
            message=message,
            pending=len(self._items),
            succeeded=result.succeeded if result else 0,
            failed=result.failed if result else 0,
        ))

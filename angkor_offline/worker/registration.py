"""
Service worker registration: the page's handle on worker versions.

Holds the installing, waiting and active workers for one scope and
relays worker-to-page messages to registered client callbacks.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..events import EventEmitter, UpdateAvailableEvent
from .service_worker import ServiceWorker

logger = logging.getLogger(__name__)

ClientCallback = Callable[[Dict[str, Any]], None]


class ServiceWorkerRegistration:
    """
    Worker lifecycle for one scope.

    A newly registered worker activates straight away when nothing is
    active yet or when it asked to skip waiting. Otherwise it waits, an
    UpdateAvailableEvent is emitted, and update_app() promotes it.
    """

    def __init__(self, scope: str = "/", emitter: Optional[EventEmitter] = None) -> None:
        self.scope = scope
        self._emitter = emitter
        self.installing: Optional[ServiceWorker] = None
        self.waiting: Optional[ServiceWorker] = None
        self.active: Optional[ServiceWorker] = None
        self._controller: Optional[ServiceWorker] = None
        self._clients: List[ClientCallback] = []

    @property
    def controller(self) -> Optional[ServiceWorker]:
        """The worker currently controlling open clients."""
        return self._controller

    def add_client(self, callback: ClientCallback) -> None:
        self._clients.append(callback)

    def remove_client(self, callback: ClientCallback) -> None:
        self._clients = [c for c in self._clients if c != callback]

    def post_to_clients(self, message: Dict[str, Any]) -> None:
        for client in list(self._clients):
            try:
                client(message)
            except Exception as e:
                logger.error(f"Client message handler error: {e}")

    def claim(self, worker: ServiceWorker) -> None:
        self._controller = worker
        logger.info(f"Worker {worker.worker_id} now controls {len(self._clients)} clients")

    async def register(self, worker: ServiceWorker) -> ServiceWorker:
        """Install a worker and activate or park it."""
        worker.registration = self
        self.installing = worker
        try:
            await worker.install()
        finally:
            self.installing = None

        if self.active is None or worker.skip_waiting_requested:
            await self._activate(worker)
        else:
            self.waiting = worker
            logger.info(f"Worker {worker.worker_id} installed and waiting")
            if self._emitter is not None:
                self._emitter.emit(UpdateAvailableEvent(
                    source="registration",
                    worker_id=worker.worker_id,
                    version=worker.version,
                ))
            self.post_to_clients({"type": "UPDATE_AVAILABLE"})
        return worker

    async def update_app(self) -> bool:
        """Tell the waiting worker to skip waiting. Returns False if none waits."""
        if self.waiting is None:
            return False
        await self.waiting.message({"action": "skipWaiting"})
        return True

    async def activate_waiting(self) -> None:
        if self.waiting is None:
            return
        worker = self.waiting
        self.waiting = None
        await self._activate(worker)

    async def _activate(self, worker: ServiceWorker) -> None:
        previous = self.active
        if self.waiting is worker:
            self.waiting = None
        self.active = worker
        if previous is not None and previous is not worker:
            previous.mark_redundant()
        await worker.activate()

"""
Angkor Offline event system.

Everything the original page showed through DOM widgets is emitted here
as a typed event, so a host UI (or a test) decides how to render it:
- Connectivity transitions (online / offline)
- Indicators (offline banner, back-online toast, overlays)
- Sync progress (pending, syncing, synced, failed)
- Service worker updates
- Diagnostics and errors
"""

import logging
import threading
import time
from abc import ABC
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Type, TypeVar

from .types import ConnectivityState, SyncStatus, WorkerState

logger = logging.getLogger(__name__)


class Indicator(Enum):
    """UI indicators the monitor can show or hide."""
    OFFLINE_BANNER = "offline_banner"
    OFFLINE_OVERLAY = "offline_overlay"
    ONLINE_TOAST = "online_toast"
    CHECKING = "checking"
    STILL_OFFLINE = "still_offline"


@dataclass
class OfflineEvent(ABC):
    """Base event class for all Angkor Offline events."""
    timestamp: float = field(default_factory=time.time)
    source: str = ""


@dataclass
class ConnectivityEvent(OfflineEvent):
    """Connectivity state transition."""
    old_state: Optional[ConnectivityState] = None
    new_state: Optional[ConnectivityState] = None


@dataclass
class IndicatorEvent(OfflineEvent):
    """
    Show or hide a UI indicator.

    GUI maps `indicator` to a widget; `message` is the text to display.
    """
    indicator: Indicator = Indicator.OFFLINE_BANNER
    visible: bool = True
    message: str = ""


@dataclass
class SyncEvent(OfflineEvent):
    """Sync queue status change."""
    status: SyncStatus = SyncStatus.READY
    message: str = ""
    pending: int = 0
    succeeded: int = 0
    failed: int = 0


@dataclass
class WorkerEvent(OfflineEvent):
    """Service worker lifecycle transition."""
    worker_id: str = ""
    old_state: Optional[WorkerState] = None
    new_state: Optional[WorkerState] = None


@dataclass
class UpdateAvailableEvent(OfflineEvent):
    """A new worker is installed and waiting; the page should offer a reload."""
    worker_id: str = ""
    version: str = ""


@dataclass
class DiagnosticEvent(OfflineEvent):
    """
    Diagnostic information from cache checks and health probes.

    GUI can show in debug panel or status bar.
    """
    message: str = ""
    level: str = "info"     # "info", "warning", "error", "debug"


@dataclass
class ErrorEvent(OfflineEvent):
    """Error event for user feedback."""
    error: str = ""
    recoverable: bool = True


E = TypeVar("E", bound=OfflineEvent)


class EventEmitter:
    """
    Event emitter for Angkor Offline.

    Provides a simple pub/sub mechanism for event-driven hosts.

    Usage:
        emitter = EventEmitter()

        @emitter.on(ConnectivityEvent)
        def on_connectivity(event: ConnectivityEvent):
            print(event.new_state)

        emitter.emit(ConnectivityEvent(new_state=ConnectivityState.OFFLINE))
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[OfflineEvent], List[Callable[..., None]]] = {}
        self._global_handlers: List[Callable[[OfflineEvent], None]] = []
        self._lock = threading.Lock()

    def on(self, event_type: Type[E]) -> Callable[[Callable[[E], None]], Callable[[E], None]]:
        """
        Decorator to register an event handler.

        Args:
            event_type: The event class to handle

        Returns:
            Decorator function
        """
        def decorator(func: Callable[[E], None]) -> Callable[[E], None]:
            self.add_handler(event_type, func)
            return func
        return decorator

    def on_any(self, func: Callable[[OfflineEvent], None]) -> Callable[[OfflineEvent], None]:
        """Register a handler for all events."""
        with self._lock:
            self._global_handlers.append(func)
        return func

    def add_handler(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        """Add an event handler programmatically."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def emit(self, event: OfflineEvent) -> None:
        """
        Emit an event to all registered handlers.

        Handler lists are snapshotted under the lock and called without it,
        so a handler may register or remove handlers. A failing handler is
        logged and does not stop the others.
        """
        with self._lock:
            global_snapshot = list(self._global_handlers)
            specific_snapshot = list(self._handlers.get(type(event), []))

        for handler in global_snapshot:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler error (global): {e}")

        for handler in specific_snapshot:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler error ({type(event).__name__}): {e}")

    def remove_handler(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        """Remove a specific handler."""
        with self._lock:
            if event_type in self._handlers:
                self._handlers[event_type] = [
                    h for h in self._handlers[event_type] if h != handler
                ]

    def clear_handlers(self, event_type: Optional[Type[E]] = None) -> None:
        """
        Clear handlers.

        Args:
            event_type: If provided, clear only handlers for this type.
                       If None, clear all handlers.
        """
        with self._lock:
            if event_type is not None:
                self._handlers[event_type] = []
            else:
                self._handlers.clear()
                self._global_handlers.clear()

    def handler_count(self, event_type: Optional[Type[E]] = None) -> int:
        """Get the number of registered handlers."""
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            return sum(len(h) for h in self._handlers.values()) + len(self._global_handlers)

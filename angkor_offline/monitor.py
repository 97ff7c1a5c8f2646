"""
Connectivity monitor.

Tracks online/offline state from browser-style events and turns each
transition into indicator events for the host UI. Coming back online
and becoming visible again both flush the sync queue; the queue joins
overlapping flushes, so both triggers may fire freely.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from .events import (
    ConnectivityEvent,
    ErrorEvent,
    EventEmitter,
    Indicator,
    IndicatorEvent,
)
from .sync_queue import SyncQueue
from .types import ConnectivityState, SyncResult

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """
    Online/offline state machine.

    Args:
        sync_queue: Flushed on reconnect and when the page becomes visible
        client: HTTP client for the manual connectivity probe
        emitter: Receives connectivity and indicator events
        online: Initial state
        probe_url: Target of the HEAD probe
        probe_timeout: Seconds before the probe counts as failed
        online_toast_seconds: How long the "Back online" toast stays up
        on_reconnect: Optional coroutine run after the reconnect flush
    """

    def __init__(
        self,
        sync_queue: SyncQueue,
        client: httpx.AsyncClient,
        emitter: EventEmitter,
        online: bool = True,
        probe_url: str = "/api/health",
        probe_timeout: float = 5.0,
        online_toast_seconds: float = 3.0,
        on_reconnect: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> None:
        self._sync_queue = sync_queue
        self._client = client
        self._emitter = emitter
        self._state = ConnectivityState.ONLINE if online else ConnectivityState.OFFLINE
        self._probe_url = probe_url
        self._probe_timeout = probe_timeout
        self._online_toast_seconds = online_toast_seconds
        self._on_reconnect = on_reconnect
        self._toast_handle: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state is ConnectivityState.ONLINE

    def show_initial_state(self) -> None:
        """Show the offline indicators when starting without a connection."""
        if not self.is_online:
            self._show_offline()

    def handle_offline(self) -> None:
        self._transition(ConnectivityState.OFFLINE)
        self._show_offline()

    async def handle_online(self) -> SyncResult:
        """Switch to online, show the toast, then flush pending mutations."""
        self._transition(ConnectivityState.ONLINE)
        self._indicator(Indicator.OFFLINE_BANNER, False)
        self._indicator(Indicator.OFFLINE_OVERLAY, False)
        self._indicator(Indicator.STILL_OFFLINE, False)
        self._indicator(Indicator.ONLINE_TOAST, True, "Back online")
        self._schedule_toast_hide()

        result = await self._sync_queue.sync_pending_data()
        if self._on_reconnect is not None:
            try:
                await self._on_reconnect()
            except Exception as e:
                logger.error(f"Reconnect hook failed: {e}")
        return result

    async def handle_visibility_change(self, visible: bool) -> Optional[SyncResult]:
        if visible and self.is_online:
            return await self._sync_queue.sync_pending_data()
        return None

    def handle_before_unload(self) -> None:
        self._sync_queue.persist()

    async def retry_connection(self) -> bool:
        """
        Probe the server and re-drive the matching transition.

        Returns:
            True if the server answered
        """
        self._indicator(Indicator.CHECKING, True, "Checking connection...")
        try:
            await self._client.head(
                self._probe_url,
                headers={"Cache-Control": "no-cache"},
                timeout=self._probe_timeout,
            )
        except httpx.HTTPError as e:
            self._indicator(Indicator.CHECKING, False)
            logger.info(f"Connectivity probe failed: {e}")
            if self.is_online:
                self.handle_offline()
            self._indicator(
                Indicator.STILL_OFFLINE, True,
                "Still Offline. Please check your internet connection and try again.",
            )
            self._emitter.emit(ErrorEvent(
                source="monitor",
                error=f"Connection check failed: {e}",
                recoverable=True,
            ))
            return False

        self._indicator(Indicator.CHECKING, False)
        await self.handle_online()
        return True

    async def dispatch(self, name: str, **kwargs: Any) -> Any:
        """Route a browser-style event name to its handler."""
        if name == "online":
            return await self.handle_online()
        if name == "offline":
            return self.handle_offline()
        if name == "visibilitychange":
            return await self.handle_visibility_change(kwargs.get("visible", True))
        if name == "beforeunload":
            return self.handle_before_unload()
        if name == "retry":
            return await self.retry_connection()
        raise ValueError(f"Unknown connectivity event: {name}")

    def cancel_timers(self) -> None:
        if self._toast_handle is not None:
            self._toast_handle.cancel()
            self._toast_handle = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, new_state: ConnectivityState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state is not new_state:
            logger.info(f"Connectivity: {old_state.value} -> {new_state.value}")
        self._emitter.emit(ConnectivityEvent(
            source="monitor",
            old_state=old_state,
            new_state=new_state,
        ))

    def _show_offline(self) -> None:
        self.cancel_timers()
        self._indicator(Indicator.ONLINE_TOAST, False)
        self._indicator(Indicator.OFFLINE_BANNER, True, "You're offline")
        self._indicator(
            Indicator.OFFLINE_OVERLAY, True,
            "You're offline. Some features may not be available.",
        )

    def _schedule_toast_hide(self) -> None:
        self.cancel_timers()
        loop = asyncio.get_running_loop()
        self._toast_handle = loop.call_later(
            self._online_toast_seconds,
            self._indicator, Indicator.ONLINE_TOAST, False,
        )

    def _indicator(self, indicator: Indicator, visible: bool, message: str = "") -> None:
        self._emitter.emit(IndicatorEvent(
            source="monitor",
            indicator=indicator,
            visible=visible,
            message=message,
        ))

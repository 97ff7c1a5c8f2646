"""
Remote data service boundary.

Diagnostics probe the remote data service with a bounded trial query and
use it for remediation (re-enable network, drop local persistence, reload
the signed-in user). The service becomes available some time after
startup; RemoteDataProvider hands it out once it has been attached instead
of having callers poll for it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class RemoteDataService(ABC):
    """Operations the offline layer needs from the remote data service."""

    @abstractmethod
    async def check_connection(self, timeout: float) -> bool:
        """Run a trial query. True when the service answered in time."""

    @abstractmethod
    async def enable_network(self) -> None:
        """Re-enable network access after the client went offline."""

    @abstractmethod
    async def clear_persistence(self) -> None:
        """Drop the client's locally persisted data."""

    @abstractmethod
    async def reload_user(self) -> None:
        """Refresh the signed-in user's record."""


class HttpRemoteDataService(RemoteDataService):
    """
    Remote data service reached over HTTP.

    The trial query is GET <query_url>?limit=1; any 2xx response counts
    as connected. Transport errors propagate so the caller can tell an
    unreachable service from an unhealthy one.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        query_url: str,
        user_url: Optional[str] = None,
    ) -> None:
        self._client = client
        self._query_url = query_url
        self._user_url = user_url
        self._network_enabled = True
        self._user: Optional[dict] = None

    @property
    def network_enabled(self) -> bool:
        return self._network_enabled

    @property
    def user(self) -> Optional[dict]:
        return self._user

    async def check_connection(self, timeout: float) -> bool:
        if not self._network_enabled:
            return False
        response = await self._client.get(
            self._query_url, params={"limit": 1}, timeout=timeout,
        )
        return response.is_success

    async def enable_network(self) -> None:
        self._network_enabled = True
        logger.info("Remote data service network enabled")

    async def clear_persistence(self) -> None:
        self._user = None
        logger.info("Remote data service persistence cleared")

    async def reload_user(self) -> None:
        if not self._user_url:
            return
        response = await self._client.get(self._user_url)
        response.raise_for_status()
        self._user = response.json()
        logger.debug("Reloaded signed-in user")


class RemoteDataProvider:
    """One-shot readiness handle for the remote data service."""

    def __init__(self) -> None:
        self._service: Optional[RemoteDataService] = None
        self._ready: Optional[asyncio.Event] = None

    @property
    def is_ready(self) -> bool:
        return self._service is not None

    @property
    def service(self) -> Optional[RemoteDataService]:
        return self._service

    def attach(self, service: RemoteDataService) -> None:
        """Make the service available. Later calls are ignored."""
        if self._service is not None:
            logger.debug("Remote data service already attached")
            return
        self._service = service
        if self._ready is not None:
            self._ready.set()

    async def get(self, timeout: Optional[float] = None) -> Optional[RemoteDataService]:
        """
        Wait for the service.

        Returns None if it is not attached within timeout seconds.
        """
        if self._service is not None:
            return self._service
        if self._ready is None:
            self._ready = asyncio.Event()
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        return self._service

"""Tests for angkor_offline.worker.service_worker module."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from angkor_offline.events import WorkerEvent
from angkor_offline.types import WorkerState
from angkor_offline.utils.metrics import OfflineMetrics
from angkor_offline.utils.retry import RetryConfig
from angkor_offline.worker import (
    BACKGROUND_SYNC_TAG,
    CacheStorage,
    FetchRequest,
    OfflineFetchError,
    ServiceWorker,
    ServiceWorkerRegistration,
)

ORIGIN = "http://app.test"

STATIC_FILES = ["/", "/offline.html", "/js/app.js"]
NO_BACKOFF = RetryConfig(max_attempts=3, backoff_base=0.0)


def make_worker(client, caches=None, version="v2", **kwargs):
    kwargs.setdefault("static_files", STATIC_FILES)
    kwargs.setdefault("retry_config", NO_BACKOFF)
    return ServiceWorker(
        client,
        caches if caches is not None else CacheStorage(),
        app_name="angkor",
        version=version,
        origin=ORIGIN,
        **kwargs,
    )


def offline(request):
    raise httpx.ConnectError("network down", request=request)


class TestInstall:
    """Shell pre-caching on install."""

    @pytest.mark.asyncio
    async def test_caches_manifest(self, client, handler):
        worker = make_worker(client)
        await worker.install()

        static = worker.caches.get("angkor-static-v2")
        assert sorted(static.keys()) == sorted(f"{ORIGIN}{p}" for p in STATIC_FILES)
        assert worker.manifest_cached is True
        assert worker.state == WorkerState.INSTALLED
        assert worker.skip_waiting_requested is True

    @pytest.mark.asyncio
    async def test_retries_failed_attempt(self, client, handler):
        attempts = {"n": 0}

        def flaky(request):
            attempts["n"] += 1
            if attempts["n"] == 1:
                return httpx.Response(500)
            return httpx.Response(200, text="app")

        handler.routes["/js/app.js"] = flaky
        worker = make_worker(client)
        await worker.install()

        assert attempts["n"] == 2
        assert worker.manifest_cached is True
        assert len(worker.caches.get("angkor-static-v2")) == 3

    @pytest.mark.asyncio
    async def test_attempt_is_all_or_nothing(self, client, handler):
        """When every attempt fails nothing is stored and install still completes."""
        handler.routes["/js/app.js"] = 404
        worker = make_worker(client)
        await worker.install()

        assert worker.manifest_cached is False
        assert len(worker.caches.get("angkor-static-v2")) == 0
        assert worker.state == WorkerState.INSTALLED
        assert handler.calls("/js/app.js") == NO_BACKOFF.max_attempts

    @pytest.mark.asyncio
    async def test_network_down_during_install(self, client, handler):
        handler.routes["/"] = offline
        worker = make_worker(client, retry_config=RetryConfig(max_attempts=1))
        await worker.install()
        assert worker.manifest_cached is False
        assert worker.state == WorkerState.INSTALLED

    @pytest.mark.asyncio
    async def test_failed_attempt_leaves_no_requests_running(self):
        """Sibling manifest requests finish before the attempt is abandoned."""
        class SlowClient:
            def __init__(self):
                self.in_flight = 0

            async def get(self, url):
                if url == f"{ORIGIN}/":
                    raise httpx.ConnectError("network down")
                self.in_flight += 1
                try:
                    await asyncio.sleep(0.01)
                    return httpx.Response(200, text="ok", request=httpx.Request("GET", url))
                finally:
                    self.in_flight -= 1

        client = SlowClient()
        worker = make_worker(client, retry_config=RetryConfig(max_attempts=1))
        await worker.install()

        assert client.in_flight == 0
        assert worker.manifest_cached is False
        assert len(worker.caches.get("angkor-static-v2")) == 0

    @pytest.mark.asyncio
    async def test_emits_state_transitions(self, client, emitter):
        seen = []
        emitter.add_handler(WorkerEvent, lambda e: seen.append(e.new_state))
        worker = make_worker(client, emitter=emitter, skip_waiting_on_install=False)
        await worker.install()
        await worker.activate()
        assert seen == [
            WorkerState.INSTALLING,
            WorkerState.INSTALLED,
            WorkerState.ACTIVATING,
            WorkerState.ACTIVATED,
        ]


class TestActivate:
    """Old cache clean-up on activation."""

    @pytest.mark.asyncio
    async def test_deletes_caches_from_other_versions(self, client):
        caches = CacheStorage()
        caches.open("angkor-static-v1")
        caches.open("angkor-dynamic-v1")
        caches.open("unrelated")
        worker = make_worker(client, caches=caches)
        await worker.install()
        await worker.activate()

        assert caches.keys() == ["angkor-static-v2"]
        assert worker.state == WorkerState.ACTIVATED


class TestFetch:
    """Cache-first fetch handling."""

    @pytest.mark.asyncio
    async def test_cache_hit_makes_no_network_request(self, client, handler):
        worker = make_worker(client)
        await worker.install()
        before = len(handler.requests)

        response = await worker.fetch(FetchRequest("/js/app.js"))

        assert response.status_code == 200
        assert response.text == "/js/app.js"
        assert len(handler.requests) == before

    @pytest.mark.asyncio
    async def test_miss_fetches_once_and_stores_dynamic_copy(self, client, handler):
        worker = make_worker(client, static_files=[])
        await worker.install()

        response = await worker.fetch(FetchRequest("/api/factories"))
        assert response.text == "/api/factories"
        assert handler.calls("/api/factories") == 1

        dynamic = worker.caches.get("angkor-dynamic-v2")
        assert dynamic.keys() == [f"{ORIGIN}/api/factories"]

        again = await worker.fetch(FetchRequest("/api/factories"))
        assert again.text == "/api/factories"
        assert handler.calls("/api/factories") == 1

    @pytest.mark.asyncio
    async def test_non_200_not_stored(self, client, handler):
        handler.routes["/api/missing"] = 404
        worker = make_worker(client, static_files=[])
        response = await worker.fetch(FetchRequest("/api/missing"))
        assert response.status_code == 404
        assert worker.caches.get("angkor-dynamic-v2") is None

    @pytest.mark.asyncio
    async def test_non_get_not_intercepted(self, client, handler):
        worker = make_worker(client)
        assert await worker.fetch(FetchRequest("/api/sync", method="POST")) is None
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_cross_origin_not_intercepted(self, client, handler):
        worker = make_worker(client)
        assert await worker.fetch(FetchRequest("https://cdn.example.com/lib.js")) is None
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_navigation_falls_back_to_offline_page(self, client, handler):
        worker = make_worker(client)
        await worker.install()
        handler.routes["/dashboard.html"] = offline

        response = await worker.fetch(FetchRequest("/dashboard.html", mode="navigate"))

        assert response.status_code == 200
        assert response.text == "/offline.html"

    @pytest.mark.asyncio
    async def test_subresource_without_cache_raises(self, client, handler):
        worker = make_worker(client)
        await worker.install()
        handler.routes["/api/audits"] = offline

        with pytest.raises(OfflineFetchError) as exc_info:
            await worker.fetch(FetchRequest("/api/audits"))
        assert exc_info.value.url == f"{ORIGIN}/api/audits"
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_navigation_without_offline_page_raises(self, client, handler):
        handler.routes["/reports.html"] = offline
        worker = make_worker(client, static_files=[])
        with pytest.raises(OfflineFetchError):
            await worker.fetch(FetchRequest("/reports.html", mode="navigate"))

    @pytest.mark.asyncio
    async def test_dynamic_cache_bounded(self, client):
        worker = make_worker(client, static_files=[], dynamic_max_entries=2)
        for path in ("/a", "/b", "/c"):
            await worker.fetch(FetchRequest(path))
        assert worker.caches.get("angkor-dynamic-v2").keys() == [f"{ORIGIN}/b", f"{ORIGIN}/c"]

    @pytest.mark.asyncio
    async def test_records_outcomes(self, client, handler):
        metrics = OfflineMetrics()
        worker = make_worker(client, metrics=metrics)
        await worker.install()
        await worker.fetch(FetchRequest("/"))
        await worker.fetch(FetchRequest("/api/x"))
        handler.routes["/page.html"] = offline
        await worker.fetch(FetchRequest("/page.html", mode="navigate"))

        backend = metrics.backend
        assert backend.get_counter("worker.cache_hit") == 1
        assert backend.get_counter("worker.network") == 1
        assert backend.get_counter("worker.fallback") == 1


class TestEvents:
    """Background sync, push and messages."""

    @pytest.mark.asyncio
    async def test_background_sync_runs_handler(self, client):
        sync = AsyncMock()
        worker = make_worker(client, sync_handler=sync)
        assert await worker.sync(BACKGROUND_SYNC_TAG) is True
        sync.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_tags_ignored(self, client):
        sync = AsyncMock()
        worker = make_worker(client, sync_handler=sync)
        assert await worker.sync("periodic") is False
        sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sync_handler_error_reported(self, client):
        worker = make_worker(client, sync_handler=AsyncMock(side_effect=RuntimeError("boom")))
        assert await worker.sync(BACKGROUND_SYNC_TAG) is False

    def test_push_notification(self, client):
        worker = make_worker(client)
        note = worker.push("Audit due tomorrow")
        assert note.title == "Angkor Compliance"
        assert note.body == "Audit due tomorrow"
        assert [a["action"] for a in note.actions] == ["explore", "close"]

    def test_push_default_body(self, client):
        worker = make_worker(client)
        assert worker.push().body == "New notification from Angkor Compliance"

    def test_notification_click(self, client):
        worker = make_worker(client)
        assert worker.notification_click("explore") == "/dashboard.html"
        assert worker.notification_click("close") is None

    @pytest.mark.asyncio
    async def test_skip_waiting_message_activates_waiting_worker(self, client):
        registration = ServiceWorkerRegistration()
        await registration.register(make_worker(client, version="v1"))
        waiting = make_worker(client, version="v2", skip_waiting_on_install=False)
        await registration.register(waiting)
        assert registration.waiting is waiting

        await waiting.message({"type": "SKIP_WAITING"})

        assert registration.active is waiting
        assert registration.waiting is None

    @pytest.mark.asyncio
    async def test_update_available_message_relayed(self, client):
        registration = ServiceWorkerRegistration()
        received = []
        registration.add_client(received.append)
        worker = make_worker(client)
        await registration.register(worker)

        await worker.message({"type": "UPDATE_AVAILABLE"})
        assert received == [{"type": "UPDATE_AVAILABLE"}]

    @pytest.mark.asyncio
    async def test_non_dict_message_ignored(self, client):
        worker = make_worker(client)
        await worker.message("ping")
        assert worker.skip_waiting_requested is False

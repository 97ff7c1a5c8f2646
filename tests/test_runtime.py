"""Tests for angkor_offline.runtime module."""

import json

import httpx
import pytest

from angkor_offline.config import OfflineConfig
from angkor_offline.events import DiagnosticEvent, IndicatorEvent, UpdateAvailableEvent
from angkor_offline.remote import HttpRemoteDataService
from angkor_offline.runtime import OfflineRuntime
from angkor_offline.storage import JsonFileStore, MemoryStore
from angkor_offline.worker import ServiceWorker

ORIGIN = "http://app.test"


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    """Keep the runtime from reconfiguring the root logger under pytest."""
    monkeypatch.setattr("angkor_offline.runtime.setup_logging", lambda config: None)


@pytest.fixture
def config():
    return OfflineConfig(
        app_name="angkor",
        cache_version="v2",
        origin=ORIGIN,
        static_files=["/", "/offline.html"],
        install_backoff=0.0,
    )


@pytest.fixture
def runtime(config, store, client, clock):
    return OfflineRuntime(config, store=store, client=client, clock=clock)


class TestStartup:
    """start() registers the worker and pre-caches the shell."""

    @pytest.mark.asyncio
    async def test_start_activates_worker(self, runtime):
        await runtime.start()

        assert runtime.is_started
        assert runtime.registration.active is runtime.registration.controller
        health = runtime.get_health()
        assert health.worker_state == "activated"
        assert health.static_cached == 2
        assert health.online is True
        await runtime.stop()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, runtime, handler):
        await runtime.start()
        calls = len(handler.requests)
        await runtime.start()
        assert len(handler.requests) == calls
        await runtime.stop()

    @pytest.mark.asyncio
    async def test_start_offline_shows_banner(self, config, store, client, clock):
        runtime = OfflineRuntime(config, store=store, client=client, clock=clock, online=False)
        shown = []
        runtime.add_handler(IndicatorEvent, shown.append)
        await runtime.start()
        assert any(e.visible and e.message == "You're offline" for e in shown)
        await runtime.stop()

    def test_health_before_start(self, runtime):
        health = runtime.get_health()
        assert health.worker_state == "none"
        assert health.uptime_seconds == 0.0


class TestFetchThroughWorker:
    """Requests pass through the controlling worker."""

    @pytest.mark.asyncio
    async def test_no_worker_returns_none(self, runtime):
        assert await runtime.fetch("/") is None

    @pytest.mark.asyncio
    async def test_offline_navigation_serves_offline_page(self, runtime, handler):
        await runtime.start()

        def down(request):
            raise httpx.ConnectError("offline", request=request)

        handler.routes["/pages/hr/hr-dashboard.html"] = down
        response = await runtime.fetch("/pages/hr/hr-dashboard.html", mode="navigate")
        assert response.text == "/offline.html"
        await runtime.stop()


class TestOfflineRoundTrip:
    """Offline edits reach the server after reconnecting."""

    @pytest.mark.asyncio
    async def test_queue_flushed_when_back_online(self, runtime, handler, store):
        await runtime.start()
        await runtime.monitor.dispatch("offline")
        for n in range(3):
            runtime.sync_queue.add_to_sync_queue({"caseId": n})
        assert json.loads(store.get_item("syncQueue"))[2]["data"] == {"caseId": 2}

        await runtime.monitor.dispatch("online")

        assert len(runtime.sync_queue) == 0
        assert store.get_item("syncQueue") is None
        assert handler.calls("/api/sync", "POST") == 3
        assert runtime.get_health().sync_status == "synced"
        await runtime.stop()

    @pytest.mark.asyncio
    async def test_stop_persists_queue(self, config, client, clock, tmp_path):
        path = tmp_path / "storage.json"
        runtime = OfflineRuntime(config, store=JsonFileStore(path), client=client, clock=clock, online=False)
        runtime.sync_queue.add_to_sync_queue({"caseId": 1})
        await runtime.stop()

        reopened = OfflineRuntime(config, store=JsonFileStore(path), client=client, clock=clock)
        assert [i.data for i in reopened.sync_queue.items] == [{"caseId": 1}]


class TestWorkerMessages:
    """Messages from the worker to the page."""

    @pytest.mark.asyncio
    async def test_sync_complete_flush_runs(self, runtime, handler):
        runtime.sync_queue.add_to_sync_queue({"n": 1})
        runtime.registration.post_to_clients({"type": "SYNC_COMPLETE"})
        for task in list(runtime._tasks):
            await task
        assert len(runtime.sync_queue) == 0
        assert handler.calls("/api/sync", "POST") == 1

    def test_cache_updated_emits_diagnostic(self, runtime):
        events = []
        runtime.add_handler(DiagnosticEvent, events.append)
        runtime.registration.post_to_clients({"type": "CACHE_UPDATED"})
        assert events[0].message == "Cache updated"

    def test_sync_complete_without_loop_is_dropped(self, runtime):
        runtime.registration.post_to_clients({"type": "SYNC_COMPLETE"})
        assert runtime._tasks == set()


class TestUpdateFlow:
    """A waiting worker is promoted by update_app()."""

    @pytest.mark.asyncio
    async def test_update_app(self, runtime, config):
        await runtime.start()
        updates = []
        runtime.add_handler(UpdateAvailableEvent, updates.append)

        new_worker = ServiceWorker(
            runtime.client,
            runtime.caches,
            app_name=config.app_name,
            version="v3",
            origin=config.origin,
            static_files=config.static_files,
            skip_waiting_on_install=False,
            emitter=runtime,
        )
        await runtime.registration.register(new_worker)
        assert runtime.registration.waiting is new_worker
        assert updates[0].version == "v3"

        assert await runtime.update_app() is True
        assert runtime.registration.active is new_worker
        assert runtime.caches.keys() == ["angkor-static-v3"]
        assert await runtime.update_app() is False
        await runtime.stop()


class TestDiagnostics:
    """Diagnostics wiring."""

    @pytest.mark.asyncio
    async def test_run_diagnostics_returns_report(self, runtime, store):
        store.set_item("angkor_compliance_broken", "{")
        events = []
        runtime.add_handler(DiagnosticEvent, events.append)

        report = await runtime.run_diagnostics(fix=True)

        assert report["summary"]["total"] >= 1
        assert any(i["type"] == "corrupted_data" for i in report["issues"])
        assert any(f["status"] == "fixed" for f in report["fixes"])
        assert "angkor_compliance_broken" not in store
        assert events[0].source == "diagnostics"

    @pytest.mark.asyncio
    async def test_storage_cleanup_keeps_sync_queue(self, config, store, client, clock):
        config.storage_quota_bytes = 1200
        runtime = OfflineRuntime(config, store=store, client=client, clock=clock, online=False)
        for n in range(3):
            runtime.sync_queue.add_to_sync_queue({"n": n})
        store.set_item("blob", '"' + "x" * 950 + '"')

        report = await runtime.run_diagnostics(fix=True)

        assert any(i["type"] == "localStorage" for i in report["issues"])
        assert "blob" not in store
        assert len(json.loads(store.get_item("syncQueue"))) == 3

    def test_remote_attached_from_config(self, store, client, clock):
        cfg = OfflineConfig(origin=ORIGIN, remote_query_url="/api/factories")
        runtime = OfflineRuntime(cfg, store=store, client=client, clock=clock)
        assert runtime.remote.is_ready
        assert isinstance(runtime.remote.service, HttpRemoteDataService)

    @pytest.mark.asyncio
    async def test_diagnose_on_reconnect(self, config, store, client, clock):
        config.diagnose_on_reconnect = True
        runtime = OfflineRuntime(config, store=store, client=client, clock=clock, online=False)
        events = []
        runtime.add_handler(DiagnosticEvent, events.append)
        await runtime.monitor.dispatch("online")
        assert len(events) == 1
        await runtime.stop()


class TestConstruction:
    """Defaults and config loading."""

    def test_defaults_use_memory_store(self):
        runtime = OfflineRuntime()
        assert isinstance(runtime.store, MemoryStore)
        assert runtime.config.build_version == "1.0.0"

    def test_storage_path_uses_file_store(self, tmp_path):
        cfg = OfflineConfig(storage_path=str(tmp_path / "s.json"))
        runtime = OfflineRuntime(cfg)
        assert isinstance(runtime.store, JsonFileStore)

    def test_from_config(self, tmp_path):
        path = tmp_path / "angkor-offline.yaml"
        path.write_text("app:\n  build_version: '2.1.0'\nsync:\n  batch_clear: true\n", encoding="utf-8")
        runtime = OfflineRuntime.from_config(str(path))
        assert runtime.config.build_version == "2.1.0"
        assert runtime.config.sync_batch_clear is True

    @pytest.mark.asyncio
    async def test_stop_closes_owned_client(self):
        runtime = OfflineRuntime(OfflineConfig(static_files=[]))
        await runtime.stop()
        assert runtime.client.is_closed

    @pytest.mark.asyncio
    async def test_stop_leaves_injected_client_open(self, runtime, client):
        await runtime.stop()
        assert not client.is_closed

    def test_sync_wrappers(self, config, store, client, clock):
        config.static_files = []
        runtime = OfflineRuntime(config, store=store, client=client, clock=clock)
        runtime.start_sync()
        assert runtime.is_started
        runtime.stop_sync()
        assert not runtime.is_started

"""
FastAPI web server exposing the offline runtime over REST + WebSocket.

Provides:
- REST endpoints for health, diagnostics, the sync queue and connectivity
- WebSocket endpoint streaming runtime events
- A catch-all GET route answered through the service worker
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Set

from .. import __version__
from ..events import OfflineEvent
from ..runtime import OfflineRuntime
from ..worker import OfflineFetchError
from .protocol import event_to_dict, health_to_dict, queue_item_to_dict, sync_result_to_dict

logger = logging.getLogger(__name__)

CONNECTIVITY_EVENTS = ("online", "offline", "visibilitychange", "beforeunload", "retry")

# Hop-by-hop and length headers are recomputed by the server
_DROPPED_HEADERS = {"content-length", "content-encoding", "transfer-encoding", "connection"}


def create_app(
    config_path: Optional[str] = None,
    runtime: Optional[OfflineRuntime] = None,
    cors_origins: Optional[List[str]] = None,
) -> Any:
    """Create a FastAPI application around an OfflineRuntime.

    Args:
        config_path: Path to YAML config file (ignored when runtime is given)
        runtime: Pre-built runtime, mainly for tests
        cors_origins: Allowed CORS origins (default: localhost dev servers)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse, Response
    except ImportError:
        raise ImportError(
            "FastAPI is required for the web API. "
            "Install with: pip install angkor-offline[web]"
        )

    if runtime is None:
        runtime = OfflineRuntime.from_config(config_path) if config_path else OfflineRuntime()

    subscribers: Set[asyncio.Queue] = set()

    def _forward(event: OfflineEvent) -> None:
        message = event_to_dict(event)
        if message is None:
            return
        for queue in list(subscribers):
            queue.put_nowait(message)

    runtime.on_any(_forward)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Angkor Offline web server...")
        await runtime.start()
        yield
        logger.info("Shutting down Angkor Offline web server...")
        await runtime.stop()

    app = FastAPI(
        title="Angkor Offline",
        description="Offline support and cache synchronization API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    origins = cors_origins or [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === REST Endpoints ===

    @app.get("/api/offline/health")
    async def get_health() -> JSONResponse:
        return JSONResponse(health_to_dict(runtime.get_health()))

    @app.get("/api/offline/version")
    async def get_version() -> JSONResponse:
        return JSONResponse({
            "version": __version__,
            "build_version": runtime.config.build_version,
            "cache_version": runtime.config.cache_version,
        })

    @app.get("/api/offline/diagnostics")
    async def get_diagnostics() -> JSONResponse:
        """Run diagnostics without fixing anything."""
        return JSONResponse(await runtime.run_diagnostics(fix=False))

    @app.post("/api/offline/diagnostics/fix")
    async def post_diagnostics_fix() -> JSONResponse:
        """Run diagnostics and apply every fix."""
        return JSONResponse(await runtime.run_diagnostics(fix=True))

    @app.get("/api/offline/cache")
    async def get_cache_status() -> JSONResponse:
        return JSONResponse(runtime.cache.status())

    @app.delete("/api/offline/cache")
    async def delete_cache() -> JSONResponse:
        removed = runtime.cache.clear_all_cache()
        return JSONResponse({"removed": removed})

    @app.get("/api/offline/sync")
    async def get_sync_queue() -> JSONResponse:
        return JSONResponse({
            "status": runtime.sync_queue.status.value,
            "pending": len(runtime.sync_queue),
            "items": [queue_item_to_dict(item) for item in runtime.sync_queue.items],
        })

    @app.post("/api/offline/sync")
    async def post_sync_item(request: Request) -> JSONResponse:
        """Queue a mutation. Honors an Idempotency-Key request header."""
        try:
            body: Dict[str, Any] = await request.json()
        except ValueError:
            return JSONResponse({"error": "Body must be JSON"}, status_code=400)
        item = runtime.sync_queue.add_to_sync_queue(
            body, idempotency_key=request.headers.get("idempotency-key"),
        )
        return JSONResponse(queue_item_to_dict(item), status_code=201)

    @app.post("/api/offline/sync/flush")
    async def post_sync_flush() -> JSONResponse:
        result = await runtime.sync_queue.sync_pending_data()
        return JSONResponse(sync_result_to_dict(result))

    @app.post("/api/offline/connectivity/{event}")
    async def post_connectivity(event: str, visible: bool = True) -> JSONResponse:
        if event not in CONNECTIVITY_EVENTS:
            return JSONResponse({"error": f"Unknown event: {event}"}, status_code=400)
        await runtime.monitor.dispatch(event, visible=visible)
        return JSONResponse({"online": runtime.monitor.is_online})

    @app.post("/api/offline/update")
    async def post_update() -> JSONResponse:
        return JSONResponse({"updated": await runtime.update_app()})

    @app.get("/api/offline/metrics")
    async def get_metrics() -> JSONResponse:
        return JSONResponse(runtime.metrics.get_all())

    # === WebSocket ===

    @app.websocket("/api/offline/ws")
    async def websocket_endpoint(ws: WebSocket) -> None:
        await ws.accept()
        queue: asyncio.Queue = asyncio.Queue()
        subscribers.add(queue)
        sender: Optional[asyncio.Task] = None

        async def pump() -> None:
            while True:
                await ws.send_json(await queue.get())

        try:
            await ws.send_json({"type": "connected", "data": health_to_dict(runtime.get_health())})
            sender = asyncio.create_task(pump())
            while True:
                message = await ws.receive_json()
                if isinstance(message, dict) and message.get("type") == "ping":
                    await ws.send_json({"type": "pong"})
        except WebSocketDisconnect:
            logger.debug("WebSocket client disconnected")
        finally:
            if sender is not None:
                sender.cancel()
            subscribers.discard(queue)

    # === Service worker proxy ===

    @app.get("/{path:path}")
    async def proxy(path: str, request: Request) -> Response:
        accept = request.headers.get("accept", "")
        mode = "navigate" if "text/html" in accept else "cors"
        target = "/" + path
        if request.url.query:
            target += "?" + request.url.query
        try:
            response = await runtime.fetch(target, mode=mode)
        except OfflineFetchError as e:
            return JSONResponse({"error": str(e)}, status_code=504)
        if response is None:
            return JSONResponse({"error": "Service worker not active"}, status_code=503)
        headers = {k: v for k, v in response.headers.items() if k.lower() not in _DROPPED_HEADERS}
        return Response(content=response.content, status_code=response.status_code, headers=headers)

    return app

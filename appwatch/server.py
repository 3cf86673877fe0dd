"""appwatch — dashboard server.

Exposes:
  /api/...     — REST API (see :mod:`appwatch.api`)
  WS  /ws      — live event stream (see :mod:`appwatch.events`)
  GET /health  — liveness check

Start with::

    python -m appwatch serve
    # or
    uvicorn appwatch.server:create_app --factory --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from appwatch import __version__
from appwatch.api import router
from appwatch.config import ConfigStore, Settings
from appwatch.db import connect, init_db
from appwatch.events import EventBroadcaster
from appwatch.identify import get_identifier
from appwatch.orchestrator import DiscoveryOrchestrator
from appwatch.store import AppStore

logger = logging.getLogger(__name__)


@dataclass
class MonitorContext:
    """Everything a request handler needs, built once per process.

    ``settings`` is the environment snapshot; the orchestrator holds the
    effective settings after persisted overrides are applied.
    """

    settings: Settings
    conn: sqlite3.Connection
    store: AppStore
    config_store: ConfigStore
    broadcaster: EventBroadcaster
    orchestrator: DiscoveryOrchestrator


def build_context(
    settings: Settings | None = None,
    apply_overrides: bool = True,
) -> MonitorContext:
    """Open the database and wire up the default collaborators.

    Args:
        settings:        Environment snapshot (default: :meth:`Settings.from_env`).
        apply_overrides: Layer persisted overrides (the target host) on top of
                         *settings*.  Pass ``False`` when the caller set the
                         host explicitly, e.g. from a command-line flag.
    """
    settings = settings or Settings.from_env()
    conn = connect(settings.db_path)
    init_db(conn)
    config_store = ConfigStore(conn)
    store = AppStore(conn)
    broadcaster = EventBroadcaster()
    orchestrator = DiscoveryOrchestrator(
        store,
        broadcaster,
        settings=config_store.apply(settings) if apply_overrides else settings,
        identifier=get_identifier(settings),
    )
    return MonitorContext(
        settings=settings,
        conn=conn,
        store=store,
        config_store=config_store,
        broadcaster=broadcaster,
        orchestrator=orchestrator,
    )


async def _initial_scan(orchestrator: DiscoveryOrchestrator) -> None:
    logger.info("Running initial quick scan...")
    try:
        found = await orchestrator.run_scan("quick")
        logger.info("Initial scan found %d applications", found)
    except Exception as exc:
        logger.error("Initial scan error: %s", exc)


async def events_ws(websocket: WebSocket) -> None:
    """Register the socket as an event observer until it disconnects."""
    broadcaster = websocket.app.state.context.broadcaster
    await websocket.accept()
    broadcaster.connect(websocket)
    try:
        while True:
            # Inbound messages are ignored; receiving detects the disconnect.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)


def create_app(context: MonitorContext | None = None) -> FastAPI:
    """Build the FastAPI application around *context* (default: from env)."""
    ctx = context or build_context()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        tasks: list[asyncio.Task] = []
        if ctx.settings.initial_scan:
            tasks.append(asyncio.create_task(_initial_scan(ctx.orchestrator)))
        await ctx.orchestrator.start()
        logger.info("appwatch ready")
        try:
            yield
        finally:
            logger.info("Shutting down...")
            for task in tasks:
                task.cancel()
            await ctx.orchestrator.close()
            ctx.conn.close()

    app = FastAPI(title="appwatch", version=__version__, lifespan=lifespan)
    app.state.context = ctx
    app.include_router(router)
    app.add_api_websocket_route("/ws", events_ws)

    @app.get("/health")
    async def health():
        return {"status": "ok", "observers": ctx.broadcaster.observer_count}

    return app


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main(settings: Settings | None = None, apply_overrides: bool = True) -> None:
    import uvicorn

    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=os.environ.get("APPWATCH_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("Starting appwatch dashboard on %s:%d", settings.host, settings.port)
    uvicorn.run(
        create_app(build_context(settings, apply_overrides)),
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()

"""Discovery orchestrator.

Ties the port probe, identification, store, health monitor and event
broadcaster together.  This is the main entry point the request layer and
server startup use.

Per discovered server, strictly one after another:

  probe → page content → identify (or fallback) → store.add_app
        → health check → store.record_scan → app_discovered

A failure while processing one server is logged and the scan moves on to
the next; only a failure of the probe itself aborts the scan.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from appwatch import events
from appwatch.config import Settings
from appwatch.events import EventBroadcaster
from appwatch.health import HealthMonitor, HealthResult
from appwatch.identify import Identification, Identifier, fallback_identify
from appwatch.probe import DiscoveredServer, PageContent, PageFetcher, PortProbe
from appwatch.screenshots import DisabledScreenshotProvider, ScreenshotProvider
from appwatch.store import OFFLINE, ONLINE, UNKNOWN, AppStore, PersistenceFailure
from appwatch.urls import canonical_url, url_port

logger = logging.getLogger(__name__)

SCAN_MODES = ("quick", "full")


class DiscoveryOrchestrator:
    """Runs scans, health sweeps and screenshot sweeps against the store.

    Collaborators are injected; anything omitted is built from *settings*.
    """

    def __init__(
        self,
        store: AppStore,
        broadcaster: EventBroadcaster,
        settings: Settings | None = None,
        probe: PortProbe | None = None,
        monitor: HealthMonitor | None = None,
        identifier: Identifier | None = None,
        fetcher: PageFetcher | None = None,
        screenshots: ScreenshotProvider | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.broadcaster = broadcaster
        self.probe = probe or PortProbe(self.settings)
        self.monitor = monitor or HealthMonitor(self.settings)
        self.identifier = identifier
        self.fetcher = fetcher or PageFetcher()
        self.screenshots = screenshots or DisabledScreenshotProvider()
        self._running = False
        self._task: asyncio.Task | None = None
        self._last_periodic: str | None = None

    # ── Configuration ──────────────────────────────────────────────

    def set_target_host(self, host: str) -> None:
        """Point subsequent scans at *host*."""
        self.settings = self.settings.with_target_host(host)
        self.probe.host = host
        logger.info("Probe target host set to %s", host)

    # ── Scans ──────────────────────────────────────────────────────

    async def run_scan(self, mode: str = "quick") -> int:
        """Run a quick or full scan and process every discovered server.

        Returns:
            Number of servers the probe discovered.

        Raises:
            ValueError: for an unknown *mode*.
            Exception:  whatever the probe raised (after ``scan_error``).
        """
        if mode not in SCAN_MODES:
            raise ValueError(f"Unknown scan mode {mode!r}; expected one of {SCAN_MODES}")

        logger.info("Starting %s scan", mode)
        await self.broadcaster.emit(events.scan_start(mode))
        try:
            if mode == "quick":
                servers = await self.probe.quick_scan()
            else:
                servers = await self.probe.scan()
        except Exception as exc:
            logger.exception("%s scan failed", mode.capitalize())
            await self.broadcaster.emit(events.scan_error(str(exc) or type(exc).__name__))
            raise

        for index, server in enumerate(servers):
            if index:
                await asyncio.sleep(self.settings.pipeline_pause)
            try:
                await self.process_server(server)
            except Exception:
                logger.exception("Failed to process discovered server %s", server.url)

        await self.broadcaster.emit(events.scan_complete(mode, len(servers)))
        logger.info("%s scan found %d application(s)", mode.capitalize(), len(servers))
        return len(servers)

    async def process_server(self, server: DiscoveredServer) -> dict[str, Any]:
        """Identify, register and health-check one discovered server."""
        content = await self.fetcher.fetch(server.url)
        identification = await self.identify(server.url, content.title or server.title, content)

        app = self.store.add_app(
            server.url, server.port, identification.name, identification.category
        )
        health = await self.monitor.check(server.url)
        self.store.record_scan(server.url, health.status, health.response_time_ms)

        app = self.store.get_app_by_url(server.url) or app
        logger.info("Discovered: %s at %s", app.get("name"), server.url)
        await self.broadcaster.emit(
            events.app_discovered({**app, "description": identification.description})
        )
        return app

    async def identify(
        self,
        url: str,
        title: str | None,
        content: PageContent | None = None,
    ) -> Identification:
        """Ask the identifier, falling back to the rule table on any failure."""
        result: Identification | None = None
        if self.identifier is not None:
            try:
                result = await asyncio.wait_for(
                    self.identifier.identify(url, title, content),
                    timeout=self.settings.identify_timeout,
                )
            except Exception as exc:
                logger.warning(
                    "Identification unavailable for %s (%s), using fallback",
                    url, str(exc) or type(exc).__name__,
                )
        if result is None:
            result = fallback_identify(url, title)
        return result

    # ── Health ─────────────────────────────────────────────────────

    async def check_all_apps(self) -> dict[str, int]:
        """Check every known app, broadcasting each result.

        ``offline`` counts every app that is not online, so ``online +
        offline`` is the number of apps checked; ``unknown`` is the subset of
        ``offline`` that hit the non-HTTP port heuristic.

        Returns: ``{online, offline, unknown}``
        """
        logger.info("Running health check")
        await self.broadcaster.emit(events.health_check_start())

        counts = {ONLINE: 0, OFFLINE: 0, UNKNOWN: 0}
        for result in await self._sweep():
            if result.status == ONLINE:
                counts[ONLINE] += 1
            else:
                counts[OFFLINE] += 1
                if result.status == UNKNOWN:
                    counts[UNKNOWN] += 1
            await self.broadcaster.emit(
                events.health_update(
                    result.url, result.status, result.response_time_ms, result.status_code
                )
            )

        await self.broadcaster.emit(events.health_check_complete(**counts))
        return counts

    async def periodic_check(self) -> int:
        """One background sweep; returns the number of apps updated."""
        results = await self._sweep()
        self._last_periodic = datetime.now(timezone.utc).isoformat()
        await self.broadcaster.emit(events.periodic_health_check(len(results)))
        return len(results)

    async def start(self) -> None:
        """Start the periodic health-check loop."""
        if self._running:
            logger.warning("Periodic health check is already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Periodic health check started (interval=%ss)", self.settings.scan_interval)

    async def stop(self) -> None:
        """Stop the periodic health-check loop."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Periodic health check stopped")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_periodic_check(self) -> str | None:
        """ISO timestamp of the last completed periodic sweep, or None."""
        return self._last_periodic

    # ── Screenshots ────────────────────────────────────────────────

    async def update_screenshots(self) -> dict[str, int]:
        """Capture every online app; per-app failures don't stop the sweep.

        Returns: ``{captured, failed}``
        """
        logger.info("Updating screenshots")
        await self.broadcaster.emit(events.screenshot_update_start())

        captured = failed = 0
        for app in self.store.get_online_apps():
            error: str | None = None
            try:
                result = await self.screenshots.capture(app["url"])
                if result.success and result.image:
                    self.store.update_screenshot(app["id"], result.image, result.thumbnail)
                else:
                    error = result.error or "capture failed"
            except Exception as exc:
                logger.error("Screenshot failed for %s: %s", app["url"], exc)
                error = str(exc) or type(exc).__name__

            if error is None:
                captured += 1
                await self.broadcaster.emit(events.screenshot_updated(app["id"], True))
            else:
                failed += 1
                await self.broadcaster.emit(events.screenshot_updated(app["id"], False, error))

        await self.broadcaster.emit(events.screenshot_update_complete())
        return {"captured": captured, "failed": failed}

    # ── Registry ───────────────────────────────────────────────────

    async def add_manual(
        self,
        url: str,
        name: str | None = None,
        category: str | None = None,
    ) -> dict[str, Any]:
        """Register *url* by hand and seed its status with a health check.

        Raises:
            ValueError: if *url* is not an absolute http(s) URL.
        """
        url = canonical_url(url)
        app = self.store.add_app(url, url_port(url), name, category)
        health = await self.monitor.check(url)
        self.store.record_scan(url, health.status, health.response_time_ms)

        app = self.store.get_app_by_url(url) or app
        await self.broadcaster.emit(events.app_added(app))
        return app

    async def reidentify(self, app_id: int) -> tuple[Identification, dict[str, Any]] | None:
        """Re-run identification for *app_id*; empty fields are backfilled.

        Returns:
            ``(identification, app)`` or ``None`` if *app_id* is unknown.
        """
        app = self.store.get_app(app_id)
        if app is None:
            return None
        content = await self.fetcher.fetch(app["url"])
        identification = await self.identify(app["url"], content.title, content)
        self.store.add_app(app["url"], app["port"], identification.name, identification.category)

        updated = self.store.get_app(app_id) or app
        await self.broadcaster.emit(events.app_updated(updated))
        return identification, updated

    async def remove_app(self, app_id: int) -> bool:
        removed = self.store.remove_app(app_id)
        if removed:
            await self.broadcaster.emit(events.app_removed(app_id))
        return removed

    async def identifier_status(self) -> dict[str, Any]:
        """``{available, models}`` for the identification backend."""
        if self.identifier is None:
            return {"available": False, "models": []}
        available = await self.identifier.is_available()
        models = await self.identifier.list_models() if available else []
        return {"available": available, "models": models}

    async def close(self) -> None:
        """Stop background work and release collaborator resources."""
        await self.stop()
        await self.screenshots.aclose()
        await self.monitor.aclose()
        if self.identifier is not None:
            await self.identifier.aclose()

    # ── Internal helpers ───────────────────────────────────────────

    async def _sweep(self) -> list[HealthResult]:
        """Check all apps concurrently and record each result independently."""
        apps = self.store.get_all_apps()
        results = await self.monitor.check_all([app["url"] for app in apps])
        recorded: list[HealthResult] = []
        for result in results:
            try:
                recorded_ok = self.store.record_scan(
                    result.url, result.status, result.response_time_ms
                )
            except PersistenceFailure as exc:
                logger.error("Could not record health of %s: %s", result.url, exc)
                continue
            if not recorded_ok:
                logger.debug("Skipping %s: removed during the sweep", result.url)
                continue
            recorded.append(result)
        return recorded

    async def _loop(self) -> None:
        """Sleep, then sweep all known apps; repeat until stopped."""
        while self._running:
            await asyncio.sleep(self.settings.scan_interval)
            if not self._running:
                return
            logger.info("Running periodic health check")
            try:
                await self.periodic_check()
            except Exception as exc:
                logger.error("Periodic health check failed: %s", exc)

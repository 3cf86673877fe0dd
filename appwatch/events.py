"""Event broadcaster — fans lifecycle events out to connected observers.

Events are JSON-ready dicts tagged by ``type``:

  Scans:        scan_start, app_discovered, scan_complete, scan_error
  Health:       health_check_start, health_update, health_check_complete,
                periodic_health_check
  Screenshots:  screenshot_update_start, screenshot_updated,
                screenshot_update_complete
  Registry:     app_added, app_updated, app_removed

Delivery is best-effort: no queue, no replay, no acknowledgement.  An
observer that connects after an event fired never sees it, and an observer
whose send fails is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

SCAN_START = "scan_start"
APP_DISCOVERED = "app_discovered"
SCAN_COMPLETE = "scan_complete"
SCAN_ERROR = "scan_error"
HEALTH_CHECK_START = "health_check_start"
HEALTH_CHECK_COMPLETE = "health_check_complete"
HEALTH_UPDATE = "health_update"
PERIODIC_HEALTH_CHECK = "periodic_health_check"
SCREENSHOT_UPDATE_START = "screenshot_update_start"
SCREENSHOT_UPDATED = "screenshot_updated"
SCREENSHOT_UPDATE_COMPLETE = "screenshot_update_complete"
APP_ADDED = "app_added"
APP_UPDATED = "app_updated"
APP_REMOVED = "app_removed"

EVENT_TYPES: frozenset[str] = frozenset({
    SCAN_START, APP_DISCOVERED, SCAN_COMPLETE, SCAN_ERROR,
    HEALTH_CHECK_START, HEALTH_CHECK_COMPLETE, HEALTH_UPDATE, PERIODIC_HEALTH_CHECK,
    SCREENSHOT_UPDATE_START, SCREENSHOT_UPDATED, SCREENSHOT_UPDATE_COMPLETE,
    APP_ADDED, APP_UPDATED, APP_REMOVED,
})

_BINARY_FIELDS = ("screenshot", "thumbnail")


class Observer(Protocol):
    async def send_json(self, data: Any) -> None: ...


def app_summary(app: dict[str, Any]) -> dict[str, Any]:
    """JSON-safe view of an app row (image bytes replaced by a flag)."""
    summary = {k: v for k, v in app.items() if k not in _BINARY_FIELDS}
    summary["has_screenshot"] = bool(app.get("screenshot"))
    summary["is_online"] = app.get("status") == "online"
    return summary


# ── Event constructors ────────────────────────────────────────────

def scan_start(mode: str) -> dict[str, Any]:
    return {"type": SCAN_START, "mode": mode}


def app_discovered(app: dict[str, Any]) -> dict[str, Any]:
    return {"type": APP_DISCOVERED, "app": app_summary(app)}


def scan_complete(mode: str, found: int) -> dict[str, Any]:
    return {"type": SCAN_COMPLETE, "mode": mode, "found": found}


def scan_error(error: str) -> dict[str, Any]:
    return {"type": SCAN_ERROR, "error": error}


def health_check_start() -> dict[str, Any]:
    return {"type": HEALTH_CHECK_START}


def health_check_complete(online: int, offline: int, unknown: int = 0) -> dict[str, Any]:
    """``offline`` counts every non-online result; ``unknown`` is a subset of it."""
    return {"type": HEALTH_CHECK_COMPLETE, "online": online, "offline": offline, "unknown": unknown}


def health_update(
    url: str,
    status: str,
    response_time: int,
    status_code: int | None = None,
) -> dict[str, Any]:
    return {
        "type": HEALTH_UPDATE,
        "url": url,
        "status": status,
        "responseTime": response_time,
        "statusCode": status_code,
    }


def periodic_health_check(updated: int) -> dict[str, Any]:
    return {"type": PERIODIC_HEALTH_CHECK, "updated": updated}


def screenshot_update_start() -> dict[str, Any]:
    return {"type": SCREENSHOT_UPDATE_START}


def screenshot_updated(app_id: int, success: bool, error: str | None = None) -> dict[str, Any]:
    event: dict[str, Any] = {"type": SCREENSHOT_UPDATED, "appId": app_id, "success": success}
    if error is not None:
        event["error"] = error
    return event


def screenshot_update_complete() -> dict[str, Any]:
    return {"type": SCREENSHOT_UPDATE_COMPLETE}


def app_added(app: dict[str, Any]) -> dict[str, Any]:
    return {"type": APP_ADDED, "app": app_summary(app)}


def app_updated(app: dict[str, Any]) -> dict[str, Any]:
    return {"type": APP_UPDATED, "app": app_summary(app)}


def app_removed(app_id: int) -> dict[str, Any]:
    return {"type": APP_REMOVED, "id": app_id}


# ── Broadcaster ───────────────────────────────────────────────────

class EventBroadcaster:
    """Tracks connected observers and pushes events to all of them."""

    def __init__(self) -> None:
        self._observers: set[Observer] = set()

    def connect(self, observer: Observer) -> None:
        self._observers.add(observer)
        logger.info("Observer connected (%d total)", len(self._observers))

    def disconnect(self, observer: Observer) -> None:
        self._observers.discard(observer)
        logger.info("Observer disconnected (%d total)", len(self._observers))

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def emit(self, event: dict[str, Any]) -> int:
        """Send *event* to every connected observer.

        Returns:
            Number of observers the event was delivered to.
        """
        event_type = event.get("type")
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type!r}")

        observers = list(self._observers)
        if not observers:
            return 0
        results = await asyncio.gather(*(self._send(o, event) for o in observers))
        return sum(results)

    async def _send(self, observer: Observer, event: dict[str, Any]) -> bool:
        try:
            await observer.send_json(event)
            return True
        except Exception as exc:
            logger.debug("Dropping observer after failed send: %s", exc)
            self._observers.discard(observer)
            return False

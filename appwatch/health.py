"""Health monitor — classifies the current reachability of a known app.

Classification policy:

  * any HTTP response, 1xx through 5xx          → ``online``
  * connection refused / timeout                → ``offline``
  * other transport error on a non-HTTP port    → ``unknown``
  * any other transport error                   → ``offline``

A 5xx answer still means something is listening and speaking HTTP, so it
counts as ``online``.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from appwatch import __version__
from appwatch.config import Settings
from appwatch.probe.html import extract_metadata, extract_title
from appwatch.store import OFFLINE, ONLINE, UNKNOWN
from appwatch.urls import url_port

logger = logging.getLogger(__name__)

USER_AGENT = f"appwatch/{__version__}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class HealthResult:
    url: str
    status: str
    status_code: int | None = None
    response_time_ms: int = 0
    title: str | None = None
    redirect_url: str | None = None
    metadata: dict[str, str | None] | None = None
    checked_at: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _is_connection_refused(exc: BaseException) -> bool:
    # Walk causes, contexts and exception-group members (anyio wraps
    # per-address connect failures in a group).
    seen: set[int] = set()
    pending: list[BaseException] = [exc]
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, ConnectionRefusedError):
            return True
        if isinstance(current, OSError) and current.errno == errno.ECONNREFUSED:
            return True
        if "refused" in str(current).lower():
            return True
        pending.extend(getattr(current, "exceptions", ()))
        for linked in (current.__cause__, current.__context__):
            if linked is not None:
                pending.append(linked)
    return False


class HealthMonitor:
    """HTTP reachability checker for registered app URLs.

    Args:
        settings: Supplies the request timeout and the non-HTTP port list.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self.non_http_ports = self.settings.non_http_ports
        self.timeout = self.settings.timeout_ms / 1000.0
        self._client = httpx.AsyncClient(
            verify=False,
            follow_redirects=True,
            max_redirects=5,
            timeout=self.timeout,
            trust_env=False,
            headers={"User-Agent": USER_AGENT},
        )

    async def check(self, url: str) -> HealthResult:
        """Probe *url* once and classify it.  Never raises for network errors."""
        started = time.monotonic()
        try:
            # httpx timeouts bound each read, not the whole exchange.
            resp = await asyncio.wait_for(self._client.get(url), timeout=self.timeout)
        except httpx.TooManyRedirects:
            return HealthResult(url=url, status=ONLINE, response_time_ms=self._elapsed(started))
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.debug("Health check timed out: %s", url)
            return HealthResult(url=url, status=OFFLINE, response_time_ms=self._elapsed(started))
        except httpx.HTTPError as exc:
            status = self._classify_error(url, exc)
            return HealthResult(url=url, status=status, response_time_ms=self._elapsed(started))

        result = HealthResult(
            url=url,
            status=ONLINE,
            status_code=resp.status_code,
            response_time_ms=self._elapsed(started),
        )
        if resp.history:
            result.redirect_url = str(resp.url)
        if "text/html" in resp.headers.get("content-type", "").lower():
            body = resp.text
            result.title = extract_title(body)
            result.metadata = extract_metadata(body)
        return result

    async def check_all(self, urls: list[str]) -> list[HealthResult]:
        """Check every URL concurrently; results keep the input order."""
        return list(await asyncio.gather(*(self.check(url) for url in urls)))

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Internal helpers                                                     #
    # ------------------------------------------------------------------ #

    def _classify_error(self, url: str, exc: httpx.HTTPError) -> str:
        if _is_connection_refused(exc):
            logger.debug("Connection refused: %s", url)
            return OFFLINE
        port = url_port(url)
        if port is not None and port in self.non_http_ports:
            logger.info("Ambiguous service on non-HTTP port %d (%s): %s", port, url, exc)
            return UNKNOWN
        logger.debug("Health check failed for %s: %s", url, exc)
        return OFFLINE

    @staticmethod
    def _elapsed(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

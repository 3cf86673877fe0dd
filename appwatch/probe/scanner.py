"""Port probe for appwatch.

Sweeps a port range (or a curated list of common dev/admin ports) on the
target host:

  1. TCP connect to every port of a batch concurrently (open/closed/timeout)
  2. HTTP GET, then HTTPS GET, against each open port
  3. Ports that answer either protocol are reported; the rest are dropped

Each call is a stateless sweep — nothing is cached between scans and
nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from appwatch.config import Settings
from appwatch.probe.html import extract_title
from appwatch.urls import url_host

logger = logging.getLogger(__name__)

OPEN = "open"
CLOSED = "closed"
TIMEOUT = "timeout"

PROTOCOLS: tuple[str, ...] = ("http", "https")

QUICK_SCAN_PORTS: list[int] = [
    80, 443, 8080, 3000, 5000, 8000, 8443, 8888, 9000, 9200,
    10000, 1024, 1025, 1026, 1027, 1028, 1029, 1030, 1031, 1032,
    1080, 3001, 4000, 5001, 5500, 5601, 6000, 6379, 7001, 8001,
    8002, 8003, 8004, 8005, 8006, 8007, 8008, 8009, 8010, 8020,
    8030, 8040, 8050, 8060, 8070, 8081, 8082, 8083, 8084, 8085,
    8086, 8087, 8089, 8090, 8091, 8100, 8200, 8300, 8400, 8500,
    8600, 8700, 8800, 9001, 9002, 9003, 9004, 9005, 9006, 9007,
    9008, 9009, 9010, 9020, 9030, 9040, 9050, 9060, 9100, 9201,
    9300, 9400, 9500, 9600, 9700, 9800, 9900, 10001, 10002, 10003,
    11000, 12000, 13000, 14000, 15000, 16000, 17000, 18000,
]


@dataclass
class DiscoveredServer:
    port: int
    protocol: str
    url: str
    status_code: int
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _validate_port(port: int) -> None:
    if not 1 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")


class PortProbe:
    """Batch TCP + HTTP(S) probe against a single host.

    Args:
        settings: Scan defaults (range, concurrency, timeout, target host).
        host:     Override ``settings.target_host`` for this probe.
    """

    def __init__(self, settings: Settings | None = None, host: str | None = None) -> None:
        self.settings = settings or Settings()
        self.host = host or self.settings.target_host

    # ------------------------------------------------------------------ #
    # Public API                                                           #
    # ------------------------------------------------------------------ #

    async def scan(
        self,
        start_port: int | None = None,
        end_port: int | None = None,
        concurrency: int | None = None,
        timeout_ms: int | None = None,
    ) -> list[DiscoveredServer]:
        """Probe every port in ``[start_port, end_port]``.

        Args:
            start_port:  First port (default ``settings.port_range_start``).
            end_port:    Last port, inclusive (default ``settings.port_range_end``).
            concurrency: Batch size (default ``settings.concurrency``).
            timeout_ms:  Per-connect / per-request timeout.

        Returns:
            One :class:`DiscoveredServer` per port answering HTTP(S), in port order.
        """
        start = self.settings.port_range_start if start_port is None else start_port
        end = self.settings.port_range_end if end_port is None else end_port
        _validate_port(start)
        _validate_port(end)
        if start > end:
            raise ValueError(f"Invalid port range {start}-{end}")

        logger.info("Starting scan of %s ports %d-%d", self.host, start, end)
        return await self.scan_ports(range(start, end + 1), concurrency, timeout_ms)

    async def quick_scan(
        self,
        concurrency: int | None = None,
        timeout_ms: int | None = None,
    ) -> list[DiscoveredServer]:
        """Probe :data:`QUICK_SCAN_PORTS` only."""
        logger.info("Quick scan of %d common ports on %s", len(QUICK_SCAN_PORTS), self.host)
        return await self.scan_ports(QUICK_SCAN_PORTS, concurrency, timeout_ms)

    async def scan_ports(
        self,
        ports: Any,
        concurrency: int | None = None,
        timeout_ms: int | None = None,
    ) -> list[DiscoveredServer]:
        """Probe an explicit iterable of *ports* in batches of *concurrency*."""
        ports = list(ports)
        for port in ports:
            _validate_port(port)
        size = self.settings.concurrency if concurrency is None else concurrency
        if size < 1:
            raise ValueError(f"Concurrency must be >= 1, got {size}")
        timeout = (self.settings.timeout_ms if timeout_ms is None else timeout_ms) / 1000.0

        started = time.monotonic()
        discovered: list[DiscoveredServer] = []
        async with self._client(timeout) as client:
            for offset in range(0, len(ports), size):
                batch = ports[offset:offset + size]
                discovered.extend(await self._scan_batch(client, batch, timeout))
                logger.debug(
                    "Scan progress: %d/%d ports", min(offset + size, len(ports)), len(ports)
                )

        logger.info(
            "Scan complete — %d web server(s) in %d ms",
            len(discovered),
            int((time.monotonic() - started) * 1000),
        )
        return discovered

    async def check_port(self, port: int, timeout: float) -> tuple[int, str]:
        """Bare TCP connect to *port*; returns ``(port, open|closed|timeout)``."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, port),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return port, TIMEOUT
        except OSError:
            return port, CLOSED

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return port, OPEN

    async def check_http(
        self,
        client: httpx.AsyncClient,
        port: int,
        timeout: float | None = None,
    ) -> DiscoveredServer | None:
        """Try HTTP then HTTPS on an open *port*.

        Any status code counts as an HTTP server.  ``None`` means neither
        protocol produced a response within *timeout* (non-HTTP service).
        """
        deadline = self.settings.timeout_ms / 1000.0 if timeout is None else timeout
        for protocol in PROTOCOLS:
            url = f"{protocol}://{url_host(self.host)}:{port}"
            try:
                # httpx timeouts bound each read, not the whole exchange.
                resp = await asyncio.wait_for(self._request(client, url), timeout=deadline)
            except asyncio.TimeoutError:
                logger.debug("%s probe exceeded %.1fs for %s", protocol.upper(), deadline, url)
                continue
            except httpx.HTTPError as exc:
                logger.debug("%s probe failed for %s: %s", protocol.upper(), url, exc)
                continue
            return DiscoveredServer(
                port=port,
                protocol=protocol,
                url=url,
                status_code=resp.status_code,
                title=extract_title(resp.text),
            )
        return None

    # ------------------------------------------------------------------ #
    # Internal helpers                                                     #
    # ------------------------------------------------------------------ #

    async def _scan_batch(
        self,
        client: httpx.AsyncClient,
        batch: list[int],
        timeout: float,
    ) -> list[DiscoveredServer]:
        results = await asyncio.gather(*(self.check_port(port, timeout) for port in batch))
        open_ports = [port for port, state in results if state == OPEN]
        if not open_ports:
            return []

        servers = await asyncio.gather(
            *(self.check_http(client, port, timeout) for port in open_ports),
            return_exceptions=True,
        )
        discovered = []
        for port, server in zip(open_ports, servers):
            if isinstance(server, Exception):
                logger.warning("HTTP probe of port %d failed: %s", port, server)
            elif isinstance(server, BaseException):
                raise server
            elif server is not None:
                discovered.append(server)
        return discovered

    async def _request(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        return await client.get(url)

    @staticmethod
    def _client(timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            verify=False,  # local services often use self-signed certs
            follow_redirects=True,
            max_redirects=5,
            timeout=timeout,
            trust_env=False,
        )

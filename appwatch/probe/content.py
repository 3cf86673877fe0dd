"""Page content fetcher — the signal handed to identification."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any

import httpx

from appwatch.probe.html import extract_headings, extract_text, extract_title

logger = logging.getLogger(__name__)


@dataclass
class PageContent:
    url: str
    title: str | None = None
    headings: list[str] = field(default_factory=list)
    body_text: str = ""
    has_login_form: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PageFetcher:
    """Fetch a page over HTTP and reduce it to title, headings and text."""

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    async def fetch(self, url: str) -> PageContent:
        """Never raises; transport failures come back in ``error``."""
        try:
            async with httpx.AsyncClient(
                verify=False,
                follow_redirects=True,
                timeout=self.timeout,
                trust_env=False,
            ) as client:
                # httpx timeouts bound each read, not the whole exchange.
                resp = await asyncio.wait_for(client.get(url), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Timed out getting content from %s after %.1fs", url, self.timeout)
            return PageContent(url=url, error=f"timed out after {self.timeout:g}s")
        except httpx.HTTPError as exc:
            logger.warning("Failed to get content from %s: %s", url, exc)
            return PageContent(url=url, error=str(exc) or type(exc).__name__)

        body = resp.text
        return PageContent(
            url=url,
            title=extract_title(body),
            headings=extract_headings(body),
            body_text=extract_text(body),
            has_login_form='type="password"' in body.lower(),
        )

"""appwatch.probe — port sweeping and page signal extraction.

Exports:
    DiscoveredServer — dataclass for a port that answered HTTP(S)
    PortProbe        — async batch TCP + HTTP(S) scanner
    PageContent      — title/headings/text of a fetched page
    PageFetcher      — HTTP page content fetcher
"""

from __future__ import annotations

from appwatch.probe.content import PageContent, PageFetcher
from appwatch.probe.scanner import QUICK_SCAN_PORTS, DiscoveredServer, PortProbe

__all__ = [
    "DiscoveredServer",
    "PortProbe",
    "PageContent",
    "PageFetcher",
    "QUICK_SCAN_PORTS",
]

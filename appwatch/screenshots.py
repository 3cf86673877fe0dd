"""Screenshot capture interface.

Image capture itself (a headless browser and an image pipeline) lives
outside appwatch; deployments plug an implementation in through
:class:`ScreenshotProvider`.  :class:`DisabledScreenshotProvider` is the
default and reports every capture as failed.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass


@dataclass
class CaptureResult:
    success: bool
    image: bytes | None = None
    thumbnail: bytes | None = None
    error: str | None = None


class ScreenshotProvider(abc.ABC):
    """Captures a rendered image of a web page."""

    @abc.abstractmethod
    async def capture(self, url: str) -> CaptureResult:
        """Capture *url*.  Failures are returned, not raised."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release browser or other held resources."""
        return None


class DisabledScreenshotProvider(ScreenshotProvider):
    async def capture(self, url: str) -> CaptureResult:
        return CaptureResult(success=False, error="Screenshot capture is not configured")

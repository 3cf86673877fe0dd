"""Abstract identification interface for appwatch.

Any naming backend (Ollama, a hosted LLM, a static catalogue…) implements
this interface.  Callers must treat every backend as unreliable.
"""

from __future__ import annotations

import abc
from dataclasses import asdict, dataclass
from typing import Any

from appwatch.probe.content import PageContent


@dataclass
class Identification:
    name: str
    category: str
    description: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class Identifier(abc.ABC):
    """Assigns a human-readable name and category to a discovered app."""

    @abc.abstractmethod
    async def identify(
        self,
        url: str,
        title: str | None,
        content: PageContent | None = None,
    ) -> Identification | None:
        """Identify the app at *url*.

        Returns ``None`` when the backend answered but the answer could not
        be used.  Transport failures may raise.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def is_available(self) -> bool:
        """Check if the backend is reachable. Returns True when healthy."""
        raise NotImplementedError

    async def list_models(self) -> list[dict[str, Any]]:
        """Models the backend can use (empty when not applicable)."""
        return []

    async def aclose(self) -> None:
        return None

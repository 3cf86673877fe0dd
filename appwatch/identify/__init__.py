"""Identifier factory for appwatch.

Usage::

    from appwatch.identify import get_identifier, fallback_identify
    identifier = get_identifier(settings)
    result = await identifier.identify(url, title, content) or fallback_identify(url, title)
"""

from __future__ import annotations

from appwatch.config import Settings

from .base import Identification, Identifier
from .fallback import FALLBACK_RULES, fallback_identify
from .ollama import OllamaIdentifier

__all__ = [
    "Identification",
    "Identifier",
    "OllamaIdentifier",
    "FALLBACK_RULES",
    "fallback_identify",
    "get_identifier",
]


def get_identifier(settings: Settings | None = None) -> Identifier:
    """Return the configured identification backend."""
    settings = settings or Settings()
    return OllamaIdentifier(
        base_url=settings.ollama_url,
        model=settings.ollama_model,
        timeout=settings.identify_timeout,
    )

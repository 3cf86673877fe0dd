"""Ollama-backed app identification."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from appwatch.identify.base import Identification, Identifier
from appwatch.probe.content import PageContent
from appwatch.urls import url_port

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful assistant that identifies local web applications.
Based on the page title, headings, and content, identify what application this is.
Return ONLY a JSON object with:
- name: A short, descriptive name for the application (max 50 chars)
- category: One of: Development, Database, API, CI/CD, Monitoring, IDE, Other
- description: A brief description (max 100 chars)

Examples:
- "localhost:3000" with React content -> {"name": "React Dev Server", "category": "Development", "description": "React development server"}
- "localhost:9200" with Elasticsearch content -> {"name": "Elasticsearch", "category": "Database", "description": "Elasticsearch search engine"}
- "localhost:8080" with Jenkins content -> {"name": "Jenkins", "category": "CI/CD", "description": "Jenkins CI/CD server"}"""

_JSON_BLOCK_RE = re.compile(r"\{.*\}", re.DOTALL)


def _parse_identification(raw: str, url: str) -> Identification | None:
    """Decode the model's reply, tolerating prose around the JSON object."""
    parsed: Any = None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        match = _JSON_BLOCK_RE.search(raw)
        if match:
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError:
                parsed = None
    if not isinstance(parsed, dict):
        return None

    name = str(parsed.get("name") or "").strip()
    category = str(parsed.get("category") or "").strip()
    description = str(parsed.get("description") or "").strip()
    return Identification(
        name=name[:50] or f"App on port {url_port(url)}",
        category=category or "Other",
        description=description[:100] or "Discovered application",
    )


class OllamaIdentifier(Identifier):
    """Talks to Ollama's /api/generate and /api/tags endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.2",
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    # ------------------------------------------------------------------
    # Identifier interface
    # ------------------------------------------------------------------

    async def identify(
        self,
        url: str,
        title: str | None,
        content: PageContent | None = None,
    ) -> Identification | None:
        headings = ", ".join(content.headings) if content else ""
        body_text = (content.body_text if content else "")[:500]
        prompt = (
            "Identify this local web application:\n"
            f"URL: {url}\n"
            f"Title: {title or 'No title'}\n"
            f"Headings: {headings}\n"
            f"Content preview: {body_text}\n\n"
            "What is this application? Respond with JSON only."
        )
        payload = {
            "model": self.model,
            "prompt": prompt,
            "system": SYSTEM_PROMPT,
            "stream": False,
            "format": "json",
            "options": {"temperature": 0.1, "top_p": 0.9},
        }
        resp = await self._client.post("/api/generate", json=payload)
        resp.raise_for_status()
        try:
            raw = resp.json().get("response", "")
        except (ValueError, AttributeError):
            logger.warning("Ollama returned a non-JSON body for %s", url)
            return None
        if not raw:
            return None

        result = _parse_identification(raw, url)
        if result is None:
            logger.warning("Unparsable identification for %s: %.80s", url, raw)
        return result

    async def is_available(self) -> bool:
        try:
            resp = await self._client.get("/api/tags", timeout=5.0)
            return resp.status_code == 200
        except Exception:
            return False

    async def list_models(self) -> list[dict[str, Any]]:
        try:
            resp = await self._client.get("/api/tags", timeout=5.0)
            resp.raise_for_status()
            models = resp.json().get("models", [])
        except Exception:
            return []
        return [
            {"name": m.get("name", ""), "size_bytes": m.get("size", 0)}
            for m in models
        ]

    async def aclose(self) -> None:
        await self._client.aclose()

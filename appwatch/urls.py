"""URL helpers shared by the probe, health monitor and identification."""

from __future__ import annotations

from urllib.parse import urlsplit

DEFAULT_PORTS = {"http": 80, "https": 443}


def url_port(url: str) -> int | None:
    """Explicit port of *url*, falling back to the scheme default."""
    try:
        parts = urlsplit(url)
        return parts.port or DEFAULT_PORTS.get(parts.scheme.lower())
    except ValueError:
        return None


def url_host(host: str) -> str:
    """*host* as it appears in a URL authority (IPv6 literals bracketed)."""
    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host


def canonical_url(url: str) -> str:
    """Normalise *url* to ``scheme://host:port[/path][?query]``.

    Scheme and host are lower-cased, the port is always explicit and a
    trailing slash is dropped, so ``http://LocalHost:3000/`` and
    ``http://localhost:3000`` name the same app.

    Raises:
        ValueError: if *url* is not an absolute http(s) URL.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parts.hostname:
        raise ValueError(f"Not an http(s) URL: {url!r}")
    port = parts.port or DEFAULT_PORTS[scheme]
    host = url_host(parts.hostname.lower())
    canonical = f"{scheme}://{host}:{port}{parts.path.rstrip('/')}"
    if parts.query:
        canonical += f"?{parts.query}"
    return canonical

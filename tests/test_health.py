"""Tests for HealthMonitor classification and HTML metadata extraction."""

from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from appwatch.config import Settings
from appwatch.health import HealthMonitor
from appwatch.probe.html import extract_metadata, extract_title


def _response(status: int, url: str, text: str = "", content_type: str = "text/plain") -> httpx.Response:
    return httpx.Response(
        status,
        text=text,
        headers={"content-type": content_type},
        request=httpx.Request("GET", url),
    )


@pytest.fixture
async def monitor():
    m = HealthMonitor(Settings(non_http_ports=frozenset({5432, 6379})))
    yield m
    await m.aclose()


class TestClassification:
    async def test_refused_is_offline(self, monitor):
        url = "http://127.0.0.1:3000"
        err = httpx.ConnectError("[Errno 111] Connection refused")
        with patch.object(monitor._client, "get", side_effect=err):
            result = await monitor.check(url)
        assert result.status == "offline"
        assert result.status_code is None

    async def test_refused_on_non_http_port_is_still_offline(self, monitor):
        err = httpx.ConnectError("connect failed")
        err.__cause__ = ConnectionRefusedError(111, "Connection refused")
        with patch.object(monitor._client, "get", side_effect=err):
            result = await monitor.check("http://127.0.0.1:5432")
        assert result.status == "offline"

    async def test_timeout_is_offline(self, monitor):
        with patch.object(monitor._client, "get", side_effect=httpx.ReadTimeout("timed out")):
            result = await monitor.check("http://127.0.0.1:6379")
        assert result.status == "offline"

    async def test_404_is_online(self, monitor):
        url = "http://127.0.0.1:3000"
        with patch.object(monitor._client, "get", new_callable=AsyncMock, return_value=_response(404, url)):
            result = await monitor.check(url)
        assert result.status == "online"
        assert result.status_code == 404

    async def test_500_is_online(self, monitor):
        url = "http://127.0.0.1:3000"
        with patch.object(monitor._client, "get", new_callable=AsyncMock, return_value=_response(500, url)):
            result = await monitor.check(url)
        assert result.status == "online"
        assert result.status_code == 500

    async def test_transport_error_on_non_http_port_is_unknown(self, monitor):
        err = httpx.RemoteProtocolError("illegal status line: b'-ERR wrong protocol'")
        with patch.object(monitor._client, "get", side_effect=err):
            result = await monitor.check("http://127.0.0.1:6379")
        assert result.status == "unknown"

    async def test_transport_error_elsewhere_is_offline(self, monitor):
        err = httpx.RemoteProtocolError("Server disconnected without sending a response.")
        with patch.object(monitor._client, "get", side_effect=err):
            result = await monitor.check("http://127.0.0.1:3000")
        assert result.status == "offline"

    async def test_non_http_ports_are_configurable(self):
        m = HealthMonitor(Settings(non_http_ports=frozenset({3000})))
        try:
            err = httpx.ReadError("connection reset")
            with patch.object(m._client, "get", side_effect=err):
                result = await m.check("http://127.0.0.1:3000")
        finally:
            await m.aclose()
        assert result.status == "unknown"

    async def test_real_refused_connection(self, monitor):
        import socket

        with socket.socket() as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]
        result = await monitor.check(f"http://127.0.0.1:{port}")
        assert result.status == "offline"

    async def test_trickling_response_times_out(self, trickle_server):
        m = HealthMonitor(Settings(timeout_ms=500))
        try:
            started = time.monotonic()
            result = await m.check(f"http://127.0.0.1:{trickle_server}")
            elapsed = time.monotonic() - started
        finally:
            await m.aclose()
        assert result.status == "offline"
        assert elapsed < 2.0


class TestResultDetails:
    async def test_html_title_and_metadata(self, monitor):
        url = "http://127.0.0.1:8080"
        page = (
            "<html><head><title> Jenkins </title>"
            '<meta content="Jenkins CI" name="application-name">'
            '<meta name="description" content="Build server">'
            "</head></html>"
        )
        resp = _response(200, url, page, "text/html; charset=utf-8")
        with patch.object(monitor._client, "get", new_callable=AsyncMock, return_value=resp):
            result = await monitor.check(url)
        assert result.title == "Jenkins"
        assert result.metadata["application_name"] == "Jenkins CI"
        assert result.metadata["description"] == "Build server"
        assert result.metadata["category"] is None

    async def test_non_html_skips_extraction(self, monitor):
        url = "http://127.0.0.1:9200"
        resp = _response(200, url, '{"title": "<title>x</title>"}', "application/json")
        with patch.object(monitor._client, "get", new_callable=AsyncMock, return_value=resp):
            result = await monitor.check(url)
        assert result.title is None
        assert result.metadata is None

    async def test_check_all_preserves_order(self, monitor):
        urls = ["http://127.0.0.1:1", "http://127.0.0.1:2", "http://127.0.0.1:3"]

        async def fake_get(url):
            # Later URLs answer first.
            await asyncio.sleep(0.01 * (4 - int(url.rsplit(":", 1)[1])))
            if url.endswith(":2"):
                raise httpx.ConnectError("Connection refused")
            return _response(200, url)

        with patch.object(monitor._client, "get", side_effect=fake_get):
            results = await monitor.check_all(urls)
        assert [r.url for r in results] == urls
        assert [r.status for r in results] == ["online", "offline", "online"]

    async def test_check_all_empty(self, monitor):
        assert await monitor.check_all([]) == []


class TestHtmlExtraction:
    def test_title(self):
        assert extract_title("<TITLE data-x='1'>Grafana</TITLE>") == "Grafana"
        assert extract_title("<html></html>") is None
        assert extract_title(None) is None
        assert extract_title(b"<title>bytes</title>") is None

    def test_title_unescapes_entities(self):
        assert extract_title("<title>Tom &amp; Jerry</title>") == "Tom & Jerry"

    def test_metadata_attribute_order(self):
        a = extract_metadata('<meta name="application-name" content="Portainer">')
        b = extract_metadata("<meta content='Portainer' name='application-name' />")
        assert a["application_name"] == b["application_name"] == "Portainer"

    def test_metadata_fallbacks(self):
        page = (
            '<meta property="og:site_name" content="Kibana">'
            '<meta property="og:description" content="Dashboards">'
            '<meta name="generator" content="Hugo 0.120">'
        )
        meta = extract_metadata(page)
        assert meta == {
            "application_name": "Kibana",
            "description": "Dashboards",
            "category": "Hugo 0.120",
        }

    def test_metadata_garbage(self):
        assert extract_metadata("<meta <<<") == {
            "application_name": None,
            "description": None,
            "category": None,
        }

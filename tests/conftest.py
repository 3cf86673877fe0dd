"""pytest configuration for appwatch tests."""

from __future__ import annotations

import asyncio

import pytest

from appwatch.config import Settings
from appwatch.db import connect, init_db
from appwatch.store import AppStore


class RecordingObserver:
    """Observer stand-in that keeps every event it is sent."""

    def __init__(self, fail: bool = False) -> None:
        self.events: list[dict] = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.events.append(data)

    def types(self) -> list[str]:
        return [e["type"] for e in self.events]


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path, pipeline_pause=0, timeout_ms=500, initial_scan=False)


@pytest.fixture
def db_conn(tmp_path):
    conn = connect(tmp_path / "test.db")
    init_db(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(db_conn):
    return AppStore(db_conn)


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def make_observer():
    return RecordingObserver


@pytest.fixture
async def trickle_server():
    """Local HTTP server that sends headers, then one body byte every 0.2 s."""
    stop = asyncio.Event()

    async def handler(reader, writer):
        try:
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: text/html\r\n"
                b"Transfer-Encoding: chunked\r\n\r\n"
            )
            await writer.drain()
            while not stop.is_set():
                writer.write(b"1\r\n<\r\n")
                await writer.drain()
                await asyncio.sleep(0.2)
        except (asyncio.IncompleteReadError, asyncio.LimitOverrunError, ConnectionError):
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    yield server.sockets[0].getsockname()[1]
    stop.set()
    server.close()

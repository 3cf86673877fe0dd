"""Tests for the command-line entry point."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from appwatch.__main__ import _scan, _settings_from_args, main
from appwatch.config import TARGET_HOST_KEY, ConfigStore, Settings
from appwatch.db import connect, init_db
from appwatch.probe import DiscoveredServer, PortProbe
from appwatch.server import build_context


def _args(**kw) -> argparse.Namespace:
    base = {"data_dir": None, "target_host": None}
    base.update(kw)
    return argparse.Namespace(**base)


class TestSettingsFromArgs:
    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.delenv("TARGET_HOST", raising=False)
        s = _settings_from_args(_args(
            data_dir=str(tmp_path), target_host="nas.local", start=3000, end=4000,
        ))
        assert s.data_dir == Path(tmp_path)
        assert s.target_host == "nas.local"
        assert (s.port_range_start, s.port_range_end) == (3000, 4000)

    def test_serve_flags(self):
        s = _settings_from_args(_args(port=8099, no_initial_scan=True))
        assert s.port == 8099
        assert s.initial_scan is False


class TestProbeOnlyScan:
    async def test_prints_servers(self, capsys):
        server = DiscoveredServer(port=3000, protocol="http", url="http://127.0.0.1:3000", status_code=200, title="Dev")
        with patch.object(PortProbe, "quick_scan", new_callable=AsyncMock, return_value=[server]):
            code = await _scan(Settings(), "quick", probe_only=True)
        assert code == 0
        printed = json.loads(capsys.readouterr().out)
        assert printed == [server.to_dict()]


def _persist_target_host(settings: Settings, host: str) -> None:
    conn = connect(settings.db_path)
    init_db(conn)
    ConfigStore(conn).set(TARGET_HOST_KEY, host)
    conn.close()


class TestPersistedTargetHost:
    async def test_saved_host_applies_by_default(self, tmp_path):
        settings = Settings(data_dir=tmp_path, target_host="192.168.1.50")
        _persist_target_host(settings, "10.9.9.9")
        ctx = build_context(settings)
        try:
            assert ctx.orchestrator.probe.host == "10.9.9.9"
        finally:
            await ctx.orchestrator.close()
            ctx.conn.close()

    async def test_explicit_host_wins(self, tmp_path):
        settings = Settings(data_dir=tmp_path, target_host="192.168.1.50")
        _persist_target_host(settings, "10.9.9.9")
        ctx = build_context(settings, apply_overrides=False)
        try:
            assert ctx.orchestrator.probe.host == "192.168.1.50"
            assert ctx.orchestrator.settings.target_host == "192.168.1.50"
        finally:
            await ctx.orchestrator.close()
            ctx.conn.close()

    def test_target_host_flag_disables_saved_host(self, monkeypatch, tmp_path):
        monkeypatch.setattr(sys, "argv", [
            "appwatch", "--data-dir", str(tmp_path), "--target-host", "192.168.1.50", "scan",
        ])
        with patch("appwatch.__main__._scan", new_callable=AsyncMock, return_value=0) as scan:
            with pytest.raises(SystemExit):
                main()
        settings, mode, probe_only, apply_overrides = scan.call_args.args
        assert settings.target_host == "192.168.1.50"
        assert mode == "quick"
        assert apply_overrides is False

    def test_saved_host_used_without_flag(self, monkeypatch, tmp_path):
        monkeypatch.setattr(sys, "argv", ["appwatch", "--data-dir", str(tmp_path), "scan"])
        with patch("appwatch.__main__._scan", new_callable=AsyncMock, return_value=0) as scan:
            with pytest.raises(SystemExit):
                main()
        assert scan.call_args.args[3] is True

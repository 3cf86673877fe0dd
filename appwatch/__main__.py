"""appwatch entry point.

Usage::

    python -m appwatch serve [--data-dir PATH] [--port N]
    python -m appwatch scan [--full] [--start N --end N] [--probe-only]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from appwatch.config import Settings


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = Path(args.data_dir)
    if args.target_host:
        overrides["target_host"] = args.target_host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    if getattr(args, "start", None):
        overrides["port_range_start"] = args.start
    if getattr(args, "end", None):
        overrides["port_range_end"] = args.end
    if getattr(args, "no_initial_scan", False):
        overrides["initial_scan"] = False
    return replace(settings, **overrides)


async def _scan(
    settings: Settings,
    mode: str,
    probe_only: bool,
    apply_overrides: bool = True,
) -> int:
    if probe_only:
        from appwatch.probe import PortProbe

        probe = PortProbe(settings)
        servers = await (probe.quick_scan() if mode == "quick" else probe.scan())
        print(json.dumps([s.to_dict() for s in servers], indent=2))
        return 0

    from appwatch.events import app_summary
    from appwatch.server import build_context

    ctx = build_context(settings, apply_overrides)
    try:
        await ctx.orchestrator.run_scan(mode)
        apps = [app_summary(a) for a in ctx.store.get_all_apps()]
        print(json.dumps({"apps": apps, "stats": ctx.store.get_stats()}, indent=2))
    finally:
        await ctx.orchestrator.close()
        ctx.conn.close()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="python -m appwatch",
        description="Discover and monitor local web applications",
    )
    parser.add_argument(
        "--data-dir",
        metavar="PATH",
        default=None,
        help="Override data directory (default: ./data or APPWATCH_DATA_DIR env var)",
    )
    parser.add_argument(
        "--target-host",
        metavar="HOST",
        default=None,
        help="Host to probe (default: 127.0.0.1 or TARGET_HOST env var)",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the dashboard server")
    serve.add_argument("--port", type=int, default=None, help="Dashboard port")
    serve.add_argument(
        "--no-initial-scan",
        action="store_true",
        help="Skip the quick scan on startup",
    )

    scan = sub.add_parser("scan", help="Run a single scan and print the results")
    scan.add_argument("--full", action="store_true", help="Scan the full port range")
    scan.add_argument("--start", type=int, default=None, help="First port of a full scan")
    scan.add_argument("--end", type=int, default=None, help="Last port of a full scan")
    scan.add_argument(
        "--probe-only",
        action="store_true",
        help="Only probe ports; don't identify or store anything",
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=os.environ.get("APPWATCH_LOG_LEVEL", "INFO").upper(),
        format="%(levelname)s: %(message)s",
    )
    settings = _settings_from_args(args)
    # An explicit --target-host wins over one saved from the dashboard.
    apply_overrides = not args.target_host

    if args.command == "scan":
        mode = "full" if args.full or args.start or args.end else "quick"
        try:
            sys.exit(asyncio.run(_scan(settings, mode, args.probe_only, apply_overrides)))
        except KeyboardInterrupt:
            print("\n\nScan cancelled.")
            sys.exit(1)

    from appwatch.server import main as serve_main

    serve_main(settings, apply_overrides)


if __name__ == "__main__":
    main()

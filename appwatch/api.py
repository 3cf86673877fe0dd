"""REST API router for appwatch.

Provides endpoints for listing and managing apps, triggering scans, health
checks and screenshot sweeps, querying the identification backend and
overriding the probe target host.

The router reads its collaborators from ``request.app.state.context`` (a
:class:`appwatch.server.MonitorContext`).
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from appwatch import events
from appwatch.config import TARGET_HOST_KEY
from appwatch.events import app_summary
from appwatch.store import PersistenceFailure

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["apps"])

_HOST_RE = re.compile(r"^[A-Za-z0-9.\-:\[\]]+$")


# ── Helpers ───────────────────────────────────────────────────────

def get_context(request: Request) -> Any:
    return request.app.state.context


def _present(app: dict[str, Any]) -> dict[str, Any]:
    """API view of an app row: screenshot as a data URL, thumbnail dropped."""
    data = app_summary(app)
    data["screenshot"] = (
        "data:image/png;base64," + base64.b64encode(app["screenshot"]).decode("ascii")
        if app.get("screenshot")
        else None
    )
    data["last_seen"] = app.get("last_checked_at")
    return data


def _server_error(action: str, exc: Exception) -> HTTPException:
    logger.error("%s error: %s", action, exc)
    return HTTPException(status_code=500, detail=str(exc) or type(exc).__name__)


# ══════════════════════════════════════════════════════════════════
# APPS
# ══════════════════════════════════════════════════════════════════

class AddAppRequest(BaseModel):
    url: str
    name: str | None = None
    category: str | None = None


class UpdateAppRequest(BaseModel):
    name: str | None = None
    notes: str | None = None


@router.get("/apps")
async def list_apps(ctx=Depends(get_context)):
    apps = ctx.store.get_all_apps()
    return {"apps": [_present(a) for a in apps], "stats": ctx.store.get_stats()}


@router.get("/apps/{app_id}")
async def get_app(app_id: int, ctx=Depends(get_context)):
    app = ctx.store.get_app(app_id)
    if app is None:
        raise HTTPException(status_code=404, detail="App not found")
    data = _present(app)
    data["history"] = ctx.store.get_scan_history(app_id)
    return data


@router.post("/apps")
async def add_app(req: AddAppRequest, ctx=Depends(get_context)):
    if not req.url.strip():
        raise HTTPException(status_code=400, detail="URL is required")
    try:
        app = await ctx.orchestrator.add_manual(req.url, req.name, req.category)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        raise _server_error("Add app", exc)
    return {"success": True, "app": _present(app)}


@router.put("/apps/{app_id}")
async def update_app(app_id: int, req: UpdateAppRequest, ctx=Depends(get_context)):
    try:
        app = ctx.store.update_app(app_id, name=req.name, notes=req.notes)
    except PersistenceFailure as exc:
        raise _server_error("Update app", exc)
    if app is None:
        raise HTTPException(status_code=404, detail="App not found")
    await ctx.broadcaster.emit(events.app_updated(app))
    return {"success": True, "app": _present(app)}


@router.delete("/apps/{app_id}")
async def delete_app(app_id: int, ctx=Depends(get_context)):
    try:
        removed = await ctx.orchestrator.remove_app(app_id)
    except PersistenceFailure as exc:
        raise _server_error("Remove app", exc)
    if not removed:
        raise HTTPException(status_code=404, detail="App not found")
    return {"success": True}


@router.get("/stats")
async def stats(ctx=Depends(get_context)):
    return ctx.store.get_stats()


# ══════════════════════════════════════════════════════════════════
# SCANS & SWEEPS
# ══════════════════════════════════════════════════════════════════

@router.post("/scan/{mode}")
async def scan(mode: str, ctx=Depends(get_context)):
    if mode not in ("quick", "full"):
        raise HTTPException(status_code=404, detail=f"Unknown scan mode: {mode}")
    try:
        found = await ctx.orchestrator.run_scan(mode)
    except Exception as exc:
        raise _server_error(f"{mode.capitalize()} scan", exc)
    return {"success": True, "found": found}


@router.post("/health-check")
async def health_check(ctx=Depends(get_context)):
    try:
        counts = await ctx.orchestrator.check_all_apps()
    except Exception as exc:
        raise _server_error("Health check", exc)
    return {"success": True, **counts}


@router.post("/screenshots/update")
async def update_screenshots(ctx=Depends(get_context)):
    try:
        result = await ctx.orchestrator.update_screenshots()
    except Exception as exc:
        raise _server_error("Screenshot update", exc)
    return {"success": True, **result}


# ══════════════════════════════════════════════════════════════════
# IDENTIFICATION
# ══════════════════════════════════════════════════════════════════

@router.post("/ai/identify/{app_id}")
async def identify_app(app_id: int, ctx=Depends(get_context)):
    try:
        outcome = await ctx.orchestrator.reidentify(app_id)
    except Exception as exc:
        raise _server_error("Identify", exc)
    if outcome is None:
        raise HTTPException(status_code=404, detail="App not found")
    identification, app = outcome
    return {"success": True, "identification": identification.to_dict(), "app": _present(app)}


@router.get("/ai/status")
async def ai_status(ctx=Depends(get_context)):
    return await ctx.orchestrator.identifier_status()


# ══════════════════════════════════════════════════════════════════
# CONFIG
# ══════════════════════════════════════════════════════════════════

class TargetHostRequest(BaseModel):
    target_host: str


@router.get("/config/target-host")
async def get_target_host(ctx=Depends(get_context)):
    return {
        "target_host": ctx.orchestrator.settings.target_host,
        "persisted": ctx.config_store.get(TARGET_HOST_KEY) is not None,
    }


@router.put("/config/target-host")
async def set_target_host(req: TargetHostRequest, ctx=Depends(get_context)):
    host = req.target_host.strip()
    if not host or not _HOST_RE.match(host):
        raise HTTPException(status_code=400, detail="Invalid target host")
    ctx.config_store.set(TARGET_HOST_KEY, host)
    ctx.orchestrator.set_target_host(host)
    return {"target_host": host, "persisted": True}


@router.delete("/config/target-host")
async def reset_target_host(ctx=Depends(get_context)):
    ctx.config_store.delete(TARGET_HOST_KEY)
    ctx.orchestrator.set_target_host(ctx.settings.target_host)
    return {"target_host": ctx.settings.target_host, "persisted": False}

"""REST API for scan history, the result cache and settings."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Request

from codeseceval.errors import NotFound

router = APIRouter(tags=["history"])


@router.get("/history")
async def list_history(request: Request, limit: int = 100):
    records = request.app.state.ctx.history.list_history()
    return [r.to_dict() for r in records[:limit]]


@router.get("/history/{scan_id}")
async def get_history(scan_id: str, request: Request):
    record = request.app.state.ctx.history.get_history(scan_id)
    if record is None:
        raise NotFound(f"Scan '{scan_id}' not in history")
    return record.to_dict()


@router.delete("/history/{scan_id}")
async def remove_history(scan_id: str, request: Request):
    if not await request.app.state.ctx.history.remove_history(scan_id):
        raise NotFound(f"Scan '{scan_id}' not in history")
    return {"status": "removed", "id": scan_id}


@router.get("/cache")
async def cache_stats(request: Request):
    return request.app.state.ctx.cache.stats().to_dict()


@router.delete("/cache")
async def clear_cache(request: Request):
    request.app.state.ctx.cache.clear()
    return {"status": "cleared"}


@router.post("/maintenance")
async def run_housekeeping(request: Request):
    ctx = request.app.state.ctx
    await ctx.run_housekeeping()
    return {"status": "done", "history": len(ctx.history.list_history())}


@router.get("/settings")
async def get_settings(request: Request):
    return request.app.state.ctx.settings.to_dict()


@router.patch("/settings")
async def update_settings(request: Request, changes: dict[str, Any] = Body(...)):
    settings = await request.app.state.ctx.update_settings(**changes)
    return settings.to_dict()

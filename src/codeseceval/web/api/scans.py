"""REST API for starting, tracking and cancelling scans."""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from codeseceval.errors import NotFound
from codeseceval.scanner.models import ScanKind

router = APIRouter(tags=["scans"])


class ScanRequest(BaseModel):
    target_path: str
    kind: ScanKind = ScanKind.QUICK
    include_paths: list[str] = []
    exclude_paths: list[str] = []
    include_test_files: bool | None = None
    max_depth: int | None = None
    rule_ids: list[str] | None = None
    rule_set: str | None = None
    timeout: float | None = None


@router.post("/scans", status_code=202)
async def start_scan(body: ScanRequest, request: Request):
    ctx = request.app.state.ctx
    rule_ids = None
    if body.rule_ids is not None or body.rule_set:
        rule_ids = list(body.rule_ids or ())
    if body.rule_set:
        rule_ids.extend(r.id for r in ctx.rules.rule_set_rules(body.rule_set))

    config = ctx.scan_config(
        body.target_path,
        kind=body.kind,
        include_paths=tuple(body.include_paths),
        exclude_paths=tuple(body.exclude_paths),
        include_test_files=body.include_test_files,
        max_depth=body.max_depth,
        rule_ids=tuple(rule_ids) if rule_ids is not None else None,
        timeout=body.timeout,
    )
    session_id = ctx.orchestrator.start_scan(config)
    return {"status": "started", "session_id": session_id}


@router.get("/scans")
async def list_active(request: Request):
    sessions = request.app.state.ctx.orchestrator.list_active_sessions()
    return [s.to_dict() for s in sessions]


@router.get("/scans/{session_id}")
async def get_progress(session_id: str, request: Request):
    session = request.app.state.ctx.orchestrator.get_progress(session_id)
    if session is None:
        raise NotFound(f"No active scan '{session_id}'")
    return session.to_dict()


@router.post("/scans/{session_id}/cancel")
async def cancel_scan(session_id: str, request: Request):
    cancelled = request.app.state.ctx.orchestrator.cancel_scan(session_id)
    return {"cancelled": cancelled, "session_id": session_id}


@router.get("/scans/{session_id}/result")
async def get_result(session_id: str, request: Request):
    result = await request.app.state.ctx.history.load_result(session_id)
    if result is None:
        raise NotFound(f"No stored result for scan '{session_id}'")
    return result.to_dict()

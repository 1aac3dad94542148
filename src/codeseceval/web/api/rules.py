"""REST API for rules, rule sets and categories."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Query, Request
from pydantic import BaseModel

from codeseceval.errors import NotFound, Protected, ValidationError
from codeseceval.rules.loader import (
    category_to_dict,
    rule_set_to_dict,
    rule_to_dict,
)
from codeseceval.rules.loader import validate_rule as check_rule
from codeseceval.rules.models import SearchCriteria, Severity

router = APIRouter(tags=["rules"])


class RuleUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    severity: Severity | None = None
    category: str | None = None
    languages: list[str] | None = None
    pattern: str | dict[str, Any] | None = None
    cwe_id: str | None = None
    risk_score: float | None = None
    enabled: bool | None = None
    tags: list[str] | None = None


class BatchUpdate(BaseModel):
    rule_ids: list[str]
    enabled: bool | None = None
    severity: Severity | None = None


class RuleSetUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    version: str | None = None
    author: str | None = None
    rules: list[str] | None = None
    enabled: bool | None = None
    tags: list[str] | None = None


class ImportRequest(BaseModel):
    bundle: dict[str, Any]
    overwrite: bool = False


# --- Rules ---


@router.get("/rules")
async def list_rules(
    request: Request,
    keyword: str = "",
    severity: list[Severity] = Query(default=[]),
    category: list[str] = Query(default=[]),
    language: list[str] = Query(default=[]),
    enabled: bool | None = None,
    builtin: bool | None = None,
    tag: list[str] = Query(default=[]),
):
    criteria = SearchCriteria(
        keyword=keyword,
        severities=frozenset(severity),
        categories=frozenset(category),
        languages=frozenset(language),
        enabled=enabled,
        builtin=builtin,
        tags=frozenset(tag),
    )
    return [rule_to_dict(r) for r in request.app.state.ctx.rules.search(criteria)]


@router.get("/rules/statistics")
async def rule_statistics(request: Request):
    s = request.app.state.ctx.rules.statistics()
    return {
        "total": s.total,
        "enabled": s.enabled,
        "disabled": s.disabled,
        "custom": s.custom,
        "builtin": s.builtin,
        "by_severity": s.by_severity,
        "by_category": s.by_category,
        "by_language": s.by_language,
    }


@router.get("/rules/export")
async def export_rules(
    request: Request,
    rule_id: list[str] = Query(default=[]),
    include_rule_sets: bool = True,
):
    return request.app.state.ctx.rules.export_rules(
        rule_id or None, include_rule_sets=include_rule_sets
    )


@router.post("/rules/import")
async def import_rules(body: ImportRequest, request: Request):
    ctx = request.app.state.ctx
    _require_custom_rules(ctx)
    report = ctx.rules.import_rules(body.bundle, overwrite=body.overwrite)
    await ctx.save_rules()
    return {
        "imported": report.imported,
        "skipped": report.skipped,
        "errors": report.errors,
    }


@router.post("/rules/batch")
async def batch_update(body: BatchUpdate, request: Request):
    ctx = request.app.state.ctx
    changes = body.model_dump(exclude_none=True, exclude={"rule_ids"})
    if not changes:
        raise ValidationError("Nothing to update")
    count = ctx.rules.batch_update(body.rule_ids, **changes)
    await ctx.save_rules()
    return {"updated": count}


@router.post("/rules/validate")
async def validate_rule(rule: dict[str, Any] = Body(...)):
    problems = check_rule(rule)
    return {"valid": not problems, "problems": problems}


@router.post("/rules/reset")
async def reset_rules(request: Request):
    ctx = request.app.state.ctx
    ctx.rules.reset()
    await ctx.save_rules()
    return {"status": "reset", "rules": len(ctx.rules.all_rules())}


@router.get("/rules/{rule_id}")
async def get_rule(rule_id: str, request: Request):
    rule = request.app.state.ctx.rules.get_rule(rule_id)
    if rule is None:
        raise NotFound(f"Rule '{rule_id}' not found")
    return rule_to_dict(rule)


@router.post("/rules", status_code=201)
async def create_rule(request: Request, rule: dict[str, Any] = Body(...)):
    ctx = request.app.state.ctx
    _require_custom_rules(ctx)
    created = ctx.rules.add_rule(rule)
    await ctx.save_rules()
    return rule_to_dict(created)


@router.patch("/rules/{rule_id}")
async def update_rule(rule_id: str, body: RuleUpdate, request: Request):
    ctx = request.app.state.ctx
    updated = ctx.rules.update_rule(rule_id, **body.model_dump(exclude_none=True))
    await ctx.save_rules()
    return rule_to_dict(updated)


@router.delete("/rules/{rule_id}")
async def delete_rule(rule_id: str, request: Request):
    ctx = request.app.state.ctx
    ctx.rules.delete_rule(rule_id)
    await ctx.save_rules()
    return {"status": "deleted", "id": rule_id}


# --- Rule sets ---


@router.get("/rule-sets")
async def list_rule_sets(request: Request):
    return [rule_set_to_dict(s) for s in request.app.state.ctx.rules.list_rule_sets()]


@router.get("/rule-sets/{set_id}")
async def get_rule_set(set_id: str, request: Request):
    rules = request.app.state.ctx.rules
    rule_set = rules.get_rule_set(set_id)
    if rule_set is None:
        raise NotFound(f"Rule set '{set_id}' not found")
    data = rule_set_to_dict(rule_set)
    data["members"] = [rule_to_dict(r) for r in rules.rule_set_rules(set_id)]
    return data


@router.post("/rule-sets", status_code=201)
async def create_rule_set(request: Request, rule_set: dict[str, Any] = Body(...)):
    ctx = request.app.state.ctx
    created = ctx.rules.add_rule_set(rule_set)
    await ctx.save_rules()
    return rule_set_to_dict(created)


@router.patch("/rule-sets/{set_id}")
async def update_rule_set(set_id: str, body: RuleSetUpdate, request: Request):
    ctx = request.app.state.ctx
    updated = ctx.rules.update_rule_set(set_id, **body.model_dump(exclude_none=True))
    await ctx.save_rules()
    return rule_set_to_dict(updated)


@router.delete("/rule-sets/{set_id}")
async def delete_rule_set(set_id: str, request: Request):
    ctx = request.app.state.ctx
    ctx.rules.delete_rule_set(set_id)
    await ctx.save_rules()
    return {"status": "deleted", "id": set_id}


# --- Categories ---


@router.get("/categories")
async def list_categories(request: Request):
    return [category_to_dict(c) for c in request.app.state.ctx.rules.list_categories()]


@router.post("/categories", status_code=201)
async def create_category(request: Request, category: dict[str, Any] = Body(...)):
    ctx = request.app.state.ctx
    created = ctx.rules.add_category(category)
    await ctx.save_rules()
    return category_to_dict(created)


def _require_custom_rules(ctx) -> None:
    if not ctx.settings.enable_custom_rules:
        raise Protected("Custom rules are disabled in settings")

"""Load and validate rules, rule sets and categories from mappings and YAML."""

from __future__ import annotations

import importlib.resources
import time
from pathlib import Path

import yaml

from codeseceval.errors import ValidationError
from codeseceval.rules.models import (
    PatternKind,
    Rule,
    RuleCategory,
    RuleDocs,
    RulePattern,
    RuleSet,
    Severity,
)
from codeseceval.scanner.languages import normalize_language

_SEVERITIES = {s.value for s in Severity}
_PATTERN_KINDS = {k.value for k in PatternKind}
_REQUIRED_TEXT = ("id", "name", "description", "category")


def validate_rule(data: dict) -> list[str]:
    """Return the list of problems with a rule mapping (empty when valid)."""
    if not isinstance(data, dict):
        return ["Rule must be a mapping"]

    problems: list[str] = []
    for key in _REQUIRED_TEXT:
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            problems.append(f"Rule {key} must not be empty")

    if data.get("severity") not in _SEVERITIES:
        problems.append(f"Rule severity must be one of {sorted(_SEVERITIES)}")

    languages = _languages_of(data)
    if not languages:
        problems.append("Rule languages must not be empty")

    problems.extend(_pattern_problems(data.get("pattern")))

    risk = data.get("risk_score")
    if risk is not None and (isinstance(risk, bool) or not isinstance(risk, (int, float))):
        problems.append("Rule risk_score must be a number")
    if not isinstance(data.get("cwe_id") or "", str):
        problems.append("Rule cwe_id must be a string")
    for key in ("tags", "references"):
        if not _is_text_list(data.get(key)):
            problems.append(f"Rule {key} must be a list of strings")

    examples = data.get("examples")
    if examples is not None and (
        not isinstance(examples, dict)
        or not all(isinstance(v, str) for v in examples.values())
    ):
        problems.append("Rule examples must map names to code strings")

    return problems


def _pattern_problems(pattern) -> list[str]:
    if not pattern:
        return ["Rule pattern must not be empty"]
    if isinstance(pattern, str):
        return []
    if not isinstance(pattern, dict):
        return ["Rule pattern must be a string or a mapping"]
    expression = pattern.get("expression")
    if not expression:
        return ["Rule pattern expression must not be empty"]
    if not isinstance(expression, str):
        return ["Rule pattern expression must be a string"]
    kind = pattern.get("kind", "regex")
    if not isinstance(kind, str) or kind not in _PATTERN_KINDS:
        return [f"Unknown pattern kind: {kind!r} (expected one of {sorted(_PATTERN_KINDS)})"]
    return []


def _is_text_list(value) -> bool:
    if value is None:
        return True
    return isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value)


def rule_from_dict(data: dict, builtin: bool | None = None) -> Rule:
    """Build a Rule, raising ValidationError with every problem found."""
    problems = validate_rule(data)
    if problems:
        raise ValidationError(problems)

    examples = data.get("examples") or {}
    risk = data.get("risk_score")
    try:
        return Rule(
            id=data["id"].strip(),
            name=data["name"],
            description=data["description"],
            severity=Severity(data["severity"]),
            category=data["category"],
            languages=frozenset(_languages_of(data)),
            pattern=parse_pattern(data["pattern"]),
            cwe_id=data.get("cwe_id", "") or "",
            risk_score=float(risk) if risk is not None else None,
            enabled=bool(data.get("enabled", True)),
            builtin=bool(data.get("builtin", False)) if builtin is None else builtin,
            tags=tuple(data.get("tags") or ()),
            docs=RuleDocs(
                vulnerable=examples.get("vulnerable", ""),
                secure=examples.get("secure", ""),
                references=tuple(data.get("references") or ()),
            ),
        )
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid rule '{data['id']}': {e}") from e


def rule_to_dict(rule: Rule) -> dict:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "severity": rule.severity.value,
        "category": rule.category,
        "languages": sorted(rule.languages),
        "pattern": {
            "kind": rule.pattern.kind.value,
            "expression": rule.pattern.expression,
            "ignore_case": rule.pattern.ignore_case,
        },
        "cwe_id": rule.cwe_id,
        "risk_score": rule.risk_score,
        "enabled": rule.enabled,
        "builtin": rule.builtin,
        "tags": list(rule.tags),
        "examples": {
            "vulnerable": rule.docs.vulnerable,
            "secure": rule.docs.secure,
        },
        "references": list(rule.docs.references),
    }


def parse_pattern(raw: str | dict | RulePattern) -> RulePattern:
    """Normalize a pattern to the tagged form.

    A bare string is a case-insensitive regex.
    """
    if isinstance(raw, RulePattern):
        return raw
    problems = _pattern_problems(raw)
    if problems:
        raise ValidationError(problems)
    if isinstance(raw, str):
        return RulePattern(expression=raw, ignore_case=True)
    return RulePattern(
        expression=raw["expression"],
        kind=PatternKind(raw.get("kind", "regex")),
        ignore_case=bool(raw.get("ignore_case", False)),
    )


def rule_set_from_dict(data: dict) -> RuleSet:
    if not isinstance(data, dict):
        raise ValidationError("Rule set must be a mapping")
    if not data.get("id") or not data.get("name"):
        raise ValidationError("Rule set id and name must not be empty")
    for key in ("rules", "tags", "languages", "categories"):
        if not _is_text_list(data.get(key)):
            raise ValidationError(f"Rule set {key} must be a list of strings")
    now = time.time()
    try:
        return RuleSet(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            version=str(data.get("version", "1.0")),
            author=data.get("author", ""),
            rules=tuple(data.get("rules") or ()),
            enabled=bool(data.get("enabled", True)),
            tags=tuple(data.get("tags") or ()),
            languages=tuple(normalize_language(x) for x in data.get("languages") or ()),
            categories=tuple(data.get("categories") or ()),
            created_at=float(data.get("created_at", now)),
            updated_at=float(data.get("updated_at", now)),
        )
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid rule set '{data['id']}': {e}") from e


def rule_set_to_dict(rule_set: RuleSet) -> dict:
    return {
        "id": rule_set.id,
        "name": rule_set.name,
        "description": rule_set.description,
        "version": rule_set.version,
        "author": rule_set.author,
        "rules": list(rule_set.rules),
        "enabled": rule_set.enabled,
        "tags": list(rule_set.tags),
        "languages": list(rule_set.languages),
        "categories": list(rule_set.categories),
        "created_at": rule_set.created_at,
        "updated_at": rule_set.updated_at,
    }


def category_from_dict(data: dict) -> RuleCategory:
    if not isinstance(data, dict) or not data.get("id"):
        raise ValidationError("Category id must not be empty")
    return RuleCategory(
        id=data["id"],
        name=data.get("name", data["id"]),
        description=data.get("description", ""),
        color=data.get("color", ""),
        icon=data.get("icon", ""),
        parent_id=data.get("parent_id", "") or "",
    )


def category_to_dict(category: RuleCategory) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "color": category.color,
        "icon": category.icon,
        "parent_id": category.parent_id,
    }


def load_bundle(path: str | Path) -> dict:
    """Read an exported rule bundle (YAML or JSON) from disk."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Rule bundle must be a mapping")
    return data


def load_builtin() -> tuple[list[RuleCategory], list[Rule], list[RuleSet]]:
    """Load the packaged built-in catalogue."""
    pkg = importlib.resources.files("codeseceval.rules.presets")
    text = pkg.joinpath("builtin.yaml").read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    categories = [category_from_dict(c) for c in data.get("categories", [])]
    rules = [rule_from_dict(r, builtin=True) for r in data.get("rules", [])]
    rule_sets = [rule_set_from_dict(s) for s in data.get("rule_sets", [])]
    return categories, rules, rule_sets


def _languages_of(data: dict) -> list[str]:
    # "language" is accepted for bundles written by older exporters
    raw = data.get("languages", data.get("language")) or []
    if isinstance(raw, str):
        raw = [raw]
    elif not isinstance(raw, (list, tuple)):
        return []
    return [normalize_language(x) for x in raw if isinstance(x, str) and x.strip()]

"""Tests for rule validation, parsing and the packaged catalogue."""

from __future__ import annotations

from pathlib import Path

import pytest

from codeseceval.errors import ValidationError
from codeseceval.rules.loader import (
    load_builtin,
    load_bundle,
    parse_pattern,
    rule_from_dict,
    rule_to_dict,
    validate_rule,
)
from codeseceval.rules.models import PatternKind, Severity


def _valid() -> dict:
    return {
        "id": "CUSTOM1",
        "name": "Debug flag",
        "description": "Debug mode left on",
        "severity": "low",
        "category": "configuration",
        "languages": ["py"],
        "pattern": "DEBUG\\s*=\\s*True",
    }


class TestValidateRule:
    def test_valid_rule_has_no_problems(self):
        assert validate_rule(_valid()) == []

    def test_reports_every_problem(self):
        problems = validate_rule({"id": "", "severity": "urgent", "languages": []})
        assert "Rule id must not be empty" in problems
        assert "Rule name must not be empty" in problems
        assert any("severity" in p for p in problems)
        assert "Rule languages must not be empty" in problems
        assert "Rule pattern must not be empty" in problems

    def test_blank_name_rejected(self):
        data = _valid()
        data["name"] = "   "
        assert validate_rule(data) == ["Rule name must not be empty"]

    def test_non_mapping(self):
        assert validate_rule(["not", "a", "rule"]) == ["Rule must be a mapping"]

    def test_singular_language_key_accepted(self):
        data = _valid()
        del data["languages"]
        data["language"] = ["python"]
        assert validate_rule(data) == []


class TestRuleFromDict:
    def test_builds_rule(self):
        rule = rule_from_dict(_valid())
        assert rule.id == "CUSTOM1"
        assert rule.severity is Severity.LOW
        assert rule.languages == frozenset({"python"})
        assert rule.enabled is True
        assert rule.builtin is False

    def test_invalid_raises_with_problems(self):
        with pytest.raises(ValidationError) as exc:
            rule_from_dict({"id": "X"})
        assert len(exc.value.problems) >= 3

    def test_bad_regex_rejected(self):
        data = _valid()
        data["pattern"] = "(unclosed"
        with pytest.raises(ValidationError, match="Invalid regex"):
            rule_from_dict(data)

    def test_dict_round_trip_keeps_fields(self):
        data = _valid()
        data["cwe_id"] = "CWE-489"
        data["risk_score"] = 3.1
        data["tags"] = ["debug"]
        rule = rule_from_dict(data)
        again = rule_from_dict(rule_to_dict(rule))
        assert again == rule


class TestParsePattern:
    def test_bare_string_is_case_insensitive_regex(self):
        pattern = parse_pattern("select")
        assert pattern.kind is PatternKind.REGEX
        assert pattern.ignore_case
        assert pattern.compiled.search("SELECT *")

    def test_mapping_form(self):
        pattern = parse_pattern({"kind": "regex", "expression": "eval"})
        assert not pattern.ignore_case
        assert pattern.compiled.search("EVAL") is None

    def test_ast_kind_is_not_compiled(self):
        pattern = parse_pattern({"kind": "ast", "expression": "CallExpression[eval]"})
        assert pattern.kind is PatternKind.AST
        assert pattern.compiled is None

    def test_unknown_kind(self):
        with pytest.raises(ValidationError, match="Unknown pattern kind"):
            parse_pattern({"kind": "magic", "expression": "x"})

    def test_non_string_expression(self):
        with pytest.raises(ValidationError, match="must be a string"):
            parse_pattern({"expression": 42})


class TestBuiltinCatalogue:
    def test_ten_rules_four_sets(self):
        categories, rules, rule_sets = load_builtin()
        assert [r.id for r in rules] == [f"SEC{i:03d}" for i in range(1, 11)]
        assert all(r.builtin for r in rules)
        assert {s.id for s in rule_sets} == {
            "owasp-top10",
            "web-security",
            "crypto-security",
            "critical-only",
        }
        assert len(categories) == 10

    def test_rule_sets_reference_known_rules(self):
        _, rules, rule_sets = load_builtin()
        ids = {r.id for r in rules}
        for rule_set in rule_sets:
            assert set(rule_set.rules) <= ids

    def test_critical_only_is_critical(self):
        _, rules, rule_sets = load_builtin()
        by_id = {r.id: r for r in rules}
        critical = next(s for s in rule_sets if s.id == "critical-only")
        assert all(by_id[r].severity is Severity.CRITICAL for r in critical.rules)


def test_load_bundle_rejects_non_mapping(tmp_path: Path):
    path = tmp_path / "bundle.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_bundle(path)

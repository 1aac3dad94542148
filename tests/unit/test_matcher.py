"""Tests for the matching pipeline."""

from __future__ import annotations

import pytest

from codeseceval.errors import MatchingWarning
from codeseceval.rules.models import PatternKind, Severity
from codeseceval.scanner.matcher import ConfidenceHeuristic, MatchingPipeline, match
from codeseceval.scanner.models import FileInfo

FILE = FileInfo(path="/src/app.js", relative_path="app.js", size=10, language="javascript")

CONTENT = "\n".join(
    [
        "const a = 1;",
        "  eval(userInput);",
        "run(a);",
        "eval(other)",
    ]
)


def test_one_finding_per_matching_line(rule_factory):
    findings = match(rule_factory(), CONTENT, FILE)
    assert [f.start_line for f in findings] == [2, 4]
    first = findings[0]
    assert first.end_line == first.start_line
    assert first.start_column == 1
    assert first.end_column == len("  eval(userInput);")
    assert first.snippet == "eval(userInput);"
    assert first.severity is Severity.CRITICAL
    assert first.file_path == "/src/app.js"
    assert first.confidence == 100


def test_no_match(rule_factory):
    assert match(rule_factory(), "nothing to see", FILE) == []


def test_empty_content(rule_factory):
    assert match(rule_factory(), "", FILE) == []


def test_case_insensitive_pattern(rule_factory):
    rule = rule_factory(pattern={"expression": "select", "ignore_case": True})
    assert len(match(rule, "SELECT * FROM t", FILE)) == 1


def test_finding_snapshots_rule_metadata(rule_factory):
    rule = rule_factory(cwe_id="CWE-95", risk_score=9.0, examples={"secure": "JSON.parse"})
    finding = match(rule, "eval(x)", FILE)[0]
    assert finding.cwe_id == "CWE-95"
    assert finding.risk_score == 9.0
    assert finding.remediation == "JSON.parse"
    assert finding.language == "javascript"


def test_unsupported_kind_raises_warning(rule_factory):
    rule = rule_factory(pattern={"kind": "ast", "expression": "CallExpression"})
    with pytest.raises(MatchingWarning):
        match(rule, CONTENT, FILE)


def test_registered_matcher_is_used(rule_factory):
    rule = rule_factory(pattern={"kind": "semantic", "expression": "run"})
    pipeline = MatchingPipeline()
    assert not pipeline.supports(PatternKind.SEMANTIC)
    pipeline.register(PatternKind.SEMANTIC, lambda r, line: line.startswith(r.pattern.expression))
    findings = pipeline.match(rule, CONTENT, FILE)
    assert [f.start_line for f in findings] == [3]


class TestConfidenceHeuristic:
    def test_scores_within_range(self):
        heuristic = ConfidenceHeuristic(seed=1)
        scores = [heuristic.score() for _ in range(200)]
        assert min(scores) >= 70
        assert max(scores) <= 100

    def test_same_seed_same_output(self, rule_factory):
        content = "\n".join("eval(x)" for _ in range(50))
        a = MatchingPipeline(ConfidenceHeuristic(seed=42, suppress_below=85))
        b = MatchingPipeline(ConfidenceHeuristic(seed=42, suppress_below=85))
        first = [(f.start_line, f.confidence) for f in a.match(rule_factory(), content, FILE)]
        second = [(f.start_line, f.confidence) for f in b.match(rule_factory(), content, FILE)]
        assert first == second
        assert 0 < len(first) < 50
        assert all(conf >= 85 for _, conf in first)

    def test_suppress_nothing_at_minimum(self, rule_factory):
        content = "\n".join("eval(x)" for _ in range(20))
        pipeline = MatchingPipeline(ConfidenceHeuristic(seed=7))
        assert len(pipeline.match(rule_factory(), content, FILE)) == 20

    def test_threshold_bounds(self):
        with pytest.raises(ValueError):
            ConfidenceHeuristic(suppress_below=50)

"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from codeseceval.rules.loader import rule_from_dict
from codeseceval.rules.models import Rule
from codeseceval.rules.store import RuleStore


def make_rule(**overrides) -> Rule:
    data = {
        "id": "R1",
        "name": "Eval call",
        "description": "Call to eval",
        "severity": "critical",
        "category": "injection",
        "languages": ["js"],
        "pattern": {"expression": r"\beval\("},
    }
    data.update(overrides)
    return rule_from_dict(data)


@pytest.fixture
def rule_factory():
    return make_rule


@pytest.fixture
def empty_store() -> RuleStore:
    return RuleStore(load_defaults=False)


@pytest.fixture
def r1_store(empty_store: RuleStore) -> RuleStore:
    empty_store.add_rule(make_rule())
    return empty_store


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Three-file project; only file2.js calls eval."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "file1.js").write_text("const a = 1;\nconsole.log(a);\n")
    (root / "file2.js").write_text("const x = 2;\neval(userInput);\n")
    (root / "file3.js").write_text("export default {};\n")
    return root

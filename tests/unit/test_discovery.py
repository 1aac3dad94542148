"""Tests for file discovery and language detection."""

from __future__ import annotations

from pathlib import Path

import pytest

from codeseceval.errors import DiscoveryFailure
from codeseceval.scanner.discovery import discover_files
from codeseceval.scanner.languages import detect_language, normalize_language
from codeseceval.scanner.models import ScanConfig


def _tree(root: Path) -> Path:
    files = {
        "app.js": "eval(x)",
        "lib/util.py": "print(1)",
        "lib/deep/inner/x.ts": "let a",
        "tests/test_app.py": "assert True",
        "src/app.test.js": "it()",
        "node_modules/pkg/index.js": "module.exports = {}",
        "dist/bundle.js": "var a",
        "logo.png": "not really a png",
        "README.md": "# readme",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def _paths(config: ScanConfig) -> list[str]:
    return [f.relative_path for f in discover_files(config).files]


class TestLanguages:
    @pytest.mark.parametrize(
        "path,language",
        [
            ("a.js", "javascript"),
            ("a.tsx", "typescript"),
            ("a.PY", "python"),
            ("A.cs", "csharp"),
            ("index.htm", "html"),
            ("Makefile", "unknown"),
        ],
    )
    def test_detect(self, path: str, language: str):
        assert detect_language(path) == language

    def test_aliases(self):
        assert normalize_language("JS") == "javascript"
        assert normalize_language("c#") == "csharp"
        assert normalize_language("ruby") == "ruby"


class TestDiscovery:
    def test_default_filters(self, tmp_path: Path):
        root = _tree(tmp_path)
        paths = _paths(ScanConfig(target_path=str(root), exclude_paths=("dist",)))
        assert paths == ["README.md", "app.js", "lib/deep/inner/x.ts", "lib/util.py"]

    def test_include_tests(self, tmp_path: Path):
        root = _tree(tmp_path)
        paths = _paths(
            ScanConfig(target_path=str(root), include_test_files=True, exclude_paths=("dist",))
        )
        assert "tests/test_app.py" in paths
        assert "src/app.test.js" in paths

    def test_include_globs(self, tmp_path: Path):
        root = _tree(tmp_path)
        paths = _paths(ScanConfig(target_path=str(root), include_paths=("*.py",)))
        assert paths == ["lib/util.py"]

    def test_exclude_by_component(self, tmp_path: Path):
        root = _tree(tmp_path)
        paths = _paths(ScanConfig(target_path=str(root), exclude_paths=("lib", "dist")))
        assert paths == ["README.md", "app.js"]

    def test_max_depth(self, tmp_path: Path):
        root = _tree(tmp_path)
        paths = _paths(
            ScanConfig(target_path=str(root), max_depth=1, exclude_paths=("dist",))
        )
        assert paths == ["README.md", "app.js", "lib/util.py"]

    def test_oversized_files_are_skipped(self, tmp_path: Path):
        (tmp_path / "small.js").write_text("a")
        (tmp_path / "big.js").write_text("a" * 2048)
        result = discover_files(ScanConfig(target_path=str(tmp_path), max_file_size=1024))
        assert [f.relative_path for f in result.files] == ["small.js"]
        assert result.skipped == 1

    def test_single_file_target(self, tmp_path: Path):
        target = tmp_path / "one.js"
        target.write_text("eval(x)")
        result = discover_files(ScanConfig(target_path=str(target)))
        assert [f.relative_path for f in result.files] == ["one.js"]
        assert result.files[0].language == "javascript"

    def test_missing_target(self, tmp_path: Path):
        with pytest.raises(DiscoveryFailure):
            discover_files(ScanConfig(target_path=str(tmp_path / "nope")))

"""File discovery — the file-system collaborator of the scan orchestrator."""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from codeseceval.errors import DiscoveryFailure
from codeseceval.scanner.languages import detect_language
from codeseceval.scanner.models import FileInfo, ScanConfig

logger = logging.getLogger(__name__)

# Directories to always skip
_SKIP_DIRS = {
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "__pycache__",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    ".venv",
    "venv",
    ".tox",
    ".eggs",
}

# Binary / non-text extensions to skip
_SKIP_EXTENSIONS = {
    ".pyc",
    ".pyo",
    ".so",
    ".dylib",
    ".dll",
    ".exe",
    ".bin",
    ".dat",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".ico",
    ".svg",
    ".pdf",
    ".doc",
    ".docx",
    ".zip",
    ".tar",
    ".gz",
    ".bz2",
    ".whl",
    ".egg",
    ".db",
    ".sqlite",
    ".sqlite3",
}

# Paths treated as tests unless the config includes test files
_TEST_DIR_NAMES = {"test", "tests", "__tests__", "spec", "specs", "__mocks__"}
_TEST_FILE_GLOBS = (
    "test_*",
    "*_test.*",
    "*.test.*",
    "*.spec.*",
    "*_spec.*",
)


@dataclass
class Discovery:
    """Files selected for scanning plus the count of files passed over."""

    files: list[FileInfo] = field(default_factory=list)
    skipped: int = 0


class FileSource(Protocol):
    """Anything that can enumerate a scan target and read file content."""

    async def discover(self, config: ScanConfig) -> Discovery: ...

    async def read(self, file: FileInfo) -> str: ...


class LocalFileSource:
    """Walks the local file system. Blocking I/O runs in worker threads."""

    async def discover(self, config: ScanConfig) -> Discovery:
        return await asyncio.to_thread(discover_files, config)

    async def read(self, file: FileInfo) -> str:
        return await asyncio.to_thread(
            Path(file.path).read_text, encoding="utf-8", errors="ignore"
        )


def discover_files(config: ScanConfig) -> Discovery:
    """Enumerate scannable files under ``config.target_path``.

    Raises DiscoveryFailure when the target itself cannot be read. Errors
    below the target are logged and the affected directory is skipped.
    """
    root = Path(config.target_path).expanduser()
    try:
        root = root.resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise DiscoveryFailure(f"Cannot access {config.target_path}: {e}") from e

    if root.is_file():
        info = _file_info(root, root.parent, config)
        return Discovery(files=[info] if info else [], skipped=0 if info else 1)

    try:
        with os.scandir(root):
            pass
    except OSError as e:
        raise DiscoveryFailure(f"Cannot list {root}: {e}") from e

    result = Discovery()

    def _onerror(err: OSError) -> None:
        logger.debug("Skipping unreadable directory %s: %s", err.filename, err)

    for dirpath, dirs, files in os.walk(root, onerror=_onerror):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts)

        # Prune skipped directories in-place
        dirs[:] = sorted(
            d
            for d in dirs
            if d not in _SKIP_DIRS
            and not d.endswith(".egg-info")
            and not _excluded(_rel(current / d, root), config.exclude_paths)
            and (config.include_test_files or d.lower() not in _TEST_DIR_NAMES)
        )
        if config.max_depth is not None and depth >= config.max_depth:
            dirs[:] = []

        for name in sorted(files):
            path = current / name
            rel = _rel(path, root)
            if path.suffix.lower() in _SKIP_EXTENSIONS:
                continue
            if _excluded(rel, config.exclude_paths):
                continue
            if config.include_paths and not _included(rel, config.include_paths):
                continue
            if not config.include_test_files and _is_test_file(name):
                continue
            info = _file_info(path, root, config)
            if info is None:
                result.skipped += 1
                continue
            result.files.append(info)

    result.files.sort(key=lambda f: f.relative_path)
    logger.debug("Discovered %d files under %s", len(result.files), root)
    return result


def _file_info(path: Path, root: Path, config: ScanConfig) -> FileInfo | None:
    try:
        size = path.stat().st_size
    except OSError as e:
        logger.debug("Skipping %s: %s", path, e)
        return None
    if size > config.max_file_size:
        logger.debug("Skipping %s: %d bytes exceeds limit", path, size)
        return None
    return FileInfo(
        path=str(path),
        relative_path=_rel(path, root),
        size=size,
        language=detect_language(path),
    )


def _rel(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()


def _glob_hit(rel: str, pattern: str) -> bool:
    """Match a glob against the whole relative path or any path component."""
    pattern = pattern.strip("/")
    if fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(rel, f"{pattern}/*"):
        return True
    return any(fnmatch.fnmatch(part, pattern) for part in rel.split("/"))


def _excluded(rel: str, patterns: tuple[str, ...]) -> bool:
    return any(_glob_hit(rel, p) for p in patterns)


def _included(rel: str, patterns: tuple[str, ...]) -> bool:
    return any(_glob_hit(rel, p) for p in patterns)


def _is_test_file(name: str) -> bool:
    lowered = name.lower()
    return any(fnmatch.fnmatch(lowered, g) for g in _TEST_FILE_GLOBS)

"""Language detection from file extensions, and language name aliases."""

from __future__ import annotations

from pathlib import PurePath

UNKNOWN = "unknown"

# File extension → language
_EXTENSIONS = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".java": "java",
    ".php": "php",
    ".cs": "csharp",
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".json": "json",
}

# Short names accepted wherever a language is named
_ALIASES = {
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "cs": "csharp",
    "c#": "csharp",
    "htm": "html",
}


def detect_language(path: str | PurePath) -> str:
    """Return the language for a file path, or ``"unknown"``."""
    return _EXTENSIONS.get(PurePath(path).suffix.lower(), UNKNOWN)


def normalize_language(name: str) -> str:
    """Canonical lowercase language name (``"js"`` → ``"javascript"``)."""
    key = name.strip().lower()
    return _ALIASES.get(key, key)

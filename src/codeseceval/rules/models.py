"""Rule data models — rules, rule sets, categories and query types."""

from __future__ import annotations

import enum
import re
import time
from dataclasses import dataclass, field

from codeseceval.errors import ValidationError


class Severity(enum.Enum):
    """Finding severity level, ordered critical > high > medium > low > info."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Higher is more severe."""
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


class PatternKind(enum.Enum):
    """How a rule's match expression is interpreted."""

    REGEX = "regex"
    AST = "ast"
    SEMANTIC = "semantic"


@dataclass(frozen=True)
class RulePattern:
    """A tagged match expression, compiled once when the rule is loaded."""

    expression: str
    kind: PatternKind = PatternKind.REGEX
    ignore_case: bool = False
    compiled: re.Pattern[str] | None = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if not self.expression:
            raise ValidationError("Rule pattern must not be empty")
        if self.kind is PatternKind.REGEX:
            flags = re.IGNORECASE if self.ignore_case else 0
            try:
                compiled = re.compile(self.expression, flags)
            except re.error as e:
                raise ValidationError(f"Invalid regex '{self.expression}': {e}") from e
            object.__setattr__(self, "compiled", compiled)


@dataclass(frozen=True)
class RuleDocs:
    """Remediation material attached to a rule."""

    vulnerable: str = ""
    secure: str = ""
    references: tuple[str, ...] = ()


@dataclass(frozen=True)
class Rule:
    """An immutable rule definition. Edits produce a new instance."""

    id: str
    name: str
    description: str
    severity: Severity
    category: str
    languages: frozenset[str]
    pattern: RulePattern
    cwe_id: str = ""
    risk_score: float | None = None
    enabled: bool = True
    builtin: bool = False
    tags: tuple[str, ...] = ()
    docs: RuleDocs = field(default_factory=RuleDocs)


@dataclass(frozen=True)
class RuleSet:
    """A named group of rule ids. References, not ownership."""

    id: str
    name: str
    description: str = ""
    version: str = "1.0"
    author: str = ""
    rules: tuple[str, ...] = ()
    enabled: bool = True
    tags: tuple[str, ...] = ()
    languages: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class RuleCategory:
    """A display category for rules."""

    id: str
    name: str
    description: str = ""
    color: str = ""
    icon: str = ""
    parent_id: str = ""


@dataclass(frozen=True)
class SearchCriteria:
    """Rule search filters. Every supplied criterion must hold."""

    keyword: str = ""
    severities: frozenset[Severity] = frozenset()
    categories: frozenset[str] = frozenset()
    languages: frozenset[str] = frozenset()
    enabled: bool | None = None
    builtin: bool | None = None
    tags: frozenset[str] = frozenset()


@dataclass
class RuleStatistics:
    total: int = 0
    enabled: int = 0
    disabled: int = 0
    custom: int = 0
    builtin: int = 0
    by_severity: dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in Severity}
    )
    by_category: dict[str, int] = field(default_factory=dict)
    by_language: dict[str, int] = field(default_factory=dict)


@dataclass
class ImportReport:
    """Per-item outcome of a rule bundle import."""

    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

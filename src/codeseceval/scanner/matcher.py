"""Matching pipeline — applies one rule to one file's content, line by line."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable

from codeseceval.errors import MatchingWarning
from codeseceval.rules.models import PatternKind, Rule
from codeseceval.scanner.models import FileInfo, Finding

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 70
MAX_CONFIDENCE = 100

# A line matcher returns True when the line satisfies the rule's pattern.
LineMatcher = Callable[[Rule, str], bool]


class ConfidenceHeuristic:
    """Seedable confidence scoring with optional low-confidence suppression.

    Each syntactic match draws a confidence in [70, 100]. Matches scoring
    below ``suppress_below`` are dropped. With a fixed seed the sequence of
    draws, and therefore the output, is reproducible.
    """

    def __init__(self, seed: int | None = None, suppress_below: int = MIN_CONFIDENCE) -> None:
        if not MIN_CONFIDENCE <= suppress_below <= MAX_CONFIDENCE + 1:
            raise ValueError(
                f"suppress_below must be within [{MIN_CONFIDENCE}, {MAX_CONFIDENCE + 1}]"
            )
        self.seed = seed
        self.suppress_below = suppress_below
        self._rng = random.Random(seed)

    def score(self) -> int:
        return self._rng.randint(MIN_CONFIDENCE, MAX_CONFIDENCE)

    def accept(self, confidence: int) -> bool:
        return confidence >= self.suppress_below


def _regex_line_matcher(rule: Rule, line: str) -> bool:
    compiled = rule.pattern.compiled
    if compiled is None:
        raise MatchingWarning(f"Rule {rule.id} has no compiled regex")
    return compiled.search(line) is not None


class MatchingPipeline:
    """Stateless per invocation. Dispatches on the rule's pattern kind.

    Without a heuristic every pattern match becomes a finding with full
    confidence, so output is fully deterministic.
    """

    def __init__(self, heuristic: ConfidenceHeuristic | None = None) -> None:
        self.heuristic = heuristic
        self._matchers: dict[PatternKind, LineMatcher] = {
            PatternKind.REGEX: _regex_line_matcher,
        }

    def register(self, kind: PatternKind, matcher: LineMatcher) -> None:
        """Install a line matcher for a pattern kind (e.g. an AST-aware one)."""
        self._matchers[kind] = matcher

    def supports(self, kind: PatternKind) -> bool:
        return kind in self._matchers

    def match(self, rule: Rule, content: str, file: FileInfo) -> list[Finding]:
        """Return findings for every line of ``content`` matching ``rule``."""
        matcher = self._matchers.get(rule.pattern.kind)
        if matcher is None:
            raise MatchingWarning(
                f"No matcher for '{rule.pattern.kind.value}' patterns "
                f"(rule {rule.id}, {file.relative_path})"
            )

        findings: list[Finding] = []
        for line_num, line in enumerate(content.splitlines(), start=1):
            if not matcher(rule, line):
                continue

            confidence = MAX_CONFIDENCE
            if self.heuristic is not None:
                confidence = self.heuristic.score()
                if not self.heuristic.accept(confidence):
                    logger.debug(
                        "Suppressed %s at %s:%d (confidence %d)",
                        rule.id,
                        file.relative_path,
                        line_num,
                        confidence,
                    )
                    continue

            findings.append(Finding.from_rule(rule, file, line_num, line, confidence))

        return findings


def match(rule: Rule, content: str, file: FileInfo) -> list[Finding]:
    """Deterministic single-rule match with the default pipeline."""
    return MatchingPipeline().match(rule, content, file)

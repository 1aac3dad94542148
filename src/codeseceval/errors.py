"""Error taxonomy shared by the rule store, the orchestrator and storage."""

from __future__ import annotations


class SecEvalError(Exception):
    """Base class for all CodeSecEval errors."""


class DuplicateKey(SecEvalError):
    """An entity with the same identifier already exists."""


class NotFound(SecEvalError):
    """The requested entity does not exist."""


class Protected(SecEvalError):
    """Attempt to delete a built-in rule."""


class ConcurrencyLimitExceeded(SecEvalError):
    """The admission ceiling for concurrent scans has been reached."""


class ValidationError(SecEvalError):
    """A rule, rule set or config failed validation."""

    def __init__(self, problems: list[str] | str) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class DiscoveryFailure(SecEvalError):
    """The scan target could not be enumerated. Fatal to a session."""


class MatchingWarning(SecEvalError):
    """A rule could not be applied to one file. Recorded, never fatal."""

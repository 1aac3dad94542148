"""Scanner data models — scan configs, findings, sessions and results."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field

from codeseceval.rules.models import Rule, Severity


class ScanKind(enum.Enum):
    QUICK = "quick"
    FULL = "full"
    CUSTOM = "custom"


class ScanStatus(enum.Enum):
    """Lifecycle state of a scan session."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED, ScanStatus.CANCELLED)


class FindingStatus(enum.Enum):
    OPEN = "open"
    FIXED = "fixed"
    IGNORED = "ignored"
    FALSE_POSITIVE = "false_positive"


@dataclass(frozen=True)
class ScanConfig:
    """What to scan and how. Snapshotted into the session at admission."""

    target_path: str
    kind: ScanKind = ScanKind.QUICK
    include_paths: tuple[str, ...] = ()
    exclude_paths: tuple[str, ...] = ()
    include_test_files: bool = False
    max_depth: int | None = None
    # None applies every enabled rule for the file's language; a tuple is an allowlist
    rule_ids: tuple[str, ...] | None = None
    timeout: float | None = None
    concurrency: int = 1
    max_file_size: int = 1_048_576

    def to_dict(self) -> dict:
        return {
            "target_path": self.target_path,
            "kind": self.kind.value,
            "include_paths": list(self.include_paths),
            "exclude_paths": list(self.exclude_paths),
            "include_test_files": self.include_test_files,
            "max_depth": self.max_depth,
            "rule_ids": list(self.rule_ids) if self.rule_ids is not None else None,
            "timeout": self.timeout,
            "concurrency": self.concurrency,
            "max_file_size": self.max_file_size,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ScanConfig:
        return cls(
            target_path=data["target_path"],
            kind=ScanKind(data.get("kind", "quick")),
            include_paths=tuple(data.get("include_paths") or ()),
            exclude_paths=tuple(data.get("exclude_paths") or ()),
            include_test_files=bool(data.get("include_test_files", False)),
            max_depth=data.get("max_depth"),
            rule_ids=_optional_tuple(data.get("rule_ids")),
            timeout=data.get("timeout"),
            concurrency=int(data.get("concurrency", 1)),
            max_file_size=int(data.get("max_file_size", 1_048_576)),
        )


@dataclass(frozen=True)
class FileInfo:
    """A discovered file, before its content is read."""

    path: str
    relative_path: str
    size: int
    language: str


@dataclass
class Finding:
    """A single rule match. Rule fields are a snapshot taken at detection time."""

    rule_id: str
    rule_name: str
    severity: Severity
    category: str
    description: str
    file_path: str
    start_line: int
    end_line: int
    start_column: int
    end_column: int
    snippet: str
    confidence: int = 100
    language: str = ""
    cwe_id: str = ""
    risk_score: float | None = None
    status: FindingStatus = FindingStatus.OPEN
    remediation: str = ""
    references: tuple[str, ...] = ()
    found_at: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @classmethod
    def from_rule(
        cls,
        rule: Rule,
        file: FileInfo,
        line_num: int,
        line: str,
        confidence: int,
    ) -> Finding:
        return cls(
            rule_id=rule.id,
            rule_name=rule.name,
            severity=rule.severity,
            category=rule.category,
            description=rule.description,
            file_path=file.path,
            start_line=line_num,
            end_line=line_num,
            start_column=1,
            end_column=max(len(line), 1),
            snippet=line.strip(),
            confidence=confidence,
            language=file.language,
            cwe_id=rule.cwe_id,
            risk_score=rule.risk_score,
            remediation=rule.docs.secure,
            references=rule.docs.references,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "severity": self.severity.value,
            "category": self.category,
            "description": self.description,
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "start_column": self.start_column,
            "end_column": self.end_column,
            "snippet": self.snippet,
            "confidence": self.confidence,
            "language": self.language,
            "cwe_id": self.cwe_id,
            "risk_score": self.risk_score,
            "status": self.status.value,
            "remediation": self.remediation,
            "references": list(self.references),
            "found_at": self.found_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Finding:
        data = dict(data)
        data["severity"] = Severity(data["severity"])
        data["status"] = FindingStatus(data.get("status", "open"))
        data["references"] = tuple(data.get("references") or ())
        return cls(**data)


@dataclass
class ScanSession:
    """Live state of one scan. Owned by the orchestrator until terminal."""

    config: ScanConfig
    status: ScanStatus = ScanStatus.PENDING
    processed_files: int = 0
    total_files: int = 0
    findings_count: int = 0
    progress: int = 0
    current_file: str = ""
    elapsed: float = 0.0
    estimated_remaining: int | None = None
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    error: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "config": self.config.to_dict(),
            "processed_files": self.processed_files,
            "total_files": self.total_files,
            "findings_count": self.findings_count,
            "progress": self.progress,
            "current_file": self.current_file,
            "elapsed": self.elapsed,
            "estimated_remaining": self.estimated_remaining,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "error": self.error,
        }


@dataclass(frozen=True)
class ScanFailure:
    """Payload of the scan_failed event. Carries the partial progress."""

    session_id: str
    message: str
    session: ScanSession


@dataclass
class ScanStatistics:
    total_files: int = 0
    scanned_files: int = 0
    skipped_files: int = 0
    finding_count: int = 0
    by_severity: dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in Severity}
    )
    by_category: dict[str, int] = field(default_factory=dict)
    by_language: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_findings(
        cls,
        findings: list[Finding],
        total_files: int,
        scanned_files: int,
        skipped_files: int,
    ) -> ScanStatistics:
        stats = cls(
            total_files=total_files,
            scanned_files=scanned_files,
            skipped_files=skipped_files,
            finding_count=len(findings),
        )
        for f in findings:
            stats.by_severity[f.severity.value] += 1
            stats.by_category[f.category] = stats.by_category.get(f.category, 0) + 1
            stats.by_language[f.language] = stats.by_language.get(f.language, 0) + 1
        return stats


@dataclass(frozen=True)
class ResourceUsage:
    memory_mb: float = 0.0
    cpu_percent: float = 0.0
    disk_io_mb: float = 0.0


@dataclass(frozen=True)
class ScanResult:
    """Immutable summary of a completed scan session."""

    scan_id: str
    config: ScanConfig
    status: ScanStatus
    start_time: float
    end_time: float
    duration: float
    findings: tuple[Finding, ...]
    statistics: ScanStatistics
    resources: ResourceUsage = field(default_factory=ResourceUsage)
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def target_path(self) -> str:
        return self.config.target_path

    def to_dict(self) -> dict:
        return {
            "scan_id": self.scan_id,
            "config": self.config.to_dict(),
            "status": self.status.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "findings": [f.to_dict() for f in self.findings],
            "statistics": {
                "total_files": self.statistics.total_files,
                "scanned_files": self.statistics.scanned_files,
                "skipped_files": self.statistics.skipped_files,
                "finding_count": self.statistics.finding_count,
                "by_severity": dict(self.statistics.by_severity),
                "by_category": dict(self.statistics.by_category),
                "by_language": dict(self.statistics.by_language),
            },
            "resources": {
                "memory_mb": self.resources.memory_mb,
                "cpu_percent": self.resources.cpu_percent,
                "disk_io_mb": self.resources.disk_io_mb,
            },
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ScanResult:
        return cls(
            scan_id=data["scan_id"],
            config=ScanConfig.from_dict(data["config"]),
            status=ScanStatus(data["status"]),
            start_time=data["start_time"],
            end_time=data["end_time"],
            duration=data["duration"],
            findings=tuple(Finding.from_dict(f) for f in data.get("findings", [])),
            statistics=ScanStatistics(**data.get("statistics", {})),
            resources=ResourceUsage(**data.get("resources", {})),
            warnings=tuple(data.get("warnings", ())),
            errors=tuple(data.get("errors", ())),
        )


def _optional_tuple(value) -> tuple | None:
    return tuple(value) if value is not None else None

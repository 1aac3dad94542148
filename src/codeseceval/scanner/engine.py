"""Scan orchestrator — admits, runs, cancels and reports scan sessions."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

import psutil

from codeseceval.config import clamp_concurrency
from codeseceval.errors import ConcurrencyLimitExceeded, DiscoveryFailure, NotFound
from codeseceval.events import Signal
from codeseceval.rules.models import Rule
from codeseceval.rules.store import RuleStore
from codeseceval.scanner.discovery import FileSource, LocalFileSource
from codeseceval.scanner.matcher import MatchingPipeline
from codeseceval.scanner.models import (
    FileInfo,
    Finding,
    ResourceUsage,
    ScanConfig,
    ScanFailure,
    ScanResult,
    ScanSession,
    ScanStatistics,
    ScanStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_SCANS = 3
DEFAULT_TIMEOUT = 1800.0
# Terminal snapshots kept for wait() after a session task has finished
MAX_FINISHED_SESSIONS = 100


class ResultSink(Protocol):
    """Receives completed results (the history store)."""

    async def save_result(self, result: ScanResult) -> object: ...


@dataclass
class ScanEvents:
    scan_started: Signal[ScanSession] = field(
        default_factory=lambda: Signal("scan_started")
    )
    scan_progress: Signal[ScanSession] = field(
        default_factory=lambda: Signal("scan_progress")
    )
    scan_completed: Signal[ScanResult] = field(
        default_factory=lambda: Signal("scan_completed")
    )
    scan_failed: Signal[ScanFailure] = field(
        default_factory=lambda: Signal("scan_failed")
    )
    scan_cancelled: Signal[ScanSession] = field(
        default_factory=lambda: Signal("scan_cancelled")
    )


@dataclass
class _LiveSession:
    session: ScanSession
    cancel_requested: bool = False
    task: asyncio.Task | None = None


class ScanOrchestrator:
    """Runs each admitted scan as an independent asyncio task.

    Within a session work is sequential: discovery, then one file at a
    time. Cancellation and timeouts are checked between files only.
    """

    def __init__(
        self,
        rules: RuleStore,
        results: ResultSink | None = None,
        file_source: FileSource | None = None,
        pipeline: MatchingPipeline | None = None,
        max_concurrent_scans: int = DEFAULT_MAX_CONCURRENT_SCANS,
        default_timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.events = ScanEvents()
        self._rules = rules
        self._results = results
        self._source = file_source or LocalFileSource()
        self._pipeline = pipeline or MatchingPipeline()
        self._max_concurrent = clamp_concurrency(max_concurrent_scans)
        self._default_timeout = default_timeout
        self._clock = clock
        self._live: dict[str, _LiveSession] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._finished: OrderedDict[str, ScanSession] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def max_concurrent_scans(self) -> int:
        return self._max_concurrent

    def set_max_concurrent_scans(self, value: int) -> int:
        """Change the admission ceiling, clamped to 1–10."""
        self._max_concurrent = clamp_concurrency(value)
        return self._max_concurrent

    # --- Commands ---

    def start_scan(self, config: ScanConfig) -> str:
        """Admit a scan and schedule it on the running event loop.

        Raises ConcurrencyLimitExceeded when the ceiling is reached.
        """
        loop = asyncio.get_running_loop()
        session = ScanSession(config=config)
        with self._lock:
            if len(self._live) >= self._max_concurrent:
                raise ConcurrencyLimitExceeded(
                    f"{len(self._live)} scans already active "
                    f"(limit {self._max_concurrent})"
                )
            live = _LiveSession(session=session)
            self._live[session.id] = live

        logger.info("Scan %s admitted for %s", session.id, config.target_path)
        self.events.scan_started.emit(_snapshot(session))
        live.task = loop.create_task(self._run(live), name=f"scan-{session.id}")
        self._tasks[session.id] = live.task
        return session.id

    def cancel_scan(self, session_id: str) -> bool:
        """Request cooperative cancellation. False unless the scan is running."""
        with self._lock:
            live = self._live.get(session_id)
            if (
                live is None
                or live.session.status is not ScanStatus.RUNNING
                or live.cancel_requested
            ):
                return False
            live.cancel_requested = True
        logger.info("Cancellation requested for scan %s", session_id)
        return True

    def get_progress(self, session_id: str) -> ScanSession | None:
        with self._lock:
            live = self._live.get(session_id)
            return _snapshot(live.session) if live else None

    def list_active_sessions(self) -> list[ScanSession]:
        with self._lock:
            return [_snapshot(live.session) for live in self._live.values()]

    async def wait(self, session_id: str) -> ScanSession:
        """Wait for a session to end and return its terminal snapshot.

        Sessions that already ended are answered from the most recent
        ``MAX_FINISHED_SESSIONS`` terminal snapshots.
        """
        task = self._tasks.get(session_id)
        if task is not None:
            return await asyncio.shield(task)
        with self._lock:
            finished = self._finished.get(session_id)
        if finished is None:
            raise NotFound(f"Unknown scan '{session_id}'")
        return finished

    async def shutdown(self) -> None:
        """Cancel every running scan and wait for all sessions to end."""
        with self._lock:
            for live in self._live.values():
                live.cancel_requested = True
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- Session execution ---

    async def _run(self, live: _LiveSession) -> ScanSession:
        session = live.session
        try:
            final = await self._execute(live)
        except Exception as e:
            logger.exception("Scan %s crashed", session.id)
            self._fail(session, f"Internal error: {e}")
            final = _snapshot(session)
        finally:
            with self._lock:
                self._live.pop(session.id, None)
            self._tasks.pop(session.id, None)
        self._remember(final)
        return final

    def _remember(self, session: ScanSession) -> None:
        with self._lock:
            self._finished[session.id] = session
            while len(self._finished) > MAX_FINISHED_SESSIONS:
                self._finished.popitem(last=False)

    async def _execute(self, live: _LiveSession) -> ScanSession:
        session = live.session
        config = session.config
        started = self._clock()
        meter = ResourceMeter()
        timeout = config.timeout if config.timeout is not None else self._default_timeout

        session.status = ScanStatus.RUNNING
        self.events.scan_progress.emit(_snapshot(session))

        try:
            discovery = await self._source.discover(config)
        except (DiscoveryFailure, OSError) as e:
            session.elapsed = self._clock() - started
            self._fail(session, str(e))
            return _snapshot(session)

        files = discovery.files
        session.total_files = len(files)
        self.events.scan_progress.emit(_snapshot(session))

        findings: list[Finding] = []
        warnings: list[str] = []
        scanned = 0
        skipped = discovery.skipped

        for index, file in enumerate(files, start=1):
            stop_reason = self._stop_reason(live, started, timeout)
            if stop_reason:
                session.elapsed = self._clock() - started
                return self._cancel(session, stop_reason)

            session.current_file = file.relative_path
            try:
                content = await self._source.read(file)
            except OSError as e:
                warnings.append(f"{file.relative_path}: unreadable ({e})")
                skipped += 1
            else:
                scanned += 1
                findings.extend(self._match_file(file, content, config, warnings))

            self._record_progress(session, index, len(files), started, len(findings))
            # Yield between files so other sessions and cancel requests get a turn
            await asyncio.sleep(0)

        findings.sort(key=lambda f: (f.file_path, f.start_line))
        session.status = ScanStatus.COMPLETED
        session.progress = 100
        session.current_file = ""
        session.elapsed = self._clock() - started
        session.end_time = time.time()

        result = ScanResult(
            scan_id=session.id,
            config=config,
            status=ScanStatus.COMPLETED,
            start_time=session.start_time,
            end_time=session.end_time,
            duration=session.elapsed,
            findings=tuple(findings),
            statistics=ScanStatistics.from_findings(
                findings,
                total_files=len(files) + discovery.skipped,
                scanned_files=scanned,
                skipped_files=skipped,
            ),
            resources=meter.read(),
            warnings=tuple(warnings),
        )

        if self._results is not None:
            await self._results.save_result(result)

        with self._lock:
            self._live.pop(session.id, None)

        logger.info(
            "Scan %s completed: %d files, %d findings in %.2fs",
            session.id,
            scanned,
            len(findings),
            session.elapsed,
        )
        self.events.scan_progress.emit(_snapshot(session))
        self.events.scan_completed.emit(result)
        return _snapshot(session)

    def _match_file(
        self,
        file: FileInfo,
        content: str,
        config: ScanConfig,
        warnings: list[str],
    ) -> list[Finding]:
        findings: list[Finding] = []
        for rule in self.select_rules(config, file):
            try:
                findings.extend(self._pipeline.match(rule, content, file))
            except Exception as e:
                logger.warning("Rule %s failed on %s: %s", rule.id, file.relative_path, e)
                warnings.append(f"{file.relative_path}: rule {rule.id}: {e}")
        return findings

    def select_rules(self, config: ScanConfig, file: FileInfo) -> list[Rule]:
        """Rules that apply to ``file`` under ``config``.

        An explicit allowlist selects those rules (when enabled) regardless
        of language, and an empty one selects nothing. Without one, enabled
        rules for the file's language apply.
        """
        if config.rule_ids is not None:
            wanted = set(config.rule_ids)
            return [r for r in self._rules.enabled_rules() if r.id in wanted]
        return [r for r in self._rules.enabled_rules() if file.language in r.languages]

    def _stop_reason(self, live: _LiveSession, started: float, timeout: float) -> str:
        with self._lock:
            if live.cancel_requested:
                return "Cancelled by request"
        if timeout and self._clock() - started > timeout:
            return f"Timed out after {timeout:g}s"
        return ""

    def _record_progress(
        self,
        session: ScanSession,
        processed: int,
        total: int,
        started: float,
        findings_count: int,
    ) -> None:
        elapsed = self._clock() - started
        session.processed_files = processed
        session.findings_count = findings_count
        session.elapsed = elapsed
        session.progress = max(session.progress, round(processed / total * 100))
        session.estimated_remaining = estimate_remaining(elapsed, processed, total)
        self.events.scan_progress.emit(_snapshot(session))

    def _cancel(self, session: ScanSession, reason: str) -> ScanSession:
        session.status = ScanStatus.CANCELLED
        session.error = reason
        session.end_time = time.time()
        with self._lock:
            self._live.pop(session.id, None)
        logger.info("Scan %s cancelled: %s", session.id, reason)
        snapshot = _snapshot(session)
        self.events.scan_cancelled.emit(snapshot)
        return snapshot

    def _fail(self, session: ScanSession, message: str) -> None:
        session.status = ScanStatus.FAILED
        session.error = message
        session.end_time = time.time()
        with self._lock:
            self._live.pop(session.id, None)
        logger.warning("Scan %s failed: %s", session.id, message)
        self.events.scan_failed.emit(
            ScanFailure(session_id=session.id, message=message, session=_snapshot(session))
        )


def estimate_remaining(elapsed: float, processed: int, total: int) -> int | None:
    """Average per-file cost times files left. None before the first file."""
    if processed < 1:
        return None
    return round((elapsed / processed) * (total - processed))


def _snapshot(session: ScanSession) -> ScanSession:
    return dataclasses.replace(session)


class ResourceMeter:
    """Samples this process's memory, CPU and disk I/O over one session.

    psutil reports CPU percent relative to the previous call on the same
    ``Process``, so the meter primes it when the session starts and
    ``read`` returns the average since then.
    """

    def __init__(self) -> None:
        self._proc: psutil.Process | None
        try:
            self._proc = psutil.Process()
            self._proc.cpu_percent(interval=None)
        except psutil.Error as e:
            logger.debug("Resource sampling unavailable: %s", e)
            self._proc = None

    def read(self) -> ResourceUsage:
        if self._proc is None:
            return ResourceUsage()
        try:
            memory_mb = self._proc.memory_info().rss / (1024 * 1024)
            cpu = self._proc.cpu_percent(interval=None)
        except psutil.Error as e:
            logger.debug("Resource sampling failed: %s", e)
            return ResourceUsage()

        disk_mb = 0.0
        try:
            io = self._proc.io_counters()
            disk_mb = (io.read_bytes + io.write_bytes) / (1024 * 1024)
        except (AttributeError, psutil.Error):
            # io_counters is unavailable on macOS
            pass

        return ResourceUsage(
            memory_mb=round(memory_mb, 1),
            cpu_percent=round(cpu, 1),
            disk_io_mb=round(disk_mb, 1),
        )

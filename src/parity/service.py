"""Control surface consumed by the CLI (or any other host)."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from contextlib import suppress
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field, ValidationError

from .analysis.analyzer import AnalyzerRegistry
from .analysis.detector import Detector
from .analysis.runner import AnalysisRunner
from .automation.loop import AutomationLoop, RunSummary
from .automation.workers import RoutingWorker, Worker
from .config import ParityConfig
from .conversion.converter import ConversionResult, TestConverter
from .errors import AnalysisUnavailable, ConversionError, ParityError, PersistenceError
from .memory.schema import (
    UNRESOLVED_STATUSES,
    ComponentStatus,
    Issue,
    IssueDraft,
    IssueKind,
    IssueStatus,
    ProgressSnapshot,
    RecordModel,
    RunStatus,
    Task,
    TaskAttempt,
    TaskState,
    utc_now,
)
from .memory.store import ProgressStore
from .planning.prioritizer import Prioritizer

LOGGER = logging.getLogger(__name__)


class ComponentAnalysis(RecordModel):
    component_id: str
    status: ComponentStatus
    inserted: int = 0
    persisted: int = 0
    resolved: int = 0
    unresolved: int = 0
    skipped_reason: str = ""


class AnalysisSummary(RecordModel):
    components: List[ComponentAnalysis] = Field(default_factory=list)

    @property
    def skipped(self) -> List[str]:
        return [entry.component_id for entry in self.components if entry.skipped_reason]

    @property
    def unresolved(self) -> int:
        return sum(entry.unresolved for entry in self.components)


class ComponentRow(RecordModel):
    id: str
    name: str
    weight: int
    status: ComponentStatus
    unresolved_issues: int
    last_analyzed_at: Optional[datetime] = None


class BlockedTask(RecordModel):
    task: Task
    attempts: List[TaskAttempt] = Field(default_factory=list)


class StatusReport(RecordModel):
    run: RunStatus
    components: List[ComponentRow] = Field(default_factory=list)
    queued: int = 0
    dispatched: int = 0
    blocked: List[BlockedTask] = Field(default_factory=list)


class ReadinessSummary(RecordModel):
    components_total: int = 0
    components_complete: int = 0
    completion_percent: float = 0.0
    reference_tests: int = 0
    converted_tests: int = 0
    test_coverage_percent: float = 0.0
    placeholder_count: int = 0
    mock_data_count: int = 0
    unresolved_issues: int = 0
    blocked_tasks: int = 0
    production_ready: bool = False


class ParityReport(RecordModel):
    generated_at: datetime = Field(default_factory=utc_now)
    summary: ReadinessSummary = Field(default_factory=ReadinessSummary)
    snapshot: ProgressSnapshot = Field(default_factory=ProgressSnapshot)


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 100.0
    return round(100.0 * part / whole, 1)


class ParityService:
    """One method per host command; all state lives in the progress store."""

    def __init__(
        self,
        config: ParityConfig,
        store: ProgressStore,
        *,
        analyzers: Optional[AnalyzerRegistry] = None,
        detector: Optional[Detector] = None,
        worker: Optional[Worker] = None,
        converter: Optional[TestConverter] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.analyzers = analyzers or AnalyzerRegistry.from_config(config)
        self.detector = detector or Detector.from_config(config)
        self.runner = AnalysisRunner(store, self.analyzers, self.detector)
        self.prioritizer = Prioritizer(store, age_decay=config.automation.age_decay)
        self._worker = worker
        self.converter = converter or TestConverter(
            config.conversion.target_dialect,
            symbols=config.mappings.symbols,
            types=config.mappings.types,
        )
        self.loop: Optional[AutomationLoop] = None
        self.sync_components()

    @classmethod
    def from_config(cls, config: ParityConfig) -> "ParityService":
        return cls(config, ProgressStore.from_config(config))

    def close(self) -> None:
        self.store.close()

    def sync_components(self) -> None:
        for component in self.config.component_records():
            self.store.upsert_component(component)

    @property
    def worker(self) -> Worker:
        if self._worker is None:
            self._worker = RoutingWorker.from_config(self.config)
        return self._worker

    # analyze-project / validate-component / compare-with-reference -------------
    def analyze_project(self) -> AnalysisSummary:
        summary = AnalysisSummary()
        for component in self.store.list_components():
            summary.components.append(self._analyze(component.id))
        return summary

    def validate_component(self, component_id: str) -> ComponentAnalysis:
        self.store.require_component(component_id)
        return self._analyze(component_id)

    def _analyze(self, component_id: str) -> ComponentAnalysis:
        component = self.store.require_component(component_id)
        try:
            diff = self.runner.run_component(component)
        except AnalysisUnavailable as error:
            LOGGER.warning("Skipping component %s: %s", component_id, error.reason)
            return ComponentAnalysis(
                component_id=component_id,
                status=component.status,
                unresolved=len(component.open_issue_ids),
                skipped_reason=error.reason,
            )
        refreshed = self.store.require_component(component_id)
        return ComponentAnalysis(
            component_id=component_id,
            status=refreshed.status,
            inserted=len(diff.inserted),
            persisted=len(diff.persisted),
            resolved=len(diff.resolved),
            unresolved=diff.unresolved_count,
        )

    def compare_with_reference(self, component_id: str) -> List[IssueDraft]:
        """Raw analyzer drafts for one component; nothing is recorded."""
        component = self.store.require_component(component_id)
        return self.analyzers.analyze(component)

    # start-automation / stop-automation -----------------------------------------
    def build_loop(self) -> AutomationLoop:
        return AutomationLoop(
            self.store,
            self.runner,
            self.prioritizer,
            self.worker,
            settings=self.config.automation,
        )

    async def start_automation(self, *, handle_signals: bool = False) -> RunSummary:
        if self.loop is not None:
            raise ParityError("Automation is already running in this process")
        self.loop = self.build_loop()
        event_loop = asyncio.get_running_loop()
        installed: List[int] = []
        if handle_signals:
            for signum in (signal.SIGINT, signal.SIGTERM):
                # add_signal_handler is unavailable on Windows event loops
                with suppress(NotImplementedError, RuntimeError):
                    event_loop.add_signal_handler(signum, self.loop.request_stop)
                    installed.append(signum)
        try:
            return await self.loop.run()
        finally:
            for signum in installed:
                event_loop.remove_signal_handler(signum)
            self.loop = None

    def stop_automation(self) -> RunStatus:
        """Stop the in-process loop, or flag a loop running in another process."""
        if self.loop is not None:
            self.loop.request_stop()
        return self.store.request_stop()

    # show-status ----------------------------------------------------------------
    def show_status(self) -> StatusReport:
        components = self.store.list_components()
        tasks = self.store.list_tasks()
        blocked = [
            BlockedTask(task=task, attempts=self.store.list_attempts(task.id))
            for task in tasks
            if task.state == TaskState.BLOCKED
        ]
        return StatusReport(
            run=self.store.get_run_status(),
            components=[
                ComponentRow(
                    id=component.id,
                    name=component.name,
                    weight=component.weight,
                    status=component.status,
                    unresolved_issues=len(component.open_issue_ids),
                    last_analyzed_at=component.last_analyzed_at,
                )
                for component in components
            ],
            queued=sum(1 for task in tasks if task.state == TaskState.QUEUED),
            dispatched=sum(1 for task in tasks if task.state == TaskState.DISPATCHED),
            blocked=blocked,
        )

    # clear-task-queue / prioritize-tasks / manual intervention --------------------
    def clear_task_queue(self) -> int:
        removed = self.store.delete_tasks([TaskState.QUEUED])
        LOGGER.info("Cleared %d queued task(s)", removed)
        return removed

    def prioritize_tasks(self) -> List[Task]:
        return list(self.prioritizer.rebuild().queue)

    def suppress_issue(self, issue_id: str) -> Issue:
        issue = self.store.get_issue(issue_id)
        if issue is None:
            raise ParityError(f"Unknown issue '{issue_id}'")
        if issue.status == IssueStatus.SUPPRESSED:
            return issue
        changed = self.store.set_issue_status([issue_id], IssueStatus.SUPPRESSED, only_from=UNRESOLVED_STATUSES)
        if not changed:
            raise ParityError(f"Issue '{issue_id}' is {issue.status.value.lower()} and cannot be suppressed")
        LOGGER.info("Suppressed issue %s (%s)", issue_id, issue.location.render())
        return self.store.get_issue(issue_id) or issue

    def unblock_task(self, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise ParityError(f"Unknown task '{task_id}'")
        if task.state != TaskState.BLOCKED:
            raise ParityError(f"Task '{task_id}' is {task.state.value.lower()}, not blocked")
        self.store.delete_task(task_id)
        LOGGER.info("Unblocked task %s for %s", task_id, task.component_id)
        return task

    # convert-test ---------------------------------------------------------------
    def resolve_reference_file(self, path: Path | str) -> Path:
        candidate = Path(path)
        if candidate.exists():
            return candidate
        for root in (self.config.reference_root, self.config.workspace_root):
            if (root / candidate).exists():
                return root / candidate
        raise ConversionError(f"Reference test file not found: {path}")

    def convert_test(self, path: Path | str) -> ConversionResult:
        source = self.resolve_reference_file(path)
        return self.converter.convert_file(source, display_path=Path(path).as_posix())

    def default_conversion_path(self, result: ConversionResult) -> Path:
        return self.config.target_root / self.config.conversion.output_dir / result.target_file

    def write_conversion(self, result: ConversionResult, output: Optional[Path] = None) -> Path:
        destination = output or self.default_conversion_path(result)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_text(result.content, encoding="utf-8")
        except OSError as error:
            raise ConversionError(f"Unable to write {destination}: {error}") from error
        return destination

    # show-report / import-snapshot ----------------------------------------------
    def show_report(self) -> ParityReport:
        snapshot = self.store.snapshot()
        unresolved = [issue for issue in snapshot.issues if issue.is_unresolved]
        complete = sum(1 for component in snapshot.components if component.status == ComponentStatus.COMPLETE)
        reference_tests, converted_tests = self._test_coverage()
        summary = ReadinessSummary(
            components_total=len(snapshot.components),
            components_complete=complete,
            completion_percent=_percent(complete, len(snapshot.components)),
            reference_tests=reference_tests,
            converted_tests=converted_tests,
            test_coverage_percent=_percent(converted_tests, reference_tests),
            placeholder_count=sum(1 for issue in unresolved if issue.kind == IssueKind.PLACEHOLDER),
            mock_data_count=sum(1 for issue in unresolved if issue.kind == IssueKind.MOCK_DATA),
            unresolved_issues=len(unresolved),
            blocked_tasks=sum(1 for task in snapshot.tasks if task.state == TaskState.BLOCKED),
            production_ready=bool(snapshot.components) and complete == len(snapshot.components),
        )
        return ParityReport(summary=summary, snapshot=snapshot)

    def _test_coverage(self) -> tuple[int, int]:
        reference_total = 0
        converted_total = 0
        for component in self.store.list_components():
            try:
                analyzer = self.analyzers.for_component(component)
            except AnalysisUnavailable:
                continue
            coverage = getattr(analyzer, "test_coverage", None)
            if coverage is None:
                continue
            try:
                reference, converted = coverage(component)
            except AnalysisUnavailable as error:
                LOGGER.debug("No test coverage for %s: %s", component.id, error.reason)
                continue
            reference_total += reference
            converted_total += converted
        return reference_total, converted_total

    def import_snapshot(self, path: Path) -> ProgressSnapshot:
        """Replace the store with a snapshot file or the snapshot inside a JSON report."""
        try:
            data: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            raise PersistenceError(f"Unable to read snapshot {path}: {error}") from error
        if isinstance(data, dict) and "snapshot" in data:
            data = data["snapshot"]
        try:
            snapshot = ProgressSnapshot.model_validate(data)
        except ValidationError as error:
            raise PersistenceError(f"Invalid snapshot {path}: {error}") from error
        self.store.restore(snapshot)
        LOGGER.info(
            "Imported snapshot with %d component(s), %d issue(s), %d task(s)",
            len(snapshot.components),
            len(snapshot.issues),
            len(snapshot.tasks),
        )
        return snapshot


__all__ = [
    "AnalysisSummary",
    "ComponentAnalysis",
    "ParityReport",
    "ParityService",
    "ReadinessSummary",
    "StatusReport",
]

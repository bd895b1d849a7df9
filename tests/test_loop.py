from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List

import pytest

from parity.analysis.analyzer import AnalyzerRegistry
from parity.analysis.runner import AnalysisRunner
from parity.automation.loop import AutomationLoop, backoff_delay
from parity.automation.workers import WorkOrder, WorkerOutcome
from parity.config import AutomationSettings
from parity.errors import WorkerFailure
from parity.memory.schema import (
    Component,
    ComponentStatus,
    IssueDraft,
    IssueKind,
    IssueSeverity,
    IssueStatus,
    RunState,
    SourceLocation,
    Task,
    TaskState,
)
from parity.memory.store import ProgressStore
from parity.planning.prioritizer import Prioritizer


class StaticAnalyzer:
    """Reports whatever drafts a test has planted for each component."""

    def __init__(self) -> None:
        self.drafts: Dict[str, List[IssueDraft]] = defaultdict(list)

    def plant(self, component_id: str, *lines: int, kind: IssueKind = IssueKind.PLACEHOLDER) -> None:
        for line in lines:
            self.drafts[component_id].append(
                IssueDraft(
                    component_id=component_id,
                    kind=kind,
                    severity=IssueSeverity.WARNING,
                    location=SourceLocation(path=f"target/{component_id}.rs", line_start=line, line_end=line),
                    description=f"{kind.value} on line {line}",
                )
            )

    def fix(self, order: WorkOrder) -> None:
        fixed = {issue.fingerprint for issue in order.issues}
        self.drafts[order.component_id] = [
            draft for draft in self.drafts[order.component_id] if draft.fingerprint not in fixed
        ]

    def analyze(self, component: Component) -> List[IssueDraft]:
        return list(self.drafts[component.id])


def _one_draft(component_id: str) -> List[IssueDraft]:
    analyzer = StaticAnalyzer()
    analyzer.plant(component_id, 1)
    return analyzer.drafts[component_id]


class NoDetector:
    def scan(self, component: Component) -> List[IssueDraft]:
        return []


class FixingWorker:
    def __init__(self, analyzer: StaticAnalyzer, delay: float = 0.0) -> None:
        self.analyzer = analyzer
        self.delay = delay
        self.orders: List[WorkOrder] = []
        self.active: Dict[str, int] = defaultdict(int)
        self.peak_per_component = 0
        self.peak_total = 0

    async def dispatch(self, order: WorkOrder) -> WorkerOutcome:
        self.orders.append(order)
        self.active[order.component_id] += 1
        self.peak_per_component = max(self.peak_per_component, self.active[order.component_id])
        self.peak_total = max(self.peak_total, sum(self.active.values()))
        try:
            await asyncio.sleep(self.delay)
            self.analyzer.fix(order)
        finally:
            self.active[order.component_id] -= 1
        return WorkerOutcome(succeeded=True, message="fixed")


class FailingWorker:
    def __init__(self, raise_error: bool = False) -> None:
        self.raise_error = raise_error
        self.calls = 0

    async def dispatch(self, order: WorkOrder) -> WorkerOutcome:
        self.calls += 1
        if self.raise_error:
            raise WorkerFailure("agent unreachable")
        return WorkerOutcome(succeeded=False, message="compile error")


class GatedWorker(FixingWorker):
    def __init__(self, analyzer: StaticAnalyzer) -> None:
        super().__init__(analyzer)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def dispatch(self, order: WorkOrder) -> WorkerOutcome:
        self.started.set()
        await self.release.wait()
        return await super().dispatch(order)


def _components(store: ProgressStore, *ids: str) -> None:
    for position, component_id in enumerate(ids):
        store.upsert_component(
            Component(
                id=component_id,
                name=component_id,
                reference_path=component_id,
                target_path=component_id,
                weight=5,
                position=position,
            )
        )


def _loop(store: ProgressStore, analyzer: StaticAnalyzer, worker, **settings) -> AutomationLoop:
    options = {
        "concurrency": 2,
        "retry_ceiling": 3,
        "cycle_interval": 0.02,
        "backoff_seconds": 0.0,
        "max_backoff_seconds": 0.0,
        "max_cycles": 20,
    }
    options.update(settings)
    runner = AnalysisRunner(store, AnalyzerRegistry({"api-surface": analyzer}), NoDetector())
    return AutomationLoop(store, runner, Prioritizer(store), worker, settings=AutomationSettings(**options))


@pytest.fixture()
def store(tmp_path):
    with ProgressStore(tmp_path / "parity.sqlite") as progress:
        yield progress


def test_loop_runs_until_every_component_is_complete(store) -> None:
    _components(store, "core", "net")
    analyzer = StaticAnalyzer()
    analyzer.plant("core", 1, 2)
    analyzer.plant("net", 5)
    worker = FixingWorker(analyzer)

    summary = asyncio.run(_loop(store, analyzer, worker).run())

    assert summary.completed is True
    assert summary.stopped is False
    assert summary.succeeded == 2
    assert summary.final_state == RunState.IDLE
    assert all(component.status == ComponentStatus.COMPLETE for component in store.list_components())
    assert store.list_tasks() == []
    assert store.get_run_status().state == RunState.IDLE
    assert [attempt.succeeded for attempt in store.list_attempts()] == [True, True]


def test_already_complete_project_needs_one_cycle(store) -> None:
    _components(store, "core")
    worker = FixingWorker(StaticAnalyzer())
    summary = asyncio.run(_loop(store, worker.analyzer, worker).run())
    assert summary.completed is True
    assert summary.cycles == 1
    assert worker.orders == []


def test_failing_task_is_blocked_at_retry_ceiling(store) -> None:
    _components(store, "core")
    analyzer = StaticAnalyzer()
    analyzer.plant("core", 1)
    worker = FailingWorker()

    summary = asyncio.run(_loop(store, analyzer, worker, retry_ceiling=2, max_cycles=6).run())

    assert worker.calls == 2
    assert summary.completed is False
    assert summary.failed == 2
    [task] = store.list_tasks()
    assert task.state == TaskState.BLOCKED
    assert task.attempts == 2
    assert task.last_error == "compile error"
    assert summary.blocked == [task.id]
    assert [attempt.attempt for attempt in store.list_attempts(task.id)] == [1, 2]
    assert [issue.status for issue in store.list_issues("core")] == [IssueStatus.OPEN]
    assert store.require_component("core").status == ComponentStatus.INCOMPLETE


def test_worker_failure_exception_counts_as_failed_attempt(store) -> None:
    _components(store, "core")
    analyzer = StaticAnalyzer()
    analyzer.plant("core", 1)

    asyncio.run(_loop(store, analyzer, FailingWorker(raise_error=True), retry_ceiling=1, max_cycles=2).run())

    [attempt] = store.list_attempts()
    assert attempt.succeeded is False
    assert attempt.message == "agent unreachable"
    assert store.list_tasks()[0].state == TaskState.BLOCKED


def test_failed_task_waits_for_backoff(store) -> None:
    _components(store, "core")
    analyzer = StaticAnalyzer()
    analyzer.plant("core", 1)
    worker = FailingWorker()

    asyncio.run(
        _loop(store, analyzer, worker, backoff_seconds=60.0, max_backoff_seconds=60.0, max_cycles=3).run()
    )

    assert worker.calls == 1
    [task] = store.list_tasks()
    assert task.state == TaskState.QUEUED
    assert task.not_before is not None
    assert task.not_before > task.last_attempt_at


def test_one_dispatched_task_per_component(store) -> None:
    _components(store, "core", "net")
    analyzer = StaticAnalyzer()
    analyzer.plant("core", 1)
    analyzer.plant("core", 2, kind=IssueKind.TEST_GAP)
    analyzer.plant("net", 3)
    worker = FixingWorker(analyzer, delay=0.05)

    summary = asyncio.run(_loop(store, analyzer, worker, concurrency=3).run())

    assert summary.completed is True
    assert len(worker.orders) == 3
    assert worker.peak_per_component == 1
    assert worker.peak_total == 2


def test_stop_request_lets_in_flight_work_finish(store, caplog) -> None:
    _components(store, "core")
    analyzer = StaticAnalyzer()
    analyzer.plant("core", 1)
    worker = GatedWorker(analyzer)
    loop = _loop(store, analyzer, worker, cycle_interval=5.0)

    async def scenario():
        run = asyncio.ensure_future(loop.run())
        await worker.started.wait()
        loop.request_stop()
        await asyncio.sleep(0.05)
        assert loop.in_flight == 1
        worker.release.set()
        return await run

    with caplog.at_level(logging.INFO, logger="parity.automation.loop"):
        summary = asyncio.run(scenario())

    assert summary.stopped is True
    assert summary.succeeded == 1
    assert [attempt.succeeded for attempt in store.list_attempts()] == [True]
    status = store.get_run_status()
    assert status.state == RunState.STOPPED
    assert status.stop_requested is False
    assert "run state STOPPING -> STOPPED" in caplog.text
    assert summary.final_state == RunState.STOPPED


def test_persisted_stop_flag_is_honoured(store, tmp_path) -> None:
    _components(store, "core")
    analyzer = StaticAnalyzer()
    analyzer.plant("core", 1)
    worker = GatedWorker(analyzer)
    loop = _loop(store, analyzer, worker, cycle_interval=5.0)

    async def scenario():
        run = asyncio.ensure_future(loop.run())
        await worker.started.wait()
        with ProgressStore(tmp_path / "parity.sqlite") as other_process:
            other_process.request_stop()
        worker.release.set()
        return await run

    summary = asyncio.run(scenario())
    assert summary.stopped is True
    assert summary.succeeded == 1
    assert store.get_run_status().state == RunState.STOPPED

    rerun = asyncio.run(_loop(store, analyzer, FixingWorker(analyzer)).run())
    assert rerun.completed is True
    assert store.get_run_status().state == RunState.IDLE


def test_recover_requeues_interrupted_dispatches(store) -> None:
    _components(store, "core")
    issue = store.record_issues("core", _one_draft("core")).inserted[0]
    store.mark_dispatched(
        Task(id="TSK-stale", component_id="core", issue_ids=[issue.id], state=TaskState.DISPATCHED, attempts=1)
    )
    assert store.get_issue(issue.id).status == IssueStatus.IN_PROGRESS

    loop = _loop(store, StaticAnalyzer(), FailingWorker())
    assert loop.recover() == ["TSK-stale"]
    assert store.get_task("TSK-stale").state == TaskState.QUEUED
    assert store.get_task("TSK-stale").attempts == 1
    assert store.get_issue(issue.id).status == IssueStatus.OPEN


def test_reconcile_dispatched_logs_inconsistency(store, caplog) -> None:
    _components(store, "core")
    issue = store.record_issues("core", _one_draft("core")).inserted[0]
    store.mark_dispatched(Task(id="TSK-orphan", component_id="core", issue_ids=[issue.id], state=TaskState.DISPATCHED))

    loop = _loop(store, StaticAnalyzer(), FailingWorker())
    with caplog.at_level(logging.ERROR, logger="parity.automation.loop"):
        assert loop.reconcile_dispatched() == ["TSK-orphan"]
    assert "without a running worker" in caplog.text
    assert store.get_task("TSK-orphan").state == TaskState.QUEUED


def test_interrupted_run_resumes_after_restart(store) -> None:
    _components(store, "core")
    analyzer = StaticAnalyzer()
    analyzer.plant("core", 1)
    issue = store.record_issues("core", analyzer.analyze(store.require_component("core"))).inserted[0]
    store.mark_dispatched(Task(id="TSK-crash", component_id="core", issue_ids=[issue.id], state=TaskState.DISPATCHED, attempts=1))

    worker = FixingWorker(analyzer)
    summary = asyncio.run(_loop(store, analyzer, worker).run())

    assert summary.completed is True
    assert [order.task_id for order in worker.orders] == ["TSK-crash"]
    assert worker.orders[0].attempt == 2


def test_backoff_delay_doubles_up_to_ceiling() -> None:
    assert backoff_delay(0, base=1.0, ceiling=10.0) == 0.0
    assert backoff_delay(1, base=1.0, ceiling=10.0) == 1.0
    assert backoff_delay(3, base=1.0, ceiling=10.0) == 4.0
    assert backoff_delay(6, base=1.0, ceiling=10.0) == 10.0

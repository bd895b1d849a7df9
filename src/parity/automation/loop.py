"""Supervising state machine that drives components toward parity.

One coroutine owns every run-state transition and every task-state write.
Workers run as concurrent asyncio tasks; done-callbacks record which one
finished and the loop applies their results one at a time, in the order
the workers finished. A stop request (in process through
:meth:`AutomationLoop.request_stop`, or from another process through the
persisted stop flag) is checked before every transition; in-flight work is
allowed to finish and its outcome is recorded before the loop reports
``STOPPED``. That state stays persisted until the next run resets it to
``IDLE``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from ..analysis.analyzer import AnalyzerRegistry
from ..analysis.detector import Detector
from ..analysis.runner import AnalysisRunner
from ..config import AutomationSettings
from ..errors import AnalysisUnavailable, PersistenceError, QueueInconsistency, WorkerFailure
from ..memory.schema import (
    Component,
    ComponentStatus,
    IssueDraft,
    IssueStatus,
    RunState,
    RunStatus,
    Task,
    TaskAttempt,
    TaskState,
    utc_now,
)
from ..memory.store import ProgressStore
from ..planning.prioritizer import Prioritizer, TaskQueue
from .workers import RoutingWorker, WorkOrder, Worker, WorkerOutcome

if TYPE_CHECKING:
    from ..config import ParityConfig

LOGGER = logging.getLogger(__name__)

STOP_POLL_INTERVAL = 1.0


@dataclass(slots=True)
class RunSummary:
    cycles: int = 0
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    blocked: List[str] = field(default_factory=list)
    completed: bool = False
    stopped: bool = False
    final_state: RunState = RunState.IDLE

    def to_dict(self) -> Dict[str, object]:
        return {
            "cycles": self.cycles,
            "dispatched": self.dispatched,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "blocked": list(self.blocked),
            "completed": self.completed,
            "stopped": self.stopped,
            "final_state": self.final_state.value,
        }


@dataclass(slots=True)
class _InFlight:
    task: Task
    started_at: datetime
    job: "asyncio.Task[WorkerOutcome]"


def backoff_delay(attempts: int, *, base: float, ceiling: float) -> float:
    """Seconds a task waits after its ``attempts``-th failure."""
    if attempts <= 0 or base <= 0:
        return 0.0
    return min(base * 2 ** (attempts - 1), ceiling)


class AutomationLoop:
    """Analyze, prioritize, dispatch and await until complete or asked to stop."""

    def __init__(
        self,
        store: ProgressStore,
        runner: AnalysisRunner,
        prioritizer: Prioritizer,
        worker: Worker,
        *,
        settings: Optional[AutomationSettings] = None,
    ) -> None:
        self.store = store
        self.runner = runner
        self.prioritizer = prioritizer
        self.worker = worker
        self.settings = settings or AutomationSettings()
        self.status = RunStatus()
        self._running: Dict[str, _InFlight] = {}
        self._completed: List[str] = []
        self._wakeup: Optional[asyncio.Event] = None
        self._stop_flag = False

    @classmethod
    def from_config(
        cls,
        config: "ParityConfig",
        store: ProgressStore,
        *,
        worker: Optional[Worker] = None,
    ) -> "AutomationLoop":
        runner = AnalysisRunner(store, AnalyzerRegistry.from_config(config), Detector.from_config(config))
        prioritizer = Prioritizer(store, age_decay=config.automation.age_decay)
        return cls(
            store,
            runner,
            prioritizer,
            worker or RoutingWorker.from_config(config),
            settings=config.automation,
        )

    @property
    def state(self) -> RunState:
        return self.status.state

    @property
    def in_flight(self) -> int:
        return len(self._running)

    # Control --------------------------------------------------------------------
    def request_stop(self) -> None:
        """Ask the loop to stop; safe to call from signal handlers."""
        if not self._stop_flag:
            LOGGER.info("Stop requested")
        self._stop_flag = True
        if self._wakeup is not None:
            self._wakeup.set()

    def _stop_pending(self) -> bool:
        if not self._stop_flag and self.store.stop_requested():
            self.request_stop()
        return self._stop_flag

    def _transition(self, state: RunState, *, poll: bool = True, **changes: object) -> None:
        previous = self.status.state
        if poll:
            self._stop_pending()
        self.status = self.status.model_copy(
            update={
                "state": state,
                "in_flight": len(self._running),
                "stop_requested": self._stop_flag,
                "updated_at": utc_now(),
                **changes,
            }
        )
        self.store.save_run_status(self.status)
        if previous != state:
            LOGGER.info("run state %s -> %s", previous.value, state.value)

    def _enter(self, state: RunState) -> bool:
        """Transition unless a stop is pending."""
        if self._stop_pending():
            return False
        self._transition(state)
        return True

    # Run ------------------------------------------------------------------------
    async def run(self) -> RunSummary:
        """Cycle until every component is complete, ``max_cycles`` is hit, or a stop."""
        self._wakeup = asyncio.Event()
        self._completed = []
        self._stop_flag = False
        summary = RunSummary()
        self.recover()
        self.status = RunStatus(state=RunState.IDLE, started_at=utc_now())
        self.store.save_run_status(self.status)
        try:
            if await self._cycle(summary):
                self._transition(RunState.IDLE)
            else:
                await self._shutdown(summary)
        except PersistenceError as error:
            LOGGER.error("Progress store failure, stopping automation: %s", error)
            self._abandon_in_flight()
            self.status = self.status.model_copy(
                update={"state": RunState.STOPPED, "in_flight": 0, "last_error": str(error), "updated_at": utc_now()}
            )
            summary.final_state = RunState.STOPPED
            summary.stopped = True
            try:
                self.store.save_run_status(self.status)
            except PersistenceError as nested:
                LOGGER.error("Unable to persist stopped state: %s", nested)
            raise
        summary.final_state = self.status.state
        return summary

    async def _cycle(self, summary: RunSummary) -> bool:
        """Return ``True`` when the run ended normally, ``False`` on a stop request."""
        while True:
            if self.settings.max_cycles and summary.cycles >= self.settings.max_cycles:
                LOGGER.info("Reached max_cycles=%d", self.settings.max_cycles)
                await self._drain(summary)
                return True
            if not self._enter(RunState.ANALYZING):
                return False
            summary.cycles += 1
            self.status = self.status.model_copy(update={"cycle": summary.cycles})
            components = self.store.list_components()
            busy = self._busy_components()
            idle = [component for component in components if component.id not in busy]
            drafts = self._analyze(idle)

            if not self._enter(RunState.DETECTING):
                return False
            self._detect(idle, drafts)
            for component in idle:
                if component.id in drafts:
                    self.runner.record(component, drafts[component.id])

            if self._all_complete() and not self._running:
                summary.completed = True
                LOGGER.info("Every component is complete after %d cycle(s)", summary.cycles)
                return True

            if not self._enter(RunState.PRIORITIZING):
                return False
            self.reconcile_dispatched()
            queue = self.prioritizer.rebuild().queue

            if not self._enter(RunState.DISPATCHING):
                return False
            self._dispatch_ready(queue, summary)

            if not self._enter(RunState.AWAITING):
                return False
            await self._await_progress(queue, summary)

    # Analyzing / detecting ------------------------------------------------------
    def _analyze(self, components: List[Component]) -> Dict[str, List[IssueDraft]]:
        drafts: Dict[str, List[IssueDraft]] = {}
        for component in components:
            try:
                drafts[component.id] = self.runner.analyze(component)
            except AnalysisUnavailable as error:
                LOGGER.warning("Skipping component %s this cycle: %s", component.id, error.reason)
        return drafts

    def _detect(self, components: List[Component], drafts: Dict[str, List[IssueDraft]]) -> None:
        for component in components:
            if component.id not in drafts:
                continue
            try:
                drafts[component.id].extend(self.runner.detect(component))
            except AnalysisUnavailable as error:
                LOGGER.warning("Skipping component %s this cycle: %s", component.id, error.reason)
                del drafts[component.id]

    def _all_complete(self) -> bool:
        components = self.store.list_components()
        return bool(components) and all(component.status == ComponentStatus.COMPLETE for component in components)

    # Prioritizing / dispatching -------------------------------------------------
    def recover(self) -> List[str]:
        """Return tasks a previous process left dispatched to the queue."""
        stale = self.store.list_tasks(states=[TaskState.DISPATCHED])
        stale = [task for task in stale if task.id not in self._running]
        if not stale:
            return []
        issue_ids = [issue_id for task in stale for issue_id in task.issue_ids]
        self.store.save_tasks([task.model_copy(update={"state": TaskState.QUEUED}) for task in stale])
        self.store.set_issue_status(issue_ids, IssueStatus.OPEN, only_from=[IssueStatus.IN_PROGRESS])
        LOGGER.info("Returned %d interrupted task(s) to the queue", len(stale))
        return [task.id for task in stale]

    def reconcile_dispatched(self) -> List[str]:
        """Force dispatched tasks this loop is not running back to the queue."""
        dispatched = self.store.list_tasks(states=[TaskState.DISPATCHED])
        extras = [task for task in dispatched if task.id not in self._running]
        if not extras:
            return []
        components = sorted({task.component_id for task in extras})
        error = QueueInconsistency(
            f"{len(extras)} dispatched task(s) without a running worker on {', '.join(components)}"
        )
        LOGGER.error("%s; returning them to the queue", error)
        self.store.save_tasks([task.model_copy(update={"state": TaskState.QUEUED}) for task in extras])
        self.store.set_issue_status(
            [issue_id for task in extras for issue_id in task.issue_ids],
            IssueStatus.OPEN,
            only_from=[IssueStatus.IN_PROGRESS],
        )
        return [task.id for task in extras]

    def _busy_components(self) -> Set[str]:
        return {entry.task.component_id for entry in self._running.values()}

    def _dispatch_ready(self, queue: TaskQueue, summary: RunSummary) -> None:
        busy = self._busy_components()
        while len(self._running) < self.settings.concurrency:
            if self._stop_pending():
                return
            task = queue.pop_next(busy)
            if task is None:
                return
            self._dispatch(task)
            busy.add(task.component_id)
            summary.dispatched += 1

    def _dispatch(self, task: Task) -> None:
        started = utc_now()
        dispatched = task.model_copy(
            update={
                "state": TaskState.DISPATCHED,
                "attempts": task.attempts + 1,
                "last_attempt_at": started,
                "not_before": None,
            }
        )
        self.store.mark_dispatched(dispatched)
        order = self._work_order(dispatched)
        LOGGER.info(
            "Dispatching %s (%s) for %s, attempt %d",
            dispatched.id,
            dispatched.kind.value,
            dispatched.component_id,
            dispatched.attempts,
        )
        job = asyncio.ensure_future(self.worker.dispatch(order))
        self._running[dispatched.id] = _InFlight(task=dispatched, started_at=started, job=job)
        job.add_done_callback(lambda _job, task_id=dispatched.id: self._on_done(task_id))
        self.status = self.status.model_copy(update={"in_flight": len(self._running)})

    def _work_order(self, task: Task) -> WorkOrder:
        component = self.store.require_component(task.component_id)
        issues = [issue for issue in (self.store.get_issue(issue_id) for issue_id in task.issue_ids) if issue]
        return WorkOrder(
            task_id=task.id,
            component_id=task.component_id,
            kind=task.kind,
            attempt=task.attempts,
            reference_path=component.reference_path,
            target_path=component.target_path,
            issues=issues,
        )

    # Awaiting -------------------------------------------------------------------
    def _on_done(self, task_id: str) -> None:
        self._completed.append(task_id)
        if self._wakeup is not None:
            self._wakeup.set()

    async def _await_progress(self, queue: TaskQueue, summary: RunSummary) -> None:
        """Block until a worker finishes, the cycle timer fires, or a stop arrives."""
        assert self._wakeup is not None
        timeout = self.settings.cycle_interval
        ready_at = queue.next_ready_at(self._busy_components())
        if ready_at is not None and len(self._running) < self.settings.concurrency:
            timeout = min(timeout, max((ready_at - utc_now()).total_seconds(), 0.0))
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            if self._apply_pending(summary):
                return
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0 or self._stop_pending():
                return
            # the persisted stop flag is polled between short waits
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=min(remaining, STOP_POLL_INTERVAL))
            except asyncio.TimeoutError:
                continue

    def _apply_pending(self, summary: RunSummary) -> bool:
        """Apply finished workers in the order they finished."""
        if self._wakeup is not None:
            self._wakeup.clear()
        applied = False
        while self._completed:
            self._apply(self._completed.pop(0), summary)
            applied = True
        return applied

    def _apply(self, task_id: str, summary: RunSummary) -> None:
        entry = self._running.pop(task_id, None)
        if entry is None:
            return
        task = entry.task
        try:
            outcome = entry.job.result()
        except WorkerFailure as error:
            outcome = WorkerOutcome(succeeded=False, message=str(error))
        except Exception as error:  # noqa: BLE001 - a crashing worker is a failed attempt
            LOGGER.exception("Worker raised for %s", task.id)
            outcome = WorkerOutcome(succeeded=False, message=f"{type(error).__name__}: {error}")
        finished = utc_now()
        attempt = TaskAttempt(
            task_id=task.id,
            attempt=task.attempts,
            started_at=entry.started_at,
            finished_at=finished,
            succeeded=outcome.succeeded,
            message=outcome.message,
        )
        if outcome.succeeded:
            self.store.complete_dispatch(task.model_copy(update={"state": TaskState.SUCCEEDED}), attempt, delete=True)
            summary.succeeded += 1
            LOGGER.info("Task %s for %s succeeded: %s", task.id, task.component_id, outcome.message)
        else:
            summary.failed += 1
            if task.attempts >= self.settings.retry_ceiling:
                updated = task.model_copy(update={"state": TaskState.BLOCKED, "last_error": outcome.message})
                summary.blocked.append(task.id)
                LOGGER.warning(
                    "Task %s for %s blocked after %d attempt(s): %s",
                    task.id,
                    task.component_id,
                    task.attempts,
                    outcome.message,
                )
            else:
                delay = backoff_delay(
                    task.attempts,
                    base=self.settings.backoff_seconds,
                    ceiling=self.settings.max_backoff_seconds,
                )
                updated = task.model_copy(
                    update={
                        "state": TaskState.QUEUED,
                        "last_error": outcome.message,
                        "not_before": (task.last_attempt_at or finished) + timedelta(seconds=delay),
                    }
                )
                LOGGER.warning(
                    "Worker failed for %s (attempt %d/%d): %s",
                    task.id,
                    task.attempts,
                    self.settings.retry_ceiling,
                    outcome.message,
                )
            self.store.complete_dispatch(updated, attempt, delete=False)
        self.status = self.status.model_copy(update={"in_flight": len(self._running)})

    # Stopping -------------------------------------------------------------------
    async def _drain(self, summary: RunSummary) -> None:
        """Wait for every in-flight worker and apply its outcome."""
        while self._running:
            self._apply_pending(summary)
            if not self._running:
                break
            await asyncio.wait({entry.job for entry in self._running.values()}, return_when=asyncio.FIRST_COMPLETED)
        self._apply_pending(summary)

    async def _shutdown(self, summary: RunSummary) -> None:
        self._transition(RunState.STOPPING)
        await self._drain(summary)
        self._stop_flag = False
        self._transition(RunState.STOPPED, poll=False, stop_requested=False)
        summary.stopped = True

    def _abandon_in_flight(self) -> None:
        for entry in self._running.values():
            entry.job.cancel()
        self._running.clear()


__all__ = ["AutomationLoop", "RunSummary", "backoff_delay"]

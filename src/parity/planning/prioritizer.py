"""Turn open issues into an ordered, deduplicated queue of remediation tasks."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple
from uuid import uuid4

from ..memory.schema import (
    UNRESOLVED_STATUSES,
    Component,
    Issue,
    IssueKind,
    IssueSeverity,
    IssueStatus,
    Task,
    TaskKind,
    TaskState,
    utc_now,
)
from ..memory.store import ProgressStore

LOGGER = logging.getLogger(__name__)

SEVERITY_BONUS = 5.0


def task_kind_for(issue_kind: IssueKind) -> TaskKind:
    """Test gaps go to the test converter; everything else to the remediation worker."""
    if issue_kind == IssueKind.TEST_GAP:
        return TaskKind.TEST_CONVERSION
    return TaskKind.REMEDIATION


def compute_score(weight: int, issues: Iterable[Issue], attempts: int, *, age_decay: float) -> float:
    bonus = SEVERITY_BONUS if any(issue.severity == IssueSeverity.ERROR for issue in issues) else 0.0
    return weight * 10 + bonus - age_decay * attempts


def new_task_id() -> str:
    return f"TSK-{uuid4().hex[:12]}"


@dataclass(slots=True)
class TaskQueue:
    """Total order of queued tasks produced by one prioritizing pass."""

    tasks: List[Task] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self.tasks)

    def pop_next(self, busy_components: Set[str], now: Optional[datetime] = None) -> Optional[Task]:
        """Remove and return the best task whose component is idle and whose backoff elapsed."""
        moment = now or utc_now()
        for index, task in enumerate(self.tasks):
            if task.component_id in busy_components:
                continue
            if task.not_before is not None and task.not_before > moment:
                continue
            return self.tasks.pop(index)
        return None

    def next_ready_at(self, busy_components: Set[str]) -> Optional[datetime]:
        """Earliest backoff expiry among tasks that are otherwise dispatchable."""
        pending = [
            task.not_before
            for task in self.tasks
            if task.component_id not in busy_components and task.not_before is not None
        ]
        return min(pending) if pending else None


@dataclass(slots=True)
class RebuildResult:
    queue: TaskQueue
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)


class Prioritizer:
    """Recompute the task queue from the progress store on every pass."""

    def __init__(self, store: ProgressStore, *, age_decay: float = 1.5) -> None:
        self.store = store
        self.age_decay = age_decay

    def rebuild(
        self,
        open_issues_by_component: Optional[Mapping[str, Sequence[Issue]]] = None,
    ) -> RebuildResult:
        components = self.store.list_components()
        if open_issues_by_component is None:
            open_issues_by_component = self._open_issues_by_component()

        existing = self.store.list_tasks()
        dispatched = {task.component_id for task in existing if task.state == TaskState.DISPATCHED}
        blocked = {(task.component_id, task.kind) for task in existing if task.state == TaskState.BLOCKED}
        queued: Dict[Tuple[str, TaskKind], Task] = {}
        result = RebuildResult(queue=TaskQueue())
        for task in existing:
            if task.state != TaskState.QUEUED:
                continue
            key = (task.component_id, task.kind)
            if key in queued:
                result.deleted.append(task.id)
            else:
                queued[key] = task

        to_save: List[Task] = []
        for component in components:
            if component.id in dispatched:
                continue
            grouped: Dict[TaskKind, List[Issue]] = defaultdict(list)
            for issue in open_issues_by_component.get(component.id, ()):
                if issue.status == IssueStatus.OPEN:
                    grouped[task_kind_for(issue.kind)].append(issue)
            for kind in (TaskKind.REMEDIATION, TaskKind.TEST_CONVERSION):
                issues = sorted(grouped.get(kind, ()), key=lambda item: (item.created_at, item.id))
                if not issues or (component.id, kind) in blocked:
                    continue
                task = queued.pop((component.id, kind), None)
                issue_ids = [issue.id for issue in issues]
                if task is None:
                    task = Task(id=new_task_id(), component_id=component.id, kind=kind, issue_ids=issue_ids)
                    result.created.append(task.id)
                else:
                    task = task.model_copy(update={"issue_ids": issue_ids})
                    result.updated.append(task.id)
                task.score = compute_score(component.weight, issues, task.attempts, age_decay=self.age_decay)
                to_save.append(task)

        retained: List[Task] = []
        for (component_id, _kind), task in queued.items():
            if component_id in dispatched:
                retained.append(task)
            else:
                result.deleted.append(task.id)

        self.store.save_tasks(to_save, delete_ids=result.deleted)
        result.queue = TaskQueue(self._order(to_save + retained, components))
        LOGGER.info(
            "Prioritized %d task(s): %d created, %d updated, %d removed",
            len(result.queue),
            len(result.created),
            len(result.updated),
            len(result.deleted),
        )
        return result

    def _open_issues_by_component(self) -> Dict[str, List[Issue]]:
        grouped: Dict[str, List[Issue]] = defaultdict(list)
        for issue in self.store.list_issues(statuses=[IssueStatus.OPEN]):
            grouped[issue.component_id].append(issue)
        return grouped

    def _order(self, tasks: List[Task], components: Sequence[Component]) -> List[Task]:
        positions = {component.id: component.position for component in components}
        created: Dict[str, datetime] = {
            issue.id: issue.created_at for issue in self.store.list_issues(statuses=UNRESOLVED_STATUSES)
        }

        def sort_key(task: Task) -> tuple:
            earliest = min((created[issue_id] for issue_id in task.issue_ids if issue_id in created), default=None)
            return (
                -task.score,
                earliest is None,
                earliest.timestamp() if earliest else 0.0,
                positions.get(task.component_id, len(positions)),
                task.id,
            )

        return sorted(tasks, key=sort_key)


__all__ = [
    "Prioritizer",
    "RebuildResult",
    "TaskQueue",
    "compute_score",
    "new_task_id",
    "task_kind_for",
]

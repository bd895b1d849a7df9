from __future__ import annotations

from datetime import timedelta

import pytest

from parity.memory.schema import (
    Component,
    IssueDraft,
    IssueKind,
    IssueSeverity,
    SourceLocation,
    Task,
    TaskKind,
    TaskState,
    utc_now,
)
from parity.memory.store import ProgressStore
from parity.planning.prioritizer import Prioritizer, TaskQueue, compute_score


def _draft(component_id: str, line: int, kind: IssueKind = IssueKind.PLACEHOLDER, severity=IssueSeverity.WARNING):
    return IssueDraft(
        component_id=component_id,
        kind=kind,
        severity=severity,
        location=SourceLocation(path=f"target/{component_id}/lib.rs", line_start=line, line_end=line),
        description=f"{kind.value} at {line}",
    )


@pytest.fixture()
def store(tmp_path):
    with ProgressStore(tmp_path / "parity.sqlite") as progress:
        for position, (component_id, weight) in enumerate((("a", 9), ("b", 3))):
            progress.upsert_component(
                Component(
                    id=component_id,
                    name=component_id.upper(),
                    reference_path=component_id,
                    target_path=component_id,
                    weight=weight,
                    position=position,
                )
            )
        yield progress


def test_heavier_component_is_dispatched_first(store) -> None:
    store.record_issues("b", [_draft("b", 1)])
    store.record_issues("a", [_draft("a", 1)])

    queue = Prioritizer(store).rebuild().queue
    assert [task.component_id for task in queue] == ["a", "b"]
    assert [task.score for task in queue] == [90.0, 30.0]


def test_score_decays_with_attempts() -> None:
    assert compute_score(5, [], 0, age_decay=1.5) == 50.0
    assert compute_score(5, [], 2, age_decay=1.5) == 47.0


def test_issues_group_by_component_and_task_kind(store) -> None:
    store.record_issues(
        "a",
        [
            _draft("a", 1),
            _draft("a", 2, IssueKind.MISSING_IMPLEMENTATION, IssueSeverity.ERROR),
            _draft("a", 3, IssueKind.TEST_GAP),
        ],
    )
    queue = list(Prioritizer(store).rebuild().queue)
    assert [task.kind for task in queue] == [TaskKind.REMEDIATION, TaskKind.TEST_CONVERSION]
    assert len(queue[0].issue_ids) == 2
    assert queue[0].score == 95.0
    assert len(queue[1].issue_ids) == 1


def test_rebuild_keeps_task_identity(store) -> None:
    store.record_issues("a", [_draft("a", 1)])
    prioritizer = Prioritizer(store)
    first = prioritizer.rebuild()
    second = prioritizer.rebuild()
    assert second.created == []
    assert second.updated == first.created
    assert len(store.list_tasks()) == 1


def test_tasks_without_open_issues_are_dropped(store) -> None:
    store.record_issues("a", [_draft("a", 1)])
    prioritizer = Prioritizer(store)
    created = prioritizer.rebuild().created
    store.record_issues("a", [])
    result = prioritizer.rebuild()
    assert result.deleted == created
    assert len(result.queue) == 0
    assert store.list_tasks() == []


def test_blocked_tasks_are_not_requeued(store) -> None:
    issue = store.record_issues("a", [_draft("a", 1)]).inserted[0]
    store.save_task(Task(id="TSK-blocked", component_id="a", issue_ids=[issue.id], state=TaskState.BLOCKED, attempts=3))
    store.record_issues("b", [_draft("b", 1)])

    queue = Prioritizer(store).rebuild().queue
    assert [task.component_id for task in queue] == ["b"]
    assert store.get_task("TSK-blocked").state == TaskState.BLOCKED


def test_dispatched_component_gets_no_new_task(store) -> None:
    issue = store.record_issues("a", [_draft("a", 1)]).inserted[0]
    store.mark_dispatched(Task(id="TSK-live", component_id="a", issue_ids=[issue.id], state=TaskState.DISPATCHED))
    store.record_issues("a", [_draft("a", 1), _draft("a", 2)])

    queue = Prioritizer(store).rebuild().queue
    assert len(queue) == 0
    assert [task.id for task in store.list_tasks(component_id="a")] == ["TSK-live"]


def test_cleared_queue_is_rebuilt_with_fresh_scores(store) -> None:
    store.record_issues("a", [_draft("a", 1)])
    store.record_issues("b", [_draft("b", 1)])
    prioritizer = Prioritizer(store)
    before = prioritizer.rebuild()

    assert store.delete_tasks([TaskState.QUEUED]) == 2
    after = prioritizer.rebuild()
    assert set(after.created).isdisjoint(before.created)
    assert [(task.component_id, task.score, task.attempts) for task in after.queue] == [("a", 90.0, 0), ("b", 30.0, 0)]


def test_retried_task_loses_priority(store) -> None:
    issue = store.record_issues("a", [_draft("a", 1)]).inserted[0]
    store.save_task(Task(id="TSK-a", component_id="a", issue_ids=[issue.id], attempts=2))
    queue = Prioritizer(store, age_decay=10).rebuild().queue
    assert [task.score for task in queue] == [70.0]


def test_pop_next_skips_busy_components_and_backoff() -> None:
    now = utc_now()
    later = now + timedelta(seconds=30)
    queue = TaskQueue(
        [
            Task(id="t1", component_id="a", score=90),
            Task(id="t2", component_id="b", score=50, not_before=later),
            Task(id="t3", component_id="c", score=10),
        ]
    )
    assert queue.next_ready_at({"a"}) == later
    picked = queue.pop_next({"a"}, now=now)
    assert picked.id == "t3"
    assert queue.pop_next({"a"}, now=now) is None
    assert queue.pop_next(set(), now=later).id == "t1"


def test_error_issues_keep_weight_order(store) -> None:
    store.record_issues("b", [_draft("b", 1, IssueKind.MISSING_IMPLEMENTATION, IssueSeverity.ERROR)])
    store.record_issues("a", [_draft("a", 1, IssueKind.MISSING_IMPLEMENTATION, IssueSeverity.ERROR)])
    queue = Prioritizer(store).rebuild().queue
    assert [(task.component_id, task.score) for task in queue] == [("a", 95.0), ("b", 35.0)]

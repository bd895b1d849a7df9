from __future__ import annotations

import pytest

from parity.errors import UnknownComponentError
from parity.memory.schema import (
    Component,
    ComponentStatus,
    IssueDraft,
    IssueKind,
    IssueSeverity,
    IssueStatus,
    RunState,
    RunStatus,
    SourceLocation,
    Task,
    TaskAttempt,
    TaskState,
    utc_now,
)
from parity.memory.store import ProgressStore


def _component(component_id: str = "core", weight: int = 5, position: int = 0) -> Component:
    return Component(
        id=component_id,
        name=component_id.title(),
        reference_path=f"src/{component_id}",
        target_path=f"src/{component_id}",
        weight=weight,
        position=position,
    )


def _draft(line: int, description: str = "TODO marker", component_id: str = "core") -> IssueDraft:
    return IssueDraft(
        component_id=component_id,
        kind=IssueKind.PLACEHOLDER,
        severity=IssueSeverity.WARNING,
        location=SourceLocation(path="target/src/core/lib.rs", line_start=line, line_end=line),
        description=description,
    )


def test_record_issues_diffs_by_fingerprint(tmp_path) -> None:
    with ProgressStore(tmp_path / "parity.sqlite") as store:
        store.upsert_component(_component())

        first = store.record_issues("core", [_draft(3), _draft(9)])
        assert len(first.inserted) == 2
        assert store.require_component("core").status == ComponentStatus.INCOMPLETE

        kept = next(issue for issue in first.inserted if issue.location.line_start == 3)
        second = store.record_issues("core", [_draft(3)])
        assert [issue.id for issue in second.persisted] == [kept.id]
        assert len(second.resolved) == 1
        assert not second.inserted

        dropped = second.resolved[0]
        assert store.get_issue(dropped.id).status == IssueStatus.RESOLVED
        assert store.require_component("core").open_issue_ids == [kept.id]


def test_duplicate_drafts_collapse_to_one_issue(tmp_path) -> None:
    with ProgressStore(tmp_path / "parity.sqlite") as store:
        store.upsert_component(_component())
        diff = store.record_issues("core", [_draft(4), _draft(4)])
        assert len(diff.inserted) == 1
        assert len(store.list_issues("core")) == 1


def test_component_complete_only_without_unresolved_issues(tmp_path) -> None:
    with ProgressStore(tmp_path / "parity.sqlite") as store:
        store.upsert_component(_component())
        assert store.require_component("core").status == ComponentStatus.PENDING

        store.record_issues("core", [_draft(1)])
        assert store.require_component("core").status == ComponentStatus.INCOMPLETE

        store.record_issues("core", [])
        component = store.require_component("core")
        assert component.status == ComponentStatus.COMPLETE
        assert component.open_issue_ids == []
        assert component.last_analyzed_at is not None


def test_suppressed_issue_is_not_reopened(tmp_path) -> None:
    with ProgressStore(tmp_path / "parity.sqlite") as store:
        store.upsert_component(_component())
        issue = store.record_issues("core", [_draft(7)]).inserted[0]

        assert store.set_issue_status([issue.id], IssueStatus.SUPPRESSED) == 1
        assert store.require_component("core").status == ComponentStatus.COMPLETE

        again = store.record_issues("core", [_draft(7)])
        assert not again.inserted
        assert store.get_issue(issue.id).status == IssueStatus.SUPPRESSED
        assert len(store.list_issues("core")) == 1
        assert store.require_component("core").status == ComponentStatus.COMPLETE


def test_resolved_issue_reappearing_is_a_new_issue(tmp_path) -> None:
    with ProgressStore(tmp_path / "parity.sqlite") as store:
        store.upsert_component(_component())
        original = store.record_issues("core", [_draft(2)]).inserted[0]
        store.record_issues("core", [])

        reappeared = store.record_issues("core", [_draft(2)]).inserted
        assert len(reappeared) == 1
        assert reappeared[0].id != original.id
        assert reappeared[0].fingerprint == original.fingerprint
        assert store.get_issue(original.id).status == IssueStatus.RESOLVED


def test_unknown_component_is_rejected(tmp_path) -> None:
    with ProgressStore(tmp_path / "parity.sqlite") as store:
        with pytest.raises(UnknownComponentError):
            store.record_issues("ghost", [_draft(1, component_id="ghost")])


def test_dispatch_marks_issues_in_progress_and_completion_releases_them(tmp_path) -> None:
    with ProgressStore(tmp_path / "parity.sqlite") as store:
        store.upsert_component(_component())
        issue = store.record_issues("core", [_draft(5)]).inserted[0]
        started = utc_now()
        task = Task(
            id="TSK-1",
            component_id="core",
            issue_ids=[issue.id],
            state=TaskState.DISPATCHED,
            attempts=1,
            last_attempt_at=started,
        )
        store.mark_dispatched(task)
        assert store.get_issue(issue.id).status == IssueStatus.IN_PROGRESS
        assert store.require_component("core").status == ComponentStatus.INCOMPLETE

        attempt = TaskAttempt(task_id=task.id, attempt=1, started_at=started, finished_at=utc_now(), message="no")
        store.complete_dispatch(task.model_copy(update={"state": TaskState.QUEUED}), attempt, delete=False)
        assert store.get_issue(issue.id).status == IssueStatus.OPEN
        assert store.get_task(task.id).state == TaskState.QUEUED
        assert [item.message for item in store.list_attempts(task.id)] == ["no"]


def test_request_stop_without_prior_run(tmp_path) -> None:
    with ProgressStore(tmp_path / "parity.sqlite") as store:
        assert store.stop_requested() is False
        status = store.request_stop()
        assert status.stop_requested is True
        assert store.stop_requested() is True
        assert store.get_run_status().state == RunState.IDLE


def test_snapshot_restores_into_fresh_store(tmp_path) -> None:
    with ProgressStore(tmp_path / "first.sqlite") as store:
        store.upsert_component(_component("core", weight=8))
        store.upsert_component(_component("net", weight=2, position=1))
        issue = store.record_issues("core", [_draft(1)]).inserted[0]
        store.save_task(Task(id="TSK-9", component_id="core", issue_ids=[issue.id], score=85.0))
        store.save_run_status(RunStatus(state=RunState.IDLE, cycle=4))
        snapshot = store.snapshot()

    with ProgressStore(tmp_path / "second.sqlite") as restored:
        restored.restore(snapshot)
        assert [component.id for component in restored.list_components()] == ["core", "net"]
        assert restored.get_issue(issue.id).fingerprint == issue.fingerprint
        assert restored.get_task("TSK-9").issue_ids == [issue.id]
        assert restored.get_run_status().cycle == 4
        assert restored.snapshot().model_dump(exclude={"taken_at"}) == snapshot.model_dump(exclude={"taken_at"})


def test_upsert_preserves_recorded_progress(tmp_path) -> None:
    with ProgressStore(tmp_path / "parity.sqlite") as store:
        store.upsert_component(_component())
        store.record_issues("core", [])
        store.upsert_component(_component(weight=9))
        component = store.require_component("core")
        assert component.weight == 9
        assert component.status == ComponentStatus.COMPLETE

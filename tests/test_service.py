from __future__ import annotations

import shutil

import pytest

from parity.errors import ParityError
from parity.memory.schema import IssueKind, IssueStatus, TaskState
from parity.service import ParityService


@pytest.fixture()
def service(workspace):
    parity = ParityService.from_config(workspace.load())
    try:
        yield parity
    finally:
        parity.close()


def test_unblock_task_returns_issues_to_the_queue(service) -> None:
    service.analyze_project()
    remediation = service.prioritize_tasks()[0]
    service.store.save_task(remediation.model_copy(update={"state": TaskState.BLOCKED, "attempts": 3}))

    assert [task.kind.value for task in service.prioritize_tasks()] == ["TEST_CONVERSION"]
    assert service.show_status().blocked[0].task.id == remediation.id

    service.unblock_task(remediation.id)
    requeued = service.prioritize_tasks()
    assert [task.attempts for task in requeued] == [0, 0]
    assert remediation.id not in {task.id for task in requeued}


def test_unblock_rejects_tasks_that_are_not_blocked(service) -> None:
    service.analyze_project()
    task = service.prioritize_tasks()[0]
    with pytest.raises(ParityError, match="not blocked"):
        service.unblock_task(task.id)


def test_resolved_issue_cannot_be_suppressed(service, workspace) -> None:
    service.analyze_project()
    missing = next(issue for issue in service.store.list_open_issues() if issue.kind == IssueKind.MISSING_IMPLEMENTATION)
    workspace.implement_divide()
    service.analyze_project()

    assert service.store.get_issue(missing.id).status == IssueStatus.RESOLVED
    with pytest.raises(ParityError, match="cannot be suppressed"):
        service.suppress_issue(missing.id)


def test_unavailable_component_is_skipped(service, workspace) -> None:
    shutil.rmtree(workspace.root / "reference" / "src")
    summary = service.analyze_project()
    assert summary.skipped == ["core"]
    assert service.validate_component("core").skipped_reason


def test_compare_with_reference_records_nothing(service) -> None:
    drafts = service.compare_with_reference("core")
    assert {draft.kind for draft in drafts} == {IssueKind.MISSING_IMPLEMENTATION, IssueKind.TEST_GAP}
    assert service.store.list_issues("core") == []

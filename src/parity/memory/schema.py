"""Typed records tracked by the parity progress store."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class ComponentStatus(str, Enum):
    """Completion state of a tracked component."""

    PENDING = "PENDING"
    INCOMPLETE = "INCOMPLETE"
    COMPLETE = "COMPLETE"


class IssueKind(str, Enum):
    """Classification of a detected gap."""

    MISSING_IMPLEMENTATION = "MISSING_IMPLEMENTATION"
    BEHAVIORAL_MISMATCH = "BEHAVIORAL_MISMATCH"
    PLACEHOLDER = "PLACEHOLDER"
    MOCK_DATA = "MOCK_DATA"
    TEST_GAP = "TEST_GAP"


class IssueSeverity(str, Enum):
    """Severity classification for issues."""

    ERROR = "ERROR"
    WARNING = "WARNING"


class IssueStatus(str, Enum):
    """Lifecycle states for an issue."""

    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    SUPPRESSED = "SUPPRESSED"


UNRESOLVED_STATUSES: tuple[IssueStatus, ...] = (IssueStatus.OPEN, IssueStatus.IN_PROGRESS)


class TaskKind(str, Enum):
    """Which worker family a task is routed to."""

    REMEDIATION = "REMEDIATION"
    TEST_CONVERSION = "TEST_CONVERSION"


class TaskState(str, Enum):
    """Lifecycle states for a remediation task."""

    QUEUED = "QUEUED"
    DISPATCHED = "DISPATCHED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    BLOCKED = "BLOCKED"


class RunState(str, Enum):
    """States of the automation loop."""

    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    DETECTING = "DETECTING"
    PRIORITIZING = "PRIORITIZING"
    DISPATCHING = "DISPATCHING"
    AWAITING = "AWAITING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"


class SourceLocation(RecordModel):
    """File path (workspace relative, posix) plus an inclusive line range."""

    path: str
    line_start: int = 1
    line_end: int = 1

    def render(self) -> str:
        if self.line_end != self.line_start:
            return f"{self.path}:{self.line_start}-{self.line_end}"
        return f"{self.path}:{self.line_start}"


def compute_fingerprint(kind: IssueKind, location: SourceLocation, description: str) -> str:
    """Stable identity of an issue across analysis passes."""
    description_hash = hashlib.sha256(description.encode("utf-8")).hexdigest()
    raw = f"{kind.value}|{location.path}|{location.line_start}-{location.line_end}|{description_hash}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class IssueDraft(RecordModel):
    """Issue as produced by an analyzer or detector pass, before persistence."""

    component_id: str
    kind: IssueKind
    severity: IssueSeverity
    location: SourceLocation
    description: str
    remediation: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def fingerprint(self) -> str:
        return compute_fingerprint(self.kind, self.location, self.description)


class Issue(RecordModel):
    """A persisted, tracked gap or defect."""

    id: str
    component_id: str
    fingerprint: str
    kind: IssueKind
    severity: IssueSeverity
    location: SourceLocation
    description: str
    remediation: str = ""
    status: IssueStatus = IssueStatus.OPEN
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_unresolved(self) -> bool:
        return self.status in UNRESOLVED_STATUSES


class Component(RecordModel):
    """Functional unit compared between reference and target codebases."""

    id: str
    name: str
    reference_path: str
    target_path: str
    weight: int = Field(default=5, ge=1, le=10)
    kind: str = "api-surface"
    position: int = 0
    status: ComponentStatus = ComponentStatus.PENDING
    last_analyzed_at: Optional[datetime] = None
    open_issue_ids: List[str] = Field(default_factory=list)


class Task(RecordModel):
    """Dispatchable remediation work covering issues on one component."""

    id: str
    component_id: str
    kind: TaskKind = TaskKind.REMEDIATION
    issue_ids: List[str] = Field(default_factory=list)
    score: float = 0.0
    state: TaskState = TaskState.QUEUED
    attempts: int = 0
    last_error: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    last_attempt_at: Optional[datetime] = None
    not_before: Optional[datetime] = None


class TaskAttempt(RecordModel):
    """One recorded dispatch of a task to a worker."""

    task_id: str
    attempt: int
    started_at: datetime
    finished_at: Optional[datetime] = None
    succeeded: bool = False
    message: str = ""


class RunStatus(RecordModel):
    """Process-wide status of the automation loop."""

    state: RunState = RunState.IDLE
    cycle: int = 0
    stop_requested: bool = False
    in_flight: int = 0
    started_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utc_now)
    last_error: str = ""


class ProgressSnapshot(RecordModel):
    """Serializable dump of the whole progress store."""

    components: List[Component] = Field(default_factory=list)
    issues: List[Issue] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    attempts: List[TaskAttempt] = Field(default_factory=list)
    run: RunStatus = Field(default_factory=RunStatus)
    taken_at: datetime = Field(default_factory=utc_now)

"""Durable storage layer for components, issues, tasks, and loop status."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import sqlite3
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Iterator, List, Optional, Sequence
from uuid import uuid4

from ..errors import PersistenceError, UnknownComponentError
from .schema import (
    UNRESOLVED_STATUSES,
    Component,
    ComponentStatus,
    Issue,
    IssueDraft,
    IssueKind,
    IssueSeverity,
    IssueStatus,
    ProgressSnapshot,
    RunState,
    RunStatus,
    SourceLocation,
    Task,
    TaskAttempt,
    TaskKind,
    TaskState,
    utc_now,
)

if TYPE_CHECKING:
    from ..config import ParityConfig

DEFAULT_DB_PATH = Path("data/parity.sqlite")
LOGGER = logging.getLogger(__name__)


def _as_iso(timestamp: datetime) -> str:
    """Serialise a timestamp to a timezone-aware ISO 8601 string."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat()


def _as_iso_optional(timestamp: Optional[datetime]) -> Optional[str]:
    return _as_iso(timestamp) if timestamp is not None else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp produced by `_as_iso`."""
    if not value:
        return None
    return datetime.fromisoformat(value)


def _dump_json(data: Any, *, default: Any) -> str:
    """Convert arbitrary JSON-like payloads into a persisted string."""
    return json.dumps(default if data is None else data)


def _load_json(value: Optional[str], *, default: Any) -> Any:
    """Decode JSON columns while falling back to the provided default."""
    if not value:
        return default
    data = json.loads(value)
    if data is None:
        return default
    return data


def _new_issue_id() -> str:
    return f"ISS-{uuid4().hex[:12]}"


@dataclass(slots=True)
class IssueDiff:
    """Outcome of replacing a component's issue set."""

    component_id: str
    inserted: List[Issue] = field(default_factory=list)
    persisted: List[Issue] = field(default_factory=list)
    resolved: List[Issue] = field(default_factory=list)

    @property
    def unresolved_count(self) -> int:
        return len(self.inserted) + len(self.persisted)


class ProgressStore:
    """SQLite-backed persistence for component progress and remediation tasks."""

    @staticmethod
    def _is_writable(path: Path) -> bool:
        parent = path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        if path.exists():
            return os.access(path, os.W_OK)
        return os.access(parent, os.W_OK)

    @staticmethod
    def _fallback_db_path(source: Path) -> Path:
        digest = hashlib.sha1(source.as_posix().encode("utf-8")).hexdigest()[:12]
        fallback_dir = Path(tempfile.gettempdir()) / "parity-orchestrator" / "db" / digest
        fallback_dir.mkdir(parents=True, exist_ok=True)
        return fallback_dir / source.name

    @classmethod
    def _resolve_db_path(cls, requested: Path) -> Path:
        if requested.as_posix() == ":memory:":
            return requested
        resolved = requested.resolve()
        if cls._is_writable(resolved):
            return resolved
        fallback = cls._fallback_db_path(resolved)
        if not fallback.exists():
            if resolved.exists() and os.access(resolved, os.R_OK):
                try:
                    shutil.copy2(resolved, fallback)
                except OSError:
                    fallback.touch(exist_ok=True)
            else:
                fallback.touch(exist_ok=True)
        if not cls._is_writable(fallback):
            raise PersistenceError(f"Unable to locate writable database path (attempted {requested})")
        return fallback

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        requested_path = Path(db_path)
        self.db_path = self._resolve_db_path(requested_path)
        if self.db_path.as_posix() != ":memory:" and self.db_path != requested_path.resolve():
            LOGGER.warning(
                "Database path %s is not writable; using fallback %s",
                requested_path,
                self.db_path,
            )
        self._conn: Optional[sqlite3.Connection] = self._open_connection()
        self._bootstrap()

    @classmethod
    def from_config(cls, config: "ParityConfig") -> "ProgressStore":
        return cls(config.resolve_db_path())

    def close(self) -> None:
        if getattr(self, "_conn", None) is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def __enter__(self) -> "ProgressStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _open_connection(self) -> sqlite3.Connection:
        try:
            connection = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as error:
            raise PersistenceError(f"Unable to open database {self.db_path}: {error}") from error
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def _bootstrap(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS components (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                reference_path TEXT NOT NULL,
                target_path TEXT NOT NULL,
                weight INTEGER NOT NULL,
                kind TEXT NOT NULL,
                position INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL,
                last_analyzed_at TEXT
            );

            CREATE TABLE IF NOT EXISTS issues (
                id TEXT PRIMARY KEY,
                component_id TEXT NOT NULL,
                fingerprint TEXT NOT NULL,
                kind TEXT NOT NULL,
                severity TEXT NOT NULL,
                path TEXT NOT NULL,
                line_start INTEGER NOT NULL,
                line_end INTEGER NOT NULL,
                description TEXT NOT NULL,
                remediation TEXT NOT NULL,
                status TEXT NOT NULL,
                metadata TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY(component_id) REFERENCES components(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_issues_component_status
                ON issues(component_id, status);
            CREATE INDEX IF NOT EXISTS idx_issues_fingerprint
                ON issues(component_id, fingerprint);

            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY,
                component_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                issue_ids TEXT NOT NULL,
                score REAL NOT NULL DEFAULT 0,
                state TEXT NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT NOT NULL,
                created_at TEXT NOT NULL,
                last_attempt_at TEXT,
                not_before TEXT,
                FOREIGN KEY(component_id) REFERENCES components(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_tasks_state
                ON tasks(state, component_id);

            CREATE TABLE IF NOT EXISTS task_attempts (
                task_id TEXT NOT NULL,
                attempt INTEGER NOT NULL,
                started_at TEXT NOT NULL,
                finished_at TEXT,
                succeeded INTEGER NOT NULL DEFAULT 0,
                message TEXT NOT NULL,
                PRIMARY KEY(task_id, attempt)
            );

            CREATE TABLE IF NOT EXISTS run_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                state TEXT NOT NULL,
                cycle INTEGER NOT NULL DEFAULT 0,
                stop_requested INTEGER NOT NULL DEFAULT 0,
                in_flight INTEGER NOT NULL DEFAULT 0,
                started_at TEXT,
                updated_at TEXT NOT NULL,
                last_error TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.Error as error:
            self._conn.rollback()
            raise PersistenceError(f"Progress store write failed: {error}") from error
        except Exception:
            self._conn.rollback()
            raise

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as error:
            raise PersistenceError(f"Progress store read failed: {error}") from error

    # Component operations ------------------------------------------------------------
    def upsert_component(self, component: Component) -> None:
        """Insert a component or refresh its configured attributes.

        Status and last-analysed time of an existing row are preserved so a
        restarted process resumes from the recorded progress.
        """
        with self._transaction():
            self._conn.execute(
                """
                INSERT INTO components (
                    id, name, reference_path, target_path, weight, kind, position,
                    status, last_analyzed_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    reference_path = excluded.reference_path,
                    target_path = excluded.target_path,
                    weight = excluded.weight,
                    kind = excluded.kind,
                    position = excluded.position
                """,
                (
                    component.id,
                    component.name,
                    component.reference_path,
                    component.target_path,
                    component.weight,
                    component.kind,
                    component.position,
                    component.status.value,
                    _as_iso_optional(component.last_analyzed_at),
                ),
            )

    def get_component(self, component_id: str) -> Optional[Component]:
        rows = self._query("SELECT * FROM components WHERE id = ?", (component_id,))
        if not rows:
            return None
        return self._row_to_component(rows[0])

    def require_component(self, component_id: str) -> Component:
        component = self.get_component(component_id)
        if component is None:
            raise UnknownComponentError(f"Unknown component '{component_id}'")
        return component

    def list_components(self) -> List[Component]:
        rows = self._query("SELECT * FROM components ORDER BY position ASC, id ASC")
        return [self._row_to_component(row) for row in rows]

    # Issue operations ----------------------------------------------------------------
    def record_issues(
        self,
        component_id: str,
        drafts: Iterable[IssueDraft],
        *,
        now: Optional[datetime] = None,
    ) -> IssueDiff:
        """Replace the unresolved issue set of a component by fingerprint diffing."""
        timestamp = now or utc_now()
        diff = IssueDiff(component_id=component_id)
        self.require_component(component_id)

        incoming: dict[str, IssueDraft] = {}
        for draft in drafts:
            incoming.setdefault(draft.fingerprint, draft)

        with self._transaction():
            existing_rows = self._conn.execute(
                "SELECT * FROM issues WHERE component_id = ? AND status IN (?, ?, ?)",
                (
                    component_id,
                    IssueStatus.OPEN.value,
                    IssueStatus.IN_PROGRESS.value,
                    IssueStatus.SUPPRESSED.value,
                ),
            ).fetchall()
            current = [self._row_to_issue(row) for row in existing_rows]
            suppressed = {issue.fingerprint for issue in current if issue.status == IssueStatus.SUPPRESSED}
            unresolved = {issue.fingerprint: issue for issue in current if issue.is_unresolved}

            for fingerprint, issue in unresolved.items():
                if fingerprint in incoming:
                    diff.persisted.append(issue)
                    continue
                self._conn.execute(
                    "UPDATE issues SET status = ?, updated_at = ? WHERE id = ?",
                    (IssueStatus.RESOLVED.value, _as_iso(timestamp), issue.id),
                )
                diff.resolved.append(issue.model_copy(update={"status": IssueStatus.RESOLVED}))

            for fingerprint, draft in incoming.items():
                if fingerprint in unresolved or fingerprint in suppressed:
                    continue
                issue = Issue(
                    id=_new_issue_id(),
                    component_id=component_id,
                    fingerprint=fingerprint,
                    kind=draft.kind,
                    severity=draft.severity,
                    location=draft.location,
                    description=draft.description,
                    remediation=draft.remediation,
                    metadata=dict(draft.metadata),
                    created_at=timestamp,
                    updated_at=timestamp,
                )
                self._insert_issue(issue)
                diff.inserted.append(issue)

            status = ComponentStatus.COMPLETE if diff.unresolved_count == 0 else ComponentStatus.INCOMPLETE
            self._conn.execute(
                "UPDATE components SET status = ?, last_analyzed_at = ? WHERE id = ?",
                (status.value, _as_iso(timestamp), component_id),
            )
        return diff

    def get_issue(self, issue_id: str) -> Optional[Issue]:
        rows = self._query("SELECT * FROM issues WHERE id = ?", (issue_id,))
        if not rows:
            return None
        return self._row_to_issue(rows[0])

    def list_issues(
        self,
        component_id: Optional[str] = None,
        *,
        statuses: Optional[Sequence[IssueStatus]] = None,
    ) -> List[Issue]:
        query = "SELECT * FROM issues"
        clauses: List[str] = []
        params: List[Any] = []
        if component_id:
            clauses.append("component_id = ?")
            params.append(component_id)
        if statuses:
            placeholders = ",".join("?" for _ in statuses)
            clauses.append(f"status IN ({placeholders})")
            params.extend(status.value for status in statuses)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at ASC, id ASC"
        return [self._row_to_issue(row) for row in self._query(query, params)]

    def list_open_issues(self, component_id: Optional[str] = None) -> List[Issue]:
        """Issues that still block completion (open or being worked on)."""
        return self.list_issues(component_id, statuses=UNRESOLVED_STATUSES)

    def set_issue_status(
        self,
        issue_ids: Sequence[str],
        status: IssueStatus,
        *,
        only_from: Optional[Sequence[IssueStatus]] = None,
    ) -> int:
        """Transition issues to ``status``; returns the number of rows changed."""
        if not issue_ids:
            return 0
        allowed = list(only_from) if only_from else list(UNRESOLVED_STATUSES)
        id_marks = ",".join("?" for _ in issue_ids)
        status_marks = ",".join("?" for _ in allowed)
        timestamp = _as_iso(utc_now())
        with self._transaction():
            cursor = self._conn.execute(
                f"UPDATE issues SET status = ?, updated_at = ? "
                f"WHERE id IN ({id_marks}) AND status IN ({status_marks})",
                (status.value, timestamp, *issue_ids, *(item.value for item in allowed)),
            )
            changed = cursor.rowcount
            component_rows = self._conn.execute(
                f"SELECT DISTINCT component_id FROM issues WHERE id IN ({id_marks})",
                tuple(issue_ids),
            ).fetchall()
            for row in component_rows:
                self._refresh_component_status(row["component_id"])
        return changed

    # Task operations -----------------------------------------------------------------
    def save_task(self, task: Task) -> None:
        with self._transaction():
            self._write_task(task)

    def save_tasks(self, tasks: Sequence[Task], *, delete_ids: Sequence[str] = ()) -> None:
        """Write and delete several tasks in a single transaction."""
        with self._transaction():
            for task_id in delete_ids:
                self._conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            for task in tasks:
                self._write_task(task)

    def get_task(self, task_id: str) -> Optional[Task]:
        rows = self._query("SELECT * FROM tasks WHERE id = ?", (task_id,))
        if not rows:
            return None
        return self._row_to_task(rows[0])

    def list_tasks(
        self,
        *,
        component_id: Optional[str] = None,
        states: Optional[Sequence[TaskState]] = None,
    ) -> List[Task]:
        query = "SELECT * FROM tasks"
        clauses: List[str] = []
        params: List[Any] = []
        if component_id:
            clauses.append("component_id = ?")
            params.append(component_id)
        if states:
            placeholders = ",".join("?" for _ in states)
            clauses.append(f"state IN ({placeholders})")
            params.extend(state.value for state in states)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY score DESC, created_at ASC, id ASC"
        return [self._row_to_task(row) for row in self._query(query, params)]

    def delete_task(self, task_id: str) -> bool:
        with self._transaction():
            cursor = self._conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        return cursor.rowcount > 0

    def delete_tasks(self, states: Sequence[TaskState]) -> int:
        if not states:
            return 0
        placeholders = ",".join("?" for _ in states)
        with self._transaction():
            cursor = self._conn.execute(
                f"DELETE FROM tasks WHERE state IN ({placeholders})",
                tuple(state.value for state in states),
            )
        return cursor.rowcount

    def record_attempt(self, attempt: TaskAttempt) -> None:
        with self._transaction():
            self._write_attempt(attempt)

    def list_attempts(self, task_id: Optional[str] = None) -> List[TaskAttempt]:
        query = "SELECT * FROM task_attempts"
        params: List[Any] = []
        if task_id:
            query += " WHERE task_id = ?"
            params.append(task_id)
        query += " ORDER BY started_at ASC, attempt ASC"
        return [self._row_to_attempt(row) for row in self._query(query, params)]

    def complete_dispatch(
        self,
        task: Task,
        attempt: TaskAttempt,
        *,
        delete: bool,
    ) -> None:
        """Apply a worker outcome atomically: task row, attempt log, issue release."""
        timestamp = _as_iso(utc_now())
        with self._transaction():
            if delete:
                self._conn.execute("DELETE FROM tasks WHERE id = ?", (task.id,))
            else:
                self._write_task(task)
            self._write_attempt(attempt)
            if task.issue_ids:
                marks = ",".join("?" for _ in task.issue_ids)
                self._conn.execute(
                    f"UPDATE issues SET status = ?, updated_at = ? "
                    f"WHERE id IN ({marks}) AND status = ?",
                    (
                        IssueStatus.OPEN.value,
                        timestamp,
                        *task.issue_ids,
                        IssueStatus.IN_PROGRESS.value,
                    ),
                )
            self._refresh_component_status(task.component_id)

    def mark_dispatched(self, task: Task) -> None:
        """Persist a dispatched task and flag its issues as in progress."""
        timestamp = _as_iso(utc_now())
        with self._transaction():
            self._write_task(task)
            if task.issue_ids:
                marks = ",".join("?" for _ in task.issue_ids)
                self._conn.execute(
                    f"UPDATE issues SET status = ?, updated_at = ? "
                    f"WHERE id IN ({marks}) AND status = ?",
                    (
                        IssueStatus.IN_PROGRESS.value,
                        timestamp,
                        *task.issue_ids,
                        IssueStatus.OPEN.value,
                    ),
                )

    # Run state operations ------------------------------------------------------------
    def get_run_status(self) -> RunStatus:
        rows = self._query("SELECT * FROM run_state WHERE id = 1")
        if not rows:
            return RunStatus()
        row = rows[0]
        return RunStatus(
            state=RunState(row["state"]),
            cycle=row["cycle"],
            stop_requested=bool(row["stop_requested"]),
            in_flight=row["in_flight"],
            started_at=_from_iso(row["started_at"]),
            updated_at=_from_iso(row["updated_at"]),
            last_error=row["last_error"],
        )

    def save_run_status(self, status: RunStatus) -> None:
        with self._transaction():
            self._write_run_status(status)

    def request_stop(self) -> RunStatus:
        """Set the persisted stop flag polled by a running loop."""
        status = self.get_run_status().model_copy(update={"stop_requested": True, "updated_at": utc_now()})
        with self._transaction():
            self._write_run_status(status)
        return status

    def stop_requested(self) -> bool:
        rows = self._query("SELECT stop_requested FROM run_state WHERE id = 1")
        return bool(rows and rows[0]["stop_requested"])

    # Snapshot operations -------------------------------------------------------------
    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            components=self.list_components(),
            issues=self.list_issues(),
            tasks=self.list_tasks(),
            attempts=self.list_attempts(),
            run=self.get_run_status(),
        )

    def restore(self, snapshot: ProgressSnapshot) -> None:
        """Replace the entire store contents with ``snapshot``."""
        with self._transaction():
            for table in ("task_attempts", "tasks", "issues", "components", "run_state"):
                self._conn.execute(f"DELETE FROM {table}")
            for component in snapshot.components:
                self._conn.execute(
                    """
                    INSERT INTO components (
                        id, name, reference_path, target_path, weight, kind, position,
                        status, last_analyzed_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        component.id,
                        component.name,
                        component.reference_path,
                        component.target_path,
                        component.weight,
                        component.kind,
                        component.position,
                        component.status.value,
                        _as_iso_optional(component.last_analyzed_at),
                    ),
                )
            for issue in snapshot.issues:
                self._insert_issue(issue)
            for task in snapshot.tasks:
                self._write_task(task)
            for attempt in snapshot.attempts:
                self._write_attempt(attempt)
            self._write_run_status(snapshot.run)

    # Internal helpers ----------------------------------------------------------------
    def _insert_issue(self, issue: Issue) -> None:
        self._conn.execute(
            """
            INSERT INTO issues (
                id, component_id, fingerprint, kind, severity, path, line_start, line_end,
                description, remediation, status, metadata, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                issue.id,
                issue.component_id,
                issue.fingerprint,
                issue.kind.value,
                issue.severity.value,
                issue.location.path,
                issue.location.line_start,
                issue.location.line_end,
                issue.description,
                issue.remediation,
                issue.status.value,
                _dump_json(issue.metadata, default={}),
                _as_iso(issue.created_at),
                _as_iso(issue.updated_at),
            ),
        )

    def _write_task(self, task: Task) -> None:
        self._conn.execute(
            """
            INSERT INTO tasks (
                id, component_id, kind, issue_ids, score, state, attempts, last_error,
                created_at, last_attempt_at, not_before
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                component_id = excluded.component_id,
                kind = excluded.kind,
                issue_ids = excluded.issue_ids,
                score = excluded.score,
                state = excluded.state,
                attempts = excluded.attempts,
                last_error = excluded.last_error,
                last_attempt_at = excluded.last_attempt_at,
                not_before = excluded.not_before
            """,
            (
                task.id,
                task.component_id,
                task.kind.value,
                _dump_json(task.issue_ids, default=[]),
                task.score,
                task.state.value,
                task.attempts,
                task.last_error,
                _as_iso(task.created_at),
                _as_iso_optional(task.last_attempt_at),
                _as_iso_optional(task.not_before),
            ),
        )

    def _write_attempt(self, attempt: TaskAttempt) -> None:
        self._conn.execute(
            """
            INSERT INTO task_attempts (task_id, attempt, started_at, finished_at, succeeded, message)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(task_id, attempt) DO UPDATE SET
                finished_at = excluded.finished_at,
                succeeded = excluded.succeeded,
                message = excluded.message
            """,
            (
                attempt.task_id,
                attempt.attempt,
                _as_iso(attempt.started_at),
                _as_iso_optional(attempt.finished_at),
                int(attempt.succeeded),
                attempt.message,
            ),
        )

    def _write_run_status(self, status: RunStatus) -> None:
        self._conn.execute(
            """
            INSERT INTO run_state (
                id, state, cycle, stop_requested, in_flight, started_at, updated_at, last_error
            )
            VALUES (1, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                state = excluded.state,
                cycle = excluded.cycle,
                stop_requested = excluded.stop_requested,
                in_flight = excluded.in_flight,
                started_at = excluded.started_at,
                updated_at = excluded.updated_at,
                last_error = excluded.last_error
            """,
            (
                status.state.value,
                status.cycle,
                int(status.stop_requested),
                status.in_flight,
                _as_iso_optional(status.started_at),
                _as_iso(status.updated_at),
                status.last_error,
            ),
        )

    def _refresh_component_status(self, component_id: str) -> None:
        row = self._conn.execute(
            "SELECT last_analyzed_at FROM components WHERE id = ?", (component_id,)
        ).fetchone()
        if row is None or not row["last_analyzed_at"]:
            return
        count = self._conn.execute(
            "SELECT COUNT(*) FROM issues WHERE component_id = ? AND status IN (?, ?)",
            (component_id, IssueStatus.OPEN.value, IssueStatus.IN_PROGRESS.value),
        ).fetchone()[0]
        status = ComponentStatus.COMPLETE if count == 0 else ComponentStatus.INCOMPLETE
        self._conn.execute("UPDATE components SET status = ? WHERE id = ?", (status.value, component_id))

    def _row_to_component(self, row: sqlite3.Row) -> Component:
        open_rows = self._query(
            "SELECT id FROM issues WHERE component_id = ? AND status IN (?, ?) "
            "ORDER BY created_at ASC, id ASC",
            (row["id"], IssueStatus.OPEN.value, IssueStatus.IN_PROGRESS.value),
        )
        return Component(
            id=row["id"],
            name=row["name"],
            reference_path=row["reference_path"],
            target_path=row["target_path"],
            weight=row["weight"],
            kind=row["kind"],
            position=row["position"],
            status=ComponentStatus(row["status"]),
            last_analyzed_at=_from_iso(row["last_analyzed_at"]),
            open_issue_ids=[item["id"] for item in open_rows],
        )

    @staticmethod
    def _row_to_issue(row: sqlite3.Row) -> Issue:
        return Issue(
            id=row["id"],
            component_id=row["component_id"],
            fingerprint=row["fingerprint"],
            kind=IssueKind(row["kind"]),
            severity=IssueSeverity(row["severity"]),
            location=SourceLocation(
                path=row["path"],
                line_start=row["line_start"],
                line_end=row["line_end"],
            ),
            description=row["description"],
            remediation=row["remediation"],
            status=IssueStatus(row["status"]),
            metadata=_load_json(row["metadata"], default={}),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            component_id=row["component_id"],
            kind=TaskKind(row["kind"]),
            issue_ids=_load_json(row["issue_ids"], default=[]),
            score=row["score"],
            state=TaskState(row["state"]),
            attempts=row["attempts"],
            last_error=row["last_error"],
            created_at=_from_iso(row["created_at"]),
            last_attempt_at=_from_iso(row["last_attempt_at"]),
            not_before=_from_iso(row["not_before"]),
        )

    @staticmethod
    def _row_to_attempt(row: sqlite3.Row) -> TaskAttempt:
        return TaskAttempt(
            task_id=row["task_id"],
            attempt=row["attempt"],
            started_at=_from_iso(row["started_at"]),
            finished_at=_from_iso(row["finished_at"]),
            succeeded=bool(row["succeeded"]),
            message=row["message"],
        )

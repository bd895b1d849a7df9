"""Worker capability used by the automation loop to perform remediation work.

The loop never edits code itself. It builds a :class:`WorkOrder` for a
dispatched task and hands it to a :class:`Worker`. Two implementations ship
with the orchestrator: :class:`CommandWorker` pipes the order as JSON to an
external program (a code-generation agent, a script, a human-in-the-loop
shim), and :class:`TestConversionWorker` turns reference tests into target
tests with the built-in converter. :class:`RoutingWorker` picks one per task
kind.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Protocol

from pydantic import Field

from ..config import ConversionSettings
from ..conversion.converter import ConversionResult, TestConverter
from ..errors import ConversionError, WorkerFailure
from ..memory.schema import Issue, IssueKind, RecordModel, TaskKind

if TYPE_CHECKING:
    from ..config import ParityConfig

LOGGER = logging.getLogger(__name__)

_OUTPUT_LIMIT = 4000


class WorkOrder(RecordModel):
    """Everything a worker needs to know about one dispatched task."""

    task_id: str
    component_id: str
    kind: TaskKind
    attempt: int
    reference_path: str
    target_path: str
    issues: List[Issue] = Field(default_factory=list)

    def to_payload(self) -> bytes:
        return self.model_dump_json(indent=2).encode("utf-8")


@dataclass(slots=True)
class WorkerOutcome:
    succeeded: bool
    message: str = ""
    artifacts: List[str] = field(default_factory=list)


class Worker(Protocol):
    async def dispatch(self, order: WorkOrder) -> WorkerOutcome:
        ...


def _last_line(*streams: str) -> str:
    for stream in streams:
        lines = [line.strip() for line in stream.splitlines() if line.strip()]
        if lines:
            return lines[-1][:_OUTPUT_LIMIT]
    return ""


async def _run_command(
    command: Sequence[str],
    *,
    payload: Optional[bytes],
    timeout: float,
    cwd: Optional[Path],
    env: Optional[Mapping[str, str]],
) -> tuple[int, str, str]:
    """Run ``command`` without blocking the event loop; kill it on timeout."""
    executable = command[0]
    if shutil.which(executable) is None and not Path(executable).exists():
        raise WorkerFailure(f"Executable not available: {executable}")
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if payload is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env={**os.environ, **dict(env)} if env else None,
        )
    except OSError as error:
        raise WorkerFailure(f"Unable to launch {executable}: {error}") from error
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(payload), timeout=timeout)
    except asyncio.TimeoutError as error:
        process.kill()
        await process.wait()
        raise WorkerFailure(f"{executable} timed out after {timeout:g}s") from error
    return (
        process.returncode if process.returncode is not None else -1,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


class CommandWorker:
    """Hand the work order to an external program on stdin.

    Exit code ``0`` means the remediation was applied; any other exit code is a
    failed attempt whose last output line becomes the attempt message.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        timeout: float = 600.0,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> None:
        self.command = list(command)
        self.timeout = timeout
        self.env: Dict[str, str] = dict(env or {})
        self.cwd = cwd

    @classmethod
    def from_config(cls, config: "ParityConfig") -> "CommandWorker":
        return cls(
            config.worker.command,
            timeout=config.worker.timeout,
            env=config.worker.env,
            cwd=config.workspace_root,
        )

    async def dispatch(self, order: WorkOrder) -> WorkerOutcome:
        if not self.command:
            raise WorkerFailure("No worker command configured")
        env = {
            **self.env,
            "PARITY_TASK_ID": order.task_id,
            "PARITY_COMPONENT_ID": order.component_id,
            "PARITY_ATTEMPT": str(order.attempt),
        }
        code, stdout, stderr = await _run_command(
            self.command,
            payload=order.to_payload(),
            timeout=self.timeout,
            cwd=self.cwd,
            env=env,
        )
        if code != 0:
            return WorkerOutcome(succeeded=False, message=_last_line(stderr, stdout) or f"exit code {code}")
        return WorkerOutcome(succeeded=True, message=_last_line(stdout) or "worker finished")


class TestConversionWorker:
    """Convert the reference test files behind a task's test gaps into target tests."""

    __test__ = False

    def __init__(
        self,
        converter: TestConverter,
        *,
        workspace_root: Path,
        target_root: Path,
        conversion: Optional[ConversionSettings] = None,
        check_command: Sequence[str] = (),
        timeout: float = 600.0,
    ) -> None:
        self.converter = converter
        self.workspace_root = workspace_root
        self.target_root = target_root
        self.conversion = conversion or ConversionSettings()
        self.check_command = list(check_command)
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: "ParityConfig") -> "TestConversionWorker":
        converter = TestConverter(
            config.conversion.target_dialect,
            symbols=config.mappings.symbols,
            types=config.mappings.types,
        )
        return cls(
            converter,
            workspace_root=config.workspace_root,
            target_root=config.target_root,
            conversion=config.conversion,
            check_command=config.conversion.check_command,
            timeout=config.worker.timeout,
        )

    def output_directory(self, target_path: str) -> Path:
        return self.conversion.tests_directory(self.target_root / target_path)

    def write(self, result: ConversionResult, target_path: str) -> Path:
        destination = self.output_directory(target_path) / result.target_file
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(result.content, encoding="utf-8")
        return destination

    async def dispatch(self, order: WorkOrder) -> WorkerOutcome:
        sources = _reference_files(order.issues)
        if not sources:
            raise WorkerFailure(f"Task {order.task_id} carries no reference test files")

        written: List[str] = []
        problems: List[str] = []
        for source in sources:
            try:
                result = self.converter.convert_file(self.workspace_root / source, display_path=source)
                destination = self.write(result, order.target_path)
            except ConversionError as error:
                raise WorkerFailure(str(error)) from error
            except OSError as error:
                raise WorkerFailure(f"Unable to write converted tests for {source}: {error}") from error
            written.append(destination.as_posix())
            problems.extend(f"{result.target_file}: {problem}" for problem in await self._check(result, destination))

        if problems:
            return WorkerOutcome(succeeded=False, message="; ".join(problems), artifacts=written)
        return WorkerOutcome(succeeded=True, message=f"wrote {len(written)} converted test file(s)", artifacts=written)

    async def _check(self, result: ConversionResult, destination: Path) -> List[str]:
        if not self.check_command:
            return self.converter.check(result)
        command = [part.replace("{path}", str(destination)) for part in self.check_command]
        code, stdout, stderr = await _run_command(
            command,
            payload=None,
            timeout=self.timeout,
            cwd=self.workspace_root,
            env=None,
        )
        if code != 0:
            return [_last_line(stderr, stdout) or f"check exited with {code}"]
        return []


def _reference_files(issues: Sequence[Issue]) -> List[str]:
    files: List[str] = []
    for issue in issues:
        if issue.kind != IssueKind.TEST_GAP:
            continue
        source = str(issue.metadata.get("reference_file") or issue.location.path)
        if source not in files:
            files.append(source)
    return files


class RoutingWorker:
    """Send remediation and test-conversion tasks to their own workers."""

    def __init__(self, remediation: Optional[Worker] = None, test_conversion: Optional[Worker] = None) -> None:
        self._workers: Dict[TaskKind, Optional[Worker]] = {
            TaskKind.REMEDIATION: remediation,
            TaskKind.TEST_CONVERSION: test_conversion,
        }

    @classmethod
    def from_config(cls, config: "ParityConfig") -> "RoutingWorker":
        remediation = CommandWorker.from_config(config) if config.worker.command else None
        return cls(remediation=remediation, test_conversion=TestConversionWorker.from_config(config))

    async def dispatch(self, order: WorkOrder) -> WorkerOutcome:
        worker = self._workers.get(order.kind)
        if worker is None:
            raise WorkerFailure(f"No worker configured for {order.kind.value.lower()} tasks")
        return await worker.dispatch(order)


__all__ = [
    "CommandWorker",
    "RoutingWorker",
    "TestConversionWorker",
    "WorkOrder",
    "Worker",
    "WorkerOutcome",
]

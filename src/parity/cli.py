"""CLI commands for driving a reference/target parity project."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

import typer

from .config import DEFAULT_CONFIG_NAME, copy_config_template, load_config, write_config
from .errors import ParityError
from .memory.schema import RunState
from .service import ParityReport, ParityService, StatusReport

APP_HELP = "Cross-implementation parity orchestrator."
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"

app = typer.Typer(help=APP_HELP)

LOGGER = logging.getLogger(__name__)

CONFIG_OPTION_HELP = "Path to the parity configuration file."


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    ),
) -> None:
    """Configure logging once for every command."""
    level = logging.getLevelName(log_level.strip().upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}", param_hint="--log-level")
    logging.basicConfig(level=level, format=LOG_FORMAT)


@contextmanager
def _service(config: str) -> Iterator[ParityService]:
    """Open the service for ``config``; parity errors become exit code 1."""
    service: Optional[ParityService] = None
    try:
        service = ParityService.from_config(load_config(Path(config)))
        yield service
    except ParityError as error:
        LOGGER.debug("Command failed", exc_info=True)
        typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1) from error
    finally:
        if service is not None:
            service.close()


def _emit_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


@app.command()
def init(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Project name."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    data = copy_config_template()
    data["project"]["name"] = name or config_path.resolve().parent.name
    write_config(config_path, data)
    typer.echo(f"Wrote {config_path}.")


@app.command("analyze-project")
def analyze_project(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Run one analysis and detection pass over every component."""
    with _service(config) as service:
        summary = service.analyze_project()
    for entry in summary.components:
        if entry.skipped_reason:
            typer.echo(f"- {entry.component_id}: skipped ({entry.skipped_reason})")
            continue
        typer.echo(
            f"- {entry.component_id}: {entry.status.value} "
            f"({entry.unresolved} unresolved; +{entry.inserted} new, {entry.resolved} resolved)"
        )
    typer.echo(f"Unresolved issues: {summary.unresolved}")


@app.command("start-automation")
def start_automation(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Run the automation loop until every component is complete or it is stopped."""
    with _service(config) as service:
        summary = asyncio.run(service.start_automation(handle_signals=True))
    typer.echo(
        f"Automation finished after {summary.cycles} cycle(s): "
        f"{summary.dispatched} dispatched, {summary.succeeded} succeeded, {summary.failed} failed."
    )
    if summary.blocked:
        typer.echo(f"Blocked tasks: {', '.join(summary.blocked)}")
    if summary.completed:
        typer.echo("All components complete.")
    elif summary.stopped:
        typer.echo("Stopped on request.")


@app.command("stop-automation")
def stop_automation(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Ask a running automation loop to stop after its in-flight work."""
    with _service(config) as service:
        status = service.stop_automation()
    if status.state in (RunState.IDLE, RunState.STOPPED):
        typer.echo("Automation is not running; stop flag recorded.")
    else:
        typer.echo(f"Stop requested (current state {status.state.value}).")


def _render_status(report: StatusReport) -> None:
    run = report.run
    typer.echo(f"Run state: {run.state.value} (cycle {run.cycle}, {run.in_flight} in flight)")
    if run.last_error:
        typer.echo(f"Last error: {run.last_error}")
    for row in report.components:
        analyzed = row.last_analyzed_at.isoformat() if row.last_analyzed_at else "never"
        typer.echo(
            f"- {row.id} [{row.status.value}] weight={row.weight} "
            f"unresolved={row.unresolved_issues} analyzed={analyzed}"
        )
    typer.echo(f"Tasks: {report.queued} queued, {report.dispatched} dispatched, {len(report.blocked)} blocked")
    for entry in report.blocked:
        typer.echo(f"  ! {entry.task.id} ({entry.task.component_id}) after {entry.task.attempts} attempt(s)")
        for attempt in entry.attempts:
            typer.echo(f"      #{attempt.attempt}: {attempt.message or 'no message'}")


@app.command("show-status")
def show_status(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
    as_json: bool = typer.Option(False, "--json", help="Emit the status as JSON."),
) -> None:
    """Show the run state and the per-component status table."""
    with _service(config) as service:
        report = service.show_status()
    if as_json:
        typer.echo(report.model_dump_json(indent=2))
        return
    _render_status(report)


@app.command("clear-task-queue")
def clear_task_queue(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Remove queued tasks; open issues are re-queued by the next prioritizing pass."""
    with _service(config) as service:
        removed = service.clear_task_queue()
    typer.echo(f"Removed {removed} queued task(s).")


@app.command("prioritize-tasks")
def prioritize_tasks(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Rebuild the task queue now."""
    with _service(config) as service:
        tasks = service.prioritize_tasks()
    if not tasks:
        typer.echo("No tasks queued.")
        return
    for position, task in enumerate(tasks, start=1):
        typer.echo(
            f"{position}. {task.id} {task.component_id} {task.kind.value} "
            f"score={task.score:g} issues={len(task.issue_ids)} attempts={task.attempts}"
        )


@app.command("validate-component")
def validate_component(
    component_id: str = typer.Argument(..., help="Component identifier."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Run analysis and detection for one component."""
    with _service(config) as service:
        result = service.validate_component(component_id)
    if result.skipped_reason:
        typer.echo(f"{component_id}: analysis unavailable ({result.skipped_reason})")
        raise typer.Exit(code=1)
    typer.echo(
        f"{component_id}: {result.status.value} ({result.unresolved} unresolved; "
        f"+{result.inserted} new, {result.resolved} resolved)"
    )


@app.command("compare-with-reference")
def compare_with_reference(
    component_id: str = typer.Argument(..., help="Component identifier."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
    as_json: bool = typer.Option(False, "--json", help="Emit the drafts as JSON."),
) -> None:
    """Print the raw analyzer diff for one component without recording it."""
    with _service(config) as service:
        drafts = service.compare_with_reference(component_id)
    if as_json:
        _emit_json([draft.model_dump(mode="json") for draft in drafts])
        return
    if not drafts:
        typer.echo(f"{component_id}: no differences from the reference.")
        return
    for draft in drafts:
        typer.echo(f"- [{draft.severity.value}] {draft.kind.value} {draft.location.render()}: {draft.description}")


@app.command("convert-test")
def convert_test(
    path: str = typer.Argument(..., help="Reference test file to convert."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the converted file here."),
    write: bool = typer.Option(
        False,
        "--write/--no-write",
        help="Write into the configured target test directory instead of printing.",
    ),
) -> None:
    """Convert one reference test file into the configured target dialect."""
    with _service(config) as service:
        result = service.convert_test(path)
        problems = service.converter.check(result)
        destination = service.write_conversion(result, output) if (write or output) else None
    if destination is None:
        typer.echo(result.content, nl=False)
    else:
        typer.echo(f"Wrote {len(result.tests)} test(s) to {destination}.")
    pending = [test.name for test in result.tests if test.expected_fail]
    if pending:
        typer.echo(f"Expected-fail (needs manual translation): {', '.join(pending)}", err=True)
    if problems:
        for problem in problems:
            typer.echo(f"Check failed: {problem}", err=True)
        raise typer.Exit(code=1)


def _render_report(report: ParityReport) -> None:
    summary = report.summary
    typer.echo(
        f"Components complete: {summary.components_complete}/{summary.components_total} "
        f"({summary.completion_percent:g}%)"
    )
    typer.echo(
        f"Converted tests: {summary.converted_tests}/{summary.reference_tests} ({summary.test_coverage_percent:g}%)"
    )
    typer.echo(f"Placeholders: {summary.placeholder_count}; mock data: {summary.mock_data_count}")
    typer.echo(f"Unresolved issues: {summary.unresolved_issues}; blocked tasks: {summary.blocked_tasks}")
    typer.echo(f"Production ready: {'yes' if summary.production_ready else 'no'}")
    for issue in report.snapshot.issues:
        if issue.is_unresolved:
            typer.echo(
                f"- {issue.id} [{issue.status.value}] {issue.component_id} {issue.kind.value} "
                f"{issue.location.render()}: {issue.description}"
            )


@app.command("show-report")
def show_report(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format: text or json."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also write the JSON report to this file."),
) -> None:
    """Dump issues, tasks and the production-readiness summary."""
    fmt = output_format.strip().lower()
    if fmt not in {"text", "json"}:
        raise typer.BadParameter("Format must be 'text' or 'json'.", param_hint="--format")
    with _service(config) as service:
        report = service.show_report()
    payload = report.model_dump_json(indent=2)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(payload + "\n", encoding="utf-8")
        typer.echo(f"Report written to {output}.")
    if fmt == "json":
        typer.echo(payload)
    else:
        _render_report(report)


def _manual(config: str, action: Callable[[ParityService], str]) -> None:
    with _service(config) as service:
        message = action(service)
    typer.echo(message)


@app.command("suppress-issue")
def suppress_issue(
    issue_id: str = typer.Argument(..., help="Issue identifier."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Mark an issue as suppressed so later passes never reopen it."""
    _manual(config, lambda service: f"Suppressed {service.suppress_issue(issue_id).id}.")


@app.command("unblock-task")
def unblock_task(
    task_id: str = typer.Argument(..., help="Task identifier."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Remove a blocked task so its issues are prioritized again."""
    _manual(config, lambda service: f"Unblocked {service.unblock_task(task_id).id}.")


@app.command("import-snapshot")
def import_snapshot(
    path: Path = typer.Argument(..., help="Snapshot or JSON report to restore."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Replace the progress store with a previously exported snapshot."""
    with _service(config) as service:
        snapshot = service.import_snapshot(path)
    typer.echo(
        f"Restored {len(snapshot.components)} component(s), {len(snapshot.issues)} issue(s), "
        f"{len(snapshot.tasks)} task(s)."
    )


if __name__ == "__main__":  # pragma: no cover
    app()

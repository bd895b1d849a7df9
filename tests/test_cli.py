from __future__ import annotations

import json
import sys
import textwrap

import yaml
from typer.testing import CliRunner

from parity.cli import app

FIX_SCRIPT = textwrap.dedent(
    """
    import json
    import pathlib
    import sys

    order = json.load(sys.stdin)
    target = pathlib.Path("target") / order["target_path"] / "calculator.rs"
    with target.open("a", encoding="utf-8") as handle:
        handle.write("\\npub fn divide(left: i32, right: i32) -> i32 { left / right }\\n")
    print(f"implemented divide for {order['component_id']}")
    """
).lstrip()


def _invoke(workspace, *args: str):
    runner = CliRunner()
    return runner.invoke(app, [*args, "--config", str(workspace.config_path)], catch_exceptions=False)


def _report(workspace) -> dict:
    result = _invoke(workspace, "show-report", "--format", "json")
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_init_writes_template_and_refuses_to_overwrite(tmp_path) -> None:
    config_path = tmp_path / "project" / "parity.yaml"
    runner = CliRunner()

    result = runner.invoke(app, ["init", "--config", str(config_path), "--name", "demo"], catch_exceptions=False)
    assert result.exit_code == 0, result.output
    assert "Wrote" in result.output
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    assert data["project"]["name"] == "demo"
    assert data["components"][0]["id"] == "core"

    again = runner.invoke(app, ["init", "--config", str(config_path)], catch_exceptions=False)
    assert again.exit_code == 1
    assert "already exists" in again.output

    forced = runner.invoke(app, ["init", "--config", str(config_path), "--force"], catch_exceptions=False)
    assert forced.exit_code == 0, forced.output


def test_missing_config_exits_with_error(tmp_path) -> None:
    result = CliRunner().invoke(app, ["show-status", "--config", str(tmp_path / "absent.yaml")])
    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_unknown_log_level_is_rejected(workspace) -> None:
    result = CliRunner().invoke(app, ["--log-level", "chatty", "show-status", "--config", str(workspace.config_path)])
    assert result.exit_code == 2


def test_analyze_then_prioritize(workspace) -> None:
    analyzed = _invoke(workspace, "analyze-project")
    assert analyzed.exit_code == 0, analyzed.output
    assert "- core: INCOMPLETE (3 unresolved; +3 new, 0 resolved)" in analyzed.output
    assert "Unresolved issues: 3" in analyzed.output

    prioritized = _invoke(workspace, "prioritize-tasks")
    assert prioritized.exit_code == 0, prioritized.output
    lines = prioritized.output.strip().splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("1. ")
    assert "core REMEDIATION score=55 issues=1 attempts=0" in lines[0]
    assert "core TEST_CONVERSION score=50 issues=2 attempts=0" in lines[1]

    cleared = _invoke(workspace, "clear-task-queue")
    assert "Removed 2 queued task(s)." in cleared.output


def test_prioritize_without_issues(workspace) -> None:
    result = _invoke(workspace, "prioritize-tasks")
    assert result.exit_code == 0
    assert "No tasks queued." in result.output


def test_show_status_json(workspace) -> None:
    _invoke(workspace, "analyze-project")
    result = _invoke(workspace, "show-status", "--json")
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["run"]["state"] == "IDLE"
    assert payload["components"][0]["id"] == "core"
    assert payload["components"][0]["status"] == "INCOMPLETE"
    assert payload["components"][0]["unresolved_issues"] == 3


def test_validate_and_compare_component(workspace) -> None:
    validated = _invoke(workspace, "validate-component", "core")
    assert validated.exit_code == 0, validated.output
    assert validated.output.startswith("core: INCOMPLETE (3 unresolved")

    compared = _invoke(workspace, "compare-with-reference", "core")
    assert "MISSING_IMPLEMENTATION reference/src/Core/Calculator.cs" in compared.output

    workspace.implement_divide()
    validated = _invoke(workspace, "validate-component", "core")
    assert "core: INCOMPLETE (2 unresolved; +0 new, 1 resolved)" in validated.output


def test_unknown_component_exits_with_error(workspace) -> None:
    result = _invoke(workspace, "validate-component", "ghost")
    assert result.exit_code == 1
    assert "ghost" in result.output


def test_convert_test_prints_and_writes(workspace) -> None:
    printed = _invoke(workspace, "convert-test", "tests/Core/CalculatorTests.cs")
    assert printed.exit_code == 0, printed.output
    assert "fn add_returns_sum()" in printed.output

    written = _invoke(workspace, "convert-test", "reference/tests/Core/CalculatorTests.cs", "--write")
    assert written.exit_code == 0, written.output
    assert "Wrote 2 test(s)" in written.output
    assert (workspace.root / "target" / "tests" / "calculator_tests.rs").exists()


def test_convert_missing_reference_file(workspace) -> None:
    result = _invoke(workspace, "convert-test", "tests/Core/NopeTests.cs")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_report_suppress_and_snapshot_round_trip(workspace) -> None:
    _invoke(workspace, "analyze-project")
    report = _report(workspace)
    assert report["summary"]["components_total"] == 1
    assert report["summary"]["production_ready"] is False
    assert report["summary"]["reference_tests"] == 2
    assert report["summary"]["converted_tests"] == 0

    missing = next(issue for issue in report["snapshot"]["issues"] if issue["kind"] == "MISSING_IMPLEMENTATION")
    suppressed = _invoke(workspace, "suppress-issue", missing["id"])
    assert suppressed.exit_code == 0, suppressed.output
    assert f"Suppressed {missing['id']}." in suppressed.output
    assert _report(workspace)["summary"]["unresolved_issues"] == 2

    export = workspace.root / "exports" / "report.json"
    text = _invoke(workspace, "show-report", "--output", str(export))
    assert "Report written to" in text.output
    assert "Production ready: no" in text.output

    _invoke(workspace, "clear-task-queue")
    restored = _invoke(workspace, "import-snapshot", str(export))
    assert restored.exit_code == 0, restored.output
    assert "Restored 1 component(s), 3 issue(s), 0 task(s)." in restored.output


def test_unblock_unknown_task(workspace) -> None:
    result = _invoke(workspace, "unblock-task", "TSK-missing")
    assert result.exit_code == 1
    assert "Unknown task" in result.output


def test_stop_automation_when_idle(workspace) -> None:
    result = _invoke(workspace, "stop-automation")
    assert result.exit_code == 0
    assert "Automation is not running; stop flag recorded." in result.output


def test_start_automation_reaches_parity(workspace) -> None:
    workspace.write("fix.py", FIX_SCRIPT)
    workspace.update_config("worker", command=[sys.executable, "fix.py"], timeout=60)

    result = _invoke(workspace, "start-automation")

    assert result.exit_code == 0, result.output
    assert "All components complete." in result.output
    assert "pub fn divide" in workspace.target_source.read_text(encoding="utf-8")
    assert (workspace.root / "target" / "src" / "core" / "tests" / "calculator_tests.rs").exists()
    summary = _report(workspace)["summary"]
    assert summary["production_ready"] is True
    assert summary["converted_tests"] == 2

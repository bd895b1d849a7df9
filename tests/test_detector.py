from __future__ import annotations

import textwrap

import pytest

from parity.analysis.detector import DEFAULT_RULES, DetectionRule, Detector, rule_from_mapping
from parity.config import parse_config
from parity.errors import DetectionRuleError
from parity.memory.schema import Component, IssueKind, IssueSeverity


def _component() -> Component:
    return Component(id="core", name="Core", reference_path="src/Core", target_path="src/core")


def _detector(tmp_path, rules=DEFAULT_RULES) -> Detector:
    root = tmp_path.resolve()
    return Detector(rules, workspace_root=root, target_root=root / "target")


def _write(tmp_path, relative: str, content: str) -> None:
    path = tmp_path / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content).lstrip(), encoding="utf-8")


def test_todo_comment_yields_one_placeholder(tmp_path) -> None:
    _write(
        tmp_path,
        "target/src/core/store.rs",
        """
        pub fn save() {
            // TODO: wire up persistence
        }
        """,
    )
    drafts = _detector(tmp_path).scan(_component())
    assert len(drafts) == 1
    draft = drafts[0]
    assert draft.kind == IssueKind.PLACEHOLDER
    assert draft.location.path == "target/src/core/store.rs"
    assert draft.location.line_start == 2
    assert "TODO" in draft.description


def test_mock_data_markers_are_classified(tmp_path) -> None:
    _write(
        tmp_path,
        "target/src/core/client.rs",
        """
        pub fn endpoint() -> &'static str {
            "https://example.com/api"
        }
        """,
    )
    drafts = _detector(tmp_path).scan(_component())
    assert [draft.kind for draft in drafts] == [IssueKind.MOCK_DATA]


def test_rust_macros_are_errors(tmp_path) -> None:
    _write(tmp_path, "target/src/core/lib.rs", "pub fn run() { unimplemented!() }\n")
    drafts = _detector(tmp_path).scan(_component())
    assert len(drafts) == 1
    assert drafts[0].severity == IssueSeverity.ERROR


def test_test_and_mock_paths_are_excluded(tmp_path) -> None:
    _write(tmp_path, "target/src/core/tests/store_tests.rs", "// TODO: cover errors\n")
    _write(tmp_path, "target/src/core/mocks/fake.rs", "// TODO: remove\n")
    _write(tmp_path, "target/src/core/store.test.ts", "// TODO: remove\n")
    assert _detector(tmp_path).scan(_component()) == []


def test_missing_target_yields_nothing(tmp_path) -> None:
    assert _detector(tmp_path).scan(_component()) == []


def test_scan_is_deterministic(tmp_path) -> None:
    _write(
        tmp_path,
        "target/src/core/a.rs",
        """
        // TODO: first
        // FIXME: second
        let data = "lorem ipsum";
        """,
    )
    detector = _detector(tmp_path)
    first = [draft.fingerprint for draft in detector.scan(_component())]
    second = [draft.fingerprint for draft in detector.scan(_component())]
    assert first == second
    assert len(first) == 3


def test_invalid_pattern_is_rejected_without_aborting(tmp_path) -> None:
    _write(tmp_path, "target/src/core/a.rs", "// HACK: shortcut\n")
    detector = _detector(tmp_path, [DetectionRule("(unclosed"), DetectionRule("HACK", literal=True)])
    assert len(detector.rejected) == 1
    assert isinstance(detector.rejected[0], DetectionRuleError)
    assert [draft.location.line_start for draft in detector.scan(_component())] == [1]


def test_undetectable_kind_is_rejected() -> None:
    with pytest.raises(DetectionRuleError):
        DetectionRule("x", kind=IssueKind.TEST_GAP).compile()


def test_rule_mapping_accepts_loose_enum_spellings() -> None:
    rule = rule_from_mapping({"pattern": "stub", "kind": "mock-data", "severity": "error"})
    assert rule.kind == IssueKind.MOCK_DATA
    assert rule.severity == IssueSeverity.ERROR

    with pytest.raises(DetectionRuleError):
        rule_from_mapping({"pattern": "stub", "kind": "Nonsense"})


def test_configured_rules_replace_defaults(tmp_path) -> None:
    _write(tmp_path, "target/src/core/a.rs", "// TODO: ignored\n// HACK: found\n")
    config = parse_config(
        {
            "project": {"target_root": "target"},
            "detector": {
                "include_defaults": False,
                "rules": [{"pattern": "(oops"}, {"pattern": "HACK", "kind": "Placeholder"}],
            },
        },
        base_dir=tmp_path,
    )
    detector = Detector.from_config(config)
    assert len(detector.rejected) == 1
    drafts = detector.scan(_component())
    assert [draft.location.line_start for draft in drafts] == [2]


def test_single_todo_rule_yields_one_warning(tmp_path) -> None:
    _write(tmp_path, "target/src/core/feed.rs", "fn load() {}\n// TODO: replace with real data\n")
    rule = DetectionRule("TODO", kind=IssueKind.PLACEHOLDER, severity=IssueSeverity.WARNING, literal=True)
    drafts = _detector(tmp_path, [rule]).scan(_component())
    assert [(draft.kind, draft.severity, draft.location.line_start) for draft in drafts] == [
        (IssueKind.PLACEHOLDER, IssueSeverity.WARNING, 2)
    ]

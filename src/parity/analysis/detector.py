"""Rule-driven scanner for placeholder and mock-data markers in target sources."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple

from pydantic import ValidationError

from ..config import ParityConfig, RuleSettings
from ..errors import AnalysisUnavailable, DetectionRuleError
from ..memory.schema import Component, IssueDraft, IssueKind, IssueSeverity, SourceLocation
from .languages import get_profile, known_languages

LOGGER = logging.getLogger(__name__)

DETECTABLE_KINDS = (IssueKind.PLACEHOLDER, IssueKind.MOCK_DATA)
SKIP_DIRS = frozenset({".git", "target", "node_modules", "__pycache__", ".venv"})
DEFAULT_EXCLUDES: Tuple[str, ...] = (
    "*.test.*",
    "*.spec.*",
    "*.mock.*",
    "*/__tests__/*",
    "*/__mocks__/*",
    "*/test/*",
    "*/tests/*",
    "*/mock/*",
    "*/mocks/*",
)
_OWN_SOURCE = Path(__file__).resolve()


@dataclass(slots=True)
class DetectionRule:
    """One data-driven pattern rule."""

    pattern: str
    kind: IssueKind = IssueKind.PLACEHOLDER
    severity: IssueSeverity = IssueSeverity.WARNING
    literal: bool = False
    ignore_case: bool = False
    description: str = ""

    def compile(self) -> Pattern[str]:
        if not self.pattern:
            raise DetectionRuleError(self.pattern, "pattern must not be empty")
        if self.kind not in DETECTABLE_KINDS:
            raise DetectionRuleError(self.pattern, f"kind {self.kind.value} is not detectable")
        source = re.escape(self.pattern) if self.literal else self.pattern
        flags = re.IGNORECASE if self.ignore_case else 0
        try:
            return re.compile(source, flags)
        except re.error as error:
            raise DetectionRuleError(self.pattern, str(error)) from error

    @property
    def label(self) -> str:
        return self.description or f"matches `{self.pattern}`"


def rule_from_mapping(data: Mapping[str, Any]) -> DetectionRule:
    """Validate a configured rule mapping into a ``DetectionRule``."""
    try:
        settings = RuleSettings.model_validate(dict(data))
    except ValidationError as error:
        raise DetectionRuleError(str(data.get("pattern", "")), error.errors()[0]["msg"]) from error
    return DetectionRule(
        pattern=settings.pattern,
        kind=settings.kind,
        severity=settings.severity,
        literal=settings.literal,
        ignore_case=settings.ignore_case,
        description=settings.description,
    )


DEFAULT_RULES: Tuple[DetectionRule, ...] = (
    DetectionRule(r"\bTODO\b", description="TODO marker"),
    DetectionRule(r"\bFIXME\b", description="FIXME marker"),
    DetectionRule(r"\btodo!\s*\(", severity=IssueSeverity.ERROR, description="todo!() macro"),
    DetectionRule(r"\bunimplemented!\s*\(", severity=IssueSeverity.ERROR, description="unimplemented!() macro"),
    DetectionRule(r"\bunreachable!\s*\(", description="unreachable!() macro"),
    DetectionRule(r"\bNotImplementedException\b", severity=IssueSeverity.ERROR, description="NotImplementedException"),
    DetectionRule(r"\braise\s+NotImplementedError\b", severity=IssueSeverity.ERROR, description="NotImplementedError"),
    DetectionRule(
        r"(?://|#).*(?:sample|mock|dummy|fake|placeholder|temporary|hardcoded|example)\s+data",
        kind=IssueKind.MOCK_DATA,
        ignore_case=True,
        description="comment announces non-production data",
    ),
    DetectionRule(
        r"(?://|#).*(?:for now|temporarily|will be replaced|to be implemented)",
        kind=IssueKind.MOCK_DATA,
        ignore_case=True,
        description="comment announces temporary implementation",
    ),
    DetectionRule(
        r"(?:mock|dummy|fake|sample)(?:Data|Service|Client|Response|Implementation)",
        kind=IssueKind.MOCK_DATA,
        ignore_case=True,
        description="mock identifier",
    ),
    DetectionRule(r"lorem\s+ipsum", kind=IssueKind.MOCK_DATA, ignore_case=True, description="lorem ipsum text"),
    DetectionRule(
        r"[\"'](?:abc123|def456|xyz789|123456|test-id|dummy-id)[\"']",
        kind=IssueKind.MOCK_DATA,
        description="hard-coded sample identifier",
    ),
    DetectionRule(
        r"[\"'](?:https?://)?(?:www\.)?(?:example|test|sample|dummy)\.(?:com|org|net)[^\"']*[\"']",
        kind=IssueKind.MOCK_DATA,
        description="sample URL",
    ),
    DetectionRule(
        r"[\"'](?:test|sample|dummy|user)@(?:example|test)\.com[\"']",
        kind=IssueKind.MOCK_DATA,
        description="sample e-mail address",
    ),
)


def default_extensions() -> Tuple[str, ...]:
    extensions: List[str] = []
    for name in known_languages():
        for extension in get_profile(name).extensions:
            if extension not in extensions:
                extensions.append(extension)
    return tuple(extensions)


class Detector:
    """Scan a component's target sources line by line against an ordered rule table."""

    def __init__(
        self,
        rules: Sequence[DetectionRule],
        *,
        workspace_root: Path,
        target_root: Path,
        exclude: Iterable[str] = (),
        extensions: Optional[Iterable[str]] = None,
    ) -> None:
        self.workspace_root = workspace_root
        self.target_root = target_root
        self.exclude: Tuple[str, ...] = DEFAULT_EXCLUDES + tuple(exclude)
        if extensions:
            self.extensions: Tuple[str, ...] = tuple(
                ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions
            )
        else:
            self.extensions = default_extensions()
        self.rules: List[Tuple[DetectionRule, Pattern[str]]] = []
        self.rejected: List[DetectionRuleError] = []
        for rule in rules:
            try:
                self.rules.append((rule, rule.compile()))
            except DetectionRuleError as error:
                LOGGER.warning("Skipping detector rule: %s", error)
                self.rejected.append(error)

    @classmethod
    def from_config(cls, config: ParityConfig) -> "Detector":
        settings = config.detector
        rules: List[DetectionRule] = list(DEFAULT_RULES) if settings.include_defaults else []
        rejected: List[DetectionRuleError] = []
        for entry in settings.rules:
            try:
                rules.append(rule_from_mapping(entry))
            except DetectionRuleError as error:
                LOGGER.warning("Skipping detector rule: %s", error)
                rejected.append(error)
        detector = cls(
            rules,
            workspace_root=config.workspace_root,
            target_root=config.target_root,
            exclude=settings.exclude,
            extensions=settings.extensions or None,
        )
        detector.rejected[:0] = rejected
        return detector

    def scan(self, component: Component) -> List[IssueDraft]:
        """Return one draft per (rule, line) match in the component's target files."""
        root = self.target_root / component.target_path
        if not root.exists():
            return []
        drafts: List[IssueDraft] = []
        for path in self._iter_files(root):
            relative = self._relative(path)
            if self.is_excluded(relative) or path.resolve() == _OWN_SOURCE:
                continue
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as error:
                raise AnalysisUnavailable(component.id, f"cannot read {path}: {error}") from error
            drafts.extend(self.scan_text(component.id, text, relative))
        return drafts

    def scan_text(self, component_id: str, text: str, path: str) -> List[IssueDraft]:
        drafts: List[IssueDraft] = []
        for line_no, line in enumerate(text.splitlines(), start=1):
            for rule, compiled in self.rules:
                if not compiled.search(line):
                    continue
                drafts.append(
                    IssueDraft(
                        component_id=component_id,
                        kind=rule.kind,
                        severity=rule.severity,
                        location=SourceLocation(path=path, line_start=line_no, line_end=line_no),
                        description=f"{rule.label}: {line.strip()[:160]}",
                        remediation="Replace the marker with a production implementation",
                        metadata={"rule": rule.pattern},
                    )
                )
        return drafts

    def is_excluded(self, relative_path: str) -> bool:
        candidates = (relative_path, f"/{relative_path}")
        return any(fnmatch(candidate, pattern) for pattern in self.exclude for candidate in candidates)

    def _iter_files(self, root: Path) -> List[Path]:
        if root.is_file():
            return [root]
        return sorted(
            path
            for path in root.rglob("*")
            if path.is_file()
            and path.suffix.lower() in self.extensions
            and not SKIP_DIRS.intersection(path.relative_to(root).parts[:-1])
        )

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.workspace_root).as_posix()
        except ValueError:
            return path.as_posix()


__all__ = [
    "DEFAULT_RULES",
    "DetectionRule",
    "Detector",
    "rule_from_mapping",
]

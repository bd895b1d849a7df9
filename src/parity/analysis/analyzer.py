"""Analyzer contract and the default public-API surface comparator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from ..config import ConversionSettings
from ..errors import AnalysisUnavailable
from ..memory.schema import Component, IssueDraft, IssueKind, IssueSeverity, SourceLocation
from ..utils.naming import canonical_key, canonical_test_key
from .languages import (
    LanguageProfile,
    Symbol,
    TestCaseRef,
    extract_symbols,
    extract_tests,
    get_profile,
    iter_source_files,
)

if TYPE_CHECKING:
    from ..config import ParityConfig

LOGGER = logging.getLogger(__name__)

DEFAULT_ANALYZER_KIND = "api-surface"
SKIP_DIRS = frozenset({".git", "target", "node_modules", "__pycache__", "bin", "obj", ".venv"})
TEST_DIR_NAMES = frozenset({"test", "tests", "__tests__", "testing"})


class Analyzer(Protocol):
    """Anything able to compare one component's reference and target locations."""

    def analyze(self, component: Component) -> List[IssueDraft]:
        ...


@dataclass(slots=True)
class _SourceSet:
    symbols: List[Symbol] = field(default_factory=list)
    tests: List[TestCaseRef] = field(default_factory=list)


class ApiSurfaceAnalyzer:
    """Compare public declarations and test cases between reference and target sources.

    Reference symbols are matched to target symbols through the explicit symbol
    map first and then through a naming-convention-insensitive key, so
    ``GetBlockHash`` finds ``get_block_hash``. Unmatched reference symbols are
    reported as missing implementations; matched functions whose parameter
    count or async-ness differ are reported as behavioural mismatches. Every
    reference test case without a same-named target test becomes a test gap.
    """

    def __init__(
        self,
        *,
        workspace_root: Path,
        reference_root: Path,
        target_root: Path,
        reference_language: str,
        target_language: str,
        symbol_map: Optional[Mapping[str, str]] = None,
        test_paths: Optional[Mapping[str, Optional[str]]] = None,
        conversion: Optional[ConversionSettings] = None,
    ) -> None:
        self.workspace_root = workspace_root
        self.reference_root = reference_root
        self.target_root = target_root
        self.reference_profile: LanguageProfile = get_profile(reference_language)
        self.target_profile: LanguageProfile = get_profile(target_language)
        self.symbol_map: Dict[str, str] = dict(symbol_map or {})
        self.test_paths: Dict[str, Optional[str]] = dict(test_paths or {})
        self.conversion = conversion or ConversionSettings()

    @classmethod
    def from_config(cls, config: "ParityConfig") -> "ApiSurfaceAnalyzer":
        return cls(
            workspace_root=config.workspace_root,
            reference_root=config.reference_root,
            target_root=config.target_root,
            reference_language=config.project.reference_language,
            target_language=config.project.target_language,
            symbol_map=config.mappings.symbols,
            test_paths={entry.id: entry.tests for entry in config.components},
            conversion=config.conversion,
        )

    def analyze(self, component: Component) -> List[IssueDraft]:
        reference_path = self.reference_root / component.reference_path
        target_path = self.target_root / component.target_path
        if not reference_path.exists():
            raise AnalysisUnavailable(component.id, f"reference location {reference_path} does not exist")

        test_root = self._reference_test_root(component)
        reference = self._read_reference(component, reference_path, test_root)
        if not target_path.exists():
            LOGGER.debug("Target location %s missing; treating component %s as unimplemented", target_path, component.id)
        target = self._read_target(component, include_symbols=True)

        drafts = self._compare_symbols(component, reference.symbols, target.symbols)
        drafts.extend(self._compare_tests(component, reference.tests, target.tests))
        return drafts

    def test_coverage(self, component: Component) -> Tuple[int, int]:
        """Return ``(reference_tests, converted_tests)`` for one component."""
        reference_path = self.reference_root / component.reference_path
        if not reference_path.exists():
            raise AnalysisUnavailable(component.id, f"reference location {reference_path} does not exist")
        reference = self._read_reference(component, reference_path, self._reference_test_root(component))
        target = self._read_target(component, include_symbols=False)
        converted = {canonical_test_key(test.name) for test in target.tests}
        matched = sum(1 for test in reference.tests if canonical_test_key(test.name) in converted)
        return len(reference.tests), matched

    # Source collection ------------------------------------------------------------
    def _reference_test_root(self, component: Component) -> Optional[Path]:
        sub_path = self.test_paths.get(component.id)
        if not sub_path:
            return None
        return self.reference_root / sub_path

    def _read_reference(self, component: Component, reference_path: Path, test_root: Optional[Path]) -> _SourceSet:
        sources = _SourceSet()
        for path in iter_source_files(reference_path, self.reference_profile, skip_dirs=SKIP_DIRS):
            text = self._read_file(component, path)
            relative = self._relative(path)
            if test_root is None and _looks_like_test(path, reference_path):
                sources.tests.extend(extract_tests(self.reference_profile, text, relative))
                continue
            sources.symbols.extend(extract_symbols(self.reference_profile, text, relative))

        if test_root is not None:
            if test_root.exists():
                for path in iter_source_files(test_root, self.reference_profile, skip_dirs=SKIP_DIRS):
                    text = self._read_file(component, path)
                    sources.tests.extend(extract_tests(self.reference_profile, text, self._relative(path)))
            else:
                LOGGER.warning("Reference test location %s for %s does not exist", test_root, component.id)
        return sources

    def _read_target(self, component: Component, *, include_symbols: bool) -> _SourceSet:
        target_path = self.target_root / component.target_path
        sources = _SourceSet()
        if target_path.exists():
            sources = self._read_sources(component, target_path, self.target_profile, include_symbols=include_symbols)
        # File targets keep converted tests in a sibling directory the walk above never reaches.
        tests_dir = self.conversion.tests_directory(target_path)
        if target_path not in tests_dir.parents and tests_dir.is_dir():
            converted = self._read_sources(component, tests_dir, self.target_profile, include_symbols=False)
            sources.tests.extend(converted.tests)
        return sources

    def _read_sources(
        self,
        component: Component,
        root: Path,
        profile: LanguageProfile,
        *,
        include_symbols: bool,
    ) -> _SourceSet:
        sources = _SourceSet()
        for path in iter_source_files(root, profile, skip_dirs=SKIP_DIRS):
            text = self._read_file(component, path)
            relative = self._relative(path)
            if include_symbols:
                sources.symbols.extend(extract_symbols(profile, text, relative))
            sources.tests.extend(extract_tests(profile, text, relative))
        return sources

    @staticmethod
    def _read_file(component: Component, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as error:
            raise AnalysisUnavailable(component.id, f"cannot read {path}: {error}") from error

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.workspace_root).as_posix()
        except ValueError:
            return path.as_posix()

    # Comparison -------------------------------------------------------------------
    def _compare_symbols(
        self,
        component: Component,
        reference: Iterable[Symbol],
        target: Iterable[Symbol],
    ) -> List[IssueDraft]:
        target_index: Dict[str, Symbol] = {}
        for symbol in target:
            target_index.setdefault(canonical_key(symbol.name), symbol)

        drafts: List[IssueDraft] = []
        seen: set[str] = set()
        for symbol in reference:
            expected = self.symbol_map.get(symbol.name, symbol.name)
            key = canonical_key(expected)
            if key in seen:
                continue
            seen.add(key)
            counterpart = target_index.get(key)
            if counterpart is None:
                drafts.append(
                    IssueDraft(
                        component_id=component.id,
                        kind=IssueKind.MISSING_IMPLEMENTATION,
                        severity=IssueSeverity.ERROR,
                        location=SourceLocation(path=symbol.path, line_start=symbol.line, line_end=symbol.line),
                        description=f"Reference {symbol.kind} `{symbol.name}` has no target counterpart",
                        remediation=f"Implement `{expected}` under {component.target_path}",
                        metadata={"symbol": symbol.name, "expected": expected, "symbol_kind": symbol.kind},
                    )
                )
                continue
            mismatch = _signature_mismatch(symbol, counterpart)
            if mismatch:
                drafts.append(
                    IssueDraft(
                        component_id=component.id,
                        kind=IssueKind.BEHAVIORAL_MISMATCH,
                        severity=IssueSeverity.WARNING,
                        location=SourceLocation(
                            path=counterpart.path,
                            line_start=counterpart.line,
                            line_end=counterpart.line,
                        ),
                        description=f"`{counterpart.name}` diverges from reference `{symbol.name}`: {mismatch}",
                        remediation=f"Align `{counterpart.name}` with {symbol.path}:{symbol.line}",
                        metadata={"symbol": symbol.name, "target_symbol": counterpart.name},
                    )
                )
        return drafts

    def _compare_tests(
        self,
        component: Component,
        reference: Iterable[TestCaseRef],
        target: Iterable[TestCaseRef],
    ) -> List[IssueDraft]:
        converted = {canonical_test_key(test.name) for test in target}
        drafts: List[IssueDraft] = []
        for test in reference:
            if canonical_test_key(test.name) in converted:
                continue
            drafts.append(
                IssueDraft(
                    component_id=component.id,
                    kind=IssueKind.TEST_GAP,
                    severity=IssueSeverity.WARNING,
                    location=SourceLocation(path=test.path, line_start=test.line, line_end=test.line),
                    description=f"Reference test `{test.name}` has no converted target test",
                    remediation=f"Convert {test.path} into {self.target_profile.name} tests",
                    metadata={"test_name": test.name, "reference_file": test.path},
                )
            )
        return drafts


def _signature_mismatch(reference: Symbol, target: Symbol) -> str:
    if reference.kind != "function" or target.kind != "function":
        return ""
    reasons: List[str] = []
    if reference.arity is not None and target.arity is not None and reference.arity != target.arity:
        reasons.append(f"takes {target.arity} parameter(s), reference takes {reference.arity}")
    if reference.is_async != target.is_async:
        expected = "async" if reference.is_async else "synchronous"
        reasons.append(f"reference is {expected}")
    return "; ".join(reasons)


def _looks_like_test(path: Path, root: Path) -> bool:
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        parts = path.parts
    if not parts:
        return False
    return any(_is_test_name(part) for part in parts[:-1]) or _is_test_name(Path(parts[-1]).stem)


def _is_test_name(name: str) -> bool:
    """``tests``, ``test_parser``, ``ParserTests``, ``parser_test``, ``parser.spec``; not ``Attestation``."""
    lowered = name.lower()
    if lowered in TEST_DIR_NAMES or lowered.startswith("test_"):
        return True
    if name.endswith(("Test", "Tests")):
        return True
    return lowered.endswith(("_test", "_tests", ".test", ".tests", ".spec", "_spec"))


class AnalyzerRegistry:
    """Dispatch table mapping component types to analyzer implementations."""

    def __init__(self, analyzers: Optional[Mapping[str, Analyzer]] = None) -> None:
        self._registry: Dict[str, Analyzer] = dict(analyzers or {})

    def register(self, kind: str, analyzer: Analyzer) -> None:
        self._registry[kind] = analyzer

    def for_component(self, component: Component) -> Analyzer:
        analyzer = self._registry.get(component.kind)
        if analyzer is None:
            raise AnalysisUnavailable(component.id, f"no analyzer registered for type '{component.kind}'")
        return analyzer

    def analyze(self, component: Component) -> List[IssueDraft]:
        return self.for_component(component).analyze(component)

    @classmethod
    def from_config(cls, config: "ParityConfig") -> "AnalyzerRegistry":
        return cls({DEFAULT_ANALYZER_KIND: ApiSurfaceAnalyzer.from_config(config)})


__all__ = [
    "Analyzer",
    "AnalyzerRegistry",
    "ApiSurfaceAnalyzer",
    "DEFAULT_ANALYZER_KIND",
]

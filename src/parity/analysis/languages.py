"""Data-driven language profiles used to read public symbols and test cases."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from ..errors import ConfigError

_CLOSERS = {")": "(", "]": "[", "}": "{", ">": "<"}
_RECEIVER_PARAMS = {"self", "&self", "&mut self", "mut self", "cls", "this"}


@dataclass(slots=True)
class Symbol:
    """Public declaration discovered in a source file."""

    name: str
    kind: str
    path: str
    line: int
    arity: Optional[int] = None
    is_async: bool = False


@dataclass(slots=True)
class TestCaseRef:
    """Location of a single test case inside a test source file."""

    name: str
    path: str
    line: int


@dataclass(slots=True)
class LanguageProfile:
    name: str
    extensions: Tuple[str, ...]
    symbol_patterns: List[Pattern[str]]
    test_name_pattern: Pattern[str]
    test_marker: Optional[Pattern[str]] = None
    async_return_types: Tuple[str, ...] = ()
    private_prefix: str = ""
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    def matches_file(self, path: str) -> bool:
        return path.lower().endswith(self.extensions)


def split_top_level(text: str, separator: str = ",", *, angle: bool = True) -> List[str]:
    """Split ``text`` on ``separator`` ignoring separators nested in brackets or strings.

    ``angle`` treats ``<``/``>`` as brackets, which suits generic signatures but
    not expressions containing comparisons.
    """
    openers = "([{<" if angle else "([{"
    parts: List[str] = []
    stack: List[str] = []
    current: List[str] = []
    quote: Optional[str] = None
    escaped = False
    for char in text:
        if quote:
            current.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in "\"'`":
            quote = char
        elif char in openers:
            stack.append(char)
        elif char in _CLOSERS and stack and stack[-1] == _CLOSERS[char]:
            stack.pop()
        elif char == separator and not stack:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    tail = "".join(current).strip()
    if tail or parts:
        parts.append(tail)
    return [part for part in parts if part]


def count_parameters(params: Optional[str]) -> Optional[int]:
    if params is None:
        return None
    items = [item for item in split_top_level(params) if item not in _RECEIVER_PARAMS]
    return len(items)


_PROFILES: Dict[str, LanguageProfile] = {
    "csharp": LanguageProfile(
        name="csharp",
        extensions=(".cs",),
        symbol_patterns=[
            re.compile(
                r"^\s*public\s+(?:(?:static|sealed|abstract|partial|readonly)\s+)*"
                r"(?P<kind>class|interface|struct|enum|record)\s+(?P<name>\w+)"
            ),
            re.compile(
                r"^\s*public\s+(?P<mods>(?:(?:static|virtual|override|abstract|sealed|async|new|extern|unsafe)\s+)*)"
                r"(?P<ret>[\w<>\[\],.?]+)\s+(?P<name>\w+)\s*(?:<[^>(]*>)?\s*\((?P<params>[^)]*)(?P<close>\))?"
            ),
            re.compile(
                r"^\s*public\s+(?:static\s+)?(?:[\w<>\[\],.?]+)\s+(?P<name>\w+)\s*\{\s*get"
            ),
        ],
        test_marker=re.compile(r"^\s*\[(?:TestMethod|Test|Fact|Theory|TestCase)\b[^\]]*\]"),
        test_name_pattern=re.compile(
            r"public\s+(?:async\s+)?(?:Task<?\w*>?|void|[\w<>]+)\s+(?P<name>\w+)\s*\("
        ),
        async_return_types=("Task", "ValueTask"),
        aliases=("c#", "cs"),
    ),
    "rust": LanguageProfile(
        name="rust",
        extensions=(".rs",),
        symbol_patterns=[
            re.compile(
                r"^\s*pub(?:\([^)]*\))?\s+(?:const\s+)?(?P<async>async\s+)?(?:unsafe\s+)?"
                r"(?:extern\s+\"[^\"]*\"\s+)?fn\s+(?P<name>\w+)\s*(?:<[^>(]*>)?\s*\((?P<params>[^)]*)(?P<close>\))?"
            ),
            re.compile(r"^\s*pub(?:\([^)]*\))?\s+(?P<kind>struct|enum|trait|type)\s+(?P<name>\w+)"),
        ],
        test_marker=re.compile(r"^\s*#\[(?:tokio::)?test\b[^\]]*\]"),
        test_name_pattern=re.compile(r"^\s*(?:pub\s+)?(?:async\s+)?fn\s+(?P<name>\w+)\s*\("),
        aliases=("rs",),
    ),
    "python": LanguageProfile(
        name="python",
        extensions=(".py",),
        symbol_patterns=[
            re.compile(r"^\s*(?P<kind>class)\s+(?P<name>[A-Za-z]\w*)"),
            re.compile(
                r"^\s*(?P<async>async\s+)?def\s+(?P<name>[A-Za-z]\w*)\s*\((?P<params>[^)]*)(?P<close>\))?"
            ),
        ],
        test_name_pattern=re.compile(r"^\s*(?:async\s+)?def\s+(?P<name>test\w*)\s*\("),
        private_prefix="_",
        aliases=("py",),
    ),
    "typescript": LanguageProfile(
        name="typescript",
        extensions=(".ts", ".tsx"),
        symbol_patterns=[
            re.compile(
                r"^\s*export\s+(?:default\s+)?(?:declare\s+)?(?P<async>async\s+)?function\s*\*?\s*"
                r"(?P<name>\w+)\s*(?:<[^>(]*>)?\s*\((?P<params>[^)]*)(?P<close>\))?"
            ),
            re.compile(
                r"^\s*export\s+(?:default\s+)?(?:declare\s+)?(?:abstract\s+)?"
                r"(?P<kind>class|interface|type|enum)\s+(?P<name>\w+)"
            ),
            re.compile(
                r"^\s*export\s+const\s+(?P<name>\w+)\s*=\s*(?P<async>async\s+)?\((?P<params>[^)]*)(?P<close>\))?\s*(?::[^=]*)?=>"
            ),
        ],
        test_name_pattern=re.compile(r"^\s*(?:it|test)\(\s*['\"`](?P<name>[^'\"`]+)"),
        aliases=("ts",),
    ),
    "javascript": LanguageProfile(
        name="javascript",
        extensions=(".js", ".jsx", ".mjs"),
        symbol_patterns=[
            re.compile(
                r"^\s*export\s+(?:default\s+)?(?P<async>async\s+)?function\s*\*?\s*"
                r"(?P<name>\w+)\s*\((?P<params>[^)]*)(?P<close>\))?"
            ),
            re.compile(r"^\s*export\s+(?:default\s+)?(?P<kind>class)\s+(?P<name>\w+)"),
        ],
        test_name_pattern=re.compile(r"^\s*(?:it|test)\(\s*['\"`](?P<name>[^'\"`]+)"),
        aliases=("js",),
    ),
    "java": LanguageProfile(
        name="java",
        extensions=(".java",),
        symbol_patterns=[
            re.compile(
                r"^\s*public\s+(?:(?:static|final|abstract|sealed)\s+)*"
                r"(?P<kind>class|interface|enum|record)\s+(?P<name>\w+)"
            ),
            re.compile(
                r"^\s*public\s+(?:(?:static|final|abstract|synchronized|default)\s+)*(?:<[^>]*>\s+)?"
                r"[\w<>\[\],.?]+\s+(?P<name>\w+)\s*\((?P<params>[^)]*)(?P<close>\))?"
            ),
        ],
        test_marker=re.compile(r"^\s*@(?:Test|ParameterizedTest)\b"),
        test_name_pattern=re.compile(r"\bvoid\s+(?P<name>\w+)\s*\("),
        async_return_types=("CompletableFuture", "Future"),
    ),
    "go": LanguageProfile(
        name="go",
        extensions=(".go",),
        symbol_patterns=[
            re.compile(
                r"^func\s+(?:\([^)]*\)\s*)?(?P<name>[A-Z]\w*)\s*(?:\[[^\]]*\])?\s*\((?P<params>[^)]*)(?P<close>\))?"
            ),
            re.compile(r"^(?P<kind>type)\s+(?P<name>[A-Z]\w*)\b"),
        ],
        test_name_pattern=re.compile(r"^func\s+(?P<name>Test\w+)\s*\(\s*\w+\s+\*testing\.T"),
        aliases=("golang",),
    ),
}


def get_profile(language: str) -> LanguageProfile:
    """Resolve a profile by name or alias (case-insensitive)."""
    key = language.strip().lower()
    if key in _PROFILES:
        return _PROFILES[key]
    for profile in _PROFILES.values():
        if key in profile.aliases:
            return profile
    known = ", ".join(sorted(_PROFILES))
    raise ConfigError(f"Unsupported language '{language}' (known: {known})")


def known_languages() -> List[str]:
    return sorted(_PROFILES)


def extract_symbols(profile: LanguageProfile, text: str, path: str) -> List[Symbol]:
    """Collect public declarations from ``text`` using the profile's patterns."""
    symbols: List[Symbol] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        for pattern in profile.symbol_patterns:
            match = pattern.match(line)
            if not match:
                continue
            groups = match.groupdict()
            name = groups["name"]
            if profile.private_prefix and name.startswith(profile.private_prefix):
                break
            params = groups.get("params")
            has_signature = "params" in groups
            arity = count_parameters(params) if groups.get("close") else None
            symbols.append(
                Symbol(
                    name=name,
                    kind=groups.get("kind") or ("function" if has_signature else "property"),
                    path=path,
                    line=line_no,
                    arity=arity,
                    is_async=_is_async(profile, groups),
                )
            )
            break
    return symbols


def _is_async(profile: LanguageProfile, groups: Dict[str, Optional[str]]) -> bool:
    if groups.get("async"):
        return True
    if "async" in (groups.get("mods") or "").split():
        return True
    return_type = groups.get("ret") or ""
    return any(return_type == name or return_type.startswith(f"{name}<") for name in profile.async_return_types)


def extract_tests(profile: LanguageProfile, text: str, path: str) -> List[TestCaseRef]:
    """Collect test case names, honouring attribute markers where the language uses them."""
    lines = text.splitlines()
    tests: List[TestCaseRef] = []
    if profile.test_marker is None:
        for line_no, line in enumerate(lines, start=1):
            match = profile.test_name_pattern.search(line)
            if match:
                tests.append(TestCaseRef(name=match.group("name"), path=path, line=line_no))
        return tests

    index = 0
    while index < len(lines):
        if not profile.test_marker.search(lines[index]):
            index += 1
            continue
        for offset in range(index + 1, min(index + 8, len(lines))):
            match = profile.test_name_pattern.search(lines[offset])
            if match:
                tests.append(TestCaseRef(name=match.group("name"), path=path, line=offset + 1))
                index = offset
                break
        index += 1
    return tests


def iter_source_files(root: Path, profile: LanguageProfile, *, skip_dirs: Iterable[str] = ()) -> List[Path]:
    """Sorted list of files under ``root`` that belong to ``profile``."""
    skipped = set(skip_dirs)
    if root.is_file():
        return [root] if profile.matches_file(root.name) else []
    return sorted(
        path
        for path in root.rglob("*")
        if path.is_file()
        and profile.matches_file(path.name)
        and not skipped.intersection(part for part in path.relative_to(root).parts[:-1])
    )


__all__ = [
    "LanguageProfile",
    "Symbol",
    "TestCaseRef",
    "count_parameters",
    "extract_symbols",
    "extract_tests",
    "get_profile",
    "iter_source_files",
    "known_languages",
    "split_top_level",
]

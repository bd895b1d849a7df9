from __future__ import annotations

import copy
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


REFERENCE_SOURCE = textwrap.dedent(
    """
    namespace Sample.Core
    {
        public class Calculator
        {
            public int Add(int left, int right)
            {
                return left + right;
            }

            public int Divide(int left, int right)
            {
                return left / right;
            }
        }
    }
    """
).lstrip()

REFERENCE_TESTS = textwrap.dedent(
    """
    using System;
    using Xunit;

    namespace Sample.Core.Tests
    {
        public class CalculatorTests
        {
            private Calculator _calculator;

            public CalculatorTests()
            {
                _calculator = new Calculator();
            }

            [Fact]
            public void Add_ReturnsSum()
            {
                var result = _calculator.Add(2, 3);
                Assert.Equal(5, result);
            }

            [Fact]
            public void Divide_ByZero_Throws()
            {
                Assert.Throws<DivideByZeroException>(() => _calculator.Divide(1, 0));
            }
        }
    }
    """
).lstrip()

TARGET_SOURCE = textwrap.dedent(
    """
    pub struct Calculator;

    impl Calculator {
        pub fn new() -> Self {
            Calculator
        }

        pub fn add(&self, left: i32, right: i32) -> i32 {
            left + right
        }
    }
    """
).lstrip()

DIVIDE_IMPLEMENTATION = "\npub fn divide(left: i32, right: i32) -> i32 { left / right }\n"

BASE_CONFIG: Dict[str, Any] = {
    "project": {
        "name": "calculator",
        "workspace_root": ".",
        "reference_root": "reference",
        "target_root": "target",
        "reference_language": "csharp",
        "target_language": "rust",
    },
    "components": [
        {
            "id": "core",
            "name": "Core",
            "reference": "src/Core",
            "target": "src/core",
            "weight": 5,
            "tests": "tests/Core",
        }
    ],
    "automation": {
        "concurrency": 2,
        "retry_ceiling": 3,
        "cycle_interval": 0.05,
        "backoff_seconds": 0.0,
        "max_backoff_seconds": 0.0,
        "max_cycles": 10,
    },
    "conversion": {"target_dialect": "rust", "output_dir": "tests"},
    "paths": {"data": "data", "db_path": "data/parity.sqlite"},
}


@dataclass(slots=True)
class ParityWorkspace:
    """Fixture payload describing a reference/target pair on disk."""

    root: Path
    config_path: Path

    @property
    def reference_tests(self) -> Path:
        return self.root / "reference" / "tests" / "Core" / "CalculatorTests.cs"

    @property
    def target_source(self) -> Path:
        return self.root / "target" / "src" / "core" / "calculator.rs"

    def write(self, relative: str, content: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def implement_divide(self) -> None:
        with self.target_source.open("a", encoding="utf-8") as handle:
            handle.write(DIVIDE_IMPLEMENTATION)

    def config_data(self) -> Dict[str, Any]:
        return yaml.safe_load(self.config_path.read_text(encoding="utf-8"))

    def update_config(self, section: str, **values: Any) -> None:
        data = self.config_data()
        data.setdefault(section, {}).update(values)
        self.config_path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")

    def load(self):
        from parity.config import load_config

        return load_config(self.config_path)


@pytest.fixture()
def workspace(tmp_path: Path) -> ParityWorkspace:
    """C# reference and partially ported Rust target with a parity.yaml."""

    root = tmp_path / "calculator"
    root.mkdir()
    payload = ParityWorkspace(root=root, config_path=root / "parity.yaml")
    payload.write("reference/src/Core/Calculator.cs", REFERENCE_SOURCE)
    payload.write("reference/tests/Core/CalculatorTests.cs", REFERENCE_TESTS)
    payload.write("target/src/core/calculator.rs", TARGET_SOURCE)
    payload.config_path.write_text(yaml.safe_dump(copy.deepcopy(BASE_CONFIG), sort_keys=False), encoding="utf-8")
    return payload

"""YAML configuration loading for the parity orchestrator."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError
from .memory.schema import Component, IssueKind, IssueSeverity

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "parity.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "name": "",
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
            "type": "api-surface",
            "tests": "tests/Core",
        },
    ],
    "mappings": {
        "symbols": {},
        "types": {},
    },
    "detector": {
        "include_defaults": True,
        "rules": [],
        "exclude": ["**/tests/**", "**/fixtures/**"],
        "extensions": [],
    },
    "automation": {
        "concurrency": 2,
        "retry_ceiling": 3,
        "cycle_interval": 30.0,
        "backoff_seconds": 0.5,
        "max_backoff_seconds": 60.0,
        "age_decay": 1.5,
        "max_cycles": 0,
    },
    "worker": {
        "command": [],
        "timeout": 600.0,
        "env": {},
    },
    "conversion": {
        "target_dialect": "rust",
        "output_dir": "tests",
        "check_command": [],
    },
    "paths": {
        "data": "data",
        "db_path": "data/parity.sqlite",
    },
}


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ProjectSettings(_Section):
    name: str = ""
    workspace_root: str = "."
    reference_root: str = "."
    target_root: str = "."
    reference_language: str = "csharp"
    target_language: str = "rust"


class ComponentSettings(_Section):
    id: str
    name: str = ""
    reference: str
    target: str
    weight: int = Field(default=5, ge=1, le=10)
    type: str = "api-surface"
    tests: Optional[str] = None

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("component id must not be empty")
        return value


class MappingSettings(_Section):
    symbols: Dict[str, str] = Field(default_factory=dict)
    types: Dict[str, str] = Field(default_factory=dict)


class RuleSettings(_Section):
    pattern: str
    kind: IssueKind = IssueKind.PLACEHOLDER
    severity: IssueSeverity = IssueSeverity.WARNING
    literal: bool = False
    ignore_case: bool = False
    description: str = ""

    @field_validator("kind", mode="before")
    @classmethod
    def _normalise_kind(cls, value: Any) -> Any:
        return _normalise_enum_token(value)

    @field_validator("severity", mode="before")
    @classmethod
    def _normalise_severity(cls, value: Any) -> Any:
        return _normalise_enum_token(value)


class DetectorSettings(_Section):
    include_defaults: bool = True
    # Rules are validated lazily by the detector so one malformed entry is skipped
    # instead of rejecting the whole configuration.
    rules: List[Dict[str, Any]] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    extensions: List[str] = Field(default_factory=list)


class AutomationSettings(_Section):
    concurrency: int = Field(default=2, ge=1, le=16)
    retry_ceiling: int = Field(default=3, ge=1)
    cycle_interval: float = Field(default=30.0, gt=0)
    backoff_seconds: float = Field(default=0.5, ge=0)
    max_backoff_seconds: float = Field(default=60.0, ge=0)
    age_decay: float = Field(default=1.5, ge=0)
    max_cycles: int = Field(default=0, ge=0)


class WorkerSettings(_Section):
    command: List[str] = Field(default_factory=list)
    timeout: float = Field(default=600.0, gt=0)
    env: Dict[str, str] = Field(default_factory=dict)


class ConversionSettings(_Section):
    target_dialect: Literal["rust", "pytest"] = "rust"
    output_dir: str = "tests"
    check_command: List[str] = Field(default_factory=list)

    def tests_directory(self, target: Path) -> Path:
        """Where converted tests for a component target live.

        Directory targets hold them in ``output_dir`` below the target; file
        targets hold them beside the file.
        """
        base = target.parent if target.suffix else target
        return base / self.output_dir


class PathSettings(_Section):
    data: str = "data"
    db_path: str = "data/parity.sqlite"


class ParityConfig(_Section):
    """Validated configuration plus the directory it was loaded from."""

    project: ProjectSettings = Field(default_factory=ProjectSettings)
    components: List[ComponentSettings] = Field(default_factory=list)
    mappings: MappingSettings = Field(default_factory=MappingSettings)
    detector: DetectorSettings = Field(default_factory=DetectorSettings)
    automation: AutomationSettings = Field(default_factory=AutomationSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    conversion: ConversionSettings = Field(default_factory=ConversionSettings)
    paths: PathSettings = Field(default_factory=PathSettings)
    base_dir: Path = Field(default_factory=Path.cwd, exclude=True)

    @model_validator(mode="after")
    def _unique_component_ids(self) -> "ParityConfig":
        seen: set[str] = set()
        for component in self.components:
            if component.id in seen:
                raise ValueError(f"duplicate component id '{component.id}'")
            seen.add(component.id)
        return self

    @property
    def workspace_root(self) -> Path:
        root = Path(self.project.workspace_root)
        if not root.is_absolute():
            root = self.base_dir / root
        return root.resolve()

    @property
    def reference_root(self) -> Path:
        return (self.workspace_root / self.project.reference_root).resolve()

    @property
    def target_root(self) -> Path:
        return (self.workspace_root / self.project.target_root).resolve()

    def resolve_db_path(self) -> Path:
        db_path = Path(self.paths.db_path)
        if db_path.as_posix() == ":memory:" or db_path.is_absolute():
            return db_path
        return self.workspace_root / db_path

    def component_records(self) -> List[Component]:
        """Translate configured components into store records, in configured order."""
        records: List[Component] = []
        for position, entry in enumerate(self.components):
            records.append(
                Component(
                    id=entry.id,
                    name=entry.name or entry.id,
                    reference_path=entry.reference,
                    target_path=entry.target,
                    weight=entry.weight,
                    kind=entry.type,
                    position=position,
                )
            )
        return records


def _normalise_enum_token(value: Any) -> Any:
    """Accept ``MockData`` / ``mock-data`` / ``MOCK_DATA`` spellings for enum fields."""
    if not isinstance(value, str):
        return value
    token = value.strip().replace("-", "_")
    if "_" not in token and token != token.upper():
        token = "".join(f"_{char}" if char.isupper() else char for char in token).lstrip("_")
    return token.upper()


def copy_config_template() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def write_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config_data, handle, sort_keys=False)


def parse_config(data: Dict[str, Any], *, base_dir: Path) -> ParityConfig:
    try:
        return ParityConfig.model_validate({**data, "base_dir": base_dir})
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration: {error}") from error


def load_config(config_path: Path | str) -> ParityConfig:
    """Load and validate a YAML configuration file."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    config = parse_config(data, base_dir=path.resolve().parent)
    LOGGER.debug("Loaded %d component(s) from %s", len(config.components), path)
    return config


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "AutomationSettings",
    "ComponentSettings",
    "ConversionSettings",
    "DetectorSettings",
    "MappingSettings",
    "ParityConfig",
    "ProjectSettings",
    "RuleSettings",
    "WorkerSettings",
    "copy_config_template",
    "load_config",
    "parse_config",
    "write_config",
]

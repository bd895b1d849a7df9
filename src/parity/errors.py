"""Exception taxonomy shared by the parity orchestrator."""

from __future__ import annotations


class ParityError(Exception):
    """Base class for every error raised by the orchestrator."""


class ConfigError(ParityError):
    """Configuration file is missing, unparsable, or fails validation."""


class PersistenceError(ParityError):
    """The progress store could not read or write durable state."""


class UnknownComponentError(ParityError, KeyError):
    """A command referenced a component id that is not configured."""

    def __str__(self) -> str:  # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else "unknown component"


class AnalysisUnavailable(ParityError):
    """Reference or target location could not be read for a component."""

    def __init__(self, component_id: str, reason: str) -> None:
        super().__init__(f"Analysis unavailable for {component_id}: {reason}")
        self.component_id = component_id
        self.reason = reason


class DetectionRuleError(ParityError):
    """A detector rule is malformed (bad pattern, kind, or severity)."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid detection rule {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class WorkerFailure(ParityError):
    """External remediation call errored or timed out."""


class QueueInconsistency(ParityError):
    """Task state violated a queue invariant (e.g. two dispatched tasks per component)."""


class ConversionError(ParityError):
    """A reference test file could not be parsed or converted."""


__all__ = [
    "AnalysisUnavailable",
    "ConfigError",
    "ConversionError",
    "DetectionRuleError",
    "ParityError",
    "PersistenceError",
    "QueueInconsistency",
    "UnknownComponentError",
    "WorkerFailure",
]

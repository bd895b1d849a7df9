"""Automation loop and the workers it dispatches to."""

from importlib import import_module
from typing import Any

__all__ = ["AutomationLoop", "CommandWorker", "RoutingWorker", "RunSummary", "TestConversionWorker", "WorkOrder"]

_MODULES = {
    "AutomationLoop": "parity.automation.loop",
    "RunSummary": "parity.automation.loop",
    "CommandWorker": "parity.automation.workers",
    "RoutingWorker": "parity.automation.workers",
    "TestConversionWorker": "parity.automation.workers",
    "WorkOrder": "parity.automation.workers",
}


def __getattr__(name: str) -> Any:
    """Lazily import automation helpers."""
    if name in _MODULES:
        return getattr(import_module(_MODULES[name]), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

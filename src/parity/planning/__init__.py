"""Task prioritization over open issues."""

from .prioritizer import Prioritizer, RebuildResult, TaskQueue

__all__ = ["Prioritizer", "RebuildResult", "TaskQueue"]

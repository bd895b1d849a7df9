"""One analysis pass: analyzer plus detector, recorded atomically per component."""

from __future__ import annotations

import logging
from typing import Iterable, List

from ..memory.schema import Component, IssueDraft
from ..memory.store import IssueDiff, ProgressStore
from .analyzer import AnalyzerRegistry
from .detector import Detector

LOGGER = logging.getLogger(__name__)


class AnalysisRunner:
    """Run the analyzer and detector for components and persist the merged drafts."""

    def __init__(self, store: ProgressStore, analyzers: AnalyzerRegistry, detector: Detector) -> None:
        self.store = store
        self.analyzers = analyzers
        self.detector = detector

    def analyze(self, component: Component) -> List[IssueDraft]:
        return self.analyzers.analyze(component)

    def detect(self, component: Component) -> List[IssueDraft]:
        return self.detector.scan(component)

    def collect(self, component: Component) -> List[IssueDraft]:
        """Analyzer drafts followed by detector drafts; raises ``AnalysisUnavailable``."""
        drafts = self.analyze(component)
        drafts.extend(self.detect(component))
        return drafts

    def record(self, component: Component, drafts: Iterable[IssueDraft]) -> IssueDiff:
        diff = self.store.record_issues(component.id, drafts)
        LOGGER.info(
            "Recorded %s: %d new, %d persisting, %d resolved",
            component.id,
            len(diff.inserted),
            len(diff.persisted),
            len(diff.resolved),
        )
        return diff

    def run_component(self, component: Component) -> IssueDiff:
        return self.record(component, self.collect(component))


__all__ = ["AnalysisRunner"]

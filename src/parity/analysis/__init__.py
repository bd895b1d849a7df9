"""Reference/target comparison and placeholder detection."""

from .analyzer import AnalyzerRegistry, ApiSurfaceAnalyzer
from .detector import DetectionRule, Detector
from .runner import AnalysisRunner

__all__ = [
    "AnalysisRunner",
    "AnalyzerRegistry",
    "ApiSurfaceAnalyzer",
    "DetectionRule",
    "Detector",
]

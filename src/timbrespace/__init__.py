"""Real-time timbral and harmonic analysis engine for audio visualization."""

from timbrespace.config import EngineConfig
from timbrespace.core.stream import AnalysisSnapshot, Frame, RealtimeAnalyzer
from timbrespace.io.exporter import ReportExporter
from timbrespace.io.source import AnalyserFrameSource

__version__ = "0.1.0"
__all__ = [
    "EngineConfig",
    "Frame",
    "AnalysisSnapshot",
    "RealtimeAnalyzer",
    "ReportExporter",
    "AnalyserFrameSource",
]

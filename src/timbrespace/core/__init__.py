"""Core per-frame analysis modules."""

from timbrespace.core.events import PeakEvent, PeakEventTracker
from timbrespace.core.harmony import ChordStabilizer, detect_chord
from timbrespace.core.markov import TransitionModel
from timbrespace.core.rhythm import estimate_rhythm
from timbrespace.core.spectral import extract_features
from timbrespace.core.stream import RealtimeAnalyzer

__all__ = [
    "PeakEvent",
    "PeakEventTracker",
    "ChordStabilizer",
    "detect_chord",
    "TransitionModel",
    "estimate_rhythm",
    "extract_features",
    "RealtimeAnalyzer",
]

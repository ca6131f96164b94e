"""
Real-time analysis stream for live visualization.

Architecture Overview
---------------------
::

    Capture collaborator (analyser node, file replay, ...)
        │
        ▼  Frame: byte spectrum + byte waveform, once per render tick
    RealtimeAnalyzer.tick(frame)
        │
        ├─► extract_features      → FeatureSet
        ├─► detect_chord          → ChordStabilizer → StableChordState
        │        └─► TransitionModel.record() on stable chord change
        ├─► estimate_rhythm       → RhythmMetrics
        ├─► PeakEventTracker      → live PeakEvents (only while playing)
        ├─► HistoryRecorder       → bounded HistorySample buffer
        │
        └─► AnalysisSnapshot (returned to the caller for rendering/export)

Design Goals
------------
* **Frame budget**: one tick must fit in a 60 Hz frame (16 ms).  Ticks that
  overrun are logged at DEBUG.
* **No hidden state**: every buffer is owned by one analyzer instance, so
  independent tracks (or tests) never interfere.
* **Immutable output**: snapshots hold frozen dataclasses, tuples and
  read-only mappings, never references into live state.
* **Graceful degradation**: silent or malformed frames produce defaults and
  the ``"---"`` sentinel rather than exceptions.

The analyzer owns no timer or thread.  An external scheduler calls
:meth:`RealtimeAnalyzer.tick` once per frame.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

import numpy as np

from timbrespace.config import EngineConfig
from timbrespace.core.events import PeakEvent, PeakEventTracker
from timbrespace.core.harmony import ChordStabilizer, ChordQuality, detect_chord
from timbrespace.core.history import HistoryRecorder, HistorySample
from timbrespace.core.markov import (
    TransitionModel,
    transitions_from_list,
    transitions_to_list,
)
from timbrespace.core.notes import UNDETECTED
from timbrespace.core.rhythm import DEFAULT_RHYTHM, RhythmMetrics, estimate_rhythm
from timbrespace.core.spectral import FeatureSet, extract_features, instrument_energies

logger = logging.getLogger(__name__)


def _as_bytes(values: Sequence[int]) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64).ravel()
    arr = np.nan_to_num(arr, nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(arr, 0, 255).astype(np.uint8)


@dataclass(frozen=True)
class Frame:
    """
    One capture tick as delivered by the audio collaborator.

    ``timestamp`` drives the chord and event clocks (milliseconds,
    monotonic); ``playback_time`` drives history sampling (seconds of
    track position).
    """

    frequency_magnitudes: np.ndarray
    waveform_samples: np.ndarray
    sample_rate: float
    timestamp: float
    playback_time: float = 0.0
    is_playing: bool = True

    @classmethod
    def create(
        cls,
        frequency_magnitudes: Sequence[int],
        waveform_samples: Sequence[int],
        sample_rate: float,
        timestamp: float,
        playback_time: float = 0.0,
        is_playing: bool = True,
    ) -> "Frame":
        """Build a frame, coercing both buffers to clipped ``uint8`` arrays."""
        sample_rate = float(sample_rate)
        if not math.isfinite(sample_rate):
            sample_rate = 0.0
        return cls(
            frequency_magnitudes=_as_bytes(frequency_magnitudes),
            waveform_samples=_as_bytes(waveform_samples),
            sample_rate=sample_rate,
            timestamp=float(timestamp),
            playback_time=float(playback_time),
            is_playing=bool(is_playing),
        )


@dataclass(frozen=True)
class AnalysisSnapshot:
    """
    Read-only view of the engine state after one frame.

    All fields default to the post-reset state so consumers can render
    before the first tick.
    """

    features: FeatureSet = field(default_factory=FeatureSet)
    chord: str = UNDETECTED
    root_note: str = UNDETECTED
    chord_quality: Optional[str] = None
    song_key: str = UNDETECTED
    chord_degree: str = UNDETECTED
    rhythm: RhythmMetrics = DEFAULT_RHYTHM
    predictability: float = 0.0
    entropy: float = 0.0
    transition_model: Mapping[str, Mapping[str, int]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    peak_events: tuple[PeakEvent, ...] = ()
    timestamp: float = 0.0
    playback_time: float = 0.0

    def to_dict(self) -> dict:
        return {
            "features": self.features.to_dict(),
            "chord": self.chord,
            "root_note": self.root_note,
            "chord_quality": self.chord_quality,
            "song_key": self.song_key,
            "chord_degree": self.chord_degree,
            "rhythm": self.rhythm.to_dict(),
            "predictability": self.predictability,
            "entropy": self.entropy,
            "transition_model": transitions_to_list(self.transition_model),
            "peak_events": [e.to_dict() for e in self.peak_events],
            "timestamp": self.timestamp,
            "playback_time": self.playback_time,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisSnapshot":
        counts = transitions_from_list(data["transition_model"])
        return cls(
            features=FeatureSet.from_dict(data["features"]),
            chord=data["chord"],
            root_note=data["root_note"],
            chord_quality=data.get("chord_quality"),
            song_key=data["song_key"],
            chord_degree=data["chord_degree"],
            rhythm=RhythmMetrics.from_dict(data["rhythm"]),
            predictability=float(data["predictability"]),
            entropy=float(data["entropy"]),
            transition_model=MappingProxyType(
                {src: MappingProxyType(out) for src, out in counts.items()}
            ),
            peak_events=tuple(PeakEvent.from_dict(e) for e in data["peak_events"]),
            timestamp=float(data.get("timestamp", 0.0)),
            playback_time=float(data.get("playback_time", 0.0)),
        )


class RealtimeAnalyzer:
    """
    Frame-driven orchestrator for the whole analysis engine.

    Parameters
    ----------
    config:
        Engine configuration (defaults when None).
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

        self.stabilizer = ChordStabilizer(config=self.config.chord)
        self.transitions = TransitionModel()
        self.tracker = PeakEventTracker(self.config.events)
        self.history = HistoryRecorder(self.config.history)

        self._rhythm: RhythmMetrics = DEFAULT_RHYTHM
        self._snapshot = AnalysisSnapshot()
        self._frame_count = 0

    @property
    def snapshot(self) -> AnalysisSnapshot:
        """Snapshot produced by the most recent tick."""
        return self._snapshot

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def reset(self) -> None:
        """
        Clear all per-track state, as on loading a new audio source.

        Chord history, stable chord, transition model, peak events and the
        history buffer are emptied and rhythm returns to 120 BPM.
        """
        self.stabilizer.reset()
        self.transitions.reset()
        self.tracker.reset()
        self.history.reset()
        self._rhythm = DEFAULT_RHYTHM
        self._snapshot = AnalysisSnapshot()
        self._frame_count = 0
        logger.info("Analyzer reset")

    def tick(self, frame: Frame) -> AnalysisSnapshot:
        """
        Process one frame and return the refreshed snapshot.

        Parameters
        ----------
        frame:
            Buffers and clocks for this tick.

        Returns
        -------
        AnalysisSnapshot
            Immutable view of features, chord/key state, rhythm,
            predictability and live peak events.
        """
        started = time.perf_counter()
        cfg = self.config
        spectrum = frame.frequency_magnitudes
        waveform = frame.waveform_samples

        features = extract_features(
            spectrum,
            waveform,
            frame.sample_rate,
            rolloff_fraction=cfg.spectral.rolloff_fraction,
        )
        self._rhythm = estimate_rhythm(waveform, spectrum, cfg.rhythm)

        previous = self.stabilizer.state.label
        observed = detect_chord(spectrum, frame.sample_rate, cfg.chord)
        if self.stabilizer.observe(observed, frame.timestamp):
            current = self.stabilizer.state.label
            self.transitions.record(previous, current)
            logger.info("Chord %s -> %s", previous, current)

        if frame.is_playing:
            self.tracker.update(spectrum, frame.sample_rate, frame.timestamp)

        state = self.stabilizer.state
        if frame.is_playing and self.history.due(frame.playback_time):
            self.history.record(
                HistorySample(
                    time=frame.playback_time,
                    features=features,
                    chord=state.label,
                    chord_degree=state.chord_degree,
                    tempo=self._rhythm.tempo,
                    beat_strength=self._rhythm.beat_strength,
                    instrument_energies=instrument_energies(spectrum, frame.sample_rate),
                )
            )

        quality: Optional[ChordQuality] = state.chord.quality
        self._snapshot = AnalysisSnapshot(
            features=features,
            chord=state.label,
            root_note=state.root_note,
            chord_quality=quality.name if quality is not None else None,
            song_key=state.song_key,
            chord_degree=state.chord_degree,
            rhythm=self._rhythm,
            predictability=self.transitions.predictability,
            entropy=self.transitions.entropy,
            transition_model=self.transitions.view(),
            peak_events=self.tracker.events,
            timestamp=frame.timestamp,
            playback_time=frame.playback_time,
        )
        self._frame_count += 1

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if elapsed_ms > cfg.frame_budget_ms:
            logger.debug(
                "Frame %d took %.1f ms (budget %.1f ms)",
                self._frame_count, elapsed_ms, cfg.frame_budget_ms,
            )
        return self._snapshot

"""
Engine configuration.

Every threshold and window used by the analysis engine lives here so a
caller can tune the heuristics without touching the algorithms.  The
defaults are the values the engine is tuned for.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class SpectralConfig:
    """Spectral descriptor parameters."""

    rolloff_fraction: float = 0.85  # Share of total magnitude below rolloff

    def __post_init__(self):
        if not 0.0 < self.rolloff_fraction <= 1.0:
            raise ValueError(
                f"rolloff_fraction must be in (0, 1], got {self.rolloff_fraction}"
            )


@dataclass
class ChordConfig:
    """Chord detection, stabilization and key estimation parameters."""

    peak_threshold: int = 100      # Byte magnitude a chord peak must exceed
    max_peaks: int = 5             # Strongest peaks considered per frame
    min_peak_bin: int = 5          # First bin scanned for chord peaks
    history_ms: float = 2000.0     # ChordHistory lookback
    quorum_ms: float = 800.0       # Stabilization window
    quorum_count: int = 2          # A label needs strictly more hits than this
    key_min_history: int = 10      # Entries required before estimating a key

    def __post_init__(self):
        if self.max_peaks < 1:
            raise ValueError(f"max_peaks must be >= 1, got {self.max_peaks}")
        if self.min_peak_bin < 1:
            raise ValueError(f"min_peak_bin must be >= 1, got {self.min_peak_bin}")
        if self.quorum_ms <= 0 or self.history_ms <= 0:
            raise ValueError("history_ms and quorum_ms must be positive")
        if self.quorum_ms > self.history_ms:
            raise ValueError(
                f"quorum_ms ({self.quorum_ms}) cannot exceed history_ms ({self.history_ms})"
            )


@dataclass
class RhythmConfig:
    """Rhythm heuristic constants."""

    low_bins: int = 10             # Bins averaged for low-band energy
    tempo_base: float = 60.0       # BPM at zero low-band energy
    tempo_scale: float = 0.5       # BPM per unit of low-band energy
    beat_divisor: float = 150.0    # Low-band energy that saturates beat strength
    syncopation_bins: int = 50     # Bins scanned for successive variation
    syncopation_divisor: float = 5000.0

    def __post_init__(self):
        if self.low_bins < 1 or self.syncopation_bins < 2:
            raise ValueError("low_bins must be >= 1 and syncopation_bins >= 2")
        if self.beat_divisor <= 0 or self.syncopation_divisor <= 0:
            raise ValueError("rhythm divisors must be positive")


@dataclass
class EventConfig:
    """Peak event tracker parameters."""

    peak_threshold: int = 120      # Byte magnitude an event peak must exceed
    min_peak_bin: int = 10         # First bin scanned for events
    merge_distance_hz: float = 300.0
    inactive_after_ms: float = 300.0
    expire_after_ms: float = 20000.0
    max_events: int = 256          # Hard cap on live events
    jitter: float = 0.3            # Full width of the positional jitter
    seed: Optional[int] = None

    def __post_init__(self):
        if self.max_events < 1:
            raise ValueError(f"max_events must be >= 1, got {self.max_events}")
        if self.min_peak_bin < 1:
            raise ValueError(f"min_peak_bin must be >= 1, got {self.min_peak_bin}")
        if self.inactive_after_ms > self.expire_after_ms:
            raise ValueError("inactive_after_ms cannot exceed expire_after_ms")


@dataclass
class HistoryConfig:
    """History buffer parameters."""

    interval_s: float = 0.5        # Minimum playback time between samples
    capacity: int = 1000

    def __post_init__(self):
        if self.interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {self.interval_s}")
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")


@dataclass
class EngineConfig:
    """Aggregate configuration for :class:`~timbrespace.core.stream.RealtimeAnalyzer`."""

    spectral: SpectralConfig = field(default_factory=SpectralConfig)
    chord: ChordConfig = field(default_factory=ChordConfig)
    rhythm: RhythmConfig = field(default_factory=RhythmConfig)
    events: EventConfig = field(default_factory=EventConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    frame_budget_ms: float = 16.0

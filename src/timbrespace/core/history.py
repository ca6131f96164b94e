"""
Bounded time series of analysis samples for export.
"""

from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from timbrespace.config import HistoryConfig
from timbrespace.core.notes import UNDETECTED
from timbrespace.core.spectral import FeatureSet


@dataclass(frozen=True)
class HistorySample:
    """One periodic snapshot of the analysis, keyed by playback time."""

    time: float
    features: FeatureSet
    chord: str = UNDETECTED
    chord_degree: str = UNDETECTED
    tempo: float = 120.0
    beat_strength: float = 0.0
    instrument_energies: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        # Private read-only copy of the caller's mapping.
        object.__setattr__(
            self, "instrument_energies", MappingProxyType(dict(self.instrument_energies))
        )

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "features": self.features.to_dict(),
            "chord": self.chord,
            "chord_degree": self.chord_degree,
            "tempo": self.tempo,
            "beat_strength": self.beat_strength,
            "instrument_energies": dict(self.instrument_energies),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistorySample":
        return cls(
            time=float(data["time"]),
            features=FeatureSet.from_dict(data["features"]),
            chord=data["chord"],
            chord_degree=data["chord_degree"],
            tempo=float(data["tempo"]),
            beat_strength=float(data["beat_strength"]),
            instrument_energies={
                k: float(v) for k, v in data["instrument_energies"].items()
            },
        )


class HistoryRecorder:
    """
    Drop-oldest buffer sampled on playback time rather than frame rate.

    A sample is kept only if it is the first one, if at least
    ``interval_s`` of playback has passed since the last kept sample, or if
    playback jumped backwards (a seek).
    """

    def __init__(self, config: Optional[HistoryConfig] = None):
        self.config = config or HistoryConfig()
        self._samples: deque = deque(maxlen=self.config.capacity)
        self._last_time: Optional[float] = None

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def samples(self) -> tuple[HistorySample, ...]:
        return tuple(self._samples)

    def due(self, time: float) -> bool:
        """Whether a sample at playback *time* would be accepted."""
        if self._last_time is None or time < self._last_time:
            return True
        return time - self._last_time >= self.config.interval_s

    def record(self, sample: HistorySample) -> bool:
        """Append *sample* if the playback-time gate allows it."""
        if not self.due(sample.time):
            return False
        self._samples.append(sample)
        self._last_time = sample.time
        return True

    def reset(self) -> None:
        self._samples.clear()
        self._last_time = None

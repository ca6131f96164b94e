"""
Rhythm descriptors from a single frame.

These are deliberately simple stand-ins for real beat tracking: tempo is a
linear function of low-band energy and syncopation is low-spectrum
jaggedness.  Downstream consumers depend on the exact formulas.
"""

from dataclasses import asdict, dataclass
from typing import Optional, Sequence

import numpy as np

from timbrespace.config import RhythmConfig


@dataclass(frozen=True)
class RhythmMetrics:
    """Per-frame rhythm estimate."""

    tempo: float = 120.0
    beat_strength: float = 0.0
    syncopation: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RhythmMetrics":
        return cls(
            tempo=float(data["tempo"]),
            beat_strength=float(data["beat_strength"]),
            syncopation=float(data["syncopation"]),
        )


DEFAULT_RHYTHM = RhythmMetrics()


def estimate_rhythm(
    waveform_samples: Sequence[int],
    frequency_magnitudes: Sequence[int],
    config: Optional[RhythmConfig] = None,
) -> RhythmMetrics:
    """
    Estimate tempo, beat strength and syncopation for one frame.

    Args:
        waveform_samples: Byte waveform.  Accepted for interface symmetry;
            the current heuristic only reads the spectrum.
        frequency_magnitudes: Byte magnitude spectrum.
        config: Heuristic constants (defaults when None).

    Returns:
        RhythmMetrics with beat strength and syncopation clamped to [0, 1].
    """
    config = config or RhythmConfig()
    spectrum = np.asarray(frequency_magnitudes, dtype=np.float64)

    low_energy = float(np.sum(spectrum[: config.low_bins])) / config.low_bins
    tempo = float(np.floor(config.tempo_base + low_energy * config.tempo_scale + 0.5))
    beat_strength = min(1.0, low_energy / config.beat_divisor)

    variation = float(np.sum(np.abs(np.diff(spectrum[: config.syncopation_bins]))))
    syncopation = min(1.0, variation / config.syncopation_divisor)

    return RhythmMetrics(
        tempo=tempo,
        beat_strength=beat_strength,
        syncopation=syncopation,
    )

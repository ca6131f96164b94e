"""
Per-frame spectral descriptors.

Converts one frame's byte magnitude spectrum and byte waveform into scalar
timbre descriptors.  Every function here is pure and total: empty or silent
buffers produce defined defaults instead of raising.
"""

import math
from dataclasses import asdict, dataclass
from typing import Sequence

import numpy as np

from timbrespace.core.notes import bin_frequencies

# Centre value of unsigned 8-bit waveform samples.
WAVEFORM_CENTER = 128

# Fixed instrument bands (Hz) used for per-instrument energy.
INSTRUMENT_BANDS = {
    "Kick": (20.0, 150.0),
    "Snare": (150.0, 400.0),
    "Hi-Hat": (3000.0, 8000.0),
    "Bass": (40.0, 250.0),
    "Synth": (250.0, 2000.0),
    "Vocal": (300.0, 3000.0),
    "Guitar": (80.0, 1200.0),
    "Piano": (27.0, 4200.0),
}


@dataclass(frozen=True)
class FeatureSet:
    """Scalar timbre descriptors for a single frame."""

    spectral_centroid: float = 0.0
    spectral_rolloff: float = 0.0
    roughness: float = 0.0
    zero_crossing_rate: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FeatureSet":
        return cls(**{k: float(data[k]) for k in cls.__dataclass_fields__})


def _nyquist(sample_rate: float) -> float:
    if not math.isfinite(sample_rate) or sample_rate <= 0:
        return 0.0
    return sample_rate / 2.0


def spectral_centroid(magnitudes: np.ndarray, sample_rate: float) -> float:
    """Magnitude-weighted mean bin frequency; 0 for a silent spectrum."""
    total = float(np.sum(magnitudes))
    if total <= 0:
        return 0.0
    freqs = bin_frequencies(len(magnitudes), sample_rate)
    return float(np.dot(freqs, magnitudes) / total)


def spectral_rolloff(
    magnitudes: np.ndarray,
    sample_rate: float,
    fraction: float = 0.85,
) -> float:
    """
    Lowest bin frequency below which *fraction* of the total magnitude lies.

    Falls back to Nyquist when the spectrum is empty or silent.
    """
    total = float(np.sum(magnitudes))
    if total <= 0:
        return _nyquist(sample_rate)

    cumulative = np.cumsum(magnitudes)
    reached = np.nonzero(cumulative >= total * fraction)[0]
    if len(reached) == 0:
        return _nyquist(sample_rate)
    freqs = bin_frequencies(len(magnitudes), sample_rate)
    return float(freqs[reached[0]])


def spectral_roughness(magnitudes: np.ndarray) -> float:
    """Mean absolute difference between successive bins (spectral jaggedness)."""
    if len(magnitudes) == 0:
        return 0.0
    return float(np.sum(np.abs(np.diff(magnitudes))) / len(magnitudes))


def zero_crossing_rate(samples: np.ndarray) -> float:
    """
    Fraction of successive sample pairs that cross the 8-bit centre line.

    A sample at or above ``WAVEFORM_CENTER`` counts as positive.  The count
    is normalized by the number of pairs, so a buffer that alternates sides
    on every sample scores exactly 1.0.
    """
    if len(samples) < 2:
        return 0.0
    positive = samples >= WAVEFORM_CENTER
    crossings = np.count_nonzero(positive[1:] != positive[:-1])
    return float(crossings / (len(samples) - 1))


def extract_features(
    frequency_magnitudes: Sequence[int],
    waveform_samples: Sequence[int],
    sample_rate: float,
    rolloff_fraction: float = 0.85,
) -> FeatureSet:
    """
    Compute the full :class:`FeatureSet` for one frame.

    Args:
        frequency_magnitudes: Byte magnitude spectrum (N bins).
        waveform_samples: Byte waveform (M samples, centred on 128).
        sample_rate: Audio sample rate in Hz.
        rolloff_fraction: Energy share used for the rolloff frequency.

    Returns:
        FeatureSet with centroid, rolloff, roughness and zero-crossing rate.
    """
    magnitudes = np.asarray(frequency_magnitudes, dtype=np.float64)
    samples = np.asarray(waveform_samples, dtype=np.float64)

    return FeatureSet(
        spectral_centroid=spectral_centroid(magnitudes, sample_rate),
        spectral_rolloff=spectral_rolloff(magnitudes, sample_rate, rolloff_fraction),
        roughness=spectral_roughness(magnitudes),
        zero_crossing_rate=zero_crossing_rate(samples),
    )


def band_energy(
    magnitudes: np.ndarray,
    sample_rate: float,
    low_hz: float,
    high_hz: float,
) -> float:
    """Mean normalized byte magnitude of the bins covering ``[low_hz, high_hz)``."""
    nyquist = _nyquist(sample_rate)
    n_bins = len(magnitudes)
    if nyquist <= 0 or n_bins == 0:
        return 0.0

    lo = max(0, int(math.floor(low_hz / nyquist * n_bins)))
    hi = min(n_bins, int(math.floor(high_hz / nyquist * n_bins)))
    if hi <= lo:
        return 0.0
    return float(np.mean(magnitudes[lo:hi]) / 255.0)


def instrument_energies(
    frequency_magnitudes: Sequence[int],
    sample_rate: float,
) -> dict[str, float]:
    """Energy in [0, 1] for each of the fixed :data:`INSTRUMENT_BANDS`."""
    magnitudes = np.asarray(frequency_magnitudes, dtype=np.float64)
    return {
        name: band_energy(magnitudes, sample_rate, low, high)
        for name, (low, high) in INSTRUMENT_BANDS.items()
    }

"""
Frequency bin and pitch-class helpers shared by the chord classifier and
the peak event tracker.
"""

import math

import librosa
import numpy as np
from scipy import signal as scipy_signal

UNDETECTED = "---"

PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Piano key 49 is A4 (440 Hz); key 40 is middle C.
_A4_KEY = 49
_KEY_TO_MIDI = 20


def bin_frequencies(n_bins: int, sample_rate: float) -> np.ndarray:
    """
    Centre frequency of each magnitude bin, ``i * sample_rate / (2 * n_bins)``.

    Args:
        n_bins: Number of magnitude bins (half the FFT size).
        sample_rate: Audio sample rate in Hz.

    Returns:
        Array of ``n_bins`` frequencies in Hz.
    """
    if n_bins <= 0:
        return np.zeros(0)
    if not math.isfinite(sample_rate) or sample_rate <= 0:
        return np.zeros(n_bins)
    return librosa.fft_frequencies(sr=sample_rate, n_fft=2 * n_bins)[:n_bins]


def piano_key_number(frequency: float) -> int:
    """Nearest piano key number (A0 = 1, A4 = 49) for *frequency*."""
    # Half-up rounding: a quarter-tone boundary resolves to the upper key.
    return math.floor(float(librosa.hz_to_midi(frequency)) - _KEY_TO_MIDI + 0.5)


def frequency_to_note(frequency: float) -> str:
    """
    Map a frequency to its pitch-class name on an A440 keyboard.

    Frequencies below 20 Hz (and non-finite input) map to ``UNDETECTED``.
    """
    if not math.isfinite(frequency) or frequency < 20:
        return UNDETECTED
    # Names follow the MIDI pitch class, so A440 is "A". Indexing PITCH_NAMES
    # by the bare key number would name it "C#" and shift every note.
    return PITCH_NAMES[(piano_key_number(frequency) + _KEY_TO_MIDI) % 12]


def note_index(note: str) -> int:
    """Pitch-class index (C = 0) of *note*, or -1 if it is not a pitch name."""
    try:
        return PITCH_NAMES.index(note)
    except ValueError:
        return -1


def find_local_peaks(
    spectrum: np.ndarray,
    start: int,
    stop: int,
    threshold: float,
) -> np.ndarray:
    """
    Indices in ``[start, stop)`` that are strict local maxima above *threshold*.

    A bin qualifies only if it is strictly greater than both neighbours, so
    flat tops never count as peaks.  Bins without two neighbours are skipped.

    Args:
        spectrum: 1-D magnitude array.
        start: First candidate bin (clamped to 1).
        stop: One past the last candidate bin (clamped to ``len - 1``).
        threshold: Magnitude a peak must strictly exceed.

    Returns:
        Ascending array of bin indices.
    """
    spectrum = np.asarray(spectrum)
    start = max(1, start)
    stop = min(stop, len(spectrum) - 1)
    if stop <= start:
        return np.zeros(0, dtype=int)

    # Include one neighbour on each side so edge candidates can be compared.
    segment = np.asarray(spectrum[start - 1:stop + 1], dtype=np.float64)
    peaks, _ = scipy_signal.find_peaks(segment, plateau_size=(1, 1))
    peaks = peaks + start - 1
    return peaks[spectrum[peaks] > threshold]

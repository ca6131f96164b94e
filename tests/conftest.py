"""Shared fixtures: synthetic byte spectra laid out on a 44.1 kHz, 1024-bin grid."""

import numpy as np
import pytest

from timbrespace.core.stream import Frame

SR = 44100
N_BINS = 1024
WAVE_LEN = 2048

# Bins whose centre frequency (i * 44100 / 2048 Hz) rounds to the named pitch.
NOTE_BINS = {
    "C": 12,    # 258.4 Hz
    "E": 15,    # 323.0 Hz
    "F": 16,    # 344.5 Hz
    "G": 18,    # 387.6 Hz
    "A": 20,    # 430.7 Hz
    "B": 23,    # 495.3 Hz
    "C5": 24,   # 516.8 Hz
    "D": 27,    # 581.4 Hz
}


def make_spectrum(peaks, n_bins=N_BINS):
    """Zero spectrum with isolated peaks; *peaks* maps bin -> byte magnitude."""
    spectrum = np.zeros(n_bins, dtype=np.uint8)
    for i, magnitude in peaks.items():
        spectrum[i] = magnitude
    return spectrum


def chord_spectrum(*notes, top=220, step=15):
    """Spectrum whose peaks spell *notes*, strongest first."""
    return make_spectrum(
        {NOTE_BINS[n]: top - k * step for k, n in enumerate(notes)}
    )


def make_frame(spectrum=None, timestamp=0.0, playback_time=0.0, is_playing=True):
    if spectrum is None:
        spectrum = np.zeros(N_BINS, dtype=np.uint8)
    return Frame.create(
        spectrum,
        np.full(WAVE_LEN, 128, dtype=np.uint8),
        SR,
        timestamp=timestamp,
        playback_time=playback_time,
        is_playing=is_playing,
    )


@pytest.fixture
def c_major():
    return chord_spectrum("C", "E", "G")


@pytest.fixture
def g_major():
    return chord_spectrum("G", "B", "D")


@pytest.fixture
def silent():
    return np.zeros(N_BINS, dtype=np.uint8)


@pytest.fixture
def sine_wave():
    """One second of a quiet 440 Hz sine at 22.05 kHz."""
    sr = 22050
    t = np.linspace(0, 1.0, sr, endpoint=False)
    y = (0.01 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
    return y, sr

"""
Offline analyser-frame source.

Replays a decoded mono signal as the byte frames a browser ``AnalyserNode``
would deliver during playback, so recorded audio can drive the real-time
engine without a live capture graph.
"""

import logging
import math
from pathlib import Path
from typing import Iterator, Optional, Union

import librosa
import numpy as np

from timbrespace.core.spectral import WAVEFORM_CENTER
from timbrespace.core.stream import Frame

logger = logging.getLogger(__name__)


class AnalyserFrameSource:
    """
    Byte-spectrum and byte-waveform frames at a fixed tick rate.

    Each frame looks at the ``fft_size`` samples that end at its playback
    position, applies a Blackman window, smooths magnitudes over time and
    maps the ``[min_db, max_db]`` range onto 0..255.
    """

    def __init__(
        self,
        fft_size: int = 2048,
        smoothing: float = 0.8,
        min_db: float = -100.0,
        max_db: float = -30.0,
        fps: float = 60.0,
    ):
        """
        Initialize the frame source.

        Args:
            fft_size: Analysis window length; yields ``fft_size // 2`` bins.
            smoothing: Time constant blending each magnitude with the last.
            min_db: Level mapped to byte 0.
            max_db: Level mapped to byte 255.
            fps: Frames per second of playback.
        """
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {smoothing}")
        if max_db <= min_db:
            raise ValueError("max_db must be greater than min_db")
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_db = min_db
        self.max_db = max_db
        self.fps = fps
        self.window = librosa.filters.get_window("blackman", fft_size, fftbins=True)

    @property
    def n_bins(self) -> int:
        return self.fft_size // 2

    def load(self, audio_path: Union[str, Path]) -> tuple[np.ndarray, int]:
        """
        Decode an audio file to mono at its native sample rate.

        Args:
            audio_path: Path to audio file (wav, mp3, flac).

        Returns:
            Tuple of (audio_signal, sample_rate).
        """
        y, sr = librosa.load(audio_path, sr=None, mono=True)
        logger.info(
            "Loaded %s (%.1f s at %d Hz)",
            audio_path, librosa.get_duration(y=y, sr=sr), sr,
        )
        return y, sr

    def n_frames(self, n_samples: int, sr: int, max_duration: Optional[float] = None) -> int:
        """Number of frames covering *n_samples* (optionally truncated)."""
        duration = n_samples / sr if sr > 0 else 0.0
        if max_duration is not None:
            duration = min(duration, max_duration)
        return int(math.floor(duration * self.fps))

    def _byte_spectrum(self, segment: np.ndarray, previous: np.ndarray) -> np.ndarray:
        spectrum = np.fft.rfft(segment * self.window)[: self.n_bins]
        magnitude = np.abs(spectrum) / self.fft_size
        smoothed = self.smoothing * previous + (1.0 - self.smoothing) * magnitude
        previous[:] = smoothed

        db = librosa.amplitude_to_db(smoothed, ref=1.0, amin=1e-10, top_db=None)
        scaled = 255.0 / (self.max_db - self.min_db) * (db - self.min_db)
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)

    def _byte_waveform(self, segment: np.ndarray) -> np.ndarray:
        scaled = np.floor(WAVEFORM_CENTER * (1.0 + segment))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def frames(
        self,
        y: np.ndarray,
        sr: int,
        max_duration: Optional[float] = None,
    ) -> Iterator[Frame]:
        """
        Yield one :class:`Frame` per tick of simulated playback.

        Args:
            y: Mono audio time series in [-1, 1].
            sr: Sample rate.
            max_duration: Stop after this many seconds (None for all).

        Yields:
            Frames with ``timestamp = playback_time * 1000``.
        """
        y = np.asarray(y, dtype=np.float64)
        # Leading silence lets early frames see a full window.
        padded = np.concatenate([np.zeros(self.fft_size), y])
        previous = np.zeros(self.n_bins)

        for k in range(self.n_frames(len(y), sr, max_duration)):
            playback_time = k / self.fps
            end = self.fft_size + int(round(playback_time * sr))
            segment = padded[end - self.fft_size:end]

            yield Frame(
                frequency_magnitudes=self._byte_spectrum(segment, previous),
                waveform_samples=self._byte_waveform(segment),
                sample_rate=float(sr),
                timestamp=playback_time * 1000.0,
                playback_time=playback_time,
                is_playing=True,
            )

"""
Peak event tracking.

Sustained spectral peaks become short-lived "sound events" placed in a 3-D
timbre space (brightness, energy, warmth) for visualization.  A peak close
in frequency to a live event refreshes it; otherwise a new event spawns.
Events go inactive after a short silence and expire after a long one.
"""

import logging
import math
from dataclasses import asdict, dataclass, replace
from typing import Optional, Sequence

import numpy as np

from timbrespace.config import EventConfig
from timbrespace.core.notes import bin_frequencies, find_local_peaks

logger = logging.getLogger(__name__)

MIN_EVENT_HZ = 20.0
MAX_EVENT_HZ = 20000.0
EVENT_HALF_WIDTH_HZ = 100.0


@dataclass(frozen=True)
class PeakEvent:
    """Immutable view of one tracked spectral peak."""

    id: str
    name: str
    color: str
    freq_range: tuple[float, float]
    position: tuple[float, float, float]
    created_at: float
    last_active: float
    is_active: bool = True
    magnitude: float = 0.0

    @property
    def center_frequency(self) -> float:
        return (self.freq_range[0] + self.freq_range[1]) / 2.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["freq_range"] = list(self.freq_range)
        data["position"] = list(self.position)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PeakEvent":
        return cls(
            id=data["id"],
            name=data["name"],
            color=data["color"],
            freq_range=tuple(float(v) for v in data["freq_range"]),
            position=tuple(float(v) for v in data["position"]),
            created_at=float(data["created_at"]),
            last_active=float(data["last_active"]),
            is_active=bool(data["is_active"]),
            magnitude=float(data.get("magnitude", 0.0)),
        )


def timbre_position(frequency: float, magnitude: float) -> tuple[float, float, float]:
    """
    Map a peak to (brightness, energy, warmth) coordinates, without jitter.

    Brightness grows with log frequency over 20 Hz - 20 kHz (-2.5 .. 2.5),
    energy with magnitude (-1 .. 3), warmth falls with frequency (2 .. -2).
    """
    freq_norm = math.log10(frequency / MIN_EVENT_HZ) / math.log10(MAX_EVENT_HZ / MIN_EVENT_HZ)
    energy_norm = magnitude / 255.0
    return (
        freq_norm * 5.0 - 2.5,
        energy_norm * 4.0 - 1.0,
        (1.0 - freq_norm) * 4.0 - 2.0,
    )


def event_color(frequency: float, magnitude: float) -> str:
    """HSL colour: hue follows log frequency, saturation and lightness follow energy."""
    freq_norm = math.log10(frequency / MIN_EVENT_HZ) / math.log10(MAX_EVENT_HZ / MIN_EVENT_HZ)
    energy_norm = magnitude / 255.0
    hue = math.floor(freq_norm * 300)
    saturation = 60 + energy_norm * 30
    lightness = 50 + energy_norm * 20
    return f"hsl({hue}, {saturation:.1f}%, {lightness:.1f}%)"


class PeakEventTracker:
    """
    Mark-and-expire set of :class:`PeakEvent` with proximity merging.

    Events are immutable; updates replace the stored instance, so a
    snapshot tuple handed out earlier never changes underneath its holder.
    """

    def __init__(self, config: Optional[EventConfig] = None):
        self.config = config or EventConfig()
        self.rng = np.random.default_rng(self.config.seed)
        self._events: dict[str, PeakEvent] = {}

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> tuple[PeakEvent, ...]:
        """Snapshot of live events in spawn order."""
        return tuple(self._events.values())

    def reset(self) -> None:
        self._events.clear()

    def update(
        self,
        frequency_magnitudes: Sequence[int],
        sample_rate: float,
        now: float,
    ) -> tuple[PeakEvent, ...]:
        """
        Match this frame's peaks to live events, then sweep stale ones.

        Args:
            frequency_magnitudes: Byte magnitude spectrum (N bins).
            sample_rate: Audio sample rate in Hz.
            now: Current time in milliseconds.

        Returns:
            Snapshot of live events after the update.
        """
        cfg = self.config
        spectrum = np.asarray(frequency_magnitudes, dtype=np.float64)
        n_bins = len(spectrum)
        freqs = bin_frequencies(n_bins, sample_rate)

        peaks = find_local_peaks(
            spectrum,
            start=cfg.min_peak_bin,
            stop=-(-n_bins // 2),
            threshold=cfg.peak_threshold,
        )
        for i in peaks:
            freq = float(freqs[i])
            if freq <= 0:
                continue
            magnitude = float(spectrum[i])
            match = self._find_near(freq)
            if match is not None:
                self._events[match.id] = replace(
                    match, last_active=now, is_active=True, magnitude=magnitude
                )
            else:
                self._spawn(freq, magnitude, now)

        self._sweep(now)
        return self.events

    def _find_near(self, freq: float) -> Optional[PeakEvent]:
        for event in self._events.values():
            if abs(event.center_frequency - freq) < self.config.merge_distance_hz:
                return event
        return None

    def _spawn(self, freq: float, magnitude: float, now: float) -> PeakEvent:
        if len(self._events) >= self.config.max_events:
            self._evict_oldest()

        half = self.config.jitter / 2.0
        base = timbre_position(freq, magnitude)
        jitter = self.rng.uniform(-half, half, size=3)
        event = PeakEvent(
            id=f"dynamic-{freq:.0f}-{now:.0f}",
            name=f"{freq:.0f}Hz",
            color=event_color(freq, magnitude),
            freq_range=(
                max(MIN_EVENT_HZ, freq - EVENT_HALF_WIDTH_HZ),
                min(MAX_EVENT_HZ, freq + EVENT_HALF_WIDTH_HZ),
            ),
            position=tuple(float(b + j) for b, j in zip(base, jitter)),
            created_at=now,
            last_active=now,
            is_active=True,
            magnitude=magnitude,
        )
        self._events[event.id] = event
        logger.debug(
            "New sound %s at [%s] %s",
            event.name,
            ", ".join(f"{v:.2f}" for v in event.position),
            event.color,
        )
        return event

    def _evict_oldest(self) -> None:
        victim = min(self._events.values(), key=lambda e: (e.last_active, e.created_at))
        del self._events[victim.id]
        logger.debug("Evicted %s (live event cap %d)", victim.name, self.config.max_events)

    def _sweep(self, now: float) -> None:
        cfg = self.config
        for event_id, event in list(self._events.items()):
            idle = now - event.last_active
            if idle > cfg.expire_after_ms:
                del self._events[event_id]
            elif idle > cfg.inactive_after_ms and event.is_active:
                self._events[event_id] = replace(event, is_active=False)

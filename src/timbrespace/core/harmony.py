"""
Chord and key inference.

A fast peak-picking heuristic labels each frame's chord, and a short
quorum window debounces those labels into a stable chord.  The tonic is
the most frequent root note over the longer chord history, and the stable
chord is rendered as a Roman-numeral degree relative to it.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence

import numpy as np

from timbrespace.config import ChordConfig
from timbrespace.core.notes import (
    UNDETECTED,
    bin_frequencies,
    find_local_peaks,
    frequency_to_note,
    note_index,
)

logger = logging.getLogger(__name__)

ROMAN_NUMERALS = ["I", "♭II", "II", "♭III", "III", "IV", "♭V", "V", "♭VI", "VI", "♭VII", "VII"]


class ChordQuality(Enum):
    """Chord quality produced by the peak heuristic, with its label suffix."""

    NOTE = ""
    POWER = "5"
    MAJOR = "maj"
    MINOR = "m"
    SUS = "sus"
    DOMINANT7 = "7"
    MINOR7 = "m7"
    ADD9 = "add9"

    @property
    def suffix(self) -> str:
        if self is ChordQuality.MAJOR:
            return ""
        return self.value

    @property
    def is_minor(self) -> bool:
        return self in (ChordQuality.MINOR, ChordQuality.MINOR7)


@dataclass(frozen=True)
class Chord:
    """A detected chord: root pitch class plus quality."""

    root: str = UNDETECTED
    quality: Optional[ChordQuality] = None

    @property
    def detected(self) -> bool:
        return self.root != UNDETECTED and self.quality is not None

    @property
    def label(self) -> str:
        """Display label, e.g. ``"C"``, ``"Am"``, ``"G7"`` or ``"---"``."""
        if not self.detected:
            return UNDETECTED
        return f"{self.root}{self.quality.suffix}"


NO_CHORD = Chord()


@dataclass(frozen=True)
class ChordObservation:
    """One per-frame chord reading in the rolling history."""

    chord: Chord
    timestamp: float

    @property
    def label(self) -> str:
        return self.chord.label

    @property
    def root_note(self) -> str:
        return self.chord.root


@dataclass
class StableChordState:
    """Debounced chord and key state exposed to consumers."""

    chord: Chord = NO_CHORD
    song_key: str = UNDETECTED
    chord_degree: str = UNDETECTED

    @property
    def label(self) -> str:
        return self.chord.label

    @property
    def root_note(self) -> str:
        return self.chord.root


def classify_notes(notes: Sequence[str]) -> Chord:
    """
    Label a chord from pitch classes ordered by peak strength.

    The first note is the root.  Quality depends on how many distinct pitch
    classes are present and which intervals above the root they form.
    """
    unique = list(dict.fromkeys(n for n in notes if n != UNDETECTED))
    if not unique:
        return NO_CHORD

    root = unique[0]
    root_idx = note_index(root)
    intervals = {(note_index(n) - root_idx) % 12 for n in unique[1:]}

    if len(unique) == 1:
        quality = ChordQuality.NOTE
    elif len(unique) == 2:
        quality = ChordQuality.POWER
    elif len(unique) == 3:
        if 3 in intervals:
            quality = ChordQuality.MINOR
        elif 4 in intervals:
            quality = ChordQuality.MAJOR
        else:
            quality = ChordQuality.SUS
    else:
        has_seventh = 10 in intervals or 11 in intervals
        if has_seventh and 3 in intervals:
            quality = ChordQuality.MINOR7
        elif has_seventh:
            quality = ChordQuality.DOMINANT7
        else:
            quality = ChordQuality.ADD9

    return Chord(root=root, quality=quality)


def detect_chord(
    frequency_magnitudes: Sequence[int],
    sample_rate: float,
    config: Optional[ChordConfig] = None,
) -> Chord:
    """
    Estimate the sounding chord from the lower quarter of the spectrum.

    Args:
        frequency_magnitudes: Byte magnitude spectrum (N bins).
        sample_rate: Audio sample rate in Hz.
        config: Peak threshold and peak count (defaults when None).

    Returns:
        The detected :class:`Chord`, or ``NO_CHORD`` when no peak clears
        the threshold.
    """
    config = config or ChordConfig()
    spectrum = np.asarray(frequency_magnitudes, dtype=np.float64)
    n_bins = len(spectrum)

    peaks = find_local_peaks(
        spectrum,
        start=config.min_peak_bin,
        stop=-(-n_bins // 4),
        threshold=config.peak_threshold,
    )
    if len(peaks) == 0:
        return NO_CHORD

    # Strongest first; stable sort keeps bin order for equal magnitudes.
    order = np.argsort(-spectrum[peaks], kind="stable")
    strongest = peaks[order][: config.max_peaks]

    freqs = bin_frequencies(n_bins, sample_rate)
    return classify_notes([frequency_to_note(float(freqs[i])) for i in strongest])


def detect_key(history: Iterable[ChordObservation], min_entries: int = 10) -> str:
    """
    Most frequent detected root note over *history*, or ``UNDETECTED``.

    Requires at least *min_entries* observations; ties go to the root that
    appears first in *history*.
    """
    history = list(history)
    if len(history) < min_entries:
        return UNDETECTED

    counts = Counter(h.root_note for h in history if h.root_note != UNDETECTED)
    tonic = UNDETECTED
    best = 0
    for note, count in counts.items():
        if count > best:
            best = count
            tonic = note
    return tonic


def chord_degree(chord: Chord, key: str) -> str:
    """
    Roman-numeral scale degree of *chord* relative to the tonic *key*.

    Non-diatonic degrees carry a flat.  Minor chords are lower-case except
    on the tonic itself.
    """
    if not chord.detected or key == UNDETECTED:
        return UNDETECTED

    key_idx = note_index(key)
    chord_idx = note_index(chord.root)
    if key_idx < 0 or chord_idx < 0:
        return UNDETECTED

    degree = (chord_idx - key_idx) % 12
    numeral = ROMAN_NUMERALS[degree]
    if chord.quality.is_minor and degree != 0:
        numeral = numeral.lower()
    return numeral


@dataclass
class ChordStabilizer:
    """
    Debounces per-frame chord readings into a :class:`StableChordState`.

    Owns the rolling chord history; one instance per analysed track.
    """

    config: ChordConfig = field(default_factory=ChordConfig)
    state: StableChordState = field(default_factory=StableChordState)
    history: deque = field(default_factory=deque)

    def observe(self, chord: Chord, now: float) -> bool:
        """
        Add a reading at time *now* (ms) and update the stable state.

        Returns:
            True if the stable chord label changed.
        """
        if self.history and now < self.history[-1].timestamp:
            now = self.history[-1].timestamp
        self.history.append(ChordObservation(chord=chord, timestamp=now))
        while self.history and now - self.history[0].timestamp >= self.config.history_ms:
            self.history.popleft()

        winner = self._quorum_winner(now)
        current = self.state.chord
        if winner.detected or not current.detected:
            song_key = detect_key(self.history, self.config.key_min_history)
            self.state = StableChordState(
                chord=winner,
                song_key=song_key,
                chord_degree=chord_degree(winner, song_key),
            )
        changed = self.state.label != current.label
        if changed:
            logger.debug("Stable chord %s -> %s", current.label, self.state.label)
        return changed

    def _quorum_winner(self, now: float) -> Chord:
        recent = [h for h in self.history if now - h.timestamp < self.config.quorum_ms]
        counts = Counter(h.label for h in recent)
        first_seen = {}
        for h in recent:
            first_seen.setdefault(h.label, h.chord)

        winner = NO_CHORD
        best = 0
        for label, count in counts.items():
            if count > best and count > self.config.quorum_count:
                best = count
                winner = first_seen[label]
        return winner

    def reset(self) -> None:
        self.history.clear()
        self.state = StableChordState()

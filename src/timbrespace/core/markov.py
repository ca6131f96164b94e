"""
First-order Markov model of chord transitions.

Counts how often each stable chord is followed by each other chord and
scores how predictable the progression is: the share of all transitions
that follow the most common continuation of their source chord.
"""

import logging
import math
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from timbrespace.core.notes import UNDETECTED

logger = logging.getLogger(__name__)


class TransitionModel:
    """
    Online chord-transition counts with predictability and entropy scores.

    Self-transitions and transitions to or from an undetected chord are
    never recorded.  Counts only grow until :meth:`reset`.
    """

    def __init__(self):
        self._counts: dict[str, dict[str, int]] = {}
        self._predictability = 0.0

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, from_chord: str, to_chord: str) -> bool:
        """
        Count one ``from_chord -> to_chord`` transition.

        Returns:
            True if the transition was counted, False if it was ignored.
        """
        if UNDETECTED in (from_chord, to_chord) or from_chord == to_chord:
            return False

        outgoing = self._counts.setdefault(from_chord, {})
        outgoing[to_chord] = outgoing.get(to_chord, 0) + 1
        self._predictability = self._compute_predictability()
        logger.debug(
            "Transition %s -> %s (count=%d, predictability=%.3f)",
            from_chord, to_chord, outgoing[to_chord], self._predictability,
        )
        return True

    def _compute_predictability(self) -> float:
        total = 0
        dominant = 0
        for outgoing in self._counts.values():
            total += sum(outgoing.values())
            dominant += max(outgoing.values())
        return dominant / total if total > 0 else 0.0

    def reset(self) -> None:
        self._counts.clear()
        self._predictability = 0.0

    # ------------------------------------------------------------------
    # Scores and queries
    # ------------------------------------------------------------------

    @property
    def predictability(self) -> float:
        """Sum of per-source maximum counts over the sum of all counts, in [0, 1]."""
        return self._predictability

    @property
    def entropy(self) -> float:
        """Display proxy for surprise: ``-log2(max(0.001, 1 - predictability))``."""
        return -math.log2(max(0.001, 1.0 - self._predictability))

    @property
    def total(self) -> int:
        return sum(sum(outgoing.values()) for outgoing in self._counts.values())

    def __len__(self) -> int:
        """Number of source chords with at least one outgoing transition."""
        return len(self._counts)

    def count(self, from_chord: str, to_chord: str) -> int:
        return self._counts.get(from_chord, {}).get(to_chord, 0)

    def probability(self, from_chord: str, to_chord: str) -> float:
        """Empirical ``P(to_chord | from_chord)``; 0 for an unseen source."""
        outgoing = self._counts.get(from_chord)
        if not outgoing:
            return 0.0
        return outgoing.get(to_chord, 0) / sum(outgoing.values())

    def most_common(self, n: int = 5) -> list[tuple[str, str, int]]:
        """The *n* most frequent transitions as ``(from, to, count)``."""
        flat = [
            (src, dst, count)
            for src, outgoing in self._counts.items()
            for dst, count in outgoing.items()
        ]
        flat.sort(key=lambda t: t[2], reverse=True)
        return flat[:n]

    def view(self) -> Mapping[str, Mapping[str, int]]:
        """Read-only copy of the counts, safe to hand to other consumers."""
        return MappingProxyType(
            {src: MappingProxyType(dict(outgoing)) for src, outgoing in self._counts.items()}
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_list(self) -> list[dict[str, Any]]:
        return transitions_to_list(self._counts)

    @classmethod
    def from_list(cls, data: Iterable[Mapping[str, Any]]) -> "TransitionModel":
        """Rebuild a model from :meth:`to_list` output."""
        model = cls()
        for entry in data:
            outgoing = {
                t["to_chord"]: int(t["count"])
                for t in entry["transitions"]
                if int(t["count"]) > 0
            }
            if outgoing:
                model._counts[entry["from"]] = outgoing
        model._predictability = model._compute_predictability()
        return model


def transitions_to_list(counts: Mapping[str, Mapping[str, int]]) -> list[dict[str, Any]]:
    """Serialize nested transition counts to ``[{from, transitions: [...]}, ...]``."""
    return [
        {
            "from": src,
            "transitions": [
                {"to_chord": dst, "count": int(count)} for dst, count in outgoing.items()
            ],
        }
        for src, outgoing in counts.items()
    ]


def transitions_from_list(data: Iterable[Mapping[str, Any]]) -> dict[str, dict[str, int]]:
    """Inverse of :func:`transitions_to_list`."""
    return {
        entry["from"]: {t["to_chord"]: int(t["count"]) for t in entry["transitions"]}
        for entry in data
    }

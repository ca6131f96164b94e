"""
Analysis report serialization module.

Builds the export payload from a :class:`RealtimeAnalyzer` (latest snapshot,
sampled history and derived statistics) and writes it to JSON for offline
inspection and plotting.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import numpy as np

from timbrespace.core.history import HistorySample
from timbrespace.core.notes import UNDETECTED
from timbrespace.core.spectral import INSTRUMENT_BANDS, FeatureSet
from timbrespace.core.stream import RealtimeAnalyzer

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"

# An instrument band counts as active above this normalized energy.
ACTIVE_ENERGY = 0.1
# Samples within this share of a band's peak are reported as peak moments.
PEAK_FRACTION = 0.9
MAX_PEAK_TIMESTAMPS = 10
# Most frequent chord transitions listed in the overall statistics.
TOP_TRANSITIONS = 5


@dataclass
class ReportMetadata:
    """Metadata header for the analysis report."""

    duration: float
    n_samples: int
    sample_interval: float
    file_name: Optional[str] = None
    schema_version: str = SCHEMA_VERSION
    analyzed_at: str = ""


class ReportExporter:
    """
    Exports the analyzer state to a JSON report.

    Every float in the payload is rounded to ``precision`` decimal places.
    """

    def __init__(self, precision: int = 4):
        """
        Initialize the exporter.

        Args:
            precision: Decimal places for floating point values.
        """
        self.precision = precision

    def _round(self, value: float) -> float:
        """Round to configured precision."""
        return round(float(value), self.precision)

    def _round_tree(self, value: Any) -> Any:
        """Recursively round every float inside dicts and lists."""
        if isinstance(value, dict):
            return {k: self._round_tree(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._round_tree(v) for v in value]
        if isinstance(value, (float, np.floating)):
            return self._round(value)
        return value

    # ------------------------------------------------------------------
    # Derived statistics
    # ------------------------------------------------------------------

    def instrument_statistics(
        self,
        samples: Sequence[HistorySample],
        sample_interval: float,
    ) -> dict[str, dict[str, Any]]:
        """
        Per-band energy statistics over the history.

        Args:
            samples: History samples in recording order.
            sample_interval: Seconds represented by one sample.

        Returns:
            Mapping of band name to avg/peak/min energy, variance, active
            time in seconds and up to ten peak timestamps.
        """
        stats: dict[str, dict[str, Any]] = {}
        times = np.array([s.time for s in samples], dtype=np.float64)

        for name in INSTRUMENT_BANDS:
            energy = np.array(
                [s.instrument_energies.get(name, 0.0) for s in samples],
                dtype=np.float64,
            )
            if len(energy) == 0:
                stats[name] = {
                    "avg_energy": 0.0,
                    "peak_energy": 0.0,
                    "min_energy": 0.0,
                    "variance": 0.0,
                    "active_time": 0.0,
                    "peak_timestamps": [],
                }
                continue

            peak = float(np.max(energy))
            if peak > 0:
                peak_times = times[energy >= peak * PEAK_FRACTION][:MAX_PEAK_TIMESTAMPS]
            else:
                peak_times = np.zeros(0)

            stats[name] = {
                "avg_energy": self._round(np.mean(energy)),
                "peak_energy": self._round(peak),
                "min_energy": self._round(np.min(energy)),
                "variance": self._round(np.var(energy)),
                "active_time": self._round(
                    np.count_nonzero(energy > ACTIVE_ENERGY) * sample_interval
                ),
                "peak_timestamps": [self._round(t) for t in peak_times],
            }
        return stats

    def chord_progression(
        self,
        samples: Sequence[HistorySample],
        duration: float,
    ) -> list[dict[str, Any]]:
        """
        Collapse the sampled chords into timed progression entries.

        Undetected samples are skipped and consecutive repeats merged.  Each
        entry lasts until the next one starts; the last lasts until
        *duration*, never less than zero.
        """
        entries: list[dict[str, Any]] = []
        for sample in samples:
            if sample.chord == UNDETECTED:
                continue
            if entries and entries[-1]["chord"] == sample.chord:
                continue
            entries.append(
                {"chord": sample.chord, "degree": sample.chord_degree, "time": sample.time}
            )

        for current, following in zip(entries, entries[1:]):
            current["duration"] = max(0.0, following["time"] - current["time"])
        if entries:
            entries[-1]["duration"] = max(0.0, duration - entries[-1]["time"])

        return [
            {
                "chord": e["chord"],
                "degree": e["degree"],
                "time": self._round(e["time"]),
                "duration": self._round(e["duration"]),
            }
            for e in entries
        ]

    def overall_statistics(
        self,
        analyzer: RealtimeAnalyzer,
        progression: Sequence[dict[str, Any]],
        duration: float,
    ) -> dict[str, Any]:
        samples = analyzer.history.samples
        if samples:
            mean_features = {
                name: self._round(np.mean([getattr(s.features, name) for s in samples]))
                for name in FeatureSet.__dataclass_fields__
            }
            average_tempo = self._round(np.mean([s.tempo for s in samples]))
        else:
            mean_features = {name: 0.0 for name in FeatureSet.__dataclass_fields__}
            average_tempo = 0.0

        changes = max(0, len(progression) - 1)
        minutes = duration / 60.0
        harmonic_rhythm = changes / minutes if minutes > 0 else 0.0

        transitions = analyzer.transitions
        return {
            "predictability": self._round(transitions.predictability),
            "entropy": self._round(transitions.entropy),
            "harmonic_rhythm": self._round(harmonic_rhythm),
            "distinct_chords": len({e["chord"] for e in progression}),
            "total_transitions": transitions.total,
            "song_key": analyzer.snapshot.song_key,
            "average_tempo": average_tempo,
            "mean_features": mean_features,
            "top_transitions": [
                {
                    "from": src,
                    "to": dst,
                    "count": count,
                    "probability": self._round(transitions.probability(src, dst)),
                }
                for src, dst, count in transitions.most_common(TOP_TRANSITIONS)
            ],
        }

    # ------------------------------------------------------------------
    # Payload
    # ------------------------------------------------------------------

    def build_payload(
        self,
        analyzer: RealtimeAnalyzer,
        duration: float,
        file_name: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Build the complete report dictionary.

        Args:
            analyzer: Analyzer whose state is exported.
            duration: Analysed audio duration in seconds.
            file_name: Source file name for the metadata header.

        Returns:
            Report dictionary ready for serialization.
        """
        samples = analyzer.history.samples
        interval = analyzer.config.history.interval_s

        metadata = ReportMetadata(
            duration=self._round(duration),
            n_samples=len(samples),
            sample_interval=self._round(interval),
            file_name=file_name,
            analyzed_at=datetime.now(timezone.utc).isoformat(),
        )
        progression = self.chord_progression(samples, duration)

        return {
            "metadata": {
                "file_name": metadata.file_name,
                "duration": metadata.duration,
                "n_samples": metadata.n_samples,
                "sample_interval": metadata.sample_interval,
                "schema_version": metadata.schema_version,
                "analyzed_at": metadata.analyzed_at,
            },
            "current": self._round_tree(analyzer.snapshot.to_dict()),
            "time_series": [self._round_tree(s.to_dict()) for s in samples],
            "instrument_statistics": self.instrument_statistics(samples, interval),
            "chord_progression": progression,
            "overall_statistics": self.overall_statistics(analyzer, progression, duration),
            "transition_model": analyzer.transitions.to_list(),
        }

    def export_json(
        self,
        analyzer: RealtimeAnalyzer,
        duration: float,
        output_path: Union[str, Path],
        file_name: Optional[str] = None,
        indent: int = 2,
    ) -> Path:
        """
        Export the report to a JSON file.

        Args:
            analyzer: Analyzer whose state is exported.
            duration: Analysed audio duration in seconds.
            output_path: Path for output JSON file.
            file_name: Source file name for the metadata header.
            indent: JSON indentation level.

        Returns:
            Path to written file.
        """
        payload = self.build_payload(analyzer, duration, file_name=file_name)
        output_path = Path(output_path)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=indent, ensure_ascii=False)

        logger.info("Wrote analysis report to %s", output_path)
        return output_path


def load_json(path: Union[str, Path]) -> dict[str, Any]:
    """Read a report written by :meth:`ReportExporter.export_json`."""
    with open(Path(path), "r", encoding="utf-8") as f:
        return json.load(f)

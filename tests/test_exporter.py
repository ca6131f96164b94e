"""Tests for the analysis report exporter."""

import json

import pytest

from conftest import make_frame
from timbrespace.core.history import HistorySample
from timbrespace.core.notes import UNDETECTED
from timbrespace.core.spectral import INSTRUMENT_BANDS, FeatureSet
from timbrespace.core.stream import RealtimeAnalyzer
from timbrespace.io.exporter import SCHEMA_VERSION, ReportExporter, load_json


def _sample(t, chord=UNDETECTED, kick=0.0):
    return HistorySample(
        time=t,
        features=FeatureSet(spectral_centroid=1000.0 / 3),
        chord=chord,
        instrument_energies={"Kick": kick},
    )


@pytest.fixture
def played(c_major, g_major):
    """Analyzer with 2 s of C followed by 2 s of G at 60 fps."""
    analyzer = RealtimeAnalyzer()
    for k in range(240):
        t = k * 1000.0 / 60
        spectrum = c_major if k < 120 else g_major
        analyzer.tick(make_frame(spectrum, timestamp=t, playback_time=t / 1000.0))
    return analyzer


class TestPayload:
    def test_sections(self, played):
        payload = ReportExporter().build_payload(played, 4.0, file_name="song.wav")
        assert set(payload) == {
            "metadata",
            "current",
            "time_series",
            "instrument_statistics",
            "chord_progression",
            "overall_statistics",
            "transition_model",
        }
        meta = payload["metadata"]
        assert meta["file_name"] == "song.wav"
        assert meta["schema_version"] == SCHEMA_VERSION
        assert meta["n_samples"] == len(payload["time_series"]) == 8
        assert meta["sample_interval"] == 0.5
        assert meta["analyzed_at"]

    def test_progression_and_statistics(self, played):
        payload = ReportExporter().build_payload(played, 4.0)
        chords = [e["chord"] for e in payload["chord_progression"]]
        assert chords == ["C", "G"]
        assert payload["chord_progression"][-1]["degree"] == "V"

        overall = payload["overall_statistics"]
        assert overall["distinct_chords"] == 2
        assert overall["predictability"] == 1.0
        assert overall["harmonic_rhythm"] == pytest.approx(15.0)
        assert overall["song_key"] == "G"
        assert set(overall["mean_features"]) == set(FeatureSet.__dataclass_fields__)

        assert payload["transition_model"] == [
            {"from": "C", "transitions": [{"to_chord": "G", "count": 1}]}
        ]
        assert set(payload["instrument_statistics"]) == set(INSTRUMENT_BANDS)

    def test_top_transitions(self, played):
        overall = ReportExporter().build_payload(played, 4.0)["overall_statistics"]
        assert overall["top_transitions"] == [
            {"from": "C", "to": "G", "count": 1, "probability": 1.0}
        ]

    def test_top_transitions_ordered_and_capped(self):
        analyzer = RealtimeAnalyzer()
        for dst in ("G", "G", "G", "F", "F", "Am", "Dm", "Em", "Bdim"):
            analyzer.transitions.record("C", dst)
        top = ReportExporter().overall_statistics(analyzer, [], 1.0)["top_transitions"]
        assert len(top) == 5
        assert top[0] == {"from": "C", "to": "G", "count": 3, "probability": 0.3333}
        assert top[1]["to"] == "F"
        assert [t["count"] for t in top] == sorted((t["count"] for t in top), reverse=True)

    def test_floats_are_rounded(self):
        analyzer = RealtimeAnalyzer()
        analyzer.history.record(_sample(0.0))
        payload = ReportExporter(precision=2).build_payload(analyzer, 1.0)
        sample = payload["time_series"][0]
        assert sample["features"]["spectral_centroid"] == 333.33

    def test_empty_analyzer(self):
        payload = ReportExporter().build_payload(RealtimeAnalyzer(), 0.0)
        assert payload["time_series"] == []
        assert payload["chord_progression"] == []
        assert payload["overall_statistics"]["harmonic_rhythm"] == 0.0
        assert payload["overall_statistics"]["top_transitions"] == []
        assert payload["instrument_statistics"]["Kick"]["peak_timestamps"] == []
        json.dumps(payload)


class TestStatistics:
    def test_chord_progression_durations(self):
        samples = [
            _sample(0.0, "C"),
            _sample(0.5, "C"),
            _sample(1.0),
            _sample(1.5, "G"),
            _sample(2.0, "G"),
        ]
        progression = ReportExporter().chord_progression(samples, 3.0)
        assert [(e["chord"], e["time"], e["duration"]) for e in progression] == [
            ("C", 0.0, 1.5),
            ("G", 1.5, 1.5),
        ]

    def test_last_entry_never_negative(self):
        progression = ReportExporter().chord_progression([_sample(5.0, "C")], 3.0)
        assert progression[0]["duration"] == 0.0

    def test_instrument_statistics(self):
        samples = [_sample(0.0, kick=0.2), _sample(0.5, kick=0.5), _sample(1.0, kick=0.05)]
        kick = ReportExporter().instrument_statistics(samples, 0.5)["Kick"]
        assert kick["avg_energy"] == pytest.approx(0.25)
        assert kick["peak_energy"] == 0.5
        assert kick["min_energy"] == 0.05
        assert kick["variance"] == pytest.approx(0.035, abs=1e-4)
        assert kick["active_time"] == 1.0
        assert kick["peak_timestamps"] == [0.5]

    def test_peak_timestamps_capped(self):
        samples = [_sample(i * 0.5, kick=0.8) for i in range(20)]
        kick = ReportExporter().instrument_statistics(samples, 0.5)["Kick"]
        assert len(kick["peak_timestamps"]) == 10


class TestJson:
    def test_export_and_load(self, played, tmp_path):
        path = ReportExporter().export_json(
            played, 4.0, tmp_path / "report.json", file_name="song.wav"
        )
        assert path.exists()
        loaded = load_json(path)
        assert loaded["metadata"]["file_name"] == "song.wav"
        assert loaded["current"]["chord"] == "G"

    def test_json_round_trip_is_lossless(self, played):
        payload = ReportExporter().build_payload(played, 4.0)
        assert json.loads(json.dumps(payload)) == payload

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_json(tmp_path / "missing.json")

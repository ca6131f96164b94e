"""Tests for the frame orchestrator and history recorder."""

import json
import logging

import numpy as np
import pytest

from conftest import SR, make_frame
from timbrespace.config import EngineConfig, HistoryConfig
from timbrespace.core.history import HistoryRecorder, HistorySample
from timbrespace.core.notes import UNDETECTED
from timbrespace.core.spectral import FeatureSet
from timbrespace.core.stream import AnalysisSnapshot, Frame, RealtimeAnalyzer


def _play(analyzer, spectrum, start_ms, count, step_ms=16.0):
    snapshot = None
    for k in range(count):
        t = start_ms + k * step_ms
        snapshot = analyzer.tick(make_frame(spectrum, timestamp=t, playback_time=t / 1000.0))
    return snapshot


@pytest.fixture
def analyzer():
    return RealtimeAnalyzer(EngineConfig())


@pytest.fixture
def progressed(analyzer, c_major, g_major):
    """Analyzer that heard ten frames of C then three of G a second later."""
    _play(analyzer, c_major, 0.0, 10)
    _play(analyzer, g_major, 1000.0, 3)
    return analyzer


# ---------------------------------------------------------------------------
# Frame
# ---------------------------------------------------------------------------

class TestFrame:
    def test_create_clips_to_bytes(self):
        frame = Frame.create([-5, 10, 300], [0, 128, 999], SR, timestamp=5)
        assert frame.frequency_magnitudes.dtype == np.uint8
        assert list(frame.frequency_magnitudes) == [0, 10, 255]
        assert list(frame.waveform_samples) == [0, 128, 255]
        assert frame.timestamp == 5.0
        assert frame.is_playing

    def test_non_finite_rate(self):
        frame = Frame.create([0], [128], float("nan"), timestamp=0)
        assert frame.sample_rate == 0.0


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

class TestRealtimeAnalyzer:
    def test_initial_snapshot(self, analyzer):
        snapshot = analyzer.snapshot
        assert snapshot.chord == UNDETECTED
        assert snapshot.song_key == UNDETECTED
        assert snapshot.rhythm.tempo == 120.0
        assert snapshot.predictability == 0.0
        assert snapshot.peak_events == ()

    def test_silent_tick(self, analyzer, silent):
        snapshot = analyzer.tick(make_frame(silent))
        assert snapshot.features.spectral_centroid == 0.0
        assert snapshot.features.spectral_rolloff == SR / 2
        assert snapshot.chord == UNDETECTED
        assert snapshot.rhythm.tempo == 60.0

    def test_chord_stabilizes(self, analyzer, c_major):
        snapshot = _play(analyzer, c_major, 0.0, 2)
        assert snapshot.chord == UNDETECTED
        snapshot = _play(analyzer, c_major, 32.0, 1)
        assert snapshot.chord == "C"
        assert snapshot.root_note == "C"
        assert snapshot.chord_quality == "MAJOR"

    def test_key_and_degree(self, progressed):
        snapshot = progressed.snapshot
        assert snapshot.chord == "G"
        assert snapshot.song_key == "C"
        assert snapshot.chord_degree == "V"

    def test_transition_recorded_on_stable_change(self, progressed):
        # The first change from "---" to C is not a transition.
        assert progressed.transitions.total == 1
        assert progressed.transitions.count("C", "G") == 1
        assert progressed.snapshot.predictability == pytest.approx(1.0)
        assert dict(progressed.snapshot.transition_model["C"]) == {"G": 1}

    def test_snapshot_does_not_change_afterwards(self, analyzer, c_major, g_major):
        _play(analyzer, c_major, 0.0, 10)
        before = analyzer.snapshot
        _play(analyzer, g_major, 1000.0, 3)
        assert before.chord == "C"
        assert len(before.transition_model) == 0
        with pytest.raises(TypeError):
            before.transition_model["C"] = {}

    def test_peak_events_only_while_playing(self, analyzer, silent):
        spectrum = silent.copy()
        spectrum[100] = 200
        analyzer.tick(make_frame(spectrum, is_playing=False))
        assert analyzer.snapshot.peak_events == ()
        snapshot = analyzer.tick(make_frame(spectrum, timestamp=16.0))
        assert len(snapshot.peak_events) == 1

    def test_overrun_is_logged(self, c_major, caplog):
        analyzer = RealtimeAnalyzer(EngineConfig(frame_budget_ms=0.0))
        with caplog.at_level(logging.DEBUG, logger="timbrespace.core.stream"):
            analyzer.tick(make_frame(c_major))
        assert "budget" in caplog.text

    def test_reset(self, progressed):
        progressed.reset()
        snapshot = progressed.snapshot
        assert snapshot.chord == UNDETECTED
        assert snapshot.song_key == UNDETECTED
        assert snapshot.rhythm.tempo == 120.0
        assert snapshot.peak_events == ()
        assert len(progressed.stabilizer.history) == 0
        assert progressed.transitions.total == 0
        assert len(progressed.tracker) == 0
        assert len(progressed.history) == 0
        assert progressed.frame_count == 0

    def test_snapshot_dict_round_trip(self, progressed):
        data = json.loads(json.dumps(progressed.snapshot.to_dict()))
        restored = AnalysisSnapshot.from_dict(data)
        assert restored.to_dict() == data
        assert restored.chord == "G"


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def _sample(t):
    return HistorySample(time=t, features=FeatureSet())


class TestHistory:
    def test_sampling_interval(self):
        recorder = HistoryRecorder()
        accepted = [recorder.record(_sample(t)) for t in (0.0, 0.2, 0.49, 0.5, 0.7, 1.0)]
        assert accepted == [True, False, False, True, False, True]

    def test_seek_backwards_is_recorded(self):
        recorder = HistoryRecorder()
        recorder.record(_sample(5.0))
        assert recorder.record(_sample(2.0))
        assert [s.time for s in recorder.samples] == [5.0, 2.0]

    def test_capacity_drops_oldest(self):
        recorder = HistoryRecorder(HistoryConfig(capacity=3))
        for t in range(5):
            recorder.record(_sample(float(t)))
        assert [s.time for s in recorder.samples] == [2.0, 3.0, 4.0]

    def test_records_only_while_playing(self, analyzer, c_major):
        analyzer.tick(make_frame(c_major, playback_time=0.0, is_playing=False))
        assert len(analyzer.history) == 0
        analyzer.tick(make_frame(c_major, playback_time=0.1))
        assert len(analyzer.history) == 1

    def test_analyzer_samples_every_half_second(self, analyzer, c_major):
        _play(analyzer, c_major, 0.0, 125)  # 0 .. 1.984 s
        times = [s.time for s in analyzer.history.samples]
        assert len(times) == 4
        assert all(b - a >= 0.5 for a, b in zip(times, times[1:]))

    def test_sample_contents(self, analyzer, c_major):
        _play(analyzer, c_major, 0.0, 40)
        sample = analyzer.history.samples[-1]
        assert sample.chord == "C"
        assert set(sample.instrument_energies) >= {"Kick", "Piano"}
        assert HistorySample.from_dict(sample.to_dict()) == sample

    def test_handed_out_samples_are_read_only(self, analyzer, c_major):
        analyzer.tick(make_frame(c_major, playback_time=0.0))
        sample = analyzer.history.samples[0]
        before = sample.instrument_energies["Kick"]
        with pytest.raises(TypeError):
            sample.instrument_energies["Kick"] = 99.0
        assert analyzer.history.samples[0].instrument_energies["Kick"] == before

    def test_sample_copies_caller_energies(self):
        energies = {"Kick": 0.5}
        sample = HistorySample(time=0.0, features=FeatureSet(), instrument_energies=energies)
        energies["Kick"] = 0.9
        assert sample.instrument_energies["Kick"] == 0.5
        restored = HistorySample.from_dict(sample.to_dict())
        with pytest.raises(TypeError):
            restored.instrument_energies["Kick"] = 0.9
        assert isinstance(sample.to_dict()["instrument_energies"], dict)

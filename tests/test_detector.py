"""Tests for presence detection."""

import threading

import numpy as np
import pytest

from thermodo.protocol.detector import DetectorConfig, PresenceDetector, trimmed_level

from conftest import FakeCapture, SlowCapture, noise, tone, wait_for


def make_detector(capture, playback, **kwargs):
    sleeps = []
    detector = PresenceDetector(
        capture,
        playback,
        config=DetectorConfig(**kwargs),
        sleep=sleeps.append,
    )
    return detector, sleeps


class TestTrimmedLevel:
    """Tests for trimmed_level."""

    def test_empty(self):
        """Test an empty buffer has no level."""
        assert trimmed_level([], 1000) == 0

    def test_outliers_ignored(self):
        """Test the loudest samples are cut."""
        data = np.zeros(2000, dtype=np.int16)
        data[:1000] = 30000
        assert trimmed_level(data, 1001) == 0
        assert trimmed_level(data, 1000) == 30000

    def test_absolute_values(self):
        """Test negative samples count by magnitude."""
        assert trimmed_level([-7, 3, -2], 0) == 7
        assert trimmed_level([-7, 3, -2], 1) == 7
        assert trimmed_level([-7, 3, -2], 2) == 3

    def test_cut_larger_than_buffer(self):
        """Test an oversized cut falls back to the quietest sample."""
        assert trimmed_level([5, -9, 4], 10) == 4


class TestPresenceDetector:
    """Tests for PresenceDetector."""

    def test_sensor_detected(self, playback):
        """Test a quiet line that returns the tone loudly is the sensor."""
        capture = FakeCapture([noise(20), tone(10000)])
        detector, _ = make_detector(capture, playback)

        assert detector.detect() is True
        assert len(playback.plays) == 1
        assert playback.plays[0][1] == 0
        assert playback.stops >= 1

    def test_headset_returns_weak_tone(self, playback):
        """Test a tone barely above the noise is not the sensor."""
        capture = FakeCapture([noise(20), tone(100)])
        detector, _ = make_detector(capture, playback)

        assert detector.detect() is False

    def test_noisy_line(self, playback):
        """Test a noisy line is rejected without playing the tone."""
        capture = FakeCapture([noise(500), tone(10000)])
        detector, _ = make_detector(capture, playback)

        assert detector.detect() is False
        assert playback.plays == []

    def test_ratio_threshold(self, playback):
        """Test the tone must exceed the ratio times the silence, floored at one."""
        zeros = np.zeros(5000, dtype=np.int16)

        detector, _ = make_detector(FakeCapture([zeros, np.full(5000, 11)]), playback)
        assert detector.detect() is True

        detector, _ = make_detector(FakeCapture([zeros, np.full(5000, 10)]), playback)
        assert detector.detect() is False

    def test_read_error_during_silence(self, playback):
        """Test a capture failure in the first phase reports no sensor."""
        detector, _ = make_detector(FakeCapture([], error_code=-9981), playback)

        assert detector.detect() is False
        assert playback.plays == []

    def test_read_error_during_tone(self, playback):
        """Test a capture failure in the second phase reports no sensor."""
        capture = FakeCapture([noise(20)], error_code=-9981)
        detector, _ = make_detector(capture, playback)

        assert detector.detect() is False
        assert playback.stops >= 1

    def test_capture_timeout(self, playback):
        """Test a capture that never delivers times out as no sensor."""
        detector, _ = make_detector(FakeCapture([]), playback, capture_timeout=0.05)

        assert detector.detect() is False

    def test_playback_delay(self, playback):
        """Test the capture waits for playback to start."""
        capture = FakeCapture([noise(20), tone(10000)])
        detector, sleeps = make_detector(capture, playback)

        detector.detect()
        assert sleeps == [pytest.approx(0.2)]

    def test_capture_released(self, playback):
        """Test the capture is stopped after each phase."""
        capture = FakeCapture([noise(20), tone(10000)])
        detector, _ = make_detector(capture, playback)

        detector.detect()
        assert capture.starts == 2
        assert capture.stops == 2

    def test_cancel_before_run(self, playback):
        """Test a cancelled detector reports nothing."""
        capture = FakeCapture([noise(20), tone(10000)])
        detector, _ = make_detector(capture, playback)
        results = []

        detector.cancel()
        detector.run(results.append)

        assert detector.cancelled
        assert results == []

    def test_cancel_during_delay(self, playback):
        """Test cancelling while waiting for playback aborts detection."""
        capture = FakeCapture([noise(20), tone(10000)])
        detector = PresenceDetector(
            capture, playback, sleep=lambda seconds: detector.cancel()
        )

        assert detector.detect() is None
        assert capture.starts == 1

    def test_cancel_releases_audio_line(self, playback):
        """Test a cancelled detector leaves the capture and playback alone."""
        capture = SlowCapture([noise(20), tone(10000)], delay=0.3)
        detector, _ = make_detector(capture, playback)
        results = []
        worker = threading.Thread(
            target=lambda: results.append(detector.detect()), name="Detection"
        )

        worker.start()
        assert wait_for(lambda: capture.count("start") == 1)
        detector.cancel()
        worker.join(5.0)

        assert results == [None]
        assert capture.calls == [
            ("start", "Detection"),
            ("stop", threading.current_thread().name),
        ]
        assert playback.plays == []
        assert playback.stops == 1

    def test_run_reports_result(self, playback):
        """Test run hands the outcome to the sink."""
        capture = FakeCapture([noise(20), tone(10000)])
        detector, _ = make_detector(capture, playback)
        results = []

        detector.run(results.append)
        assert results == [True]

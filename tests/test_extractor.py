"""Tests for sample extraction and the sample arena."""

import dataclasses
import math

import numpy as np
import pytest

from thermodo.analysis.extractor import SampleExtractor
from thermodo.core.models import AnalyzerResult, ErrorKind, Sample, SampleBuffer, SampleKind


def sine(amplitude: float, frequency: float, length: int) -> np.ndarray:
    n = np.arange(length)
    return np.round(amplitude * np.sin(2 * np.pi * frequency * n / 44100)).astype(np.int16)


class TestSampleBuffer:
    """Tests for the SampleBuffer arena."""

    def test_append_and_index(self):
        """Test appended samples come back as immutable values."""
        buffer = SampleBuffer(capacity=2)
        buffer.append(100, 5, 5, SampleKind.ZERO)
        buffer.append(-900, 12, 0, SampleKind.MIN)

        assert len(buffer) == 2
        assert buffer[0] == Sample(100, 5, 5, SampleKind.ZERO)
        assert buffer[-1].kind is SampleKind.MIN
        with pytest.raises(dataclasses.FrozenInstanceError):
            buffer[0].amplitude = 1

    def test_grows_past_capacity(self):
        """Test the arena grows and keeps its contents."""
        buffer = SampleBuffer(capacity=2)
        for i in range(10):
            buffer.append(i, i, 1, SampleKind.MAX)

        assert len(buffer) == 10
        assert buffer.capacity >= 10
        assert list(buffer.amplitudes) == list(range(10))

    def test_clear_keeps_storage(self):
        """Test clear resets the length but not the capacity."""
        buffer = SampleBuffer(capacity=8)
        buffer.append(1, 1, 1, SampleKind.MAX)
        buffer.clear()

        assert len(buffer) == 0
        assert buffer.capacity == 8

    def test_index_out_of_range(self):
        """Test indexing past the end raises IndexError."""
        buffer = SampleBuffer()
        with pytest.raises(IndexError):
            buffer[0]


class TestSampleExtractor:
    """Tests for SampleExtractor."""

    def test_silence(self):
        """Test a silent buffer yields no samples."""
        samples = SampleExtractor().extract(np.zeros(4410, dtype=np.int16))
        assert len(samples) == 0

    def test_short_spans_skipped(self):
        """Test crossings closer than three samples carry no extremum."""
        data = np.tile(np.array([100, -100], dtype=np.int16), 100)
        samples = SampleExtractor().extract(data)
        assert len(samples) == 0

    def test_alternating_points(self):
        """Test zero points alternate with extremes of matching sign."""
        samples = SampleExtractor().extract(sine(10000, 1000, 4410))
        kinds = samples.kinds.tolist()

        assert len(samples) > 0
        assert kinds[0::2] == [SampleKind.ZERO] * (len(kinds) // 2)
        for sample in list(samples)[1::2]:
            if sample.kind is SampleKind.MAX:
                assert sample.amplitude > 0
            else:
                assert sample.kind is SampleKind.MIN
                assert sample.amplitude < 0

    def test_extreme_amplitudes(self):
        """Test extremes sit at the tone's peak amplitude."""
        samples = SampleExtractor().extract(sine(10000, 1000, 4410))
        extremes = np.abs(samples.amplitudes[1::2].astype(np.int32))

        assert np.all(extremes >= 9900)
        assert np.all(extremes <= 10000)

    def test_zero_deltas_follow_half_period(self):
        """Test the distance between crossings is the tone's half period."""
        samples = SampleExtractor().extract(sine(10000, 1000, 4410))
        deltas = samples.deltas[0::2].tolist()

        # 44100 / 1000 / 2 = 22.05 samples per half period
        assert set(deltas[1:]) <= {22, 23}

    def test_first_delta_from_buffer_start(self):
        """Test the first crossing's delta is measured from the buffer start."""
        data = np.concatenate([np.full(10, 500, dtype=np.int16), sine(-10000, 1000, 441)])
        samples = SampleExtractor().extract(data)

        assert samples[0].kind is SampleKind.ZERO
        assert samples[0].delta_buffer_index == samples[0].buffer_index

    def test_reuses_buffer(self):
        """Test every call refills the same arena."""
        extractor = SampleExtractor()
        first = extractor.extract(sine(10000, 1000, 4410))
        count = len(first)
        second = extractor.extract(sine(10000, 1000, 441))

        assert second is first
        assert len(second) < count


class TestAnalyzerResult:
    """Tests for AnalyzerResult."""

    def test_defaults(self):
        """Test an empty result is undetermined."""
        result = AnalyzerResult()

        assert math.isnan(result.temperature)
        assert result.ok
        assert not result.has_temperature

    def test_error_result(self):
        """Test a result with an error is not ok."""
        result = AnalyzerResult(error=ErrorKind.NO_FRAMES_FOUND)

        assert not result.ok
        assert result.to_dict() == {
            "temperature": None,
            "resistance": None,
            "number_of_frames": 0,
            "error": "no_frames_found",
        }

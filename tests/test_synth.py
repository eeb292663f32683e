"""Tests for the waveform synthesizer."""

import numpy as np
import pytest

from thermodo.audio.synth import WaveformConfig, WaveformSynthesizer
from thermodo.core import constants as C


def sign_changes(signal: np.ndarray) -> int:
    positive = signal >= 0
    return int(np.count_nonzero(positive[1:] != positive[:-1]))


class TestWaveformConfig:
    """Tests for WaveformConfig."""

    def test_default_config(self):
        """Test default configuration values."""
        config = WaveformConfig()

        assert config.sample_rate == 44100
        assert config.frequency == 1000
        assert config.samples_per_cell == 440
        assert config.samples_per_frame == 3960
        assert config.sync_quarter_period == 11

    def test_constants_agree(self):
        """Test derived sizes match the module constants."""
        config = WaveformConfig()

        assert config.samples_per_cell == C.SAMPLES_PER_CELL
        assert config.samples_per_frame == C.SAMPLES_PER_FRAME

    @pytest.mark.parametrize("kwargs", [
        {"number_of_cells": 2},
        {"sync_cell_index": 10},
        {"frequency": 0},
        {"frequency": 30000},
        {"periods_per_cell": 0},
    ])
    def test_invalid_config(self, kwargs):
        """Test invalid parameters are rejected."""
        with pytest.raises(ValueError):
            WaveformConfig(**kwargs)


class TestSweep:
    """Tests for the calibration sweep."""

    def setup_method(self):
        self.synth = WaveformSynthesizer()
        self.sweep = self.synth.sweep()
        self.cell = self.synth.config.samples_per_cell

    def cell_of(self, index: int) -> np.ndarray:
        return self.sweep[index * self.cell:(index + 1) * self.cell]

    def test_shape_and_type(self):
        """Test the sweep is one stereo int16 block per cell."""
        assert self.sweep.shape == (10 * 440, 2)
        assert self.sweep.dtype == np.int16

    def test_left_amplitude_descends(self):
        """Test the left channel steps down from upper to lower amplitude."""
        peaks = [int(np.max(np.abs(self.cell_of(i)[:, 0]))) for i in range(9)]

        assert peaks == sorted(peaks, reverse=True)
        assert peaks[0] == pytest.approx(0.9 * C.MAX_AMPLITUDE, rel=0.01)
        assert peaks[8] == pytest.approx(0.1 * C.MAX_AMPLITUDE, rel=0.01)

    def test_reference_channel_inverted(self):
        """Test the right channel is the inverted reference tone."""
        cell = self.cell_of(0).astype(np.float64)
        expected = -cell[:, 0] * (0.5 / 0.9)

        assert np.allclose(cell[:, 1], expected, atol=2)
        assert np.max(np.abs(cell[:, 1])) == pytest.approx(0.5 * C.MAX_AMPLITUDE, rel=0.01)

    def test_sync_cell_double_frequency(self):
        """Test the sync cell plays twice the base frequency."""
        base = sign_changes(self.cell_of(0)[:, 0])
        sync = sign_changes(self.cell_of(9)[:, 0])

        assert sync == pytest.approx(2 * base, abs=2)

    def test_sync_cell_sign_inverted(self):
        """Test the sync cell keeps the channels in opposite phase."""
        sync = self.cell_of(9).astype(np.float64)
        correlation = np.dot(sync[:, 0], sync[:, 1])

        assert correlation < 0
        assert np.max(np.abs(sync[:, 0])) == pytest.approx(0.9 * C.MAX_AMPLITUDE, rel=0.01)

    def test_overrides(self):
        """Test explicit parameters override the configuration."""
        sweep = self.synth.sweep(n_cells=5, periods_per_cell=2, sync_cell_index=0)

        assert sweep.shape == (5 * 88, 2)


class TestProbeSignals:
    """Tests for the two-phase probe and the test tone."""

    def test_samples_count_whole_periods(self):
        """Test tone lengths hold a whole number of periods."""
        synth = WaveformSynthesizer()

        assert synth.samples_count(1000, 250) == 11025
        assert synth.samples_count(200, 700) == 30870

    def test_two_phase(self):
        """Test the probe plays left first, then right."""
        probe = WaveformSynthesizer().two_phase()
        half = len(probe) // 2

        assert probe.shape == (22050, 2)
        assert np.all(probe[:half, 1] == 0)
        assert np.all(probe[half:, 0] == 0)
        assert np.max(probe[:half, 0]) > 32000
        assert np.max(probe[half:, 1]) > 32000

    def test_test_tone(self):
        """Test the detection tone plays on both channels."""
        tone = WaveformSynthesizer().test_tone()

        assert tone.shape == (30870, 2)
        assert np.array_equal(tone[:, 0], tone[:, 1])
        assert sign_changes(tone[:, 0]) == pytest.approx(2 * 140, abs=2)

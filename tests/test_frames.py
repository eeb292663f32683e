"""Tests for frame synchronization and cell extraction."""

import numpy as np
import pytest

from thermodo.analysis.extractor import SampleExtractor
from thermodo.analysis.frames import CellExtractor, FrameSynchronizer
from thermodo.core.models import SampleBuffer, SampleKind

from conftest import loopback_sweep


def extract(buffer: np.ndarray) -> SampleBuffer:
    return SampleExtractor().extract(buffer)


class TestFrameSynchronizer:
    """Tests for FrameSynchronizer."""

    def test_expected_sync_count(self):
        """Test the sync run length for the default sweep."""
        assert FrameSynchronizer().expected_sync_count == 40

    def test_frames_from_loopback(self, sweep_capture):
        """Test every sweep bounded by two sync cells becomes a frame."""
        frames = FrameSynchronizer().frames(extract(sweep_capture))

        assert len(frames) >= 3
        for frame in frames:
            assert len(frame) == 8

    def test_no_sync_no_frames(self):
        """Test a plain tone without sync cells yields no frame."""
        n = np.arange(26400)
        data = np.round(10000 * np.sin(2 * np.pi * 1000 * n / 44100)).astype(np.int16)

        assert FrameSynchronizer().frames(extract(data)) == []

    def test_single_sweep_no_frame(self):
        """Test one sweep alone is not a complete frame."""
        data = loopback_sweep(repetitions=1)

        assert FrameSynchronizer().frames(extract(data)) == []

    def test_only_zero_points_drive_sync(self):
        """Test extremes never count towards a sync run."""
        samples = extract(loopback_sweep())
        zero_count = int(np.count_nonzero(samples.kinds == SampleKind.ZERO))

        assert zero_count * 2 == len(samples)


class TestCellExtractor:
    """Tests for CellExtractor."""

    def test_balance_cell_removed(self, sweep_capture):
        """Test the cancelling cell is dropped and later cells negated."""
        frame = FrameSynchronizer().frames(extract(sweep_capture))[0]
        indices = [cell.index for cell in frame.cells]
        amplitudes = [cell.amplitude for cell in frame.cells]

        # Equal reference and sweep amplitudes cancel in the fifth cell
        assert indices == [0, 1, 2, 3, 5, 6, 7, 8]
        assert all(a > 0 for a in amplitudes[:4])
        assert all(a < 0 for a in amplitudes[4:])

    def test_cell_amplitudes_follow_sweep(self, sweep_capture):
        """Test cell amplitudes fall linearly across the frame."""
        frame = FrameSynchronizer().frames(extract(sweep_capture))[0]
        amplitudes = [cell.amplitude for cell in frame.cells]

        assert amplitudes == sorted(amplitudes, reverse=True)
        assert amplitudes[0] == pytest.approx(0.4 * 32767, rel=0.03)
        assert amplitudes[-1] == pytest.approx(-0.4 * 32767, rel=0.03)

    def test_points_counted_once(self):
        """Test an extremum on a cell boundary lands in exactly one cell."""
        samples = SampleBuffer()
        samples.append(0, 1000, 0, SampleKind.ZERO)
        samples.append(500, 1440, 0, SampleKind.MAX)
        samples.append(0, 1450, 0, SampleKind.ZERO)
        samples.append(-300, 1900, 0, SampleKind.MIN)
        samples.append(0, 4960, 0, SampleKind.ZERO)

        frame = CellExtractor().extract(samples, 0, 4)
        by_index = {cell.index: cell.amplitude for cell in frame.cells}

        # Offset 440 belongs to cell 0, offset 900 to cell 2
        assert by_index[0] == 500
        assert by_index[2] == -300
        assert sum(1 for a in by_index.values() if a != 0) == 2

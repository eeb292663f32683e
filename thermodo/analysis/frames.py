"""
Frame synchronization and cell extraction.
"""

import logging
from typing import List, Optional

import numpy as np

from thermodo.analysis.calibration import median, round_to_multiple
from thermodo.audio.synth import WaveformConfig
from thermodo.core.models import Cell, Frame, SampleBuffer, SampleKind

logger = logging.getLogger(__name__)

# Allowed deviation of the sync marker length, in half periods
SYNC_TOLERANCE = 3
# Buckets with more points than this lose their first and last point
EDGE_TRIM_MIN_POINTS = 3


class CellExtractor:
    """Partitions the extrema of one frame into calibration cells."""

    def __init__(self, config: Optional[WaveformConfig] = None):
        self.config = config or WaveformConfig()
        self._boundaries = np.arange(
            1, self.config.number_of_cells, dtype=np.int64
        ) * self.config.samples_per_cell

    def extract(self, samples: SampleBuffer, start: int, end: int) -> Frame:
        """
        Build the cells of the frame spanning ``samples[start:end + 1]``.

        Args:
            samples: Extracted zero and extreme points
            start: Position of the frame's first zero point
            end: Position of the frame's last zero point

        Returns:
            Frame with the balance cell removed and later cells negated
        """
        span = slice(start, end + 1)
        kinds = samples.kinds[span]
        extrema = kinds != SampleKind.ZERO
        offsets = samples.buffer_indices[span][extrema] - samples.buffer_indices[start]
        magnitudes = np.abs(samples.amplitudes[span][extrema].astype(np.int32))

        # First boundary at or above each point; points past the last one are ignored
        buckets = np.searchsorted(self._boundaries, offsets, side="left")

        cells: List[Cell] = []
        for cell_index in range(len(self._boundaries)):
            values = magnitudes[buckets == cell_index].tolist()
            if len(values) > EDGE_TRIM_MIN_POINTS:
                values = values[1:-1]
            cells.append(Cell(amplitude=int(median(values)), index=cell_index))

        lowest = min(range(len(cells)), key=lambda i: cells[i].amplitude)
        # The reference crosses the swept signal at the lowest cell
        for cell in cells[lowest:]:
            cell.amplitude = -cell.amplitude
        del cells[lowest]

        return Frame(cells=cells)


class FrameSynchronizer:
    """
    Finds frames delimited by the double-frequency sync cell.

    Works over zero points only: a zero whose distance to the previous
    crossing rounds to the sync half period counts towards a sync run, and
    a run of roughly the expected length closes the pending frame and opens
    the next one.
    """

    def __init__(
        self,
        config: Optional[WaveformConfig] = None,
        cell_extractor: Optional[CellExtractor] = None,
    ):
        self.config = config or WaveformConfig()
        self.cell_extractor = cell_extractor or CellExtractor(self.config)

    @property
    def expected_sync_count(self) -> int:
        # Twice the frequency over one cell gives four crossings per base period
        return self.config.periods_per_cell * 4

    def frames(self, samples: SampleBuffer) -> List[Frame]:
        """
        Detect frames and extract their cells.

        Args:
            samples: Extracted zero and extreme points

        Returns:
            Completed frames in capture order
        """
        quarter_period = self.config.sync_quarter_period
        frames: List[Frame] = []

        sync_count = 0
        frame_start: Optional[int] = None
        frame_end: Optional[int] = None

        zero_positions = np.flatnonzero(samples.kinds == SampleKind.ZERO)
        deltas = samples.deltas
        for position in zero_positions.tolist():
            if round_to_multiple(int(deltas[position]), quarter_period) == quarter_period:
                if frame_start is not None and frame_end is None:
                    # Tentative end of the frame, kept if the sync run completes
                    frame_end = position
                sync_count += 1
                continue

            if abs(sync_count - self.expected_sync_count) < SYNC_TOLERANCE:
                if frame_end is not None:
                    frames.append(self.cell_extractor.extract(samples, frame_start, frame_end))
                frame_start = position
            elif sync_count >= SYNC_TOLERANCE:
                logger.debug("Discarding sync run of %d half periods", sync_count)
            sync_count = 0
            frame_end = None

        return frames

"""
Waveform synthesis for thermodo.
Generates the stereo PCM signals played into the sensor.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from thermodo.core import constants as C


@dataclass
class WaveformConfig:
    """Parameters of the calibration sweep and the probe signals."""
    sample_rate: int = C.SAMPLE_RATE
    frequency: int = C.FREQUENCY
    periods_per_cell: int = C.PERIODS_PER_CELL
    number_of_cells: int = C.NUMBER_OF_CELLS
    sync_cell_index: int = C.SYNC_CELL_INDEX
    reference_amplitude: float = C.REFERENCE_AMPLITUDE
    upper_amplitude: float = C.UPPER_AMPLITUDE
    lower_amplitude: float = C.LOWER_AMPLITUDE
    probe_duration_ms: int = C.PROBE_DURATION_MS

    def __post_init__(self):
        """Validate configuration."""
        if self.frequency <= 0 or self.sample_rate // self.frequency < 2:
            raise ValueError("frequency must be positive and below sample_rate / 2")
        if self.number_of_cells < 3:
            raise ValueError("number_of_cells must be at least 3")
        if not 0 <= self.sync_cell_index < self.number_of_cells:
            raise ValueError("sync_cell_index must address one of the cells")
        if self.periods_per_cell < 1:
            raise ValueError("periods_per_cell must be at least 1")

    @property
    def samples_per_cell(self) -> int:
        return (self.sample_rate // self.frequency) * self.periods_per_cell

    @property
    def samples_per_frame(self) -> int:
        # The sync cell is not part of the analysed frame
        return (self.number_of_cells - 1) * self.samples_per_cell

    @property
    def sync_quarter_period(self) -> int:
        """Half period of the double-frequency sync tone, in samples."""
        return self.samples_per_cell // self.periods_per_cell // 4


class WaveformSynthesizer:
    """
    Synthesizer for the signals played through the audio jack.

    All outputs are ``int16`` arrays of shape ``(frames, 2)`` holding the
    left and right channels.
    """

    def __init__(self, config: Optional[WaveformConfig] = None):
        """
        Initialize the synthesizer.

        Args:
            config: Waveform configuration. Uses defaults if None.
        """
        self.config = config or WaveformConfig()

    def _phase(self, sample_numbers: np.ndarray, frequency: float) -> np.ndarray:
        return np.sin(2.0 * np.pi * frequency * sample_numbers / self.config.sample_rate)

    @staticmethod
    def _to_pcm(left: np.ndarray, right: np.ndarray) -> np.ndarray:
        """Round, clip to 16 bits and interleave two channels."""
        stereo = np.stack([left, right], axis=1)
        stereo = np.clip(np.round(stereo), -32768, C.MAX_AMPLITUDE)
        return np.ascontiguousarray(stereo.astype(np.int16))

    def samples_count(self, frequency: int, duration_ms: int) -> int:
        """
        Number of samples for a tone holding a whole number of periods.

        Args:
            frequency: Tone frequency in Hz
            duration_ms: Requested duration in milliseconds

        Returns:
            Number of samples per channel
        """
        periods = int(duration_ms) * int(frequency) // 1000
        return periods * self.config.sample_rate // int(frequency)

    def sweep(
        self,
        n_cells: Optional[int] = None,
        periods_per_cell: Optional[int] = None,
        sync_cell_index: Optional[int] = None,
        frequency: Optional[int] = None,
        ref_volume: Optional[float] = None,
        max_volume: Optional[float] = None,
        min_volume: Optional[float] = None,
    ) -> np.ndarray:
        """
        Generate the calibration sweep.

        The left channel steps down from ``max_volume`` to ``min_volume``
        one cell at a time while the right channel holds the phase-inverted
        reference. The sync cell plays both channels at double frequency
        with inverted sign so the decoder can find frame boundaries.

        Args:
            n_cells: Number of cells including the sync cell
            periods_per_cell: Periods of ``frequency`` per cell
            sync_cell_index: Position of the sync cell
            frequency: Base frequency in Hz
            ref_volume: Reference amplitude (fraction of full scale)
            max_volume: Amplitude of the first cell
            min_volume: Amplitude of the last non-sync cell

        Returns:
            Stereo PCM samples
        """
        cfg = self.config
        n_cells = cfg.number_of_cells if n_cells is None else n_cells
        periods_per_cell = cfg.periods_per_cell if periods_per_cell is None else periods_per_cell
        sync_cell_index = cfg.sync_cell_index if sync_cell_index is None else sync_cell_index
        frequency = cfg.frequency if frequency is None else frequency
        ref_volume = cfg.reference_amplitude if ref_volume is None else ref_volume
        max_volume = cfg.upper_amplitude if max_volume is None else max_volume
        min_volume = cfg.lower_amplitude if min_volume is None else min_volume

        samples_per_cell = (cfg.sample_rate // frequency) * periods_per_cell
        volume_step = (max_volume - min_volume) / (n_cells - 2)

        total = samples_per_cell * n_cells
        sample_numbers = np.arange(total, dtype=np.float64)
        left = np.empty(total, dtype=np.float64)
        right = np.empty(total, dtype=np.float64)

        volume = max_volume
        for cell in range(n_cells):
            span = slice(cell * samples_per_cell, (cell + 1) * samples_per_cell)
            if cell == sync_cell_index:
                # Sync cell phase is inverted to match the signal phase at the start of
                # the next frame, which reduces the amplitude jump between frames.
                phase = self._phase(sample_numbers[span], frequency * 2)
                left[span] = phase * -max_volume * C.MAX_AMPLITUDE
                right[span] = -(phase * -ref_volume * C.MAX_AMPLITUDE)
            else:
                phase = self._phase(sample_numbers[span], frequency)
                left[span] = phase * volume * C.MAX_AMPLITUDE
                right[span] = -(phase * ref_volume * C.MAX_AMPLITUDE)
            volume -= volume_step

        return self._to_pcm(left, right)

    def two_phase(
        self,
        duration_ms: Optional[int] = None,
        frequency: Optional[int] = None,
    ) -> np.ndarray:
        """
        Generate the left-then-right probe used by the simplified analyzer.

        Args:
            duration_ms: Duration of each channel's half in milliseconds
            frequency: Tone frequency in Hz

        Returns:
            Stereo PCM samples
        """
        duration_ms = self.config.probe_duration_ms if duration_ms is None else duration_ms
        frequency = self.config.frequency if frequency is None else frequency

        per_channel = self.samples_count(frequency, duration_ms)
        sample_numbers = np.arange(per_channel * 2, dtype=np.float64)
        tone = self._phase(sample_numbers, frequency) * C.MAX_AMPLITUDE

        first_half = sample_numbers < per_channel
        left = np.where(first_half, tone, 0.0)
        right = np.where(first_half, 0.0, tone)
        return self._to_pcm(left, right)

    def test_tone(
        self,
        duration_ms: int = C.TEST_TONE_DURATION_MS,
        frequency: int = C.TEST_TONE_FREQUENCY,
    ) -> np.ndarray:
        """
        Generate the full-scale tone played on both channels during detection.

        Args:
            duration_ms: Tone duration in milliseconds
            frequency: Tone frequency in Hz

        Returns:
            Stereo PCM samples
        """
        count = self.samples_count(frequency, duration_ms)
        sample_numbers = np.arange(count, dtype=np.float64)
        tone = self._phase(sample_numbers, frequency) * C.MAX_AMPLITUDE
        return self._to_pcm(tone, tone)

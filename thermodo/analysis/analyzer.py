"""
Signal analyzers for thermodo.
Decode captured buffers into resistance and temperature readings.
"""

import logging
import math
from enum import Enum
from typing import List, Optional, Sequence, Union

import numpy as np

from thermodo.analysis.calibration import Calibrator, median
from thermodo.analysis.extractor import SampleExtractor, as_pcm
from thermodo.analysis.frames import FrameSynchronizer
from thermodo.analysis.thermistor import ThermistorTable, default_table
from thermodo.audio.synth import WaveformConfig
from thermodo.core import constants as C
from thermodo.core.models import AnalyzerResult, ErrorKind, SampleKind

logger = logging.getLogger(__name__)

Buffer = Union[np.ndarray, Sequence[int]]


class AnalyzerMode(Enum):
    """Available decoding modes."""
    DEFAULT = "default"
    SIMPLIFIED = "simplified"


def clipping_detected(
    data: np.ndarray,
    threshold: int = C.CLIPPING_THRESHOLD,
    max_clipped: int = C.MAX_CLIPPED_SAMPLES,
) -> bool:
    """True if more than ``max_clipped`` samples exceed ``threshold``."""
    return int(np.count_nonzero(data > threshold)) > max_clipped


class DefaultAnalyzer:
    """
    Sweep decoder.

    Extracts zero and extreme points, synchronizes on the sync cell,
    reduces every frame to cells, fits a trendline per frame and converts
    the median balance point into a resistance and a temperature.

    An instance keeps scratch buffers between calls and must not be used
    from more than one thread at a time.
    """

    def __init__(
        self,
        config: Optional[WaveformConfig] = None,
        table: Optional[ThermistorTable] = None,
    ):
        self.config = config or WaveformConfig()
        self.table = table or default_table()
        self._extractor = SampleExtractor()
        self._synchronizer = FrameSynchronizer(self.config)
        self._calibrator = Calibrator(self.config)

    def decode(self, buffer: Buffer) -> AnalyzerResult:
        """
        Decode one captured buffer.

        Args:
            buffer: Mono 16-bit PCM samples

        Returns:
            Analysis result; ``error`` is set when the buffer is unusable
        """
        data = as_pcm(buffer)

        if clipping_detected(data):
            logger.debug("Clipping detected in buffer of %d samples", len(data))
            return AnalyzerResult(error=ErrorKind.CLIPPING_DETECTED)

        samples = self._extractor.extract(data)
        frames = self._synchronizer.frames(samples)
        if not frames:
            logger.debug("No frames found among %d samples", len(samples))
            return AnalyzerResult(error=ErrorKind.NO_FRAMES_FOUND)

        intersections = self._calibrator.frame_intersections(frames)
        resistance = self._calibrator.resistance_from_intersections(intersections)
        temperature = self.table.temperature_for(resistance)

        logger.debug(
            "Decoded %d frames: resistance=%.3f temperature=%.2f",
            len(frames), resistance, temperature,
        )
        return AnalyzerResult(
            temperature=temperature,
            resistance=resistance,
            number_of_frames=len(frames),
        )


class SimplifiedAnalyzer:
    """
    Two-phase probe decoder.

    Compares the amplitude returned while the probe plays on the left
    channel with the amplitude returned while it plays on the right one.
    Coarser than the sweep decoder but needs no frame synchronization.
    """

    LEFT_OFFSET = 0.05
    RIGHT_OFFSET = 1.05
    WINDOW_FRACTION = 0.5 * 0.75

    def __init__(
        self,
        table: Optional[ThermistorTable] = None,
        signal_threshold: int = C.SIGNAL_THRESHOLD,
        ref_resistance: float = C.REF_RESISTANCE,
    ):
        self.table = table or default_table()
        self.signal_threshold = signal_threshold
        self.ref_resistance = ref_resistance
        self._extractor = SampleExtractor()

    def _window_values(self, window: np.ndarray) -> List[int]:
        samples = self._extractor.extract(window)
        values = []
        for amplitude, kind in zip(samples.amplitudes.tolist(), samples.kinds.tolist()):
            if kind == SampleKind.MAX:
                values.append(amplitude)
            elif kind == SampleKind.MIN:
                values.append(-amplitude)
        return values

    def decode(self, buffer: Buffer) -> AnalyzerResult:
        """
        Decode one captured buffer of the two-phase probe.

        Args:
            buffer: Mono 16-bit PCM samples

        Returns:
            Analysis result; ``error`` is set when no probe signal is present
        """
        data = as_pcm(buffer)
        loud = np.flatnonzero(np.abs(data.astype(np.int32)) > self.signal_threshold)
        if len(loud) == 0:
            return AnalyzerResult(error=ErrorKind.NO_FRAMES_FOUND)

        trimmed = data[loud[0]:loud[-1] + 1]
        window = int(math.floor(len(trimmed) * self.WINDOW_FRACTION + 0.5))
        left_start = int(window * self.LEFT_OFFSET)
        right_start = max(len(trimmed) - int(window * self.RIGHT_OFFSET), 0)

        left_values = self._window_values(trimmed[left_start:left_start + window])
        right_values = self._window_values(trimmed[right_start:right_start + window])
        if not left_values or not right_values:
            return AnalyzerResult(error=ErrorKind.NO_FRAMES_FOUND)

        left_amplitude = median(left_values)
        right_amplitude = median(right_values)
        logger.debug("Left amplitude: %d, right amplitude: %d", left_amplitude, right_amplitude)

        if left_amplitude == 0:
            resistance = math.nan
        else:
            resistance = right_amplitude / left_amplitude * self.ref_resistance
        temperature = self.table.temperature_for(resistance)

        return AnalyzerResult(
            temperature=temperature,
            resistance=resistance,
            number_of_frames=2,
        )


class SignalAnalyzer:
    """Single decode entry point over the selected analyzer mode."""

    def __init__(
        self,
        mode: AnalyzerMode = AnalyzerMode.DEFAULT,
        config: Optional[WaveformConfig] = None,
        table: Optional[ThermistorTable] = None,
    ):
        self.mode = AnalyzerMode(mode)
        self.config = config or WaveformConfig()
        if self.mode is AnalyzerMode.SIMPLIFIED:
            self._decoder = SimplifiedAnalyzer(table=table)
        else:
            self._decoder = DefaultAnalyzer(self.config, table=table)

    def decode(self, buffer: Buffer) -> AnalyzerResult:
        return self._decoder.decode(buffer)

    def __repr__(self) -> str:
        return f"SignalAnalyzer(mode={self.mode.value})"

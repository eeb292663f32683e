"""
Data model for thermodo.
Samples, cells, frames and analysis results shared by the decoders.
"""

import math
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterator, List, Optional

import numpy as np


class SampleKind(IntEnum):
    """Kind of an extracted sample point."""
    ZERO = 0
    MAX = 1
    MIN = 2


class ErrorKind(Enum):
    """Reasons an analysis or a session can fail."""
    CLIPPING_DETECTED = "clipping_detected"
    NO_FRAMES_FOUND = "no_frames_found"
    CAPTURE_FAILURE = "capture_failure"
    UNDETERMINED_TEMPERATURE = "undetermined_temperature"


class ThermodoError(Exception):
    """Base exception for thermodo."""


class AudioUnavailableError(ThermodoError):
    """Raised when the audio backend cannot be used."""


class CaptureError(ThermodoError):
    """Raised when the capture device fails to deliver data."""

    def __init__(self, code: int, message: str = ""):
        self.code = code
        super().__init__(message or f"Audio capture failed with code {code}")


@dataclass(frozen=True)
class Sample:
    """A zero-crossing or a local extremum of the captured signal."""
    amplitude: int
    buffer_index: int
    delta_buffer_index: int
    kind: SampleKind


class SampleBuffer:
    """
    Reusable arena of extracted samples.

    Columns are numpy arrays that keep their capacity between analyses;
    ``clear()`` only resets the length. Indexing returns immutable
    :class:`Sample` values.
    """

    def __init__(self, capacity: int = 4096):
        self._amplitudes = np.zeros(capacity, dtype=np.int16)
        self._indices = np.zeros(capacity, dtype=np.int64)
        self._deltas = np.zeros(capacity, dtype=np.int64)
        self._kinds = np.zeros(capacity, dtype=np.int8)
        self._size = 0

    @property
    def capacity(self) -> int:
        return len(self._amplitudes)

    def clear(self) -> None:
        """Forget all samples, keeping the allocated storage."""
        self._size = 0

    def _reserve(self, needed: int) -> None:
        if needed <= self.capacity:
            return
        new_capacity = max(needed, self.capacity * 2)
        for name in ("_amplitudes", "_indices", "_deltas", "_kinds"):
            old = getattr(self, name)
            grown = np.zeros(new_capacity, dtype=old.dtype)
            grown[:self._size] = old[:self._size]
            setattr(self, name, grown)

    def append(
        self,
        amplitude: int,
        buffer_index: int,
        delta_buffer_index: int,
        kind: SampleKind,
    ) -> None:
        """Append a single sample."""
        self._reserve(self._size + 1)
        i = self._size
        self._amplitudes[i] = amplitude
        self._indices[i] = buffer_index
        self._deltas[i] = delta_buffer_index
        self._kinds[i] = kind
        self._size += 1

    def extend(
        self,
        amplitudes: np.ndarray,
        buffer_indices: np.ndarray,
        deltas: np.ndarray,
        kinds: np.ndarray,
    ) -> None:
        """Append a batch of samples given as parallel arrays."""
        count = len(amplitudes)
        self._reserve(self._size + count)
        end = self._size + count
        self._amplitudes[self._size:end] = amplitudes
        self._indices[self._size:end] = buffer_indices
        self._deltas[self._size:end] = deltas
        self._kinds[self._size:end] = kinds
        self._size = end

    @property
    def amplitudes(self) -> np.ndarray:
        return self._amplitudes[:self._size]

    @property
    def buffer_indices(self) -> np.ndarray:
        return self._indices[:self._size]

    @property
    def deltas(self) -> np.ndarray:
        return self._deltas[:self._size]

    @property
    def kinds(self) -> np.ndarray:
        return self._kinds[:self._size]

    def __len__(self) -> int:
        return self._size

    def __getitem__(self, index: int) -> Sample:
        if index < 0:
            index += self._size
        if not 0 <= index < self._size:
            raise IndexError("sample index out of range")
        return Sample(
            amplitude=int(self._amplitudes[index]),
            buffer_index=int(self._indices[index]),
            delta_buffer_index=int(self._deltas[index]),
            kind=SampleKind(int(self._kinds[index])),
        )

    def __iter__(self) -> Iterator[Sample]:
        for i in range(self._size):
            yield self[i]


@dataclass
class Cell:
    """One calibration step of a frame reduced to a single amplitude."""
    amplitude: int
    index: int


@dataclass
class Frame:
    """One sweep cycle recovered from the captured signal."""
    cells: List[Cell] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cells)


@dataclass(frozen=True)
class Trendline:
    """Least-squares line fitted over the cells of a frame."""
    slope: float
    intercept: float


@dataclass(frozen=True)
class AnalyzerResult:
    """Outcome of analyzing one captured buffer."""
    temperature: float = math.nan
    resistance: float = math.nan
    number_of_frames: int = 0
    error: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        """True if the buffer produced a resistance estimate."""
        return self.error is None

    @property
    def has_temperature(self) -> bool:
        """True if the resistance fell inside the thermistor table."""
        return self.ok and not math.isnan(self.temperature)

    def to_dict(self) -> dict:
        """Convert result to dictionary."""
        return {
            "temperature": None if math.isnan(self.temperature) else self.temperature,
            "resistance": None if math.isnan(self.resistance) else self.resistance,
            "number_of_frames": self.number_of_frames,
            "error": self.error.value if self.error else None,
        }

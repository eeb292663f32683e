"""
Zero-crossing and extremum extraction.
"""

from typing import Optional, Sequence, Union

import numpy as np

from thermodo.core.models import SampleBuffer, SampleKind

# Crossing-to-crossing spans shorter than this carry no usable extremum
MIN_EXTREME_SPAN = 3


def as_pcm(buffer: Union[np.ndarray, Sequence[int]]) -> np.ndarray:
    """Return the buffer as a flat int16 array."""
    return np.asarray(buffer, dtype=np.int16).reshape(-1)


class SampleExtractor:
    """
    Reduces a mono PCM buffer to alternating zero and extreme points.

    The extractor owns a :class:`SampleBuffer` that is cleared and refilled
    on every call, so the returned buffer is only valid until the next
    ``extract``.
    """

    def __init__(self, samples: Optional[SampleBuffer] = None):
        self.samples = samples if samples is not None else SampleBuffer()

    def extract(self, buffer: Union[np.ndarray, Sequence[int]]) -> SampleBuffer:
        """
        Extract zero-crossings and extrema from a buffer.

        A zero point is emitted together with the extremum that follows
        it, and only when the span up to the next crossing is long enough
        to hold one. The last crossing of a buffer is never emitted.

        Args:
            buffer: Mono 16-bit PCM samples

        Returns:
            The extractor's sample buffer
        """
        self.samples.clear()
        data = as_pcm(buffer)
        if len(data) < 2:
            return self.samples

        positive = data >= 0
        crossings = np.flatnonzero(positive[1:] != positive[:-1]) + 1
        if len(crossings) < 2:
            return self.samples

        deltas = np.diff(crossings, prepend=0)
        magnitudes = np.abs(data.astype(np.int32))

        amplitudes = []
        indices = []
        sample_deltas = []
        kinds = []
        for k in range(len(crossings) - 1):
            start = int(crossings[k])
            end = int(crossings[k + 1])
            if end - start < MIN_EXTREME_SPAN:
                continue

            offset = int(np.argmax(magnitudes[start:end]))
            if magnitudes[start + offset] == 0:
                continue

            peak = start + offset
            peak_amplitude = int(data[peak])
            amplitudes.extend((int(data[start]), peak_amplitude))
            indices.extend((start, peak))
            sample_deltas.extend((int(deltas[k]), 0))
            kinds.extend((
                SampleKind.ZERO,
                SampleKind.MAX if peak_amplitude > 0 else SampleKind.MIN,
            ))

        if amplitudes:
            self.samples.extend(
                np.asarray(amplitudes, dtype=np.int16),
                np.asarray(indices, dtype=np.int64),
                np.asarray(sample_deltas, dtype=np.int64),
                np.asarray(kinds, dtype=np.int8),
            )
        return self.samples

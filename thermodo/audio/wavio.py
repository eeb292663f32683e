"""
WAV file helpers for thermodo.
"""

from pathlib import Path
from typing import Union

import numpy as np
from scipy.io import wavfile

from thermodo.core import constants as C


def _to_int16(data: np.ndarray) -> np.ndarray:
    if data.dtype == np.int16:
        return data
    if np.issubdtype(data.dtype, np.floating):
        scaled = np.round(np.clip(data, -1.0, 1.0) * C.MAX_AMPLITUDE)
        return scaled.astype(np.int16)
    if data.dtype == np.uint8:
        return ((data.astype(np.int16) - 128) << 8).astype(np.int16)
    if data.dtype == np.int32:
        return (data >> 16).astype(np.int16)
    raise ValueError(f"Unsupported WAV sample type: {data.dtype}")


def load_capture(path: Union[str, Path]) -> np.ndarray:
    """
    Load a recording as mono 16-bit PCM.

    Multi-channel files are mixed down; float and other integer formats
    are scaled to the 16-bit range.

    Args:
        path: WAV file path

    Returns:
        Mono int16 samples

    Raises:
        ValueError: If the sample rate does not match the decoder's
    """
    sample_rate, data = wavfile.read(str(path))
    if sample_rate != C.SAMPLE_RATE:
        raise ValueError(
            f"Expected a {C.SAMPLE_RATE} Hz recording, got {sample_rate} Hz"
        )

    data = _to_int16(np.asarray(data))
    if data.ndim > 1:
        mixed = np.round(data.astype(np.float64).mean(axis=1))
        data = np.clip(mixed, -32768, C.MAX_AMPLITUDE).astype(np.int16)
    return data


def save_pcm(path: Union[str, Path], pcm: np.ndarray, sample_rate: int = C.SAMPLE_RATE) -> Path:
    """
    Write 16-bit PCM (mono or stereo) to a WAV file.

    Returns:
        Path of the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wavfile.write(str(path), sample_rate, np.asarray(pcm, dtype=np.int16))
    return path


def loopback_mix(stereo: np.ndarray, right_gain: float = 1.0) -> np.ndarray:
    """
    Simulate the sensor bridge on a stereo signal.

    The sensor sums both output channels into the microphone, with the
    reference (right) channel attenuated in proportion to the thermistor.
    A gain of ``resistance / REF_RESISTANCE`` therefore decodes to that
    resistance.

    Args:
        stereo: Stereo int16 samples of shape (frames, 2)
        right_gain: Scale applied to the right channel

    Returns:
        Mono int16 samples
    """
    stereo = np.asarray(stereo, dtype=np.float64)
    mixed = stereo[:, 0] + right_gain * stereo[:, 1]
    return np.clip(np.round(mixed), -32768, C.MAX_AMPLITUDE).astype(np.int16)

"""Shared fixtures: audio collaborators that need no hardware."""

import threading
import time
from typing import Callable, List, Optional

import numpy as np
import pytest

from thermodo.audio.device import AudioCapture, AudioPlayback
from thermodo.audio.synth import WaveformSynthesizer
from thermodo.audio.wavio import loopback_mix


class FakeCapture(AudioCapture):
    """Delivers one queued buffer synchronously from every ``start()``."""

    def __init__(self, buffers=(), error_code: Optional[int] = None):
        super().__init__()
        self.buffers: List[np.ndarray] = [np.asarray(b, dtype=np.int16) for b in buffers]
        self.error_code = error_code
        self.starts = 0
        self.stops = 0
        self._recording = False

    def start(self, on_buffer_filled, on_read_error=None):
        self.starts += 1
        self._recording = True
        if self.buffers:
            on_buffer_filled(self.buffers.pop(0))
        elif self.error_code is not None and on_read_error is not None:
            on_read_error(self.error_code)

    def stop(self):
        self.stops += 1
        self._recording = False

    def is_recording(self):
        return self._recording


class SlowCapture(AudioCapture):
    """Delivers each queued buffer from a timer thread after ``delay`` seconds."""

    def __init__(self, buffers=(), delay: float = 0.3):
        super().__init__()
        self.buffers: List[np.ndarray] = [np.asarray(b, dtype=np.int16) for b in buffers]
        self.delay = delay
        self.calls = []
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def start(self, on_buffer_filled, on_read_error=None):
        with self._lock:
            self.calls.append(("start", threading.current_thread().name))
            self._timer = None
            if self.buffers:
                self._timer = threading.Timer(
                    self.delay, on_buffer_filled, args=(self.buffers.pop(0),)
                )
                self._timer.start()

    def stop(self):
        with self._lock:
            self.calls.append(("stop", threading.current_thread().name))
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def is_recording(self):
        return self._timer is not None

    def count(self, call: str) -> int:
        return sum(1 for name, _ in self.calls if name == call)


class FakePlayback(AudioPlayback):
    """Records what would have been played."""

    def __init__(self):
        super().__init__()
        self.plays = []
        self.stops = 0

    def play(self, pcm, loop_count=0):
        self.plays.append((np.asarray(pcm).shape, loop_count))

    def stop(self):
        self.stops += 1


def loopback_sweep(right_gain: float = 1.0, repetitions: int = 6) -> np.ndarray:
    """Mono capture of the sweep through a simulated sensor."""
    sweep = WaveformSynthesizer().sweep()
    return loopback_mix(np.tile(sweep, (repetitions, 1)), right_gain)


def noise(amplitude: int, length: int = 22050, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(-amplitude, amplitude + 1, size=length).astype(np.int16)


def tone(amplitude: float, length: int = 22050, frequency: float = 200.0) -> np.ndarray:
    n = np.arange(length)
    return np.round(amplitude * np.sin(2 * np.pi * frequency * n / 44100)).astype(np.int16)


def wait_for(predicate: Callable[[], bool], timeout: float = 10.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def playback():
    return FakePlayback()


@pytest.fixture(scope="session")
def sweep_capture():
    return loopback_sweep()

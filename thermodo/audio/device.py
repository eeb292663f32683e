"""
Audio device management for thermodo.
Capture and playback collaborators backed by sounddevice.
"""

import logging
import threading
from typing import Callable, List, Optional

import numpy as np

from thermodo.core import constants as C
from thermodo.core.models import AudioUnavailableError

# Try to import sounddevice, handle gracefully if not available
try:
    import sounddevice as sd
    SOUNDDEVICE_AVAILABLE = True
except (ImportError, OSError):
    SOUNDDEVICE_AVAILABLE = False
    sd = None

logger = logging.getLogger(__name__)

BufferCallback = Callable[[np.ndarray], None]
ErrorCallback = Callable[[int], None]

# Code reported when the backend gives no numeric error
UNKNOWN_READ_ERROR = -1


def _require_sounddevice() -> None:
    if not SOUNDDEVICE_AVAILABLE:
        raise AudioUnavailableError(
            "sounddevice is not available. "
            "Please install it with: pip install sounddevice"
        )


class AudioCapture:
    """
    Mono 16-bit capture delivering fixed-size buffers.

    ``on_buffer_filled`` and ``on_read_error`` are called from the
    capture's own thread. ``stop()`` may be called from any thread,
    including from inside those callbacks.
    """

    def __init__(
        self,
        sample_rate: int = C.SAMPLE_RATE,
        buffer_size: int = C.BUFFER_SAMPLES,
    ):
        self.sample_rate = sample_rate
        self.buffer_size = buffer_size

    def start(
        self,
        on_buffer_filled: BufferCallback,
        on_read_error: Optional[ErrorCallback] = None,
    ) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def is_recording(self) -> bool:
        raise NotImplementedError


class AudioPlayback:
    """Stereo 16-bit playback."""

    def __init__(self, sample_rate: int = C.SAMPLE_RATE):
        self.sample_rate = sample_rate

    def play(self, pcm: np.ndarray, loop_count: int = 0) -> None:
        """
        Start playing ``pcm`` without blocking.

        Args:
            pcm: Stereo int16 samples of shape (frames, 2)
            loop_count: -1 loops until stopped, 0 plays once,
                n > 0 plays n additional times
        """
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError


class SoundDeviceCapture(AudioCapture):
    """Capture running a blocking sounddevice read loop in a thread."""

    def __init__(
        self,
        sample_rate: int = C.SAMPLE_RATE,
        buffer_size: int = C.BUFFER_SAMPLES,
        device: Optional[int] = None,
    ):
        _require_sounddevice()
        super().__init__(sample_rate, buffer_size)
        self.device = device
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    def start(
        self,
        on_buffer_filled: BufferCallback,
        on_read_error: Optional[ErrorCallback] = None,
    ) -> None:
        """Open the input stream and start delivering buffers."""
        with self._lock:
            if self._thread is not None:
                return

            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="int16",
                blocksize=self.buffer_size,
                device=self.device,
            )
            stream.start()

            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(stream, self._stop_event, on_buffer_filled, on_read_error),
                name="AudioCapture",
                daemon=True,
            )
            self._thread.start()

    def _run(
        self,
        stream,
        stop_event: threading.Event,
        on_buffer_filled: BufferCallback,
        on_read_error: Optional[ErrorCallback],
    ) -> None:
        try:
            while not stop_event.is_set():
                try:
                    data, overflowed = stream.read(self.buffer_size)
                except sd.PortAudioError as e:
                    if not stop_event.is_set():
                        code = e.args[1] if len(e.args) > 1 and isinstance(e.args[1], int) \
                            else UNKNOWN_READ_ERROR
                        logger.warning("Recording error: %s", e)
                        if on_read_error:
                            on_read_error(code)
                    break

                if overflowed:
                    logger.debug("Input overflow while capturing")
                if stop_event.is_set():
                    break
                on_buffer_filled(np.asarray(data, dtype=np.int16).reshape(-1))
        finally:
            stream.stop()
            stream.close()

    def stop(self) -> None:
        """Stop capturing; waits for the reader unless called from it."""
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.buffer_size / self.sample_rate + 1.0)

    def is_recording(self) -> bool:
        return self._thread is not None


class SoundDevicePlayback(AudioPlayback):
    """Playback through ``sounddevice.play``."""

    def __init__(
        self,
        sample_rate: int = C.SAMPLE_RATE,
        device: Optional[int] = None,
    ):
        _require_sounddevice()
        super().__init__(sample_rate)
        self.device = device
        self._playing = False

    def play(self, pcm: np.ndarray, loop_count: int = 0) -> None:
        """Start playback; see :meth:`AudioPlayback.play`."""
        data = np.asarray(pcm, dtype=np.int16)
        if self._playing:
            self.stop()

        if loop_count > 0:
            data = np.tile(data, (loop_count + 1, 1))
        sd.play(data, self.sample_rate, device=self.device, loop=loop_count < 0)
        self._playing = True

    def stop(self) -> None:
        """Stop current playback."""
        if self._playing:
            sd.stop()
        self._playing = False

    def is_playing(self) -> bool:
        return self._playing


class AudioDevice:
    """Audio device discovery."""

    @staticmethod
    def list_devices() -> List[dict]:
        """List available audio devices."""
        if not SOUNDDEVICE_AVAILABLE:
            return []

        devices = sd.query_devices()
        return [
            {
                "index": i,
                "name": d["name"],
                "inputs": d["max_input_channels"],
                "outputs": d["max_output_channels"],
                "default_samplerate": d["default_samplerate"],
            }
            for i, d in enumerate(devices)
        ]

    @staticmethod
    def get_default_input() -> Optional[int]:
        """Get default input device index."""
        if not SOUNDDEVICE_AVAILABLE:
            return None
        return sd.default.device[0]

    @staticmethod
    def get_default_output() -> Optional[int]:
        """Get default output device index."""
        if not SOUNDDEVICE_AVAILABLE:
            return None
        return sd.default.device[1]

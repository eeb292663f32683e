"""
Presence detection for thermodo.
Tells the sensor apart from an ordinary headset with a silence/tone test.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

import numpy as np

from thermodo.audio.device import AudioCapture, AudioPlayback
from thermodo.audio.synth import WaveformSynthesizer
from thermodo.core import constants as C
from thermodo.core.models import CaptureError

logger = logging.getLogger(__name__)

PresenceResultSink = Callable[[bool], None]


def trimmed_level(
    buffer: Union[np.ndarray, Sequence[int]],
    cut: int = C.CUT_SAMPLES_COUNT,
) -> int:
    """
    Level of a buffer ignoring its loudest ``cut`` samples.

    Args:
        buffer: Mono 16-bit PCM samples
        cut: Number of top outliers to discard

    Returns:
        The absolute amplitude at rank ``len - cut`` of the sorted buffer
    """
    magnitudes = np.abs(np.asarray(buffer, dtype=np.int32).reshape(-1))
    if len(magnitudes) == 0:
        return 0
    rank = min(max(len(magnitudes) - cut, 0), len(magnitudes) - 1)
    return int(np.partition(magnitudes, rank)[rank])


@dataclass
class DetectorConfig:
    """Thresholds and timing of the presence test."""
    silence_threshold: int = C.SILENCE_THRESHOLD
    tone_to_silence_ratio: float = C.TONE_TO_SILENCE_RATIO
    cut_samples_count: int = C.CUT_SAMPLES_COUNT
    test_tone_duration_ms: int = C.TEST_TONE_DURATION_MS
    test_tone_frequency: int = C.TEST_TONE_FREQUENCY
    playback_delay_ms: int = int(C.PLAYBACK_DELAY_SECONDS * 1000)
    capture_timeout: float = 5.0

    @property
    def playback_delay(self) -> float:
        """Delay between starting the tone and capturing, in seconds."""
        return self.playback_delay_ms / 1000.0


class PresenceDetector:
    """
    Two-phase presence detector.

    Phase 1 captures one buffer with nothing playing. The sensor's bridge
    is quiet, so a noisy line rules it out. Phase 2 plays the test tone and
    captures again; the sensor returns the tone much louder than the
    silence that preceded it.
    """

    def __init__(
        self,
        capture: AudioCapture,
        playback: AudioPlayback,
        synthesizer: Optional[WaveformSynthesizer] = None,
        config: Optional[DetectorConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.capture = capture
        self.playback = playback
        self.config = config or DetectorConfig()
        self.synthesizer = synthesizer or WaveformSynthesizer()
        self._sleep = sleep
        self._cancelled = threading.Event()
        # Guards the collaborators against use after cancel
        self._io_lock = threading.Lock()
        self._tone = self.synthesizer.test_tone(
            self.config.test_tone_duration_ms,
            self.config.test_tone_frequency,
        )

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """
        Abort detection for good; no result will be reported.

        Once this returns the detector no longer starts or stops the capture
        and playback, so they can be handed to a new detector right away.
        """
        with self._io_lock:
            self._cancelled.set()
            self.capture.stop()
            self.playback.stop()

    def _release(self, collaborator) -> None:
        with self._io_lock:
            if not self._cancelled.is_set():
                collaborator.stop()

    def _capture_one(self) -> Optional[np.ndarray]:
        """
        Capture a single buffer.

        Returns:
            The buffer, or None if detection was cancelled meanwhile

        Raises:
            CaptureError: If the capture reports a read error or times out
        """
        inbox: "queue.Queue" = queue.Queue(maxsize=1)

        def on_buffer(buffer: np.ndarray) -> None:
            try:
                inbox.put_nowait(np.array(buffer, dtype=np.int16, copy=True))
            except queue.Full:
                pass

        def on_error(code: int) -> None:
            try:
                inbox.put_nowait(CaptureError(code))
            except queue.Full:
                pass

        deadline = time.monotonic() + self.config.capture_timeout
        with self._io_lock:
            if self._cancelled.is_set():
                return None
            self.capture.start(on_buffer, on_error)
        try:
            while not self._cancelled.is_set():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise CaptureError(-1, "Timed out waiting for audio")
                try:
                    item = inbox.get(timeout=min(remaining, 0.1))
                except queue.Empty:
                    continue
                if isinstance(item, CaptureError):
                    raise item
                return item
            return None
        finally:
            self._release(self.capture)

    def is_quiet(self, silence_level: int) -> bool:
        return silence_level < self.config.silence_threshold

    def is_tone_returned(self, silence_level: int, tone_level: int) -> bool:
        """Ratio test of the tone level against the preceding silence."""
        return tone_level > self.config.tone_to_silence_ratio * max(silence_level, 1)

    def detect(self) -> Optional[bool]:
        """
        Run both phases on the calling thread.

        Returns:
            True if the sensor was detected, False if not, None if the
            detection was cancelled
        """
        cut = self.config.cut_samples_count

        try:
            silence = self._capture_one()
        except CaptureError as e:
            logger.warning("Recording error during silence phase: %s", e)
            return False
        if silence is None:
            return None

        silence_level = trimmed_level(silence, cut)
        logger.debug("Silence level: %d", silence_level)
        if not self.is_quiet(silence_level):
            logger.debug("Line too noisy for the sensor")
            return False

        with self._io_lock:
            if self._cancelled.is_set():
                return None
            self.playback.play(self._tone, 0)
        try:
            # Playback usually starts later than capture
            self._sleep(self.config.playback_delay)
            if self._cancelled.is_set():
                return None
            tone = self._capture_one()
        except CaptureError as e:
            logger.warning("Recording error during tone phase: %s", e)
            return False
        finally:
            self._release(self.playback)
        if tone is None:
            return None

        tone_level = trimmed_level(tone, cut)
        detected = self.is_tone_returned(silence_level, tone_level)
        logger.debug("Tone level: %d, detected: %s", tone_level, detected)
        return detected

    def run(self, sink: PresenceResultSink) -> None:
        """Run detection and hand the outcome to ``sink`` unless cancelled."""
        detected = self.detect()
        if detected is not None and not self._cancelled.is_set():
            sink(detected)

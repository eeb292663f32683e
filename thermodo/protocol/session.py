"""
Measurement session for thermodo.
Coordinates detection, playback, capture and decoding, and reports to a listener.
"""

import logging
import math
import queue
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

import numpy as np

from thermodo.analysis.analyzer import AnalyzerMode, SignalAnalyzer
from thermodo.analysis.thermistor import default_table
from thermodo.audio.device import (
    AudioCapture,
    AudioPlayback,
    SoundDeviceCapture,
    SoundDevicePlayback,
)
from thermodo.audio.synth import WaveformConfig, WaveformSynthesizer
from thermodo.core.config import Config
from thermodo.core.logger import EventLogger
from thermodo.core.models import AnalyzerResult, ErrorKind
from thermodo.protocol.detector import DetectorConfig, PresenceDetector

logger = logging.getLogger(__name__)


class SessionMode(Enum):
    """What the session is doing with the audio line."""
    IDLE = "idle"
    DETECTING = "detecting"
    MEASURING = "measuring"


class ThermodoListener:
    """
    Receiver of session events.

    All methods are called on the session's event thread, one at a time
    and in the order the events happened. Subclass and override what you
    need; the defaults do nothing.
    """

    def on_started_measuring(self) -> None:
        pass

    def on_stopped_measuring(self) -> None:
        pass

    def on_temperature(self, result: AnalyzerResult) -> None:
        pass

    def on_plugged_in(self) -> None:
        pass

    def on_unplugged(self) -> None:
        pass

    def on_error(self, kind: ErrorKind) -> None:
        pass


class EventDispatcher:
    """Delivers callbacks in order on a single background thread."""

    def __init__(self, name: str = "ThermodoEvents"):
        self.name = name
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_running(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                self._queue.task_done()
                return
            callback, args = item
            try:
                callback(*args)
            except Exception:
                logger.exception("Event callback %r failed", callback)
            finally:
                self._queue.task_done()

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue ``callback(*args)`` for delivery."""
        self._ensure_running()
        self._queue.put((callback, args))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every event posted so far has been delivered.

        Args:
            timeout: Maximum time to wait in seconds, None waits forever

        Returns:
            True if all events were delivered in time
        """
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                return self._queue.empty()
        delivered = threading.Event()
        self._queue.put((delivered.set, ()))
        return delivered.wait(timeout)

    def close(self) -> None:
        """Deliver pending events and stop the thread."""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None and thread.is_alive():
            self._queue.put(None)
            if thread is not threading.current_thread():
                thread.join()


class DecodeChannel:
    """
    Single-slot channel between capture and decoding.

    A buffer posted while the previous one is still waiting replaces it,
    so the decoder always works on the newest audio.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._pending: Optional[np.ndarray] = None
        self._closed = False
        self.dropped = 0

    def put(self, buffer: np.ndarray) -> bool:
        """
        Offer a buffer.

        Returns:
            False if the channel is closed
        """
        with self._condition:
            if self._closed:
                return False
            if self._pending is not None:
                self.dropped += 1
            self._pending = buffer
            self._condition.notify()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        """Take the pending buffer; None once closed or on timeout."""
        with self._condition:
            self._condition.wait_for(
                lambda: self._pending is not None or self._closed, timeout
            )
            if self._closed:
                return None
            buffer, self._pending = self._pending, None
            return buffer

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._pending = None
            self._condition.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed


class Thermodo:
    """
    Thermodo measurement session.

    ``start()`` arms the session. When a headset is reported plugged in,
    the session checks whether it is the sensor (unless the device check
    is disabled) and, if so, plays the measuring waveform and decodes the
    returning audio until the headset is unplugged or the session stops.
    """

    def __init__(
        self,
        capture: AudioCapture,
        playback: AudioPlayback,
        mode: AnalyzerMode = AnalyzerMode.DEFAULT,
        waveform_config: Optional[WaveformConfig] = None,
        detector_config: Optional[DetectorConfig] = None,
        listener: Optional[ThermodoListener] = None,
        event_logger: Optional[EventLogger] = None,
        device_check: bool = True,
    ):
        """
        Initialize the session.

        Args:
            capture: Mono capture collaborator
            playback: Stereo playback collaborator
            mode: Analyzer mode used while measuring
            waveform_config: Waveform parameters. Uses defaults if None.
            detector_config: Presence test parameters. Uses defaults if None.
            listener: Receiver of session events
            event_logger: Optional event log
            device_check: Run presence detection before measuring
        """
        self.capture = capture
        self.playback = playback
        self.waveform_config = waveform_config or WaveformConfig()
        self.detector_config = detector_config or DetectorConfig()
        self.synthesizer = WaveformSynthesizer(self.waveform_config)
        self.listener = listener
        self.event_logger = event_logger
        self.device_check = device_check

        self._dispatcher = EventDispatcher()
        self._lock = threading.RLock()
        self._running = False
        self._mode = SessionMode.IDLE
        self._headset_plugged = False
        self._sensor_plugged = False
        self._channel: Optional[DecodeChannel] = None
        self._detector: Optional[PresenceDetector] = None

        self._set_analyzer(AnalyzerMode(mode))

    def _set_analyzer(self, mode: AnalyzerMode) -> None:
        self.analyzer_mode = mode
        if mode is AnalyzerMode.SIMPLIFIED:
            self._waveform = self.synthesizer.two_phase()
        else:
            self._waveform = self.synthesizer.sweep()

    @property
    def waveform(self) -> np.ndarray:
        """Stereo PCM played while measuring."""
        return self._waveform

    @property
    def mode(self) -> SessionMode:
        return self._mode

    def is_running(self) -> bool:
        return self._running

    def is_measuring(self) -> bool:
        return self._mode is SessionMode.MEASURING

    def is_plugged(self) -> bool:
        """True once the sensor has been detected and not unplugged since."""
        return self._sensor_plugged

    def _post(self, name: str, *args: Any) -> None:
        listener = self.listener
        if listener is not None:
            self._dispatcher.post(getattr(listener, name), *args)

    def _log(self, method: str, *args: Any) -> None:
        if self.event_logger is not None:
            getattr(self.event_logger, method)(*args)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until the listener has received every event posted so far."""
        return self._dispatcher.flush(timeout)

    def close(self) -> None:
        """Stop the session and its event thread."""
        self.stop()
        self._dispatcher.close()

    def start(self) -> None:
        """Arm the session. Does nothing if already running."""
        with self._lock:
            if self._running:
                return
            self._running = True
        logger.info("Session started (analyzer=%s)", self.analyzer_mode.value)
        self._log("log_session_start", self.analyzer_mode.value)

        if self._headset_plugged:
            self._on_headset(True)

    def stop(self) -> None:
        """Stop any detection or measurement. Does nothing if not running."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            detector = self._detector
            self._detector = None
            if self._mode is SessionMode.DETECTING:
                self._mode = SessionMode.IDLE

        if detector is not None:
            detector.cancel()
        self._stop_measuring()
        logger.info("Session stopped")
        self._log("log_session_stop")

    def set_plugged(self, plugged: bool) -> None:
        """
        Report a headset plug or unplug event.

        Args:
            plugged: True when something was inserted into the jack
        """
        with self._lock:
            self._headset_plugged = plugged
        self._on_headset(plugged)

    def _on_headset(self, plugged: bool) -> None:
        with self._lock:
            start_check = plugged and self._running and self._mode is SessionMode.IDLE
            if start_check and self.device_check:
                self._start_detection()
            was_sensor = self._sensor_plugged

        if start_check and not self.device_check:
            self._on_detection_result(True)
        elif not plugged:
            with self._lock:
                detector = self._detector
                self._detector = None
                if self._mode is SessionMode.DETECTING:
                    self._mode = SessionMode.IDLE
            if detector is not None:
                detector.cancel()
            self._stop_measuring()

        if was_sensor and not plugged:
            self._sensor_plugged = False
            logger.info("Sensor unplugged")
            self._log("log_device_unplugged")
            self._post("on_unplugged")

    def _start_detection(self) -> None:
        detector = PresenceDetector(
            self.capture,
            self.playback,
            synthesizer=self.synthesizer,
            config=self.detector_config,
        )
        self._detector = detector
        self._mode = SessionMode.DETECTING
        thread = threading.Thread(
            target=detector.run,
            args=(lambda detected: self._finish_detection(detector, detected),),
            name="ThermodoDetection",
            daemon=True,
        )
        thread.start()

    def _finish_detection(self, detector: PresenceDetector, detected: bool) -> None:
        with self._lock:
            if self._detector is not detector:
                return
            self._detector = None
            self._mode = SessionMode.IDLE
        self._on_detection_result(detected)

    def _on_detection_result(self, detected: bool) -> None:
        logger.info("Presence detection result: %s", detected)
        self._log("log_device_detected", detected)
        if detected and self._running:
            self._start_measuring()

        self._sensor_plugged = detected
        if detected:
            self._post("on_plugged_in")

    def _start_measuring(self) -> None:
        with self._lock:
            if self._mode is not SessionMode.IDLE or not self._running:
                return
            self._mode = SessionMode.MEASURING
            channel = DecodeChannel()
            self._channel = channel
            analyzer = SignalAnalyzer(self.analyzer_mode, self.waveform_config)
            self._post("on_started_measuring")

        self._log("log_measuring_started")
        worker = threading.Thread(
            target=self._decode_loop,
            args=(channel, analyzer),
            name="ThermodoDecoder",
            daemon=True,
        )
        worker.start()

        self.playback.play(self._waveform, -1)
        self.capture.start(
            lambda buffer: channel.put(np.array(buffer, dtype=np.int16, copy=True)),
            self._on_read_error,
        )

    def _stop_measuring(self) -> bool:
        with self._lock:
            if self._mode is not SessionMode.MEASURING:
                return False
            self._mode = SessionMode.IDLE
            channel = self._channel
            self._channel = None
            self._post("on_stopped_measuring")

        self._log("log_measuring_stopped")
        self.playback.stop()
        self.capture.stop()
        if channel is not None:
            logger.debug("Decode channel dropped %d buffers", channel.dropped)
            channel.close()
        return True

    def _decode_loop(self, channel: DecodeChannel, analyzer: SignalAnalyzer) -> None:
        while True:
            buffer = channel.get()
            if buffer is None:
                return

            result = analyzer.decode(buffer)
            if not result.ok:
                logger.debug("Buffer rejected: %s", result.error.value)
                continue

            with self._lock:
                if self._channel is not channel:
                    return
                self._post("on_temperature", result)
            self._log("log_reading", result)

    def _on_read_error(self, code: int) -> None:
        logger.error("Audio capture failed with code %d", code)
        self._stop_measuring()
        self._log("log_error", f"Audio capture failed with code {code}")
        self._post("on_error", ErrorKind.CAPTURE_FAILURE)

    def switch_analyzer(self, mode: AnalyzerMode) -> None:
        """
        Select the analyzer and the matching waveform.

        A running session is restarted so the change takes effect.
        """
        mode = AnalyzerMode(mode)
        if mode is self.analyzer_mode:
            return

        was_running = self._running
        if was_running:
            self.stop()
        self._set_analyzer(mode)
        logger.info("Switched analyzer to %s", mode.value)
        if was_running:
            self.start()


class MockThermodo:
    """
    Session stand-in that needs no audio hardware.

    Reports temperatures swinging between 14 and 24 degrees Celsius once a
    minute, measuring for 20 seconds and pausing for 5 out of every 25.
    """

    INITIAL_DELAY = 2.0
    TICK_SECONDS = 1.0
    CYCLE_SECONDS = 25.0
    PAUSE_SECONDS = 5.0

    def __init__(
        self,
        listener: Optional[ThermodoListener] = None,
        clock: Callable[[], float] = time.monotonic,
        event_logger: Optional[EventLogger] = None,
    ):
        self.listener = listener
        self.event_logger = event_logger
        self.device_check = False
        self.analyzer_mode = AnalyzerMode.DEFAULT
        self._clock = clock
        self._dispatcher = EventDispatcher("MockThermodoEvents")
        self._running = False
        self._measuring = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def is_running(self) -> bool:
        return self._running

    def is_measuring(self) -> bool:
        return self._measuring

    def _post(self, name: str, *args: Any) -> None:
        if self.listener is not None:
            self._dispatcher.post(getattr(self.listener, name), *args)

    def flush(self, timeout: Optional[float] = None) -> bool:
        return self._dispatcher.flush(timeout)

    @staticmethod
    def temperature_at(seconds: float) -> float:
        return 19.0 + 5.0 * math.sin(math.pi * seconds / 60.0)

    def should_measure(self, seconds: float) -> bool:
        return seconds % self.CYCLE_SECONDS > self.PAUSE_SECONDS

    def tick(self) -> None:
        """Advance the simulation by one step."""
        now = self._clock()
        if self.should_measure(now):
            if not self._measuring:
                self._measuring = True
                self._post("on_started_measuring")
            else:
                temperature = self.temperature_at(now)
                result = AnalyzerResult(
                    temperature=temperature,
                    resistance=default_table().resistance_for(temperature),
                    number_of_frames=1,
                )
                self._post("on_temperature", result)
                if self.event_logger is not None:
                    self.event_logger.log_reading(result)
        elif self._measuring:
            self._measuring = False
            self._post("on_stopped_measuring")

    def _run(self, stop_event: threading.Event) -> None:
        if stop_event.wait(self.INITIAL_DELAY):
            return
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(self.TICK_SECONDS)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop_event,), name="MockThermodo", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        if not self._running:
            return
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        self._running = False
        self._measuring = False
        self._post("on_stopped_measuring")

    def set_plugged(self, plugged: bool) -> None:
        """Plug events are ignored by the mock."""

    def switch_analyzer(self, mode: AnalyzerMode) -> None:
        self.analyzer_mode = AnalyzerMode(mode)

    def close(self) -> None:
        self.stop()
        self._dispatcher.close()


def create_thermodo(
    config: Optional[Config] = None,
    mock: bool = False,
    listener: Optional[ThermodoListener] = None,
    capture: Optional[AudioCapture] = None,
    playback: Optional[AudioPlayback] = None,
    event_logger: Optional[EventLogger] = None,
):
    """
    Create a measurement session.

    Args:
        config: Config instance. Uses default configuration if None.
        mock: Return a :class:`MockThermodo` instead of a real session
        listener: Receiver of session events
        capture: Capture collaborator. A sounddevice capture if None.
        playback: Playback collaborator. A sounddevice playback if None.
        event_logger: Optional event log

    Returns:
        A :class:`Thermodo` or :class:`MockThermodo`
    """
    if mock:
        return MockThermodo(listener=listener, event_logger=event_logger)

    config = config or Config()

    audio = config.audio
    sample_rate = audio.get("sample_rate", 44100)
    if capture is None:
        buffer_size = int(audio.get("buffer_seconds", 0.5) * sample_rate)
        capture = SoundDeviceCapture(sample_rate, buffer_size, device=audio.get("input_device"))
    if playback is None:
        playback = SoundDevicePlayback(sample_rate, device=audio.get("output_device"))

    return Thermodo(
        capture,
        playback,
        mode=config.get_analyzer_mode(),
        waveform_config=config.create_waveform_config(),
        detector_config=config.create_detector_config(),
        listener=listener,
        event_logger=event_logger,
        device_check=config.measurement.get("device_check", True),
    )

"""
Command-line interface for thermodo.
"""

import logging
import math
import signal
import threading
import time
from typing import List, Optional, Tuple

import click
import numpy as np

from thermodo import __version__
from thermodo.analysis.analyzer import AnalyzerMode, SignalAnalyzer
from thermodo.analysis.thermistor import default_table
from thermodo.audio.device import AudioDevice, SoundDeviceCapture, SoundDevicePlayback
from thermodo.audio.synth import WaveformSynthesizer
from thermodo.audio.wavio import load_capture, loopback_mix, save_pcm
from thermodo.core import constants as C
from thermodo.core.config import Config
from thermodo.core.logger import EventLogger
from thermodo.core.models import AnalyzerResult, AudioUnavailableError, ErrorKind
from thermodo.protocol.detector import PresenceDetector
from thermodo.protocol.session import ThermodoListener, create_thermodo
from thermodo.ui.interface import ReadingDisplay, create_display
from thermodo.utils.helpers import format_duration, get_platform


def load_config(config_path: Optional[str]) -> Config:
    """Load configuration, falling back to defaults if the file is missing."""
    try:
        return Config(config_path) if config_path else Config()
    except FileNotFoundError as e:
        click.echo(f"Warning: {e}, using defaults", err=True)
        return Config()


class ConsoleListener(ThermodoListener):
    """Prints session events through a :class:`ReadingDisplay`."""

    def __init__(self, display: ReadingDisplay):
        self.display = display
        self.failed = threading.Event()

    def on_started_measuring(self) -> None:
        self.display.print_info("Measuring...")

    def on_stopped_measuring(self) -> None:
        self.display.print_info("Measuring stopped")

    def on_temperature(self, result: AnalyzerResult) -> None:
        self.display.show_reading(result)

    def on_plugged_in(self) -> None:
        self.display.print_success("Sensor detected")

    def on_unplugged(self) -> None:
        self.display.print_warning("Sensor unplugged")

    def on_error(self, kind: ErrorKind) -> None:
        self.display.print_error(f"Session error: {kind.value}")
        if kind is ErrorKind.CAPTURE_FAILURE:
            self.failed.set()


class MeasureApp:
    """Live measurement from the command line."""

    def __init__(
        self,
        config: Config,
        display: ReadingDisplay,
        simplified: bool = False,
        device_check: Optional[bool] = None,
        mock: bool = False,
    ):
        """
        Initialize the measurement app.

        Args:
            config: Loaded configuration
            display: Display for readings and status
            simplified: Use the two-phase analyzer instead of the sweep
            device_check: Override the configured device check
            mock: Use the simulated session instead of audio hardware
        """
        self.config = config
        self.display = display
        self.listener = ConsoleListener(display)
        self.event_logger = EventLogger.from_config(config.logging_config)

        if simplified:
            config.set("measurement.analyzer", AnalyzerMode.SIMPLIFIED.value)
        if device_check is not None:
            config.set("measurement.device_check", device_check)

        self.session = create_thermodo(
            config,
            mock=mock,
            listener=self.listener,
            event_logger=self.event_logger,
        )
        self._stop = threading.Event()

    def run(self, duration: Optional[float] = None) -> List[AnalyzerResult]:
        """
        Measure until interrupted, until ``duration`` elapses or until capture fails.

        Returns:
            Readings shown during the run
        """
        def signal_handler(sig, frame):
            self._stop.set()

        previous = signal.signal(signal.SIGINT, signal_handler)
        started = time.monotonic()
        try:
            self.session.start()
            # Desktop jacks raise no plug events; treat the line as plugged
            self.session.set_plugged(True)
            while not self._stop.is_set() and not self.listener.failed.is_set():
                if duration is not None and time.monotonic() - started >= duration:
                    break
                self._stop.wait(0.1)
        finally:
            signal.signal(signal.SIGINT, previous)
            self.session.close()

        self.display.print_info(
            f"Ran for {format_duration(time.monotonic() - started)}, "
            f"{len(self.display.readings)} readings"
        )
        return self.display.readings


def split_buffers(data: np.ndarray, buffer_size: int) -> List[Tuple[int, np.ndarray]]:
    """Cut a recording into consecutive capture-sized buffers."""
    if len(data) <= buffer_size:
        return [(0, data)]
    return [
        (start, data[start:start + buffer_size])
        for start in range(0, len(data) - buffer_size + 1, buffer_size)
    ]


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', count=True, help='Increase log output (-v info, -vv debug)')
def main(verbose: int):
    """thermodo - Audio Jack Thermometer"""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@main.command()
@click.option('--config', '-c', type=str, default=None, help='Path to configuration file')
@click.option('--simplified', is_flag=True, help='Use the two-phase probe analyzer')
@click.option('--no-device-check', is_flag=True, help='Skip sensor presence detection')
@click.option('--duration', '-d', type=float, default=None, help='Stop after this many seconds')
@click.option('--mock', is_flag=True, help='Simulate a sensor, no audio hardware needed')
def measure(config: Optional[str], simplified: bool, no_device_check: bool,
            duration: Optional[float], mock: bool):
    """Measure the temperature with a plugged-in sensor."""
    cfg = load_config(config)
    ui = create_display(cfg.ui)
    ui.print_header()
    ui.print_info(f"Platform: {get_platform()}")

    try:
        app = MeasureApp(
            cfg,
            ui,
            simplified=simplified,
            device_check=False if no_device_check else None,
            mock=mock,
        )
    except AudioUnavailableError as e:
        ui.print_error(str(e))
        raise SystemExit(1)

    ui.print_info(f"Analyzer: {app.session.analyzer_mode.value}")
    ui.print_info("Press Ctrl+C to stop")
    app.run(duration)

    if app.listener.failed.is_set():
        raise SystemExit(1)


@main.command()
@click.option('--config', '-c', type=str, default=None, help='Path to configuration file')
def detect(config: Optional[str]):
    """Check whether the plugged-in headset is a sensor."""
    cfg = load_config(config)
    ui = create_display(cfg.ui)
    audio = cfg.audio
    sample_rate = audio.get("sample_rate", C.SAMPLE_RATE)

    try:
        capture = SoundDeviceCapture(
            sample_rate,
            int(audio.get("buffer_seconds", C.BUFFER_SECONDS) * sample_rate),
            device=audio.get("input_device"),
        )
        playback = SoundDevicePlayback(sample_rate, device=audio.get("output_device"))
    except AudioUnavailableError as e:
        ui.print_error(str(e))
        raise SystemExit(1)

    detector = PresenceDetector(
        capture,
        playback,
        synthesizer=WaveformSynthesizer(cfg.create_waveform_config()),
        config=cfg.create_detector_config(),
    )
    ui.print_info("Running presence detection...")
    if detector.detect():
        ui.print_success("Sensor detected")
    else:
        ui.print_warning("No sensor detected")
        raise SystemExit(1)


@main.command()
@click.argument('kind', type=click.Choice(['sweep', 'probe', 'tone'], case_sensitive=False))
@click.option('--output', '-o', type=str, default=None, help='Output WAV file path')
@click.option('--config', '-c', type=str, default=None, help='Path to configuration file')
@click.option('--repeat', '-r', type=int, default=1, help='Number of times to repeat the waveform')
def generate(kind: str, output: Optional[str], config: Optional[str], repeat: int):
    """Write a waveform as a stereo WAV file.

    Examples:
        thermodo generate sweep -o sweep.wav --repeat 10
        thermodo generate tone
    """
    cfg = load_config(config)
    ui = create_display(cfg.ui)
    synth = WaveformSynthesizer(cfg.create_waveform_config())

    kind = kind.lower()
    if kind == 'sweep':
        pcm = synth.sweep()
    elif kind == 'probe':
        pcm = synth.two_phase()
    else:
        detection = cfg.create_detector_config()
        pcm = synth.test_tone(detection.test_tone_duration_ms, detection.test_tone_frequency)

    pcm = np.tile(pcm, (max(repeat, 1), 1))
    path = save_pcm(output or f"{kind}.wav", pcm, synth.config.sample_rate)

    ui.print_success(f"Waveform saved to: {path}")
    ui.print_info(f"Duration: {len(pcm) / synth.config.sample_rate:.2f} seconds")
    ui.print_info(f"Samples: {len(pcm)}")


@main.command()
@click.argument('input_file', type=click.Path(exists=True))
@click.option('--config', '-c', type=str, default=None, help='Path to configuration file')
@click.option('--simplified', is_flag=True, help='Decode the two-phase probe')
def decode(input_file: str, config: Optional[str], simplified: bool):
    """Decode a recorded WAV file buffer by buffer.

    Examples:
        thermodo decode capture.wav
        thermodo decode probe.wav --simplified
    """
    cfg = load_config(config)
    ui = create_display(cfg.ui)
    ui.print_header()
    ui.print_info(f"Decoding WAV file: {input_file}")

    try:
        data = load_capture(input_file)
    except ValueError as e:
        ui.print_error(f"Failed to read WAV file: {e}")
        raise SystemExit(1)

    mode = AnalyzerMode.SIMPLIFIED if simplified else cfg.get_analyzer_mode()
    analyzer = SignalAnalyzer(mode, cfg.create_waveform_config())
    buffer_size = int(cfg.audio.get("buffer_seconds", C.BUFFER_SECONDS) * C.SAMPLE_RATE)

    ui.print_info(f"Duration: {len(data) / C.SAMPLE_RATE:.2f} seconds")
    ui.print_info(f"Analyzer: {mode.value}")

    rows = [
        (start / C.SAMPLE_RATE, analyzer.decode(buffer))
        for start, buffer in split_buffers(data, buffer_size)
    ]
    ui.show_summary(rows)

    readings = [r.temperature for _, r in rows if r.has_temperature]
    if readings:
        ui.print_success(f"Median temperature: {float(np.median(readings)):.2f} °C")
    else:
        ui.print_warning("No temperature could be determined")


@main.command()
@click.option('--resistance', '-r', type=float, default=None, help='Simulated normalized resistance (ohm)')
@click.option('--temperature', '-t', type=float, default=None, help='Simulated temperature (°C)')
@click.option('--output', '-o', type=str, default='loopback.wav', help='Output WAV file path')
@click.option('--seconds', '-s', type=float, default=1.0, help='Length of the capture')
@click.option('--simplified', is_flag=True, help='Simulate the two-phase probe instead of the sweep')
def simulate(resistance: Optional[float], temperature: Optional[float], output: str,
             seconds: float, simplified: bool):
    """Write the capture a sensor at a given temperature would return."""
    if (resistance is None) == (temperature is None):
        raise click.UsageError("Give exactly one of --resistance or --temperature")

    if temperature is not None:
        resistance = default_table().resistance_for(temperature)
        if math.isnan(resistance):
            low, high = default_table().range
            raise click.BadParameter(
                f"temperature must be within {low:.0f}..{high:.0f} °C",
                param_hint="--temperature",
            )

    synth = WaveformSynthesizer()
    waveform = synth.two_phase() if simplified else synth.sweep()
    count = max(int(math.ceil(seconds * C.SAMPLE_RATE / len(waveform))), 1)
    stereo = np.tile(waveform, (count, 1))

    mono = loopback_mix(stereo, resistance / C.REF_RESISTANCE)
    path = save_pcm(output, mono)
    click.echo(f"Simulated {resistance:.2f} ohm capture saved to {path}")


@main.command()
def devices():
    """List available audio devices."""
    devices = AudioDevice.list_devices()

    if not devices:
        click.echo("No audio devices found (sounddevice may not be available)")
        return

    click.echo("\nAvailable audio devices:")
    click.echo("-" * 60)

    for d in devices:
        inputs = f"{d['inputs']} in" if d['inputs'] > 0 else ""
        outputs = f"{d['outputs']} out" if d['outputs'] > 0 else ""
        channels = ", ".join(filter(None, [inputs, outputs]))

        click.echo(f"  [{d['index']}] {d['name']}")
        click.echo(f"      {channels}, {int(d['default_samplerate'])} Hz")

    click.echo()
    click.echo(f"Default input: {AudioDevice.get_default_input()}")
    click.echo(f"Default output: {AudioDevice.get_default_output()}")


@main.command()
@click.option('--output', '-o', type=str, default='config.yaml', help='Output file path')
def init(output: str):
    """Initialize a new configuration file."""
    config = Config()
    config.save(output)

    click.echo(f"Configuration saved to {output}")
    click.echo("Edit this file to customize thermodo settings.")


if __name__ == "__main__":
    main()

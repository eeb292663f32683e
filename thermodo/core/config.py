"""
Configuration management for thermodo.
Provides easy configuration loading and editing.
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional
import yaml

from thermodo.analysis.analyzer import AnalyzerMode
from thermodo.audio.synth import WaveformConfig
from thermodo.core import constants as C
from thermodo.protocol.detector import DetectorConfig


DEFAULTS: Dict[str, Any] = {
    "audio": {
        "sample_rate": C.SAMPLE_RATE,
        "buffer_seconds": C.BUFFER_SECONDS,
        "input_device": None,
        "output_device": None,
    },
    "measurement": {
        "analyzer": AnalyzerMode.DEFAULT.value,
        "device_check": True,
        "frequency": C.FREQUENCY,
        "periods_per_cell": C.PERIODS_PER_CELL,
        "number_of_cells": C.NUMBER_OF_CELLS,
        "sync_cell_index": C.SYNC_CELL_INDEX,
        "reference_amplitude": C.REFERENCE_AMPLITUDE,
        "upper_amplitude": C.UPPER_AMPLITUDE,
        "lower_amplitude": C.LOWER_AMPLITUDE,
        "probe_duration_ms": C.PROBE_DURATION_MS,
    },
    "detection": {
        "silence_threshold": C.SILENCE_THRESHOLD,
        "tone_to_silence_ratio": C.TONE_TO_SILENCE_RATIO,
        "cut_samples_count": C.CUT_SAMPLES_COUNT,
        "test_tone_duration_ms": C.TEST_TONE_DURATION_MS,
        "test_tone_frequency": C.TEST_TONE_FREQUENCY,
        "playback_delay_ms": int(C.PLAYBACK_DELAY_SECONDS * 1000),
    },
    "ui": {
        "rich_interface": True,
        "units": "celsius",
        "colors": {
            "reading": "green",
            "waiting": "yellow",
            "measuring": "cyan",
            "warning": "yellow",
            "error": "red",
        },
    },
    "logging": {
        "enabled": False,
        "file": "thermodo_events.log",
        "format": "text",
        "timestamps": True,
        "level": "info",
    },
}


class Config:
    """Configuration manager for thermodo."""

    DEFAULT_CONFIG_PATHS = [
        Path("config.yaml"),
        Path("thermodo.yaml"),
        Path.home() / ".config" / "thermodo" / "config.yaml",
        Path("/etc/thermodo/config.yaml"),
    ]

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, searches default paths.
        """
        self._config: Dict[str, Any] = {}
        self._config_path: Optional[Path] = None
        self._load_config(config_path)

    def _load_config(self, config_path: Optional[str] = None) -> None:
        """Load configuration from file."""
        if config_path:
            path = Path(config_path)
            if path.exists():
                self._config_path = path
                self._config = self._read(path)
                return
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        for path in self.DEFAULT_CONFIG_PATHS:
            if path.exists():
                self._config_path = path
                self._config = self._read(path)
                return

        self._config = self._get_defaults()

    def _read(self, path: Path) -> Dict[str, Any]:
        """Read a YAML file on top of the defaults."""
        with open(path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        return self._merge(self._get_defaults(), loaded)

    @classmethod
    def _merge(cls, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                base[key] = cls._merge(base[key], value)
            else:
                base[key] = value
        return base

    def _get_defaults(self) -> Dict[str, Any]:
        """Get default configuration values."""
        return copy.deepcopy(DEFAULTS)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key: Configuration key (e.g., "audio.sample_rate")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value using dot notation.

        Args:
            key: Configuration key (e.g., "measurement.analyzer")
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def save(self, path: Optional[str] = None) -> None:
        """
        Save configuration to file.

        Args:
            path: Path to save to. If None, uses the loaded path or config.yaml
        """
        save_path = Path(path) if path else (self._config_path or Path("config.yaml"))
        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, 'w') as f:
            yaml.dump(self._config, f, default_flow_style=False, sort_keys=False)

    @property
    def path(self) -> Optional[Path]:
        return self._config_path

    @property
    def audio(self) -> Dict[str, Any]:
        """Get audio configuration."""
        return self._config.get("audio", {})

    @property
    def measurement(self) -> Dict[str, Any]:
        """Get measurement configuration."""
        return self._config.get("measurement", {})

    @property
    def detection(self) -> Dict[str, Any]:
        """Get presence detection configuration."""
        return self._config.get("detection", {})

    @property
    def ui(self) -> Dict[str, Any]:
        """Get UI configuration."""
        return self._config.get("ui", {})

    @property
    def logging_config(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return self._config.get("logging", {})

    def get_analyzer_mode(self) -> AnalyzerMode:
        """
        Get the configured analyzer mode.

        Raises:
            ValueError: If the configured mode is unknown
        """
        value = self.measurement.get("analyzer", AnalyzerMode.DEFAULT.value)
        try:
            return AnalyzerMode(value)
        except ValueError:
            raise ValueError(
                f"Unknown analyzer mode: {value!r} "
                f"(expected one of {[m.value for m in AnalyzerMode]})"
            ) from None

    def create_waveform_config(self) -> WaveformConfig:
        """Build the waveform configuration from the audio and measurement sections."""
        m = self.measurement
        return WaveformConfig(
            sample_rate=self.audio.get("sample_rate", C.SAMPLE_RATE),
            frequency=m.get("frequency", C.FREQUENCY),
            periods_per_cell=m.get("periods_per_cell", C.PERIODS_PER_CELL),
            number_of_cells=m.get("number_of_cells", C.NUMBER_OF_CELLS),
            sync_cell_index=m.get("sync_cell_index", C.SYNC_CELL_INDEX),
            reference_amplitude=m.get("reference_amplitude", C.REFERENCE_AMPLITUDE),
            upper_amplitude=m.get("upper_amplitude", C.UPPER_AMPLITUDE),
            lower_amplitude=m.get("lower_amplitude", C.LOWER_AMPLITUDE),
            probe_duration_ms=m.get("probe_duration_ms", C.PROBE_DURATION_MS),
        )

    def create_detector_config(self) -> DetectorConfig:
        """Build the presence detector configuration."""
        d = self.detection
        return DetectorConfig(
            silence_threshold=d.get("silence_threshold", C.SILENCE_THRESHOLD),
            tone_to_silence_ratio=d.get("tone_to_silence_ratio", C.TONE_TO_SILENCE_RATIO),
            cut_samples_count=d.get("cut_samples_count", C.CUT_SAMPLES_COUNT),
            test_tone_duration_ms=d.get("test_tone_duration_ms", C.TEST_TONE_DURATION_MS),
            test_tone_frequency=d.get("test_tone_frequency", C.TEST_TONE_FREQUENCY),
            playback_delay_ms=d.get(
                "playback_delay_ms", int(C.PLAYBACK_DELAY_SECONDS * 1000)
            ),
        )

    def __repr__(self) -> str:
        return f"Config(path={self._config_path})"

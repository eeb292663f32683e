"""
thermodo - Audio jack thermometer decoder
Compatible with Linux and macOS
"""

__version__ = "0.2.0"
__author__ = "thermodo contributors"

from thermodo.analysis.analyzer import AnalyzerMode, SignalAnalyzer
from thermodo.audio.synth import WaveformConfig, WaveformSynthesizer
from thermodo.core.config import Config
from thermodo.core.models import AnalyzerResult, ErrorKind
from thermodo.protocol.detector import PresenceDetector
from thermodo.protocol.session import (
    MockThermodo,
    Thermodo,
    ThermodoListener,
    create_thermodo,
)

__all__ = [
    "AnalyzerMode",
    "AnalyzerResult",
    "Config",
    "ErrorKind",
    "MockThermodo",
    "PresenceDetector",
    "SignalAnalyzer",
    "Thermodo",
    "ThermodoListener",
    "WaveformConfig",
    "WaveformSynthesizer",
    "create_thermodo",
    "__version__",
]

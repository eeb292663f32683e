"""
Rich text interface for thermodo.
Provides color-coded readings and session status.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from thermodo.core.models import AnalyzerResult, ErrorKind
from thermodo.utils.helpers import format_duration, format_resistance, format_temperature


@dataclass
class ColorScheme:
    """Color scheme for the interface."""
    reading: str = "green"
    waiting: str = "yellow"
    measuring: str = "cyan"
    warning: str = "yellow"
    error: str = "red"
    info: str = "white"
    highlight: str = "magenta"

    @classmethod
    def from_dict(cls, d: Dict[str, str]) -> "ColorScheme":
        """Create ColorScheme from dictionary."""
        return cls(
            reading=d.get("reading", "green"),
            waiting=d.get("waiting", "yellow"),
            measuring=d.get("measuring", "cyan"),
            warning=d.get("warning", "yellow"),
            error=d.get("error", "red"),
            info=d.get("info", "white"),
            highlight=d.get("highlight", "magenta"),
        )


ERROR_MESSAGES = {
    ErrorKind.CLIPPING_DETECTED: "Input clipping, lower the input gain",
    ErrorKind.NO_FRAMES_FOUND: "No signal from the sensor",
    ErrorKind.CAPTURE_FAILURE: "Audio capture failed, restart the session",
    ErrorKind.UNDETERMINED_TEMPERATURE: "Temperature out of the sensor's range",
}


class ReadingDisplay:
    """
    Rich text display for thermodo.

    Provides:
    - Color-coded reading lines (green=reading, yellow=undetermined, red=error)
    - Session status messages
    - Summary table for decoded recordings
    """

    def __init__(
        self,
        colors: Optional[ColorScheme] = None,
        units: str = "celsius",
        console: Optional[Console] = None,
    ):
        """
        Initialize the display.

        Args:
            colors: Color scheme to use
            units: Temperature units, "celsius" or "fahrenheit"
            console: Console to print to. A new one if None.
        """
        self.colors = colors or ColorScheme()
        self.units = units
        self.console = console or Console()
        self._lock = threading.Lock()
        self._readings: List[AnalyzerResult] = []

    def print_header(self, text: str = "thermodo - Audio Jack Thermometer") -> None:
        """Print application header."""
        self.console.print(Panel(
            Text(text, style="bold white"),
            style="blue",
        ))

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[{self.colors.info}]ℹ {message}[/]")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[{self.colors.reading}]✓ {message}[/]")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[{self.colors.error}]✗ {message}[/]")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[{self.colors.warning}]⚠ {message}[/]")

    def format_reading(self, result: AnalyzerResult) -> Text:
        """
        Build the display line for one result.

        Args:
            result: Analyzer result

        Returns:
            Styled text line
        """
        if not result.ok:
            return Text(f"✗ {ERROR_MESSAGES[result.error]}", style=self.colors.error)

        line = Text()
        if result.has_temperature:
            line.append(f"{format_temperature(result.temperature, self.units):>9}",
                        style=f"bold {self.colors.reading}")
        else:
            line.append(f"{'--':>9}", style=f"bold {self.colors.warning}")
        line.append(f"  {format_resistance(result.resistance):>9}", style=self.colors.measuring)
        line.append(f"  frames: {result.number_of_frames}", style="dim")
        return line

    def show_reading(self, result: AnalyzerResult) -> None:
        """Print a reading and remember it for the summary."""
        with self._lock:
            self._readings.append(result)
            self.console.print(self.format_reading(result))

    def show_status(self, measuring: bool, plugged: bool, elapsed: Optional[float] = None) -> None:
        """Show a status bar with the session state."""
        parts = []
        if plugged:
            parts.append(f"[{self.colors.reading}]🌡 Sensor connected[/]")
        else:
            parts.append(f"[{self.colors.waiting}]Waiting for sensor[/]")
        if measuring:
            parts.append(f"[{self.colors.measuring}]Measuring[/]")
        if elapsed is not None:
            parts.append(f"[dim]{format_duration(elapsed)}[/]")
        self.console.print(" | ".join(parts))

    def show_summary(
        self,
        rows: Sequence[Tuple[float, AnalyzerResult]],
        title: str = "Decoded buffers",
    ) -> None:
        """
        Display a table of results.

        Args:
            rows: (offset in seconds, result) pairs
            title: Panel title
        """
        table = Table(show_header=True, header_style="bold")
        table.add_column("Offset", style="dim", width=8)
        table.add_column("Temperature", width=12)
        table.add_column("Resistance", style=self.colors.measuring, width=11)
        table.add_column("Frames", width=6)
        table.add_column("Status", width=20)

        for offset, result in rows:
            if result.ok:
                status = f"[{self.colors.reading}]✓[/]" if result.has_temperature \
                    else f"[{self.colors.warning}]out of range[/]"
            else:
                status = f"[{self.colors.error}]{result.error.value}[/]"
            table.add_row(
                f"{offset:.1f}s",
                format_temperature(result.temperature, self.units),
                format_resistance(result.resistance),
                str(result.number_of_frames),
                status,
            )

        self.console.print(Panel(table, title=title))

    @property
    def readings(self) -> List[AnalyzerResult]:
        return list(self._readings)

    def clear(self) -> None:
        """Clear the console."""
        self.console.clear()


def create_display(config_dict: Dict[str, Any], console: Optional[Console] = None) -> ReadingDisplay:
    """
    Create a ReadingDisplay from configuration.

    Args:
        config_dict: UI configuration dictionary
        console: Console to print to

    Returns:
        Configured ReadingDisplay
    """
    colors = ColorScheme.from_dict(config_dict.get("colors", {}))
    if console is None and not config_dict.get("rich_interface", True):
        console = Console(no_color=True, highlight=False)

    return ReadingDisplay(
        colors=colors,
        units=config_dict.get("units", "celsius"),
        console=console,
    )

"""Tests for helper functions and the reading display."""

import math

import pytest
from rich.console import Console

from thermodo.core.models import AnalyzerResult, ErrorKind
from thermodo.ui.interface import ColorScheme, ReadingDisplay, create_display
from thermodo.utils.helpers import (
    celsius_to_fahrenheit,
    format_duration,
    format_resistance,
    format_temperature,
    get_platform,
)


class TestHelpers:
    """Tests for helper functions."""

    def test_get_platform(self):
        """Test platform detection."""
        assert get_platform() in ("linux", "macos", "windows")

    def test_format_duration(self):
        """Test duration formatting."""
        assert format_duration(0.5) == "500ms"
        assert format_duration(30) == "30.0s"
        assert format_duration(90) == "1m 30s"
        assert format_duration(3700) == "1h 1m"

    def test_fahrenheit(self):
        """Test unit conversion."""
        assert celsius_to_fahrenheit(100.0) == pytest.approx(212.0)

    def test_format_temperature(self):
        """Test temperature formatting."""
        assert format_temperature(25.0) == "25.0°C"
        assert format_temperature(25.0, "fahrenheit") == "77.0°F"
        assert format_temperature(math.nan) == "--"

    def test_format_temperature_units(self):
        """Test unknown units are rejected."""
        with pytest.raises(ValueError):
            format_temperature(25.0, "kelvin")

    def test_format_resistance(self):
        """Test resistance formatting."""
        assert format_resistance(100.0) == "100.00Ω"
        assert format_resistance(math.nan) == "--"


def make_display(**kwargs):
    console = Console(record=True, width=100, color_system=None)
    return ReadingDisplay(console=console, **kwargs), console


class TestReadingDisplay:
    """Tests for ReadingDisplay."""

    def test_reading_line(self):
        """Test a reading shows temperature, resistance and frames."""
        display, console = make_display()

        display.show_reading(AnalyzerResult(temperature=25.0, resistance=100.0, number_of_frames=4))

        output = console.export_text()
        assert "25.0°C" in output
        assert "100.00Ω" in output
        assert "frames: 4" in output
        assert len(display.readings) == 1

    def test_undetermined_reading(self):
        """Test a reading outside the table shows no temperature."""
        display, _ = make_display()

        line = display.format_reading(AnalyzerResult(resistance=2.0, number_of_frames=3))
        assert "--" in line.plain
        assert "2.00Ω" in line.plain

    def test_error_line(self):
        """Test failed results show the error message."""
        display, _ = make_display()

        line = display.format_reading(AnalyzerResult(error=ErrorKind.NO_FRAMES_FOUND))
        assert "No signal" in line.plain

    def test_fahrenheit_display(self):
        """Test the configured units are used."""
        display, _ = make_display(units="fahrenheit")

        line = display.format_reading(AnalyzerResult(temperature=25.0, resistance=100.0))
        assert "77.0°F" in line.plain

    def test_summary(self):
        """Test the summary table lists every row."""
        display, console = make_display()

        display.show_summary([
            (0.0, AnalyzerResult(temperature=25.0, resistance=100.0, number_of_frames=4)),
            (0.5, AnalyzerResult(error=ErrorKind.CLIPPING_DETECTED)),
        ])

        output = console.export_text()
        assert "0.5s" in output
        assert "clipping_detected" in output

    def test_status(self):
        """Test the status line reflects the session state."""
        display, console = make_display()

        display.show_status(measuring=True, plugged=True, elapsed=2.0)

        output = console.export_text()
        assert "Sensor connected" in output
        assert "Measuring" in output


class TestCreateDisplay:
    """Tests for create_display."""

    def test_from_config(self):
        """Test colors and units come from the ui section."""
        display = create_display({"units": "fahrenheit", "colors": {"reading": "blue"}})

        assert display.units == "fahrenheit"
        assert display.colors.reading == "blue"
        assert display.colors.error == ColorScheme().error

    def test_all_colors_from_config(self):
        """Test every color of the scheme can be configured."""
        colors = ColorScheme.from_dict({"info": "blue", "highlight": "cyan"})

        assert colors.info == "blue"
        assert colors.highlight == "cyan"
        assert colors.reading == "green"

    def test_plain_console(self):
        """Test disabling the rich interface drops colors."""
        display = create_display({"rich_interface": False})

        assert display.console.no_color
